"""Chat relay server: Telegram <-> watsonx Assistant with per-conversation context."""
