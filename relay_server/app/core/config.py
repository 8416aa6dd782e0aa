# app/core/config.py
# -*- coding: utf-8 -*-
"""
Chat Relay Server — Configuration
---------------------------------
Central configuration for the relay server, including:

- app metadata
- API host/port
- dialogue backend (watsonx Assistant v2, stateless message API)
- transcription backend (IBM Speech to Text)
- Telegram channel (Bot API token, webhook secret)
- session store limits (TTL, max sessions, optional JSON snapshot)
- continuation loop guard and overall turn timeout.

"""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

# ---------------------------------------------------------------------------
# Path helpers
# ---------------------------------------------------------------------------

# This file is: relay_server/app/core/config.py
APP_DIR: Path = Path(__file__).resolve().parents[1]   # .../relay_server/app
ROOT_DIR: Path = APP_DIR.parent                       # .../relay_server


# ---------------------------------------------------------------------------
# Settings model
# ---------------------------------------------------------------------------


class Settings(BaseSettings):
    """
    Global configuration for the relay server.

    `get_settings()` builds one instance per process; the app factory reads
    it once and hands the values to the components it constructs.
    """

    model_config = SettingsConfigDict(
        env_file=ROOT_DIR / ".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- App / server basics -----------------------------------------------
    app_name: str = "Chat Relay Server"
    environment: Literal["development", "production", "test"] = "development"
    debug: bool = True

    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # --- Dialogue backend (watsonx Assistant) -------------------------------
    # ENV: ASSISTANT_URL=https://api.us-south.assistant.watson.cloud.ibm.com/instances/...
    assistant_url: str | None = Field(
        default=None,
        description="Service instance URL of the assistant (env: ASSISTANT_URL).",
    )
    assistant_api_key: str | None = Field(
        default=None,
        description="IAM API key for the assistant (env: ASSISTANT_API_KEY).",
    )
    assistant_id: str | None = Field(
        default=None,
        description="Assistant environment id (env: ASSISTANT_ID).",
    )
    assistant_version: str = "2021-11-27"
    assistant_timeout_s: float = 15.0

    # Retries only cover transport errors (connection reset, timeout).
    # 0 means a single attempt.
    assistant_max_retries: int = 0

    # Skill whose skill_variables hold the orchestrator-owned variables.
    assistant_skill_name: str = "actions skill"

    # --- Transcription backend (Speech to Text) ----------------------------
    stt_url: str = "https://api.us-south.speech-to-text.watson.cloud.ibm.com"
    stt_api_key: str | None = Field(
        default=None,
        description="IAM API key for Speech to Text (env: STT_API_KEY).",
    )
    stt_model: str = "pt-BR_BroadbandModel"
    stt_timeout_s: float = 30.0

    # --- Telegram channel --------------------------------------------------
    telegram_bot_token: str | None = Field(
        default=None,
        description="Bot API token from @BotFather (env: TELEGRAM_BOT_TOKEN).",
    )
    telegram_api_base: str = "https://api.telegram.org"
    telegram_timeout_s: float = 10.0
    telegram_webhook_secret: str | None = Field(
        default=None,
        description=(
            "If set, webhook calls must carry the same value in "
            "X-Telegram-Bot-Api-Secret-Token (env: TELEGRAM_WEBHOOK_SECRET)."
        ),
    )

    welcome_template: str = "Bem-vindo {first_name}"
    error_reply_text: str = (
        "Desculpe, não consegui processar sua mensagem agora. Tente novamente."
    )

    # --- Session store ------------------------------------------------------
    # None keeps entries for the lifetime of the process.
    session_ttl_s: float | None = None
    max_sessions: int | None = None
    # None keeps sessions in memory only.
    sessions_path: Path | None = None

    # --- Turn limits --------------------------------------------------------
    max_continuation_calls: int = 8
    turn_timeout_s: float = 30.0


_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide Settings, loading it on first use."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


if __name__ == "__main__":
    # Minimal self-test so you can quickly verify config loading.
    settings = get_settings()
    print("Chat Relay — Settings self-test")
    print(f"ROOT_DIR          : {ROOT_DIR}")
    print(f"Environment       : {settings.environment}")
    print(f"Assistant         : url={settings.assistant_url!r}, id={settings.assistant_id!r}")
    print(f"Assistant key set : {bool(settings.assistant_api_key)}")
    print(f"STT               : url={settings.stt_url!r}, model={settings.stt_model!r}")
    print(f"Telegram token set: {bool(settings.telegram_bot_token)}")
    print(f"Session TTL (s)   : {settings.session_ttl_s}")
    print(f"Max continuations : {settings.max_continuation_calls}")
