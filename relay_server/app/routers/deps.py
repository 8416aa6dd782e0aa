# app/routers/deps.py
# -*- coding: utf-8 -*-
"""
FastAPI dependencies that hand routers the components built by create_app().

Nothing here is a module-level singleton: everything lives on `app.state`.
"""

from __future__ import annotations

from fastapi import Request

from app.core.config import Settings
from app.core.pipeline import RelayPipeline
from app.providers.telegram import TelegramClient
from app.runtime_state import CallbackValues, SessionStore


def get_pipeline(request: Request) -> RelayPipeline:
    return request.app.state.pipeline


def get_session_store(request: Request) -> SessionStore:
    return request.app.state.session_store


def get_telegram(request: Request) -> TelegramClient:
    return request.app.state.telegram


def get_callback_values(request: Request) -> CallbackValues:
    return request.app.state.callback_values


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings
