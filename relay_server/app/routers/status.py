# app/routers/status.py
# -*- coding: utf-8 -*-
"""
Chat Relay — /status router
---------------------------
Admin / debugging views of the session store:

- GET    /status/sessions        -> live session count + store limits
- GET    /status/sessions/{id}   -> stored context for one conversation
- DELETE /status/sessions/{id}   -> forget a conversation (next turn starts fresh)
- POST   /status/sessions/prune  -> drop entries older than the TTL
"""

from __future__ import annotations

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, HTTPException

from app.runtime_state import SessionStore
from app.routers.deps import get_session_store

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/status", tags=["status"])


@router.get("/sessions")
async def sessions_summary(store: SessionStore = Depends(get_session_store)) -> Dict[str, Any]:
    return {
        "sessions": store.count(),
        "ttl_seconds": store.ttl_seconds,
        "max_sessions": store.max_sessions,
        "persistent": store.path is not None,
    }


@router.get("/sessions/{conversation_id}")
async def session_detail(
    conversation_id: str,
    store: SessionStore = Depends(get_session_store),
) -> Dict[str, Any]:
    entry = store.get_entry(conversation_id)
    if entry is None:
        raise HTTPException(status_code=404, detail="Unknown conversation.")
    return entry.model_dump(mode="json")


@router.delete("/sessions/{conversation_id}")
async def session_delete(
    conversation_id: str,
    store: SessionStore = Depends(get_session_store),
) -> Dict[str, Any]:
    if not store.delete_session(conversation_id):
        raise HTTPException(status_code=404, detail="Unknown conversation.")
    return {"deleted": conversation_id}


@router.post("/sessions/prune")
async def sessions_prune(store: SessionStore = Depends(get_session_store)) -> Dict[str, int]:
    removed = store.prune_stale_sessions()
    logger.info("Pruned %d stale sessions", removed)
    return {"pruned": removed}
