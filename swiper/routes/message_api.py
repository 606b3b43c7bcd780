"""Inbound chat messages and the HTTP outbox."""
from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from swiper.dependencies import get_dispatcher, get_notification_service
from swiper.services.dispatcher import Dispatcher
from swiper.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

router = APIRouter(tags=["messages"])

SESSION_TYPES = ("api", "telegram", "cli")


@router.post("/api/message")
async def post_message(request: Request, dispatcher: Dispatcher = Depends(get_dispatcher)):
    try:
        data = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON"})
    if not isinstance(data, dict):
        return JSONResponse(status_code=400, content={"error": "Expected a JSON object"})
    session_type = data.get("session_type", "api")
    session_id = str(data.get("session_id", "")).strip()
    message = str(data.get("message", "")).strip()

    if session_type not in SESSION_TYPES:
        return JSONResponse(status_code=400, content={"error": "Invalid session_type"})
    if not session_id:
        return JSONResponse(status_code=400, content={"error": "session_id is required"})
    if not message:
        return JSONResponse(status_code=400, content={"error": "message is required"})

    await dispatcher.accept_message(session_type, session_id, message)
    return {"status": "accepted"}


@router.get("/api/sessions/{session_id}/messages")
async def get_messages(session_id: str, notifier: NotificationService = Depends(get_notification_service)):
    return {"messages": notifier.drain_outbox(session_id)}


@router.post("/api/telegram/webhook")
async def telegram_webhook(request: Request, dispatcher: Dispatcher = Depends(get_dispatcher)):
    try:
        update = await request.json()
    except ValueError:
        return JSONResponse(status_code=400, content={"error": "Invalid JSON"})
    if not isinstance(update, dict):
        return JSONResponse(status_code=400, content={"error": "Expected a JSON object"})
    msg = update.get("message") or update.get("edited_message") or {}
    if not isinstance(msg, dict):
        return {"ok": True}
    chat_id = (msg.get("chat") or {}).get("id")
    text = (msg.get("text") or "").strip()
    if chat_id is None or not text:
        return {"ok": True}
    logger.info(f"Telegram message from chat {chat_id}")
    await dispatcher.accept_message("telegram", str(chat_id), text)
    return {"ok": True}
