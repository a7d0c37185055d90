"""Realtime WebSocket endpoint"""

import asyncio
import contextlib
import json
import logging
from typing import Optional

from fastapi import APIRouter, Depends, WebSocket, status
from sqlalchemy.exc import SQLAlchemyError
from starlette.concurrency import run_in_threadpool

from app.api.deps import get_realtime_channel, read_credentials, session_cookie_headers
from app.core import database
from app.core.exceptions import AuthenticationError
from app.core.metrics import REALTIME_CONNECTIONS
from app.services.realtime import (
    CONNECTED_EVENT,
    ERROR_EVENT,
    RealtimeChannel,
    WebSocketSubscriber,
    chat_room,
    frame,
)
from app.services.session_service import session_service

logger = logging.getLogger(__name__)

router = APIRouter()

JOIN_CHAT = "joinChat"
LEAVE_CHAT = "leaveChat"


def _in_session(fn, *args):
    """Run ``fn(db, *args)`` on a session that is closed before returning"""
    db = database.SessionLocal()
    try:
        return fn(db, *args)
    finally:
        db.close()


def _parse_chat_id(value) -> int:
    chat_id = int(value)
    if chat_id <= 0:
        raise ValueError("chat id must be positive")
    return chat_id


@router.websocket("/ws")
async def realtime_endpoint(
    websocket: WebSocket,
    token: Optional[str] = None,
    channel: RealtimeChannel = Depends(get_realtime_channel),
):
    """
    Authenticated live channel.

    Client frames: {"event": "joinChat" | "leaveChat", "data": <chat id>}
    Server frames: connected, newMessage, error
    """
    access_token, refresh_token = read_credentials(websocket)
    access_token = access_token or token

    # 1. Handshake gate, same rules as REST
    try:
        session = await run_in_threadpool(
            _in_session, session_service.resolve, access_token, refresh_token
        )
    except AuthenticationError as exc:
        logger.info("Realtime handshake refused: %s", exc.message)
        await websocket.close(code=status.WS_1008_POLICY_VIOLATION)
        return

    headers = session_cookie_headers(*session.tokens) if session.rotated else None
    await websocket.accept(headers=headers)

    # 2. Auto-subscribe and go online
    subscriber = WebSocketSubscriber(websocket, session.user_id, asyncio.get_running_loop())
    try:
        rooms = await run_in_threadpool(_in_session, channel.connect, subscriber)
    except (RuntimeError, SQLAlchemyError) as exc:
        logger.warning("Realtime connect rejected for user %s: %s", session.user_id, exc)
        channel.disconnect(None, subscriber)
        await websocket.close(code=status.WS_1011_INTERNAL_ERROR)
        return
    REALTIME_CONNECTIONS.set(channel.connection_count)
    subscriber.deliver(frame(CONNECTED_EVENT, {"userId": session.user_id, "rooms": rooms}))
    writer = asyncio.create_task(subscriber.pump())

    # 3. Client events until disconnect
    try:
        while True:
            received = await websocket.receive()
            if received["type"] == "websocket.disconnect":
                break
            raw = received.get("text")
            if raw is None:
                subscriber.deliver(frame(ERROR_EVENT, {"message": "Only text frames are accepted"}))
                continue
            try:
                message = json.loads(raw)
                event = message.get("event")
                chat_id = _parse_chat_id(message.get("data"))
            except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
                logger.warning("Malformed realtime frame from user %s: %s", session.user_id, e)
                subscriber.deliver(frame(ERROR_EVENT, {"message": "Malformed frame"}))
                continue

            if event == JOIN_CHAT:
                channel.join(subscriber, chat_room(chat_id))
                logger.info("User %s manually joined chat %s", session.user_id, chat_id)
            elif event == LEAVE_CHAT:
                channel.leave(subscriber, chat_room(chat_id))
                logger.info("User %s left chat room %s", session.user_id, chat_id)
            else:
                subscriber.deliver(frame(ERROR_EVENT, {"message": f"Unknown event: {event}"}))
    finally:
        writer.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await writer
        try:
            await run_in_threadpool(_in_session, channel.disconnect, subscriber)
            REALTIME_CONNECTIONS.set(channel.connection_count)
        except Exception as e:
            logger.error("Error updating user status on disconnect: %s", e)
