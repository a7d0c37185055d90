"""Message routes"""

from typing import List

from fastapi import APIRouter, Depends, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id, get_realtime_channel
from app.core.database import get_db
from app.schemas.message import MessageCreate, MessageResponse
from app.services.message_service import message_service
from app.services.realtime import RealtimeChannel

router = APIRouter()


@router.post("/{chat_id}/messages", response_model=MessageResponse, status_code=status.HTTP_201_CREATED)
def send_message(
    chat_id: int,
    body: MessageCreate,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db),
    channel: RealtimeChannel = Depends(get_realtime_channel),
):
    """Send a message; members connected to the chat's room receive it live"""
    return message_service.send(db, channel, user_id, chat_id, body.content)


@router.get("/{chat_id}/messages", response_model=List[MessageResponse])
def get_messages(
    chat_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Messages of a chat, oldest first"""
    return message_service.list(db, user_id, chat_id)
