"""Message service - persist, fetch and publish chat messages"""

from __future__ import annotations

import logging
from typing import List, Optional

from sqlalchemy.orm import Session, joinedload

from app.core.exceptions import NotChatMemberError, ValidationError
from app.core.metrics import MESSAGES_SENT
from app.models.message import Message
from app.schemas.message import MessageResponse
from app.services.chat_service import chat_service
from app.services.realtime import NEW_MESSAGE_EVENT, RealtimeChannel, chat_room

logger = logging.getLogger(__name__)


class MessageService:
    """Service for chat messages"""

    @staticmethod
    def send(
        db: Session,
        channel: Optional[RealtimeChannel],
        user_id: int,
        chat_id: int,
        content: Optional[str],
    ) -> MessageResponse:
        """
        Persist a message, then publish it to the chat's room

        Args:
            db: Database session
            channel: Realtime channel to publish on; skipped when None
            user_id: Sender
            chat_id: Target chat
            content: Message text

        Returns:
            Persisted message with sender summary

        Raises:
            ValidationError: Empty content
            NotChatMemberError: Sender is not a member of the chat
        """
        if content is None or not content.strip():
            raise ValidationError("Message content is required")
        if not chat_service.is_member(db, user_id, chat_id):
            raise NotChatMemberError()

        message = Message(content=content, sender_id=user_id, chat_id=chat_id)
        db.add(message)
        db.commit()
        db.refresh(message)
        MESSAGES_SENT.inc()

        payload = MessageResponse.model_validate(message)

        # Only after commit, so a live frame is never ahead of what a REST fetch returns
        if channel is not None:
            delivered = channel.publish(
                chat_room(chat_id),
                NEW_MESSAGE_EVENT,
                payload.model_dump(mode="json", by_alias=True),
            )
            logger.debug("Message %s delivered to %s connections", message.id, delivered)

        return payload

    @staticmethod
    def list(db: Session, user_id: int, chat_id: int) -> List[MessageResponse]:
        """
        All messages of a chat, oldest first

        Raises:
            NotChatMemberError: Caller is not a member of the chat
        """
        if not chat_service.is_member(db, user_id, chat_id):
            raise NotChatMemberError()

        messages = (
            db.query(Message)
            .options(joinedload(Message.sender))
            .filter(Message.chat_id == chat_id)
            .order_by(Message.created_at.asc(), Message.id.asc())
            .all()
        )
        return [MessageResponse.model_validate(m) for m in messages]


message_service = MessageService()
