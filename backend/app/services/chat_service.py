"""Chat service - private chat lookup/creation and membership management"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from app.core.exceptions import (
    DatabaseError,
    NotChatMemberError,
    ResourceNotFoundError,
    SelfChatError,
)
from app.models.chat import Chat, ChatMembership
from app.models.message import Message
from app.models.user import User
from app.schemas.chat import ChatResponse, LastMessage
from app.schemas.user import UserSummary

logger = logging.getLogger(__name__)

PRIVATE_CHAT_NAME = "Private Chat"


class ChatService:
    """Service for chats and memberships"""

    @staticmethod
    def is_member(db: Session, user_id: int, chat_id: int) -> bool:
        return (
            db.query(ChatMembership.id)
            .filter(ChatMembership.user_id == user_id, ChatMembership.chat_id == chat_id)
            .first()
            is not None
        )

    @staticmethod
    def chat_ids_for_user(db: Session, user_id: int) -> List[int]:
        rows = (
            db.query(ChatMembership.chat_id)
            .filter(ChatMembership.user_id == user_id)
            .order_by(ChatMembership.chat_id)
            .all()
        )
        return [row.chat_id for row in rows]

    @staticmethod
    def _find_private_chat(db: Session, user_a: int, user_b: int) -> Optional[Chat]:
        return (
            db.query(Chat)
            .filter(Chat.is_private_chat.is_(True), Chat.private_pair_key == Chat.pair_key(user_a, user_b))
            .first()
        )

    @staticmethod
    def get_or_create_private_chat(db: Session, user_id: int, partner_username: str) -> Tuple[Chat, bool]:
        """
        Return the private chat between the caller and a partner, creating it if needed

        Args:
            db: Database session
            user_id: Caller
            partner_username: Partner's username

        Returns:
            (chat, created)

        Raises:
            ResourceNotFoundError: Partner does not exist
            SelfChatError: Partner is the caller
        """
        partner = db.query(User).filter(User.username == partner_username).first()
        if partner is None:
            raise ResourceNotFoundError("User")
        if partner.id == user_id:
            raise SelfChatError()

        existing = ChatService._find_private_chat(db, user_id, partner.id)
        if existing is not None:
            return existing, False

        chat = Chat(
            name=PRIVATE_CHAT_NAME,
            is_private_chat=True,
            private_pair_key=Chat.pair_key(user_id, partner.id),
        )
        chat.memberships = [
            ChatMembership(user_id=user_id),
            ChatMembership(user_id=partner.id),
        ]
        db.add(chat)
        try:
            db.commit()
        except IntegrityError:
            # A concurrent request created the same pair first; the unique pair key kept it single.
            db.rollback()
            existing = ChatService._find_private_chat(db, user_id, partner.id)
            if existing is None:
                raise
            return existing, False

        db.refresh(chat)
        logger.info(f"Created private chat {chat.id} for users {user_id} and {partner.id}")
        return chat, True

    @staticmethod
    def get_chat(db: Session, user_id: int, chat_id: int) -> Chat:
        """
        Raises:
            ResourceNotFoundError: No such chat
            NotChatMemberError: Caller is not a member
        """
        chat = db.query(Chat).filter(Chat.id == chat_id).first()
        if chat is None:
            raise ResourceNotFoundError("Chat")
        if not ChatService.is_member(db, user_id, chat_id):
            raise NotChatMemberError()
        return chat

    @staticmethod
    def list_chats_for(db: Session, user_id: int) -> List[ChatResponse]:
        """All chats of a user with members and most recent message, newest activity first"""
        chats = (
            db.query(Chat)
            .join(ChatMembership, ChatMembership.chat_id == Chat.id)
            .filter(ChatMembership.user_id == user_id)
            .options(selectinload(Chat.memberships).selectinload(ChatMembership.user))
            .all()
        )
        if not chats:
            return []

        last_messages = ChatService._last_messages(db, [chat.id for chat in chats])
        responses = [ChatService.to_response(chat, last_messages.get(chat.id)) for chat in chats]
        responses.sort(
            key=lambda c: (c.last_message.created_at if c.last_message else c.created_at) or datetime.min,
            reverse=True,
        )
        return responses

    @staticmethod
    def _last_messages(db: Session, chat_ids: List[int]) -> Dict[int, Message]:
        latest = (
            db.query(func.max(Message.id).label("id"))
            .filter(Message.chat_id.in_(chat_ids))
            .group_by(Message.chat_id)
            .subquery()
        )
        messages = db.query(Message).join(latest, Message.id == latest.c.id).all()
        return {message.chat_id: message for message in messages}

    @staticmethod
    def to_response(chat: Chat, last_message: Optional[Message] = None) -> ChatResponse:
        return ChatResponse(
            id=chat.id,
            name=chat.name,
            is_private_chat=chat.is_private_chat,
            created_at=chat.created_at,
            users=[UserSummary.model_validate(m.user) for m in chat.memberships],
            last_message=LastMessage.model_validate(last_message) if last_message else None,
        )

    @staticmethod
    def leave(db: Session, user_id: int, chat_id: int) -> bool:
        """
        Remove the caller's membership; an emptied chat is deleted

        Returns:
            True if the chat was deleted

        Raises:
            ResourceNotFoundError: No such chat, or caller holds no membership
        """
        chat = db.query(Chat).filter(Chat.id == chat_id).first()
        if chat is None:
            raise ResourceNotFoundError("Chat")

        deleted = (
            db.query(ChatMembership)
            .filter(ChatMembership.user_id == user_id, ChatMembership.chat_id == chat_id)
            .delete(synchronize_session=False)
        )
        if not deleted:
            db.rollback()
            raise ResourceNotFoundError("Chat membership")

        remaining = db.query(ChatMembership).filter(ChatMembership.chat_id == chat_id).count()
        chat_deleted = remaining == 0
        if chat_deleted:
            db.expire(chat)
            db.delete(chat)
        db.commit()

        logger.info(
            f"User {user_id} left chat {chat_id}" + (" (chat deleted, no members left)" if chat_deleted else "")
        )
        return chat_deleted

    @staticmethod
    def delete_chat(db: Session, user_id: int, chat_id: int) -> None:
        """
        Delete a chat with its memberships and messages

        Raises:
            DatabaseError: No such chat
            NotChatMemberError: Caller is not a member
        """
        chat = db.query(Chat).filter(Chat.id == chat_id).first()
        if chat is None:
            logger.error(f"Delete requested for missing chat {chat_id}")
            raise DatabaseError("Failed to delete chat")
        if not ChatService.is_member(db, user_id, chat_id):
            raise NotChatMemberError()

        db.delete(chat)
        db.commit()
        logger.info(f"User {user_id} deleted chat {chat_id}")


chat_service = ChatService()
