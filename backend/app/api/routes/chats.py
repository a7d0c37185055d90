"""Chat routes - private chats, listing, search, leave/delete"""

from typing import List, Optional

from fastapi import APIRouter, Depends, Response, status
from sqlalchemy.orm import Session

from app.api.deps import get_current_user_id
from app.core.database import get_db
from app.schemas.chat import ChatResponse, PrivateChatCreate
from app.schemas.response import MessageOnlyResponse
from app.schemas.user import UserSummary
from app.services.chat_service import chat_service
from app.services.user_service import user_service

router = APIRouter()


@router.post(
    "/private",
    response_model=ChatResponse,
    responses={200: {"description": "Existing chat returned"}, 201: {"description": "New chat created"}},
)
def create_private_chat(
    body: PrivateChatCreate,
    response: Response,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """
    Create or retrieve the private chat with another user

    Returns:
        The chat; 201 when newly created, 200 when it already existed
    """
    chat, created = chat_service.get_or_create_private_chat(db, user_id, body.username)
    response.status_code = status.HTTP_201_CREATED if created else status.HTTP_200_OK
    return chat_service.to_response(chat)


@router.get("", response_model=List[ChatResponse])
def list_chats(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Chats of the current user with members and last message"""
    return chat_service.list_chats_for(db, user_id)


@router.get("/users/search", response_model=List[UserSummary])
def search_users(
    username: Optional[str] = None,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Search other users by partial username (case-insensitive)"""
    users = user_service.search_users(db, user_id, username)
    return [UserSummary.model_validate(u) for u in users]


@router.get("/{chat_id}", response_model=ChatResponse)
def get_chat(
    chat_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """A single chat the caller belongs to"""
    chat = chat_service.get_chat(db, user_id, chat_id)
    return chat_service.to_response(chat)


@router.delete("/{chat_id}", response_model=MessageOnlyResponse)
def delete_chat(
    chat_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Delete a chat the caller belongs to"""
    chat_service.delete_chat(db, user_id, chat_id)
    return MessageOnlyResponse(message="Chat deleted successfully")


@router.delete("/{chat_id}/leave", response_model=MessageOnlyResponse)
def leave_chat(
    chat_id: int,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Leave a chat; the chat is deleted once nobody is left"""
    chat_deleted = chat_service.leave(db, user_id, chat_id)
    if chat_deleted:
        return MessageOnlyResponse(message="Left chat and chat deleted as it became empty")
    return MessageOnlyResponse(message="Successfully left the chat")
