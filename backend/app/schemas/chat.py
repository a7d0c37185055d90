"""Chat schemas"""

from datetime import datetime
from typing import List, Optional

from pydantic import Field

from app.schemas.base import CamelModel
from app.schemas.user import UserSummary


class PrivateChatCreate(CamelModel):
    """Partner selection for a private chat"""
    username: str = Field(..., min_length=1, max_length=50)


class LastMessage(CamelModel):
    id: int
    content: str
    sender_id: int
    created_at: datetime


class ChatResponse(CamelModel):
    """Chat with its ordered member list and most recent message"""
    id: int
    name: str
    is_private_chat: bool
    created_at: Optional[datetime] = None
    users: List[UserSummary] = []
    last_message: Optional[LastMessage] = None
