"""Message schemas"""

from datetime import datetime
from typing import Optional

from pydantic import Field, field_validator

from app.schemas.base import CamelModel


class MessageCreate(CamelModel):
    """Send-message payload"""
    content: str = Field(..., min_length=1)

    @field_validator('content')
    @classmethod
    def content_not_blank(cls, v):
        if not v.strip():
            raise ValueError('Message content is required')
        return v


class MessageSender(CamelModel):
    id: int
    username: str
    avatar_url: Optional[str] = None


class MessageResponse(CamelModel):
    """Persisted message as returned by REST and pushed over the realtime channel"""
    id: int
    content: str
    sender_id: int
    chat_id: int
    created_at: datetime
    sender: MessageSender
