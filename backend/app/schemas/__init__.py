"""Pydantic schemas for API validation"""

from app.schemas.user import (
    UserStatus,
    UserRegister,
    UserLogin,
    UserSummary,
    UserProfile,
    AuthResponse,
)
from app.schemas.chat import PrivateChatCreate, ChatResponse, LastMessage
from app.schemas.message import MessageCreate, MessageResponse, MessageSender
from app.schemas.response import MessageOnlyResponse, HealthResponse

__all__ = [
    "UserStatus", "UserRegister", "UserLogin", "UserSummary", "UserProfile", "AuthResponse",
    "PrivateChatCreate", "ChatResponse", "LastMessage",
    "MessageCreate", "MessageResponse", "MessageSender",
    "MessageOnlyResponse", "HealthResponse",
]
