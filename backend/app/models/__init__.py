"""Database models"""

from app.models.user import User
from app.models.security import RefreshToken
from app.models.chat import Chat, ChatMembership
from app.models.message import Message
from app.models.access_log import AccessLog

__all__ = ["User", "RefreshToken", "Chat", "ChatMembership", "Message", "AccessLog"]
