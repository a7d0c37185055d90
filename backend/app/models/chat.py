"""Chat room and membership models"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, ForeignKey, Index, UniqueConstraint
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.core.database import Base


class Chat(Base):
    """Chat room; private chats have exactly two members."""

    __tablename__ = "chats"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    is_private_chat = Column(Boolean, default=False, nullable=False)
    # "<low user id>:<high user id>" for private chats, NULL otherwise
    private_pair_key = Column(String(64), unique=True, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    memberships = relationship(
        "ChatMembership",
        back_populates="chat",
        cascade="all, delete-orphan",
        order_by="ChatMembership.id",
    )
    messages = relationship(
        "Message",
        back_populates="chat",
        cascade="all, delete-orphan",
    )

    def __repr__(self):
        return f"<Chat(id={self.id}, name='{self.name}', private={self.is_private_chat})>"

    @staticmethod
    def pair_key(user_a: int, user_b: int) -> str:
        low, high = sorted((user_a, user_b))
        return f"{low}:{high}"


class ChatMembership(Base):
    """User <-> chat join record"""

    __tablename__ = "chat_memberships"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    chat_id = Column(Integer, ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    joined_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User", back_populates="memberships")
    chat = relationship("Chat", back_populates="memberships")

    __table_args__ = (
        UniqueConstraint("user_id", "chat_id", name="uq_chat_memberships_user_chat"),
        Index("idx_chat_memberships_chat", "chat_id"),
    )
