"""Chat message model"""

from sqlalchemy import CheckConstraint, Column, Integer, DateTime, ForeignKey, Text, Index
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship

from app.core.database import Base


class Message(Base):
    """Immutable chat message"""

    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, index=True)
    content = Column(Text, nullable=False)
    sender_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    chat_id = Column(Integer, ForeignKey("chats.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    sender = relationship("User")
    chat = relationship("Chat", back_populates="messages")

    __table_args__ = (
        CheckConstraint("length(content) > 0", name="chk_messages_content"),
        Index("idx_messages_chat_created", "chat_id", "created_at"),
    )
