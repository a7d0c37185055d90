"""Per-request access log model."""

from sqlalchemy import Column, Integer, String, DateTime, ForeignKey, Index
from sqlalchemy.sql import func

from app.core.database import Base


class AccessLog(Base):
    """Append-only request metadata."""

    __tablename__ = "access_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="SET NULL"), nullable=True, index=True)
    method = Column(String(10), nullable=False)
    url = Column(String(2048), nullable=False)
    status = Column(Integer, nullable=False)
    response_time_ms = Column(Integer, nullable=False)
    user_agent = Column(String(512), nullable=True)
    ip_address = Column(String(64), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_access_logs_created_at", "created_at"),
    )
