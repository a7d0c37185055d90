"""Access log service for per-request metadata."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import AuthenticationError
from app.core.security import decode_access_token
from app.models.access_log import AccessLog

logger = logging.getLogger(__name__)


class AccessLogService:
    """Append request metadata rows; never lets a logging failure reach the caller."""

    @staticmethod
    def infer_user_id(access_token: Optional[str]) -> Optional[int]:
        """User id from a signed access token, ignoring expiry."""
        if not access_token:
            return None
        try:
            return decode_access_token(access_token, verify_exp=False).user_id
        except AuthenticationError:
            return None

    @staticmethod
    def record(
        db: Session,
        *,
        method: str,
        url: str,
        status: int,
        response_time_ms: int,
        user_id: Optional[int] = None,
        user_agent: Optional[str] = None,
        ip_address: Optional[str] = None,
    ) -> Optional[AccessLog]:
        entry = AccessLog(
            user_id=user_id,
            method=method,
            url=url[:2048],
            status=status,
            response_time_ms=response_time_ms,
            user_agent=user_agent[:512] if user_agent else None,
            ip_address=ip_address,
        )
        try:
            db.add(entry)
            db.commit()
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Error writing access log: %s", exc)
            return None
        return entry


access_log_service = AccessLogService()
