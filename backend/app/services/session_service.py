"""Per-request session resolution from access/refresh credentials."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.config import settings
from app.core.exceptions import AuthenticationError, SessionRejectedError, TokenExpiredError
from app.services.token_service import token_service

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionResult:
    """Outcome of a successful resolution.

    ``tokens`` is set when the credentials were rotated and the new
    (access, refresh) pair must be handed back to the client.
    """
    user_id: int
    tokens: Optional[Tuple[str, str]] = None

    @property
    def rotated(self) -> bool:
        return self.tokens is not None


class SessionService:
    """Stateless gate shared by REST dependencies and the realtime handshake."""

    def __init__(self, refresh_window_seconds: int = settings.REFRESH_WINDOW_SECONDS):
        self.refresh_window_seconds = refresh_window_seconds

    def _rotate_or_reject(self, db: Session, refresh_token: str) -> SessionResult:
        try:
            user_id, access_token, new_refresh = token_service.rotate(db, refresh_token)
        except AuthenticationError as exc:
            logger.info("Token refresh failed: %s", exc.message)
            raise SessionRejectedError("Session expired. Please log in again.")
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Token refresh failed on persistence: %s", exc)
            raise SessionRejectedError("Session expired. Please log in again.")
        return SessionResult(user_id=user_id, tokens=(access_token, new_refresh))

    def resolve(
        self,
        db: Session,
        access_token: Optional[str],
        refresh_token: Optional[str],
        now: Optional[float] = None,
    ) -> SessionResult:
        """
        Resolve the caller identity.

        Raises:
            SessionRejectedError: No usable credentials
        """
        if not access_token and not refresh_token:
            raise SessionRejectedError("Authentication required. No token provided.")

        if not access_token:
            return self._rotate_or_reject(db, refresh_token)

        try:
            claims = token_service.verify_access(access_token)
        except TokenExpiredError:
            if refresh_token:
                return self._rotate_or_reject(db, refresh_token)
            raise SessionRejectedError("Session expired. Please log in again.")
        except AuthenticationError:
            raise SessionRejectedError("Invalid or expired token.")

        if not refresh_token or claims.seconds_remaining(now) > self.refresh_window_seconds:
            return SessionResult(user_id=claims.user_id)

        # Close to expiry: rotate early, but the still-valid access token decides the outcome.
        try:
            refresh_claims = token_service.verify_refresh(refresh_token)
        except AuthenticationError as exc:
            logger.info("Proactive refresh skipped for user %s: %s", claims.user_id, exc.message)
            return SessionResult(user_id=claims.user_id)
        if refresh_claims.user_id != claims.user_id:
            logger.warning(
                "Refresh token of user %s presented with access token of user %s",
                refresh_claims.user_id, claims.user_id,
            )
            return SessionResult(user_id=claims.user_id)

        try:
            _, access, new_refresh = token_service.rotate(db, refresh_token)
        except AuthenticationError as exc:
            logger.info("Proactive refresh skipped for user %s: %s", claims.user_id, exc.message)
            return SessionResult(user_id=claims.user_id)
        except SQLAlchemyError as exc:
            db.rollback()
            logger.error("Proactive refresh failed for user %s: %s", claims.user_id, exc)
            return SessionResult(user_id=claims.user_id)
        return SessionResult(user_id=claims.user_id, tokens=(access, new_refresh))


session_service = SessionService()
