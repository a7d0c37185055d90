"""Refresh token issuance, rotation and revocation service."""

from __future__ import annotations

from datetime import datetime
import logging
from typing import Tuple

from sqlalchemy.orm import Session

from app.core.exceptions import AuthenticationError, TokenExpiredError, TokenInvalidError
from app.core.metrics import TOKEN_ROTATIONS
from app.core.security import (
    TokenClaims,
    create_access_token,
    create_refresh_token,
    decode_access_token,
    decode_refresh_token,
)
from app.models.security import RefreshToken

logger = logging.getLogger(__name__)

TokenPair = Tuple[str, str]


class TokenService:
    """Manage the access/refresh token lifecycle.

    Signing and verification are pure; only the refresh-token rows are state.
    A refresh token is good for exactly one rotation: its row is deleted in
    the same transaction that stores its replacement.
    """

    @staticmethod
    def _mint_pair(db: Session, user_id: int) -> TokenPair:
        access_token = create_access_token(user_id)
        refresh_token = create_refresh_token(user_id)
        claims = decode_refresh_token(refresh_token)
        db.add(
            RefreshToken(
                user_id=user_id,
                token_jti=claims.jti,
                expires_at=datetime.utcfromtimestamp(claims.expires_at),
            )
        )
        return access_token, refresh_token

    @staticmethod
    def issue_token_pair(db: Session, user_id: int) -> TokenPair:
        """Sign a new pair and persist the refresh token row."""
        pair = TokenService._mint_pair(db, user_id)
        db.commit()
        return pair

    @staticmethod
    def verify_access(token: str) -> TokenClaims:
        return decode_access_token(token)

    @staticmethod
    def verify_refresh(token: str) -> TokenClaims:
        return decode_refresh_token(token)

    @staticmethod
    def rotate(db: Session, refresh_token: str) -> Tuple[int, str, str]:
        """
        Consume a refresh token and issue a replacement pair.

        Args:
            db: Database session
            refresh_token: Token presented by the client

        Returns:
            (user_id, access_token, refresh_token)

        Raises:
            TokenExpiredError: Token past its expiry
            TokenInvalidError: Bad signature or malformed claims
            AuthenticationError: Token unknown, already rotated/revoked, or owner mismatch
        """
        claims = decode_refresh_token(refresh_token)

        record = db.query(RefreshToken).filter(RefreshToken.token_jti == claims.jti).first()
        if record is None:
            raise AuthenticationError("Refresh token not recognized")
        if record.user_id != claims.user_id:
            logger.warning("Refresh token owner mismatch for user %s", claims.user_id)
            raise AuthenticationError("Refresh token does not match its owner")

        # The conditional delete decides which of several concurrent rotations wins.
        deleted = (
            db.query(RefreshToken)
            .filter(RefreshToken.id == record.id, RefreshToken.user_id == claims.user_id)
            .delete(synchronize_session=False)
        )
        if deleted != 1:
            db.rollback()
            raise AuthenticationError("Refresh token already used")
        db.expunge(record)

        try:
            access_token, new_refresh = TokenService._mint_pair(db, claims.user_id)
            db.commit()
        except Exception:
            db.rollback()
            raise

        TOKEN_ROTATIONS.inc()
        logger.info("Rotated refresh token for user %s", claims.user_id)
        return claims.user_id, access_token, new_refresh

    @staticmethod
    def revoke(db: Session, refresh_token: str) -> bool:
        """Delete the row for this refresh token if present. Never raises on absence."""
        try:
            claims = decode_refresh_token(refresh_token, verify_exp=False)
        except (TokenExpiredError, TokenInvalidError):
            return False
        deleted = (
            db.query(RefreshToken)
            .filter(RefreshToken.token_jti == claims.jti)
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted > 0

    @staticmethod
    def revoke_all(db: Session, user_id: int) -> int:
        """Delete every refresh token row of a user (logout everywhere)."""
        deleted = (
            db.query(RefreshToken)
            .filter(RefreshToken.user_id == user_id)
            .delete(synchronize_session=False)
        )
        db.commit()
        logger.info("Revoked %s refresh tokens for user %s", deleted, user_id)
        return deleted


token_service = TokenService()
