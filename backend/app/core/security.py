"""Security utilities - JWT signing/verification and password hashing"""

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Dict, Any
from jose import ExpiredSignatureError, JWTError, jwt
import bcrypt
from app.config import settings
from app.core.exceptions import TokenExpiredError, TokenInvalidError
import secrets
import time

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


@dataclass(frozen=True)
class TokenClaims:
    """Verified contents of a signed token."""
    user_id: int
    jti: str
    expires_at: int
    token_type: str

    def seconds_remaining(self, now: Optional[float] = None) -> float:
        if now is None:
            now = time.time()
        return self.expires_at - now


def verify_password(plain_password: str, hashed_password: str) -> bool:
    """
    Verify a password against its hash

    Args:
        plain_password: Plain text password
        hashed_password: Hashed password

    Returns:
        bool: True if password matches
    """
    try:
        return bcrypt.checkpw(
            plain_password.encode('utf-8')[:72],
            hashed_password.encode('utf-8')
        )
    except (ValueError, TypeError):
        return False


def get_password_hash(password: str) -> str:
    """
    Hash a password using bcrypt

    Args:
        password: Plain text password

    Returns:
        str: Hashed password
    """
    # bcrypt only looks at the first 72 bytes
    return bcrypt.hashpw(
        password.encode('utf-8')[:72],
        bcrypt.gensalt()
    ).decode('utf-8')


def _encode(user_id: int, token_type: str, secret: str, expires_delta: timedelta) -> str:
    now = datetime.utcnow()
    to_encode = {
        "sub": str(user_id),
        "typ": token_type,
        "exp": now + expires_delta,
        "iat": now,
        "jti": secrets.token_urlsafe(32),  # Unique token ID
    }
    return jwt.encode(to_encode, secret, algorithm=settings.ALGORITHM)


def create_access_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a short-lived JWT access token signed with the access secret

    Args:
        user_id: Owning user
        expires_delta: Token lifetime, ACCESS_TOKEN_EXPIRE_MINUTES by default

    Returns:
        str: Encoded JWT token
    """
    if expires_delta is None:
        expires_delta = timedelta(minutes=settings.ACCESS_TOKEN_EXPIRE_MINUTES)
    return _encode(user_id, ACCESS_TOKEN_TYPE, settings.ACCESS_TOKEN_SECRET, expires_delta)


def create_refresh_token(user_id: int, expires_delta: Optional[timedelta] = None) -> str:
    """
    Create a JWT refresh token signed with the refresh secret

    Args:
        user_id: Owning user
        expires_delta: Token lifetime, REFRESH_TOKEN_EXPIRE_DAYS by default

    Returns:
        str: Encoded JWT token
    """
    if expires_delta is None:
        expires_delta = timedelta(days=settings.REFRESH_TOKEN_EXPIRE_DAYS)
    return _encode(user_id, REFRESH_TOKEN_TYPE, settings.REFRESH_TOKEN_SECRET, expires_delta)


def _decode(token: str, secret: str, token_type: str, verify_exp: bool = True) -> TokenClaims:
    try:
        payload: Dict[str, Any] = jwt.decode(
            token,
            secret,
            algorithms=[settings.ALGORITHM],
            options={"verify_exp": verify_exp},
        )
    except ExpiredSignatureError:
        raise TokenExpiredError()
    except JWTError:
        raise TokenInvalidError()

    if payload.get("typ") != token_type:
        raise TokenInvalidError("Unexpected token type")

    sub = payload.get("sub")
    jti = payload.get("jti")
    exp = payload.get("exp")
    if not sub or not jti or not exp:
        raise TokenInvalidError("Malformed token")
    try:
        user_id = int(sub)
    except (TypeError, ValueError):
        raise TokenInvalidError("Malformed token")

    return TokenClaims(user_id=user_id, jti=jti, expires_at=int(exp), token_type=token_type)


def decode_access_token(token: str, verify_exp: bool = True) -> TokenClaims:
    """
    Verify signature and expiry of an access token

    Raises:
        TokenExpiredError: Signature valid but expiry passed
        TokenInvalidError: Bad signature, wrong secret or malformed claims
    """
    return _decode(token, settings.ACCESS_TOKEN_SECRET, ACCESS_TOKEN_TYPE, verify_exp)


def decode_refresh_token(token: str, verify_exp: bool = True) -> TokenClaims:
    """Verify a refresh token; does not consult storage."""
    return _decode(token, settings.REFRESH_TOKEN_SECRET, REFRESH_TOKEN_TYPE, verify_exp)
