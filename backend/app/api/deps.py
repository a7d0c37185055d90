"""API dependencies - session resolution, cookies and realtime channel access"""

from typing import List, Optional, Tuple

from fastapi import Depends, Request, Response
from sqlalchemy.orm import Session
from starlette.requests import HTTPConnection

from app.config import settings
from app.core.database import get_db
from app.services.realtime import RealtimeChannel
from app.services.session_service import SessionResult, session_service


def set_session_cookies(response: Response, access_token: str, refresh_token: str) -> None:
    """Attach both credentials as httpOnly, sameSite=strict cookies"""
    response.set_cookie(
        settings.ACCESS_COOKIE_NAME,
        access_token,
        max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )
    response.set_cookie(
        settings.REFRESH_COOKIE_NAME,
        refresh_token,
        max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 24 * 60 * 60,
        httponly=True,
        secure=settings.cookie_secure,
        samesite="strict",
    )


def clear_session_cookies(response: Response) -> None:
    for name in (settings.ACCESS_COOKIE_NAME, settings.REFRESH_COOKIE_NAME):
        response.delete_cookie(name, httponly=True, secure=settings.cookie_secure, samesite="strict")


def session_cookie_headers(access_token: str, refresh_token: str) -> List[Tuple[bytes, bytes]]:
    """Set-Cookie headers for responses that are not a Response object (WebSocket accept)"""
    carrier = Response()
    set_session_cookies(carrier, access_token, refresh_token)
    return [(k, v) for k, v in carrier.raw_headers if k == b"set-cookie"]


def read_credentials(connection: HTTPConnection) -> Tuple[Optional[str], Optional[str]]:
    return (
        connection.cookies.get(settings.ACCESS_COOKIE_NAME),
        connection.cookies.get(settings.REFRESH_COOKIE_NAME),
    )


def get_session(
    request: Request,
    response: Response,
    db: Session = Depends(get_db),
) -> SessionResult:
    """
    Resolve the caller from cookies, rotating credentials when needed

    Raises:
        SessionRejectedError: No valid session; the error handler clears the cookies
    """
    access_token, refresh_token = read_credentials(request)
    result = session_service.resolve(db, access_token, refresh_token)
    if result.rotated:
        set_session_cookies(response, *result.tokens)
    return result


def get_current_user_id(session: SessionResult = Depends(get_session)) -> int:
    return session.user_id


def get_realtime_channel(connection: HTTPConnection) -> RealtimeChannel:
    """The process-wide channel created at startup"""
    channel = getattr(connection.app.state, "realtime_channel", None)
    if channel is None:
        raise RuntimeError("Realtime channel not initialized")
    return channel
