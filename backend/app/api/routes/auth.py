"""Authentication routes"""

import logging

from fastapi import APIRouter, Depends, Request, Response, status
from sqlalchemy.orm import Session

from app.api.deps import (
    clear_session_cookies,
    get_current_user_id,
    read_credentials,
    set_session_cookies,
)
from app.core.database import get_db
from app.core.exceptions import ResourceNotFoundError
from app.schemas.response import MessageOnlyResponse
from app.schemas.user import AuthResponse, UserLogin, UserProfile, UserRegister
from app.services.token_service import token_service
from app.services.user_service import user_service

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/register", response_model=AuthResponse, status_code=status.HTTP_201_CREATED)
def register(
    user_data: UserRegister,
    db: Session = Depends(get_db)
):
    """
    Register a new user

    Returns:
        Created user summary
    """
    user = user_service.create_user(db, user_data)
    return AuthResponse(message="User registered successfully", user=UserProfile.model_validate(user))


@router.post("/login", response_model=AuthResponse, status_code=status.HTTP_200_OK)
def login(
    credentials: UserLogin,
    response: Response,
    db: Session = Depends(get_db)
):
    """
    Authenticate and set access/refresh cookies

    Returns:
        User summary
    """
    user = user_service.authenticate_user(db, credentials.username, credentials.password)
    access_token, refresh_token = token_service.issue_token_pair(db, user.id)
    set_session_cookies(response, access_token, refresh_token)

    return AuthResponse(message="Login successful", user=UserProfile.model_validate(user))


@router.get("/me", response_model=UserProfile)
def get_current_user_info(
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Current user's profile"""
    user = user_service.get_user_by_id(db, user_id)
    if user is None:
        raise ResourceNotFoundError("User")
    return UserProfile.model_validate(user)


@router.post("/logout", response_model=MessageOnlyResponse, status_code=status.HTTP_200_OK)
def logout(
    request: Request,
    response: Response,
    db: Session = Depends(get_db)
):
    """
    Revoke the presented refresh token and clear cookies

    Always succeeds: a failed revocation is logged, cookies are cleared regardless.
    """
    _, refresh_token = read_credentials(request)
    try:
        if refresh_token:
            token_service.revoke(db, refresh_token)
    except Exception as exc:
        db.rollback()
        logger.error(f"Logout error during token invalidation: {exc}")
    finally:
        clear_session_cookies(response)

    return MessageOnlyResponse(message="Logout successful")


@router.post("/logout-all", response_model=MessageOnlyResponse, status_code=status.HTTP_200_OK)
def logout_all(
    response: Response,
    user_id: int = Depends(get_current_user_id),
    db: Session = Depends(get_db)
):
    """Revoke every refresh token of the caller and clear this client's cookies"""
    revoked = token_service.revoke_all(db, user_id)
    clear_session_cookies(response)
    return MessageOnlyResponse(message=f"Logged out from all devices ({revoked} sessions revoked)")
