"""User service - registration, authentication, lookup and presence"""

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime
from app.config import settings
from app.models.user import User
from app.schemas.user import UserRegister, UserStatus
from app.core.security import get_password_hash, verify_password
from app.core.exceptions import (
    InvalidCredentialsError,
    ResourceAlreadyExistsError,
    ValidationError,
)
import logging

logger = logging.getLogger(__name__)


class UserService:
    """Service for user management"""

    @staticmethod
    def create_user(db: Session, user_data: UserRegister) -> User:
        """
        Register a new user

        Args:
            db: Database session
            user_data: Registration data

        Returns:
            Created user

        Raises:
            ResourceAlreadyExistsError: Username taken
        """
        existing = db.query(User).filter(User.username == user_data.username).first()
        if existing:
            raise ResourceAlreadyExistsError("Username")

        user = User(
            username=user_data.username,
            email=user_data.email,
            display_name=user_data.display_name or user_data.username,
            avatar_url=user_data.avatar_url,
            password_hash=get_password_hash(user_data.password),
            status=UserStatus.OFFLINE.value,
        )

        db.add(user)
        try:
            db.commit()
        except IntegrityError:
            # Lost a race with a concurrent registration of the same name
            db.rollback()
            raise ResourceAlreadyExistsError("Username")
        db.refresh(user)

        logger.info(f"Registered user: {user.username}")
        return user

    @staticmethod
    def authenticate_user(db: Session, username: str, password: str) -> User:
        """
        Check a username/password pair

        Raises:
            InvalidCredentialsError: Unknown user or wrong password
        """
        user = db.query(User).filter(User.username == username).first()
        if not user or not verify_password(password, user.password_hash):
            raise InvalidCredentialsError()

        logger.info(f"User authenticated: {username}")
        return user

    @staticmethod
    def get_user_by_id(db: Session, user_id: int) -> Optional[User]:
        """Get user by ID"""
        return db.query(User).filter(User.id == user_id).first()

    @staticmethod
    def get_user_by_username(db: Session, username: str) -> Optional[User]:
        """Get user by username"""
        return db.query(User).filter(User.username == username).first()

    @staticmethod
    def search_users(db: Session, current_user_id: int, query: Optional[str]) -> List[User]:
        """
        Case-insensitive substring search on usernames, excluding the caller

        Raises:
            ValidationError: Empty query
        """
        if not query or not query.strip():
            raise ValidationError("Username query parameter is required")

        needle = query.strip().lower()
        return (
            db.query(User)
            .filter(
                User.username.ilike(f"%{_escape_like(needle)}%", escape="\\"),
                User.id != current_user_id,
            )
            .order_by(User.username)
            .limit(settings.USER_SEARCH_LIMIT)
            .all()
        )

    @staticmethod
    def set_presence(db: Session, user_id: int, status: UserStatus) -> Optional[User]:
        """Update status and refresh last_seen_at"""
        user = db.query(User).filter(User.id == user_id).first()
        if user is not None:
            user.status = status.value
            user.last_seen_at = datetime.utcnow()
        db.commit()
        return user


def _escape_like(value: str) -> str:
    return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")


# Singleton instance
user_service = UserService()
