"""
User service for local accounts.
"""
import secrets
import time
import uuid
from typing import Optional, Union

from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from plankalink.core.exceptions import (
    InvalidCredentialsError,
    UnauthorizedError,
    UserAlreadyExistsError,
)
from plankalink.core.logging_config import log_error, log_info
from plankalink.core.security import get_password_hash, verify_password
from plankalink.core.time_utils import utc_now
from plankalink.models.enums import AuthProvider
from plankalink.models.user import User

# Hash evaluated once to keep timing consistent for missing users
_DUMMY_PASSWORD_HASH = get_password_hash("plankalink-dummy-password")


def normalize_email(email: str) -> str:
    return email.strip().lower()


class UserService:
    """User service class."""

    def __init__(self, session: Session):
        self.session = session

    def get_user_by_id(self, user_id: Union[str, uuid.UUID]) -> Optional[User]:
        """Get user by ID."""
        try:
            user_uuid = user_id if isinstance(user_id, uuid.UUID) else uuid.UUID(str(user_id))
        except ValueError:
            return None
        statement = select(User).where(User.id == user_uuid)
        return self.session.exec(statement).first()

    def get_user_by_email(self, email: str) -> Optional[User]:
        """Get user by email (exact match after normalization)."""
        statement = select(User).where(User.email == normalize_email(email))
        return self.session.exec(statement).first()

    def create_user(
        self,
        *,
        email: str,
        name: str,
        password: Optional[str],
        username: Optional[str] = None,
        provider: AuthProvider = AuthProvider.LOCAL,
        email_verified: bool = False,
    ) -> User:
        """
        Create a new local account.

        A None password produces a random, unusable one.

        Raises:
            UserAlreadyExistsError: If the email is already taken (including a
                concurrent insert caught by the unique constraint)
        """
        email = normalize_email(email)
        if self.get_user_by_email(email):
            raise UserAlreadyExistsError("Email already registered")

        user = User(
            email=email,
            name=name.strip() or email.split("@")[0],
            username=username,
            password=get_password_hash(password if password is not None else secrets.token_urlsafe(32)),
            provider=provider,
            email_verified=email_verified,
        )

        self.session.add(user)
        try:
            self.session.commit()
            self.session.refresh(user)
        except IntegrityError as exc:
            self.session.rollback()
            raise UserAlreadyExistsError("Email already registered") from exc
        except SQLAlchemyError as exc:
            self.session.rollback()
            log_error(exc, user_email=email)
            raise

        log_info(f"Created user {user.email}", provider=provider.value)
        return user

    def authenticate_user(self, email: str, password: str) -> User:
        """Authenticate user with email and password."""
        user = self.get_user_by_email(email)
        if not user:
            # Perform dummy verify to keep timing consistent
            verify_password(password, _DUMMY_PASSWORD_HASH)
            time.sleep(0.05)
            raise InvalidCredentialsError("Incorrect email or password")

        if not verify_password(password, user.password):
            time.sleep(0.05)
            raise InvalidCredentialsError("Incorrect email or password")

        if not user.is_active:
            raise UnauthorizedError("User account is inactive")

        return user

    def record_login(self, user: User) -> User:
        """Stamp last_login_at."""
        user.last_login_at = utc_now()
        try:
            self.session.add(user)
            self.session.commit()
            self.session.refresh(user)
        except SQLAlchemyError as exc:
            self.session.rollback()
            log_error(exc, user_email=user.email)
            raise
        return user
