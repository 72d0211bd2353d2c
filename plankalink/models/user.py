"""
User-related models.
"""
from datetime import datetime
from typing import List, Optional, TYPE_CHECKING

from sqlalchemy import Column, String
from sqlmodel import Field, Relationship, Index, CheckConstraint

from .base import BaseModel
from .enums import AuthProvider, UserRole

if TYPE_CHECKING:
    from .key import Key


class User(BaseModel, table=True):
    """
    Local account.

    Accounts created through Planka login carry provider=planka and a
    pre-verified email. The email column is unique and is the join key to
    Planka profiles.
    """
    __tablename__ = "user"

    email: str = Field(
        sa_column=Column(String(255), unique=True, nullable=False)
    )
    username: Optional[str] = Field(
        default=None,
        sa_column=Column(String(100), nullable=True)
    )
    password: str  # Hashed password
    name: str = Field(sa_column=Column(String(100), nullable=False))
    provider: AuthProvider = Field(
        default=AuthProvider.LOCAL,
        sa_column=Column(String(20), nullable=False, default=AuthProvider.LOCAL.value)
    )
    role: UserRole = Field(
        default=UserRole.USER,
        sa_column=Column(String(20), nullable=False, default=UserRole.USER.value)
    )
    email_verified: bool = Field(default=False)
    is_active: bool = Field(default=True)
    last_login_at: Optional[datetime] = None

    keys: List["Key"] = Relationship(
        back_populates="user",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"}
    )

    __table_args__ = (
        Index('idx_user_active', 'is_active'),
        CheckConstraint("length(name) > 0", name='check_name_not_empty'),
    )
