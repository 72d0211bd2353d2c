"""
Per-user key/value storage.

Each row holds one named, already-encrypted value for a user. Owners of a
key name (e.g. the Planka token service) encrypt the value before it reaches
this table; the table never sees plaintext.

Invariant: at most one row per (user_id, name).
"""
import uuid
from typing import TYPE_CHECKING

from sqlalchemy import Column, ForeignKey, String, Text, UniqueConstraint
from sqlmodel import Field, Relationship

from .base import BaseModel

if TYPE_CHECKING:
    from .user import User


class Key(BaseModel, table=True):
    """
    Named encrypted value owned by a user.

    Fields:
        user_id: Owning user (rows are deleted with the user)
        name: Logical key name, e.g. "planka_token"
        value: Encrypted payload (Fernet token, stored as text)
    """
    __tablename__ = "key"

    user_id: uuid.UUID = Field(
        sa_column=Column(
            ForeignKey("user.id", ondelete="CASCADE"),
            nullable=False,
            index=True
        )
    )
    name: str = Field(sa_column=Column(String(100), nullable=False))
    value: str = Field(sa_column=Column(Text, nullable=False))

    user: "User" = Relationship(back_populates="keys")

    __table_args__ = (
        UniqueConstraint("user_id", "name", name="uq_key_user_name"),
    )
