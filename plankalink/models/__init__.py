# Import all models for easy access
from .base import BaseModel
from .key import Key
from .user import User

__all__ = [
    "BaseModel",
    "Key",
    "User",
]
