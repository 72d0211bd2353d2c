"""
Enums and constants for the application.
"""
from enum import Enum


class AuthProvider(str, Enum):
    """Where a local account originated."""
    LOCAL = "local"
    PLANKA = "planka"


class UserRole(str, Enum):
    """User roles for authorization."""
    USER = "user"
    ADMIN = "admin"
