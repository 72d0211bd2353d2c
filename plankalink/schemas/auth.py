"""
Authentication schemas.
"""
from pydantic import BaseModel, field_validator


class UserLogin(BaseModel):
    """User login schema."""
    email: str
    password: str

    @field_validator('email')
    @classmethod
    def validate_email(cls, v):
        if v and '@' not in v:
            raise ValueError('Invalid email address')
        return v.lower().strip() if v else v


class LoginResponse(BaseModel):
    """Login response with the local session token and user info."""
    token: str
    token_type: str = "bearer"
    user: dict
