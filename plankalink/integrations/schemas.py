"""
Pydantic schemas for the Planka integration.

Request Schemas:
- PlankaCredentialsRequest: Planka email/username and password (login and link)

Result Schemas (internal):
- PlankaProfile: the subset of a Planka user profile we consume
- PlankaAuthResult: normalized outcome of a Planka authentication
- BareToken: a token-only authentication payload that still needs a profile fetch
- PlankaCredential: decrypted credential envelope read back from storage

Response Schemas:
- PlankaLoginResponse, PlankaLinkResponse, PlankaUnlinkResponse,
  PlankaStatusResponse, PlankaConfigResponse, PlankaPingResponse

Design Principles:
- Never expose Planka access tokens in responses
- JSON field names follow the web client (camelCase) via aliases
"""
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ================================================================================
# REQUEST SCHEMAS
# ================================================================================

class PlankaCredentialsRequest(BaseModel):
    """
    Planka credentials submitted by the login and link forms.

    Fields are optional at the schema level so that missing values surface as
    a 400 from the endpoint rather than a framework validation error.

    Example:
        {"emailOrUsername": "alice@example.com", "password": "secret"}
    """
    model_config = ConfigDict(populate_by_name=True)

    email_or_username: Optional[str] = Field(
        default=None,
        alias="emailOrUsername",
        description="Planka email address or username"
    )
    password: Optional[str] = Field(
        default=None,
        description="Planka password"
    )

    @field_validator('email_or_username', mode='before')
    @classmethod
    def strip_identifier(cls, v):
        if isinstance(v, str):
            return v.strip()
        return v


# ================================================================================
# RESULT SCHEMAS
# ================================================================================

class PlankaProfile(BaseModel):
    """
    Planka user profile.

    Only `email` is load-bearing (join key to the local account); everything
    else is display-only. Unknown fields are kept so the stored snapshot
    mirrors what Planka returned.
    """
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    id: Optional[str] = None
    email: Optional[str] = None
    username: Optional[str] = None
    name: Optional[str] = None
    avatar: Optional[Any] = None
    role: Optional[str] = None
    organization: Optional[str] = None
    phone: Optional[str] = None
    created_at: Optional[str] = Field(default=None, alias="createdAt")

    @field_validator(
        'id', 'email', 'username', 'name', 'role', 'organization', 'phone', 'created_at',
        mode='before'
    )
    @classmethod
    def coerce_scalars(cls, v):
        """Planka versions differ in scalar types (numeric ids, etc.); keep them as strings."""
        if v is None or isinstance(v, str):
            return v
        if isinstance(v, (int, float, bool)):
            return str(v)
        return v

    def snapshot(self) -> Dict[str, Any]:
        """Return the profile as a JSON-safe dict using Planka's field names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class PlankaAuthResult(BaseModel):
    """Normalized authentication result. Both fields are always present."""
    access_token: str = Field(..., min_length=1)
    user: PlankaProfile


@dataclass(frozen=True)
class BareToken:
    """Authentication payload that carried only a token; the profile must be fetched."""
    access_token: str


class PlankaCredential(BaseModel):
    """
    Decrypted credential envelope.

    Serialized (by alias) as {"accessToken", "userData", "connectedAt"} before
    encryption.
    """
    model_config = ConfigDict(populate_by_name=True)

    access_token: str = Field(..., alias="accessToken")
    user_data: Optional[Dict[str, Any]] = Field(default=None, alias="userData")
    connected_at: datetime = Field(..., alias="connectedAt")
    updated_at: Optional[datetime] = Field(default=None, exclude=True)


# ================================================================================
# RESPONSE SCHEMAS
# ================================================================================

class PlankaLoginResponse(BaseModel):
    """
    Successful Planka login.

    Example Response:
        {
            "token": "<local session token>",
            "user": {"id": "...", "email": "alice@example.com", ..., "plankaConnected": true}
        }
    """
    token: str
    user: Dict[str, Any]


class PlankaUserSummary(BaseModel):
    email: Optional[str] = None
    name: Optional[str] = None
    username: Optional[str] = None


class PlankaLinkResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    message: str
    planka_user: PlankaUserSummary = Field(..., alias="plankaUser")


class PlankaUnlinkResponse(BaseModel):
    message: str


class PlankaStatusResponse(BaseModel):
    """
    Link status for the current user. Read from storage only; Planka is not contacted.
    """
    model_config = ConfigDict(populate_by_name=True)

    connected: bool
    user_data: Optional[Dict[str, Any]] = Field(default=None, alias="userData")


class PlankaConfigResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    enabled: bool
    base_url: Optional[str] = Field(default=None, alias="baseUrl")


class PlankaPingResponse(BaseModel):
    reachable: bool
