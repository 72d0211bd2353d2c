"""
Planka integration client.

This module implements the Planka-specific HTTP calls: authenticating with
email/username + password, fetching the current profile, revoking a token,
and probing reachability.

Planka has returned authentication results in three shapes across versions:
    1. {"item": "<token>"}                                  token only, profile fetched separately
    2. {"item": {"accessToken": "...", "user": {...}}}     token and profile together
    3. {"item": {...}, "included": [{"type": "users", ...}]} profile in a side-channel list
normalize_auth_payload() resolves all three into a single PlankaAuthResult
(or a BareToken when a follow-up profile fetch is required).
"""
from typing import Any, Dict, Optional, Union

import httpx
from pydantic import ValidationError as PydanticValidationError

from plankalink.core.config import settings
from plankalink.core.exceptions import (
    AuthenticationError,
    PlankaAPIError,
    PlankaProtocolError,
    PlankaTimeoutError,
)
from plankalink.core.http_client import get_http_client
from plankalink.core.logging_config import log_planka_call
from plankalink.integrations.schemas import BareToken, PlankaAuthResult, PlankaProfile

PLANKA_API_ACCESS_TOKENS = "/api/access-tokens"
PLANKA_API_CURRENT_ACCESS_TOKEN = "/api/access-tokens/me"
PLANKA_API_CURRENT_USER = "/api/users/me"
PLANKA_API_CONFIG = "/api/config"

# Type discriminator of user entries in the "included" side-channel
USER_RESOURCE_TYPE = "users"

# Statuses with which the access-token endpoint rejects the submitted credentials
CREDENTIAL_REJECTION_STATUSES = {400, 401, 403}

_MAX_ERROR_BODY = 500


def build_url(base_url: str, path: str) -> str:
    """Join the configured base URL and a relative API path."""
    base = base_url.rstrip("/")
    return f"{base}{'' if path.startswith('/') else '/'}{path}"


def _error_body(response: httpx.Response) -> str:
    try:
        return response.text[:_MAX_ERROR_BODY]
    except (UnicodeDecodeError, httpx.ResponseNotRead):
        return ""


def _parse_json(response: httpx.Response, path: str) -> Any:
    if not response.content:
        return None
    try:
        return response.json()
    except ValueError as e:
        raise PlankaProtocolError(f"Planka returned a non-JSON response for {path}") from e


async def planka_fetch(
    base_url: str,
    access_token: str,
    path: str,
    method: str = "GET",
    *,
    json: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
    timeout: Optional[float] = None,
) -> Any:
    """
    Make an authenticated request to the Planka API and return the decoded JSON body.

    Raises:
        PlankaTimeoutError: No answer within the timeout (default: planka_request_timeout_seconds)
        PlankaAPIError: HTTP error status, or a transport failure (status "unknown")
        PlankaProtocolError: Body is not JSON
    """
    timeout = timeout or settings.planka_request_timeout_seconds
    url = build_url(base_url, path)
    request_headers = {
        "Accept": "application/json",
        **(headers or {}),
        "Authorization": f"Bearer {access_token}",
    }

    client = await get_http_client()
    log_planka_call(method, path, "issued")
    try:
        response = await client.request(
            method,
            url,
            json=json,
            headers=request_headers,
            timeout=timeout,
        )
        response.raise_for_status()
    except httpx.TimeoutException as e:
        log_planka_call(method, path, "failed", reason="timeout")
        raise PlankaTimeoutError(timeout) from e
    except httpx.HTTPStatusError as e:
        log_planka_call(method, path, "failed", status=e.response.status_code)
        raise PlankaAPIError(e.response.status_code, _error_body(e.response)) from e
    except httpx.RequestError as e:
        log_planka_call(method, path, "failed", reason=type(e).__name__)
        raise PlankaAPIError("unknown", str(e)) from e

    log_planka_call(method, path, "completed", status=response.status_code)
    return _parse_json(response, path)


def _profile_from(payload: Any) -> PlankaProfile:
    """Build a profile from a user object, rejecting anything that is not a non-empty mapping."""
    if not isinstance(payload, dict) or not payload:
        raise PlankaProtocolError("No user data returned from Planka")
    try:
        return PlankaProfile.model_validate(payload)
    except PydanticValidationError as e:
        raise PlankaProtocolError("Planka user data has an unexpected shape") from e


def normalize_auth_payload(raw: Any) -> Union[BareToken, PlankaAuthResult]:
    """
    Normalize a Planka access-token response.

    Returns:
        BareToken when the payload only carries a token (caller must fetch the profile),
        otherwise a complete PlankaAuthResult. A user entry in "included" wins over a
        user embedded in the primary payload.

    Raises:
        PlankaProtocolError: If the token or the user profile cannot be found
    """
    if isinstance(raw, str):
        raw = {"item": raw}

    if not isinstance(raw, dict):
        raise PlankaProtocolError("Unrecognized Planka authentication response")

    item = raw.get("item")
    if isinstance(item, str):
        if not item.strip():
            raise PlankaProtocolError("No access token returned from Planka")
        return BareToken(access_token=item)

    auth_data = item if isinstance(item, dict) else raw
    access_token = auth_data.get("accessToken")
    user = auth_data.get("user")

    included = raw.get("included")
    if isinstance(included, list):
        included_user = next(
            (
                entry for entry in included
                if isinstance(entry, dict) and entry.get("type") == USER_RESOURCE_TYPE
            ),
            None,
        )
        if included_user is not None:
            user = included_user

    if not isinstance(access_token, str) or not access_token.strip():
        raise PlankaProtocolError("No access token returned from Planka")

    return PlankaAuthResult(access_token=access_token, user=_profile_from(user))


async def authenticate(base_url: str, email_or_username: str, password: str) -> PlankaAuthResult:
    """
    Authenticate against Planka with email/username and password.

    Steps:
        1. POST /api/access-tokens with the credentials
        2. Normalize the response shape
        3. For token-only responses, GET /api/users/me with the new token
           (a failure here fails the whole authentication)

    Raises:
        AuthenticationError: Planka rejected the credentials
        PlankaTimeoutError: Planka did not answer in time
        PlankaAPIError: Any other HTTP or transport failure
        PlankaProtocolError: The response could not be normalized
    """
    timeout = settings.planka_request_timeout_seconds
    url = build_url(base_url, PLANKA_API_ACCESS_TOKENS)

    client = await get_http_client()
    log_planka_call("POST", PLANKA_API_ACCESS_TOKENS, "issued")
    try:
        response = await client.post(
            url,
            json={"emailOrUsername": email_or_username, "password": password},
            headers={"Content-Type": "application/json", "Accept": "application/json"},
            timeout=timeout,
        )
    except httpx.TimeoutException as e:
        log_planka_call("POST", PLANKA_API_ACCESS_TOKENS, "failed", reason="timeout")
        raise PlankaTimeoutError(timeout) from e
    except httpx.RequestError as e:
        log_planka_call("POST", PLANKA_API_ACCESS_TOKENS, "failed", reason=type(e).__name__)
        raise PlankaAPIError("unknown", str(e)) from e

    if response.status_code in CREDENTIAL_REJECTION_STATUSES:
        log_planka_call("POST", PLANKA_API_ACCESS_TOKENS, "failed", status=response.status_code)
        raise AuthenticationError("Invalid Planka credentials")

    if response.is_error:
        log_planka_call("POST", PLANKA_API_ACCESS_TOKENS, "failed", status=response.status_code)
        raise PlankaAPIError(response.status_code, _error_body(response))

    normalized = normalize_auth_payload(_parse_json(response, PLANKA_API_ACCESS_TOKENS))

    if isinstance(normalized, BareToken):
        profile = await get_current_user(base_url, normalized.access_token)
        result = PlankaAuthResult(access_token=normalized.access_token, user=profile)
    else:
        result = normalized

    log_planka_call(
        "POST",
        PLANKA_API_ACCESS_TOKENS,
        "completed",
        planka_user=result.user.email or result.user.username,
    )
    return result


async def get_current_user(base_url: str, access_token: str) -> PlankaProfile:
    """Fetch the profile of the token's owner (GET /api/users/me)."""
    payload = await planka_fetch(base_url, access_token, PLANKA_API_CURRENT_USER)
    if isinstance(payload, dict) and isinstance(payload.get("item"), dict):
        payload = payload["item"]
    return _profile_from(payload)


async def revoke_access_token(base_url: str, access_token: str) -> None:
    """Invalidate the access token on the Planka side (DELETE /api/access-tokens/me)."""
    await planka_fetch(base_url, access_token, PLANKA_API_CURRENT_ACCESS_TOKEN, method="DELETE")


async def test_connection(base_url: str) -> bool:
    """
    Probe Planka reachability with an unauthenticated GET /api/config.

    Never raises; returns True only for an HTTP 200.
    """
    client = await get_http_client()
    try:
        response = await client.get(
            build_url(base_url, PLANKA_API_CONFIG),
            headers={"Accept": "application/json"},
            timeout=settings.planka_probe_timeout_seconds,
        )
    except (httpx.HTTPError, httpx.InvalidURL) as e:
        log_planka_call("GET", PLANKA_API_CONFIG, "failed", reason=type(e).__name__)
        return False

    reachable = response.status_code == 200
    log_planka_call(
        "GET",
        PLANKA_API_CONFIG,
        "completed" if reachable else "failed",
        status=response.status_code,
    )
    return reachable
