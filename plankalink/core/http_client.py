"""
Shared HTTP client for outbound Planka calls.

Provides a singleton httpx.AsyncClient for connection pooling. Timeouts are
applied per request by the callers.
"""
import asyncio
from typing import Optional

import httpx

from plankalink.core.config import settings
from plankalink.core.logging_config import log_info

_client: Optional[httpx.AsyncClient] = None
_client_lock: Optional[asyncio.Lock] = None


def _get_lock() -> asyncio.Lock:
    """Get or create the client lock."""
    global _client_lock
    if _client_lock is None:
        _client_lock = asyncio.Lock()
    return _client_lock


async def get_http_client() -> httpx.AsyncClient:
    """
    Get the shared AsyncClient instance.

    Creates a new instance if one doesn't exist or is closed. Cleanup is handled
    by the app's shutdown event.
    """
    global _client
    if _client is None or _client.is_closed:
        async with _get_lock():
            if _client is None or _client.is_closed:
                _client = httpx.AsyncClient(
                    timeout=settings.planka_request_timeout_seconds,
                    headers={"Accept": "application/json"},
                )
                log_info("HTTP client created", timeout=settings.planka_request_timeout_seconds)
    return _client


async def close_http_client():
    """Close the shared client if it exists."""
    global _client
    async with _get_lock():
        if _client and not _client.is_closed:
            await _client.aclose()
            _client = None
            log_info("HTTP client closed")
