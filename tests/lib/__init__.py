"""Shared helpers for the plankalink test suites."""

from .planka import FakePlanka, PLANKA_BASE_URL

__all__ = [
    "FakePlanka",
    "PLANKA_BASE_URL",
]
