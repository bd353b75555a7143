"""
Error types shared by the search pipeline and the HTTP layer.

Each error knows the HTTP status it maps to and how to render itself as a JSON body,
so the Flask error handler in app.py stays a one-liner.
"""

import math
from typing import Any, Dict, Optional


class SecondBrainError(Exception):
    """Base class for every error raised on purpose by this backend."""
    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message}


class ValidationError(SecondBrainError):
    """Bad input (query too short, unknown field or model). Nothing was sent upstream."""
    status_code = 400


class AuthenticationError(SecondBrainError):
    status_code = 401


class RateLimited(SecondBrainError):
    """The upstream model answered HTTP 429."""
    status_code = 429


class UpstreamError(SecondBrainError):
    """
    Any other upstream failure: non-2xx status, transport error or a body without choices.
    """
    status_code = 502

    def __init__(self, message: str, upstream_status: Optional[int] = None):
        super().__init__(message)
        self.upstream_status = upstream_status


class PersistenceError(SecondBrainError):
    status_code = 500


class QuotaExceeded(SecondBrainError):
    status_code = 429

    def __init__(self, limit: int):
        super().__init__(
            f"Daily request limit reached. You have used all {limit} requests for today, try again tomorrow."
        )
        self.limit = limit

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "limit": self.limit}


class CooldownActive(SecondBrainError):
    status_code = 429

    def __init__(self, remaining_seconds: float):
        remaining = max(0, math.ceil(remaining_seconds))
        super().__init__(
            f"Please wait {remaining // 60}:{remaining % 60:02d} before making a new request."
        )
        self.remaining_seconds = remaining

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "remaining_seconds": self.remaining_seconds}
