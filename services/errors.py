"""
Error taxonomy surfaced at the API boundary.

Every error carries the HTTP status it maps to and an optional ``extra``
dict merged into the JSON body next to ``error``.
"""

from typing import Any, Dict, Optional


class TheSetError(Exception):
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None, extra: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        self.extra = extra or {}

    def to_body(self) -> Dict[str, Any]:
        return {"error": self.message, **self.extra}


class ConfigurationError(TheSetError):
    """Missing API key or environment variable."""
    status_code = 500


class ValidationError(TheSetError):
    status_code = 400


class UnauthorizedError(TheSetError):
    status_code = 401

    def to_body(self) -> Dict[str, Any]:
        return {"success": False, "error": self.message, **self.extra}


class NotFoundError(TheSetError):
    status_code = 404


class ConflictError(TheSetError):
    # Duplicate votes are reported as 400, like the original vote route
    status_code = 400


class VoteLimitError(TheSetError):
    status_code = 403


class UpstreamError(TheSetError):
    """Third-party API answered with a non-2xx status."""
    status_code = 502


class SyncFailure(TheSetError):
    """The sync function reported failure or could not be reached."""
    status_code = 500
