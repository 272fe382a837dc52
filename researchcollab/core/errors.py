# researchcollab/core/errors.py
"""
Typed domain errors for the research collaboration service.

Each error maps to a specific HTTP status code.  The transport layer
catches ``CollabError`` subtypes and converts them to JSON error
responses without embedding business logic in the route handlers.

``DispatchError`` is the exception: it is raised by notification
channels and always absorbed by the notification dispatcher.
"""
from __future__ import annotations


class CollabError(Exception):
    """Base class for all domain errors."""

    status_code: int = 500

    def __init__(self, detail: str = "Internal error"):
        self.detail = detail
        super().__init__(detail)


class ValidationError(CollabError):
    """Missing or malformed input (400)."""

    status_code = 400


class AuthenticationError(CollabError):
    """No valid session (401)."""

    status_code = 401


class PermissionDeniedError(CollabError):
    """Caller is not allowed to act on the resource (403)."""

    status_code = 403


class NotFoundError(CollabError):
    """Resource absent or not in the required state (404)."""

    status_code = 404


class ConflictError(CollabError):
    """Duplicate application or stale state transition (409)."""

    status_code = 409


class ConfigurationError(CollabError):
    """Required external configuration is absent (500, per request)."""

    status_code = 500


class DispatchError(CollabError):
    """Notification delivery failed. Never surfaced to API callers."""

    status_code = 502

    def __init__(self, channel: str, detail: str):
        self.channel = channel
        super().__init__(f"{channel}: {detail}")
