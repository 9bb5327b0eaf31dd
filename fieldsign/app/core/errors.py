"""
Error taxonomy for the field burn-in service.

Every failure the core can raise is a FieldSignError subclass carrying a
human-readable message and a context dict (field id, page, hashes) so a
caller can diagnose a failed burn without a stack trace.

The HTTP layer maps each class to a status code; the core never imports
anything HTTP-related.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class FieldSignError(Exception):
    """Base class for all domain failures."""

    status_code: int = 500

    def __init__(
        self,
        message: str,
        *,
        context: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.context: Dict[str, Any] = dict(context or {})

    def __str__(self) -> str:
        if not self.context:
            return self.message
        details = ", ".join(f"{k}={v}" for k, v in self.context.items())
        return f"{self.message} ({details})"


class ValidationError(FieldSignError):
    """Missing or malformed input, detected before any mutation."""

    status_code = 400


class NotFoundError(FieldSignError):
    """Referenced artifact is absent from storage."""

    status_code = 404


class DecodeError(FieldSignError):
    """Bytes are not a valid PDF document."""

    status_code = 422


class UnsupportedImageFormat(FieldSignError):
    """Image payload is neither PNG nor JPEG."""

    status_code = 400


class PageIndexOutOfRange(FieldSignError):
    """Page index outside the document while clamping is disabled."""

    status_code = 400


class InternalError(FieldSignError):
    """Unexpected failure in serialization or storage."""

    status_code = 500
