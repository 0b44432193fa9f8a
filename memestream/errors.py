"""
Error kinds raised by the service layer and its adapters.

Each error carries the HTTP status it maps to; the app renders them all with
the same ``{"success": false, "message": ...}`` envelope.
"""

from __future__ import annotations

from typing import Optional


class MemeStreamError(Exception):
    status_code = 500

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail


class ValidationError(MemeStreamError):
    status_code = 400


class InvalidQuery(MemeStreamError):
    status_code = 400


class NotFound(MemeStreamError):
    status_code = 404


class Forbidden(MemeStreamError):
    status_code = 403


class MediaUploadError(MemeStreamError):
    pass


class MediaDeleteError(MemeStreamError):
    pass


class CaptionGenerationError(MemeStreamError):
    pass


class InvalidCredentialError(CaptionGenerationError):
    pass


class QuotaExceededError(CaptionGenerationError):
    pass
