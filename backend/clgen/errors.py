# backend/clgen/errors.py
from __future__ import annotations

from typing import Optional


class ClgenError(Exception):
    """Base for every failure the pipeline reports to its caller."""

    status_code: int = 500

    def __init__(self, message: str, *, stage: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage

    @property
    def category(self) -> str:
        return type(self).__name__

    def to_dict(self) -> dict:
        return {"success": False, "error": self.category, "message": self.message}


class ValidationError(ClgenError):
    status_code = 400


class InvalidFormat(ValidationError):
    pass


class TooLarge(ValidationError):
    status_code = 413


class NotFoundError(ClgenError):
    status_code = 404


class ExtractionDegraded(ClgenError):
    """Raised inside the extractors; the dispatcher logs it and returns ""."""


class GenerationUnavailable(ClgenError):
    status_code = 502


class RenderFailure(ClgenError):
    pass


class StoreFailure(ClgenError):
    pass
