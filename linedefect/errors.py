"""Exceptions raised by the defect workflow.

Each error carries the HTTP status the JSON routes answer with, so blueprints
can translate them in a single handler.
"""
from __future__ import annotations

from typing import Any

__all__ = [
    "DefectError",
    "PermissionDenied",
    "InvalidStateTransition",
    "NotFound",
    "RemoteFailure",
    "ValidationError",
]


class DefectError(Exception):
    """Base exception for defect workflow failures."""

    status_code = 400

    def to_dict(self) -> dict[str, Any]:
        return {"error": str(self)}


class PermissionDenied(DefectError):
    """Raised when the acting principal's role or zone does not allow an action."""

    status_code = 403


class InvalidStateTransition(DefectError):
    """Raised when a mutation would break a lifecycle rule."""

    status_code = 409


class NotFound(DefectError):
    """Raised when a referenced defect or response does not exist."""

    status_code = 404


class RemoteFailure(DefectError):
    """Raised when the backing store or storage service rejects a call."""

    status_code = 502


class ValidationError(DefectError):
    """Raised when incoming payload fails validation."""

    status_code = 422

    def __init__(self, errors: dict[str, Any]):
        super().__init__("Defect payload validation failed")
        self.errors = errors

    def to_dict(self) -> dict[str, Any]:
        return {"error": str(self), "errors": self.errors}
