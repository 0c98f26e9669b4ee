"""Defect tracking blueprint setup."""
from __future__ import annotations

from flask import Blueprint


defects_bp = Blueprint("defects", __name__)


from . import routes  # noqa: E402  # pylint: disable=wrong-import-position

__all__ = ["defects_bp"]
