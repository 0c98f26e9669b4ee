"""Business logic helpers for the defect workflow."""
from __future__ import annotations

import mimetypes
import time
import uuid
from datetime import datetime
from pathlib import PurePath
from typing import Any

from flask import current_app
from werkzeug.datastructures import FileStorage

from ..errors import NotFound, ValidationError
from ..models import DefectStatus, Principal, Zone
from ..services.supabase import (
    SupabaseConfigurationError,
    SupabaseError,
    create_signed_url,
    extract_object_path,
    public_object_url,
    upload_object,
)
from . import lifecycle
from .export import build_export_rows, export_filename, render_workbook
from .schemas import (
    AnalysisFields,
    DefectCreate,
    DefectOut,
    ManagerAnalysisOut,
    StatusCounts,
    ZoneResponseIn,
    ZoneResponseOut,
)
from .store import DefectStore, get_store


def generate_report_id(prefix: str | None = None) -> str:
    """Return a human-readable report code such as ``DEF-1718000000000-9F2C1A``."""

    if prefix is None:
        prefix = current_app.config.get("REPORT_ID_PREFIX", "DEF-")
    millis = time.time_ns() // 1_000_000
    return f"{prefix}{millis}-{uuid.uuid4().hex[:6].upper()}"


def _image_object_name(filename: str | None) -> str:
    suffix = PurePath(filename or "").suffix.lower()
    millis = time.time_ns() // 1_000_000
    return f"{millis}-{uuid.uuid4().hex[:8]}{suffix}"


def store_image(image: FileStorage | None) -> str | None:
    """Upload ``image`` and return its object path, ``None`` when skipped or failed."""

    if image is None or not image.filename:
        return None

    name = _image_object_name(image.filename)
    content_type = image.mimetype or mimetypes.guess_type(image.filename)[0] or ""
    try:
        return upload_object(name, image.read(), content_type)
    except SupabaseConfigurationError as exc:
        current_app.logger.warning("Skipping defect image upload: %s", exc)
    except SupabaseError as exc:
        current_app.logger.error("Defect image upload failed: %s", exc)
    return None


def image_urls(image_path: str | None, expires_in: int | None = None) -> dict[str, str | None]:
    """Return the public and signed URLs for a stored defect image."""

    if not image_path:
        return {"public_url": None, "signed_url": None}
    if expires_in is None:
        expires_in = current_app.config.get("SIGNED_URL_EXPIRY", 3600)
    return {
        "public_url": public_image_url(image_path),
        "signed_url": signed_image_url(image_path, expires_in),
    }


def public_image_url(image_path: str | None) -> str | None:
    path = extract_object_path(image_path, current_app.config.get("SUPABASE_STORAGE_BUCKET"))
    if not path:
        return None
    try:
        return public_object_url(path)
    except SupabaseConfigurationError:
        return None


def signed_image_url(image_path: str | None, expires_in: int | None = None) -> str | None:
    """Return a time-limited URL for ``image_path`` (24 hours unless specified)."""

    path = extract_object_path(image_path, current_app.config.get("SUPABASE_STORAGE_BUCKET"))
    if not path:
        return None
    if expires_in is None:
        expires_in = current_app.config.get("SIGNED_URL_LONG_EXPIRY", 86400)
    try:
        return create_signed_url(path, expires_in)
    except SupabaseConfigurationError:
        return None
    except SupabaseError as exc:
        current_app.logger.error("Error creating signed URL for %s: %s", path, exc)
        return None


def create_defect(
    principal: Principal,
    payload: DefectCreate,
    image: FileStorage | None = None,
    *,
    store: DefectStore | None = None,
) -> DefectOut:
    """Persist a new defect logged by ``principal``."""

    store = store or get_store()
    lifecycle.authorize_defect_creation(principal)

    image_path = store_image(image)
    values = lifecycle.new_defect_record(principal, payload, generate_report_id(), image_path)
    defect = store.insert_defect(values)

    current_app.logger.info(
        "Defect %s logged by %s targeting %s",
        defect.report_id,
        principal.user_id,
        ",".join(zone.value for zone in defect.targeted_zones),
    )
    return defect


def list_defects(
    status: DefectStatus | str | None = None, *, store: DefectStore | None = None
) -> tuple[list[DefectOut], StatusCounts]:
    """Return defects (newest first) filtered by ``status`` and the per-status counts."""

    store = store or get_store()
    defects = store.list_defects()
    counts = StatusCounts(
        all=len(defects),
        open=sum(1 for defect in defects if defect.status is DefectStatus.OPEN),
        closed=sum(1 for defect in defects if defect.status is DefectStatus.CLOSED),
    )
    if status not in (None, "", "all"):
        try:
            wanted = DefectStatus(status)
        except ValueError:
            raise ValidationError({"status": f"Unknown status filter: {status!r}"}) from None
        defects = [defect for defect in defects if defect.status is wanted]
    return defects, counts


def get_defect(defect_id: str, *, store: DefectStore | None = None) -> DefectOut:
    store = store or get_store()
    defect = store.get_defect(defect_id)
    if defect is None:
        raise NotFound(f"Defect {defect_id} was not found")
    return defect


def get_defect_detail(
    defect_id: str, principal: Principal, *, store: DefectStore | None = None
) -> dict[str, Any]:
    """Return everything the detail view shows for ``defect_id``."""

    store = store or get_store()
    defect = get_defect(defect_id, store=store)
    responses = store.list_zone_responses(defect.id)
    analysis = store.get_manager_analysis(defect.id)

    own_response = None
    if principal.zone is not None:
        own_response = lifecycle.find_zone_response(responses, defect.id, principal.zone)

    return {
        "defect": defect,
        "zone_responses": responses,
        "manager_analysis": analysis,
        "image": image_urls(defect.image_url),
        "own_response": own_response,
        "own_zone_targeted": lifecycle.is_targeted_zone(defect, principal.zone),
        "can_decline_involvement": lifecycle.can_decline_involvement(defect, principal.zone),
    }


def submit_zone_response(
    principal: Principal,
    defect_id: str,
    submission: ZoneResponseIn,
    acting_zone: Zone | str | None = None,
    *,
    store: DefectStore | None = None,
) -> ZoneResponseOut:
    """Create or update the response for the principal's zone on ``defect_id``."""

    store = store or get_store()
    lifecycle.authorize_zone_response(principal, acting_zone)
    defect = get_defect(defect_id, store=store)
    existing = store.list_zone_responses(defect.id)

    draft = lifecycle.submit_zone_response(
        principal,
        defect,
        existing,
        acting_zone,
        submission.involved,
        submission.findings(),
    )
    saved = store.save_zone_response(draft)

    current_app.logger.info(
        "Zone %s %s response on %s (involved=%s)",
        saved.zone.value,
        "updated" if draft.id else "created",
        defect.report_id,
        saved.involved,
    )
    return saved


def submit_manager_analysis(
    principal: Principal,
    defect_id: str,
    submission: AnalysisFields,
    desired_status: DefectStatus | str | None,
    *,
    store: DefectStore | None = None,
) -> tuple[ManagerAnalysisOut, DefectOut]:
    """Upsert the 4M analysis for ``defect_id`` and apply the requested status.

    ``desired_status`` must be given on every call; saving findings never
    changes the status implicitly.
    """

    store = store or get_store()
    lifecycle.authorize_manager(principal)
    if desired_status is None or desired_status == "":
        raise ValidationError({"status": "Choose OPEN or CLOSED"})
    defect = get_defect(defect_id, store=store)
    existing = store.get_manager_analysis(defect.id)

    draft, updated = lifecycle.submit_manager_analysis(
        principal, defect, existing, submission, desired_status
    )

    if updated.status is DefectStatus.CLOSED and draft.is_empty():
        current_app.logger.warning(
            "Defect %s closed by %s with no 4M findings", defect.report_id, principal.user_id
        )

    analysis, saved = store.save_manager_analysis(draft, updated)
    if saved.status is not defect.status:
        current_app.logger.info(
            "Defect %s moved %s -> %s", saved.report_id, defect.status.value, saved.status.value
        )
    return analysis, saved


def export_defects(
    now: datetime | None = None, *, store: DefectStore | None = None
) -> tuple[bytes, str, int]:
    """Return the workbook bytes, download filename and row count."""

    store = store or get_store()
    tz_name = current_app.config.get("EXPORT_TIMEZONE", "UTC")
    rows = build_export_rows(
        store.list_defects(),
        store.list_zone_responses(),
        store.list_manager_analyses(),
        public_image_url,
        tz_name=tz_name,
    )
    content = render_workbook(rows)
    filename = export_filename(now, tz_name)
    current_app.logger.info("Exported %s defects to %s", len(rows), filename)
    return content, filename, len(rows)


def change_marker(*, store: DefectStore | None = None) -> str:
    store = store or get_store()
    return store.change_marker()
