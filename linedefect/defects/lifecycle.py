"""Role-gated lifecycle rules for defect records.

Every function here is pure: the caller passes the acting :class:`Principal`
and the records it has already loaded, and receives either a record ready to
persist or a :class:`~linedefect.errors.DefectError`. Nothing is read from the
Flask session or written to the store, so the rules apply identically to every
backend and can be exercised without an application context.

``Defect.status`` starts at ``OPEN`` and only moves through
:func:`submit_manager_analysis`. Both ``OPEN -> CLOSED`` and ``CLOSED -> OPEN``
are allowed; there is no automatic transition when zones respond.
"""
from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from ..errors import InvalidStateTransition, PermissionDenied
from ..models import DefectStatus, Principal, Role, Zone
from .schemas import (
    AnalysisFields,
    DefectCreate,
    DefectOut,
    ManagerAnalysisOut,
    ZoneFindings,
    ZoneResponseOut,
)

__all__ = [
    "is_targeted_zone",
    "can_decline_involvement",
    "authorize_defect_creation",
    "new_defect_record",
    "authorize_zone_response",
    "find_zone_response",
    "submit_zone_response",
    "authorize_manager",
    "authorize_export",
    "coerce_status",
    "submit_manager_analysis",
]


def is_targeted_zone(defect: DefectOut, zone: Zone | str | None) -> bool:
    """Return whether ``zone`` was flagged by the inspector on ``defect``."""

    if zone is None:
        return False
    try:
        zone = Zone(zone)
    except ValueError:
        return False
    return zone in defect.targeted_zones


def can_decline_involvement(defect: DefectOut, zone: Zone | str | None) -> bool:
    """Return whether the "Not Involved" answer is available to ``zone``."""

    return not is_targeted_zone(defect, zone)


def authorize_defect_creation(principal: Principal) -> None:
    if principal.role is not Role.FINAL_INSPECTOR:
        raise PermissionDenied(f"{principal.role.label} accounts cannot log defects")


def new_defect_record(
    principal: Principal,
    payload: DefectCreate,
    report_id: str,
    image_path: str | None = None,
) -> dict[str, Any]:
    """Return the insert values for a new defect logged by ``principal``."""

    authorize_defect_creation(principal)
    return {
        "report_id": report_id,
        "vehicle_frame_no": payload.vehicle_frame_no,
        "model_name": payload.model_name,
        "defect_category": payload.defect_category,
        "defect_notes": payload.defect_notes,
        "image_url": image_path,
        "targeted_zones": [zone.value for zone in payload.targeted_zones],
        "status": DefectStatus.OPEN.value,
        "created_by": principal.user_id,
    }


def authorize_zone_response(principal: Principal, acting_zone: Zone | str | None) -> Zone:
    """Return ``acting_zone`` if ``principal`` leads it, else raise."""

    if principal.role is not Role.GROUP_LEADER:
        raise PermissionDenied(f"{principal.role.label} accounts cannot submit zone responses")
    if principal.zone is None:
        raise PermissionDenied("Group leader has no assigned zone")
    if acting_zone is None:
        return principal.zone
    try:
        zone = Zone(acting_zone)
    except ValueError as exc:
        raise PermissionDenied(f"Unknown zone: {acting_zone}") from exc
    if zone is not principal.zone:
        raise PermissionDenied(
            f"Group leader for {principal.zone.value} cannot respond for zone {zone.value}"
        )
    return zone


def find_zone_response(
    responses: Iterable[ZoneResponseOut], defect_id: str, zone: Zone
) -> ZoneResponseOut | None:
    for response in responses:
        if response.defect_id == defect_id and response.zone is zone:
            return response
    return None


def submit_zone_response(
    principal: Principal,
    defect: DefectOut,
    existing_responses: Iterable[ZoneResponseOut],
    acting_zone: Zone | str | None,
    involved: bool,
    details: ZoneFindings | None = None,
) -> ZoneResponseOut:
    """Return the zone response to upsert for ``acting_zone`` on ``defect``.

    The result keeps the ``id`` of an existing response for the same
    ``(defect, zone)`` pair so the store updates it in place; a new response has
    ``id=None``. Declining involvement clears the findings.
    """

    zone = authorize_zone_response(principal, acting_zone)

    if not involved and is_targeted_zone(defect, zone):
        raise InvalidStateTransition(
            f"Zone {zone.value} is targeted by {defect.report_id}; "
            "targeted zone cannot decline involvement"
        )

    findings = details.findings() if involved and details is not None else ZoneFindings()
    existing = find_zone_response(existing_responses, defect.id, zone)

    return ZoneResponseOut(
        id=existing.id if existing else None,
        defect_id=defect.id,
        zone=zone,
        involved=involved,
        created_by=existing.created_by if existing else principal.user_id,
        created_at=existing.created_at if existing else None,
        **findings.model_dump(),
    )


def authorize_manager(principal: Principal) -> None:
    if principal.role is not Role.MANAGER:
        raise PermissionDenied(
            f"{principal.role.label} accounts cannot record analyses or change status"
        )


def authorize_export(principal: Principal) -> None:
    if principal.role is not Role.MANAGER:
        raise PermissionDenied(f"{principal.role.label} accounts cannot export the defect report")


def coerce_status(value: DefectStatus | str) -> DefectStatus:
    try:
        return DefectStatus(value)
    except ValueError as exc:
        raise InvalidStateTransition(f"Unknown defect status: {value!r}") from exc


def submit_manager_analysis(
    principal: Principal,
    defect: DefectOut,
    existing_analysis: ManagerAnalysisOut | None,
    values: AnalysisFields,
    desired_status: DefectStatus | str,
) -> tuple[ManagerAnalysisOut, DefectOut]:
    """Return the analysis to upsert and the defect with its new status.

    Closing does not require any of the 4M fields to be filled in.
    """

    authorize_manager(principal)
    status = coerce_status(desired_status)

    if existing_analysis is not None and existing_analysis.defect_id != defect.id:
        raise InvalidStateTransition("Analysis belongs to a different defect")

    analysis = ManagerAnalysisOut(
        id=existing_analysis.id if existing_analysis else None,
        defect_id=defect.id,
        **values.fields().model_dump(),
    )
    return analysis, defect.model_copy(update={"status": status})
