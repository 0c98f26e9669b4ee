"""Route handlers for defects, zone responses and manager analyses."""
from __future__ import annotations

from io import BytesIO
from typing import Any

from flask import Response, jsonify, request, send_file
from pydantic import BaseModel
from pydantic import ValidationError as SchemaError

from ..errors import DefectError, ValidationError
from ..models import Zone
from ..routes.auth import get_current_principal
from . import defects_bp, lifecycle, service
from .schemas import DEFECT_CATEGORIES, AnalysisFields, DefectCreate, ZoneResponseIn

XLSX_MIMETYPE = "application/vnd.openxmlformats-officedocument.spreadsheetml.sheet"


@defects_bp.errorhandler(DefectError)
def handle_defect_error(exc: DefectError) -> Response:
    """Render workflow failures as JSON with the error's status code."""

    return jsonify(exc.to_dict()), exc.status_code


def _authentication_required() -> Response:
    return jsonify({"error": "Authentication required"}), 401


def _parse(schema: type[BaseModel], data: dict[str, Any]) -> Any:
    try:
        return schema.model_validate(data)
    except SchemaError as exc:
        errors = {
            ".".join(str(part) for part in error["loc"]) or "payload": error["msg"]
            for error in exc.errors()
        }
        raise ValidationError(errors) from exc


def _json_payload() -> dict[str, Any]:
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError({"payload": "Invalid payload"})
    return payload


def _defect_form_payload() -> dict[str, Any]:
    if request.is_json:
        return _json_payload()

    form = request.form
    zones: list[str] = []
    for value in form.getlist("targeted_zones"):
        zones.extend(part.strip() for part in value.split(",") if part.strip())
    data: dict[str, Any] = {
        key: form.get(key)
        for key in ("vehicle_frame_no", "model_name", "defect_category", "defect_notes")
        if key in form
    }
    data["targeted_zones"] = zones
    return data


@defects_bp.get("")
def list_defects() -> Response:
    """Return the defect list filtered by ``?status=`` with per-status counts."""

    if get_current_principal() is None:
        return _authentication_required()

    defects, counts = service.list_defects(request.args.get("status"))
    return jsonify(
        {
            "defects": [defect.model_dump(mode="json") for defect in defects],
            "counts": counts.model_dump(),
            "marker": service.change_marker(),
        }
    )


@defects_bp.post("")
def create_defect() -> Response:
    """Log a new defect from a JSON body or a multipart form with an image."""

    principal = get_current_principal()
    if principal is None:
        return _authentication_required()

    lifecycle.authorize_defect_creation(principal)
    payload = _parse(DefectCreate, _defect_form_payload())
    defect = service.create_defect(principal, payload, request.files.get("image"))

    return (
        jsonify({"message": "Defect logged", "defect": defect.model_dump(mode="json")}),
        201,
    )


@defects_bp.get("/changes")
def changes() -> Response:
    """Return a marker that differs whenever the defect list should be re-fetched."""

    if get_current_principal() is None:
        return _authentication_required()

    marker = service.change_marker()
    since = request.args.get("since")
    return jsonify({"marker": marker, "changed": since is None or since != marker})


@defects_bp.get("/zones")
def zones() -> Response:
    return jsonify(
        {
            "left": [zone.value for zone in Zone.left()],
            "right": [zone.value for zone in Zone.right()],
        }
    )


@defects_bp.get("/categories")
def categories() -> Response:
    return jsonify({"categories": list(DEFECT_CATEGORIES)})


@defects_bp.get("/export")
def export() -> Response:
    """Download every defect as an Excel workbook."""

    principal = get_current_principal()
    if principal is None:
        return _authentication_required()

    lifecycle.authorize_export(principal)
    content, filename, _count = service.export_defects()
    return send_file(
        BytesIO(content),
        mimetype=XLSX_MIMETYPE,
        as_attachment=True,
        download_name=filename,
    )


@defects_bp.get("/<defect_id>")
def view_defect(defect_id: str) -> Response:
    """Return a defect with its responses, analysis and image links."""

    principal = get_current_principal()
    if principal is None:
        return _authentication_required()

    detail = service.get_defect_detail(defect_id, principal)
    own_response = detail["own_response"]
    analysis = detail["manager_analysis"]
    return jsonify(
        {
            "defect": detail["defect"].model_dump(mode="json"),
            "zone_responses": [
                response.model_dump(mode="json") for response in detail["zone_responses"]
            ],
            "manager_analysis": analysis.model_dump(mode="json") if analysis else None,
            "image": detail["image"],
            "own_response": own_response.model_dump(mode="json") if own_response else None,
            "own_zone_targeted": detail["own_zone_targeted"],
            "can_decline_involvement": detail["can_decline_involvement"],
        }
    )


@defects_bp.post("/<defect_id>/zone-response")
def submit_zone_response(defect_id: str) -> Response:
    """Create or update the signed-in group leader's response for their zone."""

    principal = get_current_principal()
    if principal is None:
        return _authentication_required()

    payload = _json_payload()
    submission = _parse(ZoneResponseIn, payload)
    response = service.submit_zone_response(
        principal, defect_id, submission, payload.get("zone")
    )
    return jsonify(
        {"message": "Your zone response has been saved.", "zone_response": response.model_dump(mode="json")}
    )


@defects_bp.post("/<defect_id>/analysis")
def submit_analysis(defect_id: str) -> Response:
    """Save the 4M analysis and set the defect status (``OPEN`` or ``CLOSED``)."""

    principal = get_current_principal()
    if principal is None:
        return _authentication_required()

    lifecycle.authorize_manager(principal)
    payload = _json_payload()
    desired_status = payload.pop("status", None)
    submission = _parse(AnalysisFields, payload)
    analysis, defect = service.submit_manager_analysis(
        principal, defect_id, submission, desired_status
    )

    title = "Defect Closed" if defect.status.value == "CLOSED" else "Defect Updated"
    return jsonify(
        {
            "message": title,
            "manager_analysis": analysis.model_dump(mode="json"),
            "defect": defect.model_dump(mode="json"),
        }
    )
