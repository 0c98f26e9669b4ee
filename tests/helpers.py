from __future__ import annotations

from datetime import datetime

from flask import Flask
from flask.testing import FlaskClient

from linedefect.defects.schemas import DefectCreate, DefectOut
from linedefect.models import DefectStatus, Principal, Role, Zone


INSPECTOR = Principal(user_id="inspector-1", role=Role.FINAL_INSPECTOR, name="Ivy Inspector")
MANAGER = Principal(user_id="manager-1", role=Role.MANAGER, name="Mina Manager")


def leader(zone: Zone) -> Principal:
    return Principal(
        user_id=f"leader-{zone.value.lower()}",
        role=Role.GROUP_LEADER,
        zone=zone,
        name=f"Leader {zone.value}",
    )


def make_defect(**overrides) -> DefectOut:
    values = {
        "id": "defect-1",
        "report_id": "DEF-1700000000000-ABCDEF",
        "vehicle_frame_no": "VIN12345678",
        "model_name": "Model X 2024",
        "defect_category": "Paint Defect",
        "defect_notes": "Orange peel on left door",
        "image_url": None,
        "targeted_zones": [Zone.L2, Zone.R1],
        "status": DefectStatus.OPEN,
        "created_by": INSPECTOR.user_id,
        "created_at": datetime(2024, 5, 1, 8, 30, 15),
    }
    values.update(overrides)
    return DefectOut(**values)


def defect_payload(**overrides) -> DefectCreate:
    values = {
        "vehicle_frame_no": "VIN12345678",
        "model_name": "Model X 2024",
        "defect_category": "Paint Defect",
        "defect_notes": "Orange peel on left door",
        "targeted_zones": ["L2", "R1"],
    }
    values.update(overrides)
    return DefectCreate(**values)


def register(app: Flask, role: str, zone: str | None = None, name: str | None = None) -> FlaskClient:
    """Return a test client signed in as a freshly registered account."""

    client = app.test_client()
    label = f"{role}-{zone or 'none'}".lower()
    response = client.post(
        "/register",
        json={
            "name": name or label,
            "email": f"{label}@plant.example",
            "password": "secret",
            "role": role,
            "zone": zone,
        },
    )
    assert response.status_code == 201, response.get_json()
    return client
