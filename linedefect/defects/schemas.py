"""Pydantic schemas shared by the store, the lifecycle gate and the routes."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..models import DefectStatus, Zone

DEFECT_CATEGORIES: tuple[str, ...] = (
    "Paint Defect",
    "Scratch / Dent",
    "Missing Part",
    "Wrong Assembly",
    "Electrical Issue",
    "Fit & Finish",
    "Welding Defect",
    "Other",
)


def _blank_to_none(value: Any) -> Any:
    if isinstance(value, str):
        value = value.strip()
        return value or None
    return value


class DefectCreate(BaseModel):
    # Inspector form input
    model_config = ConfigDict(protected_namespaces=())

    vehicle_frame_no: str = Field(min_length=1)
    model_name: str = Field(min_length=1)
    defect_category: str = Field(min_length=1)
    defect_notes: Optional[str] = None
    targeted_zones: list[Zone]

    @field_validator("vehicle_frame_no", "model_name", "defect_category", mode="before")
    @classmethod
    def strip_text(cls, v):
        return v.strip() if isinstance(v, str) else v

    @field_validator("defect_notes", mode="before")
    @classmethod
    def blank_notes(cls, v):
        return _blank_to_none(v)

    @field_validator("targeted_zones")
    @classmethod
    def at_least_one_zone(cls, v: list[Zone]) -> list[Zone]:
        if not v:
            raise ValueError("Select at least one target zone")
        return list(dict.fromkeys(v))


class DefectOut(BaseModel):
    model_config = ConfigDict(from_attributes=True, protected_namespaces=())

    id: str
    report_id: str
    vehicle_frame_no: str
    model_name: str
    defect_category: str
    defect_notes: Optional[str] = None
    image_url: Optional[str] = None
    targeted_zones: list[Zone]
    status: DefectStatus = DefectStatus.OPEN
    created_by: Optional[str] = None
    created_at: datetime
    updated_at: Optional[datetime] = None


class ZoneFindings(BaseModel):
    root_cause: Optional[str] = None
    action_taken: Optional[str] = None
    manpower_name: Optional[str] = None
    manpower_ein: Optional[str] = None

    @field_validator("root_cause", "action_taken", "manpower_name", "manpower_ein", mode="before")
    @classmethod
    def blank_text(cls, v):
        return _blank_to_none(v)

    def findings(self) -> ZoneFindings:
        """Return only the finding fields of this record."""

        return ZoneFindings(
            root_cause=self.root_cause,
            action_taken=self.action_taken,
            manpower_name=self.manpower_name,
            manpower_ein=self.manpower_ein,
        )


class ZoneResponseIn(ZoneFindings):
    involved: bool = True


class ZoneResponseOut(ZoneFindings):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    defect_id: str
    zone: Zone
    involved: bool
    created_by: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None


class AnalysisFields(BaseModel):
    """The four 4M axes plus the signing manager."""

    machine: Optional[str] = None
    method: Optional[str] = None
    manpower: Optional[str] = None
    material: Optional[str] = None
    manager_name: Optional[str] = None

    @field_validator("machine", "method", "manpower", "material", "manager_name", mode="before")
    @classmethod
    def blank_text(cls, v):
        return _blank_to_none(v)

    def is_empty(self) -> bool:
        return not any((self.machine, self.method, self.manpower, self.material))

    def fields(self) -> AnalysisFields:
        return AnalysisFields(
            machine=self.machine,
            method=self.method,
            manpower=self.manpower,
            material=self.material,
            manager_name=self.manager_name,
        )


class ManagerAnalysisOut(AnalysisFields):
    model_config = ConfigDict(from_attributes=True)

    id: Optional[str] = None
    defect_id: str
    updated_at: Optional[datetime] = None


class StatusCounts(BaseModel):
    all: int
    open: int
    closed: int
