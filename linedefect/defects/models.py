"""Database models for defects and their investigation records."""
from __future__ import annotations

import uuid
from datetime import datetime

from sqlalchemy import CheckConstraint, ForeignKey, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ..extensions import db
from ..models import DefectStatus, utcnow


def _uuid_str() -> str:
    return str(uuid.uuid4())


class Defect(db.Model):
    """Aggregate root logged by a final inspector."""

    __tablename__ = "defects"

    id: Mapped[str] = mapped_column(db.String(36), primary_key=True, default=_uuid_str)
    report_id: Mapped[str] = mapped_column(db.String(64), nullable=False, unique=True)
    vehicle_frame_no: Mapped[str] = mapped_column(db.String(120), nullable=False)
    model_name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    defect_category: Mapped[str] = mapped_column(db.String(120), nullable=False)
    defect_notes: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    image_url: Mapped[str | None] = mapped_column(db.String(512), nullable=True)
    targeted_zones: Mapped[list[str]] = mapped_column(db.JSON, nullable=False)
    status: Mapped[str] = mapped_column(
        db.String(16), nullable=False, default=DefectStatus.OPEN.value
    )
    created_by: Mapped[str | None] = mapped_column(db.String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(db.DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        db.DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    zone_responses: Mapped[list["ZoneResponse"]] = relationship(
        "ZoneResponse", cascade="all, delete-orphan", back_populates="defect"
    )
    analysis: Mapped["ManagerAnalysis | None"] = relationship(
        "ManagerAnalysis", cascade="all, delete-orphan", back_populates="defect", uselist=False
    )

    __table_args__ = (
        CheckConstraint("status in ('OPEN','CLOSED')", name="defect_status_valid"),
    )


class ZoneResponse(db.Model):
    """A group leader's finding for one zone of a defect."""

    __tablename__ = "zone_responses"

    id: Mapped[str] = mapped_column(db.String(36), primary_key=True, default=_uuid_str)
    defect_id: Mapped[str] = mapped_column(
        db.String(36), ForeignKey("defects.id", ondelete="CASCADE"), nullable=False
    )
    zone: Mapped[str] = mapped_column(db.String(2), nullable=False)
    involved: Mapped[bool] = mapped_column(db.Boolean, nullable=False, default=True)
    root_cause: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    action_taken: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    manpower_name: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    manpower_ein: Mapped[str | None] = mapped_column(db.String(64), nullable=True)
    created_by: Mapped[str | None] = mapped_column(db.String(36), nullable=True)
    created_at: Mapped[datetime] = mapped_column(db.DateTime, nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(
        db.DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    defect: Mapped[Defect] = relationship("Defect", back_populates="zone_responses")

    __table_args__ = (
        UniqueConstraint("defect_id", "zone", name="uq_zone_response_defect_zone"),
    )


class ManagerAnalysis(db.Model):
    """The single 4M analysis recorded by a manager for a defect."""

    __tablename__ = "manager_analysis"

    id: Mapped[str] = mapped_column(db.String(36), primary_key=True, default=_uuid_str)
    defect_id: Mapped[str] = mapped_column(
        db.String(36),
        ForeignKey("defects.id", ondelete="CASCADE"),
        nullable=False,
        unique=True,
    )
    machine: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    method: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    manpower: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    material: Mapped[str | None] = mapped_column(db.Text, nullable=True)
    manager_name: Mapped[str | None] = mapped_column(db.String(120), nullable=True)
    updated_at: Mapped[datetime] = mapped_column(
        db.DateTime, nullable=False, default=utcnow, onupdate=utcnow
    )

    defect: Mapped[Defect] = relationship("Defect", back_populates="analysis")
