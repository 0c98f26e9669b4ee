"""Accounts, roles and production-line zones."""
from __future__ import annotations

import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import assert_never

from sqlalchemy.orm import Mapped, mapped_column
from werkzeug.security import check_password_hash, generate_password_hash

from .extensions import db


def utcnow() -> datetime:
    """Return the current UTC time as a naive datetime for storage."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


class Zone(str, Enum):
    """Fixed segments of the production line."""

    L1 = "L1"
    L2 = "L2"
    L3 = "L3"
    L4 = "L4"
    R0 = "R0"
    R1 = "R1"
    R2 = "R2"
    R3 = "R3"
    R4 = "R4"

    @property
    def side(self) -> str:
        return "left" if self.value.startswith("L") else "right"

    @classmethod
    def left(cls) -> list[Zone]:
        return [zone for zone in cls if zone.side == "left"]

    @classmethod
    def right(cls) -> list[Zone]:
        return [zone for zone in cls if zone.side == "right"]


class Role(str, Enum):
    """Enumeration of user roles within the platform."""

    FINAL_INSPECTOR = "final_inspector"
    GROUP_LEADER = "group_leader"
    MANAGER = "manager"

    @property
    def label(self) -> str:
        """Return a human-readable label for the role."""

        match self:
            case Role.FINAL_INSPECTOR:
                return "Final Inspector"
            case Role.GROUP_LEADER:
                return "Group Leader"
            case Role.MANAGER:
                return "Manager"
            case _:
                assert_never(self)

    @property
    def requires_zone(self) -> bool:
        return self is Role.GROUP_LEADER


class DefectStatus(str, Enum):
    """Lifecycle states of a defect."""

    OPEN = "OPEN"
    CLOSED = "CLOSED"


@dataclass(frozen=True)
class Principal:
    """The authenticated actor passed into every lifecycle decision."""

    user_id: str
    role: Role
    zone: Zone | None = None
    name: str = ""


def validate_role_assignment(role: Role, zone: Zone | None) -> Zone | None:
    """Return the zone to store for ``role`` or raise :class:`ValueError`.

    Group leaders carry exactly one zone; every other role carries none.
    """

    if role.requires_zone:
        if zone is None:
            raise ValueError("Group leaders must be assigned a zone")
        return zone
    if zone is not None:
        raise ValueError(f"{role.label} accounts cannot be assigned a zone")
    return None


class User(db.Model):
    """An account together with its immutable role assignment."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(
        db.String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    email: Mapped[str] = mapped_column(db.String(255), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(db.String(120), nullable=False)
    password_hash: Mapped[str] = mapped_column(db.String(255), nullable=False)
    role: Mapped[str] = mapped_column(db.String(32), nullable=False)
    zone: Mapped[str | None] = mapped_column(db.String(2), nullable=True)
    created_at: Mapped[datetime] = mapped_column(db.DateTime, nullable=False, default=utcnow)

    def set_password(self, password: str) -> None:
        self.password_hash = generate_password_hash(password)

    def check_password(self, password: str) -> bool:
        return check_password_hash(self.password_hash, password)

    @property
    def role_enum(self) -> Role:
        """Return the role as an enum instance."""

        return Role(self.role)

    @property
    def zone_enum(self) -> Zone | None:
        return Zone(self.zone) if self.zone else None

    @property
    def principal(self) -> Principal:
        return Principal(
            user_id=self.id,
            role=self.role_enum,
            zone=self.zone_enum if self.role_enum.requires_zone else None,
            name=self.name,
        )

    def to_dict(self) -> dict[str, str | None]:
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "role": self.role,
            "role_label": self.role_enum.label,
            "zone": self.zone,
        }
