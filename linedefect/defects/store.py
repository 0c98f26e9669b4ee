"""Persistence backends for defects, zone responses and manager analyses."""
from __future__ import annotations

from typing import Any, Protocol

from flask import current_app
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError

from ..errors import NotFound, RemoteFailure
from ..extensions import db
from ..services.supabase import SupabaseError, insert_row, select_one, select_rows, update_rows
from . import models as m
from .schemas import DefectOut, ManagerAnalysisOut, ZoneResponseOut

__all__ = ["DefectStore", "SqlDefectStore", "SupabaseDefectStore", "get_store"]

DEFECTS_TABLE = "defects"
ZONE_RESPONSES_TABLE = "zone_responses"
ANALYSIS_TABLE = "manager_analysis"

_FINDING_FIELDS = ("root_cause", "action_taken", "manpower_name", "manpower_ein")
_ANALYSIS_FIELDS = ("machine", "method", "manpower", "material", "manager_name")


class DefectStore(Protocol):
    def list_defects(self) -> list[DefectOut]: ...

    def get_defect(self, defect_id: str) -> DefectOut | None: ...

    def insert_defect(self, values: dict[str, Any]) -> DefectOut: ...

    def list_zone_responses(self, defect_id: str | None = None) -> list[ZoneResponseOut]: ...

    def save_zone_response(self, response: ZoneResponseOut) -> ZoneResponseOut: ...

    def get_manager_analysis(self, defect_id: str) -> ManagerAnalysisOut | None: ...

    def list_manager_analyses(self) -> list[ManagerAnalysisOut]: ...

    def save_manager_analysis(
        self, analysis: ManagerAnalysisOut, defect: DefectOut
    ) -> tuple[ManagerAnalysisOut, DefectOut]: ...

    def change_marker(self) -> str: ...


class SqlDefectStore:
    """Store backed by the application's SQLAlchemy database."""

    def list_defects(self) -> list[DefectOut]:
        stmt = select(m.Defect).order_by(m.Defect.created_at.desc(), m.Defect.report_id.desc())
        return [DefectOut.model_validate(row) for row in db.session.execute(stmt).scalars()]

    def get_defect(self, defect_id: str) -> DefectOut | None:
        row = db.session.get(m.Defect, defect_id)
        return DefectOut.model_validate(row) if row else None

    def insert_defect(self, values: dict[str, Any]) -> DefectOut:
        row = m.Defect(**values)
        db.session.add(row)
        self._commit("insert defect")
        return DefectOut.model_validate(row)

    def list_zone_responses(self, defect_id: str | None = None) -> list[ZoneResponseOut]:
        stmt = select(m.ZoneResponse).order_by(m.ZoneResponse.zone)
        if defect_id is not None:
            stmt = stmt.where(m.ZoneResponse.defect_id == defect_id)
        return [ZoneResponseOut.model_validate(row) for row in db.session.execute(stmt).scalars()]

    def save_zone_response(self, response: ZoneResponseOut) -> ZoneResponseOut:
        if response.id is None:
            row = m.ZoneResponse(
                defect_id=response.defect_id,
                zone=response.zone.value,
                created_by=response.created_by,
            )
            db.session.add(row)
        else:
            row = db.session.get(m.ZoneResponse, response.id)
            if row is None:
                raise NotFound(f"Zone response {response.id} no longer exists")

        row.involved = response.involved
        for field in _FINDING_FIELDS:
            setattr(row, field, getattr(response, field))

        self._commit("save zone response")
        return ZoneResponseOut.model_validate(row)

    def get_manager_analysis(self, defect_id: str) -> ManagerAnalysisOut | None:
        stmt = select(m.ManagerAnalysis).where(m.ManagerAnalysis.defect_id == defect_id)
        row = db.session.execute(stmt).scalar_one_or_none()
        return ManagerAnalysisOut.model_validate(row) if row else None

    def list_manager_analyses(self) -> list[ManagerAnalysisOut]:
        rows = db.session.execute(select(m.ManagerAnalysis)).scalars()
        return [ManagerAnalysisOut.model_validate(row) for row in rows]

    def save_manager_analysis(
        self, analysis: ManagerAnalysisOut, defect: DefectOut
    ) -> tuple[ManagerAnalysisOut, DefectOut]:
        defect_row = db.session.get(m.Defect, defect.id)
        if defect_row is None:
            raise NotFound(f"Defect {defect.id} no longer exists")

        if analysis.id is None:
            row = m.ManagerAnalysis(defect_id=defect.id)
            db.session.add(row)
        else:
            row = db.session.get(m.ManagerAnalysis, analysis.id)
            if row is None:
                raise NotFound(f"Manager analysis {analysis.id} no longer exists")

        for field in _ANALYSIS_FIELDS:
            setattr(row, field, getattr(analysis, field))
        defect_row.status = defect.status.value

        # One commit covers both rows.
        self._commit("save manager analysis")
        return ManagerAnalysisOut.model_validate(row), DefectOut.model_validate(defect_row)

    def change_marker(self) -> str:
        count, latest = db.session.execute(
            select(func.count(m.Defect.id), func.max(m.Defect.updated_at))
        ).one()
        return f"{count}:{latest.isoformat() if latest else ''}"

    def _commit(self, action: str) -> None:
        try:
            db.session.commit()
        except SQLAlchemyError as exc:
            db.session.rollback()
            current_app.logger.error("Database failure during %s: %s", action, exc)
            raise RemoteFailure(f"Could not {action}") from exc


class SupabaseDefectStore:
    """Store backed by Supabase PostgREST tables.

    Each write is a separate request. The analysis upsert and the defect status
    update are not atomic across tables; a failure between them leaves the
    analysis saved with the previous status.
    """

    def list_defects(self) -> list[DefectOut]:
        rows = self._call(select_rows, DEFECTS_TABLE, order="created_at.desc")
        return [DefectOut.model_validate(row) for row in rows]

    def get_defect(self, defect_id: str) -> DefectOut | None:
        row = self._call(select_one, DEFECTS_TABLE, {"id": defect_id})
        return DefectOut.model_validate(row) if row else None

    def insert_defect(self, values: dict[str, Any]) -> DefectOut:
        row = self._call(insert_row, DEFECTS_TABLE, values)
        return DefectOut.model_validate(row)

    def list_zone_responses(self, defect_id: str | None = None) -> list[ZoneResponseOut]:
        filters = {"defect_id": defect_id} if defect_id is not None else None
        rows = self._call(select_rows, ZONE_RESPONSES_TABLE, filters)
        return [ZoneResponseOut.model_validate(row) for row in rows]

    def save_zone_response(self, response: ZoneResponseOut) -> ZoneResponseOut:
        values: dict[str, Any] = {"involved": response.involved}
        values.update({field: getattr(response, field) for field in _FINDING_FIELDS})

        if response.id is None:
            values.update(
                defect_id=response.defect_id,
                zone=response.zone.value,
                created_by=response.created_by,
            )
            row = self._call(insert_row, ZONE_RESPONSES_TABLE, values)
        else:
            rows = self._call(update_rows, ZONE_RESPONSES_TABLE, {"id": response.id}, values)
            if not rows:
                raise NotFound(f"Zone response {response.id} no longer exists")
            row = rows[0]
        return ZoneResponseOut.model_validate(row)

    def get_manager_analysis(self, defect_id: str) -> ManagerAnalysisOut | None:
        row = self._call(select_one, ANALYSIS_TABLE, {"defect_id": defect_id})
        return ManagerAnalysisOut.model_validate(row) if row else None

    def list_manager_analyses(self) -> list[ManagerAnalysisOut]:
        rows = self._call(select_rows, ANALYSIS_TABLE)
        return [ManagerAnalysisOut.model_validate(row) for row in rows]

    def save_manager_analysis(
        self, analysis: ManagerAnalysisOut, defect: DefectOut
    ) -> tuple[ManagerAnalysisOut, DefectOut]:
        values = {field: getattr(analysis, field) for field in _ANALYSIS_FIELDS}

        if analysis.id is None:
            row = self._call(insert_row, ANALYSIS_TABLE, {"defect_id": defect.id, **values})
        else:
            rows = self._call(update_rows, ANALYSIS_TABLE, {"id": analysis.id}, values)
            if not rows:
                raise NotFound(f"Manager analysis {analysis.id} no longer exists")
            row = rows[0]

        defect_rows = self._call(
            update_rows, DEFECTS_TABLE, {"id": defect.id}, {"status": defect.status.value}
        )
        if not defect_rows:
            raise NotFound(f"Defect {defect.id} no longer exists")

        return (
            ManagerAnalysisOut.model_validate(row),
            DefectOut.model_validate(defect_rows[0]),
        )

    def change_marker(self) -> str:
        rows = self._call(
            select_rows,
            DEFECTS_TABLE,
            columns="id,updated_at",
            order="updated_at.desc",
            limit=1,
        )
        if not rows:
            return ""
        return f"{rows[0].get('id')}:{rows[0].get('updated_at')}"

    @staticmethod
    def _call(func_: Any, *args: Any, **kwargs: Any) -> Any:
        try:
            return func_(*args, **kwargs)
        except SupabaseError as exc:
            current_app.logger.error("Supabase call %s failed: %s", func_.__name__, exc)
            raise RemoteFailure(str(exc)) from exc


_BACKENDS: dict[str, type] = {
    "sql": SqlDefectStore,
    "supabase": SupabaseDefectStore,
}


def get_store() -> DefectStore:
    """Return the store configured by ``DEFECT_BACKEND`` for the current app."""

    store = current_app.extensions.get("defect_store")
    if store is None:
        backend = str(current_app.config.get("DEFECT_BACKEND", "sql")).lower()
        try:
            store = _BACKENDS[backend]()
        except KeyError as exc:
            raise RuntimeError(f"Unknown DEFECT_BACKEND: {backend!r}") from exc
        current_app.extensions["defect_store"] = store
    return store
