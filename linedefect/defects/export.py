"""Spreadsheet export of every defect with its zone findings and 4M analysis."""
from __future__ import annotations

from collections.abc import Callable, Iterable
from datetime import datetime, timezone
from io import BytesIO
from zoneinfo import ZoneInfo

from openpyxl import Workbook
from openpyxl.styles import Alignment, Font
from openpyxl.utils import get_column_letter

from .schemas import DefectOut, ManagerAnalysisOut, ZoneResponseOut

SHEET_TITLE = "Defects Report"

# Column name -> width in characters.
EXPORT_COLUMNS: tuple[tuple[str, int], ...] = (
    ("Visual Evidence URL", 40),
    ("Report ID", 25),
    ("Date", 12),
    ("Time", 10),
    ("Vehicle Frame No", 20),
    ("Model", 20),
    ("Defect Category", 18),
    ("Defect Details", 40),
    ("Targeted Zones", 25),
    ("Zone Analysis & Findings", 60),
    ("Machine", 30),
    ("Method", 30),
    ("Manpower", 30),
    ("Material", 30),
    ("Manager Name", 20),
    ("Status", 10),
)

NO_IMAGE = "No Image"
NO_RESPONSES = "No responses yet"


def format_zone_findings(response: ZoneResponseOut) -> str:
    """Return the single-line summary of one zone response."""

    if not response.involved:
        return f"{response.zone.value}: Not Involved"

    parts = [f"{response.zone.value}: Involved"]
    if response.root_cause:
        parts.append(f"Root Cause: {response.root_cause}")
    if response.action_taken:
        parts.append(f"Action: {response.action_taken}")
    if response.manpower_name:
        parts.append(f"Manpower: {response.manpower_name} ({response.manpower_ein or 'N/A'})")
    return " | ".join(parts)


def _localize(moment: datetime, tz_name: str) -> datetime:
    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(ZoneInfo(tz_name))


def build_export_rows(
    defects: Iterable[DefectOut],
    responses: Iterable[ZoneResponseOut],
    analyses: Iterable[ManagerAnalysisOut],
    image_url_for: Callable[[str | None], str | None],
    *,
    tz_name: str = "UTC",
) -> list[dict[str, str]]:
    """Flatten every defect into one row keyed by the export column names."""

    responses_by_defect: dict[str, list[ZoneResponseOut]] = {}
    for response in responses:
        responses_by_defect.setdefault(response.defect_id, []).append(response)

    analysis_by_defect = {analysis.defect_id: analysis for analysis in analyses}

    rows: list[dict[str, str]] = []
    for defect in defects:
        created = _localize(defect.created_at, tz_name)
        analysis = analysis_by_defect.get(defect.id)
        zone_findings = "\n".join(
            format_zone_findings(response)
            for response in responses_by_defect.get(defect.id, [])
        )

        rows.append(
            {
                "Visual Evidence URL": image_url_for(defect.image_url) or NO_IMAGE,
                "Report ID": defect.report_id,
                "Date": created.strftime("%Y-%m-%d"),
                "Time": created.strftime("%H:%M:%S"),
                "Vehicle Frame No": defect.vehicle_frame_no,
                "Model": defect.model_name,
                "Defect Category": defect.defect_category,
                "Defect Details": defect.defect_notes or "",
                "Targeted Zones": ", ".join(zone.value for zone in defect.targeted_zones),
                "Zone Analysis & Findings": zone_findings or NO_RESPONSES,
                "Machine": (analysis.machine if analysis else None) or "",
                "Method": (analysis.method if analysis else None) or "",
                "Manpower": (analysis.manpower if analysis else None) or "",
                "Material": (analysis.material if analysis else None) or "",
                "Manager Name": (analysis.manager_name if analysis else None) or "",
                "Status": defect.status.value,
            }
        )
    return rows


def render_workbook(rows: Iterable[dict[str, str]]) -> bytes:
    """Return an ``.xlsx`` document with one sheet holding ``rows``."""

    workbook = Workbook()
    sheet = workbook.active
    sheet.title = SHEET_TITLE

    headers = [name for name, _ in EXPORT_COLUMNS]
    sheet.append(headers)
    for cell in sheet[1]:
        cell.font = Font(bold=True)

    for row in rows:
        sheet.append([row.get(name, "") for name in headers])

    wrap = Alignment(wrap_text=True, vertical="top")
    for index, (_, width) in enumerate(EXPORT_COLUMNS, start=1):
        letter = get_column_letter(index)
        sheet.column_dimensions[letter].width = width
        for cell in sheet[letter][1:]:
            cell.alignment = wrap

    sheet.freeze_panes = "A2"

    buffer = BytesIO()
    workbook.save(buffer)
    return buffer.getvalue()


def export_filename(now: datetime | None = None, tz_name: str = "UTC") -> str:
    """Return ``Defects_Report_<yyyy-MM-dd_HHmm>.xlsx`` for ``now`` in ``tz_name``.

    Naive values are read as UTC, matching the row timestamps.
    """

    now = _localize(now or datetime.now(timezone.utc), tz_name)
    return f"Defects_Report_{now:%Y-%m-%d_%H%M}.xlsx"
