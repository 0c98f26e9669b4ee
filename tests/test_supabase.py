from __future__ import annotations

import json
from typing import Any
from urllib.request import Request

import pytest
from flask import Flask

from linedefect.defects.schemas import ManagerAnalysisOut, ZoneResponseOut
from linedefect.defects.store import SupabaseDefectStore
from linedefect.errors import RemoteFailure
from linedefect.models import DefectStatus, Zone
from linedefect.services import supabase

from helpers import make_defect


class _FakeResponse:
    def __init__(self, payload: Any):
        self._body = b"" if payload is None else json.dumps(payload).encode("utf-8")

    def read(self) -> bytes:
        return self._body

    def __enter__(self) -> _FakeResponse:
        return self

    def __exit__(self, *exc_info: object) -> None:
        return None


class _FakeSupabase:
    """Records outgoing requests and answers them from a queue."""

    def __init__(self) -> None:
        self.requests: list[Request] = []
        self.responses: list[Any] = []

    def __call__(self, request: Request, timeout: int = 10) -> _FakeResponse:
        self.requests.append(request)
        return _FakeResponse(self.responses.pop(0) if self.responses else None)

    def body(self, index: int) -> dict[str, Any]:
        return json.loads(self.requests[index].data)


@pytest.fixture()
def remote(app: Flask, monkeypatch: pytest.MonkeyPatch) -> _FakeSupabase:
    app.config.update(SUPABASE_URL="https://proj.supabase.co/", SUPABASE_KEY="anon-key")
    fake = _FakeSupabase()
    monkeypatch.setattr(supabase, "urlopen", fake)
    return fake


def _row(**overrides: Any) -> dict[str, Any]:
    row = {
        "id": "zr-1",
        "defect_id": "defect-1",
        "zone": "L2",
        "involved": True,
        "root_cause": "clip",
        "action_taken": None,
        "manpower_name": None,
        "manpower_ein": None,
        "created_by": "leader-l2",
        "created_at": "2024-05-01T08:30:15+00:00",
        "updated_at": "2024-05-01T08:30:15+00:00",
    }
    row.update(overrides)
    return row


def test_missing_configuration_is_reported(app: Flask) -> None:
    with pytest.raises(supabase.SupabaseConfigurationError):
        supabase.select_rows("defects")


def test_select_builds_filtered_request(remote: _FakeSupabase) -> None:
    remote.responses.append([_row()])

    rows = supabase.select_rows("zone_responses", {"defect_id": "defect-1"}, order="zone.asc")

    request = remote.requests[0]
    assert rows[0]["zone"] == "L2"
    assert request.get_method() == "GET"
    assert request.full_url.startswith("https://proj.supabase.co/rest/v1/zone_responses?")
    assert "defect_id=eq.defect-1" in request.full_url
    assert "order=zone.asc" in request.full_url
    assert request.get_header("Apikey") == "anon-key"


def test_select_one_rejects_multiple_rows(remote: _FakeSupabase) -> None:
    remote.responses.append([_row(), _row(id="zr-2")])

    with pytest.raises(supabase.SupabaseRequestError):
        supabase.select_one("zone_responses", {"defect_id": "defect-1"})


def test_store_updates_existing_zone_response_in_place(remote: _FakeSupabase) -> None:
    remote.responses.append([_row(action_taken="replaced part")])
    draft = ZoneResponseOut(
        id="zr-1",
        defect_id="defect-1",
        zone=Zone.L2,
        involved=True,
        root_cause="clip",
        action_taken="replaced part",
    )

    saved = SupabaseDefectStore().save_zone_response(draft)

    request = remote.requests[0]
    assert request.get_method() == "PATCH"
    assert "id=eq.zr-1" in request.full_url
    assert remote.body(0)["action_taken"] == "replaced part"
    assert "zone" not in remote.body(0)
    assert saved.id == "zr-1"


def test_store_inserts_new_zone_response(remote: _FakeSupabase) -> None:
    remote.responses.append([_row(id="zr-new", zone="R0", involved=False, root_cause=None)])
    draft = ZoneResponseOut(defect_id="defect-1", zone=Zone.R0, involved=False, created_by="leader-r0")

    saved = SupabaseDefectStore().save_zone_response(draft)

    assert remote.requests[0].get_method() == "POST"
    assert remote.requests[0].get_header("Prefer") == "return=representation"
    assert remote.body(0)["zone"] == "R0"
    assert saved.id == "zr-new"


def test_store_saves_analysis_then_status(remote: _FakeSupabase) -> None:
    defect = make_defect(status=DefectStatus.CLOSED)
    remote.responses.append([{"id": "ma-1", "defect_id": "defect-1", "machine": None}])
    remote.responses.append(
        [defect.model_dump(mode="json") | {"status": "CLOSED"}]
    )

    analysis, saved = SupabaseDefectStore().save_manager_analysis(
        ManagerAnalysisOut(id="ma-1", defect_id="defect-1"), defect
    )

    assert [request.get_method() for request in remote.requests] == ["PATCH", "PATCH"]
    assert "/rest/v1/defects?" in remote.requests[1].full_url
    assert remote.body(1) == {"status": "CLOSED"}
    assert analysis.id == "ma-1"
    assert saved.status is DefectStatus.CLOSED


def test_store_wraps_failures(app: Flask) -> None:
    with pytest.raises(RemoteFailure):
        SupabaseDefectStore().list_defects()


def test_public_and_signed_urls(remote: _FakeSupabase) -> None:
    remote.responses.append({"signedURL": "/object/sign/defect-images/1700-ab.jpg?token=t"})

    public = supabase.public_object_url("1700-ab.jpg")
    signed = supabase.create_signed_url("1700-ab.jpg", 3600)

    assert public == "https://proj.supabase.co/storage/v1/object/public/defect-images/1700-ab.jpg"
    assert signed == "https://proj.supabase.co/storage/v1/object/sign/defect-images/1700-ab.jpg?token=t"
    assert remote.body(0) == {"expiresIn": 3600}


def test_extract_object_path() -> None:
    url = "https://proj.supabase.co/storage/v1/object/public/defect-images/nested/1700-ab.jpg"

    assert supabase.extract_object_path("1700-ab.jpg", "defect-images") == "1700-ab.jpg"
    assert supabase.extract_object_path(url, "defect-images") == "nested/1700-ab.jpg"
    assert supabase.extract_object_path("https://cdn.example/x/y.png", "defect-images") == "y.png"
    assert supabase.extract_object_path(None, "defect-images") is None
