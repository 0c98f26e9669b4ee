from __future__ import annotations

import pytest

from linedefect.defects import lifecycle
from linedefect.defects.schemas import AnalysisFields, ManagerAnalysisOut, ZoneFindings
from linedefect.errors import InvalidStateTransition, PermissionDenied
from linedefect.models import DefectStatus, Zone

from helpers import INSPECTOR, MANAGER, defect_payload, leader, make_defect


def test_targeted_zone_constraint() -> None:
    defect = make_defect()

    assert lifecycle.is_targeted_zone(defect, Zone.L2)
    assert lifecycle.is_targeted_zone(defect, "R1")
    assert not lifecycle.is_targeted_zone(defect, Zone.R0)
    assert not lifecycle.is_targeted_zone(defect, None)
    assert not lifecycle.can_decline_involvement(defect, Zone.L2)
    assert lifecycle.can_decline_involvement(defect, Zone.L1)


def test_new_defect_starts_open() -> None:
    record = lifecycle.new_defect_record(INSPECTOR, defect_payload(), "DEF-1")

    assert record["status"] == DefectStatus.OPEN.value
    assert record["targeted_zones"] == ["L2", "R1"]
    assert record["created_by"] == INSPECTOR.user_id


@pytest.mark.parametrize("principal", [MANAGER, leader(Zone.L1)])
def test_only_inspectors_log_defects(principal) -> None:
    with pytest.raises(PermissionDenied):
        lifecycle.authorize_defect_creation(principal)


def test_leader_cannot_respond_for_another_zone() -> None:
    # Scenario A: the L1 leader reaching into a targeted zone.
    with pytest.raises(PermissionDenied):
        lifecycle.submit_zone_response(leader(Zone.L1), make_defect(), [], Zone.L2, True)


@pytest.mark.parametrize("principal", [INSPECTOR, MANAGER])
def test_non_leaders_cannot_respond(principal) -> None:
    with pytest.raises(PermissionDenied):
        lifecycle.submit_zone_response(principal, make_defect(), [], Zone.L2, True)


def test_targeted_zone_cannot_decline() -> None:
    # Scenario B
    with pytest.raises(InvalidStateTransition, match="cannot decline involvement"):
        lifecycle.submit_zone_response(leader(Zone.L2), make_defect(), [], Zone.L2, False)


def test_untargeted_zone_may_decline() -> None:
    # Scenario C
    details = ZoneFindings(root_cause="ignored when not involved")

    response = lifecycle.submit_zone_response(
        leader(Zone.R0), make_defect(), [], Zone.R0, False, details
    )

    assert response.id is None
    assert response.zone is Zone.R0
    assert response.involved is False
    assert response.root_cause is None


def test_zone_defaults_to_principal_zone() -> None:
    response = lifecycle.submit_zone_response(leader(Zone.L2), make_defect(), [], None, True)

    assert response.zone is Zone.L2
    assert response.created_by == "leader-l2"


def test_resubmission_keeps_existing_identity() -> None:
    # Scenario E
    defect = make_defect()
    first = lifecycle.submit_zone_response(
        leader(Zone.L2), defect, [], Zone.L2, True, ZoneFindings(root_cause="loose clip")
    ).model_copy(update={"id": "zr-1"})

    second = lifecycle.submit_zone_response(
        leader(Zone.L2),
        defect,
        [first],
        Zone.L2,
        True,
        ZoneFindings(root_cause="loose clip", action_taken="replaced part"),
    )

    assert second.id == "zr-1"
    assert second.action_taken == "replaced part"
    assert second.created_by == first.created_by


def test_response_for_other_defect_is_not_reused() -> None:
    other = lifecycle.submit_zone_response(
        leader(Zone.L2), make_defect(id="defect-2"), [], Zone.L2, True
    ).model_copy(update={"id": "zr-9"})

    response = lifecycle.submit_zone_response(leader(Zone.L2), make_defect(), [other], Zone.L2, True)

    assert response.id is None


def test_zone_response_never_changes_status() -> None:
    defect = make_defect()
    lifecycle.submit_zone_response(leader(Zone.L2), defect, [], Zone.L2, True)

    assert defect.status is DefectStatus.OPEN


def test_manager_closes_with_empty_analysis() -> None:
    # Scenario D
    analysis, defect = lifecycle.submit_manager_analysis(
        MANAGER, make_defect(), None, AnalysisFields(), DefectStatus.CLOSED
    )

    assert defect.status is DefectStatus.CLOSED
    assert analysis.id is None
    assert analysis.is_empty()


def test_manager_can_reopen_and_keeps_analysis_identity() -> None:
    existing = ManagerAnalysisOut(id="ma-1", defect_id="defect-1", machine="worn nozzle")

    analysis, defect = lifecycle.submit_manager_analysis(
        MANAGER,
        make_defect(status=DefectStatus.CLOSED),
        existing,
        AnalysisFields(machine="worn nozzle", method="skipped check"),
        "OPEN",
    )

    assert analysis.id == "ma-1"
    assert analysis.method == "skipped check"
    assert defect.status is DefectStatus.OPEN


@pytest.mark.parametrize("principal", [INSPECTOR, leader(Zone.L2)])
def test_only_managers_change_status(principal) -> None:
    with pytest.raises(PermissionDenied):
        lifecycle.submit_manager_analysis(
            principal, make_defect(), None, AnalysisFields(), DefectStatus.CLOSED
        )


def test_unknown_status_is_rejected() -> None:
    with pytest.raises(InvalidStateTransition):
        lifecycle.submit_manager_analysis(MANAGER, make_defect(), None, AnalysisFields(), "ARCHIVED")


def test_only_managers_export() -> None:
    lifecycle.authorize_export(MANAGER)

    with pytest.raises(PermissionDenied, match="export"):
        lifecycle.authorize_export(INSPECTOR)
