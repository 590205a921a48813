"""Unit tests for dock validation, conflict detection and the commit protocol."""
from __future__ import annotations

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from dockboard.models.docks import CommitOutcome, DockOccupancy, OperativaRecord, YardSnapshot  # noqa: E402
from dockboard.services.dock_conflicts import (  # noqa: E402
    InvalidDockValueError,
    check_conflict,
    commit_dock_value,
    is_valid_dock_value,
    validate_dock_value,
)


NOW = datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)


def _yard() -> YardSnapshot:
    return YardSnapshot.empty([f"Lado {i}" for i in range(10)])


def test_conflict_reports_owner_side_and_state():
    owner = OperativaRecord(dock=320, actual_arrival="08:00")
    editing = OperativaRecord(destination="MANGO")
    snapshot = _yard().with_side("Lado 0", [owner]).with_side("Lado 3", [editing])

    result = check_conflict(snapshot, "320", "Lado 3", editing.id)

    assert result.conflict is True
    assert result.info.state is DockOccupancy.OCUPADO
    assert result.info.side == "Lado 0"
    assert result.info.record.id == owner.id


def test_reserved_dock_is_a_conflict_too():
    owner = OperativaRecord(dock=321)
    snapshot = _yard().with_side("Lado 1", [owner])
    result = check_conflict(snapshot, 321, "Lado 2", "someone-else")
    assert result.conflict is True
    assert result.info.state is DockOccupancy.ESPERA


def test_record_is_never_in_conflict_with_itself():
    record = OperativaRecord(dock=322, actual_arrival="08:00")
    snapshot = _yard().with_side("Lado 5", [record])
    assert check_conflict(snapshot, 322, "Lado 5", record.id).conflict is False


def test_same_id_on_another_side_is_still_checked():
    record = OperativaRecord(dock=323)
    twin = record.model_copy()
    snapshot = _yard().with_side("Lado 5", [record]).with_side("Lado 6", [twin])
    result = check_conflict(snapshot, 323, "Lado 6", record.id)
    assert result.conflict is True
    assert result.info.side == "Lado 5"


def test_departed_holder_does_not_block():
    gone = OperativaRecord(dock=324, actual_arrival="07:00", actual_departure="08:30")
    snapshot = _yard().with_side("Lado 0", [gone])
    assert check_conflict(snapshot, 324, "Lado 1", "new").conflict is False


def test_non_numeric_candidate_never_conflicts():
    snapshot = _yard().with_side("Lado 0", [OperativaRecord(dock=320)])
    assert check_conflict(snapshot, "abc", "Lado 1", "x").conflict is False
    assert check_conflict(snapshot, "", "Lado 1", "x").conflict is False


def test_first_holder_found_is_reported():
    first = OperativaRecord(dock=326)
    second = OperativaRecord(dock=326, actual_arrival="09:00")
    snapshot = _yard().with_side("Lado 0", [first]).with_side("Lado 1", [second])
    result = check_conflict(snapshot, 326, "Lado 2", "x")
    assert result.info.record.id == first.id


def test_validate_dock_value():
    assert validate_dock_value("") is None
    assert validate_dock_value("   ") is None
    assert validate_dock_value(None) is None
    assert validate_dock_value(" 320 ") == 320
    assert validate_dock_value(351) == 351
    for bad in ("abc", "999", "358", "320.5", "12 13"):
        with pytest.raises(InvalidDockValueError):
            validate_dock_value(bad)
    assert is_valid_dock_value("369") is True
    assert is_valid_dock_value("338") is False


def test_invalid_value_error_carries_allowed_docks():
    with pytest.raises(InvalidDockValueError) as info:
        validate_dock_value("abc", docks=[1, 2])
    assert info.value.value == "abc"
    assert info.value.allowed == [1, 2]
    assert isinstance(info.value, ValueError)


def test_commit_rejects_invalid_value_and_keeps_previous_dock():
    record = OperativaRecord(dock=321)
    snapshot = _yard().with_side("Lado 0", [record])
    with pytest.raises(InvalidDockValueError):
        commit_dock_value(snapshot, "Lado 0", record.id, "abc", NOW)
    _, unchanged = snapshot.find("Lado 0", record.id)
    assert unchanged.dock == 321


def test_commit_conflict_needs_confirmation_and_keeps_snapshot():
    owner = OperativaRecord(dock=320, actual_arrival="08:00")
    editing = OperativaRecord(dock=330)
    snapshot = _yard().with_side("Lado 0", [owner]).with_side("Lado 3", [editing])

    result = commit_dock_value(snapshot, "Lado 3", editing.id, "320", NOW)

    assert result.outcome is CommitOutcome.NEEDS_CONFIRMATION
    assert result.snapshot is snapshot
    assert result.dock == 330
    assert result.conflict.side == "Lado 0"


def test_commit_with_override_writes_and_stamps():
    owner = OperativaRecord(dock=320)
    editing = OperativaRecord()
    snapshot = _yard().with_side("Lado 0", [owner]).with_side("Lado 3", [editing])

    result = commit_dock_value(snapshot, "Lado 3", editing.id, "320", NOW, confirm_override=True)

    assert result.outcome is CommitOutcome.COMMITTED
    _, committed = result.snapshot.find("Lado 3", editing.id)
    assert committed.dock == 320
    assert committed.assigned_at == NOW
    _, original = snapshot.find("Lado 3", editing.id)
    assert original.dock is None
    assert original.assigned_at is None


def test_recommitting_same_dock_keeps_assignment_stamp():
    stamped = NOW - timedelta(minutes=20)
    record = OperativaRecord(dock=335, assigned_at=stamped)
    snapshot = _yard().with_side("Lado 0", [record])
    result = commit_dock_value(snapshot, "Lado 0", record.id, "335", NOW)
    _, committed = result.snapshot.find("Lado 0", record.id)
    assert committed.assigned_at == stamped


def test_commit_blank_clears_dock():
    record = OperativaRecord(dock=327)
    snapshot = _yard().with_side("Lado 0", [record])
    result = commit_dock_value(snapshot, "Lado 0", record.id, "", NOW)
    assert result.outcome is CommitOutcome.COMMITTED
    assert result.dock is None
    assert result.snapshot.find("Lado 0", record.id)[1].dock is None


def test_commit_unknown_record_raises_key_error():
    with pytest.raises(KeyError):
        commit_dock_value(_yard(), "Lado 0", "missing", "320", NOW)
    with pytest.raises(KeyError):
        commit_dock_value(_yard(), "Lado 42", "missing", "320", NOW)
