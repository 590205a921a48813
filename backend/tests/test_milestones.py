"""Unit tests for arrival and departure stamping."""
from __future__ import annotations

import sys
from datetime import datetime
from pathlib import Path
from zoneinfo import ZoneInfo

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from dockboard.models.docks import CommitOutcome, MilestoneField, OperativaRecord, YardSnapshot  # noqa: E402
from dockboard.services.milestones import stamp_milestone, yard_clock  # noqa: E402


MADRID_NOW = datetime(2026, 10, 19, 9, 7, 42, tzinfo=ZoneInfo("Europe/Madrid"))


def _yard_with(record: OperativaRecord) -> YardSnapshot:
    return YardSnapshot.empty(["Lado 0", "Lado 1"]).with_side("Lado 1", [record])


def test_yard_clock_is_zero_padded_wall_time():
    assert yard_clock(MADRID_NOW) == "09:07"


def test_empty_field_is_stamped():
    record = OperativaRecord(dock=320)
    snapshot = _yard_with(record)

    result = stamp_milestone(snapshot, "Lado 1", record.id, MilestoneField.ARRIVAL, MADRID_NOW)

    assert result.outcome is CommitOutcome.COMMITTED
    assert result.previous is None
    assert result.snapshot.find("Lado 1", record.id)[1].actual_arrival == "09:07"
    assert snapshot.find("Lado 1", record.id)[1].actual_arrival is None


def test_existing_value_needs_confirmation():
    record = OperativaRecord(dock=320, actual_arrival="08:00", actual_departure="08:50")
    snapshot = _yard_with(record)

    result = stamp_milestone(snapshot, "Lado 1", record.id, MilestoneField.DEPARTURE, MADRID_NOW)

    assert result.outcome is CommitOutcome.NEEDS_CONFIRMATION
    assert result.snapshot is snapshot
    assert result.previous == "08:50"
    assert result.value == "09:07"


def test_overwrite_replaces_existing_value():
    record = OperativaRecord(dock=320, actual_arrival="08:00")
    snapshot = _yard_with(record)

    result = stamp_milestone(
        snapshot, "Lado 1", record.id, MilestoneField.ARRIVAL, MADRID_NOW, overwrite=True
    )

    assert result.outcome is CommitOutcome.COMMITTED
    assert result.previous == "08:00"
    assert result.snapshot.find("Lado 1", record.id)[1].actual_arrival == "09:07"


def test_blank_value_counts_as_empty():
    record = OperativaRecord(actual_departure="  ")
    result = stamp_milestone(_yard_with(record), "Lado 1", record.id, MilestoneField.DEPARTURE, MADRID_NOW)
    assert result.outcome is CommitOutcome.COMMITTED


def test_unknown_record_raises_key_error():
    with pytest.raises(KeyError):
        stamp_milestone(_yard_with(OperativaRecord()), "Lado 0", "missing", MilestoneField.ARRIVAL, MADRID_NOW)
