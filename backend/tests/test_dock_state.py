"""Unit tests for dock occupancy derivation."""
from __future__ import annotations

import sys
from datetime import datetime, timezone
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from dockboard.core.config import DEFAULT_DOCK_NUMBERS  # noqa: E402
from dockboard.models.docks import AirItem, DockOccupancy, OperativaRecord, SlaLevel, YardSnapshot  # noqa: E402
from dockboard.services.dock_state import derive_docks, dock_board, record_dock_state  # noqa: E402


def _yard(**sides) -> YardSnapshot:
    snapshot = YardSnapshot.empty([f"Lado {i}" for i in range(10)])
    for key, records in sides.items():
        snapshot = snapshot.with_side(key.replace("_", " "), records)
    return snapshot


def test_empty_yard_has_every_dock_free():
    board = derive_docks(_yard())
    assert list(board.keys()) == DEFAULT_DOCK_NUMBERS
    assert all(status.state is DockOccupancy.LIBRE for status in board.values())
    assert all(status.record is None for status in board.values())


def test_record_state_departure_always_wins():
    assert record_dock_state(OperativaRecord(dock=320)) is DockOccupancy.ESPERA
    assert record_dock_state(OperativaRecord(dock=320, actual_arrival="08:00")) is DockOccupancy.OCUPADO
    departed = OperativaRecord(dock=320, actual_arrival="08:00", actual_departure="09:10")
    assert record_dock_state(departed) is DockOccupancy.LIBRE
    assert record_dock_state(OperativaRecord(dock=320, actual_arrival="   ")) is DockOccupancy.ESPERA


def test_arrived_truck_occupies_dock_with_owner():
    truck = OperativaRecord(dock=320, actual_arrival="08:00", carrier="TRANSCOMA")
    board = derive_docks(_yard(Lado_0=[truck]))
    assert board[320].state is DockOccupancy.OCUPADO
    assert board[320].side == "Lado 0"
    assert board[320].record.id == truck.id
    assert board[321].state is DockOccupancy.LIBRE


def test_assigned_truck_reserves_dock():
    board = derive_docks(_yard(Lado_2=[OperativaRecord(dock=351)]))
    assert board[351].state is DockOccupancy.ESPERA
    assert board[351].side == "Lado 2"


def test_departed_records_leave_dock_free():
    board = derive_docks(
        _yard(
            Lado_0=[OperativaRecord(dock=330, actual_arrival="07:00", actual_departure="08:00")],
            Lado_4=[OperativaRecord(dock=330, actual_departure="09:00")],
        )
    )
    assert board[330].state is DockOccupancy.LIBRE
    assert board[330].record is None


def test_double_booking_shows_busiest_claim_in_any_order():
    waiting = OperativaRecord(dock=325)
    arrived = OperativaRecord(dock=325, actual_arrival="08:15")

    first = derive_docks(_yard(Lado_1=[waiting], Lado_2=[arrived]))
    second = derive_docks(_yard(Lado_1=[arrived], Lado_2=[waiting]))

    assert first[325].state is DockOccupancy.OCUPADO
    assert first[325].side == "Lado 2"
    assert second[325].state is DockOccupancy.OCUPADO
    assert second[325].side == "Lado 1"


def test_free_claim_never_clears_busy_dock():
    waiting = OperativaRecord(dock=360)
    departed = OperativaRecord(dock=360, actual_arrival="06:00", actual_departure="07:00")
    board = derive_docks(_yard(Lado_0=[waiting, departed]))
    assert board[360].state is DockOccupancy.ESPERA
    assert board[360].record.id == waiting.id


def test_equal_claims_keep_first_seen():
    one = OperativaRecord(dock=337)
    two = OperativaRecord(dock=337)
    board = derive_docks(_yard(Lado_0=[one], Lado_1=[two]))
    assert board[337].record.id == one.id


def test_docks_outside_the_set_are_ignored():
    board = derive_docks(_yard(Lado_0=[OperativaRecord(dock=999, actual_arrival="08:00")]))
    assert 999 not in board
    assert all(status.state is DockOccupancy.LIBRE for status in board.values())


def test_custom_dock_universe():
    board = derive_docks(_yard(Lado_0=[OperativaRecord(dock=5)]), docks=[7, 5, 9])
    assert list(board.keys()) == [7, 5, 9]
    assert board[5].state is DockOccupancy.ESPERA


def test_derivation_is_pure():
    snapshot = _yard(
        Lado_0=[OperativaRecord(dock=320, actual_arrival="08:00"), OperativaRecord(dock=321)],
        Lado_9=[OperativaRecord(dock=369)],
    )
    before = snapshot.model_dump()
    first = {dock: status.model_dump() for dock, status in derive_docks(snapshot).items()}
    second = {dock: status.model_dump() for dock, status in derive_docks(snapshot).items()}
    assert first == second
    assert snapshot.model_dump() == before


def test_board_counts_by_state():
    board = dock_board(
        _yard(Lado_0=[OperativaRecord(dock=320, actual_arrival="08:00"), OperativaRecord(dock=321)])
    )
    assert board.counts_by_state == {
        "LIBRE": len(DEFAULT_DOCK_NUMBERS) - 2,
        "ESPERA": 1,
        "OCUPADO": 1,
    }
    assert [status.dock for status in board.docks] == DEFAULT_DOCK_NUMBERS


def test_board_flags_air_cargo_and_cutoff_on_holding_record():
    now = datetime(2026, 10, 19, 10, 0, tzinfo=timezone.utc)
    late = OperativaRecord(dock=320, actual_arrival="08:00", planned_departure_cutoff="09:50")
    soon = OperativaRecord(dock=321, planned_departure_cutoff="10:04", air_items=[AirItem(dest="MAD", m3="2", bx="4")])
    relaxed = OperativaRecord(dock=322, actual_arrival="09:00", planned_departure_cutoff="11:00")
    gone = OperativaRecord(
        dock=323,
        actual_arrival="07:00",
        actual_departure="08:00",
        planned_departure_cutoff="07:30",
        air_items=[AirItem(dest="BCN")],
    )

    board = dock_board(_yard(Lado_0=[late, soon], Lado_1=[relaxed, gone]), now=now)
    rows = {status.dock: status for status in board.docks}

    assert rows[320].tope_icon is SlaLevel.CRIT
    assert rows[320].has_air is False
    assert rows[321].tope_icon is SlaLevel.WARN
    assert rows[321].has_air is True
    assert rows[322].tope_icon is None
    assert rows[323].state is DockOccupancy.LIBRE
    assert rows[323].has_air is False
    assert rows[323].tope_icon is None


def test_board_without_clock_leaves_cutoff_icon_off():
    late = OperativaRecord(dock=320, actual_arrival="08:00", planned_departure_cutoff="00:01")
    board = dock_board(_yard(Lado_0=[late]))
    assert board.docks[DEFAULT_DOCK_NUMBERS.index(320)].tope_icon is None
