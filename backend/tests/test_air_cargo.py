"""Unit tests for air-freight lines and their totals."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

from dockboard.models.docks import AirItem, OperativaRecord  # noqa: E402
from dockboard.services.air_cargo import (  # noqa: E402
    air_totals,
    parse_boxes,
    parse_volume,
    with_air_item,
    with_air_item_patched,
    without_air_item,
)


def test_volume_accepts_decimal_comma_and_trailing_text():
    assert parse_volume("1,5") == 1.5
    assert parse_volume(" 2.25 m3") == 2.25
    assert parse_volume("3") == 3.0
    assert parse_volume("") is None
    assert parse_volume("abc") is None
    assert parse_volume(None) is None


def test_boxes_keep_the_leading_whole_number():
    assert parse_boxes("12") == 12
    assert parse_boxes("3,5") == 3
    assert parse_boxes("40 cajas") == 40
    assert parse_boxes("cajas") is None


def test_totals_skip_blank_cells_and_round_volume():
    items = [
        AirItem(dest="MAD", m3="1,12", bx="10"),
        AirItem(dest="BCN", m3="2,2", bx=""),
        AirItem(dest="LHR", m3="", bx="5"),
        AirItem(dest="JFK", m3="n/a", bx="x"),
    ]
    totals = air_totals(items)
    assert totals.m3 == 3.32
    assert totals.bx == 15


def test_totals_of_no_items_are_zero():
    totals = air_totals([])
    assert totals.m3 == 0
    assert totals.bx == 0


def test_item_edits_return_new_records():
    record = OperativaRecord(dock=320)
    first = AirItem(dest="MAD", m3="1", bx="2")
    second = AirItem(dest="BCN")

    loaded = with_air_item(with_air_item(record, first), second)
    assert [item.id for item in loaded.air_items] == [first.id, second.id]
    assert loaded.has_air_cargo
    assert record.air_items == []

    patched = with_air_item_patched(loaded, second.id, {"m3": 4.5, "bx": 7})
    assert patched.air_items[1].m3 == "4.5"
    assert patched.air_items[1].bx == "7"
    assert patched.air_items[1].dest == "BCN"
    assert patched.air_items[1].id == second.id

    trimmed = without_air_item(patched, first.id)
    assert [item.id for item in trimmed.air_items] == [second.id]


def test_unknown_item_raises_key_error():
    record = OperativaRecord()
    with pytest.raises(KeyError):
        with_air_item_patched(record, "missing", {"dest": "MAD"})
    with pytest.raises(KeyError):
        without_air_item(record, "missing")
