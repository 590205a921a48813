"""Air-freight lines attached to a truck record and their totals."""
from __future__ import annotations

import math
import re
from typing import Any, Dict, Iterable, Optional

from dockboard.models.docks import AirItem, AirTotals, OperativaRecord


LEADING_DECIMAL_PATTERN = re.compile(r"^\s*([+-]?(?:\d+(?:\.\d*)?|\.\d+))")
LEADING_INTEGER_PATTERN = re.compile(r"^\s*([+-]?\d+)")


def _with_decimal_point(value: Any) -> str:
    # operators type "1,5"; only the first comma is a decimal separator
    return str(value if value is not None else "").replace(",", ".", 1)


def parse_volume(value: Any) -> Optional[float]:
    """Leading decimal number of a typed m3 cell, or None when there is none."""
    match = LEADING_DECIMAL_PATTERN.match(_with_decimal_point(value))
    return float(match.group(1)) if match else None


def parse_boxes(value: Any) -> Optional[int]:
    """Leading whole number of a typed box count; `"3,5"` counts as 3."""
    match = LEADING_INTEGER_PATTERN.match(_with_decimal_point(value))
    return int(match.group(1)) if match else None


def air_totals(items: Iterable[AirItem]) -> AirTotals:
    """Sum volume and boxes, skipping cells that hold no number. Volume is rounded half up to 2 places."""
    m3 = 0.0
    bx = 0
    for item in items:
        volume = parse_volume(item.m3)
        boxes = parse_boxes(item.bx)
        if volume is not None:
            m3 += volume
        if boxes is not None:
            bx += boxes
    return AirTotals(m3=math.floor(m3 * 100 + 0.5) / 100, bx=bx)


def with_air_item(record: OperativaRecord, item: AirItem) -> OperativaRecord:
    return record.model_copy(update={"air_items": [*record.air_items, item]})


def with_air_item_patched(record: OperativaRecord, item_id: str, patch: Dict[str, Any]) -> OperativaRecord:
    """Return a copy of `record` with one air line updated; unknown ids raise KeyError."""
    items = list(record.air_items)
    for index, item in enumerate(items):
        if item.id == item_id:
            items[index] = AirItem.model_validate({**item.model_dump(), **patch, "id": item.id})
            return record.model_copy(update={"air_items": items})
    raise KeyError(item_id)


def without_air_item(record: OperativaRecord, item_id: str) -> OperativaRecord:
    remaining = [item for item in record.air_items if item.id != item_id]
    if len(remaining) == len(record.air_items):
        raise KeyError(item_id)
    return record.model_copy(update={"air_items": remaining})
