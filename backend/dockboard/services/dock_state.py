"""Derive live dock occupancy from the per-side truck records."""
from __future__ import annotations

from collections import Counter
from datetime import datetime
from typing import Dict, Iterable, Optional

from dockboard.core.config import get_settings
from dockboard.models.docks import (
    DockBoardResponse,
    DockOccupancy,
    DockStatus,
    OperativaRecord,
    YardSnapshot,
    coerce_dock_number,
)
from dockboard.services.sla import SlaThresholds, cutoff_icon_level


def resolve_docks(docks: Optional[Iterable[int]] = None) -> list[int]:
    """Ordered dock universe; falls back to the configured list."""
    if docks is None:
        docks = get_settings().dock_numbers
    return [int(n) for n in docks]


def record_dock_number(record: OperativaRecord, docks: Iterable[int]) -> Optional[int]:
    """Dock held by `record`, or None when it is empty or outside the dock set."""
    try:
        number = coerce_dock_number(record.dock)
    except ValueError:
        return None
    if number is None or number not in set(docks):
        return None
    return number


def record_dock_state(record: OperativaRecord) -> DockOccupancy:
    """
    Occupancy a single record imposes on its dock.

    A logged departure always frees the dock, even when the arrival is also
    logged; an arrival without departure occupies it; otherwise the truck is
    expected and the dock is reserved.
    """
    if record.has_departed:
        return DockOccupancy.LIBRE
    if record.has_arrived:
        return DockOccupancy.OCUPADO
    return DockOccupancy.ESPERA


def _merge(current: DockStatus, incoming: DockStatus) -> DockStatus:
    if incoming.state.severity > current.state.severity:
        return incoming
    return current


def derive_docks(snapshot: YardSnapshot, docks: Optional[Iterable[int]] = None) -> Dict[int, DockStatus]:
    """
    Consolidated state for every known dock.

    Several records may claim the same dock (e.g. two clients assigning it at
    once). The busiest claim wins: LIBRE < ESPERA < OCUPADO, and a free claim
    never clears a dock that another record keeps busy.
    """
    ordered = resolve_docks(docks)
    allowed = set(ordered)
    board: Dict[int, DockStatus] = {number: DockStatus(dock=number) for number in ordered}

    for side, record in snapshot.iter_records():
        number = record_dock_number(record, allowed)
        if number is None:
            continue
        state = record_dock_state(record)
        if state is DockOccupancy.LIBRE:
            continue
        incoming = DockStatus(dock=number, state=state, side=side, record=record)
        board[number] = _merge(board[number], incoming)
    return board


def dock_board(
    snapshot: YardSnapshot,
    docks: Optional[Iterable[int]] = None,
    now: Optional[datetime] = None,
    thresholds: Optional[SlaThresholds] = None,
) -> DockBoardResponse:
    """
    Board rows in dock-set order plus counts per state.

    Busy docks are flagged when their holder carries air freight. When `now`
    is given they also get the cutoff marker of the holding record.
    """
    derived = derive_docks(snapshot, docks)
    rows = []
    for status in derived.values():
        if status.record is not None:
            update = {"has_air": status.record.has_air_cargo}
            if now is not None:
                update["tope_icon"] = cutoff_icon_level(status.record, now, thresholds)
            status = status.model_copy(update=update)
        rows.append(status)
    counts = Counter(status.state.value for status in rows)
    return DockBoardResponse(
        docks=rows,
        counts_by_state={state.value: counts.get(state.value, 0) for state in DockOccupancy},
    )
