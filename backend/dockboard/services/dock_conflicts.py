"""Dock value validation, cross-side conflict detection and the dock commit protocol."""
from __future__ import annotations

from datetime import datetime
from typing import Any, Iterable, List, Optional

from dockboard.core.logging import logger
from dockboard.models.docks import (
    CommitOutcome,
    ConflictInfo,
    ConflictResult,
    DockCommitResult,
    DockOccupancy,
    OperativaRecord,
    YardSnapshot,
    coerce_dock_number,
    is_blank,
)
from dockboard.services.dock_state import record_dock_state, resolve_docks


class InvalidDockValueError(ValueError):
    """Dock value that is not a number from the configured dock set."""

    def __init__(self, value: Any, allowed: List[int]) -> None:
        self.value = value
        self.allowed = list(allowed)
        super().__init__(
            f"Dock '{value}' is not valid. Allowed: {', '.join(str(n) for n in self.allowed)}"
        )


class DockConfirmationRequired(Exception):
    """Raised by write paths that cannot hand back a NEEDS_CONFIRMATION result themselves."""

    def __init__(self, result: DockCommitResult) -> None:
        self.result = result
        super().__init__(f"Dock {result.conflict.record.dock} is held by {result.conflict.side}")


def is_valid_dock_value(value: Any, docks: Optional[Iterable[int]] = None) -> bool:
    try:
        validate_dock_value(value, docks)
    except InvalidDockValueError:
        return False
    return True


def validate_dock_value(value: Any, docks: Optional[Iterable[int]] = None) -> Optional[int]:
    """
    Validate a raw dock value.

    Blank clears the dock and returns None. Otherwise the trimmed value must be
    a number from the dock set; the parsed number is returned.
    """
    allowed = resolve_docks(docks)
    if is_blank(value):
        return None
    try:
        number = coerce_dock_number(value)
    except ValueError:
        raise InvalidDockValueError(value, allowed) from None
    if number not in allowed:
        raise InvalidDockValueError(value, allowed)
    return number


def check_conflict(
    snapshot: YardSnapshot,
    candidate: Any,
    editing_side: str,
    editing_record_id: str,
) -> ConflictResult:
    """
    Find another record that keeps `candidate` busy.

    The record being edited is identified by id and side and is never
    compared with itself. Only the first holder is reported; the caller
    decides whether to override.
    """
    try:
        number = coerce_dock_number(candidate)
    except ValueError:
        return ConflictResult(conflict=False)
    if number is None:
        return ConflictResult(conflict=False)

    for side, record in snapshot.iter_records():
        if record.id == editing_record_id and side == editing_side:
            continue
        if record.dock != number:
            continue
        state = record_dock_state(record)
        if state is not DockOccupancy.LIBRE:
            return ConflictResult(conflict=True, info=ConflictInfo(side=side, record=record, state=state))
    return ConflictResult(conflict=False)


def with_dock_assign_stamp(previous: OperativaRecord, updated: OperativaRecord, now: datetime) -> OperativaRecord:
    """Stamp `assigned_at` when the dock moves to a new non-empty value."""
    if updated.dock is not None and updated.dock != previous.dock:
        return updated.model_copy(update={"assigned_at": now})
    return updated


def commit_dock_value(
    snapshot: YardSnapshot,
    side: str,
    record_id: str,
    raw_value: Any,
    now: datetime,
    confirm_override: bool = False,
    docks: Optional[Iterable[int]] = None,
) -> DockCommitResult:
    """
    Commit an operator-typed dock value.

    Invalid values raise InvalidDockValueError and the caller keeps its
    snapshot. A conflict without `confirm_override` returns the untouched
    snapshot with NEEDS_CONFIRMATION. Otherwise a new snapshot is returned
    with the dock written and the assignment stamp refreshed.
    """
    _, current = snapshot.find(side, record_id)
    number = validate_dock_value(raw_value, docks)

    if number is not None:
        result = check_conflict(snapshot, number, side, record_id)
        if result.conflict and not confirm_override:
            logger.info(
                "Dock commit needs confirmation",
                side=side,
                record_id=record_id,
                dock=number,
                owner_side=result.info.side,
                owner_state=result.info.state.value,
            )
            return DockCommitResult(
                outcome=CommitOutcome.NEEDS_CONFIRMATION,
                dock=current.dock,
                conflict=result.info,
                snapshot=snapshot,
            )
        if result.conflict:
            logger.warning(
                "Dock conflict overridden",
                side=side,
                record_id=record_id,
                dock=number,
                owner_side=result.info.side,
                owner_record_id=result.info.record.id,
            )

    updated = with_dock_assign_stamp(current, current.model_copy(update={"dock": number}), now)
    return DockCommitResult(
        outcome=CommitOutcome.COMMITTED,
        dock=number,
        snapshot=snapshot.with_record(side, updated),
    )
