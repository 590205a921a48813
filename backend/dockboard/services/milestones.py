"""Stamp actual arrival and departure with the current yard clock."""
from __future__ import annotations

from datetime import datetime

from dockboard.core.logging import logger
from dockboard.models.docks import (
    CommitOutcome,
    MilestoneField,
    MilestoneStampResult,
    YardSnapshot,
    is_blank,
)


def yard_clock(now: datetime) -> str:
    """`HH:MM` wall-clock text of `now`, the format operators type into the sheet."""
    return now.strftime("%H:%M")


def stamp_milestone(
    snapshot: YardSnapshot,
    side: str,
    record_id: str,
    field: MilestoneField,
    now: datetime,
    overwrite: bool = False,
) -> MilestoneStampResult:
    """
    Write the current time into an actual-arrival or actual-departure field.

    A field that already holds a value is only replaced with `overwrite`;
    otherwise the snapshot comes back untouched with NEEDS_CONFIRMATION and
    the value that would have been overwritten.
    """
    _, current = snapshot.find(side, record_id)
    value = yard_clock(now)
    previous = getattr(current, field.value)

    if not is_blank(previous) and not overwrite:
        logger.info(
            "Milestone stamp needs confirmation",
            side=side,
            record_id=record_id,
            field=field.value,
            previous=previous,
            proposed=value,
        )
        return MilestoneStampResult(
            outcome=CommitOutcome.NEEDS_CONFIRMATION,
            field=field,
            value=value,
            previous=previous,
            snapshot=snapshot,
        )

    updated = current.model_copy(update={field.value: value})
    return MilestoneStampResult(
        outcome=CommitOutcome.COMMITTED,
        field=field,
        value=value,
        previous=previous,
        snapshot=snapshot.with_record(side, updated),
    )
