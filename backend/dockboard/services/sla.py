"""Wait-to-load and departure-cutoff SLA timers."""
from __future__ import annotations

import math
import re
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from dockboard.core.config import get_settings
from dockboard.models.docks import (
    CutoffTimer,
    OperativaRecord,
    RecordStatus,
    SideRecord,
    SlaEvaluation,
    SlaLevel,
    WaitTimer,
    YardSnapshot,
    YardSummary,
    is_blank,
)


HOUR_MINUTE_PATTERN = re.compile(r"^(\d{1,2}):(\d{2})$")
DAY_MONTH_YEAR_PATTERN = re.compile(r"^(\d{1,2})[/\-](\d{1,2})[/\-](\d{2,4})[ T](\d{1,2}):(\d{2})$")


@dataclass(frozen=True)
class SlaThresholds:
    wait_warn_min: int = 15
    wait_crit_min: int = 30
    tope_warn_min: int = 15
    tope_icon_premin: int = 5

    @classmethod
    def from_settings(cls) -> "SlaThresholds":
        settings = get_settings()
        return cls(
            wait_warn_min=settings.sla_wait_warn_min,
            wait_crit_min=settings.sla_wait_crit_min,
            tope_warn_min=settings.sla_tope_warn_min,
            tope_icon_premin=settings.sla_tope_icon_premin,
        )


def _align(value: datetime, now: datetime) -> datetime:
    # naive values are wall-clock times in now's zone; a naive `now` is taken as UTC
    if value.tzinfo is None:
        return value.replace(tzinfo=now.tzinfo)
    if now.tzinfo is None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


def parse_flexible_datetime(value: Any, now: datetime) -> Optional[datetime]:
    """
    Parse the time formats operators type into the sheet.

    Supports `HH:MM` (today), `DD/MM/YY HH:MM` (also `-` separators, four-digit
    years and a `T` separator) and ISO-8601. Returns None when nothing matches.
    """
    if isinstance(value, datetime):
        return _align(value, now)
    text = str(value if value is not None else "").strip()
    if not text:
        return None

    match = HOUR_MINUTE_PATTERN.match(text)
    if match:
        try:
            return now.replace(hour=int(match.group(1)), minute=int(match.group(2)), second=0, microsecond=0)
        except ValueError:
            return None

    match = DAY_MONTH_YEAR_PATTERN.match(text)
    if match:
        day, month, year, hour, minute = (int(part) for part in match.groups())
        if year < 100:
            year += 2000
        try:
            return datetime(year, month, day, hour, minute, tzinfo=now.tzinfo)
        except ValueError:
            return None

    if text.endswith("Z"):
        text = f"{text[:-1]}+00:00"
    try:
        parsed = datetime.fromisoformat(text)
    except ValueError:
        return None
    return _align(parsed, now)


def minutes_between(later: datetime, earlier: datetime) -> int:
    """Whole minutes from `earlier` to `later`, halves rounded up."""
    return math.floor((later - earlier).total_seconds() / 60 + 0.5)


def _wait_timer(record: OperativaRecord, now: datetime, thresholds: SlaThresholds) -> WaitTimer:
    if record.dock is None or record.has_arrived:
        return WaitTimer()
    reference = None
    if record.assigned_at is not None:
        reference = _align(record.assigned_at, now)
    if reference is None and not is_blank(record.planned_arrival):
        reference = parse_flexible_datetime(record.planned_arrival, now)
    if reference is None:
        return WaitTimer()

    minutes = minutes_between(now, reference)
    level = None
    if minutes >= thresholds.wait_crit_min:
        level = SlaLevel.CRIT
    elif minutes >= thresholds.wait_warn_min:
        level = SlaLevel.WARN
    return WaitTimer(level=level, minutes=minutes)


def _cutoff_timer(record: OperativaRecord, now: datetime, thresholds: SlaThresholds) -> CutoffTimer:
    if record.has_departed:
        return CutoffTimer()
    cutoff = parse_flexible_datetime(record.planned_departure_cutoff, now)
    if cutoff is None:
        return CutoffTimer()

    diff = minutes_between(now, cutoff)
    level = None
    if diff > 0:
        level = SlaLevel.CRIT
    elif diff >= -thresholds.tope_warn_min:
        level = SlaLevel.WARN
    return CutoffTimer(level=level, diff_minutes=diff)


def cutoff_icon_level(
    record: OperativaRecord,
    now: datetime,
    thresholds: Optional[SlaThresholds] = None,
) -> Optional[SlaLevel]:
    """
    Cutoff marker for the dock board button.

    Uses a shorter lead time than the per-record timer: warn only in the last
    few minutes before the cutoff, critical once it has passed.
    """
    thresholds = thresholds or SlaThresholds.from_settings()
    if record.has_departed:
        return None
    cutoff = parse_flexible_datetime(record.planned_departure_cutoff, now)
    if cutoff is None:
        return None
    diff = minutes_between(now, cutoff)
    if diff > 0:
        return SlaLevel.CRIT
    if diff >= -thresholds.tope_icon_premin:
        return SlaLevel.WARN
    return None


def evaluate(
    record: OperativaRecord,
    now: datetime,
    thresholds: Optional[SlaThresholds] = None,
) -> SlaEvaluation:
    """
    Evaluate both SLA axes of one record at `now`.

    The axes are independent; nothing here ranks one above the other.
    """
    thresholds = thresholds or SlaThresholds.from_settings()
    wait = _wait_timer(record, now, thresholds)
    tope = _cutoff_timer(record, now, thresholds)

    parts = []
    if wait.level:
        parts.append(f"Espera en muelle {wait.minutes} min")
    if tope.level is SlaLevel.CRIT:
        parts.append(f"Salida tope superada (+{tope.diff_minutes} min)")
    elif tope.level is SlaLevel.WARN:
        parts.append(f"Salida tope próxima ({abs(tope.diff_minutes)} min)")
    return SlaEvaluation(wait=wait, tope=tope, message=" · ".join(parts))


def build_summary(
    snapshot: YardSnapshot,
    now: datetime,
    thresholds: Optional[SlaThresholds] = None,
) -> YardSummary:
    """Aggregate every side by status, incidents and SLA severity."""
    thresholds = thresholds or SlaThresholds.from_settings()
    summary = YardSummary(
        by_status={status.value: [] for status in RecordStatus if status is not RecordStatus.UNSET},
    )

    for side, record in snapshot.iter_records():
        summary.total += 1
        if record.status is not RecordStatus.UNSET:
            summary.by_status[record.status.value].append(SideRecord(side=side, record=record))
        if not is_blank(record.incident):
            summary.incidents.append(SideRecord(side=side, record=record))

        sla = evaluate(record, now, thresholds)
        if sla.wait.level:
            summary.sla_wait.rows.append(SideRecord(side=side, record=record, sla=sla))
            if sla.wait.level is SlaLevel.CRIT:
                summary.sla_wait.crit += 1
            else:
                summary.sla_wait.warn += 1
        if sla.tope.level:
            summary.sla_tope.rows.append(SideRecord(side=side, record=record, sla=sla))
            if sla.tope.level is SlaLevel.CRIT:
                summary.sla_tope.crit += 1
            else:
                summary.sla_tope.warn += 1
    return summary
