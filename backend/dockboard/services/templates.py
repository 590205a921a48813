"""Template rules: destination pattern matching and conflict-aware dock suggestions."""
from __future__ import annotations

import math
import re
import unicodedata
from dataclasses import dataclass
from datetime import date, datetime
from functools import lru_cache
from typing import Any, Iterable, List, Optional, Sequence, Tuple, Union

from dockboard.core.config import get_settings
from dockboard.core.logging import logger
from dockboard.models.docks import (
    WEEKDAY_LETTERS,
    DockAssignment,
    OperativaRecord,
    TemplateRule,
    YardSnapshot,
    is_blank,
    new_record_id,
)
from dockboard.services.dock_conflicts import check_conflict, is_valid_dock_value, with_dock_assign_stamp
from dockboard.services.dock_state import resolve_docks


def normalize_text(value: Any) -> str:
    """Casefold, strip diacritics and collapse whitespace."""
    text = str(value if value is not None else "")
    text = re.sub(r"\s+", " ", text).strip().casefold()
    text = unicodedata.normalize("NFKD", text)
    return "".join(ch for ch in text if not unicodedata.combining(ch))


@dataclass(frozen=True)
class RegexPattern:
    expression: "re.Pattern[str]"
    uppercase_text: bool = False

    def matches(self, text: str) -> bool:
        subject = text.upper().strip() if self.uppercase_text else text
        return self.expression.search(subject) is not None


@dataclass(frozen=True)
class AnyPattern:
    def matches(self, text: str) -> bool:
        return True


@dataclass(frozen=True)
class ContainsPattern:
    needle: str

    def matches(self, text: str) -> bool:
        return self.needle in normalize_text(text)


@dataclass(frozen=True)
class PrefixPattern:
    prefix: str

    def matches(self, text: str) -> bool:
        return normalize_text(text).startswith(self.prefix)


@dataclass(frozen=True)
class SuffixPattern:
    suffix: str

    def matches(self, text: str) -> bool:
        return normalize_text(text).endswith(self.suffix)


@dataclass(frozen=True)
class ExactPattern:
    value: str

    def matches(self, text: str) -> bool:
        return normalize_text(text) == self.value


@dataclass(frozen=True)
class NeverPattern:
    def matches(self, text: str) -> bool:
        return False


Pattern = Union[RegexPattern, AnyPattern, ContainsPattern, PrefixPattern, SuffixPattern, ExactPattern, NeverPattern]


@lru_cache(maxsize=512)
def parse_pattern(raw: str) -> Pattern:
    """
    Parse a rule pattern.

    `/expr/` is a regular expression searched in the uppercased, trimmed
    destination; `/expr/i` is searched case-insensitively in the raw text.
    `*` matches everything, `*x*` contains, `*x` suffix, `x*` prefix and
    anything else is an exact match. Non-regex forms compare normalized text.
    """
    text = str(raw or "").strip()
    if not text:
        return NeverPattern()

    # a lone "/" is an empty expression and matches everything
    if text.startswith("/") and text.endswith("/"):
        return _compile(text[1:-1], 0, uppercase_text=True)
    if text.startswith("/") and text.lower().endswith("/i"):
        return _compile(text[1:-2], re.IGNORECASE)

    if text == "*":
        return AnyPattern()
    starts, ends = text.startswith("*"), text.endswith("*")
    if starts and ends:
        return ContainsPattern(normalize_text(text[1:-1]))
    if starts:
        return SuffixPattern(normalize_text(text[1:]))
    if ends:
        return PrefixPattern(normalize_text(text[:-1]))
    return ExactPattern(normalize_text(text))


def _compile(expression: str, flags: int, uppercase_text: bool = False) -> Pattern:
    try:
        return RegexPattern(re.compile(expression, flags), uppercase_text)
    except re.error as exc:
        logger.warning("Ignoring invalid template regex", expression=expression, error=str(exc))
        return NeverPattern()


def match_pattern(text: Any, pattern: str) -> bool:
    return parse_pattern(pattern).matches(str(text if text is not None else ""))


def weekday_letter(day: Union[date, datetime]) -> str:
    return WEEKDAY_LETTERS[day.weekday()]


def day_allowed(rule: TemplateRule, day: Union[date, datetime]) -> bool:
    if not rule.weekdays:
        return True
    return weekday_letter(day) in rule.weekdays


def candidate_rules(
    rules: Iterable[TemplateRule],
    side: str,
    record: OperativaRecord,
    day: Union[date, datetime],
    all_sides_label: Optional[str] = None,
) -> List[TemplateRule]:
    """Active rules that apply to this side, destination and day, highest priority first."""
    wildcard = all_sides_label or get_settings().all_sides_label
    destination = record.destination or ""
    selected = [
        rule
        for rule in rules
        if rule.active
        and rule.side in (side, wildcard)
        and match_pattern(destination, rule.pattern)
        and day_allowed(rule, day)
    ]
    return sorted(selected, key=lambda rule: rule.priority or 0, reverse=True)


def suggest_dock(
    rules: Iterable[TemplateRule],
    side: str,
    record: OperativaRecord,
    snapshot: YardSnapshot,
    today: Optional[Union[date, datetime]] = None,
    docks: Optional[Iterable[int]] = None,
) -> Optional[int]:
    """
    First preferred dock, in rule priority order, that no other record holds.

    Returns None when no rule yields an available dock; the record is then
    left unassigned.
    """
    day = today or get_settings().now()
    allowed = resolve_docks(docks)
    for rule in candidate_rules(rules, side, record, day):
        for number in rule.dock_numbers:
            if not is_valid_dock_value(number, allowed):
                continue
            if not check_conflict(snapshot, number, side, record.id).conflict:
                return int(number)
    return None


def apply_templates_to_side(
    snapshot: YardSnapshot,
    side: str,
    rules: Sequence[TemplateRule],
    now: datetime,
    docks: Optional[Iterable[int]] = None,
) -> Tuple[YardSnapshot, List[DockAssignment]]:
    """
    Suggest docks for every record of `side` without one.

    Works on a deep copy; each assignment is written into the copy before the
    next record is considered, so one batch never hands out the same dock
    twice. Records that already hold a dock are never touched.
    """
    draft = snapshot.model_copy(deep=True)
    pending = [record.id for record in draft.records(side) if record.dock is None]
    assignments: List[DockAssignment] = []

    for record_id in pending:
        _, record = draft.find(side, record_id)
        number = suggest_dock(rules, side, record, draft, today=now, docks=docks)
        if number is None:
            logger.debug("No template dock available", side=side, record_id=record_id)
            continue
        updated = with_dock_assign_stamp(record, record.model_copy(update={"dock": number}), now)
        draft = draft.with_record(side, updated)
        assignments.append(DockAssignment(record_id=record_id, dock=number))
    return draft, assignments


def rule_from_record(side: str, record: OperativaRecord, docks: Optional[Iterable[int]] = None) -> TemplateRule:
    """Build a preference rule from a record that already has a dock and destination."""
    if record.dock is None or not is_valid_dock_value(record.dock, docks):
        raise ValueError("Assign a valid dock before saving a preference")
    if is_blank(record.destination):
        raise ValueError("Record has no destination to build a template from")
    return TemplateRule(
        side=side or get_settings().all_sides_label,
        pattern=record.destination.strip(),
        dock_numbers=[record.dock],
        priority=10,
        weekdays=[],
        active=True,
    )


def _as_number(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def clean_rules(raw: Any) -> List[TemplateRule]:
    """Normalize a rule list loaded from outside (JSON file, another client)."""
    if not isinstance(raw, list):
        raise ValueError("Template rules must be a list")
    wildcard = get_settings().all_sides_label
    cleaned: List[TemplateRule] = []
    for item in raw:
        if isinstance(item, TemplateRule):
            item = item.model_dump(by_alias=True)
        if not isinstance(item, dict):
            raise ValueError("Each template rule must be an object")
        docks_raw = item.get("dockNumbers", item.get("dock_numbers")) or []
        dock_numbers = [
            int(number)
            for number in (_as_number(value) for value in docks_raw)
            if number is not None and number.is_integer()
        ]
        weekdays = item.get("weekdays") or []
        cleaned.append(
            TemplateRule(
                id=str(item.get("id") or new_record_id()),
                side=str(item.get("side") or wildcard),
                pattern=str(item.get("pattern") or ""),
                dock_numbers=dock_numbers,
                priority=_as_number(item.get("priority")) or 0,
                weekdays=[day for day in weekdays if day in WEEKDAY_LETTERS],
                active=bool(item.get("active")),
            )
        )
    return cleaned
