"""In-memory yard state store: current snapshot, template rules and revision counter."""
from __future__ import annotations

from datetime import datetime, timezone
from threading import RLock
from typing import Any, Callable, List, Optional, Tuple

from dockboard.core.config import get_settings
from dockboard.core.logging import logger
from dockboard.models.docks import TemplateRule, YardSnapshot


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class YardStateStore:
    """
    Holder of the single yard snapshot.

    Writers never edit records in place: they hand the store a whole new
    snapshot, which replaces the previous one atomically and bumps the
    revision. Snapshots pushed by other clients follow the same path, so the
    last full snapshot received wins unless the caller passes the revision it
    started from.
    """

    def __init__(self, side_names: Optional[List[str]] = None) -> None:
        settings = get_settings()
        self._lock = RLock()
        self._side_names = list(side_names or settings.side_names())
        self._snapshot = YardSnapshot.empty(self._side_names)
        self._rules: List[TemplateRule] = []
        self._revision = 0
        self._updated_at = _utc_now_iso()

    @property
    def side_names(self) -> List[str]:
        return list(self._side_names)

    @property
    def revision(self) -> int:
        with self._lock:
            return self._revision

    @property
    def updated_at(self) -> str:
        with self._lock:
            return self._updated_at

    def get_snapshot(self) -> YardSnapshot:
        with self._lock:
            return self._snapshot

    def get_state(self) -> Tuple[YardSnapshot, int]:
        with self._lock:
            return self._snapshot, self._revision

    def _with_all_sides(self, snapshot: YardSnapshot) -> YardSnapshot:
        missing = [name for name in self._side_names if name not in snapshot.sides]
        if not missing:
            return snapshot
        sides = dict(snapshot.sides)
        for name in missing:
            sides[name] = []
        return YardSnapshot(sides=sides)

    def _commit(self, snapshot: YardSnapshot) -> None:
        self._snapshot = self._with_all_sides(snapshot)
        self._revision += 1
        self._updated_at = _utc_now_iso()

    def replace_snapshot(self, snapshot: YardSnapshot, expected_revision: Optional[int] = None) -> int:
        with self._lock:
            if expected_revision is not None and int(expected_revision) != self._revision:
                raise ValueError(
                    f"Revision conflict. expected={expected_revision} current={self._revision}"
                )
            unknown = sorted(set(snapshot.sides) - set(self._side_names))
            if unknown:
                logger.warning("Snapshot carries sides outside the yard layout", sides=unknown)
            self._commit(snapshot)
            return self._revision

    def apply(self, change: Callable[[YardSnapshot], Tuple[YardSnapshot, Any]]) -> Any:
        """
        Run `change` against the current snapshot under the store lock.

        `change` returns the next snapshot and a result for the caller. When
        it hands back the very same snapshot object nothing is committed.
        """
        with self._lock:
            snapshot, result = change(self._snapshot)
            if snapshot is not self._snapshot:
                self._commit(snapshot)
            return result

    def get_rules(self) -> List[TemplateRule]:
        with self._lock:
            return list(self._rules)

    def replace_rules(self, rules: List[TemplateRule]) -> List[TemplateRule]:
        with self._lock:
            self._rules = list(rules)
            return list(self._rules)

    def reset(self) -> None:
        """Drop every record and rule; used by demo seeding and tests."""
        with self._lock:
            self._rules = []
            self._commit(YardSnapshot.empty(self._side_names))


yard_state_store = YardStateStore()
