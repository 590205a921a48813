"""Orchestration layer for the yard: record lifecycle, dock commits, milestone stamps, air cargo, templates and SLA reads."""
from __future__ import annotations

import random
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional, Tuple

from dockboard.core.config import get_settings
from dockboard.core.logging import logger
from dockboard.models.docks import (
    INCIDENT_CATALOG,
    WEEKDAY_LETTERS,
    AirCargoResponse,
    AirItem,
    AirItemRequest,
    CommitOutcome,
    ConflictResult,
    DemoSeedRequest,
    DockBoardResponse,
    DockCommitRequest,
    DockCommitResult,
    ImportRowsRequest,
    MilestoneField,
    MilestoneStampResult,
    OperativaRecord,
    RecordStatus,
    RecordUpdateRequest,
    SlaEvaluation,
    SnapshotReplaceRequest,
    TemplateRule,
    TemplateRuleUpdateRequest,
    YardSnapshot,
    YardSummary,
    is_blank,
    normalize_status,
)
from dockboard.services.air_cargo import air_totals, with_air_item, with_air_item_patched, without_air_item
from dockboard.services.dock_conflicts import (
    DockConfirmationRequired,
    InvalidDockValueError,
    check_conflict,
    commit_dock_value,
    validate_dock_value,
)
from dockboard.services.dock_state import dock_board
from dockboard.services.milestones import stamp_milestone
from dockboard.services.sla import build_summary, evaluate
from dockboard.services.templates import apply_templates_to_side, clean_rules, rule_from_record
from dockboard.services.yard_state import YardStateStore, yard_state_store


class YardEngine:
    """Business orchestration over the yard state store."""

    # rows where all of these are blank are padding lines from the source sheet
    IMPORT_REQUIRED_ANY = ("carrier", "plate", "destination", "planned-arrival", "planned-departure", "notes")
    IMPORT_IGNORED_KEYS = ("id", "assigned-at", "assigned_at")

    def __init__(self, store: Optional[YardStateStore] = None) -> None:
        self.settings = get_settings()
        self.store = store or yard_state_store

    def now(self) -> datetime:
        return self.settings.now()

    # ------------------------------------------------------------------ reads

    def dock_board(self) -> DockBoardResponse:
        return dock_board(self.store.get_snapshot(), self.settings.dock_numbers, now=self.now())

    def snapshot(self) -> Dict[str, Any]:
        snapshot, revision = self.store.get_state()
        return {
            "revision": revision,
            "updated_at": self.store.updated_at,
            "snapshot": snapshot.model_dump(mode="json", by_alias=True),
        }

    def list_records(self, side: str) -> List[OperativaRecord]:
        return list(self.store.get_snapshot().records(side))

    def get_record(self, side: str, record_id: str) -> OperativaRecord:
        _, record = self.store.get_snapshot().find(side, record_id)
        return record

    def check_conflict(self, side: str, record_id: str, dock: Any) -> ConflictResult:
        snapshot = self.store.get_snapshot()
        snapshot.find(side, record_id)
        return check_conflict(snapshot, dock, side, record_id)

    def evaluate_record(self, side: str, record_id: str) -> SlaEvaluation:
        return evaluate(self.get_record(side, record_id), self.now())

    def sla_summary(self) -> YardSummary:
        return build_summary(self.store.get_snapshot(), self.now())

    def catalog(self) -> Dict[str, Any]:
        return {
            "docks": list(self.settings.dock_numbers),
            "sides": self.store.side_names,
            "all_sides_label": self.settings.all_sides_label,
            "statuses": [status.value for status in RecordStatus if status is not RecordStatus.UNSET],
            "incidents": list(INCIDENT_CATALOG),
            "weekdays": list(WEEKDAY_LETTERS),
            "sla": {
                "wait_warn_min": self.settings.sla_wait_warn_min,
                "wait_crit_min": self.settings.sla_wait_crit_min,
                "tope_warn_min": self.settings.sla_tope_warn_min,
                "tope_icon_premin": self.settings.sla_tope_icon_premin,
            },
        }

    # ---------------------------------------------------------------- records

    def replace_snapshot(self, request: SnapshotReplaceRequest) -> Dict[str, Any]:
        revision = self.store.replace_snapshot(request.snapshot, expected_revision=request.expected_revision)
        logger.info("Yard snapshot replaced", revision=revision)
        return {"revision": revision}

    def add_record(self, side: str) -> OperativaRecord:
        record = OperativaRecord()

        def change(snapshot: YardSnapshot) -> Tuple[YardSnapshot, OperativaRecord]:
            return snapshot.with_side(side, [record, *snapshot.records(side)]), record

        created = self.store.apply(change)
        logger.info("Record added", side=side, record_id=created.id)
        return created

    def update_record(self, side: str, record_id: str, request: RecordUpdateRequest) -> OperativaRecord:
        """
        Patch a record's fields.

        A `dock` key goes through the same commit protocol as the dock
        endpoint: a dock held by another record raises DockConfirmationRequired
        unless `confirm_override` is set, and nothing is written.
        """
        patch = request.model_dump(exclude_unset=True, exclude={"confirm_override"})
        has_dock = "dock" in patch
        raw_dock = patch.pop("dock", None)
        if "status" in patch:
            patch["status"] = normalize_status(patch["status"])
        now = self.now()

        def change(snapshot: YardSnapshot) -> Tuple[YardSnapshot, OperativaRecord]:
            _, current = snapshot.find(side, record_id)
            draft = snapshot.with_record(side, current.model_copy(update=patch))
            if has_dock:
                result = commit_dock_value(
                    draft,
                    side,
                    record_id,
                    raw_dock,
                    now,
                    confirm_override=request.confirm_override,
                    docks=self.settings.dock_numbers,
                )
                if result.outcome is CommitOutcome.NEEDS_CONFIRMATION:
                    raise DockConfirmationRequired(result)
                draft = result.snapshot
            _, updated = draft.find(side, record_id)
            return draft, updated

        updated = self.store.apply(change)
        logger.info(
            "Record updated",
            side=side,
            record_id=record_id,
            fields=sorted([*patch.keys(), *(["dock"] if has_dock else [])]),
        )
        return updated

    def commit_dock(self, side: str, record_id: str, request: DockCommitRequest) -> DockCommitResult:
        now = self.now()

        def change(snapshot: YardSnapshot) -> Tuple[YardSnapshot, DockCommitResult]:
            result = commit_dock_value(
                snapshot,
                side,
                record_id,
                request.dock,
                now,
                confirm_override=request.confirm_override,
                docks=self.settings.dock_numbers,
            )
            return result.snapshot, result

        return self.store.apply(change)

    def remove_record(self, side: str, record_id: str) -> Dict[str, Any]:
        def change(snapshot: YardSnapshot) -> Tuple[YardSnapshot, None]:
            snapshot.find(side, record_id)
            remaining = [record for record in snapshot.records(side) if record.id != record_id]
            return snapshot.with_side(side, remaining), None

        self.store.apply(change)
        logger.info("Record removed", side=side, record_id=record_id)
        return {"side": side, "record_id": record_id, "removed": True}

    def clear_side(self, side: str) -> Dict[str, Any]:
        def change(snapshot: YardSnapshot) -> Tuple[YardSnapshot, int]:
            return snapshot.with_side(side, []), len(snapshot.records(side))

        removed = self.store.apply(change)
        logger.info("Side cleared", side=side, removed=removed)
        return {"side": side, "removed": removed}

    def stamp_milestone(
        self, side: str, record_id: str, field: MilestoneField, overwrite: bool = False
    ) -> MilestoneStampResult:
        now = self.now()

        def change(snapshot: YardSnapshot) -> Tuple[YardSnapshot, MilestoneStampResult]:
            result = stamp_milestone(snapshot, side, record_id, field, now, overwrite=overwrite)
            return result.snapshot, result

        result = self.store.apply(change)
        if result.outcome is CommitOutcome.COMMITTED:
            logger.info("Milestone stamped", side=side, record_id=record_id, field=field.value, value=result.value)
        return result

    # -------------------------------------------------------------- air cargo

    def air_cargo(self, side: str, record_id: str) -> AirCargoResponse:
        items = self.get_record(side, record_id).air_items
        return AirCargoResponse(items=items, totals=air_totals(items))

    def _change_air_items(self, side: str, record_id: str, edit) -> AirCargoResponse:
        def change(snapshot: YardSnapshot) -> Tuple[YardSnapshot, OperativaRecord]:
            _, current = snapshot.find(side, record_id)
            updated = edit(current)
            return snapshot.with_record(side, updated), updated

        updated = self.store.apply(change)
        return AirCargoResponse(items=updated.air_items, totals=air_totals(updated.air_items))

    def add_air_item(self, side: str, record_id: str, request: AirItemRequest) -> AirCargoResponse:
        item = AirItem.model_validate(request.model_dump(exclude_none=True))
        response = self._change_air_items(side, record_id, lambda record: with_air_item(record, item))
        logger.info("Air cargo line added", side=side, record_id=record_id, item_id=item.id)
        return response

    def update_air_item(self, side: str, record_id: str, item_id: str, request: AirItemRequest) -> AirCargoResponse:
        patch = request.model_dump(exclude_unset=True)
        return self._change_air_items(
            side, record_id, lambda record: with_air_item_patched(record, item_id, patch)
        )

    def remove_air_item(self, side: str, record_id: str, item_id: str) -> AirCargoResponse:
        response = self._change_air_items(side, record_id, lambda record: without_air_item(record, item_id))
        logger.info("Air cargo line removed", side=side, record_id=record_id, item_id=item_id)
        return response

    def _record_from_row(self, side: str, row: Dict[str, Any], index: int) -> Tuple[Optional[OperativaRecord], bool]:
        data = {key: value for key, value in row.items() if key not in self.IMPORT_IGNORED_KEYS}
        if all(is_blank(data.get(key)) for key in self.IMPORT_REQUIRED_ANY):
            return None, False

        try:
            data["status"] = normalize_status(data.get("status"))
        except ValueError:
            logger.warning("Unknown status on import row", side=side, row=index, status=data.get("status"))
            data["status"] = RecordStatus.UNSET

        dock_cleared = False
        try:
            data["dock"] = validate_dock_value(data.get("dock"), self.settings.dock_numbers)
        except InvalidDockValueError as exc:
            logger.warning("Clearing invalid dock on import row", side=side, row=index, dock=exc.value)
            data["dock"] = None
            dock_cleared = True
        return OperativaRecord.model_validate(data), dock_cleared

    def import_rows(self, side: str, request: ImportRowsRequest) -> Dict[str, Any]:
        """
        Replace a side with rows already parsed from a spreadsheet.

        Rows get fresh ids. When auto-assignment is on, template rules fill
        docks for the imported rows that came without one.
        """
        self.store.get_snapshot().records(side)
        records: List[OperativaRecord] = []
        skipped = 0
        cleared = 0
        for index, row in enumerate(request.rows):
            record, dock_cleared = self._record_from_row(side, row, index)
            if record is None:
                skipped += 1
                continue
            cleared += int(dock_cleared)
            records.append(record)

        auto_assign = self.settings.auto_assign_on_import if request.auto_assign is None else request.auto_assign
        rules = self.store.get_rules()
        now = self.now()

        def change(snapshot: YardSnapshot):
            imported = snapshot.with_side(side, records)
            assignments = []
            if auto_assign and rules:
                imported, assignments = apply_templates_to_side(
                    imported, side, rules, now, docks=self.settings.dock_numbers
                )
            return imported, assignments

        assignments = self.store.apply(change)
        logger.info(
            "Side imported",
            side=side,
            imported=len(records),
            skipped=skipped,
            cleared_docks=cleared,
            auto_assigned=len(assignments),
        )
        return {
            "side": side,
            "imported": len(records),
            "skipped": skipped,
            "cleared_docks": cleared,
            "assignments": [item.model_dump() for item in assignments],
        }

    def apply_templates(self, side: str) -> Dict[str, Any]:
        rules = self.store.get_rules()
        now = self.now()

        def change(snapshot: YardSnapshot):
            updated, assignments = apply_templates_to_side(
                snapshot, side, rules, now, docks=self.settings.dock_numbers
            )
            if not assignments:
                return snapshot, assignments
            return updated, assignments

        assignments = self.store.apply(change)
        logger.info("Templates applied", side=side, assigned=len(assignments))
        return {
            "side": side,
            "assigned": len(assignments),
            "assignments": [item.model_dump() for item in assignments],
        }

    # ------------------------------------------------------------------ rules

    def list_rules(self) -> List[TemplateRule]:
        return self.store.get_rules()

    def add_rule(self, rule: TemplateRule) -> TemplateRule:
        cleaned = clean_rules([rule])[0]
        self.store.replace_rules([*self.store.get_rules(), cleaned])
        logger.info("Template rule added", rule_id=cleaned.id, pattern=cleaned.pattern)
        return cleaned

    def update_rule(self, rule_id: str, request: TemplateRuleUpdateRequest) -> TemplateRule:
        rules = self.store.get_rules()
        for index, rule in enumerate(rules):
            if rule.id == rule_id:
                merged = {**rule.model_dump(by_alias=True), **request.model_dump(exclude_unset=True, by_alias=True)}
                rules[index] = clean_rules([merged])[0]
                self.store.replace_rules(rules)
                return rules[index]
        raise KeyError(rule_id)

    def remove_rule(self, rule_id: str) -> Dict[str, Any]:
        rules = self.store.get_rules()
        remaining = [rule for rule in rules if rule.id != rule_id]
        if len(remaining) == len(rules):
            raise KeyError(rule_id)
        self.store.replace_rules(remaining)
        return {"rule_id": rule_id, "removed": True}

    def replace_rules(self, raw: Any) -> List[TemplateRule]:
        rules = self.store.replace_rules(clean_rules(raw))
        logger.info("Template rules replaced", count=len(rules))
        return rules

    def save_preference(self, side: str, record_id: str) -> TemplateRule:
        """Turn a record's current dock and destination into a new top-of-list rule."""
        rule = rule_from_record(side, self.get_record(side, record_id), self.settings.dock_numbers)
        self.store.replace_rules([rule, *self.store.get_rules()])
        logger.info("Dock preference saved", side=side, pattern=rule.pattern, dock=rule.dock_numbers[0])
        return rule

    # ------------------------------------------------------------------- demo

    def seed_demo(self, request: DemoSeedRequest) -> Dict[str, Any]:
        """Reset the yard and fill it with a reproducible demo scenario."""
        rng = random.Random(request.seed)
        carriers = ["TRANSPORTES GARCIA", "LOGISTICA NORTE", "TRANSCOMA", "DISFRIMUR", "HERMANOS LOPEZ"]
        destinations = [
            "ZARA LOGISTICS",
            "MANGO LLIÇÀ",
            "INDITEX ARTEIXO",
            "EL CORTE INGLÉS VALDEMORO",
            "MERCADONA RIBARROJA",
            "LIDL TORREJÓN",
        ]
        now = self.now()
        sides = self.store.side_names
        free_docks = list(self.settings.dock_numbers)
        rng.shuffle(free_docks)

        def hhmm(offset_min: int) -> str:
            return (now + timedelta(minutes=offset_min)).strftime("%H:%M")

        snapshot = YardSnapshot.empty(sides)
        for _ in range(request.records):
            side = rng.choice(sides)
            record = OperativaRecord(
                carrier=rng.choice(carriers),
                plate=f"{rng.randint(0, 9999):04d}{''.join(rng.choice('BCDFGHJKLMNPRSTVWXYZ') for _ in range(3))}",
                destination=rng.choice(destinations),
                planned_arrival=hhmm(rng.randint(-90, 60)),
                planned_departure=hhmm(rng.randint(30, 180)),
                planned_departure_cutoff=hhmm(rng.randint(-20, 240)),
                status=rng.choice(list(RecordStatus)),
            )
            roll = rng.random()
            if free_docks and roll < 0.7:
                record = record.model_copy(
                    update={"dock": free_docks.pop(), "assigned_at": now - timedelta(minutes=rng.randint(0, 45))}
                )
                if roll < 0.35:
                    record = record.model_copy(update={"actual_arrival": hhmm(-rng.randint(5, 60))})
                if roll < 0.1:
                    record = record.model_copy(update={"actual_departure": hhmm(-rng.randint(0, 5))})
                if rng.random() < 0.2:
                    air = [
                        AirItem(
                            dest=rng.choice(["MAD", "BCN", "LHR", "JFK"]),
                            m3=f"{rng.uniform(0.5, 12):.2f}".replace(".", ","),
                            bx=str(rng.randint(1, 60)),
                        )
                        for _ in range(rng.randint(1, 3))
                    ]
                    record = record.model_copy(update={"air_items": air})
            if rng.random() < 0.15:
                record = record.model_copy(update={"incident": rng.choice(INCIDENT_CATALOG)})
            snapshot = snapshot.with_side(side, [record, *snapshot.records(side)])

        rules = clean_rules(
            [
                {"side": self.settings.all_sides_label, "pattern": "ZARA*", "dockNumbers": free_docks[:2], "priority": 10, "active": True},
                {"side": self.settings.all_sides_label, "pattern": "*mercadona*", "dockNumbers": free_docks[2:4], "priority": 5, "active": True},
            ]
        )
        self.store.reset()
        self.store.replace_rules(rules)
        revision = self.store.replace_snapshot(snapshot)
        logger.info("Demo yard seeded", seed=request.seed, records=request.records, revision=revision)
        return {
            "records_created": request.records,
            "rules_created": len(rules),
            "revision": revision,
        }


yard_engine = YardEngine()
