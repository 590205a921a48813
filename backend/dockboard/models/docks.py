"""Domain models for yard sides, truck records, dock occupancy, SLA timers and template rules."""
from __future__ import annotations

import math
import uuid
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


WEEKDAY_LETTERS: Tuple[str, ...] = ("L", "M", "X", "J", "V", "S", "D")

INCIDENT_CATALOG: Tuple[str, ...] = (
    "RETRASO TRANSPORTISTA",
    "RETRASO CD",
    "RETRASO DOCUMENTACION",
    "CAMION ANULADO",
    "CAMION NO APTO",
)

_STATUS_PLACEHOLDERS = {"", "*", "-", "N/A", "NA"}


def new_record_id() -> str:
    return uuid.uuid4().hex


def is_blank(value: Any) -> bool:
    return value is None or str(value).strip() == ""


def coerce_dock_number(value: Any) -> Optional[int]:
    """
    Parse a raw dock value into an integer.

    Blank values mean "no dock". Numeric strings and integral floats are
    accepted; anything else raises ValueError. Membership in the configured
    dock set is checked by the engine, not here.
    """
    if value is None:
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid dock value {value!r}")
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        raise ValueError(f"Invalid dock value {value!r}") from None
    if not math.isfinite(number) or not number.is_integer():
        raise ValueError(f"Invalid dock value {value!r}")
    return int(number)


class RecordStatus(str, Enum):
    """Truck status on the dock sheet; UNSET means nothing was recorded."""

    UNSET = ""
    OK = "OK"
    CARGANDO = "CARGANDO"
    ANULADO = "ANULADO"


def normalize_status(value: Any) -> RecordStatus:
    """Map sheet placeholders (`*`, `-`, `N/A`) to UNSET and uppercase the rest."""
    if isinstance(value, RecordStatus):
        return value
    text = str(value if value is not None else "").strip().upper()
    if text in _STATUS_PLACEHOLDERS:
        return RecordStatus.UNSET
    return RecordStatus(text)


class DockOccupancy(str, Enum):
    """Live state of a physical dock."""

    LIBRE = "LIBRE"
    ESPERA = "ESPERA"
    OCUPADO = "OCUPADO"

    @property
    def severity(self) -> int:
        return _OCCUPANCY_SEVERITY[self]


_OCCUPANCY_SEVERITY = {
    DockOccupancy.LIBRE: 0,
    DockOccupancy.ESPERA: 1,
    DockOccupancy.OCUPADO: 2,
}


class SlaLevel(str, Enum):
    """Severity of one SLA axis."""

    WARN = "warn"
    CRIT = "crit"


class AirItem(BaseModel):
    """
    One air-freight line loaded on a truck.

    `m3` and `bx` stay as the text the operator typed (Spanish decimal
    commas included); totals parse them leniently.
    """

    id: str = Field(default_factory=new_record_id)
    dest: str = ""
    m3: str = ""
    bx: str = ""

    @field_validator("dest", "m3", "bx", mode="before")
    @classmethod
    def _text_field(cls, value: Any) -> str:
        return "" if value is None else str(value)


class AirTotals(BaseModel):
    m3: float = 0.0
    bx: int = 0


class OperativaRecord(BaseModel):
    """One truck job registered on a side."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_record_id)
    carrier: Optional[str] = None
    plate: Optional[str] = None
    destination: Optional[str] = None
    planned_arrival: Optional[str] = Field(default=None, alias="planned-arrival")
    planned_departure: Optional[str] = Field(default=None, alias="planned-departure")
    planned_departure_cutoff: Optional[str] = Field(default=None, alias="planned-departure-cutoff")
    notes: Optional[str] = None
    dock: Optional[int] = None
    seal: Optional[str] = None
    actual_arrival: Optional[str] = Field(default=None, alias="actual-arrival")
    actual_departure: Optional[str] = Field(default=None, alias="actual-departure")
    incident: Optional[str] = None
    status: RecordStatus = RecordStatus.UNSET
    assigned_at: Optional[datetime] = Field(default=None, alias="assigned-at")
    air_items: List[AirItem] = Field(default_factory=list, alias="air-items")

    @field_validator(
        "carrier",
        "plate",
        "destination",
        "planned_arrival",
        "planned_departure",
        "planned_departure_cutoff",
        "notes",
        "seal",
        "actual_arrival",
        "actual_departure",
        "incident",
        mode="before",
    )
    @classmethod
    def _text_field(cls, value: Any) -> Optional[str]:
        if value is None:
            return None
        return str(value)

    @field_validator("dock", mode="before")
    @classmethod
    def _dock_field(cls, value: Any) -> Optional[int]:
        return coerce_dock_number(value)

    @field_validator("status", mode="before")
    @classmethod
    def _status_field(cls, value: Any) -> RecordStatus:
        return normalize_status(value)

    @property
    def has_arrived(self) -> bool:
        return not is_blank(self.actual_arrival)

    @property
    def has_departed(self) -> bool:
        return not is_blank(self.actual_departure)

    @property
    def has_air_cargo(self) -> bool:
        return len(self.air_items) > 0


class YardSnapshot(BaseModel):
    """Full yard state: every side with its ordered records."""

    sides: Dict[str, List[OperativaRecord]] = Field(default_factory=dict)

    @classmethod
    def empty(cls, side_names: List[str]) -> "YardSnapshot":
        return cls(sides={name: [] for name in side_names})

    def records(self, side: str) -> List[OperativaRecord]:
        if side not in self.sides:
            raise KeyError(side)
        return self.sides[side]

    def find(self, side: str, record_id: str) -> Tuple[int, OperativaRecord]:
        for index, record in enumerate(self.records(side)):
            if record.id == record_id:
                return index, record
        raise KeyError(record_id)

    def iter_records(self) -> Iterator[Tuple[str, OperativaRecord]]:
        for side, records in self.sides.items():
            for record in records:
                yield side, record

    def with_side(self, side: str, records: List[OperativaRecord]) -> "YardSnapshot":
        """Return a new snapshot where `side` holds `records`; other sides are shared."""
        self.records(side)
        sides = dict(self.sides)
        sides[side] = list(records)
        return YardSnapshot(sides=sides)

    def with_record(self, side: str, record: OperativaRecord) -> "YardSnapshot":
        index, _ = self.find(side, record.id)
        records = list(self.records(side))
        records[index] = record
        return self.with_side(side, records)


class DockStatus(BaseModel):
    """Consolidated occupancy of one dock."""

    dock: int
    state: DockOccupancy = DockOccupancy.LIBRE
    side: Optional[str] = None
    record: Optional[OperativaRecord] = None
    has_air: bool = False
    tope_icon: Optional[SlaLevel] = None


class DockBoardResponse(BaseModel):
    """Dock board with per-state counts."""

    docks: List[DockStatus]
    counts_by_state: Dict[str, int]


class ConflictInfo(BaseModel):
    """Owner of a dock that another record is trying to claim."""

    side: str
    record: OperativaRecord
    state: DockOccupancy


class ConflictResult(BaseModel):
    conflict: bool = False
    info: Optional[ConflictInfo] = None


class CommitOutcome(str, Enum):
    """Result of the dock commit protocol."""

    COMMITTED = "committed"
    NEEDS_CONFIRMATION = "needs_confirmation"


class DockCommitResult(BaseModel):
    outcome: CommitOutcome
    dock: Optional[int] = None
    conflict: Optional[ConflictInfo] = None
    snapshot: YardSnapshot


class WaitTimer(BaseModel):
    level: Optional[SlaLevel] = None
    minutes: int = 0


class CutoffTimer(BaseModel):
    level: Optional[SlaLevel] = None
    diff_minutes: int = 0


class SlaEvaluation(BaseModel):
    """Per-record wait and cutoff timers with a human-readable message."""

    wait: WaitTimer = Field(default_factory=WaitTimer)
    tope: CutoffTimer = Field(default_factory=CutoffTimer)
    message: str = ""


class SideRecord(BaseModel):
    """A record tagged with its side, optionally with its SLA evaluation."""

    side: str
    record: OperativaRecord
    sla: Optional[SlaEvaluation] = None


class SlaBucket(BaseModel):
    warn: int = 0
    crit: int = 0
    rows: List[SideRecord] = Field(default_factory=list)


class YardSummary(BaseModel):
    """Yard-wide summary by status, incidents and SLA severity."""

    total: int = 0
    by_status: Dict[str, List[SideRecord]] = Field(default_factory=dict)
    incidents: List[SideRecord] = Field(default_factory=list)
    sla_wait: SlaBucket = Field(default_factory=SlaBucket)
    sla_tope: SlaBucket = Field(default_factory=SlaBucket)


class TemplateRule(BaseModel):
    """Auto-assignment preference mapping a destination pattern to docks."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(default_factory=new_record_id)
    side: str = "Todos"
    pattern: str = ""
    dock_numbers: List[int] = Field(default_factory=list, alias="dockNumbers")
    priority: float = 0
    weekdays: List[str] = Field(default_factory=list)
    active: bool = True


class DockAssignment(BaseModel):
    """One dock written by the template batch."""

    record_id: str
    dock: int


class RecordUpdateRequest(BaseModel):
    """Patch fields for an existing record. Omitted fields are left untouched."""

    model_config = ConfigDict(populate_by_name=True)

    carrier: Optional[str] = None
    plate: Optional[str] = None
    destination: Optional[str] = None
    planned_arrival: Optional[str] = Field(default=None, alias="planned-arrival")
    planned_departure: Optional[str] = Field(default=None, alias="planned-departure")
    planned_departure_cutoff: Optional[str] = Field(default=None, alias="planned-departure-cutoff")
    notes: Optional[str] = None
    dock: Optional[Union[int, str]] = None
    seal: Optional[str] = None
    actual_arrival: Optional[str] = Field(default=None, alias="actual-arrival")
    actual_departure: Optional[str] = Field(default=None, alias="actual-departure")
    incident: Optional[str] = None
    status: Optional[str] = None
    confirm_override: bool = False


class DockCommitRequest(BaseModel):
    """Dock value typed by an operator, plus an explicit override flag."""

    dock: Optional[Union[int, str]] = None
    confirm_override: bool = False


class ImportRowsRequest(BaseModel):
    """Rows already parsed by the spreadsheet collaborator, keyed by wire field names."""

    rows: List[Dict[str, Any]] = Field(default_factory=list)
    auto_assign: Optional[bool] = None


class TemplateRuleUpdateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    side: Optional[str] = None
    pattern: Optional[str] = None
    dock_numbers: Optional[List[int]] = Field(default=None, alias="dockNumbers")
    priority: Optional[float] = None
    weekdays: Optional[List[str]] = None
    active: Optional[bool] = None


class SnapshotReplaceRequest(BaseModel):
    """Full snapshot pushed by another client; last write wins."""

    snapshot: YardSnapshot
    expected_revision: Optional[int] = Field(default=None, ge=0)


class DemoSeedRequest(BaseModel):
    """Generate a reproducible demo yard."""

    seed: int = 42
    records: int = Field(default=20, ge=1, le=200)


class AirItemRequest(BaseModel):
    """Fields of an air-freight line; omitted fields are left untouched on update."""

    dest: Optional[str] = None
    m3: Optional[Union[str, float]] = None
    bx: Optional[Union[str, int]] = None


class AirCargoResponse(BaseModel):
    items: List[AirItem] = Field(default_factory=list)
    totals: AirTotals = Field(default_factory=AirTotals)


class MilestoneField(str, Enum):
    """Actual-time fields the operator can stamp with the current yard time."""

    ARRIVAL = "actual_arrival"
    DEPARTURE = "actual_departure"


class MilestoneStampRequest(BaseModel):
    overwrite: bool = False


class MilestoneStampResult(BaseModel):
    outcome: CommitOutcome
    field: MilestoneField
    value: str
    previous: Optional[str] = None
    snapshot: YardSnapshot
