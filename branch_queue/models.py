from __future__ import annotations

# Domain types shared by every component.
#
# Documents in the store are plain dicts keyed by the dataclass field names.
# Enums are stored as their string values, timestamps as `datetime` objects.
# `to_message()` produces the JSON-safe form used on MQTT.

from dataclasses import asdict, dataclass, field, fields
from datetime import datetime
from enum import Enum
from typing import Any

from .errors import InvalidTransitionError

TOKENS = "tokens"
BRANCHES = "branches"
QUEUE_HISTORY = "queue_history"

SERVICE_TYPES = ("consultation", "checkup", "processing", "payment", "registration")


class Priority(str, Enum):
    NORMAL = "normal"
    SENIOR = "senior"
    EMERGENCY = "emergency"

    @property
    def weight(self) -> int:
        """Sort weight, lower is served first."""
        return _PRIORITY_WEIGHTS[self]

    @classmethod
    def parse(cls, value: Any) -> "Priority":
        """Lenient parse: anything unrecognised books as NORMAL."""
        try:
            return cls(value)
        except ValueError:
            return cls.NORMAL


_PRIORITY_WEIGHTS = {Priority.EMERGENCY: 0, Priority.SENIOR: 1, Priority.NORMAL: 2}


class TokenStatus(str, Enum):
    WAITING = "waiting"
    ARRIVED = "arrived"
    SERVING = "serving"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    NO_SHOW = "no-show"

    @property
    def is_terminal(self) -> bool:
        return not ALLOWED_TRANSITIONS[self]

    @classmethod
    def parse(cls, value: Any) -> "TokenStatus":
        try:
            return cls(value)
        except ValueError:
            allowed = ", ".join(s.value for s in cls)
            raise InvalidTransitionError(f"Invalid status {value!r}. Allowed: {allowed}") from None


ALLOWED_TRANSITIONS: dict[TokenStatus, frozenset[TokenStatus]] = {
    TokenStatus.WAITING: frozenset(
        {TokenStatus.ARRIVED, TokenStatus.SERVING, TokenStatus.CANCELLED, TokenStatus.NO_SHOW}
    ),
    TokenStatus.ARRIVED: frozenset({TokenStatus.SERVING, TokenStatus.CANCELLED}),
    TokenStatus.SERVING: frozenset({TokenStatus.COMPLETED, TokenStatus.CANCELLED}),
    TokenStatus.COMPLETED: frozenset(),
    TokenStatus.CANCELLED: frozenset(),
    TokenStatus.NO_SHOW: frozenset(),
}

# Statuses that free the waiting-area seat.
SEAT_RELEASING = frozenset({TokenStatus.COMPLETED, TokenStatus.CANCELLED, TokenStatus.NO_SHOW})


def check_transition(current: TokenStatus, target: TokenStatus) -> None:
    if target not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransitionError(f"Cannot move token from {current.value} to {target.value}")


def _json_value(value: Any) -> Any:
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (list, tuple, frozenset)):
        return [_json_value(v) for v in value]
    return value


@dataclass
class QueueEntry:
    """One customer's token."""

    token_id: str
    queue_number: int
    branch_id: str
    service_type: str
    user_name: str
    user_phone: str = "N/A"
    priority: Priority = Priority.NORMAL
    status: TokenStatus = TokenStatus.WAITING
    assigned_counter: str | None = None
    assigned_counter_name: str | None = None
    assigned_seat: str | None = None
    created_at: datetime | None = None
    arrived_at: datetime | None = None
    service_start_time: datetime | None = None
    service_end_time: datetime | None = None
    no_show_at: datetime | None = None
    cancelled_at: datetime | None = None
    group_id: str | None = None
    group_index: int | None = None
    group_size: int | None = None

    def to_document(self) -> dict[str, Any]:
        doc = asdict(self)
        doc["priority"] = self.priority.value
        doc["status"] = self.status.value
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "QueueEntry":
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in doc.items() if k in known}
        data["priority"] = Priority.parse(data.get("priority"))
        data["status"] = TokenStatus(data.get("status", TokenStatus.WAITING.value))
        return cls(**data)

    def to_message(self) -> dict[str, Any]:
        return {k: _json_value(v) for k, v in self.to_document().items()}


@dataclass(frozen=True)
class HistoryRecord:
    """Snapshot of a token taken when it completed. Never mutated."""

    history_id: str
    token_id: str
    queue_number: int
    branch_id: str
    service_type: str
    priority: Priority
    assigned_counter: str | None
    created_at: datetime | None
    service_start_time: datetime | None
    service_end_time: datetime | None
    recorded_at: datetime
    status: TokenStatus = TokenStatus.COMPLETED

    @classmethod
    def from_entry(cls, entry: QueueEntry, *, history_id: str, recorded_at: datetime) -> "HistoryRecord":
        return cls(
            history_id=history_id,
            token_id=entry.token_id,
            queue_number=entry.queue_number,
            branch_id=entry.branch_id,
            service_type=entry.service_type,
            priority=entry.priority,
            assigned_counter=entry.assigned_counter,
            created_at=entry.created_at,
            service_start_time=entry.service_start_time,
            service_end_time=entry.service_end_time,
            recorded_at=recorded_at,
        )

    def to_document(self) -> dict[str, Any]:
        doc = asdict(self)
        doc["priority"] = self.priority.value
        doc["status"] = self.status.value
        return doc

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "HistoryRecord":
        known = {f.name for f in fields(cls)}
        data = {k: v for k, v in doc.items() if k in known}
        data["priority"] = Priority.parse(data.get("priority"))
        data["status"] = TokenStatus(data.get("status", TokenStatus.COMPLETED.value))
        return cls(**data)


@dataclass(frozen=True)
class Counter:
    """A service point. `x`/`y` are floor-plan coordinates for dashboards."""

    id: str
    name: str
    services: frozenset[str] = field(default_factory=frozenset)
    x: int = 0
    y: int = 0

    def serves(self, service_type: str) -> bool:
        return service_type in self.services

    def to_message(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "services": sorted(self.services),
            "x": self.x,
            "y": self.y,
        }


@dataclass
class Seat:
    id: str
    row: int
    col: int
    occupied: bool = False
    token_id: str | None = None

    def to_message(self) -> dict[str, Any]:
        return asdict(self)
