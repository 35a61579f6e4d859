from __future__ import annotations

# Queue service: booking and token lifecycle.
#
# This is the authoritative brain of a branch queue. It wires the components
# together:
#   booking -> counter + seat allocation -> token persisted as "waiting"
#   status updates -> timestamps, seat release, history, notifications
#   read models -> position, wait estimate, crowd density, analytics, heat map
#
# All durable state lives in the document store; the seat pool is the only
# process-local state and is injected so tests get a fresh one per case.

import logging
import threading
import uuid
from collections import defaultdict
from datetime import datetime, timedelta
from typing import Any, Callable, Iterable, Mapping

from .config import QueueConfig
from .counters import CounterAllocator
from .density import classify_count, crowd_density
from .errors import NotFoundError, InvalidTransitionError, StoreFailure
from .models import (
    BRANCHES,
    QUEUE_HISTORY,
    SEAT_RELEASING,
    SERVICE_TYPES,
    TOKENS,
    HistoryRecord,
    Priority,
    QueueEntry,
    TokenStatus,
    check_transition,
)
from .notifier import MessageLog, Notifier
from .position import order_waiting, resolve_position
from .seats import SeatPool
from .store import DocumentStore, new_id
from .wait_time import estimate_wait_minutes, round_half_up, service_minutes, wait_light

logger = logging.getLogger(__name__)

DEFAULT_SERVICE_TYPE = "consultation"

# Analytics charts cover opening hours only.
OPENING_HOURS = range(8, 19)

HEAT_MAP_ZONES = (
    ("consultation", "Consultation"),
    ("checkup", "Medical Checkup"),
    ("processing", "Document Processing"),
    ("payment", "Payment & Billing"),
)

_TIMESTAMP_FIELDS = {
    TokenStatus.ARRIVED: "arrived_at",
    TokenStatus.SERVING: "service_start_time",
    TokenStatus.COMPLETED: "service_end_time",
    TokenStatus.CANCELLED: "cancelled_at",
}


class QueueService:
    """Core business logic (testable without MQTT)."""

    def __init__(
        self,
        *,
        store: DocumentStore,
        seats: SeatPool,
        notifier: Notifier,
        allocator: CounterAllocator | None = None,
        messages: MessageLog | None = None,
        config: QueueConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.seats = seats
        self.notifier = notifier
        self.allocator = allocator or CounterAllocator(store)
        self.config = config or QueueConfig()
        self.clock = clock
        self.messages = messages or MessageLog(clock=clock)

        # Bookings for one branch run one at a time so queue numbers stay
        # gap-free even when a write fails half way.
        self._branch_locks: defaultdict[str, threading.Lock] = defaultdict(threading.Lock)
        self._locks_guard = threading.Lock()

    def _branch_lock(self, branch_id: str) -> threading.Lock:
        with self._locks_guard:
            return self._branch_locks[branch_id]

    def _load(self, token_id: str) -> QueueEntry:
        doc = self.store.get(TOKENS, token_id)
        if doc is None:
            raise NotFoundError(f"Token {token_id} not found")
        return QueueEntry.from_document(doc)

    def _notify(self, branch_id: str, action: str, message: str, **extra: Any) -> None:
        self.notifier.notify(branch_id, {"action": action, "message": message, **extra})

    # -------------------- booking --------------------

    def book_token(
        self,
        branch_id: str,
        service_type: str,
        user_name: str,
        user_phone: str | None = None,
        priority: str | Priority = Priority.NORMAL,
    ) -> QueueEntry:
        """Book one token and return it as stored.

        Counter allocation and store errors propagate: a booking either
        succeeds completely or fails visibly. A full seat pool is not an
        error, the token simply has no seat.
        """
        if not branch_id or not service_type or not user_name:
            raise ValueError("branch_id, service_type and user_name are required")

        entries = self._book(
            branch_id,
            service_type,
            [{"name": user_name, "phone": user_phone}],
            Priority.parse(priority),
        )
        entry = entries[0]

        self._notify(
            branch_id,
            "token_booked",
            f"New token #{entry.queue_number} created",
            token=entry.to_message(),
        )
        estimate = estimate_wait_minutes(
            self.store, branch_id, service_type, config=self.config, clock=self.clock
        )
        self.messages.booking_confirmation(entry, estimate)
        return entry

    def group_book(
        self,
        branch_id: str,
        service_type: str,
        members: Iterable[Mapping[str, Any]],
        priority: str | Priority = Priority.NORMAL,
    ) -> tuple[str, list[QueueEntry]]:
        """Book consecutive tokens for a family or group."""
        members = list(members)
        if not branch_id or not service_type or not members:
            raise ValueError("branch_id, service_type and members are required")
        if any(not m.get("name") for m in members):
            raise ValueError("every member needs a name")

        group_id = f"GRP_{uuid.uuid4().hex[:10]}"
        entries = self._book(
            branch_id, service_type, members, Priority.parse(priority), group_id=group_id
        )
        self._notify(
            branch_id,
            "group_booked",
            f"Group of {len(entries)} booked",
            group_id=group_id,
            count=len(entries),
        )
        for entry in entries:
            self.messages.booking_confirmation(entry)
        return group_id, entries

    def _book(
        self,
        branch_id: str,
        service_type: str,
        members: list[Mapping[str, Any]],
        priority: Priority,
        *,
        group_id: str | None = None,
    ) -> list[QueueEntry]:
        counter = self.allocator.allocate(branch_id, service_type)
        size = len(members)

        with self._branch_lock(branch_id):
            last = self.store.increment(BRANCHES, branch_id, "last_queue_number", size)
            first = last - size + 1
            now = self.clock()

            entries: list[QueueEntry] = []
            try:
                for i, member in enumerate(members):
                    token_id = new_id()
                    seat = self.seats.assign(branch_id, token_id)
                    entry = QueueEntry(
                        token_id=token_id,
                        queue_number=first + i,
                        branch_id=branch_id,
                        service_type=service_type,
                        user_name=str(member["name"]),
                        user_phone=str(member.get("phone") or "N/A"),
                        priority=priority,
                        assigned_counter=counter.id,
                        assigned_counter_name=counter.name,
                        assigned_seat=seat.id if seat else None,
                        created_at=now,
                    )
                    if group_id is not None:
                        entry.group_id = group_id
                        entry.group_index = i + 1
                        entry.group_size = size
                    entries.append(entry)
                    self.store.set(TOKENS, token_id, entry.to_document())
                self.store.set(BRANCHES, branch_id, {"updated_at": now}, merge=True)
            except StoreFailure:
                # Undo the partial booking so the next number is reused.
                for entry in entries:
                    self.seats.release(branch_id, entry.token_id)
                    self.store.delete(TOKENS, entry.token_id)
                self.store.increment(BRANCHES, branch_id, "last_queue_number", -size)
                raise

        logger.info(
            "Booked %d token(s) #%d-#%d at %s/%s on %s",
            size,
            first,
            last,
            branch_id,
            service_type,
            counter.id,
        )
        return entries

    # -------------------- lifecycle --------------------

    def update_status(self, token_id: str, status: str | TokenStatus) -> QueueEntry:
        """Move a token to `status`.

        Raises:
            InvalidTransitionError: unknown status, disallowed move, or an
                attempt to set no-show (only the sweeper does that).
            NotFoundError: no such token.
        """
        target = TokenStatus.parse(status)
        if target is TokenStatus.NO_SHOW:
            raise InvalidTransitionError("no-show is assigned automatically after the timeout")

        entry = self._load(token_id)
        check_transition(entry.status, target)

        now = self.clock()
        changes: dict[str, Any] = {"status": target.value}
        stamp = _TIMESTAMP_FIELDS.get(target)
        if stamp is not None:
            changes[stamp] = now
            setattr(entry, stamp, now)
        entry.status = target

        self.store.update(TOKENS, token_id, changes)

        if target in SEAT_RELEASING:
            self.seats.release(entry.branch_id, token_id)
        if target is TokenStatus.COMPLETED:
            self._record_history(entry, now)
        if target is TokenStatus.SERVING:
            self.messages.turn_notification(entry)

        action = "token_cancelled" if target is TokenStatus.CANCELLED else "token_status_updated"
        self._notify(
            entry.branch_id,
            action,
            f"Token #{entry.queue_number} status: {target.value}",
            token_id=token_id,
            status=target.value,
            token=entry.to_message(),
        )
        return entry

    def cancel_token(self, token_id: str) -> QueueEntry:
        return self.update_status(token_id, TokenStatus.CANCELLED)

    def check_in(self, token_id: str) -> QueueEntry:
        """Kiosk self check-in. Only waiting tokens can check in."""
        entry = self._load(token_id)
        try:
            check_transition(entry.status, TokenStatus.ARRIVED)
        except InvalidTransitionError as e:
            raise InvalidTransitionError(f"Token is already {entry.status.value}") from e

        now = self.clock()
        self.store.update(
            TOKENS, token_id, {"status": TokenStatus.ARRIVED.value, "arrived_at": now}
        )
        entry.status = TokenStatus.ARRIVED
        entry.arrived_at = now

        self.messages.check_in_confirmation(entry)
        self._notify(
            entry.branch_id,
            "token_checked_in",
            f"Token #{entry.queue_number} checked in",
            token_id=token_id,
        )
        return entry

    def _record_history(self, entry: QueueEntry, now: datetime) -> HistoryRecord:
        record = HistoryRecord.from_entry(entry, history_id=new_id(), recorded_at=now)
        self.store.set(QUEUE_HISTORY, record.history_id, record.to_document())
        return record

    # -------------------- read models --------------------

    def estimated_wait(self, branch_id: str, service_type: str) -> int:
        return estimate_wait_minutes(
            self.store, branch_id, service_type, config=self.config, clock=self.clock
        )

    def token_details(self, token_id: str) -> dict[str, Any]:
        entry = self._load(token_id)
        position = resolve_position(self.store, entry.branch_id, entry.service_type, token_id)
        return {
            "token": entry.to_message(),
            "estimated_wait": self.estimated_wait(entry.branch_id, entry.service_type),
            "position": position.position,
            "position_message": position.message,
            "total_in_queue": position.total_in_queue,
            "crowd_density": crowd_density(self.store, entry.branch_id).to_message(),
        }

    def _tokens(self, branch_id: str, status: TokenStatus, service_type: str | None) -> list[QueueEntry]:
        filters = [("branch_id", "==", branch_id), ("status", "==", status.value)]
        if service_type:
            filters.append(("service_type", "==", service_type))
        return [QueueEntry.from_document(d) for d in self.store.query(TOKENS, filters)]

    def queue_status(self, branch_id: str, service_type: str | None = None) -> dict[str, Any]:
        """Live queue of a branch (optionally one service type) for dashboards."""
        if not branch_id:
            raise ValueError("branch_id is required")
        waiting = self._tokens(branch_id, TokenStatus.WAITING, service_type)
        serving = self._tokens(branch_id, TokenStatus.SERVING, service_type)
        active = order_waiting([*waiting, *serving])
        return {
            "branch_id": branch_id,
            "waiting_count": len(waiting),
            "currently_serving": serving[0].to_message() if serving else None,
            "estimated_wait": self.estimated_wait(branch_id, service_type or DEFAULT_SERVICE_TYPE),
            "crowd_density": crowd_density(self.store, branch_id).to_message(),
            "tokens": [e.to_message() for e in active],
        }

    def seat_availability(self, branch_id: str) -> dict[str, Any]:
        return self.seats.availability(branch_id)

    def release_seat(self, branch_id: str, token_id: str) -> bool:
        return self.seats.release(branch_id, token_id)

    def counter_status(self, branch_id: str) -> list[dict[str, Any]]:
        return self.allocator.counter_status(branch_id)

    def traffic_lights(
        self, branch_id: str, service_types: Iterable[str] = SERVICE_TYPES
    ) -> list[dict[str, Any]]:
        lights = []
        for svc in service_types:
            wait = self.estimated_wait(branch_id, svc)
            lights.append(
                {"service": svc, "wait_time": wait, "color": wait_light(wait), "label": f"{wait} min"}
            )
        return lights

    def _today(self) -> tuple[datetime, datetime]:
        today = self.clock().replace(hour=0, minute=0, second=0, microsecond=0)
        return today, today + timedelta(days=1)

    def analytics(self, branch_id: str) -> dict[str, Any]:
        """Today's figures for one branch."""
        today, tomorrow = self._today()

        tokens = [
            QueueEntry.from_document(d)
            for d in self.store.query(
                TOKENS,
                [("branch_id", "==", branch_id), ("created_at", ">=", today), ("created_at", "<", tomorrow)],
            )
        ]
        completed = [
            HistoryRecord.from_document(d)
            for d in self.store.query(
                QUEUE_HISTORY,
                [("branch_id", "==", branch_id), ("recorded_at", ">=", today), ("recorded_at", "<", tomorrow)],
            )
        ]

        durations: list[int] = []
        per_hour: dict[int, int] = defaultdict(int)
        per_hour_minutes: dict[int, list[int]] = defaultdict(list)
        per_service: dict[str, list[int]] = defaultdict(list)
        for record in completed:
            if record.service_start_time is None or record.service_end_time is None:
                continue
            minutes = service_minutes(record.service_start_time, record.service_end_time)
            hour = record.service_start_time.hour
            durations.append(minutes)
            per_hour[hour] += 1
            per_hour_minutes[hour].append(minutes)
            per_service[record.service_type].append(minutes)

        cancelled = sum(1 for t in tokens if t.status is TokenStatus.CANCELLED)
        no_shows = sum(1 for t in tokens if t.status is TokenStatus.NO_SHOW)
        # Earliest hour wins a tie.
        peak_hour, peak_count = max(sorted(per_hour.items()), key=lambda kv: kv[1], default=(None, 0))

        return {
            "branch_id": branch_id,
            "total_tokens_today": len(tokens),
            "completed_tokens": len(completed),
            "cancelled_tokens": cancelled,
            "no_show_count": no_shows,
            "no_show_percentage": round(no_shows * 100 / len(tokens), 2) if tokens else 0.0,
            "average_service_time": _mean_minutes(durations),
            "peak_hour": {
                "hour": peak_hour,
                "count": peak_count,
                "label": f"{peak_hour}:00 - {peak_hour + 1}:00" if peak_hour is not None else "N/A",
            },
            "avg_service_time_per_service": [
                {
                    "service": svc,
                    "avg_service_time": _mean_minutes(per_service[svc]),
                    "count": len(per_service[svc]),
                }
                for svc in SERVICE_TYPES
            ],
            "hourly": [{"hour": f"{h}:00", "tokens": per_hour.get(h, 0)} for h in OPENING_HOURS],
            "wait_time_trend": [
                {
                    "hour": f"{h}:00",
                    "avg_service_time": _mean_minutes(per_hour_minutes.get(h, [])),
                    "tokens": per_hour.get(h, 0),
                }
                for h in OPENING_HOURS
            ],
        }

    def heat_map(self, branch_id: str) -> dict[str, Any]:
        """Crowding per service zone, now and hour by hour today.

        Zones band active (waiting + serving) tokens at 2 and 5, the whole
        branch at 6 and 15. The hourly grid counts tokens booked today per
        zone with the zone bands.
        """
        if not branch_id:
            raise ValueError("branch_id is required")
        today, tomorrow = self._today()
        tokens = [
            QueueEntry.from_document(d)
            for d in self.store.query(TOKENS, [("branch_id", "==", branch_id)])
        ]
        active = [t for t in tokens if t.status in (TokenStatus.WAITING, TokenStatus.SERVING)]
        booked_today = [t for t in tokens if t.created_at is not None and today <= t.created_at < tomorrow]

        zones = []
        grid = []
        for zone, label in HEAT_MAP_ZONES:
            waiting = sum(1 for t in active if t.service_type == zone and t.status is TokenStatus.WAITING)
            serving = sum(1 for t in active if t.service_type == zone and t.status is TokenStatus.SERVING)
            zones.append(
                {
                    "zone": zone,
                    "label": label,
                    "waiting": waiting,
                    "serving": serving,
                    **_band(waiting + serving, medium=2, high=5),
                }
            )

            per_hour: dict[int, int] = defaultdict(int)
            for t in booked_today:
                if t.service_type == zone:
                    per_hour[t.created_at.hour] += 1
            grid.append(
                {
                    "zone": zone,
                    "label": label,
                    "cells": [{"hour": h, **_band(per_hour.get(h, 0), medium=2, high=5)} for h in OPENING_HOURS],
                }
            )

        return {
            "branch_id": branch_id,
            "overall": _band(len(active), medium=6, high=15),
            "zones": zones,
            "hourly_grid": grid,
            "hours": list(OPENING_HOURS),
        }


def _mean_minutes(values: list[int]) -> int:
    return round_half_up(sum(values) / len(values)) if values else 0


def _band(count: int, *, medium: int, high: int) -> dict[str, Any]:
    level = classify_count(count, medium=medium, high=high)
    return {"count": count, "level": level.value, "color": level.color}
