"""Notification hooks.

The core reports queue changes through `Notifier.notify(branch_id, payload)`
and never waits for an acknowledgement. Two implementations ship:

- `MqttNotifier` publishes each event on the branch's events topic.
- `InMemoryNotifier` keeps the events in memory (local runs and tests).

`MessageLog` simulates the SMS / WhatsApp messages sent to customers.
Nothing leaves the process; messages are logged and kept for inspection.
"""

from __future__ import annotations

import itertools
import logging
import threading
from collections import deque
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any, Callable, Protocol

from .topics import DEFAULT_NAMESPACE, branch_events

if TYPE_CHECKING:
    from .models import QueueEntry
    from .mqtt_client import MqttClient

logger = logging.getLogger(__name__)


class Notifier(Protocol):
    def notify(self, branch_id: str, payload: dict[str, Any]) -> None: ...


class InMemoryNotifier:
    """Keeps the last `maxlen` events as `(branch_id, payload)` pairs."""

    def __init__(self, maxlen: int = 500) -> None:
        self._lock = threading.Lock()
        self._events: deque[tuple[str, dict[str, Any]]] = deque(maxlen=maxlen)

    def notify(self, branch_id: str, payload: dict[str, Any]) -> None:
        with self._lock:
            self._events.append((branch_id, dict(payload)))

    def events(self, branch_id: str | None = None) -> list[tuple[str, dict[str, Any]]]:
        with self._lock:
            return [e for e in self._events if branch_id is None or e[0] == branch_id]


class MqttNotifier:
    """Publishes events on `<ns>/branches/<branch_id>/events`."""

    def __init__(self, *, mqtt: MqttClient, namespace: str = DEFAULT_NAMESPACE) -> None:
        self.mqtt = mqtt
        self.namespace = namespace

    def notify(self, branch_id: str, payload: dict[str, Any]) -> None:
        msg = {"type": "queue_updated", "branch_id": branch_id, **payload}
        try:
            self.mqtt.publish(branch_events(branch_id, self.namespace), msg)
        except (OSError, ValueError, TypeError):
            # Fire and forget: a lost refresh hint must not fail the caller.
            logger.exception("Failed to publish %s event for %s", payload.get("action"), branch_id)


@dataclass(frozen=True)
class OutboundMessage:
    id: str
    channel: str
    to: str
    message: str
    timestamp: str
    status: str = "delivered"

    def to_message(self) -> dict[str, Any]:
        return asdict(self)


class MessageLog:
    """Simulated SMS / WhatsApp gateway."""

    def __init__(self, *, maxlen: int = 200, clock: Callable[[], datetime] = datetime.now) -> None:
        self._clock = clock
        self._lock = threading.Lock()
        self._seq = itertools.count(1)
        self._log: deque[OutboundMessage] = deque(maxlen=maxlen)

    def _send(self, channel: str, phone: str, message: str) -> OutboundMessage:
        with self._lock:
            entry = OutboundMessage(
                id=f"{channel.lower()}_{next(self._seq)}",
                channel=channel,
                to=phone,
                message=message,
                timestamp=self._clock().isoformat(),
            )
            self._log.append(entry)
        logger.info("[%s -> %s] %s", channel, phone, message)
        return entry

    def send_sms(self, phone: str, message: str) -> OutboundMessage:
        return self._send("SMS", phone, message)

    def send_whatsapp(self, phone: str, message: str) -> OutboundMessage:
        return self._send("WhatsApp", phone, message)

    def recent(self, limit: int = 50) -> list[OutboundMessage]:
        """Newest first."""
        with self._lock:
            items = list(self._log)
        return items[::-1][:limit]

    # -------------------- customer messages --------------------

    def booking_confirmation(self, entry: QueueEntry, estimated_wait: int | None = None) -> str:
        wait = "?" if estimated_wait is None else str(estimated_wait)
        msg = (
            f"Token #{entry.queue_number} booked for {entry.service_type}. "
            f"Estimated wait: ~{wait} min. Track ID: {entry.token_id}"
        )
        self.send_sms(entry.user_phone, msg)
        return msg

    def turn_notification(self, entry: QueueEntry) -> str:
        msg = (
            f"Dear {entry.user_name}, your turn has come for {entry.service_type}! "
            f"Token #{entry.queue_number}. Please proceed to {entry.assigned_counter_name or 'the counter'}."
        )
        self.send_sms(entry.user_phone, msg)
        self.send_whatsapp(entry.user_phone, msg)
        return msg

    def check_in_confirmation(self, entry: QueueEntry) -> str:
        msg = f"Checked in! Token #{entry.queue_number}. Please wait for your turn."
        self.send_sms(entry.user_phone, msg)
        return msg
