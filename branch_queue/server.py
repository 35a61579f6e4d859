from __future__ import annotations

# MQTT front end of the queue service.
#
# This file has two layers:
# 1) `MqttQueueServer`: maps request messages onto `QueueService` calls
# 2) `main()`: builds store, seats, notifier, service and sweeper and runs
#    them against a broker
#
# Every request carries `type`, `reply_to` and an optional `corr_id`; the
# reply echoes the `corr_id`. Failures come back as `ErrorResponse` envelopes.

import argparse
import logging
import time
from typing import TYPE_CHECKING, Any, Callable

from .errors import ErrorResponse, QueueError
from .service import QueueService
from .topics import DEFAULT_NAMESPACE, service_requests

if TYPE_CHECKING:
    from .mqtt_client import MqttClient

logger = logging.getLogger(__name__)

Handler = Callable[[dict[str, Any]], dict[str, Any]]


def _require(msg: dict[str, Any], *names: str) -> list[str]:
    values = [str(msg.get(n) or "") for n in names]
    missing = [n for n, v in zip(names, values) if not v]
    if missing:
        raise ValueError(f"{', '.join(missing)} required")
    return values


class MqttQueueServer:
    """MQTT adapter around the QueueService business logic."""

    def __init__(self, *, mqtt: MqttClient, service: QueueService, namespace: str = DEFAULT_NAMESPACE) -> None:
        self.mqtt = mqtt
        self.service = service
        self.namespace = namespace
        self._handlers: dict[str, Handler] = {
            "book_token": self._book_token,
            "group_book": self._group_book,
            "token_details": self._token_details,
            "queue_status": self._queue_status,
            "update_status": self._update_status,
            "cancel_token": self._cancel_token,
            "check_in": self._check_in,
            "seat_availability": self._seat_availability,
            "counter_status": self._counter_status,
            "traffic_lights": self._traffic_lights,
            "analytics": self._analytics,
            "heat_map": self._heat_map,
            "release_seat": self._release_seat,
            "notifications": self._notifications,
        }

    def start(self) -> None:
        self.mqtt.subscribe(service_requests(self.namespace))
        self.mqtt.add_handler(self.handle_message)

    def _reply(self, reply_to: str, corr_id: str | None, message: dict[str, Any]) -> None:
        msg = dict(message)
        if corr_id is not None:
            msg["corr_id"] = corr_id
        self.mqtt.publish(reply_to, msg)

    def handle_message(self, topic: str, msg: dict[str, Any]) -> None:
        if topic != service_requests(self.namespace):
            return
        reply_to = msg.get("reply_to") if isinstance(msg.get("reply_to"), str) else None
        if not reply_to:
            return
        corr_id = msg.get("corr_id") if isinstance(msg.get("corr_id"), str) else None

        mtype = msg.get("type")
        handler = self._handlers.get(mtype) if isinstance(mtype, str) else None
        if handler is None:
            self._reply(reply_to, corr_id, ErrorResponse("unknown_request", f"Unknown request type {mtype!r}").to_message())
            return

        try:
            response = handler(msg)
        except (QueueError, ValueError) as e:
            self._reply(reply_to, corr_id, ErrorResponse.from_exception(e).to_message())
            return
        except Exception as e:
            logger.exception("Request %s failed", mtype)
            self._reply(reply_to, corr_id, ErrorResponse.from_exception(e).to_message())
            return
        self._reply(reply_to, corr_id, response)

    # -------------------- request handlers --------------------

    def _book_token(self, msg: dict[str, Any]) -> dict[str, Any]:
        branch_id, service_type, user_name = _require(msg, "branch_id", "service_type", "user_name")
        entry = self.service.book_token(
            branch_id,
            service_type,
            user_name,
            user_phone=msg.get("user_phone"),
            priority=msg.get("priority") or "normal",
        )
        return {"type": "token_booked", "token": entry.to_message()}

    def _group_book(self, msg: dict[str, Any]) -> dict[str, Any]:
        branch_id, service_type = _require(msg, "branch_id", "service_type")
        members = msg.get("members")
        if not isinstance(members, list) or not all(isinstance(m, dict) for m in members):
            raise ValueError("members must be a list of objects")
        group_id, entries = self.service.group_book(
            branch_id, service_type, members, priority=msg.get("priority") or "normal"
        )
        return {"type": "group_booked", "group_id": group_id, "tokens": [e.to_message() for e in entries]}

    def _token_details(self, msg: dict[str, Any]) -> dict[str, Any]:
        (token_id,) = _require(msg, "token_id")
        return {"type": "token_details", **self.service.token_details(token_id)}

    def _queue_status(self, msg: dict[str, Any]) -> dict[str, Any]:
        (branch_id,) = _require(msg, "branch_id")
        return {"type": "queue_status", **self.service.queue_status(branch_id, msg.get("service_type"))}

    def _update_status(self, msg: dict[str, Any]) -> dict[str, Any]:
        token_id, status = _require(msg, "token_id", "status")
        entry = self.service.update_status(token_id, status)
        return {"type": "status_updated", "token": entry.to_message()}

    def _cancel_token(self, msg: dict[str, Any]) -> dict[str, Any]:
        (token_id,) = _require(msg, "token_id")
        entry = self.service.cancel_token(token_id)
        return {"type": "token_cancelled", "token": entry.to_message()}

    def _check_in(self, msg: dict[str, Any]) -> dict[str, Any]:
        (token_id,) = _require(msg, "token_id")
        entry = self.service.check_in(token_id)
        return {
            "type": "checked_in",
            "message": f"Welcome {entry.user_name}! You're checked in.",
            "token": entry.to_message(),
        }

    def _seat_availability(self, msg: dict[str, Any]) -> dict[str, Any]:
        (branch_id,) = _require(msg, "branch_id")
        return {"type": "seat_availability", **self.service.seat_availability(branch_id)}

    def _counter_status(self, msg: dict[str, Any]) -> dict[str, Any]:
        (branch_id,) = _require(msg, "branch_id")
        return {"type": "counter_status", "counters": self.service.counter_status(branch_id)}

    def _traffic_lights(self, msg: dict[str, Any]) -> dict[str, Any]:
        (branch_id,) = _require(msg, "branch_id")
        return {"type": "traffic_lights", "lights": self.service.traffic_lights(branch_id)}

    def _analytics(self, msg: dict[str, Any]) -> dict[str, Any]:
        (branch_id,) = _require(msg, "branch_id")
        return {"type": "analytics", "analytics": self.service.analytics(branch_id)}

    def _heat_map(self, msg: dict[str, Any]) -> dict[str, Any]:
        (branch_id,) = _require(msg, "branch_id")
        return {"type": "heat_map", **self.service.heat_map(branch_id)}

    def _release_seat(self, msg: dict[str, Any]) -> dict[str, Any]:
        branch_id, token_id = _require(msg, "branch_id", "token_id")
        released = self.service.release_seat(branch_id, token_id)
        return {
            "type": "seat_released",
            "released": released,
            "message": "Seat released" if released else "No seat held by this token",
        }

    def _notifications(self, msg: dict[str, Any]) -> dict[str, Any]:
        limit = int(msg.get("limit") or 50)
        return {
            "type": "notifications",
            "notifications": [m.to_message() for m in self.service.messages.recent(limit)],
        }


def main() -> None:
    # Import MQTT dependencies only when running the real service.
    from .config import QueueConfig, add_config_args
    from .demo import seed_demo
    from .mqtt_client import MqttClient
    from .notifier import MqttNotifier
    from .seats import SeatPool
    from .store import InMemoryDocumentStore
    from .sweeper import NoShowSweeper

    parser = argparse.ArgumentParser(description="Branch queue server (MQTT)")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default=DEFAULT_NAMESPACE)
    parser.add_argument("--log-level", default="INFO")
    parser.add_argument("--seed-demo", action="store_true", help="load demo tokens and history at startup")
    add_config_args(parser)
    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    config = QueueConfig.from_args(args)

    mqtt_client = MqttClient(client_id=f"queue-server-{int(time.time())}", host=args.mqtt_host, port=args.mqtt_port)
    mqtt_client.start()

    store = InMemoryDocumentStore()
    seats = SeatPool(capacity=config.seat_capacity, columns=config.seat_columns)
    notifier = MqttNotifier(mqtt=mqtt_client, namespace=args.namespace)
    service = QueueService(store=store, seats=seats, notifier=notifier, config=config)
    sweeper = NoShowSweeper(store=store, notifier=notifier, seats=seats, config=config)

    if args.seed_demo:
        seed_demo(service)

    server = MqttQueueServer(mqtt=mqtt_client, service=service, namespace=args.namespace)
    server.start()
    sweeper.start()

    print(f"[server] connected to MQTT {args.mqtt_host}:{args.mqtt_port}, namespace={args.namespace}")

    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        pass
    finally:
        sweeper.stop()
        mqtt_client.stop()


if __name__ == "__main__":
    main()
