"""Broker connection shared by the queue server, the branch event notifier
and the kiosk CLI.

The server subscribes to `<ns>/service/requests` and answers on each
kiosk's own `<ns>/service/responses/<client_id>` topic. Branch events go out
on `<ns>/branches/<branch_id>/events`. A kiosk booking is a single blocking
round trip: `request()` stamps a `corr_id`, publishes, and waits for the reply
carrying the same id.

Payloads are compact JSON objects at QoS 0. A dashboard that misses a
`queue_updated` event refreshes on the next one.
"""

from __future__ import annotations

import json
import logging
import queue
import threading
import uuid
from typing import Any, Callable

import paho.mqtt.client as mqtt

logger = logging.getLogger(__name__)

MessageHandler = Callable[[str, dict[str, Any]], None]


class MqttClient:
    """paho-mqtt client with JSON publish/subscribe and correlated requests."""

    def __init__(
        self,
        *,
        client_id: str,
        host: str,
        port: int,
        keepalive: int = 30,
    ) -> None:
        self.client_id = client_id
        self.host = host
        self.port = port
        self.keepalive = keepalive

        self._client = mqtt.Client(
            mqtt.CallbackAPIVersion.VERSION2, client_id=client_id, clean_session=True
        )
        self._client.on_message = self._on_message

        self._handlers: list[MessageHandler] = []

        # corr_id -> single-slot queue the waiting request() reads from
        self._pending: dict[str, "queue.Queue[dict[str, Any]]"] = {}
        self._lock = threading.Lock()

        self._started = False

    def start(self) -> None:
        """Connect and start the background network loop."""
        if self._started:
            return
        self._client.connect(self.host, self.port, keepalive=self.keepalive)
        self._client.loop_start()
        self._started = True

    def stop(self) -> None:
        if not self._started:
            return
        self._client.loop_stop()
        self._client.disconnect()
        self._started = False

    def add_handler(self, handler: MessageHandler) -> None:
        self._handlers.append(handler)

    def subscribe(self, topic: str) -> None:
        self._client.subscribe(topic, qos=0)

    def publish(self, topic: str, message: dict[str, Any]) -> None:
        payload = json.dumps(message, separators=(",", ":")).encode("utf-8")
        self._client.publish(topic, payload=payload, qos=0)

    def request(
        self,
        *,
        request_topic: str,
        response_topic: str,
        message: dict[str, Any],
        timeout: float = 5.0,
    ) -> dict[str, Any]:
        """Publish `message` and block until the correlated reply arrives.

        The caller must already be subscribed to `response_topic`.
        """
        corr_id = str(uuid.uuid4())
        msg = dict(message)
        msg["corr_id"] = corr_id
        msg["reply_to"] = response_topic

        q: "queue.Queue[dict[str, Any]]" = queue.Queue(maxsize=1)
        with self._lock:
            self._pending[corr_id] = q

        self.publish(request_topic, msg)

        try:
            return q.get(timeout=timeout)
        except queue.Empty as e:
            raise TimeoutError(f"No response for corr_id={corr_id}") from e
        finally:
            with self._lock:
                self._pending.pop(corr_id, None)

    # -------------------- internal callbacks --------------------

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage) -> None:
        try:
            raw = msg.payload
            payload = raw.decode("utf-8") if isinstance(raw, bytes) else str(raw)
            data = json.loads(payload)
        except (UnicodeDecodeError, json.JSONDecodeError):
            logger.warning("Dropping malformed message on %s", msg.topic)
            return
        if not isinstance(data, dict):
            return

        corr_id = data.get("corr_id")
        if isinstance(corr_id, str):
            with self._lock:
                pending = self._pending.get(corr_id)
            if pending is not None:
                try:
                    pending.put_nowait(data)
                except queue.Full:
                    pass
                return

        for h in list(self._handlers):
            try:
                h(msg.topic, data)
            except Exception:
                # A failing handler must not take down the network thread.
                logger.exception("Handler failed for message on %s", msg.topic)
