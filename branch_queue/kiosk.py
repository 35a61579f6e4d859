from __future__ import annotations

# Kiosk client.
#
# A kiosk request is a short-lived exchange:
# - connect to the broker
# - publish one request on the service topic
# - wait for the correlated reply
# - print it and exit

import argparse
import json
import time
from typing import Any

from .mqtt_client import MqttClient
from .topics import DEFAULT_NAMESPACE, service_requests, service_responses


def send_request(*, mqtt_host: str, mqtt_port: int, namespace: str, message: dict[str, Any], timeout: float = 5.0) -> dict[str, Any]:
    # Unique client id so several kiosks can talk to the server at once.
    client_id = f"kiosk-{int(time.time() * 1000)}"
    mqtt = MqttClient(client_id=client_id, host=mqtt_host, port=mqtt_port)
    mqtt.start()

    reply_topic = service_responses(client_id, namespace)
    mqtt.subscribe(reply_topic)

    try:
        return mqtt.request(
            request_topic=service_requests(namespace),
            response_topic=reply_topic,
            message=message,
            timeout=timeout,
        )
    finally:
        mqtt.stop()


def book_token(
    *,
    mqtt_host: str,
    mqtt_port: int,
    namespace: str,
    branch_id: str,
    service_type: str,
    user_name: str,
    user_phone: str | None = None,
    priority: str = "normal",
) -> dict[str, Any]:
    return send_request(
        mqtt_host=mqtt_host,
        mqtt_port=mqtt_port,
        namespace=namespace,
        message={
            "type": "book_token",
            "branch_id": branch_id,
            "service_type": service_type,
            "user_name": user_name,
            "user_phone": user_phone,
            "priority": priority,
        },
    )


def check_in(*, mqtt_host: str, mqtt_port: int, namespace: str, token_id: str) -> dict[str, Any]:
    return send_request(
        mqtt_host=mqtt_host,
        mqtt_port=mqtt_port,
        namespace=namespace,
        message={"type": "check_in", "token_id": token_id},
    )


def queue_status(*, mqtt_host: str, mqtt_port: int, namespace: str, branch_id: str, service_type: str | None = None) -> dict[str, Any]:
    return send_request(
        mqtt_host=mqtt_host,
        mqtt_port=mqtt_port,
        namespace=namespace,
        message={"type": "queue_status", "branch_id": branch_id, "service_type": service_type},
    )


def main() -> None:
    parser = argparse.ArgumentParser(description="Kiosk client (MQTT)")
    parser.add_argument("--mqtt-host", default="127.0.0.1")
    parser.add_argument("--mqtt-port", type=int, default=1883)
    parser.add_argument("--namespace", default=DEFAULT_NAMESPACE)
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_book = sub.add_parser("book", help="book a token")
    p_book.add_argument("--branch", required=True)
    p_book.add_argument("--service", required=True)
    p_book.add_argument("--name", required=True)
    p_book.add_argument("--phone", default=None)
    p_book.add_argument("--priority", choices=["normal", "senior", "emergency"], default="normal")

    p_in = sub.add_parser("checkin", help="self check-in with a token id")
    p_in.add_argument("--token", required=True)

    p_status = sub.add_parser("status", help="show a branch queue")
    p_status.add_argument("--branch", required=True)
    p_status.add_argument("--service", default=None)

    args = parser.parse_args()
    conn = {"mqtt_host": args.mqtt_host, "mqtt_port": args.mqtt_port, "namespace": args.namespace}

    if args.cmd == "book":
        resp = book_token(
            **conn,
            branch_id=args.branch,
            service_type=args.service,
            user_name=args.name,
            user_phone=args.phone,
            priority=args.priority,
        )
        if resp.get("type") == "token_booked":
            token = resp["token"]
            print(
                f"[kiosk] token #{token['queue_number']} for {token['user_name']} "
                f"(counter {token['assigned_counter']}, seat {token['assigned_seat'] or '-'}, id {token['token_id']})"
            )
        else:
            print(f"[kiosk] error: {resp}")
        return

    if args.cmd == "checkin":
        resp = check_in(**conn, token_id=args.token)
        print(f"[kiosk] {resp.get('message', resp)}")
        return

    if args.cmd == "status":
        resp = queue_status(**conn, branch_id=args.branch, service_type=args.service)
        print(json.dumps(resp, indent=2))
        return


if __name__ == "__main__":
    main()
