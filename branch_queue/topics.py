"""MQTT topic helpers.

Topic construction lives in one place so the server, the notifier and the
kiosk client agree on naming.

Topic layout under a configurable namespace (default: `branchqueue/v0`):

Request/response:
- `<ns>/service/requests`
- `<ns>/service/responses/<client_id>`

Broadcast:
- `<ns>/branches/<branch_id>/events`
    Queue events of one branch (booked, status changed, no-show, ...).
    Dashboards subscribe here and refresh.
- `<ns>/branches/+/events` (wildcard) for observers of every branch.
"""

from __future__ import annotations

DEFAULT_NAMESPACE = "branchqueue/v0"


def service_requests(namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/service/requests"


def service_responses(client_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/service/responses/{client_id}"


def branch_events(branch_id: str, namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/branches/{branch_id}/events"


def all_branch_events(namespace: str = DEFAULT_NAMESPACE) -> str:
    return f"{namespace}/branches/+/events"
