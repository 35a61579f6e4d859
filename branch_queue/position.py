from __future__ import annotations

# Priority-aware queue position.
#
# Waiting tokens of one (branch, service type) pair are ordered by priority
# weight (emergency, senior, normal) and then strictly by queue number.
# Queue numbers are unique per branch, so the ordering has no ties.

import logging
from dataclasses import dataclass
from typing import Any, Iterable

from .errors import StoreFailure
from .models import TOKENS, QueueEntry, TokenStatus
from .store import DocumentStore

logger = logging.getLogger(__name__)

NOT_FOUND = -1
BEING_SERVED = 0


@dataclass(frozen=True)
class QueuePosition:
    position: int
    message: str
    total_in_queue: int = 0

    def to_message(self) -> dict[str, Any]:
        return {
            "position": self.position,
            "message": self.message,
            "total_in_queue": self.total_in_queue,
        }


def queue_order_key(entry: QueueEntry) -> tuple[int, int]:
    return entry.priority.weight, entry.queue_number


def order_waiting(entries: Iterable[QueueEntry]) -> list[QueueEntry]:
    return sorted(entries, key=queue_order_key)


def waiting_entries(store: DocumentStore, branch_id: str, service_type: str) -> list[QueueEntry]:
    docs = store.query(
        TOKENS,
        [
            ("branch_id", "==", branch_id),
            ("service_type", "==", service_type),
            ("status", "==", TokenStatus.WAITING.value),
        ],
    )
    return [QueueEntry.from_document(d) for d in docs]


def resolve_position(
    store: DocumentStore, branch_id: str, service_type: str, token_id: str
) -> QueuePosition:
    """Return the 1-based rank of `token_id` among waiting tokens.

    Position 0 means the token is being served, -1 that it is not waiting
    (unknown token, already called, finished). Store errors degrade to -1.
    """
    try:
        doc = store.get(TOKENS, token_id)
        if doc is None:
            return QueuePosition(NOT_FOUND, "Token not found")

        ordered = order_waiting(waiting_entries(store, branch_id, service_type))
        total = len(ordered)
        for idx, entry in enumerate(ordered, start=1):
            if entry.token_id == token_id:
                return QueuePosition(idx, f"You are #{idx} in queue", total)

        if doc.get("status") == TokenStatus.SERVING.value:
            return QueuePosition(BEING_SERVED, "You are being served!", total)
        return QueuePosition(NOT_FOUND, "Token not in queue", total)
    except StoreFailure:
        logger.exception("Error calculating queue position for token %s", token_id)
        return QueuePosition(NOT_FOUND, "Error calculating position", 0)
