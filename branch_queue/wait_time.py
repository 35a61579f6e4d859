from __future__ import annotations

# Wait-time estimation.
#
# Two stages:
#   1. a weighted moving average (WMA) of the most recent service durations
#      for a (branch, service type) pair; the newest record weighs N, the
#      oldest weighs 1
#   2. waiting_count * WMA, scaled up during the configured lunch peak
#
# Nothing here is cached: every call reads live store state.

import logging
import math
from datetime import datetime
from typing import Callable, Sequence

from .config import QueueConfig
from .errors import StoreFailure
from .models import QUEUE_HISTORY, TOKENS, HistoryRecord, TokenStatus
from .store import DocumentStore

logger = logging.getLogger(__name__)

Clock = Callable[[], datetime]


def round_half_up(value: float) -> int:
    """Round non-negative values to the nearest integer, .5 going up."""
    return int(math.floor(value + 0.5))


def service_minutes(start: datetime, end: datetime) -> int:
    """Whole minutes spent at the counter, never less than 1."""
    return max(1, round_half_up((end - start).total_seconds() / 60))


def weighted_moving_average(durations: Sequence[int]) -> int:
    """WMA of durations ordered newest first.

    Args:
        durations: service minutes, most recent first (non-empty).

    Returns:
        The rounded average with weights N, N-1, ..., 1.
    """
    if not durations:
        raise ValueError("durations must not be empty")
    n = len(durations)
    total_weight = n * (n + 1) // 2
    weighted = sum(t * (n - i) for i, t in enumerate(durations))
    return round_half_up(weighted / total_weight)


def historical_service_minutes(
    store: DocumentStore,
    branch_id: str,
    service_type: str,
    *,
    config: QueueConfig | None = None,
) -> int:
    """Recency-weighted service time for one branch and service type.

    Falls back to `config.default_service_minutes` when no qualifying history
    exists. Store errors propagate; `estimate_wait_minutes` handles them.
    """
    cfg = config or QueueConfig()
    docs = store.query(
        QUEUE_HISTORY,
        [
            ("branch_id", "==", branch_id),
            ("service_type", "==", service_type),
            ("status", "==", TokenStatus.COMPLETED.value),
        ],
        order_by="service_end_time",
        descending=True,
        limit=cfg.history_window,
    )
    durations = []
    for doc in docs:
        record = HistoryRecord.from_document(doc)
        if record.service_start_time is None or record.service_end_time is None:
            continue
        durations.append(service_minutes(record.service_start_time, record.service_end_time))

    if not durations:
        return cfg.default_service_minutes
    return weighted_moving_average(durations)


def waiting_count(store: DocumentStore, branch_id: str, service_type: str) -> int:
    return len(
        store.query(
            TOKENS,
            [
                ("branch_id", "==", branch_id),
                ("service_type", "==", service_type),
                ("status", "==", TokenStatus.WAITING.value),
            ],
        )
    )


def project_wait(count: int, avg_minutes: int, *, hour: int, config: QueueConfig | None = None) -> int:
    """Projected wait for `count` people ahead at `avg_minutes` each."""
    cfg = config or QueueConfig()
    estimate = float(count * avg_minutes)
    if cfg.is_peak_hour(hour):
        estimate *= cfg.peak_multiplier
    return round_half_up(estimate)


def estimate_wait_minutes(
    store: DocumentStore,
    branch_id: str,
    service_type: str,
    *,
    config: QueueConfig | None = None,
    clock: Clock = datetime.now,
) -> int:
    """Estimated wait in minutes for a new arrival. Never raises on store errors."""
    cfg = config or QueueConfig()
    try:
        count = waiting_count(store, branch_id, service_type)
        avg = historical_service_minutes(store, branch_id, service_type, config=cfg)
        return project_wait(count, avg, hour=clock().hour, config=cfg)
    except StoreFailure:
        logger.exception("Error calculating wait time for %s/%s", branch_id, service_type)
        return cfg.default_service_minutes


def wait_light(minutes: int) -> str:
    """Traffic-light colour for a wait estimate."""
    if minutes > 15:
        return "red"
    if minutes > 5:
        return "yellow"
    return "green"
