"""Demo data for a freshly started server.

Books a handful of tokens across two branches with mixed priorities, puts
the first two at a counter, and back-fills completed history so the wait
estimator has something to average.

Service durations of the back-filled history are exponential with the given
mean: the time a customer spends at a counter is modelled like the gap
between Poisson arrivals, with `random.expovariate`.
"""

from __future__ import annotations

import random
from datetime import timedelta
from typing import TYPE_CHECKING

from .models import QUEUE_HISTORY, HistoryRecord, Priority, TokenStatus
from .store import new_id

if TYPE_CHECKING:
    from .models import QueueEntry
    from .service import QueueService

BRANCHES = ("branch1", "branch2")
SERVICES = ("consultation", "checkup", "processing")
PRIORITIES = (
    Priority.NORMAL,
    Priority.NORMAL,
    Priority.NORMAL,
    Priority.SENIOR,
    Priority.EMERGENCY,
    Priority.NORMAL,
    Priority.SENIOR,
    Priority.NORMAL,
    Priority.NORMAL,
    Priority.EMERGENCY,
)
NAMES = (
    "Alice Johnson",
    "Bob Smith",
    "Charlie Brown",
    "Diana Prince",
    "Eve Williams",
    "Frank Miller",
    "Grace Lee",
    "Henry Davis",
    "Ivy Chen",
    "Jack Wilson",
)


def sample_service_minutes(*, mean_minutes: float, rng: random.Random | None = None) -> float:
    """Sample one service duration in minutes (exponential, mean > 0)."""
    if mean_minutes <= 0:
        raise ValueError("mean_minutes must be > 0")
    r = rng or random
    return float(r.expovariate(1.0 / mean_minutes))


def seed_history(
    service: QueueService,
    *,
    history_per_service: int = 5,
    mean_minutes: float = 8.0,
    rng: random.Random | None = None,
) -> int:
    """Write completed history records ending before now. Returns the count."""
    now = service.clock()
    written = 0
    for branch_id in BRANCHES:
        end = now
        for service_type in SERVICES:
            for i in range(history_per_service):
                minutes = sample_service_minutes(mean_minutes=mean_minutes, rng=rng)
                start = end - timedelta(minutes=minutes)
                record = HistoryRecord(
                    history_id=new_id(),
                    token_id=new_id(),
                    queue_number=0,
                    branch_id=branch_id,
                    service_type=service_type,
                    priority=Priority.NORMAL,
                    assigned_counter=None,
                    created_at=start - timedelta(minutes=5),
                    service_start_time=start,
                    service_end_time=end,
                    recorded_at=end,
                    status=TokenStatus.COMPLETED,
                )
                service.store.set(QUEUE_HISTORY, record.history_id, record.to_document())
                end = start
                written += 1
    return written


def seed_demo(
    service: QueueService,
    *,
    seed: int | None = None,
    serving: int = 2,
    history_per_service: int = 5,
    mean_minutes: float = 8.0,
) -> list[QueueEntry]:
    rng = random.Random(seed) if seed is not None else None

    seed_history(service, history_per_service=history_per_service, mean_minutes=mean_minutes, rng=rng)

    tokens = []
    for i, (name, priority) in enumerate(zip(NAMES, PRIORITIES)):
        entry = service.book_token(
            BRANCHES[i % len(BRANCHES)],
            SERVICES[i % len(SERVICES)],
            name,
            user_phone=f"555-{i:04d}",
            priority=priority,
        )
        tokens.append(entry)
        print(f"[demo] #{entry.queue_number} {name} [{priority.value}] ({entry.branch_id} / {entry.service_type})")

    for entry in tokens[:serving]:
        service.update_status(entry.token_id, TokenStatus.SERVING)
        print(f"[demo] serving #{entry.queue_number} {entry.user_name}")

    return tokens
