from datetime import datetime, timedelta

import pytest

from branch_queue.errors import StoreFailure
from branch_queue.models import TOKENS, Priority, QueueEntry, TokenStatus
from branch_queue.notifier import InMemoryNotifier
from branch_queue.seats import SeatPool
from branch_queue.service import QueueService
from branch_queue.store import InMemoryDocumentStore

MONDAY_9AM = datetime(2026, 3, 2, 9, 0)


class FakeClock:
    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class FailingStore(InMemoryDocumentStore):
    """Every read fails, as if the backing database were unreachable."""

    def get(self, collection, doc_id):
        raise StoreFailure("store offline")

    def query(self, collection, filters=(), **kwargs):
        raise StoreFailure("store offline")


def put_entry(
    store,
    token_id,
    queue_number,
    *,
    branch_id="branch1",
    service_type="consultation",
    priority=Priority.NORMAL,
    status=TokenStatus.WAITING,
    created_at=MONDAY_9AM,
    assigned_counter=None,
):
    entry = QueueEntry(
        token_id=token_id,
        queue_number=queue_number,
        branch_id=branch_id,
        service_type=service_type,
        user_name=f"user-{token_id}",
        priority=priority,
        status=status,
        assigned_counter=assigned_counter,
        created_at=created_at,
    )
    store.set(TOKENS, token_id, entry.to_document())
    return entry


@pytest.fixture
def clock():
    return FakeClock(MONDAY_9AM)


@pytest.fixture
def store():
    return InMemoryDocumentStore()


@pytest.fixture
def notifier():
    return InMemoryNotifier()


@pytest.fixture
def seats():
    return SeatPool()


@pytest.fixture
def service(store, seats, notifier, clock):
    return QueueService(store=store, seats=seats, notifier=notifier, clock=clock)
