from __future__ import annotations

# Counter allocation.
#
# Each branch has a static table of counters and the service types they
# handle. A new token goes to the eligible counter with the fewest tokens
# currently being served there; ties go to the counter defined first.

from typing import Any, Mapping, Sequence

from .models import SERVICE_TYPES, TOKENS, Counter, TokenStatus
from .store import DocumentStore

_ALL_SERVICES = frozenset(SERVICE_TYPES)


def _counter(cid: str, name: str, services: Sequence[str], x: int, y: int) -> Counter:
    return Counter(id=cid, name=name, services=frozenset(services), x=x, y=y)


COUNTER_LAYOUTS: dict[str, tuple[Counter, ...]] = {
    "branch1": (
        _counter("C1", "Counter 1", ["consultation", "checkup"], 120, 50),
        _counter("C2", "Counter 2", ["consultation", "processing"], 280, 50),
        _counter("C3", "Counter 3", ["payment", "registration"], 440, 50),
        _counter("C4", "Counter 4", ["checkup", "payment"], 600, 50),
    ),
    "branch2": (
        _counter("C1", "Counter 1", ["consultation", "checkup"], 120, 50),
        _counter("C2", "Counter 2", ["processing", "payment"], 280, 50),
        _counter("C3", "Counter 3", ["registration", "consultation"], 440, 50),
    ),
}

DEFAULT_COUNTERS: tuple[Counter, ...] = (
    Counter("C1", "Counter 1", _ALL_SERVICES, 200, 50),
    Counter("C2", "Counter 2", _ALL_SERVICES, 400, 50),
)


class CounterAllocator:
    """Least-loaded counter selection (reads the store, never writes)."""

    def __init__(
        self,
        store: DocumentStore,
        layouts: Mapping[str, Sequence[Counter]] | None = None,
        default: Sequence[Counter] = DEFAULT_COUNTERS,
    ) -> None:
        if not default:
            raise ValueError("default counter table must not be empty")
        self.store = store
        self._layouts = dict(COUNTER_LAYOUTS if layouts is None else layouts)
        self._default = tuple(default)

    def counters_for_branch(self, branch_id: str) -> tuple[Counter, ...]:
        return tuple(self._layouts.get(branch_id) or self._default)

    def _serving_load(self, branch_id: str) -> dict[str, int]:
        load: dict[str, int] = {}
        docs = self.store.query(
            TOKENS,
            [("branch_id", "==", branch_id), ("status", "==", TokenStatus.SERVING.value)],
        )
        for doc in docs:
            cid = doc.get("assigned_counter")
            if cid:
                load[cid] = load.get(cid, 0) + 1
        return load

    def allocate(self, branch_id: str, service_type: str) -> Counter:
        """Pick the counter for a new token.

        When no counter handles `service_type` the branch's first counter is
        returned without consulting the store. Store errors propagate.
        """
        counters = self.counters_for_branch(branch_id)
        eligible = [c for c in counters if c.serves(service_type)]
        if not eligible:
            return counters[0]

        load = self._serving_load(branch_id)
        # min() keeps the first of equal candidates.
        return min(eligible, key=lambda c: load.get(c.id, 0))

    def counter_status(self, branch_id: str) -> list[dict[str, Any]]:
        """Every counter of the branch with its current serving load."""
        load = self._serving_load(branch_id)
        status = []
        for c in self.counters_for_branch(branch_id):
            serving = load.get(c.id, 0)
            msg = c.to_message()
            msg["currently_serving"] = serving
            msg["status"] = "busy" if serving > 0 else "available"
            status.append(msg)
        return status
