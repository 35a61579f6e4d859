from __future__ import annotations

# Waiting-area seats.
#
# Each branch gets a fixed pool of seats the first time it is touched. Pools
# live in this process only: they are not persisted and are not shared
# between server instances.

import dataclasses
import threading
from typing import Any

from .models import Seat


class SeatPool:
    """Per-branch seat pools. Inject one instance per service."""

    def __init__(self, capacity: int = 20, columns: int = 5) -> None:
        if capacity < 0:
            raise ValueError("capacity must be >= 0")
        if columns <= 0:
            raise ValueError("columns must be > 0")
        self.capacity = capacity
        self.columns = columns
        self._lock = threading.Lock()
        self._pools: dict[str, list[Seat]] = {}

    def _pool(self, branch_id: str) -> list[Seat]:
        pool = self._pools.get(branch_id)
        if pool is None:
            pool = [
                Seat(id=f"S{i + 1}", row=i // self.columns, col=i % self.columns)
                for i in range(self.capacity)
            ]
            self._pools[branch_id] = pool
        return pool

    def assign(self, branch_id: str, token_id: str) -> Seat | None:
        """Seat `token_id` in the first free seat. Returns None when full."""
        with self._lock:
            for seat in self._pool(branch_id):
                if not seat.occupied:
                    seat.occupied = True
                    seat.token_id = token_id
                    return dataclasses.replace(seat)
            return None

    def release(self, branch_id: str, token_id: str | None) -> bool:
        """Free the seat held by `token_id`. Safe to call more than once."""
        if token_id is None:
            return False
        with self._lock:
            for seat in self._pool(branch_id):
                if seat.token_id == token_id:
                    seat.occupied = False
                    seat.token_id = None
                    return True
            return False

    def availability(self, branch_id: str) -> dict[str, Any]:
        with self._lock:
            seats = [s.to_message() for s in self._pool(branch_id)]
        occupied = sum(1 for s in seats if s["occupied"])
        total = self.capacity
        return {
            "total": total,
            "occupied": occupied,
            "available": total - occupied,
            "occupancy_percent": round(occupied * 100 / total) if total else 0,
            "seats": seats,
        }
