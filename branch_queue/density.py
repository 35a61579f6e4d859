from __future__ import annotations

# Crowd density: waiting tokens per active counter.
#
# Tokens currently being served stand in for the number of active counters
# (at least one). Bands: ratio < 2 LOW, 2..5 MEDIUM (both ends inclusive),
# above 5 HIGH.
#
# Heat maps band plain token counts instead of a ratio, see `classify_count`.

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any

from .errors import StoreFailure
from .models import TOKENS, TokenStatus
from .store import DocumentStore

logger = logging.getLogger(__name__)


class DensityLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"

    @property
    def color(self) -> str:
        return _COLORS[self]


_COLORS = {DensityLevel.LOW: "green", DensityLevel.MEDIUM: "yellow", DensityLevel.HIGH: "red"}


@dataclass(frozen=True)
class CrowdDensity:
    level: DensityLevel
    ratio: str

    @property
    def color(self) -> str:
        return self.level.color

    def to_message(self) -> dict[str, Any]:
        return {"level": self.level.value, "ratio": self.ratio, "color": self.color}


QUIET = CrowdDensity(DensityLevel.LOW, "0.00")


def classify_density(waiting: int, serving: int) -> CrowdDensity:
    ratio = waiting / max(1, serving)
    if ratio < 2:
        level = DensityLevel.LOW
    elif ratio <= 5:
        level = DensityLevel.MEDIUM
    else:
        level = DensityLevel.HIGH
    return CrowdDensity(level, f"{ratio:.2f}")


def _count(store: DocumentStore, branch_id: str, status: TokenStatus) -> int:
    return len(store.query(TOKENS, [("branch_id", "==", branch_id), ("status", "==", status.value)]))


def crowd_density(store: DocumentStore, branch_id: str) -> CrowdDensity:
    """Branch-wide density across all service types."""
    try:
        waiting = _count(store, branch_id, TokenStatus.WAITING)
        serving = _count(store, branch_id, TokenStatus.SERVING)
    except StoreFailure:
        logger.exception("Error calculating crowd density for %s", branch_id)
        return QUIET
    return classify_density(waiting, serving)


def classify_count(count: int, *, medium: int, high: int) -> DensityLevel:
    """Band a raw token count: `high` and above HIGH, `medium` and above MEDIUM."""
    if count >= high:
        return DensityLevel.HIGH
    if count >= medium:
        return DensityLevel.MEDIUM
    return DensityLevel.LOW
