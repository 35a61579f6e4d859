from __future__ import annotations

# Tunable constants of the scheduling core.
#
# Defaults reproduce the reference behaviour (8 minute fallback, lunch peak
# 11:00-14:00 at x1.25, 30 minute no-show timeout checked every minute,
# 20 seats per branch). Every CLI that builds a service accepts the same
# flags through `add_config_args`.

import argparse
from dataclasses import dataclass
from datetime import timedelta


@dataclass(frozen=True)
class QueueConfig:
    default_service_minutes: int = 8
    history_window: int = 10
    peak_start_hour: int = 11
    peak_end_hour: int = 14
    peak_multiplier: float = 1.25
    no_show_timeout: timedelta = timedelta(minutes=30)
    sweep_interval: float = 60.0
    seat_capacity: int = 20
    seat_columns: int = 5

    def __post_init__(self) -> None:
        if self.history_window <= 0:
            raise ValueError("history_window must be > 0")
        if not 0 <= self.peak_start_hour <= self.peak_end_hour <= 24:
            raise ValueError("peak hours must satisfy 0 <= start <= end <= 24")
        if self.sweep_interval <= 0:
            raise ValueError("sweep_interval must be > 0")
        if self.seat_capacity < 0:
            raise ValueError("seat_capacity must be >= 0")
        if self.seat_columns <= 0:
            raise ValueError("seat_columns must be > 0")

    def is_peak_hour(self, hour: int) -> bool:
        return self.peak_start_hour <= hour < self.peak_end_hour

    @classmethod
    def from_args(cls, args: argparse.Namespace) -> "QueueConfig":
        return cls(
            default_service_minutes=args.default_service_minutes,
            peak_multiplier=args.peak_multiplier,
            no_show_timeout=timedelta(minutes=args.no_show_minutes),
            sweep_interval=args.sweep_interval,
            seat_capacity=args.seat_capacity,
        )


def add_config_args(p: argparse.ArgumentParser) -> None:
    defaults = QueueConfig()
    p.add_argument(
        "--default-service-minutes",
        type=int,
        default=defaults.default_service_minutes,
        help="fallback service time when a branch has no history",
    )
    p.add_argument("--peak-multiplier", type=float, default=defaults.peak_multiplier)
    p.add_argument(
        "--no-show-minutes",
        type=float,
        default=defaults.no_show_timeout.total_seconds() / 60,
        help="minutes a waiting token may sit before it is marked no-show",
    )
    p.add_argument(
        "--sweep-interval",
        type=float,
        default=defaults.sweep_interval,
        help="seconds between no-show sweeps",
    )
    p.add_argument("--seat-capacity", type=int, default=defaults.seat_capacity)
