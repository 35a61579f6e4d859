from __future__ import annotations

# No-show sweeper.
#
# A daemon thread wakes every `sweep_interval` seconds and marks tokens that
# have been waiting longer than `no_show_timeout` as no-show. Each tick is its
# own error boundary: a failing sweep is logged and the next tick runs as
# scheduled.
#
# Sweeps are not coordinated with request handlers touching the same token;
# the last write wins.

import logging
import threading
from datetime import datetime
from typing import Callable

from .config import QueueConfig
from .models import TOKENS, QueueEntry, TokenStatus
from .notifier import Notifier
from .seats import SeatPool
from .store import DocumentStore

logger = logging.getLogger(__name__)


class NoShowSweeper:
    def __init__(
        self,
        *,
        store: DocumentStore,
        notifier: Notifier,
        seats: SeatPool,
        config: QueueConfig | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.store = store
        self.notifier = notifier
        self.seats = seats
        self.config = config or QueueConfig()
        self.clock = clock

        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def sweep_once(self, now: datetime | None = None) -> list[str]:
        """Run one sweep across all branches. Returns the token ids marked."""
        now = now or self.clock()
        timeout = self.config.no_show_timeout
        marked: list[str] = []

        docs = self.store.query(TOKENS, [("status", "==", TokenStatus.WAITING.value)])
        for doc in docs:
            entry = QueueEntry.from_document(doc)
            if entry.created_at is None or now - entry.created_at <= timeout:
                continue

            self.store.update(
                TOKENS,
                entry.token_id,
                {"status": TokenStatus.NO_SHOW.value, "no_show_at": now},
            )
            self.seats.release(entry.branch_id, entry.token_id)
            marked.append(entry.token_id)

            minutes = int(timeout.total_seconds() // 60)
            logger.info("Auto no-show: token #%d (%s)", entry.queue_number, entry.user_name)
            self.notifier.notify(
                entry.branch_id,
                {
                    "action": "token_no_show",
                    "token_id": entry.token_id,
                    "message": f"Token #{entry.queue_number} marked as no-show ({minutes}min timeout)",
                },
            )
        return marked

    # -------------------- background schedule --------------------

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="no-show-sweeper", daemon=True)
        self._thread.start()
        logger.info(
            "No-show sweeper started (%s timeout, every %.0fs)",
            self.config.no_show_timeout,
            self.config.sweep_interval,
        )

    def stop(self, timeout: float = 1.0) -> None:
        """Stop the schedule. An in-flight sweep finishes on its own."""
        self._stop_event.set()
        t = self._thread
        if t and t.is_alive():
            t.join(timeout=timeout)

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def _run(self) -> None:
        interval = self.config.sweep_interval
        while not self._stop_event.wait(interval):
            try:
                self.sweep_once()
            except Exception:
                logger.exception("No-show sweep failed")
