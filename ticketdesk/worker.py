"""Background worker that periodically cancels expired reservations."""

from __future__ import annotations

import threading
import time
from typing import Optional, Protocol

from ticketdesk import logger


class ReservationCleaner(Protocol):
    def cancel_expired_reservations(self, expire_after: float) -> int:
        """Cancel pending reservations older than expire_after seconds; return how many."""
        ...


_POLL = 0.05


class ExpiredReservationCleaner:
    """Runs the cleanup every `interval` seconds until stopped or cancelled."""

    def __init__(self, service: ReservationCleaner, interval: float, expire_after: float) -> None:
        self.service = service
        self.interval = interval
        self.expire_after = expire_after
        self._stop = threading.Event()
        self._done = threading.Event()
        self._started = threading.Event()

    @property
    def stopped(self) -> bool:
        return self._done.is_set()

    def start(self, cancel: Optional[threading.Event] = None) -> None:
        """Block, running the cleanup on every tick, until stop() or cancel is set."""
        self._started.set()
        logger.info(
            "expired reservation cleaner started",
            interval=self.interval,
            expire_after=self.expire_after,
        )
        next_tick = time.monotonic() + self.interval
        try:
            while True:
                if cancel is not None and cancel.is_set():
                    logger.info("expired reservation cleaner stopped (cancelled)")
                    return
                if self._stop.is_set():
                    logger.info("expired reservation cleaner stopped (signal)")
                    return
                remaining = next_tick - time.monotonic()
                if remaining <= 0:
                    self.run_once()
                    next_tick += self.interval
                    continue
                self._stop.wait(min(remaining, _POLL))
        finally:
            self._done.set()

    def stop(self) -> None:
        """Signal the loop to stop and wait until it has finished."""
        self._stop.set()
        if self._started.is_set():
            self._done.wait()

    def run_once(self) -> Optional[int]:
        """Run one cleanup; return the number cancelled, or None if it failed."""
        logger.debug("expired reservation cleanup started")
        try:
            count = self.service.cancel_expired_reservations(self.expire_after)
        except Exception as exc:
            logger.error("expired reservation cleanup failed", error=str(exc))
            return None
        if count > 0:
            logger.info("expired reservations cancelled", count=count)
        else:
            logger.debug("no expired reservations")
        return count