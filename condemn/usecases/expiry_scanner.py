from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta

from condemn.domain.models import isoformat_utc
from condemn.logging_utils import log_event, redact_sensitive_text
from condemn.observability import events
from condemn.usecases.switch_engine import SwitchEngine, utc_now


def _is_fatal_tick_exception(exc: Exception) -> bool:
    return isinstance(exc, MemoryError)


class ExpiryScanner:
    """Periodically claims expired switches on a dedicated thread."""

    def __init__(
        self,
        engine: SwitchEngine,
        interval_sec: float = 1.0,
        logger: logging.Logger | None = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        if interval_sec <= 0:
            raise ValueError("interval_sec must be > 0")
        self.engine = engine
        self.interval_sec = interval_sec
        self.logger = logger or logging.getLogger("condemn.scanner")
        self.clock = clock
        self.last_tick_at: datetime | None = None
        self.started_at: datetime | None = None
        self._tick_lock = threading.Lock()
        self._stop_event = threading.Event()
        self._thread: threading.Thread | None = None

    def run_tick(self) -> int | None:
        if not self._tick_lock.acquire(blocking=False):
            self.logger.warning(log_event(events.SCAN_TICK_SKIPPED, reason="tick_in_progress"))
            return None
        try:
            now = self.clock()
            try:
                claimed = self.engine.process_expired(now)
            except Exception as exc:
                if _is_fatal_tick_exception(exc):
                    raise
                self.logger.error(
                    log_event(events.SCAN_TICK_FAILED, error=redact_sensitive_text(exc)),
                    exc_info=True,
                )
                return None
            self.last_tick_at = now
            if claimed:
                self.logger.info(log_event(events.SCAN_TICK_COMPLETE, claimed=claimed))
            return claimed
        finally:
            self._tick_lock.release()

    def run_forever(self, stop_event: threading.Event) -> None:
        self.logger.info(log_event(events.SCAN_STARTED, interval_sec=self.interval_sec))
        while not stop_event.is_set():
            self.run_tick()
            stop_event.wait(self.interval_sec)
        self.logger.info(log_event(events.SCAN_STOPPED))

    def start(self) -> None:
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self.started_at = self.clock()
        self._thread = threading.Thread(
            target=self.run_forever,
            args=(self._stop_event,),
            name="condemn-scanner",
            daemon=True,
        )
        self._thread.start()

    def stop(self, timeout: float | None = None) -> bool:
        """Signal the loop and wait for the in-flight tick to dispatch its claims.

        Past ``timeout`` the overrun is logged and the wait continues until the
        claimed switches are dispatched. Returns False when the tick outlived
        ``timeout``.
        """
        self._stop_event.set()
        thread = self._thread
        if thread is None:
            return True
        thread.join(timeout)
        finished_in_time = not thread.is_alive()
        if not finished_in_time:
            self.logger.warning(log_event(events.SHUTDOWN_SCANNER_TIMEOUT, timeout_sec=timeout))
            thread.join()
        self._thread = None
        return finished_in_time

    def is_stale(self, now: datetime, max_age: timedelta) -> bool:
        reference = self.last_tick_at or self.started_at
        if reference is None:
            return False
        return now - reference > max_age

    def health_snapshot(self) -> dict[str, object]:
        return {"last_scan_at": isoformat_utc(self.last_tick_at)}
