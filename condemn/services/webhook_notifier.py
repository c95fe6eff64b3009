from __future__ import annotations

import logging
import threading
import time

import requests

from condemn.domain.message_builder import build_notification_message, notification_status
from condemn.logging_utils import log_event, redact_sensitive_text
from condemn.observability import events
from condemn.services.notifier import NotificationError


class WebhookNotifier:
    name = "webhook"

    def __init__(
        self,
        url: str,
        timeout_sec: float = 5,
        max_retries: int = 3,
        retry_delay_sec: float = 1,
        circuit_breaker_enabled: bool = True,
        circuit_failure_threshold: int = 5,
        circuit_reset_sec: int = 300,
        session: requests.Session | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.url = url
        self.timeout_sec = timeout_sec
        self.max_retries = max(1, max_retries)
        self.retry_delay_sec = max(0, retry_delay_sec)
        self.circuit_breaker_enabled = circuit_breaker_enabled
        self.circuit_failure_threshold = max(1, circuit_failure_threshold)
        self.circuit_reset_sec = max(1, circuit_reset_sec)
        self.session = session or requests.Session()
        self.logger = logger or logging.getLogger("condemn.notifier.webhook")
        self._consecutive_failures = 0
        self._circuit_open_until_monotonic: float | None = None
        self._lock = threading.Lock()

    def close(self) -> None:
        self.session.close()

    @staticmethod
    def build_payload(name: str, early_seconds: int | None) -> dict[str, object]:
        return {
            "switch": name,
            "status": notification_status(early_seconds),
            "early_seconds": early_seconds,
            "message": build_notification_message(name, early_seconds),
        }

    @staticmethod
    def _should_retry(exc: requests.RequestException) -> bool:
        if isinstance(exc, requests.HTTPError):
            status = getattr(exc.response, "status_code", None)
            return status is not None and status >= 500
        return True

    def _guard_circuit(self, name: str) -> None:
        if not self.circuit_breaker_enabled:
            return
        with self._lock:
            reopen_at = self._circuit_open_until_monotonic
            if reopen_at is None:
                return
            now = time.monotonic()
            if now >= reopen_at:
                self._circuit_open_until_monotonic = None
                self._consecutive_failures = 0
                self.logger.info(log_event(events.NOTIFICATION_CIRCUIT_CLOSED, backend=self.name))
                return
            failures = self._consecutive_failures

        self.logger.warning(
            log_event(
                events.NOTIFICATION_CIRCUIT_BLOCKED,
                backend=self.name,
                switch=name,
                remaining_sec=int(reopen_at - now),
                consecutive_failures=failures,
            )
        )
        raise NotificationError(
            "webhook send blocked by circuit breaker",
            attempts=0,
            last_error=RuntimeError("circuit_open"),
        )

    def _record_result(self, delivered: bool) -> None:
        with self._lock:
            if delivered:
                self._consecutive_failures = 0
                return
            if not self.circuit_breaker_enabled:
                return
            self._consecutive_failures += 1
            if self._circuit_open_until_monotonic is not None:
                return
            if self._consecutive_failures < self.circuit_failure_threshold:
                return
            self._circuit_open_until_monotonic = time.monotonic() + self.circuit_reset_sec
            self.logger.warning(
                log_event(
                    events.NOTIFICATION_CIRCUIT_OPENED,
                    backend=self.name,
                    consecutive_failures=self._consecutive_failures,
                    reset_sec=self.circuit_reset_sec,
                )
            )

    def notify(self, name: str, early_seconds: int | None) -> None:
        self._guard_circuit(name)

        payload = self.build_payload(name, early_seconds)
        delay = self.retry_delay_sec
        attempt = 0
        while True:
            attempt += 1
            try:
                self.session.post(self.url, json=payload, timeout=self.timeout_sec).raise_for_status()
            except requests.RequestException as exc:
                if attempt >= self.max_retries or not self._should_retry(exc):
                    self._record_result(delivered=False)
                    raise NotificationError(
                        f"webhook send failed: {redact_sensitive_text(exc)}",
                        attempts=attempt,
                        last_error=exc,
                    ) from exc
                self.logger.warning(
                    log_event(
                        events.NOTIFICATION_RETRY,
                        backend=self.name,
                        switch=name,
                        attempt=attempt,
                        max_retries=self.max_retries,
                        error=redact_sensitive_text(exc),
                        backoff_sec=delay,
                    )
                )
                if delay > 0:
                    time.sleep(delay)
                delay *= 2
            else:
                self._record_result(delivered=True)
                return
