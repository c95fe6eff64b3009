from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from typing import Protocol

from condemn.logging_utils import log_event, redact_sensitive_text
from condemn.observability import events


class NotificationError(RuntimeError):
    """Raised when a backend fails to deliver a notification."""

    def __init__(
        self,
        message: str,
        *,
        attempts: int = 1,
        last_error: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.attempts = attempts
        self.last_error = last_error


class Notifier(Protocol):
    """Delivers one dead (``early_seconds is None``) or early event."""

    def notify(self, name: str, early_seconds: int | None) -> None:
        ...


class LogNotifier:
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger or logging.getLogger("condemn.notifier.log")

    def notify(self, name: str, early_seconds: int | None) -> None:
        if early_seconds is None:
            self.logger.warning(log_event(events.NOTIFICATION_DEAD, switch=name))
            return
        self.logger.warning(
            log_event(events.NOTIFICATION_EARLY, switch=name, early_seconds=early_seconds)
        )


@dataclass
class DispatchResult:
    delivered: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)


def _backend_name(backend: object) -> str:
    return str(getattr(backend, "name", type(backend).__name__))


class NotifierDispatcher:
    """Fans every notification out to all configured backends.

    A failing backend is logged and skipped; the remaining backends still run.
    """

    def __init__(
        self,
        backends: Iterable[Notifier],
        logger: logging.Logger | None = None,
    ) -> None:
        self.backends = list(backends)
        self.logger = logger or logging.getLogger("condemn.notifier")

    def notify(self, name: str, early_seconds: int | None) -> DispatchResult:
        result = DispatchResult()
        for backend in self.backends:
            backend_name = _backend_name(backend)
            try:
                backend.notify(name, early_seconds)
            except NotificationError as exc:
                result.failed.append(backend_name)
                self.logger.error(
                    log_event(
                        events.NOTIFICATION_FAILED,
                        switch=name,
                        backend=backend_name,
                        early_seconds=early_seconds,
                        attempts=exc.attempts,
                        error=redact_sensitive_text(exc.last_error or exc),
                    )
                )
                continue
            except Exception as exc:
                result.failed.append(backend_name)
                self.logger.error(
                    log_event(
                        events.NOTIFICATION_FAILED,
                        switch=name,
                        backend=backend_name,
                        early_seconds=early_seconds,
                        error=redact_sensitive_text(exc),
                    ),
                    exc_info=True,
                )
                continue
            result.delivered.append(backend_name)

        self.logger.info(
            log_event(
                events.NOTIFICATION_DISPATCHED,
                switch=name,
                early_seconds=early_seconds,
                delivered=result.delivered,
                failed=result.failed,
            )
        )
        return result

    def close(self) -> None:
        for backend in self.backends:
            close_fn = getattr(backend, "close", None)
            if not callable(close_fn):
                continue
            try:
                close_fn()
            except Exception as exc:
                self.logger.warning(
                    log_event(
                        events.SHUTDOWN_RESOURCE_CLOSE_FAILED,
                        resource=_backend_name(backend),
                        error=redact_sensitive_text(exc),
                    )
                )
