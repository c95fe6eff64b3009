from __future__ import annotations

import logging
from typing import Any

import sentry_sdk

from condemn.domain.message_builder import build_fingerprint, build_notification_message
from condemn.logging_utils import redact_sensitive_text
from condemn.services.notifier import NotificationError

SENTRY_LOGGER_NAME = "condemn"
SENTRY_CLOSE_TIMEOUT_SEC = 2


class SentryNotifier:
    """Sends each notification as a standalone Sentry event.

    Dead and early events get separate fingerprints so Sentry groups them as
    two issues per switch.
    """

    name = "sentry"

    def __init__(
        self,
        dsn: str,
        *,
        client: Any | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self.logger = logger or logging.getLogger("condemn.notifier.sentry")
        self.client = client if client is not None else sentry_sdk.Client(dsn=dsn)

    @staticmethod
    def build_event(name: str, early_seconds: int | None) -> dict[str, Any]:
        return {
            "level": "error" if early_seconds is None else "warning",
            "logger": SENTRY_LOGGER_NAME,
            "message": build_notification_message(name, early_seconds),
            "fingerprint": [build_fingerprint(name, early_seconds)],
            "tags": {"switch": name},
        }

    def notify(self, name: str, early_seconds: int | None) -> None:
        try:
            self.client.capture_event(self.build_event(name, early_seconds))
        except Exception as exc:
            raise NotificationError(
                f"sentry capture failed: {redact_sensitive_text(exc)}",
                last_error=exc,
            ) from exc

    def close(self) -> None:
        self.client.close(timeout=SENTRY_CLOSE_TIMEOUT_SEC)
