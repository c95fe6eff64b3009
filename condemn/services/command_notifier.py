from __future__ import annotations

import logging
import os
import subprocess
from collections.abc import Callable, Sequence
from concurrent.futures import ThreadPoolExecutor

from condemn.logging_utils import log_event
from condemn.observability import events
from condemn.services.notifier import NotificationError

ENV_SWITCH_NAME = "CONDEMN_NAME"
ENV_EARLY_SECONDS = "CONDEMN_EARLY"
DEFAULT_COMMAND_TIMEOUT_SEC = 300.0


class CommandNotifier:
    """Runs a user command per notification without blocking the caller.

    The child sees ``CONDEMN_NAME`` and ``CONDEMN_EARLY`` (seconds early, or
    ``0`` for a dead switch). Children are reaped on a small worker pool.
    """

    name = "command"

    def __init__(
        self,
        argv: Sequence[str],
        *,
        timeout_sec: float = DEFAULT_COMMAND_TIMEOUT_SEC,
        max_workers: int = 4,
        popen_fn: Callable[..., subprocess.Popen] = subprocess.Popen,
        logger: logging.Logger | None = None,
    ) -> None:
        if not argv:
            raise ValueError("command notifier requires a non-empty argv")
        self.argv = list(argv)
        self.timeout_sec = timeout_sec
        self.popen_fn = popen_fn
        self.logger = logger or logging.getLogger("condemn.notifier.command")
        self._executor = ThreadPoolExecutor(
            max_workers=max(1, max_workers),
            thread_name_prefix="condemn-command",
        )

    def build_env(self, name: str, early_seconds: int | None) -> dict[str, str]:
        return os.environ | {
            ENV_SWITCH_NAME: name,
            ENV_EARLY_SECONDS: str(early_seconds or 0),
        }

    def notify(self, name: str, early_seconds: int | None) -> None:
        try:
            process = self.popen_fn(self.argv, env=self.build_env(name, early_seconds))
        except OSError as exc:
            raise NotificationError(f"failed to spawn {self.argv[0]}: {exc}", last_error=exc) from exc

        self.logger.info(
            log_event(
                events.NOTIFICATION_COMMAND_SPAWNED,
                switch=name,
                pid=process.pid,
                command=self.argv[0],
            )
        )
        self._executor.submit(self._reap, process, name)

    def _reap(self, process: subprocess.Popen, name: str) -> int | None:
        try:
            returncode = process.wait(timeout=self.timeout_sec)
        except subprocess.TimeoutExpired:
            process.kill()
            process.wait()
            self.logger.error(
                log_event(
                    events.NOTIFICATION_COMMAND_TIMEOUT,
                    switch=name,
                    pid=process.pid,
                    timeout_sec=self.timeout_sec,
                )
            )
            return None
        except OSError as exc:
            self.logger.error(
                log_event(
                    events.NOTIFICATION_COMMAND_WAIT_FAILED,
                    switch=name,
                    pid=process.pid,
                    error=str(exc),
                )
            )
            return None

        log_fn = self.logger.info if returncode == 0 else self.logger.warning
        log_fn(
            log_event(
                events.NOTIFICATION_COMMAND_EXITED,
                switch=name,
                pid=process.pid,
                returncode=returncode,
            )
        )
        return returncode

    def close(self) -> None:
        self._executor.shutdown(wait=True)
