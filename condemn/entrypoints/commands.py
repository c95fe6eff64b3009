from __future__ import annotations

import json
import logging
import sys
from collections.abc import Callable
from typing import TextIO

from condemn.domain.duration import InvalidDuration, format_duration, parse_duration
from condemn.entrypoints.runtime_builder import ServiceRuntime
from condemn.entrypoints.service_loop import close_runtime_resources
from condemn.logging_utils import log_event, redact_sensitive_text, setup_logging
from condemn.observability import events
from condemn.repositories.switch_store import StoreError
from condemn.settings import Settings, SettingsError


def _load_runtime(
    *,
    settings_from_env: Callable[..., Settings],
    setup_logging_fn: Callable[..., logging.Logger],
    build_runtime_fn: Callable[[Settings], ServiceRuntime],
) -> ServiceRuntime | None:
    bootstrap_logger = setup_logging_fn()
    try:
        settings = settings_from_env()
    except SettingsError as exc:
        bootstrap_logger.critical(
            log_event(events.STARTUP_INVALID_CONFIG, error=redact_sensitive_text(exc))
        )
        return None

    runtime = build_runtime_fn(settings)
    try:
        runtime.store.ping()
    except StoreError as exc:
        runtime.logger.critical(
            log_event(
                events.STARTUP_STORE_UNREACHABLE,
                store_type=settings.store_type,
                error=redact_sensitive_text(exc),
            )
        )
        close_runtime_resources(runtime)
        return None
    return runtime


def run_service(
    *,
    settings_from_env: Callable[..., Settings] = Settings.from_env,
    setup_logging_fn: Callable[..., logging.Logger] = setup_logging,
    build_runtime_fn: Callable[[Settings], ServiceRuntime],
    log_startup_fn: Callable[[ServiceRuntime], None],
    run_loop_fn: Callable[[ServiceRuntime], int],
) -> int:
    runtime = _load_runtime(
        settings_from_env=settings_from_env,
        setup_logging_fn=setup_logging_fn,
        build_runtime_fn=build_runtime_fn,
    )
    if runtime is None:
        return 1
    log_startup_fn(runtime)
    return run_loop_fn(runtime)


def list_switches(
    *,
    settings_from_env: Callable[..., Settings] = Settings.from_env,
    setup_logging_fn: Callable[..., logging.Logger] = setup_logging,
    build_runtime_fn: Callable[[Settings], ServiceRuntime],
    out: TextIO | None = None,
) -> int:
    runtime = _load_runtime(
        settings_from_env=settings_from_env,
        setup_logging_fn=setup_logging_fn,
        build_runtime_fn=build_runtime_fn,
    )
    if runtime is None:
        return 1
    stream = out or sys.stdout
    try:
        records = runtime.engine.list_switches()
    except StoreError as exc:
        runtime.logger.error(
            log_event(events.COMMAND_FAILED, command="list", error=redact_sensitive_text(exc))
        )
        return 1
    finally:
        close_runtime_resources(runtime)

    payload = [record.to_public_dict() for record in records]
    stream.write(json.dumps(payload, ensure_ascii=False, indent=2) + "\n")
    return 0


def scan_once(
    *,
    settings_from_env: Callable[..., Settings] = Settings.from_env,
    setup_logging_fn: Callable[..., logging.Logger] = setup_logging,
    build_runtime_fn: Callable[[Settings], ServiceRuntime],
) -> int:
    runtime = _load_runtime(
        settings_from_env=settings_from_env,
        setup_logging_fn=setup_logging_fn,
        build_runtime_fn=build_runtime_fn,
    )
    if runtime is None:
        return 1
    try:
        claimed = runtime.scanner.run_tick()
    finally:
        close_runtime_resources(runtime)
    runtime.logger.info(log_event(events.SCAN_TICK_COMPLETE, command="scan-once", claimed=claimed))
    return 0 if claimed is not None else 1


def print_duration(text: str, *, out: TextIO | None = None, err: TextIO | None = None) -> int:
    stream = out or sys.stdout
    try:
        value = parse_duration(text)
    except InvalidDuration as exc:
        (err or sys.stderr).write(f"invalid duration: {exc}\n")
        return 2
    seconds = value.total_seconds()
    seconds_text = str(int(seconds)) if seconds.is_integer() else str(seconds)
    stream.write(f"{seconds_text}\t{format_duration(value)}\n")
    return 0
