from __future__ import annotations

import json
import logging
from pathlib import Path

from condemn.entrypoints.runtime_builder import (
    NOTIFIER_REGISTRY,
    build_notifiers,
    build_runtime,
    build_store,
    enabled_notifier_names,
    log_startup,
)
from condemn.observability import events
from condemn.repositories.json_switch_store import JsonSwitchStore
from condemn.repositories.memory_switch_store import MemorySwitchStore
from condemn.services.command_notifier import CommandNotifier
from condemn.services.notifier import LogNotifier
from condemn.services.webhook_notifier import WebhookNotifier
from tests.main_test_harness import capture_logger, make_settings


def test_registry_covers_every_backend() -> None:
    assert set(NOTIFIER_REGISTRY) == {"log", "command", "sentry", "webhook"}


def test_log_notifier_is_always_enabled(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)

    assert enabled_notifier_names(settings) == ["log"]


def test_enabled_notifiers_follow_settings(tmp_path: Path) -> None:
    settings = make_settings(
        tmp_path,
        notify=["webhook", "sentry"],
        notify_command=["notify.sh"],
        webhook_url="https://hooks.example",
        sentry_dsn="https://key@o0.ingest.sentry.io/1",
    )

    assert enabled_notifier_names(settings) == ["log", "command", "webhook", "sentry"]


def test_build_notifiers_uses_registry_factories(tmp_path: Path) -> None:
    settings = make_settings(
        tmp_path,
        notify=["webhook"],
        notify_command=["notify.sh", "--dead"],
        webhook_url="https://hooks.example",
    )
    logger, _ = capture_logger("test.runtime.notifiers")

    notifiers = build_notifiers(settings=settings, logger=logger)
    try:
        assert [type(notifier) for notifier in notifiers] == [
            LogNotifier,
            CommandNotifier,
            WebhookNotifier,
        ]
        command = notifiers[1]
        assert isinstance(command, CommandNotifier)
        assert command.argv == ["notify.sh", "--dead"]
        assert command.timeout_sec == settings.command_timeout_sec
    finally:
        for notifier in notifiers:
            close_fn = getattr(notifier, "close", None)
            if callable(close_fn):
                close_fn()


def test_build_notifiers_accepts_custom_registry(tmp_path: Path) -> None:
    settings = make_settings(tmp_path)
    logger, _ = capture_logger("test.runtime.custom")
    sentinel = object()

    notifiers = build_notifiers(
        settings=settings,
        logger=logger,
        registry={"log": lambda _settings, _logger: sentinel},
    )

    assert notifiers == [sentinel]


def test_build_store_selects_backend(tmp_path: Path) -> None:
    logger, _ = capture_logger("test.runtime.store")
    redis_calls: list[tuple] = []

    def redis_factory(url: str, **kwargs: object) -> MemorySwitchStore:
        redis_calls.append((url, kwargs["key_prefix"], kwargs["timeout_sec"]))
        return MemorySwitchStore()

    memory = build_store(settings=make_settings(tmp_path, store_type="memory"), logger=logger)
    json_store = build_store(settings=make_settings(tmp_path, store_type="json"), logger=logger)
    build_store(
        settings=make_settings(tmp_path, store_type="redis", redis_key_prefix="prod"),
        logger=logger,
        redis_store_factory=redis_factory,
    )

    assert type(memory) is MemorySwitchStore
    assert isinstance(json_store, JsonSwitchStore)
    assert json_store.file_path == tmp_path / "switches.json"
    assert redis_calls == [("redis://127.0.0.1:6379/0", "prod", 5.0)]


def test_build_runtime_wires_components(tmp_path: Path) -> None:
    settings = make_settings(tmp_path, scan_interval_sec=2.5)
    logger, _ = capture_logger("test.runtime.build")

    runtime = build_runtime(settings, setup_logging_fn=lambda *_args: logger)

    assert runtime.logger is logger
    assert runtime.engine.store is runtime.store
    assert runtime.engine.dispatcher is runtime.dispatcher
    assert runtime.scanner.engine is runtime.engine
    assert runtime.scanner.interval_sec == 2.5
    assert runtime.scanner.logger.name == "test.runtime.build.scanner"
    assert [type(backend) for backend in runtime.dispatcher.backends] == [LogNotifier]


def test_log_startup_redacts_redis_password(tmp_path: Path) -> None:
    settings = make_settings(
        tmp_path,
        store_type="redis",
        redis_url="redis://user:hunter2@db:6379/0",
    )
    logger, handler = capture_logger("test.runtime.startup", level=logging.INFO)
    runtime = build_runtime(
        settings,
        setup_logging_fn=lambda *_args: logger,
        build_store_fn=lambda **_kwargs: MemorySwitchStore(),
    )

    log_startup(runtime)

    payload = json.loads(handler.messages[-1])
    assert payload["event"] == events.STARTUP_READY
    assert payload["listen"] == "127.0.0.1:8080"
    assert payload["notifiers"] == ["log"]
    assert "hunter2" not in payload["redis_url"]
