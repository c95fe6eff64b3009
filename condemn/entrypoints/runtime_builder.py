from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass

from condemn.logging_utils import log_event, redact_sensitive_text, setup_logging
from condemn.observability import events
from condemn.repositories.json_switch_store import JsonSwitchStore
from condemn.repositories.memory_switch_store import MemorySwitchStore
from condemn.repositories.redis_switch_store import RedisSwitchStore
from condemn.repositories.switch_store import SwitchStore
from condemn.services.command_notifier import CommandNotifier
from condemn.services.notifier import LogNotifier, Notifier, NotifierDispatcher
from condemn.services.sentry_notifier import SentryNotifier
from condemn.services.webhook_notifier import WebhookNotifier
from condemn.settings import Settings
from condemn.usecases.expiry_scanner import ExpiryScanner
from condemn.usecases.switch_engine import SwitchEngine


@dataclass(frozen=True)
class ServiceRuntime:
    settings: Settings
    logger: logging.Logger
    store: SwitchStore
    dispatcher: NotifierDispatcher
    engine: SwitchEngine
    scanner: ExpiryScanner


def _build_log_notifier(settings: Settings, logger: logging.Logger) -> Notifier:
    return LogNotifier(logger=logger.getChild("log"))


def _build_command_notifier(settings: Settings, logger: logging.Logger) -> Notifier:
    assert settings.notify_command is not None
    return CommandNotifier(
        settings.notify_command,
        timeout_sec=settings.command_timeout_sec,
        logger=logger.getChild("command"),
    )


def _build_sentry_notifier(settings: Settings, logger: logging.Logger) -> Notifier:
    assert settings.sentry_dsn is not None
    return SentryNotifier(settings.sentry_dsn, logger=logger.getChild("sentry"))


def _build_webhook_notifier(settings: Settings, logger: logging.Logger) -> Notifier:
    assert settings.webhook_url is not None
    return WebhookNotifier(
        url=settings.webhook_url,
        timeout_sec=settings.notifier_timeout_sec,
        max_retries=settings.notifier_max_retries,
        retry_delay_sec=settings.notifier_retry_delay_sec,
        circuit_breaker_enabled=settings.notifier_circuit_breaker_enabled,
        circuit_failure_threshold=settings.notifier_circuit_failure_threshold,
        circuit_reset_sec=settings.notifier_circuit_reset_sec,
        logger=logger.getChild("webhook"),
    )


NOTIFIER_REGISTRY: dict[str, Callable[[Settings, logging.Logger], Notifier]] = {
    "log": _build_log_notifier,
    "command": _build_command_notifier,
    "sentry": _build_sentry_notifier,
    "webhook": _build_webhook_notifier,
}


def enabled_notifier_names(settings: Settings) -> list[str]:
    names = ["log"]
    if settings.notify_command:
        names.append("command")
    names.extend(name for name in settings.notify if name not in names)
    return names


def build_notifiers(
    *,
    settings: Settings,
    logger: logging.Logger,
    registry: dict[str, Callable[[Settings, logging.Logger], Notifier]] | None = None,
) -> list[Notifier]:
    factories = registry or NOTIFIER_REGISTRY
    notifier_logger = logger.getChild("notifier")
    return [factories[name](settings, notifier_logger) for name in enabled_notifier_names(settings)]


def build_store(
    *,
    settings: Settings,
    logger: logging.Logger,
    redis_store_factory: Callable[..., SwitchStore] = RedisSwitchStore.from_url,
    json_store_factory: Callable[..., SwitchStore] = JsonSwitchStore,
    memory_store_factory: Callable[..., SwitchStore] = MemorySwitchStore,
) -> SwitchStore:
    store_logger = logger.getChild("store")
    if settings.store_type == "memory":
        return memory_store_factory(logger=store_logger)
    if settings.store_type == "json":
        return json_store_factory(file_path=settings.json_store_file, logger=store_logger)
    return redis_store_factory(
        settings.redis_url,
        key_prefix=settings.redis_key_prefix,
        timeout_sec=settings.store_timeout_sec,
        logger=store_logger,
    )


def build_runtime(
    settings: Settings,
    *,
    setup_logging_fn: Callable[..., logging.Logger] = setup_logging,
    build_store_fn: Callable[..., SwitchStore] = build_store,
    build_notifiers_fn: Callable[..., list[Notifier]] = build_notifiers,
    engine_factory: Callable[..., SwitchEngine] = SwitchEngine,
    scanner_factory: Callable[..., ExpiryScanner] = ExpiryScanner,
) -> ServiceRuntime:
    logger = setup_logging_fn(settings.log_level, settings.timezone)
    store = build_store_fn(settings=settings, logger=logger)
    dispatcher = NotifierDispatcher(
        build_notifiers_fn(settings=settings, logger=logger),
        logger=logger.getChild("notifier"),
    )
    engine = engine_factory(
        store=store,
        dispatcher=dispatcher,
        logger=logger.getChild("engine"),
    )
    scanner = scanner_factory(
        engine=engine,
        interval_sec=settings.scan_interval_sec,
        logger=logger.getChild("scanner"),
    )
    return ServiceRuntime(
        settings=settings,
        logger=logger,
        store=store,
        dispatcher=dispatcher,
        engine=engine,
        scanner=scanner,
    )


def log_startup(runtime: ServiceRuntime) -> None:
    settings = runtime.settings
    runtime.logger.info(
        log_event(
            events.STARTUP_READY,
            listen=f"{settings.listen_host}:{settings.listen_port}",
            store_type=settings.store_type,
            redis_url=(
                redact_sensitive_text(settings.redis_url)
                if settings.store_type == "redis"
                else None
            ),
            json_store_file=(
                str(settings.json_store_file) if settings.store_type == "json" else None
            ),
            notifiers=enabled_notifier_names(settings),
            scan_interval_sec=settings.scan_interval_sec,
            shutdown_timeout_sec=settings.shutdown_timeout_sec,
        )
    )
