from __future__ import annotations

import json
import os
import shlex
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any
from urllib.parse import urlparse
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

DEFAULT_LISTEN = "0.0.0.0:80"
DEFAULT_REDIS_URL = "redis://127.0.0.1:6379/0"
DEFAULT_REDIS_KEY_PREFIX = "condemn"
DEFAULT_JSON_STORE_FILE = "./data/switches.json"
STORE_TYPES = {"redis", "memory", "json"}
NOTIFIER_CHOICES = {"sentry", "webhook"}
REDIS_URL_SCHEMES = {"redis", "rediss", "unix"}
MIN_HEALTH_MAX_AGE_SEC = 60.0
HEALTH_MAX_AGE_INTERVALS = 12


class SettingsError(ValueError):
    """Raised when required environment settings are missing or malformed."""


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_dotenv_if_exists(env_file: Path) -> None:
    if not env_file.exists() or not env_file.is_file():
        return

    for raw_line in env_file.read_text(encoding="utf-8").splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export "):].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue
        value = _strip_optional_quotes(value.strip())
        os.environ.setdefault(key, value)


def _parse_json_env(name: str, default: str, expected_type: type) -> Any:
    raw = os.getenv(name, default)
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise SettingsError(f"{name} must be valid JSON. Received: {raw}") from exc
    if not isinstance(value, expected_type):
        raise SettingsError(f"{name} must be a JSON {expected_type.__name__}.")
    return value


def _parse_int_env(name: str, default: int, minimum: int = 0) -> int:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = int(raw)
    except ValueError as exc:
        raise SettingsError(f"{name} must be an integer. Received: {raw}") from exc
    if value < minimum:
        raise SettingsError(f"{name} must be >= {minimum}. Received: {value}")
    return value


def _parse_float_env(
    name: str,
    default: float,
    *,
    minimum: float | None = None,
    exclusive_minimum: bool = False,
) -> float:
    raw = os.getenv(name)
    if raw is None:
        return default
    try:
        value = float(raw)
    except ValueError as exc:
        raise SettingsError(f"{name} must be a float. Received: {raw}") from exc
    if minimum is not None:
        if exclusive_minimum and value <= minimum:
            raise SettingsError(f"{name} must be > {minimum}. Received: {value}")
        if value < minimum:
            raise SettingsError(f"{name} must be >= {minimum}. Received: {value}")
    return value


def _parse_bool_env(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    normalized = raw.strip().lower()
    if normalized in {"1", "true", "yes", "y", "on"}:
        return True
    if normalized in {"0", "false", "no", "n", "off"}:
        return False
    raise SettingsError(
        f"{name} must be a boolean value "
        f"(true/false, 1/0, yes/no). Received: {raw}"
    )


def _parse_str_env(name: str, default: str) -> str:
    """Blank and whitespace-only values fall back to ``default`` as well."""
    raw = os.getenv(name, "").strip()
    return raw if raw else default


def _parse_timezone_env(name: str, default: str) -> str:
    value = _parse_str_env(name, default)
    try:
        ZoneInfo(value)
    except (ZoneInfoNotFoundError, KeyError, ValueError):
        raise SettingsError(f"{name} is not a valid IANA timezone name. Received: {value}")
    return value


def _parse_choice_env(name: str, default: str, allowed: set[str]) -> str:
    raw = os.getenv(name)
    if raw is None:
        return default
    value = raw.strip().lower()
    if value not in allowed:
        allowed_text = ", ".join(sorted(allowed))
        raise SettingsError(f"{name} must be one of: {allowed_text}. Received: {raw}")
    return value


def _parse_listen_env(name: str, default: str) -> tuple[str, int]:
    value = _parse_str_env(name, default)
    host, sep, port_text = value.rpartition(":")
    host = host.strip("[]")
    if not sep or not host or not port_text.isdigit():
        raise SettingsError(f"{name} must be in host:port form. Received: {value}")
    port = int(port_text)
    if not 0 < port < 65536:
        raise SettingsError(f"{name} port must be between 1 and 65535. Received: {port}")
    return host, port


def _parse_notify_env(name: str) -> list[str]:
    raw_list = _parse_json_env(name, "[]", list)
    notify: list[str] = []
    for item in raw_list:
        value = str(item).strip().lower()
        if value not in NOTIFIER_CHOICES:
            allowed_text = ", ".join(sorted(NOTIFIER_CHOICES))
            raise SettingsError(f"{name} entries must be one of: {allowed_text}. Received: {item}")
        if value not in notify:
            notify.append(value)
    return notify


def _parse_command_env(name: str) -> list[str] | None:
    raw = os.getenv(name, "").strip()
    if not raw:
        return None
    try:
        argv = shlex.split(raw)
    except ValueError as exc:
        raise SettingsError(f"{name} is not a valid shell command: {exc}") from exc
    return argv or None


def _validate_redis_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in REDIS_URL_SCHEMES:
        allowed_text = ", ".join(sorted(REDIS_URL_SCHEMES))
        raise SettingsError(f"REDIS_URL scheme must be one of: {allowed_text}.")
    if parsed.scheme != "unix" and not parsed.hostname:
        raise SettingsError("REDIS_URL must include a host.")


def _validate_webhook_url(url: str) -> None:
    parsed = urlparse(url)
    if parsed.scheme not in {"http", "https"} or not parsed.netloc:
        raise SettingsError("WEBHOOK_URL must be a valid http(s) URL with host.")


@dataclass(frozen=True)
class _ServerConfig:
    listen_host: str
    listen_port: int
    access_log: bool


@dataclass(frozen=True)
class _StoreConfig:
    store_type: str
    redis_url: str
    redis_key_prefix: str
    store_timeout_sec: float
    json_store_file: Path


@dataclass(frozen=True)
class _NotifierConfig:
    notify: list[str]
    notify_command: list[str] | None
    sentry_dsn: str | None
    webhook_url: str | None
    notifier_timeout_sec: int
    notifier_max_retries: int
    notifier_retry_delay_sec: int
    notifier_circuit_breaker_enabled: bool
    notifier_circuit_failure_threshold: int
    notifier_circuit_reset_sec: int
    command_timeout_sec: float


@dataclass(frozen=True)
class _RuntimeConfig:
    scan_interval_sec: float
    shutdown_timeout_sec: int
    timezone: str
    log_level: str


def _parse_server_config() -> _ServerConfig:
    listen_host, listen_port = _parse_listen_env("LISTEN", DEFAULT_LISTEN)
    return _ServerConfig(
        listen_host=listen_host,
        listen_port=listen_port,
        access_log=_parse_bool_env("ACCESS_LOG", default=False),
    )


def _parse_store_config() -> _StoreConfig:
    store_type = _parse_choice_env("STORE_TYPE", "redis", STORE_TYPES)
    redis_url = _parse_str_env("REDIS_URL", DEFAULT_REDIS_URL)
    if store_type == "redis":
        _validate_redis_url(redis_url)
    return _StoreConfig(
        store_type=store_type,
        redis_url=redis_url,
        redis_key_prefix=_parse_str_env("REDIS_KEY_PREFIX", DEFAULT_REDIS_KEY_PREFIX),
        store_timeout_sec=_parse_float_env(
            "STORE_TIMEOUT_SEC",
            5.0,
            minimum=0.0,
            exclusive_minimum=True,
        ),
        json_store_file=Path(_parse_str_env("JSON_STORE_FILE", DEFAULT_JSON_STORE_FILE)),
    )


def _parse_notifier_config() -> _NotifierConfig:
    notify = _parse_notify_env("NOTIFY")
    sentry_dsn = _parse_str_env("SENTRY_DSN", "") or None
    if "sentry" in notify and not sentry_dsn:
        raise SettingsError("SENTRY_DSN is required when NOTIFY includes sentry.")
    webhook_url = _parse_str_env("WEBHOOK_URL", "") or None
    if "webhook" in notify:
        if not webhook_url:
            raise SettingsError("WEBHOOK_URL is required when NOTIFY includes webhook.")
        _validate_webhook_url(webhook_url)

    return _NotifierConfig(
        notify=notify,
        notify_command=_parse_command_env("NOTIFY_COMMAND"),
        sentry_dsn=sentry_dsn,
        webhook_url=webhook_url,
        notifier_timeout_sec=_parse_int_env("NOTIFIER_TIMEOUT_SEC", 5, minimum=1),
        notifier_max_retries=_parse_int_env("NOTIFIER_MAX_RETRIES", 3, minimum=1),
        notifier_retry_delay_sec=_parse_int_env("NOTIFIER_RETRY_DELAY_SEC", 1, minimum=0),
        notifier_circuit_breaker_enabled=_parse_bool_env(
            "NOTIFIER_CIRCUIT_BREAKER_ENABLED",
            default=True,
        ),
        notifier_circuit_failure_threshold=_parse_int_env(
            "NOTIFIER_CIRCUIT_FAILURE_THRESHOLD",
            5,
            minimum=1,
        ),
        notifier_circuit_reset_sec=_parse_int_env(
            "NOTIFIER_CIRCUIT_RESET_SEC",
            300,
            minimum=1,
        ),
        command_timeout_sec=_parse_float_env(
            "COMMAND_TIMEOUT_SEC",
            300.0,
            minimum=0.0,
            exclusive_minimum=True,
        ),
    )


def _parse_runtime_config() -> _RuntimeConfig:
    return _RuntimeConfig(
        scan_interval_sec=_parse_float_env(
            "SCAN_INTERVAL_SEC",
            1.0,
            minimum=0.0,
            exclusive_minimum=True,
        ),
        shutdown_timeout_sec=_parse_int_env("SHUTDOWN_TIMEOUT_SEC", 30, minimum=0),
        timezone=_parse_timezone_env("TIMEZONE", "UTC"),
        log_level=_parse_str_env("LOG_LEVEL", "INFO").upper(),
    )


@dataclass(frozen=True)
class Settings:
    listen_host: str = "0.0.0.0"
    listen_port: int = 80
    access_log: bool = False
    store_type: str = "redis"
    redis_url: str = DEFAULT_REDIS_URL
    redis_key_prefix: str = DEFAULT_REDIS_KEY_PREFIX
    store_timeout_sec: float = 5.0
    json_store_file: Path = Path(DEFAULT_JSON_STORE_FILE)
    notify: list[str] = field(default_factory=list)
    notify_command: list[str] | None = None
    sentry_dsn: str | None = None
    webhook_url: str | None = None
    notifier_timeout_sec: int = 5
    notifier_max_retries: int = 3
    notifier_retry_delay_sec: int = 1
    notifier_circuit_breaker_enabled: bool = True
    notifier_circuit_failure_threshold: int = 5
    notifier_circuit_reset_sec: int = 300
    command_timeout_sec: float = 300.0
    scan_interval_sec: float = 1.0
    shutdown_timeout_sec: int = 30
    timezone: str = "UTC"
    log_level: str = "INFO"

    @property
    def health_max_age_sec(self) -> float:
        return max(MIN_HEALTH_MAX_AGE_SEC, HEALTH_MAX_AGE_INTERVALS * self.scan_interval_sec)

    @classmethod
    def from_env(cls, env_file: str | Path | None = ".env") -> Settings:
        if env_file:
            _load_dotenv_if_exists(Path(env_file))

        server = _parse_server_config()
        store = _parse_store_config()
        notifiers = _parse_notifier_config()
        runtime = _parse_runtime_config()

        return cls(
            listen_host=server.listen_host,
            listen_port=server.listen_port,
            access_log=server.access_log,
            store_type=store.store_type,
            redis_url=store.redis_url,
            redis_key_prefix=store.redis_key_prefix,
            store_timeout_sec=store.store_timeout_sec,
            json_store_file=store.json_store_file,
            notify=notifiers.notify,
            notify_command=notifiers.notify_command,
            sentry_dsn=notifiers.sentry_dsn,
            webhook_url=notifiers.webhook_url,
            notifier_timeout_sec=notifiers.notifier_timeout_sec,
            notifier_max_retries=notifiers.notifier_max_retries,
            notifier_retry_delay_sec=notifiers.notifier_retry_delay_sec,
            notifier_circuit_breaker_enabled=notifiers.notifier_circuit_breaker_enabled,
            notifier_circuit_failure_threshold=notifiers.notifier_circuit_failure_threshold,
            notifier_circuit_reset_sec=notifiers.notifier_circuit_reset_sec,
            command_timeout_sec=notifiers.command_timeout_sec,
            scan_interval_sec=runtime.scan_interval_sec,
            shutdown_timeout_sec=runtime.shutdown_timeout_sec,
            timezone=runtime.timezone,
            log_level=runtime.log_level,
        )
