from __future__ import annotations

import logging

import pytest
import requests

from condemn.observability import events
from condemn.services import webhook_notifier as webhook_module
from condemn.services.notifier import LogNotifier, NotificationError, NotifierDispatcher
from condemn.services.webhook_notifier import WebhookNotifier
from tests.main_test_harness import RecordingNotifier, capture_logger


class DummyResponse:
    def __init__(self, status_code: int = 200) -> None:
        self.status_code = status_code

    def raise_for_status(self) -> None:
        if 400 <= self.status_code:
            error = requests.HTTPError(f"http error {self.status_code}")
            error.response = self
            raise error


class FakeSession:
    def __init__(self, outcomes: list[object]) -> None:
        self.outcomes = list(outcomes)
        self.calls = 0
        self.payloads: list[dict] = []
        self.closed = False

    def post(self, url: str, **kwargs):
        self.payloads.append(kwargs.get("json", {}))
        outcome = self.outcomes[self.calls]
        self.calls += 1
        if isinstance(outcome, Exception):
            raise outcome
        return outcome

    def close(self) -> None:
        self.closed = True


def _webhook(session: FakeSession, **overrides: object) -> WebhookNotifier:
    options: dict[str, object] = {
        "url": "https://hooks.example/condemn",
        "timeout_sec": 1,
        "max_retries": 3,
        "retry_delay_sec": 0,
        "session": session,
    }
    options.update(overrides)
    return WebhookNotifier(**options)


class FailingNotifier:
    name = "failing"

    def __init__(self, error: Exception) -> None:
        self.error = error
        self.closed = False

    def notify(self, name: str, early_seconds: int | None) -> None:
        raise self.error

    def close(self) -> None:
        self.closed = True
        raise RuntimeError("close failed")


def test_dispatcher_isolates_failing_backends() -> None:
    logger, handler = capture_logger("test.dispatcher.isolation")
    first = RecordingNotifier(name="first")
    last = RecordingNotifier(name="last")
    dispatcher = NotifierDispatcher(
        [
            first,
            FailingNotifier(NotificationError("down", attempts=2, last_error=RuntimeError("x"))),
            FailingNotifier(ValueError("unexpected")),
            last,
        ],
        logger=logger,
    )

    result = dispatcher.notify("svc", None)

    assert result.delivered == ["first", "last"]
    assert result.failed == ["failing", "failing"]
    assert first.calls == [("svc", None)]
    assert last.calls == [("svc", None)]
    failures = [p for p in handler.payloads if p["event"] == events.NOTIFICATION_FAILED]
    assert len(failures) == 2
    assert failures[0]["attempts"] == 2


def test_dispatcher_close_closes_every_backend() -> None:
    logger, handler = capture_logger("test.dispatcher.close")
    recorder = RecordingNotifier()
    failing = FailingNotifier(RuntimeError("unused"))
    dispatcher = NotifierDispatcher([failing, recorder, LogNotifier()], logger=logger)

    dispatcher.close()

    assert failing.closed is True
    assert recorder.closed is True
    assert events.SHUTDOWN_RESOURCE_CLOSE_FAILED in handler.events()


def test_log_notifier_logs_dead_and_early_events() -> None:
    logger, handler = capture_logger("test.notifier.log", level=logging.INFO)
    notifier = LogNotifier(logger=logger)

    notifier.notify("svc", None)
    notifier.notify("svc", 42)

    assert handler.payloads == [
        {"event": events.NOTIFICATION_DEAD, "switch": "svc"},
        {"event": events.NOTIFICATION_EARLY, "switch": "svc", "early_seconds": 42},
    ]


def test_webhook_payload_describes_dead_switch() -> None:
    session = FakeSession([DummyResponse()])

    _webhook(session).notify("backup", None)

    assert session.payloads == [
        {
            "switch": "backup",
            "status": "dead",
            "early_seconds": None,
            "message": "Switch `backup` failed to make its deadline.",
        }
    ]


def test_webhook_payload_describes_early_switch() -> None:
    session = FakeSession([DummyResponse()])

    _webhook(session).notify("backup", 3600)

    payload = session.payloads[0]
    assert payload["status"] == "early"
    assert payload["early_seconds"] == 3600
    assert payload["message"] == "Switch `backup` checked in early by 3600 seconds"


def test_webhook_retries_then_succeeds_on_timeout() -> None:
    session = FakeSession([requests.Timeout("timeout"), DummyResponse()])

    _webhook(session).notify("svc", None)

    assert session.calls == 2


def test_webhook_retries_on_http_5xx_then_succeeds() -> None:
    session = FakeSession([DummyResponse(status_code=503), DummyResponse()])

    _webhook(session).notify("svc", None)

    assert session.calls == 2


def test_webhook_does_not_retry_on_http_4xx() -> None:
    session = FakeSession([DummyResponse(status_code=400), DummyResponse()])

    with pytest.raises(NotificationError) as exc_info:
        _webhook(session).notify("svc", None)

    assert exc_info.value.attempts == 1
    assert isinstance(exc_info.value.last_error, requests.HTTPError)
    assert session.calls == 1


def test_webhook_raises_after_max_retries() -> None:
    session = FakeSession([requests.ConnectionError("refused")] * 3)

    with pytest.raises(NotificationError) as exc_info:
        _webhook(session).notify("svc", None)

    assert exc_info.value.attempts == 3
    assert session.calls == 3


def test_webhook_backoff_doubles_when_retry_delay_is_positive(
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    slept: list[float] = []
    monkeypatch.setattr(webhook_module.time, "sleep", lambda sec: slept.append(sec))
    session = FakeSession([requests.Timeout("t")] * 4)

    with pytest.raises(NotificationError):
        _webhook(session, max_retries=4, retry_delay_sec=1).notify("svc", None)

    assert slept == [1, 2, 4]


def test_webhook_circuit_breaker_blocks_until_reset(monkeypatch: pytest.MonkeyPatch) -> None:
    current = [0.0]
    monkeypatch.setattr(webhook_module.time, "monotonic", lambda: current[0])
    logger, handler = capture_logger("test.notifier.webhook.circuit")
    session = FakeSession(
        [requests.Timeout("timeout-1"), requests.Timeout("timeout-2"), DummyResponse()]
    )
    notifier = _webhook(
        session,
        max_retries=1,
        circuit_failure_threshold=2,
        circuit_reset_sec=30,
        logger=logger,
    )

    for _ in range(2):
        with pytest.raises(NotificationError):
            notifier.notify("svc", None)
    with pytest.raises(NotificationError) as blocked:
        notifier.notify("svc", None)

    assert blocked.value.attempts == 0
    assert session.calls == 2

    current[0] = 31.0
    notifier.notify("svc", None)
    assert session.calls == 3
    logged = handler.events()
    assert events.NOTIFICATION_CIRCUIT_OPENED in logged
    assert events.NOTIFICATION_CIRCUIT_BLOCKED in logged
    assert events.NOTIFICATION_CIRCUIT_CLOSED in logged


def test_webhook_circuit_disabled_never_blocks() -> None:
    session = FakeSession([requests.Timeout("t")] * 5 + [DummyResponse()])
    notifier = _webhook(
        session,
        max_retries=1,
        circuit_breaker_enabled=False,
        circuit_failure_threshold=1,
    )

    for _ in range(5):
        with pytest.raises(NotificationError):
            notifier.notify("svc", None)
    notifier.notify("svc", None)

    assert session.calls == 6


def test_webhook_close_closes_session() -> None:
    session = FakeSession([])

    _webhook(session).close()

    assert session.closed is True
