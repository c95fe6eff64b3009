from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from condemn.entrypoints.http_api import create_app
from condemn.observability import events
from condemn.repositories.memory_switch_store import MemorySwitchStore
from condemn.repositories.switch_store import StoreUnavailable
from condemn.usecases.expiry_scanner import ExpiryScanner
from tests.main_test_harness import T0, EngineFixture, capture_logger, make_engine


class UnavailableStore(MemorySwitchStore):
    def metadata_of(self, names):
        raise StoreUnavailable("redis down")

    def take(self, name: str):
        raise StoreUnavailable("redis down")

    def all(self):
        raise StoreUnavailable("redis down")


@pytest.fixture
def fx() -> EngineFixture:
    return make_engine()


def _client(fx: EngineFixture, **kwargs) -> TestClient:
    return TestClient(create_app(fx.engine, clock=fx.clock, **kwargs))


def test_register_returns_201_with_outcome(fx: EngineFixture) -> None:
    client = _client(fx)

    response = client.get("/switch/backup", params={"deadline": "1h", "window": "30m"})

    assert response.status_code == 201
    assert response.json() == {
        "name": "backup",
        "status": "created",
        "early": False,
        "early_seconds": None,
        "late": False,
        "deadline": "2024-01-01T13:00:00Z",
        "window_start": "2024-01-01T12:30:00Z",
    }


def test_early_renewal_is_reported(fx: EngineFixture) -> None:
    client = _client(fx)
    client.get("/switch/B", params={"deadline": "25h", "window": "2h"})
    fx.clock.advance(hours=22)

    response = client.get("/switch/B", params={"deadline": "25h", "window": "2h"})

    assert response.status_code == 201
    body = response.json()
    assert body["status"] == "renewed"
    assert body["early"] is True
    assert body["early_seconds"] == 3600
    assert fx.notifier.calls == [("B", 3600)]


def test_window_without_deadline_is_a_check_in(fx: EngineFixture) -> None:
    client = _client(fx)
    client.get("/switch/svc", params={"deadline": "1h"})

    response = client.get("/switch/svc", params={"window": "5m"})

    assert response.status_code == 200
    assert response.json()["status"] == "checked_in"
    assert fx.store.all() == []


def test_check_in_unknown_switch_returns_404(fx: EngineFixture) -> None:
    response = _client(fx).get("/switch/ghost")

    assert response.status_code == 404
    assert "ghost" in response.json()["detail"]
    assert fx.notifier.calls == []


def test_late_check_in_returns_200_and_notifies_once(fx: EngineFixture) -> None:
    client = _client(fx)
    client.get("/switch/svc", params={"deadline": "1s"})
    fx.clock.advance(seconds=5)

    response = client.get("/switch/svc")

    assert response.status_code == 200
    assert response.json()["late"] is True
    assert fx.notifier.calls == [("svc", None)]


@pytest.mark.parametrize(
    "params",
    [{"deadline": "soon"}, {"deadline": ""}, {"deadline": "1h", "window": "2 fortnights"}],
)
def test_invalid_duration_returns_400(fx: EngineFixture, params: dict[str, str]) -> None:
    logger, handler = capture_logger("test.http.invalid")

    response = _client(fx, logger=logger).get("/switch/svc", params=params)

    assert response.status_code == 400
    assert response.json()["detail"]
    assert fx.store.all() == []
    assert events.HTTP_REQUEST_REJECTED in handler.events()


def test_store_failure_returns_503() -> None:
    fx = make_engine(store=UnavailableStore())
    logger, handler = capture_logger("test.http.store")
    client = _client(fx, logger=logger)

    assert client.get("/switch/svc", params={"deadline": "1h"}).status_code == 503
    assert client.get("/switch/svc").status_code == 503
    assert client.get("/").status_code == 503
    assert events.HTTP_STORE_ERROR in handler.events()


def test_list_switches(fx: EngineFixture) -> None:
    client = _client(fx)
    client.get("/switch/b", params={"deadline": "2h"})
    client.get("/switch/a", params={"deadline": "1h", "window": "10m"})

    response = client.get("/")

    assert response.status_code == 200
    assert response.json() == [
        {"name": "a", "deadline": "2024-01-01T13:00:00Z", "window_start": "2024-01-01T12:50:00Z"},
        {"name": "b", "deadline": "2024-01-01T14:00:00Z", "window_start": None},
    ]


def test_healthz_without_scanner_is_ok(fx: EngineFixture) -> None:
    response = _client(fx).get("/healthz")

    assert response.status_code == 200
    assert response.json() == {"status": "ok", "last_scan_at": None}


def test_healthz_reports_stale_scanner(fx: EngineFixture) -> None:
    scanner = ExpiryScanner(fx.engine, interval_sec=1.0, clock=fx.clock)
    scanner.run_tick()
    client = _client(fx, scanner=scanner, health_max_age_sec=60)

    fresh = client.get("/healthz")
    fx.clock.advance(seconds=61)
    stale = client.get("/healthz")

    assert fresh.status_code == 200
    assert fresh.json() == {"status": "ok", "last_scan_at": "2024-01-01T12:00:00Z"}
    assert stale.status_code == 503
    assert stale.json()["status"] == "stale"


def test_switch_names_may_contain_dots_and_dashes(fx: EngineFixture) -> None:
    response = _client(fx).get("/switch/db-backup.nightly", params={"deadline": "1d"})

    assert response.status_code == 201
    assert response.json()["name"] == "db-backup.nightly"
    assert fx.store.all()[0].deadline == T0 + timedelta(days=1)
    assert isinstance(fx.store.all()[0].deadline, datetime)
