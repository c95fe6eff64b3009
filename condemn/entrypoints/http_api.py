from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import datetime, timedelta

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from condemn.domain.duration import InvalidDuration, parse_duration
from condemn.logging_utils import log_event, redact_sensitive_text
from condemn.observability import events
from condemn.repositories.switch_store import StoreError
from condemn.usecases.expiry_scanner import ExpiryScanner
from condemn.usecases.switch_engine import SwitchEngine, utc_now


def create_app(
    engine: SwitchEngine,
    *,
    scanner: ExpiryScanner | None = None,
    health_max_age_sec: float = 60.0,
    logger: logging.Logger | None = None,
    clock: Callable[[], datetime] = utc_now,
) -> FastAPI:
    """Build the HTTP front end.

    Handlers are plain ``def`` functions so FastAPI runs them on its thread
    pool; the engine and store calls they make are blocking.
    """
    http_logger = logger or logging.getLogger("condemn.http")
    app = FastAPI(title="condemn", docs_url=None, redoc_url=None, openapi_url=None)

    @app.exception_handler(InvalidDuration)
    def _invalid_duration(request: Request, exc: InvalidDuration) -> JSONResponse:
        http_logger.info(
            log_event(events.HTTP_REQUEST_REJECTED, path=request.url.path, error=str(exc))
        )
        return JSONResponse(status_code=400, content={"detail": str(exc)})

    @app.exception_handler(StoreError)
    def _store_error(request: Request, exc: StoreError) -> JSONResponse:
        http_logger.error(
            log_event(
                events.HTTP_STORE_ERROR,
                path=request.url.path,
                error=redact_sensitive_text(exc),
            )
        )
        return JSONResponse(status_code=503, content={"detail": "switch store unavailable"})

    @app.get("/")
    def list_switches() -> JSONResponse:
        records = engine.list_switches()
        return JSONResponse(content=[record.to_public_dict() for record in records])

    @app.get("/healthz")
    def healthz() -> JSONResponse:
        body: dict[str, object] = {"status": "ok", "last_scan_at": None}
        if scanner is None:
            return JSONResponse(status_code=200, content=body)
        body.update(scanner.health_snapshot())
        if scanner.is_stale(clock(), timedelta(seconds=health_max_age_sec)):
            body["status"] = "stale"
            return JSONResponse(status_code=503, content=body)
        return JSONResponse(status_code=200, content=body)

    @app.get("/switch/{name}")
    def switch(name: str, deadline: str | None = None, window: str | None = None) -> JSONResponse:
        if deadline is None:
            outcome = engine.check_in(name)
            if outcome.status == "not_found":
                return JSONResponse(
                    status_code=404,
                    content={"detail": f"switch {name!r} not found"},
                )
            return JSONResponse(status_code=200, content=outcome.to_public_dict())

        deadline_delta = parse_duration(deadline)
        window_delta = parse_duration(window) if window is not None else None
        outcome = engine.register_or_renew(name, deadline_delta, window_delta)
        return JSONResponse(status_code=201, content=outcome.to_public_dict())

    return app
