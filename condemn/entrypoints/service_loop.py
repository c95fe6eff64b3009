from __future__ import annotations

from collections.abc import Callable

import uvicorn
from fastapi import FastAPI

from condemn.entrypoints.http_api import create_app
from condemn.entrypoints.runtime_builder import ServiceRuntime
from condemn.logging_utils import log_event, redact_sensitive_text
from condemn.observability import events
from condemn.settings import Settings


def _maybe_close_resource(runtime: ServiceRuntime, resource_name: str) -> None:
    resource = getattr(runtime, resource_name, None)
    close_fn = getattr(resource, "close", None)
    if not callable(close_fn):
        return
    try:
        close_fn()
    except Exception as exc:
        runtime.logger.warning(
            log_event(
                events.SHUTDOWN_RESOURCE_CLOSE_FAILED,
                resource=resource_name,
                error=redact_sensitive_text(exc),
            )
        )


def close_runtime_resources(runtime: ServiceRuntime) -> None:
    _maybe_close_resource(runtime, "dispatcher")
    _maybe_close_resource(runtime, "store")


def serve_with_uvicorn(app: FastAPI, settings: Settings) -> None:
    config = uvicorn.Config(
        app,
        host=settings.listen_host,
        port=settings.listen_port,
        access_log=settings.access_log,
        log_config=None,
        timeout_graceful_shutdown=settings.shutdown_timeout_sec,
    )
    uvicorn.Server(config).run()


def build_http_app(runtime: ServiceRuntime) -> FastAPI:
    return create_app(
        runtime.engine,
        scanner=runtime.scanner,
        health_max_age_sec=runtime.settings.health_max_age_sec,
        logger=runtime.logger.getChild("http"),
    )


def run_loop(
    runtime: ServiceRuntime,
    *,
    serve_fn: Callable[[FastAPI, Settings], None] = serve_with_uvicorn,
    build_app_fn: Callable[[ServiceRuntime], FastAPI] = build_http_app,
) -> int:
    """Serve HTTP until the server exits, then drain the scanner and close resources."""
    app = build_app_fn(runtime)
    runtime.scanner.start()
    exit_code = 0
    try:
        serve_fn(app, runtime.settings)
    except KeyboardInterrupt:
        runtime.logger.info(log_event(events.SHUTDOWN_INTERRUPT))
    except Exception as exc:
        runtime.logger.critical(
            log_event(events.SHUTDOWN_UNEXPECTED_ERROR, error=redact_sensitive_text(exc)),
            exc_info=True,
        )
        exit_code = 1
    finally:
        runtime.scanner.stop(timeout=runtime.settings.shutdown_timeout_sec)
        close_runtime_resources(runtime)
        runtime.logger.info(log_event(events.SHUTDOWN_COMPLETE, exit_code=exit_code))
    return exit_code
