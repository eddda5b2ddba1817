"""Middleware stack for the install API.

WSGI-level:
    :class:`InFlightMiddleware` -- registers every request with the
    :class:`~certsync.app.shutdown.ShutdownCoordinator` so shutdown can
    wait for it.

Flask-level (registered via :func:`register_request_hooks`):
    * Request ID generation / passthrough (``X-Request-ID``)
    * Request timing
    * Access logging
"""

from __future__ import annotations

import logging
import time
from typing import TYPE_CHECKING
from uuid import uuid4

from flask import Flask, g, request

if TYPE_CHECKING:
    from certsync.app.shutdown import ShutdownCoordinator

log = logging.getLogger(__name__)
access_log = logging.getLogger("certsync.access")


class InFlightMiddleware:
    """WSGI middleware that tracks each request until its body is consumed."""

    def __init__(self, app, coordinator: ShutdownCoordinator) -> None:
        self.app = app
        self._coordinator = coordinator

    def __call__(self, environ, start_response):
        with self._coordinator.track("request"):
            # Responses are empty, so materialise them inside the tracked block.
            return list(self.app(environ, start_response))


def register_request_hooks(app: Flask) -> None:
    """Register before/after request hooks for ID tracking, timing and
    access logging.
    """

    @app.before_request
    def _before_request() -> None:
        g.request_id = request.headers.get("X-Request-ID") or uuid4().hex
        g.start_time = time.monotonic()

    @app.after_request
    def _after_request(response):
        request_id = getattr(g, "request_id", None)
        if request_id:
            response.headers["X-Request-ID"] = request_id

        start = getattr(g, "start_time", None)
        duration_ms = (time.monotonic() - start) * 1000 if start is not None else 0.0
        access_log.info(
            "%s %s %s",
            request.method,
            request.path,
            response.status_code,
            extra={"status": response.status_code, "duration_ms": round(duration_ms, 2)},
        )
        return response
