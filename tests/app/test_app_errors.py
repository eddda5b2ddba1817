"""Tests for certsync.app.errors and certsync.app.middleware."""

from __future__ import annotations

import logging
from unittest.mock import MagicMock

import pytest
from flask import Flask

from certsync.app.errors import register_error_handlers
from certsync.app.factory import create_app
from certsync.app.middleware import InFlightMiddleware, register_request_hooks
from certsync.app.shutdown import ShutdownCoordinator


@pytest.fixture
def app():
    app = Flask("test")
    register_error_handlers(app)
    register_request_hooks(app)

    @app.route("/boom")
    def boom():
        raise RuntimeError("secret detail")

    @app.route("/teapot")
    def teapot():
        from werkzeug.exceptions import abort

        abort(418)

    return app


# ---------------------------------------------------------------------------
# TestErrorHandlers
# ---------------------------------------------------------------------------


class TestErrorHandlers:
    def test_unknown_route_is_empty_404(self, app):
        resp = app.test_client().get("/missing")
        assert resp.status_code == 404
        assert resp.data == b""

    def test_unhandled_exception_is_empty_500(self, app):
        resp = app.test_client().get("/boom")
        assert resp.status_code == 500
        assert b"secret" not in resp.data

    def test_other_http_errors_keep_status(self, app):
        resp = app.test_client().get("/teapot")
        assert resp.status_code == 418
        assert resp.data == b""


# ---------------------------------------------------------------------------
# TestRequestHooks
# ---------------------------------------------------------------------------


class TestRequestHooks:
    def test_generates_request_id(self, app):
        resp = app.test_client().get("/missing")
        assert len(resp.headers["X-Request-ID"]) == 32

    def test_access_log(self, app, caplog):
        caplog.set_level(logging.INFO, logger="certsync.access")
        app.test_client().get("/missing")
        records = [r for r in caplog.records if r.name == "certsync.access"]
        assert records
        assert records[0].status == 404
        assert records[0].duration_ms >= 0


# ---------------------------------------------------------------------------
# TestInFlightMiddleware
# ---------------------------------------------------------------------------


class TestInFlightMiddleware:
    def test_tracks_request(self):
        coordinator = ShutdownCoordinator()
        seen = []

        def inner(environ, start_response):
            seen.append(coordinator.in_flight_count)
            start_response("200 OK", [])
            return [b""]

        mw = InFlightMiddleware(inner, coordinator)
        assert mw({}, MagicMock()) == [b""]
        assert seen == [1]
        assert coordinator.in_flight_count == 0

    def test_factory_wraps_app_when_coordinator_given(self, settings):
        coordinator = ShutdownCoordinator()
        app = create_app(settings, receiver=MagicMock(), coordinator=coordinator)
        assert isinstance(app.wsgi_app, InFlightMiddleware)
        assert app.extensions["shutdown_coordinator"] is coordinator

    def test_factory_without_coordinator(self, settings):
        app = create_app(settings, receiver=MagicMock())
        assert not isinstance(app.wsgi_app, InFlightMiddleware)
