"""Error handlers for the install API.

Every error response is status-only: no body, no detail.  Unknown
routes and wrong methods both answer ``404`` and an oversized body is
treated like any other unauthenticated request.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from flask import Response
from werkzeug.exceptions import HTTPException, MethodNotAllowed, NotFound, RequestEntityTooLarge

if TYPE_CHECKING:
    from flask import Flask

log = logging.getLogger(__name__)


def register_error_handlers(app: Flask) -> None:
    """Attach handlers that produce empty, status-only responses."""

    @app.errorhandler(NotFound)
    @app.errorhandler(MethodNotAllowed)
    def _handle_not_found(exc: HTTPException):
        return Response(status=404)

    @app.errorhandler(RequestEntityTooLarge)
    def _handle_too_large(exc: HTTPException):
        log.debug("Rejected oversized request body")
        return Response(status=401)

    @app.errorhandler(HTTPException)
    def _handle_http_exception(exc: HTTPException):
        return Response(status=exc.code or 500)

    @app.errorhandler(Exception)
    def _handle_unhandled(exc: Exception):
        # HTTPException subclasses are already caught above; this
        # handler covers everything else (genuine 500s).
        log.exception("Unhandled exception during request")
        return Response(status=500)
