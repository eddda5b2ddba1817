"""HTTP API layer -- Flask blueprint registration.

Call :func:`register_blueprints` during application startup to mount
the install endpoint under ``server.route_prefix``.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from flask import Flask

log = logging.getLogger(__name__)


def register_blueprints(app: Flask) -> None:
    """Register the API blueprints on the Flask application."""
    settings = app.config["CERTSYNC_SETTINGS"]
    prefix = settings.server.route_prefix.rstrip("/")

    from certsync.api.push import INSTALL_PATH, push_bp  # noqa: PLC0415

    app.register_blueprint(push_bp, url_prefix=prefix or None)
    log.debug("Install endpoint mounted at %s%s", prefix, INSTALL_PATH)
