"""Flask application factory for the install API.

Usage::

    from certsync.app import create_app

    app = create_app(settings, receiver=push_receiver, coordinator=coordinator)
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from flask import Flask

if TYPE_CHECKING:
    from certsync.api.push import PushReceiver
    from certsync.app.shutdown import ShutdownCoordinator
    from certsync.config.settings import CertSyncSettings

log = logging.getLogger(__name__)


def create_app(
    settings: CertSyncSettings,
    *,
    receiver: PushReceiver,
    coordinator: ShutdownCoordinator | None = None,
) -> Flask:
    """Create and configure the Flask application.

    Parameters
    ----------
    settings:
        Typed settings tree.
    receiver:
        Handles decrypted install requests.
    coordinator:
        When given, every request is tracked so shutdown can wait for
        it.  ``None`` is convenient in tests.

    Returns
    -------
    Flask
        Fully configured WSGI application.

    """
    app = Flask("certsync")
    app.config["CERTSYNC_SETTINGS"] = settings
    app.config["MAX_CONTENT_LENGTH"] = settings.server.max_body_bytes

    app.extensions["push_receiver"] = receiver

    # -- Error handlers (status only) ---------------------------------------
    from certsync.app.errors import register_error_handlers  # noqa: PLC0415

    register_error_handlers(app)

    # -- Request lifecycle hooks --------------------------------------------
    from certsync.app.middleware import register_request_hooks  # noqa: PLC0415

    register_request_hooks(app)

    # -- Blueprints ---------------------------------------------------------
    from certsync.api import register_blueprints  # noqa: PLC0415

    register_blueprints(app)

    # -- In-flight tracking (outermost layer) -------------------------------
    if coordinator is not None:
        from certsync.app.middleware import InFlightMiddleware  # noqa: PLC0415

        app.extensions["shutdown_coordinator"] = coordinator
        app.wsgi_app = InFlightMiddleware(app.wsgi_app, coordinator)  # type: ignore[method-assign]

    log.info("Application created")
    return app
