"""HTTPS listener that serves whatever certificate the store holds.

The listening socket is wrapped with a base :class:`ssl.SSLContext`
whose ``sni_callback`` swaps in the store's current per-certificate
context during every handshake.  Installing new material in the store
therefore takes effect on the next connection without restarting the
listener.

Requests are served by werkzeug's threaded WSGI server.
"""

from __future__ import annotations

import logging
import ssl
import threading
from typing import TYPE_CHECKING

from werkzeug.serving import WSGIRequestHandler, make_server

from certsync.tls.material import build_server_context

if TYPE_CHECKING:
    from flask import Flask
    from werkzeug.serving import BaseWSGIServer

    from certsync.config.settings import ServerSettings
    from certsync.tls.store import CertificateStore

log = logging.getLogger(__name__)


class _RequestHandler(WSGIRequestHandler):
    """Werkzeug handler with a per-connection socket timeout."""

    timeout = 10

    def log_request(self, code="-", size="-") -> None:
        # Access logging happens in the Flask after_request hook.
        pass


def make_sni_callback(store: CertificateStore):
    """Return an ``sni_callback`` that installs the store's live context."""

    def _sni_callback(ssl_obj: ssl.SSLObject, server_name: str | None, base_ctx) -> None:
        ctx = store.certificate_for_handshake()
        if ctx is not None:
            ssl_obj.context = ctx
        return None

    return _sni_callback


def build_listener_context(store: CertificateStore) -> ssl.SSLContext:
    """Build the base context for the listening socket.

    It is loaded with the material present at startup so that clients
    which skip SNI still complete a handshake.
    """
    material = store.material
    if material is None:
        msg = "cannot start HTTPS listener without a certificate"
        raise RuntimeError(msg)
    ctx = build_server_context(material)
    ctx.sni_callback = make_sni_callback(store)
    return ctx


class HttpsServer:
    """Run the install API over TLS on a background thread.

    Parameters
    ----------
    app:
        WSGI application.
    store:
        Source of the certificate for every handshake.
    settings:
        The ``server`` configuration section.

    """

    def __init__(self, app: Flask, store: CertificateStore, settings: ServerSettings) -> None:
        self._app = app
        self._store = store
        self._settings = settings
        self._server: BaseWSGIServer | None = None
        self._thread: threading.Thread | None = None

    @property
    def port(self) -> int:
        """Bound port (useful when configured as 0)."""
        if self._server is None:
            return self._settings.port
        return self._server.server_port

    def start(self) -> None:
        """Bind the socket and start serving."""
        if self._thread is not None and self._thread.is_alive():
            return

        handler = type(
            "CertSyncRequestHandler",
            (_RequestHandler,),
            {"timeout": self._settings.request_timeout},
        )
        self._server = make_server(
            self._settings.bind,
            self._settings.port,
            self._app,
            threaded=True,
            request_handler=handler,
            ssl_context=build_listener_context(self._store),
        )
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="https-server",
            daemon=True,
        )
        self._thread.start()
        log.info("HTTPS server listening on %s:%d", self._settings.bind, self.port)

    def stop(self) -> None:
        """Stop accepting connections.  In-flight requests keep running."""
        if self._server is None:
            return
        self._server.shutdown()
        self._server.server_close()
        if self._thread is not None:
            self._thread.join(timeout=5)
        self._server = None
        log.info("HTTPS server stopped")
