"""Encrypted install endpoint.

``POST <prefix>/api/v1/install`` with body::

    {"payload": "<base64url-nopad(nonce || AES-256-GCM ciphertext)>"}

The plaintext is ``{"key_pem": "...", "cert_pem": "..."}``.

Responses carry no body:

* ``200`` -- material accepted (the store may or may not have changed)
* ``401`` -- body, encoding or authentication failure (never says which)
* ``400`` -- authenticated but the plaintext or key pair is unusable
"""

from __future__ import annotations

import json
import logging
import threading
from typing import TYPE_CHECKING

from flask import Blueprint, Response, current_app, request

from certsync.core.errors import CryptoError, InvalidKeyPairError
from certsync.core.types import JobKind

if TYPE_CHECKING:
    from collections.abc import Callable

    from certsync.core.envelope import EnvelopeCipher
    from certsync.sync.reconcile import ReconciliationEngine
    from certsync.sync.scheduler import Scheduler
    from certsync.tls.store import CertificateStore

log = logging.getLogger(__name__)

push_bp = Blueprint("push", __name__)

INSTALL_PATH = "/api/v1/install"


def _spawn_thread(func: Callable[[], None]) -> None:
    threading.Thread(target=func, name="push-reconcile", daemon=True).start()


class PushReceiver:
    """Decrypt pushed material, install it, and kick off reconciliation.

    Parameters
    ----------
    cipher:
        Shared-key envelope cipher.
    store:
        Live certificate store.
    engine:
        Reconciliation engine, run with ``only_if_missing=True`` after
        each accepted push.
    scheduler:
        Receives a write job when the disk is still stale afterwards.
    spawn:
        Runs the post-install step; defaults to a daemon thread so the
        HTTP response is not held up by disk I/O or container restarts.

    """

    def __init__(
        self,
        cipher: EnvelopeCipher,
        store: CertificateStore,
        engine: ReconciliationEngine,
        scheduler: Scheduler,
        spawn: Callable[[Callable[[], None]], None] = _spawn_thread,
    ) -> None:
        self._cipher = cipher
        self._store = store
        self._engine = engine
        self._scheduler = scheduler
        self._spawn = spawn

    def _open(self, body: bytes) -> bytes:
        try:
            doc = json.loads(body)
        except (ValueError, UnicodeDecodeError) as exc:
            msg = "body is not JSON"
            raise CryptoError(msg) from exc
        payload = doc.get("payload") if isinstance(doc, dict) else None
        if not isinstance(payload, str):
            msg = "body has no string payload"
            raise CryptoError(msg)
        return self._cipher.open(payload)

    def receive(self, body: bytes, remote_addr: str | None = None) -> int:
        """Process one install request and return the HTTP status code."""
        try:
            plaintext = self._open(body)
        except CryptoError as exc:
            log.debug("Rejected install request (%s)", exc.detail)
            return 401

        log.info("Authenticated payload received from %s", remote_addr or "-")

        try:
            inner = json.loads(plaintext)
        except (ValueError, UnicodeDecodeError) as exc:
            log.error("Failed to decode decrypted payload (%s)", exc)
            return 400

        key_pem = inner.get("key_pem") if isinstance(inner, dict) else None
        cert_pem = inner.get("cert_pem") if isinstance(inner, dict) else None
        if not isinstance(key_pem, str) or not isinstance(cert_pem, str):
            log.error("Decrypted payload is missing key_pem or cert_pem")
            return 400

        try:
            changed = self._store.update(key_pem.encode("utf-8"), cert_pem.encode("utf-8"))
        except InvalidKeyPairError as exc:
            log.error("Failed to install pushed key/cert (%s)", exc.detail)
            return 400

        if changed:
            log.info("New TLS key/cert installed in HTTPS server")
        else:
            log.info("Pushed key/cert same as current, no update performed")

        self._spawn(self.sync_disk)
        return 200

    def sync_disk(self) -> None:
        """Write missing files now; defer stale ones to the maintenance window."""
        try:
            still_stale = self._engine.reconcile(only_if_missing=True)
        except Exception:
            log.exception("Reconcile after push failed")
            still_stale = True

        if still_stale:
            self._scheduler.schedule(JobKind.WRITE_TO_DISK)
        else:
            self._scheduler.cancel_pending()


@push_bp.route(INSTALL_PATH, methods=["POST"])
@push_bp.route(INSTALL_PATH + "/", methods=["POST"])
def install() -> Response:
    receiver: PushReceiver = current_app.extensions["push_receiver"]
    status = receiver.receive(request.get_data(cache=False), request.remote_addr)
    return Response(status=status)
