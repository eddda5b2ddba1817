"""Wiring, startup and shutdown of the sync agent.

:class:`Agent` builds every component from the settings tree, and runs
the startup sequence:

1. create the storage directory;
2. load ``key.pem``/``certchain.pem`` from disk into the store;
3. fetch from the remote service -- on success reconcile missing files
   now and defer stale ones to the window; on failure keep the disk
   material if it is still valid and schedule a fetch retry;
4. refuse to continue when no usable certificate exists;
5. start the HTTPS listener.

Shutdown cancels the pending job, stops the listener, then waits for
in-flight requests and reconciles, bounded by ``shutdown.max_wait_seconds``.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from certsync.core.errors import (
    CertSyncError,
    InvalidKeyPairError,
    NoUsableCertificateError,
    RemoteFetchError,
)
from certsync.core.types import JobKind
from certsync.tls.material import load_material

if TYPE_CHECKING:
    from collections.abc import Callable

    from certsync.config.settings import CertSyncSettings
    from certsync.containers.base import ContainerRuntime
    from certsync.remote.fetcher import RemoteFetcher

log = logging.getLogger(__name__)


class Agent:
    """Application-wide component container and lifecycle driver.

    Parameters
    ----------
    settings:
        Typed settings tree.
    fetcher:
        Override the remote fetcher (tests).
    runtime:
        Override the container runtime (tests).  By default a Docker
        runtime is created when container names are configured.

    """

    def __init__(
        self,
        settings: CertSyncSettings,
        *,
        fetcher: RemoteFetcher | None = None,
        runtime: ContainerRuntime | None = None,
    ) -> None:
        from certsync.api.push import PushReceiver  # noqa: PLC0415
        from certsync.app.factory import create_app  # noqa: PLC0415
        from certsync.app.shutdown import ShutdownCoordinator  # noqa: PLC0415
        from certsync.containers import ContainerLifecycleNotifier, create_runtime  # noqa: PLC0415
        from certsync.core.envelope import EnvelopeCipher  # noqa: PLC0415
        from certsync.remote.fetcher import RemoteFetcher  # noqa: PLC0415
        from certsync.sync.files import StoredFileSet  # noqa: PLC0415
        from certsync.sync.reconcile import ReconciliationEngine  # noqa: PLC0415
        from certsync.sync.scheduler import Scheduler  # noqa: PLC0415
        from certsync.tls.server import HttpsServer  # noqa: PLC0415
        from certsync.tls.store import CertificateStore  # noqa: PLC0415

        self.settings = settings
        self.store = CertificateStore()
        self.files = StoredFileSet(settings.storage)

        c = settings.containers
        self.runtime = runtime if runtime is not None else create_runtime(c)
        self.notifier = ContainerLifecycleNotifier(
            self.runtime,
            c.names,
            action=c.action,
            graceful_timeout=c.graceful_timeout,
        )

        self.engine = ReconciliationEngine(self.store, self.files, self.notifier)
        self.fetcher = fetcher if fetcher is not None else RemoteFetcher(settings.remote)
        self.scheduler = Scheduler(
            settings.window,
            self.engine,
            self.refresh,
            retry_interval=settings.remote.retry_interval_seconds,
        )

        self.coordinator = ShutdownCoordinator(graceful_timeout=settings.server.graceful_timeout)
        self.receiver = PushReceiver(
            EnvelopeCipher.from_base64(settings.push.aes_key),
            self.store,
            self.engine,
            self.scheduler,
            spawn=self._spawn_tracked,
        )
        self.app = create_app(settings, receiver=self.receiver, coordinator=self.coordinator)
        self.server = HttpsServer(self.app, self.store, settings.server)

    # -- helpers -------------------------------------------------------------

    def _spawn_tracked(self, func: Callable[[], None]) -> None:
        def _target() -> None:
            with self.coordinator.track("push-reconcile"):
                func()

        threading.Thread(target=_target, name="push-reconcile", daemon=True).start()

    def refresh(self) -> bool:
        """Fetch key/cert from the remote service and install them.

        An expired certificate is refused before it reaches the store,
        so valid material already being served is never replaced by it.
        Returns True if the store changed.  Raises
        :class:`~certsync.core.errors.CertSyncError` on failure.
        """
        key_pem, cert_pem = self.fetcher.fetch_pair()
        material = load_material(key_pem, cert_pem)
        if material.is_expired():
            msg = f"remote service returned an expired certificate (not after {material.not_after.isoformat()})"
            raise RemoteFetchError(msg)
        changed = self.store.update(key_pem, cert_pem)
        if changed:
            log.info("New TLS key/cert installed in HTTPS server")
        else:
            log.info("Fetched key/cert same as current, no update performed")
        return changed

    def load_from_disk(self) -> bool:
        """Install the on-disk pair into the store; False if unusable."""
        pair = self.files.load_pem_pair()
        if pair is None:
            return False
        try:
            self.store.update(*pair)
        except InvalidKeyPairError as exc:
            log.error("Could not use key/cert pair from disk (%s), will try remote", exc.detail)
            return False
        return True

    # -- lifecycle -----------------------------------------------------------

    def startup(self) -> None:
        """Obtain a usable certificate and bring the disk up to date.

        Raises
        ------
        NoUsableCertificateError
            If neither disk nor remote produced a valid certificate.

        """
        log.info("New key/cert files will be permitted to write on %s", self.settings.window.describe())
        self.files.ensure_directory()
        self.load_from_disk()

        if self.runtime is not None:
            self.runtime.ping()

        try:
            self.refresh()
        except CertSyncError as exc:
            if not self.store.has_valid_certificate():
                msg = f"no usable certificate: remote fetch failed ({exc.detail}) and no valid local files"
                raise NoUsableCertificateError(msg) from exc
            log.warning("Remote fetch failed (%s), serving certificate from disk", exc.detail)
            self.scheduler.schedule(JobKind.FETCH_RETRY)
            return

        if self.engine.reconcile(only_if_missing=True):
            self.scheduler.schedule(JobKind.WRITE_TO_DISK)

    def start(self) -> None:
        """Run :meth:`startup` then start the HTTPS listener."""
        self.startup()
        self.server.start()

    def run(self) -> None:
        """Start, block until SIGINT/SIGTERM, then shut down."""
        self.coordinator.register_signals()
        self.start()
        self.coordinator.wait_for_request()
        self.shutdown()

    def shutdown(self) -> bool:
        """Stop everything; return False if the overall deadline expired."""
        max_wait = self.settings.shutdown.max_wait_seconds
        worker = threading.Thread(target=self._shutdown_steps, name="shutdown", daemon=True)
        worker.start()
        worker.join(timeout=max_wait)
        if worker.is_alive():
            log.critical(
                "Graceful shutdown did not finish within %ds, forcing exit",
                max_wait,
            )
            return False
        log.info("certsync exited")
        return True

    def _shutdown_steps(self) -> None:
        self.scheduler.close()
        self.server.stop()
        self.coordinator.initiate()
        self.scheduler.shutdown(timeout=self.settings.server.graceful_timeout)
        close = getattr(self.runtime, "close", None)
        if close is not None:
            close()
