"""Bring the storage directory in line with the live certificate.

:meth:`ReconciliationEngine.reconcile` is the only code path that writes
managed files or triggers container actions.  It is called by the
scheduler (inside the maintenance window) and right after new material
arrives (``only_if_missing=True``), in which case stale files are left
for the window unless something is already missing.
"""

from __future__ import annotations

import logging
import threading
from typing import TYPE_CHECKING

from certsync.core.errors import CryptoError, FileWriteError
from certsync.sync.files import write_file

if TYPE_CHECKING:
    from certsync.containers.notifier import ContainerLifecycleNotifier
    from certsync.sync.files import StoredFileSet
    from certsync.tls.store import CertificateStore

log = logging.getLogger(__name__)


class ReconciliationEngine:
    """Write missing or stale files and notify dependent containers.

    Parameters
    ----------
    store:
        Source of the live key/certificate material.
    files:
        Managed files in the storage directory.
    notifier:
        Invoked once after any file was written.

    """

    def __init__(
        self,
        store: CertificateStore,
        files: StoredFileSet,
        notifier: ContainerLifecycleNotifier,
    ) -> None:
        self._store = store
        self._files = files
        self._notifier = notifier
        # Push handlers and the scheduler may reconcile at the same time.
        self._lock = threading.Lock()

    def reconcile(self, only_if_missing: bool) -> bool:
        """Write what is needed; return True if the disk is still stale.

        Parameters
        ----------
        only_if_missing:
            When True, stale-but-present files are only rewritten if at
            least one enabled file is missing.

        Returns
        -------
        bool
            True when some stale content was not written this pass or
            any write failed, meaning the caller should reschedule.

        """
        with self._lock:
            return self._reconcile(only_if_missing)

    def _reconcile(self, only_if_missing: bool) -> bool:
        material = self._store.material
        if material is None:
            log.warning("No certificate loaded, nothing to reconcile")
            return False

        statuses = self._files.inspect(material)
        any_missing = any(not s.exists for s in statuses)

        wrote_any = False
        failed_any = False
        stale_unwritten = False

        for status in statuses:
            needs_write = not status.exists or (
                status.stale and (not only_if_missing or any_missing)
            )
            if not needs_write:
                if status.stale:
                    stale_unwritten = True
                continue

            try:
                write_file(status.path, status.render(), status.mode)
            except (FileWriteError, CryptoError) as exc:
                failed_any = True
                log.error("Failed to write %s (%s)", status.name, exc.detail)
            else:
                wrote_any = True
                log.info("Wrote new %s", status.name)

        if wrote_any:
            if self._notifier.enabled:
                log.info("At least one file changed, notifying containers")
            self._notifier.notify()
        elif self._notifier.enabled:
            log.debug("Not notifying containers, no file changes")

        disk_stale = stale_unwritten or failed_any
        log.info(
            "Key/cert file reconcile complete (only_if_missing=%s, disk_stale=%s)",
            only_if_missing,
            disk_stale,
        )
        return disk_stale
