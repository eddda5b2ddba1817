"""Thread-safe holder of the live key/certificate pair.

The store is the single source of truth for which certificate is being
served.  Readers (the TLS handshake, reconciliation, the scheduler) take
a shared lock; :meth:`CertificateStore.update` swaps the material and
its prepared :class:`ssl.SSLContext` under an exclusive lock.  Parsing
happens before the exclusive lock is taken so handshakes never wait on
a reparse.
"""

from __future__ import annotations

import logging
import threading
from contextlib import contextmanager
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from certsync.tls.material import build_server_context, load_material

if TYPE_CHECKING:
    import ssl
    from collections.abc import Generator

    from certsync.tls.material import CertificateMaterial

log = logging.getLogger(__name__)


class ReadWriteLock:
    """Writer-preferring read/write lock built on :class:`threading.Condition`."""

    def __init__(self) -> None:
        self._cond = threading.Condition(threading.Lock())
        self._readers = 0
        self._writer = False
        self._writers_waiting = 0

    @contextmanager
    def read(self) -> Generator[None, None, None]:
        with self._cond:
            while self._writer or self._writers_waiting:
                self._cond.wait()
            self._readers += 1
        try:
            yield
        finally:
            with self._cond:
                self._readers -= 1
                if self._readers == 0:
                    self._cond.notify_all()

    @contextmanager
    def write(self) -> Generator[None, None, None]:
        with self._cond:
            self._writers_waiting += 1
            while self._writer or self._readers:
                self._cond.wait()
            self._writers_waiting -= 1
            self._writer = True
        try:
            yield
        finally:
            with self._cond:
                self._writer = False
                self._cond.notify_all()


class CertificateStore:
    """Lock-guarded holder of the current :class:`CertificateMaterial`."""

    def __init__(self) -> None:
        self._lock = ReadWriteLock()
        self._material: CertificateMaterial | None = None
        self._context: ssl.SSLContext | None = None

    def _unchanged(self, key_pem: bytes, cert_pem: bytes) -> bool:
        m = self._material
        return m is not None and m.key_pem == key_pem and m.cert_pem == cert_pem

    def update(self, key_pem: bytes, cert_pem: bytes) -> bool:
        """Install a new key/certificate pair.

        Returns ``False`` without reparsing when both blobs are
        byte-identical to the stored ones, ``True`` after a swap.

        Raises
        ------
        InvalidKeyPairError
            If the pair does not parse or the key does not match.  The
            stored material is left untouched.

        """
        with self._lock.read():
            if self._unchanged(key_pem, cert_pem):
                return False

        material = load_material(key_pem, cert_pem)
        context = build_server_context(material)

        with self._lock.write():
            if self._unchanged(key_pem, cert_pem):
                return False
            self._material = material
            self._context = context

        log.info(
            "Installed certificate %s (expires %s)",
            material.fingerprint[:16],
            material.not_after.isoformat(),
        )
        return True

    def read(self) -> tuple[bytes, bytes] | None:
        """Return a ``(key_pem, cert_pem)`` snapshot, or None when empty."""
        with self._lock.read():
            m = self._material
        if m is None:
            return None
        return m.key_pem, m.cert_pem

    @property
    def material(self) -> CertificateMaterial | None:
        with self._lock.read():
            return self._material

    def certificate_for_handshake(self) -> ssl.SSLContext | None:
        """Return the prepared context for the next TLS handshake."""
        with self._lock.read():
            return self._context

    def has_valid_certificate(self, now: datetime | None = None) -> bool:
        """False when nothing is stored or the leaf has expired."""
        m = self.material
        if m is None:
            return False
        return not m.is_expired(now or datetime.now(UTC))
