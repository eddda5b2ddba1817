"""On-disk view of the managed output files.

The storage directory holds ``key.pem`` and ``certchain.pem`` plus up to
two optional PKCS#12 derivatives.  :meth:`StoredFileSet.inspect`
compares each file against the live material and reports whether it
exists and whether it is stale.

PEM files are compared byte for byte.  PKCS#12 files are never decoded:
they count as stale whenever either PEM file is stale, because they were
derived from those PEM files.
"""

from __future__ import annotations

import contextlib
import logging
import os
import tempfile
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from certsync.core.errors import FileWriteError
from certsync.core.types import Pkcs12Variant
from certsync.tls.material import parse_leaf
from certsync.tls.pkcs12 import encode_material

if TYPE_CHECKING:
    from collections.abc import Callable

    from certsync.config.settings import StorageSettings
    from certsync.tls.material import CertificateMaterial

log = logging.getLogger(__name__)

KEY_FILENAME = "key.pem"
CERT_FILENAME = "certchain.pem"


@dataclass(frozen=True)
class FileStatus:
    """Existence and staleness of one managed file.

    Attributes
    ----------
    name:
        File name inside the storage directory.
    path:
        Absolute path.
    exists:
        False when the file is absent, unreadable, or (for the
        certificate chain) an expired or unparseable leftover.
    stale:
        True when present but out of date relative to the live material.
    mode:
        Permission bits applied when the file is written.
    render:
        Produces the bytes to write.

    """

    name: str
    path: Path
    exists: bool
    stale: bool
    mode: int
    render: Callable[[], bytes]


def write_file(path: Path, data: bytes, mode: int) -> None:
    """Atomically replace *path* with *data* and set *mode*.

    The content goes to a temporary file in the same directory which is
    then renamed over the target, so readers never see a partial file.

    Raises
    ------
    FileWriteError
        On any filesystem failure.  The target is left as it was.

    """
    tmp_name = None
    try:
        fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.")
        with os.fdopen(fd, "wb") as fh:
            fh.write(data)
            fh.flush()
            os.fchmod(fh.fileno(), mode)
            os.fsync(fh.fileno())
        os.replace(tmp_name, path)
        tmp_name = None
    except OSError as exc:
        raise FileWriteError(str(path), str(exc)) from exc
    finally:
        if tmp_name is not None:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)


class StoredFileSet:
    """The set of files the agent maintains in the storage directory.

    Parameters
    ----------
    storage:
        The ``storage`` configuration section.

    """

    def __init__(self, storage: StorageSettings) -> None:
        self._settings = storage
        self.directory = Path(storage.path)

    @property
    def key_path(self) -> Path:
        return self.directory / KEY_FILENAME

    @property
    def cert_path(self) -> Path:
        return self.directory / CERT_FILENAME

    def ensure_directory(self) -> None:
        """Create the storage directory (mode 0755) if it does not exist."""
        if self.directory.is_dir():
            return
        try:
            self.directory.mkdir(mode=0o755, parents=True, exist_ok=True)
        except OSError as exc:
            raise FileWriteError(str(self.directory), str(exc)) from exc
        log.info("Created storage directory %s", self.directory)

    def load_pem_pair(self) -> tuple[bytes, bytes] | None:
        """Read ``key.pem`` and ``certchain.pem`` if both are readable."""
        try:
            cert_pem = self.cert_path.read_bytes()
            key_pem = self.key_path.read_bytes()
        except OSError as exc:
            log.info("Could not read key/cert from disk (%s)", exc)
            return None
        return key_pem, cert_pem

    # -- inspection ----------------------------------------------------------

    def _read_existing(self, path: Path) -> bytes | None:
        if not path.exists():
            return None
        try:
            return path.read_bytes()
        except OSError as exc:
            log.error("Could not read %s (%s), treating as missing", path.name, exc)
            return None

    def _inspect_pem(
        self,
        path: Path,
        expected: bytes,
        mode: int,
        *,
        check_expiry: bool = False,
    ) -> FileStatus:
        on_disk = self._read_existing(path)
        exists = on_disk is not None
        stale = exists and on_disk != expected

        if stale and check_expiry:
            leaf = parse_leaf(on_disk)
            if leaf is None or leaf.not_valid_after_utc < datetime.now(UTC):
                log.info("On-disk %s is expired or unparseable, treating as missing", path.name)
                exists = False

        return FileStatus(
            name=path.name,
            path=path,
            exists=exists,
            stale=stale,
            mode=mode,
            render=lambda: expected,
        )

    def inspect(self, material: CertificateMaterial) -> list[FileStatus]:
        """Return the status of every enabled file, PEM files first."""
        s = self._settings
        key = self._inspect_pem(self.key_path, material.key_pem, s.key_permissions)
        cert = self._inspect_pem(
            self.cert_path,
            material.cert_pem,
            s.cert_permissions,
            check_expiry=True,
        )
        pem_stale = key.stale or cert.stale
        statuses = [key, cert]

        for variant, pfx in (
            (Pkcs12Variant.MODERN, s.pfx),
            (Pkcs12Variant.LEGACY, s.legacy_pfx),
        ):
            if not pfx.create:
                continue
            path = self.directory / pfx.filename
            statuses.append(
                FileStatus(
                    name=pfx.filename,
                    path=path,
                    exists=path.exists(),
                    stale=pem_stale,
                    mode=s.key_permissions,
                    render=_pfx_renderer(variant, material, pfx.password),
                ),
            )
        return statuses


def _pfx_renderer(
    variant: Pkcs12Variant,
    material: CertificateMaterial,
    password: str,
) -> Callable[[], bytes]:
    return lambda: encode_material(variant, material, password)
