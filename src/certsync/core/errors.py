"""Error taxonomy for the agent.

Every domain failure derives from :class:`CertSyncError`, which carries a
human-readable ``detail`` and a ``retryable`` hint.
:class:`ConfigError` and :class:`NoUsableCertificateError` are fatal at
startup; everything else is logged and degrades to a scheduled retry.
"""

from __future__ import annotations


class CertSyncError(Exception):
    """Base class for agent errors.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    retryable:
        Whether the failure is transient and the operation may be retried.

    """

    def __init__(self, detail: str, *, retryable: bool = False) -> None:
        self.detail = detail
        self.retryable = retryable
        super().__init__(detail)


class ConfigError(CertSyncError):
    """Missing or invalid mandatory settings."""


class NoUsableCertificateError(CertSyncError):
    """Neither valid local files nor a successful remote fetch produced a certificate."""


class CryptoError(CertSyncError):
    """Decryption or parsing of key material failed."""


class InvalidKeyPairError(CryptoError):
    """Key or certificate does not parse, or the key does not match the certificate."""


class Pkcs12Error(CryptoError):
    """PKCS#12 encoding failed."""


class RemoteFetchError(CertSyncError):
    """Downloading key or certificate PEM from the remote service failed.

    Parameters
    ----------
    detail:
        Human-readable description of the failure.
    status:
        HTTP status code when the server answered, else ``None``.
    retryable:
        Whether the failure is transient.

    """

    def __init__(
        self,
        detail: str,
        *,
        status: int | None = None,
        retryable: bool = True,
    ) -> None:
        self.status = status
        super().__init__(detail, retryable=retryable)


class FileWriteError(CertSyncError):
    """Writing a managed file to the storage directory failed."""

    def __init__(self, path: str, detail: str) -> None:
        self.path = path
        super().__init__(f"failed to write {path}: {detail}", retryable=True)


class ContainerActionError(CertSyncError):
    """Restarting or stopping a dependent container failed."""

    def __init__(self, name: str, action: str, detail: str) -> None:
        self.name = name
        self.action = action
        super().__init__(f"failed to {action} container {name}: {detail}")
