"""Abstract container runtime capability.

Reconciliation only needs two verbs, restart and stop, each with a
graceful-exit timeout.  Concrete runtimes inherit from
:class:`ContainerRuntime`; the Docker Engine implementation lives in
:mod:`certsync.containers.docker_runtime`.
"""

from __future__ import annotations

import abc


class ContainerRuntime(abc.ABC):
    """Restart or stop a container by name.

    Implementations raise
    :class:`~certsync.core.errors.ContainerActionError` on failure.
    """

    @abc.abstractmethod
    def restart(self, name: str, graceful_timeout: int) -> None:
        """Restart *name*, allowing *graceful_timeout* seconds to exit."""

    @abc.abstractmethod
    def stop(self, name: str, graceful_timeout: int) -> None:
        """Stop *name*, allowing *graceful_timeout* seconds to exit."""

    def ping(self) -> bool:  # noqa: PLR6301
        """Return True if the runtime is reachable."""
        return True
