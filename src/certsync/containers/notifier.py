"""Tell dependent containers that certificate files changed."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from certsync.core.errors import ContainerActionError
from certsync.core.types import ContainerAction

if TYPE_CHECKING:
    from collections.abc import Sequence

    from certsync.containers.base import ContainerRuntime

log = logging.getLogger(__name__)


class ContainerLifecycleNotifier:
    """Apply the configured action to every configured container.

    Each container is handled independently: a failure is logged and
    the remaining containers are still processed.

    Parameters
    ----------
    runtime:
        Capability used to restart or stop containers.  May be ``None``
        when *names* is empty.
    names:
        Container names, in the order they should be acted on.
    action:
        Restart or stop.
    graceful_timeout:
        Seconds each container is given to exit.

    """

    def __init__(
        self,
        runtime: ContainerRuntime | None,
        names: Sequence[str],
        action: ContainerAction = ContainerAction.RESTART,
        graceful_timeout: int = 60,
    ) -> None:
        self._runtime = runtime
        self._names = tuple(names)
        self._action = action
        self._graceful_timeout = graceful_timeout
        if self._names and runtime is None:
            msg = "a container runtime is required when container names are configured"
            raise ValueError(msg)

    @property
    def enabled(self) -> bool:
        return bool(self._names)

    def notify(self) -> list[str]:
        """Act on every container; return the names that failed."""
        if not self._names:
            return []

        failed: list[str] = []
        for name in self._names:
            try:
                if self._action is ContainerAction.STOP:
                    self._runtime.stop(name, self._graceful_timeout)
                else:
                    self._runtime.restart(name, self._graceful_timeout)
            except ContainerActionError as exc:
                failed.append(name)
                log.error("%s", exc.detail)
            except Exception:
                failed.append(name)
                log.exception("Unexpected error during %s of container %s", self._action, name)
            else:
                log.info("Container %s: %s ok", name, self._action.value)

        if failed:
            log.error(
                "%d of %d container(s) failed to %s: %s",
                len(failed),
                len(self._names),
                self._action.value,
                ", ".join(failed),
            )
        return failed
