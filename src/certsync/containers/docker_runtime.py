"""Docker Engine implementation of :class:`ContainerRuntime`.

Talks to the daemon through the Docker SDK for Python.  The client is
created lazily on first use so that a missing socket only matters once
a container action is actually needed.
"""

from __future__ import annotations

import logging
import threading

from docker import DockerClient
from docker.errors import DockerException, NotFound

from certsync.containers.base import ContainerRuntime
from certsync.core.errors import ContainerActionError
from certsync.core.types import ContainerAction

log = logging.getLogger(__name__)


class DockerRuntime(ContainerRuntime):
    """Restart/stop containers on a Docker daemon.

    Parameters
    ----------
    base_url:
        Daemon URL (``unix:///var/run/docker.sock``, ``tcp://...``).
        ``None`` reads ``DOCKER_HOST`` and friends from the environment.
    api_timeout:
        Seconds to wait for any single Docker API call.

    """

    def __init__(self, base_url: str | None = None, api_timeout: int = 180) -> None:
        self._base_url = base_url
        self._api_timeout = api_timeout
        self._client: DockerClient | None = None
        self._lock = threading.Lock()

    def _get_client(self) -> DockerClient:
        with self._lock:
            if self._client is None:
                if self._base_url:
                    self._client = DockerClient(
                        base_url=self._base_url,
                        timeout=self._api_timeout,
                    )
                else:
                    self._client = DockerClient.from_env(timeout=self._api_timeout)
            return self._client

    def _act(self, action: ContainerAction, name: str, graceful_timeout: int) -> None:
        try:
            container = self._get_client().containers.get(name)
            if action is ContainerAction.RESTART:
                container.restart(timeout=graceful_timeout)
            else:
                container.stop(timeout=graceful_timeout)
        except NotFound as exc:
            raise ContainerActionError(name, action.value, "no such container") from exc
        except (DockerException, OSError) as exc:
            raise ContainerActionError(name, action.value, str(exc)) from exc

    def restart(self, name: str, graceful_timeout: int) -> None:
        self._act(ContainerAction.RESTART, name, graceful_timeout)

    def stop(self, name: str, graceful_timeout: int) -> None:
        self._act(ContainerAction.STOP, name, graceful_timeout)

    def ping(self) -> bool:
        try:
            return bool(self._get_client().ping())
        except (DockerException, OSError) as exc:
            log.error("Could not reach Docker API (%s), container actions will fail", exc)
            return False

    def close(self) -> None:
        with self._lock:
            if self._client is not None:
                self._client.close()
                self._client = None
