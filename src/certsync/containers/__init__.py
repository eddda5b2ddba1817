"""Dependent-container lifecycle actions.

Public API::

    from certsync.containers import ContainerLifecycleNotifier, create_runtime

    runtime = create_runtime(settings.containers)
    notifier = ContainerLifecycleNotifier(runtime, settings.containers.names)
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from certsync.containers.base import ContainerRuntime
from certsync.containers.notifier import ContainerLifecycleNotifier

if TYPE_CHECKING:
    from certsync.config.settings import ContainerSettings


def create_runtime(settings: ContainerSettings) -> ContainerRuntime | None:
    """Return a Docker runtime, or None when no containers are configured."""
    if not settings.names:
        return None

    from certsync.containers.docker_runtime import DockerRuntime  # noqa: PLC0415

    return DockerRuntime(base_url=settings.docker_url, api_timeout=settings.api_timeout)


__all__ = ["ContainerLifecycleNotifier", "ContainerRuntime", "create_runtime"]
