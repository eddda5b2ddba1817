"""Configuration subsystem for certsync.

Public API::

    from certsync.config import get_config, CertSyncConfig

    # At startup (CLI only):
    CertSyncConfig(config_file="config.yaml")

    # Everywhere else:
    cfg = get_config()
    port = cfg.settings.server.port      # typed access
    prefix = cfg.get("server.route_prefix")  # dynamic dot-path
"""

from certsync.config.certsync_config import (
    CertSyncConfig,
    ConfigValidationError,
    get_config,
)
from certsync.config.settings import (
    CertSyncSettings,
    ContainerSettings,
    LoggingSettings,
    PfxSettings,
    PushSettings,
    RemoteSettings,
    ServerSettings,
    ShutdownSettings,
    StorageSettings,
    build_settings,
)

__all__ = [
    # Core
    "CertSyncConfig",
    # Root
    "CertSyncSettings",
    "ConfigValidationError",
    # Sections
    "ContainerSettings",
    "LoggingSettings",
    "PfxSettings",
    "PushSettings",
    "RemoteSettings",
    "ServerSettings",
    "ShutdownSettings",
    "StorageSettings",
    "build_settings",
    "get_config",
]
