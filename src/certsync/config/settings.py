"""Typed, frozen dataclasses for every configuration section.

This module is the **single source of truth** for default values.
JSON Schema defaults exist only for documentation -- these builders
are what the agent actually reads.

Access pattern::

    from certsync.config import get_config

    storage = get_config().settings.storage
    print(storage.path, oct(storage.key_permissions))
"""

from __future__ import annotations

from dataclasses import dataclass

from certsync.core.types import ContainerAction
from certsync.sync.window import MaintenanceWindow, parse_time_of_day, parse_weekdays

# ---------------------------------------------------------------------------
# Server
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ServerSettings:
    """HTTPS listener configuration (bind address, route prefix, timeouts)."""

    bind: str
    port: int
    route_prefix: str
    request_timeout: int
    graceful_timeout: int
    max_body_bytes: int


def _build_server(data: dict | None) -> ServerSettings:
    d = data or {}
    return ServerSettings(
        bind=d.get("bind") or "0.0.0.0",  # noqa: S104
        port=d.get("port", 5055),
        route_prefix=d.get("route_prefix", "/certwardenclient").rstrip("/"),
        request_timeout=d.get("request_timeout", 10),
        graceful_timeout=d.get("graceful_timeout", 30),
        max_body_bytes=d.get("max_body_bytes", 65536),
    )


# ---------------------------------------------------------------------------
# Remote
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class RemoteSettings:
    """Remote issuing service connection and credentials."""

    server_address: str
    api_base_path: str
    key_name: str
    key_api_key: str
    cert_name: str
    cert_api_key: str
    timeout_seconds: int
    retry_interval_seconds: int
    ca_cert_path: str | None

    @property
    def base_url(self) -> str:
        return self.server_address + self.api_base_path


def _build_remote(data: dict | None) -> RemoteSettings:
    d = data or {}
    return RemoteSettings(
        server_address=d["server_address"],
        api_base_path=d.get("api_base_path", "/certwarden/api/v1").rstrip("/"),
        key_name=d["key_name"],
        key_api_key=d["key_api_key"],
        cert_name=d["cert_name"],
        cert_api_key=d["cert_api_key"],
        timeout_seconds=d.get("timeout_seconds", 30),
        retry_interval_seconds=d.get("retry_interval_seconds", 900),
        ca_cert_path=d.get("ca_cert_path") or None,
    )


# ---------------------------------------------------------------------------
# Push
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PushSettings:
    """Shared secret for the encrypted install endpoint."""

    aes_key: str


def _build_push(data: dict | None) -> PushSettings:
    d = data or {}
    return PushSettings(aes_key=d["aes_key"])


# ---------------------------------------------------------------------------
# Storage
# ---------------------------------------------------------------------------


def parse_permissions(value: int | str) -> int:
    """Accept ``0o600``, ``384`` or ``"0600"`` and return the integer mode."""
    if isinstance(value, int):
        return value
    return int(str(value).strip(), 8)


@dataclass(frozen=True)
class PfxSettings:
    """One optional PKCS#12 output file."""

    create: bool
    filename: str
    password: str


@dataclass(frozen=True)
class StorageSettings:
    """On-disk output location, permissions and derived formats."""

    path: str
    key_permissions: int
    cert_permissions: int
    pfx: PfxSettings
    legacy_pfx: PfxSettings


def _build_pfx(data: dict | None, default_filename: str) -> PfxSettings:
    d = data or {}
    return PfxSettings(
        create=d.get("create", False),
        filename=d.get("filename") or default_filename,
        password=d.get("password") or "",
    )


def _build_storage(data: dict | None) -> StorageSettings:
    d = data or {}
    return StorageSettings(
        path=d.get("path", "/opt/certwarden/certs"),
        key_permissions=parse_permissions(d.get("key_permissions", 0o600)),
        cert_permissions=parse_permissions(d.get("cert_permissions", 0o644)),
        pfx=_build_pfx(d.get("pfx"), "key_certchain.pfx"),
        legacy_pfx=_build_pfx(d.get("legacy_pfx"), "key_certchain.legacy.pfx"),
    )


# ---------------------------------------------------------------------------
# Maintenance window
# ---------------------------------------------------------------------------


def _build_window(data: dict | None) -> MaintenanceWindow:
    d = data or {}
    start_hour, start_minute = parse_time_of_day(d.get("start", "03:00"))
    end_hour, end_minute = parse_time_of_day(d.get("end", "05:00"))
    return MaintenanceWindow(
        start_hour=start_hour,
        start_minute=start_minute,
        end_hour=end_hour,
        end_minute=end_minute,
        weekdays=parse_weekdays(d.get("days")),
    )


# ---------------------------------------------------------------------------
# Containers
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ContainerSettings:
    """Dependent containers to restart (or stop) after files change."""

    names: tuple[str, ...]
    action: ContainerAction
    graceful_timeout: int
    api_timeout: int
    docker_url: str | None


def _build_containers(data: dict | None) -> ContainerSettings:
    d = data or {}
    return ContainerSettings(
        names=tuple(n for n in d.get("names", []) if n),
        action=ContainerAction(d.get("action", "restart")),
        graceful_timeout=d.get("graceful_timeout", 60),
        api_timeout=d.get("api_timeout", 180),
        docker_url=d.get("docker_url") or None,
    )


# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LoggingSettings:
    """Application logging configuration (level, format)."""

    level: str
    format: str


def _build_logging(data: dict | None) -> LoggingSettings:
    d = data or {}
    return LoggingSettings(
        level=d.get("level", "INFO"),
        format=d.get("format", "json"),
    )


# ---------------------------------------------------------------------------
# Shutdown
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class ShutdownSettings:
    max_wait_seconds: int


def _build_shutdown(data: dict | None) -> ShutdownSettings:
    d = data or {}
    return ShutdownSettings(max_wait_seconds=d.get("max_wait_seconds", 120))


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CertSyncSettings:
    server: ServerSettings
    remote: RemoteSettings
    push: PushSettings
    storage: StorageSettings
    window: MaintenanceWindow
    containers: ContainerSettings
    logging: LoggingSettings
    shutdown: ShutdownSettings


def build_settings(data: dict) -> CertSyncSettings:
    """Build the full typed settings tree from raw config data.

    Called once during :class:`CertSyncConfig` initialisation after
    schema validation, environment-variable resolution and cross-field
    checks.
    """
    return CertSyncSettings(
        server=_build_server(data.get("server")),
        remote=_build_remote(data.get("remote")),
        push=_build_push(data.get("push")),
        storage=_build_storage(data.get("storage")),
        window=_build_window(data.get("window")),
        containers=_build_containers(data.get("containers")),
        logging=_build_logging(data.get("logging")),
        shutdown=_build_shutdown(data.get("shutdown")),
    )
