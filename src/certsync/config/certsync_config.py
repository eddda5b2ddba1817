"""certsync configuration loader.

Lifecycle::

    # 1. CLI creates the singleton (once, at startup)
    CertSyncConfig(config_file="/etc/certsync/config.yaml")

    # 2. Any module retrieves it afterwards
    from certsync.config import get_config
    cfg = get_config()
    cfg.settings.server.port  # typed access

    # 3. Dynamic access
    cfg.get("remote.server_address")
"""

from __future__ import annotations

import binascii
import json
import logging
import os
import re
from pathlib import Path
from typing import Any

import yaml
from jsonschema import Draft202012Validator

from certsync.config.settings import CertSyncSettings, build_settings, parse_permissions
from certsync.core.envelope import AES_KEY_SIZE, b64url_decode
from certsync.core.errors import ConfigError
from certsync.sync.files import CERT_FILENAME, KEY_FILENAME
from certsync.sync.window import parse_time_of_day, parse_weekdays

_SCHEMA_PATH = Path(__file__).parent / "schema.json"

_ENV_RE = re.compile(
    r"^\$\{([^}:]+?)(?::-(.*))?\}$",
    re.DOTALL,
)

_MAX_PERMISSIONS = 0o777
_MAX_PORT = 65535

log = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Module-level singleton reference
# ---------------------------------------------------------------------------
_instance: CertSyncConfig | None = None


def get_config() -> CertSyncConfig:
    """Return the initialised configuration singleton.

    Raises :class:`RuntimeError` if :class:`CertSyncConfig` has not been
    created yet (i.e. the CLI entry point has not run).
    """
    if _instance is None:
        msg = (
            "Configuration not initialised. "
            "CertSyncConfig must be created with config_file= before calling get_config()."
        )
        raise RuntimeError(msg)
    return _instance


# ---------------------------------------------------------------------------
# Validation error collector
# ---------------------------------------------------------------------------


class ConfigValidationError(ConfigError):
    """Raised when schema or cross-field validation finds one or more problems."""

    def __init__(self, errors: list[str]) -> None:
        self.errors = errors
        body = "\n".join(f"  - {e}" for e in errors)
        super().__init__(f"Configuration validation failed:\n{body}")


# ---------------------------------------------------------------------------
# Environment variable resolution
# ---------------------------------------------------------------------------


def _resolve_value(value: str, path: str) -> str:
    """Replace ``${VAR}`` or ``${VAR:-default}`` with env var value."""
    match = _ENV_RE.match(value)
    if match is None:
        return value
    var_name = match.group(1)
    fallback = match.group(2)
    resolved = os.environ.get(var_name)
    if resolved is not None:
        return resolved
    if fallback is not None:
        return fallback
    raise ConfigValidationError(
        [
            f"Environment variable '${{{var_name}}}' referenced "
            f"at '{path}' is not set and has no default",
        ],
    )


def _resolve_env_vars(
    data: Any,  # noqa: ANN401
    path: str = "",
) -> None:
    """Walk *data* in-place and resolve ``${VAR}``/``${VAR:-default}`` strings."""
    if isinstance(data, dict):
        for key in data:
            child_path = f"{path}.{key}" if path else key
            if isinstance(data[key], str):
                data[key] = _resolve_value(data[key], child_path)
            elif isinstance(data[key], (dict, list)):
                _resolve_env_vars(data[key], child_path)
    elif isinstance(data, list):
        for idx, item in enumerate(data):
            child_path = f"{path}[{idx}]"
            if isinstance(item, str):
                data[idx] = _resolve_value(item, child_path)
            elif isinstance(item, (dict, list)):
                _resolve_env_vars(item, child_path)


def _load_document(path: Path) -> dict:
    try:
        with path.open(encoding="utf-8") as f:
            if path.suffix in (".yaml", ".yml"):
                data = yaml.safe_load(f)
            else:
                data = json.load(f)
    except OSError as exc:
        msg = f"Cannot read config file {path}: {exc.strerror}"
        raise ConfigError(msg) from exc
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        msg = f"Cannot parse config file {path}: {exc}"
        raise ConfigError(msg) from exc
    if data is None:
        data = {}
    if not isinstance(data, dict):
        msg = f"Config file {path} must contain a mapping at the top level"
        raise ConfigError(msg)
    return data


# ---------------------------------------------------------------------------
# Config class
# ---------------------------------------------------------------------------


class CertSyncConfig:
    """Central configuration for the agent.

    The JSON schema is bundled at ``config/schema.json``; users supply
    only ``config_file``.

    After construction the typed settings tree is available at
    :pyattr:`settings` and the raw dict via :pyattr:`data` /
    :pymeth:`get`.

    Raises
    ------
    ConfigError
        The file cannot be read or parsed.
    ConfigValidationError
        Schema or cross-field validation failed.

    """

    def __init__(self, *, config_file: str | Path) -> None:
        global _instance  # noqa: PLW0603

        self._source = Path(config_file)
        self._data = _load_document(self._source)

        # Env vars are resolved before schema validation so substituted
        # values are checked against the schema too.
        _resolve_env_vars(self._data)
        self._validate_schema()
        self.additional_checks()

        self._settings: CertSyncSettings = build_settings(self._data)
        _instance = self

    # -- typed access -------------------------------------------------------

    @property
    def settings(self) -> CertSyncSettings:
        """Fully-typed, frozen settings tree."""
        return self._settings

    @property
    def data(self) -> dict:
        return self._data

    @property
    def source(self) -> Path:
        return self._source

    def get(self, dotpath: str, default: Any = None) -> Any:  # noqa: ANN401
        """Look up a raw value by dotted path, e.g. ``"storage.pfx.create"``."""
        node: Any = self._data
        for part in dotpath.split("."):
            if not isinstance(node, dict) or part not in node:
                return default
            node = node[part]
        return node

    # -- validation ---------------------------------------------------------

    def _validate_schema(self) -> None:
        with _SCHEMA_PATH.open(encoding="utf-8") as f:
            schema = json.load(f)
        validator = Draft202012Validator(schema)
        errors = [
            f"{'.'.join(str(p) for p in err.absolute_path) or '<root>'}: {err.message}"
            for err in sorted(validator.iter_errors(self._data), key=lambda e: list(map(str, e.path)))
        ]
        if errors:
            raise ConfigValidationError(errors)

    def additional_checks(self) -> None:  # noqa: C901, PLR0912
        """Semantic & cross-field validation.

        Runs after schema validation passes, so every value already has
        the right JSON type.
        """
        errors: list[str] = []

        server = self._data.get("server") or {}
        remote = self._data.get("remote") or {}
        push = self._data.get("push") or {}
        storage = self._data.get("storage") or {}
        window = self._data.get("window") or {}

        # -- server --
        port = server.get("port", 5055)
        if not 1 <= port <= _MAX_PORT:
            errors.append(f"server.port must be between 1 and {_MAX_PORT} (got {port})")

        # -- remote --
        address = remote.get("server_address", "")
        if not address.startswith("https://"):
            errors.append(f"remote.server_address must start with 'https://' (got '{address}')")
        if address.endswith("/"):
            errors.append(f"remote.server_address must not end with '/' (got '{address}')")

        # -- push --
        try:
            key = b64url_decode(push.get("aes_key", ""))
        except (binascii.Error, ValueError):
            errors.append("push.aes_key is not valid base64url")
        else:
            if len(key) != AES_KEY_SIZE:
                errors.append(
                    f"push.aes_key must decode to {AES_KEY_SIZE} bytes (got {len(key)})",
                )

        # -- window --
        for field in ("start", "end"):
            value = window.get(field)
            if value is None:
                continue
            try:
                parse_time_of_day(value)
            except ValueError:
                errors.append(f"window.{field} must be HH:MM in 24h format (got '{value}')")
        try:
            parse_weekdays(window.get("days"))
        except ValueError as exc:
            errors.append(f"window.days: {exc}")

        # -- storage --
        for field in ("key_permissions", "cert_permissions"):
            value = storage.get(field)
            if value is None:
                continue
            try:
                mode = parse_permissions(value)
            except ValueError:
                errors.append(f"storage.{field} must be an octal mode such as '0600' (got '{value}')")
                continue
            if not 0 <= mode <= _MAX_PERMISSIONS:
                errors.append(f"storage.{field} must be within 0000..0777 (got {oct(mode)})")

        pfx_names: list[str] = []
        for section, default in (("pfx", "key_certchain.pfx"), ("legacy_pfx", "key_certchain.legacy.pfx")):
            pfx = storage.get(section) or {}
            filename = pfx.get("filename") or default
            if filename in (KEY_FILENAME, CERT_FILENAME):
                errors.append(f"storage.{section}.filename must not be '{filename}'")
            if pfx.get("create"):
                pfx_names.append(filename)
        if len(pfx_names) == 2 and pfx_names[0] == pfx_names[1]:  # noqa: PLR2004
            errors.append("storage.pfx.filename and storage.legacy_pfx.filename must differ")

        if errors:
            raise ConfigValidationError(errors)

    # -- helpers ------------------------------------------------------------

    @classmethod
    def reset(cls) -> None:
        """Reset the singleton -- testing only."""
        global _instance  # noqa: PLW0603
        _instance = None

    def __repr__(self) -> str:
        return f"<CertSyncConfig config_file={self._source}>"
