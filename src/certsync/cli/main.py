"""certsync command-line entry point.

Usage::

    certsync -c /etc/certsync/config.yaml
    certsync -c config.yaml --validate-only
    certsync -c config.yaml serve
    certsync -c config.yaml fetch
    certsync -c config.yaml window
    certsync genkey
    python -m certsync -c config.yaml
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

log = logging.getLogger(__name__)


def _get_version() -> str:
    from certsync import __version__  # noqa: PLC0415

    return __version__


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="certsync",
        description="certsync: keep a host's TLS key and certificate in sync with a remote issuing service",
    )
    parser.add_argument(
        "-c",
        "--config",
        metavar="PATH",
        help="Path to the configuration file (YAML or JSON).",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        default=False,
        help="Enable debug output (full tracebacks, verbose logging).",
    )
    parser.add_argument(
        "--validate-only",
        action="store_true",
        default=False,
        help="Validate the configuration file and exit.",
    )
    parser.add_argument(
        "-v",
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command")
    subparsers.add_parser("serve", help="Run the agent (default)")
    subparsers.add_parser("fetch", help="Fetch from the remote service and write files now")
    subparsers.add_parser("window", help="Show the maintenance window status")
    subparsers.add_parser("genkey", help="Print a new random push AES key")

    return parser


def _print_error(message: str) -> None:
    """Print a user-facing error to stderr."""
    print(f"certsync: error: {message}", file=sys.stderr)  # noqa: T201


def main(argv: list[str] | None = None) -> None:
    """CLI entry point.  Parses arguments, loads config, dispatches."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command == "genkey":
        from certsync.cli.commands.genkey import run_genkey  # noqa: PLC0415

        run_genkey(args)
        return

    if not args.config:
        parser.error("the following arguments are required: -c/--config")

    config_path = Path(args.config)
    if not config_path.is_file():
        _print_error(f"configuration file not found: {config_path}")
        sys.exit(1)

    # -- bootstrap logging early (basic stderr until config is loaded) ---
    from certsync.logging import bootstrap_logging, configure_logging  # noqa: PLC0415

    bootstrap_logging(debug=args.debug)

    # -- load & validate config ---
    from certsync.config import CertSyncConfig, ConfigValidationError  # noqa: PLC0415
    from certsync.core.errors import CertSyncError  # noqa: PLC0415

    try:
        config = CertSyncConfig(config_file=config_path)
    except ConfigValidationError as exc:
        _print_error(str(exc))
        sys.exit(1)
    except CertSyncError as exc:
        if args.debug:
            raise
        _print_error(f"failed to load configuration: {exc.detail}")
        sys.exit(1)

    # -- replace bootstrap logging with structured logging ---
    configure_logging(config.settings.logging, debug=args.debug)

    if args.validate_only:
        _print_settings_summary(config)
        sys.exit(0)

    command = args.command
    try:
        if command == "fetch":
            from certsync.cli.commands.fetch import run_fetch  # noqa: PLC0415

            run_fetch(config, args)
        elif command == "window":
            from certsync.cli.commands.window import run_window  # noqa: PLC0415

            run_window(config, args)
        else:
            # No subcommand means serve.
            from certsync.cli.commands.serve import run_serve  # noqa: PLC0415

            run_serve(config, args)
    except CertSyncError as exc:
        if args.debug:
            raise
        _print_error(exc.detail)
        sys.exit(1)


def _print_settings_summary(config) -> None:
    """Print a short summary of the loaded configuration."""
    s = config.settings
    lines = [
        f"config:     {config.source}",
        f"listen:     {s.server.bind}:{s.server.port}{s.server.route_prefix}",
        f"remote:     {s.remote.base_url} (key '{s.remote.key_name}', cert '{s.remote.cert_name}')",
        f"storage:    {s.storage.path} (key {oct(s.storage.key_permissions)}, cert {oct(s.storage.cert_permissions)})",
        f"pfx:        modern={'on' if s.storage.pfx.create else 'off'} legacy={'on' if s.storage.legacy_pfx.create else 'off'}",
        f"window:     {s.window.describe()}",
        f"containers: {', '.join(s.containers.names) or '-'} ({s.containers.action})",
    ]
    print("\n".join(lines), file=sys.stderr)  # noqa: T201
