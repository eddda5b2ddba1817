"""Genkey subcommand: print a fresh AES-256 key for ``push.aes_key``."""

from __future__ import annotations

from certsync.core.envelope import generate_key


def run_genkey(args) -> None:  # noqa: ARG001
    print(generate_key())  # noqa: T201
