"""Serve subcommand: run the agent until SIGINT/SIGTERM."""

from __future__ import annotations

import logging

log = logging.getLogger(__name__)


def run_serve(config, args) -> None:  # noqa: ARG001
    """Start the agent and block until a shutdown signal arrives."""
    from certsync.app import Agent  # noqa: PLC0415

    agent = Agent(config.settings)
    agent.run()
