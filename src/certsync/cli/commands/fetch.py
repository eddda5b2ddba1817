"""One-shot fetch: download key/cert and write every managed file now.

Ignores the maintenance window.  Exits 0 when the disk is up to date
afterwards, 1 otherwise.
"""

from __future__ import annotations

import logging
import sys

log = logging.getLogger(__name__)


def run_fetch(config, args) -> None:  # noqa: ARG001
    """Fetch once, reconcile unconditionally and report the result."""
    from certsync.app import Agent  # noqa: PLC0415

    agent = Agent(config.settings)
    agent.files.ensure_directory()
    agent.refresh()
    still_stale = agent.engine.reconcile(only_if_missing=False)
    if still_stale:
        log.error("Some files could not be written to %s", config.settings.storage.path)
        sys.exit(1)
    log.info("Files in %s are up to date", config.settings.storage.path)
