"""Logging subsystem for certsync.

Public API::

    from certsync.logging import configure_logging

    configure_logging(settings.logging)
"""

from certsync.logging.setup import bootstrap_logging, configure_logging

__all__ = ["bootstrap_logging", "configure_logging"]
