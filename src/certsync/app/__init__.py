"""Flask application and agent lifecycle for certsync.

Public API::

    from certsync.app import Agent, create_app
"""

from certsync.app.agent import Agent
from certsync.app.factory import create_app

__all__ = ["Agent", "create_app"]
