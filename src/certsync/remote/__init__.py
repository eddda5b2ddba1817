"""Client for the remote issuing service."""

from certsync.remote.fetcher import RemoteFetcher

__all__ = ["RemoteFetcher"]
