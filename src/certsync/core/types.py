"""Enumerated types shared across the agent.

All enums inherit from ``StrEnum`` so their ``.value`` is a plain
string that reads naturally in configuration files and log output.
"""

from __future__ import annotations

from enum import StrEnum

# ---------------------------------------------------------------------------
# Scheduling
# ---------------------------------------------------------------------------


class JobKind(StrEnum):
    FETCH_RETRY = "fetch_retry"
    WRITE_TO_DISK = "write_to_disk"


class JobState(StrEnum):
    IDLE = "idle"
    SCHEDULED = "scheduled"
    RUNNING = "running"


class JobOutcome(StrEnum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# ---------------------------------------------------------------------------
# PKCS#12
# ---------------------------------------------------------------------------


class Pkcs12Variant(StrEnum):
    MODERN = "modern"
    LEGACY = "legacy"


# ---------------------------------------------------------------------------
# Containers
# ---------------------------------------------------------------------------


class ContainerAction(StrEnum):
    RESTART = "restart"
    STOP = "stop"
