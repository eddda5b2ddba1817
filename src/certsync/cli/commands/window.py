"""Window subcommand: show whether writes are allowed right now."""

from __future__ import annotations

import sys
from datetime import datetime


def run_window(config, args, *, now: datetime | None = None) -> None:  # noqa: ARG001
    """Print the window, whether *now* is inside it and when it next opens."""
    window = config.settings.window
    now = now or datetime.now()  # noqa: DTZ005
    inside = window.in_window(now)
    print(f"window:      {window.describe()}")  # noqa: T201
    print(f"now:         {now.isoformat(timespec='seconds')}")  # noqa: T201
    print(f"in window:   {'yes' if inside else 'no'}")  # noqa: T201
    print(  # noqa: T201
        f"next start:  {window.next_window_start(now, jitter_seconds=0).isoformat(timespec='seconds')}",
    )
    sys.stdout.flush()
