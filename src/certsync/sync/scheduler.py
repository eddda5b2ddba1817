"""Single-flight job scheduler for disk writes and fetch retries.

At most one job exists at a time.  :meth:`Scheduler.schedule` cancels
the current job (if any) before starting the new one, and
:meth:`Scheduler.cancel_pending` cancels without replacement.  Both go
through the scheduler's own lock, which is the only place the current
job handle is read or replaced.

A job spends most of its life waiting on its cancel event: until the
maintenance window opens (write jobs) or until the retry interval has
elapsed (fetch jobs).  Cancellation only takes effect during those
waits; once a job has started reconciling or fetching it finishes that
step so files are never left half written.

Retries are a loop inside the job thread, not new jobs:

* a write job that leaves the disk stale waits ``write_retry_seconds``
  and then waits for the window again;
* a fetch job that fails waits another retry interval; once a fetch
  succeeds the same job continues as a write job.
"""

from __future__ import annotations

import logging
import random
import threading
from datetime import datetime
from typing import TYPE_CHECKING

from certsync.core.errors import CertSyncError
from certsync.core.types import JobKind, JobOutcome, JobState

if TYPE_CHECKING:
    from collections.abc import Callable

    from certsync.sync.reconcile import ReconciliationEngine
    from certsync.sync.window import MaintenanceWindow

log = logging.getLogger(__name__)


def _random_jitter() -> int:
    return random.randint(0, 59)  # noqa: S311


class ScheduledJob:
    """Handle for one scheduled job.

    Attributes
    ----------
    kind:
        What the job is currently doing.  A fetch job becomes a write
        job after a successful fetch.
    state:
        ``SCHEDULED`` while waiting, ``RUNNING`` while reconciling or
        fetching.
    outcome:
        ``PENDING`` until the job thread exits.

    """

    def __init__(self, kind: JobKind, seq: int) -> None:
        self.kind = kind
        self.seq = seq
        self.state = JobState.SCHEDULED
        self.outcome = JobOutcome.PENDING
        self._cancel = threading.Event()
        self._done = threading.Event()
        self.thread: threading.Thread | None = None

    @property
    def cancelled(self) -> bool:
        return self._cancel.is_set()

    def cancel(self) -> None:
        self._cancel.set()

    def sleep(self, seconds: float) -> bool:
        """Wait up to *seconds*; return True if cancelled meanwhile."""
        return self._cancel.wait(timeout=max(0.0, seconds))

    def wait(self, timeout: float | None = None) -> bool:
        """Block until the job thread exits."""
        return self._done.wait(timeout=timeout)

    def __repr__(self) -> str:
        return f"<ScheduledJob #{self.seq} {self.kind} {self.state} {self.outcome}>"


class Scheduler:
    """Owner of the single pending job.

    Parameters
    ----------
    window:
        Maintenance window during which write jobs may run.
    engine:
        Reconciliation engine invoked by write jobs.
    refresh:
        Fetches fresh material and installs it in the store.  Raises
        :class:`~certsync.core.errors.CertSyncError` on failure.
    retry_interval:
        Seconds between fetch attempts (jitter is added).
    write_retry_seconds:
        Pause before re-attempting a write that left the disk stale.
    clock:
        Returns the current local time.
    jitter:
        Returns a jitter in seconds.

    """

    def __init__(
        self,
        window: MaintenanceWindow,
        engine: ReconciliationEngine,
        refresh: Callable[[], None],
        *,
        retry_interval: int = 900,
        write_retry_seconds: int = 60,
        clock: Callable[[], datetime] = datetime.now,
        jitter: Callable[[], int] = _random_jitter,
    ) -> None:
        self._window = window
        self._engine = engine
        self._refresh = refresh
        self._retry_interval = retry_interval
        self._write_retry_seconds = write_retry_seconds
        self._clock = clock
        self._jitter = jitter

        self._lock = threading.Lock()
        self._job: ScheduledJob | None = None
        self._seq = 0
        self._closed = False

    # -- public API ----------------------------------------------------------

    @property
    def state(self) -> JobState:
        with self._lock:
            return JobState.IDLE if self._job is None else self._job.state

    @property
    def current_job(self) -> ScheduledJob | None:
        with self._lock:
            return self._job

    def schedule(self, kind: JobKind) -> ScheduledJob | None:
        """Cancel any pending job and start a new one of *kind*.

        Returns the new job handle, or None after :meth:`shutdown`.
        """
        with self._lock:
            if self._closed:
                log.info("Scheduler is shut down, not scheduling %s job", kind)
                return None
            if self._job is not None:
                self._job.cancel()
            self._seq += 1
            job = ScheduledJob(kind, self._seq)
            job.thread = threading.Thread(
                target=self._run,
                args=(job,),
                name=f"scheduler-{kind.value}-{job.seq}",
                daemon=True,
            )
            self._job = job
            job.thread.start()
        return job

    def cancel_pending(self) -> None:
        """Cancel the current job, if any, without scheduling a new one."""
        with self._lock:
            if self._job is not None:
                self._job.cancel()

    def close(self) -> None:
        """Refuse new jobs and cancel the pending one without waiting."""
        with self._lock:
            self._closed = True
            if self._job is not None:
                self._job.cancel()

    def shutdown(self, timeout: float | None = None) -> None:
        """Refuse new jobs, cancel the pending one and wait for it to exit."""
        self.close()
        job = self.current_job
        if job is not None and job.thread is not None:
            job.thread.join(timeout=timeout)
            if job.thread.is_alive():
                log.warning("Scheduled %s job still running at shutdown", job.kind)

    # -- job body ------------------------------------------------------------

    def _run(self, job: ScheduledJob) -> None:
        try:
            while not job.cancelled:
                if job.kind is JobKind.WRITE_TO_DISK:
                    if not self._wait_for_window(job):
                        break
                    job.state = JobState.RUNNING
                    still_stale = self._reconcile()
                    job.state = JobState.SCHEDULED
                    if not still_stale:
                        job.outcome = JobOutcome.COMPLETED
                        break
                    log.info(
                        "Disk still stale after write job, retrying in %ds",
                        self._write_retry_seconds,
                    )
                    if job.sleep(self._write_retry_seconds):
                        break
                else:
                    delay = self._retry_interval + self._jitter()
                    log.info("Scheduling fetch job in %ds", delay)
                    if job.sleep(delay):
                        break
                    job.state = JobState.RUNNING
                    fetched = self._fetch()
                    job.state = JobState.SCHEDULED
                    if fetched:
                        job.kind = JobKind.WRITE_TO_DISK

            if job.outcome is JobOutcome.PENDING:
                job.outcome = JobOutcome.CANCELLED
                log.info("%s job #%d canceled", job.kind, job.seq)
        finally:
            with self._lock:
                if self._job is job:
                    self._job = None
            job._done.set()  # noqa: SLF001

    def _wait_for_window(self, job: ScheduledJob) -> bool:
        """Sleep until the window opens; False if cancelled first.

        The window is re-checked after every wake, so a sleep that ends
        early or late (a DST change, a clock step) never writes outside it.
        """
        while True:
            now = self._clock()
            if self._window.in_window(now):
                log.info("Write job #%d executing", job.seq)
                return True

            run_at = self._window.next_window_start(now, jitter_seconds=self._jitter())
            log.info("Scheduling write job #%d for %s", job.seq, run_at.isoformat())
            # Aware values so the delay counts real seconds across DST.
            delay = (run_at.astimezone() - self._clock().astimezone()).total_seconds()
            if job.sleep(delay):
                return False

    def _reconcile(self) -> bool:
        try:
            return self._engine.reconcile(only_if_missing=False)
        except Exception:
            log.exception("Write job failed unexpectedly")
            return True

    def _fetch(self) -> bool:
        try:
            self._refresh()
        except CertSyncError as exc:
            log.error("Failed to fetch key/cert from remote server (%s)", exc.detail)
            return False
        except Exception:
            log.exception("Fetch job failed unexpectedly")
            return False
        return True
