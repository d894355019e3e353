"""Pass scheduler.

One APScheduler background scheduler owns every timer of the engine:
- the pass job (debounce, reconnect settle delay, retry backoff)
- the periodic tick

Pass requests are coalesced: a single "sync_pass" job exists at a time and
only the earliest requested run date is kept, so any number of triggers
collapse into one pass. Jobs run on a one-thread executor, so a pass and a
tick never overlap on the scheduler side; requests made while a scheduled
pass runs fire after it ends. A request that comes due while sync_now()
runs a pass on another thread is rejected by the coordinator, which
re-requests a pass at the end for operations enqueued meanwhile. The
single-flight guard itself lives in the coordinator.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Protocol

from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from offlinesync.client.sync.types import PassTrigger

logger = logging.getLogger(__name__)

PASS_JOB_ID = "sync_pass"
TICK_JOB_ID = "periodic_tick"


class SchedulerProtocol(Protocol):
    """What the coordinator needs from a scheduler."""

    def request(self, delay: float, trigger: PassTrigger) -> None: ...


class PassScheduler:
    """Coalescing scheduler for sync passes.

    Requests made before start() are kept and scheduled when it starts.

    Usage:
        scheduler = PassScheduler(coordinator.run_pass, on_tick=coordinator.tick)
        coordinator.attach_scheduler(scheduler)
        scheduler.start()
        ...
        scheduler.stop()
    """

    def __init__(
        self,
        runner: Callable[[PassTrigger], object],
        periodic_interval: float = 30.0,
        on_tick: Callable[[], None] | None = None,
    ) -> None:
        """Initialize the scheduler.

        Args:
            runner: Called with the trigger when a pass request is due
            periodic_interval: Seconds between ticks (0 disables the tick)
            on_tick: Called on every periodic tick
        """
        self._runner = runner
        self._interval = periodic_interval
        self._on_tick = on_tick
        self._lock = threading.Lock()
        self._scheduler: BackgroundScheduler | None = None

        # (run date, trigger) of the earliest pending request
        self._pending: tuple[datetime, PassTrigger] | None = None

    @property
    def running(self) -> bool:
        return self._scheduler is not None

    @property
    def pending(self) -> tuple[float, PassTrigger] | None:
        """Seconds until the pending request fires, and its trigger."""
        with self._lock:
            if self._pending is None:
                return None
            run_date, trigger = self._pending
        remaining = (run_date - datetime.now(timezone.utc)).total_seconds()
        return max(0.0, remaining), trigger

    def request(self, delay: float, trigger: PassTrigger) -> None:
        """Ask for a pass in delay seconds.

        An earlier pending request wins; a later one replaces it.
        """
        run_date = datetime.now(timezone.utc) + timedelta(seconds=max(0.0, delay))
        with self._lock:
            if self._pending is not None and self._pending[0] <= run_date:
                logger.debug(
                    "Pass request (%s) coalesced into pending %s",
                    trigger.name,
                    self._pending[1].name,
                )
                return
            self._pending = (run_date, trigger)
            if self._scheduler is not None:
                self._schedule_pass(run_date)
        logger.debug("Pass requested in %.1fs (%s)", delay, trigger.name)

    def cancel(self) -> None:
        """Drop the pending request, if any."""
        with self._lock:
            self._pending = None
            if self._scheduler is not None and self._scheduler.get_job(PASS_JOB_ID):
                self._scheduler.remove_job(PASS_JOB_ID)

    def _schedule_pass(self, run_date: datetime) -> None:
        """Create or move the pass job (caller holds the lock)."""
        assert self._scheduler is not None
        self._scheduler.add_job(
            self._run_pass,
            trigger=DateTrigger(run_date=run_date),
            id=PASS_JOB_ID,
            name="Sync pass",
            replace_existing=True,
            # One running and one waiting, so a request due mid-pass is not skipped
            max_instances=2,
        )

    def _run_pass(self) -> None:
        """Job function for the pass job."""
        with self._lock:
            if self._pending is None:
                return
            trigger = self._pending[1]
            self._pending = None
        try:
            self._runner(trigger)
        except Exception:
            logger.exception("Error during scheduled sync pass")

    def _tick(self) -> None:
        """Job function for the periodic tick."""
        if self._on_tick is None:
            return
        try:
            self._on_tick()
        except Exception:
            logger.exception("Error during periodic sync tick")

    def start(self) -> None:
        """Start the scheduler."""
        with self._lock:
            if self._scheduler is not None:
                return  # Already running

            self._scheduler = BackgroundScheduler(
                executors={"default": ThreadPoolExecutor(max_workers=1)},
                job_defaults={
                    "coalesce": True,
                    "max_instances": 1,
                    "misfire_grace_time": None,
                },
                timezone=timezone.utc,
            )
            if self._interval > 0 and self._on_tick is not None:
                self._scheduler.add_job(
                    self._tick,
                    trigger=IntervalTrigger(seconds=self._interval),
                    id=TICK_JOB_ID,
                    name="Periodic sync tick",
                    replace_existing=True,
                )
            if self._pending is not None:
                self._schedule_pass(self._pending[0])
            self._scheduler.start()
        logger.info("Sync scheduler started (tick every %.0fs)", self._interval)

    def stop(self) -> None:
        """Stop the scheduler. A running pass is not interrupted."""
        with self._lock:
            scheduler, self._scheduler = self._scheduler, None
        if scheduler is not None:
            scheduler.shutdown(wait=False)
            logger.info("Sync scheduler stopped")
