"""Background scheduler — periodic inventory sync via APScheduler.

One interval job (default every 5 min) calls SyncScheduler.run_once().
State is explicit: IDLE or RUNNING, guarded by an asyncio.Lock. A tick or
manual trigger that arrives while a run is in progress is skipped, never
stacked; the next tick tries again.

Fatal run errors stop at this boundary (logged, not re-raised) so one bad
run never takes the process down.
"""

import asyncio
from datetime import datetime, timedelta, timezone
from enum import Enum

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger

from .exceptions import SyncAlreadyRunningError
from .inventory_sync import InventorySync, SyncRun

JOB_ID = "inventory_sync"


class SyncState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"


class SyncScheduler:
    def __init__(
        self,
        sync: InventorySync | None = None,
        interval_minutes: int | None = None,
        run_timeout: float | None = None,
        enabled: bool | None = None,
        startup_delay: int | None = None,
        log=None,
    ):
        from .config import settings

        self.log = log or logger.bind(job="inventory_sync")
        self.sync = sync or InventorySync(log=self.log)
        self.interval_minutes = interval_minutes or settings.sync_interval_minutes
        self.run_timeout = run_timeout if run_timeout is not None else settings.run_timeout_seconds
        self.enabled = settings.sync_enabled if enabled is None else enabled
        self.startup_delay = settings.sync_startup_delay_seconds if startup_delay is None else startup_delay

        self.scheduler = AsyncIOScheduler(timezone=timezone.utc)
        self._lock = asyncio.Lock()
        self._state = SyncState.IDLE
        self.last_run: SyncRun | None = None
        self.last_error: str | None = None
        self.last_trigger: str | None = None

    @property
    def state(self) -> SyncState:
        return self._state

    @property
    def is_running(self) -> bool:
        return self._state is SyncState.RUNNING

    @property
    def next_run_time(self) -> datetime | None:
        job = self.scheduler.get_job(JOB_ID)
        return getattr(job, "next_run_time", None) if job else None

    async def run_once(self, trigger: str = "scheduled") -> SyncRun:
        """Run one sync unless one is already in progress.

        Raises SyncAlreadyRunningError when busy, and re-raises fatal run errors.
        """
        # locked() check and acquire happen without yielding, so this is atomic on the loop
        if self._lock.locked():
            raise SyncAlreadyRunningError("Inventory sync already running")

        async with self._lock:
            self._state = SyncState.RUNNING
            self.last_trigger = trigger
            try:
                run = await self.sync.execute(timeout=self.run_timeout)
            except Exception as e:
                self.last_error = f"{type(e).__name__}: {e}"
                raise
            finally:
                self._state = SyncState.IDLE
            self.last_run = run
            self.last_error = None
            return run

    async def _scheduled_tick(self) -> None:
        try:
            await self.run_once(trigger="scheduled")
        except SyncAlreadyRunningError:
            self.log.warning("Previous inventory sync still running — skipping this tick")
        except Exception as e:
            self.log.error("Scheduled inventory sync failed: {}", e)

    async def run_manual_sync(self) -> bool:
        """Manual trigger. Never raises; False if busy or the run failed."""
        try:
            await self.run_once(trigger="manual")
        except SyncAlreadyRunningError:
            self.log.warning("Manual inventory sync refused — a run is already in progress")
            return False
        except Exception as e:
            self.log.error("Manual inventory sync failed: {}", e)
            return False
        return True

    def configure(self) -> None:
        """Register the interval job (no-op when sync is disabled)."""
        if not self.enabled:
            self.log.info("Scheduled inventory sync disabled — manual trigger only")
            return
        self.scheduler.add_job(
            self._scheduled_tick,
            IntervalTrigger(minutes=self.interval_minutes),
            id=JOB_ID,
            name="ERP → commerce inventory sync",
            max_instances=1,
            coalesce=True,
            replace_existing=True,
            next_run_time=datetime.now(timezone.utc) + timedelta(seconds=self.startup_delay),
        )

    def start(self) -> None:
        """Configure and start. Must be called from inside the running event loop."""
        self.configure()
        self.scheduler.start()
        self.log.info(
            "Inventory sync scheduler started — every {} min, run budget {:.0f}s",
            self.interval_minutes,
            self.run_timeout,
        )

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
        self.log.info("Inventory sync scheduler stopped")

    def status(self) -> dict:
        nxt = self.next_run_time
        return {
            "state": self._state.value,
            "enabled": self.enabled,
            "interval_minutes": self.interval_minutes,
            "next_run_at": nxt.isoformat() if nxt else None,
            "last_trigger": self.last_trigger,
            "last_run": self.last_run.as_dict() if self.last_run else None,
            "last_error": self.last_error,
        }
