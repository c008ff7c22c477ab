"""APScheduler timers for pool refresh and subscriber broadcast.

Two independent interval jobs:
- pool_refresh: forces an upstream feed refresh every pool_refresh_minutes
- yield_broadcast: pushes current vault yields every broadcast_interval_seconds

Neither job blocks request handling; a failed run is recorded and logged and
the next tick runs as usual.
"""

from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

import structlog
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from vault_yields.core.config import Settings, get_settings

logger = structlog.get_logger()

POOL_REFRESH_JOB = "pool_refresh"
YIELD_BROADCAST_JOB = "yield_broadcast"

Job = Callable[[], Awaitable[Any]]


def _empty_result() -> Dict[str, Any]:
    return {
        "success": None,
        "timestamp": None,
        "error": None,
        "consecutive_failures": 0,
    }


class YieldScheduler:
    """Owns the AsyncIOScheduler and the last result of each job."""

    def __init__(
        self,
        refresh_pools: Job,
        broadcast: Job,
        settings: Optional[Settings] = None,
    ):
        self.settings = settings or get_settings()
        self._refresh_pools = refresh_pools
        self._broadcast = broadcast
        self._scheduler = AsyncIOScheduler(timezone="UTC")
        self._last_results: Dict[str, Dict[str, Any]] = {
            POOL_REFRESH_JOB: _empty_result(),
            YIELD_BROADCAST_JOB: _empty_result(),
        }

    @property
    def running(self) -> bool:
        return self._scheduler.running

    async def _run(self, job_id: str, job: Job) -> None:
        result = self._last_results[job_id]
        try:
            await job()
        except Exception as e:
            result["consecutive_failures"] += 1
            result["error"] = str(e)
            result["success"] = False
            result["timestamp"] = datetime.now(timezone.utc).isoformat()
            logger.error("Scheduled job failed", job=job_id, error=str(e))
            return

        result["consecutive_failures"] = 0
        result["error"] = None
        result["success"] = True
        result["timestamp"] = datetime.now(timezone.utc).isoformat()

    async def run_pool_refresh(self) -> None:
        await self._run(POOL_REFRESH_JOB, self._refresh_pools)

    async def run_broadcast(self) -> None:
        await self._run(YIELD_BROADCAST_JOB, self._broadcast)

    def start(self) -> None:
        """Register both interval jobs and start the scheduler."""
        if self._scheduler.running:
            logger.warning("Scheduler already running")
            return

        self._scheduler.add_job(
            self.run_pool_refresh,
            trigger=IntervalTrigger(minutes=self.settings.pool_refresh_minutes),
            id=POOL_REFRESH_JOB,
            name="Pool Refresh",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.add_job(
            self.run_broadcast,
            trigger=IntervalTrigger(seconds=self.settings.broadcast_interval_seconds),
            id=YIELD_BROADCAST_JOB,
            name="Yield Broadcast",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )

        self._scheduler.start()
        logger.info(
            "Scheduler started",
            refresh_interval=f"{self.settings.pool_refresh_minutes}m",
            broadcast_interval=f"{self.settings.broadcast_interval_seconds}s",
        )

    def stop(self) -> None:
        if self._scheduler.running:
            self._scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")

    def _next_run(self, job_id: str) -> Optional[str]:
        if not self._scheduler.running:
            return None
        job = self._scheduler.get_job(job_id)
        if job is None or job.next_run_time is None:
            return None
        return job.next_run_time.isoformat()

    def status(self) -> Dict[str, Any]:
        """Current scheduler status for health checks."""
        return {
            "running": self._scheduler.running,
            "next_refresh": self._next_run(POOL_REFRESH_JOB),
            "next_broadcast": self._next_run(YIELD_BROADCAST_JOB),
            "job_count": len(self._scheduler.get_jobs()) if self._scheduler.running else 0,
            "pool_refresh": dict(self._last_results[POOL_REFRESH_JOB]),
            "yield_broadcast": dict(self._last_results[YIELD_BROADCAST_JOB]),
        }
