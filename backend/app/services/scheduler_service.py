"""Background task scheduler for periodic jobs (loyalty point expiry)."""

import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Optional

from app.core.config import settings

logger = logging.getLogger(__name__)


class TaskScheduler:
    """Lightweight asyncio-based task scheduler.

    Runs registered tasks at fixed intervals. Sync task functions run in a
    worker thread so database work does not block the event loop. State is
    in memory only.
    """

    def __init__(self, tick_seconds: float = 60):
        self._tasks: Dict[str, Dict[str, Any]] = {}
        self._running = False
        self.tick_seconds = tick_seconds

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Run the scheduler loop until ``stop`` is called."""
        self._running = True
        logger.info("Task scheduler started")
        while self._running:
            await self.run_due()
            await asyncio.sleep(self.tick_seconds)

    def stop(self):
        self._running = False

    async def run_due(self, now: Optional[datetime] = None) -> int:
        """Run every task whose ``next_run`` has passed. Returns how many ran."""
        now = now or datetime.now(timezone.utc)
        ran = 0
        for name, task in list(self._tasks.items()):
            if now < task["next_run"]:
                continue
            try:
                if asyncio.iscoroutinefunction(task["func"]):
                    await task["func"]()
                else:
                    await asyncio.to_thread(task["func"])
                task["last_run"] = now
                task["run_count"] += 1
                task["last_error"] = None
                logger.debug(f"Scheduled task '{name}' completed")
            except Exception as e:
                task["last_error"] = str(e)
                logger.error(f"Scheduled task '{name}' failed: {e}")
            task["next_run"] = now + task["interval"]
            ran += 1
        return ran

    def add_task(self, name: str, func: Callable, interval_seconds: int, initial_delay_seconds: int = 10):
        self._tasks[name] = {
            "func": func,
            "interval": timedelta(seconds=interval_seconds),
            "next_run": datetime.now(timezone.utc) + timedelta(seconds=initial_delay_seconds),
            "last_run": None,
            "run_count": 0,
            "last_error": None,
        }
        logger.info(f"Scheduled task '{name}' every {interval_seconds}s")

    def remove_task(self, name: str):
        self._tasks.pop(name, None)

    def get_status(self) -> Dict[str, Any]:
        return {
            name: {
                "last_run": t["last_run"].isoformat() if t["last_run"] else None,
                "next_run": t["next_run"].isoformat(),
                "interval_seconds": int(t["interval"].total_seconds()),
                "run_count": t["run_count"],
                "last_error": t["last_error"],
            }
            for name, t in self._tasks.items()
        }


def expire_loyalty_points() -> Dict[str, int]:
    """Scheduled job: run the loyalty expiry sweep in its own session."""
    from app.db.session import SessionLocal
    from app.services.loyalty_service import LoyaltyLedger

    db = SessionLocal()
    try:
        return LoyaltyLedger(db).expire_sweep()
    finally:
        db.close()


def register_default_tasks(target: "TaskScheduler") -> None:
    target.add_task(
        "loyalty_expire_sweep",
        expire_loyalty_points,
        settings.expire_sweep_interval_seconds,
    )


scheduler = TaskScheduler()
