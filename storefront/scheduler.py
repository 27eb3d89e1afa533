"""
Scheduled tasks for the checkout core.

The reservation expiry sweep runs on an APScheduler interval job inside the
FastAPI process. Each run expires stale holds and then cancels the orders
that lost them.
"""

import logging
from datetime import datetime
from typing import Any, Dict, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from storefront.schemas.checkout import ExpiryResult

logger = logging.getLogger(__name__)

EXPIRY_JOB_ID = "expire_reservations"


def job_listener(event):
    """Listen to job events for logging"""
    if event.exception:
        logger.error(f"Job {event.job_id} crashed: {event.exception}")
    else:
        logger.debug(f"Job {event.job_id} executed successfully at {datetime.now()}")


class ExpiryScheduler:
    def __init__(self, reservations, settlement, interval_seconds: int = 60):
        self.reservations = reservations
        self.settlement = settlement
        self.interval_seconds = interval_seconds
        self.scheduler: Optional[AsyncIOScheduler] = None

    async def run_once(self) -> ExpiryResult:
        """Expire stale reservations and cancel the affected orders."""
        result = await self.reservations.expire_stale_reservations()
        if result.order_ids:
            cancelled = await self.settlement.cancel_expired_orders(result.order_ids)
            logger.info(
                f"Expiry sweep: {result.cleaned_count} reservation(s) expired, {cancelled} order(s) cancelled"
            )
        return result

    async def _sweep(self) -> None:
        try:
            await self.run_once()
        except Exception as e:
            # Next interval retries; keep the job alive
            logger.exception(f"Error in reservation expiry sweep: {str(e)}")

    def start(self) -> None:
        if self.scheduler is not None and self.scheduler.running:
            return

        self.scheduler = AsyncIOScheduler()
        self.scheduler.add_listener(job_listener, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
        self.scheduler.add_job(
            self._sweep,
            IntervalTrigger(seconds=self.interval_seconds),
            id=EXPIRY_JOB_ID,
            name="Expire Stale Reservations",
            replace_existing=True,
            max_instances=1,  # Only one sweep at a time
            coalesce=True,
        )
        self.scheduler.start()
        logger.info(f"Scheduler started: reservation sweep every {self.interval_seconds}s")

    def stop(self) -> None:
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Scheduler stopped")
        self.scheduler = None

    def status(self) -> Dict[str, Any]:
        if self.scheduler is None:
            return {"status": "not_initialized", "jobs": []}

        jobs_info = []
        for job in self.scheduler.get_jobs():
            jobs_info.append({
                "id": job.id,
                "name": job.name,
                "next_run": job.next_run_time.isoformat() if job.next_run_time else None,
                "trigger": str(job.trigger),
            })

        return {
            "status": "running" if self.scheduler.running else "stopped",
            "jobs": jobs_info,
        }
