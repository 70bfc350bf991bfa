from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from app.config import settings
from app.database import AsyncSessionLocal
from app.services.counter_service import CounterService
from app.services.discovery_service import discovery_service
from app.services.view_service import ViewService
import logging

scheduler = AsyncIOScheduler()

logger = logging.getLogger(__name__)


async def reconcile_counters():
    async with AsyncSessionLocal() as db:
        drifted = await CounterService(db).reconcile_all()
    logger.info(f"[Scheduler] Counter reconciliation corrected {len(drifted)} content item(s).")


async def prune_view_ledger():
    async with AsyncSessionLocal() as db:
        deleted = await ViewService(db).prune_views()
    logger.info(f"[Scheduler] Pruned {deleted} view ledger row(s).")


def purge_discovery_cache():
    discovery_service.purge_expired()


def schedule_maintenance_jobs():
    """Register the periodic maintenance jobs."""
    scheduler.add_job(
        reconcile_counters,
        trigger=IntervalTrigger(minutes=settings.reconcile_interval_minutes),
        id="reconcile_counters",
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.add_job(
        purge_discovery_cache,
        trigger=IntervalTrigger(seconds=settings.discovery_cache_ttl_seconds),
        id="purge_discovery_cache",
        replace_existing=True,
    )
    if settings.view_retention_days:
        scheduler.add_job(
            prune_view_ledger,
            trigger=IntervalTrigger(hours=24),
            id="prune_view_ledger",
            replace_existing=True,
            max_instances=1,
        )
    logger.info(f"[Scheduler] Maintenance jobs scheduled: {[job.id for job in scheduler.get_jobs()]}")
