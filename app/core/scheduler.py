"""Background job scheduler for roster cache maintenance."""
import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.roster.cache import roster_cache

logger = logging.getLogger(__name__)

scheduler = AsyncIOScheduler()


def evict_expired_rosters():
    """Drop cached projections nobody has re-fetched within the TTL."""
    try:
        evicted = roster_cache.evict_expired(settings.roster_cache_ttl_minutes * 60)
        if evicted:
            logger.info(f"Evicted {evicted} expired roster projection(s)")
    except Exception as e:
        logger.error(f"Roster cache sweep failed: {e}")


def start_scheduler():
    """Start the background scheduler."""
    scheduler.add_job(
        evict_expired_rosters,
        trigger=IntervalTrigger(minutes=settings.cache_sweep_interval_minutes),
        id="roster_cache_sweep",
        replace_existing=True,
    )
    scheduler.start()
    logger.info(
        f"Scheduler started, sweeping roster cache every {settings.cache_sweep_interval_minutes} minutes"
    )


def shutdown_scheduler():
    """Graceful shutdown."""
    scheduler.shutdown(wait=False)
    logger.info("Scheduler shut down")
