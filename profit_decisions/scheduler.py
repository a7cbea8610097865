"""
Scheduler for background maintenance jobs

Uses APScheduler to grade decision outcomes once a day from the cached
order window, and to drop expired cache entries.
"""
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from profit_decisions.models.base import SessionLocal
from profit_decisions.config import get_settings
from profit_decisions.services.data_cache import DataCacheService
from profit_decisions.services.order_ingestion import ORDERS_CACHE_KEY, OrderIngestionService, OrderSource
from profit_decisions.services.outcome_evaluator import OutcomeEvaluator
from profit_decisions.utils.logger import log

settings = get_settings()
scheduler = AsyncIOScheduler()


class _CacheOnlySource(OrderSource):
    """Stand-in source for jobs that must never hit the platform"""

    async def fetch_orders(self, shop, days):
        return []

    async def fetch_variant_costs(self, shop):
        return []


async def evaluate_all_outcomes():
    """Grade elapsed outcomes for every shop with cached orders (daily)"""
    db = SessionLocal()
    try:
        shops = DataCacheService(db).shops_with_key(ORDERS_CACHE_KEY)
        log.info(f"Evaluating outcomes for {len(shops)} shops...")

        ingestion = OrderIngestionService(db, _CacheOnlySource())
        total = 0
        for shop in shops:
            orders = ingestion.get_cached_orders(shop)
            if not orders:
                continue
            try:
                total += OutcomeEvaluator(db).evaluate_outcomes(shop, orders)
            except Exception as e:
                log.error(f"Outcome evaluation failed for {shop}: {str(e)}")

        log.info(f"Outcome evaluation completed: {total} outcomes graded")
    except Exception as e:
        log.error(f"Error in outcome evaluation job: {str(e)}")
    finally:
        db.close()


async def cleanup_expired_cache():
    """Remove expired cache entries (daily)"""
    db = SessionLocal()
    try:
        DataCacheService(db).clear_expired()
    except Exception as e:
        log.error(f"Error clearing expired cache: {str(e)}")
    finally:
        db.close()


def setup_scheduler():
    """Register all scheduled jobs"""
    scheduler.add_job(
        evaluate_all_outcomes,
        trigger=CronTrigger.from_crontab(settings.evaluate_outcomes_schedule),
        id='evaluate_outcomes',
        name='Evaluate decision outcomes',
        replace_existing=True
    )

    scheduler.add_job(
        cleanup_expired_cache,
        trigger=CronTrigger.from_crontab(settings.cache_cleanup_schedule),
        id='cleanup_cache',
        name='Clear expired cache',
        replace_existing=True
    )

    log.info("Scheduled jobs:")
    for job in scheduler.get_jobs():
        log.info(f"  - {job.name} ({job.id})")


def start_scheduler():
    """Start the scheduler"""
    setup_scheduler()
    scheduler.start()
    log.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler"""
    if scheduler.running:
        scheduler.shutdown()
    log.info("Scheduler stopped")
