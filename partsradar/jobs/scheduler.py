# partsradar/jobs/scheduler.py
import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from partsradar.config import PartType, settings
from partsradar.workers import Orchestrator

logger = logging.getLogger(__name__)


async def start_scheduler(orchestrator: Orchestrator, requeue: Iterable[PartType] = ()) -> AsyncIOScheduler:
    sched = AsyncIOScheduler(timezone="UTC")
    now = datetime.now(timezone.utc)
    sched.add_job(
        orchestrator.run_cycle,
        IntervalTrigger(hours=settings.CRAWL_INTERVAL_HOURS),
        id="scraping_workflow",
        next_run_time=now + timedelta(seconds=settings.FIRST_RUN_DELAY_SECONDS),
        max_instances=1,
        coalesce=True,
    )
    # crawls interrupted by the last shutdown run once, right away
    for part_type in requeue:
        sched.add_job(
            orchestrator.crawl_category,
            DateTrigger(run_date=now),
            args=[part_type],
            id=f"recovered_{part_type.value}",
        )
    sched.start()
    logger.info("Scheduler started: workflow every %dh", settings.CRAWL_INTERVAL_HOURS)
    return sched
