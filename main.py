# main.py — pipeline scheduler + operator API on one event loop
import asyncio
import logging

import uvicorn
from partsradar.config import settings
from partsradar.db import init_db
from partsradar.jobs.scheduler import start_scheduler
from partsradar.web.server import create_app as create_web_app
from partsradar.workers import build_orchestrator

logger = logging.getLogger(__name__)
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)

async def run():
    # 1) DB
    await init_db()

    # 2) Pipeline, catalog index warmed from stored components
    orchestrator = build_orchestrator()
    await orchestrator.catalog.warm_index()

    # 3) Units left in progress by an unclean shutdown
    requeue = await orchestrator.recover()

    # 4) Scheduler
    if settings.SCRAPING_ENABLED:
        scheduler = await start_scheduler(orchestrator, requeue)
    else:
        logger.warning("Scraping disabled, scheduler not started")
        scheduler = None

    # 5) FastAPI via Uvicorn (blocks until Ctrl+C / shutdown)
    web_app = create_web_app(orchestrator)
    server = uvicorn.Server(
        uvicorn.Config(
            web_app,
            host=settings.WEB_HOST,
            port=settings.WEB_PORT,
            log_level=settings.LOG_LEVEL.lower(),
        )
    )

    try:
        await server.serve()
    finally:
        if scheduler is not None:
            scheduler.shutdown(wait=False)

if __name__ == "__main__":
    try:
        asyncio.run(run())
    except (KeyboardInterrupt, SystemExit):
        pass
