# partsradar/workers.py
"""Pipeline orchestration: bootstrap, periodic cycle, manual triggers and recovery."""
import enum
import logging
import time
from datetime import datetime, timezone
from typing import List, Optional

import humanize

from partsradar.config import CATEGORY_PATHS, PartType, settings
from partsradar.db import SessionLocal
from partsradar.jobs.state import BOOTSTRAP_JOB, CRAWL_JOB_PREFIX, JobStateStore, crawl_job_name
from partsradar.scrapers.bazos import BazosScraper, CategoryCrawlResult, StopReason
from partsradar.scrapers.techpowerup import TechPowerUpScraper
from partsradar.services.catalog import CatalogService, YearRefresh
from partsradar.services.catalog_index import CatalogIndex
from partsradar.services.classifier import ComponentClassifier
from partsradar.services.ingest import ListingGateway
from partsradar.services.stats import PriceStatsAggregator
from partsradar.utils.proxy import ProxyRotator

logger = logging.getLogger(__name__)


class WorkflowState(str, enum.Enum):
    IDLE = "idle"
    BOOTSTRAPPING = "bootstrapping"
    BOOTSTRAP_FAILED = "bootstrap_failed"
    BOOTSTRAP_COMPLETE = "bootstrap_complete"
    CRAWLING = "crawling"
    CLASSIFYING = "classifying"
    AGGREGATING = "aggregating"
    CATALOG_REFRESHING = "catalog_refreshing"


class Orchestrator:
    def __init__(
        self,
        crawler: BazosScraper,
        catalog: CatalogService,
        classifier: ComponentClassifier,
        aggregator: PriceStatsAggregator,
        jobs: JobStateStore,
        categories: Optional[dict] = None,
        bootstrap_years: int = 15,
        bootstrap_min_years: int = 3,
        classify_batch_size: int = 50,
        max_concurrent_categories: int = 5,
        stagger_seconds: float = 0,
        clock=None,
    ):
        self.crawler = crawler
        self.catalog = catalog
        self.classifier = classifier
        self.aggregator = aggregator
        self.jobs = jobs
        self.categories = categories if categories is not None else CATEGORY_PATHS
        self.bootstrap_years = bootstrap_years
        self.bootstrap_min_years = bootstrap_min_years
        self.classify_batch_size = classify_batch_size
        self.max_concurrent_categories = max_concurrent_categories
        self.stagger_seconds = stagger_seconds
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.state = WorkflowState.IDLE

    @classmethod
    def from_settings(cls, crawler, catalog, classifier, aggregator, jobs) -> "Orchestrator":
        return cls(
            crawler, catalog, classifier, aggregator, jobs,
            bootstrap_years=settings.BOOTSTRAP_YEARS,
            bootstrap_min_years=settings.BOOTSTRAP_MIN_YEARS,
            classify_batch_size=settings.CLASSIFY_BATCH_SIZE,
            max_concurrent_categories=settings.MAX_CONCURRENT_CATEGORIES,
            stagger_seconds=settings.STAGGER_SECONDS if settings.STAGGER_START else 0,
        )

    # -------------------- bootstrap --------------------

    async def is_bootstrap_complete(self) -> bool:
        return await self.jobs.is_completed(BOOTSTRAP_JOB)

    async def run_bootstrap(self) -> bool:
        self.state = WorkflowState.BOOTSTRAPPING
        state = await self.jobs.begin_attempt(BOOTSTRAP_JOB)
        logger.info("Starting catalog bootstrap (attempt %d)", state.attempt_count)

        current_year = self.clock().year
        years = range(current_year - self.bootstrap_years + 1, current_year + 1)
        try:
            successful_years = await self._scrape_years(years)
            meta = {"successful_years": successful_years, "years_attempted": len(years)}
            if len(successful_years) >= self.bootstrap_min_years:
                await self.jobs.finish_attempt(BOOTSTRAP_JOB, completed=True, successful=True, metadata=meta)
                logger.info("Catalog bootstrap completed: %d years scraped", len(successful_years))
                self.state = WorkflowState.BOOTSTRAP_COMPLETE
                return True

            error = f"Only scraped {len(successful_years)} years, minimum {self.bootstrap_min_years} required"
            await self.jobs.finish_attempt(BOOTSTRAP_JOB, completed=False, successful=False, error=error, metadata=meta)
            logger.warning("Catalog bootstrap incomplete: %s", error)
        except Exception as e:
            logger.exception("Catalog bootstrap crashed")
            await self.jobs.record_error(BOOTSTRAP_JOB, str(e))
        self.state = WorkflowState.BOOTSTRAP_FAILED
        return False

    async def _scrape_years(self, years) -> List[int]:
        successful: List[int] = []
        for year in years:
            try:
                refresh = await self.catalog.refresh_year(year)
            except Exception as e:
                logger.warning("Failed to scrape catalog year %d: %s", year, e)
                continue
            if refresh.successful:
                successful.append(year)
            else:
                logger.warning("No catalog partition succeeded for year %d", year)
        return successful

    # -------------------- stages --------------------

    async def _crawl_started(self, part_type: PartType):
        await self.jobs.begin_attempt(crawl_job_name(part_type))

    async def _crawl_finished(self, part_type: PartType, result: CategoryCrawlResult):
        failed = result.stop_reason == StopReason.FETCH_FAILED
        await self.jobs.finish_attempt(
            crawl_job_name(part_type),
            completed=True,
            successful=not failed,
            error=result.failures[-1].error if failed and result.failures else None,
            metadata={
                "pages": result.pages,
                "inserted": result.inserted,
                "stop_reason": result.stop_reason.value if result.stop_reason else None,
                "skipped_units": len(result.failures),
            },
        )

    async def crawl_all(self) -> List[CategoryCrawlResult]:
        self.state = WorkflowState.CRAWLING
        return await self.crawler.crawl_all(
            self.categories,
            max_concurrent=self.max_concurrent_categories,
            stagger_seconds=self.stagger_seconds,
            on_start=self._crawl_started,
            on_finish=self._crawl_finished,
        )

    async def crawl_category(self, part_type: PartType) -> CategoryCrawlResult:
        """Single category, same path table as the periodic crawl."""
        path = self.categories[part_type]
        await self._crawl_started(part_type)
        try:
            result = await self.crawler.crawl_category(part_type, path)
        except Exception as e:
            await self.jobs.record_error(crawl_job_name(part_type), str(e))
            raise
        await self._crawl_finished(part_type, result)
        return result

    async def classify_new(self) -> int:
        self.state = WorkflowState.CLASSIFYING
        return await self.classifier.classify_pending(self.classify_batch_size)

    async def aggregate(self) -> int:
        self.state = WorkflowState.AGGREGATING
        return await self.aggregator.run()

    async def refresh_catalog(self, year: Optional[int] = None) -> YearRefresh:
        self.state = WorkflowState.CATALOG_REFRESHING
        year = year or self.clock().year
        refresh = await self.catalog.refresh_year(year)
        logger.info("Catalog refresh for %d: %d scraped, %d new", year, refresh.scraped, refresh.stored)
        return refresh

    # -------------------- cycle --------------------

    async def run_cycle(self) -> WorkflowState:
        started = time.monotonic()
        logger.info("=== Starting scraping workflow ===")
        try:
            if not await self.is_bootstrap_complete():
                await self.run_bootstrap()
                if not await self.is_bootstrap_complete():
                    logger.info("Catalog bootstrap not completed, skipping the rest of this cycle")
                    return self.state

            for name, stage in (
                ("crawl", self.crawl_all),
                ("classification", self.classify_new),
                ("aggregation", self.aggregate),
                ("catalog refresh", self.refresh_catalog),
            ):
                try:
                    await stage()
                except Exception:
                    logger.exception("Stage %s failed, continuing", name)
            self.state = WorkflowState.IDLE
            return self.state
        finally:
            logger.info(
                "=== Workflow finished in %s (state: %s) ===",
                humanize.naturaldelta(time.monotonic() - started), self.state.value,
            )

    # -------------------- recovery --------------------

    async def recover(self) -> List[PartType]:
        """Reset units interrupted by a crash; return crawl units to re-queue."""
        names = await self.jobs.recover_in_progress()
        requeue: List[PartType] = []
        for name in names:
            if name.startswith(CRAWL_JOB_PREFIX):
                try:
                    part_type = PartType(name[len(CRAWL_JOB_PREFIX):])
                except ValueError:
                    logger.warning("Unknown crawl unit %s left in progress", name)
                    continue
                if part_type in self.categories:
                    requeue.append(part_type)
            else:
                logger.info("Job %s was interrupted; the next cycle will retry it", name)
        if requeue:
            logger.warning("Re-queueing %d interrupted category crawls", len(requeue))
        return requeue


def build_orchestrator(session_factory=SessionLocal) -> Orchestrator:
    proxy = ProxyRotator.from_settings()
    gateway = ListingGateway(session_factory)
    index = CatalogIndex()
    return Orchestrator.from_settings(
        crawler=BazosScraper.from_settings(gateway=gateway, proxy=proxy),
        catalog=CatalogService(TechPowerUpScraper.from_settings(proxy=proxy), index, session_factory),
        classifier=ComponentClassifier(index, gateway),
        aggregator=PriceStatsAggregator(gateway, session_factory),
        jobs=JobStateStore(session_factory),
    )
