# partsradar/scrapers/bazos.py
from __future__ import annotations

import asyncio
import enum
import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from partsradar.config import CATEGORY_PATHS, PartType, settings
from partsradar.extractor import ExtractionError, extract_external_id, extract_listing
from partsradar.schemas import RawListing, UnitFailure
from partsradar.scrapers.base import BaseScraper, FetchClient, FetchError, FetchPolicy
from partsradar.services.ingest import InsertCounts, ListingGateway
from partsradar.utils.proxy import ProxyRotator

logger = logging.getLogger(__name__)

PAGE_SIZE = 20  # Bazos paginates by item offset
NEXT_PAGE_WORDS = ("další", "next")


class StopReason(str, enum.Enum):
    DISABLED = "disabled"
    FETCH_FAILED = "fetch_failed"
    NO_LISTINGS = "no_listings"
    DUPLICATE_RATIO = "duplicate_ratio"
    NO_NEXT_PAGE = "no_next_page"
    PAGE_CAP = "page_cap"


@dataclass
class CategoryCrawlResult:
    part_type: PartType
    path: str
    pages: int = 0
    candidates: int = 0
    inserted: int = 0
    database_duplicates: int = 0
    intra_batch_duplicates: int = 0
    stop_reason: Optional[StopReason] = None
    failures: List[UnitFailure] = field(default_factory=list)

    def add(self, counts: InsertCounts):
        self.candidates += counts.batch_size
        self.inserted += counts.inserted
        self.database_duplicates += counts.database_duplicates
        self.intra_batch_duplicates += counts.intra_batch_duplicates


def should_stop_early(counts: InsertCounts, threshold: float) -> bool:
    return counts.batch_size > 0 and counts.duplicate_ratio >= threshold


class BazosScraper(BaseScraper):
    source = "bazos"
    base_url = "https://pc.bazos.cz"

    def __init__(
        self,
        client: FetchClient,
        gateway: Optional[ListingGateway] = None,
        enabled: bool = True,
        duplicate_stop_threshold: float = 0.8,
        page_hard_cap: int = 500,
        listing_delay_ms: int = 200,
        page_delay_ms: int = 1500,
    ):
        super().__init__(client)
        self.gateway = gateway or ListingGateway()
        self.enabled = enabled
        self.duplicate_stop_threshold = duplicate_stop_threshold
        self.page_hard_cap = page_hard_cap
        self.listing_delay_ms = listing_delay_ms
        self.page_delay_ms = page_delay_ms

    @classmethod
    def from_settings(cls, gateway: Optional[ListingGateway] = None, proxy: Optional[ProxyRotator] = None) -> "BazosScraper":
        policy = FetchPolicy(
            base_delay_ms=settings.BAZOS_BASE_DELAY_MS,
            max_delay_ms=settings.BAZOS_MAX_DELAY_MS,
            max_retries=settings.BAZOS_MAX_RETRIES,
            timeout_ms=settings.BAZOS_TIMEOUT_MS,
        )
        return cls(
            FetchClient(policy, proxy=proxy),
            gateway=gateway,
            enabled=settings.SCRAPING_ENABLED,
            duplicate_stop_threshold=settings.DUPLICATE_STOP_THRESHOLD,
            page_hard_cap=settings.PAGE_HARD_CAP,
            listing_delay_ms=settings.LISTING_DELAY_MS,
            page_delay_ms=settings.PAGE_DELAY_MS,
        )

    # -------------------- pagination --------------------

    def page_url(self, path: str, page: int) -> str:
        if page == 1:
            return f"{self.base_url}/{path}/"
        return f"{self.base_url}/{path}/{(page - 1) * PAGE_SIZE}/"

    def extract_listing_urls(self, soup: BeautifulSoup) -> List[str]:
        urls: List[str] = []
        seen: set[str] = set()
        for a in soup.select("a[href*='/inzerat/']"):
            href = a.get("href") or ""
            if ".php" not in href:
                continue
            href = urljoin(self.base_url + "/", href)
            listing_id = extract_external_id(href)
            if listing_id and listing_id not in seen:
                seen.add(listing_id)
                urls.append(href)
        return urls

    def has_next_page(self, soup: BeautifulSoup, path: str, page: int) -> bool:
        next_offset = page * PAGE_SIZE
        pattern = re.compile(rf"/{re.escape(path)}/{next_offset}/")
        if soup.find("a", href=pattern):
            return True
        for a in soup.find_all("a"):
            text = a.get_text(" ", strip=True).lower()
            if any(w in text for w in NEXT_PAGE_WORDS):
                return True
        return False

    # -------------------- crawling --------------------

    async def scrape_listing(self, url: str, part_type: PartType) -> RawListing:
        html = await self.fetch_text(url)
        return extract_listing(html, url, part_type.value, marketplace=self.source)

    async def crawl_category(self, part_type: PartType, path: Optional[str] = None) -> CategoryCrawlResult:
        path = path or CATEGORY_PATHS[part_type]
        result = CategoryCrawlResult(part_type=part_type, path=path)
        if not self.enabled:
            logger.info("Scraping is disabled, skipping %s", part_type.value)
            result.stop_reason = StopReason.DISABLED
            return result

        logger.info("Starting crawl for %s at /%s/", part_type.value, path)
        page = 1
        while page <= self.page_hard_cap:
            url = self.page_url(path, page)
            try:
                soup = await self.fetch_soup(url)
            except FetchError as e:
                logger.error("Could not fetch page %d of %s, aborting category: %s", page, part_type.value, e)
                result.failures.append(UnitFailure(unit=url, error=str(e)))
                result.stop_reason = StopReason.FETCH_FAILED
                break
            result.pages = page

            listing_urls = self.extract_listing_urls(soup)
            if not listing_urls:
                logger.info("No listings on page %d of %s, stopping", page, part_type.value)
                result.stop_reason = StopReason.NO_LISTINGS
                break

            candidates: List[RawListing] = []
            for listing_url in listing_urls:
                try:
                    candidates.append(await self.scrape_listing(listing_url, part_type))
                except (FetchError, ExtractionError) as e:
                    logger.warning("Skipping listing %s: %s", listing_url, e)
                    result.failures.append(UnitFailure(unit=listing_url, error=str(e)))
                await self.delay(self.listing_delay_ms)

            counts = await self.gateway.insert_batch(candidates)
            result.add(counts)
            logger.debug(
                "Page %d of %s: %d inserted, %d known, %d repeated",
                page, part_type.value, counts.inserted, counts.database_duplicates, counts.intra_batch_duplicates,
            )

            if should_stop_early(counts, self.duplicate_stop_threshold):
                logger.info(
                    "Stopping %s: database duplicate ratio %.0f%% reached threshold %.0f%%",
                    part_type.value, counts.duplicate_ratio * 100, self.duplicate_stop_threshold * 100,
                )
                result.stop_reason = StopReason.DUPLICATE_RATIO
                break

            if not self.has_next_page(soup, path, page):
                logger.info("No next page for %s after page %d", part_type.value, page)
                result.stop_reason = StopReason.NO_NEXT_PAGE
                break

            page += 1
            await self.delay(self.page_delay_ms)
        else:
            result.stop_reason = StopReason.PAGE_CAP

        logger.info(
            "Finished %s: %d pages, %d new listings (%s)",
            part_type.value, result.pages, result.inserted, result.stop_reason.value,
        )
        return result

    async def crawl_all(
        self,
        categories: Optional[dict] = None,
        max_concurrent: int = 5,
        stagger_seconds: float = 0,
        on_start=None,
        on_finish=None,
    ) -> List[CategoryCrawlResult]:
        """Crawl categories concurrently. on_start/on_finish are awaited per category."""
        categories = categories if categories is not None else CATEGORY_PATHS
        sem = asyncio.Semaphore(max(1, max_concurrent))

        async def run(index: int, part_type: PartType, path: str) -> CategoryCrawlResult:
            if stagger_seconds and index < max_concurrent:
                await self.client.sleep(index * stagger_seconds)
            async with sem:
                try:
                    if on_start:
                        await on_start(part_type)
                    res = await self.crawl_category(part_type, path)
                except Exception as e:
                    logger.exception("Crawl of %s failed", part_type.value)
                    res = CategoryCrawlResult(part_type=part_type, path=path, stop_reason=StopReason.FETCH_FAILED)
                    res.failures.append(UnitFailure(unit=path, error=str(e)))
                if on_finish:
                    try:
                        await on_finish(part_type, res)
                    except Exception:
                        logger.exception("Could not record the end of the %s crawl", part_type.value)
                return res

        tasks = [run(i, pt, path) for i, (pt, path) in enumerate(categories.items())]
        return list(await asyncio.gather(*tasks))
