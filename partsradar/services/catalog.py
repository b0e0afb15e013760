# partsradar/services/catalog.py
import logging
from dataclasses import dataclass, field
from typing import List, Sequence

from sqlalchemy import select

from partsradar.db import SessionLocal
from partsradar.models import CanonicalComponent
from partsradar.schemas import ComponentInfo, UnitFailure
from partsradar.scrapers.techpowerup import TechPowerUpScraper
from partsradar.services.catalog_index import CatalogIndex

logger = logging.getLogger(__name__)


@dataclass
class YearRefresh:
    year: int
    scraped: int = 0
    stored: int = 0
    successful: bool = False
    failures: List[UnitFailure] = field(default_factory=list)


class CatalogService:
    def __init__(self, scraper: TechPowerUpScraper, index: CatalogIndex, session_factory=SessionLocal):
        self.scraper = scraper
        self.index = index
        self.session_factory = session_factory

    async def store_components(self, components: Sequence[ComponentInfo]) -> int:
        """Insert components whose name is not stored yet. Existing rows are never touched."""
        unique = {c.name: c for c in components}
        if not unique:
            return 0
        async with self.session_factory() as s:
            res = await s.execute(select(CanonicalComponent.name).where(CanonicalComponent.name.in_(list(unique))))
            known = set(res.scalars().all())
            new = [c for name, c in unique.items() if name not in known]
            s.add_all([CanonicalComponent(**c.model_dump()) for c in new])
            await s.commit()
        return len(new)

    async def warm_index(self) -> int:
        async with self.session_factory() as s:
            rows = (await s.execute(select(CanonicalComponent))).scalars().all()
        loaded = self.index.add_many(
            ComponentInfo.model_validate(r, from_attributes=True) for r in rows
        )
        logger.info("Loaded %d canonical components into the catalog index", loaded)
        return loaded

    async def refresh_year(self, year: int) -> YearRefresh:
        # all HTTP first, then one short write
        gpus = await self.scraper.scrape_gpus_by_year(year)
        cpus = await self.scraper.scrape_cpus_by_year(year)

        refresh = YearRefresh(year=year)
        for result in (gpus, cpus):
            if result.successful:
                logger.info("Scraped %d %ss for year %d", result.total_components, result.item_type, year)
            else:
                logger.warning("Every %s partition failed for year %d", result.item_type, year)
            refresh.failures.extend(result.failures)

        components = gpus.components + cpus.components
        refresh.scraped = len(components)
        refresh.successful = gpus.successful or cpus.successful
        refresh.stored = await self.store_components(components)
        self.index.add_many(components)
        return refresh
