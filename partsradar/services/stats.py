# partsradar/services/stats.py
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Dict, List, Optional, Sequence, Tuple

from sqlalchemy import select

from partsradar.db import SessionLocal
from partsradar.models import Listing, ModelPriceStats
from partsradar.services.ingest import ListingGateway

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")


@dataclass(frozen=True)
class PriceSummary:
    average: Decimal
    median: Decimal
    minimum: Decimal
    maximum: Decimal


@dataclass(frozen=True)
class ModelStats:
    item_type: str
    model_name: str
    category: Optional[str]
    summary: PriceSummary
    total_listings: int
    active_listings: int


def _round(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def summarize(prices: Sequence[Decimal]) -> PriceSummary:
    if not prices:
        raise ValueError("no prices to summarize")
    ordered = sorted(Decimal(p) for p in prices)
    n = len(ordered)
    mid = n // 2
    median = ordered[mid] if n % 2 else (ordered[mid - 1] + ordered[mid]) / 2
    return PriceSummary(
        average=_round(sum(ordered) / n),
        median=_round(median),
        minimum=ordered[0],
        maximum=ordered[-1],
    )


def group_listings(listings: Sequence[Listing]) -> List[ModelStats]:
    groups: Dict[Tuple[str, str], List[Listing]] = {}
    for l in listings:
        if not l.item_type or not l.model_name or l.price is None or l.price <= 0:
            continue
        groups.setdefault((l.item_type, l.model_name), []).append(l)

    out: List[ModelStats] = []
    for (item_type, model_name), members in sorted(groups.items()):
        active_prices = [l.price for l in members if l.active]
        if not active_prices:
            continue
        out.append(ModelStats(
            item_type=item_type,
            model_name=model_name,
            category=members[0].category,
            summary=summarize(active_prices),
            total_listings=len(members),
            active_listings=len(active_prices),
        ))
    return out


class PriceStatsAggregator:
    def __init__(self, gateway: Optional[ListingGateway] = None, session_factory=SessionLocal):
        self.gateway = gateway or ListingGateway(session_factory)
        self.session_factory = session_factory

    async def upsert_model_stats(self, stats: Sequence[ModelStats]) -> int:
        """Write stats rows; returns how many rows were created or changed."""
        changed = 0
        now = datetime.now(timezone.utc)
        async with self.session_factory() as s:
            existing = {
                (r.item_type, r.model_name): r
                for r in (await s.execute(select(ModelPriceStats))).scalars().all()
            }
            for st in stats:
                values = dict(
                    category=st.category,
                    average_price=st.summary.average,
                    median_price=st.summary.median,
                    min_price=st.summary.minimum,
                    max_price=st.summary.maximum,
                    total_listings=st.total_listings,
                    active_listings=st.active_listings,
                )
                row = existing.get((st.item_type, st.model_name))
                if row is None:
                    s.add(ModelPriceStats(item_type=st.item_type, model_name=st.model_name,
                                          created_at=now, updated_at=now, **values))
                    changed += 1
                    continue
                if any(_differs(getattr(row, k), v) for k, v in values.items()):
                    for k, v in values.items():
                        setattr(row, k, v)
                    row.updated_at = now
                    changed += 1
            await s.commit()
        return changed

    async def run(self) -> int:
        listings = await self.gateway.find_classified()
        stats = group_listings(listings)
        logger.info("Calculating statistics for %d models", len(stats))
        changed = await self.upsert_model_stats(stats)
        logger.info("Price statistics updated: %d of %d models changed", changed, len(stats))
        return len(stats)


def _differs(current, new) -> bool:
    if isinstance(new, Decimal) and current is not None:
        return Decimal(current) != new
    return current != new
