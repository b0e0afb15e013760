# partsradar/services/ingest.py
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from partsradar.db import SessionLocal
from partsradar.models import Listing
from partsradar.normalizer import normalize_and_snapshot
from partsradar.schemas import RawListing

logger = logging.getLogger(__name__)

# stay well under SQLite's bound-parameter limit
HASH_CHUNK = 500


@dataclass
class InsertCounts:
    inserted: int = 0
    database_duplicates: int = 0
    intra_batch_duplicates: int = 0
    batch_size: int = 0

    @property
    def unique_in_batch(self) -> int:
        return self.batch_size - self.intra_batch_duplicates

    @property
    def duplicate_ratio(self) -> float:
        """Database duplicates over the candidates that were unique within the batch."""
        if self.unique_in_batch <= 0:
            return 0.0
        return self.database_duplicates / self.unique_in_batch


def collapse_by_hash(candidates: Iterable[RawListing]) -> List[RawListing]:
    # later entries win, first-seen order is kept
    unique: dict[str, RawListing] = {}
    for c in candidates:
        unique[c.unique_hash] = c
    return list(unique.values())


class ListingGateway:
    """Owns listing identity: every write of a scraped listing goes through here."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    async def existing_hashes(self, hashes: Iterable[str]) -> set[str]:
        hashes = list(set(hashes))
        found: set[str] = set()
        async with self.session_factory() as s:
            for i in range(0, len(hashes), HASH_CHUNK):
                chunk = hashes[i:i + HASH_CHUNK]
                res = await s.execute(select(Listing.unique_hash).where(Listing.unique_hash.in_(chunk)))
                found.update(res.scalars().all())
        return found

    async def insert_batch(self, candidates: List[RawListing]) -> InsertCounts:
        counts = InsertCounts(batch_size=len(candidates))
        if not candidates:
            return counts

        collapsed = collapse_by_hash(candidates)
        counts.intra_batch_duplicates = len(candidates) - len(collapsed)
        if counts.intra_batch_duplicates:
            logger.debug("Found %d duplicate listings within the same page", counts.intra_batch_duplicates)

        existing = await self.existing_hashes(c.unique_hash for c in collapsed)
        new = [c for c in collapsed if c.unique_hash not in existing]
        counts.database_duplicates = len(collapsed) - len(new)
        if not new:
            return counts

        now = datetime.now(timezone.utc)
        rows = [normalize_and_snapshot(c, now) for c in new]
        try:
            async with self.session_factory() as s:
                s.add_all([Listing(**row) for row in rows])
                await s.commit()
            counts.inserted = len(rows)
        except SQLAlchemyError as e:
            logger.warning("Batch insert failed, falling back to individual inserts: %s", e)
            inserted = await self._insert_one_by_one(rows)
            counts.inserted = inserted
            # lost a uniqueness race with another writer: that row is a duplicate
            counts.database_duplicates += len(rows) - inserted

        logger.debug(
            "Saved %d new listings (database duplicates: %d, intra-batch: %d)",
            counts.inserted, counts.database_duplicates, counts.intra_batch_duplicates,
        )
        return counts

    async def _insert_one_by_one(self, rows: List[dict]) -> int:
        inserted = 0
        for row in rows:
            async with self.session_factory() as s:
                s.add(Listing(**row))
                try:
                    await s.commit()
                    inserted += 1
                except IntegrityError as e:
                    await s.rollback()
                    logger.debug("Skipping duplicate listing %s: %s", row["unique_hash"], e.orig)
        return inserted

    async def find_unclassified(self, after_id: int = 0, limit: Optional[int] = None) -> List[Listing]:
        q = select(Listing).where(Listing.item_type.is_(None), Listing.id > after_id).order_by(Listing.id)
        if limit:
            q = q.limit(limit)
        async with self.session_factory() as s:
            return list((await s.execute(q)).scalars().all())

    async def find_classified(self) -> List[Listing]:
        q = select(Listing).where(Listing.item_type.is_not(None)).order_by(Listing.id)
        async with self.session_factory() as s:
            return list((await s.execute(q)).scalars().all())

    async def save_classifications(self, matches: dict) -> int:
        """matches: listing id -> ComponentMatch. Listings classified meanwhile are left alone."""
        if not matches:
            return 0
        saved = 0
        async with self.session_factory() as s:
            res = await s.execute(select(Listing).where(Listing.id.in_(list(matches))))
            for listing in res.scalars().all():
                if listing.item_type is not None:
                    continue
                m = matches[listing.id]
                listing.item_type = m.item_type
                listing.model_name = m.model_name
                listing.category = m.category
                listing.extraction_confidence = m.confidence
                saved += 1
            await s.commit()
        return saved
