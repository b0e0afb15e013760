# partsradar/normalizer.py
from datetime import datetime, timezone
from typing import Optional

from partsradar.schemas import RawListing


def normalize_and_snapshot(raw: RawListing, now: Optional[datetime] = None) -> dict:
    now = now or datetime.now(timezone.utc)
    snapshot = dict(
        title=raw.title.strip(),
        description=raw.description,
        part_type=raw.part_type,
        price=raw.price,
        price_undefined=raw.price_undefined and raw.price is None,
        currency=raw.currency,
        marketplace=raw.marketplace,
        source=raw.source,
        external_id=raw.external_id,
        url=raw.url,
        image_url=raw.image_url,
        location=raw.location,
        seller_name=raw.seller_name,
        phone=raw.phone,
        view_count=raw.view_count,
        is_promoted=raw.is_promoted,
        posted_at=raw.posted_at or now,
        scraped_at=now,
        updated_at=now,
        unique_hash=raw.unique_hash,
        active=True,
    )
    return snapshot
