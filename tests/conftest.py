# tests/conftest.py
import asyncio
from decimal import Decimal

import pytest
from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from partsradar.db import init_db
from partsradar.extractor import listing_hash
from partsradar.schemas import RawListing


@pytest.fixture
def with_db():
    """Runs `scenario(session_factory)` against a fresh in-memory database."""

    def run(scenario):
        async def main():
            engine = create_async_engine("sqlite+aiosqlite://", poolclass=StaticPool)
            await init_db(engine)
            factory = async_sessionmaker(engine, expire_on_commit=False)
            try:
                return await scenario(factory)
            finally:
                await engine.dispose()

        return asyncio.run(main())

    return run


@pytest.fixture
def make_raw():
    def make(external_id, title="MSI GeForce RTX 3060 12GB", price=Decimal("5000"), part_type="GPU", **extra):
        return RawListing(
            title=title,
            part_type=part_type,
            price=price,
            marketplace="bazos",
            source="bazos",
            external_id=str(external_id),
            url=f"https://pc.bazos.cz/inzerat/{external_id}/listing.php",
            unique_hash=listing_hash("bazos", str(external_id), title, price),
            **extra,
        )

    return make
