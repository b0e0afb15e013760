# partsradar/models.py
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Float, DateTime, Boolean, JSON, Numeric, UniqueConstraint, Index, Text
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional
from partsradar.db import Base


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Listing(Base):
    __tablename__ = "listings"

    id: Mapped[int] = mapped_column(primary_key=True)
    title: Mapped[str] = mapped_column(String(500))
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    part_type: Mapped[str] = mapped_column(String(30), index=True)

    # NULL + price_undefined=True is the "v textu" sentinel; NULL alone means no price found
    price: Mapped[Optional[Decimal]] = mapped_column(Numeric(10, 2), nullable=True, index=True)
    price_undefined: Mapped[bool] = mapped_column(Boolean, default=False)
    currency: Mapped[str] = mapped_column(String(3), default="CZK")

    marketplace: Mapped[str] = mapped_column(String(50), index=True)
    source: Mapped[str] = mapped_column(String(50))
    external_id: Mapped[str] = mapped_column(String(50), index=True)
    url: Mapped[str] = mapped_column(String(1000))
    image_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    location: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    condition: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    brand: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    model: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)

    item_type: Mapped[Optional[str]] = mapped_column(String(20), nullable=True, index=True)
    model_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True, index=True)
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    extraction_confidence: Mapped[Optional[float]] = mapped_column(Float, nullable=True)

    seller_name: Mapped[Optional[str]] = mapped_column(String(200), nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    view_count: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    is_promoted: Mapped[bool] = mapped_column(Boolean, default=False)

    posted_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    scraped_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)

    unique_hash: Mapped[str] = mapped_column(String(64), unique=True)
    active: Mapped[bool] = mapped_column(Boolean, default=True)

    __table_args__ = (
        Index("idx_listings_scraped_at", "scraped_at"),
    )


class CanonicalComponent(Base):
    __tablename__ = "canonical_components"

    id: Mapped[int] = mapped_column(primary_key=True)
    name: Mapped[str] = mapped_column(String(200), unique=True)
    codename: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    item_type: Mapped[str] = mapped_column(String(20), index=True)
    brand: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    series: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    release_year: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    release_date: Mapped[Optional[datetime]] = mapped_column(DateTime, nullable=True)
    socket: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    process: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    memory: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    bus_width: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    cores: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    threads: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)
    base_clock: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    cache: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    tdp: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    specifications: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    source_url: Mapped[Optional[str]] = mapped_column(String(1000), nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)


class ModelPriceStats(Base):
    __tablename__ = "model_price_stats"

    id: Mapped[int] = mapped_column(primary_key=True)
    item_type: Mapped[str] = mapped_column(String(20))
    model_name: Mapped[str] = mapped_column(String(200))
    category: Mapped[Optional[str]] = mapped_column(String(50), nullable=True)
    average_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    median_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    min_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    max_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    total_listings: Mapped[int] = mapped_column(Integer, default=0)
    active_listings: Mapped[int] = mapped_column(Integer, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)

    __table_args__ = (UniqueConstraint("item_type", "model_name", name="uq_item_type_model"),)


class JobState(Base):
    __tablename__ = "job_states"

    id: Mapped[int] = mapped_column(primary_key=True)
    job_name: Mapped[str] = mapped_column(String(100), unique=True)
    completed: Mapped[bool] = mapped_column(Boolean, default=False)
    successful: Mapped[bool] = mapped_column(Boolean, default=False)
    in_progress: Mapped[bool] = mapped_column(Boolean, default=False)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_run_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    last_attempt_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    attempt_count: Mapped[int] = mapped_column(Integer, default=0)
    last_error: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    meta: Mapped[Optional[dict]] = mapped_column("metadata", JSON, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), default=utcnow, onupdate=utcnow)
