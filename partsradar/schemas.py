# partsradar/schemas.py
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel


class RawListing(BaseModel):
    title: str
    description: Optional[str] = None
    part_type: str
    price: Optional[Decimal] = None
    price_undefined: bool = False
    currency: str = "CZK"
    marketplace: str
    source: str
    external_id: str
    url: str
    image_url: Optional[str] = None
    location: Optional[str] = None
    seller_name: Optional[str] = None
    phone: Optional[str] = None
    view_count: Optional[int] = None
    is_promoted: bool = False
    posted_at: Optional[datetime] = None
    unique_hash: str


class ComponentInfo(BaseModel):
    name: str
    codename: Optional[str] = None
    item_type: str  # GPU, CPU
    brand: Optional[str] = None  # NVIDIA, AMD, Intel
    series: Optional[str] = None  # RTX 30, Ryzen 5
    release_year: Optional[int] = None
    release_date: Optional[datetime] = None
    socket: Optional[str] = None
    process: Optional[str] = None
    specifications: Optional[str] = None
    source_url: Optional[str] = None

    # GPU
    memory: Optional[str] = None
    bus_width: Optional[str] = None

    # CPU
    cores: Optional[int] = None
    threads: Optional[int] = None
    base_clock: Optional[str] = None
    cache: Optional[str] = None
    tdp: Optional[str] = None


@dataclass
class UnitFailure:
    """One skipped unit of work (listing, page or catalog partition)."""
    unit: str
    error: str
