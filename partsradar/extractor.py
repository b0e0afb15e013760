# partsradar/extractor.py
"""Field extraction for a single Bazos listing detail page.

Every field is an ordered chain of fallbacks over the page text. Only the
external id, the title and a sane price are required; anything else that
cannot be found is left empty.
"""
from __future__ import annotations

import enum
import hashlib
import logging
import re
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Optional, Union

from bs4 import BeautifulSoup

from partsradar.schemas import RawListing

logger = logging.getLogger(__name__)


class ExtractionError(ValueError):
    """A required field could not be obtained; the listing is discarded."""


class PriceMarker(enum.Enum):
    UNDEFINED = "undefined"


# "cena v textu" / negotiable: a price exists but is not stated
PRICE_UNDEFINED = PriceMarker.UNDEFINED

Price = Union[Decimal, PriceMarker, None]

_AMOUNT = r"\d{1,3}(?:[ \xa0]\d{3})+|\d+"
PRICE_RE = re.compile(rf"({_AMOUNT})\s*Kč")
# a sign only counts directly after the "Cena:" label
LABELED_PRICE_RE = re.compile(rf"cena\s*:?\s*(-?(?:{_AMOUNT}))(?:\s*(?:kč|czk|,-))?", re.I)
NEGOTIABLE_KEYWORDS = ("v textu", "dohodou", "na dotaz")

ID_RE = re.compile(r"/inzerat/(\d+)/")
LOCATION_RE = re.compile(r"([^\W\d_]+(?:[ -][^\W\d_]+)*)\s+(\d{3}\s?\d{2})\b")
LOCATION_CODE_FIRST_RE = re.compile(r"\b(\d{3}\s?\d{2})\s+([^\W\d_]+(?:[ -][^\W\d_]+)*)")
DATE_RE = re.compile(r"\[(\d{1,2}\.\s?\d{1,2}\.\s*\d{4})\]")
SELLER_RE = re.compile(r"Jméno:\s*([^\n]+)")
PHONE_RE = re.compile(r"Telefon:\s*([^\n]+)")
VIEWS_RE = re.compile(r"Vidělo:\s*(\d+)\s*lidí")
PROMOTED_RE = re.compile(r"\bTOP\b")

TITLE_KEYWORDS = ("GeForce", "Radeon", "RTX", "GTX", "RX", "Intel", "AMD", "NVIDIA", "Ryzen")
TITLE_EXCLUDED = ("Cena:", "Lokalita:")

DESCRIPTION_START = ("výkonnější než", "Záruka", "Preferuji", "Prodám", "Nabízím")
DESCRIPTION_END = ("Cena pevná", "Jméno:", "Telefon:", "Lokalita:", "©")

MAX_LENGTHS = {
    "title": 500,
    "description": 2000,
    "external_id": 50,
    "url": 1000,
    "image_url": 1000,
    "location": 200,
    "seller_name": 200,
    "phone": 100,
}


def _to_decimal(raw: str) -> Optional[Decimal]:
    try:
        return Decimal(re.sub(r"\s+", "", raw))
    except InvalidOperation:
        return None


def extract_price(text: str) -> Price:
    labeled = LABELED_PRICE_RE.search(text)
    if labeled and labeled.group(1).startswith("-"):
        return _to_decimal(labeled.group(1))
    for m in (PRICE_RE.search(text), labeled):
        if m:
            value = _to_decimal(m.group(1))
            if value is not None:
                return value
    lowered = text.lower()
    if any(k in lowered for k in NEGOTIABLE_KEYWORDS):
        return PRICE_UNDEFINED
    return None


def price_token(price: Price) -> str:
    if price is PRICE_UNDEFINED:
        return "undefined"
    if price is None:
        return "null"
    return f"{price:f}"


def listing_hash(marketplace: str, external_id: str, title: str, price: Price) -> str:
    raw = "|".join((marketplace, external_id, title, price_token(price)))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def extract_external_id(url: str) -> Optional[str]:
    m = ID_RE.search(url)
    return m.group(1) if m else None


def extract_title(soup: BeautifulSoup, text: str) -> Optional[str]:
    h1 = soup.select_one("h1")
    if h1 and h1.get_text(" ", strip=True):
        return h1.get_text(" ", strip=True)
    for line in text.splitlines():
        line = line.strip()
        if not any(k in line for k in TITLE_KEYWORDS):
            continue
        if 10 < len(line) < 200 and not any(x in line for x in TITLE_EXCLUDED):
            return line
    return None


def extract_description(text: str) -> Optional[str]:
    starts = [i for i in (text.find(m) for m in DESCRIPTION_START) if i != -1]
    if not starts:
        return None
    start = min(starts)
    ends = [i for i in (text.find(m, start + 1) for m in DESCRIPTION_END) if i != -1]
    if not ends:
        return None
    description = text[start:min(ends)].strip()
    if 10 < len(description) < 2000:
        return description
    return None


def extract_posted_at(text: str, now: datetime) -> datetime:
    m = DATE_RE.search(text)
    if m:
        raw = re.sub(r"\s+", "", m.group(1))
        day, month, year = raw.split(".")
        try:
            return datetime.strptime(f"{day}.{month}. {year}", "%d.%m. %Y").replace(tzinfo=timezone.utc)
        except ValueError:
            logger.debug("Could not parse date: %s", m.group(1))
    return now


def extract_location(text: str) -> Optional[str]:
    label = text.find("Lokalita:")
    pos = label if label != -1 else 0
    name_first = LOCATION_RE.search(text, pos)
    code_first = LOCATION_CODE_FIRST_RE.search(text, pos)
    if name_first and (not code_first or name_first.start() <= code_first.start()):
        return f"{name_first.group(1).strip()} {name_first.group(2)}"
    if code_first:
        return f"{code_first.group(2).strip()} {code_first.group(1)}"
    return None


def _first(pattern: re.Pattern, text: str) -> Optional[str]:
    m = pattern.search(text)
    return m.group(1).strip() if m else None


def extract_view_count(text: str) -> Optional[int]:
    m = VIEWS_RE.search(text)
    return int(m.group(1)) if m else None


def extract_image(soup: BeautifulSoup) -> Optional[str]:
    img = soup.select_one("img.carousel-cell-image")
    if img:
        return img.get("data-flickity-lazyload") or img.get("src")
    og = soup.find("meta", property="og:image")
    return og.get("content") if og else None


def truncate(value: Optional[str], field: str) -> Optional[str]:
    if value is None:
        return None
    return value[:MAX_LENGTHS[field]]


def extract_listing(
    html: str,
    url: str,
    part_type: str,
    marketplace: str = "bazos",
    now: Optional[datetime] = None,
) -> RawListing:
    now = now or datetime.now(timezone.utc)
    soup = BeautifulSoup(html, "html.parser")
    text = soup.get_text("\n", strip=True)

    external_id = extract_external_id(url)
    if not external_id:
        raise ExtractionError(f"no listing id in {url}")

    title = extract_title(soup, text)
    if not title:
        raise ExtractionError(f"no title for {url}")

    price = extract_price(text)
    if isinstance(price, Decimal) and price <= 0:
        raise ExtractionError(f"non-positive price {price} for {url}")

    title = truncate(title.strip(), "title")
    external_id = truncate(external_id, "external_id")

    return RawListing(
        title=title,
        description=truncate(extract_description(text), "description"),
        part_type=part_type,
        price=price if isinstance(price, Decimal) else None,
        price_undefined=price is PRICE_UNDEFINED,
        currency="CZK",
        marketplace=marketplace,
        source=marketplace,
        external_id=external_id,
        url=truncate(url, "url"),
        image_url=truncate(extract_image(soup), "image_url"),
        location=truncate(extract_location(text), "location"),
        seller_name=truncate(_first(SELLER_RE, text), "seller_name"),
        phone=truncate(_first(PHONE_RE, text), "phone"),
        view_count=extract_view_count(text),
        is_promoted=bool(PROMOTED_RE.search(text)),
        posted_at=extract_posted_at(text, now),
        unique_hash=listing_hash(marketplace, external_id, title, price),
    )
