# partsradar/scrapers/techpowerup.py
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from datetime import datetime
from typing import List, Optional
from urllib.parse import urljoin

from bs4 import BeautifulSoup

from partsradar.config import settings
from partsradar.schemas import ComponentInfo, UnitFailure
from partsradar.scrapers.base import BaseScraper, FetchClient, FetchError, FetchPolicy
from partsradar.utils.proxy import ProxyRotator

logger = logging.getLogger(__name__)

GPU_MANUFACTURERS = ["AMD", "NVIDIA", "Intel"]
CPU_GENERATIONS = {
    "AMD": ["Ryzen 3", "Ryzen 5", "Ryzen 7", "Ryzen 9"],
    "Intel": ["Core i3", "Core i5", "Core i7", "Core i9", "Ultra 5", "Ultra 7", "Ultra 9"],
}

YEAR_RE = re.compile(r"(\d{4})")
FULL_DATE_RE = re.compile(r"([A-Z][a-z]{2})[a-z]*\.?\s+(\d{1,2})(?:st|nd|rd|th)?,?\s+(\d{4})")
MONTH_YEAR_RE = re.compile(r"([A-Z][a-z]{2})[a-z]*\.?\s+(\d{4})")
CORES_RE = re.compile(r"(\d+)\s*c\b", re.I)
CORES_ONLY_RE = re.compile(r"^(\d+)\s*$")
THREADS_RE = re.compile(r"(\d+)\s*c?\s*/\s*(\d+)\s*t?", re.I)  # "8c/16t" or "8 / 16"

NVIDIA_SERIES_RE = re.compile(r"(RTX|GTX)\s*(\d{3,4})", re.I)
AMD_SERIES_RE = re.compile(r"RX\s*(\d{3,4})", re.I)
CPU_SERIES_RES = [
    re.compile(r"(Ryzen\s*\d)", re.I),
    re.compile(r"(Core\s*i\d)", re.I),
    re.compile(r"(Ultra\s*\d)", re.I),
]

BRAND_KEYWORDS = [
    ("NVIDIA", ("geforce", "rtx", "gtx", "nvidia", "quadro")),
    ("AMD", ("radeon", "amd", "ryzen", "athlon", "threadripper")),
    ("Intel", ("intel", "core", "pentium", "celeron", "xeon", "atom", "arc")),
]


@dataclass
class PartitionResult:
    item_type: str
    year: int
    partition: str
    url: str
    components: List[ComponentInfo] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def successful(self) -> bool:
        return self.error is None


@dataclass
class ScrapeResult:
    item_type: str
    year: int
    partitions: List[PartitionResult] = field(default_factory=list)
    scraped_at: datetime = field(default_factory=datetime.now)

    @property
    def components(self) -> List[ComponentInfo]:
        return [c for p in self.partitions for c in p.components]

    @property
    def total_components(self) -> int:
        return len(self.components)

    @property
    def successful(self) -> bool:
        return any(p.successful for p in self.partitions)

    @property
    def failures(self) -> List[UnitFailure]:
        return [UnitFailure(unit=p.url, error=p.error) for p in self.partitions if not p.successful]


# ------------------------- parsing helpers -------------------------

def extract_brand(name: str) -> str:
    lowered = name.lower()
    for brand, words in BRAND_KEYWORDS:
        if any(w in lowered for w in words):
            return brand
    return "Unknown"


def extract_gpu_series(name: str) -> str:
    m = NVIDIA_SERIES_RE.search(name)
    if m:
        # 4090 -> RTX 40, 980 -> GTX 900
        digits = m.group(2)
        family = digits[:2] if len(digits) == 4 else digits[0] + "00"
        return f"{m.group(1).upper()} {family}"
    m = AMD_SERIES_RE.search(name)
    if m:
        digits = m.group(1)
        return "RX " + digits[0] + "0" * (len(digits) - 1)
    return "Unknown"


def extract_cpu_series(name: str) -> str:
    for pattern in CPU_SERIES_RES:
        m = pattern.search(name)
        if m:
            return m.group(1)
    return "Unknown"


def extract_year(text: str) -> Optional[int]:
    m = YEAR_RE.search(text or "")
    return int(m.group(1)) if m else None


def parse_release_date(text: str) -> Optional[datetime]:
    """'Jan 30th, 2025', 'Jan 2025' or anything carrying a year (Jan 1st)."""
    text = (text or "").strip()
    m = FULL_DATE_RE.search(text)
    if m:
        try:
            return datetime.strptime(f"{m.group(1)} {m.group(2)} {m.group(3)}", "%b %d %Y")
        except ValueError:
            pass
    m = MONTH_YEAR_RE.search(text)
    if m:
        try:
            return datetime.strptime(f"{m.group(1)} {m.group(2)}", "%b %Y")
        except ValueError:
            pass
    year = extract_year(text)
    return datetime(year, 1, 1) if year else None


def extract_cores(text: str) -> Optional[int]:
    m = CORES_RE.search(text) or THREADS_RE.search(text) or CORES_ONLY_RE.search(text)
    return int(m.group(1)) if m else None


def extract_threads(text: str) -> Optional[int]:
    m = THREADS_RE.search(text)
    if m:
        return int(m.group(2))
    return extract_cores(text)


def cell_texts(row) -> List[str]:
    return [td.get_text(" ", strip=True) for td in row.find_all("td")]


def detail_url(base_url: str, cell) -> Optional[str]:
    a = cell.find("a")
    if a and a.get("href"):
        return urljoin(base_url, a["href"])
    return None


def parse_gpu_table(soup: BeautifulSoup, base_url: str) -> List[ComponentInfo]:
    gpus: List[ComponentInfo] = []
    for row in soup.select("table.processors tr"):
        cells = row.find_all("td")
        if len(cells) < 8:
            continue
        name, chip, released, bus, memory, gpu_clock, memory_clock, shaders = cell_texts(row)[:8]
        if not name or name == "Product Name":
            continue
        try:
            gpus.append(ComponentInfo(
                name=name,
                codename=chip or None,
                item_type="GPU",
                brand=extract_brand(name),
                series=extract_gpu_series(name),
                memory=memory or None,
                bus_width=bus or None,
                specifications=f"GPU Clock: {gpu_clock}, Memory Clock: {memory_clock}, Shaders: {shaders}",
                release_date=parse_release_date(released),
                release_year=extract_year(released),
                source_url=detail_url(base_url, cells[0]),
            ))
        except ValueError as e:
            logger.warning("Error parsing GPU row %r: %s", name, e)
    return gpus


def parse_cpu_table(soup: BeautifulSoup, base_url: str) -> List[ComponentInfo]:
    cpus: List[ComponentInfo] = []
    for row in soup.select("table.items-desktop-table tr"):
        cells = row.find_all("td")
        if len(cells) < 9:
            continue
        name, codename, cores, clock, socket, process, l3_cache, tdp, released = cell_texts(row)[:9]
        if not name or name == "Name":
            continue
        try:
            cpus.append(ComponentInfo(
                name=name,
                codename=codename or None,
                item_type="CPU",
                brand=extract_brand(name),
                series=extract_cpu_series(name),
                socket=socket or None,
                base_clock=clock or None,
                cores=extract_cores(cores),
                threads=extract_threads(cores),
                process=process or None,
                cache=l3_cache or None,
                tdp=tdp or None,
                release_date=parse_release_date(released),
                release_year=extract_year(released),
                source_url=detail_url(base_url, cells[0]),
            ))
        except ValueError as e:
            logger.warning("Error parsing CPU row %r: %s", name, e)
    return cpus


class TechPowerUpScraper(BaseScraper):
    """Reference catalog. One partition at a time: the site rate-limits globally."""

    source = "techpowerup"
    base_url = "https://www.techpowerup.com"

    def __init__(self, client: FetchClient, partition_delay_ms: Optional[int] = None):
        super().__init__(client)
        self.partition_delay_ms = client.policy.base_delay_ms if partition_delay_ms is None else partition_delay_ms

    @classmethod
    def from_settings(cls, proxy: Optional[ProxyRotator] = None) -> "TechPowerUpScraper":
        policy = FetchPolicy(
            base_delay_ms=settings.TECHPOWERUP_BASE_DELAY_MS,
            max_delay_ms=settings.TECHPOWERUP_MAX_DELAY_MS,
            max_retries=settings.TECHPOWERUP_MAX_RETRIES,
            timeout_ms=settings.TECHPOWERUP_TIMEOUT_MS,
        )
        return cls(FetchClient(policy, proxy=proxy if settings.TECHPOWERUP_USE_PROXY else None))

    def gpu_url(self, manufacturer: str, year: int) -> str:
        return f"{self.base_url}/gpu-specs/?mfgr={manufacturer}&released={year}&sort=name"

    def cpu_url(self, manufacturer: str, generation: str, year: int) -> str:
        gen = generation.replace(" ", "+")
        return f"{self.base_url}/cpu-specs/?f=year_{year}~mfgr_{manufacturer}~generation_{manufacturer}+{gen}"

    async def _scrape_partition(self, item_type: str, year: int, partition: str, url: str, parse) -> PartitionResult:
        await self.delay(self.partition_delay_ms)
        result = PartitionResult(item_type=item_type, year=year, partition=partition, url=url)
        try:
            soup = await self.fetch_soup(url)
        except FetchError as e:
            logger.error("Skipping %s %s for %d: %s", item_type, partition, year, e)
            result.error = str(e)
            return result
        result.components = parse(soup, self.base_url)
        logger.debug("Scraped %d %ss for %s in %d", len(result.components), item_type, partition, year)
        return result

    async def scrape_gpus_by_year(self, year: int) -> ScrapeResult:
        logger.info("Scraping GPUs for year %d", year)
        result = ScrapeResult(item_type="GPU", year=year)
        for manufacturer in GPU_MANUFACTURERS:
            result.partitions.append(await self._scrape_partition(
                "GPU", year, manufacturer, self.gpu_url(manufacturer, year), parse_gpu_table,
            ))
        return result

    async def scrape_cpus_by_year(self, year: int) -> ScrapeResult:
        logger.info("Scraping CPUs for year %d", year)
        result = ScrapeResult(item_type="CPU", year=year)
        for manufacturer, generations in CPU_GENERATIONS.items():
            for generation in generations:
                result.partitions.append(await self._scrape_partition(
                    "CPU", year, f"{manufacturer} {generation}",
                    self.cpu_url(manufacturer, generation, year), parse_cpu_table,
                ))
        return result
