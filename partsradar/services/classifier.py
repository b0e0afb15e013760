# partsradar/services/classifier.py
"""Maps free-text listing titles onto canonical (item type, model name) pairs.

Only GPU, CPU and RAM listings are classified, each by its own regex family.
The catalog index is kept for name lookups; matching is still purely
pattern based and does not consult it.
"""
import logging
import re
from dataclasses import dataclass
from typing import Optional

from partsradar.config import PartType
from partsradar.services.catalog_index import CatalogIndex
from partsradar.services.ingest import ListingGateway

logger = logging.getLogger(__name__)

GPU_RE = re.compile(r"\b(RTX|GTX|RX)\s*(\d{3,4})(?!\d)(?:\s*(Ti|Super|XTX|XT)\b)?", re.I)
CPU_RE = re.compile(r"\b(i[3579]|Ryzen\s*[3579])[\s-]*([A-Z]*\d{4,5}[A-Z0-9]*)\b", re.I)
RAM_RE = re.compile(r"(DDR[345])\s*(\d+)\s*GB|(\d+)\s*GB\s*(DDR[345])", re.I)

GPU_VARIANTS = {"ti": "Ti", "super": "SUPER", "xt": "XT", "xtx": "XTX"}


@dataclass(frozen=True)
class ComponentMatch:
    item_type: str
    model_name: str
    category: str
    confidence: float


def match_gpu(title: str) -> Optional[ComponentMatch]:
    m = GPU_RE.search(title)
    if not m:
        return None
    model = f"{m.group(1).upper()} {m.group(2)}"
    if m.group(3):
        model += " " + GPU_VARIANTS[m.group(3).lower()]
    return ComponentMatch("GPU", model, "graphics_card", 0.8)


def match_cpu(title: str) -> Optional[ComponentMatch]:
    m = CPU_RE.search(title)
    if not m:
        return None
    series = m.group(1)
    if series.lower().startswith("ryzen"):
        series = "Ryzen " + series[-1]
    else:
        series = series.lower()
    return ComponentMatch("CPU", f"{series} {m.group(2).upper()}", "processor", 0.8)


def match_ram(title: str) -> Optional[ComponentMatch]:
    m = RAM_RE.search(title)
    if not m:
        return None
    ddr = (m.group(1) or m.group(4)).upper()
    capacity = m.group(2) or m.group(3)
    # memory naming is regular enough to trust more
    return ComponentMatch("RAM", f"{ddr} {capacity}GB", "memory", 0.9)


MATCHERS = {
    PartType.GPU.value: match_gpu,
    PartType.CPU.value: match_cpu,
    PartType.RAM.value: match_ram,
}


class ComponentClassifier:
    def __init__(self, catalog: CatalogIndex, gateway: Optional[ListingGateway] = None):
        self.catalog = catalog
        self.gateway = gateway or ListingGateway()

    def classify(self, title: Optional[str], part_type: str, item_type: Optional[str] = None) -> Optional[ComponentMatch]:
        if item_type is not None:
            return None  # already classified
        if not title or not title.strip():
            return None
        matcher = MATCHERS.get(part_type)
        return matcher(title) if matcher else None

    async def classify_pending(self, batch_size: int = 50) -> int:
        """Classify unclassified listings batch by batch; returns how many got a match."""
        classified = 0
        seen = 0
        last_id = 0
        while True:
            batch = await self.gateway.find_unclassified(after_id=last_id, limit=batch_size)
            if not batch:
                break
            last_id = batch[-1].id
            seen += len(batch)
            matches = {}
            for listing in batch:
                m = self.classify(listing.title, listing.part_type, listing.item_type)
                if m:
                    matches[listing.id] = m
            classified += await self.gateway.save_classifications(matches)
            if seen % 500 < batch_size:
                logger.info("Classified %d of %d listings so far", classified, seen)
        logger.info("Classification finished: %d of %d listings matched", classified, seen)
        return classified
