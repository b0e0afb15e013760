# partsradar/services/catalog_index.py
import threading
from typing import Dict, Iterable, List, Optional

from partsradar.schemas import ComponentInfo


class CatalogIndex:
    """Known canonical components by lower-cased name. Safe to share between threads."""

    def __init__(self):
        self._lock = threading.RLock()
        self._by_name: Dict[str, ComponentInfo] = {}

    def add(self, component: ComponentInfo):
        with self._lock:
            self._by_name[component.name.lower()] = component

    def add_many(self, components: Iterable[ComponentInfo]) -> int:
        added = 0
        with self._lock:
            for c in components:
                self._by_name[c.name.lower()] = c
                added += 1
        return added

    def get(self, name: str) -> Optional[ComponentInfo]:
        with self._lock:
            return self._by_name.get(name.lower())

    def names(self, item_type: Optional[str] = None) -> List[str]:
        with self._lock:
            return sorted(
                c.name for c in self._by_name.values()
                if item_type is None or c.item_type == item_type
            )

    def __contains__(self, name: str) -> bool:
        with self._lock:
            return name.lower() in self._by_name

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_name)
