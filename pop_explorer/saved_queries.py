"""
Saved queries: up to MAX_SAVED_QUERIES regions kept for side-by-side
comparison.

Each entry owns a private clone of its geometry. Entries are only created by
an explicit save and only destroyed by an explicit remove; when full, the
user has to free a slot themselves.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Callable, Iterator, List, Optional

from pop_explorer import config
from pop_explorer.errors import CapacityExceeded
from pop_explorer.geometry import Geometry

log = logging.getLogger(__name__)

METHOD_BUFFER = "buffer"
METHOD_POLYGON = "polygon"


def method_description(method: str, radius_km: Optional[float] = None) -> str:
    if method == METHOD_BUFFER:
        return f"Buffer · {float(radius_km or 0):.1f} km"
    return "Drawn polygon"


@dataclass
class SavedQuery:
    id: str
    label: str
    color: str
    method: str
    geometry: Geometry
    population: float
    radius_km: Optional[float] = None
    graphic: object = None
    checked_out: bool = False

    @property
    def method_description(self) -> str:
        return method_description(self.method, self.radius_km)

    def row(self) -> dict:
        return {
            "id": self.id,
            "label": self.label,
            "color": self.color,
            "population": int(round(self.population or 0)),
            "method_description": self.method_description,
            "checked_out": self.checked_out,
        }


@dataclass
class SavedQuerySet:
    capacity: int = config.MAX_SAVED_QUERIES
    palette: List[str] = field(default_factory=lambda: list(config.SAVED_PALETTE))

    def __post_init__(self):
        self._entries: List[SavedQuery] = []
        self._inserted = 0
        self._listeners: List[Callable[["SavedQuerySet"], None]] = []

    # ---- collection protocol ----
    def __len__(self):
        return len(self._entries)

    def __iter__(self) -> Iterator[SavedQuery]:
        return iter(list(self._entries))

    def __contains__(self, query_id):
        return self.get(query_id) is not None

    @property
    def is_full(self) -> bool:
        return len(self._entries) >= self.capacity

    def get(self, query_id: str) -> Optional[SavedQuery]:
        for q in self._entries:
            if q.id == query_id:
                return q
        return None

    def render_set(self) -> List[SavedQuery]:
        """Entries drawn on the saved-query layer (checked-out ones are drawn by the session)."""
        return [q for q in self._entries if not q.checked_out]

    def rows(self) -> List[dict]:
        return [q.row() for q in self._entries]

    # ---- listeners ----
    def subscribe(self, callback: Callable[["SavedQuerySet"], None]) -> None:
        self._listeners.append(callback)

    def _changed(self):
        for cb in list(self._listeners):
            cb(self)

    # ---- mutations ----
    def save(self, geometry: Geometry, method: str, population: float,
             radius_km: Optional[float] = None, label: Optional[str] = None) -> SavedQuery:
        if self.is_full:
            raise CapacityExceeded(self.capacity)

        self._inserted += 1
        n = self._inserted
        entry = SavedQuery(
            id=f"q{n}",
            label=(label or "").strip() or f"Query {n}",
            color=self.palette[(n - 1) % len(self.palette)],
            method=method,
            geometry=geometry.clone(),
            population=float(population or 0),
            radius_km=float(radius_km) if (method == METHOD_BUFFER and radius_km is not None) else None,
        )
        self._entries.append(entry)
        log.info("Saved %s (%s, %s)", entry.label, entry.method_description, entry.color)
        self._changed()
        return entry

    def remove(self, query_id: str) -> Optional[SavedQuery]:
        entry = self.get(query_id)
        if entry is None:
            return None
        self._entries.remove(entry)
        log.info("Removed %s", entry.label)
        self._changed()
        return entry

    def relabel(self, query_id: str, label: str) -> bool:
        label = (label or "").strip()
        entry = self.get(query_id)
        if not label or entry is None:
            return False
        if entry.label != label:
            entry.label = label
            self._changed()
        return True

    def check_out(self, query_id: str) -> Optional[Geometry]:
        entry = self.get(query_id)
        if entry is None:
            return None
        entry.checked_out = True
        self._changed()
        return entry.geometry.clone()

    def check_in(self, query_id: str, geometry: Geometry, population: Optional[float] = None) -> bool:
        entry = self.get(query_id)
        if entry is None:
            return False
        entry.geometry = geometry.clone()
        if population is not None:
            entry.population = float(population)
        entry.checked_out = False
        self._changed()
        return True

    def update_population(self, query_id: str, population: float) -> bool:
        entry = self.get(query_id)
        if entry is None:
            return False
        entry.population = float(population or 0)
        self._changed()
        return True
