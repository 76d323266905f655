"""In-memory aggregate of normalized traffic records.

Every write builds a new immutable ``TrafficSnapshot`` and swaps the
store's reference to it, so readers holding a snapshot always see a
complete state even while a refresh is applying new categories.
"""
from __future__ import annotations

import threading
import time
from dataclasses import dataclass, field, replace
from typing import Dict, Iterable, List, Mapping, Tuple

from traffic_errors import InvalidArgument
from traffic_records import CATEGORIES, TrafficRecord


@dataclass(frozen=True)
class TrafficSnapshot:
    incident: Tuple[TrafficRecord, ...] = ()
    accident: Tuple[TrafficRecord, ...] = ()
    event: Tuple[TrafficRecord, ...] = ()
    user_report: Tuple[TrafficRecord, ...] = ()
    version: int = 0
    updated_at: float = field(default=0.0, compare=False)

    def by_category(self, category: str) -> Tuple[TrafficRecord, ...]:
        if category not in CATEGORIES:
            raise InvalidArgument(f"unknown category: {category!r}")
        return getattr(self, category)

    def all(self) -> List[TrafficRecord]:
        return [*self.incident, *self.accident, *self.event, *self.user_report]

    def traffic(self) -> List[TrafficRecord]:
        """Feed records only (incidents, accidents and events)."""
        return [*self.incident, *self.accident, *self.event]

    def reports(self) -> List[TrafficRecord]:
        return list(self.user_report)

    def counts(self) -> Dict[str, int]:
        return {category: len(getattr(self, category)) for category in CATEGORIES}


class TrafficStore:
    """Holds the current snapshot; one writer, any number of readers."""

    def __init__(self) -> None:
        self._snapshot = TrafficSnapshot()
        self._write_lock = threading.Lock()

    def snapshot(self) -> TrafficSnapshot:
        return self._snapshot

    def all(self) -> List[TrafficRecord]:
        return self._snapshot.all()

    def set_category(self, category: str, records: Iterable[TrafficRecord]) -> TrafficSnapshot:
        """Replace one category's records."""
        return self.update({category: records})

    def update(self, updates: Mapping[str, Iterable[TrafficRecord]]) -> TrafficSnapshot:
        """Replace several categories in a single swap."""
        frozen: Dict[str, Tuple[TrafficRecord, ...]] = {}
        for category, records in updates.items():
            if category not in CATEGORIES:
                raise InvalidArgument(f"unknown category: {category!r}")
            frozen[category] = tuple(records)
        with self._write_lock:
            current = self._snapshot
            new = replace(
                current,
                version=current.version + 1,
                updated_at=time.time(),
                **frozen,
            )
            self._snapshot = new
        for category, records in frozen.items():
            print(f"[traffic_store] set {category} data: {len(records)} items (v{new.version})")
        return new

    def add_record(self, record: TrafficRecord) -> TrafficSnapshot:
        """Append one record to its category slot (copy-on-write)."""
        if record.category not in CATEGORIES:
            raise InvalidArgument(f"unknown category: {record.category!r}")
        with self._write_lock:
            current = self._snapshot
            new = replace(
                current,
                version=current.version + 1,
                updated_at=time.time(),
                **{record.category: current.by_category(record.category) + (record,)},
            )
            self._snapshot = new
        return new


__all__ = ["TrafficSnapshot", "TrafficStore"]
