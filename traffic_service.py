"""Query facade: refresh the aggregate and answer nearby/preference queries."""
from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence, Tuple, Union

import geo_filter
import polyline_codec
import preferences
import traffic_normalizer
from traffic_errors import ParseError, RecordSkipped, TrafficDataError, TransportError
from traffic_records import FEED_CATEGORIES, USER_REPORT, Coordinate, TrafficRecord
from traffic_store import TrafficSnapshot, TrafficStore
from travel_data_client import TravelDataClient

ReportSource = Callable[[], Awaitable[Sequence[Mapping[str, Any]]]]


@dataclass
class RefreshResult:
    """Outcome of one refresh cycle."""
    snapshot: TrafficSnapshot
    errors: Dict[str, TrafficDataError] = field(default_factory=dict)
    skipped: List[RecordSkipped] = field(default_factory=list)
    refreshed: Tuple[str, ...] = ()
    finished_at: float = 0.0

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "ok": self.ok,
            "version": self.snapshot.version,
            "refreshed": list(self.refreshed),
            "counts": self.snapshot.counts(),
            "errors": {category: str(exc) for category, exc in self.errors.items()},
            "skipped": len(self.skipped),
            "finished_at": self.finished_at,
        }


class TrafficService:
    """Owns the aggregate and exposes the consumer-facing operations.

    ``refresh`` fans out one fetch per feed category plus the optional
    report source, then applies every category that succeeded in a single
    store swap. A failed category keeps its previous records.
    """

    def __init__(
        self,
        client: Optional[TravelDataClient],
        report_source: Optional[ReportSource] = None,
        store: Optional[TrafficStore] = None,
        min_interval_s: float = 0.0,
    ) -> None:
        self._client = client
        self._report_source = report_source
        self.store = store or TrafficStore()
        self.min_interval_s = min_interval_s
        self.last_result: Optional[RefreshResult] = None
        self._lock = asyncio.Lock()
        self._inflight: Optional[asyncio.Task] = None
        self.on_skip: Optional[Callable[[RecordSkipped], None]] = None

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()

    # ---------------------------
    # Refresh
    # ---------------------------
    async def refresh(self, force: bool = False) -> RefreshResult:
        async with self._lock:
            last = self.last_result
            if (
                not force
                and last is not None
                and self.min_interval_s > 0
                and time.time() - last.finished_at < self.min_interval_s
            ):
                return last
            # Singleflight: concurrent callers share one refresh run
            if self._inflight is not None:
                inflight_task = self._inflight
            else:
                inflight_task = asyncio.create_task(self._run_refresh())
                inflight_task.add_done_callback(self._clear_inflight)
                self._inflight = inflight_task

        # A cancelled caller must not cancel the run other callers share.
        return await asyncio.shield(inflight_task)

    def _clear_inflight(self, task: asyncio.Task) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _fetch_category(self, category: str, skipped: List[RecordSkipped]) -> List[TrafficRecord]:
        if self._client is None:
            raise TransportError(category, cause=RuntimeError("travel data client not configured"))
        raw = await self._client.fetch(category)
        return traffic_normalizer.normalize(category, raw, on_skip=self._skip_collector(skipped))

    async def _fetch_reports(self, skipped: List[RecordSkipped]) -> List[TrafficRecord]:
        assert self._report_source is not None
        try:
            documents = await self._report_source()
        except TrafficDataError:
            raise
        except Exception as exc:
            raise TransportError(USER_REPORT, cause=exc) from exc
        return traffic_normalizer.normalize_reports(documents, on_skip=self._skip_collector(skipped))

    def _skip_collector(self, skipped: List[RecordSkipped]) -> Callable[[RecordSkipped], None]:
        def collect(skip: RecordSkipped) -> None:
            skipped.append(skip)
            if self.on_skip is not None:
                self.on_skip(skip)
        return collect

    async def _run_refresh(self) -> RefreshResult:
        start = time.perf_counter()
        skipped: List[RecordSkipped] = []
        categories: List[str] = list(FEED_CATEGORIES)
        jobs = [self._fetch_category(category, skipped) for category in FEED_CATEGORIES]
        if self._report_source is not None:
            categories.append(USER_REPORT)
            jobs.append(self._fetch_reports(skipped))

        outcomes = await asyncio.gather(*jobs, return_exceptions=True)

        updates: Dict[str, List[TrafficRecord]] = {}
        errors: Dict[str, TrafficDataError] = {}
        for category, outcome in zip(categories, outcomes):
            if isinstance(outcome, TrafficDataError):
                print(f"[refresh] error fetching data for {category}: {outcome}")
                errors[category] = outcome
            elif isinstance(outcome, Exception):
                print(f"[refresh] unexpected error normalizing {category}: {outcome!r}")
                errors[category] = ParseError(category, repr(outcome))
            elif isinstance(outcome, BaseException):
                raise outcome
            else:
                updates[category] = outcome

        snapshot = self.store.update(updates) if updates else self.store.snapshot()
        result = RefreshResult(
            snapshot=snapshot,
            errors=errors,
            skipped=skipped,
            refreshed=tuple(updates),
            finished_at=time.time(),
        )
        self.last_result = result
        duration = time.perf_counter() - start
        print(
            f"[refresh] completed in {duration:.2f}s: "
            f"{len(updates)} categories updated, {len(errors)} failed"
        )
        return result

    # ---------------------------
    # Queries
    # ---------------------------
    def snapshot(self) -> TrafficSnapshot:
        return self.store.snapshot()

    def nearby(
        self,
        lat: float,
        lng: float,
        radius_m: float = geo_filter.DEFAULT_NEARBY_RADIUS_M,
        closest_first: bool = False,
    ) -> List[TrafficRecord]:
        center = (lat, lng)
        found = geo_filter.nearby(self.store.all(), center, radius_m)
        if closest_first:
            found = geo_filter.sort_by_distance(found, center)
        return found

    def apply_preferences(
        self, prefs: Union[preferences.PreferenceSet, Mapping[str, Any], None]
    ) -> Tuple[List[TrafficRecord], List[TrafficRecord]]:
        if not isinstance(prefs, preferences.PreferenceSet):
            prefs = preferences.PreferenceSet.from_mapping(prefs)
        snapshot = self.store.snapshot()
        return preferences.apply_preferences(snapshot.traffic(), snapshot.reports(), prefs)

    def add_user_report(self, document: Mapping[str, Any]) -> TrafficRecord:
        record = traffic_normalizer.report_record(document)
        self.store.add_record(record)
        print(f"[reports] added user report {record.title!r}")
        return record

    @staticmethod
    def decode_polyline(encoded: str) -> List[Coordinate]:
        return polyline_codec.decode_polyline(encoded)


__all__ = ["RefreshResult", "ReportSource", "TrafficService"]
