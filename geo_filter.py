"""Radius queries over normalized traffic records."""
from __future__ import annotations

import math
from typing import Callable, Iterable, List, Optional, Tuple, Union

from traffic_errors import InvalidArgument
from traffic_records import Coordinate, TrafficRecord

R_EARTH = 6371000.0
# Radius used by the nearby-traffic list in the mobile client.
DEFAULT_NEARBY_RADIUS_M = 2414.0

PointLike = Union[Coordinate, Tuple[float, float]]
MissingHook = Callable[[TrafficRecord], None]


def to_rad(d: float) -> float: return d * math.pi / 180.0

def haversine(a: Tuple[float, float], b: Tuple[float, float]) -> float:
    lat1, lon1 = a; lat2, lon2 = b
    dlat = to_rad(lat2-lat1); dlon = to_rad(lon2-lon1)
    s = math.sin(dlat/2)**2 + math.cos(to_rad(lat1))*math.cos(to_rad(lat2))*math.sin(dlon/2)**2
    # Rounding can push s a hair past 1 for antipodal points.
    return 2 * R_EARTH * math.asin(math.sqrt(min(1.0, s)))


def _as_coordinate(point: PointLike) -> Coordinate:
    if isinstance(point, Coordinate):
        return point
    try:
        lat, lon = point
        return Coordinate(float(lat), float(lon))
    except (TypeError, ValueError) as exc:
        raise InvalidArgument(f"invalid center coordinate: {point!r}") from exc


def distance_m(center: PointLike, record: TrafficRecord) -> Optional[float]:
    """Great-circle distance from ``center`` to the record, or None without a location."""
    if record.coordinate is None:
        return None
    return haversine(_as_coordinate(center).as_tuple(), record.coordinate.as_tuple())


def nearby(
    records: Iterable[TrafficRecord],
    center: PointLike,
    radius_m: float,
    on_missing: Optional[MissingHook] = None,
) -> List[TrafficRecord]:
    """Return the records within ``radius_m`` metres of ``center``.

    Input order is preserved; use ``sort_by_distance`` for closest-first.
    Records without a coordinate are skipped and handed to ``on_missing``.
    """
    try:
        radius = float(radius_m)
    except (TypeError, ValueError) as exc:
        raise InvalidArgument(f"radius must be a number, got {radius_m!r}") from exc
    if not math.isfinite(radius) or radius < 0:
        raise InvalidArgument(f"radius must be a finite non-negative number, got {radius_m!r}")
    origin = _as_coordinate(center).as_tuple()

    found: List[TrafficRecord] = []
    missing = 0
    for record in records:
        if record.coordinate is None:
            missing += 1
            if on_missing is not None:
                on_missing(record)
            continue
        if haversine(origin, record.coordinate.as_tuple()) <= radius:
            found.append(record)
    if missing:
        print(f"[geo_filter] skipped {missing} records without coordinates")
    return found


def sort_by_distance(records: Iterable[TrafficRecord], center: PointLike) -> List[TrafficRecord]:
    """Order records closest-first; records without a location go last."""
    origin = _as_coordinate(center)

    def key(record: TrafficRecord) -> Tuple[int, float]:
        d = distance_m(origin, record)
        return (1, 0.0) if d is None else (0, d)

    return sorted(records, key=key)


__all__ = [
    "DEFAULT_NEARBY_RADIUS_M",
    "R_EARTH",
    "distance_m",
    "haversine",
    "nearby",
    "sort_by_distance",
]
