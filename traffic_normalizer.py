"""Parse raw feed payloads and report documents into ``TrafficRecord`` lists."""
from __future__ import annotations

import json
import math
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from traffic_errors import ParseError, RecordSkipped
from traffic_records import (
    SEVERITY_FIELDS,
    TYPE_DESCRIPTION_FIELDS,
    INCIDENT,
    USER_REPORT,
    Coordinate,
    TrafficRecord,
)

SkipHook = Callable[[RecordSkipped], None]
RawPayload = Union[str, bytes, bytearray, Sequence[Any]]

# Fields lifted into typed attributes; everything else lands in ``extra``.
_FEED_KNOWN_FIELDS = frozenset(
    {"point", "latitude", "longitude", "shortDescription", *SEVERITY_FIELDS}
)
_REPORT_KNOWN_FIELDS = frozenset({"latitude", "longitude", "title", "type"})


def _coerce_float(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
        if not value:
            return None
    try:
        result = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if math.isnan(result) or math.isinf(result):
        return None
    return result


def _clean_text(value: Any) -> Optional[str]:
    if value is None:
        return None
    if not isinstance(value, str):
        value = str(value)
    value = value.strip()
    return value or None


def _coordinate_from(source: Mapping[str, Any]) -> Optional[Coordinate]:
    lat = _coerce_float(source.get("latitude"))
    lon = _coerce_float(source.get("longitude"))
    if lat is None or lon is None:
        return None
    return Coordinate(lat, lon)


def resolve_coordinate(
    item: Mapping[str, Any], origin_is_missing: bool = True
) -> Optional[Coordinate]:
    """Resolve a coordinate from a nested ``point`` or flat lat/lon fields.

    The nested layout wins when it resolves; the flat layout is the
    fallback. ``(0, 0)`` is the feeds' placeholder for "no location".
    """
    coordinate: Optional[Coordinate] = None
    point = item.get("point")
    if isinstance(point, Mapping):
        coordinate = _coordinate_from(point)
    if coordinate is None:
        coordinate = _coordinate_from(item)
    if coordinate is None:
        return None
    if origin_is_missing and coordinate.latitude == 0.0 and coordinate.longitude == 0.0:
        return None
    return coordinate


def _load_payload(category: str, raw_payload: RawPayload) -> List[Any]:
    if isinstance(raw_payload, (bytes, bytearray)):
        try:
            raw_payload = raw_payload.decode("utf-8")
        except UnicodeDecodeError as exc:
            raise ParseError(category, f"payload is not UTF-8: {exc}") from exc
    if isinstance(raw_payload, str):
        try:
            data = json.loads(raw_payload)
        except (ValueError, RecursionError) as exc:
            raise ParseError(category, f"payload is not valid JSON: {exc}") from exc
    else:
        data = raw_payload
    if not isinstance(data, (list, tuple)):
        raise ParseError(category, f"expected a JSON array, got {type(data).__name__}")
    return data


def _report_skip(skip: RecordSkipped, on_skip: Optional[SkipHook]) -> None:
    print(f"[normalizer] skipped {skip}")
    if on_skip is not None:
        on_skip(skip)


def _extra_fields(item: Mapping[str, Any], known: Iterable[str]) -> Dict[str, Any]:
    known_set = set(known)
    return {str(k): v for k, v in item.items() if k not in known_set}


def _feed_record(
    category: str, item: Mapping[str, Any], origin_is_missing: bool
) -> TrafficRecord:
    type_field = TYPE_DESCRIPTION_FIELDS.get(category)
    severity: Optional[str] = None
    for name in SEVERITY_FIELDS:
        severity = _clean_text(item.get(name))
        if severity:
            severity = severity.lower()
            break
    known = set(_FEED_KNOWN_FIELDS)
    if type_field:
        known.add(type_field)
    return TrafficRecord(
        category=category,
        coordinate=resolve_coordinate(item, origin_is_missing),
        short_description=_clean_text(item.get("shortDescription")),
        type_description=_clean_text(item.get(type_field)) if type_field else None,
        # Severity only drives filtering for incidents.
        severity=severity if category == INCIDENT else None,
        extra=_extra_fields(item, known),
    )


def normalize(
    category: str,
    raw_payload: RawPayload,
    on_skip: Optional[SkipHook] = None,
    origin_is_missing: bool = True,
) -> List[TrafficRecord]:
    """Parse one category payload into records stamped with ``category``.

    Raises ``ParseError`` when the payload is not a list; malformed
    elements are reported through ``on_skip`` and omitted.
    """
    items = _load_payload(category, raw_payload)
    records: List[TrafficRecord] = []
    for index, item in enumerate(items):
        if not isinstance(item, Mapping):
            _report_skip(
                RecordSkipped(category, index, f"expected an object, got {type(item).__name__}"),
                on_skip,
            )
            continue
        point = item.get("point")
        if point is not None and not isinstance(point, Mapping):
            _report_skip(
                RecordSkipped(category, index, f"'point' is {type(point).__name__}, not an object"),
                on_skip,
            )
            continue
        records.append(_feed_record(category, item, origin_is_missing))
    print(f"[normalizer] parsed {category}: {len(records)} of {len(items)} items")
    return records


def report_record(document: Mapping[str, Any], origin_is_missing: bool = True) -> TrafficRecord:
    """Build a ``user_report`` record from one report document."""
    return TrafficRecord(
        category=USER_REPORT,
        coordinate=resolve_coordinate(document, origin_is_missing),
        title=_clean_text(document.get("title")),
        type_description=_clean_text(document.get("type")),
        extra=_extra_fields(document, _REPORT_KNOWN_FIELDS),
    )


def normalize_reports(
    documents: RawPayload,
    on_skip: Optional[SkipHook] = None,
    origin_is_missing: bool = True,
) -> List[TrafficRecord]:
    """Turn user-submitted report documents into ``user_report`` records."""
    items = _load_payload(USER_REPORT, documents)
    records: List[TrafficRecord] = []
    for index, document in enumerate(items):
        if not isinstance(document, Mapping):
            _report_skip(
                RecordSkipped(USER_REPORT, index, f"expected an object, got {type(document).__name__}"),
                on_skip,
            )
            continue
        records.append(report_record(document, origin_is_missing))
    print(f"[normalizer] parsed {USER_REPORT}: {len(records)} of {len(items)} items")
    return records


__all__ = [
    "normalize",
    "normalize_reports",
    "report_record",
    "resolve_coordinate",
]
