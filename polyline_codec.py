"""
Google Encoded Polyline codec.

Each coordinate is stored as a pair of signed deltas (1e-5 degree units)
from the previous point, written as 5-bit little-endian chunks offset by 63.
"""
from __future__ import annotations

from typing import Iterable, List, Tuple, Union

from traffic_errors import DecodeError
from traffic_records import Coordinate

_PRECISION = 1e5
_MIN_CHAR = 63
_MAX_CHAR = 63 + 0x3F


def _decode_value(enc: str, index: int) -> Tuple[int, int]:
    """Decode one varint delta starting at ``index``; returns (delta, next index)."""
    start = index
    result = shift = 0
    while True:
        if index >= len(enc):
            raise DecodeError(start, "truncated chunk")
        code = ord(enc[index])
        if not _MIN_CHAR <= code <= _MAX_CHAR:
            raise DecodeError(index, f"invalid character {enc[index]!r}")
        b = code - 63; index += 1
        result |= (b & 0x1f) << shift; shift += 5
        if b < 0x20: break
    delta = ~(result >> 1) if (result & 1) else (result >> 1)
    return delta, index


def decode_polyline(enc: str) -> List[Coordinate]:
    """Decode ``enc`` into coordinates; raises ``DecodeError`` on malformed input."""
    points: List[Coordinate] = []
    index = lat = lng = 0
    while index < len(enc):
        dlat, index = _decode_value(enc, index)
        if index >= len(enc):
            raise DecodeError(index, "latitude without longitude")
        dlng, index = _decode_value(enc, index)
        lat += dlat
        lng += dlng
        points.append(Coordinate(lat / _PRECISION, lng / _PRECISION))
    return points


def _encode_value(value: int) -> str:
    value = ~(value << 1) if value < 0 else (value << 1)
    chunks = []
    while value >= 0x20:
        chunks.append(chr((0x20 | (value & 0x1f)) + 63))
        value >>= 5
    chunks.append(chr(value + 63))
    return "".join(chunks)


def encode_polyline(points: Iterable[Union[Coordinate, Tuple[float, float]]]) -> str:
    """Encode (lat, lon) points with the standard 1e-5 precision."""
    out: List[str] = []
    prev_lat = prev_lng = 0
    for point in points:
        lat, lng = point.as_tuple() if isinstance(point, Coordinate) else point
        lat_i = int(round(lat * _PRECISION))
        lng_i = int(round(lng * _PRECISION))
        out.append(_encode_value(lat_i - prev_lat))
        out.append(_encode_value(lng_i - prev_lng))
        prev_lat, prev_lng = lat_i, lng_i
    return "".join(out)


__all__ = ["decode_polyline", "encode_polyline"]
