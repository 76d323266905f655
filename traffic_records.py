"""Normalized traffic record model shared by every pipeline stage."""
from __future__ import annotations

import math
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional, Tuple

from traffic_errors import InvalidArgument

INCIDENT = "incident"
ACCIDENT = "accident"
EVENT = "event"
USER_REPORT = "user_report"

FEED_CATEGORIES: Tuple[str, ...] = (INCIDENT, ACCIDENT, EVENT)
CATEGORIES: Tuple[str, ...] = FEED_CATEGORIES + (USER_REPORT,)

SEVERITY_HIGH = "high"
SEVERITY_MEDIUM = "medium"
SEVERITY_LOW = "low"

# Source field carrying the sub-type text for each feed category.
TYPE_DESCRIPTION_FIELDS: Dict[str, str] = {
    INCIDENT: "incidentTypeDescription",
    ACCIDENT: "accidentTypeDescription",
    EVENT: "eventTypeDescription",
    USER_REPORT: "type",
}

SEVERITY_FIELDS: Tuple[str, ...] = ("severityTypeRefDescription", "severity")


@dataclass(frozen=True)
class Coordinate:
    """WGS-84 latitude/longitude in degrees."""
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not (math.isfinite(self.latitude) and math.isfinite(self.longitude)):
            raise InvalidArgument(
                f"coordinate must be finite, got ({self.latitude}, {self.longitude})"
            )

    def as_tuple(self) -> Tuple[float, float]:
        return (self.latitude, self.longitude)


def _empty_extra() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True)
class TrafficRecord:
    """One normalized traffic item.

    ``extra`` keeps every source field the pipeline does not interpret so
    it can be handed back to consumers untouched.
    """
    category: str
    coordinate: Optional[Coordinate] = None
    short_description: Optional[str] = None
    title: Optional[str] = None
    type_description: Optional[str] = None
    severity: Optional[str] = None
    extra: Mapping[str, Any] = field(default_factory=_empty_extra)

    def __post_init__(self) -> None:
        if not isinstance(self.category, str) or not self.category.strip():
            raise ValueError("TrafficRecord.category must be a non-empty string")
        if not isinstance(self.extra, MappingProxyType):
            object.__setattr__(self, "extra", MappingProxyType(dict(self.extra)))

    def __hash__(self) -> int:
        return hash(
            (
                self.category,
                self.coordinate,
                self.short_description,
                self.title,
                self.type_description,
                self.severity,
            )
        )

    @property
    def label(self) -> Optional[str]:
        return self.short_description or self.title

    @property
    def has_coordinate(self) -> bool:
        return self.coordinate is not None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        data: Dict[str, Any] = dict(self.extra)
        data.update(
            {
                "category": self.category,
                "latitude": self.coordinate.latitude if self.coordinate else None,
                "longitude": self.coordinate.longitude if self.coordinate else None,
                "shortDescription": self.short_description,
                "title": self.title,
                "typeDescription": self.type_description,
                "severity": self.severity,
            }
        )
        return data


__all__ = [
    "ACCIDENT",
    "CATEGORIES",
    "Coordinate",
    "EVENT",
    "FEED_CATEGORIES",
    "INCIDENT",
    "SEVERITY_FIELDS",
    "SEVERITY_HIGH",
    "SEVERITY_LOW",
    "SEVERITY_MEDIUM",
    "TYPE_DESCRIPTION_FIELDS",
    "TrafficRecord",
    "USER_REPORT",
]
