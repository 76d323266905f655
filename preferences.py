"""Viewer preference toggles and the visibility filter built on them."""
from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from traffic_records import (
    ACCIDENT,
    EVENT,
    INCIDENT,
    SEVERITY_HIGH,
    SEVERITY_MEDIUM,
    USER_REPORT,
    TrafficRecord,
)

PREFERENCE_KEYS: Tuple[str, ...] = (
    "showIncidentHigh",
    "showIncidentMedium",
    "showIncidentLow",
    "showEvent",
    "showAccident",
    "showUserReports",
)

# Points credited to a user for each submitted report.
REPORT_POINTS = 2


@dataclass(frozen=True)
class PreferenceSet:
    show_incident_high: bool = True
    show_incident_medium: bool = True
    show_incident_low: bool = True
    show_event: bool = True
    show_accident: bool = True
    show_user_reports: bool = True

    @classmethod
    def from_mapping(cls, data: Optional[Mapping[str, Any]]) -> "PreferenceSet":
        """Build from the stored camelCase keys.

        Missing keys and values that are not booleans fall back to ``True``.
        """
        data = data or {}

        def flag(key: str) -> bool:
            value = data.get(key)
            return value if isinstance(value, bool) else True

        return cls(*(flag(key) for key in PREFERENCE_KEYS))

    @classmethod
    def all_off(cls) -> "PreferenceSet":
        return cls(*(False for _ in PREFERENCE_KEYS))

    def to_dict(self) -> Dict[str, bool]:
        return {
            "showIncidentHigh": self.show_incident_high,
            "showIncidentMedium": self.show_incident_medium,
            "showIncidentLow": self.show_incident_low,
            "showEvent": self.show_event,
            "showAccident": self.show_accident,
            "showUserReports": self.show_user_reports,
        }


@dataclass(frozen=True)
class UserDocument:
    """Per-user document kept by the document store: toggles plus points."""
    preferences: PreferenceSet = field(default_factory=PreferenceSet)
    points: int = 0

    @classmethod
    def from_document(cls, doc: Optional[Mapping[str, Any]]) -> "UserDocument":
        if not doc:
            return cls()
        raw_points = doc.get("points")
        points = 0
        if isinstance(raw_points, int) and not isinstance(raw_points, bool):
            points = raw_points
        elif isinstance(raw_points, float) and raw_points.is_integer():
            points = int(raw_points)
        return cls(preferences=PreferenceSet.from_mapping(doc), points=points)

    def with_report_points(self) -> "UserDocument":
        return replace(self, points=self.points + REPORT_POINTS)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = dict(self.preferences.to_dict())
        data["points"] = self.points
        return data


def allows(record: TrafficRecord, prefs: PreferenceSet) -> bool:
    """Whether ``prefs`` lets ``record`` through; unknown categories never pass."""
    category = record.category
    if category == INCIDENT:
        severity = (record.severity or "").lower()
        if severity == SEVERITY_HIGH:
            return prefs.show_incident_high
        if severity == SEVERITY_MEDIUM:
            return prefs.show_incident_medium
        return prefs.show_incident_low
    if category == EVENT:
        return prefs.show_event
    if category == ACCIDENT:
        return prefs.show_accident
    if category == USER_REPORT:
        return prefs.show_user_reports
    return False


def filter_records(records: Iterable[TrafficRecord], prefs: PreferenceSet) -> List[TrafficRecord]:
    return [record for record in records if allows(record, prefs)]


def apply_preferences(
    traffic: Iterable[TrafficRecord],
    reports: Iterable[TrafficRecord],
    prefs: PreferenceSet,
) -> Tuple[List[TrafficRecord], List[TrafficRecord]]:
    """Split into ``(visible_traffic, visible_reports)``.

    Reports are shown or hidden as one list; severity rules never apply to
    them.
    """
    visible_traffic = [
        record for record in traffic if record.category != USER_REPORT and allows(record, prefs)
    ]
    visible_reports = list(reports) if prefs.show_user_reports else []
    return visible_traffic, visible_reports


__all__ = [
    "PREFERENCE_KEYS",
    "PreferenceSet",
    "REPORT_POINTS",
    "UserDocument",
    "allows",
    "apply_preferences",
    "filter_records",
]
