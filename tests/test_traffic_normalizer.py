import json
import sys
from pathlib import Path

import pytest

ROOT_DIR = Path(__file__).resolve().parents[1]
if str(ROOT_DIR) not in sys.path:
    sys.path.insert(0, str(ROOT_DIR))

from traffic_errors import ParseError, RecordSkipped  # noqa: E402
from traffic_normalizer import normalize, normalize_reports, resolve_coordinate  # noqa: E402
from traffic_records import Coordinate, TrafficRecord  # noqa: E402


def _incident(**overrides):
    item = {
        "type": "incident",
        "shortDescription": "Broken down vehicle",
        "incidentTypeDescription": "Breakdown",
        "severityTypeRefDescription": "High",
        "point": {"latitude": 54.97, "longitude": -1.61},
        "locationDescription": "A1 northbound",
    }
    item.update(overrides)
    return item


class TestResolveCoordinate:
    def test_nested_point_wins_over_flat_fields(self):
        item = {"point": {"latitude": 1.5, "longitude": 2.5}, "latitude": 9, "longitude": 9}
        assert resolve_coordinate(item) == Coordinate(1.5, 2.5)

    def test_flat_fields_used_when_point_absent(self):
        assert resolve_coordinate({"latitude": 54.9, "longitude": -1.6}) == Coordinate(54.9, -1.6)

    def test_flat_fields_used_when_point_unresolvable(self):
        item = {"point": {"latitude": "n/a"}, "latitude": 54.9, "longitude": -1.6}
        assert resolve_coordinate(item) == Coordinate(54.9, -1.6)

    def test_numeric_strings_are_accepted(self):
        assert resolve_coordinate({"latitude": " 54.9 ", "longitude": "-1.6"}) == Coordinate(54.9, -1.6)

    def test_non_numeric_values_leave_coordinate_missing(self):
        assert resolve_coordinate({"latitude": "north", "longitude": -1.6}) is None
        assert resolve_coordinate({"latitude": True, "longitude": -1.6}) is None
        assert resolve_coordinate({"latitude": "nan", "longitude": -1.6}) is None

    def test_value_too_large_for_a_float_leaves_coordinate_missing(self):
        huge = 10 ** 400
        assert resolve_coordinate({"latitude": huge, "longitude": 1.0}) is None
        records = normalize("event", [{"shortDescription": "x", "latitude": huge, "longitude": 1.0}])
        assert len(records) == 1
        assert records[0].coordinate is None

    def test_origin_is_treated_as_missing(self):
        assert resolve_coordinate({"latitude": 0, "longitude": 0.0}) is None
        assert resolve_coordinate({"latitude": 0, "longitude": 0}, origin_is_missing=False) == Coordinate(0.0, 0.0)

    def test_only_one_axis_at_zero_is_kept(self):
        assert resolve_coordinate({"latitude": 0, "longitude": 12.5}) == Coordinate(0.0, 12.5)


class TestNormalize:
    def test_maps_known_fields_and_keeps_the_rest(self):
        records = normalize("incident", json.dumps([_incident()]))

        assert len(records) == 1
        record = records[0]
        assert record.category == "incident"
        assert record.coordinate == Coordinate(54.97, -1.61)
        assert record.short_description == "Broken down vehicle"
        assert record.type_description == "Breakdown"
        assert record.severity == "high"
        assert record.extra["locationDescription"] == "A1 northbound"
        assert record.extra["type"] == "incident"
        assert "point" not in record.extra

    def test_category_comes_from_the_feed_not_the_payload(self):
        records = normalize("accident", [_incident(type="incident", accidentTypeDescription="Collision")])
        assert records[0].category == "accident"
        assert records[0].type_description == "Collision"

    def test_severity_is_dropped_outside_incidents(self):
        records = normalize("event", [_incident(eventTypeDescription="Concert")])
        assert records[0].severity is None
        assert records[0].type_description == "Concert"

    def test_record_without_coordinate_is_kept(self):
        records = normalize("incident", [_incident(point={"latitude": 0, "longitude": 0})])
        assert len(records) == 1
        assert records[0].coordinate is None

    def test_accepts_bytes_payload(self):
        records = normalize("incident", json.dumps([_incident()]).encode("utf-8"))
        assert len(records) == 1

    @pytest.mark.parametrize("payload", ["not json", '{"items": []}', "42", "null"])
    def test_payload_that_is_not_a_list_raises_parse_error(self, payload):
        with pytest.raises(ParseError) as excinfo:
            normalize("event", payload)
        assert excinfo.value.category == "event"

    def test_deeply_nested_payload_raises_parse_error(self):
        with pytest.raises(ParseError):
            normalize("incident", "[" * 100000 + "]" * 100000)

    @pytest.mark.skipif(
        not hasattr(sys, "get_int_max_str_digits"), reason="no integer string length limit"
    )
    def test_integer_literal_over_digit_limit_raises_parse_error(self):
        payload = '[{"latitude": ' + "1" * 5000 + ', "longitude": 1.0}]'
        with pytest.raises(ParseError):
            normalize("incident", payload)

    def test_malformed_elements_are_skipped_with_diagnostic(self):
        skipped = []
        payload = [_incident(), "garbage", None, _incident(point="54.9,-1.6"), _incident()]

        records = normalize("incident", payload, on_skip=skipped.append)

        assert len(records) == 2
        assert [s.index for s in skipped] == [1, 2, 3]
        assert all(isinstance(s, RecordSkipped) for s in skipped)
        assert all(s.category == "incident" for s in skipped)

    def test_never_produces_more_records_than_inputs(self):
        payload = [_incident(), 1, [], {}, _incident(point=None)]
        records = normalize("incident", payload)
        assert len(records) <= len(payload)
        assert len(records) == 3


class TestNormalizeReports:
    def test_report_documents_become_user_reports(self):
        documents = [
            {
                "type": "Accident",
                "title": "Two cars",
                "snippet": "Blocking left lane",
                "latitude": 54.98,
                "longitude": "-1.62",
                "timestamp": 1718000000000,
                "userId": "u-1",
            }
        ]

        records = normalize_reports(documents)

        assert len(records) == 1
        record = records[0]
        assert record.category == "user_report"
        assert record.title == "Two cars"
        assert record.label == "Two cars"
        assert record.type_description == "Accident"
        assert record.severity is None
        assert record.coordinate == Coordinate(54.98, -1.62)
        assert record.extra == {"snippet": "Blocking left lane", "timestamp": 1718000000000, "userId": "u-1"}

    def test_non_mapping_documents_are_skipped(self):
        skipped = []
        records = normalize_reports([{"title": "ok"}, "bad"], on_skip=skipped.append)
        assert len(records) == 1
        assert skipped[0].category == "user_report"


class TestTrafficRecord:
    def test_empty_category_is_rejected(self):
        with pytest.raises(ValueError):
            TrafficRecord(category="")

    def test_to_dict_overlays_normalized_fields(self):
        record = normalize("incident", [_incident()])[0]
        data = record.to_dict()
        assert data["category"] == "incident"
        assert data["latitude"] == 54.97
        assert data["longitude"] == -1.61
        assert data["typeDescription"] == "Breakdown"
        assert data["locationDescription"] == "A1 northbound"

    def test_extra_is_read_only(self):
        record = normalize("incident", [_incident()])[0]
        with pytest.raises(TypeError):
            record.extra["locationDescription"] = "changed"
