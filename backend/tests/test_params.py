"""
TrailMemo Backend — Parameter Parsing Unit Tests
==================================================

Paging parameters fall back to defaults; ids, coordinates and dates are strict.
"""

import uuid
from datetime import datetime, timezone

import pytest

from trailmemo.exceptions import ValidationError
from trailmemo.routes.params import (
    parse_date_param,
    parse_float_param,
    parse_int_param,
    parse_memo_id,
    parse_page,
    validate_coordinates,
)


class TestPaging:

    @pytest.mark.parametrize(
        "raw, expected",
        [(None, 100), ("50", 50), (" 7 ", 7), ("abc", 100), ("0", 100), ("501", 100), ("500", 500)],
    )
    def test_parse_int_param(self, raw, expected):
        assert parse_int_param(raw, 100, 1, 500) == expected

    @pytest.mark.parametrize("raw, expected", [(None, 1), ("3", 3), ("0", 1), ("-4", 1), ("x", 1)])
    def test_parse_page(self, raw, expected):
        assert parse_page(raw) == expected


class TestStrictParams:

    def test_memo_id(self):
        memo_id = uuid.uuid4()
        assert parse_memo_id(str(memo_id)) == memo_id

    def test_bad_memo_id(self):
        with pytest.raises(ValidationError, match="Invalid memo ID"):
            parse_memo_id("12345")

    def test_float_required(self):
        with pytest.raises(ValidationError, match="latitude is required"):
            parse_float_param(None, "latitude")

    @pytest.mark.parametrize("raw", ["north", "nan", "inf"])
    def test_float_invalid(self, raw):
        with pytest.raises(ValidationError, match="Invalid longitude"):
            parse_float_param(raw, "longitude")

    def test_coordinates_both_or_neither(self):
        assert validate_coordinates(None, None) == (None, None)
        assert validate_coordinates(10.0, 20.0) == (10.0, 20.0)
        with pytest.raises(ValidationError):
            validate_coordinates(10.0, None)
        with pytest.raises(ValidationError):
            validate_coordinates(None, 20.0)

    @pytest.mark.parametrize("lat, lon", [(90.1, 0), (-91, 0), (0, 180.5), (0, -181)])
    def test_coordinates_range(self, lat, lon):
        with pytest.raises(ValidationError):
            validate_coordinates(lat, lon)


class TestDates:

    def test_date_only_start(self):
        assert parse_date_param("2024-06-01", "start_date") == datetime(
            2024, 6, 1, tzinfo=timezone.utc
        )

    def test_date_only_end_covers_whole_day(self):
        end = parse_date_param("2024-06-01", "end_date", end_of_day=True)
        assert end == datetime(2024, 6, 1, 23, 59, 59, 999999, tzinfo=timezone.utc)

    def test_zulu_timestamp(self):
        assert parse_date_param("2024-06-01T10:30:00Z", "start_date") == datetime(
            2024, 6, 1, 10, 30, tzinfo=timezone.utc
        )

    def test_offset_converted_to_utc(self):
        assert parse_date_param("2024-06-01T10:30:00-07:00", "start_date") == datetime(
            2024, 6, 1, 17, 30, tzinfo=timezone.utc
        )

    def test_blank_is_none(self):
        assert parse_date_param("", "start_date") is None
        assert parse_date_param(None, "start_date") is None

    def test_invalid(self):
        with pytest.raises(ValidationError, match="Invalid end_date"):
            parse_date_param("06/01/2024", "end_date")
