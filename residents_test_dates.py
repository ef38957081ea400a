"""
Tests for residents_dates: the parsing rules applied at every input boundary.
"""
import datetime

import pytest

from residents_dates import end_of_day, format_datetime, parse_date, parse_datetime, start_of_day
from residents_errors import MalformedInput


def test_date_only_is_midnight_utc() -> None:
    assert parse_datetime("2024-03-01") == datetime.datetime(2024, 3, 1)


def test_timestamp_without_zone_is_utc() -> None:
    assert parse_datetime("2024-03-01T10:15:00") == datetime.datetime(2024, 3, 1, 10, 15)


def test_explicit_offsets_are_converted_to_utc() -> None:
    assert parse_datetime("2024-03-01T10:15:00+02:00") == datetime.datetime(2024, 3, 1, 8, 15)
    assert parse_datetime("2024-03-01T10:15:00-01:00") == datetime.datetime(2024, 3, 1, 11, 15)
    assert parse_datetime("2024-03-01T10:15:00Z") == datetime.datetime(2024, 3, 1, 10, 15)


def test_sub_millisecond_precision_is_dropped() -> None:
    parsed = parse_datetime("2024-03-01T10:15:00.123456Z")
    assert parsed.microsecond == 123000
    assert parsed.tzinfo is None


@pytest.mark.parametrize("text", ["", "yesterday", "2024-13-01", "2024-03-01Tnoon"])
def test_garbage_raises_malformed_input(text) -> None:
    with pytest.raises(MalformedInput):
        parse_datetime(text)


def test_malformed_input_is_a_value_error() -> None:
    with pytest.raises(ValueError):
        parse_datetime("not a date")


def test_parse_date_rejects_time_component() -> None:
    with pytest.raises(MalformedInput):
        parse_date("1990-01-01T08:00:00")


def test_day_bounds_are_inclusive() -> None:
    moment = datetime.datetime(2024, 3, 1, 17, 30)
    assert start_of_day(moment) == datetime.datetime(2024, 3, 1)
    assert end_of_day(moment) == datetime.datetime(2024, 3, 1, 23, 59, 59, 999000)


def test_formatted_time_parses_back_to_the_same_value() -> None:
    moment = datetime.datetime(2024, 3, 1, 10, 15, 7, 42000)
    text = format_datetime(moment)
    assert text == "2024-03-01T10:15:07.042Z"
    assert parse_datetime(text) == moment
