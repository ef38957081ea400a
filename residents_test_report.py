"""
Tests for the alarm report: inclusion rules, per-resident aggregation,
the inclusive name/location filter, and the console and CSV sinks.
"""
import csv
import datetime
import os
import stat
from unittest.mock import MagicMock

import pytest
from pymongo.errors import AutoReconnect

from residents_alarms import AlarmManager
from residents_db_queries import ResidentStore
from residents_errors import MalformedInput, StoreUnavailable
from residents_models import Resident
from residents_report import (
    build_report_pipeline,
    export_report,
    format_duration,
    print_rows,
    run_report,
    write_csv,
)

DAY = datetime.datetime(2024, 3, 1)


def _add(store, name, location, alarms=(), active=()):
    resident = Resident.new(name, "1990-01-01", location, "2020-01-01")
    store.insert_new(resident)
    for time, duration in alarms:
        store.mutate_array(name, resident.birth, push={"alarms": {"time": time, "message": "m", "duration": duration}})
    for time in active:
        store.mutate_array(name, resident.birth, push={"active_alarms": {"time": time, "message": "m"}})
    return resident


def _report(store, *args, **kwargs):
    return list(run_report(store, *args, **kwargs))


def test_resident_with_only_an_active_alarm_is_always_reported(store) -> None:
    _add(store, "Ann", "RoomA", active=[datetime.datetime(2019, 5, 5)])

    rows = _report(store, "2030-01-01", "2030-01-02")

    assert len(rows) == 1
    assert rows[0]["name"] == "Ann"
    assert rows[0]["alarms_count"] == 0
    assert rows[0]["alarms_avg_duration"] is None
    assert rows[0]["active_alarms_count"] == 1


def test_resident_with_history_outside_window_is_not_reported(store) -> None:
    _add(store, "Bob", "RoomB", alarms=[(datetime.datetime(2024, 2, 28, 23, 59), 10)])

    assert _report(store, "2024-03-01", "2024-03-31") == []


def test_resident_without_any_alarm_is_not_reported(store) -> None:
    _add(store, "Cid", "RoomC")

    assert _report(store, "2000-01-01", "2100-01-01") == []


def test_window_bounds_cover_whole_days(store) -> None:
    _add(store, "Ann", "RoomA", alarms=[
        (datetime.datetime(2024, 3, 1, 0, 0, 0), 5),
        (datetime.datetime(2024, 3, 2, 23, 59, 59, 999000), 5),
        (datetime.datetime(2024, 3, 3, 0, 0, 0), 5),
    ])

    rows = _report(store, "2024-03-01", "2024-03-02")

    assert rows[0]["alarms_count"] == 2


def test_aggregation_over_windowed_history(store) -> None:
    t10 = DAY.replace(hour=8)
    t20 = DAY.replace(hour=9)
    t30 = DAY.replace(hour=10)
    _add(store, "Ann", "RoomA", alarms=[(t20, 20), (t10, 10), (t30, 30), (datetime.datetime(2023, 1, 1), 1000)])

    rows = _report(store, "2024-03-01", "2024-03-01")

    row = rows[0]
    assert row["alarms_count"] == 3
    assert row["alarms_avg_duration"] == pytest.approx(20)
    assert row["alarms_min_time"] == t10
    assert row["alarms_max_time"] == t30
    assert row["active_alarms_count"] == 0


def test_open_close_then_report(store, clock) -> None:
    store.insert_new(Resident.new("Ann", "1990-01-01", "RoomA", "2020-01-01"))
    birth = datetime.datetime(1990, 1, 1)
    manager = AlarmManager(store, clock=clock)

    opened = manager.open_alarm("Ann", birth, "smoke")
    manager.close_alarm("Ann", birth, opened, duration=42)

    resident = store.get("Ann", birth)
    assert resident.active_alarms == []
    assert [(a.time, a.message, a.duration) for a in resident.alarms] == [(opened, "smoke", 42)]
    rows = _report(store, "2024-03-01", "2024-03-01")
    assert rows[0]["alarms_count"] == 1
    assert rows[0]["alarms_avg_duration"] == pytest.approx(42)
    assert rows[0]["active_alarms_count"] == 0


def test_name_and_location_patterns_are_a_union(store) -> None:
    active = [DAY]
    _add(store, "Ann", "RoomA", active=active)
    _add(store, "Bob", "RoomB", active=active)
    _add(store, "Cid", "Hall", active=active)

    rows = _report(store, "2024-03-01", "2024-03-01", name_pattern="^bob$", location_pattern="rooma")

    assert sorted(r["name"] for r in rows) == ["Ann", "Bob"]


def test_single_pattern_filters(store) -> None:
    _add(store, "Ann", "RoomA", active=[DAY])
    _add(store, "Bob", "RoomB", active=[DAY])

    rows = _report(store, "2024-03-01", "2024-03-01", location_pattern="B$")

    assert [r["name"] for r in rows] == ["Bob"]


def test_rows_are_sorted_by_location(store) -> None:
    _add(store, "Zed", "Room1", active=[DAY])
    _add(store, "Amy", "Room3", active=[DAY])
    _add(store, "Max", "Room2", active=[DAY])

    rows = _report(store, "2024-03-01", "2024-03-01")

    assert [r["location"] for r in rows] == ["Room1", "Room2", "Room3"]


def test_bad_dates_fail_before_querying(store) -> None:
    with pytest.raises(MalformedInput):
        run_report(store, "first of march", "2024-03-01")


def test_pipeline_uses_or_between_patterns() -> None:
    pipeline = build_report_pipeline("2024-03-01", "2024-03-02", name_pattern="a", location_pattern="b")

    match = pipeline[0]["$match"]["$and"][0]
    assert match == {"$or": [
        {"name": {"$regex": "a", "$options": "i"}},
        {"location": {"$regex": "b", "$options": "i"}},
    ]}
    assert pipeline[-1] == {"$sort": {"location": 1}}


def test_format_duration() -> None:
    assert format_duration(42) == "    01m"
    assert format_duration(3 * 3600 + 5 * 60) == "03h 05m"
    assert format_duration(2 * 86400 + 3600) == "02 days 01h 00m"


def test_print_rows_streams_header_then_rows() -> None:
    lines = []
    rows = [
        {"name": "Ann", "alarms_count": 3, "alarms_avg_duration": 1200.0},
        {"name": "Bob", "alarms_count": 0, "alarms_avg_duration": None},
    ]

    assert print_rows(iter(rows), echo=lines.append) == 2

    assert lines[0].split() == ["name", "alarms_count", "alarms_avg_duration"]
    assert lines[2].split() == ["Ann", "3", "20m"]
    assert lines[3].split() == ["Bob", "0"]


def test_print_rows_without_results() -> None:
    lines = []
    assert print_rows([], echo=lines.append) == 0
    assert lines == ["No residents matched."]


def test_write_csv(tmp_path) -> None:
    path = tmp_path / "report.csv"
    rows = [
        {"name": "Ann", "location": "RoomA", "alarms_count": 1, "alarms_avg_duration": 42.0},
        {"name": "Bob", "location": "RoomB", "alarms_count": 0, "alarms_avg_duration": None},
    ]

    assert write_csv(iter(rows), str(path)) == 2

    with open(path, newline="") as f:
        written = list(csv.reader(f))
    assert written == [
        ["name", "location", "alarms_count", "alarms_avg_duration"],
        ["Ann", "RoomA", "1", "    01m"],
        ["Bob", "RoomB", "0", ""],
    ]


def test_write_csv_leaves_target_untouched_on_failure(tmp_path) -> None:
    path = tmp_path / "report.csv"
    path.write_text("previous\n")

    def failing_rows():
        yield {"name": "Ann"}
        raise RuntimeError("cursor died")

    with pytest.raises(RuntimeError):
        write_csv(failing_rows(), str(path))

    assert path.read_text() == "previous\n"
    assert [p.name for p in tmp_path.iterdir()] == ["report.csv"]


@pytest.mark.skipif(os.name != "posix", reason="file modes are POSIX")
def test_write_csv_uses_umask_permissions(tmp_path) -> None:
    path = tmp_path / "report.csv"
    umask = os.umask(0o022)
    try:
        write_csv(iter([{"name": "Ann"}]), str(path))
    finally:
        os.umask(umask)

    assert stat.S_IMODE(path.stat().st_mode) == 0o644


class _FailingCursor:
    def __init__(self):
        self.closed = False
        self._served = False

    def __iter__(self):
        return self

    def __next__(self):
        if not self._served:
            self._served = True
            return {"name": "Ann", "location": "RoomA"}
        raise AutoReconnect("connection reset")

    def close(self):
        self.closed = True


def test_export_cursor_failure_is_store_unavailable_and_writes_nothing(tmp_path) -> None:
    cursor = _FailingCursor()
    collection = MagicMock()
    collection.aggregate.return_value = cursor
    path = tmp_path / "report.csv"

    with pytest.raises(StoreUnavailable):
        export_report(ResidentStore(collection), "2024-03-01", "2024-03-02", csv_path=str(path))

    assert list(tmp_path.iterdir()) == []
    assert cursor.closed is True
