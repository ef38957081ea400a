"""
Tests for the residents command line, driven through click's CliRunner with
an in-memory store injected into the context object.
"""
import datetime

import pytest
from click.testing import CliRunner

import residents_alarms
from residents_cli import cli
from residents_models import Resident

BIRTH = datetime.datetime(1990, 1, 1)


@pytest.fixture
def run(store):
    runner = CliRunner()

    def invoke(*args):
        return runner.invoke(cli, list(args), obj={"store": store})
    return invoke


@pytest.fixture
def fixed_clock(monkeypatch, clock):
    monkeypatch.setattr(residents_alarms, "utcnow", clock)
    return clock


def test_insert_then_update(run, store) -> None:
    assert run("insert", "Ann", "1990-01-01", "RoomA", "2020-01-01").exit_code == 0
    result = run("insert", "Ann", "1990-01-01", "RoomB", "2020-01-01")

    assert result.exit_code == 0
    assert "Resident updated" in result.output
    assert store.get("Ann", BIRTH).location == "RoomB"


def test_upsert_flag(run, store) -> None:
    result = run("--upsert", "insert", "Ann", "1990-01-01", "RoomA", "2020-01-01")

    assert result.exit_code == 0
    assert "Resident inserted" in result.output


def test_malformed_date_exits_with_error(run, store) -> None:
    result = run("insert", "Ann", "01/01/1990", "RoomA", "2020-01-01")

    assert result.exit_code == 1
    assert "Cannot parse" in result.output
    assert store.residents.count_documents({}) == 0


def test_new_alarm_then_clear_alarm(run, store, fixed_clock) -> None:
    store.insert_new(Resident.new("Ann", "1990-01-01", "RoomA", "2020-01-01"))

    opened = run("new-alarm", "Ann", "1990-01-01", "smoke")
    assert opened.exit_code == 0
    open_time = opened.output.strip()
    assert open_time == "2024-03-01T12:00:00.000Z"

    cleared = run("clear-alarm", "Ann", "1990-01-01", open_time, "--duration", "42")
    assert cleared.exit_code == 0
    assert "cleared after 42s" in cleared.output
    assert store.get("Ann", BIRTH).alarms[0].duration == 42


def test_clear_unknown_alarm_is_a_warning(run, store) -> None:
    store.insert_new(Resident.new("Ann", "1990-01-01", "RoomA", "2020-01-01"))

    result = run("clear-alarm", "Ann", "1990-01-01", "2024-03-01T12:00:00Z")

    assert result.exit_code == 0
    assert "Warning" in result.output


def test_new_alarm_for_unknown_resident_is_a_warning(run) -> None:
    result = run("new-alarm", "Nobody", "1990-01-01", "smoke")

    assert result.exit_code == 0
    assert "Warning" in result.output


def test_delete(run, store) -> None:
    store.insert_new(Resident.new("Ann", "1990-01-01", "RoomA", "2020-01-01"))

    assert "Resident deleted" in run("delete", "Ann", "1990-01-01").output
    assert "Warning" in run("delete", "Ann", "1990-01-01").output


def test_report_to_csv(run, store, tmp_path) -> None:
    store.insert_new(Resident.new("Ann", "1990-01-01", "RoomA", "2020-01-01"))
    store.mutate_array("Ann", BIRTH, push={"active_alarms": {"time": datetime.datetime(2024, 3, 1), "message": "x"}})
    out = tmp_path / "report.csv"

    result = run("report", "2024-03-01", "2024-03-02", "--csv", str(out))

    assert result.exit_code == 0
    assert "Wrote 1 rows" in result.output
    header = out.read_text().splitlines()[0].split(",")
    assert {"name", "location", "alarms_count", "active_alarms_count"} <= set(header)


def test_report_rejects_bad_dates(run) -> None:
    result = run("report", "tomorrow", "2024-03-02")

    assert result.exit_code == 1
