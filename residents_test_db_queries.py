"""
Tests for ResidentStore against an in-memory MongoDB (mongomock).
"""
import datetime
from unittest.mock import MagicMock

import pytest
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

from residents_db_queries import ResidentStore
from residents_errors import DuplicateResident, ResidentsError, StoreUnavailable
from residents_models import Resident


def _ann(location="RoomA", since="2020-01-01"):
    return Resident.new("Ann", "1990-01-01", location, since)


def test_insert_new_creates_document_with_empty_alarm_lists(store) -> None:
    outcome = store.insert_new(_ann())

    assert outcome.action == "inserted"
    assert outcome.inserted_id is not None
    doc = store.find("Ann", datetime.datetime(1990, 1, 1))
    assert doc["location"] == "RoomA"
    assert doc["alarms"] == []
    assert doc["active_alarms"] == []


def test_second_insert_with_same_key_is_duplicate(store) -> None:
    store.insert_new(_ann())
    with pytest.raises(DuplicateResident):
        store.insert_new(_ann("RoomB"))
    assert store.residents.count_documents({}) == 1


def test_same_name_different_birth_is_a_different_resident(store) -> None:
    store.insert_new(_ann())
    store.insert_new(Resident.new("Ann", "1991-01-01", "RoomB", "2020-01-01"))
    assert store.residents.count_documents({"name": "Ann"}) == 2


def test_insert_or_update_keeps_one_document_with_second_payload(store) -> None:
    first = store.insert_or_update(_ann())
    second = store.insert_or_update(_ann("RoomB", "2021-06-01"))

    assert first.action == "inserted"
    assert second.action == "updated"
    assert second.duplicate is True
    assert second.matched_count == 1
    assert store.residents.count_documents({}) == 1
    resident = store.get("Ann", datetime.datetime(1990, 1, 1))
    assert resident.location == "RoomB"
    assert resident.resident_since == datetime.datetime(2021, 6, 1)


def test_upsert_inserts_then_updates_without_touching_alarms(store) -> None:
    assert store.upsert_by_key(_ann()).action == "inserted"
    birth = datetime.datetime(1990, 1, 1)
    store.mutate_array("Ann", birth, push={"active_alarms": {"time": datetime.datetime(2024, 1, 1), "message": "x"}})

    outcome = store.upsert_by_key(_ann("RoomC"))

    assert outcome.action == "updated"
    assert outcome.matched_count == 1
    assert outcome.modified_count == 1
    resident = store.get("Ann", birth)
    assert resident.location == "RoomC"
    assert len(resident.active_alarms) == 1
    assert resident.alarms == []


def test_delete_reports_whether_anything_was_deleted(store) -> None:
    store.insert_new(_ann())
    birth = datetime.datetime(1990, 1, 1)

    assert store.delete_by_key("Ann", birth) is True
    assert store.delete_by_key("Ann", birth) is False
    assert store.get("Ann", birth) is None


def test_mutate_array_push_and_pull(store) -> None:
    store.insert_new(_ann())
    birth = datetime.datetime(1990, 1, 1)
    t1 = datetime.datetime(2024, 1, 1, 8)
    t2 = datetime.datetime(2024, 1, 1, 9)
    store.mutate_array("Ann", birth, push={"active_alarms": {"time": t1, "message": "a"}})
    store.mutate_array("Ann", birth, push={"active_alarms": {"time": t2, "message": "b"}})

    result = store.mutate_array("Ann", birth, pull={"active_alarms": {"time": t1}})

    assert result.modified_count == 1
    assert [a.time for a in store.get("Ann", birth).active_alarms] == [t2]


def test_mutate_array_requires_an_operation(store) -> None:
    with pytest.raises(ValueError):
        store.mutate_array("Ann", datetime.datetime(1990, 1, 1))


def test_store_failures_surface_as_store_unavailable() -> None:
    collection = MagicMock()
    collection.find_one.side_effect = ServerSelectionTimeoutError("no servers")
    store = ResidentStore(collection)

    with pytest.raises(StoreUnavailable):
        store.find("Ann", datetime.datetime(1990, 1, 1))


class _TrackedCursor:
    def __init__(self, rows):
        self._rows = iter(rows)
        self.closed = False

    def __iter__(self):
        return self

    def __next__(self):
        return next(self._rows)

    def close(self):
        self.closed = True


def test_query_closes_cursor_when_abandoned() -> None:
    cursor = _TrackedCursor([{"n": 1}, {"n": 2}, {"n": 3}])
    collection = MagicMock()
    collection.aggregate.return_value = cursor
    rows = ResidentStore(collection).query([])

    assert next(rows) == {"n": 1}
    rows.close()

    assert cursor.closed is True


def test_query_closes_cursor_when_exhausted() -> None:
    cursor = _TrackedCursor([{"n": 1}])
    collection = MagicMock()
    collection.aggregate.return_value = cursor

    assert list(ResidentStore(collection).query([])) == [{"n": 1}]
    assert cursor.closed is True


def test_query_is_lazy() -> None:
    collection = MagicMock()
    rows = ResidentStore(collection).query([{"$match": {}}])

    collection.aggregate.assert_not_called()
    list(rows)
    collection.aggregate.assert_called_once_with([{"$match": {}}])


def test_upsert_losing_insert_race_is_duplicate_resident() -> None:
    collection = MagicMock()
    collection.update_one.side_effect = DuplicateKeyError("E11000 duplicate key error")
    store = ResidentStore(collection)

    with pytest.raises(DuplicateResident) as excinfo:
        store.upsert_by_key(_ann())
    assert isinstance(excinfo.value, ResidentsError)
