"""
Tests for CSV bulk import of residents.
"""
import datetime

import pytest

from residents_errors import MalformedInput
from residents_import import import_residents
from residents_models import Resident


def _write(tmp_path, text):
    path = tmp_path / "residents.csv"
    path.write_text(text)
    return str(path)


def test_import_inserts_and_merges_duplicates(store, tmp_path) -> None:
    store.insert_new(Resident.new("Ann", "1990-01-01", "RoomA", "2020-01-01"))
    path = _write(tmp_path, (
        "name,birth,location,resident_since\n"
        "Ann,1990-01-01,RoomZ,2021-01-01\n"
        "Bob,1985-05-15,RoomB,2019-06-01\n"
    ))

    summary = import_residents(store, path)

    assert summary.inserted == 1
    assert summary.updated == 1
    assert summary.duplicates == 1
    assert summary.rejected == []
    assert store.get("Ann", datetime.datetime(1990, 1, 1)).location == "RoomZ"
    assert store.get("Bob", datetime.datetime(1985, 5, 15)) is not None


def test_bad_rows_are_rejected_with_line_numbers(store, tmp_path) -> None:
    path = _write(tmp_path, (
        "name,birth,location,resident_since\n"
        "Ann,1990-01-01,RoomA,2020-01-01\n"
        "Bob,not-a-date,RoomB,2019-06-01\n"
        "Cid,1970-01-01,,2019-06-01\n"
    ))

    summary = import_residents(store, path)

    assert summary.inserted == 1
    assert summary.rejected == [3, 4]
    assert summary.total == 3
    assert store.residents.count_documents({}) == 1


def test_upsert_mode(store, tmp_path) -> None:
    path = _write(tmp_path, (
        "name,birth,location,resident_since\n"
        "Ann,1990-01-01,RoomA,2020-01-01\n"
        "Ann,1990-01-01,RoomB,2020-01-01\n"
    ))

    summary = import_residents(store, path, upsert=True)

    assert summary.inserted == 1
    assert summary.updated == 1
    assert summary.duplicates == 0
    assert store.get("Ann", datetime.datetime(1990, 1, 1)).location == "RoomB"


def test_missing_header_column(store, tmp_path) -> None:
    path = _write(tmp_path, "name,birth,location\nAnn,1990-01-01,RoomA\n")

    with pytest.raises(MalformedInput):
        import_residents(store, path)
