# conftest.py
import datetime

import mongomock
import pytest

from residents_db_queries import ResidentStore
from residents_models import Resident


class FakeClock:
    """Stands in for residents_dates.utcnow; moves only when told to."""
    def __init__(self, now):
        self.now = now

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += datetime.timedelta(seconds=seconds)


@pytest.fixture
def collection():
    return mongomock.MongoClient().residents_db.residents


@pytest.fixture
def store(collection):
    store = ResidentStore(collection)
    store.ensure_indexes()
    return store


@pytest.fixture
def clock():
    return FakeClock(datetime.datetime(2024, 3, 1, 12, 0, 0))


@pytest.fixture
def ann(store):
    resident = Resident.new("Ann", "1990-01-01", "RoomA", "2020-01-01")
    store.insert_new(resident)
    return resident
