"""
Tests for the alarm lifecycle: Active --close--> Historical.

These validate:
- opening appends an active alarm and returns its open time
- open times stay unique within one resident
- closing moves the alarm to history exactly once
- duration is explicit, elapsed, or clamped to zero
- not-found outcomes for missing residents and alarms
"""
import datetime
from unittest.mock import MagicMock

import pytest

from residents_alarms import MAX_OPEN_ATTEMPTS, AlarmManager
from residents_errors import AlarmNotFound, ResidentNotFound, StoreUnavailable
from residents_models import HistoricalAlarm

BIRTH = datetime.datetime(1990, 1, 1)


def test_open_alarm_appends_active_alarm(store, ann, clock) -> None:
    manager = AlarmManager(store, clock=clock)

    opened = manager.open_alarm("Ann", BIRTH, "smoke")

    assert opened == clock.now
    alarms = manager.active_alarms("Ann", BIRTH)
    assert [(a.time, a.message) for a in alarms] == [(opened, "smoke")]


def test_open_alarm_for_unknown_resident(store, clock) -> None:
    with pytest.raises(ResidentNotFound):
        AlarmManager(store, clock=clock).open_alarm("Nobody", BIRTH, "smoke")


def test_alarms_opened_in_the_same_tick_get_distinct_times(store, ann, clock) -> None:
    manager = AlarmManager(store, clock=clock)

    first = manager.open_alarm("Ann", BIRTH, "smoke")
    second = manager.open_alarm("Ann", BIRTH, "door")
    third = manager.open_alarm("Ann", BIRTH, "fall")

    assert len({first, second, third}) == 3
    assert second == first + datetime.timedelta(milliseconds=1)
    assert third == first + datetime.timedelta(milliseconds=2)


def test_close_with_explicit_duration(store, ann, clock) -> None:
    manager = AlarmManager(store, clock=clock)
    opened = manager.open_alarm("Ann", BIRTH, "smoke")
    clock.advance(5000)

    closed = manager.close_alarm("Ann", BIRTH, opened, duration=42)

    assert closed == HistoricalAlarm(time=opened, message="smoke", duration=42)
    resident = store.get("Ann", BIRTH)
    assert resident.active_alarms == []
    assert resident.alarms == [closed]


def test_close_without_duration_uses_elapsed_seconds(store, ann, clock) -> None:
    manager = AlarmManager(store, clock=clock)
    opened = manager.open_alarm("Ann", BIRTH, "smoke")
    clock.advance(90.7)

    closed = manager.close_alarm("Ann", BIRTH, opened)

    assert closed.duration == 90


def test_immediate_close_has_non_negative_duration(store, ann, clock) -> None:
    manager = AlarmManager(store, clock=clock)
    opened = manager.open_alarm("Ann", BIRTH, "smoke")

    assert manager.close_alarm("Ann", BIRTH, opened).duration == 0


def test_future_open_time_is_clamped_to_zero(store, ann, clock) -> None:
    manager = AlarmManager(store, clock=clock)
    opened = manager.open_alarm("Ann", BIRTH, "smoke")
    clock.advance(-3600)

    assert manager.close_alarm("Ann", BIRTH, opened).duration == 0


def test_negative_explicit_duration_is_rejected(store, ann, clock) -> None:
    manager = AlarmManager(store, clock=clock)
    opened = manager.open_alarm("Ann", BIRTH, "smoke")

    with pytest.raises(ValueError):
        manager.close_alarm("Ann", BIRTH, opened, duration=-1)
    assert len(manager.active_alarms("Ann", BIRTH)) == 1


def test_second_close_is_alarm_not_found(store, ann, clock) -> None:
    manager = AlarmManager(store, clock=clock)
    opened = manager.open_alarm("Ann", BIRTH, "smoke")
    manager.close_alarm("Ann", BIRTH, opened, duration=1)

    with pytest.raises(AlarmNotFound):
        manager.close_alarm("Ann", BIRTH, opened, duration=1)
    assert len(store.get("Ann", BIRTH).alarms) == 1


def test_close_unknown_alarm(store, ann, clock) -> None:
    with pytest.raises(AlarmNotFound):
        AlarmManager(store, clock=clock).close_alarm("Ann", BIRTH, clock.now)


def test_close_on_unknown_resident(store, clock) -> None:
    with pytest.raises(ResidentNotFound):
        AlarmManager(store, clock=clock).close_alarm("Nobody", BIRTH, clock.now)


def test_close_only_moves_the_matching_alarm(store, ann, clock) -> None:
    manager = AlarmManager(store, clock=clock)
    first = manager.open_alarm("Ann", BIRTH, "smoke")
    clock.advance(10)
    second = manager.open_alarm("Ann", BIRTH, "door")

    manager.close_alarm("Ann", BIRTH, first, duration=3)

    resident = store.get("Ann", BIRTH)
    assert [a.time for a in resident.active_alarms] == [second]
    assert [a.time for a in resident.alarms] == [first]


def test_losing_a_concurrent_close_is_alarm_not_found(store, ann, clock) -> None:
    manager = AlarmManager(store, clock=clock)
    opened = manager.open_alarm("Ann", BIRTH, "smoke")
    rival = AlarmManager(store, clock=clock)
    real_mutate = store.mutate_array

    def close_first_then_mutate(*args, **kwargs):
        # The rival finishes its close between our locate and our update.
        store.mutate_array = real_mutate
        rival.close_alarm("Ann", BIRTH, opened, duration=7)
        return real_mutate(*args, **kwargs)

    store.mutate_array = close_first_then_mutate
    with pytest.raises(AlarmNotFound):
        manager.close_alarm("Ann", BIRTH, opened, duration=99)

    resident = store.get("Ann", BIRTH)
    assert resident.active_alarms == []
    assert [a.duration for a in resident.alarms] == [7]


def test_active_alarms_for_unknown_resident(store) -> None:
    with pytest.raises(ResidentNotFound):
        AlarmManager(store).active_alarms("Nobody", BIRTH)


def test_close_accepts_timezone_aware_open_time(store, ann, clock) -> None:
    manager = AlarmManager(store, clock=clock)
    opened = manager.open_alarm("Ann", BIRTH, "smoke")

    closed = manager.close_alarm("Ann", BIRTH, opened.replace(tzinfo=datetime.timezone.utc), duration=1)

    assert closed.time == opened
    assert manager.active_alarms("Ann", BIRTH) == []


def test_close_accepts_offset_and_sub_millisecond_open_time(store, ann, clock) -> None:
    manager = AlarmManager(store, clock=clock)
    opened = manager.open_alarm("Ann", BIRTH, "smoke")
    plus_two = datetime.timezone(datetime.timedelta(hours=2))
    shifted = (opened + datetime.timedelta(microseconds=400)).replace(tzinfo=datetime.timezone.utc).astimezone(plus_two)

    assert manager.close_alarm("Ann", BIRTH, shifted, duration=1).time == opened


def test_close_accepts_iso_string(store, ann, clock) -> None:
    manager = AlarmManager(store, clock=clock)
    manager.open_alarm("Ann", BIRTH, "smoke")

    assert manager.close_alarm("Ann", BIRTH, "2024-03-01T12:00:00.000Z", duration=1).duration == 1


def test_locate_fetches_only_the_matching_alarm(store, ann, clock) -> None:
    manager = AlarmManager(store, clock=clock)
    first = manager.open_alarm("Ann", BIRTH, "smoke")
    clock.advance(5)
    manager.open_alarm("Ann", BIRTH, "door")
    projections = []
    real_find = store.find

    def recording_find(name, birth, projection=None, extra_filter=None):
        projections.append(projection)
        return real_find(name, birth, projection, extra_filter=extra_filter)

    store.find = recording_find
    manager.close_alarm("Ann", BIRTH, first, duration=1)

    assert projections[0] == {"active_alarms": {"$elemMatch": {"time": first}}}


def test_exhausted_open_attempts_is_store_unavailable(clock) -> None:
    store = MagicMock()
    store.mutate_array.return_value = MagicMock(matched_count=0)
    store.find.return_value = {"_id": 1}

    with pytest.raises(StoreUnavailable):
        AlarmManager(store, clock=clock).open_alarm("Ann", BIRTH, "smoke")
    assert store.mutate_array.call_count == MAX_OPEN_ATTEMPTS
