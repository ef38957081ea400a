# residents_alarms.py
"""
Alarm lifecycle: an alarm is opened into a resident's ``active_alarms`` and
later closed, which moves it to ``alarms`` (history) with its duration.

    Active --close--> Historical

The open time identifies an active alarm within its resident. Opening
guarantees that no two active alarms of one resident share it, and closing
moves the alarm with a single conditional update, so an alarm reaches the
history exactly once and is never dropped between the two lists.
"""
import datetime
import logging
from typing import List, Optional

from residents_dates import format_datetime, parse_datetime, utcnow
from residents_db_queries import ResidentStore
from residents_errors import AlarmNotFound, ResidentNotFound, StoreUnavailable
from residents_models import ActiveAlarm, HistoricalAlarm

logger = logging.getLogger(__name__)

# Upper bound on same-millisecond collisions for one resident.
MAX_OPEN_ATTEMPTS = 100


class AlarmManager:
    def __init__(self, store: ResidentStore, clock=None):
        self.store = store
        self.clock = clock or utcnow

    def open_alarm(self, name, birth, message) -> datetime.datetime:
        """Appends an active alarm stamped with the current time and returns that time."""
        open_time = self.clock()
        for _ in range(MAX_OPEN_ATTEMPTS):
            alarm = ActiveAlarm(time=open_time, message=message)
            result = self.store.mutate_array(
                name, birth,
                push={"active_alarms": alarm.to_document()},
                extra_filter={"active_alarms.time": {"$ne": open_time}},
            )
            if result.matched_count:
                logger.info(
                    "Alarm %s added to resident '%s'. Matched: %d Updated: %d",
                    format_datetime(open_time), name, result.matched_count, result.modified_count,
                )
                return open_time
            if self.store.find(name, birth, {"_id": 1}) is None:
                logger.warning("No resident '%s' found to add alarm.", name)
                raise ResidentNotFound(name, birth)
            # Another active alarm already holds this timestamp.
            open_time += datetime.timedelta(milliseconds=1)
        raise StoreUnavailable(f"Could not find a free open time for an alarm of '{name}'")

    def active_alarms(self, name, birth) -> List[ActiveAlarm]:
        doc = self.store.find(name, birth, {"active_alarms": 1})
        if doc is None:
            raise ResidentNotFound(name, birth)
        return [ActiveAlarm.from_document(a) for a in doc.get("active_alarms") or []]

    def _locate(self, name, birth, open_time) -> ActiveAlarm:
        doc = self.store.find(
            name, birth,
            {"active_alarms": {"$elemMatch": {"time": open_time}}},
            extra_filter={"active_alarms.time": open_time},
        )
        if doc is not None:
            for entry in doc.get("active_alarms") or []:
                if entry["time"] == open_time:
                    return ActiveAlarm.from_document(entry)
        elif self.store.find(name, birth, {"_id": 1}) is None:
            raise ResidentNotFound(name, birth)
        logger.warning("Resident '%s' has no active alarm at %s.", name, format_datetime(open_time))
        raise AlarmNotFound(name, birth, open_time)

    def _duration(self, open_time, explicit: Optional[int]) -> int:
        if explicit is not None:
            if explicit < 0:
                raise ValueError("duration must not be negative")
            return int(explicit)
        elapsed = (self.clock() - open_time).total_seconds()
        return max(0, int(elapsed))

    def close_alarm(self, name, birth, open_time, duration: Optional[int] = None) -> HistoricalAlarm:
        """
        Moves the active alarm opened at ``open_time`` to the alarm history.

        ``duration`` (seconds) overrides the elapsed time, which is otherwise
        ``now - open_time`` clamped at zero. Raises ResidentNotFound or
        AlarmNotFound; a second close of the same alarm is AlarmNotFound.
        """
        open_time = parse_datetime(open_time)
        alarm = self._locate(name, birth, open_time)
        closed = HistoricalAlarm(time=alarm.time, message=alarm.message, duration=self._duration(alarm.time, duration))

        # Pull and push in one update, only while the alarm is still active.
        result = self.store.mutate_array(
            name, birth,
            pull={"active_alarms": {"time": alarm.time}},
            push={"alarms": closed.to_document()},
            extra_filter={"active_alarms.time": alarm.time},
        )
        if not result.matched_count:
            logger.warning("Alarm %s of '%s' was closed concurrently.", format_datetime(alarm.time), name)
            raise AlarmNotFound(name, birth, open_time)
        logger.info(
            "Alarm %s cleared for resident '%s' after %ds. Matched: %d Updated: %d",
            format_datetime(alarm.time), name, closed.duration, result.matched_count, result.modified_count,
        )
        return closed
