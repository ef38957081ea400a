# residents_models.py
"""
Typed views of the documents stored in the residents collection.

The database layer speaks plain dicts; these dataclasses are what the rest
of the program passes around. ``to_document`` / ``from_document`` convert at
the boundary and keep the stored field names in one place.
"""
from __future__ import annotations

import datetime
from dataclasses import dataclass, field
from typing import List, Optional

from residents_dates import parse_date


@dataclass(frozen=True)
class ActiveAlarm:
    time: datetime.datetime
    message: str

    def to_document(self) -> dict:
        return {"time": self.time, "message": self.message}

    @classmethod
    def from_document(cls, doc: dict) -> "ActiveAlarm":
        return cls(time=doc["time"], message=doc.get("message", ""))


@dataclass(frozen=True)
class HistoricalAlarm:
    """A closed alarm. ``duration`` is in whole seconds."""

    time: datetime.datetime
    message: str
    duration: int

    def to_document(self) -> dict:
        return {"time": self.time, "message": self.message, "duration": self.duration}

    @classmethod
    def from_document(cls, doc: dict) -> "HistoricalAlarm":
        return cls(time=doc["time"], message=doc.get("message", ""), duration=int(doc.get("duration", 0)))


@dataclass
class Resident:
    """
    A resident, identified by the (name, birth) pair.

    Parameters
    ----------
    name
        Full name.
    birth
        Birth date, midnight UTC.
    location
        Free text, e.g. a room number.
    resident_since
        Start of residency, midnight UTC.
    alarms
        Closed alarms, oldest first.
    active_alarms
        Open alarms, oldest first.
    """

    name: str
    birth: datetime.datetime
    location: str
    resident_since: datetime.datetime
    alarms: List[HistoricalAlarm] = field(default_factory=list)
    active_alarms: List[ActiveAlarm] = field(default_factory=list)
    id: Optional[object] = None

    @classmethod
    def new(cls, name: str, birth: str, location: str, resident_since: str) -> "Resident":
        """Builds a resident from raw strings. Raises MalformedInput on bad dates."""
        return cls(
            name=name,
            birth=parse_date(birth),
            location=location,
            resident_since=parse_date(resident_since),
        )

    def to_document(self) -> dict:
        doc = {
            "name": self.name,
            "birth": self.birth,
            "location": self.location,
            "resident_since": self.resident_since,
            "alarms": [a.to_document() for a in self.alarms],
            "active_alarms": [a.to_document() for a in self.active_alarms],
        }
        if self.id is not None:
            doc["_id"] = self.id
        return doc

    def update_fields(self) -> dict:
        """The fields an update may overwrite. Alarms are never touched."""
        return {"location": self.location, "resident_since": self.resident_since}

    @classmethod
    def from_document(cls, doc: dict) -> "Resident":
        return cls(
            name=doc["name"],
            birth=doc["birth"],
            location=doc.get("location", ""),
            resident_since=doc.get("resident_since"),
            alarms=[HistoricalAlarm.from_document(a) for a in doc.get("alarms") or []],
            active_alarms=[ActiveAlarm.from_document(a) for a in doc.get("active_alarms") or []],
            id=doc.get("_id"),
        )
