# residents_errors.py


class ResidentsError(Exception):
    """Base class for every failure reported by the resident/alarm core."""


class ResidentNotFound(ResidentsError):
    def __init__(self, name, birth):
        super().__init__(f"No resident '{name}' born {birth:%Y-%m-%d}")
        self.name = name
        self.birth = birth


class AlarmNotFound(ResidentsError):
    def __init__(self, name, birth, time):
        super().__init__(f"Resident '{name}' has no active alarm opened at {time.isoformat()}")
        self.name = name
        self.birth = birth
        self.time = time


class DuplicateResident(ResidentsError):
    def __init__(self, name, birth):
        super().__init__(f"A resident '{name}' born {birth:%Y-%m-%d} already exists")
        self.name = name
        self.birth = birth


class StoreUnavailable(ResidentsError):
    """The database rejected or failed an operation. Never retried."""


class MalformedInput(ResidentsError, ValueError):
    """A date/time string or an input row could not be parsed."""
