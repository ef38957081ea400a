# residents_import.py
import csv
import logging
from dataclasses import dataclass, field
from typing import List

from residents_db_queries import ResidentStore
from residents_errors import MalformedInput
from residents_models import Resident

logger = logging.getLogger(__name__)

REQUIRED_COLUMNS = ("name", "birth", "location", "resident_since")


@dataclass
class ImportSummary:
    inserted: int = 0
    updated: int = 0
    duplicates: int = 0
    rejected: List[int] = field(default_factory=list)  # line numbers

    @property
    def total(self):
        return self.inserted + self.updated + len(self.rejected)


def _row_to_resident(row: dict) -> Resident:
    missing = [c for c in REQUIRED_COLUMNS if not (row.get(c) or "").strip()]
    if missing:
        raise MalformedInput(f"missing value for {', '.join(missing)}")
    return Resident.new(
        row["name"].strip(),
        row["birth"].strip(),
        row["location"].strip(),
        row["resident_since"].strip(),
    )


def import_residents(store: ResidentStore, path, upsert=False) -> ImportSummary:
    """
    Loads residents from a CSV file with a name,birth,location,resident_since header.

    Each row is inserted, or merged into the existing resident with the same
    name and birth date. Bad rows are logged and skipped; store failures abort
    the import.
    """
    summary = ImportSummary()
    with open(path, newline="", encoding="utf-8") as f:
        reader = csv.DictReader(f)
        absent = [c for c in REQUIRED_COLUMNS if c not in (reader.fieldnames or [])]
        if absent:
            raise MalformedInput(f"{path}: CSV header lacks {', '.join(absent)}")

        for row in reader:
            try:
                resident = _row_to_resident(row)
            except MalformedInput as e:
                logger.warning("%s:%d rejected: %s", path, reader.line_num, e)
                summary.rejected.append(reader.line_num)
                continue

            outcome = store.upsert_by_key(resident) if upsert else store.insert_or_update(resident)
            if outcome.action == "inserted":
                summary.inserted += 1
            else:
                summary.updated += 1
            if outcome.duplicate:
                summary.duplicates += 1

    logger.info(
        "Imported %s: %d inserted, %d updated (%d duplicates), %d rejected",
        path, summary.inserted, summary.updated, summary.duplicates, len(summary.rejected),
    )
    return summary
