# residents_report.py
"""
Per-resident alarm statistics over a date range, streamed to the console or
to a CSV file.
"""
import csv
import datetime
import logging
import os
import tempfile
from typing import Callable, Iterable, Iterator, Optional

import click

from residents_dates import UTC, end_of_day, parse_datetime, start_of_day
from residents_db_queries import ResidentStore

logger = logging.getLogger(__name__)


def build_report_pipeline(from_date, to_date, name_pattern=None, location_pattern=None):
    """
    Builds the aggregation behind the alarm report.

    ``from_date`` and ``to_date`` are widened to the whole calendar day (UTC),
    both inclusive. Name and location patterns are case-insensitive regular
    expressions; when both are given a resident matching either one is kept.
    A resident is reported if it has an active alarm or a closed alarm that
    was opened inside the window.
    """
    start = start_of_day(parse_datetime(from_date))
    end = end_of_day(parse_datetime(to_date))

    in_window = {"$gte": start, "$lte": end}
    conditions = [{
        "$or": [
            {"active_alarms.0": {"$exists": True}},
            {"alarms": {"$elemMatch": {"time": in_window}}},
        ]
    }]
    patterns = []
    if name_pattern:
        patterns.append({"name": {"$regex": name_pattern, "$options": "i"}})
    if location_pattern:
        patterns.append({"location": {"$regex": location_pattern, "$options": "i"}})
    if patterns:
        conditions.insert(0, {"$or": patterns})

    return [
        {"$match": {"$and": conditions}},
        {"$project": {
            "_id": 0,
            "name": 1,
            "location": 1,
            "alarms": {
                "$filter": {
                    "input": {"$ifNull": ["$alarms", []]},
                    "as": "alarm",
                    "cond": {"$and": [
                        {"$gte": ["$$alarm.time", start]},
                        {"$lte": ["$$alarm.time", end]},
                    ]},
                }
            },
            "active_alarms_count": {"$size": {"$ifNull": ["$active_alarms", []]}},
        }},
        {"$project": {
            "name": "$name",
            "location": "$location",
            "alarms_count": {"$size": "$alarms"},
            "alarms_avg_duration": {"$avg": "$alarms.duration"},
            "alarms_min_time": {"$min": "$alarms.time"},
            "alarms_max_time": {"$max": "$alarms.time"},
            "active_alarms_count": "$active_alarms_count",
        }},
        {"$sort": {"location": 1}},
    ]


def run_report(store: ResidentStore, from_date, to_date, name_pattern=None, location_pattern=None) -> Iterator[dict]:
    """
    Returns the report rows as a one-shot stream, ordered by location.

    Dates are parsed before the query is issued, so MalformedInput is raised
    here rather than while iterating.
    """
    pipeline = build_report_pipeline(from_date, to_date, name_pattern, location_pattern)
    logger.debug("Report pipeline: %s", pipeline)
    return store.query(pipeline)


# --- Value formatting ---

def format_duration(seconds) -> str:
    total_minutes = int(seconds / 60 + 0.5)
    days = total_minutes // 1440
    hours = (total_minutes % 1440) // 60
    minutes = total_minutes % 60
    if days > 0:
        return f"{days:02} days {hours:02}h {minutes:02}m"
    if hours > 0:
        return f"{hours:02}h {minutes:02}m"
    return f"    {minutes:02}m"


def format_value(key: str, value) -> str:
    if value is None:
        return ""
    if isinstance(value, bool):
        return "yes" if value else "no"
    if isinstance(value, datetime.datetime):
        if value.tzinfo is None:
            value = value.replace(tzinfo=UTC)
        return value.astimezone().strftime("%Y-%m-%d %H:%M")
    if isinstance(value, (int, float)) and "duration" in key:
        return format_duration(value)
    if isinstance(value, float):
        return f"{value:.2f}"
    return str(value)


def format_row(row: dict) -> list:
    return [format_value(key, value) for key, value in row.items()]


# --- Sinks ---

def print_rows(rows: Iterable[dict], echo: Callable[[str], None] = click.echo) -> int:
    """Prints each row as soon as it arrives, header taken from the first row."""
    widths = None
    count = 0
    for row in rows:
        if widths is None:
            widths = [max(len(key), 16) for key in row]
            echo("  ".join(key.ljust(w) for key, w in zip(row, widths)))
            echo("  ".join("-" * w for w in widths))
        echo("  ".join(cell.ljust(w) for cell, w in zip(format_row(row), widths)))
        count += 1
    if count == 0:
        echo("No residents matched.")
    return count


def write_csv(rows: Iterable[dict], path: str) -> int:
    """
    Writes rows to ``path`` with a header taken from the first row.

    The file is only replaced once every row has been written; if reading the
    rows or writing fails, ``path`` is left as it was.
    """
    target_dir = os.path.dirname(os.path.abspath(path))
    tmp = tempfile.NamedTemporaryFile(
        mode="w", newline="", encoding="utf-8", dir=target_dir, prefix=".report-", suffix=".csv", delete=False
    )
    count = 0
    try:
        with tmp:
            writer = csv.writer(tmp)
            for row in rows:
                if count == 0:
                    writer.writerow(list(row.keys()))
                writer.writerow(format_row(row))
                count += 1
        umask = os.umask(0)
        os.umask(umask)
        os.chmod(tmp.name, 0o666 & ~umask)
        os.replace(tmp.name, path)
    except BaseException:
        os.unlink(tmp.name)
        raise
    logger.info("Wrote %d report rows to %s", count, path)
    return count


def export_report(store: ResidentStore, from_date, to_date, name_pattern=None,
                  location_pattern=None, csv_path: Optional[str] = None) -> int:
    """Runs the report into the console, or into ``csv_path`` when given."""
    rows = run_report(store, from_date, to_date, name_pattern, location_pattern)
    try:
        if csv_path:
            return write_csv(rows, csv_path)
        return print_rows(rows)
    finally:
        rows.close()
