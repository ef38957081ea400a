# residents_cli.py
import functools
import logging

import click

import residents_config as config
from residents_alarms import AlarmManager
from residents_dates import format_datetime, parse_date, parse_datetime
from residents_db_queries import ResidentStore
from residents_db_setup import setup_database
from residents_errors import AlarmNotFound, ResidentNotFound, ResidentsError
from residents_import import import_residents
from residents_models import Resident
from residents_report import export_report


def _store(ctx) -> ResidentStore:
    """The run's single store, connected on first use and closed with the context."""
    obj = ctx.find_root().ensure_object(dict)
    if obj.get("store") is None:
        try:
            uri = config.require_mongodb_uri()
        except ValueError as e:
            raise click.ClickException(str(e))
        store = ResidentStore.connect(uri, config.DB_NAME, config.COLLECTION_NAME)
        ctx.find_root().call_on_close(store.close)
        store.ensure_indexes()
        obj["store"] = store
    return obj["store"]


def reports_outcome(f):
    """Turns core errors into CLI outcomes: not-found is a warning, the rest exit 1."""
    @functools.wraps(f)
    def wrapper(*args, **kwargs):
        try:
            return f(*args, **kwargs)
        except (ResidentNotFound, AlarmNotFound) as e:
            click.echo(f"Warning: {e}", err=True)
        except ResidentsError as e:
            raise click.ClickException(str(e))
    return wrapper


@click.group()
@click.option("--upsert", is_flag=True, default=False, help="Use upsert instead of insert-or-update for inserts")
@click.pass_context
def cli(ctx, upsert):
    """Residents and their alarms"""
    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s - %(levelname)s - [%(name)s] - %(message)s",
    )
    ctx.ensure_object(dict)["upsert"] = upsert


@cli.command("insert")
@click.argument("name")
@click.argument("birth")
@click.argument("location")
@click.argument("resident_since")
@click.pass_context
@reports_outcome
def insert(ctx, name, birth, location, resident_since):
    """Insert a resident, or update location/resident_since of an existing one."""
    resident = Resident.new(name, birth, location, resident_since)
    store = _store(ctx)
    if ctx.obj.get("upsert"):
        outcome = store.upsert_by_key(resident)
    else:
        outcome = store.insert_or_update(resident)
    click.echo(f"Resident {outcome.action}: {name}")


@cli.command("delete")
@click.argument("name")
@click.argument("birth")
@click.pass_context
@reports_outcome
def delete(ctx, name, birth):
    """Delete a resident and all of its alarms."""
    birth_date = parse_date(birth)
    if _store(ctx).delete_by_key(name, birth_date):
        click.echo(f"Resident deleted: {name}")
    else:
        click.echo(f"Warning: no resident '{name}' born {birth} to delete", err=True)


@cli.command("import-csv")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
@click.pass_context
@reports_outcome
def import_csv(ctx, path):
    """Import residents from a CSV file (name,birth,location,resident_since)."""
    summary = import_residents(_store(ctx), path, upsert=ctx.obj.get("upsert", False))
    click.echo(
        f"Inserted {summary.inserted}, updated {summary.updated} "
        f"({summary.duplicates} duplicates), rejected {len(summary.rejected)}"
    )


@cli.command("new-alarm")
@click.argument("name")
@click.argument("birth")
@click.argument("message")
@click.pass_context
@reports_outcome
def new_alarm(ctx, name, birth, message):
    """Open an alarm. Prints the open time needed to clear it."""
    birth_date = parse_date(birth)
    opened = AlarmManager(_store(ctx)).open_alarm(name, birth_date, message)
    click.echo(format_datetime(opened))


@cli.command("clear-alarm")
@click.argument("name")
@click.argument("birth")
@click.argument("alarm_time")
@click.option("--duration", type=click.IntRange(min=0), default=None,
              help="Record this duration in seconds instead of the elapsed time")
@click.pass_context
@reports_outcome
def clear_alarm(ctx, name, birth, alarm_time, duration):
    """Close the active alarm opened at ALARM_TIME and move it to history."""
    birth_date = parse_date(birth)
    open_time = parse_datetime(alarm_time)
    closed = AlarmManager(_store(ctx)).close_alarm(name, birth_date, open_time, duration)
    click.echo(f"Alarm {format_datetime(closed.time)} cleared after {closed.duration}s")


@cli.command("list-alarms")
@click.argument("name")
@click.argument("birth")
@click.pass_context
@reports_outcome
def list_alarms(ctx, name, birth):
    """Show the active alarms of a resident."""
    birth_date = parse_date(birth)
    alarms = AlarmManager(_store(ctx)).active_alarms(name, birth_date)
    if not alarms:
        click.echo("No active alarms.")
    for alarm in alarms:
        click.echo(f"{format_datetime(alarm.time)}  {alarm.message}")


@cli.command("report")
@click.argument("from_date")
@click.argument("to_date")
@click.option("--name", "name_pattern", default=None, help="Regular expression on the resident name")
@click.option("--location", "location_pattern", default=None, help="Regular expression on the location")
@click.option("--csv", "csv_path", default=None, type=click.Path(dir_okay=False), help="Write the report to this CSV file")
@click.pass_context
@reports_outcome
def report(ctx, from_date, to_date, name_pattern, location_pattern, csv_path):
    """Alarm statistics per resident between FROM_DATE and TO_DATE (inclusive)."""
    # Parse before connecting so bad dates never reach the database.
    parse_datetime(from_date)
    parse_datetime(to_date)
    count = export_report(_store(ctx), from_date, to_date, name_pattern, location_pattern, csv_path)
    if csv_path:
        click.echo(f"Wrote {count} rows to {csv_path}")


@cli.command("setup-db")
@click.pass_context
@reports_outcome
def setup_db(ctx):
    """Create the collection validator and indexes."""
    collection = _store(ctx).residents
    setup_database(collection.database, collection.name)


@cli.command("simple-test")
@click.pass_context
@reports_outcome
def simple_test(ctx):
    """Insert, update, upsert and delete two sample residents."""
    store = _store(ctx)
    store.insert_or_update(Resident.new("John Doe", "1990-01-01", "Room 101", "2020-01-01"))
    store.insert_or_update(Resident.new("John Doe", "1990-01-01", "Room 102", "2021-01-01"))
    store.upsert_by_key(Resident.new("Jane Smith", "1985-05-15", "Room 105", "2019-06-01"))
    store.upsert_by_key(Resident.new("Jane Smith", "1985-05-15", "Room 106", "2022-07-01"))

    store.delete_by_key("John Doe", parse_date("1990-01-01"))
    store.delete_by_key("Jane Smith", parse_date("1985-05-15"))
    click.echo("Simple test done.")


if __name__ == "__main__":
    cli()
