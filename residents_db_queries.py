# residents_db_queries.py
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Iterator, Optional

from pymongo import MongoClient
from pymongo.errors import DuplicateKeyError, PyMongoError

from residents_db_schemas import RESIDENTS_INDEXES
from residents_errors import DuplicateResident, StoreUnavailable
from residents_models import Resident

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WriteOutcome:
    """What a resident write did, for logging and import auditing."""

    action: str  # "inserted" or "updated"
    inserted_id: Optional[Any] = None
    matched_count: int = 0
    modified_count: int = 0
    duplicate: bool = False


@contextmanager
def _store_errors(operation):
    try:
        yield
    except DuplicateKeyError:
        raise
    except PyMongoError as e:
        logger.error("Failed to %s: %s", operation, e)
        raise StoreUnavailable(f"Failed to {operation}: {e}") from e


class ResidentStore:
    """
    All database operations on the residents collection.

    The store never opens a connection by itself when given a collection;
    use ``ResidentStore.connect`` to get one that owns its client.
    """
    def __init__(self, collection, client=None):
        self.residents = collection
        self._client = client

    @classmethod
    def connect(cls, uri, db_name, collection_name):
        """Connects, pings the server and returns a store owning the client."""
        with _store_errors("connect to MongoDB"):
            client = MongoClient(uri)
            db = client[db_name]
            db.command("ping")
        logger.info("Connected to database '%s', collection '%s'", db_name, collection_name)
        return cls(db[collection_name], client=client)

    def close(self):
        if self._client is not None:
            self._client.close()
            self._client = None

    def __enter__(self):
        return self

    def __exit__(self, *exc):
        self.close()

    # --- Setup ---
    def ensure_indexes(self):
        """Creates the indexes the store relies on, most importantly the unique (name, birth) one."""
        with _store_errors("create indexes"):
            for spec in RESIDENTS_INDEXES:
                self.residents.create_index(list(spec["keys"].items()), **spec["options"])

    # --- Lookups ---
    @staticmethod
    def unique_key(name, birth):
        return {"name": name, "birth": birth}

    def find(self, name, birth, projection=None, extra_filter=None):
        query = self.unique_key(name, birth)
        if extra_filter:
            query.update(extra_filter)
        with _store_errors("find resident"):
            return self.residents.find_one(query, projection)

    def get(self, name, birth) -> Optional[Resident]:
        doc = self.find(name, birth)
        return Resident.from_document(doc) if doc else None

    # --- Resident writes ---
    def insert_new(self, resident: Resident) -> WriteOutcome:
        """Inserts a resident. Raises DuplicateResident when (name, birth) exists."""
        doc = resident.to_document()
        try:
            with _store_errors("insert resident"):
                inserted_id = self.residents.insert_one(doc).inserted_id
        except DuplicateKeyError:
            raise DuplicateResident(resident.name, resident.birth) from None
        logger.info("New resident inserted with id: %s", inserted_id)
        return WriteOutcome("inserted", inserted_id=inserted_id)

    def _update_fields(self, resident: Resident, duplicate=False) -> WriteOutcome:
        with _store_errors("update resident"):
            result = self.residents.update_one(
                self.unique_key(resident.name, resident.birth),
                {"$set": resident.update_fields()},
            )
        logger.info("Resident updated. Matched: %d Updated: %d", result.matched_count, result.modified_count)
        return WriteOutcome(
            "updated",
            matched_count=result.matched_count,
            modified_count=result.modified_count,
            duplicate=duplicate,
        )

    def upsert_by_key(self, resident: Resident) -> WriteOutcome:
        """Updates location/resident_since of a match, or inserts with empty alarm lists."""
        try:
            with _store_errors("upsert resident"):
                result = self.residents.update_one(
                    self.unique_key(resident.name, resident.birth),
                    {
                        "$set": resident.update_fields(),
                        "$setOnInsert": {"alarms": [], "active_alarms": []},
                    },
                    upsert=True,
                )
        except DuplicateKeyError:
            # Lost a race with a concurrent insert of the same (name, birth).
            raise DuplicateResident(resident.name, resident.birth) from None
        if result.upserted_id is not None:
            logger.info("New resident inserted with id: %s", result.upserted_id)
            return WriteOutcome("inserted", inserted_id=result.upserted_id)
        logger.info("Resident updated. Matched: %d Updated: %d", result.matched_count, result.modified_count)
        return WriteOutcome("updated", matched_count=result.matched_count, modified_count=result.modified_count)

    def insert_or_update(self, resident: Resident) -> WriteOutcome:
        """Inserts, and on a duplicate key updates location/resident_since from ``resident``."""
        try:
            return self.insert_new(resident)
        except DuplicateResident:
            logger.warning(
                "Duplicate key: resident '%s' born %s already exists. Updating...",
                resident.name, resident.birth.date(),
            )
            return self._update_fields(resident, duplicate=True)

    def delete_by_key(self, name, birth) -> bool:
        """Deletes a resident. Returns False when nothing matched."""
        with _store_errors("delete resident"):
            result = self.residents.delete_one(self.unique_key(name, birth))
        if result.deleted_count:
            logger.info("Resident '%s' deleted successfully.", name)
        else:
            logger.warning("No resident '%s' found to delete.", name)
        return result.deleted_count > 0

    # --- Array mutations ---
    def mutate_array(self, name, birth, push=None, pull=None, extra_filter=None):
        """
        Applies ``$push`` and/or ``$pull`` to one resident in a single update.

        ``push`` and ``pull`` map an array field to the element to append or
        the sub-predicate of elements to remove. ``extra_filter`` narrows the
        match, e.g. to require that an element is (or is not) present.
        """
        query = self.unique_key(name, birth)
        if extra_filter:
            query.update(extra_filter)
        update = {}
        if push:
            update["$push"] = push
        if pull:
            update["$pull"] = pull
        if not update:
            raise ValueError("mutate_array needs push or pull")
        with _store_errors("update alarms"):
            return self.residents.update_one(query, update)

    # --- Analytical queries ---
    def query(self, pipeline) -> Iterator[dict]:
        """
        Runs an aggregation and yields its rows lazily.

        The cursor is closed when the iteration finishes, fails, or the
        generator is closed before being exhausted.
        """
        with _store_errors("run query"):
            cursor = self.residents.aggregate(pipeline)
        try:
            with _store_errors("read query results"):
                for row in cursor:
                    yield row
        finally:
            cursor.close()
