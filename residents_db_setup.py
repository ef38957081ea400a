# residents_db_setup.py
import logging

from pymongo.errors import CollectionInvalid, OperationFailure

from residents_db_schemas import RESIDENTS_INDEXES, RESIDENTS_VALIDATOR

logger = logging.getLogger(__name__)


def _ensure_indexes(collection, x_indexes: list):
    for spec in x_indexes or []:
        keys = spec.get("keys")
        if not keys:
            continue
        collection.create_index(list(keys.items()), **spec.get("options", {}))
        logger.info("  - Index %s ready on '%s'", spec.get("options", {}).get("name", keys), collection.name)


def _apply_collection_schema(db, name, validator, validation_level="moderate", validation_action="error"):
    if name not in db.list_collection_names():
        logger.info("Creating collection '%s' with validator...", name)
        try:
            db.create_collection(name, validator=validator, validationLevel=validation_level,
                                 validationAction=validation_action)
            return
        except CollectionInvalid:
            # Created concurrently; fall through to collMod
            pass
    logger.info("Updating validator for existing collection '%s'...", name)
    try:
        db.command({
            "collMod": name,
            "validator": validator,
            "validationLevel": validation_level,
            "validationAction": validation_action,
        })
    except OperationFailure as e:
        logger.warning("  - collMod failed for %s: %s", name, e)


def setup_database(db, collection_name):
    """
    Creates the residents collection with its validator and indexes.

    Safe to run repeatedly. The unique (name, birth) index is what makes
    duplicate inserts fail, so it must exist before residents are written.
    """
    _apply_collection_schema(db, collection_name, RESIDENTS_VALIDATOR)
    _ensure_indexes(db[collection_name], RESIDENTS_INDEXES)
    logger.info("Database setup complete. Collection, validator, and indexes are ready.")
