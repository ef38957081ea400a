"""
Tests for residents_db_setup against a mocked database handle.
"""
from unittest.mock import MagicMock

from pymongo.errors import OperationFailure

from residents_db_schemas import RESIDENTS_INDEXES, RESIDENTS_VALIDATOR
from residents_db_setup import setup_database


def test_new_collection_is_created_with_validator_and_indexes() -> None:
    db = MagicMock()
    db.list_collection_names.return_value = []

    setup_database(db, "residents")

    db.create_collection.assert_called_once()
    args, kwargs = db.create_collection.call_args
    assert args == ("residents",)
    assert kwargs["validator"] == RESIDENTS_VALIDATOR
    db.command.assert_not_called()
    assert db["residents"].create_index.call_count == len(RESIDENTS_INDEXES)


def test_existing_collection_gets_coll_mod() -> None:
    db = MagicMock()
    db.list_collection_names.return_value = ["residents"]

    setup_database(db, "residents")

    db.create_collection.assert_not_called()
    command = db.command.call_args[0][0]
    assert command["collMod"] == "residents"
    assert command["validator"] == RESIDENTS_VALIDATOR


def test_unique_index_on_name_and_birth() -> None:
    db = MagicMock()
    db.list_collection_names.return_value = ["residents"]
    db.command.side_effect = OperationFailure("not authorized")

    setup_database(db, "residents")

    calls = db["residents"].create_index.call_args_list
    first_args, first_kwargs = calls[0]
    assert first_args == ([("name", 1), ("birth", 1)],)
    assert first_kwargs["unique"] is True
