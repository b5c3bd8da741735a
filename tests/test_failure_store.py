# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Tests for failure store backends and the store factory."""

import threading
from unittest.mock import MagicMock, patch

import pytest
from pymongo import ReturnDocument
from pymongo.errors import ConnectionFailure, DuplicateKeyError, OperationFailure

from webhook_telemetry import (
    FailureRecord,
    FailureStoreConnectionError,
    FailureStoreError,
    FailureStoreNotConnectedError,
    InMemoryFailureStore,
    MongoFailureStore,
    create_failure_store,
)


def make_record(signature="abc123", message_id="m1", full_text="Traceback...\nValueError: boom"):
    return FailureRecord(
        signature=signature,
        full_text=full_text,
        message_id=message_id,
        summary={"title": "ValueError: boom"},
    )


class TestFailureRecord:
    """Tests for FailureRecord."""

    def test_from_dict_ignores_backend_keys(self):
        """Test that storage-only keys such as _id are ignored."""
        record = FailureRecord.from_dict({
            "_id": "object-id",
            "signature": "s",
            "full_text": "t",
            "message_id": 42,
            "occurrences": 3,
        })

        assert record == FailureRecord(signature="s", full_text="t", message_id="42", occurrences=3)

    def test_to_dict(self):
        """Test conversion to a storable document."""
        doc = make_record().to_dict()

        assert doc["signature"] == "abc123"
        assert doc["occurrences"] == 1
        assert doc["summary"] == {"title": "ValueError: boom"}


class TestInMemoryFailureStore:
    """Tests for InMemoryFailureStore."""

    def test_requires_connection(self):
        """Test that operations fail before connect."""
        store = InMemoryFailureStore()

        with pytest.raises(FailureStoreNotConnectedError):
            store.get("abc123")

    def test_increment_if_exists_on_missing_signature(self, store):
        """Test that nothing is created by a plain increment."""
        assert store.increment_if_exists("missing") is None
        assert store.records == {}

    def test_insert_then_increment(self, store):
        """Test that an inserted record counts further occurrences."""
        inserted = store.insert_or_increment(make_record())
        incremented = store.increment_if_exists("abc123")

        assert inserted.occurrences == 1
        assert incremented.occurrences == 2
        assert store.get("abc123").occurrences == 2

    def test_conflicting_insert_returns_existing_record(self, store):
        """Test that a second insert of a signature increments the first record."""
        store.insert_or_increment(make_record(message_id="winner"))

        stored = store.insert_or_increment(make_record(message_id="loser"))

        assert stored.message_id == "winner"
        assert stored.occurrences == 2

    def test_returned_records_are_copies(self, store):
        """Test that callers cannot mutate stored state."""
        store.insert_or_increment(make_record())

        store.get("abc123").occurrences = 100

        assert store.get("abc123").occurrences == 1

    def test_get_full_text_by_message_id(self, store):
        """Test lookup of the full text behind a summary message."""
        store.insert_or_increment(make_record(message_id="m9", full_text="full"))

        assert store.get_full_text("m9") == "full"
        assert store.get_full_text("unknown") is None

    def test_delete(self, store):
        """Test that a deleted record is gone."""
        store.insert_or_increment(make_record())

        store.delete("abc123")

        assert store.get("abc123") is None

    def test_concurrent_inserts_converge(self, store):
        """Test that racing inserts of one signature produce one record."""
        barrier = threading.Barrier(10)
        results = []
        lock = threading.Lock()

        def insert(index):
            barrier.wait()
            stored = store.insert_or_increment(make_record(message_id=f"m{index}"))
            with lock:
                results.append(stored)

        threads = [threading.Thread(target=insert, args=(i,)) for i in range(10)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(store.records) == 1
        assert store.get("abc123").occurrences == 10
        assert len({r.message_id for r in results}) == 1


class TestMongoFailureStore:
    """Tests for MongoFailureStore against a mocked client."""

    @pytest.fixture
    def mock_client_class(self):
        with patch("webhook_telemetry.mongo_failure_store.MongoClient") as mock_class:
            yield mock_class

    @pytest.fixture
    def collection(self, mock_client_class):
        client = mock_client_class.return_value
        return client.__getitem__.return_value.__getitem__.return_value

    @pytest.fixture
    def mongo_store(self, mock_client_class):
        store = MongoFailureStore(host="localhost", port=27017, database="telemetry")
        store.connect()
        return store

    def test_requires_settings(self):
        """Test that host, port and database are mandatory."""
        with pytest.raises(ValueError):
            MongoFailureStore(port=27017, database="db")
        with pytest.raises(ValueError):
            MongoFailureStore(host="h", database="db")
        with pytest.raises(ValueError):
            MongoFailureStore(host="h", port=27017)

    def test_connect_creates_indexes(self, mongo_store, mock_client_class, collection):
        """Test that connect pings the server and creates the indexes."""
        client = mock_client_class.return_value
        client.admin.command.assert_called_once_with("ping")
        client.__getitem__.assert_called_with("telemetry")
        client.__getitem__.return_value.__getitem__.assert_called_with("errors")

        index_calls = collection.create_index.call_args_list
        assert index_calls[0].args == ([("signature", 1)],)
        assert index_calls[0].kwargs == {"unique": True}
        assert index_calls[1].args == ([("message_id", 1)],)

    def test_connect_passes_credentials(self, mock_client_class):
        """Test that credentials default to the admin auth source."""
        store = MongoFailureStore(
            host="db", port=27018, username="u", password="p", database="telemetry"
        )

        store.connect()

        mock_client_class.assert_called_once_with(
            host="db", port=27018, username="u", password="p", authSource="admin"
        )

    def test_connect_failure(self, mock_client_class):
        """Test that connection errors are wrapped."""
        mock_client_class.return_value.admin.command.side_effect = ConnectionFailure("refused")
        store = MongoFailureStore(host="localhost", port=27017, database="telemetry")

        with pytest.raises(FailureStoreConnectionError):
            store.connect()

    def test_not_connected(self):
        """Test that operations fail before connect."""
        store = MongoFailureStore(host="localhost", port=27017, database="telemetry")

        with pytest.raises(FailureStoreNotConnectedError):
            store.increment_if_exists("abc")

    def test_increment_if_exists(self, mongo_store, collection):
        """Test the atomic increment and its returned document."""
        collection.find_one_and_update.return_value = {
            "_id": "x", "signature": "abc123", "full_text": "t", "message_id": "m1", "occurrences": 4,
        }

        record = mongo_store.increment_if_exists("abc123")

        assert record.occurrences == 4
        collection.find_one_and_update.assert_called_once_with(
            {"signature": "abc123"},
            {"$inc": {"occurrences": 1}},
            return_document=ReturnDocument.AFTER,
        )

    def test_increment_if_exists_missing(self, mongo_store, collection):
        """Test that a missing signature yields None."""
        collection.find_one_and_update.return_value = None

        assert mongo_store.increment_if_exists("abc123") is None

    def test_insert(self, mongo_store, collection):
        """Test that a new signature is inserted as given."""
        record = make_record()

        stored = mongo_store.insert_or_increment(record)

        assert stored == record
        collection.insert_one.assert_called_once_with(record.to_dict())

    def test_duplicate_insert_increments_winner(self, mongo_store, collection):
        """Test that a unique index conflict turns into an increment."""
        collection.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key")
        collection.find_one_and_update.return_value = {
            "signature": "abc123", "full_text": "t", "message_id": "winner", "occurrences": 2,
        }

        stored = mongo_store.insert_or_increment(make_record(message_id="loser"))

        assert stored.message_id == "winner"
        assert stored.occurrences == 2

    def test_duplicate_insert_of_vanished_record(self, mongo_store, collection):
        """Test the error when the conflicting record was removed meanwhile."""
        collection.insert_one.side_effect = DuplicateKeyError("E11000 duplicate key")
        collection.find_one_and_update.return_value = None

        with pytest.raises(FailureStoreError):
            mongo_store.insert_or_increment(make_record())

    def test_operation_errors_are_wrapped(self, mongo_store, collection):
        """Test that driver errors surface as FailureStoreError."""
        collection.find_one.side_effect = OperationFailure("not authorized")

        with pytest.raises(FailureStoreError):
            mongo_store.get("abc123")

    def test_get_full_text(self, mongo_store, collection):
        """Test lookup by message id with a projection."""
        collection.find_one.return_value = {"full_text": "full"}

        assert mongo_store.get_full_text("m1") == "full"
        collection.find_one.assert_called_once_with({"message_id": "m1"}, {"full_text": 1})

    def test_disconnect(self, mongo_store, mock_client_class):
        """Test that disconnect closes the client."""
        mongo_store.disconnect()

        mock_client_class.return_value.close.assert_called_once()
        with pytest.raises(FailureStoreNotConnectedError):
            mongo_store.get("abc123")


class TestCreateFailureStore:
    """Tests for create_failure_store."""

    def test_defaults_to_in_memory(self, monkeypatch):
        """Test the default backend."""
        monkeypatch.delenv("FAILURE_STORE_TYPE", raising=False)

        assert isinstance(create_failure_store(), InMemoryFailureStore)

    def test_mongodb_from_environment(self, monkeypatch):
        """Test that MongoDB settings are read from the environment."""
        monkeypatch.setenv("FAILURE_STORE_TYPE", "mongodb")
        monkeypatch.setenv("FAILURE_STORE_HOST", "mongo")
        monkeypatch.setenv("FAILURE_STORE_PORT", "27019")
        monkeypatch.setenv("FAILURE_STORE_DATABASE", "bot")
        monkeypatch.setenv("FAILURE_STORE_USER", "admin")
        monkeypatch.setenv("FAILURE_STORE_PASSWORD", "secret")

        store = create_failure_store()

        assert isinstance(store, MongoFailureStore)
        assert (store.host, store.port, store.database_name) == ("mongo", 27019, "bot")
        assert (store.username, store.password) == ("admin", "secret")

    def test_explicit_arguments_win(self, monkeypatch):
        """Test that keyword arguments override the environment."""
        monkeypatch.setenv("FAILURE_STORE_HOST", "mongo")

        store = create_failure_store("mongodb", host="other", port=1)

        assert (store.host, store.port) == ("other", 1)

    def test_unknown_type(self):
        """Test that unknown backends are rejected."""
        with pytest.raises(ValueError):
            create_failure_store("redis")
