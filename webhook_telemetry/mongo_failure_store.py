# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""MongoDB failure store implementation."""

import logging
from typing import Any, Dict, Optional

from pymongo import ASCENDING, MongoClient, ReturnDocument
from pymongo.errors import ConnectionFailure, DuplicateKeyError, PyMongoError

from .failure_store import (
    FailureRecord,
    FailureStore,
    FailureStoreConnectionError,
    FailureStoreError,
    FailureStoreNotConnectedError,
)

logger = logging.getLogger(__name__)


class MongoFailureStore(FailureStore):
    """Failure store backed by one MongoDB collection.

    The collection carries a unique index on ``signature``; a losing
    concurrent insert surfaces as ``DuplicateKeyError`` and is turned into an
    increment of the winning document.
    """

    def __init__(
        self,
        host: str | None = None,
        port: int | None = None,
        username: str | None = None,
        password: str | None = None,
        database: str | None = None,
        collection: str = "errors",
        **kwargs
    ):
        """Initialize MongoDB failure store.

        Args:
            host: MongoDB host (required)
            port: MongoDB port (required)
            username: MongoDB username (optional)
            password: MongoDB password (optional)
            database: Database name (required)
            collection: Collection holding failure records
            **kwargs: Additional MongoDB client options

        Raises:
            ValueError: If host, port or database is not provided
        """
        if not host:
            raise ValueError("MongoDB host is required.")
        if port is None:
            raise ValueError("MongoDB port is required.")
        if not database:
            raise ValueError("MongoDB database is required.")

        self.host = host
        self.port = port
        self.username = username
        self.password = password
        self.database_name = database
        self.collection_name = collection
        self.client_options = kwargs
        self.client = None
        self.collection = None

    def connect(self) -> None:
        """Connect to MongoDB and ensure the indexes exist.

        Raises:
            FailureStoreConnectionError: If connection fails
        """
        connection_params: Dict[str, Any] = {"host": self.host, "port": self.port}
        if self.username and self.password:
            connection_params["username"] = self.username
            connection_params["password"] = self.password
            if "authSource" not in self.client_options:
                connection_params["authSource"] = "admin"
        connection_params.update(self.client_options)

        try:
            self.client = MongoClient(**connection_params)
            self.client.admin.command("ping")

            self.collection = self.client[self.database_name][self.collection_name]
            self.collection.create_index([("signature", ASCENDING)], unique=True)
            self.collection.create_index([("message_id", ASCENDING)])

            logger.info("MongoFailureStore: connected to %s:%s/%s", self.host, self.port, self.database_name)
        except ConnectionFailure as e:
            logger.error("MongoFailureStore: connection failed - %s", e)
            raise FailureStoreConnectionError(f"Failed to connect to MongoDB at {self.host}:{self.port}") from e
        except PyMongoError as e:
            logger.error("MongoFailureStore: unexpected error during connect - %s", e)
            raise FailureStoreConnectionError(f"Unexpected error connecting to MongoDB: {e}") from e

    def disconnect(self) -> None:
        if self.client:
            self.client.close()
            self.client = None
            self.collection = None
            logger.info("MongoFailureStore: disconnected")

    def _get_collection(self):
        if self.collection is None:
            raise FailureStoreNotConnectedError("Not connected to MongoDB")
        return self.collection

    def increment_if_exists(self, signature: str) -> Optional[FailureRecord]:
        collection = self._get_collection()
        try:
            doc = collection.find_one_and_update(
                {"signature": signature},
                {"$inc": {"occurrences": 1}},
                return_document=ReturnDocument.AFTER,
            )
        except PyMongoError as e:
            raise FailureStoreError(f"Failed to increment failure {signature[:12]}: {e}") from e

        return FailureRecord.from_dict(doc) if doc else None

    def insert_or_increment(self, record: FailureRecord) -> FailureRecord:
        collection = self._get_collection()
        try:
            collection.insert_one(record.to_dict())
            return record
        except DuplicateKeyError:
            logger.info(f"MongoFailureStore: signature {record.signature[:12]} inserted concurrently")
        except PyMongoError as e:
            raise FailureStoreError(f"Failed to insert failure {record.signature[:12]}: {e}") from e

        existing = self.increment_if_exists(record.signature)
        if existing is None:
            raise FailureStoreError(
                f"Failure {record.signature[:12]} conflicted on insert but no longer exists"
            )
        return existing

    def get(self, signature: str) -> Optional[FailureRecord]:
        collection = self._get_collection()
        try:
            doc = collection.find_one({"signature": signature})
        except PyMongoError as e:
            raise FailureStoreError(f"Failed to read failure {signature[:12]}: {e}") from e
        return FailureRecord.from_dict(doc) if doc else None

    def get_full_text(self, message_id: str) -> Optional[str]:
        collection = self._get_collection()
        try:
            doc = collection.find_one({"message_id": message_id}, {"full_text": 1})
        except PyMongoError as e:
            raise FailureStoreError(f"Failed to read failure for message {message_id}: {e}") from e
        return doc["full_text"] if doc else None
