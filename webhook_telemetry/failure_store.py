# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""Abstract failure store: persisted deduplication state for reported errors.

Each record is keyed by the failure's signature. Backends must provide a
uniqueness guarantee on the signature so that concurrent first reports of the
same failure converge on one record.
"""

import os
from abc import ABC, abstractmethod
from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional


class FailureStoreError(Exception):
    """Base exception for failure store errors."""
    pass


class FailureStoreNotConnectedError(FailureStoreError):
    """Exception raised when attempting operations on a disconnected store."""
    pass


class FailureStoreConnectionError(FailureStoreError):
    """Exception raised when connection to the failure store fails."""
    pass


@dataclass
class FailureRecord:
    """Persisted state of one distinct failure."""

    signature: str
    full_text: str
    message_id: str
    occurrences: int = 1
    summary: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return asdict(self)

    @classmethod
    def from_dict(cls, doc: Dict[str, Any]) -> "FailureRecord":
        """Build a record from a stored document, ignoring backend-only keys."""
        return cls(
            signature=doc["signature"],
            full_text=doc["full_text"],
            message_id=str(doc["message_id"]),
            occurrences=int(doc.get("occurrences", 1)),
            summary=doc.get("summary"),
        )


class FailureStore(ABC):
    """Abstract base class for failure store backends."""

    @abstractmethod
    def connect(self) -> None:
        """Connect to the store.

        Raises:
            FailureStoreConnectionError: If connection fails
        """
        pass

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect from the store."""
        pass

    @abstractmethod
    def increment_if_exists(self, signature: str) -> Optional[FailureRecord]:
        """Atomically add one occurrence to an existing record.

        Args:
            signature: Failure signature

        Returns:
            The record after the increment, or None if no record exists
        """
        pass

    @abstractmethod
    def insert_or_increment(self, record: FailureRecord) -> FailureRecord:
        """Insert *record*, or increment the existing one on a signature conflict.

        Args:
            record: New record with ``occurrences == 1``

        Returns:
            The stored record. Its ``message_id`` differs from the argument's
            when another caller inserted the signature first.
        """
        pass

    @abstractmethod
    def get(self, signature: str) -> Optional[FailureRecord]:
        """Look up a record by signature."""
        pass

    @abstractmethod
    def get_full_text(self, message_id: str) -> Optional[str]:
        """Return the full failure text for a summary message id, or None."""
        pass


def create_failure_store(store_type: str | None = None, **kwargs) -> FailureStore:
    """Factory function to create a failure store.

    Args:
        store_type: "inmemory" or "mongodb". If None, reads FAILURE_STORE_TYPE
            (defaults to "inmemory")
        **kwargs: Store-specific arguments. For MongoDB, missing connection
            settings are read from FAILURE_STORE_HOST, FAILURE_STORE_PORT,
            FAILURE_STORE_DATABASE, FAILURE_STORE_USER and FAILURE_STORE_PASSWORD

    Returns:
        FailureStore instance

    Raises:
        ValueError: If store_type is not recognized
    """
    if store_type is None:
        store_type = os.getenv("FAILURE_STORE_TYPE", "inmemory")

    if store_type == "inmemory":
        from .inmemory_failure_store import InMemoryFailureStore
        return InMemoryFailureStore()
    elif store_type == "mongodb":
        from .mongo_failure_store import MongoFailureStore

        # Explicit parameters take precedence over environment variables
        mongo_kwargs = dict(kwargs)
        mongo_kwargs.setdefault("host", os.getenv("FAILURE_STORE_HOST", "localhost"))
        mongo_kwargs.setdefault("port", int(os.getenv("FAILURE_STORE_PORT", "27017")))
        mongo_kwargs.setdefault("database", os.getenv("FAILURE_STORE_DATABASE", "telemetry"))

        username = os.getenv("FAILURE_STORE_USER")
        if username is not None:
            mongo_kwargs.setdefault("username", username)
        password = os.getenv("FAILURE_STORE_PASSWORD")
        if password is not None:
            mongo_kwargs.setdefault("password", password)

        return MongoFailureStore(**mongo_kwargs)
    else:
        raise ValueError(f"Unknown store_type: {store_type}")
