# SPDX-License-Identifier: MIT
# Copyright (c) 2025 webhook-telemetry contributors

"""In-memory failure store for testing and local development."""

import copy
import logging
import threading
from typing import Dict, Optional

from .failure_store import FailureRecord, FailureStore, FailureStoreNotConnectedError

logger = logging.getLogger(__name__)


class InMemoryFailureStore(FailureStore):
    """Failure store kept in a dict keyed by signature.

    The dict key plays the role of the unique index; a lock makes each
    operation atomic with respect to concurrent reporters.
    """

    def __init__(self):
        self.records: Dict[str, FailureRecord] = {}
        self.connected = False
        self._lock = threading.Lock()

    def connect(self) -> None:
        """Pretend to connect. Always succeeds."""
        self.connected = True
        logger.debug("InMemoryFailureStore: connected")

    def disconnect(self) -> None:
        self.connected = False
        logger.debug("InMemoryFailureStore: disconnected")

    def _check_connected(self) -> None:
        if not self.connected:
            raise FailureStoreNotConnectedError("InMemoryFailureStore is not connected")

    def increment_if_exists(self, signature: str) -> Optional[FailureRecord]:
        self._check_connected()
        with self._lock:
            record = self.records.get(signature)
            if record is None:
                return None
            record.occurrences += 1
            return copy.deepcopy(record)

    def insert_or_increment(self, record: FailureRecord) -> FailureRecord:
        self._check_connected()
        with self._lock:
            existing = self.records.get(record.signature)
            if existing is not None:
                existing.occurrences += 1
                logger.debug(
                    f"InMemoryFailureStore: signature {record.signature[:12]} already stored, "
                    f"now {existing.occurrences} occurrences"
                )
                return copy.deepcopy(existing)

            self.records[record.signature] = copy.deepcopy(record)
            return copy.deepcopy(record)

    def get(self, signature: str) -> Optional[FailureRecord]:
        self._check_connected()
        with self._lock:
            record = self.records.get(signature)
            return copy.deepcopy(record) if record is not None else None

    def get_full_text(self, message_id: str) -> Optional[str]:
        self._check_connected()
        with self._lock:
            for record in self.records.values():
                if record.message_id == message_id:
                    return record.full_text
        return None

    def delete(self, signature: str) -> None:
        """Remove a record, as an administrator would."""
        with self._lock:
            self.records.pop(signature, None)
