"""
Record store for the auction coordinator.

Holds three named collections - "users", "items" and "auction" - as whole
JSON snapshots. Callers always load a full collection, change it in memory
and save it back. save_many() writes several collections in one transaction
so a bid never updates items without also updating users.
"""

import copy
import json
import logging
import sqlite3
from abc import ABC, abstractmethod
from typing import Any, Dict

from .errors import InvalidInput, ServerError

logger = logging.getLogger(__name__)

COLLECTIONS = ("users", "items", "auction")


def empty_collection(name: str) -> Any:
    """Value returned for a collection that has never been saved."""
    if name == "auction":
        return {"isOpen": False, "startTime": None}
    return []


def _check_name(name: str):
    if name not in COLLECTIONS:
        raise InvalidInput(f"unknown collection: {name}")


class RecordStore(ABC):
    """
    Abstract key-collection store.
    Subclasses implement the snapshot read and the atomic multi-write.
    """

    @abstractmethod
    def load(self, name: str) -> Any:
        """Return a full snapshot of a collection."""
        pass

    @abstractmethod
    def save_many(self, collections: Dict[str, Any]):
        """Overwrite every given collection, all or nothing."""
        pass

    def save(self, name: str, value: Any):
        """Overwrite a single collection."""
        self.save_many({name: value})

    def add(self, name: str, record: Any):
        """Append one record to a list collection."""
        records = self.load(name)
        if not isinstance(records, list):
            records = []
        records.append(record)
        self.save(name, records)

    def close(self):
        pass


class MemoryStore(RecordStore):
    """Process-local store, mostly for tests. Snapshots are deep copies."""

    def __init__(self, initial: Dict[str, Any] = None):
        self._data: Dict[str, Any] = {}
        if initial:
            self.save_many(initial)

    def load(self, name: str) -> Any:
        _check_name(name)
        if name not in self._data:
            return empty_collection(name)
        return copy.deepcopy(self._data[name])

    def save_many(self, collections: Dict[str, Any]):
        for name in collections:
            _check_name(name)
        for name, value in collections.items():
            self._data[name] = copy.deepcopy(value)


class SQLiteStore(RecordStore):
    """
    Collections kept as JSON text in a single SQLite table.

    One connection is shared across threads; callers serialize access
    through the auction manager's lock.
    """

    def __init__(self, db_path: str = "auction.db"):
        self.db_path = db_path
        try:
            self.conn = sqlite3.connect(db_path, check_same_thread=False)
            self.conn.row_factory = sqlite3.Row
            self.conn.execute("""
            CREATE TABLE IF NOT EXISTS collections (
                name TEXT PRIMARY KEY,
                data TEXT NOT NULL
            )
            """)
            self.conn.commit()
        except sqlite3.Error as e:
            logger.error("Could not open store at %s: %s", db_path, e)
            raise ServerError(f"could not open store: {e}") from e

    def load(self, name: str) -> Any:
        _check_name(name)
        try:
            cur = self.conn.execute(
                "SELECT data FROM collections WHERE name = ?", (name,))
            row = cur.fetchone()
            if row is None:
                return empty_collection(name)
            return json.loads(row["data"])
        except (sqlite3.Error, ValueError) as e:
            logger.error("Failed to load collection '%s': %s", name, e)
            raise ServerError(f"could not load {name}") from e

    def save_many(self, collections: Dict[str, Any]):
        for name in collections:
            _check_name(name)
        try:
            # The connection context manager commits on success and rolls back on error
            with self.conn:
                for name, value in collections.items():
                    self.conn.execute(
                        "INSERT OR REPLACE INTO collections (name, data) VALUES (?, ?)",
                        (name, json.dumps(value)))
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error("Failed to save collections %s: %s", list(collections), e)
            raise ServerError(f"could not save {', '.join(collections)}") from e

    def close(self):
        if self.conn is not None:
            self.conn.close()
            self.conn = None
