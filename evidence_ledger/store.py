"""
Block Stores

Durable persistence for the ledger: a sequence of block metadata records
plus a parallel index -> ciphertext mapping. Stores only ever see
ciphertext; encryption happens in the ledger before a payload arrives here.

Implementations must be:
- Append-only (no update or delete of an existing index)
- Atomic per append (metadata and payload land together or not at all)
"""

import sqlite3
import threading
from abc import ABC, abstractmethod
from contextlib import contextmanager
from pathlib import Path
from typing import Dict, Iterator, List, Optional, Union

from . import config
from .chain import Block
from .errors import StoreError


class BlockStore(ABC):
    """Abstract interface for ledger persistence."""

    @abstractmethod
    def load_blocks(self) -> List[Block]:
        """Return all block metadata in index order."""
        pass

    @abstractmethod
    def append(self, block: Block, payload: Optional[bytes]) -> None:
        """
        Persist one block and its encrypted payload.

        Raises:
            ValueError: If the index already exists
        """
        pass

    @abstractmethod
    def get_payload(self, index: int) -> Optional[bytes]:
        """
        Return the stored payload for index, or None.

        Raises:
            StoreError: If the backend cannot be read
        """
        pass

    @abstractmethod
    def bytes_used(self) -> int:
        """Total size of stored payloads in bytes."""
        pass

    def close(self) -> None:
        """Release resources held by the store."""


class InMemoryBlockStore(BlockStore):
    """
    In-memory block store for development/testing.

    WARNING: Not persistent across restarts.
    """

    def __init__(self):
        self._blocks: List[Block] = []
        self._payloads: Dict[int, bytes] = {}
        self._lock = threading.Lock()

    def load_blocks(self) -> List[Block]:
        with self._lock:
            return list(self._blocks)

    def append(self, block: Block, payload: Optional[bytes]) -> None:
        with self._lock:
            if block.index != len(self._blocks):
                raise ValueError(f"Block index {block.index} is not next in sequence")
            self._blocks.append(block)
            if payload is not None:
                self._payloads[block.index] = bytes(payload)

    def get_payload(self, index: int) -> Optional[bytes]:
        with self._lock:
            return self._payloads.get(index)

    def bytes_used(self) -> int:
        with self._lock:
            return sum(len(blob) for blob in self._payloads.values())


class SqliteBlockStore(BlockStore):
    """
    SQLite-backed block store.

    One connection per store, serialized by a lock. WAL journaling keeps
    readers from blocking the writer.
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()
        self._conn = sqlite3.connect(str(self.path), check_same_thread=False)
        self._conn.execute("PRAGMA journal_mode=WAL;")
        self._conn.execute("PRAGMA synchronous=FULL;")
        self._conn.row_factory = sqlite3.Row
        self._init_schema()

    @contextmanager
    def _transaction(self) -> Iterator[sqlite3.Connection]:
        """
        Context manager for database transactions.
        Automatically commits on success, rolls back on failure.
        """
        with self._lock:
            try:
                yield self._conn
                self._conn.commit()
            except Exception:
                self._conn.rollback()
                raise

    def _init_schema(self) -> None:
        with self._transaction() as conn:
            conn.execute("""
            CREATE TABLE IF NOT EXISTS blocks (
                idx INTEGER PRIMARY KEY,
                previous_hash TEXT NOT NULL,
                timestamp INTEGER NOT NULL,
                data_hash TEXT NOT NULL,
                signature TEXT NOT NULL
            );""")
            conn.execute("""
            CREATE TABLE IF NOT EXISTS payloads (
                idx INTEGER PRIMARY KEY REFERENCES blocks(idx),
                blob BLOB NOT NULL
            );""")

    def load_blocks(self) -> List[Block]:
        with self._lock:
            rows = self._conn.execute(
                "SELECT idx, previous_hash, timestamp, data_hash, signature FROM blocks ORDER BY idx"
            ).fetchall()
        return [
            Block(
                index=row["idx"],
                previous_hash=row["previous_hash"],
                timestamp=row["timestamp"],
                data_hash=row["data_hash"],
                signature=row["signature"],
            )
            for row in rows
        ]

    def append(self, block: Block, payload: Optional[bytes]) -> None:
        try:
            with self._transaction() as conn:
                conn.execute(
                    "INSERT INTO blocks(idx, previous_hash, timestamp, data_hash, signature) "
                    "VALUES(?,?,?,?,?)",
                    (block.index, block.previous_hash, block.timestamp, block.data_hash, block.signature)
                )
                if payload is not None:
                    conn.execute(
                        "INSERT INTO payloads(idx, blob) VALUES(?,?)",
                        (block.index, sqlite3.Binary(payload))
                    )
        except sqlite3.IntegrityError as e:
            raise ValueError(f"Block index {block.index} already stored") from e

    def get_payload(self, index: int) -> Optional[bytes]:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT blob FROM payloads WHERE idx=?", (index,)
                ).fetchone()
        except sqlite3.Error as e:
            raise StoreError(f"Cannot read payload {index}: {type(e).__name__}") from e
        return bytes(row["blob"]) if row else None

    def bytes_used(self) -> int:
        with self._lock:
            row = self._conn.execute(
                "SELECT COALESCE(SUM(LENGTH(blob)), 0) AS total FROM payloads"
            ).fetchone()
        return int(row["total"])

    def close(self) -> None:
        with self._lock:
            self._conn.close()


def get_block_store(
    kind: str = config.STORE_KIND,
    path: Union[str, Path] = config.DB_PATH
) -> BlockStore:
    """
    Factory function to create the configured block store.

    Args:
        kind: "sqlite" or "memory"
        path: Database file (sqlite only)
    """
    if kind == "memory":
        return InMemoryBlockStore()
    if kind == "sqlite":
        return SqliteBlockStore(path)
    raise ValueError(f"Unknown block store: {kind}")
