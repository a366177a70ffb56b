"""
SQLite storage for tracking seen feed items.

Provides async database operations to persist which items were
already reported, one partition per feed, with all changes of a
run committed in a single transaction.
"""

import logging
import os
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite

logger = logging.getLogger(__name__)

MEMORY_DATABASE = ":memory:"

# Value stored for every seen item, only its presence matters
SEEN_MARKER = "1"


async def _undo(connection: aiosqlite.Connection, *statements: str) -> None:
    """
    Run rollback statements while an error is already propagating.

    A failure here is logged and dropped so the caller can re-raise
    the error that caused the rollback.
    """
    try:
        for statement in statements:
            await connection.execute(statement)
    except (aiosqlite.Error, ValueError) as e:
        logger.error("Rollback failed (%s): %s", statements[0], e)


class StorageError(Exception):
    """Raised when the store cannot be opened, read or committed."""

    pass


class PartitionError(StorageError):
    """Raised when a feed's partition cannot be created or accessed."""

    pass


class Transaction:
    """
    Handle on an open store transaction.

    All reads see the writes made earlier through the same handle.
    Nothing is visible to other connections until the owning
    ``Storage.transaction()`` block commits.
    """

    def __init__(self, connection: aiosqlite.Connection):
        """
        Initialize the handle.

        Parameters
        ----------
        connection : aiosqlite.Connection
            Connection with an open transaction.
        """
        self._connection = connection
        self.writes = 0

    async def ensure_partition(self, feed_ref: str) -> None:
        """
        Create the partition for a feed if it does not exist yet.

        Parameters
        ----------
        feed_ref : str
            Canonical feed identifier.

        Raises
        ------
        PartitionError
            If the partition cannot be created.
        """
        now = datetime.now(timezone.utc).isoformat()
        try:
            await self._connection.execute(
                "INSERT OR IGNORE INTO feeds (feed_ref, created_at) VALUES (?, ?)",
                (feed_ref, now),
            )
        except aiosqlite.Error as e:
            raise PartitionError(f"Failed creating partition '{feed_ref}': {e}") from e

    async def contains(self, feed_ref: str, item_id: str) -> bool:
        """
        Check if an item has already been seen for a feed.

        Parameters
        ----------
        feed_ref : str
            Canonical feed identifier.
        item_id : str
            Identifier of the item within the feed.

        Returns
        -------
        bool
            True if the item has been seen before.
        """
        try:
            cursor = await self._connection.execute(
                "SELECT 1 FROM seen_items WHERE feed_ref = ? AND item_id = ?",
                (feed_ref, item_id),
            )
            result = await cursor.fetchone()
        except aiosqlite.Error as e:
            raise PartitionError(f"Failed reading partition '{feed_ref}': {e}") from e
        return result is not None

    async def mark_seen(self, feed_ref: str, item_id: str) -> None:
        """
        Record an item as seen for a feed.

        The feed's partition must exist.

        Parameters
        ----------
        feed_ref : str
            Canonical feed identifier.
        item_id : str
            Identifier of the item within the feed.
        """
        now = datetime.now(timezone.utc).isoformat()
        try:
            cursor = await self._connection.execute(
                """
                INSERT OR IGNORE INTO seen_items (feed_ref, item_id, marker, seen_at)
                VALUES (?, ?, ?, ?)
                """,
                (feed_ref, item_id, SEEN_MARKER, now),
            )
        except aiosqlite.Error as e:
            raise PartitionError(f"Failed writing partition '{feed_ref}': {e}") from e
        self.writes += cursor.rowcount
        logger.debug("Marked item as seen: %s", item_id[:50])

    @asynccontextmanager
    async def savepoint(self) -> AsyncIterator["Transaction"]:
        """
        Scope a unit of work inside the transaction.

        On error, everything written inside the block is undone and the
        exception is re-raised; the surrounding transaction stays open.

        Yields
        ------
        Transaction
            This handle.
        """
        writes = self.writes
        await self._connection.execute("SAVEPOINT feed_update")
        try:
            yield self
        except BaseException:
            await _undo(
                self._connection,
                "ROLLBACK TO SAVEPOINT feed_update",
                "RELEASE SAVEPOINT feed_update",
            )
            self.writes = writes
            raise
        else:
            await self._connection.execute("RELEASE SAVEPOINT feed_update")


class Storage:
    """
    Async SQLite storage for seen feed items.

    Each feed gets a partition row in ``feeds``; its seen item IDs
    live in ``seen_items``. The set of seen items only grows.
    """

    def __init__(self, database_path: str | Path):
        """
        Initialize storage with database path.

        Parameters
        ----------
        database_path : str | Path
            Path to the SQLite database file, or ``:memory:``.
        """
        if str(database_path) == MEMORY_DATABASE:
            self.database_path = Path(MEMORY_DATABASE)
        else:
            self.database_path = Path(database_path).expanduser()
        self._connection: aiosqlite.Connection | None = None

    @property
    def in_memory(self) -> bool:
        """Whether the database lives only in memory."""
        return str(self.database_path) == MEMORY_DATABASE

    async def initialize(self) -> None:
        """
        Initialize the database connection and create tables.

        Creates the database file and parent directories with owner-only
        permissions if they don't exist.

        Raises
        ------
        StorageError
            If the directory, file or database cannot be created or opened.
        """
        logger.info("Initializing database at %s", self.database_path)

        try:
            if not self.in_memory:
                self.database_path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
                if not self.database_path.exists():
                    self.database_path.touch(mode=0o600)
                    os.chmod(self.database_path, 0o600)

            # Autocommit mode, transactions are issued explicitly
            self._connection = await aiosqlite.connect(
                self.database_path, isolation_level=None
            )
            await self._connection.execute("PRAGMA foreign_keys = ON")
            await self._create_tables()
        except (OSError, aiosqlite.Error) as e:
            await self.close()
            raise StorageError(f"Failed to open database {self.database_path}: {e}") from e

    async def _create_tables(self) -> None:
        """Create database tables if they don't exist."""
        connection = self._require_connection()

        await connection.executescript("""
            BEGIN;
            CREATE TABLE IF NOT EXISTS feeds (
                feed_ref TEXT PRIMARY KEY,
                created_at TEXT NOT NULL
            );
            CREATE TABLE IF NOT EXISTS seen_items (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                feed_ref TEXT NOT NULL REFERENCES feeds (feed_ref),
                item_id TEXT NOT NULL,
                marker TEXT NOT NULL,
                seen_at TEXT NOT NULL,
                UNIQUE (feed_ref, item_id)
            );
            COMMIT;
        """)
        logger.debug("Database tables created/verified")

    def _require_connection(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("Database not initialized")
        return self._connection

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[Transaction]:
        """
        Open one atomic unit of work.

        Everything done through the yielded handle is committed when the
        block exits normally and rolled back if it raises.

        Yields
        ------
        Transaction
            Handle for partition and seen-item operations.

        Raises
        ------
        StorageError
            If the transaction cannot be started or committed.
        """
        connection = self._require_connection()

        try:
            # Take the write lock up front so an overlapping run fails here
            await connection.execute("BEGIN IMMEDIATE")
        except aiosqlite.Error as e:
            raise StorageError(f"Failed to start transaction: {e}") from e

        tx = Transaction(connection)
        try:
            yield tx
        except BaseException:
            await _undo(connection, "ROLLBACK")
            logger.warning("Transaction rolled back, %d write(s) discarded", tx.writes)
            raise

        try:
            await connection.execute("COMMIT")
        except aiosqlite.Error as e:
            await _undo(connection, "ROLLBACK")
            raise StorageError(f"Failed to commit transaction: {e}") from e
        logger.debug("Transaction committed with %d write(s)", tx.writes)

    async def seen_ids(self, feed_ref: str) -> set[str]:
        """
        Get the IDs of all items seen for a feed.

        Parameters
        ----------
        feed_ref : str
            Canonical feed identifier.

        Returns
        -------
        set[str]
            Seen item IDs, empty if the feed has no partition.
        """
        connection = self._require_connection()

        cursor = await connection.execute(
            "SELECT item_id FROM seen_items WHERE feed_ref = ?",
            (feed_ref,),
        )
        rows = await cursor.fetchall()
        return {row[0] for row in rows}

    async def list_partitions(self) -> list[str]:
        """List the feed identifiers that have a partition."""
        connection = self._require_connection()

        cursor = await connection.execute("SELECT feed_ref FROM feeds ORDER BY feed_ref")
        rows = await cursor.fetchall()
        return [row[0] for row in rows]

    async def get_seen_count(self, feed_ref: str | None = None) -> int:
        """
        Get the count of seen items.

        Parameters
        ----------
        feed_ref : str | None
            If provided, count only items from this feed.

        Returns
        -------
        int
            Number of seen items.
        """
        connection = self._require_connection()

        if feed_ref:
            cursor = await connection.execute(
                "SELECT COUNT(*) FROM seen_items WHERE feed_ref = ?",
                (feed_ref,),
            )
        else:
            cursor = await connection.execute("SELECT COUNT(*) FROM seen_items")

        result = await cursor.fetchone()
        return result[0] if result else 0

    async def close(self) -> None:
        """Close the database connection."""
        if self._connection:
            await self._connection.close()
            self._connection = None
            logger.debug("Database connection closed")

    async def __aenter__(self) -> "Storage":
        """Async context manager entry."""
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()
