"""SQLite-backed preference storage for DepthStream.

Holds the durable per-prefix archive sequence counters and the last-used
recording selections. Lives outside the data root so clearing recorded data
never resets a counter.
"""

from __future__ import annotations

import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from depthstream.core.schema import SessionConfig


KEY_ARCHIVE_NUM = "ArchiveNum"
KEY_FRAME_COUNT = "StreamKeyImages"
KEY_DELAY = "StreamKeyDelay"


class PreferenceStore:
    """Key/value preferences persisted in SQLite.

    Usage:
        prefs = PreferenceStore("state/preferences.db")
        prefs.initialize()

        n = prefs.archive_number("Stream")
        prefs.store_archive_number("Stream", n + 1)
    """

    def __init__(self, db_path: str | Path):
        """Initialize preference store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path)
        self._connection: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()

    @property
    def connection(self) -> sqlite3.Connection:
        """Get or create database connection."""
        if self._connection is None:
            self.db_path.parent.mkdir(parents=True, exist_ok=True)
            # Shared by the recorder's finalize thread and the CLI/main thread
            self._connection = sqlite3.connect(str(self.db_path), check_same_thread=False)
            self._connection.row_factory = sqlite3.Row
        return self._connection

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Cursor]:
        """Context manager for database transactions."""
        with self._lock:
            cursor = self.connection.cursor()
            try:
                yield cursor
                self.connection.commit()
            except Exception:
                self.connection.rollback()
                raise
            finally:
                cursor.close()

    def initialize(self) -> None:
        """Create schema if it doesn't exist."""
        with self.transaction() as cursor:
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS preferences (
                    key TEXT PRIMARY KEY,
                    value TEXT NOT NULL,
                    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
                )
            """)

    def close(self) -> None:
        """Close database connection."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None

    # ------------------------------------------------------------------
    # Raw access

    def contains(self, key: str) -> bool:
        with self.transaction() as cursor:
            cursor.execute("SELECT 1 FROM preferences WHERE key = ?", (key,))
            return cursor.fetchone() is not None

    def get_int(self, key: str, default: int = 0) -> int:
        with self.transaction() as cursor:
            cursor.execute("SELECT value FROM preferences WHERE key = ?", (key,))
            row = cursor.fetchone()
        if row is None:
            return default
        return int(row["value"])

    def set_int(self, key: str, value: int) -> None:
        with self.transaction() as cursor:
            cursor.execute(
                """
                INSERT INTO preferences (key, value, updated_at)
                VALUES (?, ?, CURRENT_TIMESTAMP)
                ON CONFLICT(key) DO UPDATE SET
                    value = excluded.value,
                    updated_at = excluded.updated_at
                """,
                (key, str(int(value))),
            )

    # ------------------------------------------------------------------
    # Archive sequences

    def archive_number(self, prefix: str) -> int:
        """Last sealed sequence number under prefix (0 if never sealed)."""
        return self.get_int(f"{prefix}{KEY_ARCHIVE_NUM}", 0)

    def store_archive_number(self, prefix: str, value: int) -> None:
        """Persist the sequence number of the latest sealed dataset.

        Raises:
            ValueError: If value would move the sequence backwards
        """
        current = self.archive_number(prefix)
        if value < current:
            raise ValueError(
                f"Archive sequence for '{prefix}' cannot go back from {current} to {value}"
            )
        self.set_int(f"{prefix}{KEY_ARCHIVE_NUM}", value)

    # ------------------------------------------------------------------
    # Recording selections

    def remember_session_config(self, config: SessionConfig) -> None:
        """Store the frame count and delay of the latest recording."""
        self.set_int(KEY_FRAME_COUNT, config.requested_frame_count)
        self.set_int(KEY_DELAY, config.min_inter_frame_delay_ms)

    def last_session_config(self, default: Optional[SessionConfig] = None) -> SessionConfig:
        """Return the last-used selections, or default if none stored."""
        default = default or SessionConfig()
        if not self.contains(KEY_FRAME_COUNT):
            return default
        return SessionConfig(
            requested_frame_count=self.get_int(KEY_FRAME_COUNT, default.requested_frame_count),
            min_inter_frame_delay_ms=self.get_int(KEY_DELAY, default.min_inter_frame_delay_ms),
        )

    def __enter__(self) -> PreferenceStore:
        self.initialize()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
