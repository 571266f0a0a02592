"""SQLite snapshots of the vital store tables."""

import asyncio
import sqlite3
from pathlib import Path

import structlog
from pydantic import ValidationError

from .models import VitalRecord
from .store import PairKey, VitalStore
from .vitals import parse_vital_type

logger = structlog.get_logger(__name__)

_SCHEMA = (
    """
    CREATE TABLE IF NOT EXISTS vital_records (
        owner TEXT NOT NULL,
        timestamp INTEGER NOT NULL,
        vital_type TEXT NOT NULL,
        value INTEGER NOT NULL,
        notes TEXT,
        PRIMARY KEY (owner, timestamp, vital_type)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS latest_pointers (
        owner TEXT NOT NULL,
        vital_type TEXT NOT NULL,
        timestamp INTEGER NOT NULL,
        PRIMARY KEY (owner, vital_type)
    )
    """,
    """
    CREATE TABLE IF NOT EXISTS vital_counts (
        owner TEXT NOT NULL,
        vital_type TEXT NOT NULL,
        count INTEGER NOT NULL,
        PRIMARY KEY (owner, vital_type)
    )
    """,
)


class SQLiteSnapshot:
    """Persists the record, latest-pointer and count tables to SQLite.

    Each table keeps the store's key composition so existing data can be
    migrated in place.
    """

    def __init__(self, db_path: Path | str) -> None:
        """Initialize snapshot storage.

        Args:
            db_path: Path to SQLite database file.
        """
        self._db_path = Path(db_path)

    @property
    def path(self) -> Path:
        return self._db_path

    def _connect(self) -> sqlite3.Connection:
        """Open a SQLite connection with safer concurrency settings."""
        conn = sqlite3.connect(self._db_path, timeout=5.0)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout = 5000")
        return conn

    async def checkpoint(self, store: VitalStore) -> int:
        """Write the store's tables, replacing previous contents atomically.

        Returns:
            Number of records written.
        """
        # Snapshot under the store lock (fast, no I/O)
        records, latest, counts = store.export_tables()

        loop = asyncio.get_running_loop()

        def do_checkpoint() -> None:
            self._db_path.parent.mkdir(parents=True, exist_ok=True)

            with self._connect() as conn:
                for statement in _SCHEMA:
                    conn.execute(statement)

                conn.execute("DELETE FROM vital_records")
                conn.execute("DELETE FROM latest_pointers")
                conn.execute("DELETE FROM vital_counts")
                conn.executemany(
                    "INSERT INTO vital_records (owner, timestamp, vital_type, value, notes) "
                    "VALUES (?, ?, ?, ?, ?)",
                    [
                        (r.owner, r.timestamp, r.vital_type.value, r.value, r.notes)
                        for r in records
                    ],
                )
                conn.executemany(
                    "INSERT INTO latest_pointers (owner, vital_type, timestamp) VALUES (?, ?, ?)",
                    [(owner, vital.value, ts) for (owner, vital), ts in latest.items()],
                )
                conn.executemany(
                    "INSERT INTO vital_counts (owner, vital_type, count) VALUES (?, ?, ?)",
                    [(owner, vital.value, n) for (owner, vital), n in counts.items()],
                )
                conn.commit()

            logger.debug("vital_checkpoint_complete", records=len(records), path=str(self._db_path))

        await loop.run_in_executor(None, do_checkpoint)
        return len(records)

    async def restore(self, store: VitalStore) -> int:
        """Load persisted tables into the store.

        Returns:
            Number of records restored (0 when no snapshot exists).
        """
        if not self._db_path.exists():
            return 0

        loop = asyncio.get_running_loop()

        def do_restore() -> tuple[list[VitalRecord], dict[PairKey, int], dict[PairKey, int]]:
            with self._connect() as conn:
                for statement in _SCHEMA:
                    conn.execute(statement)
                record_rows = list(
                    conn.execute(
                        "SELECT owner, timestamp, vital_type, value, notes FROM vital_records"
                    )
                )
                latest_rows = list(
                    conn.execute("SELECT owner, vital_type, timestamp FROM latest_pointers")
                )
                count_rows = list(conn.execute("SELECT owner, vital_type, count FROM vital_counts"))

            records: list[VitalRecord] = []
            skipped = 0
            for owner, ts, vital, value, notes in record_rows:
                vital_type = parse_vital_type(vital)
                if vital_type is None:
                    skipped += 1
                    continue
                try:
                    records.append(
                        VitalRecord(
                            owner=owner,
                            timestamp=ts,
                            vital_type=vital_type,
                            value=value,
                            notes=notes,
                        )
                    )
                except ValidationError:
                    skipped += 1

            latest: dict[PairKey, int] = {}
            for owner, vital, ts in latest_rows:
                vital_type = parse_vital_type(vital)
                if vital_type is None or not isinstance(ts, int):
                    skipped += 1
                    continue
                latest[(owner, vital_type)] = ts

            counts: dict[PairKey, int] = {}
            for owner, vital, n in count_rows:
                vital_type = parse_vital_type(vital)
                if vital_type is None:
                    skipped += 1
                    continue
                counts[(owner, vital_type)] = n

            if skipped:
                logger.warning(
                    "vital_snapshot_rows_skipped", skipped=skipped, path=str(self._db_path)
                )
            return records, latest, counts

        records, latest, counts = await loop.run_in_executor(None, do_restore)
        restored = store.load_tables(records, latest, counts)
        logger.info("vital_snapshot_restored", records=restored, path=str(self._db_path))
        return restored
