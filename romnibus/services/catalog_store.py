"""SQLite-backed catalog of game records."""

import sqlite3
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import structlog

from ..models import GameRecord, GrammarProfile
from .deduplicator import group_by_platform
from .errors import (
    PersistenceError,
    StoreError,
    StoreUninitializedError,
    UnsupportedLookupError,
)

log = structlog.stdlib.get_logger()

SCHEMA_DIR = Path(__file__).resolve().parent.parent / "sql"
SCHEMA_FILES = {
    GrammarProfile.FILENAME: "schema_filename.sql",
    GrammarProfile.NAME: "schema_name.sql",
}

_INSERT_SQL = {
    GrammarProfile.FILENAME: (
        "INSERT INTO games (name, filename, platform, hash) VALUES (?, ?, ?, ?) "
        "ON CONFLICT DO NOTHING"
    ),
    GrammarProfile.NAME: (
        "INSERT INTO games (name, platform, hash) VALUES (?, ?, ?) "
        "ON CONFLICT DO NOTHING"
    ),
}

_SELECT_COLUMNS = {
    GrammarProfile.FILENAME: "name, filename, platform, hash",
    GrammarProfile.NAME: "name, '' AS filename, platform, hash",
}


class CatalogStore:
    """Persists game records and answers point lookups.

    The store has an explicit lifecycle: ``open()`` before use and ``close()``
    afterwards, or use it as a context manager. A store opened with
    ``create=True`` lays down the schema for its grammar profile; otherwise
    the database is opened read-only and the profile is detected from the
    existing ``games`` table.
    """

    def __init__(self, database_path: Path, profile: GrammarProfile | None = None) -> None:
        self.database_path = Path(database_path)
        self.profile = profile
        self._conn: sqlite3.Connection | None = None

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    def open(self, create: bool = False) -> "CatalogStore":
        """Open the database.

        Args:
            create: Create the file and schema if needed and allow writes

        Raises:
            StoreError: If the database cannot be opened or has no games table
        """
        if self._conn is not None:
            return self

        try:
            if create:
                self.database_path.parent.mkdir(parents=True, exist_ok=True)
                conn = sqlite3.connect(str(self.database_path), isolation_level=None)
            else:
                uri = self.database_path.resolve().as_uri() + "?mode=ro"
                conn = sqlite3.connect(uri, uri=True, isolation_level=None)
        except (sqlite3.Error, OSError) as e:
            log.error("Failed to open catalog", database=str(self.database_path), error=str(e))
            raise StoreError(
                f"Could not open catalog {self.database_path.name}",
                database_path=str(self.database_path),
                original_error=e,
            ) from e

        conn.row_factory = sqlite3.Row
        self._conn = conn

        try:
            if create:
                self.profile = self.profile or GrammarProfile.FILENAME
                self._create_schema()
            else:
                self.profile = self._detect_profile(self.profile)
        except (sqlite3.Error, OSError) as e:
            self.close()
            log.error("Failed to prepare catalog", database=str(self.database_path), error=str(e))
            raise StoreError(
                f"Could not prepare catalog {self.database_path.name}",
                database_path=str(self.database_path),
                original_error=e,
            ) from e

        log.info(
            "Catalog opened",
            database=str(self.database_path),
            profile=self.profile.value,
            writable=create,
        )
        return self

    def close(self) -> None:
        """Close the database connection. Safe to call more than once."""
        if self._conn is None:
            return
        self._conn.close()
        self._conn = None
        log.debug("Catalog closed", database=str(self.database_path))

    def __enter__(self) -> "CatalogStore":
        if self._conn is None:
            self.open()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()

    def _connection(self) -> sqlite3.Connection:
        if self._conn is None:
            raise StoreUninitializedError(
                "The catalog has not been opened",
                database_path=str(self.database_path),
            )
        return self._conn

    def _create_schema(self) -> None:
        schema_path = SCHEMA_DIR / SCHEMA_FILES[self.profile]
        with open(schema_path, encoding="utf-8") as f:
            schema_sql = f.read()
        self._connection().executescript(schema_sql)
        log.debug("Catalog schema ready", schema=schema_path.name)

    def _detect_profile(self, requested: GrammarProfile | None) -> GrammarProfile:
        rows = self._connection().execute("PRAGMA table_info(games)").fetchall()
        columns = {row["name"] for row in rows}
        if not columns:
            raise sqlite3.OperationalError("no games table")

        detected = GrammarProfile.FILENAME if "filename" in columns else GrammarProfile.NAME
        if requested is not None and requested is not detected:
            log.warning(
                "Catalog schema does not match requested profile, using schema",
                requested=requested.value,
                detected=detected.value,
            )
        return detected

    def bulk_insert(self, records: Iterable[GameRecord]) -> int:
        """Insert records in one transaction, platform by platform.

        Rows whose uniqueness key already exists are skipped. Any other
        database failure rolls back the whole batch.

        Args:
            records: Records to insert

        Returns:
            Number of rows actually inserted

        Raises:
            StoreUninitializedError: If the store is not open
            PersistenceError: If the transaction fails
        """
        conn = self._connection()
        groups = group_by_platform(records)
        insert_sql = _INSERT_SQL[self.profile]

        inserted = 0
        try:
            conn.execute("BEGIN")
            for platform, group in groups.items():
                before = conn.total_changes
                conn.executemany(insert_sql, [self._row(record) for record in group])
                added = conn.total_changes - before
                inserted += added
                log.info(
                    "Inserted platform batch",
                    platform=platform,
                    records=len(group),
                    inserted=added,
                )
            conn.execute("COMMIT")
        except sqlite3.Error as e:
            if conn.in_transaction:
                conn.execute("ROLLBACK")
            log.error(
                "Bulk insert failed, transaction rolled back",
                database=str(self.database_path),
                error=str(e),
            )
            raise PersistenceError(
                "Failed to write games to the catalog",
                database_path=str(self.database_path),
                original_error=e,
            ) from e

        log.info("Bulk insert committed", inserted=inserted, platforms=len(groups))
        return inserted

    def _row(self, record: GameRecord) -> tuple[str, ...]:
        if self.profile is GrammarProfile.NAME:
            return (record.name, record.platform, record.hash)
        return (record.name, record.filename, record.platform, record.hash)

    def lookup_by_hash(self, digest: str) -> GameRecord | None:
        """Find the first game whose hash matches, ignoring case.

        Returns:
            The matching record, or None when nothing matches

        Raises:
            StoreUninitializedError: If the store is not open
        """
        conn = self._connection()
        digest = digest.strip().lower()
        if not digest:
            return None

        query = (
            f"SELECT {_SELECT_COLUMNS[self.profile]} FROM games "
            "WHERE hash = ? ORDER BY rowid LIMIT 1"
        )
        return self._fetch_one(conn, query, digest, "hash")

    def lookup_by_filename(self, filename: str) -> GameRecord | None:
        """Find the first game whose filename matches, ignoring case.

        Raises:
            StoreUninitializedError: If the store is not open
            UnsupportedLookupError: If the catalog was built without filenames
        """
        conn = self._connection()
        if self.profile is GrammarProfile.NAME:
            raise UnsupportedLookupError(
                "This catalog was built without filenames",
                database_path=str(self.database_path),
                recoverable=True,
            )
        if not filename:
            return None

        query = (
            f"SELECT {_SELECT_COLUMNS[self.profile]} FROM games "
            "WHERE filename = ? COLLATE NOCASE ORDER BY rowid LIMIT 1"
        )
        return self._fetch_one(conn, query, filename, "filename")

    def _fetch_one(self, conn: sqlite3.Connection, query: str, value: str, field: str) -> GameRecord | None:
        try:
            row = conn.execute(query, (value,)).fetchone()
        except sqlite3.Error as e:
            log.error("Catalog lookup failed", field=field, value=value, error=str(e))
            raise StoreError(
                f"Failed to query games by {field}",
                database_path=str(self.database_path),
                original_error=e,
            ) from e

        if row is None:
            log.debug("No catalog match", field=field, value=value)
            return None

        return GameRecord(
            name=row["name"],
            filename=row["filename"],
            platform=row["platform"],
            hash=row["hash"] or "",
        )

    def count(self) -> int:
        """Total number of rows in the catalog."""
        return self._connection().execute("SELECT COUNT(*) FROM games").fetchone()[0]

    def platform_counts(self) -> dict[str, int]:
        """Row counts per platform, sorted by platform name."""
        rows = self._connection().execute(
            "SELECT platform, COUNT(*) AS total FROM games GROUP BY platform ORDER BY platform"
        ).fetchall()
        return {row["platform"]: row["total"] for row in rows}
