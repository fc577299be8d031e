"""Tests for the SQLite catalog store."""

import sqlite3
import tempfile
from pathlib import Path

import pytest
from hypothesis import given, settings, strategies as st

from romnibus.models import GameRecord, GrammarProfile
from romnibus.services.catalog_store import CatalogStore
from romnibus.services.errors import (
    PersistenceError,
    StoreError,
    StoreUninitializedError,
    UnsupportedLookupError,
)

SHA_A = "a" * 40
SHA_B = "b" * 40

RECORDS = [
    GameRecord(name="Alpha", filename="alpha.gb", platform="Nintendo - Game Boy", hash=SHA_A),
    GameRecord(name="Beta", filename="beta.md", platform="Sega - Mega Drive", hash=SHA_B),
    GameRecord(name="Gamma", filename="gamma.gb", platform="Nintendo - Game Boy", hash=""),
]


@pytest.fixture
def database_path():
    with tempfile.TemporaryDirectory() as temp_dir:
        yield Path(temp_dir) / "catalog.db"


class TestLifecycle:

    def test_operations_before_open_raise(self, database_path: Path) -> None:
        store = CatalogStore(database_path, GrammarProfile.FILENAME)

        with pytest.raises(StoreUninitializedError):
            store.bulk_insert(RECORDS)
        with pytest.raises(StoreUninitializedError):
            store.lookup_by_hash(SHA_A)
        with pytest.raises(StoreUninitializedError):
            store.lookup_by_filename("alpha.gb")

    def test_close_is_idempotent(self, database_path: Path) -> None:
        store = CatalogStore(database_path).open(create=True)
        store.close()
        store.close()

        assert not store.is_open

    def test_read_only_open_of_missing_file_raises(self, database_path: Path) -> None:
        with pytest.raises(StoreError):
            CatalogStore(database_path).open()

    def test_read_only_open_detects_profile(self, database_path: Path) -> None:
        with CatalogStore(database_path, GrammarProfile.NAME).open(create=True) as store:
            store.bulk_insert(RECORDS)

        with CatalogStore(database_path) as store:
            assert store.profile is GrammarProfile.NAME
            assert store.count() == 3

    def test_read_only_store_rejects_writes(self, database_path: Path) -> None:
        with CatalogStore(database_path).open(create=True):
            pass

        with CatalogStore(database_path) as store:
            with pytest.raises(PersistenceError):
                store.bulk_insert(RECORDS)


class TestBulkInsert:

    def test_insert_returns_rows_written(self, database_path: Path) -> None:
        with CatalogStore(database_path).open(create=True) as store:
            assert store.bulk_insert(RECORDS) == 3
            assert store.count() == 3
            assert store.platform_counts() == {"Nintendo - Game Boy": 2, "Sega - Mega Drive": 1}

    def test_second_insert_is_a_no_op(self, database_path: Path) -> None:
        with CatalogStore(database_path).open(create=True) as store:
            store.bulk_insert(RECORDS)
            assert store.bulk_insert(RECORDS) == 0
            assert store.count() == len(RECORDS)

    def test_duplicate_key_within_batch_is_ignored(self, database_path: Path) -> None:
        duplicate = GameRecord(name="Other Name", filename="alpha.gb", platform="Elsewhere", hash=SHA_A)

        with CatalogStore(database_path).open(create=True) as store:
            assert store.bulk_insert([RECORDS[0], duplicate]) == 1

    def test_empty_hash_rows_are_unique_too(self, database_path: Path) -> None:
        no_hash = GameRecord(name="Gamma", filename="gamma.gb", platform="P", hash="")

        with CatalogStore(database_path).open(create=True) as store:
            assert store.bulk_insert([no_hash, no_hash]) == 1

    def test_failure_rolls_back_whole_batch(self, database_path: Path) -> None:
        bad = GameRecord(name=None, filename="bad.gb", platform="Zeta", hash=SHA_B)  # type: ignore[arg-type]

        with CatalogStore(database_path).open(create=True) as store:
            with pytest.raises(PersistenceError):
                store.bulk_insert([RECORDS[0], bad])
            assert store.count() == 0

    def test_name_profile_key(self, database_path: Path) -> None:
        same_file_other_name = GameRecord(name="Alpha (Rev 1)", filename="alpha.gb", platform="Nintendo - Game Boy", hash=SHA_A)

        with CatalogStore(database_path, GrammarProfile.NAME).open(create=True) as store:
            assert store.bulk_insert([RECORDS[0], same_file_other_name]) == 2

    @given(names=st.lists(st.text(min_size=1, max_size=10), max_size=15))
    @settings(max_examples=20, deadline=None)
    def test_running_twice_matches_single_run(self, names: list[str]) -> None:
        records = [GameRecord(name=n, filename=n, platform="P", hash=SHA_A) for n in names]
        with tempfile.TemporaryDirectory() as temp_dir:
            with CatalogStore(Path(temp_dir) / "c.db").open(create=True) as store:
                store.bulk_insert(records)
                single = store.count()
                store.bulk_insert(records)
                assert store.count() == single == len(set(names))


class TestLookups:

    @pytest.fixture
    def store(self, database_path: Path):
        with CatalogStore(database_path).open(create=True) as store:
            store.bulk_insert(RECORDS)
        with CatalogStore(database_path) as store:
            yield store

    def test_lookup_by_hash(self, store: CatalogStore) -> None:
        assert store.lookup_by_hash(SHA_A) == RECORDS[0]

    def test_lookup_by_hash_ignores_case(self, store: CatalogStore) -> None:
        assert store.lookup_by_hash(SHA_A.upper()) == store.lookup_by_hash(SHA_A)

    def test_lookup_by_hash_miss(self, store: CatalogStore) -> None:
        assert store.lookup_by_hash("c" * 40) is None

    def test_empty_hash_never_matches(self, store: CatalogStore) -> None:
        assert store.lookup_by_hash("") is None
        assert store.lookup_by_hash("   ") is None

    def test_lookup_by_filename_ignores_case(self, store: CatalogStore) -> None:
        assert store.lookup_by_filename("BETA.MD") == RECORDS[1]

    def test_lookup_by_filename_miss(self, store: CatalogStore) -> None:
        assert store.lookup_by_filename("missing.gb") is None
        assert store.lookup_by_filename("") is None

    def test_first_row_in_storage_order_wins(self, database_path: Path) -> None:
        first = GameRecord(name="First", filename="one.bin", platform="P", hash=SHA_A)
        second = GameRecord(name="Second", filename="two.bin", platform="P", hash=SHA_A)
        other = database_path.with_name("order.db")

        with CatalogStore(other).open(create=True) as store:
            store.bulk_insert([first, second])
            assert store.lookup_by_hash(SHA_A) == first

    def test_filename_lookup_unsupported_for_name_profile(self, database_path: Path) -> None:
        other = database_path.with_name("names.db")
        with CatalogStore(other, GrammarProfile.NAME).open(create=True) as store:
            store.bulk_insert(RECORDS)

            with pytest.raises(UnsupportedLookupError):
                store.lookup_by_filename("alpha.gb")

            assert store.lookup_by_hash(SHA_A) == GameRecord(
                name="Alpha", filename="", platform="Nintendo - Game Boy", hash=SHA_A
            )


def test_schema_has_lookup_indexes(database_path: Path) -> None:
    with CatalogStore(database_path).open(create=True):
        pass

    conn = sqlite3.connect(database_path)
    try:
        indexes = {row[1] for row in conn.execute("PRAGMA index_list(games)")}
    finally:
        conn.close()

    assert {"idx_hash", "idx_filename"} <= indexes
