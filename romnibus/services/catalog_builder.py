"""Batch pipeline that turns a signature corpus into a fresh catalog."""

import time
from collections.abc import Iterable
from pathlib import Path

import structlog

from ..models import BuildSummary, GameRecord, GrammarProfile, SignatureGame
from .catalog_store import CatalogStore
from .dat_parser import DatSignatureParser
from .deduplicator import dedup, merge_across_batches
from .errors import FileOpenError, FileSystemError, ParseError, handle_error
from .json_parser import JsonSignatureParser
from .signature_parser import SignatureParser

log = structlog.stdlib.get_logger()

SIGNATURE_EXTENSIONS = (".dat", ".json")


def discover_signature_files(root: Path, directories: Iterable[str]) -> list[Path]:
    """Find every DAT and JSON signature file under the given directories.

    Args:
        root: Corpus root the directories are relative to
        directories: Relative directory names to search recursively

    Returns:
        Matching files sorted by path

    Raises:
        FileSystemError: If a directory does not exist
    """
    root = Path(root)
    found: set[Path] = set()
    for directory in directories:
        base = root / directory
        if not base.is_dir():
            raise FileSystemError(
                f"Signature directory not found: {directory}",
                path=str(base),
                operation="discover",
            )
        matches = [
            path for path in base.rglob("*")
            if path.is_file() and path.suffix.lower() in SIGNATURE_EXTENSIONS
        ]
        log.debug("Scanned signature directory", directory=str(base), files=len(matches))
        found.update(matches)

    paths = sorted(found)
    log.info("Discovered signature files", root=str(root), files=len(paths))
    return paths


def parser_for_path(path: Path, profile: GrammarProfile = GrammarProfile.FILENAME) -> SignatureParser:
    """Pick the parser for a signature file by its extension.

    Raises:
        ValueError: If the extension is not a known signature format
    """
    suffix = Path(path).suffix.lower()
    if suffix in DatSignatureParser.extensions:
        return DatSignatureParser(profile)
    if suffix in JsonSignatureParser.extensions:
        return JsonSignatureParser(profile)
    raise ValueError(f"Unsupported signature file type: {Path(path).name}")


class CatalogBuilder:
    """Parses signature files and writes the deduplicated result to a new catalog."""

    def __init__(self, profile: GrammarProfile = GrammarProfile.FILENAME) -> None:
        self.profile = profile

    def build(self, paths: Iterable[Path], database_path: Path) -> BuildSummary:
        """Rebuild the catalog at ``database_path`` from the given files.

        Files that fail to read or parse are logged and skipped. Storage
        failures abort the build.

        Raises:
            FileSystemError: If the previous catalog cannot be removed
            StoreError: If the catalog cannot be created or written
        """
        started = time.monotonic()
        paths = list(paths)
        database_path = Path(database_path)

        self._remove_existing(database_path)

        batches, failed = self._parse_all(paths)
        games = [game for _, parsed in batches for game in parsed]
        merged = self._merge(batches)

        records: list[GameRecord] = []
        for game in merged:
            records.extend(game.to_records())
        unique = dedup(records, self.profile)

        log.info(
            "Signature corpus reduced",
            games=len(games),
            merged_games=len(merged),
            records=len(records),
            unique_records=len(unique),
        )

        with CatalogStore(database_path, self.profile).open(create=True) as store:
            inserted = store.bulk_insert(unique)
            platform_counts = store.platform_counts()

        summary = BuildSummary(
            files_seen=len(paths),
            files_parsed=len(paths) - len(failed),
            files_failed=len(failed),
            records_parsed=len(records),
            records_unique=len(unique),
            rows_inserted=inserted,
            platform_counts=platform_counts,
            failed_files=failed,
            duration_seconds=round(time.monotonic() - started, 3),
        )
        log.info(
            "Catalog build finished",
            database=str(database_path),
            files=summary.files_seen,
            failed=summary.files_failed,
            rows=summary.rows_inserted,
            platforms=len(platform_counts),
            duration_seconds=summary.duration_seconds,
        )
        return summary

    def _parse_all(self, paths: list[Path]) -> tuple[list[tuple[SignatureParser, list[SignatureGame]]], list[str]]:
        batches: list[tuple[SignatureParser, list[SignatureGame]]] = []
        failed: list[str] = []
        for path in paths:
            try:
                parser = parser_for_path(path, self.profile)
                batches.append((parser, parser.parse_file_games(path)))
            except (ParseError, FileOpenError, ValueError) as e:
                handle_error(
                    e,
                    operation="parse",
                    component="catalog_builder",
                    context={"path": str(path)},
                )
                failed.append(str(path))
        return batches, failed

    @staticmethod
    def _merge(batches: list[tuple[SignatureParser, list[SignatureGame]]]) -> list[SignatureGame]:
        """Collapse JSON documents repeated across files.

        DAT games are all kept, ahead of the documents; the store key decides
        which of them are duplicates.
        """
        signatures = [game for parser, games in batches if not parser.merges_across_files for game in games]
        documents = merge_across_batches(
            game for parser, games in batches if parser.merges_across_files for game in games
        )
        return signatures + documents

    @staticmethod
    def _remove_existing(database_path: Path) -> None:
        if not database_path.exists():
            return
        try:
            database_path.unlink()
        except OSError as e:
            raise FileSystemError(
                f"Could not remove previous catalog {database_path.name}",
                original_error=e,
                path=str(database_path),
                operation="build",
            ) from e
        log.info("Removed previous catalog", database=str(database_path))
