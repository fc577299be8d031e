"""Main entry point for the ROMnibus command-line tool.

This module provides:
- Command-line argument parsing for the build, hash, identify and lookup commands
- Lazy service construction through an application context
- Exit code mapping and interrupt handling
"""

import argparse
import asyncio
import sys
from dataclasses import replace
from pathlib import Path

import structlog

from romnibus import __version__
from romnibus.models import CatalogConfig, GameRecord, GrammarProfile
from romnibus.services.catalog_builder import CatalogBuilder, discover_signature_files
from romnibus.services.catalog_store import CatalogStore
from romnibus.services.config import VALID_LOG_LEVELS, ConfigurationService
from romnibus.services.errors import AppError, UnsupportedLookupError, get_error_service
from romnibus.services.hasher import HashService
from romnibus.services.http_client import HttpClientService
from romnibus.services.logging import setup_logging
from romnibus.services.source_fetcher import SourceFetcherService

log = structlog.stdlib.get_logger()

EXIT_OK = 0
EXIT_FAILURE = 1
EXIT_NOT_FOUND = 2
EXIT_INTERRUPTED = 130


class ApplicationContext:
    """Container for the services a command needs, created on first use."""

    def __init__(self, config_path: Path | None = None) -> None:
        self._config_path: Path | None = config_path

        self._config_service: ConfigurationService | None = None
        self._config: CatalogConfig | None = None
        self._hash_service: HashService | None = None
        self._http_client: HttpClientService | None = None
        self._source_fetcher: SourceFetcherService | None = None

    @property
    def config_service(self) -> ConfigurationService:
        if self._config_service is None:
            self._config_service = ConfigurationService(config_path=self._config_path)
        return self._config_service

    @property
    def config(self) -> CatalogConfig:
        if self._config is None:
            self._config = self.config_service.load_config()
        return self._config

    def override_config(self, **changes: object) -> CatalogConfig:
        """Apply command-line overrides on top of the loaded configuration."""
        changes = {key: value for key, value in changes.items() if value is not None}
        if changes:
            self._config = replace(self.config, **changes)
        return self.config

    @property
    def hash_service(self) -> HashService:
        if self._hash_service is None:
            self._hash_service = HashService()
        return self._hash_service

    @property
    def http_client(self) -> HttpClientService:
        """HTTP client service; must first be used inside the running event loop."""
        if self._http_client is None:
            self._http_client = HttpClientService(
                timeout=self.config.request_timeout,
                max_retries=self.config.max_retries,
            )
        return self._http_client

    @property
    def source_fetcher(self) -> SourceFetcherService:
        if self._source_fetcher is None:
            self._source_fetcher = SourceFetcherService(
                http_client=self.http_client,
                work_directory=self.config.work_directory,
            )
        return self._source_fetcher

    async def cleanup(self) -> None:
        """Close network resources."""
        if self._http_client is not None:
            await self._http_client.close()
            self._http_client = None
        log.debug("Application cleanup complete")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="romnibus",
        description="Build and query a reference catalog of ROM signatures",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  romnibus build                         Download signatures and rebuild the catalog
  romnibus build --source ./dats         Rebuild from a local directory of DAT/JSON files
  romnibus hash game.zip                 Print the catalog fingerprint of a ROM
  romnibus identify game.zip             Look a ROM up in the catalog
  romnibus lookup --filename game.bin    Look up a catalog row by filename
        """,
    )

    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to configuration file (default: ~/.config/romnibus/config.json)",
    )
    parser.add_argument(
        "--log-level",
        choices=VALID_LOG_LEVELS,
        type=str.upper,
        default=None,
        help="Set the logging level (default: from configuration, INFO)",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        default=None,
        help="Directory for rotating log files (default: console only)",
    )

    commands = parser.add_subparsers(dest="command", required=True, metavar="COMMAND")

    build = commands.add_parser("build", help="Rebuild the catalog from signature files")
    build.add_argument(
        "--source",
        type=Path,
        default=None,
        help="Local directory of signature files (default: download the configured snapshot)",
    )
    build.add_argument("--database", type=Path, default=None, help="Catalog file to write")
    build.add_argument(
        "--profile",
        choices=[p.value for p in GrammarProfile],
        default=None,
        help="Uniqueness convention for the catalog (default: filename)",
    )
    build.add_argument(
        "--keep-sources",
        action="store_true",
        default=None,
        help="Keep downloaded signature files after the build",
    )

    hash_cmd = commands.add_parser("hash", help="Print the catalog fingerprint of ROM files")
    hash_cmd.add_argument("files", nargs="+", type=Path, metavar="FILE")

    identify = commands.add_parser("identify", help="Identify a ROM file against the catalog")
    identify.add_argument("file", type=Path, metavar="FILE")
    identify.add_argument("--database", type=Path, default=None, help="Catalog file to query")

    lookup = commands.add_parser("lookup", help="Look up a catalog row by hash or filename")
    target = lookup.add_mutually_exclusive_group(required=True)
    target.add_argument("--hash", dest="digest", default=None, metavar="HASH")
    target.add_argument("--filename", default=None, metavar="FILENAME")
    lookup.add_argument("--database", type=Path, default=None, help="Catalog file to query")

    return parser


def parse_arguments(argv: list[str] | None = None) -> argparse.Namespace:
    return build_parser().parse_args(argv)


def print_record(record: GameRecord) -> None:
    print(f"name:     {record.name}")
    print(f"platform: {record.platform}")
    print(f"filename: {record.filename}")
    print(f"hash:     {record.hash}")


async def fetch_sources(context: ApplicationContext) -> Path:
    """Download and unpack the configured signature directories."""
    config = context.config
    try:
        return await context.source_fetcher.fetch(config.source_url, config.signature_directories)
    finally:
        await context.cleanup()


def run_build(context: ApplicationContext, args: argparse.Namespace) -> int:
    config = context.override_config(
        database_path=args.database,
        profile=GrammarProfile(args.profile) if args.profile else None,
        keep_sources=args.keep_sources,
    )

    try:
        if args.source is not None:
            root = args.source
            directories: tuple[str, ...] = (".",)
        else:
            root = asyncio.run(fetch_sources(context))
            directories = config.signature_directories

        paths = discover_signature_files(root, directories)
        if not paths:
            print(f"No signature files found under {root}", file=sys.stderr)
            return EXIT_FAILURE
        summary = CatalogBuilder(config.profile).build(paths, config.database_path)
    finally:
        if args.source is None and not config.keep_sources:
            context.source_fetcher.cleanup()

    print(f"Catalog written to {config.database_path}")
    print(f"  files parsed:   {summary.files_parsed}/{summary.files_seen}")
    print(f"  records parsed: {summary.records_parsed}")
    print(f"  unique records: {summary.records_unique}")
    print(f"  rows inserted:  {summary.rows_inserted}")
    print(f"  platforms:      {len(summary.platform_counts)}")
    for failed in summary.failed_files:
        print(f"  skipped: {failed}", file=sys.stderr)

    return EXIT_OK if summary.files_parsed > 0 else EXIT_FAILURE


def run_hash(context: ApplicationContext, args: argparse.Namespace) -> int:
    digests = context.hash_service.fingerprint_many(args.files)
    for path in args.files:
        digest = digests.get(Path(path))
        if digest is None:
            print(f"{path}: could not be fingerprinted", file=sys.stderr)
            continue
        print(f"{digest}  {path}")
    return EXIT_OK if len(digests) == len(set(args.files)) else EXIT_FAILURE


def run_identify(context: ApplicationContext, args: argparse.Namespace) -> int:
    database = args.database or context.config.database_path
    digest = context.hash_service.fingerprint(args.file)

    with CatalogStore(database) as store:
        record = store.lookup_by_hash(digest)
        if record is None:
            log.info("No hash match, trying filename", path=str(args.file), digest=digest)
            record = _lookup_filename_candidates(store, args.file)

    if record is None:
        print(f"{args.file}: no match for {digest}", file=sys.stderr)
        return EXIT_NOT_FOUND
    print_record(record)
    return EXIT_OK


def _lookup_filename_candidates(store: CatalogStore, path: Path) -> GameRecord | None:
    for candidate in dict.fromkeys((path.name, path.stem)):
        try:
            record = store.lookup_by_filename(candidate)
        except UnsupportedLookupError:
            return None
        if record is not None:
            return record
    return None


def run_lookup(context: ApplicationContext, args: argparse.Namespace) -> int:
    database = args.database or context.config.database_path

    with CatalogStore(database) as store:
        if args.digest is not None:
            record = store.lookup_by_hash(args.digest)
        else:
            record = store.lookup_by_filename(args.filename)

    if record is None:
        print("No matching game", file=sys.stderr)
        return EXIT_NOT_FOUND
    print_record(record)
    return EXIT_OK


COMMANDS = {
    "build": run_build,
    "hash": run_hash,
    "identify": run_identify,
    "lookup": run_lookup,
}


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the application."""
    args = parse_arguments(argv)

    setup_logging(log_level=args.log_level or "INFO", log_dir=args.log_dir)
    context = ApplicationContext(config_path=args.config)

    if args.log_level is None and context.config.log_level != "INFO":
        setup_logging(log_level=context.config.log_level, log_dir=args.log_dir)

    log.debug("Starting ROMnibus", version=__version__, command=args.command)

    try:
        exit_code = COMMANDS[args.command](context, args)

    except KeyboardInterrupt:
        log.info("Interrupted by user")
        exit_code = EXIT_INTERRUPTED

    except AppError as e:
        error_service = get_error_service()
        friendly = error_service.handle_error(e, operation=args.command, component="main")
        print(error_service.create_user_message(friendly), file=sys.stderr)
        exit_code = EXIT_FAILURE

    except Exception as e:
        log.error("Unhandled exception", error=str(e), exc_info=True)
        print(f"Fatal error: {e}", file=sys.stderr)
        exit_code = EXIT_FAILURE

    log.debug("Exiting", exit_code=exit_code)
    sys.exit(exit_code)


if __name__ == "__main__":
    main()
