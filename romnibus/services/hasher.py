"""Content fingerprinting for ROM files and single-entry archives."""

import hashlib
import tempfile
import zipfile
import zlib
from collections.abc import Iterable
from pathlib import Path
from typing import BinaryIO

import py7zr
import structlog
from py7zr.exceptions import ArchiveError as SevenZipError, PasswordRequired

from .errors import (
    AppError,
    ArchiveOpenError,
    EmptyArchiveError,
    EntryOpenError,
    FileOpenError,
)

log = structlog.stdlib.get_logger()

HASH_ALGORITHM = "sha1"
ARCHIVE_EXTENSIONS = (".zip", ".7z")


def is_archive(path: Path) -> bool:
    """Check whether a path's extension marks it as an archive container."""
    return path.suffix.lower() in ARCHIVE_EXTENSIONS


class HashService:
    """Computes the catalog's canonical SHA-1 fingerprint for a ROM.

    Plain files are hashed as-is. For ``.zip`` and ``.7z`` containers the
    first entry, in the order the archive declares its members, is hashed
    instead so that a zipped ROM matches the digest of the bare ROM.
    """

    def __init__(self, chunk_size: int = 1024 * 1024) -> None:
        """Initialize the hash service.

        Args:
            chunk_size: Number of bytes read per update of the digest
        """
        self._chunk_size = chunk_size

    def fingerprint(self, path: Path) -> str:
        """Return the lowercase hex SHA-1 of a file or of an archive's first entry.

        Args:
            path: File to fingerprint

        Returns:
            40-character lowercase hexadecimal digest

        Raises:
            FileOpenError: If a plain file cannot be opened or read
            ArchiveOpenError: If an archive cannot be opened
            EmptyArchiveError: If an archive has no entries
            EntryOpenError: If the first archive entry cannot be decompressed
        """
        path = Path(path)
        suffix = path.suffix.lower()

        if suffix == ".zip":
            digest = self._fingerprint_zip(path)
        elif suffix == ".7z":
            digest = self._fingerprint_7z(path)
        else:
            digest = self._fingerprint_plain(path)

        log.debug("Computed fingerprint", path=str(path), digest=digest)
        return digest

    def fingerprint_many(self, paths: Iterable[Path]) -> dict[Path, str]:
        """Fingerprint several files, logging and skipping the ones that fail."""
        digests: dict[Path, str] = {}
        for path in paths:
            try:
                digests[Path(path)] = self.fingerprint(path)
            except AppError as e:
                log.warning(
                    "Skipping file that could not be fingerprinted",
                    path=str(path),
                    error=e.message,
                    error_type=type(e).__name__,
                )
        return digests

    def _digest_stream(self, stream: BinaryIO) -> str:
        hash_obj = hashlib.new(HASH_ALGORITHM)
        while chunk := stream.read(self._chunk_size):
            hash_obj.update(chunk)
        return hash_obj.hexdigest()

    def _fingerprint_plain(self, path: Path) -> str:
        try:
            with open(path, "rb") as f:
                return self._digest_stream(f)
        except OSError as e:
            log.error("Failed to read file for hashing", path=str(path), error=str(e))
            raise FileOpenError(
                f"Could not read {path.name}",
                original_error=e,
                path=str(path),
                operation="fingerprint",
            ) from e

    def _fingerprint_zip(self, path: Path) -> str:
        try:
            zf = zipfile.ZipFile(path, "r")
        except (zipfile.BadZipFile, OSError) as e:
            log.error("Failed to open zip archive", path=str(path), error=str(e))
            raise ArchiveOpenError(
                f"Could not open zip archive {path.name}",
                path=str(path),
                original_error=e,
            ) from e

        with zf:
            members = zf.infolist()
            if not members:
                raise EmptyArchiveError(f"Zip archive {path.name} is empty", path=str(path))

            first = members[0]
            try:
                with zf.open(first, "r") as entry:
                    return self._digest_stream(entry)
            except (zipfile.BadZipFile, zlib.error, NotImplementedError, RuntimeError, EOFError, OSError) as e:
                # RuntimeError covers encrypted members, NotImplementedError unknown compression
                log.error(
                    "Failed to read first zip entry",
                    path=str(path),
                    entry=first.filename,
                    error=str(e),
                )
                raise EntryOpenError(
                    f"Could not read {first.filename} within {path.name}",
                    path=str(path),
                    entry=first.filename,
                    original_error=e,
                ) from e

    def _fingerprint_7z(self, path: Path) -> str:
        try:
            archive = py7zr.SevenZipFile(path, mode="r")
        except (SevenZipError, PasswordRequired, OSError, EOFError) as e:
            log.error("Failed to open 7z archive", path=str(path), error=str(e))
            raise ArchiveOpenError(
                f"Could not open 7z archive {path.name}",
                path=str(path),
                original_error=e,
            ) from e

        with archive:
            members = archive.list()
            if not members:
                raise EmptyArchiveError(f"7z archive {path.name} is empty", path=str(path))

            first = members[0]
            if first.is_directory:
                return hashlib.new(HASH_ALGORITHM).hexdigest()

            try:
                # Extract only the first member to a scratch directory and stream it from there
                with tempfile.TemporaryDirectory() as temp_dir:
                    archive.extract(path=temp_dir, targets=[first.filename])
                    extracted = Path(temp_dir) / first.filename
                    with open(extracted, "rb") as entry:
                        return self._digest_stream(entry)
            except (SevenZipError, PasswordRequired, OSError, EOFError, ValueError) as e:
                log.error(
                    "Failed to read first 7z entry",
                    path=str(path),
                    entry=first.filename,
                    error=str(e),
                )
                raise EntryOpenError(
                    f"Could not read {first.filename} within {path.name}",
                    path=str(path),
                    entry=first.filename,
                    original_error=e,
                ) from e
