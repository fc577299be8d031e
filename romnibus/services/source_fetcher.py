"""Acquisition of the signature corpus from a repository snapshot archive."""

import shutil
import zipfile
from collections.abc import Iterable
from pathlib import Path, PurePosixPath

import httpx
import structlog

from .errors import ArchiveOpenError, FileSystemError, NetworkError
from .http_client import HttpClientService

log = structlog.stdlib.get_logger()

SNAPSHOT_FILENAME = "snapshot.zip"
SOURCE_DIRECTORY = "source"


def _strip_top_level(member: str) -> PurePosixPath | None:
    """Drop the snapshot's single top-level folder from a member name."""
    parts = PurePosixPath(member).parts
    if len(parts) < 2 or ".." in parts:
        return None
    return PurePosixPath(*parts[1:])


class SourceFetcherService:
    """Downloads a snapshot of the signature repository and unpacks the wanted directories."""

    def __init__(self, http_client: HttpClientService, work_directory: Path) -> None:
        self.http_client = http_client
        self.work_directory = Path(work_directory)

    @property
    def source_root(self) -> Path:
        return self.work_directory / SOURCE_DIRECTORY

    async def fetch(self, archive_url: str, directories: Iterable[str]) -> Path:
        """Download the snapshot and extract the signature directories.

        Args:
            archive_url: URL of the repository snapshot zip
            directories: Repository-relative directories to keep

        Returns:
            Root directory the requested directories were extracted under

        Raises:
            NetworkError: If the snapshot cannot be downloaded
            ArchiveOpenError: If the snapshot is not a readable zip
            FileSystemError: If a requested directory is absent or cannot be written
        """
        directories = [d.strip("/") for d in directories]
        archive_path = self.work_directory / SNAPSHOT_FILENAME

        log.info("Fetching signature sources", url=archive_url, directories=directories)
        try:
            size = await self.http_client.download_file(archive_url, archive_path)
        except httpx.HTTPStatusError as e:
            raise NetworkError(
                "Could not download the signature snapshot",
                original_error=e,
                url=archive_url,
                status_code=e.response.status_code,
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(
                "Could not download the signature snapshot",
                original_error=e,
                url=archive_url,
            ) from e
        except OSError as e:
            raise FileSystemError(
                "Could not save the signature snapshot",
                original_error=e,
                path=str(archive_path),
                operation="fetch",
            ) from e

        log.info("Signature snapshot downloaded", path=str(archive_path), size=size)

        try:
            extracted = self._extract(archive_path, directories)
        finally:
            archive_path.unlink(missing_ok=True)

        log.info("Signature sources ready", root=str(self.source_root), files=extracted)
        return self.source_root

    def _extract(self, archive_path: Path, directories: list[str]) -> int:
        """Copy members under the requested directories into the source root."""
        if self.source_root.exists():
            shutil.rmtree(self.source_root)

        counts = dict.fromkeys(directories, 0)
        try:
            with zipfile.ZipFile(archive_path) as zf:
                for info in zf.infolist():
                    if info.is_dir():
                        continue
                    relative = _strip_top_level(info.filename)
                    if relative is None:
                        continue
                    wanted = next(
                        (d for d in directories if relative.is_relative_to(d)),
                        None,
                    )
                    if wanted is None:
                        continue

                    target = self.source_root.joinpath(*relative.parts)
                    target.parent.mkdir(parents=True, exist_ok=True)
                    with zf.open(info) as src, open(target, "wb") as dst:
                        shutil.copyfileobj(src, dst)
                    counts[wanted] += 1
        except zipfile.BadZipFile as e:
            log.error("Signature snapshot is not a valid zip", path=str(archive_path), error=str(e))
            raise ArchiveOpenError(
                "The downloaded signature snapshot is not a valid zip archive",
                path=str(archive_path),
                original_error=e,
            ) from e
        except OSError as e:
            raise FileSystemError(
                "Could not extract the signature snapshot",
                original_error=e,
                path=str(self.source_root),
                operation="extract",
            ) from e

        missing = [d for d, count in counts.items() if count == 0]
        if missing:
            raise FileSystemError(
                f"Signature snapshot has no files under: {', '.join(missing)}",
                path=str(archive_path),
                operation="extract",
            )

        for directory, count in counts.items():
            log.debug("Extracted signature directory", directory=directory, files=count)
        return sum(counts.values())

    def cleanup(self) -> None:
        """Remove the work directory and everything fetched into it."""
        if not self.work_directory.exists():
            return
        try:
            shutil.rmtree(self.work_directory)
        except OSError as e:
            log.warning("Failed to remove work directory", path=str(self.work_directory), error=str(e))
            return
        log.info("Work directory removed", path=str(self.work_directory))
