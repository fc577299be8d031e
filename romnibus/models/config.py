"""Configuration data models."""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path


class GrammarProfile(Enum):
    """Which uniqueness convention a catalog build follows.

    FILENAME keeps the ROM filename and keys rows on (filename, hash).
    NAME drops the filename and keys rows on (name, platform, hash).
    """
    FILENAME = "filename"
    NAME = "name"


DEFAULT_SOURCE_URL = "https://github.com/libretro/libretro-database/archive/refs/heads/master.zip"
DEFAULT_SIGNATURE_DIRECTORIES = ("metadat/no-intro", "metadat/fbneo-split")


@dataclass(frozen=True)
class CatalogConfig:
    """Application configuration settings."""
    database_path: Path
    work_directory: Path
    source_url: str = DEFAULT_SOURCE_URL
    signature_directories: tuple[str, ...] = DEFAULT_SIGNATURE_DIRECTORIES
    profile: GrammarProfile = GrammarProfile.FILENAME
    log_level: str = "INFO"
    keep_sources: bool = False  # Leave the downloaded corpus on disk after a build
    request_timeout: float = 60.0
    max_retries: int = 3
