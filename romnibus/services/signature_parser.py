"""Shared contract for signature-file parsers."""

from abc import ABC, abstractmethod
from dataclasses import replace
from pathlib import Path

import structlog

from ..models import GameRecord, GrammarProfile, SignatureGame
from .errors import FileOpenError

log = structlog.stdlib.get_logger()


def platform_from_filename(filename: str) -> str:
    """Derive a platform name from a signature file's name.

    "Nintendo - Game Boy (20240101-000000).dat" -> "Nintendo - Game Boy"
    "Sega - Mega Drive.dat" -> "Sega - Mega Drive"
    """
    name = Path(filename).name
    open_index = name.find("(")
    if open_index == -1:
        return Path(name).stem.strip()
    return name[:open_index].strip()


def normalize_digest(value: object) -> str:
    """Lowercase and trim a digest value, returning "" for anything that is not text."""
    if not isinstance(value, str):
        return ""
    return value.strip().lower()


class SignatureParser(ABC):
    """Extracts games and catalog records from the raw bytes of one signature file."""

    #: File extensions this parser understands, lowercase with leading dot
    extensions: tuple[str, ...] = ()
    #: Whether games describing the same (name, filename, platform) in
    #: different files are one game; otherwise every parsed game is kept
    merges_across_files: bool = False

    def __init__(self, profile: GrammarProfile = GrammarProfile.FILENAME) -> None:
        self.profile = profile

    @abstractmethod
    def _extract_games(self, content: bytes, platform_hint: str, source_name: str) -> list[SignatureGame]:
        """Grammar-specific extraction, before the grammar profile is applied."""

    def parse_games(self, content: bytes, platform_hint: str, source_name: str = "") -> list[SignatureGame]:
        """Parse one file's content into games.

        Args:
            content: Raw file bytes
            platform_hint: Platform to use when the content declares none
            source_name: Name of the file the content came from

        Returns:
            Games in the order they appear in the source

        Raises:
            ParseError: If nothing usable can be read from the content
        """
        fallback_platform = Path(source_name).stem.strip() if source_name else ""

        games: list[SignatureGame] = []
        for game in self._extract_games(content, platform_hint, source_name):
            if not game.platform:
                if not fallback_platform:
                    log.warning("Skipping game without a platform", source=source_name, game=game.name)
                    continue
                game = replace(game, platform=fallback_platform)
            if self.profile is GrammarProfile.NAME:
                game = replace(game, filename="")
            games.append(game)
        return games

    def parse(self, content: bytes, platform_hint: str, source_name: str = "") -> list[GameRecord]:
        """Parse one file's content straight into catalog records."""
        records: list[GameRecord] = []
        for game in self.parse_games(content, platform_hint, source_name):
            records.extend(game.to_records())
        return records

    def parse_file_games(self, path: Path) -> list[SignatureGame]:
        """Read and parse a signature file, deriving the platform hint from its name.

        Raises:
            FileOpenError: If the file cannot be read
            ParseError: If the content is malformed
        """
        path = Path(path)
        try:
            content = path.read_bytes()
        except OSError as e:
            log.error("Failed to read signature file", path=str(path), error=str(e))
            raise FileOpenError(
                f"Could not read signature file {path.name}",
                original_error=e,
                path=str(path),
                operation="parse",
            ) from e

        games = self.parse_games(content, platform_from_filename(path.name), source_name=path.name)
        log.info("Parsed signature file", path=str(path), games=len(games))
        return games

    def parse_file(self, path: Path) -> list[GameRecord]:
        """Read and parse a signature file into catalog records."""
        records: list[GameRecord] = []
        for game in self.parse_file_games(path):
            records.extend(game.to_records())
        return records
