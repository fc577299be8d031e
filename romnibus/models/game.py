"""Game and ROM signature data models."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class GameRecord:
    """A single row of the reference catalog."""
    name: str
    filename: str
    platform: str
    hash: str = ""  # lowercase SHA-1 hex, empty when the source has none


@dataclass(frozen=True)
class RomDescriptor:
    """A ROM entry with every digest kind a signature source may carry."""
    name: str = ""
    size: int = 0
    crc: str = ""
    md5: str = ""
    sha1: str = ""
    sha256: str = ""

    @property
    def digest_key(self) -> tuple[str, str, str, str]:
        """All four digests in a fixed order, empty where absent."""
        return (self.crc, self.md5, self.sha1, self.sha256)

    @property
    def has_digest(self) -> bool:
        return any(self.digest_key)


@dataclass(frozen=True)
class SignatureGame:
    """A titled game with its ROM set, as read from a structured export."""
    name: str
    filename: str
    platform: str
    roms: tuple[RomDescriptor, ...] = field(default_factory=tuple)

    def to_records(self) -> list[GameRecord]:
        """Flatten into catalog rows keyed on each ROM's SHA-1."""
        records: list[GameRecord] = []
        for rom in self.roms:
            name = self.name or rom.name
            if not name:
                continue
            records.append(
                GameRecord(
                    name=name,
                    filename=self.filename,
                    platform=self.platform,
                    hash=rom.sha1,
                )
            )
        return records
