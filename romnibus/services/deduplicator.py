"""Order-preserving deduplication of parsed signature data.

Every function here is pure: the first occurrence of a key wins and the
output keeps the order in which keys were first seen.
"""

from collections.abc import Callable, Hashable, Iterable
from typing import TypeVar

from ..models import GameRecord, GrammarProfile, RomDescriptor, SignatureGame

T = TypeVar("T")


def unique_by(items: Iterable[T], key: Callable[[T], Hashable]) -> list[T]:
    """Keep the first item for each key, in input order."""
    seen: set[Hashable] = set()
    unique: list[T] = []
    for item in items:
        item_key = key(item)
        if item_key in seen:
            continue
        seen.add(item_key)
        unique.append(item)
    return unique


def dedup_roms(roms: Iterable[RomDescriptor]) -> list[RomDescriptor]:
    """Collapse ROMs that carry the same four digests."""
    return unique_by(roms, lambda rom: rom.digest_key)


def batch_key(entry: GameRecord | SignatureGame) -> tuple[str, str, str]:
    return (entry.name, entry.filename, entry.platform)


def merge_across_batches(entries: Iterable[T]) -> list[T]:
    """Collapse games or records from several source files on (name, filename, platform)."""
    return unique_by(entries, batch_key)


def record_key(record: GameRecord, profile: GrammarProfile) -> tuple[str, ...]:
    """The store's uniqueness key for a record under a grammar profile."""
    if profile is GrammarProfile.NAME:
        return (record.name, record.platform, record.hash)
    return (record.filename, record.hash)


def dedup(records: Iterable[GameRecord], profile: GrammarProfile = GrammarProfile.FILENAME) -> list[GameRecord]:
    """Collapse records that the store would treat as the same row."""
    return unique_by(records, lambda record: record_key(record, profile))


def group_by_platform(records: Iterable[GameRecord]) -> dict[str, list[GameRecord]]:
    """Group records by platform, platforms in order of first appearance."""
    groups: dict[str, list[GameRecord]] = {}
    for record in records:
        groups.setdefault(record.platform, []).append(record)
    return groups
