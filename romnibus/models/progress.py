"""Build run statistics."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class BuildSummary:
    """Outcome of a single catalog build."""
    files_seen: int
    files_parsed: int
    files_failed: int
    records_parsed: int
    records_unique: int
    rows_inserted: int
    platform_counts: dict[str, int] = field(default_factory=dict)
    failed_files: list[str] = field(default_factory=list)
    duration_seconds: float = 0.0
