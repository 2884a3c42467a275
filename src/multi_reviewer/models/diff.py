"""Changed-file and diff statistics models."""

from collections.abc import Iterable
from dataclasses import dataclass, field
from enum import Enum

from multi_reviewer.errors import ConfigError


class ChangeType(Enum):
    """How a file changed in the diff."""

    ADDED = "added"
    MODIFIED = "modified"
    DELETED = "deleted"
    RENAMED = "renamed"


class RiskLevel(Enum):
    """Review risk tier of a changed file."""

    HIGH = "high"
    NORMAL = "normal"
    LOW = "low"


@dataclass(frozen=True)
class ChangedFile:
    """One file from the diff with its classification."""

    path: str
    change_type: ChangeType
    lines_added: int = 0
    lines_deleted: int = 0
    risk: RiskLevel = RiskLevel.NORMAL
    old_path: str | None = None

    @property
    def is_high_risk(self) -> bool:
        return self.risk is RiskLevel.HIGH


@dataclass(frozen=True)
class DiffStats:
    """Aggregate counts over a set of changed files."""

    total_files: int = 0
    files_added: int = 0
    files_modified: int = 0
    files_deleted: int = 0
    files_renamed: int = 0
    total_lines_added: int = 0
    total_lines_deleted: int = 0
    high_risk_files: int = 0


@dataclass(frozen=True)
class DiffResult:
    """Output of the diff collaborator for one run."""

    files: tuple[ChangedFile, ...] = ()
    full_diff: str = ""
    base_branch: str = ""
    stats: DiffStats = field(default_factory=DiffStats)

    @classmethod
    def from_files(
        cls, files: Iterable[ChangedFile], full_diff: str = "", base_branch: str = ""
    ) -> "DiffResult":
        """Build a DiffResult, computing stats from the files."""
        files = tuple(files)
        return cls(
            files=files,
            full_diff=full_diff,
            base_branch=base_branch,
            stats=compute_stats(files),
        )


def compute_stats(files: Iterable[ChangedFile]) -> DiffStats:
    """Aggregate a set of changed files into DiffStats."""
    counts = dict.fromkeys(ChangeType, 0)
    total = added = deleted = high_risk = 0
    for f in files:
        total += 1
        counts[f.change_type] += 1
        added += f.lines_added
        deleted += f.lines_deleted
        if f.is_high_risk:
            high_risk += 1

    return DiffStats(
        total_files=total,
        files_added=counts[ChangeType.ADDED],
        files_modified=counts[ChangeType.MODIFIED],
        files_deleted=counts[ChangeType.DELETED],
        files_renamed=counts[ChangeType.RENAMED],
        total_lines_added=added,
        total_lines_deleted=deleted,
        high_risk_files=high_risk,
    )


class ReviewMode(Enum):
    """How the diff is distributed across agents."""

    ALL = "all"  # every agent sees the full diff
    SPLIT = "split"  # files are partitioned across agents

    @classmethod
    def parse(cls, value: "str | ReviewMode | None") -> "ReviewMode":
        """Parse a mode string; empty means ALL.

        Raises:
            ConfigError: If the value is not a known mode
        """
        if isinstance(value, ReviewMode):
            return value
        text = (value or "").strip().lower()
        if not text:
            return cls.ALL
        try:
            return cls(text)
        except ValueError:
            raise ConfigError(
                f"invalid review mode {value!r}: must be one of: all, split"
            ) from None
