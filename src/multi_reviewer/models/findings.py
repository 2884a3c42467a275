"""Finding models for code review results."""

from dataclasses import dataclass
from enum import Enum
from typing import Any


class Severity(Enum):
    """Severity levels for findings, lowest to highest.

    - INFO: Informational observation, no action required.
    - LOW: Minor issue, safe to defer.
    - MEDIUM: Moderate issue that should be addressed.
    - HIGH: Significant issue that needs attention before merge.
    - CRITICAL: Showstopper that blocks merging.
    """

    INFO = "info"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"

    @property
    def rank(self) -> int:
        """Numeric rank for ordering; higher is more severe."""
        return _SEVERITY_RANKS[self]


_SEVERITY_RANKS = {
    Severity.INFO: 1,
    Severity.LOW: 2,
    Severity.MEDIUM: 3,
    Severity.HIGH: 4,
    Severity.CRITICAL: 5,
}


class Verdict(Enum):
    """Outcome of a review.

    Agents may only report APPROVED, CHANGES_NEEDED or BLOCKING.
    INDETERMINATE is produced by consolidation when no agent returned a
    usable result.
    """

    APPROVED = "APPROVED"
    CHANGES_NEEDED = "CHANGES_NEEDED"
    BLOCKING = "BLOCKING"
    INDETERMINATE = "INDETERMINATE"

    @property
    def rank(self) -> int:
        """Numeric rank for aggregation; higher is more severe."""
        return _VERDICT_RANKS[self]


_VERDICT_RANKS = {
    Verdict.INDETERMINATE: 0,
    Verdict.APPROVED: 1,
    Verdict.CHANGES_NEEDED: 2,
    Verdict.BLOCKING: 3,
}

# Verdicts an agent is allowed to report.
AGENT_VERDICTS = frozenset({Verdict.APPROVED, Verdict.CHANGES_NEEDED, Verdict.BLOCKING})


@dataclass(frozen=True)
class Finding:
    """A single issue reported by an agent.

    ``agent`` is empty in parsed agent output and is stamped during
    consolidation.
    """

    severity: Severity
    category: str
    file: str
    line: int
    description: str
    suggestion: str = ""
    agent: str = ""

    @property
    def dedup_key(self) -> tuple[str, int, str]:
        """Identity used to collapse the same issue reported by several agents."""
        return (self.file, self.line, self.category)

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the agent output shape (plus attribution when set)."""
        data: dict[str, Any] = {
            "severity": self.severity.value,
            "category": self.category,
            "file": self.file,
            "line": self.line,
            "description": self.description,
            "suggestion": self.suggestion,
        }
        if self.agent:
            data["agent"] = self.agent
        return data
