"""Data models for the review pipeline."""

from multi_reviewer.models.diff import (
    ChangedFile,
    ChangeType,
    DiffResult,
    DiffStats,
    ReviewMode,
    RiskLevel,
    compute_stats,
)
from multi_reviewer.models.findings import AGENT_VERDICTS, Finding, Severity, Verdict
from multi_reviewer.models.review import (
    AgentReviewResult,
    ConsolidatedReview,
    ConsolidationStats,
    ReviewResult,
)

__all__ = [
    "AGENT_VERDICTS",
    "AgentReviewResult",
    "ChangeType",
    "ChangedFile",
    "ConsolidatedReview",
    "ConsolidationStats",
    "DiffResult",
    "DiffStats",
    "Finding",
    "ReviewMode",
    "ReviewResult",
    "RiskLevel",
    "Severity",
    "Verdict",
    "compute_stats",
]
