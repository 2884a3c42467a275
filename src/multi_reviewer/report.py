"""Markdown and JSON rendering of consolidated reviews."""

import logging
from pathlib import Path
from typing import Any

from multi_reviewer.models.findings import Finding, Severity, Verdict
from multi_reviewer.models.review import (
    AgentReviewResult,
    ConsolidatedReview,
    ConsolidationStats,
)

logger = logging.getLogger(__name__)

VERDICT_INDICATORS = {
    Verdict.APPROVED: "✅",
    Verdict.CHANGES_NEEDED: "🟡",
    Verdict.BLOCKING: "🔴",
    Verdict.INDETERMINATE: "⚠️",
}

SEVERITY_EMOJI = {
    Severity.CRITICAL: "🔴",
    Severity.HIGH: "🟠",
    Severity.MEDIUM: "🟡",
    Severity.LOW: "💡",
    Severity.INFO: "📝",
}

# Most severe first
_SEVERITY_ORDER = sorted(Severity, key=lambda s: s.rank, reverse=True)


def escape_cell(text: str) -> str:
    """Keep pipes and newlines from breaking a markdown table cell."""
    return text.replace("|", "\\|").replace("\r", "").replace("\n", " ")


def _agent_status(ar: AgentReviewResult) -> str:
    return "✅ ok" if ar.succeeded else "❌ failed"


def _agent_verdict(ar: AgentReviewResult) -> str:
    if ar.error is not None:
        return "ERROR"
    if ar.result is None:
        return "N/A"
    return ar.result.verdict.value


def _format_finding(finding: Finding) -> str:
    emoji = SEVERITY_EMOJI[finding.severity]
    location = f"line {finding.line}" if finding.line > 0 else "file"
    text = (
        f"- {emoji} **{finding.severity.value.upper()}** ({finding.category}, {location}): "
        f"{finding.description}"
    )
    if finding.suggestion:
        text += f"\n  - **Suggested fix:** {finding.suggestion}"
    if finding.agent:
        text += f"\n  - _Reported by {finding.agent}_"
    return text


def format_review_markdown(
    review: ConsolidatedReview, stats: ConsolidationStats | None = None
) -> str:
    """Render a consolidated review as a markdown report.

    Args:
        review: Consolidated review
        stats: Consolidation stats (adds a deduplication line when given)

    Returns:
        Markdown text
    """
    indicator = VERDICT_INDICATORS[review.verdict]
    lines = [
        "# Code Review Report",
        "",
        f"**Verdict:** {indicator} {review.verdict.value}",
        "",
        f"Reviewed by {review.total_agents} agent(s) in {review.duration_ms / 1000:.1f}s.",
    ]
    if stats is not None and stats.total_input_findings:
        lines.append(
            f"{stats.total_input_findings} finding(s) reported, "
            f"{stats.duplicates_removed} duplicate(s) removed, "
            f"{stats.overlap_rate:.0f}% reported by more than one agent."
        )

    # Severity table
    counts = review.findings_by_severity
    lines.extend(["", "## Summary", "", "| Severity | Count |", "|----------|-------|"])
    for severity in _SEVERITY_ORDER:
        lines.append(f"| {SEVERITY_EMOJI[severity]} {severity.value} | {counts[severity]} |")
    lines.append(f"| **Total** | **{len(review.findings)}** |")

    # Findings grouped by file
    lines.extend(["", "## Findings", ""])
    if not review.findings:
        lines.append("No issues found. LGTM ✅")
    else:
        by_file: dict[str, list[Finding]] = {}
        for finding in review.findings:
            by_file.setdefault(finding.file or "(general)", []).append(finding)
        for path in sorted(by_file):
            lines.append(f"### `{path}`")
            lines.append("")
            lines.extend(_format_finding(f) for f in by_file[path])
            lines.append("")

    # Per-agent table
    lines.extend(
        [
            "",
            "## Agents",
            "",
            "| Agent | Status | Verdict | Findings | Duration |",
            "|-------|--------|---------|----------|----------|",
        ]
    )
    for ar in review.agent_results:
        lines.append(
            f"| {escape_cell(ar.agent)} | {_agent_status(ar)} | {_agent_verdict(ar)} | "
            f"{ar.findings_count} | {ar.duration_ms / 1000:.1f}s |"
        )

    failures = review.failure_messages
    if failures:
        lines.extend(["", "## Failures", ""])
        lines.extend(f"- {message}" for message in failures)

    return "\n".join(lines).rstrip() + "\n"


def format_review_as_json(review: ConsolidatedReview) -> dict[str, Any]:
    """Convert a consolidated review to a JSON-serializable dict."""
    return {
        "verdict": review.verdict.value,
        "duration_ms": review.duration_ms,
        "total_agents": review.total_agents,
        "failed_agents": review.failed_agents,
        "findings_by_severity": {
            severity.value: count for severity, count in review.findings_by_severity.items()
        },
        "findings": [finding.to_dict() for finding in review.findings],
        "agents": [
            {
                "name": ar.agent,
                "succeeded": ar.succeeded,
                "verdict": ar.result.verdict.value if ar.result else None,
                "findings": ar.findings_count,
                "duration_ms": ar.duration_ms,
                "error": str(ar.error) if ar.error is not None else None,
            }
            for ar in review.agent_results
        ],
    }


def write_report(path: Path, text: str) -> None:
    """Write a rendered report, creating parent directories as needed."""
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    logger.info(f"Review report written to {path}")
