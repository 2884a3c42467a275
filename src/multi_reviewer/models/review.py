"""Review result models."""

from dataclasses import dataclass, field
from typing import Any

from multi_reviewer.errors import ReviewValidationError
from multi_reviewer.models.findings import AGENT_VERDICTS, Finding, Severity, Verdict

_VERDICT_CHOICES = ", ".join(v.value for v in Verdict if v in AGENT_VERDICTS)
_SEVERITY_CHOICES = ", ".join(s.value for s in Severity)
_FINDING_TEXT_FIELDS = ("category", "file", "description", "suggestion")


@dataclass(frozen=True)
class ReviewResult:
    """Parsed output of a single agent's review pass."""

    verdict: Verdict
    findings: tuple[Finding, ...] = ()

    def validate(self) -> None:
        """Check verdict and severities against the closed value sets.

        Raises:
            ReviewValidationError: If any value is outside its set
        """
        if not isinstance(self.verdict, Verdict) or self.verdict not in AGENT_VERDICTS:
            raise ReviewValidationError(
                f"invalid verdict {self.verdict!r}: must be one of {_VERDICT_CHOICES}"
            )
        for i, finding in enumerate(self.findings):
            if not isinstance(finding.severity, Severity):
                raise ReviewValidationError(
                    f"finding[{i}] has invalid severity {finding.severity!r}: "
                    f"must be one of {_SEVERITY_CHOICES}"
                )

    @classmethod
    def from_dict(cls, data: Any) -> "ReviewResult":
        """Build a validated result from decoded agent JSON.

        Unknown verdicts or severities are rejected rather than coerced.

        Args:
            data: Decoded JSON value

        Returns:
            Validated ReviewResult

        Raises:
            ReviewValidationError: If the payload does not match the contract
        """
        if not isinstance(data, dict):
            raise ReviewValidationError(
                f"review payload must be a JSON object, got {type(data).__name__}"
            )

        raw_verdict = data.get("verdict")
        try:
            verdict = Verdict(raw_verdict)
        except ValueError:
            verdict = None
        if verdict not in AGENT_VERDICTS:
            raise ReviewValidationError(
                f"invalid verdict {raw_verdict!r}: must be one of {_VERDICT_CHOICES}"
            )

        raw_findings = data.get("findings")
        if raw_findings is None:
            raw_findings = []
        if not isinstance(raw_findings, list):
            raise ReviewValidationError("findings must be a JSON array")

        findings = tuple(_parse_finding(i, raw) for i, raw in enumerate(raw_findings))
        result = cls(verdict=verdict, findings=findings)
        result.validate()
        return result


def _parse_finding(index: int, raw: Any) -> Finding:
    """Parse one finding object, raising on any malformed field."""
    if not isinstance(raw, dict):
        raise ReviewValidationError(f"finding[{index}] must be a JSON object")

    raw_severity = raw.get("severity")
    try:
        severity = Severity(raw_severity)
    except ValueError:
        raise ReviewValidationError(
            f"finding[{index}] has invalid severity {raw_severity!r}: "
            f"must be one of {_SEVERITY_CHOICES}"
        ) from None

    line = raw.get("line", 0)
    if line is None:
        line = 0
    # bool is an int subclass; reject it explicitly
    if isinstance(line, bool) or not isinstance(line, int):
        raise ReviewValidationError(f"finding[{index}] has non-integer line {line!r}")

    text: dict[str, str] = {}
    for name in _FINDING_TEXT_FIELDS:
        value = raw.get(name)
        if value is None:
            value = ""
        if not isinstance(value, str):
            raise ReviewValidationError(f"finding[{index}] field {name!r} must be a string")
        text[name] = value

    return Finding(severity=severity, line=line, **text)


@dataclass
class AgentReviewResult:
    """Outcome of one agent's run.

    ``result`` is None whenever ``error`` is set. ``raw_output`` is kept for
    diagnostics and offline re-extraction.
    """

    agent: str
    result: ReviewResult | None = None
    duration_ms: int = 0
    error: Exception | None = None
    raw_output: str = ""

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.result is not None

    @property
    def findings_count(self) -> int:
        return len(self.result.findings) if self.result else 0


@dataclass
class ConsolidationStats:
    """Metrics about a consolidation pass."""

    total_input_findings: int = 0
    unique_findings: int = 0
    duplicates_removed: int = 0
    # Percentage (0-100) of unique findings reported by two or more agents
    overlap_rate: float = 0.0
    findings_per_agent: dict[str, int] = field(default_factory=dict)
    findings_per_severity: dict[Severity, int] = field(default_factory=dict)


@dataclass
class ConsolidatedReview:
    """Final merged review for one run."""

    findings: list[Finding]
    verdict: Verdict
    agent_results: list[AgentReviewResult]
    total_agents: int
    duration_ms: int = 0

    @property
    def failed_agents(self) -> list[str]:
        """Names of agents that produced no usable result, in configured order."""
        return [ar.agent for ar in self.agent_results if not ar.succeeded]

    @property
    def failure_messages(self) -> list[str]:
        """User-facing one-liners for each failed agent."""
        messages = []
        for ar in self.agent_results:
            if ar.succeeded:
                continue
            cause = ar.error if ar.error is not None else "no result"
            messages.append(f"agent {ar.agent} failed: {cause}")
        return messages

    @property
    def all_agents_failed(self) -> bool:
        return self.total_agents > 0 and len(self.failed_agents) == self.total_agents

    @property
    def findings_by_severity(self) -> dict[Severity, int]:
        """Count findings by severity level."""
        counts: dict[Severity, int] = dict.fromkeys(Severity, 0)
        for finding in self.findings:
            counts[finding.severity] += 1
        return counts
