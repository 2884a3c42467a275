"""Consolidation of multiple agents' review results."""

import dataclasses
import logging
from collections.abc import Iterable, Sequence

from multi_reviewer.models.findings import Finding, Verdict
from multi_reviewer.models.review import (
    AgentReviewResult,
    ConsolidatedReview,
    ConsolidationStats,
)

logger = logging.getLogger(__name__)


class Consolidator:
    """Combines per-agent results into a single deduplicated review."""

    def consolidate(
        self,
        results: Sequence[AgentReviewResult],
        duration_ms: int = 0,
    ) -> tuple[ConsolidatedReview, ConsolidationStats]:
        """Merge findings from all agents into one review.

        Algorithm:
        1. Stamp each successful agent's findings with the agent name
        2. Drop findings whose (file, line, category) was already seen; the
           earliest agent in configured order keeps the finding and its
           severity is not merged with the duplicates
        3. Stable-sort by severity, most severe first
        4. Take the most severe verdict among successful agents, or
           INDETERMINATE when none succeeded

        Args:
            results: One result per configured agent, in configured order
            duration_ms: Wall-clock span of the whole run

        Returns:
            (consolidated review, consolidation stats)
        """
        stats = ConsolidationStats()
        kept: dict[tuple[str, int, str], Finding] = {}
        agents_by_key: dict[tuple[str, int, str], set[str]] = {}
        verdicts: list[Verdict] = []

        for ar in results:
            if ar.error is not None or ar.result is None:
                logger.warning(f"Skipping findings from {ar.agent}: {ar.error or 'no result'}")
                continue

            verdicts.append(ar.result.verdict)
            stats.findings_per_agent[ar.agent] = len(ar.result.findings)

            for finding in ar.result.findings:
                stats.total_input_findings += 1
                key = finding.dedup_key
                agents_by_key.setdefault(key, set()).add(ar.agent)
                if key in kept:
                    stats.duplicates_removed += 1
                    logger.debug(f"Dropping duplicate {key} from {ar.agent}")
                    continue
                kept[key] = dataclasses.replace(finding, agent=ar.agent)

        # dict preserves first-seen order; sorted() is stable
        findings = sorted(kept.values(), key=lambda f: f.severity.rank, reverse=True)

        stats.unique_findings = len(findings)
        for finding in findings:
            stats.findings_per_severity[finding.severity] = (
                stats.findings_per_severity.get(finding.severity, 0) + 1
            )
        if findings:
            shared = sum(1 for agents in agents_by_key.values() if len(agents) > 1)
            stats.overlap_rate = shared / len(findings) * 100

        review = ConsolidatedReview(
            findings=findings,
            verdict=aggregate_verdicts(verdicts),
            agent_results=list(results),
            total_agents=len(results),
            duration_ms=duration_ms,
        )
        return review, stats


def aggregate_verdicts(verdicts: Iterable[Verdict]) -> Verdict:
    """Return the most severe verdict: BLOCKING > CHANGES_NEEDED > APPROVED.

    An empty input means no agent produced a result and yields
    INDETERMINATE.
    """
    result = Verdict.INDETERMINATE
    for verdict in verdicts:
        if verdict.rank > result.rank:
            result = verdict
    return result
