"""Review orchestration: agent runner, output parsing and consolidation."""

from multi_reviewer.orchestrator.consolidator import Consolidator, aggregate_verdicts
from multi_reviewer.orchestrator.orchestrator import (
    OrchestratorResult,
    ReviewEvent,
    ReviewOrchestrator,
)
from multi_reviewer.orchestrator.parser import extract_json_objects, extract_review

__all__ = [
    "Consolidator",
    "OrchestratorResult",
    "ReviewEvent",
    "ReviewOrchestrator",
    "aggregate_verdicts",
    "extract_json_objects",
    "extract_review",
]
