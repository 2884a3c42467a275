"""Agent orchestrator for parallel review execution."""

import asyncio
import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

from multi_reviewer.agents.transport import AgentTransport
from multi_reviewer.config import ReviewOpts
from multi_reviewer.diff.partition import DiffSlice, partition
from multi_reviewer.errors import (
    AgentTransportError,
    ConfigError,
    ExtractionError,
    ReviewCancelledError,
    ReviewValidationError,
)
from multi_reviewer.models.diff import DiffResult
from multi_reviewer.models.review import (
    AgentReviewResult,
    ConsolidatedReview,
    ConsolidationStats,
)
from multi_reviewer.orchestrator.consolidator import Consolidator
from multi_reviewer.orchestrator.parser import extract_review
from multi_reviewer.prompt.builder import PromptBuilder

logger = logging.getLogger(__name__)


@dataclass
class ReviewEvent:
    """Progress notification for UIs.

    ``type`` is one of review_started, agent_started, agent_completed,
    agent_error, consolidated. ``agent`` is empty for run-level events.
    """

    type: str
    message: str
    agent: str = ""
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass
class OrchestratorResult:
    """Everything a review run produced."""

    consolidated: ConsolidatedReview
    stats: ConsolidationStats
    diff: DiffResult

    @property
    def duration_ms(self) -> int:
        return self.consolidated.duration_ms


def _elapsed_ms(start: float) -> int:
    return int((time.monotonic() - start) * 1000)


class ReviewOrchestrator:
    """Coordinates multiple agents to review one diff in parallel."""

    def __init__(
        self,
        transports: Mapping[str, AgentTransport],
        prompt_builder: PromptBuilder,
        consolidator: Consolidator | None = None,
        on_event: Callable[[ReviewEvent], Any] | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            transports: Agent name to transport
            prompt_builder: Builds each agent's prompt
            consolidator: Merges results (default: Consolidator())
            on_event: Optional progress callback
        """
        self.transports = transports
        self.prompt_builder = prompt_builder
        self.consolidator = consolidator or Consolidator()
        self.on_event = on_event

    async def review(
        self,
        diff: DiffResult,
        opts: ReviewOpts,
        cancel_event: asyncio.Event | None = None,
    ) -> OrchestratorResult:
        """Run every configured agent against the diff and consolidate.

        Prompts are rendered for all agents before any agent starts, so
        context and template errors abort the run up front. Agent failures
        never abort siblings; they are recorded in the agent's result.

        Args:
            diff: Changed files and diff text
            opts: Agents, concurrency, mode
            cancel_event: When set, stop waiting and mark unfinished agents
                as cancelled

        Returns:
            OrchestratorResult with the consolidated review

        Raises:
            ConfigError: Unknown agents or bad paths
            TemplateError: Template parse or render failure
        """
        start = time.monotonic()
        transports = self._resolve_agents(opts)
        concurrency = max(1, opts.concurrency)

        logger.info(
            f"Starting review with {len(transports)} agents "
            f"(mode={opts.mode.value}, concurrency={concurrency})"
        )
        self._emit(ReviewEvent("review_started", f"starting review with {len(transports)} agent(s)"))

        slices = partition(diff, opts.mode, len(transports))
        prompts = self._build_prompts(transports, slices, opts)

        semaphore = asyncio.Semaphore(concurrency)
        tasks = [
            asyncio.create_task(
                self._run_agent(transport, prompt, len(diff_slice.files), semaphore),
                name=f"agent-{transport.name}",
            )
            for transport, prompt, diff_slice in zip(transports, prompts, slices)
        ]

        try:
            await self._wait_all(tasks, cancel_event)
        finally:
            unfinished = [task for task in tasks if not task.done()]
            for task in unfinished:
                task.cancel()
            if unfinished:
                await asyncio.gather(*unfinished, return_exceptions=True)

        results = []
        for transport, task in zip(transports, tasks):
            if task.cancelled():
                logger.warning(f"Agent {transport.name} cancelled before finishing")
                results.append(
                    AgentReviewResult(
                        agent=transport.name,
                        duration_ms=_elapsed_ms(start),
                        error=ReviewCancelledError(
                            f"review cancelled before agent {transport.name} finished"
                        ),
                    )
                )
            else:
                results.append(task.result())

        consolidated, stats = self.consolidator.consolidate(results, duration_ms=_elapsed_ms(start))

        failed = consolidated.failed_agents
        logger.info(
            f"Review complete: {len(consolidated.findings)} findings, "
            f"verdict {consolidated.verdict.value}, "
            f"{len(results) - len(failed)} succeeded, {len(failed)} failed"
        )
        self._emit(
            ReviewEvent(
                "consolidated",
                f"consolidated {len(consolidated.findings)} finding(s), "
                f"verdict: {consolidated.verdict.value}",
            )
        )
        return OrchestratorResult(consolidated=consolidated, stats=stats, diff=diff)

    def plan(self, diff: DiffResult, opts: ReviewOpts) -> str:
        """Describe what ``review`` would do without invoking any agent."""
        transports = self._resolve_agents(opts)
        slices = partition(diff, opts.mode, len(transports))

        lines = [
            "Review Plan (dry run)",
            f"Base branch: {opts.base_branch}",
            f"Mode: {opts.mode.value}",
            f"Concurrency: {max(1, opts.concurrency)}",
            f"Agents: {len(transports)}",
        ]
        for transport, diff_slice in zip(transports, slices):
            lines.append(
                f"  {transport.name}: {len(diff_slice.files)} files, {transport.describe()}"
            )
        return "\n".join(lines)

    def _resolve_agents(self, opts: ReviewOpts) -> list[AgentTransport]:
        if not opts.agents:
            raise ConfigError("at least one agent is required")
        resolved = []
        seen: set[str] = set()
        for name in opts.agents:
            if name in seen:
                raise ConfigError(f"agent {name!r} is listed more than once")
            seen.add(name)
            if name not in self.transports:
                known = ", ".join(sorted(self.transports)) or "none"
                raise ConfigError(f"unknown agent {name!r} (configured: {known})")
            resolved.append(self.transports[name])
        return resolved

    def _build_prompts(
        self,
        transports: list[AgentTransport],
        slices: list[DiffSlice],
        opts: ReviewOpts,
    ) -> list[str]:
        context = self.prompt_builder.load_context()
        compiled = self.prompt_builder.compile()
        return [
            self.prompt_builder.build_for_agent(
                transport.name, diff_slice, opts.mode, context=context, compiled=compiled
            )
            for transport, diff_slice in zip(transports, slices)
        ]

    async def _wait_all(
        self, tasks: list[asyncio.Task], cancel_event: asyncio.Event | None
    ) -> None:
        """Wait for every task, or until the cancel event is set."""
        if cancel_event is None:
            await asyncio.wait(tasks)
            return

        waiter = asyncio.create_task(cancel_event.wait())
        pending: set[asyncio.Future] = set(tasks)
        try:
            while pending:
                done, _ = await asyncio.wait(
                    pending | {waiter}, return_when=asyncio.FIRST_COMPLETED
                )
                pending -= done
                if waiter in done:
                    logger.warning(f"Review cancelled with {len(pending)} agent(s) unfinished")
                    return
        finally:
            waiter.cancel()

    async def _run_agent(
        self,
        transport: AgentTransport,
        prompt: str,
        file_count: int,
        semaphore: asyncio.Semaphore,
    ) -> AgentReviewResult:
        """Invoke one agent and parse its output. Never raises for agent failures."""
        name = transport.name
        async with semaphore:
            logger.info(f"Agent {name} started ({file_count} files)")
            self._emit(
                ReviewEvent("agent_started", f"agent {name} reviewing {file_count} file(s)", name)
            )
            start = time.monotonic()
            raw_output = ""
            try:
                raw_output = await transport.run(prompt)
                result = extract_review(raw_output)
            except AgentTransportError as e:
                return self._failed(name, e, start, raw_output or e.output)
            except (ExtractionError, ReviewValidationError) as e:
                return self._failed(name, e, start, raw_output)
            except Exception as e:
                # Anything else a transport raises stays with that agent
                logger.exception(f"Agent {name} raised unexpectedly")
                return self._failed(name, e, start, raw_output)

            duration_ms = _elapsed_ms(start)
            logger.info(
                f"Agent {name} completed: {len(result.findings)} findings, "
                f"verdict {result.verdict.value} ({duration_ms}ms)"
            )
            self._emit(
                ReviewEvent(
                    "agent_completed",
                    f"agent {name} completed: {len(result.findings)} finding(s), "
                    f"verdict {result.verdict.value}",
                    name,
                )
            )
            return AgentReviewResult(
                agent=name, result=result, duration_ms=duration_ms, raw_output=raw_output
            )

    def _failed(
        self, name: str, error: Exception, start: float, raw_output: str
    ) -> AgentReviewResult:
        logger.warning(f"Agent {name} failed: {error}")
        self._emit(ReviewEvent("agent_error", f"agent {name} failed: {error}", name))
        return AgentReviewResult(
            agent=name,
            duration_ms=_elapsed_ms(start),
            error=error,
            raw_output=raw_output,
        )

    def _emit(self, event: ReviewEvent) -> None:
        if self.on_event is None:
            return
        try:
            self.on_event(event)
        except Exception:
            logger.exception(f"Event callback failed for {event.type}")
