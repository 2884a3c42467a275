"""Tests for the review orchestrator."""

import asyncio
import time

import pytest

from multi_reviewer.config import ReviewConfig, ReviewOpts
from multi_reviewer.errors import (
    AgentTransportError,
    ConfigError,
    ExtractionError,
    ReviewCancelledError,
    ReviewValidationError,
    TemplateError,
)
from multi_reviewer.models.diff import ReviewMode
from multi_reviewer.models.findings import Verdict
from multi_reviewer.orchestrator.orchestrator import ReviewOrchestrator
from multi_reviewer.prompt.builder import PromptBuilder

SMALL_TEMPLATE = "agent=[[ agent_name ]]\n[[ file_list ]]\n[[ diff ]]"


def _orchestrator(transports, template=SMALL_TEMPLATE, **kwargs) -> ReviewOrchestrator:
    builder = PromptBuilder(ReviewConfig(), default_template=template)
    return ReviewOrchestrator({t.name: t for t in transports}, builder, **kwargs)


def _opts(*agents: str, **kwargs) -> ReviewOpts:
    return ReviewOpts(agents=agents, **kwargs)


class TestReviewOrchestrator:
    """Tests for ReviewOrchestrator."""

    @pytest.mark.asyncio
    async def test_parallel_execution(self, diff_result, make_transport, make_review_output):
        """Test that agents run in parallel up to the concurrency cap."""
        agents = [
            make_transport("a", make_review_output("APPROVED"), delay=0.2),
            make_transport("b", make_review_output("APPROVED"), delay=0.2),
        ]
        orchestrator = _orchestrator(agents)

        start = time.monotonic()
        result = await orchestrator.review(diff_result, _opts("a", "b", concurrency=2))
        elapsed = time.monotonic() - start

        assert result.consolidated.verdict is Verdict.APPROVED
        # ~0.2s in parallel, not ~0.4s sequentially
        assert elapsed < 0.35

    @pytest.mark.asyncio
    async def test_concurrency_cap(self, diff_result, make_transport, make_review_output):
        """Test that no more than the cap run at once."""
        running = 0
        peak = 0

        class CountingTransport(make_transport):
            async def run(self, prompt: str) -> str:
                nonlocal running, peak
                running += 1
                peak = max(peak, running)
                try:
                    return await super().run(prompt)
                finally:
                    running -= 1

        agents = [
            CountingTransport(name, make_review_output("APPROVED"), delay=0.05)
            for name in ("a", "b", "c", "d", "e")
        ]
        orchestrator = _orchestrator(agents)
        result = await orchestrator.review(
            diff_result, _opts("a", "b", "c", "d", "e", concurrency=2)
        )

        assert peak == 2
        assert len(result.consolidated.agent_results) == 5
        assert not result.consolidated.failed_agents

    @pytest.mark.asyncio
    async def test_concurrency_below_one_clamped(
        self, diff_result, make_transport, make_review_output
    ):
        """Test that a cap below one still runs agents."""
        agents = [make_transport("a", make_review_output("APPROVED"))]
        result = await _orchestrator(agents).review(diff_result, _opts("a", concurrency=0))
        assert result.consolidated.verdict is Verdict.APPROVED

    @pytest.mark.asyncio
    async def test_failure_isolation(self, diff_result, make_transport, make_review_output):
        """Test that one failing agent never aborts its siblings."""
        finding = {
            "severity": "medium",
            "category": "correctness",
            "file": "cmd/main.go",
            "line": 3,
            "description": "main does nothing",
        }
        agents = [
            make_transport(
                "broken",
                error=AgentTransportError("broken", "exited with code 2: boom", output="partial"),
            ),
            make_transport("good", make_review_output("CHANGES_NEEDED", [finding])),
        ]
        result = await _orchestrator(agents).review(diff_result, _opts("broken", "good"))
        review = result.consolidated

        assert review.verdict is Verdict.CHANGES_NEEDED
        assert review.failed_agents == ["broken"]
        assert review.failure_messages == ["agent broken failed: exited with code 2: boom"]
        assert len(review.findings) == 1
        assert review.findings[0].agent == "good"

        broken = review.agent_results[0]
        assert broken.result is None
        assert isinstance(broken.error, AgentTransportError)
        assert broken.raw_output == "partial"

    @pytest.mark.asyncio
    async def test_invalid_output_keeps_raw(self, diff_result, make_transport):
        """Test that parse failures are recorded like transport errors."""
        agents = [
            make_transport("chatty", "I think it looks fine!"),
            make_transport("wrong", '{"verdict": "MAYBE"}'),
        ]
        result = await _orchestrator(agents).review(diff_result, _opts("chatty", "wrong"))
        chatty, wrong = result.consolidated.agent_results

        assert isinstance(chatty.error, ExtractionError)
        assert chatty.raw_output == "I think it looks fine!"
        assert isinstance(wrong.error, ReviewValidationError)
        assert wrong.raw_output == '{"verdict": "MAYBE"}'
        assert result.consolidated.verdict is Verdict.INDETERMINATE

    @pytest.mark.asyncio
    async def test_unexpected_exception_recorded(
        self, diff_result, make_transport, make_review_output
    ):
        """Test that an arbitrary exception from a transport is contained."""
        agents = [
            make_transport("weird", error=RuntimeError("socket closed")),
            make_transport("ok", make_review_output("APPROVED")),
        ]
        result = await _orchestrator(agents).review(diff_result, _opts("weird", "ok"))
        assert result.consolidated.failure_messages == ["agent weird failed: socket closed"]
        assert result.consolidated.verdict is Verdict.APPROVED

    @pytest.mark.asyncio
    async def test_duplicate_finding_scenario(
        self, diff_result, make_transport, make_review_output
    ):
        """Test the two-agent duplicate scenario with the embedded template."""
        finding = {
            "severity": "high",
            "category": "security",
            "file": "x.go",
            "line": 5,
            "description": "token compared in non-constant time",
            "suggestion": "use subtle.ConstantTimeCompare",
        }
        agent_a = make_transport("A", make_review_output("APPROVED", [finding]))
        agent_b = make_transport("B", make_review_output("CHANGES_NEEDED", [dict(finding)]))
        builder = PromptBuilder(ReviewConfig())
        orchestrator = ReviewOrchestrator({"A": agent_a, "B": agent_b}, builder)

        result = await orchestrator.review(diff_result, _opts("A", "B", mode=ReviewMode.ALL))
        review = result.consolidated

        assert review.verdict is Verdict.CHANGES_NEEDED
        assert len(review.findings) == 1
        assert review.findings[0].agent == "A"
        assert result.stats.duplicates_removed == 1
        # Both agents saw the whole change set
        for agent in (agent_a, agent_b):
            [prompt] = agent.prompts
            assert "[HIGH RISK] internal/auth/x.go (modified, +42/-10)" in prompt
            assert "cmd/main.go (added, +150)" in prompt
            assert "pkg/new.go (renamed from pkg/old.go, +1/-1)" in prompt

    @pytest.mark.asyncio
    async def test_split_mode_prompts(self, diff_result, make_transport, make_review_output):
        """Test that split mode gives each agent only its files."""
        agents = [
            make_transport("a", make_review_output("APPROVED")),
            make_transport("b", make_review_output("APPROVED")),
        ]
        await _orchestrator(agents).review(diff_result, _opts("a", "b", mode=ReviewMode.SPLIT))

        prompt_a, prompt_b = agents[0].prompts[0], agents[1].prompts[0]
        assert "internal/auth/x.go" in prompt_a
        assert "cmd/main.go" not in prompt_a
        assert "cmd/main.go" in prompt_b
        assert "internal/auth/x.go" not in prompt_b

    @pytest.mark.asyncio
    async def test_template_error_before_any_agent(self, diff_result, make_transport):
        """Test that template failures abort the run before transports are called."""
        agents = [make_transport("a", "{}"), make_transport("b", "{}")]
        orchestrator = _orchestrator(agents, template="[[ missing_field ]]")

        with pytest.raises(TemplateError):
            await orchestrator.review(diff_result, _opts("a", "b"))
        assert agents[0].prompts == []
        assert agents[1].prompts == []

    @pytest.mark.asyncio
    async def test_unknown_agent_is_config_error(self, diff_result, make_transport):
        """Test that unknown agent names are rejected up front."""
        orchestrator = _orchestrator([make_transport("a")])
        with pytest.raises(ConfigError, match="unknown agent 'nope'"):
            await orchestrator.review(diff_result, _opts("a", "nope"))

    @pytest.mark.asyncio
    async def test_repeated_agent_is_config_error(self, diff_result, make_transport):
        """Test that naming the same agent twice is rejected before any run."""
        agent = make_transport("a")
        orchestrator = _orchestrator([agent])
        with pytest.raises(ConfigError, match="'a' is listed more than once"):
            await orchestrator.review(diff_result, _opts("a", "a"))
        with pytest.raises(ConfigError, match="listed more than once"):
            orchestrator.plan(diff_result, _opts("a", "a"))
        assert agent.prompts == []

    @pytest.mark.asyncio
    async def test_empty_agent_list_is_config_error(self, diff_result, make_transport):
        """Test that at least one agent is required."""
        orchestrator = _orchestrator([make_transport("a")])
        with pytest.raises(ConfigError, match="at least one agent"):
            await orchestrator.review(diff_result, _opts())

    @pytest.mark.asyncio
    async def test_cancellation(self, diff_result, make_transport, make_review_output):
        """Test that setting the cancel event marks unfinished agents cancelled."""
        fast = make_transport("fast", make_review_output("APPROVED"))
        slow = make_transport("slow", make_review_output("BLOCKING"), delay=10)
        orchestrator = _orchestrator([fast, slow])
        cancel = asyncio.Event()

        async def cancel_soon():
            await asyncio.sleep(0.1)
            cancel.set()

        trigger = asyncio.create_task(cancel_soon())
        start = time.monotonic()
        result = await orchestrator.review(
            diff_result, _opts("fast", "slow"), cancel_event=cancel
        )
        await trigger

        assert time.monotonic() - start < 2
        fast_result, slow_result = result.consolidated.agent_results
        assert fast_result.succeeded
        assert isinstance(slow_result.error, ReviewCancelledError)
        assert result.consolidated.verdict is Verdict.APPROVED
        assert result.consolidated.failed_agents == ["slow"]

    @pytest.mark.asyncio
    async def test_events_emitted(self, diff_result, make_transport, make_review_output):
        """Test the progress events for one success and one failure."""
        events = []
        agents = [
            make_transport("ok", make_review_output("APPROVED")),
            make_transport("bad", error=AgentTransportError("bad", "timed out after 1s")),
        ]
        orchestrator = _orchestrator(agents, on_event=events.append)
        await orchestrator.review(diff_result, _opts("ok", "bad"))

        types = [e.type for e in events]
        assert types[0] == "review_started"
        assert types[-1] == "consolidated"
        assert types.count("agent_started") == 2
        assert ("agent_completed", "ok") in [(e.type, e.agent) for e in events]
        assert ("agent_error", "bad") in [(e.type, e.agent) for e in events]

    @pytest.mark.asyncio
    async def test_event_callback_errors_ignored(
        self, diff_result, make_transport, make_review_output
    ):
        """Test that a raising callback cannot break the review."""

        def explode(_event):
            raise ValueError("ui bug")

        agents = [make_transport("a", make_review_output("APPROVED"))]
        result = await _orchestrator(agents, on_event=explode).review(diff_result, _opts("a"))
        assert result.consolidated.verdict is Verdict.APPROVED

    @pytest.mark.asyncio
    async def test_duration_recorded(self, diff_result, make_transport, make_review_output):
        """Test that per-agent and total durations are measured."""
        agents = [make_transport("a", make_review_output("APPROVED"), delay=0.05)]
        result = await _orchestrator(agents).review(diff_result, _opts("a"))
        assert result.consolidated.agent_results[0].duration_ms >= 40
        assert result.duration_ms >= result.consolidated.agent_results[0].duration_ms


class TestPlan:
    """Tests for dry-run planning."""

    def test_plan_describes_agents(self, diff_result, make_transport):
        """Test that the plan lists agents and file counts without running them."""
        agents = [make_transport("a"), make_transport("b")]
        plan = _orchestrator(agents).plan(
            diff_result, _opts("a", "b", mode=ReviewMode.SPLIT, base_branch="develop")
        )
        assert "Base branch: develop" in plan
        assert "Mode: split" in plan
        assert "a: 2 files, fake transport a" in plan
        assert "b: 1 files, fake transport b" in plan
        assert agents[0].prompts == []
