"""Pytest configuration and shared fixtures."""

import asyncio
import json

import pytest

from multi_reviewer.config import ReviewConfig
from multi_reviewer.models.diff import ChangedFile, ChangeType, DiffResult, RiskLevel

SAMPLE_DIFF = """\
diff --git a/internal/auth/x.go b/internal/auth/x.go
index 1234567..abcdefg 100644
--- a/internal/auth/x.go
+++ b/internal/auth/x.go
@@ -1,4 +1,6 @@
 package auth
+
+func Check(token string) bool { return token != "" }
diff --git a/cmd/main.go b/cmd/main.go
new file mode 100644
index 0000000..1111111
--- /dev/null
+++ b/cmd/main.go
@@ -0,0 +1,3 @@
+package main
+
+func main() {}
diff --git a/pkg/old.go b/pkg/new.go
similarity index 90%
rename from pkg/old.go
rename to pkg/new.go
--- a/pkg/old.go
+++ b/pkg/new.go
@@ -1 +1 @@
-package old
+package new
"""


def review_json(verdict: str, findings: list[dict] | None = None) -> str:
    """Agent-style output: prose around a fenced JSON review payload."""
    payload = json.dumps({"findings": findings or [], "verdict": verdict}, indent=2)
    return f"I reviewed the change.\n\n```json\n{payload}\n```\n"


class FakeTransport:
    """In-memory agent transport recording the prompts it receives."""

    def __init__(
        self,
        name: str,
        output: str = "",
        delay: float = 0.0,
        error: Exception | None = None,
    ) -> None:
        self.name = name
        self.output = output
        self.delay = delay
        self.error = error
        self.prompts: list[str] = []

    def describe(self) -> str:
        return f"fake transport {self.name}"

    async def run(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.output


@pytest.fixture
def sample_diff() -> str:
    """Unified diff touching three files, one of them renamed."""
    return SAMPLE_DIFF


@pytest.fixture
def changed_files() -> tuple[ChangedFile, ...]:
    """Files matching SAMPLE_DIFF: a high-risk modification, an addition and a rename."""
    return (
        ChangedFile(
            path="internal/auth/x.go",
            change_type=ChangeType.MODIFIED,
            lines_added=42,
            lines_deleted=10,
            risk=RiskLevel.HIGH,
        ),
        ChangedFile(path="cmd/main.go", change_type=ChangeType.ADDED, lines_added=150),
        ChangedFile(
            path="pkg/new.go",
            change_type=ChangeType.RENAMED,
            lines_added=1,
            lines_deleted=1,
            old_path="pkg/old.go",
        ),
    )


@pytest.fixture
def diff_result(changed_files, sample_diff) -> DiffResult:
    """DiffResult built from the sample files and diff text."""
    return DiffResult.from_files(changed_files, full_diff=sample_diff, base_branch="main")


@pytest.fixture
def review_config() -> ReviewConfig:
    """Review settings with no custom prompts, rules or brief."""
    return ReviewConfig(risk_patterns="internal/auth/*")


@pytest.fixture
def make_transport():
    """Factory for FakeTransport instances."""
    return FakeTransport


@pytest.fixture
def make_review_output():
    """Factory for agent output wrapping a JSON review payload."""
    return review_json
