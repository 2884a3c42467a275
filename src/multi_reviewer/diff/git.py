"""Git-backed diff source producing classified changed files."""

import asyncio
import logging
import re
from collections.abc import Callable
from typing import TYPE_CHECKING

from multi_reviewer.diff.partition import unquote_path
from multi_reviewer.diff.risk import RiskClassifier
from multi_reviewer.errors import ConfigError, ReviewError
from multi_reviewer.models.diff import ChangedFile, ChangeType, DiffResult

if TYPE_CHECKING:
    from multi_reviewer.config import ReviewConfig

logger = logging.getLogger(__name__)

# Guards against refs that git would read as flags or range operators
_VALID_BRANCH = re.compile(r"^[A-Za-z0-9_./-]+$")

_STATUS_TO_CHANGE = {
    "A": ChangeType.ADDED,
    "C": ChangeType.ADDED,
    "D": ChangeType.DELETED,
    "R": ChangeType.RENAMED,
}


class GitError(ReviewError):
    """A git command failed."""


class GitDiffSource:
    """Diffs HEAD against a base branch with the git CLI."""

    def __init__(
        self,
        classifier: RiskClassifier | None = None,
        accepts_path: Callable[[str], bool] | None = None,
        repo_dir: str = ".",
        git_binary: str = "git",
    ) -> None:
        """Initialize the diff source.

        Args:
            classifier: Risk classifier applied to every file
            accepts_path: Extension filter; files it rejects are dropped
            repo_dir: Working tree to run git in
            git_binary: Git executable
        """
        self.classifier = classifier or RiskClassifier()
        self.accepts_path = accepts_path or (lambda _path: True)
        self.repo_dir = repo_dir
        self.git_binary = git_binary

    @classmethod
    def from_config(cls, config: "ReviewConfig", repo_dir: str = ".") -> "GitDiffSource":
        return cls(
            classifier=RiskClassifier.from_patterns(config.risk_patterns),
            accepts_path=config.accepts_path,
            repo_dir=repo_dir,
        )

    async def generate(self, base_branch: str) -> DiffResult:
        """Produce the classified diff of HEAD against ``base_branch``.

        An empty diff yields a DiffResult with no files and zero stats.

        Raises:
            ConfigError: If the branch name is unsafe
            GitError: If a git command fails
        """
        if not _VALID_BRANCH.match(base_branch) or ".." in base_branch:
            raise ConfigError(
                f"invalid base branch {base_branch!r}: must match "
                f"{_VALID_BRANCH.pattern} with no consecutive dots"
            )

        ref = f"{base_branch}...HEAD"
        name_status = await self._git("diff", "--name-status", "-M", ref)
        numstat = await self._git("diff", "--numstat", "-M", ref)
        full_diff = await self._git("diff", "-M", ref)

        line_counts = parse_numstat(numstat)
        files = []
        for status, path, old_path in parse_name_status(name_status):
            if not self.accepts_path(path):
                logger.debug(f"Skipping {path}: extension filter")
                continue
            added, deleted = line_counts.get(path, (0, 0))
            files.append(
                ChangedFile(
                    path=path,
                    change_type=_STATUS_TO_CHANGE.get(status, ChangeType.MODIFIED),
                    lines_added=added,
                    lines_deleted=deleted,
                    risk=self.classifier.classify(path),
                    old_path=old_path,
                )
            )

        result = DiffResult.from_files(files, full_diff=full_diff, base_branch=base_branch)
        logger.info(
            f"Diff against {base_branch}: {result.stats.total_files} files "
            f"({result.stats.high_risk_files} high risk), "
            f"+{result.stats.total_lines_added}/-{result.stats.total_lines_deleted}"
        )
        return result

    async def _git(self, *args: str) -> str:
        # Non-ASCII paths stay unescaped so they match across git outputs
        proc = await asyncio.create_subprocess_exec(
            self.git_binary,
            "-c",
            "core.quotePath=false",
            *args,
            cwd=self.repo_dir,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        stdout, stderr = await proc.communicate()
        if proc.returncode != 0:
            raise GitError(
                f"git {' '.join(args)} exited with code {proc.returncode}: "
                f"{stderr.decode(errors='replace').strip()}"
            )
        return stdout.decode(errors="replace")


def parse_name_status(output: str) -> list[tuple[str, str, str | None]]:
    """Parse ``git diff --name-status`` into (status letter, path, old path)."""
    entries = []
    for line in output.splitlines():
        if not line.strip():
            continue
        parts = line.split("\t")
        status = parts[0][:1]
        if status in ("R", "C") and len(parts) >= 3:
            old_path = unquote_path(parts[1]) if status == "R" else None
            entries.append((status, unquote_path(parts[2]), old_path))
        elif len(parts) >= 2:
            entries.append((status, unquote_path(parts[1]), None))
    return entries


def parse_numstat(output: str) -> dict[str, tuple[int, int]]:
    """Parse ``git diff --numstat`` into path -> (added, deleted).

    Binary files ("-" counts) report zero lines. Rename entries are keyed
    by their destination path.
    """
    counts = {}
    for line in output.splitlines():
        parts = line.split("\t")
        if len(parts) < 3:
            continue
        added = int(parts[0]) if parts[0].isdigit() else 0
        deleted = int(parts[1]) if parts[1].isdigit() else 0
        path = _rename_destination(parts[-1]) if len(parts) == 3 else parts[-1]
        counts[unquote_path(path)] = (added, deleted)
    return counts


def _rename_destination(path: str) -> str:
    """Resolve numstat rename notation (``a => b``, ``dir/{a => b}/f``)."""
    if " => " not in path:
        return path
    if "{" in path and "}" in path:
        prefix, rest = path.split("{", 1)
        inner, suffix = rest.split("}", 1)
        new = inner.split(" => ", 1)[1]
        return (prefix + new + suffix).replace("//", "/")
    return path.split(" => ", 1)[1]
