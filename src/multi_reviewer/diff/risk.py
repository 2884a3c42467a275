"""Glob-based risk classification of changed files."""

from dataclasses import dataclass
from fnmatch import fnmatchcase

from multi_reviewer.errors import ConfigError
from multi_reviewer.models.diff import RiskLevel


@dataclass(frozen=True)
class RiskClassifier:
    """Marks files matching any configured glob pattern as high risk.

    Matching is case-sensitive and applied to the path exactly as the diff
    reports it; ``*`` also matches ``/``.
    """

    patterns: tuple[str, ...] = ()

    @classmethod
    def from_patterns(cls, patterns: str) -> "RiskClassifier":
        """Build a classifier from a comma-separated pattern list.

        Raises:
            ConfigError: If a pattern has an unbalanced character class
        """
        parsed = tuple(p.strip() for p in (patterns or "").split(",") if p.strip())
        for pattern in parsed:
            _check_pattern(pattern)
        return cls(patterns=parsed)

    def classify(self, path: str) -> RiskLevel:
        for pattern in self.patterns:
            if fnmatchcase(path, pattern):
                return RiskLevel.HIGH
        return RiskLevel.NORMAL


def _check_pattern(pattern: str) -> None:
    # Bracket rules follow fnmatch: "]" right after "[" or "[!" is a literal
    i, n = 0, len(pattern)
    while i < n:
        if pattern[i] != "[":
            i += 1
            continue
        j = i + 1
        if j < n and pattern[j] == "!":
            j += 1
        if j < n and pattern[j] == "]":
            j += 1
        close = pattern.find("]", j)
        if close < 0:
            raise ConfigError(f"invalid risk pattern {pattern!r}: unclosed '['")
        i = close + 1
