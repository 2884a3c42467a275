"""Diff classification, partitioning and the git diff source."""

from multi_reviewer.diff.git import GitDiffSource
from multi_reviewer.diff.partition import (
    DiffSlice,
    filter_diff,
    partition,
    split_files,
    unquote_path,
)
from multi_reviewer.diff.risk import RiskClassifier

__all__ = [
    "DiffSlice",
    "GitDiffSource",
    "RiskClassifier",
    "filter_diff",
    "partition",
    "split_files",
    "unquote_path",
]
