"""Prompt building for review agents."""

from multi_reviewer.prompt.builder import (
    JSON_SCHEMA_EXAMPLE,
    MAX_DIFF_BYTES,
    TRUNCATION_MARKER,
    PromptBuilder,
    PromptData,
    format_file_list,
    load_default_template,
    truncate_diff,
)
from multi_reviewer.prompt.context import ContextLoader, ProjectContext

__all__ = [
    "JSON_SCHEMA_EXAMPLE",
    "MAX_DIFF_BYTES",
    "TRUNCATION_MARKER",
    "ContextLoader",
    "ProjectContext",
    "PromptBuilder",
    "PromptData",
    "format_file_list",
    "load_default_template",
    "truncate_diff",
]
