"""Review prompt construction from templates and project context."""

import functools
import logging
from collections.abc import Sequence
from dataclasses import dataclass, fields
from importlib import resources
from pathlib import Path
from typing import Any

import jinja2

from multi_reviewer.config import ReviewConfig, validate_path
from multi_reviewer.diff.partition import DiffSlice
from multi_reviewer.errors import ConfigError, TemplateError
from multi_reviewer.models.diff import ChangedFile, ChangeType, DiffStats, ReviewMode
from multi_reviewer.prompt.context import ContextLoader, ProjectContext

logger = logging.getLogger(__name__)

# Diffs longer than this many bytes are cut and marked
MAX_DIFF_BYTES = 100 * 1024
TRUNCATION_MARKER = "\n... [diff truncated at 100KB] ..."

MAX_FILES_IN_LIST = 500

# Checked in order under the prompts dir; first existing file wins
CUSTOM_TEMPLATE_NAMES = ("review.tmpl", "review.md")

_HIGH_RISK_PREFIX = "[HIGH RISK] "
_NORMAL_PREFIX = " " * len(_HIGH_RISK_PREFIX)

# Embedded verbatim in every prompt so agents emit parseable output
JSON_SCHEMA_EXAMPLE = """\
{
  "findings": [
    {
      "severity": "info|low|medium|high|critical",
      "category": "security|performance|correctness|style|...",
      "file": "path/to/file.go",
      "line": 42,
      "description": "Description of the issue",
      "suggestion": "How to fix it"
    }
  ],
  "verdict": "APPROVED|CHANGES_NEEDED|BLOCKING"
}"""


@functools.lru_cache(maxsize=1)
def load_default_template() -> str:
    """Read the packaged default review template (once per process)."""
    return (
        resources.files("multi_reviewer.prompt")
        .joinpath("templates/review.tmpl")
        .read_text(encoding="utf-8")
    )


@dataclass(frozen=True)
class PromptData:
    """Everything a review template can reference."""

    project_brief: str
    rules: tuple[str, ...]
    diff: str
    files: tuple[ChangedFile, ...]
    file_list: str
    high_risk_files: tuple[str, ...]
    stats: DiffStats
    json_schema: str
    agent_name: str
    review_mode: ReviewMode

    def template_vars(self) -> dict[str, Any]:
        values = {f.name: getattr(self, f.name) for f in fields(self)}
        values["review_mode"] = self.review_mode.value
        return values


def _environment() -> jinja2.Environment:
    # Double-bracket delimiters so braces in code and JSON never read as syntax
    return jinja2.Environment(
        variable_start_string="[[",
        variable_end_string="]]",
        block_start_string="[%",
        block_end_string="%]",
        comment_start_string="[#",
        comment_end_string="#]",
        autoescape=False,
        undefined=jinja2.StrictUndefined,
        trim_blocks=True,
        lstrip_blocks=True,
        keep_trailing_newline=True,
    )


@dataclass(frozen=True)
class CompiledTemplate:
    """A parsed template plus where it came from (None = embedded)."""

    template: jinja2.Template
    path: str | None

    @property
    def source_name(self) -> str:
        return f"template {self.path!r}" if self.path else "embedded template"


class PromptBuilder:
    """Builds agent prompts from a template, project context and a diff slice."""

    def __init__(
        self,
        config: ReviewConfig,
        default_template: str | None = None,
        loader: ContextLoader | None = None,
    ) -> None:
        """Initialize the builder.

        Args:
            config: Review settings (prompts dir, rules dir, brief path)
            default_template: Fallback template text (default: packaged template)
            loader: Context loader (default: built from config)
        """
        self.config = config
        self.default_template = (
            default_template if default_template is not None else load_default_template()
        )
        self.loader = loader or ContextLoader(config.project_brief_file, config.rules_dir)
        self._env = _environment()

    def load_context(self) -> ProjectContext:
        return self.loader.load()

    def select_template(self) -> tuple[str, str | None]:
        """Pick the custom template if one exists, else the embedded default.

        Returns:
            (template text, path of the custom file or None)

        Raises:
            ConfigError: On path traversal or an unreadable template file
        """
        prompts_dir = self.config.prompts_dir
        if not prompts_dir:
            return self.default_template, None

        try:
            validate_path(prompts_dir)
        except ConfigError as e:
            raise ConfigError(f"prompts dir path: {e}") from e

        for name in CUSTOM_TEMPLATE_NAMES:
            path = Path(prompts_dir) / name
            try:
                text = path.read_text(encoding="utf-8")
            except FileNotFoundError:
                continue
            except (OSError, UnicodeDecodeError) as e:
                raise ConfigError(f"reading template {str(path)!r}: {e}") from e
            logger.debug(f"Using custom review template {path}")
            return text, str(path)

        return self.default_template, None

    def compile(self) -> CompiledTemplate:
        """Select and parse the template.

        Raises:
            TemplateError: If the template does not parse
        """
        text, path = self.select_template()
        try:
            template = self._env.from_string(text)
        except jinja2.TemplateError as e:
            where = f"template {path!r}" if path else "embedded template"
            raise TemplateError(f"parse {where}: {e}", path=path) from e
        return CompiledTemplate(template=template, path=path)

    def render(self, data: PromptData, compiled: CompiledTemplate | None = None) -> str:
        """Render prompt data into text.

        Raises:
            TemplateError: If rendering fails
        """
        compiled = compiled or self.compile()
        try:
            return compiled.template.render(data.template_vars())
        except jinja2.TemplateError as e:
            raise TemplateError(
                f"execute {compiled.source_name}: {e}", path=compiled.path
            ) from e

    def build_for_agent(
        self,
        agent_name: str,
        diff_slice: DiffSlice,
        mode: ReviewMode,
        context: ProjectContext | None = None,
        compiled: CompiledTemplate | None = None,
    ) -> str:
        """Build the complete prompt for one agent.

        Args:
            agent_name: Name of the reviewing agent
            diff_slice: Files, diff text and stats assigned to the agent
            mode: Review mode
            context: Pre-loaded project context (loaded when omitted)
            compiled: Pre-compiled template (compiled when omitted)

        Returns:
            Rendered prompt text
        """
        context = context if context is not None else self.load_context()
        file_list, high_risk = format_file_list(diff_slice.files)

        logger.debug(
            f"Building prompt for {agent_name}: {len(diff_slice.files)} files, "
            f"mode={mode.value}, rules={len(context.rules)}"
        )

        data = PromptData(
            project_brief=context.brief,
            rules=context.rules,
            diff=truncate_diff(diff_slice.diff_text),
            files=diff_slice.files,
            file_list=file_list,
            high_risk_files=tuple(high_risk),
            stats=diff_slice.stats,
            json_schema=JSON_SCHEMA_EXAMPLE,
            agent_name=agent_name,
            review_mode=mode,
        )
        return self.render(data, compiled)


def truncate_diff(diff: str, max_bytes: int = MAX_DIFF_BYTES) -> str:
    """Cut a diff at ``max_bytes`` UTF-8 bytes and append a visible marker."""
    encoded = diff.encode("utf-8")
    if len(encoded) <= max_bytes:
        return diff
    # A multi-byte character split by the cut is dropped
    head = encoded[:max_bytes].decode("utf-8", errors="ignore")
    return head + TRUNCATION_MARKER


def change_summary(f: ChangedFile) -> str:
    """Describe a file change, e.g. ``modified, +42/-10`` or ``added, +150``."""
    change = f.change_type.value
    if f.change_type is ChangeType.RENAMED and f.old_path:
        change = f"renamed from {f.old_path}"

    if f.lines_added > 0 and f.lines_deleted > 0:
        return f"{change}, +{f.lines_added}/-{f.lines_deleted}"
    if f.lines_added > 0:
        return f"{change}, +{f.lines_added}"
    if f.lines_deleted > 0:
        return f"{change}, -{f.lines_deleted}"
    return change


def format_file_list(
    files: Sequence[ChangedFile], max_files: int = MAX_FILES_IN_LIST
) -> tuple[str, list[str]]:
    """Format changed files one per line with risk flags.

    Only the first ``max_files`` entries are listed; the high-risk paths
    returned are those among the listed files.

    Returns:
        (formatted text, high-risk paths)
    """
    if not files:
        return "", []

    shown = files[:max_files]
    lines = []
    high_risk = []
    for f in shown:
        if f.is_high_risk:
            high_risk.append(f.path)
            prefix = _HIGH_RISK_PREFIX
        else:
            prefix = _NORMAL_PREFIX
        lines.append(f"{prefix}{f.path} ({change_summary(f)})")

    if len(files) > max_files:
        lines.append(
            f"... and {len(files) - max_files} more files "
            f"(showing {max_files} of {len(files)})"
        )

    return "\n".join(lines), high_risk
