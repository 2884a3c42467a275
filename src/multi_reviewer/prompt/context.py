"""Project brief and review rule loading."""

import logging
from dataclasses import dataclass
from pathlib import Path

from multi_reviewer.config import validate_path
from multi_reviewer.errors import ConfigError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ProjectContext:
    """Project brief and rule texts shared by every agent's prompt."""

    brief: str = ""
    rules: tuple[str, ...] = ()


class ContextLoader:
    """Reads the project brief and ``*.md`` rule files from disk.

    Missing files and directories are skipped; an existing path that cannot
    be read is an error.
    """

    def __init__(self, brief_path: str = "", rules_dir: str = "") -> None:
        self.brief_path = brief_path
        self.rules_dir = rules_dir

    def load(self) -> ProjectContext:
        """Load the brief and rules.

        Returns:
            ProjectContext (empty when neither path is configured)

        Raises:
            ConfigError: On path traversal or an unreadable existing file
        """
        brief = ""
        if self.brief_path:
            try:
                validate_path(self.brief_path)
            except ConfigError as e:
                raise ConfigError(f"project brief path: {e}") from e
            brief = _read_optional(Path(self.brief_path), "project brief")

        rules: tuple[str, ...] = ()
        if self.rules_dir:
            try:
                validate_path(self.rules_dir)
            except ConfigError as e:
                raise ConfigError(f"rules dir path: {e}") from e
            rules = tuple(load_rule_files(Path(self.rules_dir)))

        logger.debug(f"Loaded project context: brief={bool(brief)}, rules={len(rules)}")
        return ProjectContext(brief=brief, rules=rules)


def load_rule_files(rules_dir: Path) -> list[str]:
    """Read every ``*.md`` file directly inside ``rules_dir`` in filename order."""
    try:
        entries = list(rules_dir.iterdir())
    except FileNotFoundError:
        return []
    except OSError as e:
        raise ConfigError(f"reading rules dir {str(rules_dir)!r}: {e}") from e

    names = sorted(
        entry.name
        for entry in entries
        if entry.suffix.lower() == ".md" and not entry.is_dir()
    )
    return [_read_required(rules_dir / name, "rule file") for name in names]


def _read_optional(path: Path, what: str) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except FileNotFoundError:
        logger.debug(f"No {what} at {path}")
        return ""
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"reading {what} {str(path)!r}: {e}") from e


def _read_required(path: Path, what: str) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise ConfigError(f"reading {what} {str(path)!r}: {e}") from e
