"""Configuration loading and validation for multi-reviewer."""

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from multi_reviewer.diff.risk import RiskClassifier
from multi_reviewer.errors import ConfigError
from multi_reviewer.models.diff import ReviewMode

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_FILE = "multi-reviewer.yaml"


@dataclass(frozen=True)
class ReviewConfig:
    """Static review settings, read from the ``review`` section."""

    # Comma-separated file suffixes to review (".go,.py"); empty means all
    extensions: str = ""
    # Comma-separated glob patterns marking high-risk files
    risk_patterns: str = ""
    prompts_dir: str = ""
    rules_dir: str = ""
    project_brief_file: str = ""

    @property
    def extension_list(self) -> list[str]:
        return [e.strip() for e in self.extensions.split(",") if e.strip()]

    def accepts_path(self, path: str) -> bool:
        """Check a path against the extension filter."""
        suffixes = self.extension_list
        if not suffixes:
            return True
        return any(path.endswith(suffix) for suffix in suffixes)

    def path_settings(self) -> dict[str, str]:
        """Path-like settings keyed by their config name."""
        return {
            "prompts_dir": self.prompts_dir,
            "rules_dir": self.rules_dir,
            "project_brief_file": self.project_brief_file,
        }


@dataclass(frozen=True)
class ReviewOpts:
    """Per-run review parameters."""

    agents: tuple[str, ...]
    concurrency: int = 2
    mode: ReviewMode = ReviewMode.ALL
    base_branch: str = "main"
    dry_run: bool = False


@dataclass
class AgentConfig:
    """How to reach one named agent.

    Either ``command`` (a subprocess reading the prompt on stdin) or
    ``base_url`` (an OpenAI-compatible chat endpoint) must be set.
    """

    name: str
    command: list[str] = field(default_factory=list)
    base_url: str | None = None
    model: str | None = None
    api_key: str | None = None
    timeout_seconds: int = 600
    max_tokens: int = 4096


@dataclass
class ReviewDefaults:
    """Defaults for per-run options when the CLI does not override them."""

    agents: list[str] = field(default_factory=list)
    concurrency: int = 2
    mode: str = "all"
    base_branch: str = "main"


@dataclass
class Config:
    """Complete application configuration."""

    review: ReviewConfig = field(default_factory=ReviewConfig)
    defaults: ReviewDefaults = field(default_factory=ReviewDefaults)
    agents: list[AgentConfig] = field(default_factory=list)

    def agent(self, name: str) -> AgentConfig | None:
        for agent in self.agents:
            if agent.name == name:
                return agent
        return None


def validate_path(path: str) -> None:
    """Reject paths that still contain a ``..`` segment after normalization.

    Raises:
        ConfigError: If the path escapes upward
    """
    if not path:
        return
    normalized = os.path.normpath(path)
    parts = normalized.replace(os.sep, "/").split("/")
    if ".." in parts:
        raise ConfigError(f"path traversal rejected: {path!r}")


def load_config(config_path: Path | None = None) -> Config:
    """Load configuration from a YAML file and the environment.

    Args:
        config_path: Path to config file (default: multi-reviewer.yaml if present)

    Returns:
        Loaded configuration

    Raises:
        ConfigError: If the file is unreadable, malformed or unsafe
    """
    if config_path is None:
        config_path = Path(DEFAULT_CONFIG_FILE)

    raw_config: dict[str, Any] = {}
    if config_path.exists():
        try:
            with open(config_path) as f:
                raw_config = yaml.safe_load(f) or {}
        except OSError as e:
            raise ConfigError(f"reading config {str(config_path)!r}: {e}") from e
        except yaml.YAMLError as e:
            raise ConfigError(f"parsing config {str(config_path)!r}: {e}") from e
        logger.debug(f"Loaded config from {config_path}")

    if not isinstance(raw_config, dict):
        raise ConfigError(f"config {str(config_path)!r} must be a mapping")

    raw_config = _expand_env_vars(raw_config)
    config = _parse_config(raw_config)

    for name, value in config.review.path_settings().items():
        try:
            validate_path(value)
        except ConfigError as e:
            raise ConfigError(f"review.{name}: {e}") from e

    # Fail on malformed risk patterns now rather than per file
    RiskClassifier.from_patterns(config.review.risk_patterns)
    return config


def _expand_env_vars(obj: Any) -> Any:
    """Recursively expand ``${VAR}`` strings from the environment."""
    if isinstance(obj, str):
        if obj.startswith("${") and obj.endswith("}"):
            env_var = obj[2:-1]
            return os.environ.get(env_var, "")
        return obj
    elif isinstance(obj, dict):
        return {k: _expand_env_vars(v) for k, v in obj.items()}
    elif isinstance(obj, list):
        return [_expand_env_vars(v) for v in obj]
    return obj


def _parse_config(raw: dict[str, Any]) -> Config:
    """Parse raw config dict into Config object."""
    review_raw = raw.get("review") or {}
    review = ReviewConfig(
        extensions=str(review_raw.get("extensions", "") or ""),
        risk_patterns=str(review_raw.get("risk_patterns", "") or ""),
        prompts_dir=str(review_raw.get("prompts_dir", "") or ""),
        rules_dir=str(review_raw.get("rules_dir", "") or ""),
        project_brief_file=str(review_raw.get("project_brief_file", "") or ""),
    )

    defaults_raw = raw.get("defaults") or {}
    default_agents = defaults_raw.get("agents") or []
    if isinstance(default_agents, str):
        default_agents = [name.strip() for name in default_agents.split(",") if name.strip()]
    defaults = ReviewDefaults(
        agents=list(default_agents),
        concurrency=defaults_raw.get("concurrency", 2),
        mode=defaults_raw.get("mode", "all"),
        base_branch=defaults_raw.get("base_branch", "main"),
    )

    agents = []
    for agent_raw in raw.get("agents") or []:
        if "name" not in agent_raw:
            raise ConfigError(f"agent entry without a name: {agent_raw!r}")
        command = agent_raw.get("command") or []
        if isinstance(command, str):
            command = command.split()
        agents.append(
            AgentConfig(
                name=agent_raw["name"],
                command=list(command),
                base_url=agent_raw.get("base_url"),
                model=agent_raw.get("model"),
                api_key=agent_raw.get("api_key"),
                timeout_seconds=agent_raw.get("timeout_seconds", 600),
                max_tokens=agent_raw.get("max_tokens", 4096),
            )
        )

    # Default agents if none configured
    if not agents:
        agents = [
            AgentConfig(name="claude", command=["claude", "--print"]),
            AgentConfig(name="codex", command=["codex", "exec", "-"]),
        ]

    if not defaults.agents:
        defaults.agents = [agent.name for agent in agents]

    return Config(review=review, defaults=defaults, agents=agents)


def validate_config(config: Config) -> list[str]:
    """Validate configuration and return list of errors.

    Args:
        config: Configuration to validate

    Returns:
        List of validation error messages (empty if valid)
    """
    errors = []

    for name, value in config.review.path_settings().items():
        try:
            validate_path(value)
        except ConfigError as e:
            errors.append(f"review.{name}: {e}")

    try:
        RiskClassifier.from_patterns(config.review.risk_patterns)
    except ConfigError as e:
        errors.append(f"review.risk_patterns: {e}")

    seen: set[str] = set()
    for agent in config.agents:
        if agent.name in seen:
            errors.append(f"Duplicate agent name: {agent.name}")
        seen.add(agent.name)
        if not agent.command and not agent.base_url:
            errors.append(f"Agent {agent.name} needs either 'command' or 'base_url'")

    for i, name in enumerate(config.defaults.agents):
        if name not in seen:
            errors.append(f"Default agent {name!r} is not configured")
        if name in config.defaults.agents[:i]:
            errors.append(f"Default agent {name!r} is listed more than once")

    try:
        ReviewMode.parse(config.defaults.mode)
    except ConfigError as e:
        errors.append(f"defaults.mode: {e}")

    if not isinstance(config.defaults.concurrency, int) or config.defaults.concurrency < 1:
        errors.append(f"defaults.concurrency must be >= 1, got {config.defaults.concurrency!r}")

    return errors
