"""Tests for CLI commands."""

import json
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from click.testing import CliRunner

from multi_reviewer.cli import build_opts, cli
from multi_reviewer.config import Config, ReviewDefaults
from multi_reviewer.errors import ConfigError
from multi_reviewer.models.diff import ReviewMode

CONFIG_YAML = """\
review:
  risk_patterns: "internal/auth/*"
defaults:
  agents: [a, b]
  concurrency: 2
agents:
  - name: a
    command: [agent-a]
  - name: b
    command: [agent-b]
"""


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "multi-reviewer.yaml"
    path.write_text(CONFIG_YAML)
    return path


@pytest.fixture
def patched_pipeline(diff_result):
    """Patch the git diff source and transports with in-memory fakes."""

    def _patch(transports):
        source = MagicMock()
        source.from_config.return_value.generate = AsyncMock(return_value=diff_result)
        return (
            patch("multi_reviewer.cli.GitDiffSource", source),
            patch("multi_reviewer.cli.build_transports", return_value=transports),
        )

    return _patch


class TestCLI:
    """Tests for CLI commands."""

    def test_cli_help(self):
        """Test that CLI shows help."""
        runner = CliRunner()
        result = runner.invoke(cli, ["--help"])

        assert result.exit_code == 0
        assert "review" in result.output
        assert "config" in result.output

    def test_review_command_passes_options(self):
        """Test that review flags reach the async implementation."""
        runner = CliRunner()

        with patch("multi_reviewer.cli.review_async", new_callable=AsyncMock) as mock_review:
            mock_review.return_value = 0
            result = runner.invoke(
                cli,
                [
                    "review",
                    "--base",
                    "develop",
                    "--agents",
                    "a,b",
                    "--concurrency",
                    "3",
                    "--mode",
                    "split",
                    "--output",
                    "json",
                ],
                catch_exceptions=False,
            )

        assert result.exit_code == 0
        mock_review.assert_called_once()
        kwargs = mock_review.call_args.kwargs
        assert kwargs["base_branch"] == "develop"
        assert kwargs["agents"] == "a,b"
        assert kwargs["concurrency"] == 3
        assert kwargs["mode"] == "split"
        assert kwargs["output"] == "json"
        assert kwargs["dry_run"] is False

    def test_review_exit_code_propagates(self):
        """Test that the verdict exit code becomes the process exit code."""
        runner = CliRunner()
        with patch("multi_reviewer.cli.review_async", new_callable=AsyncMock) as mock_review:
            mock_review.return_value = 2
            result = runner.invoke(cli, ["review"])
        assert result.exit_code == 2

    def test_rejects_zero_concurrency(self):
        """Test that --concurrency must be at least one."""
        runner = CliRunner()
        result = runner.invoke(cli, ["review", "--concurrency", "0"])
        assert result.exit_code == 2
        assert "concurrency" in result.output

    def test_rejects_unknown_mode(self):
        """Test that --mode only accepts known modes."""
        runner = CliRunner()
        result = runner.invoke(cli, ["review", "--mode", "parallel"])
        assert result.exit_code == 2


class TestReviewRun:
    """End-to-end review command runs with fake agents."""

    def test_changes_needed_writes_json_report(
        self, tmp_path, config_file, patched_pipeline, make_transport, make_review_output
    ):
        """Test a full run: exit 2 for CHANGES_NEEDED and a JSON report file."""
        finding = {
            "severity": "high",
            "category": "security",
            "file": "internal/auth/x.go",
            "line": 3,
            "description": "empty token accepted",
        }
        transports = {
            "a": make_transport("a", make_review_output("APPROVED")),
            "b": make_transport("b", make_review_output("CHANGES_NEEDED", [finding])),
        }
        report = tmp_path / "out" / "report.json"
        source_patch, transports_patch = patched_pipeline(transports)

        runner = CliRunner()
        with source_patch, transports_patch:
            result = runner.invoke(
                cli,
                [
                    "review",
                    "--config",
                    str(config_file),
                    "--output",
                    "json",
                    "--report-file",
                    str(report),
                ],
                catch_exceptions=False,
            )

        assert result.exit_code == 2
        data = json.loads(report.read_text())
        assert data["verdict"] == "CHANGES_NEEDED"
        assert data["findings"][0]["agent"] == "b"
        assert len(transports["a"].prompts) == 1

    def test_approved_exits_zero_with_markdown(
        self, config_file, patched_pipeline, make_transport, make_review_output
    ):
        """Test that an approved review exits 0 and prints markdown."""
        transports = {
            "a": make_transport("a", make_review_output("APPROVED")),
            "b": make_transport("b", make_review_output("APPROVED")),
        }
        source_patch, transports_patch = patched_pipeline(transports)

        runner = CliRunner()
        with source_patch, transports_patch:
            result = runner.invoke(
                cli, ["review", "--config", str(config_file)], catch_exceptions=False
            )

        assert result.exit_code == 0
        assert "# Code Review Report" in result.output
        assert "APPROVED" in result.output

    def test_all_agents_failed_not_approved(
        self, config_file, patched_pipeline, make_transport
    ):
        """Test that a run where every agent fails is INDETERMINATE, exit 2."""
        transports = {
            "a": make_transport("a", "no json here"),
            "b": make_transport("b", "still nothing"),
        }
        source_patch, transports_patch = patched_pipeline(transports)

        runner = CliRunner()
        with source_patch, transports_patch:
            result = runner.invoke(
                cli, ["review", "--config", str(config_file)], catch_exceptions=False
            )

        assert result.exit_code == 2
        assert "INDETERMINATE" in result.output

    def test_dry_run_prints_plan(self, config_file, patched_pipeline, make_transport):
        """Test that dry runs print the plan and invoke no agent."""
        transports = {"a": make_transport("a"), "b": make_transport("b")}
        source_patch, transports_patch = patched_pipeline(transports)

        runner = CliRunner()
        with source_patch, transports_patch:
            result = runner.invoke(
                cli,
                ["review", "--config", str(config_file), "--dry-run", "--mode", "split"],
                catch_exceptions=False,
            )

        assert result.exit_code == 0
        assert "Review Plan (dry run)" in result.output
        assert "Mode: split" in result.output
        assert transports["a"].prompts == []

    def test_unknown_agent_exits_one(self, config_file, patched_pipeline, make_transport):
        """Test that configuration errors exit 1."""
        transports = {"a": make_transport("a"), "b": make_transport("b")}
        source_patch, transports_patch = patched_pipeline(transports)

        runner = CliRunner()
        with source_patch, transports_patch:
            result = runner.invoke(
                cli,
                ["review", "--config", str(config_file), "--agents", "a,zed"],
                catch_exceptions=False,
            )

        assert result.exit_code == 1
        assert "unknown agent" in result.output


class TestBuildOpts:
    """Tests for merging CLI flags over config defaults."""

    def test_defaults_from_config(self):
        """Test that unset flags fall back to config defaults."""
        config = Config(
            defaults=ReviewDefaults(agents=["x", "y"], concurrency=4, mode="split", base_branch="trunk")
        )
        opts = build_opts(config)
        assert opts.agents == ("x", "y")
        assert opts.concurrency == 4
        assert opts.mode is ReviewMode.SPLIT
        assert opts.base_branch == "trunk"

    def test_flags_override(self):
        """Test that flags win and agent lists are trimmed."""
        opts = build_opts(Config(), base_branch="dev", agents=" a , ,b", concurrency=1, mode="all")
        assert opts.agents == ("a", "b")
        assert opts.base_branch == "dev"
        assert opts.concurrency == 1
        assert opts.mode is ReviewMode.ALL

    def test_bad_mode_in_config(self):
        """Test that an unknown configured mode is a config error."""
        with pytest.raises(ConfigError):
            build_opts(Config(defaults=ReviewDefaults(mode="fanout")))


class TestConfigCommands:
    """Tests for config subcommands."""

    def test_config_validate_valid(self, config_file):
        """Test validating a good config file."""
        runner = CliRunner()
        result = runner.invoke(cli, ["config", "validate", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "valid" in result.output.lower()

    def test_config_validate_invalid(self, tmp_path):
        """Test validating a config with problems."""
        path = tmp_path / "bad.yaml"
        path.write_text("defaults:\n  agents: [ghost]\nagents:\n  - name: a\n")
        runner = CliRunner()
        result = runner.invoke(cli, ["config", "validate", "--config", str(path)])
        assert result.exit_code == 1
        assert "ghost" in result.output

    def test_config_validate_load_error(self, tmp_path):
        """Test that load failures are reported, not raised."""
        path = tmp_path / "bad.yaml"
        path.write_text("review:\n  rules_dir: ../../etc\n")
        runner = CliRunner()
        result = runner.invoke(cli, ["config", "validate", "--config", str(path)])
        assert result.exit_code == 1
        assert "Error loading config" in result.output

    def test_config_show(self, config_file):
        """Test that configured agents are listed."""
        runner = CliRunner()
        result = runner.invoke(cli, ["config", "show", "--config", str(config_file)])
        assert result.exit_code == 0
        assert "Configured Agents" in result.output
        assert "agent-a" in result.output
        assert "internal/auth/*" in result.output
