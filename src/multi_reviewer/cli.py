"""Command-line interface for multi-reviewer."""

import asyncio
import json
import logging
import signal
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table

from multi_reviewer import __version__
from multi_reviewer.agents import HttpTransport, build_transports
from multi_reviewer.config import Config, ReviewOpts, load_config, validate_config
from multi_reviewer.diff import GitDiffSource
from multi_reviewer.errors import ReviewError
from multi_reviewer.models.diff import ReviewMode
from multi_reviewer.models.findings import Verdict
from multi_reviewer.orchestrator import ReviewEvent, ReviewOrchestrator
from multi_reviewer.prompt import PromptBuilder
from multi_reviewer.report import format_review_as_json, format_review_markdown, write_report

# Status goes to stderr so stdout carries only the report
console = Console(stderr=True)

EXIT_APPROVED = 0
EXIT_ERROR = 1
EXIT_NOT_APPROVED = 2

_EVENT_STYLES = {
    "agent_started": "cyan",
    "agent_completed": "green",
    "agent_error": "red",
}


def setup_logging(verbose: bool = False) -> None:
    """Configure logging with rich handler."""
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(message)s",
        handlers=[RichHandler(console=console, rich_tracebacks=True)],
    )


@click.group()
@click.version_option(version=__version__)
@click.option("-v", "--verbose", is_flag=True, help="Enable verbose output")
def cli(verbose: bool) -> None:
    """multi-reviewer - Run several AI review agents on one diff."""
    setup_logging(verbose)


@cli.command("review")
@click.option("--base", "base_branch", help="Base branch to diff against")
@click.option("--agents", help="Comma-separated agent names (default: from config)")
@click.option(
    "--concurrency", type=click.IntRange(min=1), help="Maximum agents running at once"
)
@click.option(
    "--mode",
    type=click.Choice([m.value for m in ReviewMode]),
    help="all: every agent sees the full diff; split: files are divided between agents",
)
@click.option(
    "--output", type=click.Choice(["markdown", "json"]), default="markdown", show_default=True
)
@click.option(
    "--report-file",
    type=click.Path(dir_okay=False),
    help="Write the report to this file instead of stdout",
)
@click.option("--dry-run", is_flag=True, help="Show the review plan without running agents")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Config file path")
def review(
    base_branch: str | None,
    agents: str | None,
    concurrency: int | None,
    mode: str | None,
    output: str,
    report_file: str | None,
    dry_run: bool,
    config_path: str | None,
) -> None:
    """Review the current branch against a base branch.

    Exits 0 when the verdict is APPROVED, 2 for any other verdict and 1
    on errors.
    """
    exit_code = asyncio.run(
        review_async(
            base_branch=base_branch,
            agents=agents,
            concurrency=concurrency,
            mode=mode,
            output=output,
            report_file=Path(report_file) if report_file else None,
            dry_run=dry_run,
            config_path=Path(config_path) if config_path else None,
        )
    )
    sys.exit(exit_code)


def build_opts(
    config: Config,
    base_branch: str | None = None,
    agents: str | None = None,
    concurrency: int | None = None,
    mode: str | None = None,
    dry_run: bool = False,
) -> ReviewOpts:
    """Merge CLI flags over config defaults.

    Raises:
        ConfigError: If the mode is unknown
    """
    if agents:
        names = tuple(name.strip() for name in agents.split(",") if name.strip())
    else:
        names = tuple(config.defaults.agents)
    return ReviewOpts(
        agents=names,
        concurrency=concurrency if concurrency is not None else config.defaults.concurrency,
        mode=ReviewMode.parse(mode if mode is not None else config.defaults.mode),
        base_branch=base_branch or config.defaults.base_branch,
        dry_run=dry_run,
    )


async def review_async(
    base_branch: str | None = None,
    agents: str | None = None,
    concurrency: int | None = None,
    mode: str | None = None,
    output: str = "markdown",
    report_file: Path | None = None,
    dry_run: bool = False,
    config_path: Path | None = None,
) -> int:
    """Async implementation of the review command. Returns the exit code."""
    try:
        config = load_config(config_path)
    except ReviewError as e:
        console.print(f"[red]Config error:[/red] {escape(str(e))}")
        return EXIT_ERROR

    errors = validate_config(config)
    if errors:
        for error in errors:
            console.print(f"[red]Config error:[/red] {escape(error)}")
        return EXIT_ERROR

    transports = {}
    try:
        opts = build_opts(config, base_branch, agents, concurrency, mode, dry_run)
        transports = build_transports(config)
        diff = await GitDiffSource.from_config(config.review).generate(opts.base_branch)

        orchestrator = ReviewOrchestrator(
            transports, PromptBuilder(config.review), on_event=_print_event
        )

        if opts.dry_run:
            click.echo(orchestrator.plan(diff, opts))
            return EXIT_APPROVED

        if not diff.files:
            console.print(f"[yellow]No changes against {opts.base_branch}[/yellow]")

        console.print(
            f"🔍 Reviewing {diff.stats.total_files} files against "
            f"[bold]{opts.base_branch}[/bold] with {len(opts.agents)} agent(s)..."
        )
        result = await _run_with_interrupt(orchestrator, diff, opts)
    except ReviewError as e:
        console.print(f"[red]Error:[/red] {escape(str(e))}")
        return EXIT_ERROR
    finally:
        await _close_transports(transports.values())

    consolidated = result.consolidated
    if consolidated.all_agents_failed:
        console.print(f"[red]❌ All {consolidated.total_agents} agents failed![/red]")
    elif consolidated.failed_agents:
        console.print(
            f"[yellow]⚠️  {len(consolidated.failed_agents)}/{consolidated.total_agents} "
            f"agents failed: {', '.join(consolidated.failed_agents)}[/yellow]"
        )
    for message in consolidated.failure_messages:
        console.print(f"   [dim]{escape(message)}[/dim]")

    console.print(
        f"✅ Review complete: {consolidated.verdict.value} | "
        f"Findings: {len(consolidated.findings)} | Time: {result.duration_ms / 1000:.1f}s"
    )

    if output == "json":
        text = json.dumps(format_review_as_json(consolidated), indent=2)
    else:
        text = format_review_markdown(consolidated, result.stats)

    if report_file is not None:
        try:
            write_report(report_file, text)
        except OSError as e:
            console.print(f"[red]Error writing report:[/red] {escape(str(e))}")
            return EXIT_ERROR
        console.print(f"📝 Report written to {report_file}")
    else:
        click.echo(text)

    return EXIT_APPROVED if consolidated.verdict is Verdict.APPROVED else EXIT_NOT_APPROVED


async def _run_with_interrupt(orchestrator, diff, opts):
    """Run the review, turning Ctrl-C into a cooperative cancellation."""
    cancel_event = asyncio.Event()
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, cancel_event.set)
        installed = True
    except (NotImplementedError, RuntimeError):
        # No signal handlers off the main thread or on Windows event loops
        installed = False
    try:
        return await orchestrator.review(diff, opts, cancel_event=cancel_event)
    finally:
        if installed:
            loop.remove_signal_handler(signal.SIGINT)


async def _close_transports(transports) -> None:
    for transport in transports:
        if isinstance(transport, HttpTransport):
            await transport.close()


def _print_event(event: ReviewEvent) -> None:
    style = _EVENT_STYLES.get(event.type)
    if style:
        console.print(f"  → [{style}]{escape(event.message)}[/{style}]")


@cli.group("config")
def config_group() -> None:
    """Configuration commands."""
    pass


@config_group.command("validate")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Config file path")
def config_validate(config_path: str | None) -> None:
    """Validate configuration file."""
    try:
        config = load_config(Path(config_path) if config_path else None)
    except ReviewError as e:
        console.print(f"[red]Error loading config:[/red] {escape(str(e))}")
        sys.exit(EXIT_ERROR)

    errors = validate_config(config)
    if errors:
        console.print("[red]Configuration is invalid:[/red]")
        for error in errors:
            console.print(f"  • {escape(error)}")
        sys.exit(EXIT_ERROR)
    console.print("[green]✓ Configuration is valid[/green]")


@config_group.command("show")
@click.option("--config", "config_path", type=click.Path(exists=True), help="Config file path")
def config_show(config_path: str | None) -> None:
    """Show current configuration."""
    try:
        config = load_config(Path(config_path) if config_path else None)
    except ReviewError as e:
        console.print(f"[red]Error loading config:[/red] {escape(str(e))}")
        sys.exit(EXIT_ERROR)

    console.print("\n[bold]Current Configuration[/bold]\n")

    table = Table(title="Configured Agents")
    table.add_column("Name")
    table.add_column("Transport")
    table.add_column("Timeout")

    for agent in config.agents:
        if agent.command:
            transport = " ".join(agent.command)
        else:
            transport = f"{agent.base_url} ({agent.model or 'default model'})"
        table.add_row(agent.name, transport, f"{agent.timeout_seconds}s")

    console.print(table)

    review_config = config.review
    console.print(f"\n[bold]Extensions:[/bold] {review_config.extensions or 'all'}")
    console.print(f"[bold]Risk patterns:[/bold] {review_config.risk_patterns or 'none'}")
    console.print(f"[bold]Prompts dir:[/bold] {review_config.prompts_dir or 'embedded template'}")
    console.print(f"[bold]Rules dir:[/bold] {review_config.rules_dir or 'none'}")
    console.print(f"[bold]Project brief:[/bold] {review_config.project_brief_file or 'none'}")
    console.print(
        f"[bold]Defaults:[/bold] agents={', '.join(config.defaults.agents)} "
        f"concurrency={config.defaults.concurrency} mode={config.defaults.mode} "
        f"base={config.defaults.base_branch}"
    )


if __name__ == "__main__":
    cli()
