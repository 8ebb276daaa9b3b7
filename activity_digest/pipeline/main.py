"""CLI entry point for the activity digest.

This module provides the command-line interface for collecting a user's
GitLab activity for a day or a date range, with progress indicators and
error handling.
"""

import asyncio
import sys
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.progress import Progress, SpinnerColumn, TextColumn, TimeElapsedColumn
from rich.table import Table

from activity_digest import __version__
from activity_digest.models.config import ConfigManager, DigestConfig
from activity_digest.models.data_models import DigestResult
from activity_digest.pipeline.dates import format_date_range, range_window
from activity_digest.pipeline.output import DigestFormatter, summarize_day
from activity_digest.pipeline.runner import DigestPipeline


console = Console()


@click.command()
@click.option(
    "--date",
    "-d",
    "day",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="Single UTC day to collect (default: today)",
)
@click.option(
    "--start",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="First day of a range (inclusive)",
)
@click.option(
    "--end",
    type=click.DateTime(formats=["%Y-%m-%d"]),
    help="Last day of a range (inclusive, default: --start)",
)
@click.option(
    "--config",
    "-c",
    type=click.Path(path_type=Path),
    default="config/config.yaml",
    help="Path to configuration YAML file",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(path_type=Path),
    help="Output JSON file path (overrides config)",
)
@click.option(
    "--concurrency",
    "-n",
    type=int,
    help="Projects fetched concurrently (overrides config)",
)
@click.option(
    "--log-level",
    "-l",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    help="Logging level (overrides config)",
)
@click.option(
    "--no-progress",
    is_flag=True,
    help="Disable progress spinner and tables (useful for CI/CD)",
)
@click.version_option(version=__version__, prog_name="activity-digest")
def main(
    day,
    start,
    end,
    config: Path,
    output: Optional[Path],
    concurrency: Optional[int],
    log_level: Optional[str],
    no_progress: bool,
) -> None:
    """
    Activity Digest - collect your GitLab activity grouped by UTC day.

    Fetches commits, merge requests, issues and comments from every project
    concurrently, retrying transient failures behind per-operation circuit
    breakers, and writes a JSON digest.

    Examples:

        # Today's activity
        $ activity-digest

        # A single day
        $ activity-digest --date 2024-01-01

        # A week, five projects at a time
        $ activity-digest --start 2024-01-01 --end 2024-01-07 --concurrency 5
    """
    try:
        if day is not None and (start is not None or end is not None):
            raise click.UsageError("--date cannot be combined with --start/--end")
        if end is not None and start is None:
            raise click.UsageError("--end requires --start")

        if start is not None:
            first = start.date()
            last = end.date() if end is not None else first
        else:
            first = day.date() if day is not None else datetime.now(timezone.utc).date()
            last = first
        range_window(first, last)

        cli_overrides = {
            "project_concurrency": concurrency,
            "log_level": log_level.upper() if log_level else None,
        }

        config_manager = ConfigManager(config)
        digest_config = config_manager.load_config(cli_overrides)

        output_path = output if output else digest_config.output_path

        _display_config_summary(digest_config, first, last, no_progress)

        result = asyncio.run(_run_with_progress(digest_config, first, last, no_progress))

        formatter = DigestFormatter()
        formatter.save(result, str(output_path))

        _display_results(result, output_path, no_progress)

        sys.exit(0)

    except click.UsageError:
        raise
    except KeyboardInterrupt:
        console.print("\n[yellow]Collection interrupted by user[/yellow]")
        sys.exit(130)  # Standard exit code for SIGINT
    except Exception as e:
        console.print(f"\n[red]Error:[/red] {e}", style="bold red")
        sys.exit(1)


async def _run_with_progress(
    config: DigestConfig,
    first: date,
    last: date,
    no_progress: bool,
) -> DigestResult:
    """Run the digest pipeline, with a spinner unless disabled."""
    pipeline = DigestPipeline(config)
    if no_progress:
        console.print("[cyan]Collecting activity...[/cyan]")
        return await pipeline.run(first, last)

    with Progress(
        SpinnerColumn(),
        TextColumn("[progress.description]{task.description}"),
        TimeElapsedColumn(),
        console=console,
    ) as progress:
        task_id = progress.add_task(
            f"[cyan]Collecting {format_date_range(first, last)}...", total=None
        )
        result = await pipeline.run(first, last)
        progress.update(task_id, total=1, completed=1)
        return result


def _display_config_summary(
    config: DigestConfig, first: date, last: date, no_progress: bool
) -> None:
    """Display configuration summary before running."""
    if no_progress:
        return

    projects = ", ".join(config.gitlab_project_ids) or "all memberships"
    console.print("\n[bold cyan]Digest Configuration[/bold cyan]")
    console.print(f"  GitLab: {config.gitlab_base_url}")
    console.print(f"  Projects: {projects}")
    console.print(f"  Range: {format_date_range(first, last)}")
    console.print(f"  Concurrency: {config.project_concurrency}")
    console.print(f"  Retry Profile: {config.retry_profile}")
    console.print()


def _display_results(result: DigestResult, output_path: Path, no_progress: bool) -> None:
    """Display final results summary."""
    total = sum(len(activities) for activities in result.days.values())
    if no_progress:
        console.print(f"✓ Digest complete: {total} activities over {len(result.days)} days")
        if result.failures:
            console.print(f"! {len(result.failures)} fetches failed")
        console.print(f"✓ Output saved to: {output_path}")
        return

    console.print("\n[bold green]Digest Complete![/bold green]\n")

    if result.days:
        day_table = Table(title="Activity by Day")
        day_table.add_column("Date", style="cyan")
        day_table.add_column("Activities", justify="right", style="green")
        day_table.add_column("Types", style="magenta")

        for day_key in sorted(result.days):
            summary = summarize_day(day_key, result.days[day_key])
            types = ", ".join(f"{kind}={count}" for kind, count in sorted(summary.by_type.items()))
            day_table.add_row(day_key, str(summary.total_activities), types)

        console.print(day_table)
        console.print()
    else:
        console.print("[yellow]No activity found[/yellow]\n")

    if result.failures:
        failure_table = Table(title="Failed Fetches")
        failure_table.add_column("Project", style="cyan")
        failure_table.add_column("Kind", style="yellow")
        failure_table.add_column("Error", style="red")
        for failure in result.failures:
            failure_table.add_row(failure.project, failure.kind, failure.error)
        console.print(failure_table)
        console.print()

    console.print(f"[bold]Output saved to:[/bold] {output_path}")
    console.print()


if __name__ == "__main__":
    main()
