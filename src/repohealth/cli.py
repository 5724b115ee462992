"""CLI entry point for repohealth."""

import asyncio
import logging
from pathlib import Path

# Load .env file if it exists
from dotenv import load_dotenv
load_dotenv()

import typer
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.panel import Panel
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.table import Table

from repohealth.adapters import GitHubSource, parse_repo_url
from repohealth.analyzers import EvaluationPipeline, compare, load_criteria
from repohealth.analyzers.definitions import get_profile
from repohealth.analyzers.export import ExportFormat, render_comparison, render_evaluation
from repohealth.cache import FileStorage, MemoryStorage, ResponseCache
from repohealth.errors import ConfigurationError
from repohealth.models.schemas import Comparison, CustomCriterion, Evaluation, Grade, RepoRef
from repohealth.settings import Settings

app = typer.Typer(help="Repository health scoring tool.")

console = Console()


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logging"),
) -> None:
    """Configure logging for every command."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def _load_settings() -> Settings:
    try:
        return Settings.from_env()
    except ConfigurationError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)


def _build_cache(settings: Settings) -> ResponseCache:
    storage = FileStorage(settings.cache_dir) if settings.cache_dir else MemoryStorage()
    return ResponseCache(storage=storage, max_bytes=settings.cache_max_bytes, ttl=settings.cache_ttl)


def _parse_repos(values: list[str]) -> list[RepoRef]:
    refs = []
    for value in values:
        ref = parse_repo_url(value)
        if ref is None:
            console.print(f"[red]Not a repository reference: {value}[/red]")
            raise typer.Exit(1)
        refs.append(ref)
    return refs


def _score_color(score: float | None) -> str:
    if score is None:
        return "dim"
    return "green" if score >= 80 else "yellow" if score >= 60 else "red"


def _format_score(score: float | None) -> str:
    if score is None:
        return "[dim]N/A[/dim]"
    color = _score_color(score)
    return f"[{color}]{score:g}[/{color}]"


def _score_bar(score: float | None, width: int = 20) -> str:
    """Create a visual score bar."""
    if score is None:
        return f"[dim]{'░' * width}[/dim]"
    filled = int(score / 100 * width)
    empty = width - filled
    color = _score_color(score)
    return f"[{color}]{'█' * filled}[/{color}][dim]{'░' * empty}[/dim]"


def _load_criteria(path: Path | None) -> tuple[CustomCriterion, ...]:
    if path is None:
        return ()
    try:
        return load_criteria(path)
    except ConfigurationError as e:
        console.print(f"[red]{escape(str(e))}[/red]")
        raise typer.Exit(1)


async def _run_pipeline(
    repo_refs: list[RepoRef],
    profile_name: str,
    save: bool,
    criteria: tuple[CustomCriterion, ...] = (),
) -> list[Evaluation]:
    settings = _load_settings()
    try:
        profile = get_profile(profile_name or settings.profile)
    except ConfigurationError as e:
        console.print(f"[red]{e}[/red]")
        raise typer.Exit(1)

    async with GitHubSource(token=settings.github_token) as source:
        pipeline = EvaluationPipeline(
            source=source,
            cache=_build_cache(settings),
            profile=profile,
            data_dir=settings.data_dir,
            criteria=criteria,
        )
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            names = ", ".join(ref.full_name for ref in repo_refs)
            progress.add_task(f"Evaluating {names}...", total=None)
            return await pipeline.evaluate_many(repo_refs, save=save)


@app.command()
def evaluate(
    repository: str = typer.Argument(..., help="Repository as owner/repo or URL"),
    profile: str = typer.Option("", "--profile", "-p", help="Evaluation profile (default, activity, community)"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output file"),
    fmt: ExportFormat = typer.Option(ExportFormat.JSON, "--format", "-f", help="Output file format"),
    criteria_file: Path | None = typer.Option(None, "--criteria", "-c", help="JSON file with custom criteria"),
    save: bool = typer.Option(False, "--save", help="Save the evaluation under the data directory"),
) -> None:
    """Evaluate a repository and calculate its health score."""
    repo_ref = _parse_repos([repository])[0]
    criteria = _load_criteria(criteria_file)
    evaluation = asyncio.run(_run_pipeline([repo_ref], profile, save, criteria))[0]
    _print_evaluation(evaluation)

    if output:
        output.write_text(render_evaluation(evaluation, fmt))
        console.print(f"\n[green]Saved to {output}[/green]")


def _print_evaluation(evaluation: Evaluation) -> None:
    health = evaluation.health_score

    console.print()
    console.print(f"[bold cyan]{evaluation.repository.full_name}[/bold cyan]")
    console.print(f"[dim]{evaluation.repository.url}[/dim]")
    console.print()

    if health.overall_score is None:
        console.print(
            Panel(
                "[bold yellow]Score Unavailable[/bold yellow]\n\nManual review needed",
                title="Overall Health Score",
                expand=False,
                border_style="yellow",
            )
        )
    else:
        color = _score_color(health.overall_score)
        console.print(
            Panel(
                f"[bold][{color}]{health.overall_score:.1f}[/{color}][/bold] / 100  "
                f"Grade: [bold]{health.overall_grade.value}[/bold]",
                title="Overall Health Score",
                expand=False,
            )
        )
    console.print()

    scores_table = Table(title="Category Breakdown", show_header=True)
    scores_table.add_column("Category", style="bold")
    scores_table.add_column("Score", justify="right")
    scores_table.add_column("Grade", justify="center")
    scores_table.add_column("Weight", justify="right", style="dim")
    scores_table.add_column("Bar", width=20)

    for category, breakdown in health.category_breakdown.items():
        scores_table.add_row(
            category.value.title(),
            _format_score(breakdown.score),
            breakdown.grade.value,
            f"{breakdown.weight:.0%}",
            _score_bar(breakdown.score),
        )
    console.print(scores_table)

    metrics_table = Table(title="Metrics", show_header=True)
    metrics_table.add_column("Metric", style="bold")
    metrics_table.add_column("Value", justify="right")
    metrics_table.add_column("Score", justify="right")
    metrics_table.add_column("Grade", justify="center")
    metrics_table.add_column("Confidence", style="dim")

    for metric in evaluation.metrics:
        value = "-" if metric.value is None else str(metric.value)
        grade = metric.grade.value
        if metric.grade == Grade.MANUAL_REVIEW:
            grade = "[yellow]Review[/yellow]"
        metrics_table.add_row(metric.name, value, _format_score(metric.score), grade, metric.confidence.value)
    console.print(metrics_table)

    if evaluation.criteria:
        criteria_table = Table(title="Custom Criteria", show_header=True)
        criteria_table.add_column("Criterion", style="bold")
        criteria_table.add_column("Result", justify="center")
        criteria_table.add_column("Confidence", style="dim")
        criteria_table.add_column("Evidence")

        for result in evaluation.criteria:
            outcome = {
                Grade.PASS: "[green]Pass[/green]",
                Grade.FAIL: "[red]Fail[/red]",
            }.get(result.grade, "[yellow]Review[/yellow]")
            criteria_table.add_row(result.name, outcome, result.confidence.value, escape(result.evidence))
        console.print(criteria_table)

    summary = evaluation.summary
    if summary:
        console.print()
        console.print(f"[bold]Summary:[/bold] {summary.text}")

        if summary.strengths:
            console.print()
            console.print("[bold green]Strengths:[/bold green]")
            for item in summary.strengths:
                console.print(f"  [green]+[/green] {item['category']} ({item['score']})")

        if summary.improvements:
            console.print()
            console.print("[bold yellow]Needs improvement:[/bold yellow]")
            for item in summary.improvements:
                console.print(f"  [yellow]![/yellow] {item['category']} ({item['score']})")


@app.command(name="compare")
def compare_repos(
    repositories: list[str] = typer.Argument(..., help="Two or more repositories to compare"),
    profile: str = typer.Option("", "--profile", "-p", help="Evaluation profile (default, activity, community)"),
    output: Path | None = typer.Option(None, "--output", "-o", help="Output file"),
    fmt: ExportFormat = typer.Option(ExportFormat.JSON, "--format", "-f", help="Output file format"),
    criteria_file: Path | None = typer.Option(None, "--criteria", "-c", help="JSON file with custom criteria"),
) -> None:
    """Compare the health of several repositories side by side."""
    if len(repositories) < 2:
        console.print("[red]Give at least two repositories to compare[/red]")
        raise typer.Exit(1)

    repo_refs = _parse_repos(repositories)
    criteria = _load_criteria(criteria_file)
    evaluations = asyncio.run(_run_pipeline(repo_refs, profile, False, criteria))
    comparison = compare(evaluations)
    _print_comparison(comparison)

    if output:
        output.write_text(render_comparison(comparison, evaluations, fmt))
        console.print(f"\n[green]Saved to {output}[/green]")


def _print_comparison(comparison: Comparison) -> None:
    table = Table(title="Repository Comparison", show_header=True)
    table.add_column("Metric", style="bold")
    for name in comparison.repositories:
        table.add_column(name, justify="right")

    rows = [comparison.overall] if comparison.overall else []
    rows.extend(comparison.rows)
    for row in rows:
        cells = []
        for cell in row.cells:
            if not cell.available:
                cells.append("[dim]N/A[/dim]")
                continue
            text = "[dim]-[/dim]" if cell.score is None else f"{cell.score:g}"
            if cell.is_best:
                text = f"[bold green]{text}[/bold green]"
            elif cell.is_worst:
                text = f"[bold red]{text}[/bold red]"
            cells.append(text)
        table.add_row(row.name, *cells)

    console.print(table)


@app.command()
def cache_info() -> None:
    """Show what the persistent response cache holds."""
    settings = _load_settings()
    if not settings.cache_dir:
        console.print("[yellow]REPOHEALTH_CACHE_DIR is not set; the cache only lives in memory.[/yellow]")
        return

    cache = _build_cache(settings)
    removed = cache.sweep()

    table = Table(title="Response Cache", show_header=False)
    table.add_column("Field", style="bold")
    table.add_column("Value")
    table.add_row("Directory", str(settings.cache_dir))
    table.add_row("Entries", str(len(cache)))
    table.add_row("Size", f"{cache.total_bytes:,} / {cache.max_bytes:,} bytes")
    table.add_row("TTL", f"{settings.cache_ttl_hours:g} hours")
    table.add_row("Expired (removed)", str(removed))
    console.print(table)


@app.command()
def cache_clear() -> None:
    """Delete every entry from the persistent response cache."""
    settings = _load_settings()
    if not settings.cache_dir:
        console.print("[yellow]REPOHEALTH_CACHE_DIR is not set; nothing to clear.[/yellow]")
        return

    cache = _build_cache(settings)
    count = len(cache)
    cache.clear()
    console.print(f"[green]Removed {count} cache entries from {settings.cache_dir}[/green]")


@app.command()
def version() -> None:
    """Show version information."""
    from repohealth import __version__

    console.print(f"repohealth v{__version__}")


if __name__ == "__main__":
    app()
