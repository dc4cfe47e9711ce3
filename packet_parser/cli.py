"""
CLI Interface
=============
Command-line interface for the packet parser.

Usage:
    python -m packet_parser parse <pdf_path>... [options]
    python -m packet_parser generate <pool_dir> [options]
    python -m packet_parser info <pdf_path>
"""

from __future__ import annotations

import json
import os
import sys

import click
from pydantic import ValidationError
from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from . import __version__
from .boundaries import heading_kind
from .composer import compose_set
from .engine import EngineConfig, SegmentationEngine
from .models import (
    QuestionKind,
    SelectionConfig,
    SelectionMode,
    Subject,
    SubjectRatio,
)
from .pool import QuestionPool
from .renderer import DEFAULT_SCALE, DocumentReadError, PyMuPDFRenderer
from .storage import load_pool, pool_exists, save_pool

console = Console()

SUBJECT_CHOICES = [s.value for s in Subject]


@click.group()
@click.version_option(version=__version__, prog_name="packet-parser")
def cli():
    """Packet Parser: science-quiz packet splitter and set composer."""
    pass


@cli.command()
@click.argument("pdf_paths", nargs=-1, required=True, type=click.Path(exists=True))
@click.option(
    "--output", "-o",
    default="pool",
    help="Pool directory (merged into if it already exists)",
)
@click.option(
    "--scale",
    default=DEFAULT_SCALE,
    type=float,
    help="Raster scale (pixels per PDF point)",
)
@click.option(
    "--workers", "-j",
    default=1,
    type=int,
    help="Number of parallel page workers (1 = sequential)",
)
@click.option(
    "--page-start",
    default=None,
    type=int,
    help="Start page (1-indexed)",
)
@click.option(
    "--page-end",
    default=None,
    type=int,
    help="End page (1-indexed, inclusive)",
)
@click.option(
    "--log-level",
    default="INFO",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
@click.option(
    "--log-file",
    default=None,
    help="Path to log file",
)
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output only the intake reports as JSON (for programmatic use)",
)
def parse(
    pdf_paths: tuple[str, ...],
    output: str,
    scale: float,
    workers: int,
    page_start: int,
    page_end: int,
    log_level: str,
    log_file: str,
    json_output: bool,
):
    """Split packets into questions and add them to a pool directory."""

    if json_output:
        # Suppress console output for JSON mode
        log_level = "ERROR"

    page_range = None
    if page_start is not None or page_end is not None:
        page_range = (page_start or 1, page_end or 99999)

    config = EngineConfig(
        scale=scale,
        workers=workers,
        page_range=page_range,
        log_level=log_level,
        log_file=log_file,
    )

    pool = load_pool(output) if pool_exists(output) else QuestionPool()
    engine = SegmentationEngine(config)
    reports = []
    errors = []

    if not json_output:
        console.print()
        console.print(
            Panel.fit(
                f"[bold cyan]Packet Parser v{__version__}[/]\n"
                f"[dim]{len(pdf_paths)} packet(s) → {output}[/]",
                border_style="cyan",
            )
        )
        console.print()

    for pdf_path in pdf_paths:
        try:
            if json_output:
                result = engine.segment(pdf_path, pool=pool)
            else:
                with Progress(
                    SpinnerColumn(),
                    TextColumn("[progress.description]{task.description}"),
                    BarColumn(),
                    MofNCompleteColumn(),
                    TimeElapsedColumn(),
                    console=console,
                ) as progress:
                    task = progress.add_task(
                        f"Parsing: {os.path.basename(pdf_path)}", total=None
                    )

                    def on_page(done: int, total: int):
                        progress.update(task, completed=done, total=total)

                    result = engine.segment(
                        pdf_path, pool=pool, progress_callback=on_page
                    )
            reports.append(result.report)
        except (FileNotFoundError, DocumentReadError) as e:
            errors.append((os.path.basename(pdf_path), str(e)))
            if not json_output:
                console.print(f"[red]Error:[/] {e}")

    save_pool(pool, output)

    if json_output:
        print(json.dumps(
            {
                "reports": [r.model_dump(mode="json") for r in reports],
                "errors": [{"file": f, "error": e} for f, e in errors],
            },
            indent=2,
            ensure_ascii=False,
        ))
    else:
        for report in reports:
            _display_report(report)
        _display_pool(pool)

    if errors and not reports:
        sys.exit(1)


@cli.command()
@click.argument("pool_dir", type=click.Path(exists=True, file_okay=False))
@click.option(
    "--mode", "-m",
    default="single",
    type=click.Choice([m.value for m in SelectionMode]),
    help="Single subject or mixed subjects",
)
@click.option(
    "--subject", "-s",
    default=None,
    type=click.Choice(SUBJECT_CHOICES),
    help="Subject for single mode",
)
@click.option(
    "--ratio", "-r",
    "ratios",
    multiple=True,
    help="SUBJECT=WEIGHT for mixed mode (repeatable)",
)
@click.option("--count", "-n", default=15, type=int, help="Number of questions")
@click.option(
    "--round", "rounds",
    multiple=True,
    type=click.IntRange(1, 16),
    help="Only draw from this round (repeatable; default all rounds)",
)
@click.option("--seed", default=None, type=int, help="Random seed")
@click.option(
    "--output", "-o",
    default=None,
    type=click.Path(dir_okay=False),
    help="Write the selected set to this JSON file",
)
def generate(
    pool_dir: str,
    mode: str,
    subject: str,
    ratios: tuple[str, ...],
    count: int,
    rounds: tuple[int, ...],
    seed: int,
    output: str,
):
    """Compose a problem set from a pool directory."""

    try:
        config = SelectionConfig(
            mode=SelectionMode(mode),
            count=count,
            subject=Subject(subject) if subject else None,
            ratios=[_parse_ratio(r) for r in ratios],
            round_filter=frozenset(rounds),
            seed=seed,
        )
    except (ValidationError, click.BadParameter) as e:
        console.print(f"[red]Invalid selection:[/] {e}")
        sys.exit(1)

    try:
        pool = load_pool(pool_dir)
    except FileNotFoundError as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)

    selected = compose_set(pool, config)

    table = Table(
        title=f"Problem Set ({len(selected)} of {count})",
        border_style="cyan",
    )
    table.add_column("#", justify="right")
    table.add_column("Subject", style="bold")
    table.add_column("Kind")
    table.add_column("Round", justify="right")
    table.add_column("Source")
    table.add_column("Answer")

    for idx, q in enumerate(selected, 1):
        table.add_row(
            str(idx),
            q.subject.label,
            q.kind.value.upper() if q.kind else "-",
            str(q.round_number) if q.round_number else "-",
            q.source_label,
            q.answer or "-",
        )

    console.print()
    console.print(table)
    console.print()

    if output:
        with open(output, "w", encoding="utf-8") as f:
            json.dump(
                {
                    "config": config.model_dump(mode="json"),
                    "questions": [q.model_dump(mode="json") for q in selected],
                },
                f,
                indent=2,
                ensure_ascii=False,
            )
        console.print(f"[dim]Saved selection to {output}[/]")


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True))
def info(pdf_path: str):
    """Display packet information and heading counts per page."""

    with PyMuPDFRenderer().open(pdf_path) as doc:
        console.print()
        table = Table(title="Packet Information", border_style="cyan")
        table.add_column("Property", style="bold")
        table.add_column("Value")

        table.add_row("File", os.path.basename(pdf_path))
        table.add_row("Pages", str(doc.page_count))
        table.add_row(
            "File Size",
            f"{os.path.getsize(pdf_path) / 1024 / 1024:.2f} MB",
        )
        for key in ["title", "author", "subject", "creator", "producer"]:
            val = doc.metadata.get(key, "")
            if val:
                table.add_row(key.title(), val)
        console.print(table)

        pages = Table(title="Headings per Page", border_style="green")
        pages.add_column("Page", justify="right")
        pages.add_column("Toss-ups", justify="right")
        pages.add_column("Bonuses", justify="right")
        for index in range(doc.page_count):
            kinds = [heading_kind(t.text) for t in doc.page_tokens(index)]
            pages.add_row(
                str(index + 1),
                str(sum(1 for k in kinds if k == QuestionKind.TOSS_UP)),
                str(sum(1 for k in kinds if k == QuestionKind.BONUS)),
            )
        console.print(pages)
        console.print()


# ─── Helpers ──────────────────────────────────────────────────────────────────


def _parse_ratio(value: str) -> SubjectRatio:
    """Parse "physics=2" into a SubjectRatio."""
    name, sep, weight = value.partition("=")
    if not sep or name.strip() not in SUBJECT_CHOICES:
        raise click.BadParameter(
            f"expected SUBJECT=WEIGHT with SUBJECT in {SUBJECT_CHOICES}: {value!r}"
        )
    try:
        return SubjectRatio(subject=Subject(name.strip()), weight=float(weight))
    except ValueError as e:
        raise click.BadParameter(f"invalid weight in {value!r}: {e}")


def _display_report(report):
    """Display an intake report as a rich table."""
    table = Table(title=f"Intake Report: {report.source}", border_style="green")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")
    table.add_column("Status", justify="center")

    def status_icon(count, threshold=0):
        if count <= threshold:
            return "[green]✓[/]"
        return "[yellow]⚠[/]"

    table.add_row(
        "Pages Processed",
        f"{report.pages_processed}/{report.total_pages}",
        status_icon(len(report.pages_failed)),
    )
    table.add_row(
        "Whole-page Fallbacks",
        str(len(report.fallback_pages)),
        status_icon(len(report.fallback_pages)),
    )
    table.add_row(
        "Questions Extracted",
        str(report.total_questions),
        "[green]✓[/]" if report.total_questions > 0 else "[red]✗[/]",
    )
    table.add_row(
        "Missing Answer",
        str(len(report.questions_missing_answer)),
        status_icon(len(report.questions_missing_answer)),
    )
    table.add_row(
        "Missing Round",
        str(len(report.questions_missing_round)),
        status_icon(len(report.questions_missing_round)),
    )
    console.print(table)

    if report.skip_breakdown:
        skips = Table(title="Skip Breakdown", border_style="yellow")
        skips.add_column("Reason", style="bold")
        skips.add_column("Count", justify="right")
        for reason, count in sorted(report.skip_breakdown.items()):
            skips.add_row(reason, str(count))
        console.print(skips)
    console.print()


def _display_pool(pool: QuestionPool):
    table = Table(title="Pool", border_style="cyan")
    table.add_column("Subject", style="bold")
    table.add_column("Questions", justify="right")
    for subject, count in pool.counts().items():
        table.add_row(subject.label, str(count))
    table.add_row("[bold]Total[/]", f"[bold]{len(pool)}[/]")
    console.print(table)
    console.print()


# ─── Entry point (for python -m packet_parser.cli) ────────────────────────────


if __name__ == "__main__":
    cli()
