"""
CLI Interface
=============
Command-line interface for the BloomBuddy document analyzer.

Usage:
    python -m bloombuddy analyze <document> [options]
    python -m bloombuddy info <pdf_path>
    python -m bloombuddy check-key [--api-key KEY]
    python -m bloombuddy history [--filter all|latest|<document>]
    python -m bloombuddy serve [options]
"""

from __future__ import annotations

import json
import os
import sys

import click
from rich.console import Console
from rich.markup import escape
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
from .analyzer import (
    AnalysisError,
    AnalyzerConfig,
    DocumentAnalyzer,
    UnsupportedDocumentError,
)
from .credentials import CredentialError, check_api_key, mask_api_key
from .models import AnalysisMode, dump_categorized
from .taxonomy import LEVELS

console = Console()


def _parse_pages(value: str | None) -> list[int] | None:
    if not value:
        return None
    try:
        return [int(p) for p in value.split(",") if p.strip()]
    except ValueError:
        raise click.BadParameter(f"Invalid page list: {value!r}")


@click.group()
@click.version_option(version=__version__, prog_name="bloombuddy")
def cli():
    """BloomBuddy — categorize document questions by Bloom's Taxonomy."""
    pass


@cli.command()
@click.argument("document", type=click.Path(exists=True, dir_okay=False))
@click.option(
    "--api-key",
    envvar="OPENAI_API_KEY",
    default=None,
    help="Completion service API key (default: $OPENAI_API_KEY)",
)
@click.option("--model", default=None, help="Completion model name")
@click.option(
    "--mode",
    default=AnalysisMode.VISION.value,
    type=click.Choice([m.value for m in AnalysisMode]),
    help="Send rendered page images (vision) or extracted text (text)",
)
@click.option("--pages", default=None, help="Comma-separated pages, e.g. 1,3,5")
@click.option("--page-start", default=None, type=int, help="Start page (1-indexed)")
@click.option("--page-end", default=None, type=int, help="End page (1-indexed, inclusive)")
@click.option("--max-pages", default=None, type=int, help="Analyze at most N pages")
@click.option("--dpi", default=150, type=int, help="Page render resolution")
@click.option(
    "--image-format",
    default="png",
    type=click.Choice(["png", "jpeg"]),
    help="Page image encoding",
)
@click.option("--batch-size", default=3, type=int, help="Pages per request batch")
@click.option("--batch-delay", default=1.0, type=float, help="Seconds between batches")
@click.option(
    "--no-fallback",
    is_flag=True,
    default=False,
    help="Do not generate sample questions when none are detected",
)
@click.option("--output", "-o", default=None, help="Directory for the analysis JSON")
@click.option(
    "--store",
    is_flag=True,
    default=False,
    help="Persist the document and questions to the SQLite store",
)
@click.option(
    "--log-level",
    default="WARNING",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"]),
    help="Logging level",
)
@click.option("--log-file", default=None, help="Path to log file")
@click.option(
    "--json-output",
    is_flag=True,
    default=False,
    help="Output only JSON result to stdout (for programmatic use)",
)
def analyze(
    document: str,
    api_key: str,
    model: str,
    mode: str,
    pages: str,
    page_start: int,
    page_end: int,
    max_pages: int,
    dpi: int,
    image_format: str,
    batch_size: int,
    batch_delay: float,
    no_fallback: bool,
    output: str,
    store: bool,
    log_level: str,
    log_file: str,
    json_output: bool,
):
    """Extract and categorize the questions in a document."""

    if json_output:
        log_level = "ERROR"

    page_range = None
    if page_start is not None or page_end is not None:
        page_range = (page_start or 1, page_end or 99999)

    config = AnalyzerConfig(
        api_key=api_key,
        mode=AnalysisMode(mode),
        pages=_parse_pages(pages),
        page_range=page_range,
        max_pages=max_pages,
        image_dpi=dpi,
        image_format=image_format,
        batch_size=batch_size,
        batch_delay=batch_delay,
        synthesize_fallback=not no_fallback,
        save_output=output is not None,
        output_dir=output or "output",
        log_level=log_level,
        log_file=log_file,
    )
    if model:
        config.model = model

    if not json_output:
        console.print()
        console.print(
            Panel.fit(
                f"[bold cyan]BloomBuddy Analyzer v{__version__}[/]\n"
                f"[dim]Analyzing: {os.path.basename(document)} "
                f"({mode} mode, key {mask_api_key(api_key)})[/]",
                border_style="cyan",
            )
        )
        console.print()

    def run(progress_cb):
        if not store:
            return DocumentAnalyzer(config).analyze(
                document, progress_callback=progress_cb
            )
        from . import crud
        from . import database as db

        db.init_db()
        _, stored = crud.analyze_and_store(
            document, config, progress_callback=progress_cb
        )
        return stored

    try:
        if json_output:
            result = run(None)
            print(json.dumps(
                result.model_dump(),
                indent=2,
                ensure_ascii=False,
                default=str,
            ))
            return

        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            TimeElapsedColumn(),
            console=console,
        ) as progress:
            task = progress.add_task("Analyzing pages...", total=None)

            def progress_cb(current, total):
                progress.update(task, completed=current, total=total)

            result = run(progress_cb)

        _display_result(result)

    except (CredentialError, UnsupportedDocumentError, FileNotFoundError) as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)
    except (AnalysisError, ValueError, RuntimeError) as e:
        console.print(f"[red]Error:[/] {e}")
        sys.exit(1)
    except Exception as e:
        console.print(f"[red]Unexpected error:[/] {e}")
        if log_level == "DEBUG":
            console.print_exception()
        sys.exit(1)


@cli.command("check-key")
@click.option(
    "--api-key",
    envvar="OPENAI_API_KEY",
    default=None,
    help="Key to check (default: $OPENAI_API_KEY)",
)
def check_key(api_key: str):
    """Sanity-check the shape of an API key (no network call)."""
    result = check_api_key(api_key)
    if result.valid:
        console.print(f"[green]✓[/] Key {mask_api_key(api_key)} looks valid")
        return
    console.print(f"[red]✗[/] {result.reason}")
    sys.exit(1)


@cli.command()
@click.argument("pdf_path", type=click.Path(exists=True, dir_okay=False))
def info(pdf_path: str):
    """Display PDF file information."""

    import fitz

    with fitz.open(pdf_path) as doc:
        table = Table(title="PDF Information", border_style="cyan")
        table.add_column("Property", style="bold")
        table.add_column("Value")

        table.add_row("File", os.path.basename(pdf_path))
        table.add_row("Pages", str(doc.page_count))
        table.add_row(
            "File Size",
            f"{os.path.getsize(pdf_path) / 1024 / 1024:.2f} MB",
        )

        metadata = doc.metadata or {}
        for key in ["title", "author", "subject", "creator", "producer"]:
            val = metadata.get(key, "")
            if val:
                table.add_row(key.title(), val)

        pages_with_text = sum(1 for page in doc if page.get_text("text").strip())
        table.add_row("Pages With Text", str(pages_with_text))

    console.print()
    console.print(table)
    console.print()


@cli.command()
@click.option(
    "--filter", "history_filter",
    default="all",
    help="'all', 'latest', or a document name",
)
@click.option("--json-output", is_flag=True, default=False, help="Print JSON")
def history(history_filter: str, json_output: bool):
    """Show stored analyzed questions grouped by Bloom level."""
    from . import crud
    from . import database as db

    db.init_db()
    categorized = crud.get_history(history_filter)

    if json_output:
        print(json.dumps(dump_categorized(categorized), indent=2, ensure_ascii=False))
        return

    _display_questions(categorized, title=f"History ({history_filter})")


@cli.command()
@click.option("--host", default="0.0.0.0", help="Server host")
@click.option("--port", default=5000, type=int, help="Server port")
@click.option("--debug", is_flag=True, default=False, help="Debug mode")
def serve(host: str, port: int, debug: bool):
    """Start the HTTP microservice server."""
    from .server import run_server

    console.print()
    console.print(
        Panel.fit(
            f"[bold cyan]BloomBuddy Analyzer Service[/]\n"
            f"[dim]Starting on {host}:{port}[/]",
            border_style="cyan",
        )
    )
    console.print()

    run_server(host=host, port=port, debug=debug)


# ─── Display Helpers ──────────────────────────────────────────────────────────


def _display_result(result):
    """Display analysis results as rich tables."""
    console.print()

    doc = result.document
    table = Table(title="Document", border_style="cyan")
    table.add_column("Property", style="bold")
    table.add_column("Value")
    table.add_row("Name", doc.name)
    table.add_row("Type", doc.file_type)
    table.add_row("Total Pages", str(doc.total_pages))
    if doc.analyzed_pages:
        table.add_row("Analyzed Pages", ", ".join(str(p) for p in doc.analyzed_pages))
    table.add_row("File Hash", doc.file_hash[:16] + "...")
    console.print(table)
    console.print()

    _display_questions(result.questions, title="Questions by Bloom Level")
    _display_report(result.report)

    version = result.version
    console.print(
        f"[dim]Analyzer v{version.analyzer_version} | "
        f"Model: {version.model} | Mode: {version.mode.value} | "
        f"Timestamp: {version.analysis_timestamp}[/]"
    )
    console.print()


def _display_questions(categorized, title: str):
    table = Table(title=title, border_style="green", show_lines=True)
    table.add_column("Level", style="bold")
    table.add_column("Question")
    table.add_column("Page", justify="right")
    table.add_column("Conf.", justify="right")

    for level in LEVELS:
        for q in categorized.get(level.value, []):
            text = escape(q.text) + (" [dim](sample)[/]" if q.generated else "")
            table.add_row(
                level.label,
                text,
                str(q.page_number or "-"),
                f"{q.confidence:.2f}" if q.confidence is not None else "-",
            )

    console.print(table)
    console.print()


def _display_report(report):
    table = Table(title="Analysis Report", border_style="yellow")
    table.add_column("Metric", style="bold")
    table.add_column("Value", justify="right")

    for level in LEVELS:
        table.add_row(level.label, str(report.level_counts.get(level.value, 0)))
    table.add_row("Total Questions", str(report.total_questions))
    table.add_row(
        "Pages Analyzed",
        f"{len(report.pages_analyzed)} ({report.success_rate}%)",
    )
    table.add_row(
        "Pages Failed",
        f"[red]{report.pages_failed}[/]" if report.pages_failed else "0",
    )
    table.add_row("Duplicate Questions", str(len(report.duplicate_questions)))
    table.add_row(
        "Sample Questions Generated",
        "[yellow]yes[/]" if report.fallback_used else "no",
    )

    console.print(table)
    console.print()


# ─── Entry point (for python -m bloombuddy.cli) ───────────────────────────────


if __name__ == "__main__":
    cli()
