"""gemini-research CLI — the command-line front end.

Commands:
    gemini-research research   — Conduct research on a topic (alias: r)
    gemini-research quick      — Quick research, summary output (alias: q)
    gemini-research deep       — Maximum depth research with citations
    gemini-research analyze    — Analyze documents with a query (alias: a)
    gemini-research status     — Look up a remote interaction by id
    gemini-research cancel     — Cancel a remote interaction by id
    gemini-research serve      — Run the HTTP API
    gemini-research config     — Show effective configuration
    gemini-research version    — Show version
"""

from __future__ import annotations

import asyncio
import json
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from gemini_research.utils import setup_logging

# Initialize logging on import
setup_logging()

app = typer.Typer(
    name="gemini-research",
    help="🔬 Gemini Deep Research — comprehensive research from the command line",
    no_args_is_help=True,
    rich_markup_mode="rich",
)
console = Console()

_STATUS_STYLE = {
    "completed": "green",
    "failed": "red",
    "cancelled": "yellow",
    "processing": "cyan",
    "pending": "dim",
}


def _build_orchestrator():
    from gemini_research.research.orchestrator import create_orchestrator
    return create_orchestrator()


def _build_client():
    from gemini_research.tools.gemini_client import GeminiClient
    return GeminiClient()


def _missing_key(exc: Exception) -> None:
    console.print(f"[red]✗ {exc}[/]")
    console.print("[dim]Set it with: export GEMINI_API_KEY=your-api-key[/]")
    console.print("[dim]Get your API key at: https://aistudio.google.com/apikey[/]")
    raise typer.Exit(1)


# ── Progress + output ─────────────────────────────────────────


def _progress_handler(event) -> None:
    """Print one line per job event."""
    from gemini_research.models.events import EventType

    data = event.data
    if event.type is EventType.START:
        console.print("[dim]⏳ Research started...[/]")
    elif event.type is EventType.PROGRESS and data and data.progress:
        console.print(f"[dim]⏳ Progress: {data.progress}%[/]")
    elif event.type is EventType.SOURCE and data and data.source:
        console.print(f"[dim]🔗 Found source: {data.source.title}[/]")
    elif event.type is EventType.CONTENT:
        console.print("[dim]⏳ Processing content...[/]")
    elif event.type is EventType.COMPLETE:
        console.print("[green]✓ Research complete![/]")
    elif event.type is EventType.ERROR:
        console.print(f"[red]✗ {(data and data.error) or 'Unknown error'}[/]")


def _render_report(job, output_format: str) -> str:
    """Text written by --output: JSON for format json, else Markdown with a header."""
    if output_format == "json":
        return json.dumps(job.public_dict(), indent=2)

    metadata = job.metadata
    header = "\n".join([
        f"# Research: {job.query}",
        "",
        f"- **Date**: {job.created_at.isoformat()}",
        f"- **Depth**: {metadata.depth.value if metadata else job.options.depth.value}",
        f"- **Processing Time**: {metadata.processing_time_ms if metadata else 0}ms",
        f"- **Sources Found**: {metadata.sources_found if metadata else len(job.sources)}",
        "",
        "---",
        "",
    ])
    report = header + (job.content or "")

    if job.sources:
        report += "\n\n---\n\n## Sources\n\n"
        for i, source in enumerate(job.sources, 1):
            report += f"{i}. [{source.title}]({source.url})\n"
            if source.snippet:
                report += f"   > {source.snippet}\n"
    return report


def _display_result(job) -> None:
    style = _STATUS_STYLE.get(job.status.value, "white")
    console.print()
    if job.content:
        console.print(Panel(
            Markdown(job.content),
            title=f"[bold {style}]🔬 {job.query[:80]}[/]",
            border_style=style,
        ))
    if job.error:
        console.print(f"[red]✗ Research failed: {job.error}[/]")

    meta = job.metadata
    details = [f"Status: [{style}]{job.status.value}[/]", f"ID: {job.id}"]
    if meta:
        details += [
            f"Sources: {meta.sources_found}",
            f"Duration: {meta.processing_time_ms}ms",
            f"Model: {meta.model}",
        ]
        if meta.refined:
            details.append("refined")
    console.print(f"[dim]{' | '.join(details)}[/]")


# ── research ──────────────────────────────────────────────────


def _load_documents(
    upload: list[str] | None,
    folder: str | None,
    types: str | None,
):
    from gemini_research.research.documents import FileFilters, load_file, load_folder

    documents = []
    if folder:
        console.print(f"[dim]📁 Scanning folder: {folder}[/]")
        filters = FileFilters()
        if types:
            filters.extensions = [f".{t.strip().lstrip('.')}" for t in types.split(",") if t.strip()]
        try:
            loaded = load_folder(folder, filters)
        except (FileNotFoundError, NotADirectoryError) as exc:
            console.print(f"[red]✗ {exc}[/]")
            raise typer.Exit(1)
        documents.extend(loaded)
        console.print(f"[green]✓ Loaded {len(loaded)} files from folder[/]")

    for raw in upload or []:
        path = Path(raw).expanduser()
        if path.is_dir():
            console.print(f"[dim]📁 Scanning directory: {raw}[/]")
            loaded = load_folder(path)
            documents.extend(loaded)
            console.print(f"[green]✓ Loaded {len(loaded)} files from {raw}[/]")
        elif path.exists():
            doc = load_file(path)
            if doc is not None:
                documents.append(doc)
                console.print(f"[dim]📄 Loaded: {doc.name}[/]")
        else:
            console.print(f"[red]✗ File not found: {raw}[/]")

    if documents:
        console.print(f"[dim]Total documents loaded: {len(documents)}[/]")
    return documents


def _run_research(
    query: str,
    *,
    depth: str = "deep",
    output_format: str = "markdown",
    sources: str = "all",
    citations: bool = False,
    think: bool = False,
    upload: list[str] | None = None,
    folder: str | None = None,
    types: str | None = None,
    output: str | None = None,
    progress: bool = True,
) -> None:
    from gemini_research.errors import ConfigurationError
    from gemini_research.models.schemas import (
        OutputFormat,
        ResearchDepth,
        ResearchOptions,
        SourceScope,
    )

    try:
        options = ResearchOptions(
            depth=ResearchDepth(depth),
            output_format=OutputFormat(output_format),
            source_scope=SourceScope(sources),
            include_citations=citations,
            refine=think,
        )
    except ValueError as exc:
        console.print(f"[red]✗ Invalid option: {exc}[/]")
        raise typer.Exit(2)

    try:
        orchestrator = _build_orchestrator()
    except ConfigurationError as exc:
        _missing_key(exc)

    documents = _load_documents(upload, folder, types)

    console.print(f"\n[bold]Starting research:[/] \"{query}\"")
    console.print(f"[dim]Depth: {depth} | Format: {output_format} | Sources: {sources}[/]\n")

    job = asyncio.run(_research(orchestrator, query, documents, options, progress))
    _display_result(job)

    if output:
        output_path = Path(output).expanduser().resolve()
        output_path.write_text(_render_report(job, output_format), encoding="utf-8")
        console.print(f"[green]✓ Output saved to: {output_path}[/]")

    if job.status.value != "completed":
        raise typer.Exit(1)


async def _research(orchestrator, query, documents, options, progress: bool):
    try:
        return await orchestrator.research(
            query,
            documents,
            options,
            on_event=_progress_handler if progress else None,
        )
    finally:
        await orchestrator.aclose()


@app.command()
def research(
    query: str = typer.Argument(..., help="Research query or question"),
    depth: str = typer.Option("deep", "--depth", "-d", help="quick, standard, deep, maximum"),
    output_format: str = typer.Option("markdown", "--format", "-f", help="summary, detailed, markdown, json"),
    upload: Optional[list[str]] = typer.Option(None, "--upload", "-u", help="File or folder for context (repeatable)"),
    folder: Optional[str] = typer.Option(None, "--folder", help="Load all matching files from a folder"),
    types: Optional[str] = typer.Option(None, "--types", "-t", help="Extensions to include, comma-separated"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Save the report to a file"),
    citations: bool = typer.Option(False, "--citations", "-c", help="Include citations"),
    sources: str = typer.Option("all", "--sources", "-s", help="web, academic, news, all"),
    think: bool = typer.Option(False, "--think", help="Refine the report with a thinking model"),
    progress: bool = typer.Option(True, "--progress/--no-progress", help="Show progress output"),
):
    """🔬 Conduct deep research on a topic."""
    _run_research(
        query,
        depth=depth,
        output_format=output_format,
        sources=sources,
        citations=citations,
        think=think,
        upload=upload,
        folder=folder,
        types=types,
        output=output,
        progress=progress,
    )


app.command("r", hidden=True)(research)


@app.command()
def quick(
    query: str = typer.Argument(..., help="Research query"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Save the report to a file"),
):
    """⚡ Quick research with minimal depth."""
    _run_research(query, depth="quick", output_format="summary", output=output)


app.command("q", hidden=True)(quick)


@app.command()
def deep(
    query: str = typer.Argument(..., help="Research query"),
    upload: Optional[list[str]] = typer.Option(None, "--upload", "-u", help="File or folder for context"),
    folder: Optional[str] = typer.Option(None, "--folder", help="Load all matching files from a folder"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Save the report to a file"),
):
    """🧠 Maximum depth research with citations."""
    _run_research(
        query,
        depth="maximum",
        output_format="markdown",
        citations=True,
        upload=upload,
        folder=folder,
        output=output,
    )


@app.command()
def analyze(
    query: str = typer.Argument(..., help="Analysis query"),
    files: list[str] = typer.Argument(..., help="Files or folders to analyze"),
    depth: str = typer.Option("deep", "--depth", "-d", help="Analysis depth"),
    output: Optional[str] = typer.Option(None, "--output", "-o", help="Save the report to a file"),
):
    """📄 Analyze documents with a specific query."""
    _run_research(query, depth=depth, upload=files, output=output)


app.command("a", hidden=True)(analyze)


# ── status / cancel ───────────────────────────────────────────


@app.command()
def status(
    remote_id: str = typer.Argument(..., help="Remote interaction id"),
):
    """📊 Show the state of a remote research interaction."""
    asyncio.run(_status(remote_id))


async def _status(remote_id: str):
    from gemini_research.errors import ConfigurationError, TransportError

    try:
        client = _build_client()
    except ConfigurationError as exc:
        _missing_key(exc)

    try:
        remote = await client.get_job_status(remote_id)
    except TransportError as exc:
        console.print(f"[red]✗ Status lookup failed: {exc}[/]")
        raise typer.Exit(1)
    finally:
        await client.close()

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Field", style="cyan")
    table.add_column("Value", style="white")
    table.add_row("Interaction", remote_id)
    table.add_row("State", f"{remote.state.value} [dim]({remote.raw_state or '—'})[/]")
    table.add_row("Outputs", str(len(remote.outputs)))
    table.add_row("Sources", str(len(remote.sources)))
    if remote.error:
        table.add_row("Error", f"[red]{remote.error}[/]")
    console.print(Panel(table, title="[bold cyan]📊 Interaction Status[/]", border_style="cyan"))


@app.command()
def cancel(
    remote_id: str = typer.Argument(..., help="Remote interaction id"),
):
    """🛑 Ask the remote service to cancel an interaction."""
    asyncio.run(_cancel(remote_id))


async def _cancel(remote_id: str):
    from gemini_research.errors import ConfigurationError

    try:
        client = _build_client()
    except ConfigurationError as exc:
        _missing_key(exc)

    try:
        confirmed = await client.cancel_job(remote_id)
    finally:
        await client.close()

    if not confirmed:
        console.print(f"[yellow]⚠ Cancel of {remote_id} was not confirmed by the remote service[/]")
        raise typer.Exit(1)
    console.print(f"[green]✓ Cancel requested for {remote_id}[/]")


# ── serve ─────────────────────────────────────────────────────


@app.command()
def serve(
    host: Optional[str] = typer.Option(None, "--host", help="Bind address"),
    port: Optional[int] = typer.Option(None, "--port", "-p", help="Bind port"),
):
    """🌐 Run the HTTP API."""
    import uvicorn

    from gemini_research.config import settings

    bind_host = host or settings.api_host
    bind_port = port or settings.api_port
    console.print(f"[bold cyan]🌐 gemini-research API[/] on http://{bind_host}:{bind_port}")
    uvicorn.run(
        "gemini_research.api.app:app",
        host=bind_host,
        port=bind_port,
        log_level=settings.log_level.lower(),
    )


# ── config / version ──────────────────────────────────────────


@app.command()
def config():
    """⚙ Show the effective configuration."""
    from gemini_research.config import settings

    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")

    key = settings.gemini_api_key
    table.add_row("API key", f"[green]set (…{key[-4:]})[/]" if key else "[red]not set[/]")
    table.add_row("Base URL", settings.gemini_base_url)
    table.add_row("Research agent", settings.research_agent)
    table.add_row("Refine model", settings.refine_model)
    table.add_row("Poll interval", f"{settings.poll_interval:g}s")
    table.add_row("Deadline", f"{settings.max_research_minutes:g} min")
    table.add_row("API bind", f"{settings.api_host}:{settings.api_port}")
    console.print(Panel(table, title="[bold cyan]⚙ Configuration[/]", border_style="cyan"))


@app.command()
def version():
    """📦 Show gemini-research version."""
    from gemini_research import __version__
    console.print(f"[bold cyan]🔬 gemini-research[/] v{__version__}")


# ── Entry point ───────────────────────────────────────────────

if __name__ == "__main__":
    app()
