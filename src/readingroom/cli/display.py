"""Rich output formatting for CLI."""

from collections.abc import Sequence

from rich.console import Console
from rich.markdown import Markdown
from rich.panel import Panel
from rich.table import Table

from readingroom.config import Settings
from readingroom.core.models import LibrarianResponse, SourceRef
from readingroom.exceptions import LibrarianError

console = Console()


def print_banner(banner: str) -> None:
    """Print the application banner."""
    console.print(banner, style="bold cyan")


def print_response(response: LibrarianResponse, debug: bool = False) -> None:
    """Print a librarian response with its classification and sources."""
    console.print()
    console.print(Markdown(response.answer))
    console.print()

    classification = response.classification
    console.print("-" * 40, style="dim")
    console.print(
        f"Intent: {classification.type} ({classification.confidence:.0%})", style="dim"
    )
    if debug:
        console.print(f"Reasoning: {classification.reasoning}", style="dim")
        for key in ("strategies_run", "strategies_failed", "vector_threshold", "duration_ms"):
            if key in response.metadata:
                console.print(f"{key}: {response.metadata[key]}", style="dim")
    console.print()

    if response.sources and classification.type != "catalog_browse":
        print_sources(response.sources)


def print_sources(sources: Sequence[SourceRef]) -> None:
    console.print("Sources:", style="bold")
    for i, source in enumerate(sources, 1):
        console.print(f'[{i}] "{source.title}"', style="cyan")
        if len(source.pages) > 1:
            location = f", pp. {source.pages[0]}-{source.pages[-1]}"
        else:
            location = f", p. {source.page}" if source.page else ""
        console.print(
            f"    {source.author} | {source.doc_type}{location} | "
            f"{source.score:.2f} {source.match_reason}",
            style="dim",
        )


def print_catalog_table(response: LibrarianResponse) -> None:
    """Print a catalog page as a table."""
    meta = response.metadata
    table = Table(title=f"Library (page {meta.get('page', 1)}, {meta.get('total', 0)} items)")
    table.add_column("#", justify="right")
    table.add_column("Title", style="cyan")
    table.add_column("Author", style="yellow")
    table.add_column("Type", style="green")

    start = (meta.get("page", 1) - 1) * meta.get("page_size", 20)
    for i, source in enumerate(response.sources, start + 1):
        title = source.title if len(source.title) <= 50 else source.title[:50] + "..."
        table.add_row(str(i), title, source.author, source.doc_type)

    console.print(table)
    if meta.get("has_more"):
        console.print(f"[dim]{meta.get('remaining', 0)} more - use --page to continue[/dim]")


def print_settings(settings: Settings) -> None:
    """Print the active configuration."""
    table = Table(title="Current Configuration", show_header=False)
    table.add_column("Setting", style="bold")
    table.add_column("Value")

    rows = [
        ("Ollama URL", settings.ollama_base_url),
        ("LLM Model", settings.ollama_model),
        ("Embedding Model", settings.ollama_embed_model),
        ("ChromaDB Directory", str(settings.chroma_persist_dir)),
        ("Collection", settings.chroma_collection),
        ("Query Analysis", settings.query_analysis_mode),
        ("Catalog Page Size", str(settings.catalog_page_size)),
        ("Strategy Timeout", f"{settings.strategy_timeout}s"),
        ("Topic Vocabulary", ", ".join(settings.topic_vocabulary)),
        ("Log Level", settings.log_level),
        ("Debug Mode", str(settings.debug)),
    ]
    for name, value in rows:
        table.add_row(name, value)
    console.print(table)


def print_error(error: LibrarianError, debug: bool = False) -> None:
    """Print an error message."""
    if debug and error.details:
        console.print(
            Panel(
                f"[red]Error:[/red] {error.message}\n\n"
                f"[dim]Details:[/dim] {error.details}",
                title="Error",
                border_style="red",
            )
        )
    else:
        console.print(
            Panel(
                f"[red]Error:[/red] {error.message}\n\n"
                "[dim]Run with --debug for details[/dim]",
                title="Error",
                border_style="red",
            )
        )


def print_success(message: str) -> None:
    """Print a success message."""
    console.print(f"[green]✓[/green] {message}")


def print_warning(message: str) -> None:
    """Print a warning message."""
    console.print(f"[yellow]⚠[/yellow] {message}")
