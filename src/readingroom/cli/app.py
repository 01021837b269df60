"""Typer CLI application for Reading Room."""

# Suppress warnings before any imports (must be at top)
import io
import logging
import os
import readline  # noqa: F401 - enables arrow key history for input()
import sys

os.environ["ANONYMIZED_TELEMETRY"] = "False"
os.environ["POSTHOG_DISABLED"] = "True"

# Suppress stderr during chromadb import (onnxruntime C++ warnings)
_stderr = sys.stderr
sys.stderr = io.StringIO()
_stderr_fd = os.dup(2)
_devnull = os.open(os.devnull, os.O_WRONLY)
os.dup2(_devnull, 2)

logging.getLogger("chromadb").setLevel(logging.ERROR)
logging.getLogger("chromadb.telemetry").setLevel(logging.CRITICAL)

from readingroom.retrieval.vectorstore import ChromaCorpusStore  # noqa: E402

# Restore stderr after chromadb import
os.dup2(_stderr_fd, 2)
os.close(_stderr_fd)
os.close(_devnull)
sys.stderr = _stderr

import json  # noqa: E402

import typer  # noqa: E402
from pydantic import ValidationError  # noqa: E402

from readingroom import configure_logging  # noqa: E402
from readingroom.cli.banner import get_banner  # noqa: E402
from readingroom.cli.display import (  # noqa: E402
    console,
    print_banner,
    print_catalog_table,
    print_error,
    print_response,
    print_settings,
    print_success,
    print_warning,
)
from readingroom.config import Settings, get_settings  # noqa: E402
from readingroom.core.models import ChatTurn, LibrarianResponse  # noqa: E402
from readingroom.core.pipeline import Librarian  # noqa: E402
from readingroom.exceptions import ConfigError, LibrarianError  # noqa: E402
from readingroom.llm.client import check_ollama_available, get_available_models  # noqa: E402

app = typer.Typer(
    name="readingroom",
    help="Reading Room - ask your personal library",
    no_args_is_help=True,
)

# Global debug flag
_debug = False

# Preset questions for chat mode
PRESET_QUESTIONS = [
    "What books do you have?",
    "Recommend a book on leadership",
    "How should I run a difficult performance review?",
]


def load_settings() -> Settings:
    """Get settings, turning validation failures into a ConfigError."""
    try:
        return get_settings()
    except ValidationError as e:
        raise ConfigError(message="Invalid configuration", details=str(e)) from e


def check_prerequisites() -> bool:
    """Check if Ollama is available."""
    if not check_ollama_available():
        print_error(
            LibrarianError(
                message="Cannot connect to Ollama. Is it running?",
                details="Run 'ollama serve' to start Ollama.",
            ),
            _debug,
        )
        return False

    settings = load_settings()
    models = get_available_models(settings)
    for model in (settings.ollama_model, settings.ollama_embed_model):
        if not any(name == model or name.startswith(f"{model}:") for name in models):
            print_warning(f"Model '{model}' not found. Run: ollama pull {model}")
    return True


def build_librarian() -> Librarian:
    settings = load_settings()
    return Librarian(store=ChromaCorpusStore(), settings=settings)


def answer(librarian: Librarian, message: str, history: list[ChatTurn]) -> LibrarianResponse:
    """Run one request behind a spinner and print the response."""
    with console.status("[dim]Searching the library...[/dim]", spinner="dots"):
        response = librarian.handle(message, history)
    if response.classification.type == "catalog_browse" and response.sources:
        console.print()
        console.print(response.answer.split("\n\n")[0])
        print_catalog_table(response)
    else:
        print_response(response, _debug)
    return response


@app.callback()
def main(
    debug: bool = typer.Option(False, "--debug", "-d", help="Show detailed errors and logs"),
) -> None:
    """Reading Room - ask your personal library."""
    global _debug
    _debug = debug
    try:
        settings = load_settings()
    except ConfigError as e:
        print_error(e, True)
        raise typer.Exit(1) from e
    _debug = debug or settings.debug
    configure_logging(
        json_format=settings.log_json,
        level="DEBUG" if _debug else settings.log_level,
    )


@app.command()
def ask(
    message: str = typer.Argument(..., help="Question or request for the librarian"),
    json_output: bool = typer.Option(False, "--json", help="Output as JSON"),
) -> None:
    """Ask a single question."""
    if not message.strip():
        print_warning("Please enter a question")
        raise typer.Exit(1)

    if not check_prerequisites():
        raise typer.Exit(1)

    try:
        librarian = build_librarian()
        if json_output:
            response = librarian.handle(message)
            print(json.dumps(response.to_dict(), indent=2, default=str))
        else:
            answer(librarian, message, [])

    except LibrarianError as e:
        print_error(e, _debug)
        raise typer.Exit(1) from e
    except Exception as e:
        print_error(LibrarianError(message="Request failed", details=str(e)), _debug)
        raise typer.Exit(1) from e


@app.command()
def chat() -> None:
    """Interactive conversation; follow-ups like "another one" use the history."""
    if not check_prerequisites():
        raise typer.Exit(1)

    try:
        librarian = build_librarian()
        catalog = librarian.browse(page=1)
        print_banner(get_banner(int(catalog.metadata.get("total", 0))))

        history: list[ChatTurn] = []
        while True:
            console.print()
            console.print("Choose a question or type your own:", style="bold")
            for i, q in enumerate(PRESET_QUESTIONS, 1):
                console.print(f"  [{i}] {q}", style="cyan")
            console.print("  [R] Reset conversation", style="yellow")
            console.print("  [Q] Quit", style="red")
            console.print()

            try:
                # Use input() instead of console.input() for readline history support
                console.print("[bold]> [/bold]", end="")
                user_input = input().strip()
            except (KeyboardInterrupt, EOFError):
                console.print("\nGoodbye!")
                break

            if not user_input:
                continue

            if user_input.lower() == "q":
                console.print("Goodbye!")
                break

            if user_input.lower() == "r":
                history.clear()
                print_success("Conversation cleared")
                continue

            if user_input.isdigit():
                idx = int(user_input) - 1
                if 0 <= idx < len(PRESET_QUESTIONS):
                    message = PRESET_QUESTIONS[idx]
                else:
                    print_warning("Invalid selection")
                    continue
            else:
                message = user_input

            console.print()
            console.print(f"[dim]You: {message}[/dim]")
            try:
                response = answer(librarian, message, history)
            except LibrarianError as e:
                # Keep the conversation going; the user can retry
                print_error(e, _debug)
                continue

            history.append(ChatTurn(role="user", content=message))
            history.append(response.to_turn())

    except LibrarianError as e:
        print_error(e, _debug)
        raise typer.Exit(1) from e
    except Exception as e:
        print_error(LibrarianError(message="Chat failed", details=str(e)), _debug)
        raise typer.Exit(1) from e


@app.command()
def catalog(
    page: int = typer.Option(1, "--page", "-p", min=1, help="Catalog page to show"),
    videos: bool = typer.Option(False, "--videos", help="List videos only"),
) -> None:
    """List what is in the library."""
    try:
        librarian = build_librarian()
        response = librarian.browse(page=page, content_filter="videos" if videos else "all")
        if response.sources:
            print_catalog_table(response)
        else:
            console.print(response.answer)

    except LibrarianError as e:
        print_error(e, _debug)
        raise typer.Exit(1) from e


@app.command()
def config() -> None:
    """Display current configuration."""
    try:
        print_settings(load_settings())
    except ConfigError as e:
        print_error(e, _debug)
        raise typer.Exit(1) from e


if __name__ == "__main__":
    app()
