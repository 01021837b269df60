"""Shared test fixtures."""

from collections.abc import Callable, Generator, Sequence
from pathlib import Path
from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest
from readingroom.config import Settings, get_settings
from readingroom.core.models import RawRow
from readingroom.exceptions import CompletionError, EmbeddingError, StoreError


class MemoryStore:
    """In-memory CorpusStore: substring scans plus a fixed similarity per title."""

    def __init__(
        self,
        rows: Sequence[RawRow] = (),
        similarities: dict[str, float] | None = None,
        fail_scan: bool = False,
        fail_match: bool = False,
    ) -> None:
        self.rows = list(rows)
        self.similarities = {k.lower(): v for k, v in (similarities or {}).items()}
        self.fail_scan = fail_scan
        self.fail_match = fail_match
        self.scans: list[tuple[tuple[str, ...], str]] = []
        self.matches: list[tuple[float, int]] = []

    def scan(self, columns: Sequence[str], needle: str, limit: int | None = None) -> list[RawRow]:
        self.scans.append((tuple(columns), needle))
        if self.fail_scan:
            raise StoreError(message="Store unavailable", details="scan")
        needle = needle.strip().lower()
        matched = [
            row
            for row in self.rows
            if needle and any(needle in row.field_text(c).lower() for c in columns)
        ]
        return matched[:limit] if limit is not None else matched

    def all_rows(self) -> list[RawRow]:
        if self.fail_scan:
            raise StoreError(message="Store unavailable", details="all_rows")
        return list(self.rows)

    def match_rows(self, embedding: list[float], threshold: float, limit: int) -> list[RawRow]:
        self.matches.append((threshold, limit))
        if self.fail_match:
            raise StoreError(message="Store unavailable", details="match_rows")
        scored = []
        for row in self.rows:
            similarity = self.similarities.get(row.title.lower())
            if similarity is not None and similarity >= threshold:
                scored.append(row.model_copy(update={"similarity": similarity}))
        scored.sort(key=lambda r: r.similarity or 0.0, reverse=True)
        return scored[:limit]


class FakeEmbedder:
    """EmbeddingProvider returning a constant vector, or failing on demand."""

    def __init__(self, fail: bool = False) -> None:
        self.fail = fail
        self.calls: list[str] = []

    def embed(self, text: str) -> list[float]:
        self.calls.append(text)
        if self.fail:
            raise EmbeddingError(message="Cannot connect to Ollama. Is it running?")
        return [0.1] * 8


class FakeCompletion:
    """CompletionProvider returning a canned reply and recording prompts."""

    def __init__(self, reply: str = "Here is what your library says.", fail: bool = False) -> None:
        self.reply = reply
        self.fail = fail
        self.calls: list[list[dict[str, str]]] = []

    def complete(self, messages: list[dict[str, str]]) -> str:
        self.calls.append(messages)
        if self.fail:
            raise CompletionError(message="Ollama completion timed out. Please try again.")
        return self.reply

    @property
    def last_prompt(self) -> str:
        return self.calls[-1][-1]["content"] if self.calls else ""


@pytest.fixture
def temp_dir(tmp_path: Path) -> Path:
    """Provide a temporary directory."""
    return tmp_path


@pytest.fixture
def mock_settings(temp_dir: Path) -> Generator[Settings, None, None]:
    """Provide mock settings for testing with cache cleared."""
    # Clear the settings cache before and after test
    get_settings.cache_clear()
    settings = Settings(
        ollama_base_url="http://localhost:11434",
        ollama_model="test-model",
        ollama_embed_model="test-embed",
        chroma_persist_dir=temp_dir / "chroma",
    )
    yield settings
    get_settings.cache_clear()


@pytest.fixture
def make_row() -> Callable[..., RawRow]:
    """Factory for raw chunk rows."""
    counter = {"n": 0}

    def _make_row(title: str, author: str | None = "Jane Doe", **fields: Any) -> RawRow:
        counter["n"] += 1
        fields.setdefault("id", f"row-{counter['n']}")
        fields.setdefault("content", f"Passage {counter['n']} of {title}.")
        return RawRow(title=title, author=author, **fields)

    return _make_row


@pytest.fixture
def library_rows(make_row: Callable[..., RawRow]) -> list[RawRow]:
    """A small mixed library: leadership, finance, HR and a video."""
    return [
        make_row(
            "Good to Great",
            "Jim Collins",
            doc_type="Book",
            genre="Business",
            topic="Leadership",
            difficulty="Intermediate",
            tags=["leadership", "companies"],
            summary="Why some companies make the leap and others don't.",
            content="Level 5 leadership is described on page 17.",
        ),
        make_row(
            "Good to Great",
            "jim collins",
            topic="Leadership",
            content="The hedgehog concept (p. 90).",
        ),
        make_row(
            "Leaders Eat Last",
            "Simon Sinek",
            doc_type="Book",
            genre="Business",
            topic="Leadership",
            difficulty="Beginner",
            tags=["leadership", "trust"],
            summary="Why some teams pull together and others don't.",
        ),
        make_row(
            "The Intelligent Investor",
            "Benjamin Graham",
            doc_type="Book",
            genre="Finance",
            topic="Investing",
            difficulty="Advanced",
            tags=["value investing"],
            summary="The classic text on value investing.",
        ),
        make_row(
            "Radical Candor",
            "Kim Scott",
            doc_type="Book",
            genre="Management",
            topic="Management",
            difficulty="Beginner",
            tags=["feedback", "performance review"],
            summary="How to give feedback to employees without losing your humanity.",
        ),
        make_row(
            "Start With Why",
            "Simon Sinek",
            doc_type="Video",
            genre="Business",
            topic="Leadership",
            summary="A talk on inspiring action.",
        ),
    ]


@pytest.fixture
def memory_store(library_rows: list[RawRow]) -> MemoryStore:
    """In-memory store over the sample library, no vector matches."""
    return MemoryStore(library_rows)


@pytest.fixture
def store_factory() -> Callable[..., MemoryStore]:
    """Factory for in-memory stores with custom rows and similarities."""
    return MemoryStore


@pytest.fixture
def fake_embedder() -> FakeEmbedder:
    return FakeEmbedder()


@pytest.fixture
def fake_completion() -> FakeCompletion:
    return FakeCompletion()


@pytest.fixture
def embedder_factory() -> Callable[..., FakeEmbedder]:
    return FakeEmbedder


@pytest.fixture
def completion_factory() -> Callable[..., FakeCompletion]:
    return FakeCompletion


@pytest.fixture
def mock_embedding() -> list[float]:
    """Mock embedding vector."""
    return [0.1] * 768


@pytest.fixture
def mock_embedding_response() -> dict[str, Any]:
    """Standard embedding response from Ollama."""
    return {"embeddings": [[0.1] * 768]}


@pytest.fixture
def mock_chat_response() -> dict[str, Any]:
    """Standard chat response from Ollama."""
    return {
        "message": {"role": "assistant", "content": "Test answer from LLM."},
        "done": True,
    }


@pytest.fixture
def mock_httpx_client(monkeypatch: pytest.MonkeyPatch) -> Callable[[dict[str, Any]], MagicMock]:
    """Factory fixture to mock httpx for Ollama API calls."""

    def _mock_client(response_data: dict[str, Any], status_code: int = 200) -> MagicMock:
        mock_response = MagicMock()
        mock_response.status_code = status_code
        mock_response.json.return_value = response_data
        mock_response.raise_for_status = MagicMock()
        if status_code >= 400:
            mock_response.raise_for_status.side_effect = httpx.HTTPStatusError(
                "Error", request=MagicMock(), response=mock_response
            )

        mock_post = MagicMock(return_value=mock_response)
        mock_get = MagicMock(return_value=mock_response)
        monkeypatch.setattr(httpx, "post", mock_post)
        monkeypatch.setattr(httpx, "get", mock_get)
        return mock_post

    return _mock_client
