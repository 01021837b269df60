"""Protocol definitions for type-safe dependency injection.

These protocols define the interfaces of the external collaborators the
librarian pipeline reads from, enabling dependency injection and testability.
"""

from collections.abc import Sequence
from typing import Protocol

from readingroom.core.models import RawRow


class CorpusStore(Protocol):
    """Protocol for the read-only document store."""

    def scan(
        self, columns: Sequence[str], needle: str, limit: int | None = None
    ) -> list[RawRow]:
        """Full scan with a case-insensitive substring filter.

        Args:
            columns: Named text columns to match against.
            needle: Substring to look for in any of the columns.
            limit: Maximum number of rows, or None for all.

        Returns:
            Matching chunk rows.
        """
        ...

    def all_rows(self) -> list[RawRow]:
        """Get every chunk row in the store.

        Returns:
            All chunk rows.
        """
        ...

    def match_rows(
        self, embedding: list[float], threshold: float, limit: int
    ) -> list[RawRow]:
        """Vector similarity search over chunk embeddings.

        Args:
            embedding: Query embedding.
            threshold: Minimum similarity for a row to be returned.
            limit: Maximum number of rows.

        Returns:
            Rows annotated with their similarity, best first.
        """
        ...


class EmbeddingProvider(Protocol):
    """Protocol for embedding generation."""

    def embed(self, text: str) -> list[float]:
        """Generate embedding for a single text.

        Args:
            text: The text to embed.

        Returns:
            List of embedding values.
        """
        ...


class CompletionProvider(Protocol):
    """Protocol for chat completion."""

    def complete(self, messages: list[dict[str, str]]) -> str:
        """Generate a reply to a list of chat messages.

        Args:
            messages: Ordered {role, content} messages.

        Returns:
            The complete response text.
        """
        ...
