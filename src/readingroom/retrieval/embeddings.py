"""Embedding generation using Ollama."""

import httpx

from readingroom.config import Settings, get_settings
from readingroom.exceptions import EmbeddingError


def get_embedding(text: str, settings: Settings | None = None) -> list[float]:
    """Generate embedding for a single text using Ollama."""
    settings = settings or get_settings()
    url = f"{settings.ollama_base_url}/api/embed"

    try:
        response = httpx.post(
            url,
            json={"model": settings.ollama_embed_model, "input": text},
            timeout=settings.embedding_timeout,
        )
        response.raise_for_status()
        data = response.json()
    except httpx.ConnectError as e:
        raise EmbeddingError(
            message="Cannot connect to Ollama. Is it running?",
            details=f"Connection refused: {url}. Run 'ollama serve' to start.",
        ) from e
    except httpx.TimeoutException as e:
        raise EmbeddingError(
            message="Ollama embedding request timed out",
            details=f"No response from {url} within {settings.embedding_timeout}s",
        ) from e
    except httpx.HTTPStatusError as e:
        raise EmbeddingError(
            message=f"Ollama embedding error: {e.response.status_code}",
            details=str(e),
        ) from e
    except Exception as e:
        raise EmbeddingError(
            message="Failed to generate embedding",
            details=str(e),
        ) from e

    # Handle both batch-style and legacy single-embedding responses
    embeddings = data.get("embeddings", [])
    embedding = list(embeddings[0]) if embeddings else list(data.get("embedding", []))
    if not embedding:
        raise EmbeddingError(
            message="Ollama returned an empty embedding",
            details=f"Model: {settings.ollama_embed_model}",
        )
    return embedding


class OllamaEmbeddings:
    """EmbeddingProvider backed by a local Ollama server."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def embed(self, text: str) -> list[float]:
        return get_embedding(text, self.settings)
