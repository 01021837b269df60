"""Tests for embeddings module."""

from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest
from readingroom.config import Settings, get_settings
from readingroom.exceptions import EmbeddingError, TransientDependencyError
from readingroom.retrieval.embeddings import OllamaEmbeddings, get_embedding


class TestGetEmbedding:
    """Tests for get_embedding function."""

    @pytest.fixture(autouse=True)
    def setup(self) -> None:
        """Clear settings cache before each test."""
        get_settings.cache_clear()

    def test_returns_vector(
        self,
        mock_httpx_client: MagicMock,
        mock_embedding_response: dict[str, Any],
    ) -> None:
        """Test that get_embedding returns a vector."""
        mock_httpx_client(mock_embedding_response)

        result = get_embedding("test text")

        assert isinstance(result, list)
        assert len(result) == 768
        assert all(isinstance(x, float) for x in result)

    def test_handles_single_embedding_format(
        self,
        mock_httpx_client: MagicMock,
    ) -> None:
        """Test handling of single embedding response format."""
        mock_httpx_client({"embedding": [0.2] * 768})

        result = get_embedding("test text")

        assert len(result) == 768

    def test_sends_model_and_input(
        self,
        mock_httpx_client: MagicMock,
        mock_embedding_response: dict[str, Any],
        mock_settings: Settings,
    ) -> None:
        """Test the request payload."""
        mock_post = mock_httpx_client(mock_embedding_response)

        get_embedding("servant leadership", mock_settings)

        _, kwargs = mock_post.call_args
        assert kwargs["json"] == {"model": "test-embed", "input": "servant leadership"}
        assert mock_post.call_args[0][0] == "http://localhost:11434/api/embed"

    def test_empty_embedding_raises(
        self,
        mock_httpx_client: MagicMock,
    ) -> None:
        """Test that an empty response is an error."""
        mock_httpx_client({"embeddings": []})

        with pytest.raises(EmbeddingError) as exc_info:
            get_embedding("test text")

        assert "empty embedding" in exc_info.value.message

    def test_connection_error_raises_embedding_error(
        self,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that connection errors are wrapped in EmbeddingError."""

        def mock_post(*args: Any, **kwargs: Any) -> None:
            raise httpx.ConnectError("Connection refused")

        monkeypatch.setattr(httpx, "post", mock_post)

        with pytest.raises(EmbeddingError) as exc_info:
            get_embedding("test text")

        assert "Cannot connect to Ollama" in exc_info.value.message
        assert isinstance(exc_info.value, TransientDependencyError)
        assert exc_info.value.stage == "embedding"

    def test_timeout_raises_embedding_error(
        self,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test that timeouts are wrapped in EmbeddingError."""

        def mock_post(*args: Any, **kwargs: Any) -> None:
            raise httpx.ReadTimeout("timed out")

        monkeypatch.setattr(httpx, "post", mock_post)

        with pytest.raises(EmbeddingError) as exc_info:
            get_embedding("test text")

        assert "timed out" in exc_info.value.message

    def test_http_error_raises_embedding_error(
        self,
        mock_httpx_client: MagicMock,
    ) -> None:
        """Test that HTTP errors are wrapped in EmbeddingError."""
        mock_httpx_client({}, status_code=500)

        with pytest.raises(EmbeddingError) as exc_info:
            get_embedding("test text")

        assert "500" in exc_info.value.message


class TestOllamaEmbeddings:
    """Tests for the OllamaEmbeddings provider."""

    def test_embed_uses_settings(
        self,
        mock_httpx_client: MagicMock,
        mock_settings: Settings,
    ) -> None:
        """Test that the provider passes its settings through."""
        mock_post = mock_httpx_client({"embeddings": [[0.5, 0.5]]})

        result = OllamaEmbeddings(mock_settings).embed("text")

        assert result == [0.5, 0.5]
        assert mock_post.call_args[1]["json"]["model"] == "test-embed"
