"""Tests for LLM client module."""

from typing import Any
from unittest.mock import MagicMock

import httpx
import pytest
from readingroom.config import Settings, get_settings
from readingroom.exceptions import CompletionError
from readingroom.llm.client import (
    OllamaCompletion,
    check_ollama_available,
    complete,
    get_available_models,
)

MESSAGES = [
    {"role": "system", "content": "You are a librarian."},
    {"role": "user", "content": "Test prompt"},
]


class TestComplete:
    """Tests for complete function."""

    @pytest.fixture(autouse=True)
    def setup(self) -> None:
        """Clear settings cache before each test."""
        get_settings.cache_clear()

    def test_returns_string(
        self,
        mock_httpx_client: MagicMock,
        mock_chat_response: dict[str, Any],
    ) -> None:
        """Test that completion returns the assistant message content."""
        mock_httpx_client(mock_chat_response)

        result = complete(MESSAGES)

        assert result == "Test answer from LLM."

    def test_payload(
        self,
        mock_httpx_client: MagicMock,
        mock_chat_response: dict[str, Any],
        mock_settings: Settings,
    ) -> None:
        """Test the chat request sent to Ollama."""
        mock_post = mock_httpx_client(mock_chat_response)

        complete(MESSAGES, mock_settings)

        args, kwargs = mock_post.call_args
        assert args[0] == "http://localhost:11434/api/chat"
        payload = kwargs["json"]
        assert payload["model"] == "test-model"
        assert payload["messages"] == MESSAGES
        assert payload["stream"] is False
        assert payload["options"]["temperature"] == mock_settings.llm_temperature
        assert payload["options"]["num_predict"] == mock_settings.llm_max_tokens
        assert kwargs["timeout"] == mock_settings.completion_timeout

    def test_connection_error_handling(
        self,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test connection error handling."""

        def mock_post(*args: Any, **kwargs: Any) -> None:
            raise httpx.ConnectError("Connection refused")

        monkeypatch.setattr(httpx, "post", mock_post)

        with pytest.raises(CompletionError) as exc_info:
            complete(MESSAGES)

        assert "Cannot connect to Ollama" in exc_info.value.message
        assert exc_info.value.stage == "completion"

    def test_timeout_handling(
        self,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test timeout handling."""

        def mock_post(*args: Any, **kwargs: Any) -> None:
            raise httpx.ReadTimeout("timed out")

        monkeypatch.setattr(httpx, "post", mock_post)

        with pytest.raises(CompletionError) as exc_info:
            complete(MESSAGES)

        assert "timed out" in exc_info.value.message

    def test_http_error_handling(
        self,
        mock_httpx_client: MagicMock,
    ) -> None:
        """Test HTTP error handling."""
        mock_httpx_client({}, status_code=500)

        with pytest.raises(CompletionError) as exc_info:
            complete(MESSAGES)

        assert "500" in exc_info.value.message

    def test_empty_response_handling(
        self,
        mock_httpx_client: MagicMock,
    ) -> None:
        """Test handling of empty response."""
        mock_httpx_client({"done": True})

        result = complete(MESSAGES)

        assert result == ""

    def test_provider_wraps_function(
        self,
        mock_httpx_client: MagicMock,
        mock_chat_response: dict[str, Any],
        mock_settings: Settings,
    ) -> None:
        """Test the OllamaCompletion provider."""
        mock_post = mock_httpx_client(mock_chat_response)

        result = OllamaCompletion(mock_settings).complete(MESSAGES)

        assert result == "Test answer from LLM."
        assert mock_post.call_count == 1


class TestCheckOllamaAvailable:
    """Tests for check_ollama_available function."""

    @pytest.fixture(autouse=True)
    def setup(self) -> None:
        """Clear settings cache before each test."""
        get_settings.cache_clear()

    def test_returns_true_when_available(
        self,
        mock_httpx_client: MagicMock,
    ) -> None:
        """Test returns True when Ollama is available."""
        mock_httpx_client({"models": []})

        result = check_ollama_available()

        assert result is True

    def test_returns_false_on_connection_error(
        self,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test returns False when Ollama is not available."""

        def mock_get(*args: Any, **kwargs: Any) -> None:
            raise httpx.ConnectError("Connection refused")

        monkeypatch.setattr(httpx, "get", mock_get)

        result = check_ollama_available()

        assert result is False

    def test_returns_false_on_http_error(
        self,
        mock_httpx_client: MagicMock,
    ) -> None:
        """Test returns False on HTTP error."""
        mock_httpx_client({}, status_code=500)

        result = check_ollama_available()

        assert result is False


class TestGetAvailableModels:
    """Tests for get_available_models function."""

    @pytest.fixture(autouse=True)
    def setup(self) -> None:
        """Clear settings cache before each test."""
        get_settings.cache_clear()

    def test_returns_model_list(
        self,
        mock_httpx_client: MagicMock,
    ) -> None:
        """Test returns list of available models."""
        mock_httpx_client(
            {"models": [{"name": "qwen2.5:7b"}, {"name": "nomic-embed-text:latest"}]}
        )

        result = get_available_models()

        assert result == ["qwen2.5:7b", "nomic-embed-text:latest"]

    def test_returns_empty_on_error(
        self,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        """Test returns empty list on error."""

        def mock_get(*args: Any, **kwargs: Any) -> None:
            raise httpx.ConnectError("Connection refused")

        monkeypatch.setattr(httpx, "get", mock_get)

        result = get_available_models()

        assert result == []

    def test_returns_empty_on_http_error(
        self,
        mock_httpx_client: MagicMock,
    ) -> None:
        """Test returns empty list on HTTP error."""
        mock_httpx_client({}, status_code=500)

        result = get_available_models()

        assert result == []
