"""Ollama chat completion client."""

import time

import httpx

from readingroom import get_logger
from readingroom.config import Settings, get_settings
from readingroom.exceptions import CompletionError

logger = get_logger(__name__)


def complete(messages: list[dict[str, str]], settings: Settings | None = None) -> str:
    """Generate a chat reply using the Ollama /api/chat endpoint (non-streaming)."""
    settings = settings or get_settings()
    url = f"{settings.ollama_base_url}/api/chat"

    payload = {
        "model": settings.ollama_model,
        "messages": messages,
        "stream": False,
        "options": {
            "temperature": settings.llm_temperature,
            "num_ctx": settings.llm_context_window,
            "num_predict": settings.llm_max_tokens,
        },
    }

    start_time = time.time()
    try:
        response = httpx.post(url, json=payload, timeout=settings.completion_timeout)
        response.raise_for_status()
        data = response.json()
    except httpx.ConnectError as e:
        raise CompletionError(
            message="Cannot connect to Ollama. Is it running?",
            details=f"Connection refused: {url}. Run 'ollama serve' to start.",
        ) from e
    except httpx.TimeoutException as e:
        raise CompletionError(
            message="Ollama completion timed out. Please try again.",
            details=f"No response from {url} within {settings.completion_timeout}s",
        ) from e
    except httpx.HTTPStatusError as e:
        raise CompletionError(
            message=f"Ollama completion error: {e.response.status_code}",
            details=str(e),
        ) from e
    except Exception as e:
        raise CompletionError(
            message="Failed to generate response",
            details=str(e),
        ) from e

    content = str(data.get("message", {}).get("content", ""))
    logger.debug(
        "completion_received",
        duration_ms=round((time.time() - start_time) * 1000, 2),
        chars=len(content),
    )
    return content


class OllamaCompletion:
    """CompletionProvider backed by a local Ollama server."""

    def __init__(self, settings: Settings | None = None) -> None:
        self.settings = settings or get_settings()

    def complete(self, messages: list[dict[str, str]]) -> str:
        return complete(messages, self.settings)


def check_ollama_available(settings: Settings | None = None) -> bool:
    """Check if Ollama is running and accessible."""
    settings = settings or get_settings()
    try:
        response = httpx.get(f"{settings.ollama_base_url}/api/tags", timeout=5.0)
        return response.status_code == 200
    except Exception:
        return False


def get_available_models(settings: Settings | None = None) -> list[str]:
    """Get list of available models in Ollama."""
    settings = settings or get_settings()
    try:
        response = httpx.get(f"{settings.ollama_base_url}/api/tags", timeout=5.0)
        if response.status_code != 200:
            return []
        data = response.json()
        return [m.get("name", "") for m in data.get("models", [])]
    except Exception:
        return []
