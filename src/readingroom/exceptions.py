"""Custom exception hierarchy for Reading Room."""


class LibrarianError(Exception):
    """Base exception for Reading Room."""

    def __init__(self, message: str, details: str | None = None) -> None:
        self.message = message
        self.details = details
        super().__init__(message)


class TransientDependencyError(LibrarianError):
    """A store or model-service call failed or timed out. Safe to retry."""

    stage = "dependency"

    def __init__(
        self, message: str, details: str | None = None, stage: str | None = None
    ) -> None:
        super().__init__(message, details)
        if stage is not None:
            self.stage = stage


class StoreError(TransientDependencyError):
    """Corpus store errors."""

    stage = "store"


class EmbeddingError(TransientDependencyError):
    """Embedding service errors."""

    stage = "embedding"


class CompletionError(TransientDependencyError):
    """Completion service errors."""

    stage = "completion"


class MalformedConstraintError(LibrarianError):
    """An extracted constraint is internally inconsistent."""

    pass


class ConfigError(LibrarianError):
    """Configuration/environment errors."""

    pass
