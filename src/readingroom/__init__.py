"""Reading Room - conversational librarian over a personal document corpus."""

import logging
import os
import sys

import structlog

# Disable ChromaDB telemetry completely
os.environ["ANONYMIZED_TELEMETRY"] = "False"
os.environ["CHROMA_TELEMETRY"] = "False"
os.environ["POSTHOG_DISABLED"] = "True"

# Suppress chromadb/posthog logging
logging.getLogger("chromadb").setLevel(logging.ERROR)
logging.getLogger("posthog").setLevel(logging.ERROR)
logging.getLogger("httpx").setLevel(logging.WARNING)


def configure_logging(json_format: bool = False, level: str = "INFO") -> None:
    """Configure structlog for the application.

    Args:
        json_format: If True, output logs as JSON. If False, use console format.
        level: Logging level (DEBUG, INFO, WARNING, ERROR).
    """
    shared_processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.contextvars.merge_contextvars,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()),
        ]

    structlog.configure(
        processors=processors,  # type: ignore[arg-type]
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    # basicConfig is a no-op once handlers exist, so set the root level explicitly
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stderr,
        level=getattr(logging, level.upper()),
    )
    logging.getLogger().setLevel(getattr(logging, level.upper()))


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a structured logger for a module.

    Args:
        name: Module name, typically __name__.

    Returns:
        Configured structlog logger.
    """
    return structlog.get_logger(name)  # type: ignore[no-any-return]


# Default configuration (console format, WARNING level)
# Can be reconfigured by calling configure_logging()
configure_logging(json_format=False, level="WARNING")

__version__ = "0.1.0"
