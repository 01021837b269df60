"""ASCII art banner for Reading Room."""

from readingroom.config import get_settings


def get_banner(item_count: int = 0) -> str:
    """Generate the application banner."""
    settings = get_settings()
    model = settings.ollama_model

    library = f"{item_count} items" if item_count > 0 else "empty library"

    return f"""
  +-----------------------------------------+
  |     ____                                |
  |    |    |____    READING ROOM           |
  |    | || |    |   your own librarian     |
  |    | || | || |   --------------------   |
  |    |____|____|   {library:<11}| {model:<10}|
  |                                         |
  +-----------------------------------------+
"""
