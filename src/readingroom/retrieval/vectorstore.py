"""ChromaDB-backed corpus store."""

import time
from collections.abc import Sequence
from pathlib import Path
from typing import Any

import chromadb
from chromadb.config import Settings as ChromaSettings

from readingroom import get_logger
from readingroom.config import get_settings
from readingroom.core.models import RawRow
from readingroom.exceptions import StoreError

logger = get_logger(__name__)

# Columns held in chunk metadata; "content" is the Chroma document itself
METADATA_COLUMNS = ("title", "author", "doc_type", "genre", "topic", "difficulty", "tags", "summary")
SEARCHABLE_COLUMNS = (*METADATA_COLUMNS, "content")


def _text(value: Any) -> str | None:
    # Metadata written by other tools may hold numbers or booleans
    if value is None:
        return None
    return str(value).strip() or None


def _row_from_record(
    row_id: str, document: str | None, metadata: dict[str, Any] | None, similarity: float | None = None
) -> RawRow:
    meta = metadata or {}
    tags = [t.strip() for t in str(meta.get("tags") or "").split(",") if t.strip()]
    return RawRow(
        id=str(row_id),
        title=_text(meta.get("title")) or "",
        author=_text(meta.get("author")),
        doc_type=_text(meta.get("doc_type")),
        genre=_text(meta.get("genre")),
        topic=_text(meta.get("topic")),
        difficulty=_text(meta.get("difficulty")),
        tags=tags,
        summary=_text(meta.get("summary")),
        content=str(document or ""),
        similarity=similarity,
    )


class ChromaCorpusStore:
    """Read-only view over a ChromaDB collection of chunk rows.

    Rows are written by an external ingestion step: one record per chunk,
    the chunk text as the document, and scalar metadata with tags joined
    by commas.
    """

    def __init__(self, persist_dir: Path | None = None, collection_name: str | None = None) -> None:
        settings = get_settings()
        self.persist_dir = persist_dir or settings.chroma_persist_dir
        self.collection_name = collection_name or settings.chroma_collection

        try:
            self.persist_dir.mkdir(parents=True, exist_ok=True)
            self.client = chromadb.PersistentClient(
                path=str(self.persist_dir),
                settings=ChromaSettings(anonymized_telemetry=False),
            )
            self.collection = self.client.get_or_create_collection(
                name=self.collection_name,
                metadata={"hnsw:space": "cosine"},
            )
        except Exception as e:
            raise StoreError(
                message="Cannot open the corpus store",
                details=f"{self.persist_dir}: {e}",
            ) from e

    def count(self) -> int:
        """Get number of stored chunk rows."""
        try:
            return self.collection.count()
        except Exception as e:
            raise StoreError(message="Failed to count rows", details=str(e)) from e

    def all_rows(self) -> list[RawRow]:
        """Get every chunk row."""
        start_time = time.time()
        try:
            results = self.collection.get(include=["documents", "metadatas"])  # type: ignore[list-item]
        except Exception as e:
            raise StoreError(message="Failed to read the corpus", details=str(e)) from e

        rows: list[RawRow] = []
        ids = results["ids"] or []
        for i, row_id in enumerate(ids):
            document = results["documents"][i] if results["documents"] else ""
            metadata = results["metadatas"][i] if results["metadatas"] else {}
            rows.append(_row_from_record(row_id, document, metadata))  # type: ignore[arg-type]

        logger.debug(
            "store_scan_completed",
            rows=len(rows),
            duration_ms=round((time.time() - start_time) * 1000, 2),
        )
        return rows

    def scan(
        self, columns: Sequence[str], needle: str, limit: int | None = None
    ) -> list[RawRow]:
        """Full scan, keeping rows where any column contains the needle (case-insensitive)."""
        unknown = [c for c in columns if c not in SEARCHABLE_COLUMNS]
        if unknown:
            raise StoreError(message="Unknown columns", details=", ".join(unknown))

        needle = needle.strip().lower()
        if not needle:
            return []

        matched: list[RawRow] = []
        for row in self.all_rows():
            if any(needle in row.field_text(column).lower() for column in columns):
                matched.append(row)
                if limit is not None and len(matched) >= limit:
                    break
        return matched

    def match_rows(
        self, embedding: list[float], threshold: float, limit: int
    ) -> list[RawRow]:
        """Nearest chunks by cosine similarity, filtered by the threshold."""
        total = self.count()
        if total == 0 or limit <= 0:
            return []

        try:
            results = self.collection.query(
                query_embeddings=[embedding],  # type: ignore[arg-type]
                n_results=min(limit, total),
                include=["documents", "metadatas", "distances"],  # type: ignore[list-item]
            )
        except Exception as e:
            raise StoreError(message="Vector search failed", details=str(e)) from e

        rows: list[RawRow] = []
        if results["ids"] and results["ids"][0]:
            for i, row_id in enumerate(results["ids"][0]):
                distance = results["distances"][0][i] if results["distances"] else 1.0
                # Convert cosine distance to similarity score
                similarity = 1.0 - distance
                if similarity < threshold:
                    continue
                metadata = results["metadatas"][0][i] if results["metadatas"] else {}
                document = results["documents"][0][i] if results["documents"] else ""
                rows.append(
                    _row_from_record(row_id, document, metadata, similarity)  # type: ignore[arg-type]
                )

        return rows
