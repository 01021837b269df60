"""Materialize corpus items from raw store rows, plus catalog paging and stats."""

from collections import Counter
from collections.abc import Iterable

from readingroom import get_logger
from readingroom.core.models import (
    UNKNOWN_AUTHOR,
    CatalogPage,
    CatalogStats,
    ContentChunk,
    ContentFilter,
    CorpusItem,
    RawRow,
    identity_key,
)

logger = get_logger(__name__)

_METADATA_FIELDS = ("genre", "topic", "difficulty", "summary")


def group_rows(rows: Iterable[RawRow]) -> list[CorpusItem]:
    """Merge raw chunk rows into one CorpusItem per (title, author) identity.

    Rows are grouped case-insensitively. The first non-empty value wins for
    each metadata field, tags are unioned and every row contributes one chunk.
    Items keep the order in which their identity was first seen.
    """
    items: dict[str, CorpusItem] = {}
    skipped = 0

    for row in rows:
        title = row.title.strip()
        if not title:
            skipped += 1
            continue
        author = (row.author or "").strip() or UNKNOWN_AUTHOR
        key = identity_key(title, author)
        chunk = ContentChunk(id=row.id, content=row.content)

        item = items.get(key)
        if item is None:
            items[key] = CorpusItem(
                title=title,
                author=author,
                doc_type=(row.doc_type or "").strip() or "Book",
                genre=row.genre or None,
                topic=row.topic or None,
                difficulty=row.difficulty or None,
                tags=list(dict.fromkeys(t for t in row.tags if t)),
                summary=row.summary or "",
                chunks=[chunk],
            )
            continue

        item.chunks.append(chunk)
        for name in _METADATA_FIELDS:
            if not getattr(item, name) and getattr(row, name):
                setattr(item, name, getattr(row, name))
        for tag in row.tags:
            if tag and tag not in item.tags:
                item.tags.append(tag)

    if skipped:
        logger.debug("rows_without_title_skipped", count=skipped)

    return list(items.values())


def build_catalog(rows: Iterable[RawRow]) -> list[CorpusItem]:
    """Deduplicated corpus sorted by title."""
    return sorted(group_rows(rows), key=lambda item: item.title.lower())


def filter_by_content(items: list[CorpusItem], content_filter: ContentFilter) -> list[CorpusItem]:
    if content_filter == "videos":
        return [item for item in items if item.is_video]
    if content_filter == "books":
        return [item for item in items if not item.is_video]
    return items


def compute_stats(items: list[CorpusItem]) -> CatalogStats:
    """Count items by genre, topic, difficulty and document type."""
    return CatalogStats(
        total_items=len(items),
        total_chunks=sum(item.chunk_count for item in items),
        by_genre=dict(Counter(item.genre for item in items if item.genre)),
        by_topic=dict(Counter(item.topic for item in items if item.topic)),
        by_difficulty=dict(Counter(item.difficulty for item in items if item.difficulty)),
        by_doc_type=dict(Counter(item.doc_type for item in items)),
    )


def paginate(items: list[CorpusItem], page: int, page_size: int) -> CatalogPage:
    """Slice one page; `has_more` is true iff page * page_size < total."""
    page = max(1, page)
    total = len(items)
    start = (page - 1) * page_size
    shown_through = page * page_size
    return CatalogPage(
        items=items[start:shown_through],
        page=page,
        page_size=page_size,
        total=total,
        has_more=shown_through < total,
        remaining=max(0, total - shown_through),
    )


def take_first(items: list[CorpusItem], count: int) -> CatalogPage:
    """First `count` items, for requests that name how many they want."""
    total = len(items)
    return CatalogPage(
        items=items[:count],
        page=1,
        page_size=count,
        total=total,
        has_more=total > count,
        remaining=max(0, total - count),
    )
