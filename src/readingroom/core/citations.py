"""Page extraction and citation rendering."""

import re
from collections.abc import Sequence
from dataclasses import dataclass

from readingroom import get_logger
from readingroom.core.models import UNKNOWN_AUTHOR, ScoredCandidate, identity_key

logger = get_logger(__name__)

# Tried in order; the first in-range number wins
PAGE_PATTERNS = [
    re.compile(r"\b(?:page|p\.)\s*(\d+)", re.IGNORECASE),
    re.compile(r"\[page\s*(\d+)\]", re.IGNORECASE),
    re.compile(r"\(p\.?\s*(\d+)\)", re.IGNORECASE),
    re.compile(r"\bpage\s*#\s*(\d+)", re.IGNORECASE),
]
MAX_PAGE = 10000

SOURCES_HEADER = "**Sources:**"
SOURCES_BLOCK_PATTERN = re.compile(
    r"\n*^[ \t]*(?:#+[ \t]*)?(?:\*\*)?(?:Sources|References)(?:\*\*)?:(?:\*\*)?[ \t]*$.*\Z",
    re.MULTILINE | re.DOTALL | re.IGNORECASE,
)


def extract_page_number(content: str) -> int | None:
    """Derive a page number from chunk text, or None if no page can be asserted."""
    for pattern in PAGE_PATTERNS:
        match = pattern.search(content)
        if match:
            page = int(match.group(1))
            if 0 < page < MAX_PAGE:
                return page
    return None


def format_author_name(author: str | None) -> str:
    """Trim, collapse whitespace and drop a trailing comma."""
    name = re.sub(r"\s+", " ", (author or "").strip()).rstrip(",").strip()
    return name or UNKNOWN_AUTHOR


def last_name(author: str | None) -> str:
    name = format_author_name(author)
    if "," in name:
        return name.split(",")[0].strip()
    return name.split(" ")[-1]


def _page_clause(pages: Sequence[int]) -> str:
    if not pages:
        return ""
    ordered = sorted(set(pages))
    if len(ordered) == 1:
        return f"p. {ordered[0]}"
    return f"pp. {ordered[0]}-{ordered[-1]}"


@dataclass(frozen=True)
class Citation:
    """Citation data for one source."""

    title: str
    author: str
    pages: tuple[int, ...] = ()

    @property
    def inline(self) -> str:
        clause = _page_clause(self.pages)
        if clause:
            return f"({self.title}, {self.author}, {clause})"
        return f"({self.title}, {self.author})"

    @property
    def short_form(self) -> str:
        clause = _page_clause(self.pages)
        if clause:
            return f"({last_name(self.author)}, {clause})"
        return f"({last_name(self.author)})"

    @property
    def source_line(self) -> str:
        clause = _page_clause(self.pages)
        if clause:
            return f"{self.author} ({self.title}), {clause}"
        return f"{self.author} ({self.title})"


def candidate_pages(candidate: ScoredCandidate) -> tuple[int, ...]:
    """Every extractable page across a candidate's chunks, sorted and unique."""
    pages = {chunk.page_number for chunk in candidate.item.chunks}
    return tuple(sorted(p for p in pages if p is not None))


def citation_for(candidate: ScoredCandidate) -> Citation:
    return Citation(
        title=candidate.item.title.strip(),
        author=format_author_name(candidate.item.author),
        pages=candidate_pages(candidate),
    )


def group_citations(candidates: Sequence[ScoredCandidate]) -> list[Citation]:
    """Group candidates by identity, collecting each book's pages in order of first appearance."""
    grouped: dict[str, Citation] = {}
    for candidate in candidates:
        citation = citation_for(candidate)
        key = identity_key(citation.title, citation.author)
        existing = grouped.get(key)
        if existing is None:
            grouped[key] = citation
        else:
            grouped[key] = Citation(
                title=existing.title,
                author=existing.author,
                pages=existing.pages + citation.pages,
            )
    return list(grouped.values())


def format_citation(candidate: ScoredCandidate) -> str:
    """Render `(Title, Author, p. N)` for a single source."""
    return citation_for(candidate).inline


def format_multiple_citations(candidates: Sequence[ScoredCandidate]) -> str:
    """Render one citation per book, pages joined into a single page or a range."""
    return "; ".join(c.inline for c in group_citations(candidates))


def format_short_citation(candidate: ScoredCandidate) -> str:
    return citation_for(candidate).short_form


def build_sources_block(candidates: Sequence[ScoredCandidate]) -> str:
    """Build the trailing Sources block, one numbered line per unique source."""
    citations = group_citations(candidates)
    if not citations:
        return ""
    lines = [f"{i}. {c.source_line}" for i, c in enumerate(citations, 1)]
    logger.debug("sources_block_built", source_count=len(citations))
    return f"\n\n{SOURCES_HEADER}\n" + "\n".join(lines)


def strip_sources_block(text: str) -> str:
    """Remove a trailing Sources/References section, if any."""
    return SOURCES_BLOCK_PATTERN.sub("", text).rstrip()


def attach_sources(text: str, candidates: Sequence[ScoredCandidate]) -> str:
    """Append the Sources block exactly once.

    Any Sources section already at the end of the text is replaced, so
    attaching twice yields the same text as attaching once.
    """
    body = strip_sources_block(text)
    return body + build_sources_block(candidates)
