"""Pydantic data models for Reading Room."""

from dataclasses import dataclass, field
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

IntentType = Literal[
    "catalog_browse",
    "book_recommendation",
    "topic_book_list",
    "specific_search",
    "hr_scenario",
    "advice_restricted",
    "advice_general",
    "direct_question",
    "hybrid",
]
StrategyTag = Literal["entity", "topic", "doc_type", "keyword", "vector", "multi_match"]
Difficulty = Literal["Beginner", "Intermediate", "Advanced", "Expert"]
ReferenceType = Literal["another", "similar", "more", "continue", "previous"]
ContentFilter = Literal["books", "videos", "all"]

UNKNOWN_AUTHOR = "Unknown Author"


def identity_key(title: str, author: str | None) -> str:
    """Case-insensitive identity of a logical document."""
    author = (author or "").strip() or UNKNOWN_AUTHOR
    return f"{title.strip().lower()}::{author.lower()}"


class RawRow(BaseModel):
    """One stored chunk row as returned by the corpus store."""

    id: str = ""
    title: str = ""
    author: str | None = None
    doc_type: str | None = None
    genre: str | None = None
    topic: str | None = None
    difficulty: str | None = None
    tags: list[str] = Field(default_factory=list)
    summary: str | None = None
    content: str = ""
    similarity: float | None = None

    def field_text(self, name: str) -> str:
        """Text of a named column, with tags joined by spaces."""
        if name == "tags":
            return " ".join(self.tags)
        value = getattr(self, name, None)
        return str(value) if value is not None else ""


class ContentChunk(BaseModel):
    """One stored passage of a corpus item."""

    id: str = ""
    content: str
    embedding: list[float] | None = None

    @property
    def page_number(self) -> int | None:
        from readingroom.core.citations import extract_page_number

        return extract_page_number(self.content)


class CorpusItem(BaseModel):
    """A deduplicated logical document (book, video, ...)."""

    title: str
    author: str = UNKNOWN_AUTHOR
    doc_type: str = "Book"
    genre: str | None = None
    topic: str | None = None
    difficulty: str | None = None
    tags: list[str] = Field(default_factory=list)
    summary: str = ""
    chunks: list[ContentChunk] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return identity_key(self.title, self.author)

    @property
    def chunk_count(self) -> int:
        return len(self.chunks)

    @property
    def is_video(self) -> bool:
        return self.doc_type.lower() == "video"

    def field_text(self, name: str) -> str:
        """Text of a named column, content joined across chunks."""
        if name == "tags":
            return " ".join(self.tags)
        if name == "content":
            return "\n".join(c.content for c in self.chunks)
        value = getattr(self, name, None)
        return str(value) if value is not None else ""


class ScoredCandidate(BaseModel):
    """A strategy-tagged reference to a corpus item, before ranking."""

    item: CorpusItem
    score: float = Field(ge=0.0, le=1.0)
    match_reason: str
    strategy: StrategyTag
    found_by: list[StrategyTag] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return self.item.key


class Constraints(BaseModel):
    """Structured filters pulled out of a user message."""

    model_config = ConfigDict(frozen=True)

    restrict_to_corpus_only: bool = False
    topic_filter: str | None = None
    difficulty_filter: Difficulty | None = None
    result_count: int | None = Field(default=None, gt=0)
    page: int | None = Field(default=None, gt=0)


class ContextualInfo(BaseModel):
    """Follow-up metadata derived from the last assistant turn."""

    model_config = ConfigDict(frozen=True)

    is_follow_up: bool = False
    previous_topic: str | None = None
    reference_type: ReferenceType | None = None
    previous_intent: str | None = None


class QueryClassification(BaseModel):
    """Intent assigned to a request, read-only once created."""

    model_config = ConfigDict(frozen=True)

    type: IntentType
    confidence: float = Field(ge=0.0, le=1.0)
    reasoning: str
    constraints: Constraints = Field(default_factory=Constraints)
    contextual: ContextualInfo = Field(default_factory=ContextualInfo)
    content_filter: ContentFilter = "all"


class QueryAnalysis(BaseModel):
    """Search terms extracted from a message for the retrieval strategies."""

    entities: list[str] = Field(default_factory=list)
    topics: list[str] = Field(default_factory=list)
    document_types: list[str] = Field(default_factory=list)
    keywords: list[str] = Field(default_factory=list)
    difficulty_preference: Difficulty | None = None


class SourceRef(BaseModel):
    """A source returned to the caller alongside the answer."""

    title: str
    author: str = UNKNOWN_AUTHOR
    doc_type: str = "Book"
    score: float = 0.0
    match_reason: str = ""
    page: int | None = None
    pages: list[int] = Field(default_factory=list)

    @property
    def key(self) -> str:
        return identity_key(self.title, self.author)


class ChatTurn(BaseModel):
    """A prior conversation turn supplied by the caller."""

    role: Literal["user", "assistant"]
    content: str = ""
    sources: list[SourceRef] = Field(default_factory=list)
    metadata: dict[str, Any] = Field(default_factory=dict)


class CatalogStats(BaseModel):
    """Counts over a materialized corpus."""

    total_items: int = 0
    total_chunks: int = 0
    by_genre: dict[str, int] = Field(default_factory=dict)
    by_topic: dict[str, int] = Field(default_factory=dict)
    by_difficulty: dict[str, int] = Field(default_factory=dict)
    by_doc_type: dict[str, int] = Field(default_factory=dict)


class CatalogPage(BaseModel):
    """One page of a catalog listing."""

    items: list[CorpusItem] = Field(default_factory=list)
    page: int = 1
    page_size: int = 20
    total: int = 0
    has_more: bool = False
    remaining: int = 0


@dataclass
class LibrarianResponse:
    """Response from the librarian with sources and classification."""

    answer: str
    sources: list[SourceRef]
    classification: QueryClassification
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "answer": self.answer,
            "sources": [s.model_dump() for s in self.sources],
            "classification": self.classification.model_dump(),
            "metadata": self.metadata,
        }

    def to_turn(self) -> ChatTurn:
        """Record this response as an assistant turn for follow-ups."""
        return ChatTurn(
            role="assistant",
            content=self.answer,
            sources=list(self.sources),
            metadata={"query_type": self.classification.type, **self.metadata},
        )
