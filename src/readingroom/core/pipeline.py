"""Request pipeline: context → constraints → classification → retrieval → answer."""

import asyncio
import time
from collections.abc import Mapping, Sequence
from typing import Any

from readingroom import get_logger
from readingroom.config import Settings, get_settings
from readingroom.core.assembler import ResponseAssembler
from readingroom.core.corpus import (
    build_catalog,
    compute_stats,
    filter_by_content,
    paginate,
    take_first,
)
from readingroom.core.models import (
    CatalogPage,
    ChatTurn,
    Constraints,
    ContentFilter,
    CorpusItem,
    LibrarianResponse,
    QueryClassification,
)
from readingroom.protocols import CompletionProvider, CorpusStore, EmbeddingProvider
from readingroom.query.analysis import QueryAnalyzer
from readingroom.query.classifier import classify_query
from readingroom.query.constraints import extract_constraints
from readingroom.query.context import (
    analyze_context,
    enhance_message,
    previous_catalog_page,
    previously_recommended,
    resolve_retrieval_text,
)
from readingroom.retrieval.coordinator import RetrievalCoordinator
from readingroom.retrieval.ranker import select_candidates

logger = get_logger(__name__)

HistoryInput = Sequence[ChatTurn | Mapping[str, Any]]


def coerce_history(chat_history: HistoryInput | None) -> list[ChatTurn]:
    """Accept ChatTurn objects or plain {role, content, ...} dicts."""
    turns: list[ChatTurn] = []
    for turn in chat_history or []:
        turns.append(turn if isinstance(turn, ChatTurn) else ChatTurn.model_validate(dict(turn)))
    return turns


class Librarian:
    """Answers one message at a time against the corpus.

    Holds only its collaborators; every request is independent and all
    conversational state arrives through `chat_history`.
    """

    def __init__(
        self,
        store: CorpusStore | None = None,
        embedder: EmbeddingProvider | None = None,
        completion: CompletionProvider | None = None,
        settings: Settings | None = None,
    ) -> None:
        self.settings = settings or get_settings()

        if store is None:
            from readingroom.retrieval.vectorstore import ChromaCorpusStore

            store = ChromaCorpusStore()
        if embedder is None:
            from readingroom.retrieval.embeddings import OllamaEmbeddings

            embedder = OllamaEmbeddings(self.settings)
        if completion is None:
            from readingroom.llm.client import OllamaCompletion

            completion = OllamaCompletion(self.settings)

        self.store: CorpusStore = store
        self.embedder: EmbeddingProvider = embedder
        self.completion: CompletionProvider = completion
        self.analyzer = QueryAnalyzer(self.settings, completion)
        self.coordinator = RetrievalCoordinator(store, embedder, self.settings)
        self.assembler = ResponseAssembler(completion, self.settings)

    def handle(
        self, message: str, chat_history: HistoryInput | None = None
    ) -> LibrarianResponse:
        """Answer a message (sync wrapper around `handle_async`)."""
        return asyncio.run(self.handle_async(message, chat_history))

    def browse(self, page: int = 1, content_filter: ContentFilter = "all") -> LibrarianResponse:
        """List one catalog page directly, without a message to classify."""
        classification = QueryClassification(
            type="catalog_browse",
            confidence=1.0,
            reasoning="Catalog listing requested directly",
            constraints=Constraints(page=page),
            content_filter=content_filter,
        )
        metadata: dict[str, Any] = {"query_type": classification.type, "confidence": 1.0}
        return asyncio.run(self._catalog(classification, [], metadata))

    def classify(
        self, message: str, history: Sequence[ChatTurn]
    ) -> tuple[str, QueryClassification]:
        """Enhance the message and classify it; returns (enhanced, classification)."""
        vocabulary = self.settings.topic_vocabulary
        contextual = analyze_context(message, history, vocabulary)
        enhanced = enhance_message(message, history, vocabulary)
        # Constraints come from what the user typed, not from the synthetic clauses
        constraints = extract_constraints(message, vocabulary, self.settings.max_result_count)
        classification = classify_query(
            enhanced,
            constraints,
            contextual,
            self.settings.domain_keywords,
            self.settings.workforce_keywords,
            original=message,
        )
        return enhanced, classification

    async def handle_async(
        self, message: str, chat_history: HistoryInput | None = None
    ) -> LibrarianResponse:
        """Answer a message.

        Raises:
            TransientDependencyError: If the completion service fails, or if
                every retrieval strategy failed.
        """
        start_time = time.time()
        history = coerce_history(chat_history)
        logger.info("request_started", message_preview=message[:50], history_turns=len(history))

        enhanced, classification = self.classify(message, history)
        metadata: dict[str, Any] = {
            "query_type": classification.type,
            "confidence": classification.confidence,
            "enhanced_message": enhanced,
            "content_filter": classification.content_filter,
        }

        constraints = classification.constraints
        if classification.type == "catalog_browse" and not constraints.topic_filter:
            response = await self._catalog(classification, history, metadata)
        else:
            response = await self._retrieve_and_answer(
                message, enhanced, classification, history, metadata
            )

        duration_ms = (time.time() - start_time) * 1000
        response.metadata["duration_ms"] = round(duration_ms, 2)
        logger.info(
            "request_completed",
            query_type=classification.type,
            confidence=classification.confidence,
            source_count=len(response.sources),
            duration_ms=round(duration_ms, 2),
        )
        return response

    def catalog_page_number(
        self, classification: QueryClassification, history: Sequence[ChatTurn]
    ) -> int:
        """Explicit "page N", else one page on or back from the last one shown."""
        if classification.constraints.page is not None:
            return classification.constraints.page
        previous = previous_catalog_page(history)
        if previous is None:
            return 1
        reference = classification.contextual.reference_type
        if reference in ("more", "continue"):
            return previous + 1
        if reference == "previous":
            return max(1, previous - 1)
        return 1

    def page_items(
        self,
        items: list[CorpusItem],
        classification: QueryClassification,
        history: Sequence[ChatTurn],
    ) -> CatalogPage:
        count = classification.constraints.result_count
        if count is not None:
            return take_first(items, count)
        return paginate(
            items,
            self.catalog_page_number(classification, history),
            self.settings.catalog_page_size,
        )

    async def _catalog(
        self,
        classification: QueryClassification,
        history: Sequence[ChatTurn],
        metadata: dict[str, Any],
    ) -> LibrarianResponse:
        """Unfiltered (or difficulty-filtered) listing of the whole corpus."""
        rows = await asyncio.to_thread(self.store.all_rows)
        catalog = build_catalog(rows)
        stats = compute_stats(catalog)

        items = filter_by_content(catalog, classification.content_filter)
        level = classification.constraints.difficulty_filter
        if level:
            items = [i for i in items if (i.difficulty or "").lower() == level.lower()]

        page = self.page_items(items, classification, history)
        logger.debug("catalog_listed", total=page.total, page=page.page, shown=len(page.items))
        return self.assembler.catalog_answer(
            classification, page, stats, metadata, subject=level.lower() if level else None
        )

    async def _retrieve_and_answer(
        self,
        message: str,
        enhanced: str,
        classification: QueryClassification,
        history: Sequence[ChatTurn],
        metadata: dict[str, Any],
    ) -> LibrarianResponse:
        query_text = resolve_retrieval_text(enhanced, history, classification.contextual)
        analysis = await asyncio.to_thread(
            self.analyzer.analyze, query_text, classification.constraints
        )
        outcome = await self.coordinator.retrieve(classification, analysis, query_text)
        ranked = select_candidates(
            outcome.candidates,
            classification,
            previously_recommended(history),
            self.settings,
        )

        metadata.update(
            {
                "strategies_run": outcome.executed,
                "strategies_failed": outcome.failed,
                "vector_threshold": outcome.vector_threshold,
                "vector_relaxed": outcome.vector_relaxed,
                "candidate_count": ranked.total_before_truncation,
                "excluded_count": ranked.excluded,
                "result_count": ranked.result_count,
            }
        )

        items = filter_by_content(
            [c.item for c in ranked.candidates], classification.content_filter
        )
        if classification.type == "catalog_browse" and items:
            matches = {c.key: c for c in ranked.candidates}
            page = self.page_items(items, classification, history)
            stats = compute_stats(items)
            return self.assembler.catalog_answer(
                classification,
                page,
                stats,
                metadata,
                matches=matches,
                subject=classification.constraints.topic_filter,
            )

        return await self.assembler.answer(
            message, classification, ranked.candidates, history, metadata
        )
