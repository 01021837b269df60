"""Retrieval coordination: concurrent fan-out over the planned strategies."""

import asyncio
import time
from collections.abc import Awaitable
from dataclasses import dataclass, field
from typing import TypeVar

from readingroom import get_logger
from readingroom.config import Settings
from readingroom.core.models import QueryAnalysis, QueryClassification, ScoredCandidate
from readingroom.exceptions import TransientDependencyError
from readingroom.protocols import CorpusStore, EmbeddingProvider
from readingroom.retrieval.strategies import (
    FieldMatchStrategy,
    VectorStrategy,
    catalog_lookup,
    doc_type_strategy,
    entity_strategy,
    keyword_strategy,
    topic_strategy,
)

logger = get_logger(__name__)

T = TypeVar("T")

# Lexical strategies per intent; vector similarity always runs as well
STRATEGY_PLANS: dict[str, tuple[str, ...]] = {
    "catalog_browse": ("topic",),
    "book_recommendation": ("entity", "topic", "doc_type"),
    "topic_book_list": ("topic", "doc_type", "keyword"),
    "specific_search": ("entity", "topic", "doc_type", "keyword"),
    "hr_scenario": ("topic", "keyword"),
    "advice_restricted": ("entity", "topic", "keyword"),
    "advice_general": ("topic", "keyword"),
    "direct_question": ("entity",),
    "hybrid": ("entity", "topic", "keyword"),
}

HR_QUERY_TERMS = "human resources management workplace employee"


@dataclass
class RetrievalOutcome:
    """Candidates from one fan-out plus what ran and what failed."""

    candidates: list[ScoredCandidate] = field(default_factory=list)
    executed: list[str] = field(default_factory=list)
    failed: list[str] = field(default_factory=list)
    vector_threshold: float = 0.0
    vector_relaxed: bool = False


class RetrievalCoordinator:
    """Dispatches independent strategies and gathers their candidates.

    Lexical strategies and the query embedding run concurrently. The vector
    search itself waits for the lexical results: when they come back with
    fewer than `relaxation_trigger` candidates the similarity floor is
    lowered and the cap raised to broaden recall.
    """

    def __init__(
        self, store: CorpusStore, embedder: EmbeddingProvider, settings: Settings
    ) -> None:
        self.store = store
        self.embedder = embedder
        self.settings = settings
        self.lexical: dict[str, FieldMatchStrategy] = {
            "entity": entity_strategy(settings),
            "topic": topic_strategy(settings),
            "doc_type": doc_type_strategy(settings),
            "keyword": keyword_strategy(settings),
        }

    def plan(self, classification: QueryClassification) -> tuple[str, ...]:
        return STRATEGY_PLANS.get(classification.type, STRATEGY_PLANS["hybrid"])

    @staticmethod
    def tokens_for(name: str, analysis: QueryAnalysis) -> list[str]:
        if name == "entity":
            return analysis.entities
        if name == "topic":
            return analysis.topics
        if name == "doc_type":
            return analysis.document_types
        return analysis.keywords

    def vector_query(self, classification: QueryClassification, query_text: str) -> str:
        if classification.type == "hr_scenario":
            return f"{query_text} {HR_QUERY_TERMS}"
        return query_text

    async def _guarded(self, name: str, awaitable: Awaitable[T]) -> T | None:
        """Await one strategy step; failures and timeouts degrade to None."""
        try:
            return await asyncio.wait_for(awaitable, timeout=self.settings.strategy_timeout)
        except TransientDependencyError as e:
            logger.warning("strategy_failed", strategy=name, stage=e.stage, error=e.message)
        except TimeoutError:
            logger.warning(
                "strategy_failed",
                strategy=name,
                stage="timeout",
                error=f"Timed out after {self.settings.strategy_timeout}s",
            )
        except Exception as e:
            logger.warning(
                "strategy_failed",
                strategy=name,
                stage="unexpected",
                error=str(e),
                exc_info=True,
            )
        return None

    async def retrieve(
        self,
        classification: QueryClassification,
        analysis: QueryAnalysis,
        query_text: str,
    ) -> RetrievalOutcome:
        """Run the planned strategies for a classification.

        Raises:
            TransientDependencyError: If every strategy that ran failed.
        """
        start_time = time.time()
        constraints = classification.constraints
        outcome = RetrievalOutcome()

        jobs = {
            name: tokens
            for name in self.plan(classification)
            if (tokens := self.tokens_for(name, analysis))
        }

        embed_task = asyncio.create_task(
            self._guarded(
                "vector",
                asyncio.to_thread(self.embedder.embed, self.vector_query(classification, query_text)),
            )
        )
        try:
            catalog = await self._guarded("catalog", asyncio.to_thread(catalog_lookup, self.store))
            if catalog is None:
                catalog = {}
            lexical_results = await asyncio.gather(
                *(
                    self._guarded(
                        name,
                        asyncio.to_thread(
                            self.lexical[name].search,
                            self.store,
                            tokens,
                            constraints,
                            query_text,
                            catalog,
                        ),
                    )
                    for name, tokens in jobs.items()
                )
            )
        except BaseException:
            embed_task.cancel()
            raise

        lexical_count = 0
        for name, result in zip(jobs, lexical_results, strict=True):
            outcome.executed.append(name)
            if result is None:
                outcome.failed.append(name)
                continue
            logger.debug("strategy_completed", strategy=name, candidates=len(result))
            lexical_count += len(result)
            outcome.candidates.extend(result)

        threshold = self.settings.vector_threshold_for(classification.type)
        cap = self.settings.vector_cap
        if lexical_count < self.settings.relaxation_trigger:
            outcome.vector_relaxed = True
            threshold = min(threshold, self.settings.relaxed_vector_threshold)
            cap = max(cap, self.settings.relaxed_vector_cap)
            logger.info(
                "vector_threshold_relaxed",
                lexical_candidates=lexical_count,
                threshold=threshold,
                cap=cap,
            )
        outcome.vector_threshold = threshold

        outcome.executed.append("vector")
        embedding = await embed_task
        vector_result = None
        if embedding is not None:
            vector = VectorStrategy(threshold=threshold, cap=cap)
            vector_result = await self._guarded(
                "vector", asyncio.to_thread(vector.search, self.store, embedding, catalog)
            )
        if vector_result is None:
            outcome.failed.append("vector")
        else:
            logger.debug("strategy_completed", strategy="vector", candidates=len(vector_result))
            outcome.candidates.extend(vector_result)

        if len(outcome.failed) == len(outcome.executed):
            raise TransientDependencyError(
                message="Search is temporarily unavailable. Please try again.",
                details=f"All strategies failed: {', '.join(outcome.failed)}",
                stage="retrieval",
            )

        duration_ms = (time.time() - start_time) * 1000
        logger.info(
            "retrieval_completed",
            duration_ms=round(duration_ms, 2),
            strategies=outcome.executed,
            failed=outcome.failed,
            candidates=len(outcome.candidates),
        )
        return outcome
