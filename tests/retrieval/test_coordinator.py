"""Tests for the retrieval coordinator."""

import asyncio
import time
from collections.abc import Callable

import pytest
from readingroom.config import Settings
from readingroom.core.models import (
    Constraints,
    IntentType,
    QueryAnalysis,
    QueryClassification,
)
from readingroom.exceptions import TransientDependencyError
from readingroom.retrieval.coordinator import HR_QUERY_TERMS, RetrievalCoordinator


def classification(intent: IntentType, **constraints: object) -> QueryClassification:
    return QueryClassification(
        type=intent,
        confidence=0.9,
        reasoning="test",
        constraints=Constraints(**constraints),  # type: ignore[arg-type]
    )


class SlowEmbedder:
    """Embedding provider that takes longer than the strategy timeout."""

    def embed(self, text: str) -> list[float]:
        time.sleep(0.3)
        return [0.1] * 8


class TestPlan:
    """Tests for strategy planning."""

    @pytest.mark.parametrize(
        ("intent", "expected"),
        [
            ("catalog_browse", ("topic",)),
            ("book_recommendation", ("entity", "topic", "doc_type")),
            ("specific_search", ("entity", "topic", "doc_type", "keyword")),
            ("hr_scenario", ("topic", "keyword")),
            ("direct_question", ("entity",)),
        ],
    )
    def test_plan(
        self,
        intent: IntentType,
        expected: tuple[str, ...],
        memory_store,
        fake_embedder,
        mock_settings: Settings,
    ) -> None:
        """Test the lexical strategies chosen per intent."""
        coordinator = RetrievalCoordinator(memory_store, fake_embedder, mock_settings)

        assert coordinator.plan(classification(intent)) == expected

    def test_hr_vector_query_augmented(
        self, memory_store, fake_embedder, mock_settings: Settings
    ) -> None:
        """Test that workforce questions embed extra HR terms."""
        coordinator = RetrievalCoordinator(memory_store, fake_embedder, mock_settings)

        asyncio.run(
            coordinator.retrieve(
                classification("hr_scenario"),
                QueryAnalysis(keywords=["firing"]),
                "how do I handle firing",
            )
        )

        assert fake_embedder.calls == [f"how do I handle firing {HR_QUERY_TERMS}"]


class TestRetrieve:
    """Tests for RetrievalCoordinator.retrieve."""

    def test_runs_planned_strategies(
        self, memory_store, fake_embedder, mock_settings: Settings
    ) -> None:
        """Test that strategies with tokens run, plus the vector search."""
        coordinator = RetrievalCoordinator(memory_store, fake_embedder, mock_settings)

        outcome = asyncio.run(
            coordinator.retrieve(
                classification("specific_search"),
                QueryAnalysis(topics=["leadership"]),
                "leadership",
            )
        )

        # entity, doc_type and keyword have no tokens
        assert outcome.executed == ["topic", "vector"]
        assert outcome.failed == []
        assert {c.item.title for c in outcome.candidates} == {
            "Good to Great",
            "Leaders Eat Last",
            "Start With Why",
        }
        assert outcome.vector_relaxed is False
        assert outcome.vector_threshold == 0.2

    def test_relaxes_vector_search_when_lexical_sparse(
        self, store_factory: Callable[..., object], library_rows, fake_embedder, mock_settings: Settings
    ) -> None:
        """Test the lower floor and higher cap when lexical strategies find little."""
        store = store_factory(library_rows, similarities={"Radical Candor": 0.12})
        coordinator = RetrievalCoordinator(store, fake_embedder, mock_settings)  # type: ignore[arg-type]

        outcome = asyncio.run(
            coordinator.retrieve(
                classification("hybrid"),
                QueryAnalysis(keywords=["stoicism"]),
                "stoicism",
            )
        )

        assert outcome.vector_relaxed is True
        assert outcome.vector_threshold == 0.1
        assert store.matches == [(0.1, 15)]  # type: ignore[attr-defined]
        assert [c.item.title for c in outcome.candidates] == ["Radical Candor"]

    def test_vector_failure_degrades(
        self, store_factory: Callable[..., object], library_rows, fake_embedder, mock_settings: Settings
    ) -> None:
        """Test that a failing vector search leaves lexical results intact."""
        store = store_factory(library_rows, fail_match=True)
        coordinator = RetrievalCoordinator(store, fake_embedder, mock_settings)  # type: ignore[arg-type]

        outcome = asyncio.run(
            coordinator.retrieve(
                classification("hybrid"), QueryAnalysis(topics=["leadership"]), "leadership"
            )
        )

        assert outcome.failed == ["vector"]
        assert len(outcome.candidates) == 3

    def test_embedding_failure_skips_vector_search(
        self, memory_store, embedder_factory: Callable[..., object], mock_settings: Settings
    ) -> None:
        """Test that no similarity search runs without an embedding."""
        embedder = embedder_factory(fail=True)
        coordinator = RetrievalCoordinator(memory_store, embedder, mock_settings)  # type: ignore[arg-type]

        outcome = asyncio.run(
            coordinator.retrieve(
                classification("hybrid"), QueryAnalysis(topics=["leadership"]), "leadership"
            )
        )

        assert outcome.failed == ["vector"]
        assert memory_store.matches == []
        assert outcome.candidates

    def test_all_strategies_failed_raises(
        self, store_factory: Callable[..., object], library_rows, fake_embedder, mock_settings: Settings
    ) -> None:
        """Test that a total outage is reported rather than an empty result."""
        store = store_factory(library_rows, fail_scan=True, fail_match=True)
        coordinator = RetrievalCoordinator(store, fake_embedder, mock_settings)  # type: ignore[arg-type]

        with pytest.raises(TransientDependencyError) as exc_info:
            asyncio.run(
                coordinator.retrieve(
                    classification("hybrid"),
                    QueryAnalysis(topics=["leadership"], keywords=["leadership"]),
                    "leadership",
                )
            )

        assert exc_info.value.stage == "retrieval"
        assert "topic" in (exc_info.value.details or "")

    def test_timeout_counts_as_failure(self, memory_store, mock_settings: Settings) -> None:
        """Test that a slow dependency is abandoned after the strategy timeout."""
        settings = mock_settings.model_copy(update={"strategy_timeout": 0.05})
        coordinator = RetrievalCoordinator(memory_store, SlowEmbedder(), settings)

        outcome = asyncio.run(
            coordinator.retrieve(
                classification("hybrid"), QueryAnalysis(topics=["leadership"]), "leadership"
            )
        )

        assert outcome.failed == ["vector"]
        assert len(outcome.candidates) == 3

    def test_no_tokens_runs_vector_only(
        self, store_factory: Callable[..., object], library_rows, fake_embedder, mock_settings: Settings
    ) -> None:
        """Test an analysis without search terms."""
        store = store_factory(library_rows, similarities={"Leaders Eat Last": 0.9})
        coordinator = RetrievalCoordinator(store, fake_embedder, mock_settings)  # type: ignore[arg-type]

        outcome = asyncio.run(
            coordinator.retrieve(classification("direct_question"), QueryAnalysis(), "hello")
        )

        assert outcome.executed == ["vector"]
        assert [c.item.title for c in outcome.candidates] == ["Leaders Eat Last"]

    def test_candidates_carry_full_items(
        self, memory_store, fake_embedder, mock_settings: Settings
    ) -> None:
        """Test that every strategy returns the whole item, not just the rows that matched."""
        coordinator = RetrievalCoordinator(memory_store, fake_embedder, mock_settings)

        outcome = asyncio.run(
            coordinator.retrieve(
                classification("direct_question"),
                QueryAnalysis(entities=["hedgehog concept"]),
                "hedgehog concept",
            )
        )

        (candidate,) = outcome.candidates
        assert candidate.item.chunk_count == 2
        assert candidate.item.author == "Jim Collins"
        assert candidate.item.topic == "Leadership"

    def test_unexpected_error_degrades(
        self, store_factory: Callable[..., object], library_rows, fake_embedder, mock_settings: Settings
    ) -> None:
        """Test that an error outside the dependency hierarchy only drops that strategy."""
        store = store_factory(library_rows)

        def broken_match(embedding: list[float], threshold: float, limit: int) -> list[object]:
            raise ValueError("bad metadata")

        store.match_rows = broken_match  # type: ignore[attr-defined]
        coordinator = RetrievalCoordinator(store, fake_embedder, mock_settings)  # type: ignore[arg-type]

        outcome = asyncio.run(
            coordinator.retrieve(
                classification("hybrid"), QueryAnalysis(topics=["leadership"]), "leadership"
            )
        )

        assert outcome.failed == ["vector"]
        assert len(outcome.candidates) == 3
