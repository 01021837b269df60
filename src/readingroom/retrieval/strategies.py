"""Retrieval strategies.

Every lexical strategy is the same shape (scan some columns for each search
token, score what matched, keep the best few per token) and differs only in
its columns, weights and cap, so they are one parametrized type.
"""

from collections.abc import Mapping, Sequence
from dataclasses import dataclass
from typing import Literal

from rank_bm25 import BM25Okapi

from readingroom.config import Settings
from readingroom.core.corpus import build_catalog, group_rows
from readingroom.core.models import (
    Constraints,
    CorpusItem,
    ScoredCandidate,
    StrategyTag,
    identity_key,
)
from readingroom.protocols import CorpusStore
from readingroom.query.analysis import tokenize

CatalogLookup = Mapping[str, CorpusItem]


def catalog_lookup(store: CorpusStore) -> dict[str, CorpusItem]:
    """Every item in the store keyed by identity, with all of its chunks."""
    return {item.key: item for item in build_catalog(store.all_rows())}


def complete_items(
    matched: list[CorpusItem], store: CorpusStore, catalog: CatalogLookup | None
) -> list[CorpusItem]:
    """Swap items grouped from matching rows for their full catalog entries.

    A scan or similarity search only returns the rows that matched, so an
    item built from them can miss chunks and metadata held on other rows.
    """
    if not matched:
        return matched
    if catalog is None:
        catalog = catalog_lookup(store)
    return [catalog.get(item.key, item) for item in matched]


@dataclass(frozen=True)
class FieldMatchStrategy:
    """Case-insensitive substring match of tokens against named columns.

    Scoring is either additive (base score plus a bonus per matching column)
    or the best single column weight. Ties inside a token's result list can
    be broken by BM25 relevance of the item text to the whole query.
    """

    name: StrategyTag
    columns: tuple[str, ...]
    weights: tuple[tuple[str, float], ...]
    base_score: float
    cap: int
    reason: str
    scoring: Literal["additive", "max"] = "additive"
    difficulty_bonus: float = 0.0
    bm25_ordering: bool = False

    def score(self, item: CorpusItem, token: str, constraints: Constraints) -> float:
        needle = token.lower()
        hits = [w for column, w in self.weights if needle in item.field_text(column).lower()]
        if self.scoring == "max":
            score = max(hits, default=self.base_score)
        else:
            score = self.base_score + sum(hits)
        if (
            self.difficulty_bonus
            and constraints.difficulty_filter
            and item.difficulty
            and item.difficulty.lower() == constraints.difficulty_filter.lower()
        ):
            score += self.difficulty_bonus
        return min(1.0, score)

    def search(
        self,
        store: CorpusStore,
        tokens: Sequence[str],
        constraints: Constraints,
        query: str = "",
        catalog: CatalogLookup | None = None,
    ) -> list[ScoredCandidate]:
        """Run every token against the store and return per-token capped candidates.

        Matched items are completed from `catalog`, which is loaded from the
        store on first use when not given.
        """
        candidates: list[ScoredCandidate] = []
        for token in tokens:
            if not token.strip():
                continue
            items = group_rows(store.scan(self.columns, token))
            if not items:
                continue
            if catalog is None:
                catalog = catalog_lookup(store)
            items = [catalog.get(item.key, item) for item in items]

            scored = [(self.score(item, token, constraints), item) for item in items]
            tiebreak = self._bm25_scores(items, query or token) if self.bm25_ordering else {}
            scored.sort(key=lambda pair: (pair[0], tiebreak.get(pair[1].key, 0.0)), reverse=True)

            for score, item in scored[: self.cap]:
                candidates.append(
                    ScoredCandidate(
                        item=item,
                        score=score,
                        match_reason=f"{self.reason}: {token}",
                        strategy=self.name,
                        found_by=[self.name],
                    )
                )
        return candidates

    def _bm25_scores(self, items: list[CorpusItem], query: str) -> dict[str, float]:
        corpus = [
            tokenize(f"{item.title} {item.author} {item.summary} {item.field_text('content')}")
            for item in items
        ]
        query_tokens = tokenize(query)
        if not query_tokens or not any(corpus):
            return {}
        bm25 = BM25Okapi(corpus)
        scores = bm25.get_scores(query_tokens)
        return {item.key: float(s) for item, s in zip(items, scores, strict=True)}


@dataclass(frozen=True)
class VectorStrategy:
    """Similarity search over chunk embeddings, one candidate per corpus item."""

    threshold: float
    cap: int
    name: StrategyTag = "vector"
    reason: str = "Semantic similarity"

    def search(
        self,
        store: CorpusStore,
        embedding: list[float],
        catalog: CatalogLookup | None = None,
    ) -> list[ScoredCandidate]:
        rows = store.match_rows(embedding, self.threshold, self.cap)
        best: dict[str, float] = {}
        for row in rows:
            key = identity_key(row.title, row.author)
            best[key] = max(best.get(key, 0.0), row.similarity or 0.0)

        candidates = []
        for item in complete_items(group_rows(rows), store, catalog):
            similarity = min(1.0, max(0.0, best.get(item.key, 0.0)))
            candidates.append(
                ScoredCandidate(
                    item=item,
                    score=similarity,
                    match_reason=self.reason,
                    strategy=self.name,
                    found_by=[self.name],
                )
            )
        return candidates


def entity_strategy(settings: Settings) -> FieldMatchStrategy:
    return FieldMatchStrategy(
        name="entity",
        columns=("title", "author", "content", "tags"),
        weights=(("title", 0.3), ("author", 0.25), ("content", 0.15), ("tags", 0.1)),
        base_score=0.6,
        cap=settings.entity_cap,
        reason="Entity match",
    )


def topic_strategy(settings: Settings) -> FieldMatchStrategy:
    return FieldMatchStrategy(
        name="topic",
        columns=("topic", "genre", "tags", "title"),
        weights=(("topic", 0.35), ("genre", 0.25), ("tags", 0.2), ("title", 0.1)),
        base_score=0.5,
        cap=settings.topic_cap,
        reason="Topic match",
        difficulty_bonus=0.1,
    )


def doc_type_strategy(settings: Settings) -> FieldMatchStrategy:
    return FieldMatchStrategy(
        name="doc_type",
        columns=("doc_type",),
        weights=(("doc_type", 0.2),),
        base_score=0.7,
        cap=settings.type_cap,
        reason="Type match",
    )


def keyword_strategy(settings: Settings) -> FieldMatchStrategy:
    return FieldMatchStrategy(
        name="keyword",
        columns=("title", "author", "summary"),
        weights=(("title", 0.95), ("author", 0.9), ("summary", 0.7)),
        base_score=0.5,
        cap=settings.keyword_cap,
        reason="Keyword match",
        scoring="max",
        bm25_ordering=True,
    )
