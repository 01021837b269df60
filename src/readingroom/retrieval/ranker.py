"""Candidate merging, exclusion and ranking."""

from collections.abc import Iterable
from dataclasses import dataclass, field

from readingroom import get_logger
from readingroom.config import Settings
from readingroom.core.models import ContentChunk, QueryClassification, ScoredCandidate
from readingroom.query.context import ShownItems

logger = get_logger(__name__)

MULTI_MATCH_BOOST = 1.2

# Lower sorts first among candidates whose scores are close
STRATEGY_PRIORITY = {
    "multi_match": 0,
    "entity": 1,
    "topic": 2,
    "doc_type": 2,
    "keyword": 3,
    "vector": 4,
}


def _union_chunks(a: list[ContentChunk], b: list[ContentChunk]) -> list[ContentChunk]:
    seen = {chunk.id or chunk.content for chunk in a}
    merged = list(a)
    for chunk in b:
        marker = chunk.id or chunk.content
        if marker not in seen:
            seen.add(marker)
            merged.append(chunk)
    return merged


def _combine(existing: ScoredCandidate, new: ScoredCandidate) -> ScoredCandidate:
    chunks = _union_chunks(existing.item.chunks, new.item.chunks)
    item = existing.item.model_copy(update={"chunks": chunks})

    new_strategies = [s for s in new.found_by if s not in existing.found_by]
    reasons = existing.match_reason
    if new.match_reason not in reasons.split(" + "):
        reasons = f"{reasons} + {new.match_reason}"

    if not new_strategies:
        # Same strategy again (e.g. a second token): keep the best score, no boost
        return existing.model_copy(
            update={"item": item, "score": max(existing.score, new.score), "match_reason": reasons}
        )

    return ScoredCandidate(
        item=item,
        score=min(1.0, max(existing.score, new.score) * MULTI_MATCH_BOOST),
        match_reason=reasons,
        strategy="multi_match",
        found_by=[*existing.found_by, *new_strategies],
    )


def merge_candidates(candidates: Iterable[ScoredCandidate]) -> list[ScoredCandidate]:
    """Deduplicate by identity, boosting items corroborated by several strategies."""
    merged: dict[str, ScoredCandidate] = {}
    for candidate in candidates:
        existing = merged.get(candidate.key)
        merged[candidate.key] = candidate if existing is None else _combine(existing, candidate)
    return list(merged.values())


def exclude_shown(
    candidates: list[ScoredCandidate], shown: ShownItems
) -> tuple[list[ScoredCandidate], int]:
    """Drop candidates already recommended earlier in the conversation."""
    kept = [c for c in candidates if c.item not in shown]
    return kept, len(candidates) - len(kept)


def rank_candidates(candidates: list[ScoredCandidate], tolerance: float) -> list[ScoredCandidate]:
    """Order by score band, then strategy priority, then exact score.

    Scores are bucketed into bands of width `tolerance`; inside a band a
    metadata hit outranks a pure vector hit.
    """

    def sort_key(c: ScoredCandidate) -> tuple[int, int, float, str]:
        band = int(c.score / tolerance + 1e-9) if tolerance > 0 else 0
        return (-band, STRATEGY_PRIORITY.get(c.strategy, 5), -c.score, c.item.title.lower())

    return sorted(candidates, key=sort_key)


def effective_result_count(classification: QueryClassification, settings: Settings) -> int:
    if classification.constraints.result_count is not None:
        return classification.constraints.result_count
    return settings.result_count_for(classification.type)


@dataclass
class RankedResult:
    """Final ordered candidates plus bookkeeping for response metadata."""

    candidates: list[ScoredCandidate] = field(default_factory=list)
    total_before_truncation: int = 0
    excluded: int = 0
    result_count: int = 0


def select_candidates(
    candidates: list[ScoredCandidate],
    classification: QueryClassification,
    shown: ShownItems,
    settings: Settings,
) -> RankedResult:
    """Merge, exclude (recommendation follow-ups only), rank and truncate."""
    merged = merge_candidates(candidates)

    excluded = 0
    if classification.type == "book_recommendation" and classification.contextual.is_follow_up:
        merged, excluded = exclude_shown(merged, shown)
        if excluded:
            logger.info("previously_recommended_excluded", count=excluded)

    ranked = rank_candidates(merged, settings.rank_score_tolerance)
    if classification.type == "catalog_browse":
        # Catalog listings are paged by the caller rather than capped here
        count = len(ranked)
    else:
        count = effective_result_count(classification, settings)
    return RankedResult(
        candidates=ranked[:count],
        total_before_truncation=len(ranked),
        excluded=excluded,
        result_count=count,
    )
