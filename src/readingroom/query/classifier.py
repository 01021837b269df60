"""Query classification for routing to the retrieval and answer paths.

Rules are evaluated in a fixed priority order and the first match wins.
Intents overlap ("list books about leadership" is both a browse and a
search), so the order of RULES is part of the behaviour, not an
implementation detail.
"""

import re
from collections.abc import Callable, Sequence
from dataclasses import dataclass

from readingroom import get_logger
from readingroom.core.models import (
    Constraints,
    ContentFilter,
    ContextualInfo,
    IntentType,
    QueryClassification,
)

logger = get_logger(__name__)

CATALOG_PATTERNS = [
    re.compile(
        r"\b(list|show|display|browse)\s+(?:me\s+)?(?:(?:all|every|the|your|my)\s+)?(?:of\s+)?(?:the\s+)?"
        r"(books?|documents?|videos?|titles|items|content|catalog|library)\b",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(what|which)\s+(books?|documents?|videos?|titles|content)\s+"
        r"(do\s+you\s+have|are\s+(?:there|available|in))",
        re.IGNORECASE,
    ),
    re.compile(r"\bhow\s+many\s+(books?|documents?|videos?|items|titles)\b", re.IGNORECASE),
    re.compile(r"\b(all|every|complete)\s+(?:the\s+)?(books?|documents?|videos?|items)\b", re.IGNORECASE),
    re.compile(r"\b(catalog|catalogue|inventory)\b", re.IGNORECASE),
    re.compile(r"\bname\s+\d+\s+(books?|documents?|videos?|titles)\b", re.IGNORECASE),
]
PAGE_REQUEST_PATTERN = re.compile(r"\b(next|previous)\s+page\b|\bpage\s+\d+\b", re.IGNORECASE)

RECOMMENDATION_PATTERN = re.compile(
    r"\b(recommend\w*|suggest\w*|good\s+books?|best\s+books?|reading\s+list|"
    r"what\s+should\s+i\s+read|books?\s+for)\b",
    re.IGNORECASE,
)
BOOKS_PATTERN = re.compile(r"\bbooks?\b", re.IGNORECASE)
SEARCH_PATTERNS = [
    re.compile(r"\b(about|on|regarding)\s+(?!(?:my|your|our|me|it|this|that)\b)\w+", re.IGNORECASE),
    re.compile(r"\b(books?|documents?|videos?|content)\s+(about|on|covering|discussing)\b", re.IGNORECASE),
    re.compile(r"\b(find|search|looking\s+for|look\s+up)\b", re.IGNORECASE),
]
ADVICE_PATTERN = re.compile(
    r"\b(advice|help|guidance|tips|how\s+(?:to|do|can|should)\b|what\s+should\s+i|best\s+way)\b",
    re.IGNORECASE,
)
EXPLANATION_PATTERN = re.compile(
    r"\b(tell\s+me|explain|describe|summari[sz]e|what\s+(?:is|are)|how\s+does)\b",
    re.IGNORECASE,
)
QUESTION_PATTERN = re.compile(
    r"\b(what\s+is|what\s+are|explain|define|how\s+does|why\s+does|tell\s+me\s+about|who\s+(?:is|was))\b",
    re.IGNORECASE,
)
VIDEO_PATTERN = re.compile(r"\b(videos?|talks?|presentations?)\b", re.IGNORECASE)
DOCUMENT_PATTERN = re.compile(r"\b(books?|documents?)\b", re.IGNORECASE)


def _contains_any(text: str, terms: Sequence[str]) -> bool:
    return any(re.search(rf"\b{re.escape(term)}\b", text, re.IGNORECASE) for term in terms)


@dataclass(frozen=True)
class QuerySignals:
    """Everything a rule may look at."""

    text: str
    constraints: Constraints
    contextual: ContextualInfo
    domain_keywords: Sequence[str]
    workforce_keywords: Sequence[str]


@dataclass(frozen=True)
class ClassificationRule:
    """One (predicate, builder) pair of the ordered rule list."""

    name: str
    matches: Callable[[QuerySignals], bool]
    build: Callable[[QuerySignals], tuple[IntentType, float, str]]


def _is_catalog(s: QuerySignals) -> bool:
    if any(p.search(s.text) for p in CATALOG_PATTERNS):
        return True
    if PAGE_REQUEST_PATTERN.search(s.text):
        return True
    # "more", "next" or "go back" right after a catalog page
    return s.contextual.previous_intent == "catalog_browse" and s.contextual.reference_type in (
        "more",
        "continue",
        "previous",
    )


def _is_recommendation(s: QuerySignals) -> bool:
    if RECOMMENDATION_PATTERN.search(s.text):
        return True
    return s.contextual.reference_type == "another" and bool(s.contextual.previous_topic)


def _recommendation(s: QuerySignals) -> tuple[IntentType, float, str]:
    if RECOMMENDATION_PATTERN.search(s.text):
        return "book_recommendation", 0.90, "User asking for book recommendations or suggestions"
    return (
        "book_recommendation",
        0.88,
        f"Follow-up asking for another recommendation after '{s.contextual.previous_topic}'",
    )


def _is_topic_list(s: QuerySignals) -> bool:
    c = s.constraints
    return c.result_count is not None and c.topic_filter is not None and bool(BOOKS_PATTERN.search(s.text))


def _is_search(s: QuerySignals) -> bool:
    return any(p.search(s.text) for p in SEARCH_PATTERNS)


def _is_hr(s: QuerySignals) -> bool:
    return _contains_any(s.text, s.workforce_keywords) and bool(ADVICE_PATTERN.search(s.text))


def _is_restricted_advice(s: QuerySignals) -> bool:
    if not s.constraints.restrict_to_corpus_only:
        return False
    return bool(ADVICE_PATTERN.search(s.text) or EXPLANATION_PATTERN.search(s.text))


def _is_question(s: QuerySignals) -> bool:
    return bool(QUESTION_PATTERN.search(s.text)) or s.text.strip().endswith("?")


def _question(s: QuerySignals) -> tuple[IntentType, float, str]:
    if _contains_any(s.text, s.domain_keywords):
        return (
            "hybrid",
            0.85,
            "Domain question - check the library first, then supplement with general knowledge",
        )
    return "direct_question", 0.70, "General question outside the library's domain"


RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        "catalog",
        _is_catalog,
        lambda s: ("catalog_browse", 0.95, "User wants to browse or list available content"),
    ),
    ClassificationRule("recommendation", _is_recommendation, _recommendation),
    ClassificationRule(
        "topic_list",
        _is_topic_list,
        lambda s: (
            "topic_book_list",
            0.90,
            f"User wants {s.constraints.result_count} books on '{s.constraints.topic_filter}'",
        ),
    ),
    ClassificationRule(
        "search",
        _is_search,
        lambda s: ("specific_search", 0.85, "User searching for specific topics or content"),
    ),
    ClassificationRule(
        "hr",
        _is_hr,
        lambda s: ("hr_scenario", 0.85, "Workforce-management situation asking for advice"),
    ),
    ClassificationRule(
        "restricted_advice",
        _is_restricted_advice,
        lambda s: (
            "advice_restricted",
            0.90,
            "Advice or explanation limited to the user's own uploaded material",
        ),
    ),
    ClassificationRule(
        "advice",
        lambda s: bool(ADVICE_PATTERN.search(s.text)),
        lambda s: ("advice_general", 0.80, "General advice request"),
    ),
    ClassificationRule("question", _is_question, _question),
)


def detect_content_filter(text: str) -> ContentFilter:
    has_documents = bool(DOCUMENT_PATTERN.search(text))
    has_videos = bool(VIDEO_PATTERN.search(text))
    if has_documents and not has_videos:
        return "books"
    if has_videos and not has_documents:
        return "videos"
    return "all"


def classify_query(
    message: str,
    constraints: Constraints,
    contextual: ContextualInfo,
    domain_keywords: Sequence[str],
    workforce_keywords: Sequence[str],
    original: str | None = None,
) -> QueryClassification:
    """Assign exactly one intent to an (enhanced) message.

    The content filter is read from `original` (the text the user typed)
    when given, so synthetic follow-up clauses cannot narrow it. Always
    returns a classification; the fallback is `hybrid` at 0.60.
    """
    signals = QuerySignals(
        text=message,
        constraints=constraints,
        contextual=contextual,
        domain_keywords=domain_keywords,
        workforce_keywords=workforce_keywords,
    )

    intent: IntentType = "hybrid"
    confidence = 0.60
    reasoning = "Complex query that may need both library context and general knowledge"
    rule_name = "fallback"
    for rule in RULES:
        if rule.matches(signals):
            intent, confidence, reasoning = rule.build(signals)
            rule_name = rule.name
            break

    classification = QueryClassification(
        type=intent,
        confidence=confidence,
        reasoning=reasoning,
        constraints=constraints,
        contextual=contextual,
        content_filter=detect_content_filter(original or message),
    )
    logger.info(
        "query_classified",
        query_type=intent,
        confidence=confidence,
        rule=rule_name,
        follow_up=contextual.is_follow_up,
    )
    return classification
