"""Query analysis: entities, topics and document types for the strategies."""

import json
import re
from collections.abc import Sequence

from pydantic import ValidationError

from readingroom import get_logger
from readingroom.config import Settings
from readingroom.core.models import Constraints, QueryAnalysis
from readingroom.exceptions import CompletionError
from readingroom.llm.prompts import QUERY_ANALYSIS_PROMPT
from readingroom.protocols import CompletionProvider

logger = get_logger(__name__)

STOPWORDS = {
    "the", "and", "how", "many", "what", "who", "where", "when", "why", "are",
    "is", "at", "in", "on", "for", "to", "of", "from", "give", "show", "find",
    "get", "me", "my", "a", "an", "any", "about", "book", "books", "some",
    "can", "you", "please", "with", "that", "this", "your", "have", "has",
    "recommend", "suggest", "another", "one", "more", "tell", "want", "need",
    "should", "would", "could", "like", "referring", "previous", "similar",
    "recommendation", "information", "read", "reading", "use", "only",
    "uploaded", "explain", "it", "do", "does", "not", "don",
}
QUOTED_PATTERN = re.compile(r"[\"“]([^\"”]{2,})[\"”]")
BY_AUTHOR_PATTERN = re.compile(r"\bby\s+([A-Z][\w.'-]+(?:[ \t]+[A-Z][\w.'-]+)*)")
NAME_SEQUENCE_PATTERN = re.compile(r"\b([A-Z][a-z]+(?:[ \t]+[A-Z][a-z]+)+)\b")
WORD_PATTERN = re.compile(r"\b\w+\b")
JSON_OBJECT_PATTERN = re.compile(r"\{.*\}", re.DOTALL)


def tokenize(text: str) -> list[str]:
    """Simple lowercase word tokenizer."""
    return WORD_PATTERN.findall(text.lower())


def extract_keywords(text: str) -> list[str]:
    """Query words longer than two characters, minus stopwords, de-duplicated."""
    words = [w for w in tokenize(text) if len(w) > 2 and w not in STOPWORDS and not w.isdigit()]
    return list(dict.fromkeys(words))


def _dedupe(values: Sequence[str]) -> list[str]:
    seen: dict[str, str] = {}
    for value in values:
        cleaned = value.strip()
        if cleaned and cleaned.lower() not in seen:
            seen[cleaned.lower()] = cleaned
    return list(seen.values())


def heuristic_analysis(
    text: str,
    constraints: Constraints,
    vocabulary: Sequence[str],
    document_types: Sequence[str],
) -> QueryAnalysis:
    """Deterministic analysis from quoting, capitalisation and vocabularies."""
    entities = QUOTED_PATTERN.findall(text)
    entities += BY_AUTHOR_PATTERN.findall(text)
    entities += NAME_SEQUENCE_PATTERN.findall(text)

    topics: list[str] = []
    if constraints.topic_filter:
        topics.append(constraints.topic_filter)
    for term in vocabulary:
        if re.search(rf"\b{re.escape(term)}\b", text, re.IGNORECASE):
            topics.append(term.lower())

    doc_types = [
        doc_type.capitalize()
        for doc_type in document_types
        if re.search(rf"\b{re.escape(doc_type)}s?\b", text, re.IGNORECASE)
    ]

    return QueryAnalysis(
        entities=_dedupe(entities),
        topics=_dedupe(topics),
        document_types=_dedupe(doc_types),
        keywords=extract_keywords(text),
        difficulty_preference=constraints.difficulty_filter,
    )


def _parse_llm_analysis(raw: str) -> QueryAnalysis:
    match = JSON_OBJECT_PATTERN.search(raw)
    if not match:
        raise ValueError("No JSON object in response")
    data = json.loads(match.group(0))
    if not isinstance(data, dict):
        raise ValueError("Analysis is not a JSON object")
    data.pop("keywords", None)
    level = data.get("difficulty_preference")
    if isinstance(level, str):
        data["difficulty_preference"] = level.strip().capitalize() or None
    return QueryAnalysis.model_validate(data)


class QueryAnalyzer:
    """Turns a message into search terms, heuristically or with the LLM."""

    def __init__(self, settings: Settings, completion: CompletionProvider | None = None) -> None:
        self.settings = settings
        self.completion = completion

    def analyze(self, text: str, constraints: Constraints) -> QueryAnalysis:
        heuristic = heuristic_analysis(
            text,
            constraints,
            self.settings.topic_vocabulary,
            self.settings.document_types,
        )
        if self.settings.query_analysis_mode != "llm" or self.completion is None:
            return heuristic

        try:
            raw = self.completion.complete(
                [{"role": "user", "content": QUERY_ANALYSIS_PROMPT.format(query=text)}]
            )
            parsed = _parse_llm_analysis(raw)
        except (CompletionError, ValidationError, ValueError) as e:
            logger.warning("query_analysis_fallback", error=str(e))
            return heuristic

        # Constraint-derived terms and keywords always come from the message itself
        topics = list(parsed.topics)
        if constraints.topic_filter:
            topics.insert(0, constraints.topic_filter)
        return QueryAnalysis(
            entities=_dedupe(parsed.entities),
            topics=_dedupe(topics),
            document_types=_dedupe(parsed.document_types),
            keywords=heuristic.keywords,
            difficulty_preference=constraints.difficulty_filter or parsed.difficulty_preference,
        )
