"""Constraint extraction: structured filters pulled out of free text."""

import re
from collections.abc import Sequence

from readingroom import get_logger
from readingroom.core.models import Constraints, Difficulty
from readingroom.exceptions import MalformedConstraintError

logger = get_logger(__name__)

RESTRICT_PATTERNS = [
    re.compile(
        r"\b(only|just|exclusively)\s+.*(books?|documents?|materials?)\s+(uploaded|in\s+my|from\s+my)",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(use\s+only|based\s+only\s+on|limit\s+to)\s+.*(uploaded|my\s+books?|my\s+documents?)",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(don'?t\s+use|do\s+not\s+use|no)\s+.*(external|outside|general)\s+(knowledge|sources?)",
        re.IGNORECASE,
    ),
    re.compile(
        r"\b(only|just|exclusively)\s+(?:use\s+|from\s+)?my\s+(?:own\s+|uploaded\s+)?"
        r"(books?|documents?|materials?|library|collection)\b",
        re.IGNORECASE,
    ),
]

COUNT_PATTERN = re.compile(r"\b(\d+)\s+(books?|recommendations?|suggestions?)\b", re.IGNORECASE)
PAGE_PATTERN = re.compile(r"\bpage\s+(\d+)\b", re.IGNORECASE)

# Tried in order; the first pattern that yields a usable topic wins
SUBJECT_PATTERN = re.compile(
    r"\b(?:about|on|regarding|for)\s+([a-zA-Z\s]+?)(?:\s+(?:books?|advice|help|for|to|with|that|which|by)\b|[?.!,;:()]|$)",
    re.IGNORECASE,
)
ARTICLE_PATTERN = re.compile(r"^(?:a|an|the)\s+", re.IGNORECASE)
NON_TOPICS = {
    "me",
    "us",
    "you",
    "it",
    "this",
    "that",
    "them",
    "beginners",
    "beginner",
    "now",
    "today",
    "reading",
}
POSSESSIVE_PATTERN = re.compile(r"^(?:my|your|our|their)\b", re.IGNORECASE)

DIFFICULTY_PATTERNS: list[tuple[re.Pattern[str], Difficulty]] = [
    (
        re.compile(r"\b(beginners?|basics?|introduction|introductory|intro|simple)\b", re.IGNORECASE),
        "Beginner",
    ),
    (re.compile(r"\b(advanced|expert|complex)\b", re.IGNORECASE), "Advanced"),
    (re.compile(r"\b(intermediate|moderate)\b", re.IGNORECASE), "Intermediate"),
]


def detect_restriction(message: str) -> bool:
    return any(p.search(message) for p in RESTRICT_PATTERNS)


def parse_positive_int(raw: str, upper: int | None = None) -> int:
    """Parse a count, rejecting non-positive values and clamping to `upper`."""
    try:
        value = int(raw)
    except ValueError as e:
        raise MalformedConstraintError(
            message=f"Not an integer: {raw!r}", details=str(e)
        ) from e
    if value <= 0:
        raise MalformedConstraintError(message=f"Count must be positive, got {value}")
    if upper is not None and value > upper:
        return upper
    return value


def extract_result_count(message: str, upper: int | None = None) -> int | None:
    match = COUNT_PATTERN.search(message)
    if not match:
        return None
    try:
        return parse_positive_int(match.group(1), upper)
    except MalformedConstraintError as e:
        logger.debug("constraint_dropped", constraint="result_count", reason=e.message)
        return None


def extract_page(message: str) -> int | None:
    match = PAGE_PATTERN.search(message)
    if not match:
        return None
    try:
        return parse_positive_int(match.group(1))
    except MalformedConstraintError as e:
        logger.debug("constraint_dropped", constraint="page", reason=e.message)
        return None


def _subject_phrase(message: str) -> str | None:
    for match in SUBJECT_PATTERN.finditer(message):
        topic = ARTICLE_PATTERN.sub("", match.group(1).strip()).strip().lower()
        topic = re.sub(r"\s+", " ", topic)
        if topic and topic not in NON_TOPICS and not POSSESSIVE_PATTERN.match(topic):
            return topic
    return None


def extract_topic(message: str, vocabulary: Sequence[str]) -> str | None:
    """Subject phrase after about/on/regarding/for, else the first vocabulary term."""
    topic = _subject_phrase(message)
    if topic:
        return topic
    for term in vocabulary:
        if re.search(rf"\b{re.escape(term)}\b", message, re.IGNORECASE):
            return term.lower()
    return None


def extract_difficulty(message: str) -> Difficulty | None:
    for pattern, level in DIFFICULTY_PATTERNS:
        if pattern.search(message):
            return level
    return None


def extract_constraints(
    message: str, vocabulary: Sequence[str], max_result_count: int | None = None
) -> Constraints:
    """Pull all constraints out of a message. Never raises."""
    constraints = Constraints(
        restrict_to_corpus_only=detect_restriction(message),
        topic_filter=extract_topic(message, vocabulary),
        difficulty_filter=extract_difficulty(message),
        result_count=extract_result_count(message, max_result_count),
        page=extract_page(message),
    )
    logger.debug("constraints_extracted", **constraints.model_dump())
    return constraints
