"""Conversational back-reference resolution over explicit chat history.

Everything here is a pure function of (message, history). No session state
is kept between requests; the caller passes the prior turns in.
"""

import re
from collections.abc import Sequence
from dataclasses import dataclass, field

from readingroom.core.models import (
    ChatTurn,
    ContextualInfo,
    CorpusItem,
    ReferenceType,
    identity_key,
)

BACK_REFERENCE_PATTERN = re.compile(
    r"\b(another\s+one|give\s+me\s+another|more|next|continue|similar|like\s+that)\b",
    re.IGNORECASE,
)
DEMONSTRATIVE_PATTERN = re.compile(r"\b(that|this|it)\b", re.IGNORECASE)
BOOK_VOCABULARY_PATTERN = re.compile(r"\b(books?|authors?|recommend\w*)\b", re.IGNORECASE)
SUBJECT_PHRASE_PATTERN = re.compile(r"(?:about|regarding|on)\s+([^.,!?\n]+)", re.IGNORECASE)

FOLLOW_UP_PATTERNS = [
    re.compile(r"\b(another\s+one|give\s+me\s+another|another|more|next|continue)\b", re.IGNORECASE),
    re.compile(r"\b(similar|like\s+that|same\s+topic|related)\b", re.IGNORECASE),
    re.compile(r"\b(what\s+about|how\s+about|also)\b", re.IGNORECASE),
    re.compile(r"\b(previous\s+page|go\s+back)\b", re.IGNORECASE),
]
REFERENCE_TYPES: list[tuple[re.Pattern[str], ReferenceType]] = [
    (re.compile(r"\b(previous\s+page|go\s+back)\b", re.IGNORECASE), "previous"),
    (re.compile(r"\b(another\s+one|give\s+me\s+another|another)\b", re.IGNORECASE), "another"),
    (re.compile(r"\b(similar|like\s+that|same\s+topic|related)\b", re.IGNORECASE), "similar"),
    (re.compile(r"\bmore\b", re.IGNORECASE), "more"),
    (re.compile(r"\b(next|continue)\b", re.IGNORECASE), "continue"),
]

# "Good to Great" by Jim Collins
TITLE_BY_AUTHOR_PATTERN = re.compile(
    r"[\"“]([^\"”]+)[\"”]\s+by\s+([A-Z][\w.'-]*(?:[ \t]+[A-Z][\w.'-]*)*)"
)

RECOMMENDATION_CLAUSE = "(referring to: recommend another book similar to the previous recommendation)"
GENERIC_CLAUSE = "(contextual request - provide another recommendation or continue from previous topic)"


def last_assistant_turn(history: Sequence[ChatTurn]) -> ChatTurn | None:
    for turn in reversed(history):
        if turn.role == "assistant" and turn.content:
            return turn
    return None


def last_user_turn(history: Sequence[ChatTurn]) -> ChatTurn | None:
    for turn in reversed(history):
        if turn.role == "user" and turn.content:
            return turn
    return None


def find_vocabulary_topic(text: str, vocabulary: Sequence[str]) -> str | None:
    """First vocabulary term (in vocabulary order) present in the text."""
    for term in vocabulary:
        if re.search(rf"\b{re.escape(term)}\b", text, re.IGNORECASE):
            return term
    return None


def enhance_message(
    message: str, history: Sequence[ChatTurn], vocabulary: Sequence[str]
) -> str:
    """Rewrite an ambiguous follow-up into a self-contained query.

    Returns the message unchanged when no back-reference is detected.
    """
    if not history:
        return message

    if BACK_REFERENCE_PATTERN.search(message):
        last = last_assistant_turn(history)
        if last is not None:
            if BOOK_VOCABULARY_PATTERN.search(last.content):
                return f"{message} {RECOMMENDATION_CLAUSE}"
            topic = find_vocabulary_topic(last.content, vocabulary)
            if topic:
                return f"{message} (referring to: more information about {topic})"
        return f"{message} {GENERIC_CLAUSE}"

    if DEMONSTRATIVE_PATTERN.search(message):
        last = last_assistant_turn(history)
        if last is not None:
            match = SUBJECT_PHRASE_PATTERN.search(last.content)
            if match:
                return f"{message} (referring to: {match.group(1).strip()})"

    return message


def analyze_context(
    message: str, history: Sequence[ChatTurn], vocabulary: Sequence[str]
) -> ContextualInfo:
    """Derive follow-up metadata from the message and the last assistant turn."""
    last = last_assistant_turn(history)
    previous_intent = None
    if last is not None:
        previous_intent = last.metadata.get("query_type")

    is_follow_up = bool(history) and any(p.search(message) for p in FOLLOW_UP_PATTERNS)
    if not is_follow_up:
        return ContextualInfo(previous_intent=previous_intent)

    reference_type: ReferenceType | None = None
    for pattern, kind in REFERENCE_TYPES:
        if pattern.search(message):
            reference_type = kind
            break

    previous_topic = None
    if last is not None:
        match = TITLE_BY_AUTHOR_PATTERN.search(last.content)
        if match:
            previous_topic = match.group(1).strip()
        else:
            previous_topic = find_vocabulary_topic(last.content, vocabulary)
        if previous_topic is None and last.sources:
            previous_topic = last.sources[0].title

    return ContextualInfo(
        is_follow_up=True,
        previous_topic=previous_topic,
        reference_type=reference_type,
        previous_intent=previous_intent,
    )


def resolve_retrieval_text(
    enhanced: str, history: Sequence[ChatTurn], contextual: ContextualInfo
) -> str:
    """Text to search with; follow-ups carry the previous user request along."""
    if not contextual.is_follow_up:
        return enhanced
    previous = last_user_turn(history)
    if previous is None:
        return enhanced
    return f"{enhanced} {previous.content}"


def previous_catalog_page(history: Sequence[ChatTurn]) -> int | None:
    """Page shown by the last assistant turn, if it was a catalog listing."""
    last = last_assistant_turn(history)
    if last is None or last.metadata.get("query_type") != "catalog_browse":
        return None
    page = last.metadata.get("page")
    return page if isinstance(page, int) and page > 0 else None


@dataclass
class ShownItems:
    """Items already recommended in this conversation."""

    keys: set[str] = field(default_factory=set)
    titles: set[str] = field(default_factory=set)

    def __contains__(self, item: CorpusItem) -> bool:
        return item.key in self.keys or item.title.strip().lower() in self.titles

    def __len__(self) -> int:
        return len(self.keys)


RECOMMENDATION_INTENTS = frozenset({"book_recommendation", "topic_book_list"})


def previously_recommended(history: Sequence[ChatTurn]) -> ShownItems:
    """Collect identities surfaced by prior recommendation answers.

    Structured source lists are authoritative; quoted `"Title" by Author`
    mentions in the answer text are picked up as well. Assistant turns tagged
    with any other `query_type`, such as a catalog page, are skipped.
    Untagged turns still count.
    """
    shown = ShownItems()
    for turn in history:
        if turn.role != "assistant":
            continue
        query_type = turn.metadata.get("query_type")
        if query_type is not None and query_type not in RECOMMENDATION_INTENTS:
            continue
        for source in turn.sources:
            shown.keys.add(source.key)
        for title, author in TITLE_BY_AUTHOR_PATTERN.findall(turn.content):
            shown.keys.add(identity_key(title, author.rstrip(".")))
            shown.titles.add(title.strip().lower())
    return shown
