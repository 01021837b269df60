"""Response assembly: grounding context, prompt messages, sources and citations."""

import asyncio
import re
from collections.abc import Sequence
from typing import Any

from readingroom import get_logger
from readingroom.config import Settings
from readingroom.core.citations import attach_sources, candidate_pages, format_author_name
from readingroom.core.models import (
    CatalogPage,
    CatalogStats,
    ChatTurn,
    LibrarianResponse,
    QueryClassification,
    ScoredCandidate,
    SourceRef,
)
from readingroom.llm.prompts import (
    GENERAL_KNOWLEDGE_PROMPT,
    GROUNDED_PROMPT,
    INTENT_INSTRUCTIONS,
    SYSTEM_PROMPT,
    build_context,
    format_history,
)
from readingroom.protocols import CompletionProvider

logger = get_logger(__name__)

EMPTY_CORPUS_ANSWER = (
    "I don't have any books or videos in my memory at the moment - the library is empty. "
    "Upload some documents and I'll be able to list and recommend them."
)
RESTRICTED_DECLINE_ANSWER = (
    "I couldn't find anything relevant in your uploaded books, and you asked me to use only "
    "your own material, so I won't answer from outside knowledge. Upload a book that covers "
    "this topic, or ask again without the restriction if a general answer would help."
)
GENERAL_KNOWLEDGE_NOTE = (
    "**Note:** Nothing in your library covers this directly, so this answer draws on "
    "general knowledge rather than your books."
)
HR_DISCLAIMER = (
    "*This is general guidance, not legal advice. Check your organisation's HR policy and "
    "consult your HR department or an employment lawyer before acting.*"
)

# Intents that answer "nothing found" rather than falling back to general knowledge
SEARCH_ONLY_INTENTS = {"specific_search", "topic_book_list", "catalog_browse"}


def clean_response(response: str) -> str:
    """Remove verbose preambles from LLM response."""
    preambles = [
        r"^(Sure!|Of course!|Certainly!|Here's|Based on|I'd be happy to)[^.]*\.\s*",
        r"^(The context|The library context|According to the)[^:]*:\s*",
    ]
    for pattern in preambles:
        response = re.sub(pattern, "", response, flags=re.IGNORECASE)
    return response.strip()


def build_sources(candidates: Sequence[ScoredCandidate]) -> list[SourceRef]:
    sources = []
    for c in candidates:
        pages = list(candidate_pages(c))
        sources.append(
            SourceRef(
                title=c.item.title,
                author=format_author_name(c.item.author),
                doc_type=c.item.doc_type,
                score=round(c.score, 3),
                match_reason=c.match_reason,
                page=pages[0] if pages else None,
                pages=pages,
            )
        )
    return sources


def not_found_answer(classification: QueryClassification, message: str) -> str:
    subject = classification.constraints.topic_filter or message.strip()
    return (
        f'I couldn\'t find anything in your library matching "{subject}". '
        "Try different keywords, or ask me to list what's in the library."
    )


class ResponseAssembler:
    """Formats ranked candidates into a grounded generation request and a response."""

    def __init__(self, completion: CompletionProvider, settings: Settings) -> None:
        self.completion = completion
        self.settings = settings

    def truncate_context(self, candidates: Sequence[ScoredCandidate]) -> list[ScoredCandidate]:
        """Keep ranked candidates while their formatted context fits the budget."""
        result: list[ScoredCandidate] = []
        total = 0
        for candidate in candidates:
            size = len(build_context([candidate]))
            if result and total + size > self.settings.max_context_chars:
                break
            result.append(candidate)
            total += size
        return result

    def history_turns(self, history: Sequence[ChatTurn]) -> list[tuple[str, str]]:
        recent = history[-self.settings.history_turns :] if self.settings.history_turns else []
        return [(turn.role, turn.content) for turn in recent if turn.content]

    def build_messages(
        self,
        message: str,
        classification: QueryClassification,
        candidates: Sequence[ScoredCandidate],
        history: Sequence[ChatTurn],
    ) -> list[dict[str, str]]:
        """Chat messages for the generation step."""
        instructions = INTENT_INSTRUCTIONS.get(classification.type, INTENT_INSTRUCTIONS["hybrid"])
        history_text = format_history(self.history_turns(history))
        if candidates:
            prompt = GROUNDED_PROMPT.format(
                instructions=instructions,
                context=build_context(list(candidates)),
                history=history_text,
                question=message,
            )
        else:
            prompt = GENERAL_KNOWLEDGE_PROMPT.format(
                instructions=instructions, history=history_text, question=message
            )
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]

    async def generate(self, messages: list[dict[str, str]]) -> str:
        raw = await asyncio.to_thread(self.completion.complete, messages)
        return clean_response(raw)

    async def answer(
        self,
        message: str,
        classification: QueryClassification,
        candidates: Sequence[ScoredCandidate],
        history: Sequence[ChatTurn],
        metadata: dict[str, Any],
    ) -> LibrarianResponse:
        """Produce the final answer for a retrieval-backed request."""
        constraints = classification.constraints

        if not candidates:
            metadata["context_used"] = False
            if constraints.restrict_to_corpus_only:
                metadata["declined"] = True
                logger.info("restricted_request_declined", query_type=classification.type)
                return LibrarianResponse(RESTRICTED_DECLINE_ANSWER, [], classification, metadata)
            if classification.type in SEARCH_ONLY_INTENTS:
                return LibrarianResponse(
                    not_found_answer(classification, message), [], classification, metadata
                )

            metadata["general_knowledge"] = True
            text = await self.generate(
                self.build_messages(message, classification, [], history)
            )
            parts = [GENERAL_KNOWLEDGE_NOTE, text]
            if classification.type == "hr_scenario":
                parts.append(HR_DISCLAIMER)
            return LibrarianResponse("\n\n".join(parts), [], classification, metadata)

        used = self.truncate_context(candidates)
        metadata["context_used"] = True
        metadata["context_items"] = len(used)
        text = await self.generate(self.build_messages(message, classification, used, history))
        if classification.type == "hr_scenario":
            text = f"{text}\n\n{HR_DISCLAIMER}"
        return LibrarianResponse(
            answer=attach_sources(text, used),
            sources=build_sources(used),
            classification=classification,
            metadata=metadata,
        )

    def catalog_answer(
        self,
        classification: QueryClassification,
        page: CatalogPage,
        stats: CatalogStats,
        metadata: dict[str, Any],
        matches: dict[str, ScoredCandidate] | None = None,
        subject: str | None = None,
    ) -> LibrarianResponse:
        """Deterministic catalog listing; no generation step involved.

        `matches` carries the ranked candidates of a filtered listing so the
        returned sources keep their scores and match reasons.
        """
        metadata.update(
            {
                "page": page.page,
                "page_size": page.page_size,
                "total": page.total,
                "has_more": page.has_more,
                "remaining": page.remaining,
                "stats": stats.model_dump(),
            }
        )

        if page.total == 0:
            if stats.total_items == 0:
                return LibrarianResponse(EMPTY_CORPUS_ANSWER, [], classification, metadata)
            answer = (
                f"None of the {stats.total_items} items in your library match that"
                + (f' ("{subject}").' if subject else ".")
            )
            return LibrarianResponse(answer, [], classification, metadata)

        if not page.items:
            answer = (
                f"There is no page {page.page}; the library has {page.total} items "
                f"({page.page_size} per page)."
            )
            return LibrarianResponse(answer, [], classification, metadata)

        start = (page.page - 1) * page.page_size
        lines = [
            f"Here {'is' if page.total == 1 else 'are'} {page.total} "
            f"item{'' if page.total == 1 else 's'} in your library"
            + (f' matching "{subject}"' if subject else "")
            + (f" (page {page.page}):" if page.page > 1 or page.has_more else ":"),
            "",
        ]
        for offset, item in enumerate(page.items, start + 1):
            details = ", ".join(v for v in (item.genre, item.topic, item.difficulty) if v)
            lines.append(f'{offset}. **"{item.title}"** by {item.author}')
            lines.append(f"   {item.doc_type}" + (f" - {details}" if details else ""))
            if item.summary:
                summary = item.summary if len(item.summary) <= 160 else item.summary[:157] + "..."
                lines.append(f"   {summary}")
            lines.append(f"   {item.chunk_count} chunk{'' if item.chunk_count == 1 else 's'}")

        if page.has_more:
            lines += ["", f"...and {page.remaining} more. Say \"next page\" to continue."]

        if page.page == 1 and (stats.by_genre or stats.by_topic):
            lines += ["", "**Collection overview:**"]
            if stats.by_genre:
                lines.append("- Top genres: " + _top_counts(stats.by_genre))
            if stats.by_topic:
                lines.append("- Top topics: " + _top_counts(stats.by_topic))

        matches = matches or {}
        sources = []
        for item in page.items:
            match = matches.get(item.key)
            sources.append(
                SourceRef(
                    title=item.title,
                    author=item.author,
                    doc_type=item.doc_type,
                    score=round(match.score, 3) if match else 1.0,
                    match_reason=match.match_reason if match else "Catalog listing",
                )
            )
        return LibrarianResponse("\n".join(lines), sources, classification, metadata)


def _top_counts(counts: dict[str, int], limit: int = 3) -> str:
    ordered = sorted(counts.items(), key=lambda kv: (-kv[1], kv[0]))[:limit]
    return ", ".join(f"{name} ({count})" for name, count in ordered)
