"""Prompt templates for Reading Room."""

from readingroom.core.models import ScoredCandidate

SYSTEM_PROMPT = """You are a knowledgeable librarian helping a reader get the most out of their personal library of books and videos.

STRICT RULES:
- Sources are listed in order of relevance - PRIORITIZE the first source
- Refer to books by title and author, e.g. "Good to Great" by Jim Collins
- Do NOT add a "Sources" or "References" section; it is attached automatically
- Keep the response focused and under 300 words"""


INTENT_INSTRUCTIONS = {
    "catalog_browse": (
        "The reader is browsing the library. Describe the matching items briefly, "
        "one line each."
    ),
    "book_recommendation": (
        "Recommend books from the library context below. For each one, say in one or two "
        "sentences why it fits the request. Do not recommend books that are not in the context."
    ),
    "topic_book_list": (
        "List the requested number of books from the library context below that cover the "
        "topic, with one sentence on each."
    ),
    "specific_search": (
        "Report which items in the library context cover what the reader is looking for and "
        "what each says about it."
    ),
    "hr_scenario": (
        "Give practical, fair and lawful guidance for this workplace situation, grounded in "
        "the library context. Mention where local employment law or HR policy should be checked."
    ),
    "advice_restricted": (
        "Answer ONLY using the library context below. If the context does not cover part of "
        "the question, say so plainly instead of filling the gap from general knowledge."
    ),
    "advice_general": (
        "Give practical advice. Ground it in the library context first and note where you go "
        "beyond it."
    ),
    "direct_question": "Answer the question directly and concisely.",
    "hybrid": (
        "Answer using the library context first, then supplement with general knowledge where "
        "the context is thin. Make clear which parts come from the library."
    ),
}


GROUNDED_PROMPT = """{instructions}

Library context:
{context}
{history}
Reader's request: {question}

Answer:"""


GENERAL_KNOWLEDGE_PROMPT = """{instructions}

Nothing in the reader's library matched this request. Answer from general knowledge and do not claim that any book is in their library.
{history}
Reader's request: {question}

Answer:"""


QUERY_ANALYSIS_PROMPT = """Analyze this library search query and return ONLY a JSON object with these keys:
- "entities": specific titles, authors or named people mentioned
- "topics": subject areas the reader is interested in
- "document_types": kinds of material requested (Video, Article, Podcast, Course)
- "difficulty_preference": one of "Beginner", "Intermediate", "Advanced", "Expert", or null

Query: {query}

JSON:"""


def format_candidate(index: int, candidate: ScoredCandidate, max_content_chars: int = 800) -> str:
    """Format one ranked item for the grounding context."""
    item = candidate.item
    metadata = ", ".join(
        f"{label}={value}"
        for label, value in (
            ("Type", item.doc_type),
            ("Topic", item.topic),
            ("Genre", item.genre),
            ("Difficulty", item.difficulty),
        )
        if value
    )
    content = "\n".join(chunk.content for chunk in item.chunks)[:max_content_chars]
    lines = [
        f'Document {index}: "{item.title}" by {item.author}',
        f"Metadata: {metadata or 'none'}",
        f"Relevance: {candidate.score:.3f} ({candidate.match_reason})",
    ]
    if item.summary:
        lines.append(f"Summary: {item.summary}")
    if content:
        lines.append(f"Content: {content}")
    return "\n".join(lines) + "\n---"


def build_context(candidates: list[ScoredCandidate]) -> str:
    """Build the grounding context from ranked candidates."""
    return "\n\n".join(format_candidate(i, c) for i, c in enumerate(candidates, 1))


def format_history(turns: list[tuple[str, str]], max_chars: int = 200) -> str:
    """Render recent (role, content) turns, each truncated."""
    if not turns:
        return ""
    lines = [f"{role.capitalize()}: {content[:max_chars]}" for role, content in turns]
    return "\nRecent conversation:\n" + "\n".join(lines) + "\n"
