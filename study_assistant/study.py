"""Study features built on retrieval and text generation.

- Question answering grounded in the user's documents
- Cached per-document summaries
- Multiple-choice practice question generation
"""
import json
import re
from dataclasses import dataclass, field
from typing import List, Dict, Any, Iterable, Optional

import structlog

from study_assistant import config, db
from study_assistant.llm_client import AIProvider, get_chat_provider
from study_assistant.rag.retriever import (
    RetrievalResult,
    Retriever,
    format_context,
    get_retriever,
)

logger = structlog.get_logger()

NO_DOCUMENTS_MESSAGE = (
    "I couldn't find any documents. "
    "Please make sure you have uploaded documents first."
)
EMPTY_RESPONSE_MESSAGE = (
    "I received an empty response from the AI. "
    "Please try rephrasing your question."
)

ANSWER_SYSTEM_PROMPT = (
    "You are an AI study assistant. Answer the student's question based ONLY "
    "on the provided context from their study materials. If the context "
    "doesn't contain enough information, say so. Be concise but thorough. "
    "Use bullet points where appropriate. Cite which parts of the context "
    "you used by referencing [1], [2], etc."
)

SUMMARY_SYSTEM_PROMPT = (
    "You are an AI study assistant. Create a concise, well-structured summary "
    "of the provided study material. Include: main topics and key concepts, "
    "important definitions, key takeaways. Use bullet points for clarity."
)

QUESTIONS_SYSTEM_PROMPT = (
    "You are an AI study assistant. Generate {count} multiple-choice questions "
    "based on the provided study material. Difficulty: {difficulty} "
    "(easy: basic recall and understanding, medium: application and analysis, "
    "hard: synthesis and evaluation). Format each question as JSON: "
    '{{"question": "Question text?", "options": ["A) Option 1", "B) Option 2", '
    '"C) Option 3", "D) Option 4"], "answer": "A) Correct option", '
    '"difficulty": "{difficulty}"}}. Return ONLY a JSON array of questions.'
)

DIFFICULTIES = ("easy", "medium", "hard")
MAX_QUESTIONS = 20

_JSON_ARRAY = re.compile(r"\[.*\]", re.DOTALL)


@dataclass
class Answer:
    """Generated answer with the context it was based on."""

    text: str
    sources: List[RetrievalResult] = field(default_factory=list)


class StudyAssistant:
    """Answers, summaries and practice questions for uploaded documents."""

    def __init__(
        self,
        retriever: Optional[Retriever] = None,
        completer: Optional[AIProvider] = None,
    ):
        self.retriever = retriever or get_retriever()
        self.completer = completer or get_chat_provider()

    async def generate_answer(self, question: str, document_ids: Iterable[str]) -> Answer:
        """Answer a question from the most relevant parts of the documents.

        Raises:
            httpx.HTTPError: If the completion call fails
        """
        results = await self.retriever.retrieve(question, document_ids)

        if not results:
            return Answer(text=NO_DOCUMENTS_MESSAGE)

        user_prompt = (
            f"Context from study materials:\n\n{format_context(results)}"
            f"\n\nQuestion: {question}"
        )
        text = await self.completer.complete(ANSWER_SYSTEM_PROMPT, user_prompt)

        if not text or not text.strip():
            logger.warning("empty_completion", question_preview=question[:100])
            return Answer(text=EMPTY_RESPONSE_MESSAGE, sources=results)

        logger.info(
            "answer_generated",
            source_count=len(results),
            answer_length=len(text),
        )
        return Answer(text=text, sources=results)

    async def summarize_document(self, document_id: str) -> Optional[str]:
        """Return the document's summary, generating and caching it once.

        Returns:
            The summary, or None if the document does not exist
        """
        document = db.get_document(document_id)
        if document is None:
            return None

        if document["summary"]:
            logger.debug("summary_cache_hit", document_id=document_id)
            return document["summary"]

        content = document["content"][: config.SUMMARY_INPUT_CHARS]
        summary = await self.completer.complete(
            SUMMARY_SYSTEM_PROMPT, f"Summarize this study material:\n\n{content}"
        )
        summary = summary.strip() or "Unable to generate summary."

        db.update_document_summary(document_id, summary)
        return summary

    async def generate_questions(
        self, content: str, difficulty: str = "medium", count: int = 5
    ) -> List[Dict[str, Any]]:
        """Generate multiple-choice questions from document text.

        Args:
            content: Document text (truncated before prompting)
            difficulty: One of easy, medium, hard
            count: Number of questions to ask for (1-20)

        Returns:
            Parsed questions; an empty list if the model's output held no
            usable JSON array

        Raises:
            ValueError: On an invalid difficulty or count
        """
        if difficulty not in DIFFICULTIES:
            raise ValueError(f"Difficulty must be one of {', '.join(DIFFICULTIES)}")
        if not 1 <= count <= MAX_QUESTIONS:
            raise ValueError(f"Count must be between 1 and {MAX_QUESTIONS}")

        system_prompt = QUESTIONS_SYSTEM_PROMPT.format(count=count, difficulty=difficulty)
        user_prompt = (
            f"Generate {count} {difficulty} questions from:\n\n"
            f"{content[: config.QUESTIONS_INPUT_CHARS]}"
        )
        raw = await self.completer.complete(system_prompt, user_prompt)

        questions = parse_questions(raw)
        logger.info(
            "questions_generated",
            requested=count,
            parsed=len(questions),
            difficulty=difficulty,
        )
        return questions


def parse_questions(text: str) -> List[Dict[str, Any]]:
    """Pull the JSON array of questions out of a model response.

    Handles markdown code fences and surrounding prose. Entries missing a
    question, options or answer are dropped.
    """
    match = _JSON_ARRAY.search(text or "")
    if not match:
        logger.warning("questions_json_not_found", text_preview=(text or "")[:100])
        return []

    try:
        items = json.loads(match.group(0))
    except (json.JSONDecodeError, ValueError) as e:
        logger.warning("failed_to_parse_questions", error=str(e))
        return []

    if not isinstance(items, list):
        return []

    return [
        item
        for item in items
        if isinstance(item, dict)
        and item.get("question")
        and isinstance(item.get("options"), list)
        and item.get("answer")
    ]


# Singleton instance for convenience
_assistant_instance: Optional[StudyAssistant] = None


def get_study_assistant() -> StudyAssistant:
    """Get or create a singleton study assistant."""
    global _assistant_instance
    if _assistant_instance is None:
        _assistant_instance = StudyAssistant()
    return _assistant_instance
