"""
RAG Chain Module
================
Grounded answer synthesis over retrieved chunks.

The model is told to answer only from the supplied context and to mark the
pages it relies on as ``[page N]``. Those markers are cross-checked against
the chunks actually retrieved before they become citations.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from langchain_core.prompts import PromptTemplate

from smartlearn.core.constants import Messages
from smartlearn.core.exceptions import GenerationFailed
from .llm_providers import BaseLLM
from .models import ChatTurn, Citation
from .retriever import DocumentRetriever

logger = logging.getLogger(__name__)


# RAG Prompt Template
RAG_PROMPT_TEMPLATE = """You are a patient study tutor answering questions about a textbook the learner uploaded.

IMPORTANT RULES:
1. Answer ONLY with information from the CONTEXT below
2. If the context does not contain enough information, say so clearly instead of guessing
3. Do NOT invent facts or rely on outside knowledge
4. Keep the answer clear, concise and accurate
5. Whenever you use information from a page, cite it inline exactly as [page N]

CONTEXT FROM THE DOCUMENT:
{context}

QUESTION: {question}

ANSWER:"""


NO_CONTEXT_PROMPT_TEMPLATE = """You are a patient study tutor answering questions about a textbook the learner uploaded.

No passage of the document matched this question. Tell the learner that the
document does not seem to cover it, then give a short, general explanation
that could help them. Do NOT cite any pages.

QUESTION: {question}

ANSWER:"""


# Matches "[page 3]", "[Page 3]", "[p. 3]" and "[pages 3, 4]"
PAGE_REFERENCE_PATTERN = re.compile(
    r"\[\s*(?:pages?|p\.?)\s*(\d+(?:\s*(?:,|and|&|-)\s*\d+)*)\s*\]",
    re.IGNORECASE,
)


@dataclass
class SynthesizedAnswer:
    """Reply text plus the citations it actually references"""
    answer: str
    citations: List[Citation] = field(default_factory=list)
    retrieved: List[Citation] = field(default_factory=list)


def extract_page_references(text: str) -> List[int]:
    """
    Page numbers referenced in ``text``, first occurrence order, no duplicates.
    """
    pages: List[int] = []
    for match in PAGE_REFERENCE_PATTERN.finditer(text):
        for number in re.findall(r"\d+", match.group(1)):
            page = int(number)
            if page not in pages:
                pages.append(page)
    return pages


def resolve_citations(answer: str, retrieved: Sequence[Citation]) -> List[Citation]:
    """
    Keep only referenced pages that were actually retrieved.

    For each referenced page the best-ranked retrieved chunk of that page is
    used as the citation content.
    """
    by_page = {}
    for citation in retrieved:
        by_page.setdefault(citation.page_number, citation)

    resolved = []
    for page in extract_page_references(answer):
        citation = by_page.get(page)
        if citation is None:
            logger.warning(f"Answer cites page {page} which was not retrieved; dropping it")
            continue
        resolved.append(citation)
    return resolved


class AnswerSynthesizer:
    """
    Composes a grounded prompt, calls the model once and extracts citations.

    Features:
    - Prior conversation turns passed as chat history
    - Best-effort answer when retrieval found nothing
    - One retry on model failure, then GenerationFailed
    """

    def __init__(self, llm_provider: BaseLLM, max_attempts: int = 2):
        """
        Initialize the synthesizer.

        Args:
            llm_provider: LLM provider used for answers
            max_attempts: Model calls before giving up (1 call + 1 retry)
        """
        self._llm_provider = llm_provider
        self.max_attempts = max_attempts
        self.prompt = PromptTemplate.from_template(RAG_PROMPT_TEMPLATE)
        self.no_context_prompt = PromptTemplate.from_template(NO_CONTEXT_PROMPT_TEMPLATE)

    @property
    def llm_provider(self) -> BaseLLM:
        return self._llm_provider

    def set_llm_provider(self, provider: BaseLLM):
        """
        Set a new LLM provider at runtime.

        Args:
            provider: New LLM provider instance
        """
        self._llm_provider = provider
        logger.info(f"AnswerSynthesizer LLM provider updated: {provider.provider_name}")

    def build_prompt(self, question: str, citations: Sequence[Citation]) -> str:
        """Render the prompt for a question and its retrieved context."""
        if not citations:
            return self.no_context_prompt.format(question=question)
        return self.prompt.format(
            context=DocumentRetriever.format_context(list(citations)),
            question=question,
        )

    def answer(
        self,
        question: str,
        citations: Sequence[Citation],
        history: Optional[Sequence[ChatTurn]] = None
    ) -> SynthesizedAnswer:
        """
        Answer a question from retrieved citations.

        Args:
            question: The learner's question
            citations: Retrieved chunks (may be empty)
            history: Prior turns of the conversation, oldest first

        Returns:
            SynthesizedAnswer with text and referenced citations

        Raises:
            GenerationFailed: If every attempt fails
        """
        logger.info(f"RAG Query: {question}")

        if not citations:
            logger.info(Messages.NO_CONTEXT_FOUND)

        prompt = self.build_prompt(question, citations)

        last_error: Optional[GenerationFailed] = None
        for attempt in range(1, self.max_attempts + 1):
            try:
                text = self._llm_provider.generate(prompt, history=history)
                break
            except GenerationFailed as e:
                last_error = e
                logger.warning(f"Answer generation attempt {attempt}/{self.max_attempts} failed: {e}")
        else:
            raise GenerationFailed(f"Could not generate an answer: {last_error.detail}") from last_error

        resolved = resolve_citations(text, citations)
        logger.info(f"Answer generated with {len(resolved)} citations")

        return SynthesizedAnswer(answer=text, citations=resolved, retrieved=list(citations))
