"""
RAG Chain Module

The conversation engine. Orchestrates one question-answer turn:
1. Make sure the chatbot has an index (lazy rebuild from its sources)
2. Rewrite a follow-up into a standalone question, then retrieve the
   top-K passages of that chatbot for it
3. Render the chatbot's prompt template with context + question
4. Call the LLM with the prior conversation and explicit sampling settings
5. Return the answer, the passages used and the extended history

RAG Pipeline Flow:
    Question (+ history → standalone question) → Retriever (chatbot-scoped)
    → Prompt [Context + Question] → LLM (with history) → Answer + Passages + New History

The engine holds no per-session state: history comes in as a value and a
new value is returned.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import List, Optional, Dict, Any, TYPE_CHECKING

from docbot.chunker import Passage
from docbot.errors import NoDocumentsLoaded, NoKnowledgeBase, NoSourcesProvided
from docbot.llm_service import LLMService, SamplingParams, DEFAULT_MODEL
from docbot.loaders import Source
from docbot.memory import ConversationHistory
from docbot.prompts import (
    DEFAULT_PROMPT_TEMPLATE,
    INSUFFICIENT_KNOWLEDGE_ANSWER,
    ensure_placeholders,
    render_condense_prompt,
    render_prompt,
)
from docbot.retriever import Retriever
from docbot.vector_store import SearchResult

if TYPE_CHECKING:
    from docbot.builder import KnowledgeBaseBuilder

logger = logging.getLogger(__name__)

# Sampling used for every answer
ANSWER_SAMPLING = SamplingParams(
    temperature=0.7,
    presence_penalty=0.6,
    frequency_penalty=0.5,
)

# Sampling for rewriting follow-ups into standalone questions
CONDENSE_SAMPLING = SamplingParams(temperature=0.0)


@dataclass
class ChatbotConfig:
    """
    Per-chatbot answering settings; editable without rebuilding the index.

    Attributes:
        model_name: Chat model used for answers
        custom_prompt: Owner-supplied template (None = default template)
    """
    model_name: str = DEFAULT_MODEL
    custom_prompt: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"model_name": self.model_name, "custom_prompt": self.custom_prompt}

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> "ChatbotConfig":
        data = data or {}
        return cls(
            model_name=data.get("model_name") or DEFAULT_MODEL,
            custom_prompt=data.get("custom_prompt") or None,
        )


@dataclass
class RAGResponse:
    """
    Complete response from the conversation engine.

    Attributes:
        text: The generated answer text
        source_passages: Passages the answer was grounded on
        history: Conversation history including this turn
        confidence: Confidence score (based on retrieval similarity)
        query: The original question
        metadata: Additional info (latency, tokens, model)
    """
    text: str
    source_passages: List[Passage]
    history: ConversationHistory
    confidence: float = 0.0
    query: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def sources(self) -> List[Dict[str, Any]]:
        """Distinct passages used, summarized for display."""
        sources = []
        seen = set()
        for passage in self.source_passages:
            if passage.passage_id in seen:
                continue
            seen.add(passage.passage_id)
            sources.append({
                "source": passage.source,
                "passage_id": passage.passage_id,
                "chunk_index": passage.chunk_index,
                "preview": passage.text[:100] + "..." if len(passage.text) > 100 else passage.text,
            })
        return sources

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (for API response)."""
        return {
            "text": self.text,
            "sources": self.sources,
            "confidence": self.confidence,
            "query": self.query,
            "history": self.history.to_dict(),
            "metadata": self.metadata,
        }

    def format_with_sources(self) -> str:
        """Format answer with source citations."""
        if not self.source_passages:
            return self.text

        unique_sources = dict.fromkeys(p.source for p in self.source_passages)
        source_text = "\n\nSources:\n" + "".join(f"- {s}\n" for s in unique_sources)
        return self.text + source_text


def build_context(passages: List[Passage]) -> str:
    """Join passage texts with blank lines."""
    return "\n\n".join(p.text for p in passages)


def calculate_confidence(results: List[SearchResult]) -> float:
    """
    Confidence score (0-1) from retrieval similarity.

    Weighted combination of the mean score and the top score.
    """
    if not results:
        return 0.0

    avg_similarity = sum(r.score for r in results) / len(results)
    top_score = results[0].score
    confidence = 0.6 * avg_similarity + 0.4 * top_score

    return max(0.0, min(confidence, 1.0))


class ConversationEngine:
    """
    Answers questions for one chatbot at a time.

    Example:
        engine = ConversationEngine(retriever, llm_service, builder)
        response = engine.answer(
            chatbot_id,
            ConversationHistory(),
            "What are your opening hours?",
            ChatbotConfig(),
        )
        print(response.text)
        next_history = response.history
    """

    def __init__(
        self,
        retriever: Retriever,
        llm_service: LLMService,
        builder: Optional["KnowledgeBaseBuilder"] = None,
        sampling: Optional[SamplingParams] = None,
        condense_question: bool = True,
    ):
        """
        Initialize the engine.

        Args:
            retriever: Chatbot-scoped retriever
            llm_service: LLM used for answers
            builder: Used to rebuild a missing index (None = no lazy rebuild)
            sampling: Sampling settings (default ANSWER_SAMPLING)
            condense_question: Rewrite follow-ups before retrieval
        """
        self.retriever = retriever
        self.llm_service = llm_service
        self.builder = builder
        self.sampling = sampling or ANSWER_SAMPLING
        self.condense_question = condense_question

        logger.info(f"ConversationEngine initialized: top_k={retriever.top_k}")

    def _ensure_index(self, chatbot_id: str, sources: Optional[List[Source]]) -> None:
        """Rebuild a missing index from the chatbot's sources."""
        if self.retriever.vector_store.exists(chatbot_id):
            return

        if not sources or self.builder is None:
            raise NoKnowledgeBase(f"Chatbot {chatbot_id} has no index and no sources to rebuild from")

        logger.warning(f"No index for chatbot {chatbot_id}, rebuilding from {len(sources)} sources")
        try:
            self.builder.ensure_index(chatbot_id, sources)
        except (NoSourcesProvided, NoDocumentsLoaded) as e:
            logger.error(f"Rebuild for chatbot {chatbot_id} failed: {e}")
            raise NoKnowledgeBase(f"Rebuild for chatbot {chatbot_id} failed: {e.detail}") from e

    def _standalone_question(
        self,
        history: ConversationHistory,
        question: str,
        config: ChatbotConfig,
    ) -> str:
        """
        Rewrite a follow-up so it can be searched without the conversation.

        "And the premium one?" after a question about the basic widget
        becomes a question about the premium widget's price.
        """
        if not self.condense_question or len(history) == 0:
            return question

        prompt = render_condense_prompt(history.get_context_string(), question)
        response = self.llm_service.complete(
            prompt=prompt,
            params=CONDENSE_SAMPLING,
            model=config.model_name,
        )
        standalone = response.content.strip()
        if not standalone:
            return question

        logger.debug(f"Condensed follow-up '{question}' to '{standalone}'")
        return standalone

    def answer(
        self,
        chatbot_id: str,
        history: Optional[ConversationHistory],
        question: str,
        config: Optional[ChatbotConfig] = None,
        sources: Optional[List[Source]] = None,
    ) -> RAGResponse:
        """
        Answer a question against a chatbot's knowledge base.

        Args:
            chatbot_id: Chatbot to answer for
            history: Prior conversation (None = new conversation)
            question: User's question
            config: Model and prompt settings of the chatbot
            sources: Chatbot's sources, used only if the index is missing

        Returns:
            RAGResponse with answer, passages and the extended history

        Raises:
            ValueError: If the question is empty
            NoKnowledgeBase: If no index exists and none can be rebuilt
            ProviderError: If embedding or generation fails
        """
        start_time = time.time()

        question = question.strip() if question else ""
        if not question:
            raise ValueError("Question must not be empty")

        history = history if history is not None else ConversationHistory()
        config = config or ChatbotConfig()

        self._ensure_index(chatbot_id, sources)

        # Retrieve
        search_query = self._standalone_question(history, question, config)
        results = self.retriever.retrieve_with_scores(chatbot_id, search_query)
        passages = [r.passage for r in results]
        retrieval_time = time.time() - start_time

        if not passages:
            logger.info(f"No passages found for chatbot {chatbot_id}; returning fallback answer")
            return RAGResponse(
                text=INSUFFICIENT_KNOWLEDGE_ANSWER,
                source_passages=[],
                history=history.append_user(question).append_assistant(INSUFFICIENT_KNOWLEDGE_ANSWER),
                confidence=0.0,
                query=question,
                metadata={
                    "retrieval_time": retrieval_time,
                    "total_time": time.time() - start_time,
                    "passages_found": 0,
                    "search_query": search_query,
                },
            )

        # Prompt
        template = ensure_placeholders(config.custom_prompt or DEFAULT_PROMPT_TEMPLATE)
        prompt = render_prompt(template, build_context(passages), question)

        # Generate
        generation_start = time.time()
        llm_response = self.llm_service.complete(
            prompt=prompt,
            history=history.get_messages_for_llm(),
            params=self.sampling,
            model=config.model_name,
        )
        generation_time = time.time() - generation_start

        answer_text = llm_response.content.strip()
        new_history = history.append_user(question).append_assistant(
            answer_text,
            metadata={"sources": list(dict.fromkeys(p.source for p in passages))},
        )

        total_time = time.time() - start_time
        logger.info(
            f"Answered for chatbot {chatbot_id} in {total_time:.2f}s "
            f"(retrieval: {retrieval_time:.2f}s, generation: {generation_time:.2f}s)"
        )

        return RAGResponse(
            text=answer_text,
            source_passages=passages,
            history=new_history,
            confidence=calculate_confidence(results),
            query=question,
            metadata={
                "retrieval_time": retrieval_time,
                "generation_time": generation_time,
                "total_time": total_time,
                "passages_found": len(passages),
                "search_query": search_query,
                "model": llm_response.model,
                "usage": llm_response.usage,
            },
        )
