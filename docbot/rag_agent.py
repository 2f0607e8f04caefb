"""
RAG Agent Module

The public entry point of docbot. Wires loaders, chunker, embeddings,
vector store, LLM, repository and narration together behind one interface.

API:
    class RAGAgent:
        def build_chatbot(owner_id, name, sources, config=None, cancel_event=None) -> str
        def answer_question(chatbot_id, question, session_history=None, owner_id=None) -> RAGResponse
        def summarize_for_narration(sources=None, text=None, target_minutes=1, custom_prompt=None) -> str

Authentication, billing and the HTTP surface are the caller's business:
owner_id is an opaque identity that has already been validated.
"""

import logging
import threading
import uuid
from typing import List, Optional, Dict, Any

from docbot.builder import BuildReport, KnowledgeBaseBuilder
from docbot.chunker import DocumentChunker
from docbot.config.settings import get_settings
from docbot.embeddings import EmbeddingService
from docbot.errors import ChatbotNotFound, NoSourcesProvided
from docbot.llm_service import LLMService
from docbot.loaders import Source, SourceLoader
from docbot.memory import ConversationHistory, SessionStore
from docbot.narration import Narration, NarrationPipeline
from docbot.rag_chain import ChatbotConfig, ConversationEngine, RAGResponse
from docbot.repository import Chatbot, ChatbotRepository
from docbot.retriever import Retriever
from docbot.tts import ElevenLabsClient
from docbot.vector_store import VectorStore

logger = logging.getLogger(__name__)


class RAGAgent:
    """
    Main RAG Agent - the public API for building and querying chatbots.

    Every collaborator can be injected; anything not given is built from
    settings.

    Example:
        agent = RAGAgent()

        chatbot_id = agent.build_chatbot(
            owner_id="user-1",
            name="Support Bot",
            sources=[Source.from_path("faq.pdf"), Source.from_url("example.com")],
        )

        response = agent.answer_question(chatbot_id, "What are your prices?")
        print(response.text)

        # Follow-up in the same conversation
        response = agent.answer_question(
            chatbot_id, "And for teams?", session_history=response.history
        )
    """

    def __init__(
        self,
        embedding_service: Optional[EmbeddingService] = None,
        vector_store: Optional[VectorStore] = None,
        llm_service: Optional[LLMService] = None,
        loader: Optional[SourceLoader] = None,
        chunker: Optional[DocumentChunker] = None,
        repository: Optional[ChatbotRepository] = None,
        tts: Optional[ElevenLabsClient] = None,
        sessions: Optional[SessionStore] = None,
    ):
        """
        Initialize the RAG Agent.

        Args:
            embedding_service: Embedding provider wrapper
            vector_store: Passage store (uses embedding_service)
            llm_service: Chat model wrapper
            loader: Source loader
            chunker: Document chunker
            repository: Chatbot record store (tables are created if missing)
            tts: Text-to-speech client for narration
            sessions: Server-side conversation sessions
        """
        logger.info("Initializing RAG Agent...")
        settings = get_settings()

        self._embedding_service = embedding_service or EmbeddingService()
        self._vector_store = vector_store or VectorStore(embedding_service=self._embedding_service)
        self._llm_service = llm_service or LLMService()
        self._loader = loader or SourceLoader()
        self._chunker = chunker or DocumentChunker()

        if repository is None:
            repository = ChatbotRepository()
            repository.create_all()
        self._repository = repository

        self._builder = KnowledgeBaseBuilder(self._loader, self._chunker, self._vector_store)
        self._retriever = Retriever(self._vector_store)
        self._engine = ConversationEngine(self._retriever, self._llm_service, self._builder)
        self._narration = NarrationPipeline(self._loader, self._llm_service, settings.narration, tts)
        self._sessions = sessions or SessionStore()

        logger.info(
            f"RAG Agent initialized: "
            f"embedding={self._embedding_service.provider_name}, "
            f"llm={self._llm_service.provider_name}, "
            f"vector_store={self._vector_store.provider}"
        )

    # Chatbots

    def build_chatbot(
        self,
        owner_id: str,
        name: str,
        sources: List[Source],
        config: Optional[ChatbotConfig] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> str:
        """
        Create a chatbot and build its knowledge base.

        The record is only stored once the index is committed, so a failed
        build leaves no chatbot behind.

        Args:
            owner_id: Owner identity
            name: Display name
            sources: Content to build from
            config: Model and prompt settings
            cancel_event: Set by the caller to abandon the build

        Returns:
            The new chatbot id

        Raises:
            NoSourcesProvided: If ``sources`` is empty
            NoDocumentsLoaded: If no source produced usable text
            ProviderError: If embedding fails
            BuildCancelled: If cancelled before commit
        """
        if not sources:
            raise NoSourcesProvided("A chatbot needs at least one source")

        chatbot_id = str(uuid.uuid4())
        self._builder.build(chatbot_id, sources, cancel_event=cancel_event)

        try:
            self._repository.create(
                owner_id=owner_id,
                name=name,
                sources=sources,
                config=config,
                chatbot_id=chatbot_id,
            )
        except Exception:
            self._builder.delete(chatbot_id)
            raise

        logger.info(f"Created chatbot {chatbot_id} ({name}) for owner {owner_id}")
        return chatbot_id

    def get_chatbot(self, chatbot_id: str, owner_id: Optional[str] = None) -> Chatbot:
        """
        Fetch a chatbot.

        Raises:
            ChatbotNotFound: If it does not exist or belongs to someone else
        """
        chatbot = self._repository.get(chatbot_id)
        if chatbot is None or (owner_id is not None and chatbot.owner_id != owner_id):
            raise ChatbotNotFound(f"Chatbot {chatbot_id} not found")
        return chatbot

    def list_chatbots(self, owner_id: str) -> List[Chatbot]:
        """List an owner's chatbots, newest first."""
        return self._repository.list_for_owner(owner_id)

    def update_chatbot(
        self,
        chatbot_id: str,
        owner_id: str,
        name: Optional[str] = None,
        model_name: Optional[str] = None,
        custom_prompt: Optional[str] = None,
    ) -> Chatbot:
        """
        Change name, model or prompt. The index is not rebuilt.

        An empty ``custom_prompt`` resets to the default template; None
        leaves it unchanged.
        """
        chatbot = self.get_chatbot(chatbot_id, owner_id)

        config = ChatbotConfig(
            model_name=model_name or chatbot.config.model_name,
            custom_prompt=chatbot.config.custom_prompt if custom_prompt is None else (custom_prompt or None),
        )
        updated = self._repository.update(chatbot_id, name=name, config=config)
        if updated is None:
            raise ChatbotNotFound(f"Chatbot {chatbot_id} not found")
        return updated

    def delete_chatbot(self, chatbot_id: str, owner_id: str) -> bool:
        """Delete a chatbot together with its passages."""
        self.get_chatbot(chatbot_id, owner_id)

        deleted_passages = self._builder.delete(chatbot_id)
        self._repository.delete(chatbot_id)

        logger.info(f"Deleted chatbot {chatbot_id} and {deleted_passages} passages")
        return True

    def rebuild_chatbot(
        self,
        chatbot_id: str,
        owner_id: Optional[str] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> BuildReport:
        """Rebuild a chatbot's index from its stored sources."""
        chatbot = self.get_chatbot(chatbot_id, owner_id)
        return self._builder.build(chatbot_id, chatbot.sources, cancel_event=cancel_event)

    # Conversation

    def answer_question(
        self,
        chatbot_id: str,
        question: str,
        session_history: Optional[ConversationHistory] = None,
        owner_id: Optional[str] = None,
    ) -> RAGResponse:
        """
        Answer a question with a chatbot.

        Args:
            chatbot_id: Chatbot to ask
            question: User's question
            session_history: Conversation so far (None = new conversation)
            owner_id: When given, the chatbot must belong to this owner

        Returns:
            RAGResponse; pass ``response.history`` to the next call

        Raises:
            ChatbotNotFound: If the chatbot does not exist
            NoKnowledgeBase: If it has no index and none can be rebuilt
            ProviderError: If embedding or generation fails
        """
        chatbot = self.get_chatbot(chatbot_id, owner_id)
        return self._engine.answer(
            chatbot_id=chatbot.id,
            history=session_history,
            question=question,
            config=chatbot.config,
            sources=chatbot.sources,
        )

    def ask(
        self,
        chatbot_id: str,
        question: str,
        session_id: str,
        owner_id: Optional[str] = None,
    ) -> RAGResponse:
        """Answer within a server-side session that remembers prior turns."""
        key = f"{chatbot_id}:{session_id}"
        response = self.answer_question(
            chatbot_id,
            question,
            session_history=self._sessions.get(key),
            owner_id=owner_id,
        )
        self._sessions.set(key, response.history)
        return response

    def end_session(self, chatbot_id: str, session_id: str) -> bool:
        """Forget a server-side session."""
        return self._sessions.end_session(f"{chatbot_id}:{session_id}")

    # Narration

    def summarize_for_narration(
        self,
        sources: Optional[List[Source]] = None,
        text: Optional[str] = None,
        target_minutes: int = 1,
        custom_prompt: Optional[str] = None,
    ) -> str:
        """Summarize content into a spoken-style script."""
        return self._narration.summarize(
            sources=sources,
            text=text,
            target_minutes=target_minutes,
            custom_prompt=custom_prompt,
        )

    def narrate(
        self,
        sources: Optional[List[Source]] = None,
        text: Optional[str] = None,
        target_minutes: int = 1,
        custom_prompt: Optional[str] = None,
        voice_id: Optional[str] = None,
    ) -> Narration:
        """Summarize content and synthesize it as audio."""
        return self._narration.narrate(
            sources=sources,
            text=text,
            target_minutes=target_minutes,
            custom_prompt=custom_prompt,
            voice_id=voice_id,
        )

    def get_stats(self) -> Dict[str, Any]:
        """
        Get statistics about the RAG system.

        Returns:
            Dictionary with system statistics
        """
        return {
            "chatbots": self._repository.count(),
            "knowledge_base": {
                "total_passages": self._vector_store.count(),
                "provider": self._vector_store.provider,
            },
            "embedding": {
                "provider": self._embedding_service.provider_name,
                "model": self._embedding_service.model_name,
            },
            "llm": {
                "provider": self._llm_service.provider_name,
                "model": self._llm_service.model_name,
            },
            "sessions": {
                "active": len(self._sessions),
            },
        }
