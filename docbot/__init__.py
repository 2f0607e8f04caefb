"""
docbot - Document chatbots with Retrieval-Augmented Generation

This package contains the core components:
- SourceLoader: PDF/URL/text sources to normalized Documents
- DocumentChunker: Documents to overlapping Passages
- EmbeddingService: Embedding generation (OpenAI or local)
- VectorStore: Per-chatbot passage index (FAISS/MongoDB)
- Retriever: Chatbot-scoped similarity search
- LLMService: LLM provider abstraction (OpenAI/Ollama/Gemini/Mistral)
- ConversationEngine: Retrieval + prompt + generation for one turn
- KnowledgeBaseBuilder: Load, chunk and index a chatbot's sources
- ChatbotRepository: Chatbot records (SQLAlchemy)
- NarrationPipeline: Spoken-style summaries and text-to-speech
- RAGAgent: Public API
"""

from .builder import BuildReport, KnowledgeBaseBuilder
from .chunker import DocumentChunker, Passage
from .embeddings import EmbeddingService
from .errors import (
    BuildCancelled,
    ChatbotNotFound,
    DatabaseError,
    DocbotError,
    NoDocumentsLoaded,
    NoKnowledgeBase,
    NoSourcesProvided,
    ProviderError,
    UnsupportedSourceKind,
)
from .llm_service import LLMService, LLMResponse, SamplingParams
from .loaders import Document, Source, SourceKind, SourceLoader
from .memory import ConversationHistory, Message, SessionStore
from .narration import Narration, NarrationPipeline
from .prompts import DEFAULT_PROMPT_TEMPLATE, INSUFFICIENT_KNOWLEDGE_ANSWER
from .rag_agent import RAGAgent
from .rag_chain import ChatbotConfig, ConversationEngine, RAGResponse
from .repository import Chatbot, ChatbotRepository
from .retriever import Retriever
from .tts import ElevenLabsClient
from .vector_store import SearchResult, VectorStore

__all__ = [
    # Ingestion
    "Source",
    "SourceKind",
    "Document",
    "SourceLoader",
    "DocumentChunker",
    "Passage",
    "EmbeddingService",
    "VectorStore",
    "SearchResult",
    "KnowledgeBaseBuilder",
    "BuildReport",
    # Conversation
    "Retriever",
    "LLMService",
    "LLMResponse",
    "SamplingParams",
    "ConversationHistory",
    "Message",
    "SessionStore",
    "ConversationEngine",
    "ChatbotConfig",
    "RAGResponse",
    "DEFAULT_PROMPT_TEMPLATE",
    "INSUFFICIENT_KNOWLEDGE_ANSWER",
    # Chatbots
    "Chatbot",
    "ChatbotRepository",
    "RAGAgent",
    # Narration
    "NarrationPipeline",
    "Narration",
    "ElevenLabsClient",
    # Errors
    "DocbotError",
    "UnsupportedSourceKind",
    "NoSourcesProvided",
    "NoDocumentsLoaded",
    "ChatbotNotFound",
    "NoKnowledgeBase",
    "BuildCancelled",
    "ProviderError",
    "DatabaseError",
]
