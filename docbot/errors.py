"""
Error taxonomy for docbot.

Every error raised to callers carries a machine-readable ``kind`` and a
human-readable ``detail`` so an API or UI layer can render a message or
decide to retry. Source-level problems never show up here: the loader turns
them into error Documents instead.
"""

from typing import Any, Dict


class DocbotError(Exception):
    """Base class for all domain and provider errors."""

    kind = "docbot_error"

    def __init__(self, detail: str = ""):
        self.detail = detail or self.__class__.__doc__ or self.kind
        super().__init__(self.detail)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (for API responses)."""
        return {"kind": self.kind, "detail": self.detail}


class UnsupportedSourceKind(DocbotError):
    """The source kind has no loader."""

    kind = "unsupported_source_kind"


class NoSourcesProvided(DocbotError):
    """No sources were provided for the chatbot."""

    kind = "no_sources_provided"


class NoDocumentsLoaded(DocbotError):
    """None of the sources produced usable text."""

    kind = "no_documents_loaded"


class ChatbotNotFound(DocbotError):
    """Chatbot not found."""

    kind = "chatbot_not_found"


class NoKnowledgeBase(DocbotError):
    """No knowledge base is available for the chatbot."""

    kind = "no_knowledge_base"


class BuildCancelled(DocbotError):
    """The build was cancelled before the index was committed."""

    kind = "build_cancelled"


class ProviderError(DocbotError):
    """
    An external provider (embedding, LLM, text-to-speech) failed.

    Attributes:
        provider: Which collaborator failed ("embedding", "llm", "tts")
    """

    kind = "provider_error"

    def __init__(self, provider: str, detail: str = ""):
        self.provider = provider
        super().__init__(f"{provider} provider failed: {detail}" if detail else f"{provider} provider failed")

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["provider"] = self.provider
        return data


class DatabaseError(DocbotError):
    """The chatbot store could not complete the operation."""

    kind = "database_error"
