"""
Embedding Service Module

Provides an abstraction layer for embedding generation, supporting both:
- Cloud: OpenAI (text-embedding-3-small) - default, 1536 dimensions
- Local: Sentence Transformers (all-MiniLM-L6-v2) - no API key needed

Provider clients are created once per provider instance and reused for every
call. Any provider failure reaches callers as ProviderError("embedding").

Embedding Dimensions:
- text-embedding-3-small: 1536 dimensions
- text-embedding-3-large: 3072 dimensions
- all-MiniLM-L6-v2: 384 dimensions
"""

import logging
import os
from abc import ABC, abstractmethod
from typing import List, Optional

from docbot.config.settings import get_settings, EmbeddingConfig
from docbot.errors import ProviderError

# Configure logging
logger = logging.getLogger(__name__)


class BaseEmbeddingProvider(ABC):
    """
    Abstract base class for embedding providers.

    All embedding providers must implement:
    - embed_text: Embed a single text string
    - embed_batch: Embed multiple texts efficiently
    - dimension: Return the embedding dimension
    """

    @abstractmethod
    def embed_text(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Input text to embed

        Returns:
            List of floats representing the embedding vector
        """
        pass

    @abstractmethod
    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts efficiently.

        Args:
            texts: List of input texts

        Returns:
            List of embedding vectors, one per input, in order
        """
        pass

    @property
    @abstractmethod
    def dimension(self) -> int:
        """Return the dimension of embeddings produced."""
        pass

    @property
    @abstractmethod
    def model_name(self) -> str:
        """Return the name of the embedding model."""
        pass


class OpenAIEmbeddingProvider(BaseEmbeddingProvider):
    """
    OpenAI embedding provider using the embeddings API.

    Models:
    - text-embedding-3-small: 1536 dims (default)
    - text-embedding-3-large: 3072 dims
    - text-embedding-ada-002: 1536 dims (legacy)
    """

    MODEL_DIMENSIONS = {
        "text-embedding-3-small": 1536,
        "text-embedding-3-large": 3072,
        "text-embedding-ada-002": 1536,
    }

    # Inputs per request
    BATCH_SIZE = 100

    def __init__(
        self,
        model_name: str = "text-embedding-3-small",
        api_key: Optional[str] = None,
        timeout: float = 30.0,
        client=None,
    ):
        """
        Initialize the OpenAI embedding provider.

        Args:
            model_name: Name of the OpenAI embedding model
            api_key: OpenAI API key (or from environment)
            timeout: Per-request timeout in seconds
            client: Pre-built OpenAI client (for pooling or tests)
        """
        self._model_name = model_name
        self._api_key = api_key
        self._timeout = timeout
        self._client = client

        if model_name not in self.MODEL_DIMENSIONS:
            logger.warning(
                f"Unknown model {model_name}, assuming 1536 dimensions. "
                f"Known models: {list(self.MODEL_DIMENSIONS.keys())}"
            )

        logger.info(f"Initializing OpenAIEmbeddingProvider with model: {model_name}")

    def _get_client(self):
        """Get or create the OpenAI client."""
        if self._client is None:
            from openai import OpenAI

            api_key = self._api_key or os.getenv("OPENAI_API_KEY")
            if not api_key:
                raise ValueError(
                    "OpenAI API key not found. Set OPENAI_API_KEY environment "
                    "variable or pass api_key parameter."
                )

            self._client = OpenAI(api_key=api_key, timeout=self._timeout)
            logger.info("OpenAI embeddings client initialized")

        return self._client

    def embed_text(self, text: str) -> List[float]:
        client = self._get_client()

        response = client.embeddings.create(
            input=text,
            model=self._model_name,
        )

        return response.data[0].embedding

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        client = self._get_client()

        logger.debug(f"Embedding batch of {len(texts)} texts via OpenAI")

        all_embeddings = []
        for i in range(0, len(texts), self.BATCH_SIZE):
            batch = texts[i:i + self.BATCH_SIZE]

            response = client.embeddings.create(
                input=batch,
                model=self._model_name,
            )

            # Sort by index to maintain order
            sorted_data = sorted(response.data, key=lambda x: x.index)
            all_embeddings.extend(item.embedding for item in sorted_data)

        return all_embeddings

    @property
    def dimension(self) -> int:
        return self.MODEL_DIMENSIONS.get(self._model_name, 1536)

    @property
    def model_name(self) -> str:
        return self._model_name


class LocalEmbeddingProvider(BaseEmbeddingProvider):
    """
    Local embedding provider using Sentence Transformers.

    Useful for development without API costs. Note that its dimension
    (384 for all-MiniLM-L6-v2) differs from the OpenAI default, so indexes
    built with one provider cannot be queried with the other.
    """

    def __init__(self, model_name: str = "all-MiniLM-L6-v2"):
        """
        Initialize the local embedding provider.

        Args:
            model_name: Name of the sentence-transformers model
        """
        self._model_name = model_name
        self._model = None
        self._dimension = None

        logger.info(f"Initializing LocalEmbeddingProvider with model: {model_name}")

    def _load_model(self):
        """Lazy load the model (only when first needed)."""
        if self._model is None:
            try:
                from sentence_transformers import SentenceTransformer
            except ImportError:
                raise ImportError(
                    "sentence-transformers is required for local embeddings. "
                    "Install with: pip install 'docbot[local]'"
                )

            if hf_token := os.getenv("HF_TOKEN"):
                from huggingface_hub import login
                login(token=hf_token)

            logger.info(f"Loading sentence-transformers model: {self._model_name}")
            self._model = SentenceTransformer(self._model_name)
            self._dimension = self._model.get_sentence_embedding_dimension()
            logger.info(f"Model loaded. Embedding dimension: {self._dimension}")

    def embed_text(self, text: str) -> List[float]:
        self._load_model()
        embedding = self._model.encode(text, convert_to_numpy=True)
        return embedding.tolist()

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        if not texts:
            return []

        self._load_model()
        logger.debug(f"Embedding batch of {len(texts)} texts")

        embeddings = self._model.encode(
            texts,
            convert_to_numpy=True,
            show_progress_bar=len(texts) > 10,
            batch_size=32,
        )
        return embeddings.tolist()

    @property
    def dimension(self) -> int:
        self._load_model()
        return self._dimension

    @property
    def model_name(self) -> str:
        return self._model_name


class EmbeddingService:
    """
    Main embedding service that provides a unified interface.

    This is the class that other components should use.

    Example:
        service = EmbeddingService()  # Uses config
        embedding = service.embed_text("Hello world")
        embeddings = service.embed_batch(["text1", "text2"])

        # Inject a provider (tests, custom clients)
        service = EmbeddingService(provider_instance=my_provider)
    """

    def __init__(
        self,
        provider: Optional[str] = None,
        config: Optional[EmbeddingConfig] = None,
        provider_instance: Optional[BaseEmbeddingProvider] = None,
    ):
        """
        Initialize the embedding service.

        Args:
            provider: "openai" or "local" (default from config)
            config: Optional EmbeddingConfig instance
            provider_instance: Ready-made provider, bypasses selection
        """
        settings = get_settings()
        self.config = config or settings.embedding

        provider = provider or self.config.provider

        if provider_instance is not None:
            self._provider = provider_instance
        elif provider == "openai":
            self._provider = OpenAIEmbeddingProvider(
                model_name=self.config.openai_model,
                api_key=self.config.openai_api_key,
                timeout=self.config.request_timeout,
            )
        elif provider == "local":
            self._provider = LocalEmbeddingProvider(model_name=self.config.local_model)
        else:
            raise ValueError(f"Unknown embedding provider: {provider}")

        self._provider_name = provider
        logger.info(f"EmbeddingService initialized with {provider} provider")

    def embed_text(self, text: str) -> List[float]:
        """
        Generate embedding for a single text.

        Args:
            text: Input text to embed

        Returns:
            Embedding vector as list of floats

        Raises:
            ValueError: If text is empty
            ProviderError: If the provider call fails
        """
        if not text or not text.strip():
            raise ValueError("Cannot embed empty text")

        try:
            return self._provider.embed_text(text)
        except Exception as e:
            logger.error(f"Embedding error: {e}")
            raise ProviderError("embedding", str(e)) from e

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        """
        Generate embeddings for multiple texts, one vector per input.

        Args:
            texts: List of input texts (none may be empty)

        Returns:
            List of embedding vectors aligned with ``texts``

        Raises:
            ValueError: If any text is empty
            ProviderError: If the provider fails or returns the wrong count
        """
        if not texts:
            return []

        if any(not t or not t.strip() for t in texts):
            raise ValueError("Cannot embed empty text")

        try:
            embeddings = self._provider.embed_batch(texts)
        except Exception as e:
            logger.error(f"Batch embedding error: {e}")
            raise ProviderError("embedding", str(e)) from e

        if len(embeddings) != len(texts):
            raise ProviderError(
                "embedding",
                f"expected {len(texts)} embeddings, got {len(embeddings)}",
            )

        return embeddings

    def embed_query(self, query: str) -> List[float]:
        """
        Embed a user query for retrieval.

        Semantic alias for embed_text, used for clarity when embedding user
        queries vs passages.
        """
        return self.embed_text(query)

    @property
    def dimension(self) -> int:
        return self._provider.dimension

    @property
    def model_name(self) -> str:
        return self._provider.model_name

    @property
    def provider_name(self) -> str:
        return self._provider_name
