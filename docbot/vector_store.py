"""
Vector Store Module

Stores passage embeddings per chatbot and searches them by cosine similarity.
Supports two persistent backends:
- FAISS: one index file + JSON sidecar per chatbot on local disk
- MongoDB Atlas: one collection, rows tagged with chatbot_id, $vectorSearch

Invariants:
- Every stored passage carries metadata["chatbot_id"]; searches are always
  restricted to one chatbot.
- Indexing is all-or-nothing per chatbot: all passages are embedded before
  anything is written, and the backend swaps the new set in atomically. A
  failed or cancelled build leaves the previous index (or none) untouched.

Schema (stored per passage):
- text, embedding, source, passage_id, chunk_index, total_chunks
- metadata: chatbot_id, source, is_error, is_binary_placeholder, page, ...
"""

import json
import logging
import os
import re
import threading
import uuid
from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Dict, Any, Tuple
import numpy as np

from docbot.config.settings import get_settings, VectorStoreConfig
from docbot.chunker import Passage
from docbot.embeddings import EmbeddingService
from docbot.errors import BuildCancelled

# Configure logging
logger = logging.getLogger(__name__)

_CHATBOT_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-]+$")


def _check_chatbot_id(chatbot_id: str) -> str:
    if not chatbot_id or not _CHATBOT_ID_PATTERN.match(chatbot_id):
        raise ValueError(f"Invalid chatbot id: {chatbot_id!r}")
    return chatbot_id


class SearchResult:
    """
    Represents a single search result.

    Attributes:
        passage: The retrieved Passage
        score: Cosine similarity (higher is better)
        rank: Position in results (1-indexed)
    """

    def __init__(self, passage: Passage, score: float, rank: int = 0):
        self.passage = passage
        self.score = score
        self.rank = rank

    def __repr__(self) -> str:
        return (
            f"SearchResult(source='{self.passage.source}', "
            f"score={self.score:.4f}, rank={self.rank})"
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "passage": self.passage.to_dict(),
            "score": self.score,
            "rank": self.rank,
        }


class BaseVectorStore(ABC):
    """
    Abstract base class for passage stores.

    All implementations must provide:
    - replace_chatbot: Atomically swap in a chatbot's complete passage set
    - search: Find similar passages of one chatbot
    - exists: Whether a chatbot has a committed index
    - delete_chatbot: Remove a chatbot's passages
    - count: Number of stored passages
    """

    @abstractmethod
    def replace_chatbot(self, chatbot_id: str, passages: List[Passage]) -> int:
        """
        Replace all passages of a chatbot with ``passages``.

        Args:
            chatbot_id: Owning chatbot
            passages: Passages with embeddings

        Returns:
            Number of passages stored
        """
        pass

    @abstractmethod
    def search(
        self,
        query_embedding: List[float],
        chatbot_id: str,
        top_k: int = 4,
        threshold: float = 0.0,
    ) -> List[SearchResult]:
        """
        Search one chatbot's passages.

        Args:
            query_embedding: Query vector
            chatbot_id: Chatbot whose passages are searched
            top_k: Number of results to return
            threshold: Minimum similarity score

        Returns:
            List of SearchResult objects, sorted by score descending
        """
        pass

    @abstractmethod
    def exists(self, chatbot_id: str) -> bool:
        """Return True when the chatbot has a committed index."""
        pass

    @abstractmethod
    def delete_chatbot(self, chatbot_id: str) -> int:
        """Delete all passages of a chatbot. Returns number deleted."""
        pass

    @abstractmethod
    def count(self, chatbot_id: Optional[str] = None) -> int:
        """Return number of passages (for one chatbot or overall)."""
        pass


class FAISSVectorStore(BaseVectorStore):
    """
    FAISS-based passage store persisted on local disk.

    Layout under ``index_dir``:
        <chatbot_id>.faiss   IndexFlatIP over normalized vectors
        <chatbot_id>.json    passages (without embeddings), same order

    Files are written to temporary names and moved into place with
    os.replace, so readers never see a half-written index.
    """

    def __init__(self, dimension: int, index_dir: str):
        """
        Initialize FAISS vector store.

        Args:
            dimension: Embedding dimension (must match your model)
            index_dir: Directory holding one index per chatbot
        """
        try:
            import faiss  # noqa: F401
        except ImportError:
            raise ImportError(
                "faiss-cpu is required for FAISS vector store. "
                "Install with: pip install faiss-cpu"
            )

        self.dimension = dimension
        self.index_dir = Path(index_dir)
        self.index_dir.mkdir(parents=True, exist_ok=True)

        # chatbot_id -> (faiss index, passages)
        self._cache: Dict[str, Tuple[Any, List[Passage]]] = {}
        self._lock = threading.RLock()

        logger.info(
            f"FAISSVectorStore initialized: dimension={dimension}, "
            f"index_dir={self.index_dir}"
        )

    def _paths(self, chatbot_id: str) -> Tuple[Path, Path]:
        _check_chatbot_id(chatbot_id)
        return (
            self.index_dir / f"{chatbot_id}.faiss",
            self.index_dir / f"{chatbot_id}.json",
        )

    @staticmethod
    def _normalize(vectors: np.ndarray) -> np.ndarray:
        """Normalize vectors for cosine similarity."""
        norms = np.linalg.norm(vectors, axis=1, keepdims=True)
        norms[norms == 0] = 1  # Avoid division by zero
        return vectors / norms

    def replace_chatbot(self, chatbot_id: str, passages: List[Passage]) -> int:
        import faiss

        index_path, meta_path = self._paths(chatbot_id)

        if any(p.embedding is None for p in passages):
            raise ValueError("All passages must have embeddings before indexing")

        vectors = np.array([p.embedding for p in passages], dtype=np.float32)
        if vectors.ndim != 2 or vectors.shape[1] != self.dimension:
            raise ValueError(
                f"Embedding dimension mismatch: expected {self.dimension}, "
                f"got {vectors.shape[-1] if vectors.ndim == 2 else vectors.shape}"
            )

        index = faiss.IndexFlatIP(self.dimension)
        index.add(self._normalize(vectors))

        stored = [
            Passage.from_dict({**p.to_dict(), "embedding": None})
            for p in passages
        ]
        metadata = {
            "chatbot_id": chatbot_id,
            "dimension": self.dimension,
            "passages": [p.to_dict() for p in stored],
        }

        tmp_index = index_path.with_suffix(".faiss.tmp")
        tmp_meta = meta_path.with_suffix(".json.tmp")

        with self._lock:
            try:
                faiss.write_index(index, str(tmp_index))
                with open(tmp_meta, "w", encoding="utf-8") as f:
                    json.dump(metadata, f)
                os.replace(tmp_meta, meta_path)
                os.replace(tmp_index, index_path)
            finally:
                for tmp in (tmp_index, tmp_meta):
                    if tmp.exists():
                        tmp.unlink()

            self._cache[chatbot_id] = (index, stored)

        logger.info(f"Wrote FAISS index for chatbot {chatbot_id}: {len(stored)} passages")
        return len(stored)

    def _load(self, chatbot_id: str) -> Optional[Tuple[Any, List[Passage]]]:
        """Load a chatbot's index from cache or disk."""
        import faiss

        index_path, meta_path = self._paths(chatbot_id)

        with self._lock:
            if chatbot_id in self._cache:
                return self._cache[chatbot_id]

            if not index_path.exists() or not meta_path.exists():
                return None

            index = faiss.read_index(str(index_path))
            with open(meta_path, "r", encoding="utf-8") as f:
                metadata = json.load(f)
            passages = [Passage.from_dict(p) for p in metadata["passages"]]

            if index.ntotal != len(passages):
                logger.error(
                    f"FAISS index for {chatbot_id} is inconsistent "
                    f"({index.ntotal} vectors, {len(passages)} passages)"
                )
                return None

            self._cache[chatbot_id] = (index, passages)
            logger.info(f"Loaded FAISS index for {chatbot_id} with {index.ntotal} vectors")
            return self._cache[chatbot_id]

    def search(
        self,
        query_embedding: List[float],
        chatbot_id: str,
        top_k: int = 4,
        threshold: float = 0.0,
    ) -> List[SearchResult]:
        loaded = self._load(chatbot_id)
        if loaded is None:
            logger.warning(f"Search on missing index for chatbot {chatbot_id}")
            return []

        index, passages = loaded
        if index.ntotal == 0:
            return []

        query_vector = self._normalize(np.array([query_embedding], dtype=np.float32))

        k = min(top_k, index.ntotal)
        scores, indices = index.search(query_vector, k)

        results = []
        for score, idx in zip(scores[0], indices[0]):
            if idx < 0:  # FAISS returns -1 for not found
                continue

            similarity = float(score)
            if similarity < threshold:
                continue

            results.append(SearchResult(
                passage=passages[idx],
                score=similarity,
                rank=len(results) + 1,
            ))

        logger.debug(f"Search returned {len(results)} results for chatbot {chatbot_id}")
        return results

    def exists(self, chatbot_id: str) -> bool:
        index_path, meta_path = self._paths(chatbot_id)
        with self._lock:
            return chatbot_id in self._cache or (index_path.exists() and meta_path.exists())

    def delete_chatbot(self, chatbot_id: str) -> int:
        index_path, meta_path = self._paths(chatbot_id)

        with self._lock:
            loaded = self._load(chatbot_id)
            deleted = len(loaded[1]) if loaded else 0

            self._cache.pop(chatbot_id, None)
            for path in (index_path, meta_path):
                if path.exists():
                    path.unlink()

        logger.info(f"Deleted FAISS index for chatbot {chatbot_id} ({deleted} passages)")
        return deleted

    def count(self, chatbot_id: Optional[str] = None) -> int:
        if chatbot_id is not None:
            loaded = self._load(chatbot_id)
            return len(loaded[1]) if loaded else 0

        total = 0
        for index_path in self.index_dir.glob("*.faiss"):
            total += self.count(index_path.stem)
        return total


class MongoDBVectorStore(BaseVectorStore):
    """
    MongoDB Atlas Vector Store.

    Every build writes its rows under a fresh build_id. The build becomes
    visible in one step, when the chatbot's pointer document in the
    ``<collection>_builds`` collection is switched to that build_id. Searches,
    counts and existence checks only look at the build the pointer names, so
    rows of unfinished or superseded builds are never seen.

    Requires a vector search index on the collection (see
    create_vector_index for the definition).
    """

    def __init__(
        self,
        dimension: int,
        uri: Optional[str] = None,
        database: Optional[str] = None,
        collection: Optional[str] = None,
        vector_index: Optional[str] = None,
        timeout_ms: Optional[int] = None,
        collection_handle=None,
        builds_handle=None,
    ):
        """
        Initialize MongoDB Vector Store.

        Args:
            dimension: Embedding dimension
            uri: MongoDB connection URI (or from env)
            database: Database name
            collection: Collection name
            vector_index: Name of the vector search index
            timeout_ms: Server selection / socket timeout
            collection_handle: Pre-built passage collection (for tests)
            builds_handle: Pre-built build pointer collection (for tests)
        """
        config = get_settings().vector_store

        self.dimension = dimension
        self.uri = uri or config.mongodb_uri
        self.database_name = database or config.mongodb_database
        self.collection_name = collection or config.mongodb_collection
        self.builds_collection_name = f"{self.collection_name}_builds"
        self.vector_index = vector_index or config.mongodb_vector_index
        self.timeout_ms = timeout_ms or config.mongodb_timeout_ms

        self._client = None
        self._collection = collection_handle
        self._builds = builds_handle

        logger.info(
            f"MongoDBVectorStore initialized: db={self.database_name}, "
            f"collection={self.collection_name}"
        )

    def _connect(self):
        """Establish connection to MongoDB."""
        if self._collection is not None and self._builds is not None:
            return self._collection

        if not self.uri:
            raise ValueError(
                "MongoDB URI not configured. Set MONGODB_URI environment variable."
            )

        try:
            from pymongo import MongoClient
        except ImportError:
            raise ImportError(
                "pymongo is required for MongoDB. "
                "Install with: pip install 'docbot[mongodb]'"
            )

        self._client = MongoClient(
            self.uri,
            serverSelectionTimeoutMS=self.timeout_ms,
            connectTimeoutMS=self.timeout_ms,
            socketTimeoutMS=self.timeout_ms,
        )
        database = self._client[self.database_name]
        self._collection = database[self.collection_name]
        self._builds = database[self.builds_collection_name]
        self._client.admin.command("ping")

        logger.info("Connected to MongoDB Atlas")
        return self._collection

    def _active_build(self, chatbot_id: str) -> Optional[str]:
        """Return the committed build_id of a chatbot, if any."""
        self._connect()
        pointer = self._builds.find_one({"_id": chatbot_id})
        return pointer["build_id"] if pointer else None

    def replace_chatbot(self, chatbot_id: str, passages: List[Passage]) -> int:
        collection = self._connect()
        build_id = uuid.uuid4().hex

        documents = [
            {
                "_id": f"{chatbot_id}:{build_id}:{i}",
                "chatbot_id": chatbot_id,
                "build_id": build_id,
                "passage_id": p.passage_id,
                "text": p.text,
                "embedding": p.embedding,
                "source": p.source,
                "chunk_index": p.chunk_index,
                "total_chunks": p.total_chunks,
                "metadata": p.metadata,
            }
            for i, p in enumerate(passages)
        ]

        try:
            collection.insert_many(documents, ordered=True)
            # Single-document update: the commit point of the build
            self._builds.update_one(
                {"_id": chatbot_id},
                {"$set": {"build_id": build_id, "passages": len(documents)}},
                upsert=True,
            )
        except Exception:
            logger.error(f"Build {build_id} for chatbot {chatbot_id} failed, discarding staged rows")
            collection.delete_many({"build_id": build_id})
            raise

        logger.info(f"Committed build {build_id} for chatbot {chatbot_id}: {len(documents)} passages")

        # Superseded rows are invisible already; a failed cleanup is retried by the next build
        try:
            collection.delete_many({"chatbot_id": chatbot_id, "build_id": {"$ne": build_id}})
        except Exception as e:
            logger.warning(f"Could not remove superseded rows of chatbot {chatbot_id}: {e}")

        return len(documents)

    def search(
        self,
        query_embedding: List[float],
        chatbot_id: str,
        top_k: int = 4,
        threshold: float = 0.0,
    ) -> List[SearchResult]:
        collection = self._connect()

        build_id = self._active_build(chatbot_id)
        if build_id is None:
            return []

        pipeline = [
            {
                "$vectorSearch": {
                    "index": self.vector_index,
                    "path": "embedding",
                    "queryVector": query_embedding,
                    "numCandidates": top_k * 10,
                    "limit": top_k,
                    "filter": {"chatbot_id": chatbot_id, "build_id": build_id},
                }
            },
            {
                "$project": {
                    "_id": 1,
                    "passage_id": 1,
                    "text": 1,
                    "source": 1,
                    "chunk_index": 1,
                    "total_chunks": 1,
                    "metadata": 1,
                    "score": {"$meta": "vectorSearchScore"},
                }
            },
        ]

        search_results = []
        for doc in collection.aggregate(pipeline):
            score = doc.get("score", 0)
            if score < threshold:
                continue

            passage = Passage(
                text=doc["text"],
                passage_id=doc.get("passage_id", doc["_id"]),
                source=doc["source"],
                chunk_index=doc["chunk_index"],
                total_chunks=doc.get("total_chunks", 0),
                metadata=doc.get("metadata", {}),
            )
            search_results.append(SearchResult(
                passage=passage,
                score=score,
                rank=len(search_results) + 1,
            ))

        logger.debug(f"MongoDB search returned {len(search_results)} results")
        return search_results

    def exists(self, chatbot_id: str) -> bool:
        return self._active_build(chatbot_id) is not None

    def delete_chatbot(self, chatbot_id: str) -> int:
        collection = self._connect()
        # Drop the pointer first so the chatbot disappears at once
        self._builds.delete_one({"_id": chatbot_id})
        result = collection.delete_many({"chatbot_id": chatbot_id})
        logger.info(f"Deleted {result.deleted_count} passages of chatbot {chatbot_id}")
        return result.deleted_count

    def count(self, chatbot_id: Optional[str] = None) -> int:
        collection = self._connect()
        if chatbot_id is not None:
            build_id = self._active_build(chatbot_id)
            if build_id is None:
                return 0
            return collection.count_documents({"chatbot_id": chatbot_id, "build_id": build_id})

        return sum(
            collection.count_documents({"chatbot_id": p["_id"], "build_id": p["build_id"]})
            for p in self._builds.find({})
        )

    def create_vector_index(self) -> Dict[str, Any]:
        """
        Return the Atlas vector search index definition.

        Create it via the Atlas UI/CLI or ``collection.create_search_index``.
        """
        index_definition = {
            "fields": [
                {
                    "type": "vector",
                    "path": "embedding",
                    "numDimensions": self.dimension,
                    "similarity": "cosine",
                },
                {"type": "filter", "path": "chatbot_id"},
                {"type": "filter", "path": "build_id"},
            ]
        }

        logger.info(
            f"To create the vector index '{self.vector_index}', "
            f"use the following definition in Atlas:\n"
            f"{json.dumps(index_definition, indent=2)}"
        )
        return index_definition


class VectorStore:
    """
    Embedding/indexing service with a unified interface.

    This is the class that other components should use. It embeds passages
    and hands complete, embedded sets to the configured backend.

    Example:
        store = VectorStore(embedding_service=embedding_service)
        store.index(passages, chatbot_id)
        results = store.search("What are your opening hours?", chatbot_id)
    """

    # Passages embedded per provider call (cancellation is checked in between)
    EMBED_BATCH_SIZE = 100

    def __init__(
        self,
        embedding_service: Optional[EmbeddingService] = None,
        provider: Optional[str] = None,
        config: Optional[VectorStoreConfig] = None,
        store: Optional[BaseVectorStore] = None,
    ):
        """
        Initialize the vector store.

        Args:
            embedding_service: EmbeddingService for embedding generation
            provider: "faiss" or "mongodb" (default from config)
            config: Optional VectorStoreConfig
            store: Ready-made backend, bypasses provider selection
        """
        settings = get_settings()
        self.config = config or settings.vector_store
        self.retrieval_config = settings.retrieval

        self.embedding_service = embedding_service or EmbeddingService()

        provider = provider or self.config.provider
        self._provider_name = provider

        if store is not None:
            self._store = store
        elif provider == "faiss":
            self._store = FAISSVectorStore(
                dimension=self.embedding_service.dimension,
                index_dir=self.config.faiss_index_dir,
            )
        elif provider == "mongodb":
            self._store = MongoDBVectorStore(
                dimension=self.embedding_service.dimension,
                uri=self.config.mongodb_uri,
                database=self.config.mongodb_database,
                collection=self.config.mongodb_collection,
                vector_index=self.config.mongodb_vector_index,
                timeout_ms=self.config.mongodb_timeout_ms,
            )
        else:
            raise ValueError(f"Unknown vector store provider: {provider}")

        logger.info(f"VectorStore initialized with {provider} backend")

    def index(
        self,
        passages: List[Passage],
        chatbot_id: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> int:
        """
        Embed passages and store them as the chatbot's complete index.

        Args:
            passages: Passages to index (embeddings are computed here)
            chatbot_id: Owning chatbot; stamped onto every passage
            cancel_event: Set by the caller to abandon the build

        Returns:
            Number of passages stored

        Raises:
            ValueError: If there is nothing to index
            ProviderError: If embedding fails (nothing is written)
            BuildCancelled: If cancel_event is set before commit
        """
        if not passages:
            raise ValueError("Cannot index an empty passage list")

        def check_cancelled():
            if cancel_event is not None and cancel_event.is_set():
                raise BuildCancelled(f"Indexing of chatbot {chatbot_id} was cancelled")

        for passage in passages:
            passage.metadata = {**passage.metadata, "chatbot_id": chatbot_id}

        logger.info(f"Generating embeddings for {len(passages)} passages")
        embeddings: List[List[float]] = []
        for i in range(0, len(passages), self.EMBED_BATCH_SIZE):
            check_cancelled()
            batch = passages[i:i + self.EMBED_BATCH_SIZE]
            embeddings.extend(self.embedding_service.embed_batch([p.text for p in batch]))

        check_cancelled()

        embedded = [
            Passage.from_dict({**p.to_dict(), "embedding": e})
            for p, e in zip(passages, embeddings)
        ]
        return self._store.replace_chatbot(chatbot_id, embedded)

    def search(
        self,
        query: str,
        chatbot_id: str,
        top_k: Optional[int] = None,
        threshold: Optional[float] = None,
    ) -> List[SearchResult]:
        """
        Search one chatbot's passages for a query.

        Args:
            query: User's question/search query
            chatbot_id: Chatbot to search
            top_k: Number of results (default from config)
            threshold: Minimum similarity (default from config)

        Returns:
            List of SearchResult objects
        """
        top_k = top_k if top_k is not None else self.retrieval_config.top_k
        if threshold is None:
            threshold = self.retrieval_config.similarity_threshold

        query_embedding = self.embedding_service.embed_query(query)

        return self._store.search(
            query_embedding=query_embedding,
            chatbot_id=chatbot_id,
            top_k=top_k,
            threshold=threshold,
        )

    def exists(self, chatbot_id: str) -> bool:
        """Return True when the chatbot has a committed index."""
        return self._store.exists(chatbot_id)

    def delete(self, chatbot_id: str) -> int:
        """Delete a chatbot's passages."""
        return self._store.delete_chatbot(chatbot_id)

    def count(self, chatbot_id: Optional[str] = None) -> int:
        """Return passage count."""
        return self._store.count(chatbot_id)

    @property
    def provider(self) -> str:
        """Return the backend provider name."""
        return self._provider_name
