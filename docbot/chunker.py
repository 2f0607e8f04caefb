"""
Document Chunker Module

Splits normalized Documents into overlapping Passages for embedding and
retrieval.

Chunking Strategy:
- Sliding window (default): fixed-size character windows with an exact
  overlap, deterministic and independent per Document
- Recursive (optional): LangChain's RecursiveCharacterTextSplitter on
  natural boundaries (paragraphs, sentences)
- Metadata: copied verbatim from the parent Document onto every Passage
"""

import hashlib
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Dict, Any

from langchain_text_splitters import RecursiveCharacterTextSplitter

from docbot.config.settings import get_settings, ChunkingConfig
from docbot.loaders import Document

# Configure logging
logger = logging.getLogger(__name__)


@dataclass
class Passage:
    """
    Represents a single passage of text with metadata.

    Attributes:
        text: The actual text content of the passage
        passage_id: Unique identifier for this passage
        source: Locator of the originating source
        chunk_index: Position of this passage within its Document (0-indexed)
        total_chunks: Total number of passages from that Document
        metadata: Inherited Document metadata (chatbot_id, is_error, ...)
        embedding: Vector embedding (populated later by the vector store)
    """

    text: str
    passage_id: str
    source: str
    chunk_index: int
    total_chunks: int = 0
    metadata: Dict[str, Any] = field(default_factory=dict)
    embedding: Optional[List[float]] = None

    def __post_init__(self):
        """Generate passage_id if not provided."""
        if not self.passage_id:
            # Deterministic ID from content + source + index
            content_hash = hashlib.md5(
                f"{self.source}:{self.metadata.get('page')}:{self.chunk_index}:{self.text[:100]}".encode()
            ).hexdigest()[:12]
            stem = Path(self.source).stem or "passage"
            self.passage_id = f"{stem}_{self.chunk_index}_{content_hash}"

    @property
    def chatbot_id(self) -> Optional[str]:
        return self.metadata.get("chatbot_id")

    @property
    def is_error(self) -> bool:
        return bool(self.metadata.get("is_error", False))

    def to_dict(self) -> Dict[str, Any]:
        """Convert passage to dictionary for storage."""
        return {
            "text": self.text,
            "passage_id": self.passage_id,
            "source": self.source,
            "chunk_index": self.chunk_index,
            "total_chunks": self.total_chunks,
            "metadata": self.metadata,
            "embedding": self.embedding,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Passage":
        """Create Passage from dictionary."""
        return cls(
            text=data["text"],
            passage_id=data["passage_id"],
            source=data["source"],
            chunk_index=data["chunk_index"],
            total_chunks=data.get("total_chunks", 0),
            metadata=data.get("metadata", {}),
            embedding=data.get("embedding"),
        )


def sliding_windows(text: str, chunk_size: int, overlap: int) -> List[str]:
    """
    Split text into fixed-size windows that overlap by exactly ``overlap``.

    Every window is ``chunk_size`` long except possibly the last one.
    """
    if not text:
        return []

    if len(text) <= chunk_size:
        return [text]

    step = chunk_size - overlap
    windows = []
    start = 0
    while True:
        windows.append(text[start:start + chunk_size])
        if start + chunk_size >= len(text):
            break
        start += step
    return windows


class DocumentChunker:
    """
    Splits Documents into Passages.

    Example:
        chunker = DocumentChunker()
        passages = chunker.split(documents)
        for p in passages:
            print(f"Passage {p.chunk_index}: {p.text[:100]}...")
    """

    def __init__(
        self,
        chunk_size: Optional[int] = None,
        chunk_overlap: Optional[int] = None,
        strategy: Optional[str] = None,
        config: Optional[ChunkingConfig] = None,
    ):
        """
        Initialize the DocumentChunker.

        Args:
            chunk_size: Characters per passage (default from config)
            chunk_overlap: Overlap between passages (default from config)
            strategy: "window" or "recursive" (default from config)
            config: Optional ChunkingConfig instance

        Raises:
            ValueError: If the sizes are inconsistent or the strategy unknown
        """
        settings = get_settings()
        self.config = config or settings.chunking

        self.chunk_size = chunk_size if chunk_size is not None else self.config.chunk_size
        self.chunk_overlap = chunk_overlap if chunk_overlap is not None else self.config.chunk_overlap
        self.strategy = strategy or self.config.strategy

        if self.chunk_size <= 0:
            raise ValueError(f"chunk_size must be positive, got {self.chunk_size}")
        if self.chunk_overlap < 0 or self.chunk_overlap >= self.chunk_size:
            raise ValueError(
                f"chunk_overlap must be in [0, chunk_size), got {self.chunk_overlap} "
                f"for chunk_size={self.chunk_size}"
            )
        if self.strategy not in ("window", "recursive"):
            raise ValueError(f"Unknown chunking strategy: {self.strategy}")

        self._splitter = None
        if self.strategy == "recursive":
            self._splitter = RecursiveCharacterTextSplitter(
                chunk_size=self.chunk_size,
                chunk_overlap=self.chunk_overlap,
                length_function=len,
                separators=["\n\n", "\n", ". ", "? ", "! ", "; ", ", ", " ", ""],
                keep_separator=True,
            )

        logger.info(
            f"DocumentChunker initialized: chunk_size={self.chunk_size}, "
            f"overlap={self.chunk_overlap}, strategy={self.strategy}"
        )

    def split_text(self, text: str) -> List[str]:
        """Split raw text into passage strings, skipping whitespace-only pieces."""
        if self._splitter is not None:
            pieces = self._splitter.split_text(text)
        else:
            pieces = sliding_windows(text, self.chunk_size, self.chunk_overlap)
        return [p for p in pieces if p.strip()]

    def split_document(self, document: Document) -> List[Passage]:
        """
        Split a single Document into Passages.

        Args:
            document: Document to split

        Returns:
            Passages carrying a copy of the Document's metadata
        """
        pieces = self.split_text(document.text)

        passages = [
            Passage(
                text=piece,
                passage_id="",  # Will be auto-generated
                source=document.source,
                chunk_index=index,
                total_chunks=len(pieces),
                metadata=dict(document.metadata),
            )
            for index, piece in enumerate(pieces)
        ]
        return passages

    def split(self, documents: List[Document]) -> List[Passage]:
        """
        Split Documents into Passages; no passage crosses a Document boundary.

        Args:
            documents: Documents to split

        Returns:
            All passages, in document order
        """
        all_passages: List[Passage] = []
        for document in documents:
            all_passages.extend(self.split_document(document))

        total = len(all_passages)
        logger.info(
            f"Created {total} passages from {len(documents)} documents "
            f"(avg {sum(len(p.text) for p in all_passages) // max(total, 1)} chars/passage)"
        )
        return all_passages

    def process_text(
        self,
        text: str,
        source_name: str = "direct_input",
        metadata: Optional[Dict[str, Any]] = None,
    ) -> List[Passage]:
        """
        Process raw text directly (for testing or API input).

        Args:
            text: Raw text to chunk
            source_name: Name to use as source
            metadata: Optional metadata

        Returns:
            List of Passage objects
        """
        metadata = dict(metadata or {})
        metadata.setdefault("source", source_name)
        metadata.setdefault("source_type", "text")
        return self.split_document(Document(text=text, metadata=metadata))
