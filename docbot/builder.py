"""
Knowledge Base Builder Module

Turns a chatbot's sources into its searchable index:
    Sources → SourceLoader (concurrent) → Documents → DocumentChunker
    → Passages → VectorStore.index (embed + atomic commit)

Loading of all sources completes before chunking starts. Sources that fail
to load contribute an error passage instead of aborting the build; the build
only fails when no source produced usable text.

Builds of the same chatbot are serialized; builds of different chatbots run
independently. A build can be cancelled through a threading.Event up to the
moment its index is committed.
"""

import logging
import threading
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional

from docbot.chunker import DocumentChunker
from docbot.errors import BuildCancelled, NoDocumentsLoaded, NoSourcesProvided
from docbot.loaders import Source, SourceLoader
from docbot.vector_store import VectorStore

logger = logging.getLogger(__name__)


@dataclass
class BuildReport:
    """
    Outcome of a successful build.

    Attributes:
        chatbot_id: Chatbot whose index was built
        source_count: Number of sources given
        document_count: Documents loaded (including error/placeholder ones)
        failed_sources: Locators of sources that produced error documents
        passage_count: Passages committed to the index
        duration: Wall-clock seconds
    """
    chatbot_id: str
    source_count: int
    document_count: int
    passage_count: int
    failed_sources: List[str] = field(default_factory=list)
    duration: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chatbot_id": self.chatbot_id,
            "source_count": self.source_count,
            "document_count": self.document_count,
            "passage_count": self.passage_count,
            "failed_sources": self.failed_sources,
            "duration": self.duration,
        }


class KnowledgeBaseBuilder:
    """
    Builds, rebuilds and deletes per-chatbot indexes.

    Example:
        builder = KnowledgeBaseBuilder(loader, chunker, vector_store)
        report = builder.build(chatbot_id, [Source.from_url("example.com")])
        print(f"Indexed {report.passage_count} passages")
    """

    def __init__(
        self,
        loader: SourceLoader,
        chunker: DocumentChunker,
        vector_store: VectorStore,
    ):
        self.loader = loader
        self.chunker = chunker
        self.vector_store = vector_store

        # chatbot_id -> [lock, callers holding or waiting]; dropped at zero
        self._locks: Dict[str, list] = {}
        self._locks_guard = threading.Lock()

    @contextmanager
    def _lock_for(self, chatbot_id: str) -> Iterator[None]:
        with self._locks_guard:
            entry = self._locks.setdefault(chatbot_id, [threading.Lock(), 0])
            entry[1] += 1
        try:
            with entry[0]:
                yield
        finally:
            with self._locks_guard:
                entry[1] -= 1
                if entry[1] == 0:
                    del self._locks[chatbot_id]

    def build(
        self,
        chatbot_id: str,
        sources: List[Source],
        cancel_event: Optional[threading.Event] = None,
    ) -> BuildReport:
        """
        Build (or replace) the index of a chatbot.

        Args:
            chatbot_id: Chatbot to build for
            sources: Sources to ingest
            cancel_event: Set by the caller to abandon the build

        Returns:
            BuildReport describing the committed index

        Raises:
            NoSourcesProvided: If ``sources`` is empty
            UnsupportedSourceKind: If a source kind has no loader
            NoDocumentsLoaded: If no source produced usable text
            ProviderError: If embedding fails (previous index is kept)
            BuildCancelled: If cancelled before commit (previous index is kept)
        """
        if not sources:
            raise NoSourcesProvided(f"No sources provided for chatbot {chatbot_id}")

        with self._lock_for(chatbot_id):
            return self._build_locked(chatbot_id, sources, cancel_event)

    def _build_locked(
        self,
        chatbot_id: str,
        sources: List[Source],
        cancel_event: Optional[threading.Event],
    ) -> BuildReport:
        start = time.time()

        def check_cancelled(stage: str):
            if cancel_event is not None and cancel_event.is_set():
                logger.info(f"Build of chatbot {chatbot_id} cancelled before {stage}")
                raise BuildCancelled(f"Build of chatbot {chatbot_id} was cancelled")

        logger.info(f"Building knowledge base for chatbot {chatbot_id} from {len(sources)} sources")

        check_cancelled("loading")
        documents = self.loader.load_all(sources, chatbot_id=chatbot_id)

        if not any(doc.is_usable for doc in documents):
            raise NoDocumentsLoaded(
                f"None of the {len(sources)} sources of chatbot {chatbot_id} produced usable text"
            )

        check_cancelled("chunking")
        passages = self.chunker.split(documents)

        check_cancelled("indexing")
        stored = self.vector_store.index(passages, chatbot_id, cancel_event=cancel_event)

        failed = list(dict.fromkeys(d.source for d in documents if d.is_error))
        report = BuildReport(
            chatbot_id=chatbot_id,
            source_count=len(sources),
            document_count=len(documents),
            passage_count=stored,
            failed_sources=failed,
            duration=time.time() - start,
        )

        logger.info(
            f"Built chatbot {chatbot_id}: {report.passage_count} passages from "
            f"{report.document_count} documents ({len(failed)} failed sources) "
            f"in {report.duration:.2f}s"
        )
        return report

    def ensure_index(
        self,
        chatbot_id: str,
        sources: List[Source],
    ) -> Optional[BuildReport]:
        """
        Build the index only if it does not exist yet.

        Concurrent callers for the same chatbot wait for the first build
        instead of starting their own.

        Returns:
            BuildReport if a build ran, None if the index already existed
        """
        if not sources:
            raise NoSourcesProvided(f"No sources provided for chatbot {chatbot_id}")

        with self._lock_for(chatbot_id):
            if self.vector_store.exists(chatbot_id):
                return None
            return self._build_locked(chatbot_id, sources, None)

    def delete(self, chatbot_id: str) -> int:
        """Remove a chatbot's index. Returns number of passages deleted."""
        with self._lock_for(chatbot_id):
            return self.vector_store.delete(chatbot_id)
