"""
Retriever Module

Top-K similarity retrieval over a single chatbot's passages.
"""

import logging
import time
from typing import List, Optional

from docbot.chunker import Passage
from docbot.config.settings import get_settings
from docbot.vector_store import VectorStore, SearchResult

logger = logging.getLogger(__name__)


class Retriever:
    """
    Finds the passages of one chatbot most similar to a query.

    Results never include passages of another chatbot. A chatbot with
    nothing indexed yields an empty list.

    Example:
        retriever = Retriever(vector_store)
        passages = retriever.retrieve(chatbot_id, "What are the prices?")
    """

    def __init__(
        self,
        vector_store: VectorStore,
        top_k: Optional[int] = None,
        similarity_threshold: Optional[float] = None,
    ):
        config = get_settings().retrieval
        self.vector_store = vector_store
        self.top_k = top_k if top_k is not None else config.top_k
        self.similarity_threshold = (
            similarity_threshold
            if similarity_threshold is not None
            else config.similarity_threshold
        )

    def retrieve_with_scores(
        self,
        chatbot_id: str,
        query: str,
        k: Optional[int] = None,
    ) -> List[SearchResult]:
        """
        Retrieve scored passages, best first.

        Args:
            chatbot_id: Chatbot whose passages are searched
            query: Natural-language query
            k: Number of passages (default top_k)

        Returns:
            Up to k SearchResults sorted by descending similarity
        """
        k = k if k is not None else self.top_k
        if k <= 0:
            return []

        start = time.time()
        results = self.vector_store.search(
            query=query,
            chatbot_id=chatbot_id,
            top_k=k,
            threshold=self.similarity_threshold,
        )

        # Backends already filter; this guards against a misconfigured index
        scoped = [r for r in results if r.passage.chatbot_id in (None, chatbot_id)]
        scoped.sort(key=lambda r: r.score, reverse=True)

        logger.info(
            f"Retrieved {len(scoped)} passages for chatbot {chatbot_id} "
            f"in {(time.time() - start) * 1000:.0f}ms"
        )
        return scoped[:k]

    def retrieve(
        self,
        chatbot_id: str,
        query: str,
        k: Optional[int] = None,
    ) -> List[Passage]:
        """Retrieve the k most similar passages of a chatbot."""
        return [r.passage for r in self.retrieve_with_scores(chatbot_id, query, k)]
