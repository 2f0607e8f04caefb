"""
Tests for the FAISS vector store and the VectorStore facade.

Run with: pytest tests/test_vector_store.py -v
"""

import threading
from unittest.mock import Mock

import pytest

from docbot.chunker import Passage
from docbot.embeddings import EmbeddingService
from docbot.errors import BuildCancelled, ProviderError
from docbot.vector_store import FAISSVectorStore, SearchResult, VectorStore

from conftest import DIMENSION


def make_passages(texts, source="faq.txt"):
    return [
        Passage(
            text=text,
            passage_id="",
            source=source,
            chunk_index=i,
            total_chunks=len(texts),
            metadata={"source": source},
        )
        for i, text in enumerate(texts)
    ]


class TestSearchResult:

    def test_to_dict(self):
        passage = make_passages(["hello"])[0]
        result = SearchResult(passage=passage, score=0.9, rank=1)

        data = result.to_dict()

        assert data["score"] == 0.9
        assert data["passage"]["text"] == "hello"


class TestFAISSVectorStore:
    """Tests for the on-disk FAISS backend."""

    def test_rejects_unsafe_chatbot_id(self, faiss_backend):
        with pytest.raises(ValueError):
            faiss_backend.exists("../etc")

    def test_dimension_mismatch(self, faiss_backend):
        passage = make_passages(["x"])[0]
        passage.embedding = [1.0, 2.0]

        with pytest.raises(ValueError):
            faiss_backend.replace_chatbot("bot-1", [passage])

    def test_missing_embeddings(self, faiss_backend):
        with pytest.raises(ValueError):
            faiss_backend.replace_chatbot("bot-1", make_passages(["x"]))

    def test_persists_across_instances(self, tmp_path, vector_store):
        vector_store.index(make_passages(["widgets cost ten dollars"]), "bot-1")

        reopened = FAISSVectorStore(dimension=DIMENSION, index_dir=str(tmp_path / "indexes"))

        assert reopened.exists("bot-1")
        assert reopened.count("bot-1") == 1
        assert not list((tmp_path / "indexes").glob("*.tmp"))

    def test_search_missing_chatbot(self, faiss_backend):
        assert faiss_backend.search([1.0] * DIMENSION, "nobody") == []


class TestVectorStore:
    """Tests for indexing through the facade."""

    def test_index_and_search(self, vector_store):
        passages = make_passages([
            "The basic widget costs 10 dollars per month",
            "Our office is open from 9 to 5 on weekdays",
        ])
        stored = vector_store.index(passages, "bot-1")

        results = vector_store.search("how much does the basic widget cost", "bot-1", top_k=1)

        assert stored == 2
        assert results[0].passage.text.startswith("The basic widget")
        assert results[0].rank == 1
        assert results[0].passage.chatbot_id == "bot-1"

    def test_index_stamps_chatbot_id(self, vector_store):
        passages = make_passages(["alpha", "beta"])
        vector_store.index(passages, "bot-7")

        results = vector_store.search("alpha", "bot-7", top_k=5)

        assert {r.passage.chatbot_id for r in results} == {"bot-7"}

    def test_search_never_crosses_chatbots(self, vector_store):
        vector_store.index(make_passages(["apples are red fruit"]), "bot-a")
        vector_store.index(make_passages(["bananas are yellow fruit"]), "bot-b")

        results = vector_store.search("apples", "bot-b", top_k=10)

        assert results
        assert all(r.passage.chatbot_id == "bot-b" for r in results)
        assert all("apples" not in r.passage.text for r in results)

    def test_reindex_replaces_previous_passages(self, vector_store):
        vector_store.index(make_passages(["old content one", "old content two"]), "bot-1")
        vector_store.index(make_passages(["new content"]), "bot-1")

        assert vector_store.count("bot-1") == 1
        assert vector_store.search("content", "bot-1", top_k=5)[0].passage.text == "new content"

    def test_empty_passages_rejected(self, vector_store):
        with pytest.raises(ValueError):
            vector_store.index([], "bot-1")

    def test_embedding_failure_writes_nothing(self, faiss_backend):
        provider = Mock()
        provider.embed_batch.side_effect = RuntimeError("quota exceeded")
        provider.dimension = DIMENSION
        store = VectorStore(
            embedding_service=EmbeddingService(provider="openai", provider_instance=provider),
            store=faiss_backend,
        )

        with pytest.raises(ProviderError):
            store.index(make_passages(["anything"]), "bot-1")

        assert not store.exists("bot-1")

    def test_embedding_failure_keeps_previous_index(self, vector_store, embedding_provider):
        vector_store.index(make_passages(["first version"]), "bot-1")

        embedding_provider.embed_batch = Mock(side_effect=RuntimeError("timeout"))
        with pytest.raises(ProviderError):
            vector_store.index(make_passages(["second version"]), "bot-1")

        assert vector_store.count("bot-1") == 1
        assert vector_store.exists("bot-1")

    def test_cancelled_before_commit(self, vector_store):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(BuildCancelled):
            vector_store.index(make_passages(["text"]), "bot-1", cancel_event=cancel)

        assert not vector_store.exists("bot-1")

    def test_delete_and_count(self, vector_store):
        vector_store.index(make_passages(["a one", "b two"]), "bot-1")
        vector_store.index(make_passages(["c three"]), "bot-2")

        assert vector_store.count() == 3
        assert vector_store.delete("bot-1") == 2
        assert not vector_store.exists("bot-1")
        assert vector_store.count() == 1

    def test_threshold_filters(self, vector_store):
        vector_store.index(make_passages(["completely unrelated words"]), "bot-1")

        results = vector_store.search("zebra", "bot-1", top_k=4, threshold=0.99)

        assert results == []

    def test_unknown_provider(self, embedding_service):
        with pytest.raises(ValueError):
            VectorStore(embedding_service=embedding_service, provider="pinecone")
