"""
Tests for the Knowledge Base Builder.

Run with: pytest tests/test_builder.py -v
"""

import threading
import time

import pytest

from docbot.builder import KnowledgeBaseBuilder
from docbot.chunker import DocumentChunker
from docbot.errors import BuildCancelled, NoDocumentsLoaded, NoSourcesProvided
from docbot.loaders import Document, Source, SourceLoader

from conftest import make_http_client


BAD_URL = "https://broken.example.com/faq"


@pytest.fixture
def loader():
    return SourceLoader(http_client=make_http_client({
        "https://acme.example.com/hours": (
            200,
            "<html><body><p>Acme is open from 9 to 5 on weekdays.</p></body></html>",
        ),
        BAD_URL: (500, "boom"),
    }))


@pytest.fixture
def builder(loader, vector_store):
    return KnowledgeBaseBuilder(
        loader=loader,
        chunker=DocumentChunker(chunk_size=1000, chunk_overlap=200),
        vector_store=vector_store,
    )


class TestBuild:
    """Tests for building an index from sources."""

    def test_pdf_and_url(self, builder, vector_store, pdf_file):
        report = builder.build(
            "bot-1",
            [Source.from_path(pdf_file), Source.from_url("acme.example.com/hours")],
        )

        assert report.source_count == 2
        assert report.passage_count == 2
        assert report.failed_sources == []
        assert vector_store.exists("bot-1")

        results = vector_store.search("premium widget price", "bot-1", top_k=1)
        assert "25 dollars" in results[0].passage.text

    def test_failed_source_becomes_error_passage(self, builder, vector_store, pdf_file):
        report = builder.build("bot-1", [Source.from_path(pdf_file), Source.from_url(BAD_URL)])

        assert report.failed_sources == [BAD_URL]
        assert report.passage_count == 2

        passages = [r.passage for r in vector_store.search("broken faq", "bot-1", top_k=5)]
        errors = [p for p in passages if p.is_error]
        assert len(errors) == 1
        assert "500" in errors[0].text

    def test_no_sources(self, builder):
        with pytest.raises(NoSourcesProvided):
            builder.build("bot-1", [])

    def test_all_sources_failed(self, builder, vector_store, tmp_path):
        with pytest.raises(NoDocumentsLoaded):
            builder.build(
                "bot-1",
                [Source.from_url(BAD_URL), Source.from_path(tmp_path / "missing.pdf")],
            )

        assert not vector_store.exists("bot-1")

    def test_placeholder_only_is_not_usable(self, builder, tmp_path):
        docx = tmp_path / "report.docx"
        docx.write_bytes(b"PK\x03\x04")

        with pytest.raises(NoDocumentsLoaded):
            builder.build("bot-1", [Source.from_path(docx)])

    def test_rebuild_replaces_index(self, builder, vector_store):
        builder.build("bot-1", [Source.from_text("Old policy: refunds within 10 days.")])
        builder.build("bot-1", [Source.from_text("New policy: refunds within 30 days.")])

        results = vector_store.search("refund policy", "bot-1", top_k=5)
        assert [r.passage.text for r in results] == ["New policy: refunds within 30 days."]

    def test_cancelled_build_keeps_previous_index(self, builder, vector_store):
        builder.build("bot-1", [Source.from_text("First version of the FAQ.")])
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(BuildCancelled):
            builder.build("bot-1", [Source.from_text("Second version.")], cancel_event=cancel)

        results = vector_store.search("version", "bot-1", top_k=5)
        assert [r.passage.text for r in results] == ["First version of the FAQ."]


class SlowLoader:
    """Loader that records how many builds are loading at once."""

    def __init__(self):
        self.active = 0
        self.max_active = 0
        self.calls = 0
        self._lock = threading.Lock()

    def load_all(self, sources, chatbot_id=None):
        with self._lock:
            self.active += 1
            self.calls += 1
            self.max_active = max(self.max_active, self.active)
        time.sleep(0.05)
        with self._lock:
            self.active -= 1
        return [
            Document(
                text=s.content,
                metadata={"source": s.locator, "chatbot_id": chatbot_id, "is_error": False},
            )
            for s in sources
        ]


class TestConcurrency:

    def test_same_chatbot_builds_are_serialized(self, vector_store):
        loader = SlowLoader()
        builder = KnowledgeBaseBuilder(loader, DocumentChunker(100, 10), vector_store)

        threads = [
            threading.Thread(
                target=builder.build,
                args=("bot-1", [Source.from_text(f"Version {i} of the guide.")]),
            )
            for i in range(3)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert loader.max_active == 1
        assert vector_store.count("bot-1") == 1

    def test_ensure_index_builds_once(self, vector_store):
        loader = SlowLoader()
        builder = KnowledgeBaseBuilder(loader, DocumentChunker(100, 10), vector_store)
        sources = [Source.from_text("Shipping takes three days.")]

        threads = [
            threading.Thread(target=builder.ensure_index, args=("bot-1", sources))
            for _ in range(3)
        ]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert loader.calls == 1
        assert builder.ensure_index("bot-1", sources) is None


class TestDelete:

    def test_delete(self, builder, vector_store):
        builder.build("bot-1", [Source.from_text("Something to forget.")])

        assert builder.delete("bot-1") == 1
        assert not vector_store.exists("bot-1")
        assert "bot-1" not in builder._locks


class TestLocks:
    """Per-chatbot locks only live while a build holds or waits on them."""

    def test_released_after_builds(self, builder):
        for i in range(20):
            builder.build(f"bot-{i}", [Source.from_text(f"Fact number {i}.")])

        with pytest.raises(NoDocumentsLoaded):
            builder.build("bot-bad", [Source.from_url(BAD_URL)])

        assert builder._locks == {}

    def test_held_while_building(self, vector_store):
        builder = KnowledgeBaseBuilder(SlowLoader(), DocumentChunker(100, 10), vector_store)
        sources = [Source.from_text("Shipping takes three days.")]

        threads = [
            threading.Thread(target=builder.build, args=("bot-1", sources))
            for _ in range(3)
        ]
        for t in threads:
            t.start()
        time.sleep(0.02)
        assert "bot-1" in builder._locks
        for t in threads:
            t.join()

        assert builder._locks == {}
