"""
Tests for the Source Loader module.

Run with: pytest tests/test_loaders.py -v
"""

import httpx
import pytest

from docbot.errors import UnsupportedSourceKind
from docbot.loaders import (
    Document,
    Source,
    SourceKind,
    SourceLoader,
    URLSourceLoader,
    normalize_url,
)

from conftest import make_http_client


class TestSource:
    """Tests for the Source descriptor."""

    def test_from_path_infers_kind(self):
        assert Source.from_path("docs/guide.pdf").kind == SourceKind.PDF
        assert Source.from_path("notes.TXT").kind == SourceKind.TEXT
        assert Source.from_path("README.md").kind == SourceKind.MARKDOWN
        assert Source.from_path("data.json").kind == SourceKind.JSON
        assert Source.from_path("report.docx").kind == SourceKind.UNSUPPORTED_BINARY

    def test_from_path_unknown_extension(self):
        with pytest.raises(UnsupportedSourceKind):
            Source.from_path("archive.zip")

    def test_from_url_normalizes(self):
        assert Source.from_url("example.com/about").locator == "https://example.com/about"
        assert Source.from_url("http://example.com").locator == "http://example.com"

    def test_dict_round_trip_keeps_inline_text(self):
        source = Source.from_text("We open at 9.", name="hours")
        restored = Source.from_dict(source.to_dict())

        assert restored == source
        assert source.to_dict() == {"type": "text", "path": "hours", "content": "We open at 9."}

    def test_from_dict_unknown_kind(self):
        with pytest.raises(UnsupportedSourceKind):
            Source.from_dict({"type": "video", "path": "clip.mp4"})

    def test_source_is_immutable(self):
        source = Source.from_url("example.com")
        with pytest.raises(Exception):
            source.locator = "other.com"


class TestNormalizeUrl:

    def test_adds_https(self):
        assert normalize_url("  example.com ") == "https://example.com"

    def test_keeps_scheme(self):
        assert normalize_url("https://example.com/x") == "https://example.com/x"


class TestHtmlToText:
    """Tests for markup stripping."""

    def test_strips_tags_scripts_and_styles(self):
        markup = """
        <html><head><style>body { color: red; }</style>
        <script>var secret = 1;</script></head>
        <body><h1>Welcome</h1><p>Our   shop &amp; caf&eacute;</p><!-- hidden --></body></html>
        """
        text = URLSourceLoader.html_to_text(markup)

        assert text == "Welcome Our shop & café"

    def test_empty_markup(self):
        assert URLSourceLoader.html_to_text("<div>   </div>") == ""


class TestSourceLoader:
    """Tests for SourceLoader dispatch and failure handling."""

    def test_inline_text(self):
        loader = SourceLoader()
        docs = loader.load(Source.from_text("Hello there"), chatbot_id="bot-1")

        assert len(docs) == 1
        assert docs[0].text == "Hello there"
        assert docs[0].metadata["chatbot_id"] == "bot-1"
        assert docs[0].metadata["source"] == "direct_input"
        assert not docs[0].is_error

    def test_text_file_utf8(self, tmp_path):
        path = tmp_path / "notes.md"
        path.write_text("# Menu\nCrème brûlée", encoding="utf-8")

        docs = SourceLoader().load(Source.from_path(path))

        assert "Crème brûlée" in docs[0].text
        assert docs[0].metadata["source_type"] == "markdown"

    def test_missing_file_becomes_error_document(self, tmp_path):
        docs = SourceLoader().load(Source.from_path(tmp_path / "missing.txt"))

        assert len(docs) == 1
        assert docs[0].is_error
        assert "missing.txt" in docs[0].text

    def test_pdf_one_document_per_page(self, pdf_file):
        docs = SourceLoader().load(Source.from_path(pdf_file), chatbot_id="bot-1")

        assert len(docs) == 1
        assert "premium widget" in docs[0].text
        assert docs[0].metadata["page"] == 1
        assert docs[0].is_usable

    def test_corrupt_pdf_becomes_error_document(self, tmp_path):
        path = tmp_path / "broken.pdf"
        path.write_bytes(b"this is not a pdf")

        docs = SourceLoader().load(Source.from_path(path))

        assert len(docs) == 1
        assert docs[0].is_error

    def test_url_success(self):
        client = make_http_client({
            "https://example.com/": (200, "<html><body><p>Opening hours: 9 to 5</p></body></html>"),
        })
        loader = SourceLoader(http_client=client)

        docs = loader.load(Source.from_url("example.com/"))

        assert not docs[0].is_error
        assert docs[0].text == "Opening hours: 9 to 5"
        assert docs[0].metadata["source"] == "https://example.com/"

    def test_url_server_error_becomes_error_document(self):
        client = make_http_client({"https://example.com/": (500, "boom")})
        loader = SourceLoader(http_client=client)

        docs = loader.load(Source.from_url("https://example.com/"))

        assert len(docs) == 1
        assert docs[0].is_error
        assert "HTTP 500" in docs[0].text

    def test_url_timeout_becomes_error_document(self):
        def handler(request):
            raise httpx.ReadTimeout("too slow", request=request)

        client = httpx.Client(transport=httpx.MockTransport(handler))
        docs = SourceLoader(http_client=client).load(Source.from_url("slow.example.com"))

        assert docs[0].is_error
        assert "timed out" in docs[0].text

    def test_empty_page_becomes_error_document(self):
        client = make_http_client({"https://example.com/": (200, "<html><script>x()</script></html>")})
        docs = SourceLoader(http_client=client).load(Source.from_url("https://example.com/"))

        assert docs[0].is_error

    def test_binary_placeholder(self):
        docs = SourceLoader().load(Source.from_path("slides.pptx"))

        assert len(docs) == 1
        assert docs[0].is_binary_placeholder
        assert not docs[0].is_error
        assert not docs[0].is_usable
        assert "slides.pptx" in docs[0].text

    def test_kind_without_handler_raises(self):
        loader = SourceLoader(handlers={})

        with pytest.raises(UnsupportedSourceKind):
            loader.load(Source.from_text("hi"))
        with pytest.raises(UnsupportedSourceKind):
            loader.load_all([Source.from_text("hi")])

    def test_load_all_keeps_source_order(self):
        client = make_http_client({"https://a.example.com": (200, "<p>Page A</p>")})
        loader = SourceLoader(http_client=client)

        docs = loader.load_all(
            [
                Source.from_text("first", name="one"),
                Source.from_url("a.example.com"),
                Source.from_url("b.example.com"),
                Source.from_text("last", name="four"),
            ],
            chatbot_id="bot-9",
        )

        assert [d.source for d in docs] == [
            "one",
            "https://a.example.com",
            "https://b.example.com",
            "four",
        ]
        assert [d.is_error for d in docs] == [False, False, True, False]
        assert all(d.metadata["chatbot_id"] == "bot-9" for d in docs)

    def test_load_all_empty(self):
        assert SourceLoader().load_all([]) == []


class TestDocument:

    def test_whitespace_only_is_not_usable(self):
        assert not Document(text="   \n", metadata={}).is_usable
