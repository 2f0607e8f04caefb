"""
Source Loader Module

Converts heterogeneous content sources into plain-text Documents with
provenance metadata.

Supported source kinds (closed set, see SourceKind):
- PDF: one Document per page (LangChain PyPDFLoader)
- URL: fetched with httpx, markup stripped, whitespace collapsed
- Text / Markdown / JSON: read as UTF-8 (or taken inline for typed text)
- Unsupported binary (docx, xlsx, pptx, ...): placeholder Document

Failure policy:
- A source that cannot be fetched or parsed yields a single error Document
  (metadata["is_error"] = True) instead of raising, so one bad source never
  aborts a whole chatbot build.
- Only a kind with no registered handler raises UnsupportedSourceKind.
"""

import html
import logging
import re
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import List, Optional, Dict, Any

import httpx
from langchain_community.document_loaders import PyPDFLoader, TextLoader

from docbot.config.settings import get_settings, LoaderConfig
from docbot.errors import UnsupportedSourceKind

# Configure logging
logger = logging.getLogger(__name__)


class SourceKind(str, Enum):
    """The kinds of content a chatbot can be built from."""

    PDF = "pdf"
    URL = "url"
    TEXT = "text"
    MARKDOWN = "markdown"
    JSON = "json"
    UNSUPPORTED_BINARY = "unsupported_binary"

    @classmethod
    def parse(cls, value: str) -> "SourceKind":
        """Parse a kind string, raising UnsupportedSourceKind when unknown."""
        try:
            return cls(value.lower())
        except ValueError:
            raise UnsupportedSourceKind(f"Unsupported source kind: {value}")


# File extension -> source kind
EXTENSION_KINDS = {
    ".pdf": SourceKind.PDF,
    ".txt": SourceKind.TEXT,
    ".text": SourceKind.TEXT,
    ".md": SourceKind.MARKDOWN,
    ".markdown": SourceKind.MARKDOWN,
    ".json": SourceKind.JSON,
    ".doc": SourceKind.UNSUPPORTED_BINARY,
    ".docx": SourceKind.UNSUPPORTED_BINARY,
    ".xls": SourceKind.UNSUPPORTED_BINARY,
    ".xlsx": SourceKind.UNSUPPORTED_BINARY,
    ".ppt": SourceKind.UNSUPPORTED_BINARY,
    ".pptx": SourceKind.UNSUPPORTED_BINARY,
    ".odt": SourceKind.UNSUPPORTED_BINARY,
    ".rtf": SourceKind.UNSUPPORTED_BINARY,
}


def normalize_url(url: str) -> str:
    """Prefix a URL with https:// when it has no scheme."""
    url = url.strip()
    if not url.startswith("http://") and not url.startswith("https://"):
        return f"https://{url}"
    return url


@dataclass(frozen=True)
class Source:
    """
    Immutable descriptor of ingestion input.

    Attributes:
        kind: What sort of content this is
        locator: File path, URL, or display name for inline text
        content: Inline text (only for TEXT sources typed by the user)
    """

    kind: SourceKind
    locator: str
    content: Optional[str] = None

    @classmethod
    def from_path(cls, path: "str | Path") -> "Source":
        """Create a Source for a local file, inferring its kind from the extension."""
        path = Path(path)
        extension = path.suffix.lower()

        if extension not in EXTENSION_KINDS:
            raise UnsupportedSourceKind(
                f"Unsupported file type: {extension or path.name}. "
                f"Supported types: {list(EXTENSION_KINDS.keys())}"
            )

        return cls(kind=EXTENSION_KINDS[extension], locator=str(path))

    @classmethod
    def from_url(cls, url: str) -> "Source":
        """Create a URL Source (normalized)."""
        return cls(kind=SourceKind.URL, locator=normalize_url(url))

    @classmethod
    def from_text(cls, text: str, name: str = "direct_input") -> "Source":
        """Create a Source from text typed directly by the user."""
        return cls(kind=SourceKind.TEXT, locator=name, content=text)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for storage."""
        data = {"type": self.kind.value, "path": self.locator}
        if self.content is not None:
            data["content"] = self.content
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Source":
        """Create Source from dictionary."""
        return cls(
            kind=SourceKind.parse(data["type"]),
            locator=data["path"],
            content=data.get("content"),
        )


@dataclass
class Document:
    """
    Normalized plain text produced from a Source.

    Attributes:
        text: Plain-text payload (or a failure message for error documents)
        metadata: source, chatbot_id, is_error, is_binary_placeholder, extras
    """

    text: str
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def source(self) -> str:
        return self.metadata.get("source", "")

    @property
    def is_error(self) -> bool:
        return bool(self.metadata.get("is_error", False))

    @property
    def is_binary_placeholder(self) -> bool:
        return bool(self.metadata.get("is_binary_placeholder", False))

    @property
    def is_usable(self) -> bool:
        """True when the document carries real content."""
        return not self.is_error and not self.is_binary_placeholder and bool(self.text.strip())


def _base_metadata(src: Source, **extra: Any) -> Dict[str, Any]:
    metadata = {
        "source": src.locator,
        "source_type": src.kind.value,
        "chatbot_id": None,
        "is_error": False,
        "is_binary_placeholder": False,
    }
    metadata.update(extra)
    return metadata


def error_document(source: Source, message: str) -> Document:
    """Build the Document that stands in for a source that failed to load."""
    return Document(
        text=f"Error loading {source.kind.value} source {source.locator}: {message}",
        metadata=_base_metadata(source, is_error=True),
    )


class BaseSourceLoader(ABC):
    """
    Abstract base class for per-kind source handlers.

    Handlers may raise on unreadable content; SourceLoader converts those
    exceptions into error Documents.
    """

    @abstractmethod
    def load(self, source: Source) -> List[Document]:
        """
        Load a source into Documents.

        Args:
            source: The source to load

        Returns:
            List of Documents
        """
        pass


class PDFSourceLoader(BaseSourceLoader):
    """Extracts text per page with LangChain's PyPDFLoader."""

    def load(self, source: Source) -> List[Document]:
        path = Path(source.locator)
        if not path.exists():
            raise FileNotFoundError(f"PDF not found: {path}")

        pages = PyPDFLoader(str(path)).load()

        documents = []
        for page in pages:
            page_number = page.metadata.get("page")
            documents.append(Document(
                text=page.page_content,
                metadata=_base_metadata(
                    source,
                    page=page_number + 1 if page_number is not None else None,
                ),
            ))

        if not any(d.text.strip() for d in documents):
            raise ValueError("no extractable text (scanned or empty PDF?)")

        return documents


class URLSourceLoader(BaseSourceLoader):
    """
    Fetches a web page and reduces it to plain text.

    The httpx client is created once and reused across fetches; pass your own
    client to control transport, proxies, or tests.
    """

    _SCRIPT_STYLE = re.compile(r"<(script|style)\b[^>]*>.*?</\1\s*>", re.IGNORECASE | re.DOTALL)
    _COMMENT = re.compile(r"<!--.*?-->", re.DOTALL)
    _TAG = re.compile(r"<[^>]*>")
    _WHITESPACE = re.compile(r"\s+")

    def __init__(
        self,
        client: Optional[httpx.Client] = None,
        config: Optional[LoaderConfig] = None,
    ):
        self.config = config or get_settings().loader
        self._client = client or httpx.Client(
            timeout=self.config.url_timeout,
            follow_redirects=True,
            headers={"User-Agent": self.config.user_agent},
        )

    @classmethod
    def html_to_text(cls, markup: str) -> str:
        """Strip markup and collapse whitespace."""
        text = cls._SCRIPT_STYLE.sub(" ", markup)
        text = cls._COMMENT.sub(" ", text)
        text = cls._TAG.sub(" ", text)
        text = html.unescape(text)
        return cls._WHITESPACE.sub(" ", text).strip()

    def load(self, source: Source) -> List[Document]:
        url = normalize_url(source.locator)
        logger.info(f"Loading URL: {url}")

        response = self._client.get(url)
        response.raise_for_status()

        text = self.html_to_text(response.text)
        if not text:
            raise ValueError("page contains no text")

        return [Document(text=text, metadata=_base_metadata(source, source=url))]

    def close(self) -> None:
        self._client.close()


class TextSourceLoader(BaseSourceLoader):
    """Reads text, markdown and JSON files as UTF-8, or takes inline text."""

    def load(self, source: Source) -> List[Document]:
        if source.content is not None:
            return [Document(text=source.content, metadata=_base_metadata(source))]

        path = Path(source.locator)
        if not path.exists():
            raise FileNotFoundError(f"File not found: {path}")

        loaded = TextLoader(str(path), encoding="utf-8").load()
        return [
            Document(text=doc.page_content, metadata=_base_metadata(source))
            for doc in loaded
        ]


class BinaryPlaceholderLoader(BaseSourceLoader):
    """Produces a placeholder for office formats we do not parse."""

    def load(self, source: Source) -> List[Document]:
        name = Path(source.locator).name
        return [Document(
            text=(
                f"The file {name} is in a format that cannot be read directly. "
                "Please copy its text and add it as direct text input instead."
            ),
            metadata=_base_metadata(source, is_binary_placeholder=True),
        )]


class SourceLoader:
    """
    Dispatches each Source to the handler for its kind.

    This is the class that other components should use.

    Example:
        loader = SourceLoader()
        docs = loader.load(Source.from_url("example.com"))
        all_docs = loader.load_all(sources, chatbot_id="...")
    """

    def __init__(
        self,
        handlers: Optional[Dict[SourceKind, BaseSourceLoader]] = None,
        http_client: Optional[httpx.Client] = None,
        config: Optional[LoaderConfig] = None,
    ):
        """
        Initialize the SourceLoader.

        Args:
            handlers: Override the handler registry (per kind)
            http_client: httpx client used by the URL handler
            config: Optional LoaderConfig instance
        """
        self.config = config or get_settings().loader

        if handlers is None:
            text_loader = TextSourceLoader()
            handlers = {
                SourceKind.PDF: PDFSourceLoader(),
                SourceKind.URL: URLSourceLoader(client=http_client, config=self.config),
                SourceKind.TEXT: text_loader,
                SourceKind.MARKDOWN: text_loader,
                SourceKind.JSON: text_loader,
                SourceKind.UNSUPPORTED_BINARY: BinaryPlaceholderLoader(),
            }
        self._handlers = handlers

        logger.info(f"SourceLoader initialized: kinds={[k.value for k in self._handlers]}")

    def load(self, source: Source, chatbot_id: Optional[str] = None) -> List[Document]:
        """
        Load one source. Never raises for content errors.

        Args:
            source: Source to load
            chatbot_id: Owning chatbot, stamped onto every Document

        Returns:
            List of Documents (a single error Document on failure)

        Raises:
            UnsupportedSourceKind: If no handler exists for the source kind
        """
        handler = self._handlers.get(source.kind)
        if handler is None:
            raise UnsupportedSourceKind(f"Unsupported source kind: {source.kind.value}")

        try:
            documents = handler.load(source)
        except UnsupportedSourceKind:
            raise
        except httpx.HTTPStatusError as e:
            logger.warning(f"Failed to fetch {source.locator}: HTTP {e.response.status_code}")
            documents = [error_document(
                source,
                f"HTTP {e.response.status_code} {e.response.reason_phrase}",
            )]
        except httpx.TimeoutException:
            logger.warning(f"Timed out fetching {source.locator}")
            documents = [error_document(source, "request timed out")]
        except Exception as e:
            logger.warning(f"Error loading source {source.locator}: {e}")
            documents = [error_document(source, str(e) or e.__class__.__name__)]

        for doc in documents:
            doc.metadata["chatbot_id"] = chatbot_id

        logger.debug(f"Loaded {len(documents)} documents from {source.locator}")
        return documents

    def load_all(
        self,
        sources: List[Source],
        chatbot_id: Optional[str] = None,
    ) -> List[Document]:
        """
        Load several sources concurrently and wait for all of them.

        Args:
            sources: Sources to load
            chatbot_id: Owning chatbot

        Returns:
            All Documents, in source order
        """
        if not sources:
            return []

        # Fail fast on kinds we can never load
        for source in sources:
            if source.kind not in self._handlers:
                raise UnsupportedSourceKind(f"Unsupported source kind: {source.kind.value}")

        workers = max(1, min(self.config.max_workers, len(sources)))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            results = list(pool.map(lambda s: self.load(s, chatbot_id), sources))

        documents = [doc for docs in results for doc in docs]
        failed = sum(1 for d in documents if d.is_error)
        logger.info(
            f"Loaded {len(sources)} sources into {len(documents)} documents "
            f"({failed} errors)"
        )
        return documents
