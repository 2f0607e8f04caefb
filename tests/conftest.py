"""
Shared fixtures: deterministic embeddings, a FAISS store in tmp_path,
a mocked LLM provider, fake HTTP endpoints and a SQLite repository.
"""

import hashlib
import re
from typing import Dict, List, Tuple
from unittest.mock import Mock

import httpx
import pytest
from sqlalchemy import create_engine

from docbot.embeddings import BaseEmbeddingProvider, EmbeddingService
from docbot.llm_service import BaseLLMProvider, LLMResponse, LLMService
from docbot.repository import ChatbotRepository
from docbot.vector_store import FAISSVectorStore, VectorStore

DIMENSION = 64


class HashingEmbeddingProvider(BaseEmbeddingProvider):
    """Bag-of-words vectors: texts sharing words get similar embeddings."""

    def __init__(self, dimension: int = DIMENSION):
        self._dimension = dimension
        self.calls = 0

    def _vector(self, text: str) -> List[float]:
        vector = [0.0] * self._dimension
        for token in re.findall(r"\w+", text.lower()):
            bucket = int(hashlib.md5(token.encode()).hexdigest(), 16) % self._dimension
            vector[bucket] += 1.0
        return vector

    def embed_text(self, text: str) -> List[float]:
        self.calls += 1
        return self._vector(text)

    def embed_batch(self, texts: List[str]) -> List[List[float]]:
        self.calls += 1
        return [self._vector(t) for t in texts]

    @property
    def dimension(self) -> int:
        return self._dimension

    @property
    def model_name(self) -> str:
        return "hashing-test"


def make_pdf(path, lines: List[str]) -> None:
    """Write a one-page PDF showing ``lines`` in Helvetica."""
    def escape(s: str) -> str:
        return s.replace("\\", "\\\\").replace("(", "\\(").replace(")", "\\)")

    content = "BT /F1 12 Tf 72 720 Td " + " ".join(
        f"({escape(line)}) Tj 0 -16 Td" for line in lines
    ) + " ET"

    objects = [
        "<< /Type /Catalog /Pages 2 0 R >>",
        "<< /Type /Pages /Kids [3 0 R] /Count 1 >>",
        "<< /Type /Page /Parent 2 0 R /MediaBox [0 0 612 792] "
        "/Contents 4 0 R /Resources << /Font << /F1 5 0 R >> >> >>",
        f"<< /Length {len(content)} >>\nstream\n{content}\nendstream",
        "<< /Type /Font /Subtype /Type1 /BaseFont /Helvetica >>",
    ]

    out = b"%PDF-1.4\n"
    offsets = []
    for number, body in enumerate(objects, start=1):
        offsets.append(len(out))
        out += f"{number} 0 obj\n{body}\nendobj\n".encode("latin-1")

    xref_offset = len(out)
    out += f"xref\n0 {len(objects) + 1}\n0000000000 65535 f \n".encode("latin-1")
    for offset in offsets:
        out += f"{offset:010d} 00000 n \n".encode("latin-1")
    out += (
        f"trailer\n<< /Size {len(objects) + 1} /Root 1 0 R >>\n"
        f"startxref\n{xref_offset}\n%%EOF\n"
    ).encode("latin-1")

    with open(path, "wb") as f:
        f.write(out)


def make_http_client(routes: Dict[str, Tuple[int, str]]) -> httpx.Client:
    """httpx client answering from ``routes`` (url -> (status, body)); 404 otherwise."""
    normalized = {url.rstrip("/"): reply for url, reply in routes.items()}

    def handler(request: httpx.Request) -> httpx.Response:
        status, body = normalized.get(str(request.url).rstrip("/"), (404, "not found"))
        return httpx.Response(status, text=body)

    return httpx.Client(transport=httpx.MockTransport(handler))


@pytest.fixture
def embedding_provider():
    return HashingEmbeddingProvider()


@pytest.fixture
def embedding_service(embedding_provider):
    return EmbeddingService(provider="openai", provider_instance=embedding_provider)


@pytest.fixture
def faiss_backend(tmp_path):
    return FAISSVectorStore(dimension=DIMENSION, index_dir=str(tmp_path / "indexes"))


@pytest.fixture
def vector_store(embedding_service, faiss_backend):
    return VectorStore(
        embedding_service=embedding_service,
        provider="faiss",
        store=faiss_backend,
    )


@pytest.fixture
def llm_provider():
    """Mock provider; answers with a fixed text."""
    provider = Mock(spec=BaseLLMProvider)
    provider.model_name = "gpt-4o-mini"
    provider.complete.return_value = LLMResponse(
        content="Generated answer",
        model="gpt-4o-mini",
    )
    return provider


@pytest.fixture
def llm_service(llm_provider):
    return LLMService(provider="openai", provider_instance=llm_provider)


@pytest.fixture
def repository(tmp_path):
    repo = ChatbotRepository(engine=create_engine(f"sqlite:///{tmp_path / 'docbot.db'}"))
    repo.create_all()
    return repo


@pytest.fixture
def pdf_file(tmp_path):
    path = tmp_path / "pricing.pdf"
    make_pdf(path, [
        "Acme Widgets pricing guide.",
        "The basic widget costs 10 dollars per month.",
        "The premium widget costs 25 dollars per month.",
    ])
    return path
