"""
Tests for configuration, errors and logging setup.
"""

import logging

from docbot.config.settings import Settings, get_settings, reload_settings
from docbot.errors import NoKnowledgeBase, ProviderError
from docbot.logging_setup import configure_logging


class TestSettings:

    def test_defaults(self, monkeypatch):
        for name in ("CHUNK_SIZE", "CHUNK_OVERLAP", "LLM_TEMPERATURE", "WORDS_PER_MINUTE"):
            monkeypatch.delenv(name, raising=False)

        settings = Settings.from_env()

        assert settings.chunking.chunk_size == 1000
        assert settings.chunking.chunk_overlap == 200
        assert settings.llm.temperature == 0.7
        assert settings.narration.words_per_minute == 150
        assert settings.narration.chunk_size == 2000
        assert settings.tts.model_id == "eleven_turbo_v2"

    def test_env_overrides(self, monkeypatch):
        monkeypatch.setenv("CHUNK_SIZE", "500")
        monkeypatch.setenv("VECTOR_STORE_PROVIDER", "mongodb")
        monkeypatch.setenv("DATABASE_ECHO", "true")

        settings = Settings.from_env()

        assert settings.chunking.chunk_size == 500
        assert settings.vector_store.provider == "mongodb"
        assert settings.database.echo is True

    def test_reload(self, monkeypatch):
        monkeypatch.setenv("TOP_K_RESULTS", "7")
        try:
            assert reload_settings().retrieval.top_k == 7
            assert get_settings().retrieval.top_k == 7
        finally:
            monkeypatch.delenv("TOP_K_RESULTS")
            reload_settings()


class TestErrors:

    def test_to_dict(self):
        assert NoKnowledgeBase("bot-1 has no index").to_dict() == {
            "kind": "no_knowledge_base",
            "detail": "bot-1 has no index",
        }

    def test_provider_error(self):
        error = ProviderError("tts", "HTTP 401")

        assert error.to_dict()["provider"] == "tts"
        assert "HTTP 401" in str(error)


class TestLogging:

    def test_quiets_http_loggers(self):
        configure_logging("debug")

        assert logging.getLogger("httpx").level == logging.WARNING
        assert logging.getLogger("openai").level == logging.WARNING
