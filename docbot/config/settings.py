"""
Configuration settings for docbot.

This module handles all configuration management using environment variables.
No hardcoded values - everything is configurable via .env file.
"""

import os
from dataclasses import dataclass, field
from typing import Literal, Optional
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


@dataclass
class EmbeddingConfig:
    """Configuration for embedding models."""

    provider: Literal["openai", "local"] = "openai"
    openai_model: str = "text-embedding-3-small"
    openai_api_key: Optional[str] = None
    local_model: str = "all-MiniLM-L6-v2"
    request_timeout: float = 30.0

    # text-embedding-3-small: 1536
    # all-MiniLM-L6-v2: 384
    @property
    def dimension(self) -> int:
        """Return embedding dimension based on selected model."""
        if self.provider == "local":
            model_dimensions = {
                "all-MiniLM-L6-v2": 384,
                "all-mpnet-base-v2": 768,
                "paraphrase-MiniLM-L6-v2": 384,
            }
            return model_dimensions.get(self.local_model, 384)
        else:
            model_dimensions = {
                "text-embedding-3-small": 1536,
                "text-embedding-3-large": 3072,
                "text-embedding-ada-002": 1536,
            }
            return model_dimensions.get(self.openai_model, 1536)


@dataclass
class LLMConfig:
    """Configuration for LLM providers and default sampling."""

    provider: Literal["openai", "ollama", "gemini", "mistral"] = "openai"

    # OpenAI settings
    openai_api_key: Optional[str] = None
    openai_model: str = "gpt-4o-mini"

    # Ollama settings
    ollama_base_url: str = "http://localhost:11434"
    ollama_model: str = "llama3"

    # Gemini settings
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"

    # Mistral settings
    mistral_api_key: Optional[str] = None
    mistral_model: str = "mistral-small-latest"

    # Chat sampling (sent explicitly on every call)
    temperature: float = 0.7
    presence_penalty: float = 0.6
    frequency_penalty: float = 0.5

    request_timeout: float = 60.0
    max_retries: int = 2


@dataclass
class VectorStoreConfig:
    """Configuration for the passage store."""

    provider: Literal["faiss", "mongodb"] = "faiss"

    # FAISS settings (one index file per chatbot)
    faiss_index_dir: str = "./data/indexes"

    # MongoDB settings
    mongodb_uri: Optional[str] = None
    mongodb_database: str = "docbot"
    mongodb_collection: str = "passages"
    mongodb_vector_index: str = "vector_index"
    mongodb_timeout_ms: int = 10000


@dataclass
class ChunkingConfig:
    """Configuration for document chunking."""

    chunk_size: int = 1000  # Characters per passage
    chunk_overlap: int = 200  # Characters shared by consecutive passages

    # "window": exact sliding window, "recursive": natural boundaries
    strategy: Literal["window", "recursive"] = "window"


@dataclass
class RetrievalConfig:
    """Configuration for retrieval settings."""

    top_k: int = 4
    similarity_threshold: float = 0.0


@dataclass
class LoaderConfig:
    """Configuration for source loading."""

    url_timeout: float = 15.0
    max_workers: int = 4
    user_agent: str = "docbot/0.1 (+https://github.com/docbot)"


@dataclass
class DatabaseConfig:
    """Configuration for the chatbot record store."""

    url: str = "sqlite:///./data/docbot.db"
    echo: bool = False


@dataclass
class NarrationConfig:
    """Configuration for the narration (voice) pipeline."""

    words_per_minute: int = 150
    chunk_size: int = 2000
    chunk_overlap: int = 200
    max_chunks: int = 5
    model: str = "gpt-4o-mini"
    temperature: float = 0.5


@dataclass
class TTSConfig:
    """Configuration for ElevenLabs text-to-speech."""

    elevenlabs_api_key: Optional[str] = None
    base_url: str = "https://api.elevenlabs.io/v1"
    model_id: str = "eleven_turbo_v2"
    default_voice_id: str = "21m00Tcm4TlvDq8ikWAM"
    stability: float = 0.5
    similarity_boost: float = 0.75
    timeout: float = 60.0


@dataclass
class Settings:
    """
    Main settings class that aggregates all configurations.

    Usage:
        settings = get_settings()
        print(settings.embedding.provider)
        print(settings.chunking.chunk_size)
    """

    embedding: EmbeddingConfig = field(default_factory=EmbeddingConfig)
    llm: LLMConfig = field(default_factory=LLMConfig)
    vector_store: VectorStoreConfig = field(default_factory=VectorStoreConfig)
    chunking: ChunkingConfig = field(default_factory=ChunkingConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    loader: LoaderConfig = field(default_factory=LoaderConfig)
    database: DatabaseConfig = field(default_factory=DatabaseConfig)
    narration: NarrationConfig = field(default_factory=NarrationConfig)
    tts: TTSConfig = field(default_factory=TTSConfig)

    # Paths
    data_dir: Path = field(default_factory=lambda: Path("./data"))

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Create Settings instance from environment variables.

        This is the primary way to instantiate Settings.
        """
        embedding = EmbeddingConfig(
            provider=os.getenv("EMBEDDING_PROVIDER", "openai"),  # type: ignore
            openai_model=os.getenv("OPENAI_EMBEDDING_MODEL", "text-embedding-3-small"),
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            local_model=os.getenv("LOCAL_EMBEDDING_MODEL", "all-MiniLM-L6-v2"),
            request_timeout=float(os.getenv("EMBEDDING_TIMEOUT", "30")),
        )

        llm = LLMConfig(
            provider=os.getenv("LLM_PROVIDER", "openai"),  # type: ignore
            openai_api_key=os.getenv("OPENAI_API_KEY"),
            openai_model=os.getenv("OPENAI_LLM_MODEL", "gpt-4o-mini"),
            ollama_base_url=os.getenv("OLLAMA_BASE_URL", "http://localhost:11434"),
            ollama_model=os.getenv("OLLAMA_MODEL", "llama3"),
            gemini_api_key=os.getenv("GEMINI_API_KEY"),
            gemini_model=os.getenv("GEMINI_MODEL", "gemini-2.0-flash"),
            mistral_api_key=os.getenv("MISTRAL_API_KEY"),
            mistral_model=os.getenv("MISTRAL_MODEL", "mistral-small-latest"),
            temperature=float(os.getenv("LLM_TEMPERATURE", "0.7")),
            presence_penalty=float(os.getenv("LLM_PRESENCE_PENALTY", "0.6")),
            frequency_penalty=float(os.getenv("LLM_FREQUENCY_PENALTY", "0.5")),
            request_timeout=float(os.getenv("LLM_TIMEOUT", "60")),
            max_retries=int(os.getenv("LLM_MAX_RETRIES", "2")),
        )

        vector_store = VectorStoreConfig(
            provider=os.getenv("VECTOR_STORE_PROVIDER", "faiss"),  # type: ignore
            faiss_index_dir=os.getenv("FAISS_INDEX_DIR", "./data/indexes"),
            mongodb_uri=os.getenv("MONGODB_URI"),
            mongodb_database=os.getenv("MONGODB_DATABASE", "docbot"),
            mongodb_collection=os.getenv("MONGODB_COLLECTION", "passages"),
            mongodb_vector_index=os.getenv("MONGODB_VECTOR_INDEX", "vector_index"),
            mongodb_timeout_ms=int(os.getenv("MONGODB_TIMEOUT_MS", "10000")),
        )

        chunking = ChunkingConfig(
            chunk_size=int(os.getenv("CHUNK_SIZE", "1000")),
            chunk_overlap=int(os.getenv("CHUNK_OVERLAP", "200")),
            strategy=os.getenv("CHUNK_STRATEGY", "window"),  # type: ignore
        )

        retrieval = RetrievalConfig(
            top_k=int(os.getenv("TOP_K_RESULTS", "4")),
            similarity_threshold=float(os.getenv("SIMILARITY_THRESHOLD", "0.0")),
        )

        loader = LoaderConfig(
            url_timeout=float(os.getenv("URL_FETCH_TIMEOUT", "15")),
            max_workers=int(os.getenv("LOADER_MAX_WORKERS", "4")),
        )

        database = DatabaseConfig(
            url=os.getenv("DATABASE_URL", "sqlite:///./data/docbot.db"),
            echo=os.getenv("DATABASE_ECHO", "false").lower() == "true",
        )

        narration = NarrationConfig(
            words_per_minute=int(os.getenv("WORDS_PER_MINUTE", "150")),
            max_chunks=int(os.getenv("NARRATION_MAX_CHUNKS", "5")),
            model=os.getenv("NARRATION_MODEL", "gpt-4o-mini"),
            temperature=float(os.getenv("NARRATION_TEMPERATURE", "0.5")),
        )

        tts = TTSConfig(
            elevenlabs_api_key=os.getenv("ELEVENLABS_API_KEY"),
            model_id=os.getenv("ELEVENLABS_MODEL", "eleven_turbo_v2"),
            default_voice_id=os.getenv("ELEVENLABS_VOICE_ID", "21m00Tcm4TlvDq8ikWAM"),
            timeout=float(os.getenv("ELEVENLABS_TIMEOUT", "60")),
        )

        return cls(
            embedding=embedding,
            llm=llm,
            vector_store=vector_store,
            chunking=chunking,
            retrieval=retrieval,
            loader=loader,
            database=database,
            narration=narration,
            tts=tts,
            data_dir=Path(os.getenv("DOCBOT_DATA_DIR", "./data")),
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


# Singleton pattern for settings
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the singleton Settings instance.

    Returns:
        Settings: The application settings loaded from environment.
    """
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reload_settings() -> Settings:
    """
    Reload settings from environment (useful for testing).

    Returns:
        Settings: Fresh settings instance.
    """
    global _settings
    load_dotenv(override=True)
    _settings = Settings.from_env()
    return _settings
