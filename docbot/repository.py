"""
Chatbot Repository Module

Relational store for chatbot records (owner, name, sources, config) using
SQLAlchemy 2.0. Passages live in the vector store, keyed by chatbot id.

Table "chatbots":
    id          String(36) UUID primary key
    owner_id    opaque owner identity (indexed)
    name        display name
    config      JSON {model_name, custom_prompt}
    sources     JSON [{type, path, content?}, ...]
    created_at  creation timestamp
    updated_at  last modification timestamp
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

from sqlalchemy import JSON, DateTime, String, create_engine, select
from sqlalchemy.engine import Engine, make_url
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, sessionmaker

from docbot.config.settings import get_settings, DatabaseConfig
from docbot.errors import DatabaseError
from docbot.loaders import Source
from docbot.rag_chain import ChatbotConfig

logger = logging.getLogger(__name__)


class Base(DeclarativeBase):
    """Base class for all database models."""

    pass


class ChatbotRecord(Base):
    """Chatbot database model."""

    __tablename__ = "chatbots"

    id: Mapped[str] = mapped_column(
        String(36),
        primary_key=True,
        default=lambda: str(uuid.uuid4()),
    )
    owner_id: Mapped[str] = mapped_column(String(255), index=True, nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    config: Mapped[Dict[str, Any]] = mapped_column(JSON, default=dict, nullable=False)
    sources: Mapped[List[Dict[str, Any]]] = mapped_column(JSON, default=list, nullable=False)

    # Timestamps
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<ChatbotRecord(id={self.id}, owner_id={self.owner_id}, name={self.name})>"


@dataclass
class Chatbot:
    """
    A chatbot as seen by the rest of the library.

    Attributes:
        id: UUID string
        owner_id: Opaque owner identity
        name: Display name
        sources: Sources the knowledge base is built from
        config: Model and prompt settings
        created_at: Creation time
    """
    id: str
    owner_id: str
    name: str
    sources: List[Source] = field(default_factory=list)
    config: ChatbotConfig = field(default_factory=ChatbotConfig)
    created_at: Optional[datetime] = None

    @classmethod
    def from_record(cls, record: ChatbotRecord) -> "Chatbot":
        return cls(
            id=record.id,
            owner_id=record.owner_id,
            name=record.name,
            sources=[Source.from_dict(s) for s in record.sources or []],
            config=ChatbotConfig.from_dict(record.config),
            created_at=record.created_at,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (for API responses)."""
        return {
            "id": self.id,
            "owner_id": self.owner_id,
            "name": self.name,
            "sources": [s.to_dict() for s in self.sources],
            "config": self.config.to_dict(),
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


def create_db_engine(config: Optional[DatabaseConfig] = None) -> Engine:
    """Create an engine from config, creating the SQLite directory if needed."""
    config = config or get_settings().database
    url = make_url(config.url)

    if url.get_backend_name() == "sqlite" and url.database and url.database != ":memory:":
        Path(url.database).parent.mkdir(parents=True, exist_ok=True)

    return create_engine(url, echo=config.echo)


class ChatbotRepository:
    """
    CRUD operations for chatbot records.

    Example:
        repo = ChatbotRepository()
        repo.create_all()
        chatbot = repo.create("owner-1", "Support Bot", sources, ChatbotConfig())
        repo.list_for_owner("owner-1")
    """

    def __init__(
        self,
        engine: Optional[Engine] = None,
        config: Optional[DatabaseConfig] = None,
    ):
        """
        Initialize repository.

        Args:
            engine: SQLAlchemy engine (default built from DatabaseConfig)
            config: Optional DatabaseConfig instance
        """
        self.engine = engine or create_db_engine(config)
        self._session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)

        logger.info(f"ChatbotRepository initialized: {self.engine.url.render_as_string(hide_password=True)}")

    def create_all(self) -> None:
        """Create tables if they do not exist."""
        Base.metadata.create_all(self.engine)

    def create(
        self,
        owner_id: str,
        name: str,
        sources: List[Source],
        config: Optional[ChatbotConfig] = None,
        chatbot_id: Optional[str] = None,
    ) -> Chatbot:
        """
        Insert a new chatbot record.

        Args:
            owner_id: Owner identity
            name: Display name
            sources: Sources of the knowledge base
            config: Model and prompt settings
            chatbot_id: Explicit id (default: new UUID)

        Returns:
            The created Chatbot
        """
        config = config or ChatbotConfig()
        try:
            with self._session_factory.begin() as session:
                record = ChatbotRecord(
                    id=chatbot_id or str(uuid.uuid4()),
                    owner_id=owner_id,
                    name=name,
                    config=config.to_dict(),
                    sources=[s.to_dict() for s in sources],
                )
                session.add(record)
                session.flush()
                chatbot = Chatbot.from_record(record)
        except SQLAlchemyError as e:
            logger.error(f"Error creating chatbot for owner {owner_id}: {e}")
            raise DatabaseError("Failed to create chatbot") from e

        logger.debug(f"Created chatbot {chatbot.id}")
        return chatbot

    def get(self, chatbot_id: str) -> Optional[Chatbot]:
        """
        Get a chatbot by ID.

        Returns:
            Chatbot or None if not found
        """
        try:
            with self._session_factory() as session:
                record = session.get(ChatbotRecord, chatbot_id)
                return Chatbot.from_record(record) if record else None
        except SQLAlchemyError as e:
            logger.error(f"Error getting chatbot {chatbot_id}: {e}")
            raise DatabaseError("Failed to retrieve chatbot") from e

    def list_for_owner(self, owner_id: str) -> List[Chatbot]:
        """List an owner's chatbots, newest first."""
        try:
            with self._session_factory() as session:
                query = (
                    select(ChatbotRecord)
                    .where(ChatbotRecord.owner_id == owner_id)
                    .order_by(ChatbotRecord.created_at.desc())
                )
                return [Chatbot.from_record(r) for r in session.scalars(query)]
        except SQLAlchemyError as e:
            logger.error(f"Error listing chatbots of owner {owner_id}: {e}")
            raise DatabaseError("Failed to list chatbots") from e

    def update(
        self,
        chatbot_id: str,
        name: Optional[str] = None,
        config: Optional[ChatbotConfig] = None,
        sources: Optional[List[Source]] = None,
    ) -> Optional[Chatbot]:
        """
        Update fields of a chatbot; None leaves a field unchanged.

        Returns:
            Updated Chatbot or None if not found
        """
        try:
            with self._session_factory.begin() as session:
                record = session.get(ChatbotRecord, chatbot_id)
                if record is None:
                    return None

                if name is not None:
                    record.name = name
                if config is not None:
                    record.config = config.to_dict()
                if sources is not None:
                    record.sources = [s.to_dict() for s in sources]

                session.flush()
                chatbot = Chatbot.from_record(record)
        except SQLAlchemyError as e:
            logger.error(f"Error updating chatbot {chatbot_id}: {e}")
            raise DatabaseError("Failed to update chatbot") from e

        logger.debug(f"Updated chatbot {chatbot_id}")
        return chatbot

    def delete(self, chatbot_id: str) -> bool:
        """
        Delete a chatbot record.

        Returns:
            True if deleted, False if not found
        """
        try:
            with self._session_factory.begin() as session:
                record = session.get(ChatbotRecord, chatbot_id)
                if record is None:
                    return False
                session.delete(record)
        except SQLAlchemyError as e:
            logger.error(f"Error deleting chatbot {chatbot_id}: {e}")
            raise DatabaseError("Failed to delete chatbot") from e

        logger.debug(f"Deleted chatbot {chatbot_id}")
        return True

    def count(self) -> int:
        """Total number of chatbots."""
        try:
            with self._session_factory() as session:
                return len(session.scalars(select(ChatbotRecord.id)).all())
        except SQLAlchemyError as e:
            logger.error(f"Error counting chatbots: {e}")
            raise DatabaseError("Failed to count chatbots") from e
