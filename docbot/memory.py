"""
Conversation Memory Module

Conversation history for multi-turn question answering.

ConversationHistory is an immutable value: the engine receives one, and
returns a new one with the question and answer appended. A sliding window
(max_turns and an approximate token budget) keeps the context bounded.

SessionStore keeps the latest history per session id for callers that want
server-side sessions; it lives only as long as the process.

Usage:
    history = ConversationHistory()
    history = history.append_user("What are the opening hours?")
    history = history.append_assistant("We are open 9 to 5.")

    messages = history.get_messages_for_llm()
"""

import logging
import threading
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta
from typing import List, Optional, Dict, Any, Tuple

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Message:
    """
    Represents a single message in the conversation.

    Attributes:
        role: "user", "assistant", or "system"
        content: The message text
        timestamp: When the message was created
        metadata: Additional info (sources, confidence, etc.)
    """
    role: str  # "user", "assistant", "system"
    content: str
    timestamp: datetime = field(default_factory=datetime.utcnow)
    metadata: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "role": self.role,
            "content": self.content,
            "timestamp": self.timestamp.isoformat(),
            "metadata": self.metadata,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Message":
        """Create from dictionary."""
        timestamp = data.get("timestamp")
        return cls(
            role=data["role"],
            content=data["content"],
            timestamp=datetime.fromisoformat(timestamp) if timestamp else datetime.utcnow(),
            metadata=data.get("metadata", {}),
        )

    def __str__(self) -> str:
        return f"{self.role}: {self.content}"


def _estimate_tokens(text: str) -> int:
    """
    Estimate token count from text.

    Uses the approximation: 1 token ~ 4 characters for English.
    """
    return len(text) // 4


@dataclass(frozen=True)
class ConversationHistory:
    """
    Ordered, immutable conversation turns.

    Features:
    - Sliding window to limit context size
    - Automatic truncation of old messages
    - Token estimation for context management
    - Export/import for persistence

    Example:
        history = ConversationHistory(max_turns=10)
        history = history.append_user("What is RAG?")
        history = history.append_assistant("RAG stands for ...")

        # As list of dicts (OpenAI chat format)
        messages = history.get_messages_for_llm()
    """

    messages: Tuple[Message, ...] = ()
    max_turns: int = 10
    max_tokens: int = 2000

    def append(self, message: Message) -> "ConversationHistory":
        """
        Return a new history with ``message`` appended and the window applied.

        Oldest messages are dropped first, never below the latest exchange.
        """
        messages = list(self.messages) + [message]

        max_messages = self.max_turns * 2
        if len(messages) > max_messages:
            messages = messages[-max_messages:]

        total_tokens = sum(_estimate_tokens(m.content) for m in messages)
        while total_tokens > self.max_tokens and len(messages) > 2:
            removed = messages.pop(0)
            total_tokens -= _estimate_tokens(removed.content)

        return replace(self, messages=tuple(messages))

    def append_user(
        self,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "ConversationHistory":
        """Return a new history with a user message appended."""
        return self.append(Message(role="user", content=content, metadata=metadata or {}))

    def append_assistant(
        self,
        content: str,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> "ConversationHistory":
        """Return a new history with an assistant message appended."""
        return self.append(Message(role="assistant", content=content, metadata=metadata or {}))

    def get_messages_for_llm(self) -> List[Dict[str, str]]:
        """
        Get messages in LLM API format.

        Returns format compatible with OpenAI/Ollama chat APIs:
        [{"role": "user", "content": "..."}, {"role": "assistant", "content": "..."}]
        """
        return [{"role": m.role, "content": m.content} for m in self.messages]

    def get_context_string(self) -> str:
        """Get conversation as a formatted string."""
        return "\n".join(f"{m.role.capitalize()}: {m.content}" for m in self.messages)

    def get_last_user_message(self) -> Optional[str]:
        """Get the most recent user message."""
        for msg in reversed(self.messages):
            if msg.role == "user":
                return msg.content
        return None

    def get_last_assistant_message(self) -> Optional[str]:
        """Get the most recent assistant message."""
        for msg in reversed(self.messages):
            if msg.role == "assistant":
                return msg.content
        return None

    @property
    def last_activity(self) -> Optional[datetime]:
        return self.messages[-1].timestamp if self.messages else None

    def __len__(self) -> int:
        """Return number of messages."""
        return len(self.messages)

    def to_dict(self) -> Dict[str, Any]:
        """Export history to dictionary for persistence."""
        return {
            "messages": [m.to_dict() for m in self.messages],
            "max_turns": self.max_turns,
            "max_tokens": self.max_tokens,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ConversationHistory":
        """Create history from dictionary."""
        return cls(
            messages=tuple(Message.from_dict(m) for m in data.get("messages", [])),
            max_turns=data.get("max_turns", 10),
            max_tokens=data.get("max_tokens", 2000),
        )


class SessionStore:
    """
    Keeps the latest ConversationHistory per session id.

    Thread-safe; a session lasts until end_session or cleanup.

    Example:
        store = SessionStore()
        history = store.get("session-1")
        store.set("session-1", history.append_user("Hello!"))
        store.cleanup_old_sessions(max_age_hours=24)
    """

    def __init__(self, default_max_turns: int = 10, default_max_tokens: int = 2000):
        self._sessions: Dict[str, ConversationHistory] = {}
        self._lock = threading.Lock()
        self.default_max_turns = default_max_turns
        self.default_max_tokens = default_max_tokens

        logger.info("SessionStore initialized")

    def get(self, session_id: str) -> ConversationHistory:
        """Return the session's history, or a fresh empty one."""
        with self._lock:
            history = self._sessions.get(session_id)
        if history is None:
            history = ConversationHistory(
                max_turns=self.default_max_turns,
                max_tokens=self.default_max_tokens,
            )
        return history

    def set(self, session_id: str, history: ConversationHistory) -> None:
        """Store the session's latest history."""
        with self._lock:
            self._sessions[session_id] = history

    def end_session(self, session_id: str) -> bool:
        """
        Forget a session.

        Returns:
            True if deleted, False if not found
        """
        with self._lock:
            if session_id in self._sessions:
                del self._sessions[session_id]
                logger.debug(f"Ended session {session_id}")
                return True
            return False

    def cleanup_old_sessions(self, max_age_hours: float = 24) -> int:
        """
        Remove sessions with no recent activity.

        Args:
            max_age_hours: Max hours since last message

        Returns:
            Number of sessions removed
        """
        cutoff = datetime.utcnow() - timedelta(hours=max_age_hours)

        with self._lock:
            to_remove = [
                session_id
                for session_id, history in self._sessions.items()
                if history.last_activity is None or history.last_activity < cutoff
            ]
            for session_id in to_remove:
                del self._sessions[session_id]

        if to_remove:
            logger.info(f"Cleaned up {len(to_remove)} old sessions")

        return len(to_remove)

    def session_ids(self) -> List[str]:
        """Get all active session IDs."""
        with self._lock:
            return list(self._sessions.keys())

    def __len__(self) -> int:
        """Return number of active sessions."""
        return len(self._sessions)
