"""
Tests for RAG Agent Module

End-to-end tests for RAGAgent, the public API, with a deterministic
embedding provider, a mocked LLM and fake HTTP endpoints.
"""

import threading
from unittest.mock import Mock

import pytest

from docbot.chunker import DocumentChunker
from docbot.errors import (
    BuildCancelled,
    ChatbotNotFound,
    DatabaseError,
    NoDocumentsLoaded,
    NoSourcesProvided,
)
from docbot.loaders import Source, SourceLoader
from docbot.memory import SessionStore
from docbot.rag_agent import RAGAgent
from docbot.rag_chain import ChatbotConfig, RAGResponse

from conftest import make_http_client


BAD_URL = "https://broken.example.com/"


@pytest.fixture
def loader():
    return SourceLoader(http_client=make_http_client({
        "https://acme.example.com/": (
            200,
            "<html><body><p>Acme support is open from 9 to 5 on weekdays.</p></body></html>",
        ),
    }))


@pytest.fixture
def agent(embedding_service, vector_store, llm_service, loader, repository):
    return RAGAgent(
        embedding_service=embedding_service,
        vector_store=vector_store,
        llm_service=llm_service,
        loader=loader,
        chunker=DocumentChunker(chunk_size=1000, chunk_overlap=200),
        repository=repository,
        sessions=SessionStore(),
    )


@pytest.fixture
def chatbot_id(agent, pdf_file):
    return agent.build_chatbot(
        owner_id="owner-1",
        name="Acme Bot",
        sources=[Source.from_path(pdf_file), Source.from_url("acme.example.com")],
    )


def sent_prompt(llm_provider):
    return llm_provider.complete.call_args.kwargs["prompt"]


class TestBuildChatbot:
    """Tests for chatbot creation."""

    def test_build_and_answer(self, agent, chatbot_id, llm_provider):
        response = agent.answer_question(chatbot_id, "How much is the premium widget?")

        assert isinstance(response, RAGResponse)
        assert response.text == "Generated answer"
        assert "25 dollars" in sent_prompt(llm_provider)

    def test_record_stored(self, agent, chatbot_id, pdf_file):
        chatbot = agent.get_chatbot(chatbot_id, owner_id="owner-1")

        assert chatbot.name == "Acme Bot"
        assert chatbot.sources[0] == Source.from_path(pdf_file)
        assert chatbot.config == ChatbotConfig()

    def test_bad_url_does_not_fail_build(self, agent, pdf_file, vector_store):
        chatbot_id = agent.build_chatbot(
            "owner-1",
            "Bot",
            [Source.from_path(pdf_file), Source.from_url(BAD_URL)],
        )

        assert vector_store.exists(chatbot_id)
        assert agent.get_chatbot(chatbot_id) is not None

    def test_no_sources(self, agent, repository):
        with pytest.raises(NoSourcesProvided):
            agent.build_chatbot("owner-1", "Bot", [])
        assert repository.count() == 0

    def test_nothing_usable_leaves_no_record(self, agent, repository):
        with pytest.raises(NoDocumentsLoaded):
            agent.build_chatbot("owner-1", "Bot", [Source.from_url(BAD_URL)])
        assert repository.count() == 0

    def test_cancelled_build_leaves_no_record(self, agent, repository):
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(BuildCancelled):
            agent.build_chatbot("owner-1", "Bot", [Source.from_text("x")], cancel_event=cancel)
        assert repository.count() == 0

    def test_record_failure_removes_index(self, agent, repository, vector_store):
        repository.create = Mock(side_effect=DatabaseError("Failed to create chatbot"))

        with pytest.raises(DatabaseError):
            agent.build_chatbot("owner-1", "Bot", [Source.from_text("Some content.")])

        assert vector_store.count() == 0


class TestConversation:
    """Tests for answering."""

    def test_follow_up_uses_history(self, agent, chatbot_id, llm_provider):
        first = agent.answer_question(chatbot_id, "What does the basic widget cost?")
        agent.answer_question(chatbot_id, "And the premium one?", session_history=first.history)

        history_sent = llm_provider.complete.call_args.kwargs["history"]
        assert history_sent[0] == {"role": "user", "content": "What does the basic widget cost?"}
        assert history_sent[1]["role"] == "assistant"

    def test_custom_prompt_applied_without_rebuild(self, agent, chatbot_id, llm_provider, embedding_provider):
        agent.update_chatbot(chatbot_id, "owner-1", custom_prompt="Answer like a pirate.")
        calls_before = embedding_provider.calls

        agent.answer_question(chatbot_id, "premium widget price")

        assert sent_prompt(llm_provider).startswith("Answer like a pirate.\nContext: ")
        # Only the query was embedded
        assert embedding_provider.calls == calls_before + 1

    def test_model_change(self, agent, chatbot_id, llm_provider):
        agent.update_chatbot(chatbot_id, "owner-1", model_name="gpt-4o")

        agent.answer_question(chatbot_id, "premium widget price")

        assert llm_provider.complete.call_args.kwargs["model"] == "gpt-4o"

    def test_empty_prompt_resets(self, agent, chatbot_id):
        agent.update_chatbot(chatbot_id, "owner-1", custom_prompt="Be brief.")
        updated = agent.update_chatbot(chatbot_id, "owner-1", custom_prompt="")

        assert updated.config.custom_prompt is None

    def test_unknown_chatbot(self, agent):
        with pytest.raises(ChatbotNotFound):
            agent.answer_question("no-such-bot", "hello")

    def test_other_owner(self, agent, chatbot_id):
        with pytest.raises(ChatbotNotFound):
            agent.answer_question(chatbot_id, "hello", owner_id="owner-2")
        with pytest.raises(ChatbotNotFound):
            agent.update_chatbot(chatbot_id, "owner-2", name="Stolen")

    def test_lost_index_rebuilt(self, agent, chatbot_id, vector_store):
        vector_store.delete(chatbot_id)

        response = agent.answer_question(chatbot_id, "premium widget price")

        assert vector_store.exists(chatbot_id)
        assert response.source_passages

    def test_sessions(self, agent, chatbot_id, llm_provider):
        agent.ask(chatbot_id, "What does the basic widget cost?", session_id="s1")
        agent.ask(chatbot_id, "And the premium one?", session_id="s1")

        assert len(llm_provider.complete.call_args.kwargs["history"]) == 2

        assert agent.end_session(chatbot_id, "s1") is True
        agent.ask(chatbot_id, "Hello again", session_id="s1")
        assert llm_provider.complete.call_args.kwargs["history"] == []


class TestManagement:

    def test_list_chatbots(self, agent, chatbot_id):
        other = agent.build_chatbot("owner-2", "Other", [Source.from_text("Other content.")])

        assert [c.id for c in agent.list_chatbots("owner-1")] == [chatbot_id]
        assert [c.id for c in agent.list_chatbots("owner-2")] == [other]

    def test_delete_removes_passages(self, agent, chatbot_id, vector_store, repository):
        assert agent.delete_chatbot(chatbot_id, "owner-1") is True

        assert not vector_store.exists(chatbot_id)
        assert repository.get(chatbot_id) is None
        with pytest.raises(ChatbotNotFound):
            agent.answer_question(chatbot_id, "hello")

    def test_delete_other_owner(self, agent, chatbot_id, vector_store):
        with pytest.raises(ChatbotNotFound):
            agent.delete_chatbot(chatbot_id, "owner-2")
        assert vector_store.exists(chatbot_id)

    def test_rebuild(self, agent, chatbot_id):
        report = agent.rebuild_chatbot(chatbot_id, "owner-1")

        assert report.chatbot_id == chatbot_id
        assert report.passage_count == 2

    def test_stats(self, agent, chatbot_id):
        stats = agent.get_stats()

        assert stats["chatbots"] == 1
        assert stats["knowledge_base"]["total_passages"] == 2
        assert stats["knowledge_base"]["provider"] == "faiss"
        assert stats["llm"]["model"] == "gpt-4o-mini"


class TestNarration:

    def test_summarize_for_narration(self, agent, llm_provider):
        script = agent.summarize_for_narration(text="Acme history.", target_minutes=3)

        assert script == "Generated answer"
        assert "approximately 450 words" in sent_prompt(llm_provider)
