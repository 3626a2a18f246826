"""
Tests for the corrective RAG chat loop.
"""

import asyncio

import pytest

from medimind.core.proxy_client import ProxyError, VerificationError
from medimind.models.schemas import (
    BotMessageContent,
    ChatModel,
    Document,
    DocumentType,
    MessageAuthor,
    Persona,
    VerificationResult,
    VerificationStatus,
)
from medimind.services.corrective_rag import (
    NO_ANSWER,
    STREAM_FAILED_ANSWER,
    VERIFICATION_FAILED_REASONING,
    VERIFYING_REASONING,
    CorrectiveRAGSession,
    reconcile,
)
from medimind.services.local_store import LocalStore, chat_history_key


DOCUMENT = Document(type=DocumentType.TEXT, content="Take iron 65mg daily.")
CONSISTENT = VerificationResult(is_consistent=True, reasoning="Matches the document.")


class FakeAnswerClient:
    """Scripted stream and verdict; records what it was asked."""

    def __init__(self, chunks=("Take ", "65mg ", "daily."), verdict=CONSISTENT,
                 stream_error=None, verify_error=None, gate=None):
        self.chunks = list(chunks)
        self.verdict = verdict
        self.stream_error = stream_error
        self.verify_error = verify_error
        self.gate = gate
        self.stream_calls = []
        self.verify_calls = []

    def generate_answer_stream(self, query, document, system_instruction, model_name):
        self.stream_calls.append((query, system_instruction, model_name))
        return self._stream()

    async def _stream(self):
        if self.gate is not None:
            await self.gate.wait()
        for chunk in self.chunks:
            yield chunk
        if self.stream_error is not None:
            raise self.stream_error

    async def verify_answer(self, answer, document):
        self.verify_calls.append(answer)
        if self.verify_error is not None:
            raise self.verify_error
        return self.verdict


@pytest.fixture
def store(tmp_path):
    return LocalStore(tmp_path / "storage.json")


def make_session(store, client, updates=None, document_id="report.txt-1"):
    return CorrectiveRAGSession(
        document=DOCUMENT,
        document_id=document_id,
        persona=Persona.CONCISE,
        model_name=ChatModel.GEMINI_FLASH,
        client=client,
        store=store,
        on_update=updates.append if updates is not None else None,
    )


class TestReconcile:
    """Verdict to final status."""

    def test_consistent_is_verified(self):
        result = reconcile("65mg", VerificationResult(
            is_consistent=True, reasoning="ok", corrected_answer="ignored"
        ))

        assert result.status == VerificationStatus.VERIFIED
        assert result.answer == "65mg"
        assert result.is_verifying is False

    def test_inconsistent_with_correction_is_corrected(self):
        result = reconcile("100mg", VerificationResult(
            is_consistent=False, reasoning="Dose differs.", corrected_answer="65mg"
        ))

        assert result.status == VerificationStatus.CORRECTED
        assert result.answer == "65mg"
        assert result.reasoning == "Dose differs."

    def test_inconsistent_without_correction_is_unverified(self):
        result = reconcile("100mg", VerificationResult(
            is_consistent=False, reasoning="Unclear.", corrected_answer="   "
        ))

        assert result.status == VerificationStatus.UNVERIFIED
        assert result.answer == "100mg"


class TestSendMessage:
    """One question through generate, verify and correct."""

    @pytest.mark.asyncio
    async def test_verified_answer(self, store):
        client = FakeAnswerClient()
        session = make_session(store, client)

        final = await session.send_message("How much iron?")

        assert final.status == VerificationStatus.VERIFIED
        assert final.answer == "Take 65mg daily."
        assert client.verify_calls == ["Take 65mg daily."]

        user, bot = session.messages
        assert user.author == MessageAuthor.USER
        assert user.content == "How much iron?"
        assert bot.author == MessageAuthor.BOT
        assert bot.content == final
        assert int(bot.id) > int(user.id)

    @pytest.mark.asyncio
    async def test_persona_and_model_sent(self, store):
        client = FakeAnswerClient()
        session = make_session(store, client)

        await session.send_message("Dose?")

        query, instruction, model = client.stream_calls[0]
        assert query == "Dose?"
        assert "straight to the point" in instruction
        assert model == ChatModel.GEMINI_FLASH

    @pytest.mark.asyncio
    async def test_partial_answers_then_verifying(self, store):
        updates = []
        session = make_session(store, FakeAnswerClient(), updates)

        await session.send_message("Dose?")

        bot_states = [messages[-1].content for messages in updates]
        answers = [content.answer for content in bot_states]
        assert answers[:4] == ["", "Take ", "Take 65mg ", "Take 65mg daily."]

        verifying = [c for c in bot_states if c.is_verifying]
        assert len(verifying) == 1
        assert verifying[0].reasoning == VERIFYING_REASONING
        assert verifying[0].answer == "Take 65mg daily."
        assert bot_states[-1].is_verifying is False

    @pytest.mark.asyncio
    async def test_corrected_answer(self, store):
        client = FakeAnswerClient(
            chunks=["Take 100mg."],
            verdict=VerificationResult(
                is_consistent=False, reasoning="Dose differs.", corrected_answer="Take 65mg."
            )
        )
        session = make_session(store, client)

        final = await session.send_message("Dose?")

        assert final.status == VerificationStatus.CORRECTED
        assert final.answer == "Take 65mg."

    @pytest.mark.asyncio
    async def test_empty_stream_is_error_without_verify(self, store):
        client = FakeAnswerClient(chunks=["", "  "])
        session = make_session(store, client)

        final = await session.send_message("Dose?")

        assert final.status == VerificationStatus.ERROR
        assert final.answer == NO_ANSWER
        assert client.verify_calls == []

    @pytest.mark.asyncio
    async def test_stream_failure_is_error(self, store):
        client = FakeAnswerClient(chunks=["Take "], stream_error=ProxyError("boom", 500))
        session = make_session(store, client)

        final = await session.send_message("Dose?")

        assert final.status == VerificationStatus.ERROR
        assert final.answer == STREAM_FAILED_ANSWER
        assert client.verify_calls == []
        assert session.is_loading is False

    @pytest.mark.asyncio
    async def test_verification_failure_is_unverified(self, store):
        client = FakeAnswerClient(verify_error=VerificationError("bad verdict"))
        session = make_session(store, client)

        final = await session.send_message("Dose?")

        assert final.status == VerificationStatus.UNVERIFIED
        assert final.answer == "Take 65mg daily."
        assert final.reasoning == VERIFICATION_FAILED_REASONING
        assert final.is_verifying is False

    @pytest.mark.asyncio
    async def test_blank_query_dropped(self, store):
        client = FakeAnswerClient()
        session = make_session(store, client)

        assert await session.send_message("   ") is None
        assert session.messages == []
        assert client.stream_calls == []

    @pytest.mark.asyncio
    async def test_question_while_loading_dropped(self, store):
        gate = asyncio.Event()
        client = FakeAnswerClient(gate=gate)
        session = make_session(store, client)

        first = asyncio.create_task(session.send_message("First?"))
        await asyncio.sleep(0)
        assert session.is_loading is True

        assert await session.send_message("Second?") is None

        gate.set()
        final = await first

        assert final.status == VerificationStatus.VERIFIED
        assert [m.content for m in session.messages if m.author == MessageAuthor.USER] == ["First?"]
        assert session.is_loading is False


class TestHistory:
    """Chat history persistence per document."""

    @pytest.mark.asyncio
    async def test_history_survives_reload(self, store, tmp_path):
        session = make_session(store, FakeAnswerClient())
        await session.send_message("Dose?")

        reloaded = make_session(LocalStore(tmp_path / "storage.json"), FakeAnswerClient())

        assert reloaded.messages == session.messages

    @pytest.mark.asyncio
    async def test_stored_with_camel_case_keys(self, store):
        session = make_session(store, FakeAnswerClient())
        await session.send_message("Dose?")

        stored = store.get_json(chat_history_key("report.txt-1"))

        assert stored[0]["author"] == "user"
        assert stored[1]["content"]["status"] == "verified"
        assert stored[1]["content"]["isVerifying"] is False

    @pytest.mark.asyncio
    async def test_histories_are_per_document(self, store):
        await make_session(store, FakeAnswerClient(), document_id="a").send_message("Dose?")

        assert make_session(store, FakeAnswerClient(), document_id="b").messages == []

    @pytest.mark.asyncio
    async def test_clear_removes_record(self, store):
        updates = []
        session = make_session(store, FakeAnswerClient(), updates)
        await session.send_message("Dose?")

        session.clear_chat()

        assert session.messages == []
        assert chat_history_key("report.txt-1") not in store.keys()
        assert updates[-1] == []

    def test_corrupt_history_starts_empty(self, store):
        store.set_item(chat_history_key("report.txt-1"), "{not json")
        assert make_session(store, FakeAnswerClient()).messages == []

    def test_wrong_shape_history_starts_empty(self, store):
        store.set_json(chat_history_key("report.txt-1"), [{"id": 1, "author": "robot"}])
        assert make_session(store, FakeAnswerClient()).messages == []

    def test_loads_existing_history(self, store):
        store.set_json(chat_history_key("report.txt-1"), [
            {"id": "1", "author": "user", "content": "Dose?"},
            {"id": "2", "author": "bot", "content": {
                "answer": "65mg", "status": "verified", "reasoning": "ok", "isVerifying": False
            }},
        ])

        messages = make_session(store, FakeAnswerClient()).messages

        assert messages[0].content == "Dose?"
        assert messages[1].content == BotMessageContent(
            answer="65mg", status=VerificationStatus.VERIFIED, reasoning="ok", is_verifying=False
        )
