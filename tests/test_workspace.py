"""
Tests for the document workspace, local store and preferences.
"""

import json

import pytest

from medimind.core.proxy_client import SUMMARY_FAILED
from medimind.models.schemas import (
    ChatModel,
    DocumentType,
    ManagedDocument,
    Persona,
    SummaryFocus,
    VerificationResult,
    Voice,
)
from medimind.services.local_store import LocalStore, Preferences, chat_history_key
from medimind.services.speech import SpeechState
from medimind.services.workspace import SUMMARY_ERROR, DocumentWorkspace


def make_document(name, content="Hemoglobin 10.1 g/dL"):
    return ManagedDocument(
        id=f"{name}-1700000000000",
        name=name,
        type=DocumentType.TEXT,
        content=content,
    )


class FakeClient:
    """Stands in for ProxyClient in the workspace."""

    def __init__(self, summary="- Mild anemia", questions=("Why low?",), fail=False):
        self.summary = summary
        self.questions = list(questions)
        self.fail = fail
        self.summary_calls = []
        self.suggestion_calls = []

    async def summarize_document(self, document, system_instruction, summary_prompt, model_name):
        self.summary_calls.append((document, system_instruction, summary_prompt, model_name))
        if self.fail:
            raise RuntimeError("network down")
        return self.summary

    async def generate_suggested_questions(self, summary, model_name):
        self.suggestion_calls.append((summary, model_name))
        return self.questions

    async def generate_speech(self, text, voice):
        return None

    async def generate_answer_stream(self, query, document, system_instruction, model_name):
        yield f"answer to {query}"

    async def verify_answer(self, answer, document):
        return VerificationResult(is_consistent=True, reasoning="Matches.")


@pytest.fixture
def store(tmp_path):
    return LocalStore(tmp_path / "storage.json")


@pytest.fixture
def workspace(store):
    return DocumentWorkspace(FakeClient(), store)


class TestLocalStore:

    def test_values_persist(self, tmp_path):
        path = tmp_path / "storage.json"
        LocalStore(path).set_json("persona", "empathetic")

        assert LocalStore(path).get_json("persona") == "empathetic"

    def test_corrupt_file_is_empty(self, tmp_path):
        path = tmp_path / "storage.json"
        path.write_text("{{{ not json", encoding="utf-8")

        store = LocalStore(path)

        assert store.keys() == []
        store.set_item("a", "1")
        assert json.loads(path.read_text(encoding="utf-8")) == {"a": "1"}

    def test_corrupt_value_uses_default(self, store):
        store.set_item("model", "gemini-2.5-flash")
        assert store.get_json("model", default="fallback") == "fallback"

    def test_remove_item(self, store):
        store.set_item("a", "1")
        store.remove_item("a")
        store.remove_item("missing")

        assert store.get_item("a") is None


class TestPreferences:

    def test_defaults(self, store):
        preferences = Preferences(store)

        assert preferences.persona == Persona.PROFESSIONAL
        assert preferences.voice == Voice.KORE
        assert preferences.model == ChatModel.GEMINI_FLASH
        assert preferences.summary_focus == SummaryFocus.KEY_POINTS

    def test_round_trip_through_file(self, tmp_path):
        path = tmp_path / "storage.json"
        preferences = Preferences(LocalStore(path))
        preferences.persona = Persona.EMPATHETIC
        preferences.voice = Voice.CHARON
        preferences.model = ChatModel.GEMINI_PRO
        preferences.summary_focus = SummaryFocus.DIAGNOSIS

        reloaded = Preferences(LocalStore(path))

        assert reloaded.persona == Persona.EMPATHETIC
        assert reloaded.voice == Voice.CHARON
        assert reloaded.model == ChatModel.GEMINI_PRO
        assert reloaded.summary_focus == SummaryFocus.DIAGNOSIS

    def test_unknown_values_fall_back(self, store):
        store.set_json("persona", "sarcastic")
        store.set_json("voice", ["Kore"])

        preferences = Preferences(store)

        assert preferences.persona == Persona.PROFESSIONAL
        assert preferences.voice == Voice.KORE


class TestDocumentSelection:
    """Upload order and selection rules."""

    def test_upload_selects_last_new_document(self, workspace):
        workspace.add_documents([make_document("a.txt")])
        workspace.add_documents([make_document("b.txt"), make_document("c.txt")])

        assert [d.name for d in workspace.documents] == ["a.txt", "b.txt", "c.txt"]
        assert workspace.selected_document.name == "c.txt"

    def test_empty_upload_keeps_selection(self, workspace):
        workspace.add_documents([make_document("a.txt")])
        workspace.add_documents([])

        assert workspace.selected_document.name == "a.txt"

    def test_deleting_selection_selects_first_remaining(self, workspace):
        workspace.add_documents([make_document(n) for n in ("a.txt", "b.txt", "c.txt")])

        workspace.delete_document("c.txt-1700000000000")

        assert workspace.selected_document_id == "a.txt-1700000000000"

    def test_deleting_other_document_keeps_selection(self, workspace):
        workspace.add_documents([make_document(n) for n in ("a.txt", "b.txt")])

        workspace.delete_document("a.txt-1700000000000")

        assert workspace.selected_document_id == "b.txt-1700000000000"

    def test_deleting_last_document_clears_selection(self, workspace):
        workspace.add_documents([make_document("a.txt")])

        workspace.delete_document("a.txt-1700000000000")

        assert workspace.selected_document is None
        assert workspace.documents == []


class TestSummary:

    @pytest.mark.asyncio
    async def test_summary_then_suggestions(self, store):
        client = FakeClient()
        workspace = DocumentWorkspace(client, store)
        workspace.summary_focus = SummaryFocus.TREATMENT_PLAN
        workspace.add_documents([make_document("a.txt")])

        summary = await workspace.refresh_summary()

        assert summary == "- Mild anemia"
        assert workspace.suggested_questions == ["Why low?"]
        assert workspace.is_summarizing is False
        assert workspace.is_generating_suggestions is False

        document, _, summary_prompt, model = client.summary_calls[0]
        assert document.type == DocumentType.TEXT
        assert "treatment plan" in summary_prompt
        assert model == ChatModel.GEMINI_FLASH
        assert client.suggestion_calls == [("- Mild anemia", ChatModel.GEMINI_FLASH)]

    @pytest.mark.asyncio
    async def test_nothing_selected(self, store):
        client = FakeClient()
        workspace = DocumentWorkspace(client, store)

        assert await workspace.refresh_summary() == ""
        assert client.summary_calls == []

    @pytest.mark.asyncio
    async def test_failed_summary_skips_suggestions(self, store):
        client = FakeClient(summary="Sorry, I could not generate a summary.")
        workspace = DocumentWorkspace(client, store)
        workspace.add_documents([make_document("a.txt")])

        await workspace.refresh_summary()

        assert workspace.suggested_questions == []
        assert client.suggestion_calls == []

    @pytest.mark.asyncio
    async def test_unexpected_error_sets_error_summary(self, store):
        workspace = DocumentWorkspace(FakeClient(fail=True), store)
        workspace.add_documents([make_document("a.txt")])

        assert await workspace.refresh_summary() == SUMMARY_ERROR
        assert workspace.is_summarizing is False

    @pytest.mark.asyncio
    async def test_fallback_summary_is_shown(self, store):
        workspace = DocumentWorkspace(FakeClient(summary=SUMMARY_FAILED, questions=()), store)
        workspace.add_documents([make_document("a.txt")])

        assert await workspace.refresh_summary() == SUMMARY_FAILED


class TestChatSessions:

    def test_no_session_without_selection(self, workspace):
        assert workspace.chat_session() is None

    def test_no_session_for_llama(self, workspace):
        workspace.add_documents([make_document("a.txt")])
        workspace.model = ChatModel.LLAMA3

        assert workspace.chat_session() is None

    def test_session_reused_and_follows_persona(self, workspace):
        workspace.add_documents([make_document("a.txt")])

        first = workspace.chat_session()
        workspace.persona = Persona.EMPATHETIC
        second = workspace.chat_session()

        assert first is second
        assert second.persona == Persona.EMPATHETIC

    def test_model_change_gives_new_session(self, workspace):
        workspace.add_documents([make_document("a.txt")])

        first = workspace.chat_session()
        workspace.model = ChatModel.GEMINI_PRO
        second = workspace.chat_session()

        assert first is not second
        assert second.model_name == ChatModel.GEMINI_PRO

    @pytest.mark.asyncio
    async def test_switching_models_keeps_shared_history(self, workspace, store):
        """Each model's session sees what the other model's session persisted."""
        workspace.add_documents([make_document("a.txt")])

        await workspace.chat_session().send_message("q1")
        workspace.model = ChatModel.GEMINI_PRO
        await workspace.chat_session().send_message("q2")
        workspace.model = ChatModel.GEMINI_FLASH
        flash = workspace.chat_session()

        assert [m.content for m in flash.messages if m.author == "user"] == ["q1", "q2"]

        await flash.send_message("q3")

        stored = store.get_json(chat_history_key("a.txt-1700000000000"))
        assert [m["content"] for m in stored if m["author"] == "user"] == ["q1", "q2", "q3"]
        assert stored[-1]["content"]["answer"] == "answer to q3"

    def test_deleting_document_drops_its_session(self, workspace):
        workspace.add_documents([make_document("a.txt"), make_document("b.txt")])
        workspace.select_document("a.txt-1700000000000")
        first = workspace.chat_session()

        workspace.delete_document("a.txt-1700000000000")

        assert workspace.chat_session() is not first
        assert workspace.chat_session().document_id == "b.txt-1700000000000"

    def test_session_bound_to_selected_document(self, workspace):
        workspace.add_documents([make_document("a.txt"), make_document("b.txt")])
        workspace.select_document("a.txt-1700000000000")

        assert workspace.chat_session().document_id == "a.txt-1700000000000"


class TestSpeechToggle:

    @pytest.mark.asyncio
    async def test_uses_current_voice(self, workspace):
        workspace.voice = Voice.ZEPHYR

        toggle = workspace.speech_toggle("Hello")

        assert toggle.voice == Voice.ZEPHYR
        assert await toggle.toggle() == SpeechState.IDLE
