"""
Document workspace for MediMind.

Holds the session's uploaded documents and the current selection, keeps
the selected document's summary and suggested questions up to date, and
hands out chat sessions and speech toggles bound to the user's preferences.
"""

from typing import List, Optional, Tuple

from medimind.core.prompts import get_summary_prompt, get_system_instruction
from medimind.core.proxy_client import ProxyClient
from medimind.models.schemas import ChatModel, ManagedDocument, Persona, SummaryFocus, Voice
from medimind.services.corrective_rag import CorrectiveRAGSession
from medimind.services.local_store import LocalStore, Preferences
from medimind.services.speech import SpeechToggle
from medimind.utils.logger import get_logger

logger = get_logger("workspace")

SUMMARY_ERROR = "Could not generate a summary for this document."


class DocumentWorkspace:
    """
    Application state for one user session.

    Documents live in memory in upload order. Preferences are persisted
    through the local store; chat history is persisted per document by
    the chat sessions.
    """

    def __init__(self, client: ProxyClient, store: LocalStore):
        self.client = client
        self.store = store
        self.preferences = Preferences(store)

        self.documents: List[ManagedDocument] = []
        self.selected_document_id: Optional[str] = None

        self.summary = ""
        self.suggested_questions: List[str] = []
        self.is_summarizing = False
        self.is_generating_suggestions = False

        # Only one live session; every session shares the chatHistory_<id> record
        self._session: Optional[CorrectiveRAGSession] = None
        self._session_key: Optional[Tuple[str, ChatModel]] = None

    # =========================================================================
    # Documents
    # =========================================================================

    @property
    def selected_document(self) -> Optional[ManagedDocument]:
        for document in self.documents:
            if document.id == self.selected_document_id:
                return document
        return None

    def add_documents(self, new_documents: List[ManagedDocument]) -> None:
        """Append uploads and select the last one."""
        self.documents = self.documents + list(new_documents)
        if new_documents:
            self.selected_document_id = new_documents[-1].id
        logger.info("Documents added", count=len(new_documents), total=len(self.documents))

    def select_document(self, document_id: str) -> None:
        self.selected_document_id = document_id

    def delete_document(self, document_id: str) -> None:
        """Remove a document; a deleted selection falls back to the first remaining one."""
        self.documents = [doc for doc in self.documents if doc.id != document_id]
        if self._session_key is not None and self._session_key[0] == document_id:
            self._session = None
            self._session_key = None
        if self.selected_document_id == document_id:
            self.selected_document_id = self.documents[0].id if self.documents else None
        logger.info("Document deleted", document_id=document_id, remaining=len(self.documents))

    # =========================================================================
    # Preferences
    # =========================================================================

    @property
    def persona(self) -> Persona:
        return self.preferences.persona

    @persona.setter
    def persona(self, value: Persona) -> None:
        self.preferences.persona = value

    @property
    def voice(self) -> Voice:
        return self.preferences.voice

    @voice.setter
    def voice(self, value: Voice) -> None:
        self.preferences.voice = value

    @property
    def model(self) -> ChatModel:
        return self.preferences.model

    @model.setter
    def model(self, value: ChatModel) -> None:
        self.preferences.model = value

    @property
    def summary_focus(self) -> SummaryFocus:
        return self.preferences.summary_focus

    @summary_focus.setter
    def summary_focus(self, value: SummaryFocus) -> None:
        self.preferences.summary_focus = value

    # =========================================================================
    # Summary & suggestions
    # =========================================================================

    async def refresh_summary(self) -> str:
        """
        Regenerate the summary and suggested questions for the selection.

        Suggestions are skipped when the summary itself failed.

        Returns:
            The new summary ('' when nothing is selected)
        """
        document = self.selected_document
        self.summary = ""
        self.suggested_questions = []
        if document is None:
            return self.summary

        self.is_summarizing = True
        self.is_generating_suggestions = True
        model = self.model
        try:
            summary = await self.client.summarize_document(
                document.as_document(),
                get_system_instruction(self.persona),
                get_summary_prompt(self.summary_focus),
                model,
            )
            self.summary = summary

            if summary and "could not generate" not in summary.lower():
                self.suggested_questions = await self.client.generate_suggested_questions(
                    summary, model
                )
        except Exception as e:
            logger.error("Failed to generate summary or suggestions", document_id=document.id, error=str(e))
            self.summary = SUMMARY_ERROR
        finally:
            self.is_summarizing = False
            self.is_generating_suggestions = False

        logger.info(
            "Summary refreshed",
            document_id=document.id,
            suggestions=len(self.suggested_questions)
        )
        return self.summary

    # =========================================================================
    # Chat & speech
    # =========================================================================

    def chat_session(self) -> Optional[CorrectiveRAGSession]:
        """
        Chat session for the selected document and current model.

        Returns None when nothing is selected or the model is not a Gemini
        model. Switching document or model replaces the session, and the new
        one re-reads the persisted history. The session follows later persona
        changes.
        """
        document = self.selected_document
        model = self.model
        if document is None or not model.is_gemini:
            return None

        key = (document.id, model)
        if self._session is None or self._session_key != key:
            self._session = CorrectiveRAGSession(
                document=document.as_document(),
                document_id=document.id,
                persona=self.persona,
                model_name=model,
                client=self.client,
                store=self.store,
            )
            self._session_key = key
        else:
            self._session.persona = self.persona
        return self._session

    def speech_toggle(self, text: str) -> SpeechToggle:
        """Read-aloud control for one answer, using the current voice."""
        return SpeechToggle(text=text, voice=self.voice, client=self.client)
