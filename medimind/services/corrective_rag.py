"""
Corrective RAG chat loop for MediMind.

Each question runs three steps against the gateway:
1. stream an initial answer into a placeholder bot message
2. verify the complete answer against the source document
3. reconcile the verdict into the final answer and status

Every path ends in a terminal, displayable message, and the chat history
is persisted after each change.
"""

import time
from typing import AsyncIterator, Callable, List, Optional, Protocol

from pydantic import TypeAdapter, ValidationError

from medimind.core.prompts import get_system_instruction
from medimind.models.schemas import (
    BotMessageContent,
    ChatModel,
    Document,
    Message,
    MessageAuthor,
    Persona,
    VerificationResult,
    VerificationStatus,
)
from medimind.services.local_store import LocalStore, chat_history_key
from medimind.utils.logger import get_logger

logger = get_logger("corrective_rag")

GENERATING_REASONING = "Generating response..."
VERIFYING_REASONING = "Verifying answer for factual consistency..."

STREAM_FAILED_ANSWER = (
    "I'm sorry, I was unable to generate a response for your question. "
    "Please try rephrasing it, or ask something different about the document."
)
STREAM_FAILED_REASONING = "Failed to generate an initial answer."

NO_ANSWER = "I couldn't find a relevant answer in the document for your question."
NO_ANSWER_REASONING = "The model did not generate a response."

VERIFICATION_FAILED_REASONING = (
    "I generated an answer, but a system error occurred during the verification "
    "step. Please use this response with caution and double-check critical "
    "information."
)

_history_adapter = TypeAdapter(List[Message])


class AnswerClient(Protocol):
    """The slice of ProxyClient the chat loop depends on."""

    def generate_answer_stream(
        self,
        query: str,
        document: Document,
        system_instruction: str,
        model_name: ChatModel
    ) -> AsyncIterator[str]: ...

    async def verify_answer(self, answer: str, document: Document) -> VerificationResult: ...


def reconcile(answer: str, verification: VerificationResult) -> BotMessageContent:
    """
    Fold a verification verdict into the final bot content.

    consistent                  -> verified, original answer
    inconsistent + correction   -> corrected, corrected answer
    inconsistent, no correction -> unverified, original answer
    """
    corrected = verification.corrected_answer
    if verification.is_consistent:
        final_answer, status = answer, VerificationStatus.VERIFIED
    elif corrected and corrected.strip():
        final_answer, status = corrected, VerificationStatus.CORRECTED
    else:
        final_answer, status = answer, VerificationStatus.UNVERIFIED

    return BotMessageContent(
        answer=final_answer,
        status=status,
        reasoning=verification.reasoning,
        is_verifying=False,
    )


class CorrectiveRAGSession:
    """
    Chat session about one document.

    Questions are handled one at a time: a question sent while another is
    in flight is dropped.
    """

    def __init__(
        self,
        document: Document,
        document_id: str,
        persona: Persona,
        model_name: ChatModel,
        client: AnswerClient,
        store: LocalStore,
        on_update: Optional[Callable[[List[Message]], None]] = None
    ):
        self.document = document
        self.document_id = document_id
        self.persona = Persona(persona)
        self.model_name = ChatModel(model_name)
        self.client = client
        self.store = store
        self.on_update = on_update
        self.storage_key = chat_history_key(document_id)
        self.is_loading = False
        self._last_id = 0
        self.messages: List[Message] = self._load_history()

    def _load_history(self) -> List[Message]:
        raw = self.store.get_json(self.storage_key, default=[])
        try:
            return _history_adapter.validate_python(raw)
        except ValidationError as e:
            logger.warning(
                "Discarding unreadable chat history",
                document_id=self.document_id,
                error_count=e.error_count()
            )
            return []

    def _commit(self) -> None:
        if self.messages:
            self.store.set_json(
                self.storage_key,
                _history_adapter.dump_python(
                    self.messages, mode="json", by_alias=True, exclude_none=True
                ),
            )
        else:
            self.store.remove_item(self.storage_key)

        if self.on_update is not None:
            self.on_update(list(self.messages))

    def _next_ids(self) -> tuple[str, str]:
        now = max(time.time_ns() // 1_000_000, self._last_id + 1)
        self._last_id = now + 1
        return str(now), str(now + 1)

    def _bot_content(self, message_id: str) -> BotMessageContent:
        for message in self.messages:
            if message.id == message_id and isinstance(message.content, BotMessageContent):
                return message.content
        raise KeyError(message_id)

    def _set_bot(self, message_id: str, content: BotMessageContent) -> None:
        self.messages = [
            Message(id=m.id, author=m.author, content=content) if m.id == message_id else m
            for m in self.messages
        ]
        self._commit()

    def _update_bot(self, message_id: str, **changes) -> None:
        self._set_bot(message_id, self._bot_content(message_id).model_copy(update=changes))

    async def send_message(self, query: str) -> Optional[BotMessageContent]:
        """
        Ask a question about the document.

        Args:
            query: User question

        Returns:
            The final bot content, or None if the question was dropped
            (blank, no document, or another question still in flight)
        """
        if not query.strip() or self.document is None or self.is_loading:
            return None

        self.is_loading = True
        try:
            return await self._answer(query)
        finally:
            self.is_loading = False

    async def _answer(self, query: str) -> BotMessageContent:
        user_id, bot_id = self._next_ids()
        self.messages = self.messages + [
            Message(id=user_id, author=MessageAuthor.USER, content=query),
            Message(
                id=bot_id,
                author=MessageAuthor.BOT,
                content=BotMessageContent(
                    answer="",
                    status=VerificationStatus.UNVERIFIED,
                    reasoning=GENERATING_REASONING,
                ),
            ),
        ]
        self._commit()

        logger.info(
            "Answering question",
            document_id=self.document_id,
            model=self.model_name.value,
            persona=self.persona.value
        )

        full_answer = ""
        try:
            system_instruction = get_system_instruction(self.persona)
            stream = self.client.generate_answer_stream(
                query, self.document, system_instruction, self.model_name
            )
            async for chunk in stream:
                full_answer += chunk
                self._update_bot(bot_id, answer=full_answer)
        except Exception as e:
            logger.error("Answer generation failed", document_id=self.document_id, error=str(e))
            final = BotMessageContent(
                answer=STREAM_FAILED_ANSWER,
                status=VerificationStatus.ERROR,
                reasoning=STREAM_FAILED_REASONING,
            )
            self._set_bot(bot_id, final)
            return final

        if not full_answer.strip():
            logger.warning("Model returned an empty answer", document_id=self.document_id)
            final = BotMessageContent(
                answer=NO_ANSWER,
                status=VerificationStatus.ERROR,
                reasoning=NO_ANSWER_REASONING,
            )
            self._set_bot(bot_id, final)
            return final

        self._update_bot(bot_id, is_verifying=True, reasoning=VERIFYING_REASONING)

        try:
            verification = await self.client.verify_answer(full_answer, self.document)
        except Exception as e:
            logger.error("Answer verification failed", document_id=self.document_id, error=str(e))
            final = BotMessageContent(
                answer=full_answer,
                status=VerificationStatus.UNVERIFIED,
                reasoning=VERIFICATION_FAILED_REASONING,
                is_verifying=False,
            )
        else:
            final = reconcile(full_answer, verification)

        self._set_bot(bot_id, final)
        logger.info(
            "Answer finalized",
            document_id=self.document_id,
            status=final.status.value,
            answer_length=len(final.answer)
        )
        return final

    def clear_chat(self) -> None:
        """Drop the conversation and its persisted record."""
        self.messages = []
        self._commit()
        logger.info("Chat history cleared", document_id=self.document_id)
