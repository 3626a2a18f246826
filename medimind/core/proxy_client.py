"""
Client for the MediMind gateway.

Used by the assistant services to reach the model through the proxy
endpoint. Summaries, suggestions and speech resolve to fallback values on
failure; the answer stream and verification raise, because the chat loop
needs to tell those failures apart from empty results.
"""

from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
from pydantic import BaseModel, ValidationError

from medimind.config import settings
from medimind.models.schemas import (
    ChatModel,
    Document,
    GenerateSpeechPayload,
    GenerateStreamPayload,
    ProxyAction,
    SuggestedQuestions,
    SuggestQuestionsPayload,
    SummarizePayload,
    VerificationResult,
    VerifyPayload,
    Voice,
)
from medimind.utils.logger import get_logger

logger = get_logger("proxy_client")

LLAMA_NOT_INTEGRATED = "LLaMA 3 is not integrated in this client-side application."
SUMMARY_UNAVAILABLE = "Unable to generate a summary for this document."
SUMMARY_FAILED = "An error occurred while generating the summary."

MAX_SUGGESTED_QUESTIONS = 3


class ProxyError(Exception):
    """Raised when the gateway answers with an error or cannot be reached."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class VerificationError(Exception):
    """Raised when an answer could not be verified."""


def _error_message(response: httpx.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("error"):
        return str(data["error"])
    return f"Proxy request failed with status {response.status_code}"


def _is_llama(model_name: Any) -> bool:
    return str(getattr(model_name, "value", model_name)) == ChatModel.LLAMA3.value


class ProxyClient:
    """
    Async client for the action-dispatched proxy endpoint.

    Args:
        proxy_url: Gateway endpoint (defaults to settings.proxy_url)
        http_client: Shared httpx client; one is created when omitted
    """

    def __init__(
        self,
        proxy_url: Optional[str] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        self.proxy_url = proxy_url or settings.proxy_url
        self._http = http_client or httpx.AsyncClient(
            timeout=settings.proxy_timeout_seconds
        )

    async def aclose(self) -> None:
        await self._http.aclose()

    def _envelope(self, action: ProxyAction, payload: BaseModel) -> Dict[str, Any]:
        return {
            "action": action.value,
            "payload": payload.model_dump(mode="json", by_alias=True, exclude_none=True),
        }

    async def _call(self, action: ProxyAction, payload: BaseModel) -> Dict[str, Any]:
        response = await self._http.post(self.proxy_url, json=self._envelope(action, payload))
        if response.is_error:
            raise ProxyError(_error_message(response), response.status_code)
        return response.json()

    async def summarize_document(
        self,
        document: Document,
        system_instruction: str,
        summary_prompt: str,
        model_name: ChatModel
    ) -> str:
        """Summary text, or a displayable fallback message."""
        if _is_llama(model_name):
            return LLAMA_NOT_INTEGRATED

        payload = SummarizePayload(
            document=document,
            system_instruction=system_instruction,
            summary_prompt=summary_prompt,
            model_name=ChatModel(model_name).value,
        )
        try:
            data = await self._call(ProxyAction.SUMMARIZE, payload)
        except (ProxyError, httpx.HTTPError, ValueError) as e:
            logger.error("Summary request failed", error=str(e))
            return SUMMARY_FAILED

        return data.get("text") or SUMMARY_UNAVAILABLE

    async def generate_answer_stream(
        self,
        query: str,
        document: Document,
        system_instruction: str,
        model_name: ChatModel
    ) -> AsyncIterator[str]:
        """
        Stream an answer as text chunks in delivery order.

        Raises:
            ProxyError: If the gateway rejects the request or the stream breaks
        """
        if _is_llama(model_name):
            yield LLAMA_NOT_INTEGRATED
            return

        payload = GenerateStreamPayload(
            query=query,
            document=document,
            system_instruction=system_instruction,
            model_name=ChatModel(model_name).value,
        )
        envelope = self._envelope(ProxyAction.GENERATE_STREAM, payload)
        try:
            async with self._http.stream("POST", self.proxy_url, json=envelope) as response:
                if response.is_error:
                    await response.aread()
                    raise ProxyError(_error_message(response), response.status_code)

                async for chunk in response.aiter_text():
                    if chunk:
                        yield chunk
        except httpx.HTTPError as e:
            logger.error("Answer stream failed", error=str(e))
            raise ProxyError(f"Answer stream failed: {e}") from e

    async def verify_answer(self, answer: str, document: Document) -> VerificationResult:
        """
        Check an answer against the source document.

        Raises:
            VerificationError: On transport failure or a malformed verdict
        """
        payload = VerifyPayload(answer=answer, document=document)
        try:
            data = await self._call(ProxyAction.VERIFY, payload)
            json_text = (data.get("text") or "").strip() or "{}"
            return VerificationResult.model_validate_json(json_text)
        except (ProxyError, httpx.HTTPError, ValidationError, ValueError) as e:
            logger.error("Verification request failed", error=str(e))
            raise VerificationError(str(e)) from e

    async def generate_suggested_questions(
        self,
        summary: str,
        model_name: ChatModel
    ) -> List[str]:
        """Up to three follow-up questions; empty on any failure."""
        if _is_llama(model_name):
            return []

        payload = SuggestQuestionsPayload(summary=summary, model_name=ChatModel(model_name).value)
        try:
            data = await self._call(ProxyAction.SUGGEST_QUESTIONS, payload)
            json_text = (data.get("text") or "").strip() or "{}"
            parsed = SuggestedQuestions.model_validate_json(json_text)
        except (ProxyError, httpx.HTTPError, ValueError) as e:
            logger.error("Suggested questions request failed", error=str(e))
            return []

        return parsed.questions[:MAX_SUGGESTED_QUESTIONS]

    async def generate_speech(self, text: str, voice: Voice) -> Optional[str]:
        """Base64 audio for the text, or None."""
        payload = GenerateSpeechPayload(text=text, voice=voice)
        try:
            data = await self._call(ProxyAction.GENERATE_SPEECH, payload)
        except (ProxyError, httpx.HTTPError, ValueError) as e:
            logger.error("Speech request failed", error=str(e))
            return None

        return data.get("audioData") or None
