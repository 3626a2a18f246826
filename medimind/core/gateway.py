"""
MediMind - Model Gateway

Server-side forwarding layer between the proxy endpoint and the hosted
Gemini models. Holds the only reference to the provider credential and maps
each proxy action onto one model invocation with a fixed schema or modality.

Nothing here retries: an upstream failure propagates to the caller as-is.
"""

import base64
from typing import AsyncIterator, Optional

from google import genai
from google.genai import types

from medimind.config import settings
from medimind.core.prompts import (
    SUGGESTED_QUESTIONS_SCHEMA,
    VERIFICATION_SCHEMA,
    build_answer_prompt,
    build_contents,
    build_suggestion_prompt,
    build_verification_prompt,
)
from medimind.models.schemas import Document, GatewayResponse, Voice
from medimind.utils.logger import get_logger

logger = get_logger("gateway")


class MissingCredentialError(RuntimeError):
    """Raised when the server has no provider API key."""

    def __init__(self, message: str = "API key not configured on server."):
        self.message = message
        super().__init__(message)


class GeminiGateway:
    """
    Stateless mapping of proxy actions to Gemini calls.

    Verification always runs on the configured verification model, whatever
    model the user picked for chat. Speech always uses the TTS model.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        client: Optional[genai.Client] = None
    ):
        """
        Initialize the gateway.

        Args:
            api_key: Provider key (defaults to settings.gemini_api_key)
            client: Pre-built SDK client, used instead of creating one

        Raises:
            MissingCredentialError: If no client is given and no key is set
        """
        if client is None:
            key = settings.gemini_api_key if api_key is None else api_key
            if not key:
                raise MissingCredentialError()
            client = genai.Client(api_key=key)

        self.client = client
        self.verification_model = settings.verification_model
        self.speech_model = settings.speech_model
        logger.info(
            "Gateway initialized",
            verification_model=self.verification_model,
            speech_model=self.speech_model
        )

    async def summarize(
        self,
        document: Document,
        system_instruction: str,
        summary_prompt: str,
        model_name: str
    ) -> GatewayResponse:
        """Summarize a document under a persona's system instruction."""
        contents = build_contents(document, summary_prompt)

        response = await self.client.aio.models.generate_content(
            model=model_name,
            contents=contents,
            config=types.GenerateContentConfig(system_instruction=system_instruction)
        )

        logger.info("Summary generated", model=model_name)
        return GatewayResponse(text=response.text, model=model_name)

    async def generate_stream(
        self,
        query: str,
        document: Document,
        system_instruction: str,
        model_name: str
    ) -> AsyncIterator[str]:
        """
        Start a streamed answer to a question about the document.

        The upstream call and its first chunk are awaited here, so connection
        and request errors surface before any byte is sent to the client.

        Returns:
            Async iterator of non-empty text chunks in delivery order
        """
        contents = build_contents(document, build_answer_prompt(query))

        upstream = await self.client.aio.models.generate_content_stream(
            model=model_name,
            contents=contents,
            config=types.GenerateContentConfig(system_instruction=system_instruction)
        )
        iterator = upstream.__aiter__()
        try:
            first = await iterator.__anext__()
        except StopAsyncIteration:
            first = None

        logger.info("Answer stream opened", model=model_name)
        return self._relay_text(first, iterator, model_name)

    async def _relay_text(
        self,
        first: Optional[types.GenerateContentResponse],
        iterator: AsyncIterator[types.GenerateContentResponse],
        model_name: str
    ) -> AsyncIterator[str]:
        """Yield chunk texts, skipping chunks that carry none."""
        chunk_count = 0
        if first is not None and first.text:
            chunk_count += 1
            yield first.text

        try:
            async for chunk in iterator:
                if chunk.text:
                    chunk_count += 1
                    yield chunk.text
        except Exception as e:
            logger.error(
                "Answer stream interrupted",
                model=model_name,
                chunks_sent=chunk_count,
                error=str(e)
            )
            raise

        logger.info("Answer stream completed", model=model_name, chunks_sent=chunk_count)

    async def verify(self, answer: str, document: Document) -> GatewayResponse:
        """Check an answer against its source document (JSON verdict)."""
        contents = build_contents(document, build_verification_prompt(answer))

        response = await self.client.aio.models.generate_content(
            model=self.verification_model,
            contents=contents,
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=VERIFICATION_SCHEMA
            )
        )

        logger.info("Verification completed", model=self.verification_model)
        return GatewayResponse(text=response.text, model=self.verification_model)

    async def suggest_questions(self, summary: str, model_name: str) -> GatewayResponse:
        """Propose follow-up questions from a summary (JSON list)."""
        response = await self.client.aio.models.generate_content(
            model=model_name,
            contents=build_suggestion_prompt(summary),
            config=types.GenerateContentConfig(
                response_mime_type="application/json",
                response_schema=SUGGESTED_QUESTIONS_SCHEMA
            )
        )

        logger.info("Suggested questions generated", model=model_name)
        return GatewayResponse(text=response.text, model=model_name)

    async def generate_speech(self, text: str, voice: Voice) -> GatewayResponse:
        """Synthesize speech; audio comes back base64-encoded."""
        response = await self.client.aio.models.generate_content(
            model=self.speech_model,
            contents=[types.Content(role="user", parts=[types.Part.from_text(text=text)])],
            config=types.GenerateContentConfig(
                response_modalities=["AUDIO"],
                speech_config=types.SpeechConfig(
                    voice_config=types.VoiceConfig(
                        prebuilt_voice_config=types.PrebuiltVoiceConfig(
                            voice_name=Voice(voice).value
                        )
                    )
                )
            )
        )

        inline = _first_inline_data(response)
        if inline is None or not inline.data:
            logger.warning("Speech response carried no audio", voice=Voice(voice).value)
            return GatewayResponse(model=self.speech_model)

        logger.info("Speech generated", voice=Voice(voice).value, audio_bytes=len(inline.data))
        return GatewayResponse(
            model=self.speech_model,
            audio_data=base64.b64encode(inline.data).decode("ascii"),
            mime_type=inline.mime_type
        )


def _first_inline_data(response: types.GenerateContentResponse) -> Optional[types.Blob]:
    if not response.candidates:
        return None
    content = response.candidates[0].content
    if content is None or not content.parts:
        return None
    return content.parts[0].inline_data


# Module-level singleton; construction is retried while no key is configured
_gateway_instance: Optional[GeminiGateway] = None


def get_gateway() -> GeminiGateway:
    """
    Get or create the singleton gateway.

    Raises:
        MissingCredentialError: If the server has no API key
    """
    global _gateway_instance
    if _gateway_instance is None:
        _gateway_instance = GeminiGateway()
    return _gateway_instance
