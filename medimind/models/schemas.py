"""
Pydantic schemas for MediMind.

Defines the document and chat data model shared by the gateway and the
assistant services, plus the request/response models of the proxy API.
Wire and storage field names are camelCase; attributes are snake_case.
"""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel


class CamelModel(BaseModel):
    """Base model that reads and writes camelCase field names."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        protected_namespaces=()
    )


# =============================================================================
# Enums
# =============================================================================

class DocumentType(str, Enum):
    """Kinds of document content the assistant understands."""
    TEXT = "text"
    IMAGE = "image"


class MessageAuthor(str, Enum):
    """Who wrote a chat message."""
    USER = "user"
    BOT = "bot"


class VerificationStatus(str, Enum):
    """Outcome of the generate-verify-correct loop for one answer."""
    VERIFIED = "verified"
    CORRECTED = "corrected"
    UNVERIFIED = "unverified"
    ERROR = "error"


class Persona(str, Enum):
    """Tone directive applied to generation prompts."""
    PROFESSIONAL = "professional"
    EMPATHETIC = "empathetic"
    CONCISE = "concise"


class SummaryFocus(str, Enum):
    """What a document summary should concentrate on."""
    KEY_POINTS = "key_points"
    TREATMENT_PLAN = "treatment_plan"
    DIAGNOSIS = "diagnosis"


class ChatModel(str, Enum):
    """Models selectable for summaries and chat."""
    GEMINI_FLASH = "gemini-2.5-flash"
    GEMINI_PRO = "gemini-3-pro-preview"
    LLAMA3 = "llama3"

    @property
    def is_gemini(self) -> bool:
        return self.value.startswith("gemini")


class Voice(str, Enum):
    """Prebuilt speech synthesis voices."""
    KORE = "Kore"
    PUCK = "Puck"
    CHARON = "Charon"
    FENRIR = "Fenrir"
    ZEPHYR = "Zephyr"


class ProxyAction(str, Enum):
    """Actions accepted by the gateway endpoint."""
    SUMMARIZE = "summarize"
    GENERATE_STREAM = "generateStream"
    VERIFY = "verify"
    SUGGEST_QUESTIONS = "suggestQuestions"
    GENERATE_SPEECH = "generateSpeech"


# =============================================================================
# Documents
# =============================================================================

class Document(CamelModel):
    """A document's content: raw text, or base64 image bytes plus MIME type."""

    model_config = ConfigDict(frozen=True)

    type: DocumentType = Field(description="Content kind")
    content: str = Field(description="Raw text or base64-encoded image data")
    mime_type: Optional[str] = Field(
        default=None,
        description="MIME type, required for images"
    )


class ManagedDocument(Document):
    """A document uploaded into the workspace."""

    id: str = Field(description="Name plus upload timestamp")
    name: str = Field(description="Display name (original filename)")

    def as_document(self) -> Document:
        """Strip workspace metadata, leaving only what is sent upstream."""
        return Document(type=self.type, content=self.content, mime_type=self.mime_type)


# =============================================================================
# Chat
# =============================================================================

class BotMessageContent(CamelModel):
    """Answer text plus its verification state."""

    answer: str = ""
    status: VerificationStatus = VerificationStatus.UNVERIFIED
    reasoning: Optional[str] = None
    is_verifying: Optional[bool] = None


class Message(CamelModel):
    """One entry in a document's chat history."""

    id: str
    author: MessageAuthor
    content: Union[BotMessageContent, str]


class VerificationResult(CamelModel):
    """Verdict of checking an answer against its source document."""

    is_consistent: bool
    reasoning: str
    corrected_answer: Optional[str] = None

    @field_validator("corrected_answer")
    @classmethod
    def _blank_is_none(cls, value: Optional[str]) -> Optional[str]:
        if value is None or not value.strip():
            return None
        return value


class SuggestedQuestions(CamelModel):
    """Structured output of the suggestion call."""

    questions: list[str] = Field(default_factory=list)


# =============================================================================
# Proxy API
# =============================================================================

class ProxyRequest(BaseModel):
    """Envelope for every gateway call."""

    action: str = Field(description="One of the ProxyAction values")
    payload: Dict[str, Any] = Field(default_factory=dict)


class SummarizePayload(CamelModel):
    document: Document
    system_instruction: str
    summary_prompt: str
    model_name: str


class GenerateStreamPayload(CamelModel):
    query: str
    document: Document
    system_instruction: str
    model_name: str


class VerifyPayload(CamelModel):
    answer: str
    document: Document


class SuggestQuestionsPayload(CamelModel):
    summary: str
    model_name: str


class GenerateSpeechPayload(CamelModel):
    text: str
    voice: Voice


class GatewayResponse(CamelModel):
    """Non-streaming gateway result."""

    text: Optional[str] = Field(default=None, description="Model text output")
    model: Optional[str] = Field(default=None, description="Model that answered")
    audio_data: Optional[str] = Field(
        default=None,
        description="Base64-encoded audio for speech requests"
    )
    mime_type: Optional[str] = Field(default=None, description="Audio MIME type")


# =============================================================================
# Health & Errors
# =============================================================================

class HealthResponse(BaseModel):
    """Health check response."""

    status: str = Field(default="healthy")
    version: str = Field(description="Application version")
    gateway_configured: bool = Field(description="Whether an API key is set")
    timestamp: datetime = Field(default_factory=datetime.utcnow)


class ErrorResponse(BaseModel):
    """Standard error body."""

    error: str = Field(description="Human-readable error message")
