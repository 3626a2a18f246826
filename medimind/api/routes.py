"""
API routes for MediMind.

Defines the action-dispatched model gateway endpoint, document upload and
health check.
"""

from fastapi import APIRouter, Depends, File, Request, UploadFile
from fastapi.responses import JSONResponse, StreamingResponse
from pydantic import ValidationError

from medimind.api.middleware import limiter
from medimind.config import settings
from medimind.core.document_loader import document_loader
from medimind.core.gateway import GeminiGateway, get_gateway
from medimind.core.prompts import InvalidDocumentError
from medimind.models.schemas import (
    ErrorResponse,
    GatewayResponse,
    GenerateSpeechPayload,
    GenerateStreamPayload,
    HealthResponse,
    ManagedDocument,
    ProxyAction,
    ProxyRequest,
    SuggestQuestionsPayload,
    SummarizePayload,
    VerifyPayload,
)
from medimind.utils.file_validators import FileValidationError
from medimind.utils.logger import bind_context, get_logger

logger = get_logger("routes")

router = APIRouter()

INVALID_ACTION = "Invalid action specified."
UPSTREAM_FAILED = "The model request failed."


def error_response(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content={"error": message})


# =============================================================================
# Health Check
# =============================================================================

@router.get(
    "/health",
    response_model=HealthResponse,
    tags=["System"],
    summary="Health check endpoint"
)
async def health_check():
    """
    Check if the service is healthy and running.

    Also reports whether the model gateway has a credential configured.
    """
    return HealthResponse(
        status="healthy",
        version=settings.app_version,
        gateway_configured=bool(settings.gemini_api_key)
    )


# =============================================================================
# Document Upload
# =============================================================================

@router.post(
    "/documents",
    response_model=ManagedDocument,
    response_model_exclude_none=True,
    tags=["Documents"],
    summary="Read an uploaded document (text, PDF or image)",
    responses={
        400: {"model": ErrorResponse, "description": "Unsupported or invalid file"}
    }
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def upload_document(
    request: Request,
    file: UploadFile = File(..., description="Text, PDF or image document")
):
    """
    Read a document into the form used for prompting.

    - Text files (.txt) are returned as text
    - PDF files (.pdf) are reduced to their text layer
    - Images (.png, .jpg, .jpeg, .webp) are returned base64-encoded with MIME type
    """
    content = await file.read()
    filename = file.filename or "document"

    try:
        document = document_loader.load(content, filename, file.content_type)
    except FileValidationError as e:
        logger.warning("Upload rejected", filename=filename, error_code=e.error_code)
        return error_response(400, e.message)

    return document


# =============================================================================
# Model Gateway
# =============================================================================

@router.post(
    "/api/gemini-proxy",
    response_model=GatewayResponse,
    response_model_exclude_none=True,
    tags=["Gateway"],
    summary="Forward one action to the hosted model",
    responses={
        400: {"model": ErrorResponse, "description": "Invalid action or payload"},
        500: {"model": ErrorResponse, "description": "Missing credential or upstream failure"}
    }
)
@limiter.limit(f"{settings.rate_limit_per_minute}/minute")
async def gemini_proxy(
    request: Request,
    body: ProxyRequest,
    gateway: GeminiGateway = Depends(get_gateway)
):
    """
    Dispatch `{action, payload}` to the model.

    Actions: `summarize`, `generateStream`, `verify`, `suggestQuestions`,
    `generateSpeech`. `generateStream` answers with a `text/plain` body
    streamed as it is generated; every other action answers with JSON.
    """
    try:
        action = ProxyAction(body.action)
    except ValueError:
        logger.warning("Unknown gateway action", action=body.action)
        return error_response(400, INVALID_ACTION)

    bind_context(action=action.value)

    try:
        if action == ProxyAction.SUMMARIZE:
            payload = SummarizePayload.model_validate(body.payload)
            result = await gateway.summarize(
                payload.document,
                payload.system_instruction,
                payload.summary_prompt,
                payload.model_name
            )

        elif action == ProxyAction.GENERATE_STREAM:
            payload = GenerateStreamPayload.model_validate(body.payload)
            chunks = await gateway.generate_stream(
                payload.query,
                payload.document,
                payload.system_instruction,
                payload.model_name
            )
            return StreamingResponse(chunks, media_type="text/plain; charset=utf-8")

        elif action == ProxyAction.VERIFY:
            payload = VerifyPayload.model_validate(body.payload)
            result = await gateway.verify(payload.answer, payload.document)

        elif action == ProxyAction.SUGGEST_QUESTIONS:
            payload = SuggestQuestionsPayload.model_validate(body.payload)
            result = await gateway.suggest_questions(payload.summary, payload.model_name)

        else:
            payload = GenerateSpeechPayload.model_validate(body.payload)
            result = await gateway.generate_speech(payload.text, payload.voice)

    except ValidationError as e:
        logger.warning("Invalid gateway payload", error_count=e.error_count())
        return error_response(400, f"Invalid payload for action '{action.value}'.")

    except InvalidDocumentError as e:
        logger.warning("Unsupported document in gateway payload", error=str(e))
        return error_response(400, str(e))

    except Exception as e:
        logger.error("Gateway request failed", error=str(e))
        return error_response(500, UPSTREAM_FAILED)

    return result
