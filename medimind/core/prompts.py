"""
Prompt construction for MediMind.

Pure functions that turn a document, a persona and a task into the exact
content payload sent to the model. Same inputs always give the same payload.
"""

import base64
import binascii
from typing import Union

from google.genai import types

from medimind.models.schemas import Document, DocumentType, Persona, SummaryFocus


class InvalidDocumentError(ValueError):
    """Raised when a document cannot be turned into model content."""


PERSONA_INSTRUCTIONS = {
    Persona.PROFESSIONAL: (
        "You are a professional medical assistant. Your tone should be formal, "
        "clear, and precise. Provide accurate answers based strictly on the "
        "provided document."
    ),
    Persona.EMPATHETIC: (
        "You are an empathetic and caring medical assistant. Your tone should be "
        "supportive, understanding, and gentle. Provide answers with a "
        "compassionate approach, while remaining factually accurate based on the "
        "provided document."
    ),
    Persona.CONCISE: (
        "You are a medical assistant that gets straight to the point. Your tone "
        "should be direct and brief. Provide concise answers, focusing only on the "
        "essential information from the provided document."
    ),
}

SUMMARY_PROMPTS = {
    SummaryFocus.KEY_POINTS: (
        "Summarize the key points of the following medical document in 3-4 bullet "
        "points. Focus on the main diagnosis, critical findings, and primary "
        "instructions."
    ),
    SummaryFocus.TREATMENT_PLAN: (
        "Extract and summarize the treatment plan from the following medical "
        "document. List all medications with dosages, therapies, and follow-up "
        "instructions in a clear, itemized format."
    ),
    SummaryFocus.DIAGNOSIS: (
        "Identify and summarize the diagnosis from the following medical document. "
        "State the primary diagnosis clearly and list any secondary or differential "
        "diagnoses mentioned."
    ),
}

# Structured output schemas; field names are what the client parses
VERIFICATION_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "isConsistent": types.Schema(type=types.Type.BOOLEAN),
        "reasoning": types.Schema(type=types.Type.STRING),
        "correctedAnswer": types.Schema(type=types.Type.STRING),
    },
    required=["isConsistent", "reasoning", "correctedAnswer"],
)

SUGGESTED_QUESTIONS_SCHEMA = types.Schema(
    type=types.Type.OBJECT,
    properties={
        "questions": types.Schema(
            type=types.Type.ARRAY,
            items=types.Schema(type=types.Type.STRING),
        ),
    },
    required=["questions"],
)

ModelContents = Union[str, types.Content]


def get_system_instruction(persona: Persona) -> str:
    """System instruction for the given persona."""
    return PERSONA_INSTRUCTIONS[Persona(persona)]


def get_summary_prompt(focus: SummaryFocus) -> str:
    """Summary task prompt for the given focus."""
    return SUMMARY_PROMPTS[SummaryFocus(focus)]


def build_answer_prompt(query: str) -> str:
    return f"Based on the context document, answer the following question: {query}"


def build_verification_prompt(answer: str) -> str:
    return (
        'Review the following "GENERATED ANSWER" and determine if it is factually '
        'consistent with the "CONTEXT DOCUMENT". Provide your reasoning and a '
        "corrected answer if necessary.\n\n"
        f"GENERATED ANSWER:\n---\n{answer}\n---"
    )


def build_suggestion_prompt(summary: str) -> str:
    return (
        "Based on the following document summary, generate 3 concise and relevant "
        "questions a user might want to ask.\n\n"
        f"SUMMARY:\n---\n{summary}\n---"
    )


def build_contents(document: Document, prompt: str) -> ModelContents:
    """
    Pair a task prompt with a document in the form the model expects.

    Text documents are inlined ahead of the task as a single string. Image
    documents become one user turn holding the prompt and the image bytes.

    Args:
        document: Source document
        prompt: Task instruction

    Returns:
        A prompt string or a multi-part Content

    Raises:
        InvalidDocumentError: Unknown document type, image without MIME type,
            or image content that is not valid base64
    """
    if document.type == DocumentType.TEXT:
        return (
            f"CONTEXT DOCUMENT:\n---\n{document.content}\n---\n\n"
            f"TASK:\n---\n{prompt}\n---"
        )

    if document.type == DocumentType.IMAGE and document.mime_type:
        try:
            image_bytes = base64.b64decode(document.content, validate=True)
        except (binascii.Error, ValueError) as e:
            raise InvalidDocumentError(f"Image content is not valid base64: {e}") from e

        return types.Content(
            role="user",
            parts=[
                types.Part.from_text(text=prompt),
                types.Part.from_bytes(data=image_bytes, mime_type=document.mime_type),
            ],
        )

    raise InvalidDocumentError("Invalid document type or missing mimeType for image.")
