"""
Document ingestion for MediMind.

Reads uploaded files into the in-memory document representation:
- plain text is decoded as-is
- images are kept as base64 with their MIME type
- PDFs are reduced to their text layer with pdfplumber
"""

import base64
import io
import time
from typing import Iterable, List, Optional, Tuple

import pdfplumber

from medimind.models.schemas import DocumentType, ManagedDocument
from medimind.utils.file_validators import (
    FileValidationError,
    UnsupportedDocumentError,
    file_validator,
)
from medimind.utils.logger import get_logger

logger = get_logger("document_loader")

# (content, filename, declared content type)
Upload = Tuple[bytes, str, Optional[str]]


def make_document_id(name: str) -> str:
    """Name plus millisecond timestamp; practically, not globally, unique."""
    return f"{name}-{int(time.time() * 1000)}"


class DocumentLoader:
    """Turns raw uploads into ManagedDocument records."""

    def load(
        self,
        file_content: bytes,
        filename: str,
        content_type: Optional[str] = None
    ) -> ManagedDocument:
        """
        Read one upload.

        Args:
            file_content: Raw file bytes
            filename: Original filename, used as display name
            content_type: Declared MIME type, if the client sent one

        Returns:
            ManagedDocument ready for prompting

        Raises:
            UnsupportedDocumentError: If the file is not text, PDF or image
            FileValidationError: If the file is empty, too large or corrupt
        """
        is_valid, error, file_type = file_validator.validate(
            file_content, filename, content_type
        )
        if file_type == 'unknown':
            raise UnsupportedDocumentError(filename)
        if not is_valid:
            raise FileValidationError(error or f"Invalid file: {filename}")

        if file_type == 'image':
            document = self._load_image(file_content, filename, content_type)
        elif file_type == 'pdf':
            document = self._load_pdf(file_content, filename)
        else:
            document = ManagedDocument(
                id=make_document_id(filename),
                name=filename,
                type=DocumentType.TEXT,
                content=self._decode_text(file_content),
            )

        logger.info(
            "Document loaded",
            document_id=document.id,
            document_type=document.type.value,
            size_bytes=len(file_content)
        )
        return document

    def load_many(self, uploads: Iterable[Upload]) -> List[ManagedDocument]:
        """Read several uploads, skipping the ones that are rejected."""
        documents = []
        for file_content, filename, content_type in uploads:
            try:
                documents.append(self.load(file_content, filename, content_type))
            except FileValidationError as e:
                logger.warning(
                    "Document rejected",
                    filename=filename,
                    error_code=e.error_code,
                    error=e.message
                )
        return documents

    def _load_image(
        self,
        file_content: bytes,
        filename: str,
        content_type: Optional[str]
    ) -> ManagedDocument:
        mime_type = file_validator.detect_mime_type(file_content)
        if not mime_type.startswith("image/"):
            mime_type = (content_type or "").split(";")[0].strip()
        if not mime_type.startswith("image/"):
            raise FileValidationError(
                f"Could not determine image type of '{filename}'",
                error_code="UNKNOWN_IMAGE_TYPE"
            )

        return ManagedDocument(
            id=make_document_id(filename),
            name=filename,
            type=DocumentType.IMAGE,
            content=base64.b64encode(file_content).decode("ascii"),
            mime_type=mime_type,
        )

    def _load_pdf(self, file_content: bytes, filename: str) -> ManagedDocument:
        with pdfplumber.open(io.BytesIO(file_content)) as pdf:
            pages = [page.extract_text() or "" for page in pdf.pages]

        text = "\n\n".join(page.strip() for page in pages if page.strip())
        if not text:
            raise FileValidationError(
                f"No readable text found in '{filename}'",
                error_code="NO_TEXT_LAYER"
            )

        logger.info("PDF text extracted", filename=filename, page_count=len(pages))
        return ManagedDocument(
            id=make_document_id(filename),
            name=filename,
            type=DocumentType.TEXT,
            content=text,
        )

    def _decode_text(self, file_content: bytes) -> str:
        try:
            return file_content.decode("utf-8")
        except UnicodeDecodeError:
            return file_content.decode("latin-1")


document_loader = DocumentLoader()
