"""
File validation utilities for MediMind.

Handles validation of uploaded documents including:
- File size limits
- File extension and declared content type
- Image integrity
- Text decodability
"""

import io
from pathlib import Path
from typing import Optional, Tuple

from PIL import Image
import pdfplumber

from medimind.config import settings


class FileValidationError(Exception):
    """Raised when file validation fails."""

    def __init__(self, message: str, error_code: str = "VALIDATION_ERROR"):
        self.message = message
        self.error_code = error_code
        super().__init__(self.message)


class UnsupportedDocumentError(FileValidationError):
    """Raised for files that are neither text, PDF nor a supported image."""

    def __init__(self, filename: str):
        super().__init__(
            f"Unsupported file type: {filename}. Please upload a .txt or .pdf file "
            "or an image (jpg, png, webp).",
            error_code="UNSUPPORTED_TYPE"
        )


class FileValidator:
    """
    Validates uploaded documents before they are read into memory.

    Ensures files are:
    - Non-empty and within size limits
    - Of a supported kind (by declared MIME type or extension)
    - Not corrupt
    """

    IMAGE_MIME_TYPES = {
        "image/png",
        "image/jpeg",
        "image/jpg",
        "image/webp",
    }
    TEXT_MIME_TYPES = {"text/plain"}
    PDF_MIME_TYPES = {"application/pdf"}

    def __init__(self):
        self.max_file_size = settings.max_file_size_bytes
        self.pdf_extensions = settings.pdf_extensions
        self.image_extensions = settings.image_extensions
        self.text_extensions = settings.text_extensions

    def validate_file_size(self, file_content: bytes, filename: str) -> bool:
        """
        Check that a file is non-empty and within size limits.

        Raises:
            FileValidationError: If file is empty or exceeds size limit
        """
        if len(file_content) == 0:
            raise FileValidationError(
                f"File '{filename}' is empty",
                error_code="EMPTY_FILE"
            )
        if len(file_content) > self.max_file_size:
            raise FileValidationError(
                f"File '{filename}' exceeds maximum size of {settings.max_file_size_mb}MB",
                error_code="FILE_TOO_LARGE"
            )
        return True

    def detect_mime_type(self, file_content: bytes) -> str:
        """Detect an image or PDF MIME type from the file signature."""
        if file_content[:4] == b'%PDF':
            return 'application/pdf'
        if file_content[:8] == b'\x89PNG\r\n\x1a\n':
            return 'image/png'
        if file_content[:2] == b'\xff\xd8':
            return 'image/jpeg'
        if file_content[:4] == b'RIFF' and file_content[8:12] == b'WEBP':
            return 'image/webp'
        return 'application/octet-stream'

    def get_file_type(self, filename: str, content_type: Optional[str] = None) -> str:
        """
        Determine the kind of document.

        The declared content type wins; the extension is the fallback.

        Returns:
            One of: 'pdf', 'image', 'text', 'unknown'
        """
        declared = (content_type or "").split(";")[0].strip().lower()
        if declared in self.IMAGE_MIME_TYPES:
            return 'image'
        if declared in self.TEXT_MIME_TYPES:
            return 'text'
        if declared in self.PDF_MIME_TYPES:
            return 'pdf'

        ext = Path(filename).suffix.lower()
        if ext in self.pdf_extensions:
            return 'pdf'
        if ext in self.image_extensions:
            return 'image'
        if ext in self.text_extensions:
            return 'text'
        return 'unknown'

    def validate_image(self, file_content: bytes, filename: str) -> Tuple[bool, Optional[str]]:
        """
        Validate an image document.

        Returns:
            Tuple of (is_valid, error_message)
        """
        try:
            self.validate_file_size(file_content, filename)

            img = Image.open(io.BytesIO(file_content))
            img.verify()

            # verify() leaves the image unusable; reopen for dimensions
            img = Image.open(io.BytesIO(file_content))
            width, height = img.size
            if width > 10000 or height > 10000:
                raise FileValidationError(
                    "Image dimensions too large",
                    error_code="IMAGE_TOO_LARGE"
                )

            return True, None

        except FileValidationError as e:
            return False, e.message
        except Exception as e:
            return False, f"Image validation failed: {str(e)}"

    def validate_pdf(self, file_content: bytes, filename: str) -> Tuple[bool, Optional[str]]:
        """
        Validate a PDF document.

        Returns:
            Tuple of (is_valid, error_message)
        """
        try:
            self.validate_file_size(file_content, filename)

            with pdfplumber.open(io.BytesIO(file_content)) as pdf:
                if len(pdf.pages) == 0:
                    raise FileValidationError(
                        "PDF has no pages",
                        error_code="EMPTY_PDF"
                    )

            return True, None

        except FileValidationError as e:
            return False, e.message
        except Exception as e:
            return False, f"PDF validation failed: {str(e)}"

    def validate_text(self, file_content: bytes, filename: str) -> Tuple[bool, Optional[str]]:
        """
        Validate a plain text document.

        Returns:
            Tuple of (is_valid, error_message)
        """
        try:
            self.validate_file_size(file_content, filename)
            return True, None
        except FileValidationError as e:
            return False, e.message

    def validate(
        self,
        file_content: bytes,
        filename: str,
        content_type: Optional[str] = None
    ) -> Tuple[bool, Optional[str], str]:
        """
        Validate any supported document.

        Returns:
            Tuple of (is_valid, error_message, file_type)
        """
        file_type = self.get_file_type(filename, content_type)

        if file_type == 'pdf':
            is_valid, error = self.validate_pdf(file_content, filename)
        elif file_type == 'image':
            is_valid, error = self.validate_image(file_content, filename)
        elif file_type == 'text':
            is_valid, error = self.validate_text(file_content, filename)
        else:
            return False, f"Unsupported file type: {filename}", "unknown"

        return is_valid, error, file_type


file_validator = FileValidator()
