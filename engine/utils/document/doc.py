import os
import fitz
import threading
from pathlib import Path
from contextlib import contextmanager
from typing import Literal

fitz.TOOLS.mupdf_display_errors(False)
fitz.TOOLS.mupdf_display_warnings(False)

from utils.core.log import get_logger
from utils.core.errors import DocumentExtractionError, DocumentValidationError

"""
pip install pymupdf google-cloud-vision
"""

DocumentKind = Literal["pdf", "image"]

SUPPORTED_DOCS = {
    ".pdf": "pdf",
    ".png": "image",
    ".jpg": "image",
    ".jpeg": "image",
}

# Global lock: PyMuPDF is NOT thread-safe. Never call fitz.open / page.get_* from
# multiple threads in the same process without holding this.
_pymupdf_lock = threading.Lock()
_stderr_lock = threading.Lock()


@contextmanager
def muted_c_stderr():
    """
    Temporarily redirect C-level stderr (fd 2) to /dev/null.

    - Thread-safe via a global lock.
    - Guaranteed to restore stderr exactly once.
    - Use as:  with muted_c_stderr():  <call noisy C code>
    """
    devnull = None
    old_stderr_fd = None

    with _stderr_lock:
        try:
            devnull = os.open(os.devnull, os.O_WRONLY)
            old_stderr_fd = os.dup(2)
            os.dup2(devnull, 2)
            yield
        finally:
            try:
                if old_stderr_fd is not None:
                    os.dup2(old_stderr_fd, 2)
            finally:
                if old_stderr_fd is not None:
                    try:
                        os.close(old_stderr_fd)
                    except OSError:
                        pass
                if devnull is not None:
                    try:
                        os.close(devnull)
                    except OSError:
                        pass


def detect_kind(filename: str) -> DocumentKind:
    """Map an upload's file name to the extractor that handles it."""
    ext = Path(filename or "").suffix.lower()
    kind = SUPPORTED_DOCS.get(ext)
    if kind is None:
        raise DocumentValidationError("Only PDF and image files are allowed")
    return kind


def extract_pdf_text(document_bytes: bytes, filename: str = "document.pdf") -> str:
    """Plain text of every page, pages separated by newlines."""
    logger = get_logger()
    with _pymupdf_lock:
        with muted_c_stderr():
            try:
                pdf_document = fitz.open(stream=document_bytes, filetype="pdf")
            except Exception as e:
                logger.debug("Error opening PDF %s: %s", filename, e)
                raise DocumentExtractionError(f"Could not read PDF '{filename}': {e}") from e

            try:
                pages = [page.get_text("text") for page in pdf_document]
            except Exception as e:
                logger.debug("Error reading PDF text %s: %s", filename, e)
                raise DocumentExtractionError(f"Could not read PDF '{filename}': {e}") from e
            finally:
                pdf_document.close()

    logger.debug("Extracted %d page(s) from '%s'", len(pages), filename)
    return "\n".join(pages)


def extract_text(
    document_bytes: bytes,
    kind: DocumentKind,
    *,
    filename: str = "document",
    ocr_language: str | None = None,
) -> str:
    """
    Extraction collaborator: `extract(bytes) -> text`.

    PDFs go through PyMuPDF's text layer, images through Google Vision OCR.
    Any failure surfaces as DocumentExtractionError.
    """
    if kind == "pdf":
        return extract_pdf_text(document_bytes, filename)
    if kind == "image":
        from utils.document.ocr import GoogleOCR

        try:
            page = GoogleOCR(language=ocr_language).extract_from_image_bytes(document_bytes)
        except DocumentExtractionError:
            raise
        except Exception as e:
            raise DocumentExtractionError(f"OCR failed for '{filename}': {e}") from e
        get_logger().debug(
            "OCR of '%s': %d chars, confidence %.2f", filename, len(page.text), page.confidence
        )
        return page.text
    raise DocumentValidationError(f"Unsupported document kind: {kind}")
