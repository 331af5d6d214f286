"""
Google Cloud Vision OCR for scanned images (PNG / JPEG uploads).

Setup:
    1. Enable the Cloud Vision API on the project
    2. Provide a service account (GOOGLE_APPLICATION_CREDENTIALS, or the
       `gcp-service-account` secret written by utils.llm.gcp_credentials)

Usage:
    from utils.document.ocr import GoogleOCR

    page = GoogleOCR(language="en").extract_from_image_bytes(png_bytes)
    print(page.text)
"""

from __future__ import annotations

from dataclasses import dataclass

from google.cloud import vision

from utils.core.errors import DocumentExtractionError
from utils.llm.gcp_credentials import ensure_gcp_credentials_from_vault


@dataclass
class OCRPage:
    """
    OCR result for a single image.

    Attributes:
        page_number: 1-indexed page number
        text: Extracted text content
        confidence: Average block confidence (0-1)
    """

    page_number: int
    text: str
    confidence: float = 0.0


class GoogleOCR:
    """Thin wrapper over `ImageAnnotatorClient.document_text_detection`."""

    def __init__(self, language: str | None = None, client: vision.ImageAnnotatorClient | None = None):
        if client is None:
            ensure_gcp_credentials_from_vault()
            client = vision.ImageAnnotatorClient()
        self.client = client
        self.language = language

    def extract_from_image_bytes(self, image_bytes: bytes, page_number: int = 1) -> OCRPage:
        image = vision.Image(content=image_bytes)
        image_context = (
            vision.ImageContext(language_hints=[self.language]) if self.language else None
        )

        response = self.client.document_text_detection(
            image=image, image_context=image_context
        )
        if response.error.message:
            raise DocumentExtractionError(f"Vision API error: {response.error.message}")

        annotation = response.full_text_annotation
        full_text = annotation.text if annotation else ""

        scores = [
            getattr(block, "confidence", 0.0)
            for page in (annotation.pages if annotation else [])
            for block in page.blocks
        ]
        confidence = sum(scores) / len(scores) if scores else 0.0

        return OCRPage(
            page_number=page_number,
            text=full_text,
            confidence=confidence,
        )
