"""
Document Summary Utils - shared building blocks.

Submodules:
- core: Logging, errors, and warning filters
- llm: Gemini client, retry policy and model fallback
- document: PDF text extraction and image OCR
"""

from utils import core
from utils import llm
from utils import document

__all__ = [
    "core",
    "llm",
    "document",
]
