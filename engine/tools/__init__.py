"""
Document Summary Tools.

Submodules:
- doc_summary: summary, key points, suggestions and highlights for one document
"""

from tools import doc_summary

__all__ = [
    "doc_summary",
]
