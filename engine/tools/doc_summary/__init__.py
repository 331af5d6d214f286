"""
Document summary module - chunked Gemini analysis of one uploaded document.
"""

from tools.doc_summary.config import SummaryConfig
from tools.doc_summary.doc_summary import DocumentAnalyzer, doc_summary_main
from tools.doc_summary.doc_summary_models import AnalysisResult

__all__ = [
    "SummaryConfig",
    "DocumentAnalyzer",
    "doc_summary_main",
    "AnalysisResult",
]
