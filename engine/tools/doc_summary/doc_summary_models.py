"""
Pydantic models for the analysis result and the upload response.

Field names are snake_case in Python and camelCase on the wire
(``model_dump(by_alias=True)``), matching the web client's contract.
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _WireModel(BaseModel):
    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        alias_generator=to_camel,
    )

    def to_payload(self) -> dict:
        return self.model_dump(by_alias=True, exclude_none=True)


class AnalysisResult(_WireModel):
    """
    Output of one analysis call. Built once, never mutated.

    ``chunk_summaries`` / ``chunk_count`` are only set on the
    chunk-and-aggregate path.
    """

    summary: str = Field(description="Prose summary of the document")
    key_points: list[str] = Field(default_factory=list)
    improvement_suggestions: list[str] = Field(default_factory=list)
    highlights: list[str] = Field(default_factory=list, max_length=3)
    truncated: bool = False
    chunk_summaries: Optional[list[str]] = None
    chunk_count: Optional[int] = Field(default=None, ge=2)


class FileInfo(_WireModel):
    name: str
    size: int
    mime: Optional[str] = None


class ExtractionStats(_WireModel):
    extracted_characters: int
    summary_characters: int


class SummaryResponse(AnalysisResult):
    """AnalysisResult plus the caller-supplied file metadata and statistics."""

    file: FileInfo
    stats: ExtractionStats
    summary_length: str
