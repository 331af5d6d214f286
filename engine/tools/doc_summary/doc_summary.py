"""
Document Summary Analyzer

This module exposes :class:`DocumentAnalyzer`, which turns the extracted text
of one document into a summary, key points, improvement suggestions and
highlights using Gemini.

Key Components
--------------
* Direct path - the (possibly truncated) text is sent once to three prompts
  run concurrently: summary, key points, improvement suggestions. Any failure
  fails the whole analysis.
* Chunk-and-aggregate path - text longer than one chunk is split into
  fixed-size chunks, each summarised by a bounded worker pool, and the
  "Chunk i: ..." summaries are fed back through the direct path.
* Model access - every prompt goes through ``utils.llm.LLM.FallbackLLM``,
  which owns retries, backoff and model fallback.

usage
-----------
>>> analyzer = DocumentAnalyzer(SummaryConfig.from_env())
>>> result = asyncio.run(analyzer.analyze(text, "short"))
>>> result.highlights
"""

from __future__ import annotations

import time
import uuid
import asyncio
from typing import Any, Dict, Optional

from utils.core.log import close_request_logger, request_tool_logger, set_logger, get_logger
from utils.core.errors import DocumentValidationError
from utils.llm.LLM import FallbackLLM, GeminiModel, ModelHandleCache, get_client
from tools.doc_summary.config import SummaryConfig
from tools.doc_summary.chunking import (
    TextChunk,
    map_with_concurrency,
    normalize_text,
    split_into_chunks,
    truncate_for_model,
)
from tools.doc_summary.parsing import derive_highlights, parse_bullets
from tools.doc_summary.doc_summary_models import (
    AnalysisResult,
    ExtractionStats,
    FileInfo,
    SummaryResponse,
)
from tools.doc_summary.prompts_doc_summary import (
    LengthMode,
    build_aggregate_payload,
    build_chunk_prompt,
    build_improvement_prompt,
    build_key_points_prompt,
    build_summary_prompt,
)

# one handle cache per process, shared by every analyzer
_HANDLE_CACHE = ModelHandleCache()


def build_llm(config: SummaryConfig, *, cache: ModelHandleCache | None = None) -> FallbackLLM:
    def _factory(model_id: str) -> GeminiModel:
        return GeminiModel(model_id, client=get_client(config.gemini_api_key))

    return FallbackLLM(
        config.require_models(),
        policy=config.retry_policy,
        cache=cache if cache is not None else _HANDLE_CACHE,
        model_factory=_factory,
    )


class DocumentAnalyzer:
    """
    Summarise one document's text via Gemini.

    Parameters
    ----------
    config : SummaryConfig
        Validated runtime settings (limits, chunking, retry budget).
    llm : FallbackLLM, optional
        Injected model client; built from ``config`` when omitted.
    """

    def __init__(self, config: SummaryConfig, *, llm: FallbackLLM | None = None):
        self.config = config
        self.llm = llm or build_llm(config)

    @property
    def logger(self):
        # resolved per call so a shared analyzer logs into the active request
        return get_logger()

    async def analyze(self, text: str, length: LengthMode = "medium") -> AnalysisResult:
        """Pick the direct or chunk-and-aggregate path for a whole document."""
        sanitized = normalize_text(text)
        chunks = split_into_chunks(sanitized, self.config.chunk_size)

        if len(chunks) <= 1:
            self.logger.debug("Direct analysis (%d chars)", len(sanitized))
            return await self.run_full_analysis(sanitized, length)

        self.logger.debug(
            "Chunked analysis: %d chars -> %d chunks of <= %d",
            len(sanitized),
            len(chunks),
            self.config.chunk_size,
        )
        chunk_summaries = await self.summarize_chunks(chunks)
        aggregate = await self.run_full_analysis(
            build_aggregate_payload(chunk_summaries), length, truncated=False
        )
        return aggregate.model_copy(
            update={"chunk_summaries": chunk_summaries, "chunk_count": len(chunks)}
        )

    async def run_full_analysis(
        self, text: str, length: LengthMode, *, truncated: Optional[bool] = None
    ) -> AnalysisResult:
        """Three concurrent prompts over one unit of text; all must succeed."""
        payload, was_truncated = truncate_for_model(
            normalize_text(text), self.config.max_input_chars
        )
        t0 = time.perf_counter()
        summary, key_point_block, suggestions_block = await asyncio.gather(
            self.llm.invoke(build_summary_prompt(payload, length)),
            self.llm.invoke(build_key_points_prompt(payload)),
            self.llm.invoke(build_improvement_prompt(payload)),
        )
        self.logger.debug("Full analysis finished in %.2fs", time.perf_counter() - t0)

        return AnalysisResult(
            summary=summary,
            key_points=parse_bullets(key_point_block),
            improvement_suggestions=parse_bullets(suggestions_block),
            highlights=derive_highlights(summary),
            truncated=was_truncated if truncated is None else truncated,
        )

    async def summarize_chunks(self, chunks: list[TextChunk]) -> list[str]:
        total = len(chunks)

        async def _one(chunk: TextChunk, index: int) -> str:
            self.logger.debug("[CHUNK] start idx=%d/%d chars=%d", index + 1, total, len(chunk))
            summary = await self.llm.invoke(build_chunk_prompt(chunk.text, index, total))
            self.logger.debug("[CHUNK] done idx=%d/%d", index + 1, total)
            return summary

        return await map_with_concurrency(chunks, _one, self.config.max_chunk_concurrency)


async def doc_summary_main(
    *,
    text: str,
    file_name: str,
    file_size: int,
    mime_type: str | None = None,
    summary_length: LengthMode = "medium",
    config: SummaryConfig | None = None,
    analyzer: DocumentAnalyzer | None = None,
    request_id: str | None = None,
    remote_ip: str | None = None,
    request_method: str | None = None,
    **_,
) -> Dict[str, Any]:
    """
    Request-level entry point: validate the extracted text, analyse it and
    build the response payload (camelCase keys).
    """
    request_id = request_id or uuid.uuid4().hex[:12]
    request_logger = request_tool_logger(request_id, "doc_summary")
    set_logger(
        request_logger,
        tool_name="doc_summary_main",
        request_id=request_id,
        ip_address=remote_ip or "no_ip",
        request_type=request_method or "N/A",
        file_name=file_name,
    )
    try:
        return await _summarize_request(
            text=text,
            file_name=file_name,
            file_size=file_size,
            mime_type=mime_type,
            summary_length=summary_length,
            config=config,
            analyzer=analyzer,
        )
    finally:
        close_request_logger(request_logger)


async def _summarize_request(
    *,
    text: str,
    file_name: str,
    file_size: int,
    mime_type: str | None,
    summary_length: LengthMode,
    config: SummaryConfig | None,
    analyzer: DocumentAnalyzer | None,
) -> Dict[str, Any]:
    logger = get_logger()

    if not text or not text.strip():
        raise DocumentValidationError("No text could be extracted from the document")

    config = config or SummaryConfig.from_env()
    analyzer = analyzer or DocumentAnalyzer(config)

    t0 = time.perf_counter()
    if config.analysis_timeout_seconds > 0:
        try:
            analysis = await asyncio.wait_for(
                analyzer.analyze(text, summary_length), config.analysis_timeout_seconds
            )
        except asyncio.TimeoutError as exc:
            raise TimeoutError(
                f"Analysis timeout after {config.analysis_timeout_seconds:g}s; please retry."
            ) from exc
    else:
        analysis = await analyzer.analyze(text, summary_length)

    logger.info(
        "Analysis done in %.2fs (chunks=%s, truncated=%s)",
        time.perf_counter() - t0,
        analysis.chunk_count or 1,
        analysis.truncated,
    )

    response = SummaryResponse(
        **analysis.model_dump(),
        file=FileInfo(name=file_name, size=file_size, mime=mime_type),
        stats=ExtractionStats(
            extracted_characters=len(text),
            summary_characters=len(analysis.summary),
        ),
        summary_length=summary_length,
    )
    return response.to_payload()


def main() -> bool:
    """
    Lightweight self-test for DocumentAnalyzer:
      - Replaces Gemini with a canned responder (no network)
      - Runs the chunked path on 9000 characters
      - Prints OK/FAIL and returns a boolean
    """

    class _CannedModel:
        def __init__(self, model_id: str):
            self.model_id = model_id

        async def generate(self, prompt: str) -> str:
            if prompt.startswith("Extract"):
                return "1. First point\n2. Second point"
            if prompt.startswith("Act as"):
                return "- Add a conclusion\n- Cite sources\n- Shorten the intro"
            return "Canned summary. It has sentences! Does it work? Yes."

    print("DOC_SUMMARY TEST START")
    try:
        config = SummaryConfig(gemini_model="self-test-model")
        llm = FallbackLLM(
            config.model_candidates,
            policy=config.retry_policy,
            cache=ModelHandleCache(),
            model_factory=_CannedModel,
        )
        result = asyncio.run(DocumentAnalyzer(config, llm=llm).analyze("x" * 9000, "short"))
        ok = result.chunk_count == 3 and len(result.chunk_summaries or []) == 3
        print("DOC_SUMMARY OK" if ok else "DOC_SUMMARY FAIL: unexpected result shape")
        return ok
    except Exception as e:
        print(f"DOC_SUMMARY ERROR: {e}")
        return False


if __name__ == "__main__":
    main()
