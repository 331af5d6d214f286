import asyncio

import pytest

from utils.core.errors import DocumentValidationError
from utils.llm.retry import ErrorClass, ErrorKind, ModelCallError
from tools.doc_summary.chunking import split_into_chunks
from tools.doc_summary.config import SummaryConfig
from tools.doc_summary.doc_summary import DocumentAnalyzer, doc_summary_main


class PromptRecorder:
    """Stand-in for FallbackLLM answering by prompt family."""

    def __init__(self, fail_on: str | None = None, delay: float = 0):
        self.prompts: list[str] = []
        self.fail_on = fail_on
        self.delay = delay

    async def invoke(self, prompt: str) -> str:
        self.prompts.append(prompt)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.fail_on and self.fail_on in prompt:
            raise ModelCallError(
                "Resource exhausted: quota exceeded",
                classification=ErrorClass(ErrorKind.TRANSIENT),
            )
        if prompt.startswith("You will help summarize"):
            number = prompt.split("Chunk ", 1)[1].split(" of", 1)[0]
            return f"summary of part {number}"
        if prompt.startswith("Extract"):
            return "1. Point one\n2. Point two"
        if prompt.startswith("Act as"):
            return "- Tighten the intro\n- Add data\n- Cite sources"
        return "First idea. Second idea! Third idea? Fourth idea."

    def by_prefix(self, prefix: str) -> list[str]:
        return [p for p in self.prompts if p.startswith(prefix)]


def _analyzer(llm, **overrides) -> DocumentAnalyzer:
    return DocumentAnalyzer(SummaryConfig(gemini_model="test-model", **overrides), llm=llm)


def test_short_text_takes_direct_path():
    llm = PromptRecorder()
    result = asyncio.run(_analyzer(llm).analyze("A short   document.\n\nTwo lines.", "short"))

    assert result.summary == "First idea. Second idea! Third idea? Fourth idea."
    assert result.key_points == ["Point one", "Point two"]
    assert result.improvement_suggestions == ["Tighten the intro", "Add data", "Cite sources"]
    assert result.highlights == ["First idea.", "Second idea!", "Third idea?"]
    assert result.truncated is False
    assert result.chunk_count is None
    assert result.chunk_summaries is None
    assert len(llm.prompts) == 3
    assert all(p.endswith("A short document. Two lines.") for p in llm.prompts)


@pytest.mark.parametrize(
    "length,directive",
    [
        ("short", "Limit the summary to 3-4 concise sentences."),
        ("medium", "Provide a balanced summary in 5-8 sentences."),
        ("long", "Provide a detailed three-paragraph summary with transitions."),
    ],
)
def test_length_directive_reaches_summary_prompt(length, directive):
    llm = PromptRecorder()
    asyncio.run(_analyzer(llm).analyze("Some text.", length))
    assert directive in llm.by_prefix("You are an expert technical editor")[0]


def test_unknown_length_gets_no_directive():
    llm = PromptRecorder()
    asyncio.run(_analyzer(llm).analyze("Some text.", "gigantic"))
    prompt = llm.by_prefix("You are an expert technical editor")[0]
    assert "Limit the summary" not in prompt
    assert "Provide a" not in prompt


def test_long_single_chunk_is_truncated():
    llm = PromptRecorder()
    result = asyncio.run(
        _analyzer(llm, max_input_chars=10, chunk_size=100).analyze("abcdefghijk", "medium")
    )

    assert result.truncated is True
    assert all(p.endswith("SOURCE:\nabcdefghij...") for p in llm.prompts)


def test_long_text_takes_chunk_path():
    llm = PromptRecorder()
    result = asyncio.run(_analyzer(llm, chunk_size=4000).analyze("x" * 9000, "long"))

    assert result.chunk_count == 3
    assert result.chunk_summaries == ["summary of part 1", "summary of part 2", "summary of part 3"]
    assert result.truncated is False

    chunk_prompts = llm.by_prefix("You will help summarize")
    assert len(chunk_prompts) == 3
    assert {p.split("\n")[1] for p in chunk_prompts} == {
        "Chunk 1 of 3.",
        "Chunk 2 of 3.",
        "Chunk 3 of 3.",
    }
    aggregate = (
        "Chunk 1: summary of part 1\nChunk 2: summary of part 2\nChunk 3: summary of part 3"
    )
    summary_prompt = llm.by_prefix("You are an expert technical editor")[0]
    # whitespace is normalised before the aggregate goes back through the direct path
    assert summary_prompt.endswith(aggregate.replace("\n", " "))
    assert len(llm.prompts) == 6


def test_chunk_path_is_not_flagged_truncated_even_when_aggregate_is_cut():
    llm = PromptRecorder()
    result = asyncio.run(
        _analyzer(llm, chunk_size=5, max_input_chars=10).analyze("y" * 12, "short")
    )
    assert result.chunk_count == 3
    assert result.truncated is False


def test_chunk_failure_fails_the_whole_analysis():
    llm = PromptRecorder(fail_on="Chunk 2 of 3.")
    with pytest.raises(ModelCallError, match="quota exceeded"):
        asyncio.run(_analyzer(llm, chunk_size=4000).analyze("z" * 9000, "short"))
    assert llm.by_prefix("You are an expert technical editor") == []


def test_one_failing_prompt_fails_the_direct_path():
    llm = PromptRecorder(fail_on="Act as a senior reviewer")
    with pytest.raises(ModelCallError):
        asyncio.run(_analyzer(llm).analyze("Some text.", "short"))


def test_chunk_workers_respect_concurrency():
    class Counting(PromptRecorder):
        in_flight = 0
        peak = 0

        async def invoke(self, prompt):
            type(self).in_flight += 1
            type(self).peak = max(type(self).peak, type(self).in_flight)
            try:
                await asyncio.sleep(0.001)
                return await super().invoke(prompt)
            finally:
                type(self).in_flight -= 1

    llm = Counting()
    analyzer = _analyzer(llm, chunk_size=10, max_chunk_concurrency=2)
    summaries = asyncio.run(analyzer.summarize_chunks(split_into_chunks("q" * 95, 10)))

    assert len(summaries) == 10
    assert Counting.peak == 2


def test_request_entry_builds_camel_case_payload():
    llm = PromptRecorder()
    config = SummaryConfig(gemini_model="test-model")
    payload = asyncio.run(
        doc_summary_main(
            text="Body of the document.",
            file_name="report.pdf",
            file_size=1234,
            mime_type="application/pdf",
            summary_length="short",
            config=config,
            analyzer=DocumentAnalyzer(config, llm=llm),
            request_id="req-1",
        )
    )

    assert payload["keyPoints"] == ["Point one", "Point two"]
    assert payload["improvementSuggestions"][0] == "Tighten the intro"
    assert payload["file"] == {"name": "report.pdf", "size": 1234, "mime": "application/pdf"}
    assert payload["stats"]["extractedCharacters"] == len("Body of the document.")
    assert payload["stats"]["summaryCharacters"] == len(payload["summary"])
    assert payload["summaryLength"] == "short"
    assert payload["truncated"] is False
    assert "chunkCount" not in payload


def test_request_entry_rejects_empty_text():
    with pytest.raises(DocumentValidationError, match="No text could be extracted"):
        asyncio.run(
            doc_summary_main(
                text="   \n ",
                file_name="blank.pdf",
                file_size=10,
                config=SummaryConfig(gemini_model="test-model"),
                analyzer=DocumentAnalyzer(
                    SummaryConfig(gemini_model="test-model"), llm=PromptRecorder()
                ),
            )
        )


def test_request_entry_enforces_deadline():
    config = SummaryConfig(gemini_model="test-model", analysis_timeout_seconds=0.01)
    analyzer = DocumentAnalyzer(config, llm=PromptRecorder(delay=1))

    with pytest.raises(TimeoutError) as info:
        asyncio.run(
            doc_summary_main(
                text="Some text.",
                file_name="slow.pdf",
                file_size=10,
                config=config,
                analyzer=analyzer,
            )
        )
    assert "timeout" in str(info.value).lower()
    assert "retry" in str(info.value).lower()
