from typing import Literal

LengthMode = Literal["short", "medium", "long"]

LENGTH_DIRECTIVES: dict[str, str] = {
    "short": "Limit the summary to 3-4 concise sentences.",
    "medium": "Provide a balanced summary in 5-8 sentences.",
    "long": "Provide a detailed three-paragraph summary with transitions.",
}


def length_directive(length: str | None) -> str:
    # unknown modes get no directive rather than an error
    return LENGTH_DIRECTIVES.get((length or "").lower(), "")


def build_summary_prompt(payload: str, length: str | None) -> str:
    return (
        f"You are an expert technical editor. {length_directive(length)}\n"
        "Highlight the main intent, supporting arguments, and any calls to action. "
        "Use clear prose.\n"
        f"SOURCE:\n{payload}"
    )


def build_key_points_prompt(payload: str) -> str:
    return (
        "Extract the most critical ideas from the following document.\n"
        "Return 5-7 bullet points. Each bullet should be one sentence and stand alone.\n"
        f"SOURCE:\n{payload}"
    )


def build_improvement_prompt(payload: str) -> str:
    return (
        "Act as a senior reviewer. Suggest three actionable improvements to make this "
        "document clearer, more persuasive, or more complete. Return them as bullet points.\n"
        f"SOURCE:\n{payload}"
    )


def build_chunk_prompt(chunk_text: str, index: int, total: int) -> str:
    """``index`` is zero-based; the prompt numbers chunks from 1."""
    return (
        "You will help summarize a large document chunk-by-chunk.\n"
        f"Chunk {index + 1} of {total}.\n"
        "Summarize this chunk in 3 crisp sentences focusing on unique facts.\n"
        f"CHUNK:\n{chunk_text}"
    )


def build_aggregate_payload(chunk_summaries: list[str]) -> str:
    return "\n".join(
        f"Chunk {idx + 1}: {summary}" for idx, summary in enumerate(chunk_summaries)
    )
