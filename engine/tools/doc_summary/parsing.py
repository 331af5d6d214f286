"""Deterministic post-processing of raw model text."""

import re
from typing import List

_LINE_SPLIT_RE = re.compile(r"\n+")
_BULLET_PREFIX_RE = re.compile(r"^[-*•\d.)\s]+")
_WS_RE = re.compile(r"\s+")
# a run of non-terminators closed by one terminator
_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]")


def parse_bullets(block: str | None) -> List[str]:
    """One entry per non-empty line with any leading bullet/number marker removed."""
    items = []
    for line in _LINE_SPLIT_RE.split(block or ""):
        cleaned = _BULLET_PREFIX_RE.sub("", line).strip()
        if cleaned:
            items.append(cleaned)
    return items


def derive_highlights(summary: str | None, count: int = 3) -> List[str]:
    """First ``count`` sentence-like units of the summary, in document order."""
    if count <= 0:
        return []
    collapsed = _WS_RE.sub(" ", summary or "")
    return [s.strip() for s in _SENTENCE_RE.findall(collapsed)[:count]]
