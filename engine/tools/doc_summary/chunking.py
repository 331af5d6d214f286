"""Text preparation and the bounded chunk worker pool."""

from __future__ import annotations

import re
import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Sequence, TypeVar

T = TypeVar("T")
R = TypeVar("R")

ELLIPSIS_MARKER = "..."
_WS_RE = re.compile(r"\s+")


@dataclass(frozen=True, slots=True)
class TextChunk:
    """Zero-based slice of normalised text."""

    index: int
    text: str

    def __len__(self) -> int:
        return len(self.text)


def normalize_text(raw: str | None) -> str:
    """Collapse whitespace runs to single spaces and trim."""
    return _WS_RE.sub(" ", raw or "").strip()


def truncate_for_model(text: str, max_chars: int) -> tuple[str, bool]:
    """Return ``(payload, was_truncated)`` for an already-normalised text."""
    if len(text) <= max_chars:
        return text, False
    return f"{text[:max_chars]}{ELLIPSIS_MARKER}", True


def split_into_chunks(text: str, chunk_size: int) -> list[TextChunk]:
    """Contiguous, non-overlapping slices; only the last one may be short."""
    if chunk_size < 1:
        raise ValueError("chunk_size must be >= 1")
    if not text:
        return []
    return [
        TextChunk(index=i, text=text[start : start + chunk_size])
        for i, start in enumerate(range(0, len(text), chunk_size))
    ]


async def map_with_concurrency(
    items: Sequence[T],
    worker: Callable[[T, int], Awaitable[R]],
    limit: int,
) -> list[R]:
    """
    Run ``worker(item, index)`` over ``items`` with at most
    ``min(max(1, limit), len(items))`` calls in flight.

    Results land in a pre-sized buffer at each item's original position, so
    output order matches input order whatever the completion order. The first
    failure cancels the remaining workers and is re-raised; no partial list is
    ever returned.
    """
    if not items:
        return []

    results: list[R] = [None] * len(items)  # type: ignore[list-item]
    queue: asyncio.Queue[int] = asyncio.Queue()
    for index in range(len(items)):
        queue.put_nowait(index)

    async def _drain() -> None:
        while True:
            try:
                index = queue.get_nowait()
            except asyncio.QueueEmpty:
                return
            results[index] = await worker(items[index], index)

    worker_count = min(max(1, limit), len(items))
    tasks = [asyncio.create_task(_drain()) for _ in range(worker_count)]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return results
