"""Centralised Gemini helper utilities.

This module is the single place the engine talks to Google's Gemini models.

## Key Features

- One shared `genai.Client` per process, created lazily. With a
`GEMINI_API_KEY` it uses the Gemini Developer API, otherwise Vertex AI with
Application Default Credentials.

- `GeminiModel` is the resolved handle for one model id; `ModelHandleCache`
keeps the last handle that produced a response so the next call can skip
re-resolution. The cache is a hint only: a stale or missing entry just means a
new handle is built.

- `FallbackLLM.invoke()` walks the ordered candidate list. Each candidate gets
a Tenacity retry loop driven by `utils.llm.retry.RetryPolicy`; exhausted
transient errors and missing models move on to the next candidate, any other
error aborts the call.

Import pattern for tools:
```python
from utils.llm.LLM import FallbackLLM, ModelHandleCache
```
"""

from __future__ import annotations

import os
import time
import httpx
import asyncio
import threading
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Sequence

from google import genai
from google.genai import types

from utils.core.log import get_logger
from utils.core.errors import ConfigurationError
from utils.llm.retry import ErrorKind, ModelCallError, RetryPolicy


__all__ = [
    "GeminiModel",
    "ModelHandleCache",
    "FallbackLLM",
    "get_client",
]

_CLIENT: Optional[genai.Client] = None
_LOCK = threading.Lock()


def _http_options() -> types.HttpOptions:
    limits = httpx.Limits(
        max_keepalive_connections=20,
        max_connections=100,
        keepalive_expiry=60.0,
    )
    return types.HttpOptions(
        client_args={"limits": limits, "timeout": httpx.Timeout(120.0)},
        async_client_args={"limits": limits, "timeout": httpx.Timeout(120.0)},
    )


def _create_client(api_key: str | None = None) -> genai.Client:
    if api_key:
        return genai.Client(api_key=api_key, http_options=_http_options())

    from utils.llm.gcp_credentials import ensure_gcp_credentials_from_vault

    if not ensure_gcp_credentials_from_vault() and not os.getenv("GOOGLE_CLOUD_PROJECT"):
        raise ConfigurationError(
            "No Gemini credentials: set GEMINI_API_KEY or provide a GCP service account."
        )
    return genai.Client(
        vertexai=True,
        project=os.getenv("GOOGLE_CLOUD_PROJECT"),
        location=os.getenv("VERTEX_LOCATION", "us-central1"),
        http_options=_http_options(),
    )


def get_client(api_key: str | None = None) -> genai.Client:
    global _CLIENT
    if _CLIENT is None:
        with _LOCK:
            if _CLIENT is None:
                _CLIENT = _create_client(api_key)
    return _CLIENT


class GeminiModel:
    """Resolved handle for one Gemini model id."""

    def __init__(
        self,
        model_id: str,
        *,
        client: genai.Client | None = None,
    ):
        self.model_id = model_id
        self._client = client

    @property
    def client(self) -> genai.Client:
        if self._client is None:
            self._client = get_client()
        return self._client

    async def generate(self, prompt: str) -> str:
        t0 = time.perf_counter()
        resp = await self.client.aio.models.generate_content(
            model=self.model_id, contents=prompt
        )
        usage = getattr(resp, "usage_metadata", None)
        get_logger().debug(
            "LLM Call OK | model=%s | latency=%dms | prompt_tokens=%s | total_tokens=%s",
            self.model_id,
            int((time.perf_counter() - t0) * 1000),
            getattr(usage, "prompt_token_count", -1) if usage else -1,
            getattr(usage, "total_token_count", -1) if usage else -1,
        )
        return resp.text or ""


@dataclass
class _CachedHandle:
    model_id: str
    handle: Any


class ModelHandleCache:
    """
    At most one live `{model_id, handle}` pair.

    Concurrent writers simply overwrite each other (last writer wins); callers
    only use it to skip resolving a model, never for correctness.
    """

    def __init__(self):
        self._entry: Optional[_CachedHandle] = None

    @property
    def model_id(self) -> Optional[str]:
        return self._entry.model_id if self._entry else None

    def get(self, model_id: str) -> Any:
        entry = self._entry
        if entry is not None and entry.model_id == model_id:
            return entry.handle
        return None

    def put(self, model_id: str, handle: Any) -> bool:
        """Store the handle; True when the active model id changed."""
        changed = self.model_id != model_id
        if changed or self._entry is None or self._entry.handle is not handle:
            self._entry = _CachedHandle(model_id, handle)
        return changed


ModelFactory = Callable[[str], GeminiModel]


class FallbackLLM:
    """
    `invoke(prompt) -> text` over an ordered list of Gemini model ids.

    Per candidate: up to `policy.retry_limit` attempts, sleeping between
    transient failures. After a candidate fails:
      - MISSING_MODEL or exhausted TRANSIENT -> next candidate
      - PERMANENT -> raised immediately, no further candidates
    """

    def __init__(
        self,
        candidates: Sequence[str],
        *,
        policy: RetryPolicy | None = None,
        cache: ModelHandleCache | None = None,
        model_factory: ModelFactory | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.candidates = list(dict.fromkeys(c for c in candidates if c))
        if not self.candidates:
            raise ConfigurationError(
                "No Gemini models configured. Set GEMINI_MODEL or use the default list."
            )
        self.policy = policy or RetryPolicy()
        self.cache = cache if cache is not None else ModelHandleCache()
        self._model_factory = model_factory or (lambda model_id: GeminiModel(model_id))
        self._sleep = sleep

    async def invoke(self, prompt: str) -> str:
        logger = get_logger()
        last_error: ModelCallError | None = None
        for candidate in self.candidates:
            try:
                return await self.call_model(candidate, prompt)
            except ModelCallError as exc:
                last_error = exc
                if exc.kind is ErrorKind.PERMANENT:
                    raise
                logger.warning(
                    "Gemini model %s unavailable (%s). Trying next fallback...",
                    candidate,
                    exc.kind.value,
                )

        raise last_error or ModelCallError("All configured Gemini models failed.")

    async def call_model(self, model_id: str, prompt: str) -> str:
        retrying = self.policy.retrying(sleep=self._sleep)
        return await retrying(self._attempt, model_id, prompt)

    async def _attempt(self, model_id: str, prompt: str) -> str:
        try:
            model = self.cache.get(model_id) or self._model_factory(model_id)
            text = await model.generate(prompt)
        except ModelCallError:
            raise
        except Exception as exc:
            raise self.policy.classify(exc, model_id=model_id) from exc

        if self.cache.put(model_id, model):
            get_logger().info("Gemini model in use: %s", model_id)
        return (text or "").strip()
