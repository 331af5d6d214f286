"""
Runtime configuration for the document summary tool.

Values come from Vault (see ``utils.vault``) with the process environment as
fallback, and are validated once at process start:

    from tools.doc_summary.config import SummaryConfig
    config = SummaryConfig.from_env()
"""

from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from utils.vault import secrets
from utils.core.errors import ConfigurationError
from utils.llm.retry import RETRYABLE_STATUS_CODES, RetryPolicy

DEFAULT_FALLBACK_MODELS = ("gemini-2.5-pro", "gemini-2.5-flash")

# env key -> field name
_ENV_FIELDS = {
    "GEMINI_API_KEY": "gemini_api_key",
    "GEMINI_MODEL": "gemini_model",
    "MAX_INPUT_CHARS": "max_input_chars",
    "CHUNK_SIZE": "chunk_size",
    "MAX_CHUNK_CONCURRENCY": "max_chunk_concurrency",
    "GEMINI_RETRY_LIMIT": "retry_limit",
    "GEMINI_RETRY_DELAY_MS": "retry_delay_ms",
    "OCR_LANG": "ocr_language",
    "MAX_UPLOAD_BYTES": "max_upload_bytes",
    "ANALYSIS_TIMEOUT_SECONDS": "analysis_timeout_seconds",
    "PORT": "port",
}


class SummaryConfig(BaseModel):
    """Validated settings consumed by the analysis pipeline and the HTTP boundary."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    gemini_api_key: Optional[str] = Field(default=None, repr=False)
    gemini_model: Optional[str] = None
    fallback_models: tuple[str, ...] = DEFAULT_FALLBACK_MODELS

    max_input_chars: int = Field(default=20_000, ge=1)
    chunk_size: int = Field(default=4_000, ge=1)
    max_chunk_concurrency: int = Field(default=3, ge=1)
    retry_limit: int = Field(default=3, ge=1)
    retry_delay_ms: int = Field(default=2_000, ge=0)
    retryable_status_codes: frozenset[int] = RETRYABLE_STATUS_CODES

    ocr_language: str = "en"
    max_upload_bytes: int = Field(default=50 * 1024 * 1024, ge=1)
    analysis_timeout_seconds: float = Field(default=0, ge=0)
    port: int = Field(default=8000, ge=1, le=65535)

    @field_validator("gemini_api_key", "gemini_model", mode="before")
    @classmethod
    def _blank_to_none(cls, v):
        if isinstance(v, str) and not v.strip():
            return None
        return v.strip() if isinstance(v, str) else v

    @property
    def model_candidates(self) -> list[str]:
        """Preferred model first, then the fixed fallbacks; deduplicated, order kept."""
        ordered = [self.gemini_model, *self.fallback_models]
        return list(dict.fromkeys(m for m in ordered if m))

    @property
    def retry_policy(self) -> RetryPolicy:
        return RetryPolicy(
            retry_limit=self.retry_limit,
            base_delay_ms=self.retry_delay_ms,
            retryable_statuses=self.retryable_status_codes,
        )

    def require_models(self) -> list[str]:
        candidates = self.model_candidates
        if not candidates:
            raise ConfigurationError(
                "No Gemini models configured. Set GEMINI_MODEL or use the default list."
            )
        return candidates

    @classmethod
    def from_env(cls, **overrides) -> "SummaryConfig":
        values = {}
        for env_key, field_name in _ENV_FIELDS.items():
            raw = secrets.get(env_key, default="")
            if raw not in ("", None):
                values[field_name] = raw
        values.update(overrides)
        try:
            config = cls(**values)
        except ValidationError as exc:
            raise ConfigurationError(f"Invalid configuration: {exc}") from exc
        config.require_models()
        return config
