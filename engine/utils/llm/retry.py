"""Error classification and backoff policy for Gemini calls.

Raw SDK exceptions are classified exactly once, where the Gemini call is made,
into a :class:`ModelCallError` carrying an :class:`ErrorKind` tag. Everything
above that point (retry loop, model fallback, orchestrator) dispatches on the
tag and never looks at message text again.

Delay rules
-----------
* base delay is ``base_delay_ms * (attempt + 1)`` with a 0-based attempt;
* a provider hint ("Please retry in 24.5s." in the message, or a ``retryDelay``
  entry in the structured error details) raises the wait to the hint;
* a transient error on the last allowed attempt still propagates.
"""

from __future__ import annotations

import re
import asyncio
from enum import Enum
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Iterable, Optional

import httpx
import tenacity

from utils.core.log import get_logger


RETRYABLE_STATUS_CODES = frozenset({429, 503})
NOT_FOUND_STATUS = 404

_RETRYABLE_MSG_RE = re.compile(
    r"overloaded|service unavailable|timeout|quota exceeded|retry", re.IGNORECASE
)
_NOT_FOUND_MSG_RE = re.compile(r"not found", re.IGNORECASE)
_RETRY_IN_RE = re.compile(r"retry in\s+([0-9.]+)s", re.IGNORECASE)


class ErrorKind(Enum):
    TRANSIENT = "transient"
    PERMANENT = "permanent"
    MISSING_MODEL = "missing_model"


@dataclass(frozen=True)
class ErrorClass:
    kind: ErrorKind
    delay_hint_ms: Optional[float] = None
    status_code: Optional[int] = None


class ModelCallError(Exception):
    """A failed model invocation, tagged with its classification.

    ``str(err)`` is the provider message unchanged so that wording such as
    "quota", "overloaded" or "retry" reaches the HTTP boundary intact.
    """

    def __init__(
        self,
        message: str,
        *,
        classification: ErrorClass | None = None,
        model_id: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.classification = classification or ErrorClass(ErrorKind.PERMANENT)
        self.model_id = model_id

    @property
    def kind(self) -> ErrorKind:
        return self.classification.kind

    @property
    def delay_hint_ms(self) -> Optional[float]:
        return self.classification.delay_hint_ms

    @property
    def status_code(self) -> Optional[int]:
        return self.classification.status_code

    @classmethod
    def from_exception(
        cls,
        exc: BaseException,
        *,
        model_id: str | None = None,
        retryable_statuses: Iterable[int] = RETRYABLE_STATUS_CODES,
    ) -> "ModelCallError":
        message = _error_message(exc)
        return cls(
            message,
            classification=classify_error(exc, retryable_statuses=retryable_statuses),
            model_id=model_id,
        )


# Raw error inspection (only used by classify_error)
def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None


def _status_code(exc: BaseException) -> Optional[int]:
    """google.genai APIError exposes ``code``; httpx errors carry a response."""
    for attr in ("code", "status_code", "status"):
        code = _as_int(getattr(exc, attr, None))
        if code is not None:
            return code
    response = getattr(exc, "response", None)
    if response is not None:
        return _as_int(getattr(response, "status_code", None))
    return None


def _error_message(exc: BaseException) -> str:
    msg = str(exc)
    if msg:
        return msg
    return getattr(exc, "message", None) or type(exc).__name__


def _error_details(exc: BaseException) -> list:
    """
    Collect the structured detail list.

    APIError.details is the decoded response body:
    ``{"error": {"code": 429, "details": [{"@type": ".../RetryInfo", "retryDelay": "24s"}]}}``.
    A bare ``error_details`` list is accepted as well.
    """
    plain = getattr(exc, "error_details", None)
    if isinstance(plain, list):
        return plain

    details = getattr(exc, "details", None)
    if isinstance(details, list):
        return details
    if isinstance(details, dict):
        inner = details.get("error", details)
        if isinstance(inner, dict) and isinstance(inner.get("details"), list):
            return inner["details"]
    return []


def parse_delay_from_message(message: str | None) -> float:
    """Milliseconds from a "retry in <n>s" phrase, 0 when absent."""
    match = _RETRY_IN_RE.search(message or "")
    if match:
        try:
            return float(match.group(1)) * 1000
        except ValueError:
            return 0
    return 0


def parse_delay_from_details(details: Any) -> float:
    """Milliseconds from the first usable ``retryDelay`` detail, 0 when absent."""
    if not isinstance(details, list):
        return 0
    for detail in details:
        if not isinstance(detail, dict):
            continue
        delay = detail.get("retryDelay")
        if not delay:
            continue
        if isinstance(delay, str) and delay.endswith("s"):
            try:
                return float(delay[:-1]) * 1000
            except ValueError:
                pass
        if isinstance(delay, (int, float)) and not isinstance(delay, bool):
            return float(delay) * 1000
    return 0


def is_missing_model(exc: BaseException) -> bool:
    if _status_code(exc) == NOT_FOUND_STATUS:
        return True
    return bool(_NOT_FOUND_MSG_RE.search(_error_message(exc)))


def is_retryable(
    exc: BaseException, retryable_statuses: Iterable[int] = RETRYABLE_STATUS_CODES
) -> bool:
    if _status_code(exc) in set(retryable_statuses):
        return True
    if isinstance(exc, (TimeoutError, httpx.TimeoutException)):
        return True
    return bool(_RETRYABLE_MSG_RE.search(_error_message(exc)))


def classify_error(
    exc: BaseException, *, retryable_statuses: Iterable[int] = RETRYABLE_STATUS_CODES
) -> ErrorClass:
    """
    Tag a raw backend exception.

    A missing model wins over transient wording: the candidate is skipped
    instead of being retried.
    """
    code = _status_code(exc)
    if is_missing_model(exc):
        return ErrorClass(ErrorKind.MISSING_MODEL, status_code=code)
    if is_retryable(exc, retryable_statuses):
        hint = max(
            parse_delay_from_message(_error_message(exc)),
            parse_delay_from_details(_error_details(exc)),
        )
        return ErrorClass(ErrorKind.TRANSIENT, delay_hint_ms=hint or None, status_code=code)
    return ErrorClass(ErrorKind.PERMANENT, status_code=code)


def _is_transient_call_error(exc: BaseException) -> bool:
    return isinstance(exc, ModelCallError) and exc.kind is ErrorKind.TRANSIENT


def _log_before_sleep(retry_state: tenacity.RetryCallState) -> None:
    exc = retry_state.outcome.exception() if retry_state.outcome else None
    wait_s = retry_state.next_action.sleep if retry_state.next_action else 0
    get_logger().warning(
        "Gemini call failed (attempt %d, model=%s): %s | retrying in %.1fs",
        retry_state.attempt_number,
        getattr(exc, "model_id", None),
        exc,
        wait_s,
    )


@dataclass(frozen=True)
class RetryPolicy:
    """Per-candidate retry budget and backoff."""

    retry_limit: int = 3
    base_delay_ms: int = 2000
    retryable_statuses: frozenset[int] = RETRYABLE_STATUS_CODES

    def delay_ms(self, classification: ErrorClass | None, attempt: int) -> float:
        """Wait before the next try after a failed 0-based ``attempt``."""
        default_delay = self.base_delay_ms * (attempt + 1)
        hint = classification.delay_hint_ms if classification else None
        return max(default_delay, hint or 0)

    def classify(self, exc: BaseException, model_id: str | None = None) -> ModelCallError:
        if isinstance(exc, ModelCallError):
            return exc
        return ModelCallError.from_exception(
            exc, model_id=model_id, retryable_statuses=self.retryable_statuses
        )

    def _wait(self, retry_state: tenacity.RetryCallState) -> float:
        exc = retry_state.outcome.exception()
        classification = getattr(exc, "classification", None)
        return self.delay_ms(classification, retry_state.attempt_number - 1) / 1000

    def retrying(
        self, sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep
    ) -> tenacity.AsyncRetrying:
        return tenacity.AsyncRetrying(
            retry=tenacity.retry_if_exception(_is_transient_call_error),
            wait=self._wait,
            stop=tenacity.stop_after_attempt(max(1, self.retry_limit)),
            sleep=sleep,
            before_sleep=_log_before_sleep,
            reraise=True,
        )
