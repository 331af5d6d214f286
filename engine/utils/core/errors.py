import re
from datetime import datetime, UTC

# same vocabulary the web client uses to show "please wait, retrying"
_RETRYABLE_HINT_RE = re.compile(
    r"quota|429|retry|wait|exceeded|overloaded|503|service unavailable", re.IGNORECASE
)


class DocSummaryError(Exception):
    """Base class for errors raised by the summary engine."""


class ConfigurationError(DocSummaryError):
    """Raised when process configuration is missing or invalid."""


class DocumentValidationError(DocSummaryError):
    """Bad upload: unsupported type, oversize payload or no extractable text."""


class DocumentExtractionError(DocSummaryError):
    """The PDF / OCR collaborator failed to produce text."""


def looks_retryable(message: str) -> bool:
    return bool(_RETRYABLE_HINT_RE.search(message or ""))


def make_error_payload(
    err: Exception | str, stage: str | None = None, extra: dict | None = None
) -> dict:
    msg = str(err)
    base = {
        "success": False,
        "error": msg,
        "retryable": looks_retryable(msg),
        "timestamp": datetime.now(UTC)
        .isoformat(timespec="milliseconds")
        .replace("+00:00", "Z"),
    }
    if stage:
        base["stage"] = stage
    if extra:
        base.update(extra)
    return base
