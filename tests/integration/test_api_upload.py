import io

import pytest

import api
from utils.core.errors import DocumentExtractionError
from utils.llm.retry import ErrorClass, ErrorKind, ModelCallError
from tools.doc_summary.config import SummaryConfig
from tools.doc_summary.doc_summary_models import AnalysisResult


class StubAnalyzer:
    def __init__(self, error: Exception | None = None):
        self.error = error
        self.calls = []

    async def analyze(self, text, length="medium"):
        self.calls.append((text, length))
        if self.error:
            raise self.error
        return AnalysisResult(
            summary="It works. Really.",
            key_points=["one"],
            improvement_suggestions=["two"],
            highlights=["It works.", "Really."],
        )


@pytest.fixture(autouse=True)
def logging_setups(monkeypatch):
    """Record create_app's logging setup instead of reconfiguring the root logger."""
    calls = []
    monkeypatch.setattr(api, "setup_logging", lambda: calls.append(1))
    return calls


@pytest.fixture
def extracted(monkeypatch):
    """Replace the PDF/OCR collaborator; set `.text` or `.error` per test."""
    state = type("State", (), {"text": "Extracted body text.", "error": None})()

    def _fake_extract(document_bytes, kind, *, filename, ocr_language=None):
        if state.error:
            raise state.error
        return state.text

    monkeypatch.setattr(api, "extract_text", _fake_extract)
    return state


def _client(analyzer=None, **config):
    app = api.create_app(
        SummaryConfig(gemini_model="test-model", **config),
        analyzer=analyzer or StubAnalyzer(),
    )
    app.testing = True
    return app.test_client()


def _upload(client, name="doc.pdf", body=b"%PDF-1.4 fake", **form):
    data = {"file": (io.BytesIO(body), name), **form}
    return client.post("/upload", data=data, content_type="multipart/form-data")


def test_app_factory_configures_logging(logging_setups):
    _client()
    assert logging_setups == [1]


def test_root_and_ping():
    client = _client()
    assert client.get("/").get_data(as_text=True) == "Document Summary Assistant API running"

    resp = client.get("/ping")
    assert resp.status_code == 200
    assert resp.get_json() == {"success": True, "data": {"status": "pong"}}


def test_successful_upload_returns_envelope(extracted):
    analyzer = StubAnalyzer()
    resp = _upload(_client(analyzer), length="short")

    assert resp.status_code == 200
    body = resp.get_json()
    assert body["success"] is True
    data = body["data"]
    assert data["summary"] == "It works. Really."
    assert data["keyPoints"] == ["one"]
    assert data["file"]["name"] == "doc.pdf"
    assert data["file"]["size"] == len(b"%PDF-1.4 fake")
    assert data["stats"]["extractedCharacters"] == len("Extracted body text.")
    assert data["summaryLength"] == "short"
    assert analyzer.calls == [("Extracted body text.", "short")]


def test_length_defaults_to_medium(extracted):
    analyzer = StubAnalyzer()
    _upload(_client(analyzer))
    assert analyzer.calls[0][1] == "medium"


def test_missing_file_is_rejected():
    resp = _client().post("/upload", data={}, content_type="multipart/form-data")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "No file uploaded"
    assert resp.get_json()["success"] is False


def test_unsupported_type_is_rejected(extracted):
    resp = _upload(_client(), name="notes.txt")
    assert resp.status_code == 400
    assert resp.get_json()["error"] == "Only PDF and image files are allowed"


def test_empty_extraction_is_rejected(extracted):
    extracted.text = "   "
    resp = _upload(_client())
    assert resp.status_code == 400
    body = resp.get_json()
    assert body["error"] == "No text could be extracted from the document"
    assert body["stage"] == "validation"


def test_extraction_failure_is_500(extracted):
    extracted.error = DocumentExtractionError("Could not read PDF 'doc.pdf': bad xref")
    resp = _upload(_client())
    assert resp.status_code == 500
    assert resp.get_json()["stage"] == "extraction"


def test_analysis_failure_preserves_provider_message(extracted):
    error = ModelCallError(
        "429 Resource exhausted: quota exceeded. Please retry in 5s.",
        classification=ErrorClass(ErrorKind.TRANSIENT, delay_hint_ms=5000),
    )
    resp = _upload(_client(StubAnalyzer(error=error)))

    assert resp.status_code == 500
    body = resp.get_json()
    assert body["success"] is False
    assert body["error"] == str(error)
    assert body["retryable"] is True
    assert body["stage"] == "analysis"
    assert body["timestamp"].endswith("Z")


def test_permanent_failure_is_not_marked_retryable(extracted):
    resp = _upload(_client(StubAnalyzer(error=ModelCallError("Invalid argument"))))
    assert resp.status_code == 500
    assert resp.get_json()["retryable"] is False


def test_oversize_upload_is_413(extracted):
    resp = _upload(_client(max_upload_bytes=16), body=b"x" * 64)
    assert resp.status_code == 413
    assert resp.get_json()["error"].startswith("File too large")
