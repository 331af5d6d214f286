"""
GCP / Vertex AI credentials for Gemini (Application Default Credentials).

Only needed when no GEMINI_API_KEY is configured: the Gemini client then
talks to Vertex AI and the Vision OCR client uses the same service account.

Credentials file is written to the repo root
"""

import json
import os
from pathlib import Path

from utils.vault import secrets

CREDS_FILENAME = "gcp-credentials.json"
DEFAULT_LOCATION = "us-central1"


def _repo_root() -> Path:
    resolved = Path(__file__).resolve()
    parts = resolved.parts
    try:
        idx = parts.index("engine")
        return Path(*parts[:idx])
    except ValueError:
        # No "engine" in path (e.g. Docker: /app/utils/llm/...)
        return resolved.parent.parent.parent


def _default_creds_path() -> str:
    """Prefer GOOGLE_APPLICATION_CREDENTIALS if already set and the file exists."""
    explicit = os.environ.get("GOOGLE_APPLICATION_CREDENTIALS", "").strip()
    if explicit and os.path.isfile(explicit):
        return explicit
    return str(_repo_root() / CREDS_FILENAME)


def _export_defaults(creds_path: str) -> None:
    os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = creds_path
    os.environ.setdefault("VERTEX_LOCATION", DEFAULT_LOCATION)


def ensure_gcp_credentials_from_vault() -> bool:
    """
    Set Application Default Credentials from Vault or an existing file.

    Returns True when a credentials file is in place.
    """
    creds_path = _default_creds_path()
    if os.path.isfile(creds_path):
        _export_defaults(creds_path)
        return True

    raw = secrets.get("gcp-service-account", default="")
    if not (raw and str(raw).strip()):
        return False
    key_data = json.dumps(raw) if isinstance(raw, dict) else str(raw)
    creds_dir = os.path.dirname(creds_path)
    if creds_dir:
        os.makedirs(creds_dir, exist_ok=True)
    with open(creds_path, "w") as f:
        f.write(key_data)
    os.chmod(creds_path, 0o600)
    _export_defaults(creds_path)
    return True
