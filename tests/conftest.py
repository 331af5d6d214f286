from typing import Callable

import pytest

from utils.llm.LLM import FallbackLLM, ModelHandleCache
from utils.llm.retry import RetryPolicy
from tools.doc_summary.config import _ENV_FIELDS


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch, tmp_path):
    for key in _ENV_FIELDS:
        monkeypatch.delenv(key, raising=False)
    monkeypatch.delenv("VAULT_ADDR", raising=False)
    monkeypatch.setenv("DOCSUM_LOG_DIR", str(tmp_path / "logs"))


class ScriptedModel:
    """Model handle that replays a per-model script of texts / exceptions."""

    def __init__(self, model_id: str, script: dict, calls: list):
        self.model_id = model_id
        self._script = script
        self._calls = calls

    async def generate(self, prompt: str) -> str:
        self._calls.append(self.model_id)
        outcomes = self._script[self.model_id]
        outcome = outcomes.pop(0) if len(outcomes) > 1 else outcomes[0]
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


class SleepRecorder:
    def __init__(self):
        self.delays: list[float] = []

    async def __call__(self, seconds: float) -> None:
        self.delays.append(seconds)


@pytest.fixture
def sleep_recorder() -> SleepRecorder:
    return SleepRecorder()


@pytest.fixture
def make_llm(sleep_recorder) -> Callable[..., tuple[FallbackLLM, list, list]]:
    """
    Build a FallbackLLM over scripted models.

    Returns (llm, calls, factory_calls): `calls` lists the model id of every
    generate() call, `factory_calls` every model resolution.
    """

    def _make(script: dict, *, retry_limit: int = 3, base_delay_ms: int = 2000, cache=None):
        calls: list[str] = []
        factory_calls: list[str] = []

        def _factory(model_id: str) -> ScriptedModel:
            factory_calls.append(model_id)
            return ScriptedModel(model_id, script, calls)

        llm = FallbackLLM(
            list(script),
            policy=RetryPolicy(retry_limit=retry_limit, base_delay_ms=base_delay_ms),
            cache=cache if cache is not None else ModelHandleCache(),
            model_factory=_factory,
            sleep=sleep_recorder,
        )
        return llm, calls, factory_calls

    return _make
