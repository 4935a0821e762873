"""Pytest configuration and shared fakes for the elicitation tests."""

from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, List, Optional, Union

import pytest
from pydantic import BaseModel

from elicit.canonicalization import pipeline as pipeline_module
from elicit.conversation import chat_service as chat_service_module
from elicit.core.config import ElicitConfig, set_config
from elicit.core.errors import ServiceUnavailable
from elicit.core.session_store import MemorySessionStore, set_session_store
from elicit.services.completion import set_completion_service
from elicit.services.retrieval import LocalTaxonomyIndex, set_retrieval_service


Scripted = Union[BaseModel, Dict[str, Any], Exception, Callable[[str], Any], List[Any]]


class FakeCompletionService:
    """
    Scripted stand-in for the completion service.

    ``structured`` maps a schema class name to its reply: a model instance, a
    dict validated against the schema, an exception to raise, a callable
    taking the prompt, or a list consumed one reply per call. Schemas without
    a script raise ServiceUnavailable, like an unreachable upstream.
    """

    def __init__(
        self,
        structured: Optional[Dict[str, Scripted]] = None,
        text: Optional[Union[str, Exception, List[Any]]] = None,
        available: bool = True,
    ):
        self.structured = structured or {}
        self.text = text
        self.available = available
        self.calls: List[Dict[str, Any]] = []

    def is_available(self) -> bool:
        return self.available

    @staticmethod
    def _next(script, prompt):
        if isinstance(script, list):
            if not script:
                raise ServiceUnavailable("script exhausted")
            script = script.pop(0)
        if callable(script) and not isinstance(script, (BaseModel, Exception)):
            script = script(prompt)
        if isinstance(script, Exception):
            raise script
        return script

    def complete(self, prompt, system=None, model=None, temperature=None) -> str:
        self.calls.append({"kind": "text", "prompt": prompt, "model": model, "temperature": temperature})
        if not self.available or self.text is None:
            raise ServiceUnavailable("no text scripted")
        return self._next(self.text, prompt)

    def complete_stream(self, prompt, system=None, model=None, temperature=None):
        text = self.complete(prompt, system, model, temperature)
        for word in text.split(" "):
            yield word + " "

    def complete_structured(self, prompt, schema, system=None, model=None, temperature=None):
        self.calls.append({
            "kind": schema.__name__, "prompt": prompt, "model": model, "temperature": temperature,
        })
        if not self.available or schema.__name__ not in self.structured:
            raise ServiceUnavailable(f"no {schema.__name__} scripted")
        reply = self._next(self.structured[schema.__name__], prompt)
        if isinstance(reply, dict):
            return schema.model_validate(reply)
        return reply

    def calls_for(self, kind: str) -> List[Dict[str, Any]]:
        return [c for c in self.calls if c["kind"] == kind]


class Clock:
    """Settable clock for expiry tests."""

    def __init__(self):
        self.now = datetime(2025, 1, 1, tzinfo=timezone.utc)

    def __call__(self):
        return self.now

    def advance(self, seconds):
        self.now += timedelta(seconds=seconds)


SAMPLE_OCCUPATIONS = [
    {"id": "occ-1", "code": "19-3094.00", "title": "Policy Analysts",
     "description": "Analyze public policy and advise on the development of policies."},
    {"id": "occ-2", "code": "15-1252.00", "title": "Software Developers",
     "description": "Design and develop computer software."},
]

SAMPLE_TASKS = [
    {"id": "t-1", "text": "Evaluate the effects of proposed policies", "occupation_code": "19-3094.00",
     "occupation_title": "Policy Analysts", "task_type": "Core"},
    {"id": "t-2", "text": "Write policy briefs and reports for legislators", "occupation_code": "19-3094.00",
     "occupation_title": "Policy Analysts", "task_type": "Core"},
    {"id": "t-3", "text": "Collect and analyze survey data on public opinion", "occupation_code": "19-3094.00",
     "occupation_title": "Policy Analysts", "task_type": "Supplemental"},
    {"id": "t-4", "text": "Review code written by other developers", "occupation_code": "15-1252.00",
     "occupation_title": "Software Developers", "task_type": "Core"},
    {"id": "t-5", "text": "Write and test software code", "occupation_code": "15-1252.00",
     "occupation_title": "Software Developers", "task_type": "Core"},
]


@pytest.fixture
def config():
    return ElicitConfig()


@pytest.fixture
def taxonomy():
    return LocalTaxonomyIndex(tasks=[dict(t) for t in SAMPLE_TASKS],
                              occupations=[dict(o) for o in SAMPLE_OCCUPATIONS])


@pytest.fixture
def offline():
    """A completion service that is not configured."""
    return FakeCompletionService(available=False)


@pytest.fixture
def store():
    return MemorySessionStore(ttl_seconds=3600)


@pytest.fixture(scope="function", autouse=True)
def _isolate_globals(tmp_path, monkeypatch):
    """Fresh config, offline services and a temp log dir for every test."""
    monkeypatch.setattr(chat_service_module, "CONVERSATION_LOG_DIR", tmp_path / "sessions")
    set_config(ElicitConfig())
    set_completion_service(FakeCompletionService(available=False))
    set_retrieval_service(LocalTaxonomyIndex())
    set_session_store(MemorySessionStore())
    chat_service_module.set_chat_service(None)
    pipeline_module.set_task_pipeline(None)
    yield
    chat_service_module.set_chat_service(None)
    pipeline_module.set_task_pipeline(None)
