"""Tests for the completion service wrapper, using a stub OpenAI client."""

from types import SimpleNamespace

import openai
import pytest

from elicit.canonicalization.models import MatchSelection
from elicit.core.errors import InvalidOutput, ServiceUnavailable
from elicit.services.completion import CompletionService


class StubCompletions:
    def __init__(self, create=None, parse=None):
        self._create = create
        self._parse = parse
        self.kwargs = []

    def create(self, **kwargs):
        self.kwargs.append(kwargs)
        if isinstance(self._create, Exception):
            raise self._create
        return self._create

    def parse(self, **kwargs):
        self.kwargs.append(kwargs)
        if isinstance(self._parse, Exception):
            raise self._parse
        return self._parse


def _client(completions):
    return SimpleNamespace(chat=SimpleNamespace(completions=completions))


def _reply(**message):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(**message))])


def _chunk(content):
    return SimpleNamespace(choices=[SimpleNamespace(delta=SimpleNamespace(content=content))])


def test_unconfigured_service(config, monkeypatch):
    monkeypatch.delenv("OPENAI_API_KEY", raising=False)
    service = CompletionService(config)

    assert not service.is_available()
    with pytest.raises(ServiceUnavailable):
        service.complete("hello")
    with pytest.raises(ServiceUnavailable):
        list(service.complete_stream("hello"))


def test_complete_sends_system_and_defaults(config):
    completions = StubCompletions(create=_reply(content="Tell me more."))
    service = CompletionService(config, client=_client(completions))

    assert service.complete("prompt", system="be brief") == "Tell me more."
    sent = completions.kwargs[0]
    assert sent["model"] == config.chat_model
    assert sent["temperature"] == config.chat_temperature
    assert sent["messages"] == [{"role": "system", "content": "be brief"}, {"role": "user", "content": "prompt"}]


def test_complete_transport_error(config):
    service = CompletionService(config, client=_client(StubCompletions(create=openai.OpenAIError("timeout"))))
    with pytest.raises(ServiceUnavailable):
        service.complete("prompt")


def test_stream_skips_empty_deltas(config):
    stream = [_chunk("Hel"), _chunk(None), SimpleNamespace(choices=[]), _chunk("lo")]
    service = CompletionService(config, client=_client(StubCompletions(create=iter(stream))))
    assert list(service.complete_stream("prompt")) == ["Hel", "lo"]


def test_structured_returns_parsed_model(config):
    selection = MatchSelection(best_index=1, confidence="medium", reasoning="close")
    completions = StubCompletions(parse=_reply(parsed=selection, refusal=None))
    service = CompletionService(config, client=_client(completions))

    result = service.complete_structured("prompt", MatchSelection, model="small-model", temperature=0)

    assert result is selection
    assert completions.kwargs[0]["response_format"] is MatchSelection
    assert completions.kwargs[0]["model"] == "small-model"
    assert completions.kwargs[0]["temperature"] == 0


def test_structured_refusal_is_invalid_output(config):
    service = CompletionService(config, client=_client(StubCompletions(parse=_reply(parsed=None, refusal="no"))))
    with pytest.raises(InvalidOutput):
        service.complete_structured("prompt", MatchSelection)


def test_structured_without_parse_is_invalid_output(config):
    service = CompletionService(config, client=_client(StubCompletions(parse=_reply(parsed=None, refusal=None))))
    with pytest.raises(InvalidOutput):
        service.complete_structured("prompt", MatchSelection)
