"""Tests for task normalization."""

import pytest

from elicit.canonicalization.models import ExtractedTask
from elicit.canonicalization.normalization import TaskNormalizer, fallback_normalize
from elicit.core.errors import ServiceUnavailable

from tests.conftest import FakeCompletionService


@pytest.mark.parametrize("raw, expected", [
    ("I review contracts for compliance.", "Review contracts for compliance"),
    ("basically I manage our team budget", "Manage team budget"),
    ("mostly coordinating with vendors", "Coordinate mostly with vendors"),
    ("Writing weekly status reports!", "Write weekly status reports"),
])
def test_fallback_normalize(raw, expected):
    assert fallback_normalize(raw) == expected


def test_fallback_keeps_original_when_everything_is_stripped():
    assert fallback_normalize("basically") == "Basically"


def test_fallback_truncates_at_word_boundary():
    raw = "Review " + " ".join(["quarterly"] * 20)
    result = fallback_normalize(raw)
    assert len(result) <= 100
    assert result.endswith("quarterly")


def _pairs(prompt):
    """Echo every numbered task back in upper case."""
    lines = [line.split(". ", 1)[1] for line in prompt.splitlines() if line[:1].isdigit() and ". " in line]
    return {"normalized_tasks": [{"original": t, "normalized": t.upper()} for t in lines]}


def test_llm_normalization_runs_in_batches(config):
    completion = FakeCompletionService(structured={"NormalizationOutput": _pairs})
    tasks = [ExtractedTask(raw=f"task {i}") for i in range(23)]

    normalized = TaskNormalizer(completion, config).normalize(tasks)

    assert len(completion.calls_for("NormalizationOutput")) == 3
    assert [n.original for n in normalized] == [t.raw for t in tasks]
    assert normalized[22].normalized == "TASK 22"


def test_any_batch_failure_falls_back_for_all(config):
    completion = FakeCompletionService(structured={"NormalizationOutput": [_pairs, ServiceUnavailable("rate limited")]})
    tasks = [ExtractedTask(raw=f"I review item {i}") for i in range(15)]

    normalized = TaskNormalizer(completion, config).normalize(tasks)

    assert [n.normalized for n in normalized] == [f"Review item {i}" for i in range(15)]


def test_count_mismatch_falls_back(config):
    completion = FakeCompletionService(structured={"NormalizationOutput": {"normalized_tasks": []}})
    normalized = TaskNormalizer(completion, config).normalize([ExtractedTask(raw="I draft memos")])
    assert normalized[0].normalized == "Draft memos"


def test_empty_input(config):
    assert TaskNormalizer(FakeCompletionService(), config).normalize([]) == []


@pytest.mark.parametrize("raw, expected", [
    ("Me and the team review the weekly metrics dashboard", "The team review the weekly metrics dashboard"),
    ("I'm responsible for onboarding new hires", "Responsible for onboarding new hires"),
    ("I've drafted the grant budget", "Drafted the grant budget"),
    ("I", ""),
])
def test_fallback_never_starts_with_first_person(raw, expected):
    assert fallback_normalize(raw) == expected


def test_model_statements_are_bounded(config):
    long_statement = "I coordinate " + " ".join(["coordination"] * 40)
    completion = FakeCompletionService(structured={"NormalizationOutput": {"normalized_tasks": [
        {"original": "x", "normalized": long_statement},
        {"original": "y", "normalized": "We review vendor contracts"},
    ]}})

    normalized = TaskNormalizer(completion, config).normalize(
        [ExtractedTask(raw="I coordinate things"), ExtractedTask(raw="we review contracts")])

    assert [len(n.normalized) <= 100 for n in normalized] == [True, True]
    assert normalized[0].normalized.startswith("Coordinate coordination")
    assert normalized[1].normalized == "Review vendor contracts"


def test_pronoun_only_phrases_are_dropped(offline, config):
    normalized = TaskNormalizer(offline, config).normalize([ExtractedTask(raw="I"), ExtractedTask(raw="I plan events")])
    assert [n.normalized for n in normalized] == ["Plan events"]
