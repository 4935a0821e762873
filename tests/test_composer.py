"""Tests for response composition and its fallbacks."""

from elicit.conversation.composer import (
    CATEGORY_QUESTIONS,
    DEFAULT_GAP_QUESTION,
    ResponseComposer,
    fallback_response,
    gap_question,
    selection_acknowledgment,
)
from elicit.conversation.policy import Action, PolicyDecision
from elicit.conversation.state import Category, CoverageLevel, create_initial_state
from elicit.core.errors import ServiceUnavailable

from tests.conftest import FakeCompletionService


class BrokenStream(FakeCompletionService):
    """Streams a couple of fragments, then drops the connection."""

    def complete_stream(self, prompt, system=None, model=None, temperature=None):
        yield "Tell me "
        yield "more "
        raise ServiceUnavailable("connection reset")


def test_selection_acknowledgment():
    assert selection_acknowledgment(0, 2) == ""
    assert selection_acknowledgment(1, 1) == "Got it, I've noted that task! "
    assert selection_acknowledgment(2, 2) == "Nice, 2 more tasks added! "
    assert selection_acknowledgment(1, 4) == "Great, I see you've added 4 tasks from the suggestions! "


def test_gap_question_targets_lowest_category():
    state = create_initial_state("Analyst")
    for category in Category:
        state.coverage[category] = CoverageLevel.MEDIUM
    assert gap_question(state) == DEFAULT_GAP_QUESTION

    state.coverage[Category.WORK_OUTPUT] = CoverageLevel.LOW
    assert gap_question(state) == CATEGORY_QUESTIONS[Category.WORK_OUTPUT]


def test_fallback_response_for_every_action():
    state = create_initial_state("Nurse")
    for action in Action:
        text = fallback_response(action, state)
        assert text
    assert "Nurse" in fallback_response(Action.OPEN, state)


def test_offline_ready_question_is_used_verbatim(offline, config):
    composer = ResponseComposer(offline, config)
    decision = PolicyDecision(Action.ASK_GAP_QUESTION, question="Who reviews your work?")
    assert composer.compose(decision, create_initial_state("Analyst")) == "Who reviews your work?"


def test_offline_initial_dump_reply(offline, config):
    composer = ResponseComposer(offline, config)
    state = create_initial_state("Analyst")
    state.mentioned_activities = ["write reports"]

    reply = composer.compose(PolicyDecision(Action.ENCOURAGE_MORE), state, initial_tasks="I write reports")

    assert reply == "Good start! " + CATEGORY_QUESTIONS[Category.INFORMATION_INPUT]


def test_offline_detailed_initial_dump_reply(offline, config):
    composer = ResponseComposer(offline, config)
    state = create_initial_state("Analyst")
    state.mentioned_activities = ["a", "b", "c", "d", "e"]

    reply = composer.compose(PolicyDecision(Action.ENCOURAGE_MORE), state, initial_tasks="lots")

    assert reply.startswith("Thanks for that detailed overview! ")


def test_compose_prefixes_selection_acknowledgment(offline, config):
    state = create_initial_state("Analyst")
    state.selected_suggestion_ids = ["ai-1"]
    reply = ResponseComposer(offline, config).compose(PolicyDecision(Action.ENCOURAGE_MORE), state)
    assert reply.startswith("Got it, I've noted that task! ")


def test_compose_uses_model_text(config):
    completion = FakeCompletionService(text="What does a typical Monday look like?")
    reply = ResponseComposer(completion, config).compose(PolicyDecision(Action.OPEN), create_initial_state("Analyst"))
    assert reply == "What does a typical Monday look like?"


def test_compose_empty_model_text_uses_fallback(config):
    completion = FakeCompletionService(text="   ")
    state = create_initial_state("Analyst")
    reply = ResponseComposer(completion, config).compose(PolicyDecision(Action.FINISH), state)
    assert reply == fallback_response(Action.FINISH, state)


def test_compose_failure_uses_fallback(config):
    completion = FakeCompletionService(text=ServiceUnavailable("timeout"))
    state = create_initial_state("Analyst")
    reply = ResponseComposer(completion, config).compose(PolicyDecision(Action.OFFER_TO_FINISH), state)
    assert reply == fallback_response(Action.OFFER_TO_FINISH, state)


def test_initial_dump_uses_gap_analysis_question(config):
    completion = FakeCompletionService(
        structured={"GapAnalysis": {"gap_area": "stakeholders", "suggested_question": "Who do you brief?"}},
        text="should not be used",
    )
    decision = PolicyDecision(Action.ENCOURAGE_MORE, reference_tasks=["Evaluate policies"])

    reply = ResponseComposer(completion, config).compose(decision, create_initial_state("Analyst"), "I write briefs")

    assert reply == "Who do you brief?"
    assert completion.calls_for("text") == []


def test_stream_yields_fragments(config):
    completion = FakeCompletionService(text="Tell me about your week")
    fragments = list(ResponseComposer(completion, config).compose_stream(
        PolicyDecision(Action.OPEN), create_initial_state("Analyst")))
    assert len(fragments) > 1
    assert "".join(fragments).strip() == "Tell me about your week"


def test_stream_failure_keeps_partial_text(config):
    composer = ResponseComposer(BrokenStream(), config)
    fragments = list(composer.compose_stream(PolicyDecision(Action.ENCOURAGE_MORE), create_initial_state("Analyst")))
    assert fragments == ["Tell me ", "more "]


def test_stream_failure_before_text_uses_fallback(config):
    completion = FakeCompletionService(text=ServiceUnavailable("down"))
    state = create_initial_state("Analyst")
    fragments = list(ResponseComposer(completion, config).compose_stream(PolicyDecision(Action.ENCOURAGE_MORE), state))
    assert fragments == [fallback_response(Action.ENCOURAGE_MORE, state)]
