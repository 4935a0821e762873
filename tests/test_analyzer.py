"""Tests for the message analyzer and its heuristic fallback."""

from elicit.conversation.analyzer import (
    MessageAnalyzer,
    detect_confirmation,
    detect_stop_intent,
    extract_task_mentions,
    heuristic_analysis,
)
from elicit.conversation.state import Category, CoverageLevel, Engagement, create_initial_state
from elicit.core.errors import InvalidOutput

from tests.conftest import FakeCompletionService


def test_detect_stop_intent():
    assert detect_stop_intent("I think that's all for now")
    assert detect_stop_intent("Nothing else, I'm done")
    assert not detect_stop_intent("I also review contracts")


def test_detect_confirmation():
    assert detect_confirmation("Yes, I do all of those")
    assert not detect_confirmation("I review contracts")


def test_heuristic_counts_verbs_and_segments():
    analysis = heuristic_analysis("I write reports, I review contracts and I meet with clients.")
    assert analysis.new_task_count == 3
    assert analysis.new_activities == ["I write reports", "I review contracts and I meet with clients"]
    assert analysis.engagement == Engagement.LOW


def test_heuristic_counts_gerunds():
    analysis = heuristic_analysis("Mostly scheduling and coordinating things")
    assert analysis.new_task_count == 2


def test_heuristic_caps_task_count():
    message = "I write, create, develop, analyze, review, prepare and plan things all day"
    assert heuristic_analysis(message).new_task_count == 5


def test_heuristic_engagement_by_length():
    assert heuristic_analysis(" ".join(["word"] * 50)).engagement == Engagement.HIGH
    assert heuristic_analysis(" ".join(["word"] * 20)).engagement == Engagement.MEDIUM


def test_heuristic_coverage_levels():
    short = heuristic_analysis("I write reports")
    assert short.coverage_updates.work_output == CoverageLevel.LOW
    assert short.coverage_updates.information_input is None

    long_message = "I write reports and meet the team " + " ".join(["often"] * 30)
    long = heuristic_analysis(long_message)
    assert long.coverage_updates.work_output == CoverageLevel.MEDIUM
    assert long.coverage_updates.interacting_with_others == CoverageLevel.MEDIUM


def test_extract_task_mentions_from_reply():
    reply = "Do you spend time reviewing contracts for compliance, or preparing budget forecasts?"
    assert extract_task_mentions(reply) == [
        "reviewing contracts for compliance",
        "preparing budget forecasts",
    ]


def test_analyze_offline_uses_heuristic(offline, config):
    analyzer = MessageAnalyzer(offline, config)
    state = create_initial_state("Policy Analyst")

    updated = analyzer.analyze("I write policy briefs and review legislation", state)

    assert updated.turn_count == 1
    assert updated.estimated_task_count == 2
    assert updated.mentioned_activities == ["I write policy briefs and review legislation"]
    assert updated.coverage[Category.WORK_OUTPUT] == CoverageLevel.LOW
    # original untouched
    assert state.turn_count == 0


def test_analyze_with_llm(config):
    completion = FakeCompletionService(structured={"MessageAnalysis": {
        "new_task_count": 2,
        "new_activities": ["draft briefs", "brief senators"],
        "underexplored_activities": ["research"],
        "coverage_updates": {"work_output": "medium", "interacting_with_others": "low"},
        "engagement": "high",
        "wants_to_stop": False,
    }})
    analyzer = MessageAnalyzer(completion, config)

    updated = analyzer.analyze("anything", create_initial_state("Policy Analyst"))

    assert updated.estimated_task_count == 2
    assert updated.mentioned_activities == ["draft briefs", "brief senators"]
    assert updated.underexplored_activities == ["research"]
    assert updated.coverage[Category.WORK_OUTPUT] == CoverageLevel.MEDIUM
    assert updated.coverage[Category.INTERACTING_WITH_OTHERS] == CoverageLevel.LOW
    assert updated.engagement == Engagement.HIGH


def test_analyze_falls_back_on_invalid_output(config):
    completion = FakeCompletionService(structured={"MessageAnalysis": InvalidOutput("bad json")})
    analyzer = MessageAnalyzer(completion, config)

    updated = analyzer.analyze("I write reports", create_initial_state("Analyst"))

    assert updated.estimated_task_count == 1
    assert updated.turn_count == 1


def test_stop_detected_even_when_llm_disagrees(config):
    completion = FakeCompletionService(structured={"MessageAnalysis": {
        "new_task_count": 0, "engagement": "low", "wants_to_stop": False,
    }})
    updated = MessageAnalyzer(completion, config).analyze("that's all", create_initial_state("Analyst"))
    assert updated.wants_to_stop


def test_confirmation_folds_pending_suggestions(offline, config):
    state = create_initial_state("Analyst")
    state.pending_suggestions = ["reviewing contracts", "preparing budgets"]

    updated = MessageAnalyzer(offline, config).analyze("yes", state)

    assert updated.estimated_task_count == 2
    assert updated.mentioned_activities == ["reviewing contracts", "preparing budgets"]
    assert updated.pending_suggestions == []


def test_task_count_never_decreases(config):
    completion = FakeCompletionService(structured={"MessageAnalysis": {
        "new_task_count": -3, "engagement": "low",
    }})
    state = create_initial_state("Analyst")
    state.estimated_task_count = 4

    updated = MessageAnalyzer(completion, config).analyze("hmm", state)
    assert updated.estimated_task_count == 4
