"""Tests for conversation state and exit conditions."""

from elicit.conversation.state import (
    Category,
    ConversationState,
    CoverageLevel,
    Engagement,
    TaxonomyCoverage,
    check_exit_conditions,
    create_initial_state,
    empty_coverage,
    merge_coverage,
)


def test_initial_state_is_empty():
    state = create_initial_state("Nurse")
    assert state.job_title == "Nurse"
    assert state.turn_count == 0
    assert state.estimated_task_count == 0
    assert all(level == CoverageLevel.NONE for level in state.coverage.values())
    assert state.engagement == Engagement.MEDIUM
    assert state.has_asked_clarifying_question is False


def test_merge_coverage_never_lowers():
    current = empty_coverage()
    current[Category.WORK_OUTPUT] = CoverageLevel.HIGH
    merged = merge_coverage(current, {
        Category.WORK_OUTPUT: CoverageLevel.LOW,
        Category.INFORMATION_INPUT: CoverageLevel.MEDIUM,
        Category.MENTAL_PROCESSES: None,
    })
    assert merged[Category.WORK_OUTPUT] == CoverageLevel.HIGH
    assert merged[Category.INFORMATION_INPUT] == CoverageLevel.MEDIUM
    assert merged[Category.MENTAL_PROCESSES] == CoverageLevel.NONE
    # input is not mutated
    assert current[Category.INFORMATION_INPUT] == CoverageLevel.NONE


def test_lowest_category_ties_go_to_declaration_order():
    state = create_initial_state("Analyst")
    assert state.lowest_category() == (Category.INFORMATION_INPUT, CoverageLevel.NONE)

    state.coverage[Category.INFORMATION_INPUT] = CoverageLevel.HIGH
    state.coverage[Category.MENTAL_PROCESSES] = CoverageLevel.LOW
    state.coverage[Category.WORK_OUTPUT] = CoverageLevel.LOW
    state.coverage[Category.INTERACTING_WITH_OTHERS] = CoverageLevel.MEDIUM
    assert state.lowest_category() == (Category.MENTAL_PROCESSES, CoverageLevel.LOW)


def test_gap_category_none_when_everything_medium():
    state = create_initial_state("Analyst")
    for category in Category:
        state.coverage[category] = CoverageLevel.MEDIUM
    assert state.gap_category() is None
    assert state.good_category_count() == 4


def test_new_selection_count():
    state = create_initial_state("Analyst")
    state.selected_suggestion_ids = ["a", "b", "c"]
    state.acknowledged_selection_count = 1
    assert state.new_selection_count == 2
    assert state.has_new_selections()


def test_with_message_returns_copy():
    state = create_initial_state("Analyst")
    updated = state.with_message("user", "I write reports")
    assert state.transcript == []
    assert updated.transcript == [{"role": "user", "content": "I write reports"}]
    assert updated.last_user_message() == "I write reports"


def test_state_dict_roundtrip_keeps_enums():
    state = ConversationState(
        job_title="Policy Analyst",
        turn_count=3,
        estimated_task_count=7,
        mentioned_activities=["write briefs"],
        engagement=Engagement.HIGH,
        taxonomy_coverage=TaxonomyCoverage.MEDIUM,
        cached_taxonomy_tasks=["Evaluate policies"],
    )
    state.coverage[Category.WORK_OUTPUT] = CoverageLevel.MEDIUM

    restored = ConversationState.from_dict(state.to_dict())
    assert restored == state


def test_exit_on_stop_intent(config):
    state = create_initial_state("Analyst")
    state.wants_to_stop = True
    assert check_exit_conditions(state, config)


def test_exit_on_tasks_and_coverage(config):
    state = create_initial_state("Analyst")
    state.estimated_task_count = 10
    for category in list(Category)[:3]:
        state.coverage[category] = CoverageLevel.MEDIUM
    assert check_exit_conditions(state, config)

    state.coverage[Category.WORK_OUTPUT] = CoverageLevel.LOW
    assert not check_exit_conditions(state, config)


def test_exit_after_many_turns(config):
    state = create_initial_state("Analyst")
    state.turn_count = 10
    state.estimated_task_count = 8
    assert check_exit_conditions(state, config)

    state.estimated_task_count = 7
    assert not check_exit_conditions(state, config)
