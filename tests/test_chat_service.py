"""End-to-end tests for the chat service turn loop."""

import json

import pytest

from elicit.conversation.chat_service import ChatService, fold_extracted_tasks
from elicit.conversation.composer import CATEGORY_QUESTIONS
from elicit.conversation.state import Category
from elicit.core.config import ElicitConfig
from elicit.core.errors import SessionBusy, SessionNotFound, ValidationError
from elicit.core.session_store import MemorySessionStore
from elicit.services.retrieval import LocalTaxonomyIndex

from tests.conftest import Clock, FakeCompletionService


BRIEFS = ("I write policy briefs for the director, I review proposed legislation every week, "
          "and I meet with community groups to present our research findings.")
ANALYSIS = ("Yes, I analyze the survey results and evaluate each policy option, then I prepare "
            "recommendations and plan the next steps with my manager.")


@pytest.fixture
def offline_service(offline, store, config):
    return ChatService(store, offline, LocalTaxonomyIndex(), config)


def test_start_session_opens(offline_service, store):
    result = offline_service.start_session("Policy Analyst")

    assert result.tool_used == "open"
    assert result.message["role"] == "assistant"
    assert "Policy Analyst" in result.message["content"]
    assert result.is_complete is False

    record = store.get(result.session_id)
    assert record.turn_count == 1
    assert [m["role"] for m in record.messages] == ["assistant"]


def test_start_session_requires_job_title(offline_service):
    with pytest.raises(ValidationError):
        offline_service.start_session("  ")


def test_offline_session_runs_to_finish(offline_service, store):
    session_id = offline_service.start_session("Policy Analyst").session_id

    first = offline_service.process_message(session_id, BRIEFS)
    assert first.tool_used == "ask-gap-question"
    assert first.message["content"] == "That's helpful context! " + CATEGORY_QUESTIONS[Category.MENTAL_PROCESSES]
    assert first.updated_state["estimated_task_count"] == 5

    second = offline_service.process_message(session_id, ANALYSIS)
    assert second.tool_used == "encourage-more"
    assert second.updated_state["estimated_task_count"] == 9
    assert second.is_complete is False

    last = offline_service.process_message(session_id, "That's all, nothing else to add.")
    assert last.tool_used == "finish"
    assert last.is_complete is True

    record = store.get(session_id)
    assert len(record.messages) == 7
    assert record.agent_state["actions_taken"] == ["open", "ask-gap-question", "encourage-more", "finish"]
    assert [t["id"] for t in record.extracted_tasks][:2] == ["task-1", "task-2"]


def test_offline_hard_cutoff(offline_service):
    session_id = offline_service.start_session("Policy Analyst").session_id

    tools = [offline_service.process_message(session_id, BRIEFS).tool_used for _ in range(3)]

    assert tools == ["ask-gap-question", "ask-gap-question", "offer-to-finish"]


def test_initial_dump_offline(offline_service, store):
    result = offline_service.start_session("Policy Analyst", initial_tasks=BRIEFS)

    assert result.tool_used == "encourage-more"
    assert result.message["content"] == "Good start! " + CATEGORY_QUESTIONS[Category.MENTAL_PROCESSES]
    record = store.get(result.session_id)
    assert [m["role"] for m in record.messages] == ["user", "assistant"]
    assert record.turn_count == 1


def test_comprehensive_initial_dump_finishes(store, config, taxonomy):
    completion = FakeCompletionService(
        structured={
            "MessageAnalysis": {
                "new_task_count": 12,
                "new_activities": ["draft briefs", "review bills"],
                "coverage_updates": {
                    "information_input": "medium", "mental_processes": "high",
                    "work_output": "high", "interacting_with_others": "medium",
                },
                "engagement": "high",
            },
            "CompletenessAssessment": {"is_comprehensive": True, "coverage": "high", "reason": "complete"},
        },
        text="Thanks, that's a thorough picture of your work.",
    )
    service = ChatService(store, completion, taxonomy, config)

    result = service.start_session("Policy Analyst", initial_tasks="a very long description")

    assert result.tool_used == "finish"
    assert result.is_complete is True
    assert result.message["content"] == "Thanks, that's a thorough picture of your work."


def test_selected_suggestions_are_acknowledged(offline_service, store):
    session_id = offline_service.start_session("Policy Analyst").session_id
    offline_service.select_suggestions(session_id, ["ai-1"])

    result = offline_service.process_message(session_id, "I mostly handle email")

    assert result.message["content"].startswith("Got it, I've noted that task! ")
    assert store.get(session_id).agent_state["acknowledged_selection_count"] == 1


def test_stream_matches_final_message(store, config):
    completion = FakeCompletionService(text="What else fills your week?")
    service = ChatService(store, completion, LocalTaxonomyIndex(), config)
    session_id = service.start_session("Policy Analyst").session_id

    events = list(service.process_message_stream(session_id, BRIEFS))

    chunks = [payload for kind, payload in events if kind == "chunk"]
    kind, result = events[-1]
    assert kind == "done"
    assert len(chunks) > 1
    assert "".join(chunks).strip() == result.message["content"]


def test_unknown_session(offline_service):
    with pytest.raises(SessionNotFound):
        offline_service.process_message("missing", "hello")


def test_empty_message_rejected(offline_service):
    session_id = offline_service.start_session("Policy Analyst").session_id
    with pytest.raises(ValidationError):
        offline_service.process_message(session_id, "   ")


def test_delete_session(offline_service):
    session_id = offline_service.start_session("Policy Analyst").session_id
    assert offline_service.delete_session(session_id)
    with pytest.raises(SessionNotFound):
        offline_service.get_session(session_id)


def test_turns_are_logged(offline_service, tmp_path):
    session_id = offline_service.start_session("Policy Analyst").session_id
    offline_service.process_message(session_id, BRIEFS)

    lines = (tmp_path / "sessions" / f"{session_id}.jsonl").read_text().splitlines()
    entries = [json.loads(line) for line in lines]
    assert [e["action"] for e in entries] == ["open", "ask-gap-question"]
    assert entries[1]["user_message"] == BRIEFS


def test_fold_extracted_tasks_skips_duplicates():
    existing = [{"id": "task-1", "description": "Write briefs", "source": "chat"}]
    folded = fold_extracted_tasks(["write briefs", "Review bills"], existing)
    assert folded == existing + [{"id": "task-2", "description": "Review bills", "source": "chat"}]


def test_injected_empty_store_is_used(config, offline):
    empty = MemorySessionStore()
    service = ChatService(empty, offline, LocalTaxonomyIndex(), config)

    assert service.store is empty
    session_id = service.start_session("Policy Analyst").session_id
    assert empty.get(session_id) is not None


def test_busy_session_times_out(store):
    config = ElicitConfig(session_lock_timeout=0.01)
    completion = FakeCompletionService(text="What else fills your week?")
    service = ChatService(store, completion, LocalTaxonomyIndex(), config)
    session_id = service.start_session("Policy Analyst").session_id

    stream = service.process_message_stream(session_id, BRIEFS)
    assert next(stream)[0] == "chunk"

    with pytest.raises(SessionBusy):
        service.process_message(session_id, "I also answer email")
    with pytest.raises(SessionBusy):
        service.select_suggestions(session_id, ["ai-1"])

    assert list(stream)[-1][0] == "done"
    assert service.process_message(session_id, "I also answer email").session_id == session_id


def test_expired_session_releases_its_lock(offline, config):
    clock = Clock()
    store = MemorySessionStore(ttl_seconds=60, clock=clock)
    service = ChatService(store, offline, LocalTaxonomyIndex(), config)
    session_id = service.start_session("Policy Analyst").session_id
    assert session_id in service._locks

    clock.advance(61)

    with pytest.raises(SessionNotFound):
        service.get_session(session_id)
    assert session_id not in service._locks
    with pytest.raises(SessionNotFound):
        service.process_message(session_id, "hello")
    assert session_id not in service._locks


def test_deselecting_keeps_new_selections_visible(offline_service, store):
    session_id = offline_service.start_session("Policy Analyst").session_id
    offline_service.select_suggestions(session_id, ["ai-1", "ai-2", "ai-3"])
    offline_service.process_message(session_id, "I mostly handle email")
    assert store.get(session_id).agent_state["acknowledged_selection_count"] == 3

    offline_service.select_suggestions(session_id, ["ai-1"])
    assert store.get(session_id).agent_state["acknowledged_selection_count"] == 1

    offline_service.select_suggestions(session_id, ["ai-1", "ai-4"])
    result = offline_service.process_message(session_id, "I mostly handle email")

    assert result.message["content"].startswith("Got it, I've noted that task! ")
    assert store.get(session_id).agent_state["acknowledged_selection_count"] == 2


def _analysis(count, *activities, coverage=None):
    return {
        "new_task_count": count,
        "new_activities": list(activities),
        "coverage_updates": coverage or {},
        "engagement": "high",
    }


BROAD = {"information_input": "high", "mental_processes": "high", "work_output": "high"}


def test_model_offer_to_finish_waits_for_a_clarifying_question(store, config):
    completion = FakeCompletionService(
        structured={
            "MessageAnalysis": [
                _analysis(6, "Write briefs", "Review bills", coverage=BROAD),
                _analysis(6, "Plan budgets", "Train staff", coverage=BROAD),
            ],
            "ToolChoice": {"tool": "offer-to-finish", "reason": "looks complete"},
        },
        text="Anything else?",
    )
    service = ChatService(store, completion, LocalTaxonomyIndex(), config)
    session_id = service.start_session("Policy Analyst").session_id

    first = service.process_message(session_id, BRIEFS)
    second = service.process_message(session_id, ANALYSIS)

    assert first.tool_used == "ask-gap-question"
    # broad coverage allows finishing from turn 3 once the question was asked
    assert second.tool_used == "offer-to-finish"
    actions = store.get(session_id).agent_state["actions_taken"]
    assert actions == ["open", "ask-gap-question", "offer-to-finish"]


def test_selections_ask_before_offering_to_finish(store, config):
    completion = FakeCompletionService(
        structured={
            "MessageAnalysis": [_analysis(10, "Write briefs"), _analysis(1, "Answer email")],
            "ToolChoice": {"tool": "offer-to-finish", "reason": "looks complete"},
        },
        text="Anything else?",
    )
    service = ChatService(store, completion, LocalTaxonomyIndex(), config)
    session_id = service.start_session("Policy Analyst").session_id

    service.select_suggestions(session_id, ["ai-1", "ai-2", "ai-3"])
    assert service.process_message(session_id, "I picked a few").tool_used == "ask-gap-question"

    service.select_suggestions(session_id, ["ai-1", "ai-2", "ai-3", "ai-4"])
    assert service.process_message(session_id, "One more").tool_used == "offer-to-finish"

    actions = store.get(session_id).agent_state["actions_taken"]
    assert actions.index("ask-gap-question") < actions.index("offer-to-finish")
