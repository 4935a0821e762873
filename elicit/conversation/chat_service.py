"""
Chat service: runs one conversational turn end to end.

    user message -> analyzer -> policy -> executor -> composer -> store

Each turn loads the session, folds the message into the conversation state,
picks and executes an action, renders the reply (whole or streamed) and only
then writes the session back. Requests for the same session are serialized
with a per-session lock.
"""
import json
import os
import threading
import uuid
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from elicit.conversation.analyzer import MessageAnalyzer, extract_task_mentions
from elicit.conversation.composer import ResponseComposer
from elicit.conversation.executor import ActionExecutor, ExecutionResult, SuggestionGenerator, TaskSuggestion
from elicit.conversation.policy import Action, ElicitationPolicy, PolicyDecision, ReferenceTaskProvider
from elicit.conversation.state import ConversationState, check_exit_conditions, create_initial_state
from elicit.core.config import ElicitConfig, get_config
from elicit.core.errors import SessionBusy, SessionNotFound, ValidationError
from elicit.core.session_store import SessionRecord, SessionStore, get_session_store
from elicit.services.completion import CompletionService, get_completion_service
from elicit.utils.logger import get_logger

logger = get_logger("conversation.chat_service")

# Conversation logging for production
CONVERSATION_LOG_DIR = Path(os.getenv("CONVERSATION_LOG_DIR", "logs/sessions"))


def log_conversation(
    session_id: str,
    user_message: Optional[str],
    action: str,
    response_message: str,
    state: ConversationState,
    suggestions: Optional[List[TaskSuggestion]] = None,
):
    """Append one turn to the session's JSONL log and mirror it to stdout."""
    log_entry = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "user_message": user_message,
        "action": action,
        "response_message": response_message,
        "turn_count": state.turn_count,
        "estimated_task_count": state.estimated_task_count,
        "coverage": {c.value: l.value for c, l in state.coverage.items()},
    }
    if suggestions:
        log_entry["suggestions"] = [s.statement for s in suggestions]

    session_log_file = CONVERSATION_LOG_DIR / f"{session_id}.jsonl"
    try:
        CONVERSATION_LOG_DIR.mkdir(parents=True, exist_ok=True)
        with open(session_log_file, "a") as f:
            f.write(json.dumps(log_entry) + "\n")
    except OSError as e:
        logger.error(f"Failed to write conversation log: {e}")

    logger.info(f"CONVERSATION [{session_id}]: {json.dumps(log_entry)}")


def _timestamp() -> str:
    return datetime.now(timezone.utc).isoformat()


def _chat_message(role: str, content: str) -> Dict[str, Any]:
    return {"id": str(uuid.uuid4()), "role": role, "content": content, "timestamp": _timestamp()}


def fold_extracted_tasks(activities: List[str], existing: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    """Append activities not already present (case-insensitive) as ``task-N`` records."""
    seen = {t["description"].lower() for t in existing}
    tasks = list(existing)
    for activity in activities:
        key = activity.lower()
        if key in seen:
            continue
        seen.add(key)
        tasks.append({"id": f"task-{len(tasks) + 1}", "description": activity, "source": "chat"})
    return tasks


@dataclass
class ChatTurnResult:
    """Everything the client needs after one turn."""
    session_id: str
    message: Dict[str, Any]
    suggestions: List[TaskSuggestion] = field(default_factory=list)
    should_show_suggestions: bool = False
    is_complete: bool = False
    extracted_tasks: List[Dict[str, Any]] = field(default_factory=list)
    tool_used: Optional[str] = None
    updated_state: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "session_id": self.session_id,
            "message": self.message,
            "suggestions": [s.to_dict() for s in self.suggestions],
            "should_show_suggestions": self.should_show_suggestions,
            "is_complete": self.is_complete,
            "extracted_tasks": self.extracted_tasks,
            "tool_used": self.tool_used,
            "updated_state": self.updated_state,
        }


def _state_summary(state: ConversationState) -> Dict[str, Any]:
    return {
        "turn_count": state.turn_count,
        "estimated_task_count": state.estimated_task_count,
        "engagement": state.engagement.value,
        "coverage": {c.value: l.value for c, l in state.coverage.items()},
    }


class ChatService:
    """Orchestrates elicitation sessions."""

    def __init__(
        self,
        store: Optional[SessionStore] = None,
        completion: Optional[CompletionService] = None,
        retrieval=None,
        config: Optional[ElicitConfig] = None,
    ):
        self.config = config if config is not None else get_config()
        self.store = store if store is not None else get_session_store()
        completion = completion if completion is not None else get_completion_service()
        self.analyzer = MessageAnalyzer(completion, self.config)
        self.policy = ElicitationPolicy(completion, ReferenceTaskProvider(retrieval, self.config), self.config)
        self.executor = ActionExecutor(SuggestionGenerator(completion, self.config), self.config)
        self.composer = ResponseComposer(completion, self.config)

        self._locks: Dict[str, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    def _lock_for(self, session_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(session_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[session_id] = lock
            return lock

    def _forget(self, session_id: str) -> None:
        with self._locks_guard:
            self._locks.pop(session_id, None)

    @contextmanager
    def _session_lock(self, session_id: str):
        """Hold the session for one request, giving up after the configured timeout."""
        lock = self._lock_for(session_id)
        if not lock.acquire(timeout=self.config.session_lock_timeout):
            logger.warning(f"Session {session_id} still busy after {self.config.session_lock_timeout}s")
            raise SessionBusy(session_id)
        try:
            yield
        finally:
            lock.release()

    # ------------------------------------------------------------------
    # Shared turn machinery
    # ------------------------------------------------------------------

    def _render(
        self,
        decision: PolicyDecision,
        state: ConversationState,
        initial_tasks: Optional[str],
        stream: bool,
    ) -> Iterator[str]:
        if stream:
            yield from self.composer.compose_stream(decision, state, initial_tasks)
        else:
            yield self.composer.compose(decision, state, initial_tasks)

    def _decide_and_execute(self, state: ConversationState) -> Tuple[PolicyDecision, ExecutionResult, ConversationState]:
        decision = self.policy.decide(state)
        state = self.policy.record(state, decision)
        execution = self.executor.execute(decision, state)
        if decision.action == Action.SHOW_SUGGESTIONS:
            state.suggestions_shown_count += 1
            state.shown_suggestion_statements.extend(s.statement for s in execution.suggestions)
        logger.info(f"Action: {decision.action.value} ({decision.reason})")
        return decision, execution, state

    def _finalize(
        self,
        record: SessionRecord,
        state: ConversationState,
        decision: PolicyDecision,
        execution: ExecutionResult,
        reply: str,
        new_messages: List[Dict[str, Any]],
        force_complete: bool = False,
    ) -> ChatTurnResult:
        reply = reply.strip()
        assistant_message = _chat_message("assistant", reply)
        state = state.with_message("assistant", reply)

        pending = extract_task_mentions(reply)
        if pending:
            logger.info(f"Pending suggestions from reply: {pending}")
            state.pending_suggestions = pending

        if len(state.selected_suggestion_ids) > state.acknowledged_selection_count:
            state.acknowledged_selection_count = len(state.selected_suggestion_ids)

        extracted_tasks = fold_extracted_tasks(state.mentioned_activities, record.extracted_tasks)
        is_complete = force_complete or execution.should_finish or check_exit_conditions(state, self.config)

        updated = self.store.update(
            record.session_id,
            messages=record.messages + new_messages + [assistant_message],
            extracted_tasks=extracted_tasks,
            turn_count=state.turn_count,
            agent_state=state.to_dict(),
        )
        if updated is None:
            raise SessionNotFound(record.session_id)

        user_message = next((m["content"] for m in reversed(new_messages) if m["role"] == "user"), None)
        log_conversation(record.session_id, user_message, decision.action.value, reply, state, execution.suggestions)

        return ChatTurnResult(
            session_id=record.session_id,
            message=assistant_message,
            suggestions=execution.suggestions,
            should_show_suggestions=decision.action == Action.SHOW_SUGGESTIONS,
            is_complete=is_complete,
            extracted_tasks=extracted_tasks,
            tool_used=decision.action.value,
            updated_state=_state_summary(state),
        )

    @staticmethod
    def _drain(events: Iterator[Tuple[str, Any]]) -> ChatTurnResult:
        result = None
        for kind, payload in events:
            if kind == "done":
                result = payload
        return result

    # ------------------------------------------------------------------
    # Session start
    # ------------------------------------------------------------------

    def _start(
        self,
        job_title: str,
        occupation_code: Optional[str],
        initial_tasks: Optional[str],
        stream: bool,
    ) -> Iterator[Tuple[str, Any]]:
        job_title = (job_title or "").strip()
        if not job_title:
            raise ValidationError("job_title is required to start a session")

        session_id = str(uuid.uuid4())
        record = self.store.create(session_id, job_title, occupation_code)
        state = create_initial_state(job_title)

        with self._session_lock(session_id):
            if not (initial_tasks and initial_tasks.strip()):
                decision = self.policy.decide(state)
                reply = ""
                for fragment in self._render(decision, state, None, stream):
                    reply += fragment
                    yield "chunk", fragment
                state = self.policy.record(state, decision)
                state.turn_count = 1
                yield "done", self._finalize(record, state, decision, ExecutionResult(), reply, [])
                return

            initial_tasks = initial_tasks.strip()
            user_message = _chat_message("user", initial_tasks)
            state = state.with_message("user", initial_tasks)
            state = self.analyzer.analyze(initial_tasks, state)
            state.turn_count = 1

            if self.policy.check_initial_completeness(state, initial_tasks):
                logger.info(f"Initial task dump for session {session_id} is comprehensive, finishing")
                decision = PolicyDecision(Action.FINISH, reason="comprehensive opening dump")
                state = self.policy.record(state, decision)
                reply = ""
                for fragment in self._render(decision, state, None, stream):
                    reply += fragment
                    yield "chunk", fragment
                yield "done", self._finalize(record, state, decision, ExecutionResult(should_finish=True),
                                             reply, [user_message], force_complete=True)
                return

            decision, execution, state = self._decide_and_execute(state)
            reply = ""
            for fragment in self._render(decision, state, initial_tasks, stream):
                reply += fragment
                yield "chunk", fragment
            yield "done", self._finalize(record, state, decision, execution, reply, [user_message])

    def start_session(
        self,
        job_title: str,
        occupation_code: Optional[str] = None,
        initial_tasks: Optional[str] = None,
    ) -> ChatTurnResult:
        """Create a session and return its opening turn."""
        return self._drain(self._start(job_title, occupation_code, initial_tasks, stream=False))

    def start_session_stream(
        self,
        job_title: str,
        occupation_code: Optional[str] = None,
        initial_tasks: Optional[str] = None,
    ) -> Iterator[Tuple[str, Any]]:
        """Streaming twin of ``start_session``: ("chunk", text)... then ("done", ChatTurnResult)."""
        return self._start(job_title, occupation_code, initial_tasks, stream=True)

    # ------------------------------------------------------------------
    # Turns
    # ------------------------------------------------------------------

    def _process(self, session_id: str, message: str, stream: bool) -> Iterator[Tuple[str, Any]]:
        message = (message or "").strip()
        if not message:
            raise ValidationError("message is required")

        with self._session_lock(session_id):
            record = self.store.get(session_id)
            if record is None:
                self._forget(session_id)
                raise SessionNotFound(session_id)

            if record.agent_state:
                state = ConversationState.from_dict(record.agent_state)
            else:
                state = create_initial_state(record.job_title)
            state.selected_suggestion_ids = list(record.selected_suggestion_ids)
            # deselecting can leave fewer ids than were acknowledged
            state.acknowledged_selection_count = min(state.acknowledged_selection_count,
                                                     len(state.selected_suggestion_ids))

            user_message = _chat_message("user", message)
            state = state.with_message("user", message)
            state = self.analyzer.analyze(message, state)

            decision, execution, state = self._decide_and_execute(state)

            reply = ""
            for fragment in self._render(decision, state, None, stream):
                reply += fragment
                yield "chunk", fragment

            yield "done", self._finalize(record, state, decision, execution, reply, [user_message])

    def process_message(self, session_id: str, message: str) -> ChatTurnResult:
        """Run one full turn for ``message``."""
        return self._drain(self._process(session_id, message, stream=False))

    def process_message_stream(self, session_id: str, message: str) -> Iterator[Tuple[str, Any]]:
        """Streaming twin of ``process_message``."""
        return self._process(session_id, message, stream=True)

    # ------------------------------------------------------------------
    # Session access
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> SessionRecord:
        record = self.store.get(session_id)
        if record is None:
            self._forget(session_id)
            raise SessionNotFound(session_id)
        return record

    def select_suggestions(self, session_id: str, suggestion_ids: List[str]) -> SessionRecord:
        """Replace the session's selected suggestion ids."""
        with self._session_lock(session_id):
            record = self.store.get(session_id)
            if record is None:
                self._forget(session_id)
                raise SessionNotFound(session_id)
            agent_state = dict(record.agent_state)
            if agent_state.get("acknowledged_selection_count", 0) > len(suggestion_ids):
                agent_state["acknowledged_selection_count"] = len(suggestion_ids)
            updated = self.store.update(session_id, selected_suggestion_ids=list(suggestion_ids),
                                        agent_state=agent_state)
        if updated is None:
            raise SessionNotFound(session_id)
        logger.info(f"Session {session_id}: {len(suggestion_ids)} suggestions selected")
        return updated

    def delete_session(self, session_id: str) -> bool:
        deleted = self.store.delete(session_id)
        self._forget(session_id)
        return deleted


# Global instance
_chat_service: Optional[ChatService] = None


def get_chat_service() -> ChatService:
    global _chat_service
    if _chat_service is None:
        _chat_service = ChatService()
    return _chat_service


def set_chat_service(service: Optional[ChatService]) -> None:
    global _chat_service
    _chat_service = service
