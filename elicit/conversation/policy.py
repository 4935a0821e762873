"""
Elicitation policy: decides what the assistant does next.

Decision order (first match wins):

1. Turn 0 opens the conversation.
2. Stop intent finishes it.
3. New suggestion selections are acknowledged.
4. Stalled sessions are shown suggestions.
5. Without a completion service, a rule-based choice is made.
6. Otherwise the model picks an action, optionally against reference tasks
   for the matched occupation, and guardrails correct that choice.

Guardrails are deterministic and always have the last word.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import List, Optional, Tuple

from pydantic import BaseModel, Field

from elicit.conversation.prompts import (
    AGENT_SYSTEM_PROMPT,
    build_completeness_prompt,
    build_tool_selection_prompt,
)
from elicit.conversation.state import ConversationState, CoverageLevel, Engagement, TaxonomyCoverage
from elicit.core.config import ElicitConfig, get_config
from elicit.core.errors import InvalidOutput, ServiceUnavailable
from elicit.services.completion import CompletionService, get_completion_service
from elicit.services.retrieval import TaxonomyHit, get_retrieval_service
from elicit.utils.logger import get_logger

logger = get_logger("conversation.policy")


class Action(str, Enum):
    OPEN = "open"
    ASK_GAP_QUESTION = "ask-gap-question"
    SHOW_SUGGESTIONS = "show-suggestions"
    ENCOURAGE_MORE = "encourage-more"
    OFFER_TO_FINISH = "offer-to-finish"
    FINISH = "finish"


# Actions the model may pick; open and finish are decided by rule only
SELECTABLE_ACTIONS = (
    Action.ASK_GAP_QUESTION,
    Action.SHOW_SUGGESTIONS,
    Action.ENCOURAGE_MORE,
    Action.OFFER_TO_FINISH,
)


@dataclass
class PolicyDecision:
    """The chosen action plus its parameters."""
    action: Action
    reason: str = ""
    question: Optional[str] = None
    gap_area: Optional[str] = None
    taxonomy_coverage: Optional[TaxonomyCoverage] = None
    reference_tasks: List[str] = field(default_factory=list)


class ToolChoice(BaseModel):
    """Structured output for action selection."""
    tool: Action = Field(description="One of ask-gap-question, show-suggestions, encourage-more, offer-to-finish")
    reason: str = Field(description="Brief explanation of the choice")
    gap_area: Optional[str] = Field(default=None, description="General area of work that is missing")
    question: Optional[str] = Field(default=None, description="Follow-up question to ask")
    taxonomy_coverage: Optional[TaxonomyCoverage] = Field(
        default=None, description="Coverage of the general reference work areas")


class CompletenessAssessment(BaseModel):
    """Structured output for the opening-dump completeness check."""
    is_comprehensive: bool = Field(description="True only for high coverage with nothing critical missing")
    coverage: TaxonomyCoverage = Field(description="Share of general work areas covered")
    missing_areas: List[str] = Field(default_factory=list, description="General areas not covered")
    reason: str = Field(description="Brief explanation")


# ============================================================================
# Pure decision rules
# ============================================================================


def rule_based_action(state: ConversationState, config: Optional[ElicitConfig] = None) -> PolicyDecision:
    """Action selection without the completion service."""
    config = config if config is not None else get_config()

    if state.engagement == Engagement.LOW and state.suggestions_shown_count < config.max_suggestion_rounds:
        return PolicyDecision(Action.SHOW_SUGGESTIONS, reason="low engagement")

    _, lowest_level = state.lowest_category()
    if lowest_level == CoverageLevel.NONE and state.turn_count >= 2:
        return PolicyDecision(Action.ASK_GAP_QUESTION, reason="uncovered category",
                              gap_area=_gap_area_value(state))

    if (state.estimated_task_count >= config.finish_min_tasks
            and state.turn_count >= config.late_finish_turn
            and state.has_asked_clarifying_question):
        return PolicyDecision(Action.OFFER_TO_FINISH, reason="enough tasks")

    if state.estimated_task_count >= config.finish_min_tasks and not state.has_asked_clarifying_question:
        return PolicyDecision(Action.ASK_GAP_QUESTION, reason="clarify before finishing",
                              gap_area=_gap_area_value(state))

    return PolicyDecision(Action.ENCOURAGE_MORE, reason="default")


def _gap_area_value(state: ConversationState) -> Optional[str]:
    category = state.gap_category()
    return category.value if category else None


def apply_guardrails(
    decision: PolicyDecision,
    state: ConversationState,
    config: Optional[ElicitConfig] = None,
) -> PolicyDecision:
    """
    Correct a proposed action. Each rule short-circuits.

    Hard cutoffs first (A: 15+ tasks, B: 10+ tasks at turn 6+, C: high
    taxonomy coverage with 8+ tasks, all only after a clarifying question),
    then the regular checks on offer-to-finish and show-suggestions.
    """
    config = config if config is not None else get_config()
    asked = state.has_asked_clarifying_question
    tasks = state.estimated_task_count
    coverage = decision.taxonomy_coverage or state.taxonomy_coverage

    if tasks >= config.hard_cutoff_tasks and asked:
        logger.info(f"Hard cutoff: {tasks} tasks captured, forcing offer-to-finish")
        return replace(decision, action=Action.OFFER_TO_FINISH, question=None, gap_area=None)

    if tasks >= config.turn_cutoff_tasks and state.turn_count >= config.turn_cutoff_turn and asked:
        logger.info(f"Hard cutoff: {tasks} tasks at turn {state.turn_count}, forcing offer-to-finish")
        return replace(decision, action=Action.OFFER_TO_FINISH, question=None, gap_area=None)

    if coverage == TaxonomyCoverage.HIGH and tasks >= config.coverage_cutoff_tasks and asked:
        logger.info(f"Hard cutoff: high taxonomy coverage with {tasks} tasks, forcing offer-to-finish")
        return replace(decision, action=Action.OFFER_TO_FINISH, question=None, gap_area=None)

    if decision.action == Action.OFFER_TO_FINISH:
        if not asked:
            logger.info("Guardrail: clarifying question required before offer-to-finish")
            return replace(decision, action=Action.ASK_GAP_QUESTION,
                           gap_area=decision.gap_area or _gap_area_value(state))

        if (tasks >= config.finish_min_tasks
                and state.good_category_count() >= config.early_finish_categories
                and state.turn_count >= config.early_finish_turn):
            logger.info("Allowing early offer-to-finish: broad coverage")
            return decision

        if state.turn_count < config.late_finish_turn or tasks < config.finish_min_tasks:
            logger.info(f"Guardrail: too early to finish (turn {state.turn_count}, {tasks} tasks)")
            return replace(decision, action=Action.ENCOURAGE_MORE)

    if decision.action == Action.SHOW_SUGGESTIONS and state.suggestions_shown_count >= config.max_suggestion_rounds:
        logger.info("Guardrail: suggestion rounds exhausted, using encourage-more")
        return replace(decision, action=Action.ENCOURAGE_MORE)

    return decision


# ============================================================================
# Reference tasks
# ============================================================================


class ReferenceTaskProvider:
    """Looks up typical tasks for the occupation closest to a job title."""

    def __init__(self, retrieval=None, config: Optional[ElicitConfig] = None):
        self.retrieval = retrieval if retrieval is not None else get_retrieval_service()
        self.config = config if config is not None else get_config()

    def match_occupation(self, job_title: str) -> Optional[TaxonomyHit]:
        """Closest occupation for a job title, or None below the match threshold."""
        occupations = self.retrieval.search_occupations(job_title, 1)
        if not occupations or occupations[0].score < self.config.occupation_match_threshold:
            logger.info(f"No occupation match for '{job_title}'")
            return None
        return occupations[0]

    def reference_hits(self, job_title: str, limit: Optional[int] = None) -> Tuple[Optional[TaxonomyHit], List[TaxonomyHit]]:
        """The matched occupation and up to ``limit`` of its tasks, ranked against the job title."""
        match = self.match_occupation(job_title)
        if match is None:
            return None, []
        code = match.fields.get("code") or match.id
        hits = self.retrieval.search_by_occupation(job_title, code, limit or self.config.reference_task_limit)
        return match, [h for h in hits if h.text]

    def lookup(self, job_title: str) -> List[str]:
        match, hits = self.reference_hits(job_title)
        if match is None:
            return []
        tasks = [h.text for h in hits]
        code = match.fields.get("code") or match.id
        logger.info(f"Matched '{job_title}' to {match.fields.get('title')} ({code}): {len(tasks)} reference tasks")
        return tasks

    def for_state(self, state: ConversationState) -> List[str]:
        """Reference tasks for this session; cached on the state after the first lookup."""
        if state.cached_taxonomy_tasks is not None:
            return state.cached_taxonomy_tasks
        tasks = self.lookup(state.job_title)
        state.cached_taxonomy_tasks = tasks
        return tasks


# ============================================================================
# Policy
# ============================================================================


class ElicitationPolicy:
    """Chooses the next action for a session."""

    def __init__(
        self,
        completion: Optional[CompletionService] = None,
        references: Optional[ReferenceTaskProvider] = None,
        config: Optional[ElicitConfig] = None,
    ):
        self.config = config if config is not None else get_config()
        self.completion = completion if completion is not None else get_completion_service()
        self.references = references if references is not None else ReferenceTaskProvider(config=self.config)

    def decide(self, state: ConversationState) -> PolicyDecision:
        """
        Pick the next action for ``state``.

        Reference tasks fetched along the way are cached on ``state`` and
        returned on the decision.
        """
        config = self.config

        if state.turn_count == 0:
            return PolicyDecision(Action.OPEN, reason="first turn")

        if state.wants_to_stop:
            logger.info("User wants to stop, finishing")
            return PolicyDecision(Action.FINISH, reason="stop intent")

        if state.has_new_selections():
            total = len(state.selected_suggestion_ids)
            if total >= config.selection_finish_count and state.estimated_task_count >= config.finish_min_tasks:
                if state.has_asked_clarifying_question:
                    return PolicyDecision(Action.OFFER_TO_FINISH, reason="selections complete the picture")
                return PolicyDecision(Action.ASK_GAP_QUESTION, reason="clarify before finishing",
                                      gap_area=_gap_area_value(state))
            return PolicyDecision(Action.ENCOURAGE_MORE, reason="acknowledge selections")

        if (state.turn_count >= config.stall_turn
                and state.estimated_task_count < config.stall_task_count
                and state.suggestions_shown_count < config.max_suggestion_rounds):
            logger.info("Low task capture after several turns, showing suggestions")
            return PolicyDecision(Action.SHOW_SUGGESTIONS, reason="stalled")

        if not self.completion.is_available():
            logger.info("Using rule-based action selection (no completion service)")
            return apply_guardrails(rule_based_action(state, config), state, config)

        reference_tasks = self.references.for_state(state)
        try:
            choice = self.completion.complete_structured(
                build_tool_selection_prompt(state, reference_tasks, config.reference_task_limit),
                ToolChoice,
                system=AGENT_SYSTEM_PROMPT,
            )
        except (ServiceUnavailable, InvalidOutput) as e:
            logger.error(f"LLM action selection failed, using rules: {e}")
            decision = rule_based_action(state, config)
            decision.reference_tasks = reference_tasks
            return apply_guardrails(decision, state, config)

        action = choice.tool if choice.tool in SELECTABLE_ACTIONS else Action.ENCOURAGE_MORE
        decision = PolicyDecision(
            action=action,
            reason=choice.reason,
            taxonomy_coverage=choice.taxonomy_coverage if reference_tasks else None,
            reference_tasks=reference_tasks,
        )
        if action == Action.ASK_GAP_QUESTION:
            decision.question = (choice.question or "").strip() or None
            decision.gap_area = choice.gap_area or _gap_area_value(state)

        logger.info(
            f"LLM chose {choice.tool.value} (turn {state.turn_count}, {state.estimated_task_count} tasks, "
            f"taxonomy coverage {decision.taxonomy_coverage.value if decision.taxonomy_coverage else 'unset'})"
        )
        final = apply_guardrails(decision, state, config)
        if final.action != Action.ASK_GAP_QUESTION:
            final.question = None
        return final

    def record(self, state: ConversationState, decision: PolicyDecision) -> ConversationState:
        """Return a copy of ``state`` with the decision's bookkeeping applied."""
        updated = state.copy()
        updated.actions_taken.append(decision.action.value)
        if decision.action == Action.ASK_GAP_QUESTION:
            updated.has_asked_clarifying_question = True
        if decision.taxonomy_coverage is not None:
            updated.taxonomy_coverage = decision.taxonomy_coverage
        return updated

    def check_initial_completeness(self, state: ConversationState, initial_tasks: str) -> bool:
        """
        Whether an opening task dump is complete enough to skip follow-ups.

        Needs enough tasks across enough categories, a completion service,
        reference tasks to compare against, and a model assessment of
        comprehensive with high coverage.
        """
        config = self.config
        if state.estimated_task_count < config.finish_min_tasks:
            logger.info(f"Initial dump not comprehensive: {state.estimated_task_count} tasks")
            return False
        if state.good_category_count() < config.early_finish_categories:
            logger.info("Initial dump not comprehensive: category coverage too sparse")
            return False
        if not self.completion.is_available():
            logger.info("Initial dump not comprehensive: no completion service for assessment")
            return False

        reference_tasks = self.references.for_state(state)
        if not reference_tasks:
            logger.info("Initial dump not comprehensive: no reference tasks")
            return False

        try:
            assessment = self.completion.complete_structured(
                build_completeness_prompt(
                    state.job_title, initial_tasks, state.mentioned_activities,
                    reference_tasks, config.reference_task_limit,
                ),
                CompletenessAssessment,
            )
        except (ServiceUnavailable, InvalidOutput) as e:
            logger.error(f"Initial dump completeness check failed: {e}")
            return False

        logger.info(f"Initial dump assessment: {assessment.coverage.value} ({assessment.reason})")
        return assessment.is_comprehensive and assessment.coverage == TaxonomyCoverage.HIGH
