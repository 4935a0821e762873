"""
Response composer: turns a policy decision into the assistant's message.

Every path ends in text. When the completion service is missing, fails, or
returns nothing, a fixed template for the action is used instead; a
ready-made gap question is used verbatim.
"""
from typing import Iterator, Optional, Tuple

from pydantic import BaseModel, Field

from elicit.conversation.policy import Action, PolicyDecision
from elicit.conversation.prompts import (
    AGENT_SYSTEM_PROMPT,
    build_custom_question_prompt,
    build_encourage_more_prompt,
    build_finish_prompt,
    build_gap_analysis_prompt,
    build_initial_dump_prompt,
    build_offer_to_finish_prompt,
    build_opening_prompt,
    build_show_suggestions_prompt,
)
from elicit.conversation.state import Category, ConversationState
from elicit.core.config import ElicitConfig, get_config
from elicit.core.errors import InvalidOutput, ServiceUnavailable
from elicit.services.completion import CompletionService, get_completion_service
from elicit.utils.logger import get_logger

logger = get_logger("conversation.composer")


class GapAnalysis(BaseModel):
    """Structured output for reference-grounded gap analysis."""
    gap_area: str = Field(description="The general area of work that is missing")
    suggested_question: str = Field(description="Broad, natural question about that area")


CATEGORY_QUESTIONS = {
    Category.INFORMATION_INPUT: "Do you spend time gathering information, researching, or monitoring things?",
    Category.MENTAL_PROCESSES: "What about the analytical side: do you analyze data or make decisions as part of your work?",
    Category.WORK_OUTPUT: "Do you create deliverables like documents, reports, or other outputs?",
    Category.INTERACTING_WITH_OTHERS: "How about working with others: do you collaborate with colleagues or coordinate with teams?",
}
DEFAULT_GAP_QUESTION = "Are there any other aspects of your work you'd like to add?"


def selection_acknowledgment(new_count: int, total_count: int) -> str:
    """Prefix acknowledging suggestion cards the user just selected."""
    if new_count <= 0:
        return ""
    if total_count >= 3:
        return f"Great, I see you've added {total_count} tasks from the suggestions! "
    if new_count == 1:
        return "Got it, I've noted that task! "
    return f"Nice, {new_count} more tasks added! "


def gap_question(state: ConversationState) -> str:
    category = state.gap_category()
    return CATEGORY_QUESTIONS[category] if category else DEFAULT_GAP_QUESTION


def initial_dump_fallback(state: ConversationState) -> str:
    opener = "Thanks for that detailed overview! " if len(state.mentioned_activities) >= 5 else "Good start! "
    return opener + gap_question(state)


def fallback_response(action: Action, state: ConversationState) -> str:
    """Fixed text for each action, used when no model text is available."""
    job = state.job_title
    if action == Action.OPEN:
        return (f"I'd love to hear about what you actually do as a {job}. What does a typical week look like "
                f"for you? Tell me about the tasks and activities you spend your time on; the more detail, "
                f"the better.")
    if action == Action.ASK_GAP_QUESTION:
        if state.gap_category():
            return f"That's helpful context! {gap_question(state)}"
        return "That's helpful context! Can you tell me about any other aspects of your work we haven't covered yet?"
    if action == Action.SHOW_SUGGESTIONS:
        return (f"Here are some common tasks for {job}s. Select any that apply to your work, and feel free to "
                f"tell me about others we might have missed.")
    if action == Action.ENCOURAGE_MORE:
        return ("That's really helpful! Are there any other tasks or responsibilities you regularly handle "
                "that we haven't covered yet?")
    if action == Action.OFFER_TO_FINISH:
        return (f"Great, you've painted a good picture of your work! You've described about "
                f"{state.estimated_task_count} different tasks. If there's anything else you'd like to add, "
                f"feel free. Otherwise, you can proceed to review your tasks.")
    if action == Action.FINISH:
        return ("Thanks for sharing all of that! You've given us a great overview of your work. You can now "
                "proceed to review and add details to each task.")
    return f"Tell me more about what you do as a {job}."


def build_response_prompt(action: Action, state: ConversationState, question: Optional[str] = None) -> str:
    if action == Action.OPEN:
        return build_opening_prompt(state)
    if action == Action.ASK_GAP_QUESTION and question:
        return build_custom_question_prompt(question, state)
    if action == Action.SHOW_SUGGESTIONS:
        return build_show_suggestions_prompt(state)
    if action == Action.OFFER_TO_FINISH:
        return build_offer_to_finish_prompt(state)
    if action == Action.FINISH:
        return build_finish_prompt(state)
    return build_encourage_more_prompt(state)


class ResponseComposer:
    """Renders decisions into user-facing text, whole or streamed."""

    def __init__(self, completion: Optional[CompletionService] = None, config: Optional[ElicitConfig] = None):
        self.completion = completion if completion is not None else get_completion_service()
        self.config = config if config is not None else get_config()

    def _gap_analysis(self, state: ConversationState, reference_tasks, initial_tasks: str) -> Optional[GapAnalysis]:
        if not reference_tasks:
            return None
        try:
            analysis = self.completion.complete_structured(
                build_gap_analysis_prompt(state, reference_tasks, initial_tasks, self.config.reference_task_limit),
                GapAnalysis,
            )
        except (ServiceUnavailable, InvalidOutput) as e:
            logger.error(f"Gap analysis failed, using standard prompt: {e}")
            return None
        if not analysis.suggested_question.strip():
            return None
        logger.info(f"Gap analysis for opening dump: {analysis.gap_area}")
        return analysis

    def _plan(
        self,
        decision: PolicyDecision,
        state: ConversationState,
        initial_tasks: Optional[str],
    ) -> Tuple[Optional[str], str]:
        """
        Work out what to send to the model.

        Returns:
            (prompt, fallback): prompt is None when the fallback text is the reply
        """
        action = decision.action
        available = self.completion.is_available()
        responds_to_dump = bool(initial_tasks) and action != Action.SHOW_SUGGESTIONS

        if action == Action.ASK_GAP_QUESTION and decision.question:
            if not available:
                return None, decision.question
            return build_custom_question_prompt(decision.question, state), decision.question

        if not available:
            if responds_to_dump:
                return None, initial_dump_fallback(state)
            return None, fallback_response(action, state)

        if responds_to_dump:
            reference_tasks = decision.reference_tasks or state.cached_taxonomy_tasks or []
            analysis = self._gap_analysis(state, reference_tasks, initial_tasks)
            if analysis is not None:
                return None, analysis.suggested_question.strip()
            return build_initial_dump_prompt(initial_tasks, state), initial_dump_fallback(state)

        return build_response_prompt(action, state), fallback_response(action, state)

    def compose(
        self,
        decision: PolicyDecision,
        state: ConversationState,
        initial_tasks: Optional[str] = None,
    ) -> str:
        """Return the full reply for ``decision``."""
        prefix = selection_acknowledgment(state.new_selection_count, len(state.selected_suggestion_ids))
        prompt, fallback = self._plan(decision, state, initial_tasks)
        if prompt is None:
            return prefix + fallback

        try:
            text = self.completion.complete(prompt, system=AGENT_SYSTEM_PROMPT).strip()
        except (ServiceUnavailable, InvalidOutput) as e:
            logger.error(f"Response generation failed for {decision.action.value}: {e}")
            return prefix + fallback
        return prefix + (text or fallback)

    def compose_stream(
        self,
        decision: PolicyDecision,
        state: ConversationState,
        initial_tasks: Optional[str] = None,
    ) -> Iterator[str]:
        """Yield the reply as fragments; joined they form the same kind of text as ``compose``."""
        prefix = selection_acknowledgment(state.new_selection_count, len(state.selected_suggestion_ids))
        if prefix:
            yield prefix

        prompt, fallback = self._plan(decision, state, initial_tasks)
        if prompt is None:
            yield fallback
            return

        emitted = False
        try:
            for fragment in self.completion.complete_stream(prompt, system=AGENT_SYSTEM_PROMPT):
                emitted = True
                yield fragment
        except (ServiceUnavailable, InvalidOutput) as e:
            logger.error(f"Streaming response failed for {decision.action.value}: {e}")
        if not emitted:
            yield fallback
