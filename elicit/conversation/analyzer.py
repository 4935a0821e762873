"""
Message analyzer: folds one user utterance into the conversation state.

The completion service does the extraction when it is available. Whenever
it is not (or returns something unusable) a lexical heuristic takes over,
so a turn is never lost to an upstream failure.
"""
import re
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from elicit.conversation.prompts import build_analysis_prompt
from elicit.conversation.state import (
    Category,
    ConversationState,
    CoverageLevel,
    Engagement,
    merge_coverage,
)
from elicit.core.config import ElicitConfig, get_config
from elicit.core.errors import InvalidOutput, ServiceUnavailable
from elicit.services.completion import CompletionService, get_completion_service
from elicit.utils.logger import get_logger
from elicit.utils.text import (
    ACTION_VERB_PATTERN,
    CONFIRMATION_PATTERN,
    GERUND_PATTERN,
    STOP_PATTERN,
    split_segments,
    word_count,
)

logger = get_logger("conversation.analyzer")

MAX_HEURISTIC_TASKS = 5
MAX_PENDING_SUGGESTIONS = 5

# Keyword groups for the heuristic coverage estimate
CATEGORY_PATTERNS = {
    Category.INFORMATION_INPUT: re.compile(
        r"\b(read|research|monitor|gather|observe|collect|review data|look up)\b", re.IGNORECASE),
    Category.MENTAL_PROCESSES: re.compile(
        r"\b(analyze|decide|plan|evaluate|assess|think|consider|problem.?solv|strateg)\b", re.IGNORECASE),
    Category.WORK_OUTPUT: re.compile(
        r"\b(write|create|build|produce|develop|design|draft|prepare|make|code|implement)\b", re.IGNORECASE),
    Category.INTERACTING_WITH_OTHERS: re.compile(
        r"\b(meet|communicate|coordinate|present|collaborate|discuss|email|call|team|supervise|train|negotiate)\b",
        re.IGNORECASE),
}

# Gerund-led phrases in an assistant reply that read like offered tasks
SUGGESTED_TASK_PATTERN = re.compile(
    r"\b(conducting|defining|managing|coordinating|analyzing|reviewing|preparing|creating|developing|"
    r"writing|presenting|leading|organizing|planning|monitoring|researching|building|scheduling|"
    r"training|evaluating|documenting)[^,;.!?]+",
    re.IGNORECASE,
)
TRAILING_AND = re.compile(r"\band\s*$", re.IGNORECASE)


class CoverageUpdates(BaseModel):
    """Per-category coverage supported by one message (null when not mentioned)."""
    information_input: Optional[CoverageLevel] = Field(
        default=None, description="Reading, researching, monitoring, gathering data")
    mental_processes: Optional[CoverageLevel] = Field(
        default=None, description="Analyzing, deciding, planning, problem solving")
    work_output: Optional[CoverageLevel] = Field(
        default=None, description="Producing documents, code, designs, reports")
    interacting_with_others: Optional[CoverageLevel] = Field(
        default=None, description="Communicating, coordinating, supervising, presenting")

    def as_map(self) -> Dict[Category, Optional[CoverageLevel]]:
        return {
            Category.INFORMATION_INPUT: self.information_input,
            Category.MENTAL_PROCESSES: self.mental_processes,
            Category.WORK_OUTPUT: self.work_output,
            Category.INTERACTING_WITH_OTHERS: self.interacting_with_others,
        }


class MessageAnalysis(BaseModel):
    """Structured output for message analysis."""
    new_task_count: int = Field(description="Number of new distinct tasks described in this message")
    new_activities: List[str] = Field(default_factory=list, description="Short phrase per new task")
    underexplored_activities: List[str] = Field(
        default_factory=list, description="Activities mentioned without enough detail")
    coverage_updates: CoverageUpdates = Field(default_factory=CoverageUpdates)
    engagement: Engagement = Field(description="Quality of the response, not its length")
    wants_to_stop: bool = Field(default=False, description="User signalled they have nothing more to add")


def detect_stop_intent(message: str) -> bool:
    return bool(STOP_PATTERN.search(message))


def detect_confirmation(message: str) -> bool:
    return bool(CONFIRMATION_PATTERN.search(message))


def _has_action_verb(text: str) -> bool:
    return bool(ACTION_VERB_PATTERN.search(text) or GERUND_PATTERN.search(text))


def heuristic_analysis(message: str) -> MessageAnalysis:
    """
    Analyze a message without the completion service.

    Task count is the number of action verbs (capped), activities are the
    verb-bearing segments of the message, and engagement is read from length.
    """
    words = word_count(message)
    if words >= 50:
        engagement = Engagement.HIGH
    elif words >= 20:
        engagement = Engagement.MEDIUM
    else:
        engagement = Engagement.LOW

    verb_matches = len(ACTION_VERB_PATTERN.findall(message)) + len(GERUND_PATTERN.findall(message))
    new_task_count = min(verb_matches, MAX_HEURISTIC_TASKS)

    activities = []
    if new_task_count > 0:
        activities = [s for s in split_segments(message) if len(s) > 10 and _has_action_verb(s)]
        activities = activities[:MAX_HEURISTIC_TASKS]

    level = CoverageLevel.MEDIUM if words >= 30 else CoverageLevel.LOW
    updates = {
        category.value.replace("-", "_"): level
        for category, pattern in CATEGORY_PATTERNS.items()
        if pattern.search(message)
    }

    return MessageAnalysis(
        new_task_count=new_task_count,
        new_activities=activities,
        underexplored_activities=[],
        coverage_updates=CoverageUpdates(**updates),
        engagement=engagement,
        wants_to_stop=detect_stop_intent(message),
    )


def extract_task_mentions(reply: str) -> List[str]:
    """Gerund-led phrases from an assistant reply, kept as pending suggestions."""
    tasks = []
    for match in SUGGESTED_TASK_PATTERN.finditer(reply):
        cleaned = TRAILING_AND.sub("", match.group(0).strip()).strip()
        if 10 < len(cleaned) < 100:
            tasks.append(cleaned)
    return tasks[:MAX_PENDING_SUGGESTIONS]


class MessageAnalyzer:
    """Updates conversation state from each user message."""

    def __init__(self, completion: Optional[CompletionService] = None, config: Optional[ElicitConfig] = None):
        self.completion = completion if completion is not None else get_completion_service()
        self.config = config if config is not None else get_config()

    def _analyze_with_llm(self, message: str, state: ConversationState) -> MessageAnalysis:
        return self.completion.complete_structured(
            build_analysis_prompt(message, state),
            MessageAnalysis,
        )

    def analyze(self, message: str, state: ConversationState) -> ConversationState:
        """
        Return a new state reflecting ``message``; ``state`` is left untouched.

        Args:
            message: The user's utterance
            state: State before this message

        Returns:
            Updated copy of the state
        """
        stop_detected = detect_stop_intent(message)

        confirmed = []
        if state.pending_suggestions and detect_confirmation(message):
            confirmed = list(state.pending_suggestions)
            logger.info(f"User confirmed {len(confirmed)} pending suggestions")

        analysis = None
        if self.completion.is_available():
            try:
                analysis = self._analyze_with_llm(message, state)
            except (ServiceUnavailable, InvalidOutput) as e:
                logger.warning(f"LLM message analysis failed, using heuristic: {e}")
        if analysis is None:
            analysis = heuristic_analysis(message)

        new_activities = [a.strip() for a in analysis.new_activities if a and a.strip()] + confirmed
        new_task_count = max(analysis.new_task_count, 0) + len(confirmed)

        updated = state.copy()
        updated.turn_count = state.turn_count + 1
        updated.estimated_task_count = state.estimated_task_count + new_task_count
        updated.mentioned_activities = state.mentioned_activities + new_activities
        updated.underexplored_activities = list(analysis.underexplored_activities)
        updated.coverage = merge_coverage(state.coverage, analysis.coverage_updates.as_map())
        updated.engagement = analysis.engagement
        updated.wants_to_stop = stop_detected or analysis.wants_to_stop
        updated.pending_suggestions = []

        logger.info(
            f"Analyzed turn {updated.turn_count}: +{new_task_count} tasks "
            f"(total {updated.estimated_task_count}), engagement={updated.engagement.value}, "
            f"stop={updated.wants_to_stop}"
        )
        return updated
