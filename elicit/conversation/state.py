"""
Conversation state: the explicit memory of one elicitation session.

The model does not remember anything between turns, so everything the
policy needs is tracked here: how many tasks have been described, how well
each of the four work-activity categories is covered, how engaged the user
is, and whether they asked to stop.

Coverage levels only ever increase (see ``merge_coverage``) and the task
count never decreases.
"""
import copy
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Tuple

from elicit.core.config import ElicitConfig, get_config


class Category(str, Enum):
    """Generalized work activity buckets."""
    INFORMATION_INPUT = "information-input"
    MENTAL_PROCESSES = "mental-processes"
    WORK_OUTPUT = "work-output"
    INTERACTING_WITH_OTHERS = "interacting-with-others"


class CoverageLevel(str, Enum):
    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return list(CoverageLevel).index(self)


class Engagement(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TaxonomyCoverage(str, Enum):
    """Model-assessed coverage of the reference tasks for the matched occupation."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


CATEGORY_LABELS = {
    Category.INFORMATION_INPUT: "Information gathering (reading, researching, monitoring)",
    Category.MENTAL_PROCESSES: "Analysis & decisions (analyzing, planning, problem-solving)",
    Category.WORK_OUTPUT: "Producing outputs (writing, creating, building)",
    Category.INTERACTING_WITH_OTHERS: "Working with people (communicating, coordinating, presenting)",
}


def empty_coverage() -> Dict[Category, CoverageLevel]:
    return {category: CoverageLevel.NONE for category in Category}


def merge_coverage(
    current: Mapping[Category, CoverageLevel],
    updates: Mapping[Category, Optional[CoverageLevel]],
) -> Dict[Category, CoverageLevel]:
    """Return a new coverage map where each category is raised, never lowered."""
    result = dict(current)
    for category, level in updates.items():
        if level is None or category not in result:
            continue
        if level.rank > result[category].rank:
            result[category] = level
    return result


@dataclass
class ConversationState:
    """State for one elicitation session."""
    job_title: str = ""
    turn_count: int = 0
    estimated_task_count: int = 0
    mentioned_activities: List[str] = field(default_factory=list)
    underexplored_activities: List[str] = field(default_factory=list)
    coverage: Dict[Category, CoverageLevel] = field(default_factory=empty_coverage)
    engagement: Engagement = Engagement.MEDIUM
    wants_to_stop: bool = False
    has_asked_clarifying_question: bool = False
    selected_suggestion_ids: List[str] = field(default_factory=list)
    acknowledged_selection_count: int = 0
    suggestions_shown_count: int = 0
    shown_suggestion_statements: List[str] = field(default_factory=list)
    pending_suggestions: List[str] = field(default_factory=list)
    actions_taken: List[str] = field(default_factory=list)
    cached_taxonomy_tasks: Optional[List[str]] = None
    taxonomy_coverage: Optional[TaxonomyCoverage] = None
    transcript: List[Dict[str, str]] = field(default_factory=list)

    def copy(self) -> "ConversationState":
        return copy.deepcopy(self)

    def with_message(self, role: str, content: str) -> "ConversationState":
        """Return a copy with one more transcript entry."""
        updated = self.copy()
        updated.transcript.append({"role": role, "content": content})
        return updated

    def good_category_count(self) -> int:
        """Categories covered at medium or high."""
        return sum(1 for level in self.coverage.values() if level.rank >= CoverageLevel.MEDIUM.rank)

    def lowest_category(self) -> Tuple[Category, CoverageLevel]:
        """Least covered category; ties go to the first in declaration order."""
        return min(self.coverage.items(), key=lambda item: item[1].rank)

    def gap_category(self) -> Optional[Category]:
        """Lowest category if it is still below medium, else None."""
        category, level = self.lowest_category()
        return category if level.rank < CoverageLevel.MEDIUM.rank else None

    @property
    def new_selection_count(self) -> int:
        return len(self.selected_suggestion_ids) - self.acknowledged_selection_count

    def has_new_selections(self) -> bool:
        return self.new_selection_count > 0

    def last_user_message(self) -> Optional[str]:
        for message in reversed(self.transcript):
            if message["role"] == "user":
                return message["content"]
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_title": self.job_title,
            "turn_count": self.turn_count,
            "estimated_task_count": self.estimated_task_count,
            "mentioned_activities": list(self.mentioned_activities),
            "underexplored_activities": list(self.underexplored_activities),
            "coverage": {c.value: l.value for c, l in self.coverage.items()},
            "engagement": self.engagement.value,
            "wants_to_stop": self.wants_to_stop,
            "has_asked_clarifying_question": self.has_asked_clarifying_question,
            "selected_suggestion_ids": list(self.selected_suggestion_ids),
            "acknowledged_selection_count": self.acknowledged_selection_count,
            "suggestions_shown_count": self.suggestions_shown_count,
            "shown_suggestion_statements": list(self.shown_suggestion_statements),
            "pending_suggestions": list(self.pending_suggestions),
            "actions_taken": list(self.actions_taken),
            "cached_taxonomy_tasks": None if self.cached_taxonomy_tasks is None else list(self.cached_taxonomy_tasks),
            "taxonomy_coverage": self.taxonomy_coverage.value if self.taxonomy_coverage else None,
            "transcript": [dict(m) for m in self.transcript],
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ConversationState":
        coverage = empty_coverage()
        for key, value in (d.get("coverage") or {}).items():
            coverage[Category(key)] = CoverageLevel(value)
        taxonomy_coverage = d.get("taxonomy_coverage")
        return cls(
            job_title=d.get("job_title", ""),
            turn_count=d.get("turn_count", 0),
            estimated_task_count=d.get("estimated_task_count", 0),
            mentioned_activities=list(d.get("mentioned_activities", [])),
            underexplored_activities=list(d.get("underexplored_activities", [])),
            coverage=coverage,
            engagement=Engagement(d.get("engagement", Engagement.MEDIUM.value)),
            wants_to_stop=d.get("wants_to_stop", False),
            has_asked_clarifying_question=d.get("has_asked_clarifying_question", False),
            selected_suggestion_ids=list(d.get("selected_suggestion_ids", [])),
            acknowledged_selection_count=d.get("acknowledged_selection_count", 0),
            suggestions_shown_count=d.get("suggestions_shown_count", 0),
            shown_suggestion_statements=list(d.get("shown_suggestion_statements", [])),
            pending_suggestions=list(d.get("pending_suggestions", [])),
            actions_taken=list(d.get("actions_taken", [])),
            cached_taxonomy_tasks=d.get("cached_taxonomy_tasks"),
            taxonomy_coverage=TaxonomyCoverage(taxonomy_coverage) if taxonomy_coverage else None,
            transcript=[dict(m) for m in d.get("transcript", [])],
        )


def create_initial_state(job_title: str) -> ConversationState:
    return ConversationState(job_title=job_title)


def check_exit_conditions(state: ConversationState, config: Optional[ElicitConfig] = None) -> bool:
    """
    Whether the conversation has gathered enough to end.

    True on explicit stop intent, on enough tasks with broad coverage, or
    after many turns with a reasonable task count.
    """
    config = config if config is not None else get_config()

    if state.wants_to_stop:
        return True
    if (state.estimated_task_count >= config.finish_min_tasks
            and state.good_category_count() >= config.early_finish_categories):
        return True
    if state.turn_count >= config.exit_turn and state.estimated_task_count >= config.exit_turn_tasks:
        return True
    return False
