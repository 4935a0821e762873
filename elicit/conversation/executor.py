"""
Action executor: performs the side effects an action needs.

Only two actions do anything here. show-suggestions generates task
suggestions and finish flags the end of the conversation; every other
action is just a prompt for the response composer.

The same suggestion records back two lookups made before a session starts:
reference tasks for a job title and first-person example tasks.
"""
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from elicit.canonicalization.models import category_from_task_type
from elicit.conversation.policy import Action, PolicyDecision, ReferenceTaskProvider
from elicit.conversation.prompts import (
    EXAMPLE_TASKS_SYSTEM_PROMPT,
    build_example_tasks_prompt,
    build_suggestion_prompt,
)
from elicit.conversation.state import Category, ConversationState
from elicit.core.config import ElicitConfig, get_config
from elicit.core.errors import InvalidOutput, ServiceUnavailable, ValidationError
from elicit.services.completion import CompletionService, get_completion_service
from elicit.services.retrieval import TaxonomyHit
from elicit.utils.logger import get_logger

logger = get_logger("conversation.executor")

AI_OCCUPATION_CODE = "AI-GENERATED"
AI_SUGGESTION_IMPORTANCE = 0.8
REFERENCE_SUGGESTION_LIMIT = 6
EXAMPLE_TASK_COUNT = 3

FALLBACK_EXAMPLE_TASKS = [
    "I gather and analyze information relevant to my work",
    "I communicate with colleagues and stakeholders",
    "I prepare documents and recommendations",
]


class GeneratedSuggestion(BaseModel):
    statement: str = Field(description="Task statement: verb + object + purpose")
    category: Category = Field(description="Work activity category the task belongs to")


class SuggestionBatch(BaseModel):
    """Structured output for suggestion generation."""
    suggestions: List[GeneratedSuggestion] = Field(default_factory=list)


@dataclass
class TaskSuggestion:
    """A selectable task suggestion shown to the user."""
    id: str
    statement: str
    category: Category
    occupation_code: str = AI_OCCUPATION_CODE
    occupation_title: str = ""
    importance: float = AI_SUGGESTION_IMPORTANCE

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "statement": self.statement,
            "category": self.category.value,
            "occupation_code": self.occupation_code,
            "occupation_title": self.occupation_title,
            "importance": self.importance,
        }


@dataclass
class ExecutionResult:
    suggestions: List[TaskSuggestion] = field(default_factory=list)
    should_finish: bool = False


class SuggestionGenerator:
    """Generates task suggestions the user has probably not mentioned yet."""

    def __init__(self, completion: Optional[CompletionService] = None, config: Optional[ElicitConfig] = None):
        self.completion = completion if completion is not None else get_completion_service()
        self.config = config if config is not None else get_config()

    def generate(self, state: ConversationState, count: Optional[int] = None) -> List[TaskSuggestion]:
        count = count or self.config.suggestion_count
        if not self.completion.is_available():
            logger.warning("Completion service unavailable, no suggestions generated")
            return []

        try:
            batch = self.completion.complete_structured(
                build_suggestion_prompt(state, state.shown_suggestion_statements, count),
                SuggestionBatch,
            )
        except (ServiceUnavailable, InvalidOutput) as e:
            logger.error(f"Suggestion generation failed: {e}")
            return []

        seen = {s.lower() for s in state.shown_suggestion_statements}
        seen.update(a.lower() for a in state.mentioned_activities)
        suggestions = []
        for generated in batch.suggestions:
            statement = generated.statement.strip()
            if not statement or statement.lower() in seen:
                continue
            seen.add(statement.lower())
            suggestions.append(TaskSuggestion(
                id=f"ai-{uuid.uuid4()}",
                statement=statement,
                category=generated.category,
                occupation_title=state.job_title,
            ))

        logger.info(f"Generated {len(suggestions)} suggestions for {state.job_title}")
        return suggestions[:count]


@dataclass
class ReferenceSuggestions:
    """Tasks of the occupation matched to a job title, offered as selectable suggestions."""
    job_title: str
    occupation: Optional[TaxonomyHit] = None
    suggestions: List[TaskSuggestion] = field(default_factory=list)

    @property
    def matched(self) -> bool:
        return bool(self.suggestions)


def reference_suggestions(
    references: ReferenceTaskProvider,
    job_title: str,
    limit: int = REFERENCE_SUGGESTION_LIMIT,
) -> ReferenceSuggestions:
    """Look up the occupation for ``job_title`` and turn its tasks into suggestions."""
    job_title = (job_title or "").strip()
    if not job_title:
        raise ValidationError("job_title is required")

    occupation, hits = references.reference_hits(job_title, max(1, limit))
    suggestions = [
        TaskSuggestion(
            id=hit.id,
            statement=hit.text,
            category=category_from_task_type(hit.fields.get("task_type", "")),
            occupation_code=hit.fields.get("occupation_code", ""),
            occupation_title=hit.fields.get("occupation_title", ""),
            importance=0.0,
        )
        for hit in hits
    ]
    return ReferenceSuggestions(job_title=job_title, occupation=occupation, suggestions=suggestions)


class ExampleTasks(BaseModel):
    """Structured output for example task generation."""
    tasks: List[str] = Field(default_factory=list, description="First-person example tasks")


class ExampleTaskGenerator:
    """Sample first-person tasks shown as placeholders before a session starts."""

    def __init__(self, completion: Optional[CompletionService] = None, config: Optional[ElicitConfig] = None):
        self.completion = completion if completion is not None else get_completion_service()
        self.config = config if config is not None else get_config()

    def generate(self, job_title: str) -> List[str]:
        job_title = (job_title or "").strip()
        if not job_title:
            raise ValidationError("job_title is required")
        if not self.completion.is_available():
            return list(FALLBACK_EXAMPLE_TASKS)

        try:
            output = self.completion.complete_structured(
                build_example_tasks_prompt(job_title),
                ExampleTasks,
                system=EXAMPLE_TASKS_SYSTEM_PROMPT,
            )
        except (ServiceUnavailable, InvalidOutput) as e:
            logger.error(f"Example task generation failed for {job_title}: {e}")
            return list(FALLBACK_EXAMPLE_TASKS)

        tasks = [t.strip() for t in output.tasks if t and t.strip()]
        return tasks[:EXAMPLE_TASK_COUNT] or list(FALLBACK_EXAMPLE_TASKS)


class ActionExecutor:
    """Runs the side effect of a policy decision."""

    def __init__(self, suggestions: Optional[SuggestionGenerator] = None, config: Optional[ElicitConfig] = None):
        self.config = config if config is not None else get_config()
        self.suggestions = suggestions if suggestions is not None else SuggestionGenerator(config=self.config)

    def execute(self, decision: PolicyDecision, state: ConversationState) -> ExecutionResult:
        if decision.action == Action.SHOW_SUGGESTIONS:
            return ExecutionResult(suggestions=self.suggestions.generate(state))
        if decision.action == Action.FINISH:
            return ExecutionResult(should_finish=True)
        return ExecutionResult()
