"""
Records passed between canonicalization stages.

Each stage produces new records that point back at their input by value;
nothing upstream is mutated.
"""
import re
import uuid
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from elicit.conversation.state import Category
from elicit.core.errors import ValidationError
from elicit.utils.logger import get_logger

logger = get_logger("canonicalization.models")


class MatchConfidence(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    NONE = "none"


class TaskSource(str, Enum):
    CHAT = "chat"
    SUGGESTION = "suggestion"


@dataclass
class ExtractedTask:
    """A raw task phrase pulled from the transcript."""
    raw: str
    source_message_id: Optional[str] = None


@dataclass
class NormalizedTask:
    original: str
    normalized: str


@dataclass
class DeduplicatedTask:
    """One canonical statement and the normalized statements it absorbed."""
    final_statement: str
    merged_from: List[str] = field(default_factory=list)
    reasoning: Optional[str] = None
    sources: List[NormalizedTask] = field(default_factory=list)

    @property
    def user_description(self) -> str:
        if self.sources:
            return self.sources[0].original
        return self.merged_from[0] if self.merged_from else self.final_statement


@dataclass
class TaxonomyMatch:
    """A reference task chosen as the best match for a user task."""
    task_id: str
    statement: str
    occupation_code: str = ""
    occupation_title: str = ""
    task_type: str = ""
    score: float = 0.0
    reasoning: Optional[str] = None

    @property
    def category(self) -> Category:
        return category_from_task_type(self.task_type)


@dataclass
class MatchResult:
    user_task: str
    best_match: Optional[TaxonomyMatch] = None
    confidence: MatchConfidence = MatchConfidence.NONE


@dataclass
class ProcessedTask:
    """Canonical task record handed to the client; taxonomy fields arrive later."""
    user_description: str
    normalized_description: str
    category: Category
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    taxonomy_task_id: Optional[str] = None
    taxonomy_statement: Optional[str] = None
    similarity_score: Optional[float] = None
    match_confidence: Optional[MatchConfidence] = None
    source: TaskSource = TaskSource.CHAT

    def enriched(self, result: MatchResult) -> "ProcessedTask":
        """Return a copy carrying the taxonomy fields of ``result``."""
        if result.best_match is None:
            return replace(self, match_confidence=result.confidence)
        match = result.best_match
        return replace(
            self,
            taxonomy_task_id=match.task_id,
            taxonomy_statement=match.statement,
            similarity_score=match.score,
            match_confidence=result.confidence,
            category=match.category,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "user_description": self.user_description,
            "normalized_description": self.normalized_description,
            "category": self.category.value,
            "taxonomy_task_id": self.taxonomy_task_id,
            "taxonomy_statement": self.taxonomy_statement,
            "similarity_score": self.similarity_score,
            "match_confidence": self.match_confidence.value if self.match_confidence else None,
            "source": self.source.value,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ProcessedTask":
        confidence = d.get("match_confidence")
        return cls(
            id=d.get("id") or str(uuid.uuid4()),
            user_description=d.get("user_description", ""),
            normalized_description=d.get("normalized_description", ""),
            category=parse_category(d.get("category"), d.get("normalized_description", "")),
            taxonomy_task_id=d.get("taxonomy_task_id"),
            taxonomy_statement=d.get("taxonomy_statement"),
            similarity_score=d.get("similarity_score"),
            match_confidence=_enum_value(MatchConfidence, confidence, "match_confidence") if confidence else None,
            source=_enum_value(TaskSource, d.get("source") or TaskSource.CHAT.value, "source"),
        )


def _enum_value(enum_cls, value, name: str):
    try:
        return enum_cls(value)
    except ValueError:
        allowed = ", ".join(member.value for member in enum_cls)
        raise ValidationError(f"Invalid {name} {value!r}, expected one of: {allowed}")


# ============================================================================
# Structured outputs
# ============================================================================

class ExtractionOutput(BaseModel):
    extracted_tasks: List[str] = Field(default_factory=list, description="Discrete task phrases in the user's words")


class NormalizedPair(BaseModel):
    original: str = Field(description="The task exactly as given")
    normalized: str = Field(description="The rewritten task statement")


class NormalizationOutput(BaseModel):
    normalized_tasks: List[NormalizedPair] = Field(default_factory=list)


class MergeGroup(BaseModel):
    final_statement: str = Field(description="The best single statement for the group")
    merged_from: List[int] = Field(description="1-based numbers of the input tasks in this group")
    reasoning: Optional[str] = Field(default=None, description="Why the tasks were merged, if more than one")


class DeduplicationOutput(BaseModel):
    deduplicated_tasks: List[MergeGroup] = Field(default_factory=list)


class MatchSelection(BaseModel):
    """Structured output for picking the best reference task."""
    best_index: int = Field(description="0-based index of the best candidate, or -1 if all are unrelated")
    confidence: MatchConfidence = Field(description="high, medium, low, or none")
    reasoning: str = Field(default="", description="One sentence on why")


# ============================================================================
# Category inference
# ============================================================================

CATEGORY_KEYWORDS = [
    (Category.INFORMATION_INPUT, re.compile(
        r"\b(read|research|gather|collect|monitor|observe|review data|analyze data|investigate|"
        r"examine|inspect|survey|study)\b", re.IGNORECASE)),
    (Category.INTERACTING_WITH_OTHERS, re.compile(
        r"\b(meet|discuss|present|communicate|coordinate|collaborate|negotiate|train|supervise|"
        r"consult|advise|interview|email|call|team)\b", re.IGNORECASE)),
    (Category.WORK_OUTPUT, re.compile(
        r"\b(write|create|build|produce|develop|design|draft|prepare|generate|compile|assemble|"
        r"construct|implement|code|program)\b", re.IGNORECASE)),
]


def infer_category(statement: str) -> Category:
    """Keyword guess used when a task has no taxonomy match."""
    for category, pattern in CATEGORY_KEYWORDS:
        if pattern.search(statement):
            return category
    return Category.MENTAL_PROCESSES


def parse_category(value: Optional[str], statement: str) -> Category:
    """
    Read a category label from a client.

    Accepts the hyphenated values plus camelCase, snake_case and spaced
    spellings ("informationInput", "WORK_OUTPUT"). Anything else is inferred
    from the statement.
    """
    if isinstance(value, Category):
        return value
    if value:
        key = re.sub(r"([a-z])([A-Z])", r"\1-\2", str(value).strip())
        key = re.sub(r"[_\s]+", "-", key).lower()
        try:
            return Category(key)
        except ValueError:
            logger.warning(f"Unknown category {value!r}, inferring from the statement")
    return infer_category(statement)


def category_from_task_type(task_type: str) -> Category:
    return Category.WORK_OUTPUT if task_type == "Core" else Category.MENTAL_PROCESSES
