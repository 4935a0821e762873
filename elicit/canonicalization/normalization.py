"""
Normalization: rewrite raw task phrases as taxonomy-style statements.

The completion service handles batches of ten phrases. If any batch fails
the whole list is normalized by the lexical fallback so the output never
mixes the two styles.
"""
import re
from typing import List, Optional

from elicit.canonicalization.models import ExtractedTask, NormalizationOutput, NormalizedTask
from elicit.canonicalization.prompts import build_normalization_prompt
from elicit.core.config import ElicitConfig, get_config
from elicit.core.errors import InvalidOutput, ServiceUnavailable
from elicit.services.completion import CompletionService, get_completion_service
from elicit.utils.logger import get_logger
from elicit.utils.text import GERUND_PATTERN, LEADING_VERB_PATTERN, capitalize_first, gerund_to_base

logger = get_logger("canonicalization.normalization")

FIRST_PERSON_PATTERN = re.compile(r"\bI\s+|\bmy\s+|\bwe\s+|\bour\s+", re.IGNORECASE)
FILLER_PATTERN = re.compile(
    r"\b(basically|actually|usually|typically|sometimes|often|always|kind of|sort of|a lot of)\b",
    re.IGNORECASE,
)
TRAILING_PUNCTUATION = re.compile(r"[.!?]+$")
# pronouns and contractions, plus connectives left dangling once they go
LEADING_FIRST_PERSON = re.compile(
    r"^(?:(?:i['’](?:m|ve|d|ll)|we['’](?:re|ve|d|ll)|i|me|my|myself|we|us|our)\b[\s,]*"
    r"|(?:and|also|then|so)\b\s*)+",
    re.IGNORECASE,
)
MAX_STATEMENT_LENGTH = 100
MIN_CUT_POSITION = 50


def fallback_normalize(raw: str) -> str:
    """Deterministic rewrite toward "Verb object" form."""
    text = FIRST_PERSON_PATTERN.sub("", raw.strip())
    text = FILLER_PATTERN.sub("", text)
    text = re.sub(r"\s+", " ", text).strip()
    text = capitalize_first(text)

    if text and not LEADING_VERB_PATTERN.match(text):
        gerund = GERUND_PATTERN.search(text)
        if gerund:
            verb = gerund_to_base(gerund.group(1))
            rest = (text[:gerund.start()] + text[gerund.end():]).strip()
            rest = re.sub(r"\s+", " ", rest)
            text = capitalize_first(f"{verb} {rest[:1].lower() + rest[1:]}".strip())

    text = TRAILING_PUNCTUATION.sub("", text).strip()
    return bound_statement(text) or bound_statement(raw)


def bound_statement(text: str) -> str:
    """Drop leading first-person words and cap the length on a word boundary."""
    text = LEADING_FIRST_PERSON.sub("", text.strip())
    if len(text) > MAX_STATEMENT_LENGTH:
        cut = text[:MAX_STATEMENT_LENGTH]
        last_space = cut.rfind(" ")
        text = cut[:last_space] if last_space > MIN_CUT_POSITION else cut
    return capitalize_first(text.strip())


class TaskNormalizer:
    """Rewrites raw task phrases into standardized statements."""

    def __init__(self, completion: Optional[CompletionService] = None, config: Optional[ElicitConfig] = None):
        self.completion = completion if completion is not None else get_completion_service()
        self.config = config if config is not None else get_config()

    def _fallback(self, tasks: List[ExtractedTask]) -> List[NormalizedTask]:
        normalized = [NormalizedTask(original=t.raw, normalized=fallback_normalize(t.raw)) for t in tasks]
        # a phrase made only of pronouns and filler leaves nothing to keep
        return [n for n in normalized if n.normalized]

    def _normalize_batch(self, batch: List[ExtractedTask]) -> List[NormalizedTask]:
        output = self.completion.complete_structured(
            build_normalization_prompt([t.raw for t in batch]),
            NormalizationOutput,
        )
        if len(output.normalized_tasks) != len(batch):
            raise InvalidOutput(
                f"Expected {len(batch)} normalized tasks, got {len(output.normalized_tasks)}"
            )
        results = []
        for task, pair in zip(batch, output.normalized_tasks):
            normalized = bound_statement(pair.normalized) or fallback_normalize(task.raw)
            if normalized:
                results.append(NormalizedTask(original=task.raw, normalized=normalized))
        return results

    def normalize(self, tasks: List[ExtractedTask]) -> List[NormalizedTask]:
        if not tasks:
            return []
        if not self.completion.is_available():
            return self._fallback(tasks)

        size = max(1, self.config.normalization_batch_size)
        results: List[NormalizedTask] = []
        try:
            for start in range(0, len(tasks), size):
                results.extend(self._normalize_batch(tasks[start:start + size]))
        except (ServiceUnavailable, InvalidOutput) as e:
            logger.error(f"Normalization failed, using lexical fallback for all {len(tasks)} tasks: {e}")
            return self._fallback(tasks)

        logger.info(f"Normalized {len(results)} tasks")
        return results
