"""
Deduplication: merge statements that describe the same activity.

The completion service groups statements by meaning and keeps apart
statements whose purpose or audience differs. Without it, statements are
merged on keyword overlap until no further merges apply.
"""
from typing import List, Optional

from elicit.canonicalization.models import DeduplicatedTask, DeduplicationOutput, NormalizedTask
from elicit.canonicalization.prompts import build_deduplication_prompt
from elicit.core.config import ElicitConfig, get_config
from elicit.core.errors import InvalidOutput, ServiceUnavailable
from elicit.services.completion import CompletionService, get_completion_service
from elicit.utils.logger import get_logger
from elicit.utils.text import extract_keywords

logger = get_logger("canonicalization.deduplication")

JACCARD_THRESHOLD = 0.5
CONTAINMENT_THRESHOLD = 0.7


def are_similar(first: str, second: str) -> bool:
    """True when keyword overlap says two statements are the same task."""
    words1 = set(extract_keywords(first))
    words2 = set(extract_keywords(second))
    if not words1 or not words2:
        return False

    shared = len(words1 & words2)
    similarity = shared / len(words1 | words2)
    return (
        similarity > JACCARD_THRESHOLD
        or shared / len(words1) > CONTAINMENT_THRESHOLD
        or shared / len(words2) > CONTAINMENT_THRESHOLD
    )


def _group(sources: List[NormalizedTask], reasoning: Optional[str] = None) -> DeduplicatedTask:
    best = max(sources, key=lambda t: len(t.normalized))
    return DeduplicatedTask(
        final_statement=best.normalized,
        merged_from=[t.normalized for t in sources],
        reasoning=reasoning,
        sources=list(sources),
    )


def _merge_pass(groups: List[List[NormalizedTask]]) -> List[List[NormalizedTask]]:
    merged: List[List[NormalizedTask]] = []
    used = set()
    for i, group in enumerate(groups):
        if i in used:
            continue
        used.add(i)
        combined = list(group)
        representative = _group(combined).final_statement
        for j in range(i + 1, len(groups)):
            if j in used:
                continue
            if are_similar(representative.lower(), _group(groups[j]).final_statement.lower()):
                combined.extend(groups[j])
                used.add(j)
        merged.append(combined)
    return merged


def fallback_deduplicate(tasks: List[NormalizedTask]) -> List[DeduplicatedTask]:
    """Greedy keyword-overlap merging, repeated until stable."""
    groups = [[t] for t in tasks]
    while True:
        merged = _merge_pass(groups)
        if len(merged) == len(groups):
            break
        groups = merged

    results = []
    for sources in groups:
        reasoning = f"Merged {len(sources)} similar tasks based on word overlap" if len(sources) > 1 else None
        results.append(_group(sources, reasoning))
    logger.info(f"Fallback merged {len(tasks)} tasks into {len(results)}")
    return results


class TaskDeduplicator:
    """Merges semantically duplicate task statements."""

    def __init__(self, completion: Optional[CompletionService] = None, config: Optional[ElicitConfig] = None):
        self.completion = completion if completion is not None else get_completion_service()
        self.config = config if config is not None else get_config()

    def deduplicate(self, tasks: List[NormalizedTask]) -> List[DeduplicatedTask]:
        if not tasks:
            return []
        if len(tasks) == 1:
            return [_group(tasks)]
        if not self.completion.is_available():
            return fallback_deduplicate(tasks)

        try:
            output = self.completion.complete_structured(
                build_deduplication_prompt([t.normalized for t in tasks]),
                DeduplicationOutput,
            )
        except (ServiceUnavailable, InvalidOutput) as e:
            logger.error(f"Deduplication failed, using keyword overlap: {e}")
            return fallback_deduplicate(tasks)

        results = []
        claimed = set()
        for group in output.deduplicated_tasks:
            indices = [i - 1 for i in group.merged_from if 1 <= i <= len(tasks) and (i - 1) not in claimed]
            statement = group.final_statement.strip()
            if not indices and not statement:
                continue
            claimed.update(indices)
            sources = [tasks[i] for i in indices]
            results.append(DeduplicatedTask(
                final_statement=statement or _group(sources).final_statement,
                merged_from=[t.normalized for t in sources],
                reasoning=group.reasoning,
                sources=sources,
            ))

        # any input the model left out is kept as its own task
        for i, task in enumerate(tasks):
            if i not in claimed:
                results.append(_group([task]))

        logger.info(f"Deduplicated {len(tasks)} tasks into {len(results)}")
        return results
