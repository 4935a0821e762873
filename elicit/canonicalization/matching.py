"""
Taxonomy matching.

Two stages per task:
1. Retrieval: top-5 reference tasks across all occupations
2. Selection: the completion service picks the single best candidate

When selection is unavailable the top retrieval hit is taken and its
confidence is read off its similarity score.
"""
from typing import List, Optional

from elicit.canonicalization.models import MatchConfidence, MatchResult, MatchSelection, TaxonomyMatch
from elicit.canonicalization.prompts import MATCH_SYSTEM_PROMPT, build_match_prompt
from elicit.core.config import ElicitConfig, get_config
from elicit.core.errors import InvalidOutput, ServiceUnavailable
from elicit.services.completion import CompletionService, get_completion_service
from elicit.services.retrieval import TaxonomyHit, get_retrieval_service
from elicit.utils.logger import get_logger

logger = get_logger("canonicalization.matching")


def hit_to_match(hit: TaxonomyHit, reasoning: Optional[str] = None) -> TaxonomyMatch:
    return TaxonomyMatch(
        task_id=hit.id,
        statement=hit.text,
        occupation_code=hit.fields.get("occupation_code", ""),
        occupation_title=hit.fields.get("occupation_title", ""),
        task_type=hit.fields.get("task_type", ""),
        score=hit.score,
        reasoning=reasoning,
    )


def confidence_from_score(score: float, config: ElicitConfig) -> MatchConfidence:
    """Map a raw retrieval score onto a confidence label, never below low."""
    if score >= config.high_confidence_score:
        return MatchConfidence.HIGH
    if score >= config.medium_confidence_score:
        return MatchConfidence.MEDIUM
    if score < config.low_confidence_score:
        logger.info(f"Similarity {score:.2f} is below the low threshold {config.low_confidence_score}, keeping as low")
    # retrieval already filtered the candidates, so anything left is at least low
    return MatchConfidence.LOW


class TaxonomyMatcher:
    """Links normalized task statements to reference taxonomy tasks."""

    def __init__(
        self,
        completion: Optional[CompletionService] = None,
        retrieval=None,
        config: Optional[ElicitConfig] = None,
    ):
        self.completion = completion if completion is not None else get_completion_service()
        self.retrieval = retrieval if retrieval is not None else get_retrieval_service()
        self.config = config if config is not None else get_config()

    def _fallback_selection(self, candidates: List[TaxonomyHit]) -> MatchSelection:
        top = candidates[0]
        return MatchSelection(
            best_index=0,
            confidence=confidence_from_score(top.score, self.config),
            reasoning=f"Selected by similarity score: {top.score:.2f}",
        )

    def _select(self, task: str, candidates: List[TaxonomyHit]) -> MatchSelection:
        if not self.completion.is_available():
            return self._fallback_selection(candidates)
        try:
            selection = self.completion.complete_structured(
                build_match_prompt(task, candidates),
                MatchSelection,
                system=MATCH_SYSTEM_PROMPT,
                model=self.config.matching_model,
                temperature=0,
            )
        except (ServiceUnavailable, InvalidOutput) as e:
            logger.warning(f"Match selection failed, using top candidate: {e}")
            return self._fallback_selection(candidates)

        if selection.best_index >= len(candidates):
            logger.warning(f"Match selection index {selection.best_index} out of range, using top candidate")
            return self._fallback_selection(candidates)
        return selection

    def match(self, task: str) -> MatchResult:
        """Match one statement; a retrieval failure yields no match."""
        if not self.retrieval.is_available():
            logger.warning("Retrieval service not configured, returning no match")
            return MatchResult(user_task=task)

        candidates = self.retrieval.search_tasks(task, top_k=self.config.match_top_k)
        if not candidates:
            logger.info(f"No candidates found for: {task[:50]}")
            return MatchResult(user_task=task)

        selection = self._select(task, candidates)
        if selection.best_index < 0 or selection.confidence == MatchConfidence.NONE:
            logger.info(f"No related reference task for: {task[:50]}")
            return MatchResult(user_task=task)

        best = candidates[selection.best_index]
        logger.info(f"Matched '{task[:50]}' -> '{best.text[:60]}' ({selection.confidence.value})")
        return MatchResult(
            user_task=task,
            best_match=hit_to_match(best, selection.reasoning),
            confidence=selection.confidence,
        )

    def match_many(self, tasks: List[str]) -> List[MatchResult]:
        return [self.match(task) for task in tasks]
