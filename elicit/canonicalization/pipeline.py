"""
Task processing pipeline.

    EXTRACT -> NORMALIZE -> DEDUPLICATE -> FORMAT      (blocking)
    MATCH                                              (separate call, may run in background)

``process`` returns canonical records without taxonomy fields so the client
can start working immediately. ``match`` enriches the same records later;
``merge_enrichment`` folds a late batch into a list the client already has.
"""
import threading
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from elicit.canonicalization.deduplication import TaskDeduplicator
from elicit.canonicalization.extraction import TaskExtractor
from elicit.canonicalization.matching import TaxonomyMatcher
from elicit.canonicalization.models import (
    DeduplicatedTask,
    ExtractedTask,
    NormalizedTask,
    ProcessedTask,
    TaskSource,
    infer_category,
    parse_category,
)
from elicit.canonicalization.normalization import TaskNormalizer
from elicit.core.config import ElicitConfig, get_config
from elicit.core.errors import ElicitError
from elicit.services.completion import CompletionService, get_completion_service
from elicit.utils.logger import get_logger

logger = get_logger("canonicalization.pipeline")


@dataclass
class ProcessingResult:
    extracted_tasks: List[ExtractedTask] = field(default_factory=list)
    normalized_tasks: List[NormalizedTask] = field(default_factory=list)
    deduplicated_tasks: List[DeduplicatedTask] = field(default_factory=list)
    processed_tasks: List[ProcessedTask] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "extracted_tasks": [t.raw for t in self.extracted_tasks],
            "normalized_tasks": [{"original": t.original, "normalized": t.normalized} for t in self.normalized_tasks],
            "deduplicated_tasks": [
                {"final_statement": t.final_statement, "merged_from": t.merged_from, "reasoning": t.reasoning}
                for t in self.deduplicated_tasks
            ],
            "processed_tasks": [t.to_dict() for t in self.processed_tasks],
        }


def format_tasks(deduplicated: List[DeduplicatedTask]) -> List[ProcessedTask]:
    """Unmatched canonical records, one per deduplicated statement."""
    return [
        ProcessedTask(
            user_description=task.user_description,
            normalized_description=task.final_statement,
            category=infer_category(task.final_statement),
        )
        for task in deduplicated
    ]


def suggestion_tasks(selected: List[Dict[str, Any]], existing: List[ProcessedTask]) -> List[ProcessedTask]:
    """Records for selected suggestions whose statement is not already present."""
    seen = {t.normalized_description.lower() for t in existing}
    tasks = []
    for suggestion in selected:
        statement = (suggestion.get("statement") or "").strip()
        if not statement or statement.lower() in seen:
            continue
        seen.add(statement.lower())
        tasks.append(ProcessedTask(
            user_description=statement,
            normalized_description=statement,
            category=parse_category(suggestion.get("category"), statement),
            source=TaskSource.SUGGESTION,
        ))
    return tasks


def merge_enrichment(current: List[ProcessedTask], enriched: List[ProcessedTask]) -> List[ProcessedTask]:
    """
    Replace records in ``current`` by their enriched version, matched on id.

    Order and length of ``current`` are preserved; ids present only in
    ``enriched`` are ignored. Applying the same batch twice changes nothing.
    """
    by_id = {t.id: t for t in enriched}
    return [by_id.get(t.id, t) for t in current]


class TaskPipeline:
    """Turns a chat transcript into canonical, optionally taxonomy-linked, task records."""

    def __init__(
        self,
        completion: Optional[CompletionService] = None,
        retrieval=None,
        config: Optional[ElicitConfig] = None,
    ):
        self.config = config if config is not None else get_config()
        completion = completion if completion is not None else get_completion_service()
        self.extractor = TaskExtractor(completion, self.config)
        self.normalizer = TaskNormalizer(completion, self.config)
        self.deduplicator = TaskDeduplicator(completion, self.config)
        self.matcher = TaxonomyMatcher(completion, retrieval, self.config)

    def process(
        self,
        transcript: List[Dict[str, Any]],
        job_title: str,
        selected_suggestions: Optional[List[Dict[str, Any]]] = None,
    ) -> ProcessingResult:
        """Extract, normalize and deduplicate; no taxonomy matching."""
        logger.info(f"Processing {len(transcript)} messages for {job_title}")

        extracted = self.extractor.extract(transcript)
        logger.info(f"Step 1: extracted {len(extracted)} tasks")

        normalized = self.normalizer.normalize(extracted)
        logger.info(f"Step 2: normalized {len(normalized)} tasks")

        deduplicated = self.deduplicator.deduplicate(normalized)
        logger.info(f"Step 3: deduplicated {len(normalized)} -> {len(deduplicated)} tasks")
        for task in deduplicated:
            if len(task.merged_from) > 1:
                logger.debug(f"Merged {task.merged_from} -> {task.final_statement}")

        processed = format_tasks(deduplicated)
        if selected_suggestions:
            processed.extend(suggestion_tasks(selected_suggestions, processed))

        logger.info(f"Processing complete: {len(processed)} tasks")
        return ProcessingResult(
            extracted_tasks=extracted,
            normalized_tasks=normalized,
            deduplicated_tasks=deduplicated,
            processed_tasks=processed,
        )

    def match(self, tasks: List[ProcessedTask]) -> List[ProcessedTask]:
        """Return ``tasks`` enriched with taxonomy fields; one failure never blocks the rest."""
        logger.info(f"Matching {len(tasks)} tasks to the taxonomy")
        enriched = []
        for task in tasks:
            try:
                result = self.matcher.match(task.normalized_description)
            except ElicitError as e:
                logger.error(f"Match failed for task {task.id}: {e}")
                enriched.append(task)
                continue
            enriched.append(task.enriched(result))
        return enriched


# ============================================================================
# Background enrichment jobs
# ============================================================================

class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETE = "complete"
    FAILED = "failed"


@dataclass
class EnrichmentJob:
    id: str
    tasks: List[ProcessedTask]
    status: JobStatus = JobStatus.PENDING
    error: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.id,
            "status": self.status.value,
            "tasks": [t.to_dict() for t in self.tasks],
            "error": self.error,
            "created_at": self.created_at.isoformat(),
        }


class EnrichmentJobs:
    """
    In-process registry of taxonomy matching jobs, polled by job id.

    Jobs are dropped ttl_seconds after submission, finished or not.
    """

    def __init__(
        self,
        pipeline: Optional[TaskPipeline] = None,
        ttl_seconds: Optional[int] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self._pipeline = pipeline
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else get_config().session_ttl_seconds
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self._jobs: Dict[str, EnrichmentJob] = {}
        self._lock = threading.Lock()

    def _evict_expired(self) -> None:
        # caller holds self._lock
        now = self.clock()
        expired = [job_id for job_id, job in self._jobs.items()
                   if (now - job.created_at).total_seconds() > self.ttl_seconds]
        for job_id in expired:
            del self._jobs[job_id]
        if expired:
            logger.info(f"Dropped {len(expired)} expired enrichment jobs")

    @property
    def pipeline(self) -> TaskPipeline:
        if self._pipeline is None:
            self._pipeline = TaskPipeline()
        return self._pipeline

    def submit(self, tasks: List[ProcessedTask]) -> str:
        job = EnrichmentJob(id=str(uuid.uuid4()), tasks=list(tasks), created_at=self.clock())
        with self._lock:
            self._evict_expired()
            self._jobs[job.id] = job
        return job.id

    def run(self, job_id: str) -> None:
        job = self.get(job_id)
        if job is None:
            logger.warning(f"Enrichment job {job_id} not found")
            return
        job.status = JobStatus.RUNNING
        try:
            enriched = self.pipeline.match(job.tasks)
        except ElicitError as e:
            logger.error(f"Enrichment job {job_id} failed: {e}")
            job.status = JobStatus.FAILED
            job.error = str(e)
            return
        job.tasks = merge_enrichment(job.tasks, enriched)
        job.status = JobStatus.COMPLETE
        logger.info(f"Enrichment job {job_id} complete: {len(job.tasks)} tasks")

    def get(self, job_id: str) -> Optional[EnrichmentJob]:
        with self._lock:
            self._evict_expired()
            return self._jobs.get(job_id)

    def __len__(self) -> int:
        with self._lock:
            self._evict_expired()
            return len(self._jobs)


# Global instances
_pipeline: Optional[TaskPipeline] = None
_jobs: Optional[EnrichmentJobs] = None


def get_task_pipeline() -> TaskPipeline:
    global _pipeline
    if _pipeline is None:
        _pipeline = TaskPipeline()
    return _pipeline


def set_task_pipeline(pipeline: TaskPipeline) -> None:
    global _pipeline, _jobs
    _pipeline = pipeline
    _jobs = None


def get_enrichment_jobs() -> EnrichmentJobs:
    global _jobs
    if _jobs is None:
        _jobs = EnrichmentJobs(get_task_pipeline())
    return _jobs
