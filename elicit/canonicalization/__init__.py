"""
Canonicalization pipeline: transcript -> extracted -> normalized ->
deduplicated -> taxonomy-matched task records.
"""
from elicit.canonicalization.deduplication import TaskDeduplicator, fallback_deduplicate
from elicit.canonicalization.extraction import TaskExtractor, fallback_extract
from elicit.canonicalization.matching import TaxonomyMatcher
from elicit.canonicalization.models import MatchConfidence, ProcessedTask, TaskSource, infer_category
from elicit.canonicalization.normalization import TaskNormalizer, fallback_normalize
from elicit.canonicalization.pipeline import (
    EnrichmentJobs,
    ProcessingResult,
    TaskPipeline,
    get_enrichment_jobs,
    get_task_pipeline,
    merge_enrichment,
    set_task_pipeline,
)

__all__ = [
    "TaskDeduplicator",
    "fallback_deduplicate",
    "TaskExtractor",
    "fallback_extract",
    "TaxonomyMatcher",
    "MatchConfidence",
    "ProcessedTask",
    "TaskSource",
    "infer_category",
    "TaskNormalizer",
    "fallback_normalize",
    "EnrichmentJobs",
    "ProcessingResult",
    "TaskPipeline",
    "get_enrichment_jobs",
    "get_task_pipeline",
    "merge_enrichment",
    "set_task_pipeline",
]
