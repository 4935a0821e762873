"""
External collaborators: the completion service and taxonomy retrieval.
"""
from elicit.services.completion import (
    CompletionService,
    get_completion_service,
    set_completion_service,
)
from elicit.services.retrieval import (
    LocalTaxonomyIndex,
    TaxonomyHit,
    TaxonomyRetrievalService,
    get_retrieval_service,
    set_retrieval_service,
)

__all__ = [
    "CompletionService",
    "get_completion_service",
    "set_completion_service",
    "LocalTaxonomyIndex",
    "TaxonomyHit",
    "TaxonomyRetrievalService",
    "get_retrieval_service",
    "set_retrieval_service",
]
