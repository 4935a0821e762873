"""
Taxonomy retrieval: semantic search over occupational task statements.

Two backends share one interface:

- TaxonomyRetrievalService: hosted vector index with integrated embeddings,
  queried over its REST record-search endpoint with httpx.
- LocalTaxonomyIndex: an in-process index over a JSON file, scored with
  bag-of-words cosine similarity (numpy). Used offline and in tests.

Both fail soft: any error is logged and an empty result is returned.
"""
import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional

import httpx
import numpy as np

from elicit.core.config import get_config, DEFAULT_CONFIG_PATH
from elicit.utils.logger import get_logger
from elicit.utils.text import extract_keywords

logger = get_logger("services.retrieval")

TASK_FIELDS = ["text", "occupation_code", "occupation_title", "task_type"]
OCCUPATION_FIELDS = ["code", "title", "description"]
API_VERSION = "2025-04"


@dataclass
class TaxonomyHit:
    """One ranked search result."""
    id: str
    score: float
    fields: Dict[str, Any] = field(default_factory=dict)

    @property
    def text(self) -> str:
        return self.fields.get("text", "")


def _hits_from_response(data: Dict[str, Any]) -> List[TaxonomyHit]:
    hits = (data.get("result") or {}).get("hits") or []
    return [
        TaxonomyHit(id=str(h.get("_id", "")), score=float(h.get("_score", 0.0)), fields=h.get("fields") or {})
        for h in hits
    ]


class TaxonomyRetrievalService:
    """Client for the hosted task and occupation indexes."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        task_index_host: Optional[str] = None,
        jobs_index_host: Optional[str] = None,
        namespace: Optional[str] = None,
        client: Optional[httpx.Client] = None,
    ):
        self.api_key = api_key or os.environ.get("PINECONE_API_KEY", "")
        self.task_index_host = (task_index_host or os.environ.get("PINECONE_INDEX_HOST", "")).rstrip("/")
        self.jobs_index_host = (jobs_index_host or os.environ.get("PINECONE_JOBS_INDEX_HOST", "")).rstrip("/")
        self.namespace = namespace or os.environ.get("PINECONE_NAMESPACE", "__default__")

        if not self.is_available():
            logger.warning("PINECONE_API_KEY or PINECONE_INDEX_HOST not set in environment.")

        self.headers = {
            "Api-Key": self.api_key,
            "Content-Type": "application/json",
            "X-Pinecone-API-Version": API_VERSION,
        }
        self.client = client or httpx.Client(headers=self.headers, timeout=30.0)

    def is_available(self) -> bool:
        return bool(self.api_key and self.task_index_host)

    def _search(
        self,
        host: str,
        query: str,
        top_k: int,
        fields: List[str],
        filter: Optional[Dict[str, Any]] = None,
    ) -> List[TaxonomyHit]:
        if not (self.api_key and host):
            return []

        query_obj: Dict[str, Any] = {"inputs": {"text": query}, "top_k": top_k}
        if filter:
            query_obj["filter"] = filter
        body = {"query": query_obj, "fields": fields}

        try:
            response = self.client.post(
                f"{host}/records/namespaces/{self.namespace}/search",
                json=body,
                headers=self.headers,
            )
            response.raise_for_status()
            return _hits_from_response(response.json())
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Taxonomy search failed on {host}: {e}")
            return []

    def search_tasks(self, query: str, top_k: int = 5, filter: Optional[Dict[str, Any]] = None) -> List[TaxonomyHit]:
        """Search reference task statements."""
        return self._search(self.task_index_host, query, top_k, TASK_FIELDS, filter)

    def search_by_occupation(self, query: str, occupation_code: str, top_k: int = 5) -> List[TaxonomyHit]:
        """Search tasks belonging to one occupation."""
        return self.search_tasks(query, top_k, {"occupation_code": {"$eq": occupation_code}})

    def search_occupations(self, job_title: str, top_k: int = 1) -> List[TaxonomyHit]:
        """Match a free-text job title against the occupation index."""
        hits = self._search(self.jobs_index_host, job_title, top_k, OCCUPATION_FIELDS)
        if hits:
            logger.info(f"Occupation match for '{job_title}': {hits[0].fields.get('title')} (score: {hits[0].score:.2f})")
        return hits


class LocalTaxonomyIndex:
    """
    In-process stand-in for the hosted indexes.

    Records are scored by cosine similarity between keyword count vectors,
    so scores fall in [0, 1] like the hosted service.
    """

    def __init__(self, tasks: Optional[List[Dict[str, Any]]] = None, occupations: Optional[List[Dict[str, Any]]] = None):
        self.tasks = tasks or []
        self.occupations = occupations or []
        self._task_matrix, self._task_vocab = self._build(self.tasks, "text")
        self._occupation_matrix, self._occupation_vocab = self._build(self.occupations, "title", "description")

    @classmethod
    def from_json(cls, path: Path) -> "LocalTaxonomyIndex":
        try:
            with open(path, "r") as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Could not load local taxonomy index {path}: {e}")
            return cls()
        logger.info(f"Loaded local taxonomy index: {len(data.get('tasks', []))} tasks, "
                    f"{len(data.get('occupations', []))} occupations")
        return cls(tasks=data.get("tasks", []), occupations=data.get("occupations", []))

    def is_available(self) -> bool:
        return bool(self.tasks)

    @staticmethod
    def _build(records: List[Dict[str, Any]], *text_fields: str):
        docs = [extract_keywords(" ".join(str(r.get(f, "")) for f in text_fields)) for r in records]
        vocab = {w: i for i, w in enumerate(sorted({w for d in docs for w in d}))}
        matrix = np.zeros((len(records), len(vocab)))
        for row, words in enumerate(docs):
            for w in words:
                matrix[row, vocab[w]] += 1.0
        return matrix, vocab

    @staticmethod
    def _score(matrix: np.ndarray, vocab: Dict[str, int], query: str) -> np.ndarray:
        vector = np.zeros(len(vocab))
        for w in extract_keywords(query):
            if w in vocab:
                vector[vocab[w]] += 1.0
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(vector)
        with np.errstate(divide="ignore", invalid="ignore"):
            scores = np.where(norms > 0, matrix @ vector / norms, 0.0)
        return scores

    @staticmethod
    def _matches_filter(record: Dict[str, Any], filter: Optional[Dict[str, Any]]) -> bool:
        if not filter:
            return True
        for key, condition in filter.items():
            expected = condition.get("$eq") if isinstance(condition, dict) else condition
            if record.get(key) != expected:
                return False
        return True

    def _rank(self, records, matrix, vocab, query, top_k, fields, filter=None) -> List[TaxonomyHit]:
        if not records or matrix.shape[1] == 0:
            return []
        scores = self._score(matrix, vocab, query)
        order = np.argsort(-scores, kind="stable")
        hits = []
        for idx in order:
            record = records[idx]
            if scores[idx] <= 0 or not self._matches_filter(record, filter):
                continue
            hits.append(TaxonomyHit(
                id=str(record.get("id", idx)),
                score=float(scores[idx]),
                fields={f: record.get(f) for f in fields if f in record},
            ))
            if len(hits) >= top_k:
                break
        return hits

    def search_tasks(self, query: str, top_k: int = 5, filter: Optional[Dict[str, Any]] = None) -> List[TaxonomyHit]:
        return self._rank(self.tasks, self._task_matrix, self._task_vocab, query, top_k, TASK_FIELDS, filter)

    def search_by_occupation(self, query: str, occupation_code: str, top_k: int = 5) -> List[TaxonomyHit]:
        hits = self.search_tasks(query, top_k, {"occupation_code": {"$eq": occupation_code}})
        seen = {h.id for h in hits}
        # a job title often shares no words with its task statements
        rest = [
            TaxonomyHit(id=str(r.get("id", i)), score=0.0, fields={f: r.get(f) for f in TASK_FIELDS if f in r})
            for i, r in enumerate(self.tasks)
            if r.get("occupation_code") == occupation_code and str(r.get("id", i)) not in seen
        ]
        return (hits + rest)[:top_k]

    def search_occupations(self, job_title: str, top_k: int = 1) -> List[TaxonomyHit]:
        return self._rank(self.occupations, self._occupation_matrix, self._occupation_vocab,
                          job_title, top_k, OCCUPATION_FIELDS)


# Global instance
_retrieval_service = None


def get_retrieval_service():
    """Hosted index when configured, otherwise the bundled local index."""
    global _retrieval_service
    if _retrieval_service is None:
        hosted = TaxonomyRetrievalService()
        if hosted.is_available():
            _retrieval_service = hosted
        else:
            path = Path(get_config().local_taxonomy_path)
            if not path.is_absolute():
                path = DEFAULT_CONFIG_PATH.parent.parent / path
            _retrieval_service = LocalTaxonomyIndex.from_json(path)
    return _retrieval_service


def set_retrieval_service(service) -> None:
    global _retrieval_service
    _retrieval_service = service
