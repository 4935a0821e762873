"""Tests for the taxonomy retrieval backends."""

import json

import httpx
import pytest

from elicit.services.retrieval import LocalTaxonomyIndex, TaxonomyRetrievalService

from tests.conftest import SAMPLE_OCCUPATIONS, SAMPLE_TASKS


def test_local_search_ranks_by_overlap(taxonomy):
    hits = taxonomy.search_tasks("review code from developers", top_k=5)
    assert hits[0].id == "t-4"
    assert hits[0].text == "Review code written by other developers"
    assert hits[0].fields["task_type"] == "Core"
    assert all(0 < h.score <= 1 for h in hits)
    assert [h.score for h in hits] == sorted((h.score for h in hits), reverse=True)


def test_local_search_filter(taxonomy):
    hits = taxonomy.search_tasks("write code", filter={"occupation_code": {"$eq": "19-3094.00"}})
    assert [h.id for h in hits] == ["t-2"]


def test_local_search_by_occupation_pads_with_remaining_tasks(taxonomy):
    hits = taxonomy.search_by_occupation("Policy Analyst", "19-3094.00", top_k=5)
    assert [h.id for h in hits] == ["t-2", "t-1", "t-3"]
    assert hits[1].score == 0.0


def test_local_occupation_search(taxonomy):
    [hit] = taxonomy.search_occupations("Policy Analyst")
    assert hit.fields["code"] == "19-3094.00"
    assert hit.score > 0.3
    assert taxonomy.search_occupations("Pastry Chef") == []


def test_empty_local_index():
    index = LocalTaxonomyIndex()
    assert not index.is_available()
    assert index.search_tasks("anything") == []
    assert index.search_occupations("anything") == []


def test_local_index_from_json(tmp_path):
    path = tmp_path / "taxonomy.json"
    path.write_text(json.dumps({"tasks": SAMPLE_TASKS, "occupations": SAMPLE_OCCUPATIONS}))

    index = LocalTaxonomyIndex.from_json(path)

    assert index.is_available()
    assert index.search_tasks("test software")[0].id == "t-5"
    assert not LocalTaxonomyIndex.from_json(tmp_path / "missing.json").is_available()


def _hosted(handler):
    return TaxonomyRetrievalService(
        api_key="test-key",
        task_index_host="https://tasks.test/",
        jobs_index_host="https://jobs.test",
        namespace="tasks",
        client=httpx.Client(transport=httpx.MockTransport(handler)),
    )


def test_hosted_search_request_and_hits():
    requests = []

    def handler(request):
        requests.append(request)
        return httpx.Response(200, json={"result": {"hits": [
            {"_id": "t-4", "_score": 0.82, "fields": {"text": "Review code written by other developers",
                                                       "occupation_code": "15-1252.00"}},
        ]}})

    hits = _hosted(handler).search_by_occupation("review pull requests", "15-1252.00", top_k=3)

    assert hits[0].id == "t-4"
    assert hits[0].score == pytest.approx(0.82)
    request = requests[0]
    assert str(request.url) == "https://tasks.test/records/namespaces/tasks/search"
    assert request.headers["Api-Key"] == "test-key"
    body = json.loads(request.content)
    assert body["query"] == {
        "inputs": {"text": "review pull requests"},
        "top_k": 3,
        "filter": {"occupation_code": {"$eq": "15-1252.00"}},
    }
    assert "text" in body["fields"]


def test_hosted_occupation_search_uses_jobs_index():
    urls = []

    def handler(request):
        urls.append(str(request.url))
        return httpx.Response(200, json={"result": {"hits": [
            {"_id": "occ-1", "_score": 0.7, "fields": {"code": "19-3094.00", "title": "Policy Analysts"}},
        ]}})

    [hit] = _hosted(handler).search_occupations("policy analyst")

    assert urls == ["https://jobs.test/records/namespaces/tasks/search"]
    assert hit.fields["title"] == "Policy Analysts"


def test_hosted_errors_return_no_hits():
    def handler(request):
        return httpx.Response(500, text="boom")

    assert _hosted(handler).search_tasks("anything") == []


def test_hosted_unconfigured():
    service = TaxonomyRetrievalService(api_key="", task_index_host="", jobs_index_host="")
    assert not service.is_available()
    assert service.search_tasks("anything") == []
