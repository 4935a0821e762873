"""
FastAPI server for the task elicitation service.

Provides REST endpoints for the chat UI and for task canonicalization.

Endpoints that take a session lock or call out to the completion and
retrieval services are plain `def`, so they run in the threadpool and never
block the event loop that drives open streams.

Usage:
    python -m elicit.api.server
    # or
    uvicorn elicit.api.server:app --reload --port 8000
"""
import json
import traceback
from typing import Any, Dict, Iterator, Tuple

from fastapi import BackgroundTasks, FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from elicit import __version__
from elicit.api.models import (
    ChatRequest,
    ChatResponse,
    ExampleTasksRequest,
    ExampleTasksResponse,
    HealthResponse,
    MatchJobResponse,
    MatchTasksRequest,
    MatchTasksResponse,
    OccupationResult,
    OccupationSearchResponse,
    OccupationSuggestionsResponse,
    ProcessTasksRequest,
    ProcessTasksResponse,
    SelectionsRequest,
    SessionResponse,
    SuggestedTask,
)
from elicit.canonicalization.models import ProcessedTask
from elicit.canonicalization.pipeline import get_enrichment_jobs, get_task_pipeline
from elicit.conversation.chat_service import ChatTurnResult, get_chat_service
from elicit.conversation.executor import ExampleTaskGenerator, reference_suggestions
from elicit.conversation.policy import ReferenceTaskProvider
from elicit.core.config import get_config
from elicit.core.errors import SessionBusy, SessionNotFound, ValidationError
from elicit.core.session_store import SessionRecord
from elicit.services.completion import get_completion_service
from elicit.services.retrieval import TaxonomyHit, get_retrieval_service
from elicit.utils.logger import get_logger

logger = get_logger("api.server")

SESSION_EXPIRED = "Session not found or expired"
SESSION_BUSY = "Session is busy with another request"
MIN_OCCUPATION_QUERY = 2

# Initialize FastAPI app
app = FastAPI(
    title="Task Elicitation API",
    description="Conversational job task elicitation and task canonicalization",
    version=__version__,
)

# Enable CORS for frontend
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _raise_http(e: Exception, endpoint: str):
    """Translate a service error into the matching HTTP error."""
    if isinstance(e, HTTPException):
        raise e
    if isinstance(e, SessionNotFound):
        raise HTTPException(status_code=404, detail=SESSION_EXPIRED)
    if isinstance(e, SessionBusy):
        raise HTTPException(status_code=409, detail=SESSION_BUSY)
    if isinstance(e, ValidationError):
        raise HTTPException(status_code=400, detail=str(e))
    logger.error(f"Error in {endpoint}: {e}\n{traceback.format_exc()}")
    raise HTTPException(status_code=500, detail=str(e))


def _chat_response(result: ChatTurnResult) -> ChatResponse:
    return ChatResponse(**result.to_dict())


def _session_response(record: SessionRecord) -> SessionResponse:
    return SessionResponse(
        session_id=record.session_id,
        job_title=record.job_title,
        occupation_code=record.occupation_code,
        messages=record.messages,
        extracted_tasks=record.extracted_tasks,
        selected_suggestion_ids=record.selected_suggestion_ids,
        turn_count=record.turn_count,
        created_at=record.created_at.isoformat(),
        updated_at=record.updated_at.isoformat(),
    )


def _occupation_result(hit: TaxonomyHit) -> OccupationResult:
    return OccupationResult(
        code=str(hit.fields.get("code") or hit.id),
        title=str(hit.fields.get("title", "")),
        description=hit.fields.get("description"),
        score=hit.score,
    )


def _sse(payload: Dict[str, Any]) -> str:
    return f"data: {json.dumps(payload)}\n\n"


def _sse_events(events: Iterator[Tuple[str, Any]]) -> Iterator[str]:
    """Render chat service events as Server-Sent Events."""
    try:
        for kind, payload in events:
            if kind == "chunk":
                yield _sse({"type": "chunk", "content": payload})
            else:
                yield _sse({"type": "done", **payload.to_dict()})
    except SessionNotFound:
        yield _sse({"type": "error", "error": SESSION_EXPIRED})
    except SessionBusy:
        yield _sse({"type": "error", "error": SESSION_BUSY})
    except ValidationError as e:
        yield _sse({"type": "error", "error": str(e)})
    except Exception as e:
        # headers are already sent, so the error travels as an event
        logger.error(f"Error in /chat/stream: {e}\n{traceback.format_exc()}")
        yield _sse({"type": "error", "error": str(e)})


# API Endpoints

@app.get("/", response_model=HealthResponse)
async def root():
    """Health check endpoint."""
    config = get_config()
    return HealthResponse(
        status="online",
        service="Task Elicitation API",
        version=__version__,
        config={
            "chat_model": config.chat_model,
            "session_backend": config.session_backend,
        },
    )


@app.get("/status")
async def get_status():
    """Get server status, thresholds and active session count."""
    config = get_config()
    store = get_chat_service().store
    return {
        "status": "online",
        "config": {
            "chat_model": config.chat_model,
            "structured_model": config.structured_model,
            "matching_model": config.matching_model,
            "hard_cutoff_tasks": config.hard_cutoff_tasks,
            "max_suggestion_rounds": config.max_suggestion_rounds,
            "session_backend": config.session_backend,
            "session_ttl_seconds": config.session_ttl_seconds,
        },
        "completion_available": get_chat_service().composer.completion.is_available(),
        "retrieval_available": get_retrieval_service().is_available(),
        "active_sessions": len(store) if hasattr(store, "__len__") else None,
        "matching_jobs": len(get_enrichment_jobs()),
    }


@app.post("/chat", response_model=ChatResponse)
def chat(request: ChatRequest):
    """
    Main conversation endpoint.

    - no session_id, no message: start a session and return the opening turn
    - session_id and message: run one turn
    - message without session_id: start a session for job_title, then run the turn
    """
    try:
        service = get_chat_service()
        if request.session_id:
            result = service.process_message(request.session_id, request.message or "")
        elif not request.message:
            result = service.start_session(request.job_title or "", request.occupation_code, request.initial_tasks)
        else:
            started = service.start_session(request.job_title or "", request.occupation_code)
            result = service.process_message(started.session_id, request.message)
        return _chat_response(result)
    except Exception as e:
        _raise_http(e, "/chat")


@app.post("/chat/stream")
def chat_stream(request: ChatRequest):
    """Streaming variant of /chat: chunk events, then one done or error event."""
    try:
        service = get_chat_service()
        if request.session_id:
            service.get_session(request.session_id)
            if not (request.message or "").strip():
                raise ValidationError("message is required")
            events = service.process_message_stream(request.session_id, request.message)
        else:
            if not (request.job_title or "").strip():
                raise ValidationError("job_title is required to start a session")
            if request.message:
                started = service.start_session(request.job_title, request.occupation_code)
                events = service.process_message_stream(started.session_id, request.message)
            else:
                events = service.start_session_stream(request.job_title, request.occupation_code,
                                                      request.initial_tasks)
    except Exception as e:
        _raise_http(e, "/chat/stream")

    return StreamingResponse(
        _sse_events(events),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


@app.get("/chat/{session_id}", response_model=SessionResponse)
def get_session(session_id: str):
    """Get current session state."""
    try:
        return _session_response(get_chat_service().get_session(session_id))
    except Exception as e:
        _raise_http(e, "/chat/{session_id}")


@app.patch("/chat/{session_id}/selections", response_model=SessionResponse)
def update_selections(session_id: str, request: SelectionsRequest):
    """Replace the suggestion ids the user has selected."""
    try:
        return _session_response(get_chat_service().select_suggestions(session_id, request.suggestion_ids))
    except Exception as e:
        _raise_http(e, "/chat/{session_id}/selections")


@app.delete("/chat/{session_id}")
def delete_session(session_id: str):
    """Delete a session."""
    if get_chat_service().delete_session(session_id):
        logger.info(f"Deleted session: {session_id}")
        return {"status": "deleted", "session_id": session_id}
    raise HTTPException(status_code=404, detail=SESSION_EXPIRED)


@app.post("/tasks/process", response_model=ProcessTasksResponse)
def process_tasks(request: ProcessTasksRequest, background_tasks: BackgroundTasks):
    """
    Turn a finished transcript into canonical task records.

    Records come back without taxonomy fields. With match_in_background the
    matching runs after the response is sent; poll /tasks/match/{job_id}.
    """
    try:
        if not request.job_title.strip():
            raise ValidationError("job_title is required")
        transcript = [m.model_dump() for m in request.transcript]
        result = get_task_pipeline().process(transcript, request.job_title, request.selected_suggestions)

        job_id = None
        if request.match_in_background and result.processed_tasks:
            jobs = get_enrichment_jobs()
            job_id = jobs.submit(result.processed_tasks)
            background_tasks.add_task(jobs.run, job_id)

        return ProcessTasksResponse(
            tasks=[t.to_dict() for t in result.processed_tasks],
            extracted_count=len(result.extracted_tasks),
            normalized_count=len(result.normalized_tasks),
            deduplicated_count=len(result.deduplicated_tasks),
            job_id=job_id,
        )
    except Exception as e:
        _raise_http(e, "/tasks/process")


@app.post("/tasks/match", response_model=MatchTasksResponse)
def match_tasks(request: MatchTasksRequest):
    """Enrich task records with their best taxonomy match."""
    try:
        tasks = [ProcessedTask.from_dict(t) for t in request.tasks]
        enriched = get_task_pipeline().match(tasks)
        return MatchTasksResponse(tasks=[t.to_dict() for t in enriched])
    except Exception as e:
        _raise_http(e, "/tasks/match")


@app.get("/tasks/match/{job_id}", response_model=MatchJobResponse)
async def get_match_job(job_id: str):
    """Poll a background matching job."""
    job = get_enrichment_jobs().get(job_id)
    if job is None:
        raise HTTPException(status_code=404, detail="Matching job not found")
    return MatchJobResponse(**job.to_dict())


@app.get("/occupations/search", response_model=OccupationSearchResponse)
def search_occupations(q: str = "", limit: int = 5):
    """Look up taxonomy occupations for a free-text job title."""
    query = q.strip()
    if len(query) < MIN_OCCUPATION_QUERY:
        return OccupationSearchResponse(query=query, occupations=[])

    hits = get_retrieval_service().search_occupations(query, top_k=max(1, min(limit, 20)))
    return OccupationSearchResponse(
        query=query,
        occupations=[_occupation_result(hit) for hit in hits],
    )


@app.get("/occupations/suggestions", response_model=OccupationSuggestionsResponse)
def occupation_suggestions(job_title: str = "", limit: int = 6):
    """Tasks of the occupation closest to a job title, ready to show as selectable suggestions."""
    try:
        result = reference_suggestions(ReferenceTaskProvider(get_retrieval_service()), job_title, min(limit, 20))
    except Exception as e:
        _raise_http(e, "/occupations/suggestions")

    return OccupationSuggestionsResponse(
        job_title=result.job_title,
        matched=result.matched,
        occupation=_occupation_result(result.occupation) if result.occupation is not None else None,
        suggestions=[SuggestedTask(**s.to_dict()) for s in result.suggestions],
        count=len(result.suggestions),
    )


@app.post("/tasks/examples", response_model=ExampleTasksResponse)
def example_tasks(request: ExampleTasksRequest):
    """Three first-person example tasks for a job title, used as input placeholders."""
    try:
        return ExampleTasksResponse(tasks=ExampleTaskGenerator(get_completion_service()).generate(request.job_title))
    except Exception as e:
        _raise_http(e, "/tasks/examples")


if __name__ == "__main__":
    import uvicorn

    print("=" * 60)
    print("Task Elicitation API Server")
    print("=" * 60)
    print("API Documentation: http://localhost:8000/docs")
    print("Status endpoint:   http://localhost:8000/status")
    print("")
    print("Environment variables:")
    print("  OPENAI_API_KEY        - Completion service (fallbacks are used without it)")
    print("  PINECONE_API_KEY      - Hosted taxonomy index (local sample index otherwise)")
    print("  CONVERSATION_LOG_DIR  - Per-session JSONL logs (default logs/sessions)")
    print("=" * 60)

    uvicorn.run(app, host="0.0.0.0", port=8000)
