"""
Pydantic models for the elicitation API requests and responses.
"""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List


class ChatRequest(BaseModel):
    """Request model for chat endpoint."""
    session_id: Optional[str] = Field(default=None, description="Session ID (omit to start a new session)")
    message: Optional[str] = Field(default=None, description="User's message (omit to get the opening turn)")
    job_title: Optional[str] = Field(default=None, description="Job title, required when starting a session")
    occupation_code: Optional[str] = Field(default=None, description="Known occupation code, if any")
    initial_tasks: Optional[str] = Field(default=None, description="Free-text task dump sent with the first request")


class ChatResponse(BaseModel):
    """Response model for chat endpoint."""
    session_id: str = Field(description="Session ID")
    message: Dict[str, Any] = Field(description="Assistant message: id, role, content, timestamp")
    suggestions: List[Dict[str, Any]] = Field(default_factory=list, description="Selectable task suggestions")
    should_show_suggestions: bool = Field(default=False)
    is_complete: bool = Field(default=False, description="True once the conversation has finished")
    extracted_tasks: List[Dict[str, Any]] = Field(default_factory=list, description="Provisional tasks seen so far")
    tool_used: Optional[str] = Field(default=None, description="Action chosen by the policy")
    updated_state: Dict[str, Any] = Field(default_factory=dict, description="Turn, task estimate, engagement, coverage")


class SessionResponse(BaseModel):
    """Response model for session state endpoint."""
    session_id: str
    job_title: str
    occupation_code: Optional[str] = None
    messages: List[Dict[str, Any]]
    extracted_tasks: List[Dict[str, Any]]
    selected_suggestion_ids: List[str]
    turn_count: int
    created_at: str
    updated_at: str


class SelectionsRequest(BaseModel):
    """Request model for updating selected suggestions."""
    suggestion_ids: List[str] = Field(default_factory=list)


class TranscriptMessage(BaseModel):
    id: Optional[str] = None
    role: str = Field(description="'user' or 'assistant'")
    content: str


class ProcessTasksRequest(BaseModel):
    """Request model for turning a finished transcript into task records."""
    transcript: List[TranscriptMessage] = Field(default_factory=list)
    job_title: str = Field(description="Job title the transcript is about")
    selected_suggestions: List[Dict[str, Any]] = Field(
        default_factory=list, description="Suggestions the user selected: statement and category"
    )
    match_in_background: bool = Field(default=False, description="Start taxonomy matching as a background job")


class ProcessTasksResponse(BaseModel):
    tasks: List[Dict[str, Any]] = Field(description="Canonical task records, not yet matched")
    extracted_count: int
    normalized_count: int
    deduplicated_count: int
    job_id: Optional[str] = Field(default=None, description="Background matching job, when requested")


class MatchTasksRequest(BaseModel):
    tasks: List[Dict[str, Any]] = Field(description="Task records returned by /tasks/process")


class MatchTasksResponse(BaseModel):
    tasks: List[Dict[str, Any]]


class MatchJobResponse(BaseModel):
    job_id: str
    status: str
    tasks: List[Dict[str, Any]]
    error: Optional[str] = None
    created_at: str


class OccupationResult(BaseModel):
    code: str
    title: str
    description: Optional[str] = None
    score: float


class OccupationSearchResponse(BaseModel):
    query: str
    occupations: List[OccupationResult]


class SuggestedTask(BaseModel):
    id: str
    statement: str
    category: str
    occupation_code: str
    occupation_title: str
    importance: float


class OccupationSuggestionsResponse(BaseModel):
    """Tasks of the occupation matched to a job title, as selectable suggestions."""
    job_title: str
    matched: bool
    occupation: Optional[OccupationResult] = Field(default=None, description="Matched occupation, if any")
    suggestions: List[SuggestedTask] = Field(default_factory=list)
    count: int = 0


class ExampleTasksRequest(BaseModel):
    job_title: str = Field(description="Job title to write example tasks for")


class ExampleTasksResponse(BaseModel):
    tasks: List[str]


class HealthResponse(BaseModel):
    """Response model for health check."""
    status: str
    service: str
    version: str
    config: Dict[str, Any]
