"""
Error taxonomy.

ServiceUnavailable and InvalidOutput never reach the end user: every caller
catches them and takes its deterministic fallback. SessionNotFound and
ValidationError are surfaced by the HTTP layer.
"""


class ElicitError(Exception):
    """Base class for all service errors."""


class ServiceUnavailable(ElicitError):
    """Completion or retrieval service unreachable, unconfigured, or timed out."""


class InvalidOutput(ElicitError):
    """A structured response failed to parse or validate."""


class SessionNotFound(ElicitError):
    """Unknown or expired session id."""

    def __init__(self, session_id: str):
        super().__init__(f"Session not found or expired: {session_id}")
        self.session_id = session_id


class ValidationError(ElicitError):
    """A required request field is missing or malformed."""


class SessionBusy(ElicitError):
    """Another request still holds the session after the lock timeout."""

    def __init__(self, session_id: str):
        super().__init__(f"Session is busy: {session_id}")
        self.session_id = session_id
