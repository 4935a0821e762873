"""Configuration, errors and session persistence."""
from elicit.core.config import ElicitConfig, get_config, set_config
from elicit.core.errors import (
    ElicitError,
    InvalidOutput,
    ServiceUnavailable,
    SessionBusy,
    SessionNotFound,
    ValidationError,
)

__all__ = [
    "ElicitConfig",
    "get_config",
    "set_config",
    "ElicitError",
    "InvalidOutput",
    "ServiceUnavailable",
    "SessionBusy",
    "SessionNotFound",
    "ValidationError",
]
