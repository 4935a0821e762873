"""Shared helpers: logging and text heuristics."""
from elicit.utils.logger import get_logger

__all__ = ["get_logger"]
