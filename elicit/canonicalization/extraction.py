"""
Extraction: turn a chat transcript into a flat list of task phrases.
"""
from typing import Any, Dict, List, Optional

from elicit.canonicalization.models import ExtractedTask, ExtractionOutput
from elicit.canonicalization.prompts import build_extraction_prompt
from elicit.core.config import ElicitConfig, get_config
from elicit.core.errors import InvalidOutput, ServiceUnavailable
from elicit.services.completion import CompletionService, get_completion_service
from elicit.utils.logger import get_logger
from elicit.utils.text import EXTENDED_VERB_PATTERN, split_segments

logger = get_logger("canonicalization.extraction")

MIN_SEGMENT_LENGTH = 15
MIN_UTTERANCE_LENGTH = 20
MAX_UTTERANCE_LENGTH = 200


def _user_messages(transcript: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    return [m for m in transcript if m.get("role") == "user" and (m.get("content") or "").strip()]


def fallback_extract(transcript: List[Dict[str, Any]], limit: int = 20) -> List[ExtractedTask]:
    """
    Lexical extraction used when the completion service is unavailable.

    Segments of user messages longer than 15 characters that contain an
    action verb are kept, deduplicated case-insensitively. If none qualify,
    whole user messages over 20 characters are used instead.
    """
    user_messages = _user_messages(transcript)
    tasks: List[ExtractedTask] = []
    seen = set()

    for message in user_messages:
        for segment in split_segments(message["content"]):
            if len(segment) <= MIN_SEGMENT_LENGTH or not EXTENDED_VERB_PATTERN.search(segment):
                continue
            key = segment.lower()
            if key in seen:
                continue
            seen.add(key)
            tasks.append(ExtractedTask(raw=segment, source_message_id=message.get("id")))

    if not tasks:
        for message in user_messages:
            content = message["content"].strip()
            if len(content) > MIN_UTTERANCE_LENGTH:
                tasks.append(ExtractedTask(raw=content[:MAX_UTTERANCE_LENGTH], source_message_id=message.get("id")))

    return tasks[:limit]


class TaskExtractor:
    """Extracts discrete task phrases from a whole-session transcript."""

    def __init__(self, completion: Optional[CompletionService] = None, config: Optional[ElicitConfig] = None):
        self.completion = completion if completion is not None else get_completion_service()
        self.config = config if config is not None else get_config()

    def extract(self, transcript: List[Dict[str, Any]]) -> List[ExtractedTask]:
        if not _user_messages(transcript):
            return []

        if not self.completion.is_available():
            return fallback_extract(transcript, self.config.extraction_limit)

        try:
            output = self.completion.complete_structured(build_extraction_prompt(transcript), ExtractionOutput)
        except (ServiceUnavailable, InvalidOutput) as e:
            logger.error(f"Task extraction failed, using lexical fallback: {e}")
            return fallback_extract(transcript, self.config.extraction_limit)

        tasks = [ExtractedTask(raw=t.strip()) for t in output.extracted_tasks if t and t.strip()]
        logger.info(f"Extracted {len(tasks)} tasks from {len(transcript)} messages")
        return tasks
