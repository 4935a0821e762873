"""
Task Elicitation

Guided conversation that draws out the tasks a worker does, with:
- Rule and LLM driven choice of the next question
- Hard cutoffs so sessions always end
- A pipeline that turns the transcript into canonical, taxonomy-linked tasks
"""

__version__ = '1.0.0'

from elicit.conversation.chat_service import ChatService, get_chat_service
from elicit.canonicalization.pipeline import TaskPipeline, get_task_pipeline
from elicit.core.config import ElicitConfig, get_config, set_config

__all__ = [
    'ChatService',
    'get_chat_service',
    'TaskPipeline',
    'get_task_pipeline',
    'ElicitConfig',
    'get_config',
    'set_config',
]
