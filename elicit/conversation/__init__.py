"""
Conversational task elicitation: state, analysis, policy, execution and
response composition, tied together by the chat service.
"""
from elicit.conversation.analyzer import MessageAnalyzer, extract_task_mentions
from elicit.conversation.chat_service import ChatService, ChatTurnResult, get_chat_service, set_chat_service
from elicit.conversation.composer import ResponseComposer
from elicit.conversation.executor import (
    ActionExecutor,
    ExampleTaskGenerator,
    SuggestionGenerator,
    TaskSuggestion,
    reference_suggestions,
)
from elicit.conversation.policy import Action, ElicitationPolicy, PolicyDecision, ReferenceTaskProvider
from elicit.conversation.state import (
    Category,
    ConversationState,
    CoverageLevel,
    Engagement,
    TaxonomyCoverage,
    check_exit_conditions,
    create_initial_state,
    merge_coverage,
)

__all__ = [
    "MessageAnalyzer",
    "extract_task_mentions",
    "ChatService",
    "ChatTurnResult",
    "get_chat_service",
    "set_chat_service",
    "ResponseComposer",
    "ActionExecutor",
    "ExampleTaskGenerator",
    "SuggestionGenerator",
    "TaskSuggestion",
    "reference_suggestions",
    "Action",
    "ElicitationPolicy",
    "PolicyDecision",
    "ReferenceTaskProvider",
    "Category",
    "ConversationState",
    "CoverageLevel",
    "Engagement",
    "TaxonomyCoverage",
    "check_exit_conditions",
    "create_initial_state",
    "merge_coverage",
]
