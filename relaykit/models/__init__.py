from relaykit.models.chat import (
    AddMessageResult,
    AgentState,
    Chat,
    ChatData,
    ChatMessage,
    ChatSummary,
    CleanupResult,
    ListChatOptions,
    new_message_id,
)
from relaykit.models.types import (
    ChatStatus,
    CompactBaseModel,
    ParticipationState,
    StatusFilter,
    utc_now,
)

__all__ = [
    "AddMessageResult",
    "AgentState",
    "Chat",
    "ChatData",
    "ChatMessage",
    "ChatStatus",
    "ChatSummary",
    "CleanupResult",
    "CompactBaseModel",
    "ListChatOptions",
    "ParticipationState",
    "StatusFilter",
    "new_message_id",
    "utc_now",
]
