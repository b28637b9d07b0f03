from datetime import datetime

import uuid_utils
from pydantic import Field

from relaykit.models.types import (
    ChatStatus,
    CompactBaseModel,
    ParticipationState,
    StatusFilter,
    utc_now,
)


def new_message_id() -> str:
    # uuid7 is time-ordered with a random tail
    return f"msg-{uuid_utils.uuid7()}"


class ChatMessage(CompactBaseModel):
    id: str = Field(default_factory=new_message_id)
    chat_id: str
    agent: str
    message: str
    timestamp: datetime = Field(default_factory=utc_now)

    sanitized: bool = False
    """Whether injection-pattern stripping ran on ``message`` before it was stored."""


class Chat(CompactBaseModel):
    """A multi-agent conversation.

    ``messages`` is append-only except for oldest-first eviction done by the
    truncation policy. ``participants`` keeps first-appearance order.
    """

    id: str
    title: str
    created_by: str | None = None
    participants: list[str] = Field(default_factory=list)
    messages: list[ChatMessage] = Field(default_factory=list)
    created: datetime = Field(default_factory=utc_now)
    last_activity: datetime = Field(default_factory=utc_now)
    status: ChatStatus = "active"

    agents_with_history: set[str] = Field(default_factory=set)
    """Agents that have already been replayed this chat's history."""

    def add_participant(self, agent: str) -> bool:
        """Append ``agent`` to participants. Returns False if already present."""
        if agent in self.participants:
            return False
        self.participants.append(agent)
        return True

    @property
    def latest_message(self) -> ChatMessage | None:
        return self.messages[-1] if self.messages else None


class AgentState(CompactBaseModel):
    last_seen_message_id: str | None = None
    participation_state: ParticipationState = "new"
    last_active_at: datetime = Field(default_factory=utc_now)


class ChatData(CompactBaseModel):
    """A chat together with the per-agent state stored alongside it."""

    chat: Chat
    agent_states: dict[str, AgentState] = Field(default_factory=dict)


class ChatSummary(CompactBaseModel):
    chat_id: str
    title: str
    participant_count: int
    message_count: int
    last_activity: datetime
    status: ChatStatus
    created_by: str | None = None
    created_at: datetime | None = None
    last_access_time: datetime | None = None

    @classmethod
    def from_chat(cls, chat: Chat, last_access_time: datetime | None = None) -> "ChatSummary":
        return cls(
            chat_id=chat.id,
            title=chat.title,
            participant_count=len(chat.participants),
            message_count=len(chat.messages),
            last_activity=chat.last_activity,
            status=chat.status,
            created_by=chat.created_by,
            created_at=chat.created,
            last_access_time=last_access_time,
        )


class ListChatOptions(CompactBaseModel):
    status: StatusFilter = "active"
    limit: int | None = Field(default=None, ge=0)
    offset: int = Field(default=0, ge=0)

    agent_filter: str | None = None
    """Only chats this agent participates in."""


class CleanupResult(CompactBaseModel):
    deleted_count: int = 0
    errors: int = 0
    details: list[str] = Field(default_factory=list)


class AddMessageResult(CompactBaseModel):
    success: bool
    message: str
    chat_id: str
    message_id: str
    evicted: int = 0
    """How many of the oldest messages were dropped to stay within the history budget."""
