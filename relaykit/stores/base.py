from abc import ABC, abstractmethod
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, ClassVar

from relaykit.config import CHAT_TTL_HOURS
from relaykit.models.chat import AgentState, Chat, ChatData, ChatSummary, CleanupResult, ListChatOptions
from relaykit.models.types import utc_now

if TYPE_CHECKING:
    from relaykit.config import RelaySettings


class ChatPersistence(ABC):
    """Abstract backing store for chats and their per-agent state.

    Implementations persist whole records: a save replaces everything stored
    for that chat id. Errors are raised as
    :class:`relaykit.errors.PersistenceError` and are never swallowed, except
    inside :meth:`cleanup_expired_files`, which reports them in its result.
    """

    kind: ClassVar[str]  # registry discriminator

    def __init__(
        self,
        ttl_hours: float = CHAT_TTL_HOURS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.ttl = timedelta(hours=ttl_hours)
        self._clock = clock or utc_now

    @classmethod
    @abstractmethod
    def from_settings(cls, settings: "RelaySettings") -> "ChatPersistence": ...

    async def init(self) -> None:
        """Prepare the store. Safe to call more than once."""

    @abstractmethod
    async def save_chat(self, chat: Chat, agent_states: dict[str, AgentState] | None = None) -> None:
        """Persist a chat and its agent states.

        Args:
            chat: The chat to store. The store keeps its own copy.
            agent_states: Per-agent state keyed by agent name.
        """
        ...

    @abstractmethod
    async def load_chat(self, chat_id: str) -> ChatData | None:
        """Load a chat and refresh its last-access time.

        Returns:
            The stored chat and agent states, or None if the id is unknown.
        """
        ...

    @abstractmethod
    async def list_chats(self, options: ListChatOptions | None = None) -> list[ChatSummary]:
        """Summaries filtered and paginated by ``options``, most recently active first."""
        ...

    @abstractmethod
    async def delete_chat(self, chat_id: str) -> bool:
        """Remove every stored artifact of a chat.

        Returns:
            False if nothing was stored under ``chat_id``.
        """
        ...

    @abstractmethod
    async def cleanup_expired_files(self) -> CleanupResult:
        """Remove chats not accessed within the TTL. Per-record failures are counted, not raised."""
        ...

    def storage_paths(self) -> dict[str, str]:
        return {}

    def now(self) -> datetime:
        return self._clock()

    def is_expired(self, last_access_time: datetime, now: datetime | None = None) -> bool:
        return last_access_time < (now or self.now()) - self.ttl


def apply_list_options(
    summaries: Iterable[ChatSummary],
    options: ListChatOptions | None,
    participants: dict[str, list[str]] | None = None,
) -> list[ChatSummary]:
    """Filter, order and paginate chat summaries.

    Args:
        summaries: Unordered summaries.
        options: Filters and pagination. Defaults to active chats, no limit.
        participants: Participant lists keyed by chat id, needed for ``agent_filter``.
    """
    options = options or ListChatOptions()
    participants = participants or {}

    selected = []
    for summary in summaries:
        if options.status != "all" and summary.status != options.status:
            continue
        if options.agent_filter is not None and options.agent_filter not in participants.get(
            summary.chat_id, []
        ):
            continue
        selected.append(summary)

    selected.sort(key=lambda s: s.last_activity, reverse=True)

    end = None if options.limit is None else options.offset + options.limit
    return selected[options.offset : end]
