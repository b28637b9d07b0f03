import logging
from collections.abc import Callable
from datetime import datetime
from typing import TYPE_CHECKING, ClassVar

from relaykit.config import CHAT_TTL_HOURS
from relaykit.models.chat import AgentState, Chat, ChatData, ChatSummary, CleanupResult, ListChatOptions
from relaykit.stores.base import ChatPersistence, apply_list_options

if TYPE_CHECKING:
    from relaykit.config import RelaySettings

logger = logging.getLogger(__name__)


class InMemoryChatPersistence(ChatPersistence):
    """In-memory chat store.

    Useful for testing and development. Not suitable for production
    as data is lost when the process exits.
    """

    kind: ClassVar[str] = "memory"

    def __init__(
        self,
        ttl_hours: float = CHAT_TTL_HOURS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        """Initialize an empty in-memory store."""
        super().__init__(ttl_hours, clock)
        self._chats: dict[str, ChatData] = {}
        self._last_access: dict[str, datetime] = {}

    @classmethod
    def from_settings(cls, settings: "RelaySettings") -> "InMemoryChatPersistence":
        return cls(ttl_hours=settings.chat_ttl_hours)

    async def save_chat(self, chat: Chat, agent_states: dict[str, AgentState] | None = None) -> None:
        # Deep copies so callers never share mutable state with the store
        self._chats[chat.id] = ChatData(
            chat=chat.model_copy(deep=True),
            agent_states={name: state.model_copy() for name, state in (agent_states or {}).items()},
        )
        self._last_access[chat.id] = self.now()
        logger.debug(f"Saved chat {chat.id} to memory ({len(chat.messages)} messages)")

    async def load_chat(self, chat_id: str) -> ChatData | None:
        stored = self._chats.get(chat_id)
        if stored is None:
            return None
        self._last_access[chat_id] = self.now()
        return stored.model_copy(deep=True)

    async def list_chats(self, options: ListChatOptions | None = None) -> list[ChatSummary]:
        summaries = [
            ChatSummary.from_chat(data.chat, self._last_access.get(chat_id))
            for chat_id, data in self._chats.items()
        ]
        participants = {chat_id: data.chat.participants for chat_id, data in self._chats.items()}
        return apply_list_options(summaries, options, participants)

    async def delete_chat(self, chat_id: str) -> bool:
        self._last_access.pop(chat_id, None)
        if self._chats.pop(chat_id, None) is None:
            logger.warning(f"Chat {chat_id} not found for deletion")
            return False
        logger.info(f"Deleted chat {chat_id} from memory")
        return True

    async def cleanup_expired_files(self) -> CleanupResult:
        now = self.now()
        result = CleanupResult()
        for chat_id in list(self._chats):
            last_access = self._last_access.get(chat_id)
            if last_access is not None and self.is_expired(last_access, now):
                data = self._chats.pop(chat_id)
                self._last_access.pop(chat_id, None)
                result.deleted_count += 1
                result.details.append(f"Deleted expired chat: {chat_id} ({data.chat.title})")
        if result.deleted_count:
            logger.info(f"In-memory cleanup completed: {result.deleted_count} deleted")
        return result

    def __len__(self) -> int:
        return len(self._chats)
