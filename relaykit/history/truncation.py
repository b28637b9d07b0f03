import logging
from collections.abc import Sequence

from relaykit.config import HISTORY_LIMIT
from relaykit.models.chat import Chat, ChatMessage

logger = logging.getLogger(__name__)


def text_length(text: str) -> int:
    """Length in UTF-16 code units.

    Characters outside the BMP count twice. Neither grapheme clusters nor
    encoded bytes nor tokens are measured, so a chat within budget can still be
    too large for a downstream byte or token limit.
    """
    return len(text.encode("utf-16-le", "surrogatepass")) // 2


def total_chars(messages: Sequence[ChatMessage]) -> int:
    return sum(text_length(msg.message) for msg in messages)


class TruncationPolicy:
    """Keeps a chat's aggregate message length within ``history_limit``.

    Behaves like ``collections.deque(maxlen=N)`` measured in characters: the
    oldest messages are evicted first, but the newest message is always kept
    even if it alone exceeds the budget.
    """

    def __init__(self, history_limit: int = HISTORY_LIMIT) -> None:
        if history_limit <= 0:
            raise ValueError("history_limit must be positive")
        self.history_limit = history_limit

    def overflow(self, chat: Chat) -> int:
        """Characters over budget, 0 when within it."""
        return max(0, total_chars(chat.messages) - self.history_limit)

    def apply(self, chat: Chat) -> list[ChatMessage]:
        """Evict oldest messages until the chat fits. Returns what was evicted, oldest first."""
        total = total_chars(chat.messages)
        evict_count = 0
        while total > self.history_limit and len(chat.messages) - evict_count > 1:
            total -= text_length(chat.messages[evict_count].message)
            evict_count += 1

        if not evict_count:
            return []

        evicted = chat.messages[:evict_count]
        del chat.messages[:evict_count]
        for msg in evicted:
            logger.warning(f"Chat history truncated for chat {chat.id}: removed message from {msg.agent}")
        return evicted
