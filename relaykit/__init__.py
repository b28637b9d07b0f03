from importlib.metadata import version

from relaykit.config import RelaySettings, get_settings
from relaykit.errors import (
    LockTimeoutError,
    NotFoundError,
    PersistenceError,
    QuotaExceededError,
    RelayError,
    ValidationError,
)
from relaykit.history import TruncationPolicy, build_prompt_with_history, format_history_for_gemini
from relaykit.ids import IdentifierBroker, generate_from_title, generate_unique_from_title
from relaykit.locks import LockManager
from relaykit.log import configure_logging
from relaykit.models import (
    AddMessageResult,
    AgentState,
    Chat,
    ChatMessage,
    ChatSummary,
    CleanupResult,
    ListChatOptions,
)
from relaykit.services import ChatStore
from relaykit.stores import (
    ChatPersistence,
    InMemoryChatPersistence,
    JsonFileChatPersistence,
    load_backend,
    migrate_chats,
    register_backend,
)

__version__ = version("relaykit")
__all__ = [
    "__version__",
    # config
    "RelaySettings",
    "configure_logging",
    "get_settings",
    # errors
    "LockTimeoutError",
    "NotFoundError",
    "PersistenceError",
    "QuotaExceededError",
    "RelayError",
    "ValidationError",
    # history
    "TruncationPolicy",
    "build_prompt_with_history",
    "format_history_for_gemini",
    # ids
    "IdentifierBroker",
    "generate_from_title",
    "generate_unique_from_title",
    # locks
    "LockManager",
    # models
    "AddMessageResult",
    "AgentState",
    "Chat",
    "ChatMessage",
    "ChatSummary",
    "CleanupResult",
    "ListChatOptions",
    # services
    "ChatStore",
    # stores
    "ChatPersistence",
    "InMemoryChatPersistence",
    "JsonFileChatPersistence",
    "load_backend",
    "migrate_chats",
    "register_backend",
]
