from relaykit.stores.base import ChatPersistence, apply_list_options
from relaykit.stores.in_memory import InMemoryChatPersistence
from relaykit.stores.json_file import JsonFileChatPersistence
from relaykit.stores.migration import MigrationResult, migrate_chats
from relaykit.stores.registry import create_persistence, load_backend, register_backend

__all__ = [
    "ChatPersistence",
    "InMemoryChatPersistence",
    "JsonFileChatPersistence",
    "MigrationResult",
    "apply_list_options",
    "create_persistence",
    "load_backend",
    "migrate_chats",
    "register_backend",
]
