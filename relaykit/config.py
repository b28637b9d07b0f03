"""Runtime settings for relaykit.

Values are read from ``RELAYKIT_*`` environment variables or a local ``.env``
file. Every field has a default so a store can be built with no configuration.
"""

import os
import tempfile
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

HISTORY_LIMIT = 30_000
MAX_MESSAGE_LENGTH = 10_000
MAX_TITLE_LENGTH = 200
MAX_AGENT_NAME_LENGTH = 50
MAX_CHATS_PER_AGENT = 10
DEFAULT_LOCK_TIMEOUT = 5.0
CHAT_TTL_HOURS = 24.0


def _default_storage_dir() -> str:
    return os.path.join(tempfile.gettempdir(), f"relaykit-{os.getpid()}")


class RelaySettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_prefix="RELAYKIT_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    persistence_type: str = "json"
    """Kind of the registered persistence backend the chat store is built on."""

    storage_dir: str = Field(default_factory=_default_storage_dir)
    """Directory exclusively owned by the json backend."""

    history_limit: int = Field(default=HISTORY_LIMIT, gt=0)
    """Aggregate character budget of a chat's message list."""

    max_message_length: int = Field(default=MAX_MESSAGE_LENGTH, gt=0)
    max_title_length: int = Field(default=MAX_TITLE_LENGTH, gt=0)
    max_agent_name_length: int = Field(default=MAX_AGENT_NAME_LENGTH, gt=0)

    max_chats_per_agent: int = Field(default=MAX_CHATS_PER_AGENT, gt=0)
    """Active chats a single agent may have created at once."""

    lock_timeout: float = Field(default=DEFAULT_LOCK_TIMEOUT, gt=0)
    """Seconds a caller waits for a chat's critical section before giving up."""

    chat_ttl_hours: float = Field(default=CHAT_TTL_HOURS, gt=0)
    """Chats not read for this long are removed by the cleanup sweep."""

    enable_legacy_compatibility: bool = True
    """Allocate ``legacy_<n>`` ids instead of opaque ``chat-<uuid>`` ids."""

    log_level: str = "INFO"


@lru_cache
def get_settings() -> RelaySettings:
    """Return the process-wide settings, read once."""
    return RelaySettings()
