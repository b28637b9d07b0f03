from typing import TYPE_CHECKING

from relaykit.stores.base import ChatPersistence
from relaykit.stores.in_memory import InMemoryChatPersistence
from relaykit.stores.json_file import JsonFileChatPersistence

if TYPE_CHECKING:
    from relaykit.config import RelaySettings

_BACKENDS: dict[str, type[ChatPersistence]] = {
    InMemoryChatPersistence.kind: InMemoryChatPersistence,
    JsonFileChatPersistence.kind: JsonFileChatPersistence,
}


def register_backend(backend: type[ChatPersistence]) -> None:
    """Register a persistence backend class under its ``kind``.

    Raises:
        ValueError: If a backend with the same ``kind`` is already registered.
    """
    if backend.kind in _BACKENDS:
        raise ValueError(
            f"A backend with kind {backend.kind!r} is already registered. Use a unique `kind` value."
        )
    _BACKENDS[backend.kind] = backend


def load_backend(kind: str) -> type[ChatPersistence]:
    """Look up a registered backend class by its ``kind`` discriminator.

    Raises:
        KeyError: If no backend with the given ``kind`` is registered.
    """
    return _BACKENDS[kind]


def create_persistence(settings: "RelaySettings") -> ChatPersistence:
    """Build the backend named by ``settings.persistence_type``."""
    return load_backend(settings.persistence_type).from_settings(settings)
