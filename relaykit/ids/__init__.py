from relaykit.ids.broker import LEGACY_PREFIX, IdentifierBroker, string_hash
from relaykit.ids.title_ids import (
    format_chat_reference,
    generate_from_title,
    generate_unique_from_title,
    get_base_hash,
    is_collision_resolved,
    is_valid_hash_id,
)

__all__ = [
    "LEGACY_PREFIX",
    "IdentifierBroker",
    "format_chat_reference",
    "generate_from_title",
    "generate_unique_from_title",
    "get_base_hash",
    "is_collision_resolved",
    "is_valid_hash_id",
    "string_hash",
]
