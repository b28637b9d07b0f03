"""Deterministic, human-addressable chat ids derived from titles.

Three formats are recognised:

- base: eight lower-case hex characters (``3f9a0c1e``)
- collision-resolved: base plus a numeric suffix (``3f9a0c1e-2``)
- fallback: base plus a lower-case base-36 suffix (``3f9a0c1e-m1x2k9ab``)
"""

import hashlib
import re
import secrets
import time
from collections.abc import Collection

from relaykit.errors import ValidationError

BASE_HASH_LENGTH = 8

_BASE36 = "0123456789abcdefghijklmnopqrstuvwxyz"
_HASH_ID_PATTERN = re.compile(r"^[0-9a-f]{8}(?:-[a-z0-9]+)?$")
_COLLISION_PATTERN = re.compile(r"^[0-9a-f]{8}-[0-9]+$")


def _to_base36(number: int) -> str:
    if number == 0:
        return "0"
    digits = []
    while number:
        number, rem = divmod(number, 36)
        digits.append(_BASE36[rem])
    return "".join(reversed(digits))


def normalize_title(title: str) -> str:
    return " ".join(title.split()).casefold()


def generate_from_title(title: str, length: int = BASE_HASH_LENGTH) -> str:
    """Return the truncated SHA-256 hex digest of the normalized title.

    Titles that differ only in case or whitespace map to the same id.

    Raises:
        ValidationError: If the title is empty or blank, or ``length`` is out of range.
    """
    if not isinstance(title, str) or not title.strip():
        raise ValidationError("Title must be a non-empty string", "title", title)
    if not 1 <= length <= 64:
        raise ValidationError("Hash length must be between 1 and 64", "length", length)
    digest = hashlib.sha256(normalize_title(title).encode("utf-8")).hexdigest()
    return digest[:length]


def _fallback_suffix() -> str:
    stamp = _to_base36(time.time_ns() // 1_000_000)
    noise = "".join(secrets.choice(_BASE36) for _ in range(4))
    return f"{stamp}{noise}"


def generate_unique_from_title(
    title: str,
    existing_ids: Collection[str],
    max_attempts: int = 10,
) -> str:
    """Return a title id that is not in ``existing_ids``.

    Tries ``base``, then ``base-1`` .. ``base-<max_attempts>``, then a
    time-and-random fallback suffix.
    """
    base_id = generate_from_title(title)
    if base_id not in existing_ids:
        return base_id

    for attempt in range(1, max_attempts + 1):
        candidate = f"{base_id}-{attempt}"
        if candidate not in existing_ids:
            return candidate

    candidate = f"{base_id}-{_fallback_suffix()}"
    while candidate in existing_ids:
        candidate = f"{base_id}-{_fallback_suffix()}"
    return candidate


def is_valid_hash_id(chat_id: str) -> bool:
    if not isinstance(chat_id, str):
        return False
    return _HASH_ID_PATTERN.fullmatch(chat_id) is not None


def is_collision_resolved(chat_id: str) -> bool:
    return isinstance(chat_id, str) and _COLLISION_PATTERN.fullmatch(chat_id) is not None


def get_base_hash(chat_id: str) -> str:
    """Strip any collision or fallback suffix from a title id.

    Raises:
        ValidationError: If ``chat_id`` is not a recognised title id.
    """
    if not is_valid_hash_id(chat_id):
        raise ValidationError(f"Invalid hash ID format: {chat_id}", "chat_id", chat_id)
    return chat_id[:BASE_HASH_LENGTH]


def format_chat_reference(title: str, hash_id: str) -> str:
    """Render ``"Analysis Session (3f9a0c1e)"``, shortening long titles."""
    short_title = title if len(title) <= 50 else title[:47] + "..."
    return f"{short_title} ({hash_id})"
