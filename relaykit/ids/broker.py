import logging
import re
from collections.abc import Iterable

import uuid_utils

from relaykit.errors import ValidationError

logger = logging.getLogger(__name__)

LEGACY_PREFIX = "legacy_"
_LEGACY_PATTERN = re.compile(rf"^{LEGACY_PREFIX}([0-9]+)$")


def string_hash(value: str) -> int:
    """32-bit rolling hash over UTF-16 code units, as a non-negative number."""
    h = 0
    raw = value.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(raw), 2):
        unit = raw[i] | (raw[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


class IdentifierBroker:
    """Maps between legacy numeric chat ids and canonical string ids.

    All internal code works on canonical strings. A legacy number ``n`` is
    carried as ``legacy_n``; every other string is already canonical. Ids handed
    out by :meth:`allocate` are recorded in an append-only table so the same id
    is never issued twice in one process.
    """

    def __init__(self, legacy_compatibility: bool = True) -> None:
        self._legacy_compatibility = legacy_compatibility
        self._next_legacy_number = 1
        self._id_table: list[str] = []
        self._issued: set[str] = set()

    @property
    def legacy_compatibility(self) -> bool:
        return self._legacy_compatibility

    @staticmethod
    def normalize(chat_id: int | str) -> str:
        if isinstance(chat_id, bool):
            raise ValidationError("Chat ID must be a number or a string", "chat_id", chat_id)
        if isinstance(chat_id, int):
            if chat_id < 0:
                raise ValidationError("Legacy chat ID cannot be negative", "chat_id", chat_id)
            return f"{LEGACY_PREFIX}{chat_id}"
        if not isinstance(chat_id, str) or not chat_id.strip():
            raise ValidationError("Chat ID cannot be empty", "chat_id", chat_id)
        return chat_id

    @staticmethod
    def is_legacy(canonical_id: str) -> bool:
        return _LEGACY_PATTERN.fullmatch(canonical_id) is not None

    @staticmethod
    def to_legacy_number(canonical_id: str) -> int:
        """Number for display to legacy callers.

        Exact for ``legacy_`` ids. Other ids get a stable hash surrogate that
        may collide, so it must never be used to look a chat up.
        """
        match = _LEGACY_PATTERN.fullmatch(canonical_id)
        if match:
            return int(match.group(1))
        return string_hash(canonical_id)

    def seed(self, existing_ids: Iterable[str]) -> None:
        """Continue legacy numbering after the ids already in the backing store."""
        highest = 0
        for chat_id in existing_ids:
            self._issued.add(chat_id)
            match = _LEGACY_PATTERN.fullmatch(chat_id)
            if match:
                highest = max(highest, int(match.group(1)))
        if highest >= self._next_legacy_number:
            self._next_legacy_number = highest + 1
            logger.debug(f"Legacy id counter seeded at {self._next_legacy_number}")

    def allocate(self) -> str:
        while True:
            if self._legacy_compatibility:
                candidate = self.normalize(self._next_legacy_number)
                self._next_legacy_number += 1
            else:
                candidate = f"chat-{uuid_utils.uuid7()}"
            if candidate not in self._issued:
                break
        self._issued.add(candidate)
        self._id_table.append(candidate)
        return candidate

    def release(self, canonical_id: str) -> None:
        """Forget an id whose chat was deleted. The table entry is kept."""
        self._issued.discard(canonical_id)

    @property
    def issued_ids(self) -> list[str]:
        return list(self._id_table)
