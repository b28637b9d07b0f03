from datetime import datetime, timezone
from typing import Any, Literal, TypeAlias

from pydantic import BaseModel

ChatStatus: TypeAlias = Literal["active", "archived"]
StatusFilter: TypeAlias = Literal["active", "archived", "all"]
ParticipationState: TypeAlias = Literal["new", "returning", "continuous"]


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


class CompactBaseModel(BaseModel):
    """Base model that excludes unset and None values during serialization.

    Persistence backends must not rely on these defaults: they dump records with
    ``exclude_unset=False`` so in-place list mutations are never dropped.
    """

    def model_dump(self, **kwargs: Any) -> dict[str, Any]:
        kwargs.setdefault("exclude_unset", True)
        kwargs.setdefault("exclude_none", True)
        kwargs.setdefault("mode", "json")  # Converts datetime, etc. to JSON-serializable types
        return super().model_dump(**kwargs)

    def model_dump_json(self, **kwargs: Any) -> str:
        kwargs.setdefault("exclude_unset", True)
        kwargs.setdefault("exclude_none", True)
        return super().model_dump_json(**kwargs)

    def to_record(self) -> dict[str, Any]:
        """Full JSON-safe dump used when writing to a backing store."""
        return super().model_dump(mode="json")
