import logging
from typing import Literal

from pydantic import Field

from relaykit.errors import RelayError
from relaykit.models.chat import ListChatOptions
from relaykit.models.types import CompactBaseModel
from relaykit.stores.base import ChatPersistence

logger = logging.getLogger(__name__)


class MigrationResult(CompactBaseModel):
    success: bool = False
    migrated_chats: int = 0
    skipped_chats: int = 0
    conflicts: int = 0
    errors: list[str] = Field(default_factory=list)


async def migrate_chats(
    source: ChatPersistence,
    target: ChatPersistence,
    *,
    resolve_conflicts: Literal["skip", "overwrite"] = "skip",
    dry_run: bool = False,
) -> MigrationResult:
    """Copy every chat, active or archived, from ``source`` into ``target``.

    A chat whose id already exists in ``target`` is a conflict: it is left
    alone with ``"skip"`` and replaced with ``"overwrite"``. Failures on one
    chat are recorded and the migration moves on to the next.

    Args:
        source: Store to read from. Loading refreshes each chat's access time there.
        target: Store to write into.
        resolve_conflicts: What to do when the id already exists in ``target``.
        dry_run: Count what would happen without writing anything.
    """
    logger.info(f"Starting chat migration (dry run: {dry_run})")
    result = MigrationResult()

    await source.init()
    await target.init()

    for summary in await source.list_chats(ListChatOptions(status="all")):
        chat_id = summary.chat_id
        try:
            data = await source.load_chat(chat_id)
            if data is None:
                # deleted since it was listed
                result.skipped_chats += 1
                continue

            if await target.load_chat(chat_id) is not None:
                result.conflicts += 1
                if resolve_conflicts == "skip":
                    logger.debug(f"Skipping chat {chat_id}: already present in target")
                    result.skipped_chats += 1
                    continue

            if not dry_run:
                await target.save_chat(data.chat, data.agent_states)
            result.migrated_chats += 1
        except RelayError as exc:
            logger.error(f"Failed to migrate chat {chat_id}: {exc}")
            result.errors.append(f"Chat {chat_id}: {exc}")

    result.success = not result.errors
    logger.info(
        f"Migration completed. Migrated: {result.migrated_chats}, "
        f"Skipped: {result.skipped_chats}, Errors: {len(result.errors)}"
    )
    return result
