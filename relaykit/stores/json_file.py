import asyncio
import contextlib
import json
import logging
import os
import re
import tempfile
import threading
import time
from collections.abc import Callable
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any, ClassVar

from pydantic import ValidationError as PydanticValidationError

from relaykit.config import CHAT_TTL_HOURS
from relaykit.errors import PersistenceError, ValidationError
from relaykit.models.chat import AgentState, Chat, ChatData, ChatSummary, CleanupResult, ListChatOptions
from relaykit.stores.base import ChatPersistence, apply_list_options

if TYPE_CHECKING:
    from relaykit.config import RelaySettings

logger = logging.getLogger(__name__)

_FILE_PATTERN = re.compile(r"^chat-([0-9]+)-(.+)\.json$")
_SAFE_ID_PATTERN = re.compile(r"^[A-Za-z0-9_-][A-Za-z0-9_.-]*$")

_CORRUPT_RECORD_ERRORS = (json.JSONDecodeError, KeyError, TypeError, PydanticValidationError)


def _parse_file_name(name: str) -> tuple[int, str] | None:
    match = _FILE_PATTERN.fullmatch(name)
    if match is None:
        return None
    return int(match.group(1)), match.group(2)


def _record_from(chat: Chat, agent_states: dict[str, AgentState], stamp: int, now: datetime) -> dict[str, Any]:
    chat_record = chat.to_record()
    return {
        "metadata": {
            "chat_id": chat.id,
            "timestamp": stamp,
            "title": chat.title,
            "created_by": chat.created_by,
            "created": chat_record["created"],
            "last_activity": chat_record["last_activity"],
            "last_access_time": now.isoformat(),
            "status": chat.status,
            "participants": list(chat.participants),
            "agents_with_history": sorted(chat.agents_with_history),
        },
        "messages": chat_record["messages"],
        "agent_states": {name: state.to_record() for name, state in agent_states.items()},
    }


def _data_from(record: dict[str, Any]) -> ChatData:
    meta = record["metadata"]
    chat = Chat.model_validate(
        {
            "id": meta["chat_id"],
            "title": meta["title"],
            "created_by": meta.get("created_by"),
            "participants": meta["participants"],
            "messages": record["messages"],
            "created": meta["created"],
            "last_activity": meta["last_activity"],
            "status": meta["status"],
            "agents_with_history": meta.get("agents_with_history", []),
        }
    )
    agent_states = {
        name: AgentState.model_validate(state) for name, state in record.get("agent_states", {}).items()
    }
    return ChatData(chat=chat, agent_states=agent_states)


def _summary_from(record: dict[str, Any]) -> ChatSummary:
    meta = record["metadata"]
    return ChatSummary.model_validate(
        {
            "chat_id": meta["chat_id"],
            "title": meta["title"],
            "participant_count": len(meta["participants"]),
            "message_count": len(record["messages"]),
            "last_activity": meta["last_activity"],
            "status": meta["status"],
            "created_by": meta.get("created_by"),
            "created_at": meta["created"],
            "last_access_time": meta["last_access_time"],
        }
    )


class JsonFileChatPersistence(ChatPersistence):
    """File-backed chat store.

    Every save writes a new ``chat-<epoch_ms>-<chat_id>.json`` file under
    ``<base_dir>/storage`` and then best-effort removes the older versions of
    that chat, so readers always pick the newest stamp. Loads write the
    last-access time back into the file for the TTL sweep.

    Writes are not atomic across an abrupt process exit: a crash between the
    write and the removal of older versions leaves stale files that the next
    save of the same chat clears.

    File I/O runs on worker threads so the event loop is never blocked. Every
    helper that writes or removes a chat's files holds that chat's thread lock,
    so a lock-free load can never write back a file that a delete or the sweep
    has just removed.
    """

    kind: ClassVar[str] = "json"

    def __init__(
        self,
        base_dir: str | Path,
        ttl_hours: float = CHAT_TTL_HOURS,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        super().__init__(ttl_hours, clock)
        self.base_path = Path(base_dir)
        self.storage_path = self.base_path / "storage"
        self._initialized = False
        self._last_stamp = 0
        self._file_locks: dict[str, threading.Lock] = {}
        self._file_locks_guard = threading.Lock()

    @classmethod
    def from_settings(cls, settings: "RelaySettings") -> "JsonFileChatPersistence":
        return cls(settings.storage_dir, ttl_hours=settings.chat_ttl_hours)

    def storage_paths(self) -> dict[str, str]:
        return {"base": str(self.base_path), "storage": str(self.storage_path)}

    async def init(self) -> None:
        if self._initialized:
            return
        try:
            await asyncio.to_thread(self.storage_path.mkdir, parents=True, exist_ok=True)
        except OSError as exc:
            logger.error(f"Failed to initialize JSON persistence at {self.base_path}: {exc}")
            raise PersistenceError(f"Cannot create storage directory {self.storage_path}", "init") from exc
        self._initialized = True
        logger.info(f"JSON chat persistence initialized at: {self.base_path}")

    # --- sync helpers, run on worker threads ---

    def _check_id(self, chat_id: str) -> None:
        if not _SAFE_ID_PATTERN.fullmatch(chat_id):
            raise ValidationError(f"Chat ID {chat_id!r} cannot be used as a file name", "chat_id", chat_id)

    def _next_stamp(self) -> int:
        # strictly increasing so the newest save always sorts last
        stamp = max(time.time_ns() // 1_000_000, self._last_stamp + 1)
        self._last_stamp = stamp
        return stamp

    def _file_lock(self, chat_id: str) -> threading.Lock:
        with self._file_locks_guard:
            return self._file_locks.setdefault(chat_id, threading.Lock())

    def _scan(self) -> dict[str, list[tuple[int, Path]]]:
        versions: dict[str, list[tuple[int, Path]]] = {}
        for path in self.storage_path.iterdir():
            parsed = _parse_file_name(path.name)
            if parsed is None:
                continue
            stamp, chat_id = parsed
            versions.setdefault(chat_id, []).append((stamp, path))
        for entries in versions.values():
            entries.sort()
        return versions

    def _versions(self, chat_id: str) -> list[tuple[int, Path]]:
        return self._scan().get(chat_id, [])

    def _read(self, path: Path) -> dict[str, Any]:
        return json.loads(path.read_text(encoding="utf-8"))

    def _write(self, path: Path, record: dict[str, Any]) -> None:
        # write-then-rename so unlocked readers never see a partial file
        fd, tmp_name = tempfile.mkstemp(dir=self.storage_path, prefix=f".{path.stem}-", suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as fh:
                # ASCII escapes keep lone surrogates round-trippable
                json.dump(record, fh, indent=2)
            os.replace(tmp_name, path)
        except BaseException:
            with contextlib.suppress(OSError):
                os.unlink(tmp_name)
            raise

    def _save_sync(self, chat: Chat, agent_states: dict[str, AgentState], stamp: int) -> Path:
        path = self.storage_path / f"chat-{stamp}-{chat.id}.json"
        with self._file_lock(chat.id):
            self._write(path, _record_from(chat, agent_states, stamp, self.now()))

            for old_stamp, old_path in self._versions(chat.id):
                if old_stamp >= stamp:
                    continue
                try:
                    old_path.unlink()
                except FileNotFoundError:
                    pass
                except OSError as exc:
                    logger.warning(f"Could not remove old version {old_path.name}: {exc}")
        return path

    def _read_latest(
        self, chat_id: str, versions: list[tuple[int, Path]] | None = None
    ) -> tuple[Path, dict[str, Any]] | None:
        # The newest file can be replaced by a concurrent save between scan and read
        for _ in range(3):
            if versions is None:
                versions = self._versions(chat_id)
            if not versions:
                return None
            _, path = versions[-1]
            try:
                return path, self._read(path)
            except FileNotFoundError:
                versions = None
        return None

    def _load_sync(self, chat_id: str) -> ChatData | None:
        latest = self._read_latest(chat_id)
        if latest is None:
            return None
        path, record = latest
        data = _data_from(record)
        with self._file_lock(chat_id):
            # skip the write-back if a save, delete or sweep replaced the file since the read
            if path.exists():
                record["metadata"]["last_access_time"] = self.now().isoformat()
                self._write(path, record)
        return data

    def _list_sync(self) -> tuple[list[ChatSummary], dict[str, list[str]]]:
        summaries = []
        participants: dict[str, list[str]] = {}
        for chat_id, versions in self._scan().items():
            try:
                latest = self._read_latest(chat_id, versions)
                if latest is None:
                    continue
                summary = _summary_from(latest[1])
            except _CORRUPT_RECORD_ERRORS as exc:
                logger.warning(f"Failed to parse newest file of chat {chat_id}: {exc}")
                continue
            record = latest[1]
            summaries.append(summary)
            participants[chat_id] = record["metadata"]["participants"]
        return summaries, participants

    def _delete_sync(self, chat_id: str) -> bool:
        removed = False
        with self._file_lock(chat_id):
            for _, path in self._versions(chat_id):
                try:
                    path.unlink()
                    removed = True
                except FileNotFoundError:
                    pass
        return removed

    def _cleanup_sync(self) -> CleanupResult:
        now = self.now()
        result = CleanupResult()
        for chat_id, versions in self._scan().items():
            _, newest = versions[-1]
            try:
                with self._file_lock(chat_id):
                    # rescan: a save may have replaced the versions seen above
                    versions = self._versions(chat_id)
                    if not versions:
                        continue
                    _, newest = versions[-1]
                    record = self._read(newest)
                    last_access = datetime.fromisoformat(record["metadata"]["last_access_time"])
                    if not self.is_expired(last_access, now):
                        continue
                    for _, path in versions:
                        path.unlink(missing_ok=True)
            except Exception as exc:
                result.errors += 1
                result.details.append(f"Failed to process {newest.name}: {exc}")
                logger.exception(f"Cleanup failed for {newest.name}")
                continue
            result.deleted_count += 1
            result.details.append(f"Deleted expired chat: {chat_id} ({record['metadata']['title']})")
        return result

    # --- ChatPersistence ---

    async def save_chat(self, chat: Chat, agent_states: dict[str, AgentState] | None = None) -> None:
        self._check_id(chat.id)
        await self.init()
        try:
            path = await asyncio.to_thread(
                self._save_sync, chat, dict(agent_states or {}), self._next_stamp()
            )
        except OSError as exc:
            logger.error(f"Failed to save chat {chat.id}: {exc}")
            raise PersistenceError(f"Failed to save chat {chat.id}", "save_chat") from exc
        logger.debug(f"Saved chat {chat.id} to {path}")

    async def load_chat(self, chat_id: str) -> ChatData | None:
        self._check_id(chat_id)
        await self.init()
        try:
            data = await asyncio.to_thread(self._load_sync, chat_id)
        except (OSError, *_CORRUPT_RECORD_ERRORS) as exc:
            logger.error(f"Failed to load chat {chat_id}: {exc}")
            raise PersistenceError(f"Failed to load chat {chat_id}", "load_chat") from exc
        if data is not None:
            logger.debug(f"Loaded chat {chat_id}")
        return data

    async def list_chats(self, options: ListChatOptions | None = None) -> list[ChatSummary]:
        await self.init()
        try:
            summaries, participants = await asyncio.to_thread(self._list_sync)
        except OSError as exc:
            logger.error(f"Failed to list chats: {exc}")
            raise PersistenceError("Failed to list chats", "list_chats") from exc
        return apply_list_options(summaries, options, participants)

    async def delete_chat(self, chat_id: str) -> bool:
        self._check_id(chat_id)
        await self.init()
        try:
            removed = await asyncio.to_thread(self._delete_sync, chat_id)
        except OSError as exc:
            logger.error(f"Failed to delete chat {chat_id}: {exc}")
            raise PersistenceError(f"Failed to delete chat {chat_id}", "delete_chat") from exc
        if removed:
            logger.info(f"Deleted chat {chat_id} from {self.storage_path}")
        else:
            logger.warning(f"Chat {chat_id} not found for deletion")
        return removed

    async def cleanup_expired_files(self) -> CleanupResult:
        try:
            await self.init()
            result = await asyncio.to_thread(self._cleanup_sync)
        except Exception as exc:
            logger.exception("Failed to clean up expired chat files")
            return CleanupResult(errors=1, details=[f"Cleanup failed: {exc}"])
        logger.info(f"Cleanup completed: {result.deleted_count} deleted, {result.errors} errors")
        return result
