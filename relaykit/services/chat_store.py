import asyncio
import inspect
import logging
from collections.abc import Callable
from typing import Any

from relaykit.config import RelaySettings, get_settings
from relaykit.errors import NotFoundError, PersistenceError, QuotaExceededError
from relaykit.history import TruncationPolicy, formatting, participation
from relaykit.ids import IdentifierBroker
from relaykit.locks import LockManager
from relaykit.messages import prepare_content, validate_agent_name, validate_title
from relaykit.models import (
    AddMessageResult,
    AgentState,
    Chat,
    ChatMessage,
    ChatSummary,
    CleanupResult,
    ListChatOptions,
    utc_now,
)
from relaykit.stores import ChatPersistence, create_persistence

logger = logging.getLogger(__name__)

OnAccepted = Callable[[str], Any]


class ChatStore:
    """Shared, size-bounded multi-agent chat histories.

    Every mutation of a chat runs inside that chat's critical section, so
    appends to one chat are applied in lock-acquisition order while different
    chats proceed independently. Reads that do not mutate go straight to the
    backing store.

    Chat ids may be given as canonical strings or as legacy integers.
    """

    def __init__(
        self,
        persistence: ChatPersistence,
        locks: LockManager | None = None,
        broker: IdentifierBroker | None = None,
        truncation: TruncationPolicy | None = None,
        settings: RelaySettings | None = None,
    ):
        self.settings = settings or get_settings()
        self.persistence = persistence
        self.locks = locks or LockManager(self.settings.lock_timeout)
        self.broker = broker or IdentifierBroker(self.settings.enable_legacy_compatibility)
        self.truncation = truncation or TruncationPolicy(self.settings.history_limit)
        self._initialized = False
        self._init_lock = asyncio.Lock()

    @classmethod
    def from_settings(cls, settings: RelaySettings | None = None) -> "ChatStore":
        """Build a store and its collaborators from settings."""
        settings = settings or get_settings()
        return cls(
            create_persistence(settings),
            LockManager(settings.lock_timeout),
            IdentifierBroker(settings.enable_legacy_compatibility),
            TruncationPolicy(settings.history_limit),
            settings,
        )

    @staticmethod
    def _chat_lock(chat_id: str) -> str:
        return f"chat:{chat_id}"

    async def initialize(self) -> None:
        """Prepare the backing store, seed id allocation and run one cleanup sweep.

        Called implicitly by every operation; only the first call does work.
        """
        if self._initialized:
            return
        async with self._init_lock:
            if self._initialized:
                return
            await self.persistence.init()
            existing = await self.persistence.list_chats(ListChatOptions(status="all"))
            self.broker.seed(summary.chat_id for summary in existing)

            result = await self.persistence.cleanup_expired_files()
            if result.errors:
                logger.warning(f"Startup cleanup finished with {result.errors} errors")
            elif result.deleted_count:
                logger.info(f"Startup cleanup removed {result.deleted_count} expired chats")

            self._initialized = True
            logger.info(f"Chat store initialized with {self.persistence.kind} persistence")

    # --- chats ---

    async def create_chat(self, title: str, creator_agent: str) -> str:
        """Create an empty chat owned by ``creator_agent`` and return its id.

        Raises:
            ValidationError: If the title or agent name is invalid.
            QuotaExceededError: If the agent already created the maximum number of active chats.
        """
        title = validate_title(title, self.settings.max_title_length)
        creator_agent = validate_agent_name(creator_agent, self.settings.max_agent_name_length)
        await self.initialize()

        async def create() -> str:
            active = await self.persistence.list_chats(ListChatOptions(status="active"))
            owned = sum(1 for summary in active if summary.created_by == creator_agent)
            if owned >= self.settings.max_chats_per_agent:
                raise QuotaExceededError(creator_agent, self.settings.max_chats_per_agent)

            chat_id = self.broker.allocate()
            chat = Chat(id=chat_id, title=title, created_by=creator_agent, participants=[creator_agent])
            try:
                await self.persistence.save_chat(chat, {creator_agent: AgentState()})
            except PersistenceError:
                self.broker.release(chat_id)
                raise
            logger.info(f"Created chat {chat_id} '{title}' by {creator_agent}")
            return chat_id

        # Quota check, id allocation and save are one step per creating agent
        return await self.locks.with_lock(f"create-chat:{creator_agent}", create)

    async def get_chat(self, chat_id: int | str, requesting_agent: str | None = None) -> Chat | None:
        """Load a chat, or None if it does not exist.

        An unknown ``requesting_agent`` joins the chat as a new participant.
        """
        canonical = self.broker.normalize(chat_id)
        if requesting_agent is not None:
            requesting_agent = validate_agent_name(requesting_agent, self.settings.max_agent_name_length)
        await self.initialize()

        data = await self.persistence.load_chat(canonical)
        if data is None:
            return None
        if requesting_agent is None or requesting_agent in data.chat.participants:
            return data.chat

        async def join() -> Chat | None:
            current = await self.persistence.load_chat(canonical)
            if current is None:
                return None
            if current.chat.add_participant(requesting_agent):
                current.agent_states.setdefault(requesting_agent, AgentState())
                await self.persistence.save_chat(current.chat, current.agent_states)
                logger.info(f"Agent {requesting_agent} joined chat {canonical}")
            return current.chat

        return await self.locks.with_lock(self._chat_lock(canonical), join)

    async def add_message(
        self,
        chat_id: int | str,
        agent: str,
        content: str,
        on_accepted: OnAccepted | None = None,
        timeout: float | None = None,
    ) -> AddMessageResult:
        """Append a message to a chat.

        The append, participant and agent-state updates, truncation and save
        happen in the chat's critical section. ``on_accepted`` is called with
        the raw content after the save and before the lock is released, and
        may be a coroutine function.

        Raises:
            ValidationError: If the agent name or content is invalid. Nothing is changed.
            NotFoundError: If the chat does not exist.
            LockTimeoutError: If the critical section could not be entered within
                ``timeout`` seconds. Nothing is changed.
        """
        agent = validate_agent_name(agent, self.settings.max_agent_name_length)
        cleaned = prepare_content(content, self.settings.max_message_length)
        canonical = self.broker.normalize(chat_id)
        await self.initialize()

        if await self.persistence.load_chat(canonical) is None:
            raise NotFoundError(canonical)

        async def append() -> AddMessageResult:
            data = await self.persistence.load_chat(canonical)
            if data is None:
                # deleted while waiting for the lock
                raise NotFoundError(canonical)
            chat = data.chat

            message = ChatMessage(chat_id=canonical, agent=agent, message=cleaned, sanitized=True)
            chat.messages.append(message)
            chat.add_participant(agent)
            chat.last_activity = message.timestamp

            states = participation.update_for_new_message(agent, canonical, message.id, data.agent_states)
            evicted = self.truncation.apply(chat)
            if evicted:
                states = participation.clean_states(states, chat.messages)

            await self.persistence.save_chat(chat, states)
            logger.debug(f"Added message {message.id} from {agent} to chat {canonical}")

            if on_accepted is not None:
                outcome = on_accepted(content)
                if inspect.isawaitable(outcome):
                    await outcome

            return AddMessageResult(
                success=True,
                message=f"Message added to chat {canonical}",
                chat_id=canonical,
                message_id=message.id,
                evicted=len(evicted),
            )

        return await self.locks.with_lock(self._chat_lock(canonical), append, timeout)

    async def list_chats(self, options: ListChatOptions | None = None) -> list[ChatSummary]:
        await self.initialize()
        return await self.persistence.list_chats(options)

    async def delete_chat(self, chat_id: int | str) -> bool:
        """Remove a chat and everything stored for it. Returns False if it did not exist."""
        canonical = self.broker.normalize(chat_id)
        await self.initialize()

        async def delete() -> bool:
            return await self.persistence.delete_chat(canonical)

        removed = await self.locks.with_lock(self._chat_lock(canonical), delete)
        if removed:
            self.broker.release(canonical)
            logger.info(f"Deleted chat {canonical}")
        return removed

    async def archive_chat(self, chat_id: int | str) -> bool:
        """Mark a chat archived so it stops counting toward its creator's quota."""
        canonical = self.broker.normalize(chat_id)
        await self.initialize()

        async def archive() -> bool:
            data = await self.persistence.load_chat(canonical)
            if data is None:
                return False
            if data.chat.status != "archived":
                data.chat.status = "archived"
                await self.persistence.save_chat(data.chat, data.agent_states)
                logger.info(f"Archived chat {canonical}")
            return True

        return await self.locks.with_lock(self._chat_lock(canonical), archive)

    # --- history ---

    async def get_history_for_agent(self, chat_id: int | str, agent: str) -> list[ChatMessage]:
        """Messages ``agent`` should be shown next.

        New agents get the whole chat, returning agents the messages since
        they last spoke, and the agent that spoke last only the latest message.
        """
        canonical = self.broker.normalize(chat_id)
        agent = validate_agent_name(agent, self.settings.max_agent_name_length)
        await self.initialize()

        async def replay() -> list[ChatMessage]:
            data = await self.persistence.load_chat(canonical)
            if data is None:
                raise NotFoundError(canonical)
            chat = data.chat
            messages = participation.messages_for_agent(agent, chat.messages, data.agent_states)
            if agent not in chat.agents_with_history:
                chat.agents_with_history.add(agent)
                await self.persistence.save_chat(chat, data.agent_states)
            logger.debug(
                f"Replaying {len(messages)} of {len(chat.messages)} messages to {agent} in chat {canonical}"
            )
            return messages

        return await self.locks.with_lock(self._chat_lock(canonical), replay)

    async def cleanup_expired_chats(self) -> CleanupResult:
        """Remove chats that have not been read within the TTL."""
        await self.initialize()
        started = utc_now()
        result = await self.persistence.cleanup_expired_files()
        logger.info(
            f"Expired chat sweep took {(utc_now() - started).total_seconds():.3f}s: "
            f"{result.deleted_count} deleted, {result.errors} errors"
        )
        return result

    @staticmethod
    def format_history_for_gemini(chat: Chat) -> str:
        return formatting.format_history_for_gemini(chat)

    @staticmethod
    def build_prompt_with_history(chat: Chat, prompt: str) -> str:
        return formatting.build_prompt_with_history(chat, prompt)
