"""Per-agent participation tracking.

An agent moves through three states within a chat:

- ``new``: has never been replayed the chat, so it gets the full history.
- ``continuous``: spoke last; it only needs the latest message.
- ``returning``: others have spoken since it last did; it gets the delta
  since its last seen message.
"""

import logging
from collections.abc import Sequence

from relaykit.models.chat import AgentState, ChatMessage
from relaykit.models.types import utc_now

logger = logging.getLogger(__name__)


def update_for_new_message(
    agent: str,
    chat_id: str,
    message_id: str,
    agent_states: dict[str, AgentState],
) -> dict[str, AgentState]:
    """Record that ``agent`` just posted ``message_id``.

    The author's state advances to ``continuous`` (or starts at ``new``), and
    every other ``continuous`` agent becomes ``returning``.
    """
    updated = {name: state.model_copy() for name, state in agent_states.items()}
    now = utc_now()

    current = updated.get(agent)
    if current is None:
        updated[agent] = AgentState(
            last_seen_message_id=message_id,
            participation_state="new",
            last_active_at=now,
        )
        logger.debug(f"Agent {agent}: initialized as new participant in chat {chat_id}")
    else:
        if current.participation_state != "continuous":
            logger.debug(
                f"Agent {agent}: transitioned from {current.participation_state} "
                f"to continuous in chat {chat_id}"
            )
        current.last_seen_message_id = message_id
        current.participation_state = "continuous"
        current.last_active_at = now

    for name, state in updated.items():
        if name != agent and state.participation_state == "continuous":
            state.participation_state = "returning"
            logger.debug(f"Agent {name}: marked as returning due to {agent} activity")

    return updated


def mark_returning(agent: str, agent_states: dict[str, AgentState]) -> dict[str, AgentState]:
    state = agent_states.get(agent)
    if state is not None and state.participation_state == "continuous":
        agent_states[agent] = state.model_copy(update={"participation_state": "returning"})
    return agent_states


def messages_since(messages: Sequence[ChatMessage], last_seen_message_id: str | None) -> list[ChatMessage]:
    if last_seen_message_id is None:
        return list(messages)
    for index, msg in enumerate(messages):
        if msg.id == last_seen_message_id:
            return list(messages[index + 1 :])
    logger.warning(f"Last seen message {last_seen_message_id} not found, returning all messages")
    return list(messages)


def messages_for_agent(
    agent: str,
    messages: Sequence[ChatMessage],
    agent_states: dict[str, AgentState],
) -> list[ChatMessage]:
    state = agent_states.get(agent)
    if state is None or state.participation_state == "new":
        return list(messages)
    if state.participation_state == "returning":
        return messages_since(messages, state.last_seen_message_id)
    return list(messages[-1:])


def clean_states(
    agent_states: dict[str, AgentState],
    messages: Sequence[ChatMessage],
) -> dict[str, AgentState]:
    """Drop ``last_seen_message_id`` references to messages that were evicted."""
    valid_ids = {msg.id for msg in messages}
    for name, state in agent_states.items():
        if state.last_seen_message_id is not None and state.last_seen_message_id not in valid_ids:
            logger.debug(f"Agent {name}: last seen message {state.last_seen_message_id} was evicted")
            agent_states[name] = state.model_copy(update={"last_seen_message_id": None})
    return agent_states


def participation_summary(agent_states: dict[str, AgentState]) -> str:
    parts = [
        f"{name}:{state.participation_state}({state.last_active_at.isoformat()})"
        for name, state in agent_states.items()
    ]
    return f"Agent states: {', '.join(parts)}"
