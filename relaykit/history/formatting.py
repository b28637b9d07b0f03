"""Rendering of chat history for the external reasoning CLI.

These functions are pure: no I/O, no truncation. Size limits downstream of the
transcript belong to whoever sends it.
"""

from relaykit.models.chat import Chat

HISTORY_HEADER = '=== CHAT HISTORY - "{title}" ==='
HISTORY_FOOTER = "=== END CHAT HISTORY ==="


def format_history_for_gemini(chat: Chat) -> str:
    """Flatten a chat into a transcript.

    Returns:
        A header naming the chat, one ``[agent]: text`` line per message and a
        footer, joined by newlines. An empty chat renders as ``""``.

    Examples:
        >>> from relaykit.models import Chat, ChatMessage
        >>> chat = Chat(id="legacy_1", title="Demo")
        >>> chat.messages.append(ChatMessage(chat_id="legacy_1", agent="alice", message="hi"))
        >>> print(format_history_for_gemini(chat))
        === CHAT HISTORY - "Demo" ===
        [alice]: hi
        === END CHAT HISTORY ===
    """
    if not chat.messages:
        return ""

    lines = [HISTORY_HEADER.format(title=chat.title)]
    lines.extend(f"[{msg.agent}]: {msg.message}" for msg in chat.messages)
    lines.append(HISTORY_FOOTER)
    return "\n".join(lines)


def build_prompt_with_history(chat: Chat, prompt: str) -> str:
    """Prefix a new turn with the chat's transcript."""
    history = format_history_for_gemini(chat)
    if not history:
        return prompt
    return f"{history}\n\n{prompt}"
