import logging

import pytest

from relaykit.history import (
    TruncationPolicy,
    build_prompt_with_history,
    format_history_for_gemini,
    participation,
    text_length,
    total_chars,
)
from relaykit.models import AgentState, Chat, ChatMessage


def _chat(*messages: tuple[str, str], title: str = "Demo") -> Chat:
    chat = Chat(id="legacy_1", title=title)
    for agent, text in messages:
        chat.messages.append(ChatMessage(chat_id=chat.id, agent=agent, message=text))
    return chat


# --- Length measurement ---


def test_text_length_counts_utf16_code_units():
    assert text_length("abc") == 3
    assert text_length("é") == 1
    assert text_length("😀") == 2
    assert text_length("\ud800") == 1


def test_total_chars_sums_messages():
    chat = _chat(("alice", "hello"), ("bob", "😀"))
    assert total_chars(chat.messages) == 7


# --- TruncationPolicy ---


def test_truncation_noop_within_budget():
    chat = _chat(("alice", "a" * 10), ("bob", "b" * 10))
    policy = TruncationPolicy(history_limit=20)
    assert policy.apply(chat) == []
    assert len(chat.messages) == 2
    assert policy.overflow(chat) == 0


def test_truncation_evicts_oldest_first():
    chat = _chat(("alice", "a" * 10), ("bob", "b" * 10), ("carol", "c" * 10))
    policy = TruncationPolicy(history_limit=25)
    evicted = policy.apply(chat)
    assert [msg.agent for msg in evicted] == ["alice"]
    assert [msg.agent for msg in chat.messages] == ["bob", "carol"]


def test_truncation_handles_bulk_overflow_in_one_pass():
    chat = _chat(*[("alice", "x" * 10) for _ in range(10)], ("bob", "y" * 15))
    policy = TruncationPolicy(history_limit=30)
    evicted = policy.apply(chat)
    assert len(evicted) == 9
    assert total_chars(chat.messages) <= 30
    assert chat.messages[-1].agent == "bob"


def test_truncation_never_evicts_last_message():
    chat = _chat(("alice", "a" * 10), ("bob", "b" * 50))
    policy = TruncationPolicy(history_limit=20)
    policy.apply(chat)
    assert [msg.agent for msg in chat.messages] == ["bob"]
    assert policy.overflow(chat) == 30


def test_four_full_size_messages_keep_the_newest_three():
    policy = TruncationPolicy()
    chat = _chat()
    for letter in "abcd":
        chat.messages.append(ChatMessage(chat_id=chat.id, agent="alice", message=letter * 10_000))
        policy.apply(chat)
    assert total_chars(chat.messages) <= 30_000
    assert [msg.message[0] for msg in chat.messages] == ["b", "c", "d"]


def test_truncation_logs_evictions_as_warnings(caplog):
    chat = _chat(("alice", "a" * 10), ("bob", "b" * 10))
    with caplog.at_level(logging.WARNING, logger="relaykit.history.truncation"):
        TruncationPolicy(history_limit=15).apply(chat)

    assert [record.levelno for record in caplog.records] == [logging.WARNING]
    assert "removed message from alice" in caplog.records[0].getMessage()


def test_truncation_rejects_non_positive_limit():
    with pytest.raises(ValueError):
        TruncationPolicy(history_limit=0)


# --- Formatting ---


def test_format_history_for_gemini():
    chat = _chat(("alice", "hi"), ("bob", "hello\nthere"), title="Planning")
    assert format_history_for_gemini(chat) == (
        '=== CHAT HISTORY - "Planning" ===\n'
        "[alice]: hi\n"
        "[bob]: hello\nthere\n"
        "=== END CHAT HISTORY ==="
    )


def test_format_history_empty_chat():
    assert format_history_for_gemini(_chat()) == ""


def test_build_prompt_with_history():
    chat = _chat(("alice", "hi"))
    prompt = build_prompt_with_history(chat, "What next?")
    assert prompt.startswith('=== CHAT HISTORY - "Demo" ===')
    assert prompt.endswith("=== END CHAT HISTORY ===\n\nWhat next?")
    assert build_prompt_with_history(_chat(), "What next?") == "What next?"


# --- Participation ---


def test_unknown_agent_starts_new():
    states = participation.update_for_new_message("alice", "legacy_1", "m1", {})
    assert states["alice"].participation_state == "new"
    assert states["alice"].last_seen_message_id == "m1"


def test_author_becomes_continuous_and_others_returning():
    states = participation.update_for_new_message("alice", "legacy_1", "m1", {})
    states = participation.update_for_new_message("alice", "legacy_1", "m2", states)
    assert states["alice"].participation_state == "continuous"

    states = participation.update_for_new_message("bob", "legacy_1", "m3", states)
    assert states["alice"].participation_state == "returning"
    assert states["bob"].participation_state == "new"


def test_update_does_not_mutate_input():
    original = {"alice": AgentState(participation_state="continuous", last_seen_message_id="m1")}
    participation.update_for_new_message("bob", "legacy_1", "m2", original)
    assert original["alice"].participation_state == "continuous"


def test_messages_for_agent_by_state():
    chat = _chat(("alice", "one"), ("bob", "two"), ("carol", "three"))
    first, second, third = chat.messages
    states = {
        "alice": AgentState(participation_state="returning", last_seen_message_id=first.id),
        "bob": AgentState(participation_state="continuous", last_seen_message_id=second.id),
        "carol": AgentState(participation_state="new"),
    }
    assert participation.messages_for_agent("alice", chat.messages, states) == [second, third]
    assert participation.messages_for_agent("bob", chat.messages, states) == [third]
    assert participation.messages_for_agent("carol", chat.messages, states) == chat.messages
    assert participation.messages_for_agent("dave", chat.messages, states) == chat.messages


def test_messages_since_unknown_id_returns_everything():
    chat = _chat(("alice", "one"), ("bob", "two"))
    assert participation.messages_since(chat.messages, "gone") == chat.messages


def test_clean_states_drops_evicted_references():
    chat = _chat(("alice", "one"))
    states = {
        "alice": AgentState(last_seen_message_id=chat.messages[0].id),
        "bob": AgentState(last_seen_message_id="evicted"),
    }
    cleaned = participation.clean_states(states, chat.messages)
    assert cleaned["alice"].last_seen_message_id == chat.messages[0].id
    assert cleaned["bob"].last_seen_message_id is None


def test_participation_summary_lists_agents():
    states = participation.update_for_new_message("alice", "legacy_1", "m1", {})
    assert participation.participation_summary(states).startswith("Agent states: alice:new(")


def test_mark_returning_only_affects_continuous_agents():
    states = {
        "alice": AgentState(participation_state="continuous"),
        "bob": AgentState(participation_state="new"),
    }
    participation.mark_returning("alice", states)
    participation.mark_returning("bob", states)
    participation.mark_returning("carol", states)
    assert states["alice"].participation_state == "returning"
    assert states["bob"].participation_state == "new"
    assert "carol" not in states
