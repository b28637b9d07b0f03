import asyncio

from relaykit import ChatStore, RelaySettings, configure_logging

# Shared Chat - Two agents append to one chat concurrently, then a third joins.

# Each append runs in the chat's critical section, so both messages land in
# lock-acquisition order. The late joiner is replayed the full history as a
# transcript ready to prefix its next prompt.

# Usage:
#     uv run python examples/shared_chat.py

# Chats are written under $RELAYKIT_STORAGE_DIR (a per-process temp dir by default).
# Set RELAYKIT_PERSISTENCE_TYPE=memory to keep everything in memory.


async def main():
    settings = RelaySettings()
    configure_logging(settings.log_level)

    print("=" * 50)
    print("Shared Chat Demo")
    print("=" * 50)

    store = ChatStore.from_settings(settings)
    print(f"\nUsing {settings.persistence_type} persistence")

    chat_id = await store.create_chat("Demo", "alice")
    print(f"Created chat {chat_id}")

    await asyncio.gather(
        store.add_message(chat_id, "alice", "hi"),
        store.add_message(chat_id, "bob", "hello"),
    )

    chat = await store.get_chat(chat_id, requesting_agent="carol")
    print(f"Participants: {', '.join(chat.participants)}")

    history = await store.get_history_for_agent(chat_id, "carol")
    print(f"carol is replayed {len(history)} messages\n")
    print(store.build_prompt_with_history(chat, "[carol]: what did I miss?"))

    for summary in await store.list_chats():
        print(f"\n{summary.chat_id}: {summary.title} ({summary.message_count} messages)")


if __name__ == "__main__":
    asyncio.run(main())
