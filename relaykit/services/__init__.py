from relaykit.services.chat_store import ChatStore

__all__ = ["ChatStore"]
