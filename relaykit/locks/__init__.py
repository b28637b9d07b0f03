from relaykit.locks.manager import LockManager

__all__ = ["LockManager"]
