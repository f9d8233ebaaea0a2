"""Utility modules for treasury relay."""

from treasury_relay.utils.locks import LockTimeoutError, SerialLock

__all__ = ["LockTimeoutError", "SerialLock"]
