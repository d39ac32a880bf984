"""ABOUTME: Narrow interface to the distributed counter store used for rate limiting
ABOUTME: Atomic increment with millisecond expiry, matching Redis INCR/PEXPIRE/PTTL semantics"""

import abc


class AbstractCounterStore(abc.ABC):
    """Key/value counters with atomic increment and per-key expiry.

    Implementations raise CounterStoreError for any connectivity problem or
    timeout, and must bound every call by a timeout.
    """

    @abc.abstractmethod
    def incr(self, key: str) -> int:
        """Atomically increment the counter and return the new value (1 for a new key)."""
        raise NotImplementedError

    @abc.abstractmethod
    def pexpire(self, key: str, milliseconds: int) -> None:
        """Set the key to expire after the given number of milliseconds."""
        raise NotImplementedError

    @abc.abstractmethod
    def pttl(self, key: str) -> int:
        """Milliseconds until the key expires; -1 if it has no expiry, -2 if it does not exist."""
        raise NotImplementedError

    @abc.abstractmethod
    def get(self, key: str) -> int | None:
        raise NotImplementedError

    @abc.abstractmethod
    def delete(self, key: str) -> bool:
        """Remove the key. True if it existed."""
        raise NotImplementedError

    @abc.abstractmethod
    def ping(self) -> bool:
        raise NotImplementedError
