"""Exceptions raised by the pool data-node."""


class PoolNodeError(Exception):
    """Base exception for pool data-node errors."""
    pass


class ConfigError(PoolNodeError):
    """Raised when the node configuration is missing or invalid."""
    pass


class TransportError(PoolNodeError):
    """Raised when a batched read fails for a whole tick."""
    pass


class MisalignedResultsError(PoolNodeError):
    """Raised when a result list does not line up with its descriptor list."""

    def __init__(self, expected: int, received: int):
        self.expected = expected
        self.received = received
        super().__init__(f"Expected {expected} results, received {received}")
