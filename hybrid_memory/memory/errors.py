"""Exceptions raised by the memory engine.

Absence (a missing id) is never an exception: lookups return ``None`` and
mutations return ``False``.
"""


class MemoryEngineError(Exception):
    """Base class for memory engine errors."""


class NotInitializedError(MemoryEngineError):
    """An operation was called before ``open()`` / ``initialize()``."""


class CorruptDatabaseError(MemoryEngineError):
    """The on-disk database could not be read or parsed."""


class EmbeddingError(MemoryEngineError):
    """The embedding provider failed to produce a vector."""


class DimensionMismatchError(MemoryEngineError, ValueError):
    """Two vectors of different lengths were compared."""

    def __init__(self, left: int, right: int) -> None:
        super().__init__(f"Vector dimension mismatch: {left} vs {right}")
        self.left = left
        self.right = right
