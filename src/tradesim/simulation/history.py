"""Fixed-capacity ring buffer for the simulation result history."""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from typing import Generic, TypeVar

T = TypeVar("T")

DEFAULT_HISTORY_CAPACITY = 100


@dataclass
class RingBuffer(Generic[T]):
    """
    Count-bounded FIFO buffer.

    Appending beyond capacity evicts the oldest entry. Readers get tuple
    copies, so a published history never changes under them.

    Attributes:
        capacity: Maximum number of entries kept.
    """

    capacity: int = DEFAULT_HISTORY_CAPACITY
    _data: deque[T] = field(default_factory=deque, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {self.capacity}")
        self._data = deque(maxlen=self.capacity)

    def push(self, value: T) -> None:
        """Append a value, evicting the oldest one when full."""
        self._data.append(value)

    def items(self) -> tuple[T, ...]:
        """Get all values, oldest first, as an immutable tuple."""
        return tuple(self._data)

    def __len__(self) -> int:
        return len(self._data)
