"""Tests for the result-history ring buffer."""

from __future__ import annotations

import pytest

from tradesim.simulation.history import DEFAULT_HISTORY_CAPACITY, RingBuffer


class TestRingBuffer:
    def test_default_capacity(self) -> None:
        assert RingBuffer[int]().capacity == DEFAULT_HISTORY_CAPACITY == 100

    def test_invalid_capacity(self) -> None:
        with pytest.raises(ValueError, match="capacity"):
            RingBuffer[int](capacity=0)

    def test_push_and_items(self) -> None:
        buf = RingBuffer[int](capacity=3)
        assert buf.items() == ()
        for i in range(3):
            buf.push(i)
        assert buf.items() == (0, 1, 2)

    def test_evicts_oldest(self) -> None:
        buf = RingBuffer[int](capacity=3)
        for i in range(4):
            buf.push(i)
        assert buf.items() == (1, 2, 3)
        assert len(buf) == 3

    def test_bounded_after_many_pushes(self) -> None:
        buf = RingBuffer[int]()
        for i in range(250):
            buf.push(i)
        assert len(buf) == 100
        assert buf.items()[0] == 150
        assert buf.items()[-1] == 249

    def test_items_is_snapshot(self) -> None:
        buf = RingBuffer[int](capacity=2)
        buf.push(1)
        items = buf.items()
        buf.push(2)
        buf.push(3)
        assert items == (1,)
