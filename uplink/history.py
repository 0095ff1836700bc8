# uplink/history.py
# History Buffer: the most recent broadcast messages, replayed to clients when they join.

from collections import deque


class HistoryBuffer:
    """Bounded FIFO of Messages. Appending past capacity evicts the oldest entry."""

    def __init__(self, capacity=50):
        if capacity < 1:
            raise ValueError("History capacity must be at least 1")
        self.capacity = capacity
        self._messages = deque(maxlen=capacity)

    def append(self, message):
        self._messages.append(message)

    def snapshot(self):
        """Returns the retained messages, oldest first, as an immutable tuple."""
        return tuple(self._messages)

    def clear(self):
        self._messages.clear()

    def __len__(self):
        return len(self._messages)
