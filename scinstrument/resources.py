from __future__ import annotations

import threading

# scsynth reserves node 0 (root node) and node 1 (default group).
FIRST_NODE_ID = 2
# Buses below this index are the hardware outputs and inputs.
MIN_BUS_ID = 4


class IdCounter:
    """Monotonic id source with atomic read-modify-write."""

    def __init__(self, start: int) -> None:
        self._next = start
        self._lock = threading.Lock()

    def next(self) -> int:
        with self._lock:
            value = self._next
            self._next += 1
        return value


class ResourceAllocator:
    """Process-wide node and bus id issuance. Ids are never recycled."""

    def __init__(self, *, first_node_id: int = FIRST_NODE_ID, first_bus_id: int = MIN_BUS_ID) -> None:
        if first_node_id < FIRST_NODE_ID:
            raise ValueError(f"node ids below {FIRST_NODE_ID} are reserved")
        self.note_ids = IdCounter(first_node_id)
        self.bus_ids = IdCounter(first_bus_id)

    def next_note_id(self) -> int:
        return self.note_ids.next()

    def next_bus_id(self) -> int:
        return self.bus_ids.next()
