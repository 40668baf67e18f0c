"""
Bounded, sorted candidate list for one query point.
"""

import numpy as np
from typing import Optional, Tuple

from .sort_policies import NearestNeighborSort


class CandidateList:
    """
    Fixed-capacity list of (reference index, distance) pairs, best first.

    Entries are kept sorted by the ranking policy at all times. Once the
    list is full, a candidate that is not strictly better than the current
    worst entry is rejected. A candidate equal to existing entries goes
    after them, so ties keep their arrival order.

    Parameters
    ----------
    capacity : int
        Maximum number of entries (k).
    sort_policy : ranking policy, default=NearestNeighborSort
    """

    __slots__ = ['capacity', 'sort_policy', '_indices', '_distances', '_size']

    def __init__(self, capacity: int, sort_policy=NearestNeighborSort):
        if capacity < 1:
            raise ValueError(f"capacity must be >= 1, got {capacity}")
        self.capacity = capacity
        self.sort_policy = sort_policy
        self._indices = np.full(capacity, -1, dtype=np.int64)
        self._distances = np.full(capacity, sort_policy.worst_distance, dtype=np.float64)
        self._size = 0

    @property
    def full(self) -> bool:
        return self._size == self.capacity

    @property
    def worst_distance(self) -> float:
        """
        Distance a candidate has to beat to get in.

        The policy's worst sentinel until the list is full.
        """
        if self._size < self.capacity:
            return self.sort_policy.worst_distance
        return float(self._distances[self._size - 1])

    def sort_position(self, distance: float) -> Optional[int]:
        """Slot the candidate would occupy, or None if it is rejected."""
        is_better = self.sort_policy.is_better
        for pos in range(self._size):
            if is_better(distance, self._distances[pos]):
                return pos
        if self._size < self.capacity:
            return self._size
        return None

    def insert(self, position: int, index: int, distance: float) -> None:
        """
        Write an entry at ``position``, shifting the tail right by one.

        The last entry falls off if the list was full.
        """
        if not 0 <= position <= self._size or position >= self.capacity:
            raise IndexError(f"insert position {position} out of range")
        last = min(self._size, self.capacity - 1)
        if last > position:
            self._indices[position + 1:last + 1] = self._indices[position:last]
            self._distances[position + 1:last + 1] = self._distances[position:last]
        self._indices[position] = index
        self._distances[position] = distance
        if self._size < self.capacity:
            self._size += 1

    def try_insert(self, index: int, distance: float) -> bool:
        """
        Try to add a candidate.

        Returns True if it was added, False if rejected.
        """
        position = self.sort_position(distance)
        if position is None:
            return False
        self.insert(position, index, distance)
        return True

    @property
    def indices(self) -> np.ndarray:
        return self._indices[:self._size]

    @property
    def distances(self) -> np.ndarray:
        return self._distances[:self._size]

    def get_sorted(self) -> Tuple[np.ndarray, np.ndarray]:
        """Return copies of the indices and distances, best first."""
        return self.indices.copy(), self.distances.copy()

    def __len__(self) -> int:
        return self._size

    def __repr__(self) -> str:
        pairs = ", ".join(
            f"({i}, {d:.6g})" for i, d in zip(self.indices, self.distances)
        )
        return f"CandidateList(capacity={self.capacity}, [{pairs}])"
