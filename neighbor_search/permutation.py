"""
Index translation between original point order and tree order.
"""

import numpy as np
from typing import Union

from .errors import ConfigurationError

IndexLike = Union[int, np.ndarray]


class PermutationMap:
    """
    Bidirectional map built alongside a tree.

    ``old_from_new[i]`` is the original index of the point stored at
    position ``i`` of the reordered data; ``new_from_old`` is its inverse.
    Both arrays are read-only.
    """

    __slots__ = ['old_from_new', 'new_from_old']

    def __init__(self, old_from_new: np.ndarray):
        old_from_new = np.array(old_from_new, dtype=np.int64)
        n = old_from_new.shape[0]
        if old_from_new.ndim != 1 or not np.array_equal(np.sort(old_from_new), np.arange(n)):
            raise ConfigurationError("old_from_new is not a permutation of 0..n-1")

        new_from_old = np.empty(n, dtype=np.int64)
        new_from_old[old_from_new] = np.arange(n, dtype=np.int64)

        old_from_new.setflags(write=False)
        new_from_old.setflags(write=False)
        self.old_from_new = old_from_new
        self.new_from_old = new_from_old

    @classmethod
    def identity(cls, n: int) -> 'PermutationMap':
        return cls(np.arange(n, dtype=np.int64))

    def to_original(self, internal: IndexLike) -> IndexLike:
        """Map tree-internal index(es) back to the caller's indices."""
        result = self.old_from_new[internal]
        return int(result) if np.ndim(result) == 0 else result

    def to_internal(self, original: IndexLike) -> IndexLike:
        result = self.new_from_old[original]
        return int(result) if np.ndim(result) == 0 else result

    def is_identity(self) -> bool:
        return bool(np.array_equal(self.old_from_new, np.arange(len(self))))

    def __len__(self) -> int:
        return self.old_from_new.shape[0]
