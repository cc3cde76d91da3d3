"""Ordered set of active indices backing a sparse vector.

Inserts append to an unsorted list and merely flag the structure as dirty;
the list is sorted on demand the first time an iterator asks for it.  Forward
AD workloads typically write many single entries (a sparse gradient) and then
sweep once, so one ``O(k log k)`` sort per sweep beats keeping the list sorted
on every insert.

Iterators do not hold a position into the list.  They remember the last
index they returned and locate the successor with a binary search, which keeps
them valid when the owning vector inserts or deletes entries mid-sweep.
"""

from __future__ import annotations

from bisect import bisect_left, bisect_right
from typing import Iterator, List, Optional

__all__ = ["SparseIndex", "SparseIndexIterator"]


class SparseIndex:
    __slots__ = ("_values", "_sorted")

    def __init__(self, values: Optional[List[int]] = None, *, is_sorted: bool = False):
        self._values: List[int] = list(values) if values is not None else []
        self._sorted = is_sorted or len(self._values) < 2

    def __len__(self) -> int:
        return len(self._values)

    @property
    def is_sorted(self) -> bool:
        return self._sorted

    def insert(self, i: int):
        """Append *i*; ascending appends keep the structure sorted."""
        values = self._values
        if self._sorted and values and values[-1] > i:
            self._sorted = False
        values.append(i)

    def delete(self, i: int):
        values = self._values
        if self._sorted:
            k = bisect_left(values, i)
            if k < len(values) and values[k] == i:
                del values[k]
                return
            raise KeyError(i)
        values.remove(i)

    def clear(self):
        self._values.clear()
        self._sorted = True

    def ensure_sorted(self) -> List[int]:
        """Sort if needed and return the (read-only) sorted index list."""
        if not self._sorted:
            self._values.sort()
            self._sorted = True
        return self._values

    def successor(self, i: int, *, inclusive: bool) -> Optional[int]:
        """Smallest stored index ``>= i`` (``> i`` when not *inclusive*)."""
        values = self.ensure_sorted()
        k = bisect_left(values, i) if inclusive else bisect_right(values, i)
        return values[k] if k < len(values) else None

    def iterator(self) -> "SparseIndexIterator":
        return SparseIndexIterator(self, 0)

    def iterator_from(self, start: int) -> "SparseIndexIterator":
        return SparseIndexIterator(self, start)

    def __iter__(self) -> Iterator[int]:
        return iter(list(self.ensure_sorted()))

    def clone(self) -> "SparseIndex":
        return SparseIndex(self._values, is_sorted=self._sorted)

    def __repr__(self) -> str:
        return f"SparseIndex(n={len(self._values)}, sorted={self._sorted})"


class SparseIndexIterator:
    """Ascending walk over a :class:`SparseIndex` starting at a lower bound."""

    __slots__ = ("_index", "_current")

    def __init__(self, index: SparseIndex, start: int = 0):
        self._index = index
        self._current = index.successor(start, inclusive=True)

    def ok(self) -> bool:
        return self._current is not None

    def get(self) -> int:
        return self._current  # type: ignore[return-value]

    def next(self):
        if self._current is not None:
            self._current = self._index.successor(self._current, inclusive=False)

    def __iter__(self) -> Iterator[int]:
        while self.ok():
            yield self.get()
            self.next()
