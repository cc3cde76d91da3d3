"""Iteration protocol for vectors and matrices.

Every iterator exposes the same small cursor protocol

  ```python
  it = v.iterator()
  while it.ok():
      i, s = it.index(), it.get()
      ...
      it.next()
  ```

and is also a regular Python iterable yielding ``(index, scalar)`` pairs, so
``for i, s in v.iterator(): ...`` is equivalent.  Internally, cursors are
ordered by an integer ``key()``: the position for vectors and the logical
row-major offset ``i * cols + j`` for matrices.  Joint iteration only compares
keys, which lets vectors and matrices share one implementation.

Mutable sparse iterators also keep the representation compact: when a cursor
leaves an entry that has decayed to a structural zero (value and all
derivatives exactly 0.0) the entry is deleted from the vector.  Read-only
iterators skip such entries without touching the container.
"""

from __future__ import annotations

from typing import Callable, Iterator, List, Optional, Sequence, Tuple

from .scalar import ZERO, ConstScalar

__all__ = [
    "SparseVectorIterator",
    "DenseVectorIterator",
    "SparseMatrixIterator",
    "DenseMatrixIterator",
    "JointIterator",
]


class _Cursor:
    """Shared Python-iterator glue for all cursors."""

    __slots__ = ()

    def ok(self) -> bool:  # pragma: no cover – interface
        raise NotImplementedError

    def key(self) -> int:  # pragma: no cover – interface
        raise NotImplementedError

    def index(self):
        return self.key()

    def get(self) -> ConstScalar:  # pragma: no cover – interface
        raise NotImplementedError

    def next(self):  # pragma: no cover – interface
        raise NotImplementedError

    def __iter__(self) -> Iterator[Tuple[object, ConstScalar]]:
        while self.ok():
            yield self.index(), self.get()
            self.next()


# -----------------------------------------------------------------------------
# Vectors
# -----------------------------------------------------------------------------


class SparseVectorIterator(_Cursor):
    """Ascending walk over the occupied entries of a sparse vector.

    With *prune* set (mutable iterators) entries found to be structural zeros
    are removed from the vector: the current entry when the cursor moves past
    it, and any zero entry the cursor would otherwise land on.
    """

    __slots__ = ("_vector", "_it", "_stop", "_prune")

    def __init__(self, vector, start: int = 0, stop: Optional[int] = None, *, prune: bool = True):
        self._vector = vector
        self._it = vector._index.iterator_from(start)
        self._stop = stop
        self._prune = prune
        self._skip_zeros()

    def ok(self) -> bool:
        return self._it.ok() and (self._stop is None or self._it.get() < self._stop)

    def key(self) -> int:
        return self._it.get()

    def get(self) -> ConstScalar:
        return self._vector._entries[self._it.get()]

    def next(self):
        if self._prune and self.ok() and self.get().is_structural_zero():
            self._vector._remove(self._it.get())
        self._it.next()
        self._skip_zeros()

    def _skip_zeros(self):
        while self.ok() and self.get().is_structural_zero():
            if self._prune:
                self._vector._remove(self._it.get())
            self._it.next()


class DenseVectorIterator(_Cursor):
    """Visits every position of a dense vector, zero or not."""

    __slots__ = ("_values", "_i", "_stop")

    def __init__(self, vector, start: int = 0, stop: Optional[int] = None):
        self._values = vector._values
        self._i = start
        self._stop = len(self._values) if stop is None else stop

    def ok(self) -> bool:
        return self._i < self._stop

    def key(self) -> int:
        return self._i

    def get(self) -> ConstScalar:
        return self._values[self._i]

    def next(self):
        self._i += 1


# -----------------------------------------------------------------------------
# Matrices
# -----------------------------------------------------------------------------


class SparseMatrixIterator(_Cursor):
    """Row-major walk over the occupied cells of a sparse matrix view.

    Row-major views stream the backing vector between the first and last cell
    of the window.  Transposed views store columns contiguously, so the
    occupied cells of the window are collected and ordered up front.
    """

    def __init__(self, matrix, *, prune: bool = True):
        self._matrix = matrix
        self._backing = matrix._backing
        self._prune = prune
        self._cell: Optional[Tuple[int, int]] = None
        self._source: Optional[SparseVectorIterator] = None
        self._cells: List[Tuple[int, int]] = []
        self._pos = 0
        rows, cols = matrix.dims()
        if rows == 0 or cols == 0:
            return
        if not matrix.transposed:
            start = matrix._backing_index(0, 0)
            stop = matrix._backing_index(rows - 1, cols - 1) + 1
            self._source = SparseVectorIterator(self._backing, start, stop, prune=prune)
            self._seek_stream()
        else:
            for k in self._backing._index:
                cell = matrix._cell_of(k)
                if cell is not None:
                    self._cells.append((cell[0] * cols + cell[1], k))
            self._cells.sort()
            self._seek_snapshot()

    def ok(self) -> bool:
        return self._cell is not None

    def key(self) -> int:
        i, j = self._cell  # type: ignore[misc]
        return i * self._matrix.cols + j

    def index(self) -> Tuple[int, int]:
        return self._cell  # type: ignore[return-value]

    def get(self) -> ConstScalar:
        if self._source is not None:
            return self._source.get()
        return self._backing._entries[self._cells[self._pos][1]]

    def next(self):
        if self._cell is None:
            return
        if self._source is not None:
            self._source.next()
            self._seek_stream()
            return
        k = self._cells[self._pos][1]
        s = self._backing._entries.get(k)
        if self._prune and s is not None and s.is_structural_zero():
            self._backing._remove(k)
        self._pos += 1
        self._seek_snapshot()

    def _seek_stream(self):
        source = self._source
        while source.ok():
            cell = self._matrix._cell_of(source.key())
            if cell is not None:
                self._cell = cell
                return
            source.next()
        self._cell = None

    def _seek_snapshot(self):
        cols = self._matrix.cols
        while self._pos < len(self._cells):
            key, k = self._cells[self._pos]
            s = self._backing._entries.get(k)
            if s is not None and not s.is_structural_zero():
                self._cell = divmod(key, cols)
                return
            if s is not None and self._prune:
                self._backing._remove(k)
            self._pos += 1
        self._cell = None


class DenseMatrixIterator(_Cursor):
    """Visits every cell of a dense matrix view in row-major order."""

    def __init__(self, matrix):
        self._matrix = matrix
        self._rows, self._cols = matrix.dims()
        self._key = 0
        self._size = self._rows * self._cols

    def ok(self) -> bool:
        return self._key < self._size

    def key(self) -> int:
        return self._key

    def index(self) -> Tuple[int, int]:
        return divmod(self._key, self._cols)

    def get(self) -> ConstScalar:
        i, j = divmod(self._key, self._cols)
        return self._matrix._backing._values[self._matrix._backing_index(i, j)]

    def next(self):
        self._key += 1


# -----------------------------------------------------------------------------
# Joint iteration
# -----------------------------------------------------------------------------


class JointIterator:
    """Synchronised sparse-union walk over two or three cursors.

    At each step the smallest key among the live cursors wins; cursors sitting
    at that key report their scalar, the others report an exact zero.  Keys at
    which every side is zero are skipped, so a joint walk over sparse operands
    never degenerates into a dense sweep.

    When *target* is given, ``cursors[0]`` walks the target and :meth:`at`
    returns its mutable scalar at the current key, inserting a zero entry
    first if the target has none there.
    """

    def __init__(
        self,
        cursors: Sequence[_Cursor],
        *,
        target=None,
        index_of: Callable[[int], object] = lambda k: k,
    ):
        self._cursors = list(cursors)
        self._target = target
        self._index_of = index_of
        self._key: Optional[int] = None
        self._hit: List[bool] = [False] * len(self._cursors)
        self._values: List[Optional[ConstScalar]] = [None] * len(self._cursors)
        self._seek()

    def ok(self) -> bool:
        return self._key is not None

    def key(self) -> int:
        return self._key  # type: ignore[return-value]

    def index(self):
        return self._index_of(self._key)

    def get(self) -> Tuple[ConstScalar, ...]:
        return tuple(ZERO if s is None else s for s in self._values)

    def at(self):
        """Mutable target scalar at the current key (auto-vivified)."""
        if self._target is None:
            raise TypeError("read-only joint iterator has no target")
        s = self._values[0]
        if s is None:
            s = self._target._at_key(self._key)
            self._values[0] = s
        return s

    def next(self):
        for c, hit in zip(self._cursors, self._hit):
            if hit:
                c.next()
        self._seek()

    def _seek(self):
        cursors = self._cursors
        while True:
            keys = [c.key() for c in cursors if c.ok()]
            if not keys:
                self._key = None
                self._hit = [False] * len(cursors)
                self._values = [None] * len(cursors)
                return
            k = min(keys)
            self._key = k
            self._hit = [c.ok() and c.key() == k for c in cursors]
            self._values = [c.get() if hit else None for c, hit in zip(cursors, self._hit)]
            if any(s is not None and not s.is_structural_zero() for s in self._values):
                return
            for c, hit in zip(cursors, self._hit):
                if hit:
                    c.next()

    def __iter__(self) -> Iterator[Tuple[object, Tuple[ConstScalar, ...]]]:
        while self.ok():
            yield self.index(), self.get()
            self.next()
