"""Sparse vector of differentiable scalars.

Storage is a ``dict`` mapping active indices to scalars plus a
:class:`~sparsediff.sparse_index.SparseIndex` that mirrors the key set and
provides ordered traversal.  Absent positions read as an immutable zero
(:data:`sparsediff.scalar.ZERO`); writing through :meth:`at` inserts a fresh
zero scalar of the vector's ``scalar_type`` first.

Entries are never removed eagerly when they become zero.  Mutable iterators
delete structural zeros as they walk past them, so every full sweep leaves the
representation compact again.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Sequence, Type

from .errors import check_index, check_range
from .iterators import SparseVectorIterator
from .scalar import ZERO, ConstScalar, Real, ScalarLike
from .sparse_index import SparseIndex
from .vector import Vector, _sort_key

__all__ = ["SparseVector"]


class SparseVector(Vector):
    def __init__(self, n: int = 0, scalar_type: Type[Real] = Real):
        if n < 0:
            raise ValueError("Vector dimension must be non-negative")
        self._n = n
        self._entries: Dict[int, Real] = {}
        self._index = SparseIndex()
        self.scalar_type = scalar_type

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def null(cls, n: int, scalar_type: Type[Real] = Real) -> "SparseVector":
        """All-zero vector of dimension *n* (no stored entries)."""
        return cls(n, scalar_type)

    @classmethod
    def nil(cls, scalar_type: Type[Real] = Real) -> "SparseVector":
        """Bare zero-length vector, e.g. as the target of an import."""
        return cls(0, scalar_type)

    @classmethod
    def from_triplets(
        cls, indices: Sequence[int], values: Sequence[ScalarLike], n: int, scalar_type: Type[Real] = Real
    ) -> "SparseVector":
        """Vector of dimension *n* with ``v[indices[k]] = values[k]``."""
        if len(indices) != len(values):
            raise ValueError("indices and values must have the same length")
        r = cls(n, scalar_type)
        for i, v in zip(indices, values):
            r.at(i).set(v)
        return r

    @classmethod
    def from_values(cls, values: Iterable[float], scalar_type: Type[Real] = Real) -> "SparseVector":
        """Sparse copy of a dense sequence; zeros are not stored."""
        values = [float(v) for v in values]
        r = cls(len(values), scalar_type)
        for i, v in enumerate(values):
            if v != 0.0:
                r._at_key(i).set_value(v)
        return r

    # ------------------------------------------------------------------
    # Storage primitives
    # ------------------------------------------------------------------

    def dim(self) -> int:
        return self._n

    def nnz(self) -> int:
        """Number of stored entries (may include not yet pruned zeros)."""
        return len(self._entries)

    def const_at(self, i: int) -> ConstScalar:
        check_index(i, self._n)
        return self._entries.get(i, ZERO)

    def value_at(self, i: int) -> float:
        check_index(i, self._n)
        s = self._entries.get(i)
        return 0.0 if s is None else s.get_value()

    def _at_key(self, i: int) -> Real:
        s = self._entries.get(i)
        if s is None:
            s = self.scalar_type()
            self._entries[i] = s
            self._index.insert(i)
        return s

    def _remove(self, i: int):
        del self._entries[i]
        self._index.delete(i)

    def _cursor(self, prune: bool) -> SparseVectorIterator:
        return SparseVectorIterator(self, prune=prune)

    def iterator_from(self, start: int, stop: Optional[int] = None) -> SparseVectorIterator:
        return SparseVectorIterator(self, start, stop, prune=True)

    def const_iterator_from(self, start: int, stop: Optional[int] = None) -> SparseVectorIterator:
        return SparseVectorIterator(self, start, stop, prune=False)

    def indices(self) -> List[int]:
        """Sorted indices of the stored entries."""
        return list(self._index)

    # ------------------------------------------------------------------
    # Whole-vector operations
    # ------------------------------------------------------------------

    def clone(self) -> "SparseVector":
        r = SparseVector(self._n, self.scalar_type)
        r._entries = {i: s.clone() for i, s in self._entries.items()}
        r._index = self._index.clone()
        return r

    def reset(self) -> "SparseVector":
        self._entries.clear()
        self._index.clear()
        return self

    def resize(self, n: int) -> "SparseVector":
        """Change the declared dimension; entries at ``i >= n`` are dropped."""
        if n < 0:
            raise ValueError("Vector dimension must be non-negative")
        if n < self._n:
            for i in [i for i in self._entries if i >= n]:
                self._remove(i)
        self._n = n
        return self

    def slice(self, start: int, stop: int) -> "SparseVector":
        """Copy of ``[start, stop)`` shifted to start at index 0."""
        check_range(start, stop, self._n)
        r = SparseVector(stop - start, self.scalar_type)
        for i, s in self.const_iterator_from(start, stop):
            r._entries[i - start] = s.clone()
            r._index.insert(i - start)
        return r

    def swap(self, i: int, j: int) -> "SparseVector":
        check_index(i, self._n)
        check_index(j, self._n)
        entries = self._entries
        si, sj = entries.get(i), entries.get(j)
        if si is not None and sj is not None:
            entries[i], entries[j] = sj, si
        elif si is not None:
            self._remove(i)
            entries[j] = si
            self._index.insert(j)
        elif sj is not None:
            self._remove(j)
            entries[i] = sj
            self._index.insert(i)
        return self

    def sort(self, reverse: bool = False) -> "SparseVector":
        """Sort all ``dim()`` positions by value, absent entries counting as 0.

        Negative values end up in front (ascending) or at the back (reverse),
        positive values at the opposite end, and the zero run in between stays
        unmaterialised.  Stored zero values that still carry derivatives are
        kept adjacent to the zero run.  NaNs sort as largest.
        """
        neg: List[Real] = []
        zero: List[Real] = []
        pos: List[Real] = []
        for _, s in self.iterator():
            v = s.get_value()
            if v < 0.0:
                neg.append(s)
            elif v == 0.0:
                zero.append(s)
            else:
                pos.append(s)
        key = _sort_key
        neg.sort(key=key, reverse=reverse)
        pos.sort(key=key, reverse=reverse)
        if not reverse:
            head, tail = neg + zero, pos
        else:
            head, tail = pos + zero, neg
        n = self._n
        self._entries = {}
        for k, s in enumerate(head):
            self._entries[k] = s
        for k, s in enumerate(tail):
            self._entries[n - len(tail) + k] = s
        self._index = SparseIndex(sorted(self._entries), is_sorted=True)
        return self

    def append_scalar(self, s: ScalarLike) -> "SparseVector":
        self._n += 1
        self._at_key(self._n - 1).set(s)
        return self

    def append_vector(self, v: Vector) -> "SparseVector":
        offset = self._n
        self._n += v.dim()
        for i, s in v.const_iterator():
            self._at_key(offset + i).set(s)
        return self

    def __repr__(self) -> str:
        return f"SparseVector(dim={self._n}, nnz={len(self._entries)}, scalar_type={self.scalar_type.__name__})"
