"""Dense vector: a flat list of mutable scalars."""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Type

from .errors import check_index, check_range
from .iterators import DenseVectorIterator
from .scalar import ConstScalar, Real, ScalarLike
from .vector import Vector, _sort_key

__all__ = ["DenseVector"]


class DenseVector(Vector):
    """Every position holds its own scalar object.

    :meth:`slice` returns a vector sharing those scalar objects, so writing
    through ``v.slice(a, b).at(k)`` is visible in ``v``.  Structural changes
    (``swap``, ``resize`` ...) of a slice only affect the slice itself.
    """

    def __init__(self, values: Optional[List[Real]] = None, scalar_type: Type[Real] = Real):
        self._values: List[Real] = values if values is not None else []
        self.scalar_type = scalar_type

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------

    @classmethod
    def null(cls, n: int, scalar_type: Type[Real] = Real) -> "DenseVector":
        return cls([scalar_type() for _ in range(n)], scalar_type)

    @classmethod
    def nil(cls, scalar_type: Type[Real] = Real) -> "DenseVector":
        return cls([], scalar_type)

    @classmethod
    def from_values(cls, values: Iterable[float], scalar_type: Type[Real] = Real) -> "DenseVector":
        return cls([scalar_type(float(v)) for v in values], scalar_type)

    @classmethod
    def from_scalars(cls, scalars: Iterable[ScalarLike], scalar_type: Type[Real] = Real) -> "DenseVector":
        return cls([scalar_type().set(s) for s in scalars], scalar_type)

    @classmethod
    def from_triplets(
        cls, indices: Sequence[int], values: Sequence[ScalarLike], n: int, scalar_type: Type[Real] = Real
    ) -> "DenseVector":
        if len(indices) != len(values):
            raise ValueError("indices and values must have the same length")
        r = cls.null(n, scalar_type)
        for i, v in zip(indices, values):
            r.at(i).set(v)
        return r

    # ------------------------------------------------------------------
    # Storage primitives
    # ------------------------------------------------------------------

    def dim(self) -> int:
        return len(self._values)

    def const_at(self, i: int) -> ConstScalar:
        check_index(i, len(self._values))
        return self._values[i]

    def _at_key(self, i: int) -> Real:
        return self._values[i]

    def _cursor(self, prune: bool) -> DenseVectorIterator:
        return DenseVectorIterator(self)

    def iterator_from(self, start: int) -> DenseVectorIterator:
        return DenseVectorIterator(self, start)

    def clone(self) -> "DenseVector":
        return DenseVector([s.clone() for s in self._values], self.scalar_type)

    def reset(self) -> "DenseVector":
        for s in self._values:
            s.reset()
        return self

    def resize(self, n: int) -> "DenseVector":
        if n < len(self._values):
            del self._values[n:]
        else:
            self._values.extend(self.scalar_type() for _ in range(n - len(self._values)))
        return self

    def slice(self, start: int, stop: int) -> "DenseVector":
        check_range(start, stop, len(self._values))
        return DenseVector(self._values[start:stop], self.scalar_type)

    def swap(self, i: int, j: int) -> "DenseVector":
        check_index(i, len(self._values))
        check_index(j, len(self._values))
        self._values[i], self._values[j] = self._values[j], self._values[i]
        return self

    def sort(self, reverse: bool = False) -> "DenseVector":
        self._values.sort(key=_sort_key, reverse=reverse)
        return self

    def append_scalar(self, s: ScalarLike) -> "DenseVector":
        self._values.append(self.scalar_type().set(s))
        return self

    def append_vector(self, v: Vector) -> "DenseVector":
        self._values.extend(self.scalar_type().set(v.const_at(i)) for i in range(v.dim()))
        return self

    def __repr__(self) -> str:
        return f"DenseVector(dim={len(self._values)}, scalar_type={self.scalar_type.__name__})"

