"""Sparse matrix: a :class:`~sparsediff.matrix.Matrix` header over a sparse vector."""

from __future__ import annotations

from typing import Iterable, List, Sequence, Type

from .iterators import SparseMatrixIterator
from .matrix import Matrix
from .scalar import Real, ScalarLike
from .sparse_vector import SparseVector

__all__ = ["SparseMatrix"]


class SparseMatrix(Matrix):
    """Only non-zero cells are stored.

    Rows of an untransposed matrix and columns of a transposed one are
    contiguous in the backing vector; :meth:`row`/:meth:`col` still return
    copies since a sparse vector cannot share entries with another one.
    """

    _vector_type = SparseVector

    def __init__(self, rows: int = 0, cols: int = 0, scalar_type: Type[Real] = Real):
        if rows < 0 or cols < 0:
            raise ValueError("Matrix dimensions must be non-negative")
        super().__init__(SparseVector(rows * cols, scalar_type), rows, cols)

    @classmethod
    def null(cls, rows: int, cols: int, scalar_type: Type[Real] = Real) -> "SparseMatrix":
        return cls(rows, cols, scalar_type)

    @classmethod
    def nil(cls, scalar_type: Type[Real] = Real) -> "SparseMatrix":
        return cls(0, 0, scalar_type)

    @classmethod
    def identity(cls, n: int, scalar_type: Type[Real] = Real) -> "SparseMatrix":
        return cls(n, n, scalar_type).set_identity()

    @classmethod
    def from_triplets(
        cls,
        rows: int,
        cols: int,
        row_indices: Sequence[int],
        col_indices: Sequence[int],
        values: Sequence[ScalarLike],
        scalar_type: Type[Real] = Real,
    ) -> "SparseMatrix":
        """``m[row_indices[k], col_indices[k]] = values[k]``, everything else zero."""
        if not len(row_indices) == len(col_indices) == len(values):
            raise ValueError("row indices, column indices and values must have the same length")
        m = cls(rows, cols, scalar_type)
        for i, j, v in zip(row_indices, col_indices, values):
            m.at(i, j).set(v)
        return m

    @classmethod
    def from_values(
        cls, rows: int, cols: int, values: Iterable[float], scalar_type: Type[Real] = Real
    ) -> "SparseMatrix":
        """Row-major dense values; zeros are not stored."""
        values: List[float] = [float(v) for v in values]
        if len(values) != rows * cols:
            raise ValueError(f"expected {rows * cols} values, got {len(values)}")
        m = cls(rows, cols, scalar_type)
        m._backing = SparseVector.from_values(values, scalar_type)
        return m

    def nnz(self) -> int:
        """Stored cells of the whole backing vector."""
        return self._backing.nnz()

    def _cursor(self, prune: bool) -> SparseMatrixIterator:
        return SparseMatrixIterator(self, prune=prune)

    def _tip_starts(self):
        return set(self._backing.indices())

    def _line(self, start: int, n: int) -> SparseVector:
        return self._backing.slice(start, start + n)

    def __repr__(self) -> str:
        t = ", transposed" if self._transposed else ""
        return f"SparseMatrix({self._rows}x{self._cols}{t}, scalar_type={self.scalar_type.__name__})"
