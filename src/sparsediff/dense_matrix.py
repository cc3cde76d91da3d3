"""Dense matrix: a :class:`~sparsediff.matrix.Matrix` header over a dense vector."""

from __future__ import annotations

from typing import Iterable, List, Sequence, Type

from .dense_vector import DenseVector
from .iterators import DenseMatrixIterator
from .matrix import Matrix
from .scalar import Real, ScalarLike

__all__ = ["DenseMatrix"]


class DenseMatrix(Matrix):
    """Every cell owns a scalar object.

    Contiguous lines (rows of an untransposed matrix, columns of a transposed
    one) are returned as vectors sharing those scalar objects; other lines are
    copies.
    """

    _vector_type = DenseVector

    def __init__(self, rows: int = 0, cols: int = 0, scalar_type: Type[Real] = Real):
        if rows < 0 or cols < 0:
            raise ValueError("Matrix dimensions must be non-negative")
        super().__init__(DenseVector.null(rows * cols, scalar_type), rows, cols)

    @classmethod
    def null(cls, rows: int, cols: int, scalar_type: Type[Real] = Real) -> "DenseMatrix":
        return cls(rows, cols, scalar_type)

    @classmethod
    def nil(cls, scalar_type: Type[Real] = Real) -> "DenseMatrix":
        return cls(0, 0, scalar_type)

    @classmethod
    def identity(cls, n: int, scalar_type: Type[Real] = Real) -> "DenseMatrix":
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
    ) -> "DenseMatrix":
        if not len(row_indices) == len(col_indices) == len(values):
            raise ValueError("row indices, column indices and values must have the same length")
        m = cls(rows, cols, scalar_type)
        for i, j, v in zip(row_indices, col_indices, values):
            m.at(i, j).set(v)
        return m

    @classmethod
    def from_values(
        cls, rows: int, cols: int, values: Iterable[float], scalar_type: Type[Real] = Real
    ) -> "DenseMatrix":
        """Matrix from row-major values."""
        values: List[float] = [float(v) for v in values]
        if len(values) != rows * cols:
            raise ValueError(f"expected {rows * cols} values, got {len(values)}")
        m = cls(0, 0, scalar_type)
        Matrix.__init__(m, DenseVector.from_values(values, scalar_type), rows, cols)
        return m

    def _cursor(self, prune: bool) -> DenseMatrixIterator:
        return DenseMatrixIterator(self)

    def _tip_starts(self):
        return range(self._row_max * self._col_max)

    def _line(self, start: int, n: int) -> DenseVector:
        return self._backing.slice(start, start + n)

    def __repr__(self) -> str:
        t = ", transposed" if self._transposed else ""
        return f"DenseMatrix({self._rows}x{self._cols}{t}, scalar_type={self.scalar_type.__name__})"
