"""Matrix header shared by dense and sparse matrices.

A matrix never owns a 2-D array.  It is a *header* over one flat backing
vector of length ``row_max * col_max`` together with a window
``(row_offset, rows) × (col_offset, cols)`` and a ``transposed`` flag.  Cell
``(i, j)`` of the window lives at backing position

    transposed:      (col_offset + j) * row_max + (row_offset + i)
    not transposed:  (row_offset + i) * col_max + (col_offset + j)

:meth:`Matrix.t` and :meth:`Matrix.slice` return new headers over the *same*
backing vector, so writes through a transpose or a slice are visible in the
original matrix.  :meth:`Matrix.clone` is the only way to detach.

Each header also carries two scratch vectors, ``tmp1`` (length ``rows``) and
``tmp2`` (length ``cols``), grown lazily and reused by kernels that must not
overwrite an operand they are still reading (``mdot_v`` with ``v is r`` ...).
Transposing swaps the two buffers along with the dimensions.
"""

from __future__ import annotations

from typing import Iterable, List, Optional, Sequence, Tuple, Type

import torch
from torch import Tensor

from . import config
from .errors import (
    NotSquareError,
    check_dims,
    check_index,
    check_permutation,
    check_range,
)
from .iterators import JointIterator
from .scalar import ConstScalar, Real, ScalarLike, as_scalar
from .vector import Vector

__all__ = ["Matrix"]


class Matrix:
    """Abstract base of :class:`DenseMatrix` and :class:`SparseMatrix`."""

    _vector_type: Type[Vector]

    def __init__(self, backing: Vector, rows: int, cols: int):
        self._backing = backing
        self._rows = rows
        self._cols = cols
        self._transposed = False
        self._row_offset = 0
        self._row_max = rows
        self._col_offset = 0
        self._col_max = cols
        self._tmp1: Optional[Vector] = None
        self._tmp2: Optional[Vector] = None

    @property
    def scalar_type(self) -> Type[Real]:
        return self._backing.scalar_type

    # ------------------------------------------------------------------
    # Kind-specific hooks
    # ------------------------------------------------------------------

    def _cursor(self, prune: bool):  # pragma: no cover – interface
        raise NotImplementedError

    # Cycle members to start from: iterable and supporting ``in``.
    def _tip_starts(self) -> Iterable[int]:  # pragma: no cover – interface
        raise NotImplementedError

    def _line(self, start: int, n: int) -> Vector:  # pragma: no cover – interface
        """Vector over ``n`` backing positions starting at ``start``."""
        raise NotImplementedError

    def _new_vector(self, n: int) -> Vector:
        return self._vector_type.null(n, self.scalar_type)

    def _header(self) -> "Matrix":
        """Shallow header copy sharing the backing vector."""
        m = object.__new__(type(self))
        m.__dict__.update(self.__dict__)
        return m

    # ------------------------------------------------------------------
    # Geometry
    # ------------------------------------------------------------------

    @property
    def rows(self) -> int:
        return self._rows

    @property
    def cols(self) -> int:
        return self._cols

    @property
    def transposed(self) -> bool:
        return self._transposed

    def dims(self) -> Tuple[int, int]:
        return self._rows, self._cols

    def _backing_index(self, i: int, j: int) -> int:
        if self._transposed:
            return (self._col_offset + j) * self._row_max + (self._row_offset + i)
        return (self._row_offset + i) * self._col_max + (self._col_offset + j)

    def _cell_of(self, k: int) -> Optional[Tuple[int, int]]:
        """Window cell stored at backing position *k*, or ``None``."""
        if self._transposed:
            p, q = divmod(k, self._row_max)
            i, j = q - self._row_offset, p - self._col_offset
        else:
            p, q = divmod(k, self._col_max)
            i, j = p - self._row_offset, q - self._col_offset
        if 0 <= i < self._rows and 0 <= j < self._cols:
            return i, j
        return None

    def _is_full_view(self) -> bool:
        return (
            self._row_offset == 0
            and self._col_offset == 0
            and self._rows == self._row_max
            and self._cols == self._col_max
        )

    def _shares(self, other) -> bool:
        return isinstance(other, Matrix) and other._backing is self._backing

    def _check_cell(self, i: int, j: int):
        check_index(i, self._rows, "row")
        check_index(j, self._cols, "column")

    def _require_square(self, op: str):
        if self._rows != self._cols:
            raise NotSquareError(f"{op} requires a square matrix, got {self._rows}x{self._cols}")

    # ------------------------------------------------------------------
    # Element access
    # ------------------------------------------------------------------

    def const_at(self, i: int, j: int) -> ConstScalar:
        self._check_cell(i, j)
        return self._backing.const_at(self._backing_index(i, j))

    def at(self, i: int, j: int) -> Real:
        self._check_cell(i, j)
        return self._backing._at_key(self._backing_index(i, j))

    def value_at(self, i: int, j: int) -> float:
        return self.const_at(i, j).get_value()

    def _at_key(self, key: int) -> Real:
        i, j = divmod(key, self._cols)
        return self._backing._at_key(self._backing_index(i, j))

    def __getitem__(self, ij: Tuple[int, int]) -> ConstScalar:
        return self.const_at(*ij)

    def __setitem__(self, ij: Tuple[int, int], value: ScalarLike):
        self.at(*ij).set(value)

    def get_values(self) -> Tensor:
        """Values as a dense ``(rows, cols)`` tensor."""
        out = torch.zeros((self._rows, self._cols), dtype=config.DTYPE)
        for (i, j), s in self.const_iterator():
            out[i, j] = s.get_value()
        return out

    def as_vector(self) -> Vector:
        """The backing vector for an untransposed full view, else a row-major copy."""
        if self._is_full_view() and not self._transposed:
            return self._backing
        r = self._new_vector(self._rows * self._cols)
        for (i, j), s in self.const_iterator():
            r.at(i * self._cols + j).set(s)
        return r

    def __str__(self) -> str:
        from .serialize import format_matrix

        return format_matrix(self)

    # ------------------------------------------------------------------
    # Iteration
    # ------------------------------------------------------------------

    def _index_of(self, key: int) -> Tuple[int, int]:
        return divmod(key, self._cols)

    def iterator(self):
        return self._cursor(prune=True)

    def const_iterator(self):
        return self._cursor(prune=False)

    def _check_same_dims(self, other: "Matrix", op: str):
        check_dims(self._rows, other.rows, op)
        check_dims(self._cols, other.cols, op)

    def joint_iterator(self, other: "Matrix") -> JointIterator:
        self._check_same_dims(other, "joint iteration")
        return JointIterator([self._cursor(True), other._cursor(False)], target=self, index_of=self._index_of)

    def joint3_iterator(self, b: "Matrix", c: "Matrix") -> JointIterator:
        self._check_same_dims(b, "joint iteration")
        self._check_same_dims(c, "joint iteration")
        return JointIterator(
            [self._cursor(True), b._cursor(False), c._cursor(False)], target=self, index_of=self._index_of
        )

    def const_joint_iterator(self, other: "Matrix") -> JointIterator:
        self._check_same_dims(other, "joint iteration")
        return JointIterator([self._cursor(False), other._cursor(False)], index_of=self._index_of)

    # ------------------------------------------------------------------
    # Headers: transpose & slice
    # ------------------------------------------------------------------

    def t(self) -> "Matrix":
        """O(1) transpose sharing the backing vector."""
        m = self._header()
        m._rows, m._cols = self._cols, self._rows
        m._transposed = not self._transposed
        m._row_offset, m._col_offset = self._col_offset, self._row_offset
        m._row_max, m._col_max = self._col_max, self._row_max
        m._tmp1, m._tmp2 = self._tmp2, self._tmp1
        return m

    transpose = t

    def slice(self, rfrom: int, rto: int, cfrom: int, cto: int) -> "Matrix":
        """Sub-window ``[rfrom, rto) × [cfrom, cto)`` sharing the backing vector."""
        check_range(rfrom, rto, self._rows)
        check_range(cfrom, cto, self._cols)
        m = self._header()
        m._rows, m._cols = rto - rfrom, cto - cfrom
        m._row_offset = self._row_offset + rfrom
        m._col_offset = self._col_offset + cfrom
        m._tmp1 = m._tmp2 = None
        m.init_tmp()
        return m

    def tip(self) -> "Matrix":
        """Transpose in place by permuting the backing storage.

        The backing array is viewed as ``L`` lines of length ``W``; moving cell
        ``k = a·W + b`` to ``b·L + a`` is the permutation
        ``k ↦ k·L mod (L·W − 1)``, applied cycle by cycle with single swaps.
        Other headers over the same backing vector are invalidated.
        """
        if not self._is_full_view():
            raise ValueError("tip() needs a matrix that is not a slice of a larger backing vector")
        mn = self._row_max * self._col_max
        lines = self._col_max if self._transposed else self._row_max
        if mn > 1:
            backing = self._backing
            starts = self._tip_starts()
            for start in starts:
                if not self._tip_leader(start, starts, mn, lines):
                    continue
                k = start
                while True:
                    if k != mn - 1:
                        k = (k * lines) % (mn - 1)
                    backing.swap(start, k)
                    if k == start:
                        break
        self._rows, self._cols = self._cols, self._rows
        self._row_max, self._col_max = self._col_max, self._row_max
        self._tmp1, self._tmp2 = self._tmp2, self._tmp1
        return self

    @staticmethod
    def _tip_leader(start: int, starts, mn: int, lines: int) -> bool:
        """True if *start* is the smallest member of ``starts`` on its cycle."""
        k = start
        while True:
            if k != mn - 1:
                k = (k * lines) % (mn - 1)
            if k == start:
                return True
            if k < start and k in starts:
                return False

    # ------------------------------------------------------------------
    # Scratch buffers
    # ------------------------------------------------------------------

    def init_tmp(self):
        """Grow ``tmp1``/``tmp2`` to at least ``rows``/``cols`` entries."""
        if self._tmp1 is None or self._tmp1.dim() < self._rows:
            self._tmp1 = self._new_vector(self._rows)
        if self._tmp2 is None or self._tmp2.dim() < self._cols:
            self._tmp2 = self._new_vector(self._cols)

    def _scratch_rows(self) -> Vector:
        self.init_tmp()
        if self._tmp1.dim() != self._rows:
            self._tmp1.resize(self._rows)
        return self._tmp1

    def _scratch_cols(self) -> Vector:
        self.init_tmp()
        if self._tmp2.dim() != self._cols:
            self._tmp2.resize(self._cols)
        return self._tmp2

    # ------------------------------------------------------------------
    # Whole-matrix writes
    # ------------------------------------------------------------------

    def set(self, other: "Matrix") -> "Matrix":
        self._check_same_dims(other, "set")
        other = self._detach(other)
        it = self.joint_iterator(other)
        while it.ok():
            it.at().set(it.get()[1])
            it.next()
        return self

    def reset(self) -> "Matrix":
        if self._is_full_view():
            self._backing.reset()
            return self
        for _, s in self.iterator():
            s.reset()
        return self

    def clone(self) -> "Matrix":
        """Deep copy: same header over a copy of the whole backing vector."""
        m = self._header()
        m._backing = self._backing.clone()
        m._tmp1 = m._tmp2 = None
        m.init_tmp()
        return m

    def set_identity(self) -> "Matrix":
        self._require_square("set_identity")
        self.reset()
        for i in range(self._rows):
            self.at(i, i).set(1.0)
        return self

    # ------------------------------------------------------------------
    # Lines
    # ------------------------------------------------------------------

    def row(self, i: int) -> Vector:
        check_index(i, self._rows, "row")
        if not self._transposed:
            return self._line(self._backing_index(i, 0), self._cols)
        return self._gather((i, j) for j in range(self._cols))

    def col(self, j: int) -> Vector:
        check_index(j, self._cols, "column")
        if self._transposed:
            return self._line(self._backing_index(0, j), self._rows)
        return self._gather((i, j) for i in range(self._rows))

    def diag(self) -> Vector:
        self._require_square("diag")
        return self._gather((i, i) for i in range(self._rows))

    def _gather(self, cells: Iterable[Tuple[int, int]]) -> Vector:
        cells = list(cells)
        r = self._new_vector(len(cells))
        for k, (i, j) in enumerate(cells):
            s = self._backing.const_at(self._backing_index(i, j))
            if not s.is_structural_zero():
                r.at(k).set(s)
        return r

    def _scatter(self, cells: Sequence[Tuple[int, int]], v: Vector):
        check_dims(len(cells), v.dim(), "line assignment")
        for k, (i, j) in enumerate(cells):
            s = v.const_at(k)
            if not s.is_structural_zero():
                self.at(i, j).set(s)
            elif not self.const_at(i, j).is_structural_zero():
                self.at(i, j).reset()

    def set_row(self, i: int, v: Vector) -> "Matrix":
        check_index(i, self._rows, "row")
        self._scatter([(i, j) for j in range(self._cols)], v)
        return self

    def set_col(self, j: int, v: Vector) -> "Matrix":
        check_index(j, self._cols, "column")
        self._scatter([(i, j) for i in range(self._rows)], v)
        return self

    def set_diag(self, v: Vector) -> "Matrix":
        self._require_square("set_diag")
        self._scatter([(i, i) for i in range(self._rows)], v)
        return self

    # ------------------------------------------------------------------
    # Swaps & permutations
    # ------------------------------------------------------------------

    def swap(self, i1: int, j1: int, i2: int, j2: int) -> "Matrix":
        self._check_cell(i1, j1)
        self._check_cell(i2, j2)
        self._backing.swap(self._backing_index(i1, j1), self._backing_index(i2, j2))
        return self

    def _swap_rows(self, i1: int, i2: int):
        for j in range(self._cols):
            self.swap(i1, j, i2, j)

    def _swap_columns(self, j1: int, j2: int):
        for i in range(self._rows):
            self.swap(i, j1, i, j2)

    def swap_rows(self, i1: int, i2: int) -> "Matrix":
        self._require_square("swap_rows")
        if i1 != i2:
            self._swap_rows(i1, i2)
        return self

    def swap_columns(self, j1: int, j2: int) -> "Matrix":
        self._require_square("swap_columns")
        if j1 != j2:
            self._swap_columns(j1, j2)
        return self

    def _permute_lines(self, pi, n: int, swap):
        check_permutation(pi, n)
        visited = [False] * n
        for i in range(n):
            if visited[i]:
                continue
            visited[i] = True
            j = i
            while pi[j] != i:
                swap(j, pi[j])
                j = pi[j]
                visited[j] = True

    def permute_rows(self, pi) -> "Matrix":
        """``new[i, :] == old[pi[i], :]``."""
        self._permute_lines(pi, self._rows, self._swap_rows)
        return self

    def permute_columns(self, pi) -> "Matrix":
        """``new[:, j] == old[:, pi[j]]``."""
        self._permute_lines(pi, self._cols, self._swap_columns)
        return self

    def symmetric_permutation(self, pi) -> "Matrix":
        """``new[i, j] == old[pi[i], pi[j]]``."""
        self._require_square("symmetric_permutation")
        self.permute_rows(pi)
        self.permute_columns(pi)
        return self

    # ------------------------------------------------------------------
    # Predicates
    # ------------------------------------------------------------------

    def is_symmetric(self, epsilon: Optional[float] = None) -> bool:
        if self._rows != self._cols:
            return False
        eps = config.EPSILON if epsilon is None else epsilon
        for (i, j), s in self.const_iterator():
            if i != j and abs(s.get_value() - self.const_at(j, i).get_value()) > eps:
                return False
        return True

    def equals(self, other: "Matrix", epsilon: Optional[float] = None) -> bool:
        if self.dims() != other.dims():
            return False
        eps = config.EPSILON if epsilon is None else epsilon
        for _, (a, b) in self.const_joint_iterator(other):
            x, y = a.get_value(), b.get_value()
            if x != y and not abs(x - y) <= eps:
                return False
        return True

    # ------------------------------------------------------------------
    # Elementwise kernels
    # ------------------------------------------------------------------

    def _detach(self, x: "Matrix") -> "Matrix":
        """Copy of *x* if it is another view of this matrix's storage."""
        return x.clone() if x is not self and self._shares(x) else x

    def _apply3(self, a: "Matrix", b: "Matrix", method: str) -> "Matrix":
        it = self.joint3_iterator(self._detach(a), self._detach(b))
        while it.ok():
            _, x, y = it.get()
            getattr(it.at(), method)(x, y)
            it.next()
        return self

    def _apply2(self, a: "Matrix", s: ConstScalar, method: str) -> "Matrix":
        it = self.joint_iterator(self._detach(a))
        while it.ok():
            getattr(it.at(), method)(it.get()[1], s)
            it.next()
        return self

    def _sweep(self, a: "Matrix", s: ConstScalar, method: str) -> "Matrix":
        self._check_same_dims(a, method)
        if s.is_structural_zero():
            return self.set(a)
        a = self._detach(a)
        for i in range(self._rows):
            for j in range(self._cols):
                getattr(self.at(i, j), method)(a.const_at(i, j), s)
        return self

    def madd_m(self, a: "Matrix", b: "Matrix") -> "Matrix":
        return self._apply3(a, b, "add")

    def msub_m(self, a: "Matrix", b: "Matrix") -> "Matrix":
        return self._apply3(a, b, "sub")

    def mmul_m(self, a: "Matrix", b: "Matrix") -> "Matrix":
        """Elementwise (Hadamard) product."""
        return self._apply3(a, b, "mul")

    def mdiv_m(self, a: "Matrix", b: "Matrix") -> "Matrix":
        return self._apply3(a, b, "div")

    def mmul_s(self, a: "Matrix", s: ScalarLike) -> "Matrix":
        return self._apply2(a, as_scalar(s), "mul")

    def mdiv_s(self, a: "Matrix", s: ScalarLike) -> "Matrix":
        return self._apply2(a, as_scalar(s), "div")

    def madd_s(self, a: "Matrix", s: ScalarLike) -> "Matrix":
        return self._sweep(a, as_scalar(s), "add")

    def msub_s(self, a: "Matrix", s: ScalarLike) -> "Matrix":
        return self._sweep(a, as_scalar(s), "sub")

    # ------------------------------------------------------------------
    # Products & reductions
    # ------------------------------------------------------------------

    def mdot_m(self, a: "Matrix", b: "Matrix") -> "Matrix":
        """Matrix product ``self ← a · b``; operands may share storage with ``self``.

        The result is assembled row by row in ``tmp2``.  Row *i* of ``a`` is
        read before row *i* of ``self`` is written, so ``a is self`` needs no
        copy; the rows of ``b`` are taken up front.
        """
        n, k = a.dims()
        check_dims(k, b.rows, "mdot_m")
        check_dims(self._rows, n, "mdot_m")
        check_dims(self._cols, b.cols, "mdot_m")
        if self._shares(a) and a is not self:
            a = a.clone()
        if self._shares(b):
            brows: List[Vector] = [b.row(r).clone() for r in range(k)]
        else:
            brows = [b.row(r) for r in range(k)]
        acc = self._scratch_cols()
        t = self.scalar_type()
        for i in range(n):
            acc.reset()
            for r, x in a.row(i).const_iterator():
                if x.is_structural_zero():
                    continue
                for j, y in brows[r].const_iterator():
                    if y.is_structural_zero():
                        continue
                    t.mul(x, y)
                    s = acc.at(j)
                    s.add(s, t)
            self.set_row(i, acc)
        return self

    def outer(self, a: Vector, b: Vector) -> "Matrix":
        """``self ← a · bᵀ``."""
        check_dims(self._rows, a.dim(), "outer")
        check_dims(self._cols, b.dim(), "outer")
        self.reset()
        for i, x in a.const_iterator():
            if x.is_structural_zero():
                continue
            for j, y in b.const_iterator():
                if not y.is_structural_zero():
                    self.at(i, j).mul(x, y)
        return self

    def trace(self) -> Real:
        self._require_square("trace")
        r = self.scalar_type()
        for i in range(self._rows):
            r.add(r, self.const_at(i, i))
        return r

    def norm(self) -> Real:
        """Frobenius norm."""
        r, t = self.scalar_type(), self.scalar_type()
        for _, s in self.const_iterator():
            t.mul(s, s)
            r.add(r, t)
        return r.sqrt(r)

    # ------------------------------------------------------------------
    # Serialisation hooks (see sparsediff.serialize)
    # ------------------------------------------------------------------

    def _reallocate(self, rows: int, cols: int):
        """Drop all content and become a fresh ``rows × cols`` full view."""
        self._backing = self._vector_type.null(rows * cols, self.scalar_type)
        Matrix.__init__(self, self._backing, rows, cols)
        self.init_tmp()

    def export_table(self, filename: str, *, sparse: bool = True, compress: bool = False):
        from .serialize import export_matrix_table

        export_matrix_table(self, filename, sparse=sparse, compress=compress)

    def import_table(self, filename: str) -> "Matrix":
        """Replace the contents with a table file; on failure ``self`` is left empty."""
        from .serialize import import_matrix_table

        return import_matrix_table(self, filename)

    def to_json(self) -> dict:
        from .serialize import matrix_to_json

        return matrix_to_json(self)

    def from_json(self, data: dict) -> "Matrix":
        from .serialize import matrix_from_json

        return matrix_from_json(self, data)

    def export_json(self, filename: str, *, compress: bool = False):
        from .serialize import export_json

        export_json(self.to_json(), filename, compress=compress)

    def import_json(self, filename: str) -> "Matrix":
        from .serialize import import_matrix_json

        return import_matrix_json(self, filename)
