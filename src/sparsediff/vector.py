"""Container contract shared by dense and sparse vectors.

:class:`Vector` implements everything that can be expressed through the
cursor protocol of :mod:`sparsediff.iterators` – copying, elementwise
kernels, reductions, matrix-vector products and serialisation hooks – so the
two concrete containers only provide storage primitives:

``dim``, ``const_at``, ``_at_key``, ``_cursor``, ``swap``, ``slice``,
``clone``, ``reset``, ``resize`` and ``sort``.

Elementwise kernels walk their operands with joint iterators.  Positions where
every operand (and the destination) is zero are never visited, hence sparse
inputs stay sparse: ``r.vmul_v(a, b)`` costs ``O(nnz(r) + nnz(a) + nnz(b))``.
"""

from __future__ import annotations

import math
from typing import Callable, Iterable, Optional, Tuple, Type

import torch
from torch import Tensor

from . import config
from .errors import check_dims, check_index, check_permutation
from .iterators import JointIterator
from .scalar import ConstScalar, Real, ScalarLike, as_scalar

__all__ = ["Vector"]


class Vector:
    """Abstract base of :class:`DenseVector` and :class:`SparseVector`."""

    scalar_type: Type[Real] = Real

    # ------------------------------------------------------------------
    # Storage primitives (implemented by subclasses)
    # ------------------------------------------------------------------

    def dim(self) -> int:  # pragma: no cover – interface
        raise NotImplementedError

    def const_at(self, i: int) -> ConstScalar:  # pragma: no cover – interface
        raise NotImplementedError

    def _at_key(self, i: int) -> Real:  # pragma: no cover – interface
        raise NotImplementedError

    def _cursor(self, prune: bool):  # pragma: no cover – interface
        raise NotImplementedError

    def at(self, i: int) -> Real:
        """Mutable scalar at *i*; sparse vectors insert a zero entry if absent."""
        check_index(i, self.dim())
        return self._at_key(i)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def value_at(self, i: int) -> float:
        return self.const_at(i).get_value()

    def get_values(self) -> Tensor:
        """Values as a dense 1-D tensor (derivatives are dropped)."""
        out = torch.zeros(self.dim(), dtype=config.DTYPE)
        for i, s in self.const_iterator():
            out[i] = s.get_value()
        return out

    def get_derivatives(self) -> Tensor:
        """Jacobian ``J[i, k] = ∂vᵢ/∂xₖ`` stacked from the entries' gradients."""
        n = 0
        for _, s in self.const_iterator():
            n = max(n, s.n)
        out = torch.zeros((self.dim(), n), dtype=config.DTYPE)
        for i, s in self.const_iterator():
            if s.order >= 1:
                out[i] = s.derivative
        return out

    def __len__(self) -> int:
        return self.dim()

    def __getitem__(self, i):
        if isinstance(i, slice):
            start, stop, step = i.indices(self.dim())
            if step != 1:
                raise ValueError("vector slices must be contiguous")
            return self.slice(start, stop)
        return self.const_at(i)

    def __setitem__(self, i: int, value: ScalarLike):
        self.at(i).set(value)

    def __str__(self) -> str:
        from .serialize import format_vector

        return format_vector(self)

    # ------------------------------------------------------------------
    # Iteration
    # ------------------------------------------------------------------

    def iterator(self):
        """Mutable iterator; prunes structural zeros it walks past."""
        return self._cursor(prune=True)

    def const_iterator(self):
        return self._cursor(prune=False)

    def joint_iterator(self, other: "Vector") -> JointIterator:
        """Walk ``self`` (mutable) and *other* over the union of non-zeros."""
        check_dims(self.dim(), other.dim(), "joint iteration")
        return JointIterator([self._cursor(True), other._cursor(False)], target=self)

    def joint3_iterator(self, b: "Vector", c: "Vector") -> JointIterator:
        check_dims(self.dim(), b.dim(), "joint iteration")
        check_dims(self.dim(), c.dim(), "joint iteration")
        return JointIterator([self._cursor(True), b._cursor(False), c._cursor(False)], target=self)

    def const_joint_iterator(self, other: "Vector") -> JointIterator:
        check_dims(self.dim(), other.dim(), "joint iteration")
        return JointIterator([self._cursor(False), other._cursor(False)])

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def set(self, other: "Vector") -> "Vector":
        """Elementwise deep copy of *other*; the dimensions must agree.

        Entries only present in ``self`` are zeroed (and pruned by the walk),
        entries only present in *other* are inserted.
        """
        check_dims(self.dim(), other.dim(), "set")
        it = self.joint_iterator(other)
        while it.ok():
            it.at().set(it.get()[1])
            it.next()
        return self

    def set_values(self, values: Iterable[float]) -> "Vector":
        values = [float(v) for v in values]
        check_dims(self.dim(), len(values), "set_values")
        for i, v in enumerate(values):
            if v != 0.0 or self.const_at(i).get_value() != 0.0:
                self.at(i).set(v)
        return self

    def map(self, f: Callable[[Real], object]) -> "Vector":
        """Apply *f* in place to every stored (non-zero) scalar."""
        for _, s in self.iterator():
            f(s)
        return self

    def reduce(self, f: Callable[[Real, ConstScalar], object], initial: Optional[ScalarLike] = None) -> Real:
        """Fold the stored scalars into ``r`` via ``f(r, s)``, in index order."""
        r = self.scalar_type()
        if initial is not None:
            r.set(initial)
        for _, s in self.const_iterator():
            f(r, s)
        return r

    def permute(self, pi) -> "Vector":
        """Reorder in place so that ``new[i] == old[pi[i]]``."""
        n = self.dim()
        check_permutation(pi, n)
        visited = [False] * n
        for i in range(n):
            if visited[i]:
                continue
            visited[i] = True
            j = i
            while pi[j] != i:
                self.swap(j, pi[j])
                j = pi[j]
                visited[j] = True
        return self

    # ------------------------------------------------------------------
    # Comparison
    # ------------------------------------------------------------------

    def equals(self, other: "Vector", epsilon: Optional[float] = None) -> bool:
        """Values agree within *epsilon* (derivatives are not compared)."""
        if self.dim() != other.dim():
            return False
        eps = config.EPSILON if epsilon is None else epsilon
        for _, (a, b) in self.const_joint_iterator(other):
            x, y = a.get_value(), b.get_value()
            if x != y and not abs(x - y) <= eps:
                return False
        return True

    # ------------------------------------------------------------------
    # Elementwise kernels  r ← f(a, b)
    # ------------------------------------------------------------------

    def _apply3(self, a: "Vector", b: "Vector", method: str) -> "Vector":
        it = self.joint3_iterator(a, b)
        while it.ok():
            _, x, y = it.get()
            getattr(it.at(), method)(x, y)
            it.next()
        return self

    def _apply2(self, a: "Vector", s: ConstScalar, method: str) -> "Vector":
        it = self.joint_iterator(a)
        while it.ok():
            getattr(it.at(), method)(it.get()[1], s)
            it.next()
        return self

    def vadd_v(self, a: "Vector", b: "Vector") -> "Vector":
        return self._apply3(a, b, "add")

    def vsub_v(self, a: "Vector", b: "Vector") -> "Vector":
        return self._apply3(a, b, "sub")

    def vmul_v(self, a: "Vector", b: "Vector") -> "Vector":
        return self._apply3(a, b, "mul")

    def vdiv_v(self, a: "Vector", b: "Vector") -> "Vector":
        """Elementwise ``a / b``; positions where both are zero stay zero."""
        return self._apply3(a, b, "div")

    def vmul_s(self, a: "Vector", s: ScalarLike) -> "Vector":
        return self._apply2(a, as_scalar(s), "mul")

    def vdiv_s(self, a: "Vector", s: ScalarLike) -> "Vector":
        return self._apply2(a, as_scalar(s), "div")

    def vadd_s(self, a: "Vector", s: ScalarLike) -> "Vector":
        """``a + s`` at every position (fills sparse vectors when ``s != 0``)."""
        s = as_scalar(s)
        check_dims(self.dim(), a.dim(), "vadd_s")
        if s.is_structural_zero():
            return self.set(a)
        for i in range(self.dim()):
            self.at(i).add(a.const_at(i), s)
        return self

    def vsub_s(self, a: "Vector", s: ScalarLike) -> "Vector":
        s = as_scalar(s)
        check_dims(self.dim(), a.dim(), "vsub_s")
        if s.is_structural_zero():
            return self.set(a)
        for i in range(self.dim()):
            self.at(i).sub(a.const_at(i), s)
        return self

    # ------------------------------------------------------------------
    # Reductions
    # ------------------------------------------------------------------

    def dot(self, other: "Vector") -> Real:
        """Differentiable inner product."""
        r, t = self.scalar_type(), self.scalar_type()
        for _, (a, b) in self.const_joint_iterator(other):
            t.mul(a, b)
            r.add(r, t)
        return r

    def sum(self) -> Real:
        return self.reduce(lambda r, s: r.add(r, s))

    def norm(self) -> Real:
        """Euclidean norm ``sqrt(Σ vᵢ²)``."""
        r, t = self.scalar_type(), self.scalar_type()
        for _, s in self.const_iterator():
            t.mul(s, s)
            r.add(r, t)
        return r.sqrt(r)

    def max_abs(self) -> float:
        return max((abs(s.get_value()) for _, s in self.const_iterator()), default=0.0)

    def is_finite(self) -> bool:
        return all(math.isfinite(s.get_value()) for _, s in self.const_iterator())

    # ------------------------------------------------------------------
    # Matrix products
    # ------------------------------------------------------------------

    def mdot_v(self, m, v: "Vector") -> "Vector":
        """``self ← m · v``; *v* may be ``self`` (uses the matrix scratch row buffer)."""
        rows, cols = m.dims()
        check_dims(self.dim(), rows, "mdot_v")
        check_dims(cols, v.dim(), "mdot_v")
        acc = m._scratch_rows() if v is self else self
        self._accumulate(acc, ((i, j, s, v.const_at(j)) for (i, j), s in m.const_iterator()))
        if acc is not self:
            self.set(acc)
        return self

    def vdot_m(self, v: "Vector", m) -> "Vector":
        """``self ← vᵀ · m``; *v* may be ``self`` (uses the matrix scratch column buffer)."""
        rows, cols = m.dims()
        check_dims(self.dim(), cols, "vdot_m")
        check_dims(rows, v.dim(), "vdot_m")
        acc = m._scratch_cols() if v is self else self
        self._accumulate(acc, ((j, i, s, v.const_at(i)) for (i, j), s in m.const_iterator()))
        if acc is not self:
            self.set(acc)
        return self

    def _accumulate(self, acc: "Vector", terms: Iterable[Tuple[int, int, ConstScalar, ConstScalar]]):
        acc.reset()
        t = self.scalar_type()
        for k, _, a, b in terms:
            if b.is_structural_zero():
                continue
            t.mul(a, b)
            s = acc.at(k)
            s.add(s, t)

    # ------------------------------------------------------------------
    # Serialisation hooks (see sparsediff.serialize)
    # ------------------------------------------------------------------

    def export_table(self, filename: str, *, compress: bool = False):
        from .serialize import export_vector_table

        export_vector_table(self, filename, compress=compress)

    def import_table(self, filename: str) -> "Vector":
        """Replace the contents with a table file; on failure ``self`` is left empty."""
        from .serialize import import_vector_table

        return import_vector_table(self, filename)

    def to_json(self) -> dict:
        from .serialize import vector_to_json

        return vector_to_json(self)

    def from_json(self, data: dict) -> "Vector":
        from .serialize import vector_from_json

        return vector_from_json(self, data)

    def export_json(self, filename: str, *, compress: bool = False):
        from .serialize import export_json

        export_json(self.to_json(), filename, compress=compress)

    def import_json(self, filename: str) -> "Vector":
        from .serialize import import_vector_json

        return import_vector_json(self, filename)



def _sort_key(s: ConstScalar):
    """Sort key on the value; NaNs order after every number."""
    v = s.get_value()
    return (math.isnan(v), v)
