from __future__ import annotations

"""
Differentiable scalars for forward-mode automatic differentiation.

A scalar carries a float64 *value* plus, depending on its *order*,

* order 0 – nothing else (a constant),
* order 1 – a gradient ``∂v/∂xᵢ`` stored as a ``(n,)`` tensor,
* order 2 – a gradient and a Hessian ``∂²v/∂xᵢ∂xⱼ`` stored as ``(n, n)``.

Derivative tensors use :data:`sparsediff.config.DTYPE` so they interoperate
with the rest of the PyTorch ecosystem (``torch.allclose`` in tests, stacking
gradients of a whole vector into a Jacobian, ...).

Arithmetic follows the in-place convention of the containers: every method
takes its operands as arguments and writes the result into ``self``, e.g.

  ```python
  r = Real()
  r.mul(x, y)        # r ← x·y, derivatives by the product rule
  r.add(r, z)        # operands may alias the destination
  ```

The Python operators (``x * y + z``) are thin wrappers that allocate a fresh
result scalar and call the in-place method.

Three kinds are provided:

``ConstReal``  immutable value, order 0.  Used for literals and as the
               read-only zero returned for absent sparse entries.
``BareReal``   mutable plain real; never carries derivatives.
``Real``       mutable differentiable real of order 0, 1 or 2.
"""

from dataclasses import dataclass
import math
import warnings
from typing import Callable, Optional, Tuple, Union

import torch
from torch import Tensor

from . import config
from .errors import (
    DimensionMismatchError,
    OrderMismatchError,
    OrderTruncationWarning,
    check_index,
)

__all__ = [
    "ConstScalar",
    "ConstReal",
    "BareReal",
    "Real",
    "ZERO",
    "ONE",
    "as_scalar",
]

ScalarLike = Union[int, float, "ConstScalar"]

_TWO_OVER_SQRT_PI = 2.0 / math.sqrt(math.pi)


# -----------------------------------------------------------------------------
# IEEE-style float helpers
# -----------------------------------------------------------------------------
# Python floats raise on 1/0, log(0) or exp(1000) where float64 hardware
# arithmetic returns ±inf / nan.  Numeric kernels built on top of the
# containers expect the latter.


def _fdiv(x: float, y: float) -> float:
    try:
        return x / y
    except ZeroDivisionError:
        if x == 0.0 or math.isnan(x):
            return math.nan
        return math.copysign(math.inf, x) * math.copysign(1.0, y)


def _flog(x: float) -> float:
    if x > 0.0:
        return math.log(x)
    if x == 0.0:
        return -math.inf
    return math.nan


def _fsqrt(x: float) -> float:
    return math.sqrt(x) if x >= 0.0 else math.nan


def _fexp(x: float) -> float:
    try:
        return math.exp(x)
    except OverflowError:
        return math.inf


def _fpow(x: float, y: float) -> float:
    if x == 0.0 and y < 0.0:
        # pow(-0.0, odd negative integer) keeps the sign of zero
        if float(y).is_integer() and int(y) % 2 == 1:
            return math.copysign(math.inf, x)
        return math.inf
    try:
        return math.pow(x, y)
    except OverflowError:
        return math.inf
    except ValueError:
        return math.nan


def _fhyp(f: Callable[[float], float], x: float, odd: bool) -> float:
    try:
        return f(x)
    except OverflowError:
        return math.copysign(math.inf, x) if odd else math.inf


def as_scalar(x: ScalarLike) -> "ConstScalar":
    """Wrap Python numbers as :class:`ConstReal`; pass scalars through."""
    if isinstance(x, ConstScalar):
        return x
    if isinstance(x, (int, float)):
        return ConstReal(x)
    if isinstance(x, Tensor) and x.dim() == 0:
        return ConstReal(float(x.item()))
    raise TypeError(f"Cannot interpret {type(x).__name__} as a scalar")


def _zeros(*shape: int) -> Tensor:
    return torch.zeros(shape, dtype=config.DTYPE)


# -----------------------------------------------------------------------------
# Read-only interface
# -----------------------------------------------------------------------------


class ConstScalar:
    """Read-only scalar interface shared by every scalar kind."""

    __slots__ = ()

    MAX_ORDER: int = 0

    # -- accessors (order-0 defaults, overridden by Real) --------------------

    def get_value(self) -> float:
        return self.value  # type: ignore[attr-defined]

    @property
    def order(self) -> int:
        return 0

    @property
    def n(self) -> int:
        return 0

    @property
    def derivative(self) -> Optional[Tensor]:
        return None

    @property
    def hessian(self) -> Optional[Tensor]:
        return None

    @property
    def variable_index(self) -> Optional[int]:
        return None

    def get_derivative(self, i: int) -> float:
        d = self.derivative
        return 0.0 if d is None else float(d[i])

    def get_hessian(self, i: int, j: int) -> float:
        h = self.hessian
        return 0.0 if h is None else float(h[i, j])

    def is_structural_zero(self) -> bool:
        """True if value and every derivative component are exactly 0.0."""
        if self.get_value() != 0.0:
            return False
        d = self.derivative
        if d is not None and bool(torch.any(d != 0.0)):
            return False
        h = self.hessian
        if h is not None and bool(torch.any(h != 0.0)):
            return False
        return True

    def clone(self) -> "Real":
        r = Real()
        r.set(self)
        return r

    def __float__(self) -> float:
        return self.get_value()

    def __str__(self) -> str:
        return str(self.get_value())

    # -- Python operators --------------------------------------------------

    def _binary(self, other, method: str, reflected: bool = False):
        try:
            other = as_scalar(other)
        except TypeError:
            return NotImplemented
        a, b = (other, self) if reflected else (self, other)
        kind = Real if max(type(a).MAX_ORDER, type(b).MAX_ORDER) > 0 else BareReal
        r = kind()
        getattr(r, method)(a, b)
        return r

    def _unary(self, method: str):
        r = Real() if type(self).MAX_ORDER > 0 else BareReal()
        getattr(r, method)(self)
        return r

    def __add__(self, other):
        return self._binary(other, "add")

    def __radd__(self, other):
        return self._binary(other, "add", reflected=True)

    def __sub__(self, other):
        return self._binary(other, "sub")

    def __rsub__(self, other):
        return self._binary(other, "sub", reflected=True)

    def __mul__(self, other):
        return self._binary(other, "mul")

    def __rmul__(self, other):
        return self._binary(other, "mul", reflected=True)

    def __truediv__(self, other):
        return self._binary(other, "div")

    def __rtruediv__(self, other):
        return self._binary(other, "div", reflected=True)

    def __pow__(self, other):
        return self._binary(other, "pow")

    def __rpow__(self, other):
        return self._binary(other, "pow", reflected=True)

    def __neg__(self):
        return self._unary("neg")

    def __abs__(self):
        return self._unary("abs")

    # -- comparisons on the value only --------------------------------------

    def _other_value(self, other) -> Optional[float]:
        if isinstance(other, ConstScalar):
            return other.get_value()
        if isinstance(other, (int, float)):
            return float(other)
        return None

    def __eq__(self, other):
        v = self._other_value(other)
        return NotImplemented if v is None else self.get_value() == v

    def __ne__(self, other):
        v = self._other_value(other)
        return NotImplemented if v is None else self.get_value() != v

    def __lt__(self, other):
        v = self._other_value(other)
        return NotImplemented if v is None else self.get_value() < v

    def __le__(self, other):
        v = self._other_value(other)
        return NotImplemented if v is None else self.get_value() <= v

    def __gt__(self, other):
        v = self._other_value(other)
        return NotImplemented if v is None else self.get_value() > v

    def __ge__(self, other):
        v = self._other_value(other)
        return NotImplemented if v is None else self.get_value() >= v

    __hash__ = None  # type: ignore[assignment]


@dataclass(frozen=True, slots=True, eq=False, repr=False)
class ConstReal(ConstScalar):
    """Immutable order-0 scalar."""

    value: float = 0.0

    def __post_init__(self):
        object.__setattr__(self, "value", float(self.value))

    def __repr__(self) -> str:
        return f"ConstReal({self.value!r})"

    def __hash__(self) -> int:
        return hash(self.value)


ZERO = ConstReal(0.0)
ONE = ConstReal(1.0)


# -----------------------------------------------------------------------------
# Mutable differentiable scalar
# -----------------------------------------------------------------------------


class Real(ConstScalar):
    """Mutable scalar carrying up to second-order derivative information."""

    __slots__ = ("_value", "_order", "_n", "_derivative", "_hessian", "_variable_index")

    MAX_ORDER: int = 2

    def __init__(self, value: float = 0.0):
        self._value = float(value)
        self._order = 0
        self._n = 0
        self._derivative: Optional[Tensor] = None
        self._hessian: Optional[Tensor] = None
        self._variable_index: Optional[int] = None

    @classmethod
    def variable(cls, value: float, i: int, n: int, order: int = 1) -> "Real":
        """Create the *i*-th of *n* independent variables."""
        r = cls(value)
        r.set_variable(i, n, order)
        return r

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------

    @property
    def value(self) -> float:
        return self._value

    def get_value(self) -> float:
        return self._value

    @property
    def order(self) -> int:
        return self._order

    @property
    def n(self) -> int:
        return self._n

    @property
    def derivative(self) -> Optional[Tensor]:
        return self._derivative

    @property
    def hessian(self) -> Optional[Tensor]:
        return self._hessian

    @property
    def variable_index(self) -> Optional[int]:
        return self._variable_index

    def clone(self) -> "Real":
        r = type(self)()
        r.set(self)
        return r

    def __repr__(self) -> str:
        if self._order == 0:
            return f"{type(self).__name__}({self._value!r})"
        return f"{type(self).__name__}({self._value!r}, order={self._order}, n={self._n})"

    # ------------------------------------------------------------------
    # Allocation & plain setters
    # ------------------------------------------------------------------

    def alloc(self, n: int, order: int) -> "Real":
        """Resize derivative storage to *n* variables at *order*, zero-filled."""
        if order < 0 or order > 2:
            raise ValueError(f"Derivative order must be 0, 1 or 2, got {order}")
        order = min(order, self.MAX_ORDER) if n > 0 else 0
        self._order = order
        self._n = n if order > 0 else 0
        self._derivative = _zeros(n) if order >= 1 else None
        self._hessian = _zeros(n, n) if order >= 2 else None
        self._variable_index = None
        return self

    def set_variable(self, i: int, n: int, order: int = 1) -> "Real":
        """Declare ``self`` as independent variable *i* of *n*."""
        if order < 1 or order > self.MAX_ORDER:
            raise ValueError(f"{type(self).__name__} cannot be a variable of order {order}")
        check_index(i, n, "variable")
        self.alloc(n, order)
        self._derivative[i] = 1.0
        self._variable_index = i
        return self

    def set_value(self, v: float) -> "Real":
        """Overwrite the value, keeping derivative information."""
        self._value = float(v)
        return self

    def set_derivative(self, i: int, v: float) -> "Real":
        check_index(i, self._n if self._order >= 1 else 0, "derivative")
        self._derivative[i] = v
        return self

    def set_hessian(self, i: int, j: int, v: float) -> "Real":
        n = self._n if self._order >= 2 else 0
        check_index(i, n, "hessian row")
        check_index(j, n, "hessian column")
        self._hessian[i, j] = v
        return self

    def set(self, a: ScalarLike) -> "Real":
        """Copy value and derivatives of *a* (deep copy)."""
        a = as_scalar(a)
        order = min(a.order, self.MAX_ORDER)
        self._value = a.get_value()
        self._order = order
        self._n = a.n if order > 0 else 0
        self._derivative = a.derivative.clone() if order >= 1 else None
        self._hessian = a.hessian.clone() if order >= 2 else None
        self._variable_index = a.variable_index if order > 0 else None
        return self

    def reset(self) -> "Real":
        """Zero value and derivatives, keeping the allocated order."""
        self._value = 0.0
        if self._derivative is not None:
            self._derivative.zero_()
        if self._hessian is not None:
            self._hessian.zero_()
        return self

    # ------------------------------------------------------------------
    # Chain-rule machinery
    # ------------------------------------------------------------------

    def _combine(self, *operands: ConstScalar) -> Tuple[int, int]:
        """Result (order, n) for an operation on *operands*."""
        order, n, mixed = 0, 0, False
        for s in operands:
            k = s.order
            if k == 0:
                continue
            if order == 0:
                order, n = k, s.n
                continue
            if s.n != n:
                raise DimensionMismatchError(
                    f"Operands differentiate w.r.t. different numbers of variables ({n} != {s.n})"
                )
            if k != order:
                mixed = True
                order = min(order, k)
        if mixed:
            if config.ORDER_POLICY == "strict":
                raise OrderMismatchError("Operands carry different derivative orders")
            if config.ORDER_POLICY == "warn":
                warnings.warn(
                    f"Mixed derivative orders truncated to order {order}",
                    OrderTruncationWarning,
                    stacklevel=4,
                )
        order = min(order, self.MAX_ORDER)
        return order, (n if order > 0 else 0)

    def _store(self, value: float, order: int, n: int, grad: Optional[Tensor], hess: Optional[Tensor]) -> "Real":
        self._value = value
        self._order = order
        self._n = n
        self._derivative = grad
        self._hessian = hess
        self._variable_index = None
        return self

    def _monadic(self, a: ConstScalar, value: float, partials: Callable[[], Tuple[float, float]]) -> "Real":
        order, n = self._combine(a)
        grad = hess = None
        if order >= 1:
            d1, d2 = partials()
            da = a.derivative
            grad = d1 * da
            if order >= 2:
                hess = d1 * a.hessian + d2 * torch.outer(da, da)
        return self._store(value, order, n, grad, hess)

    def _dyadic(
        self,
        a: ConstScalar,
        b: ConstScalar,
        value: float,
        partials: Callable[[], Tuple[float, float, float, float, float]],
    ) -> "Real":
        order, n = self._combine(a, b)
        grad = hess = None
        if order >= 1:
            ga, gb, gaa, gab, gbb = partials()
            da = a.derivative if a.order >= 1 else _zeros(n)
            db = b.derivative if b.order >= 1 else _zeros(n)
            grad = ga * da + gb * db
            if order >= 2:
                ha = a.hessian if a.order >= 2 else _zeros(n, n)
                hb = b.hessian if b.order >= 2 else _zeros(n, n)
                cross = torch.outer(da, db)
                hess = (
                    ga * ha
                    + gb * hb
                    + gaa * torch.outer(da, da)
                    + gab * (cross + cross.T)
                    + gbb * torch.outer(db, db)
                )
        return self._store(value, order, n, grad, hess)

    # ------------------------------------------------------------------
    # Binary arithmetic
    # ------------------------------------------------------------------

    def add(self, a: ScalarLike, b: ScalarLike) -> "Real":
        a, b = as_scalar(a), as_scalar(b)
        return self._dyadic(a, b, a.get_value() + b.get_value(), lambda: (1.0, 1.0, 0.0, 0.0, 0.0))

    def sub(self, a: ScalarLike, b: ScalarLike) -> "Real":
        a, b = as_scalar(a), as_scalar(b)
        return self._dyadic(a, b, a.get_value() - b.get_value(), lambda: (1.0, -1.0, 0.0, 0.0, 0.0))

    def mul(self, a: ScalarLike, b: ScalarLike) -> "Real":
        a, b = as_scalar(a), as_scalar(b)
        x, y = a.get_value(), b.get_value()
        return self._dyadic(a, b, x * y, lambda: (y, x, 0.0, 1.0, 0.0))

    def div(self, a: ScalarLike, b: ScalarLike) -> "Real":
        a, b = as_scalar(a), as_scalar(b)
        x, y = a.get_value(), b.get_value()

        def partials():
            inv = _fdiv(1.0, y)
            return inv, -x * inv * inv, 0.0, -inv * inv, 2.0 * x * inv * inv * inv

        return self._dyadic(a, b, _fdiv(x, y), partials)

    def pow(self, a: ScalarLike, b: ScalarLike) -> "Real":
        """``a ** b``; a constant exponent avoids ``log(a)`` for negative bases."""
        a, b = as_scalar(a), as_scalar(b)
        x, y = a.get_value(), b.get_value()
        v = _fpow(x, y)
        if b.order == 0:
            if y == 0.0:
                return self._monadic(a, v, lambda: (0.0, 0.0))
            return self._monadic(a, v, lambda: (y * _fpow(x, y - 1.0), y * (y - 1.0) * _fpow(x, y - 2.0)))
        if a.order == 0:
            return self._monadic(b, v, lambda: (v * _flog(x), v * _flog(x) ** 2))

        def partials():
            lx = _flog(x)
            p1 = _fpow(x, y - 1.0)
            return (
                y * p1,
                v * lx,
                y * (y - 1.0) * _fpow(x, y - 2.0),
                p1 * (1.0 + y * lx),
                v * lx * lx,
            )

        return self._dyadic(a, b, v, partials)

    def log_add(self, a: ScalarLike, b: ScalarLike) -> "Real":
        """``log(exp(a) + exp(b))`` without overflow."""
        a, b = as_scalar(a), as_scalar(b)
        x, y = a.get_value(), b.get_value()
        if x == -math.inf and y == -math.inf:
            v = -math.inf
        else:
            m = max(x, y)
            v = m + math.log1p(_fexp(-abs(x - y)))
        return self._dyadic(a, b, v, lambda: _log_sum_partials(x, y, v, 1.0))

    def log_sub(self, a: ScalarLike, b: ScalarLike) -> "Real":
        """``log(exp(a) - exp(b))``; nan when ``b > a``."""
        a, b = as_scalar(a), as_scalar(b)
        x, y = a.get_value(), b.get_value()
        if y > x:
            v = math.nan
        elif y == -math.inf:
            v = x
        else:
            v = x + _flog(-math.expm1(y - x))
        return self._dyadic(a, b, v, lambda: _log_sum_partials(x, y, v, -1.0))

    # ------------------------------------------------------------------
    # Unary functions
    # ------------------------------------------------------------------

    def neg(self, a: ScalarLike) -> "Real":
        a = as_scalar(a)
        return self._monadic(a, -a.get_value(), lambda: (-1.0, 0.0))

    def abs(self, a: ScalarLike) -> "Real":
        a = as_scalar(a)
        x = a.get_value()
        return self._monadic(a, abs(x), lambda: (1.0 if x >= 0.0 else -1.0, 0.0))

    def sqrt(self, a: ScalarLike) -> "Real":
        a = as_scalar(a)
        x = a.get_value()
        y = _fsqrt(x)
        return self._monadic(a, y, lambda: (_fdiv(0.5, y), _fdiv(-0.25, y * x)))

    def exp(self, a: ScalarLike) -> "Real":
        a = as_scalar(a)
        y = _fexp(a.get_value())
        return self._monadic(a, y, lambda: (y, y))

    def expm1(self, a: ScalarLike) -> "Real":
        a = as_scalar(a)
        x = a.get_value()
        y = math.expm1(x) if x < 700.0 else math.inf
        return self._monadic(a, y, lambda: (_fexp(x), _fexp(x)))

    def log(self, a: ScalarLike) -> "Real":
        a = as_scalar(a)
        x = a.get_value()
        return self._monadic(a, _flog(x), lambda: (_fdiv(1.0, x), _fdiv(-1.0, x * x)))

    def log1p(self, a: ScalarLike) -> "Real":
        a = as_scalar(a)
        x = a.get_value()
        y = math.log1p(x) if x > -1.0 else _flog(1.0 + x)
        return self._monadic(a, y, lambda: (_fdiv(1.0, 1.0 + x), _fdiv(-1.0, (1.0 + x) ** 2)))

    def sin(self, a: ScalarLike) -> "Real":
        a = as_scalar(a)
        x = a.get_value()
        return self._monadic(a, math.sin(x), lambda: (math.cos(x), -math.sin(x)))

    def cos(self, a: ScalarLike) -> "Real":
        a = as_scalar(a)
        x = a.get_value()
        return self._monadic(a, math.cos(x), lambda: (-math.sin(x), -math.cos(x)))

    def tan(self, a: ScalarLike) -> "Real":
        a = as_scalar(a)
        y = math.tan(a.get_value())
        return self._monadic(a, y, lambda: (1.0 + y * y, 2.0 * y * (1.0 + y * y)))

    def sinh(self, a: ScalarLike) -> "Real":
        a = as_scalar(a)
        x = a.get_value()
        return self._monadic(
            a, _fhyp(math.sinh, x, True), lambda: (_fhyp(math.cosh, x, False), _fhyp(math.sinh, x, True))
        )

    def cosh(self, a: ScalarLike) -> "Real":
        a = as_scalar(a)
        x = a.get_value()
        return self._monadic(
            a, _fhyp(math.cosh, x, False), lambda: (_fhyp(math.sinh, x, True), _fhyp(math.cosh, x, False))
        )

    def tanh(self, a: ScalarLike) -> "Real":
        a = as_scalar(a)
        y = math.tanh(a.get_value())
        return self._monadic(a, y, lambda: (1.0 - y * y, -2.0 * y * (1.0 - y * y)))

    def logistic(self, a: ScalarLike) -> "Real":
        """Logistic sigmoid ``1 / (1 + exp(-a))``."""
        a = as_scalar(a)
        x = a.get_value()
        if x >= 0.0:
            y = 1.0 / (1.0 + _fexp(-x))
        else:
            e = _fexp(x)
            y = e / (1.0 + e)
        return self._monadic(a, y, lambda: (y * (1.0 - y), y * (1.0 - y) * (1.0 - 2.0 * y)))

    def erf(self, a: ScalarLike) -> "Real":
        a = as_scalar(a)
        x = a.get_value()

        def partials():
            d1 = _TWO_OVER_SQRT_PI * math.exp(-x * x)
            return d1, -2.0 * x * d1

        return self._monadic(a, math.erf(x), partials)

    # ------------------------------------------------------------------
    # In-place operators
    # ------------------------------------------------------------------

    def __iadd__(self, other):
        return self.add(self, other)

    def __isub__(self, other):
        return self.sub(self, other)

    def __imul__(self, other):
        return self.mul(self, other)

    def __itruediv__(self, other):
        return self.div(self, other)


def _log_sum_partials(x: float, y: float, v: float, sign: float) -> Tuple[float, float, float, float, float]:
    # v = log(e^x ± e^y): first partials are the (signed) softmax weights.
    if v == -math.inf:
        return 0.0, 0.0, 0.0, 0.0, 0.0
    pa = _fexp(x - v)
    pb = sign * _fexp(y - v)
    return pa, pb, pa * (1.0 - pa), -pa * pb, pb * (1.0 - pb)


class BareReal(Real):
    """Plain mutable real: arithmetic never allocates derivative storage."""

    __slots__ = ()

    MAX_ORDER: int = 0
