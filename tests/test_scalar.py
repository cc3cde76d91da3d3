"""Tests for the differentiable scalar kinds."""

from __future__ import annotations

import math

import pytest
import torch
from hypothesis import given, strategies as st

from sparsediff import config
from sparsediff.errors import DimensionMismatchError, OrderMismatchError, OrderTruncationWarning
from sparsediff.scalar import ONE, ZERO, BareReal, ConstReal, Real

finite = st.floats(min_value=-10.0, max_value=10.0, allow_nan=False, allow_infinity=False)


def xy(order: int = 2):
    return Real.variable(3.0, 0, 2, order), Real.variable(4.0, 1, 2, order)


# -----------------------------------------------------------------------------
# Construction & accessors
# -----------------------------------------------------------------------------


def test_variable_seeds_one_hot_gradient():
    x = Real.variable(2.5, 1, 3, order=2)
    assert x.value == 2.5
    assert x.order == 2
    assert x.n == 3
    assert x.variable_index == 1
    assert torch.equal(x.derivative, torch.tensor([0.0, 1.0, 0.0], dtype=torch.float64))
    assert torch.equal(x.hessian, torch.zeros((3, 3), dtype=torch.float64))


def test_constants_have_order_zero():
    assert ZERO.order == 0 and ZERO.get_value() == 0.0
    assert ONE.get_value() == 1.0
    assert ConstReal(2).value == 2.0
    assert ZERO.get_derivative(5) == 0.0
    assert Real(1.5).derivative is None


def test_bare_real_never_allocates_derivatives():
    x, y = xy()
    b = BareReal()
    b.mul(x, y)
    assert b.get_value() == 12.0
    assert b.order == 0
    assert b.derivative is None
    with pytest.raises(ValueError):
        BareReal().set_variable(0, 2)


def test_alloc_and_setters():
    r = Real(1.0).alloc(3, 2)
    r.set_derivative(2, 4.0).set_hessian(0, 1, -1.0)
    assert r.get_derivative(2) == 4.0
    assert r.get_hessian(0, 1) == -1.0
    with pytest.raises(IndexError):
        r.set_derivative(3, 1.0)


def test_structural_zero():
    assert Real().is_structural_zero()
    x = Real.variable(0.0, 0, 2)
    assert not x.is_structural_zero()
    x.reset()
    assert x.order == 1
    assert x.is_structural_zero()


def test_clone_is_deep():
    x, _ = xy()
    c = x.clone()
    c.set_value(5.0)
    c.set_derivative(0, 7.0)
    assert x.value == 3.0
    assert x.get_derivative(0) == 1.0
    assert ZERO.clone().get_value() == 0.0


# -----------------------------------------------------------------------------
# Chain rule
# -----------------------------------------------------------------------------


def test_product_rule_up_to_second_order():
    x, y = xy()
    r = Real().mul(x, y)
    assert r.value == 12.0
    assert torch.equal(r.derivative, torch.tensor([4.0, 3.0], dtype=torch.float64))
    assert torch.equal(r.hessian, torch.tensor([[0.0, 1.0], [1.0, 0.0]], dtype=torch.float64))


def test_quotient_rule():
    x, y = xy()
    r = Real().div(x, y)
    assert r.value == 0.75
    assert torch.allclose(r.derivative, torch.tensor([0.25, -3.0 / 16.0], dtype=torch.float64))


def test_destination_may_alias_operands():
    x, _ = xy()
    r = x.clone()
    r.mul(r, r)
    assert r.value == 9.0
    assert torch.equal(r.derivative, torch.tensor([6.0, 0.0], dtype=torch.float64))
    assert torch.equal(r.hessian, torch.tensor([[2.0, 0.0], [0.0, 0.0]], dtype=torch.float64))


def test_hessian_matches_torch_autograd():
    x, y = xy()
    r = Real().mul(Real().sin(x), Real().exp(y))

    def f(v):
        return torch.sin(v[0]) * torch.exp(v[1])

    v = torch.tensor([3.0, 4.0], dtype=torch.float64)
    grad = torch.autograd.functional.jacobian(f, v)
    hess = torch.autograd.functional.hessian(f, v)
    assert torch.allclose(r.derivative, grad)
    assert torch.allclose(r.hessian, hess)


@given(finite)
def test_sin_derivatives(x0: float):
    x = Real.variable(x0, 0, 1, order=2)
    r = Real().sin(x)
    assert math.isclose(r.get_derivative(0), math.cos(x0), abs_tol=1e-12)
    assert math.isclose(r.get_hessian(0, 0), -math.sin(x0), abs_tol=1e-12)


@given(finite, finite)
def test_product_gradient_is_swapped_values(a0: float, b0: float):
    a, b = Real.variable(a0, 0, 2), Real.variable(b0, 1, 2)
    r = a * b
    assert r.get_derivative(0) == b0
    assert r.get_derivative(1) == a0


@given(st.floats(min_value=-20.0, max_value=20.0))
def test_logistic_matches_torch(x0: float):
    x = Real.variable(x0, 0, 1, order=2)
    r = Real().logistic(x)
    t = torch.tensor(x0, dtype=torch.float64, requires_grad=True)
    (g,) = torch.autograd.grad(torch.sigmoid(t), t)
    assert math.isclose(r.value, torch.sigmoid(t).item(), rel_tol=1e-12, abs_tol=1e-15)
    assert math.isclose(r.get_derivative(0), g.item(), rel_tol=1e-9, abs_tol=1e-15)


def test_pow_with_constant_exponent():
    x, _ = xy()
    r = x ** 2.0
    assert r.value == 9.0
    assert torch.allclose(r.derivative, torch.tensor([6.0, 0.0], dtype=torch.float64))
    assert torch.allclose(r.hessian, torch.tensor([[2.0, 0.0], [0.0, 0.0]], dtype=torch.float64))
    r0 = x ** 0
    assert r0.value == 1.0
    assert torch.equal(r0.derivative, torch.zeros(2, dtype=torch.float64))


def test_pow_with_variable_exponent():
    x, y = xy(order=1)
    r = Real().pow(x, y)
    assert r.value == 81.0
    assert math.isclose(r.get_derivative(0), 4.0 * 27.0)
    assert math.isclose(r.get_derivative(1), 81.0 * math.log(3.0))


def test_log_add_and_log_sub():
    a, b = Real(math.log(2.0)), Real(math.log(3.0))
    assert math.isclose(Real().log_add(a, b).value, math.log(5.0))
    assert math.isclose(Real().log_sub(b, a).value, 0.0, abs_tol=1e-12)
    assert math.isnan(Real().log_sub(a, b).value)
    x = Real.variable(0.0, 0, 2)
    y = Real.variable(0.0, 1, 2)
    r = Real().log_add(x, y)
    assert torch.allclose(r.derivative, torch.tensor([0.5, 0.5], dtype=torch.float64))


def test_unary_family_values():
    x = Real.variable(0.5, 0, 1, order=2)
    assert math.isclose(Real().sqrt(x).get_derivative(0), 0.5 / math.sqrt(0.5))
    assert math.isclose(Real().log(x).get_hessian(0, 0), -4.0)
    assert math.isclose(Real().log1p(x).get_derivative(0), 1.0 / 1.5)
    assert math.isclose(Real().expm1(x).value, math.expm1(0.5))
    assert math.isclose(Real().tan(x).get_derivative(0), 1.0 / math.cos(0.5) ** 2)
    assert math.isclose(Real().tanh(x).get_derivative(0), 1.0 - math.tanh(0.5) ** 2)
    assert math.isclose(Real().cosh(x).get_derivative(0), math.sinh(0.5))
    assert math.isclose(Real().erf(x).get_derivative(0), 2.0 / math.sqrt(math.pi) * math.exp(-0.25))
    assert Real().abs(Real.variable(-2.0, 0, 1)).get_derivative(0) == -1.0
    assert (-x).value == -0.5


# -----------------------------------------------------------------------------
# IEEE edge cases
# -----------------------------------------------------------------------------


def test_float_edge_cases_do_not_raise():
    assert Real().div(1.0, 0.0).value == math.inf
    assert Real().div(-1.0, 0.0).value == -math.inf
    assert math.isnan(Real().div(0.0, 0.0).value)
    assert Real().log(0.0).value == -math.inf
    assert math.isnan(Real().sqrt(-1.0).value)
    assert Real().exp(1000.0).value == math.inf


def test_pow_of_signed_zero_with_negative_exponent():
    assert Real().pow(-0.0, -1.0).value == -math.inf
    assert Real().pow(-0.0, -3.0).value == -math.inf
    assert Real().pow(-0.0, -2.0).value == math.inf
    assert Real().pow(-0.0, -0.5).value == math.inf
    assert Real().pow(0.0, -1.0).value == math.inf


# -----------------------------------------------------------------------------
# Order policy
# -----------------------------------------------------------------------------


def test_constants_do_not_lower_the_order():
    x = Real.variable(2.0, 0, 1, order=2)
    r = x * 3.0
    assert r.order == 2
    assert r.get_derivative(0) == 3.0


def test_mixed_orders_truncate_by_default():
    x = Real.variable(1.0, 0, 2, order=1)
    y = Real.variable(2.0, 1, 2, order=2)
    r = Real().add(x, y)
    assert r.order == 1
    assert r.hessian is None


def test_mixed_orders_warn_policy():
    config.set_order_policy("warn")
    x = Real.variable(1.0, 0, 2, order=1)
    y = Real.variable(2.0, 1, 2, order=2)
    with pytest.warns(OrderTruncationWarning):
        Real().mul(x, y)


def test_mixed_orders_strict_policy():
    config.set_order_policy("strict")
    x = Real.variable(1.0, 0, 2, order=1)
    y = Real.variable(2.0, 1, 2, order=2)
    with pytest.raises(OrderMismatchError):
        Real().sub(x, y)


def test_variable_count_mismatch():
    with pytest.raises(DimensionMismatchError):
        Real.variable(1.0, 0, 2) + Real.variable(1.0, 0, 3)


# -----------------------------------------------------------------------------
# Python operators
# -----------------------------------------------------------------------------


def test_operators_allocate_results():
    x, y = xy()
    r = x * y + 1.0
    assert isinstance(r, Real)
    assert r.value == 13.0
    assert x.value == 3.0
    z = ZERO + 1.0
    assert isinstance(z, BareReal)
    assert z.value == 1.0
    assert (2.0 / Real(4.0)).value == 0.5


def test_in_place_operators_mutate():
    x, y = xy()
    r = x.clone()
    r += y
    r *= 2.0
    assert r.value == 14.0
    assert torch.equal(r.derivative, torch.tensor([2.0, 2.0], dtype=torch.float64))


def test_comparisons_use_values():
    assert Real(1.0) == 1.0
    assert Real(1.0) < Real(2.0)
    assert Real.variable(1.0, 0, 1) == ConstReal(1.0)
    assert float(Real(2.5)) == 2.5
