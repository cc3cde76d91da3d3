"""Tests for dense and sparse matrices (header views, structure and math)."""

from __future__ import annotations

import tracemalloc

import pytest
import torch
from hypothesis import given, strategies as st
from hypothesis.extra.numpy import arrays
import numpy as np

from sparsediff import DenseMatrix, DenseVector, Real, SparseMatrix, SparseVector
from sparsediff.errors import (
    DimensionMismatchError,
    IndexOutOfRangeError,
    InvalidPermutationError,
    NotSquareError,
)

KINDS = [SparseMatrix, DenseMatrix]


@st.composite
def matrices(draw, max_dim: int = 6, square: bool = False):
    """``(rows, cols, values)`` with mostly-zero float64 values."""
    rows = draw(st.integers(min_value=1, max_value=max_dim))
    cols = rows if square else draw(st.integers(min_value=1, max_value=max_dim))
    elements = st.one_of(st.just(0.0), st.integers(min_value=-9, max_value=9).map(float))
    values = draw(arrays(np.float64, rows * cols, elements=elements))
    return rows, cols, values


def as_tensor(rows, cols, values) -> torch.Tensor:
    return torch.from_numpy(values.copy()).reshape(rows, cols)


# -----------------------------------------------------------------------------
# Construction & access
# -----------------------------------------------------------------------------


@pytest.mark.parametrize("kind", KINDS)
def test_end_to_end_matrix(kind):
    m = kind.from_triplets(2, 2, [0, 1], [1, 0], [5.0, 7.0])
    assert m.t().const_at(1, 0) == 5.0
    assert m.transpose().const_at(0, 1) == 7.0
    assert not m.is_symmetric(1e-9)
    assert m.dims() == (2, 2)


@pytest.mark.parametrize("kind", KINDS)
@given(data=matrices())
def test_from_values_round_trip(kind, data):
    rows, cols, values = data
    m = kind.from_values(rows, cols, values)
    assert torch.equal(m.get_values(), as_tensor(rows, cols, values))


@pytest.mark.parametrize("kind", KINDS)
def test_at_bounds(kind):
    m = kind.null(2, 3)
    m.at(1, 2).set(1.0)
    with pytest.raises(IndexOutOfRangeError):
        m.at(2, 0)
    with pytest.raises(IndexError):
        m.const_at(0, 3)
    with pytest.raises(IndexError):
        m.at(-1, 0)


def test_nil_null_identity():
    assert SparseMatrix.nil().dims() == (0, 0)
    assert DenseMatrix.nil().dims() == (0, 0)
    assert SparseMatrix.null(2, 3).nnz() == 0
    assert torch.equal(DenseMatrix.identity(3).get_values(), torch.eye(3, dtype=torch.float64))
    assert SparseMatrix.identity(3).nnz() == 3
    with pytest.raises(NotSquareError):
        SparseMatrix.null(2, 3).set_identity()


@pytest.mark.parametrize("kind", KINDS)
def test_item_access(kind):
    m = kind.null(2, 2)
    m[0, 1] = 3.0
    assert m[0, 1] == 3.0
    assert m.value_at(0, 1) == 3.0


# -----------------------------------------------------------------------------
# Views
# -----------------------------------------------------------------------------


@pytest.mark.parametrize("kind", KINDS)
def test_transpose_is_an_aliasing_view(kind):
    m = kind.from_values(2, 3, [1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
    t = m.t()
    assert t.dims() == (3, 2)
    assert t.transposed and not m.transposed
    assert torch.equal(t.get_values(), m.get_values().T)
    t.at(0, 1).set(9.0)
    assert m.value_at(1, 0) == 9.0
    assert t.t().value_at(1, 0) == 9.0


@pytest.mark.parametrize("kind", KINDS)
def test_slice_is_an_aliasing_view(kind):
    m = kind.from_values(3, 3, range(9))
    s = m.slice(1, 3, 1, 3)
    assert s.dims() == (2, 2)
    assert s.value_at(1, 1) == 8.0
    s.at(0, 0).set(42.0)
    assert m.value_at(1, 1) == 42.0
    assert torch.equal(s.get_values(), m.get_values()[1:3, 1:3])
    with pytest.raises(IndexOutOfRangeError):
        m.slice(0, 4, 0, 1)


@pytest.mark.parametrize("kind", KINDS)
def test_slice_of_transpose(kind):
    m = kind.from_values(3, 3, range(9))
    v = m.t().slice(0, 2, 1, 3)
    assert torch.equal(v.get_values(), m.get_values().T[0:2, 1:3])
    v.at(1, 0).set(-1.0)
    assert m.value_at(1, 1) == -1.0


@pytest.mark.parametrize("kind", KINDS)
def test_clone_detaches(kind):
    m = kind.from_triplets(2, 2, [0], [1], [Real.variable(1.0, 0, 1)])
    c = m.clone()
    c.at(0, 0).set(1.0)
    c.at(0, 1).set_derivative(0, 3.0)
    assert m.value_at(0, 0) == 0.0
    assert m.const_at(0, 1).get_derivative(0) == 1.0
    ct = m.t().clone()
    assert ct.transposed
    assert ct.value_at(1, 0) == 1.0


# -----------------------------------------------------------------------------
# In-place transpose
# -----------------------------------------------------------------------------


@pytest.mark.parametrize("kind", KINDS)
@given(data=matrices())
def test_tip_equals_transpose_clone(kind, data):
    rows, cols, values = data
    m = kind.from_values(rows, cols, values)
    expected = m.t().clone()
    backing = m.as_vector()
    assert m.tip() is m
    assert m.dims() == (cols, rows)
    assert not m.transposed
    assert m.as_vector() is backing
    assert torch.equal(m.get_values(), expected.get_values())
    assert torch.equal(m.get_values(), as_tensor(rows, cols, values).T)


@pytest.mark.parametrize("kind", KINDS)
@given(data=matrices())
def test_tip_of_transposed_header(kind, data):
    rows, cols, values = data
    t = kind.from_values(rows, cols, values).t()
    t.tip()
    assert t.dims() == (rows, cols)
    assert torch.equal(t.get_values(), as_tensor(rows, cols, values))


@pytest.mark.parametrize("kind", KINDS)
def test_tip_rejects_slices(kind):
    m = kind.from_values(3, 3, range(9))
    with pytest.raises(ValueError):
        m.slice(0, 2, 0, 3).tip()


def test_tip_allocates_no_full_size_buffer():
    rows, cols = 150, 200
    m = DenseMatrix.from_values(rows, cols, [float(k) for k in range(rows * cols)])
    tracemalloc.start()
    try:
        tracemalloc.reset_peak()
        m.tip()
        _, peak = tracemalloc.get_traced_memory()
    finally:
        tracemalloc.stop()
    # one pointer per backing cell
    assert peak < rows * cols * 8
    assert m.dims() == (cols, rows)
    for i, j in [(0, 0), (1, 0), (0, 1), (199, 149), (57, 103)]:
        assert m.value_at(i, j) == j * cols + i


def test_sparse_tip_moves_only_stored_cycles():
    m = SparseMatrix.from_triplets(7, 11, [0, 3, 6, 2], [10, 4, 0, 2], [1.0, 2.0, 3.0, 4.0])
    m.tip()
    assert m.dims() == (11, 7)
    assert m.nnz() == 4
    assert m.value_at(10, 0) == 1.0
    assert m.value_at(4, 3) == 2.0
    assert m.value_at(0, 6) == 3.0
    assert m.value_at(2, 2) == 4.0
    assert m.get_values().sum().item() == 10.0


# -----------------------------------------------------------------------------
# Lines, swaps & permutations
# -----------------------------------------------------------------------------


@pytest.mark.parametrize("kind", KINDS)
def test_rows_columns_diagonal(kind):
    m = kind.from_values(2, 3, [1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
    assert m.row(1).get_values().tolist() == [4.0, 5.0, 6.0]
    assert m.col(2).get_values().tolist() == [3.0, 6.0]
    t = m.t()
    assert t.row(2).get_values().tolist() == [3.0, 6.0]
    assert t.col(1).get_values().tolist() == [4.0, 5.0, 6.0]
    with pytest.raises(NotSquareError):
        m.diag()
    sq = kind.from_values(2, 2, [1.0, 2.0, 3.0, 4.0])
    assert sq.diag().get_values().tolist() == [1.0, 4.0]


def test_dense_contiguous_row_shares_scalars():
    m = DenseMatrix.from_values(2, 2, [1.0, 2.0, 3.0, 4.0])
    m.row(0).at(1).set_value(20.0)
    assert m.value_at(0, 1) == 20.0


@pytest.mark.parametrize("kind", KINDS)
def test_set_lines(kind):
    vkind = SparseVector if kind is SparseMatrix else DenseVector
    m = kind.from_values(2, 2, [1.0, 2.0, 3.0, 4.0])
    m.set_row(0, vkind.from_values([0.0, 9.0]))
    m.set_col(0, vkind.from_values([5.0, 6.0]))
    assert m.get_values().tolist() == [[5.0, 9.0], [6.0, 4.0]]
    m.set_diag(vkind.from_values([0.0, 0.0]))
    assert m.get_values().tolist() == [[0.0, 9.0], [6.0, 0.0]]
    with pytest.raises(DimensionMismatchError):
        m.set_row(0, vkind.from_values([1.0]))


@pytest.mark.parametrize("kind", KINDS)
def test_swaps(kind):
    m = kind.from_values(2, 2, [1.0, 2.0, 0.0, 4.0])
    m.swap(0, 0, 1, 0)
    assert m.get_values().tolist() == [[0.0, 2.0], [1.0, 4.0]]
    m.swap_rows(0, 1)
    assert m.get_values().tolist() == [[1.0, 4.0], [0.0, 2.0]]
    m.swap_columns(0, 1)
    assert m.get_values().tolist() == [[4.0, 1.0], [2.0, 0.0]]
    with pytest.raises(NotSquareError):
        kind.null(2, 3).swap_rows(0, 1)


@pytest.mark.parametrize("kind", KINDS)
def test_permute_rows_and_columns(kind):
    m = kind.from_values(3, 2, [1.0, 2.0, 3.0, 4.0, 5.0, 6.0])
    m.permute_rows([2, 0, 1])
    assert m.get_values().tolist() == [[5.0, 6.0], [1.0, 2.0], [3.0, 4.0]]
    m.permute_columns([1, 0])
    assert m.get_values().tolist() == [[6.0, 5.0], [2.0, 1.0], [4.0, 3.0]]
    with pytest.raises(InvalidPermutationError):
        m.permute_rows([0, 1])


@pytest.mark.parametrize("kind", KINDS)
@given(data=matrices(square=True), seed=st.randoms(use_true_random=False))
def test_symmetric_permutation(kind, data, seed):
    n, _, values = data
    pi = list(range(n))
    seed.shuffle(pi)
    m = kind.from_values(n, n, values)
    m.symmetric_permutation(pi)
    idx = torch.tensor(pi)
    assert torch.equal(m.get_values(), as_tensor(n, n, values)[idx][:, idx])


def test_symmetric_permutation_requires_square():
    with pytest.raises(NotSquareError):
        SparseMatrix.null(2, 3).symmetric_permutation([0, 1])


# -----------------------------------------------------------------------------
# Predicates & pruning
# -----------------------------------------------------------------------------


@pytest.mark.parametrize("kind", KINDS)
def test_is_symmetric(kind):
    m = kind.from_values(3, 3, [1.0, 2.0, 0.0, 2.0, 5.0, 3.0, 0.0, 3.0, 1.0])
    assert m.is_symmetric()
    m.at(2, 0).set(1e-3)
    assert not m.is_symmetric(1e-6)
    assert m.is_symmetric(1e-2)
    assert not kind.null(2, 3).is_symmetric()


def test_matrix_iteration_prunes_structural_zeros():
    m = SparseMatrix.from_triplets(2, 2, [0, 1], [1, 0], [5.0, 7.0])
    m.at(0, 1).set(0.0)
    assert m.nnz() == 2
    list(m.t().iterator())
    assert m.nnz() == 1
    assert m.value_at(0, 1) == 0.0


@pytest.mark.parametrize("kind", KINDS)
def test_equals_and_reset(kind):
    a = kind.from_values(2, 2, [1.0, 0.0, 0.0, 2.0])
    b = kind.from_values(2, 2, [1.0, 0.0, 0.0, 2.0 + 1e-14])
    assert a.equals(b)
    assert not a.equals(kind.null(2, 2))
    assert not a.equals(kind.null(2, 3))
    a.slice(0, 1, 0, 2).reset()
    assert a.get_values().tolist() == [[0.0, 0.0], [0.0, 2.0]]
    a.reset()
    assert a.get_values().tolist() == [[0.0, 0.0], [0.0, 0.0]]


# -----------------------------------------------------------------------------
# Math
# -----------------------------------------------------------------------------


@pytest.mark.parametrize("kind", KINDS)
@given(x=matrices(max_dim=4), data=st.data())
def test_elementwise_kernels(kind, x, data):
    rows, cols, va = x
    elements = st.integers(min_value=-9, max_value=9).map(float)
    vb = data.draw(arrays(np.float64, rows * cols, elements=elements))
    a, b = kind.from_values(rows, cols, va), kind.from_values(rows, cols, vb)
    ta, tb = as_tensor(rows, cols, va), as_tensor(rows, cols, vb)
    r = kind.null(rows, cols)
    assert torch.equal(r.madd_m(a, b).get_values(), ta + tb)
    assert torch.equal(r.msub_m(a, b).get_values(), ta - tb)
    assert torch.equal(r.mmul_m(a, b).get_values(), ta * tb)
    assert torch.equal(r.mmul_s(a, 3.0).get_values(), ta * 3.0)
    assert torch.equal(r.mdiv_s(a, 2.0).get_values(), ta / 2.0)
    assert torch.equal(r.madd_s(a, 1.0).get_values(), ta + 1.0)
    assert torch.equal(r.msub_s(a, 1.0).get_values(), ta - 1.0)


@pytest.mark.parametrize("kind", KINDS)
def test_madd_with_own_transpose_is_symmetric(kind):
    m = kind.from_values(3, 3, range(9))
    r = kind.null(3, 3)
    r.madd_m(m, m.t())
    assert r.is_symmetric()
    m.madd_m(m, m.t())
    assert m.is_symmetric()
    assert m.equals(r)


@pytest.mark.parametrize("kind", KINDS)
@given(data=st.data())
def test_mdot_m_matches_matmul(kind, data):
    n, k, m = (data.draw(st.integers(min_value=1, max_value=4)) for _ in range(3))
    elements = st.one_of(st.just(0.0), st.integers(min_value=-5, max_value=5).map(float))
    va = data.draw(arrays(np.float64, n * k, elements=elements))
    vb = data.draw(arrays(np.float64, k * m, elements=elements))
    a, b = kind.from_values(n, k, va), kind.from_values(k, m, vb)
    r = kind.null(n, m).mdot_m(a, b)
    assert torch.equal(r.get_values(), as_tensor(n, k, va) @ as_tensor(k, m, vb))


@pytest.mark.parametrize("kind", KINDS)
def test_mdot_m_with_aliased_operands(kind):
    values = [1.0, 2.0, 0.0, 3.0]
    expected = torch.tensor(values, dtype=torch.float64).reshape(2, 2)
    a = kind.from_values(2, 2, values)
    a.mdot_m(a, a)
    assert torch.equal(a.get_values(), expected @ expected)
    b = kind.from_values(2, 2, values)
    b.mdot_m(b.t(), b)
    assert torch.equal(b.get_values(), expected.T @ expected)
    c = kind.from_values(2, 2, values)
    c.mdot_m(DenseMatrix.identity(2) if kind is DenseMatrix else SparseMatrix.identity(2), c)
    assert torch.equal(c.get_values(), expected)
    with pytest.raises(DimensionMismatchError):
        kind.null(2, 2).mdot_m(kind.null(2, 3), kind.null(2, 2))


@pytest.mark.parametrize("kind", KINDS)
def test_outer_trace_norm(kind):
    vkind = SparseVector if kind is SparseMatrix else DenseVector
    r = kind.null(2, 3).outer(vkind.from_values([1.0, 2.0]), vkind.from_values([3.0, 0.0, 1.0]))
    assert r.get_values().tolist() == [[3.0, 0.0, 1.0], [6.0, 0.0, 2.0]]
    sq = kind.from_values(2, 2, [3.0, 0.0, 4.0, 5.0])
    assert sq.trace().value == 8.0
    assert sq.norm().value == pytest.approx(torch.linalg.norm(sq.get_values()).item())


def test_differentiable_matrix_product():
    x = Real.variable(2.0, 0, 1, order=2)
    a = DenseMatrix.from_triplets(1, 1, [0], [0], [x])
    a.mdot_m(a, a)
    s = a.const_at(0, 0)
    assert s.value == 4.0
    assert s.get_derivative(0) == 4.0
    assert s.get_hessian(0, 0) == 2.0


@pytest.mark.parametrize("kind", KINDS)
def test_as_vector(kind):
    m = kind.from_values(2, 2, [1.0, 2.0, 3.0, 4.0])
    assert m.as_vector() is m.as_vector()
    assert m.t().as_vector().get_values().tolist() == [1.0, 3.0, 2.0, 4.0]
