# SPDX-License-Identifier: MIT
"""sparsediff – Sparse and dense containers of differentiable scalars.

Vectors and matrices whose entries carry a value together with an exact
gradient and (optionally) Hessian, propagated by forward-mode automatic
differentiation.  Derivatives are stored as PyTorch tensors so they can be
handed straight to torch-based optimisers.

Sparse containers keep only non-zero entries; matrices are lightweight
headers over a flat backing vector, which makes transposes and slices O(1)
views sharing storage with the original.
"""

from __future__ import annotations

from . import config
from .errors import (
    LinalgError,
    DimensionMismatchError,
    IndexOutOfRangeError,
    NotSquareError,
    InvalidPermutationError,
    NotPositiveDefiniteError,
    OrderMismatchError,
    FileFormatError,
    OrderTruncationWarning,
)
from .scalar import ConstScalar, ConstReal, BareReal, Real, ZERO, ONE, as_scalar
from .sparse_index import SparseIndex
from .vector import Vector
from .dense_vector import DenseVector
from .sparse_vector import SparseVector
from .matrix import Matrix
from .dense_matrix import DenseMatrix
from .sparse_matrix import SparseMatrix

__all__ = [
    "config",
    # scalars
    "ConstScalar",
    "ConstReal",
    "BareReal",
    "Real",
    "ZERO",
    "ONE",
    "as_scalar",
    # containers
    "SparseIndex",
    "Vector",
    "DenseVector",
    "SparseVector",
    "Matrix",
    "DenseMatrix",
    "SparseMatrix",
    # errors
    "LinalgError",
    "DimensionMismatchError",
    "IndexOutOfRangeError",
    "NotSquareError",
    "InvalidPermutationError",
    "NotPositiveDefiniteError",
    "OrderMismatchError",
    "FileFormatError",
    "OrderTruncationWarning",
]
