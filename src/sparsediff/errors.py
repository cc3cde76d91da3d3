"""Exception taxonomy shared by all containers.

Each error also derives from the builtin exception a caller would naturally
catch (``ValueError``, ``IndexError`` ...), so ``except ValueError`` keeps
working for code that does not know about *sparsediff*.
"""

from __future__ import annotations

__all__ = [
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


class LinalgError(Exception):
    """Base class of every error raised by *sparsediff*."""


class DimensionMismatchError(LinalgError, ValueError):
    pass


class IndexOutOfRangeError(LinalgError, IndexError):
    pass


class NotSquareError(LinalgError, ValueError):
    pass


class InvalidPermutationError(LinalgError, ValueError):
    pass


class NotPositiveDefiniteError(LinalgError, ArithmeticError):
    """Raised by factorisations layered on top of the matrix containers."""


class OrderMismatchError(LinalgError, ValueError):
    """Mixed derivative orders under the ``"strict"`` order policy."""


class FileFormatError(LinalgError, ValueError):
    """Malformed table or JSON input."""


class OrderTruncationWarning(UserWarning):
    """Mixed derivative orders under the ``"warn"`` order policy."""


# -----------------------------------------------------------------------------
# Small validation helpers used throughout the package
# -----------------------------------------------------------------------------


def check_index(i: int, n: int, what: str = "index"):
    if i < 0 or i >= n:
        raise IndexOutOfRangeError(f"{what} {i} out of range [0, {n})")


def check_dims(a: int, b: int, op: str):
    if a != b:
        raise DimensionMismatchError(f"{op}: dimensions do not match ({a} != {b})")


def check_permutation(pi, n: int):
    """Validate that *pi* is a bijection of ``range(n)``."""
    if len(pi) != n:
        raise InvalidPermutationError(f"permutation has length {len(pi)}, expected {n}")
    seen = [False] * n
    for k in pi:
        if k < 0 or k >= n or seen[k]:
            raise InvalidPermutationError(f"invalid permutation entry {k}")
        seen[k] = True


def check_range(start: int, stop: int, n: int):
    """Validate a half-open slice ``[start, stop)`` of a length-*n* dimension."""
    if start < 0 or stop > n or start > stop:
        raise IndexOutOfRangeError(f"slice [{start}, {stop}) out of range [0, {n})")
