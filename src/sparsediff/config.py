"""Global configuration for *sparsediff*.

This module centralises project-wide knobs so they can be tweaked from a
single location.  Every setter validates its argument before mutating the
module-level constant; callers that read a knob should always go through the
module (``config.ORDER_POLICY``) rather than importing the name directly so
that later updates are observed.

Order policy
------------
Combining two differentiable scalars of different derivative order (say a
gradient-only value with a value that also carries a Hessian) can only ever
produce the *lower* order – the missing Hessian is unknown, not zero.  The
policy decides how loudly that happens:

* ``"truncate"`` – silently keep the lower order (default).
* ``"warn"``     – keep the lower order and emit :class:`OrderTruncationWarning`.
* ``"strict"``   – raise :class:`~sparsediff.errors.OrderMismatchError`.

Order-0 operands are constants and never trigger the policy.
"""

from __future__ import annotations

import torch

__all__ = [
    "DTYPE",
    "ORDER_POLICY",
    "ORDER_POLICIES",
    "EPSILON",
    "TABLE_FLOAT_FORMAT",
    "set_dtype",
    "set_order_policy",
    "set_epsilon",
    "set_table_float_format",
]

# -----------------------------------------------------------------------------
# Public constants
# -----------------------------------------------------------------------------

DTYPE: torch.dtype = torch.float64  # gradients, Hessians and get_values()

ORDER_POLICIES = ("truncate", "warn", "strict")
ORDER_POLICY: str = "truncate"

EPSILON: float = 1e-12  # default tolerance for equals() / is_symmetric()

TABLE_FLOAT_FORMAT: str = "{!r}"  # repr() round-trips float64 exactly

# -----------------------------------------------------------------------------
# Setters
# -----------------------------------------------------------------------------


def set_dtype(dtype: torch.dtype):
    """Change the floating-point dtype used for derivative tensors."""
    global DTYPE
    if not dtype.is_floating_point:
        raise ValueError(f"dtype must be a floating point type, got {dtype}")
    DTYPE = dtype


def set_order_policy(policy: str):
    """Select how mixed-order arithmetic is reported (see module docstring)."""
    global ORDER_POLICY
    if policy not in ORDER_POLICIES:
        raise ValueError(f"Unknown order policy {policy!r}; expected one of {ORDER_POLICIES}")
    ORDER_POLICY = policy


def set_epsilon(eps: float):
    global EPSILON
    if eps < 0.0:
        raise ValueError("Epsilon must be non-negative.")
    EPSILON = float(eps)


def set_table_float_format(fmt: str):
    """Change the ``str.format`` pattern used when exporting table files."""
    global TABLE_FLOAT_FORMAT
    fmt.format(1.5)  # fail early on a broken pattern
    TABLE_FLOAT_FORMAT = fmt
