from __future__ import annotations

import pytest
from hypothesis import settings

from sparsediff import config

# Register *and* load a profile that disables per-example deadlines; derivative
# tensors make the first examples noticeably slower than the rest.
settings.register_profile("sparsediff_no_deadline", deadline=None)
settings.load_profile("sparsediff_no_deadline")


@pytest.fixture(autouse=True)
def _restore_config():
    """Undo any ``config.set_*`` call a test makes."""
    saved = (config.DTYPE, config.ORDER_POLICY, config.EPSILON, config.TABLE_FLOAT_FORMAT)
    yield
    config.set_dtype(saved[0])
    config.set_order_policy(saved[1])
    config.set_epsilon(saved[2])
    config.set_table_float_format(saved[3])
