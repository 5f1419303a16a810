"""
Return series validation.

The engine consumes log-returns already computed by an upstream data layer.
This module only checks and normalises them into a float ``pd.Series``:
ordered, unique index, no missing or infinite values.
"""

from typing import Sequence, Union

import numpy as np
import pandas as pd

from garch_evt.exceptions import DataError

ArrayLike = Union[pd.Series, np.ndarray, Sequence[float]]


def as_return_series(returns: ArrayLike, name: str = "returns",
                     min_length: int = 1, check_index: bool = True) -> pd.Series:
    """
    Validate ``returns`` and return a fresh float Series.

    Arrays and lists receive a positional RangeIndex. The result is always a
    copy, so downstream code can never mutate a caller's data. With
    ``check_index=False`` only the values are checked, for samples whose
    order carries no meaning (e.g. residuals fed to the tail fit).

    Raises:
        DataError: not 1-D, not numeric, NaN/inf values, duplicate or
            non-increasing index, or fewer than ``min_length`` points
    """
    if isinstance(returns, pd.DataFrame):
        if returns.shape[1] != 1:
            raise DataError(f"{name} must be a single column, got {returns.shape[1]}")
        returns = returns.iloc[:, 0]

    if isinstance(returns, pd.Series):
        index = returns.index
        values = returns.to_numpy()
    else:
        values = np.asarray(returns)
        index = None

    if values.ndim != 1:
        raise DataError(f"{name} must be one-dimensional, got shape {values.shape}")
    try:
        values = values.astype(np.float64)
    except (TypeError, ValueError) as exc:
        raise DataError(f"{name} must be numeric: {exc}") from exc

    if len(values) < min_length:
        raise DataError(
            f"Insufficient data: {len(values)} observations in {name}, "
            f"need at least {min_length}")
    if not np.all(np.isfinite(values)):
        n_bad = int(np.sum(~np.isfinite(values)))
        raise DataError(f"{name} contains {n_bad} NaN/inf values")

    if index is None:
        index = pd.RangeIndex(len(values))
    elif check_index:
        if index.has_duplicates:
            raise DataError(f"{name} has duplicate timestamps")
        if not index.is_monotonic_increasing:
            raise DataError(f"{name} timestamps must be strictly increasing")

    return pd.Series(values, index=index.copy(), name=name)
