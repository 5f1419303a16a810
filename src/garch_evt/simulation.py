"""
Synthetic data for the demo run and the test-suite.

GARCH returns come from the ``arch`` simulator (ConstantMean mean model,
GARCH volatility, Normal or Student-t shocks); GPD exceedances from
``scipy.stats.genpareto``.
"""

from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd
from arch.univariate import GARCH, ConstantMean, Normal, StudentsT
from scipy.stats import genpareto


def simulate_garch_returns(n: int = 2000,
                           mu: float = 0.0005,
                           omega: float = 2e-6,
                           alpha: Union[float, Sequence[float]] = 0.08,
                           beta: Union[float, Sequence[float]] = 0.90,
                           dist: str = "normal",
                           nu: float = 5.0,
                           seed: Optional[int] = 42,
                           start: str = "2015-01-02",
                           burn: int = 500) -> pd.Series:
    """
    Simulate daily log-returns from a GARCH(p, q) process.

    Parameters:
        n: Number of returned observations (after ``burn``)
        mu, omega, alpha, beta: Process parameters (alpha/beta may be lists)
        dist: "normal" or "t" (standardized Student-t with ``nu`` dof)
        seed: Seed for the shock generator
        start: First business day of the returned index
    """
    alpha = np.atleast_1d(np.asarray(alpha, dtype=np.float64))
    beta = np.atleast_1d(np.asarray(beta, dtype=np.float64))
    if alpha.sum() + beta.sum() >= 1.0:
        raise ValueError("alpha + beta must be < 1 for a stationary process")

    if dist == "normal":
        distribution = Normal(seed=seed)
        params = np.concatenate(([mu, omega], alpha, beta))
    elif dist == "t":
        if nu <= 2:
            raise ValueError("Student-t shocks need nu > 2")
        distribution = StudentsT(seed=seed)
        params = np.concatenate(([mu, omega], alpha, beta, [nu]))
    else:
        raise ValueError(f"dist must be 'normal' or 't', got {dist!r}")

    model = ConstantMean(None, volatility=GARCH(p=len(alpha), q=len(beta)),
                         distribution=distribution)
    sim = model.simulate(params, n, burn=burn)
    index = pd.bdate_range(start=start, periods=n, name="date")
    return pd.Series(sim["data"].to_numpy(), index=index, name="returns")


def simulate_gpd_sample(n: int, xi: float, beta: float,
                        seed: Optional[int] = 42) -> np.ndarray:
    """Draw ``n`` GPD(xi, beta) exceedances."""
    return genpareto.rvs(c=xi, scale=beta, size=n, random_state=seed)
