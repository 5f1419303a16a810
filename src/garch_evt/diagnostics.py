"""
Return and Residual Diagnostics
===============================

Stylised-fact checks that motivate the GARCH-EVT model and validate its
fit:

    1. Descriptive moments (fat tails show up as excess kurtosis > 0)
    2. Jarque-Bera normality test on returns
    3. Ljung-Box test on squared standardized residuals (remaining ARCH
       effects mean the volatility filter is misspecified)
    4. Empirical mean-excess function e(u) = E[L - u | L > u], roughly
       linear with slope xi/(1-xi) above a good GPD threshold
    5. Normal QQ data for the residuals

Statistical outcomes are reported, never raised.

Author: Jose Orlando Bobadilla Fuentes | CQF
"""

from dataclasses import dataclass
from typing import Optional, Sequence

import numpy as np
import pandas as pd
from scipy import stats
from statsmodels.stats.diagnostic import acorr_ljungbox

from garch_evt.returns import ArrayLike, as_return_series


@dataclass(frozen=True)
class HypothesisTest:
    """Statistic, p-value and 5%-level decision of a hypothesis test."""
    name: str
    statistic: float
    pvalue: float
    reject: bool


def describe_returns(returns: ArrayLike) -> dict:
    """Mean, std, skewness, excess kurtosis, min, max and count."""
    r = as_return_series(returns, min_length=2)
    return {
        "n": len(r),
        "mean": float(r.mean()),
        "std": float(r.std(ddof=1)),
        "skewness": float(stats.skew(r.to_numpy())),
        "excess_kurtosis": float(stats.kurtosis(r.to_numpy(), fisher=True)),
        "min": float(r.min()),
        "max": float(r.max()),
    }


def jarque_bera_test(returns: ArrayLike, significance: float = 0.05) -> HypothesisTest:
    """H0: returns are Normal (zero skewness and excess kurtosis)."""
    r = as_return_series(returns, min_length=3)
    jb_stat, jb_p = stats.jarque_bera(r.to_numpy())
    return HypothesisTest("Jarque-Bera", float(jb_stat), float(jb_p), bool(jb_p < significance))


def ljung_box_test(residuals: ArrayLike, lags: int = 10, squared: bool = True,
                   significance: float = 0.05) -> HypothesisTest:
    """
    H0: no autocorrelation up to ``lags``.

    With ``squared=True`` this tests z_t^2, i.e. whether volatility
    clustering survived the GARCH filter.
    """
    z = as_return_series(residuals, name="residuals", min_length=lags + 2)
    x = z.to_numpy() ** 2 if squared else z.to_numpy()
    lb = acorr_ljungbox(x, lags=[lags])
    stat = float(lb["lb_stat"].iloc[-1])
    pvalue = float(lb["lb_pvalue"].iloc[-1])
    name = f"Ljung-Box({lags}){' on squares' if squared else ''}"
    return HypothesisTest(name, stat, pvalue, bool(pvalue < significance))


def mean_excess(losses: ArrayLike,
                thresholds: Optional[Sequence[float]] = None,
                n_thresholds: int = 50) -> pd.DataFrame:
    """
    Empirical mean-excess function.

    Default thresholds span the 50%-99% quantiles of the losses. Thresholds
    with no exceedances are dropped.
    """
    x = as_return_series(losses, name="losses", min_length=2).to_numpy()
    if thresholds is None:
        thresholds = np.quantile(x, np.linspace(0.50, 0.99, n_thresholds))
    rows = []
    for u in np.asarray(thresholds, dtype=np.float64):
        exc = x[x > u] - u
        if len(exc) > 0:
            rows.append((float(u), float(exc.mean()), len(exc)))
    return pd.DataFrame(rows, columns=["threshold", "mean_excess", "n_exceedances"])


def normal_qq(residuals: ArrayLike) -> pd.DataFrame:
    """Theoretical Normal vs. ordered sample quantiles, plus the fitted line."""
    z = as_return_series(residuals, name="residuals", min_length=3).to_numpy()
    (osm, osr), (slope, intercept, _) = stats.probplot(z, dist="norm")
    return pd.DataFrame({"theoretical": osm, "sample": osr,
                         "fitted": intercept + slope * osm})


def residual_diagnostics(returns: ArrayLike, residuals: ArrayLike,
                         lags: int = 10) -> dict:
    """Bundle used by the risk report."""
    return {"returns": describe_returns(returns),
            "jarque_bera": jarque_bera_test(returns),
            "residuals": describe_returns(residuals),
            "ljung_box_squared": ljung_box_test(residuals, lags=lags, squared=True)}
