"""
VaR Breach Backtesting
======================

Compares realized returns against a time-varying VaR series:

    breach_t = r_t < -VaR_t      (returns negative = losses, VaR positive)

and summarises the breach count against the nominal rate p = 1 - c with:
    1. Kupiec (1995) Proportion of Failures (POF) test
    2. Traffic light system (Basel Committee), scaled to the nominal rate

Author: Jose Orlando Bobadilla Fuentes | CQF
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union

import numpy as np
import pandas as pd
from scipy.stats import chi2

from garch_evt.exceptions import DataError
from garch_evt.models.risk_metrics import RiskEstimateSeries
from garch_evt.returns import ArrayLike, as_return_series

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BreachRecord:
    """Outcome at one timestamp."""
    timestamp: object
    realized_return: float
    var: float
    breach: bool


@dataclass(frozen=True)
class BacktestSummary:
    """Aggregate breach statistics; raw counts are exposed for further tests."""
    n_observations: int
    n_breaches: int
    breach_rate: float
    expected_rate: float
    confidence: float
    model: str
    kupiec_statistic: float
    kupiec_pvalue: float
    kupiec_reject: bool
    traffic_light: str
    breach_dates: Tuple


@dataclass(frozen=True, eq=False)
class BacktestResult:
    """Per-date breach flags plus the summary."""
    returns: pd.Series
    var: pd.Series
    breaches: pd.Series
    summary: BacktestSummary

    @property
    def records(self) -> List[BreachRecord]:
        return [BreachRecord(timestamp=ts, realized_return=float(r), var=float(v),
                             breach=bool(b))
                for ts, r, v, b in zip(self.breaches.index, self.returns.to_numpy(),
                                       self.var.to_numpy(), self.breaches.to_numpy())]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({"return": self.returns, "var": self.var,
                             "breach": self.breaches})


def kupiec_test(n_breaches: int, n_obs: int, expected_rate: float) -> Tuple[float, float]:
    """
    Kupiec proportion-of-failures likelihood ratio and its chi2(1) p-value.

    Compares the Bernoulli log-likelihood of the breach count at the nominal
    rate p against the one at the observed rate x/T. The x = 0 and x = T
    cases drop the 0*log(0) term of the observed-rate likelihood.
    """
    p, x, T = expected_rate, n_breaches, n_obs
    ll_nominal = (T - x) * np.log1p(-p) + x * np.log(p)
    if 0 < x < T:
        p_hat = x / T
        ll_observed = (T - x) * np.log1p(-p_hat) + x * np.log(p_hat)
    else:
        ll_observed = 0.0
    lr = max(2.0 * (ll_observed - ll_nominal), 0.0)
    return float(lr), float(chi2.sf(lr, df=1))


def traffic_light(breach_rate: float, expected_rate: float) -> str:
    """
    Zone of an observed breach rate relative to the nominal rate p.

    GREEN up to 1.5*p, YELLOW up to 3*p, RED above. The cut-offs are rate
    multiples, so they apply unchanged to any sample size and confidence.
    """
    if breach_rate <= 1.5 * expected_rate:
        return "GREEN"
    if breach_rate <= 3.0 * expected_rate:
        return "YELLOW"
    return "RED"


class BacktestEvaluator:
    """
    Breach evaluator for a time-aligned VaR series.

    Usage:
        >>> result = BacktestEvaluator().evaluate(returns, calc.evt(garch.conditional_volatility))
        >>> result.summary.breach_rate, result.summary.traffic_light
    """

    def __init__(self, significance: float = 0.05):
        self.significance = significance

    def evaluate(self, returns: ArrayLike,
                 var_series: Union[RiskEstimateSeries, pd.Series],
                 confidence: Optional[float] = None,
                 model: Optional[str] = None) -> BacktestResult:
        """
        Flag breaches and summarise them.

        Parameters:
            returns: Realized returns
            var_series: RiskEstimateSeries, or a Series of positive VaR
                magnitudes (then ``confidence`` is required)
            confidence: Overrides the confidence carried by ``var_series``
            model: Label for the summary (defaults to the series' model tag)

        Raises:
            DataError: indexes differ, series empty, or invalid VaR values
        """
        if isinstance(var_series, RiskEstimateSeries):
            var = var_series.var
            confidence = var_series.confidence if confidence is None else confidence
            model = var_series.model if model is None else model
        elif isinstance(var_series, pd.Series):
            var = var_series.astype(np.float64)
        else:
            raise DataError(
                f"var_series must be a RiskEstimateSeries or pandas Series, "
                f"got {type(var_series).__name__}")
        if confidence is None:
            raise ValueError("confidence is required when var_series is a plain Series")
        if not 0.0 < confidence < 1.0:
            raise ValueError(f"confidence must lie in (0, 1), got {confidence}")

        r = as_return_series(returns)
        if len(r) == 0 or len(var) == 0:
            raise DataError("cannot backtest an empty series")
        if not r.index.equals(var.index):
            overlap = len(r.index.intersection(var.index))
            raise DataError(
                f"returns ({len(r)} obs) and VaR ({len(var)} obs) are not time-aligned; "
                f"{overlap} common timestamps")
        if not np.all(np.isfinite(var.to_numpy())):
            raise DataError("VaR series contains NaN/inf values")
        if np.any(var.to_numpy() <= 0):
            n_bad = int(np.sum(var.to_numpy() <= 0))
            raise DataError(
                f"VaR series must hold positive loss magnitudes; {n_bad} values are <= 0")

        breaches = pd.Series(r.to_numpy() < -var.to_numpy(), index=r.index, name="breach")
        n_obs = len(r)
        n_breaches = int(breaches.sum())
        expected = 1.0 - confidence
        rate = n_breaches / n_obs
        lr, pvalue = kupiec_test(n_breaches, n_obs, expected)

        summary = BacktestSummary(
            n_observations=n_obs, n_breaches=n_breaches, breach_rate=rate,
            expected_rate=expected, confidence=confidence,
            model=model or "VaR",
            kupiec_statistic=lr, kupiec_pvalue=pvalue,
            kupiec_reject=pvalue < self.significance,
            traffic_light=traffic_light(rate, expected),
            breach_dates=tuple(breaches.index[breaches.to_numpy()]))

        logger.info("%s backtest: %d/%d breaches (%.2f%% vs %.2f%% nominal) %s",
                    summary.model, n_breaches, n_obs, rate * 100, expected * 100,
                    summary.traffic_light)
        return BacktestResult(returns=r, var=var.rename("var"), breaches=breaches,
                              summary=summary)
