"""
Conditional EVT and Normal Risk Metrics
=======================================

Residual-scale EVT quantiles (McNeil & Frey, 2000), with p = 1 - c and
t = (N/N_u) * p:

    VaR_r = u + (beta/xi) * (t^{-xi} - 1)       xi != 0
          = u - beta * ln(t)                    xi = 0
    ES_r  = (VaR_r + beta - xi*u) / (1 - xi)    xi < 1

valid only for t < 1, i.e. for confidence levels deep enough in the tail
that fewer than N_u exceedances are implied.

Normal baseline on the same volatility:

    VaR_N = z_c * sigma_t,    ES_N = sigma_t * phi(z_c) / p

Asset-scale metrics multiply the residual quantile by the conditional
volatility: VaR_t = sigma_t * VaR_r. This recombination assumes the
standardized residuals are i.i.d. and that a single tail shape, fitted
once on the whole history, holds at every date. That assumption is not
tested here; under regime changes in the residual tail the per-date
series inherits the error of the pooled fit.

Author: Jose Orlando Bobadilla Fuentes | CQF
"""

from dataclasses import dataclass
from typing import Iterator, Optional, Union

import numpy as np
import pandas as pd
from scipy.stats import norm

from garch_evt.exceptions import DomainError, NumericalError
from garch_evt.models.tail import XI_TOLERANCE, TailModel

MODEL_EVT = "EVT"
MODEL_NORMAL = "Normal"


def _check_confidence(confidence: float) -> float:
    if not 0.0 < confidence < 1.0:
        raise ValueError(f"confidence must lie in (0, 1), got {confidence}")
    return 1.0 - confidence


def evt_var_residual(xi: float, beta: float, threshold: float,
                     n_observations: int, n_exceedances: int,
                     confidence: float,
                     xi_tolerance: float = XI_TOLERANCE) -> float:
    """
    EVT VaR of standardized losses.

    Uses expm1(-xi*ln t)/xi, which tends smoothly to -ln t as xi -> 0.

    Raises:
        DomainError: (N/N_u)*p >= 1, or VaR beyond the upper endpoint of a
            bounded tail
    """
    p = _check_confidence(confidence)
    if not beta > 0:
        raise ValueError(f"GPD scale beta must be > 0, got {beta}")
    if n_exceedances < 1 or n_observations < n_exceedances:
        raise ValueError(
            f"need 1 <= N_u <= N, got N_u={n_exceedances}, N={n_observations}")

    t = n_observations / n_exceedances * p
    if t >= 1.0:
        raise DomainError(
            f"confidence {confidence} is not in the fitted tail: "
            f"(N/N_u)*p = {t:.4g} >= 1 (N={n_observations}, N_u={n_exceedances}); "
            f"raise the confidence or the threshold quantile")

    log_t = np.log(t)
    if abs(xi) < xi_tolerance:
        var_r = threshold - beta * log_t
    else:
        var_r = threshold + beta * np.expm1(-xi * log_t) / xi
        if xi < 0:
            endpoint = threshold - beta / xi
            if var_r > endpoint:
                raise DomainError(
                    f"VaR {var_r:.6g} exceeds the upper endpoint {endpoint:.6g} "
                    f"of the bounded tail (xi={xi:.4g})")
    return float(var_r)


def evt_es_residual(var_residual: float, xi: float, beta: float,
                    threshold: float) -> float:
    """
    EVT Expected Shortfall of standardized losses.

    Raises:
        DomainError: xi >= 1, where the tail mean is infinite
    """
    if xi >= 1.0:
        raise DomainError(
            f"Expected Shortfall is infinite for xi >= 1 (xi={xi:.4g})")
    return float((var_residual + beta - xi * threshold) / (1.0 - xi))


def normal_var_residual(confidence: float) -> float:
    """Standard-Normal quantile z_c."""
    _check_confidence(confidence)
    return float(norm.ppf(confidence))


def normal_es_residual(confidence: float) -> float:
    """Standard-Normal Expected Shortfall phi(z_c) / p."""
    p = _check_confidence(confidence)
    return float(norm.pdf(norm.ppf(confidence)) / p)


def underestimation_pct(evt_var: float, normal_var: float) -> float:
    """How far the Normal VaR falls short of the EVT VaR, in percent of the Normal VaR."""
    if not normal_var > 0:
        raise ValueError(f"normal_var must be > 0, got {normal_var}")
    return (evt_var - normal_var) / normal_var * 100.0


@dataclass(frozen=True)
class RiskEstimate:
    """
    One risk estimate at one volatility point.

    VaR and ES are positive loss magnitudes. ``es`` is None when the
    calculator was asked for VaR only.
    """
    confidence: float
    model: str
    var_residual: float
    es_residual: Optional[float]
    volatility: float

    @property
    def var(self) -> float:
        return self.var_residual * self.volatility

    @property
    def es(self) -> Optional[float]:
        if self.es_residual is None:
            return None
        return self.es_residual * self.volatility


@dataclass(frozen=True, eq=False)
class RiskEstimateSeries:
    """Time-indexed RiskEstimates sharing one confidence, model and residual quantile."""
    confidence: float
    model: str
    var_residual: float
    es_residual: Optional[float]
    volatility: pd.Series

    @property
    def index(self) -> pd.Index:
        return self.volatility.index

    @property
    def var(self) -> pd.Series:
        return (self.volatility * self.var_residual).rename("var")

    @property
    def es(self) -> Optional[pd.Series]:
        if self.es_residual is None:
            return None
        return (self.volatility * self.es_residual).rename("es")

    def __len__(self) -> int:
        return len(self.volatility)

    def __iter__(self) -> Iterator[RiskEstimate]:
        for sigma in self.volatility.to_numpy():
            yield self._at(float(sigma))

    def __getitem__(self, label) -> RiskEstimate:
        return self._at(float(self.volatility.loc[label]))

    def _at(self, sigma: float) -> RiskEstimate:
        return RiskEstimate(confidence=self.confidence, model=self.model,
                            var_residual=self.var_residual,
                            es_residual=self.es_residual, volatility=sigma)

    def to_frame(self) -> pd.DataFrame:
        cols = {"volatility": self.volatility.rename("volatility"), "var": self.var}
        if self.es_residual is not None:
            cols["es"] = self.es
        return pd.DataFrame(cols)


Volatility = Union[float, pd.Series]


def _check_volatility(volatility: Volatility) -> Volatility:
    if isinstance(volatility, pd.Series):
        values = volatility.to_numpy(dtype=np.float64)
        bad = ~np.isfinite(values) | (values <= 0)
        if bad.any():
            raise NumericalError(
                f"volatility must be finite and > 0; {int(bad.sum())} invalid values")
        return volatility.astype(np.float64)
    if isinstance(volatility, (list, tuple, np.ndarray)):
        return _check_volatility(pd.Series(np.asarray(volatility, dtype=np.float64)))
    sigma = float(volatility)
    if not np.isfinite(sigma) or sigma <= 0:
        raise NumericalError(f"volatility must be finite and > 0, got {sigma}")
    return sigma


class RiskMetricCalculator:
    """
    Scales residual-level EVT and Normal quantiles by conditional volatility.

    A scalar volatility (e.g. sigma_T) gives a point forecast; a Series gives
    a time-indexed RiskEstimateSeries built from the same formulas.

    Usage:
        >>> calc = RiskMetricCalculator(tail_model, confidence=0.99)
        >>> calc.evt(garch.latest_volatility).var
        >>> calc.normal(garch.conditional_volatility).var
    """

    def __init__(self, tail: TailModel, confidence: float = 0.99,
                 include_es: bool = True):
        """
        Parameters:
            tail: Fitted TailModel of standardized losses
            confidence: VaR/ES confidence level c in (0, 1)
            include_es: Compute EVT ES (fails with DomainError if xi >= 1)
        """
        _check_confidence(confidence)
        self.tail = tail
        self.confidence = confidence
        self.include_es = include_es

    @property
    def evt_var_residual(self) -> float:
        t = self.tail
        return evt_var_residual(t.xi, t.beta, t.threshold, t.n_observations,
                                t.n_exceedances, self.confidence, t.xi_tolerance)

    @property
    def evt_es_residual(self) -> Optional[float]:
        if not self.include_es:
            return None
        t = self.tail
        return evt_es_residual(self.evt_var_residual, t.xi, t.beta, t.threshold)

    def evt(self, volatility: Volatility) -> Union[RiskEstimate, RiskEstimateSeries]:
        return self._build(MODEL_EVT, self.evt_var_residual, self.evt_es_residual,
                           _check_volatility(volatility))

    def normal(self, volatility: Volatility) -> Union[RiskEstimate, RiskEstimateSeries]:
        es = normal_es_residual(self.confidence) if self.include_es else None
        return self._build(MODEL_NORMAL, normal_var_residual(self.confidence), es,
                           _check_volatility(volatility))

    def estimate(self, volatility: Volatility, model: str = MODEL_EVT):
        if model == MODEL_EVT:
            return self.evt(volatility)
        if model == MODEL_NORMAL:
            return self.normal(volatility)
        raise ValueError(f"model must be '{MODEL_EVT}' or '{MODEL_NORMAL}', got {model!r}")

    def _build(self, model, var_r, es_r, volatility):
        if isinstance(volatility, pd.Series):
            return RiskEstimateSeries(confidence=self.confidence, model=model,
                                      var_residual=var_r, es_residual=es_r,
                                      volatility=volatility.rename("volatility"))
        return RiskEstimate(confidence=self.confidence, model=model,
                            var_residual=var_r, es_residual=es_r,
                            volatility=volatility)
