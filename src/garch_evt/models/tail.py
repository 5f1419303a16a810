"""
Peaks-Over-Threshold Tail Estimator
===================================

For exceedances Y = L - u | L > u of the loss sample L = -z (large losses
positive), the Pickands-Balkema-de Haan theorem gives the Generalised
Pareto Distribution as the limiting law:

    H(y; beta, xi) = 1 - (1 + xi*y/beta)^{-1/xi}    xi != 0
                   = 1 - exp(-y/beta)                xi = 0

Log-density (used for MLE):

    ln h(y) = -ln(beta) - (1 + 1/xi) * ln(1 + xi*y/beta)    xi != 0
            = -ln(beta) - y/beta                            xi = 0

defined where 1 + xi*y/beta > 0.

  xi > 0  heavy (Pareto-type) tail
  xi = 0  exponential tail
  xi < 0  bounded tail with upper endpoint u - beta/xi

Threshold u is the linear-interpolation (R type 7) empirical quantile of
the losses; exceedances are the losses strictly above u.

References
----------
McNeil & Frey (2000) "Estimation of Tail-Related Risk Measures for
Heteroscedastic Financial Time Series: an Extreme Value Approach"
Embrechts, Kluppelberg & Mikosch (1997) "Modelling Extremal Events"

Author: Jose Orlando Bobadilla Fuentes | CQF
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np

from garch_evt.config import TailConfig
from garch_evt.exceptions import ConvergenceError, DomainError, ThresholdError
from garch_evt.optimize import (PENALTY, covariance_from_hessian,
                                minimize_within_budget, numerical_hessian)
from garch_evt.returns import ArrayLike, as_return_series
from garch_evt.utils import timeit

logger = logging.getLogger(__name__)

XI_TOLERANCE = 1e-6
# Exponential switch for the Hessian stencil; far below any finite-difference step
_HESSIAN_XI_SWITCH = 1e-12


def gpd_log_likelihood(exceedances: np.ndarray, xi: float, beta: float,
                       xi_tolerance: float = XI_TOLERANCE) -> float:
    """
    GPD log-likelihood of ``exceedances`` (all > 0).

    Returns -inf outside the parameter domain (beta <= 0, or some
    1 + xi*y/beta <= 0).
    """
    y = np.asarray(exceedances, dtype=np.float64)
    if not beta > 0:
        return -np.inf
    n = len(y)
    if abs(xi) < xi_tolerance:          # exponential limit
        return -n * np.log(beta) - np.sum(y) / beta
    z = xi * y / beta
    if np.any(z <= -1.0):
        return -np.inf
    return -n * np.log(beta) - (1.0 + 1.0 / xi) * np.sum(np.log1p(z))


@dataclass(frozen=True)
class GPDFit:
    """MLE of (xi, beta) on a sample of exceedances."""
    xi: float
    beta: float
    xi_se: Optional[float]
    beta_se: Optional[float]
    log_likelihood: float
    n_iterations: int
    converged: bool
    message: str


def _moment_start(y: np.ndarray) -> Tuple[float, float]:
    """Method-of-moments GPD start, or (0.1, mean excess) if inadmissible."""
    m = float(np.mean(y))
    v = float(np.var(y, ddof=1)) if len(y) > 1 else 0.0
    if v > 0:
        ratio = m * m / v
        xi0, beta0 = 0.5 * (1.0 - ratio), 0.5 * m * (ratio + 1.0)
        admissible = (np.isfinite(xi0) and xi0 > -0.9 and beta0 > 0
                      and 1.0 + xi0 * float(np.max(y)) / beta0 > 0)
        if admissible:
            return xi0, beta0
    return 0.1, m


def fit_gpd(exceedances: ArrayLike,
            xi_tolerance: float = XI_TOLERANCE,
            max_iter: int = 5000,
            max_time: Optional[float] = None,
            xatol: float = 1e-8,
            fatol: float = 1e-8) -> GPDFit:
    """
    Maximum-likelihood GPD fit over (xi, ln beta) with xi > -1.

    The likelihood is unbounded as xi -> -1 from below (the MLE degenerates
    onto the sample maximum), so that region is excluded.
    """
    y = np.asarray(exceedances, dtype=np.float64)
    if len(y) == 0 or np.any(~np.isfinite(y)) or np.any(y <= 0):
        raise ThresholdError("exceedances must be a non-empty sample of positive values")

    def neg_log_lik(theta):
        xi, log_beta = theta
        if xi <= -1.0:
            return PENALTY
        ll = gpd_log_likelihood(y, xi, np.exp(log_beta), xi_tolerance)
        return -ll if np.isfinite(ll) else PENALTY

    xi0, beta0 = _moment_start(y)
    outcome = minimize_within_budget(neg_log_lik, np.array([xi0, np.log(beta0)]),
                                     max_iter=max_iter, max_time=max_time,
                                     xatol=xatol, fatol=fatol)
    xi, beta = float(outcome.x[0]), float(np.exp(outcome.x[1]))

    xi_se = beta_se = None
    if outcome.fun < PENALTY:
        def nll_natural(params):
            return -gpd_log_likelihood(y, params[0], params[1], _HESSIAN_XI_SWITCH)

        cov = covariance_from_hessian(numerical_hessian(nll_natural, np.array([xi, beta])))
        if cov is not None:
            xi_se, beta_se = float(np.sqrt(cov[0, 0])), float(np.sqrt(cov[1, 1]))

    return GPDFit(xi=xi, beta=beta, xi_se=xi_se, beta_se=beta_se,
                  log_likelihood=-float(outcome.fun),
                  n_iterations=outcome.n_iterations,
                  converged=outcome.converged, message=outcome.message)


@dataclass(frozen=True)
class TailModel:
    """
    Fitted peaks-over-threshold model of standardized losses.

    Attributes:
        threshold: u, the empirical ``threshold_quantile`` of the losses
        xi: GPD shape
        beta: GPD scale (> 0)
        n_exceedances: N_u, losses strictly above u
        n_observations: N, size of the loss sample
        threshold_quantile: Quantile level used for u
        xi_se, beta_se: Standard errors (None when the Hessian is singular)
        low_sample_warning: N_u below the low-sample cut-off
    """
    threshold: float
    xi: float
    beta: float
    n_exceedances: int
    n_observations: int
    threshold_quantile: float
    xi_se: Optional[float] = None
    beta_se: Optional[float] = None
    log_likelihood: float = float("nan")
    n_iterations: int = 0
    converged: bool = True
    low_sample_warning: bool = False
    xi_tolerance: float = XI_TOLERANCE
    warnings: Tuple[str, ...] = ()

    @property
    def tail_type(self) -> str:
        if abs(self.xi) < self.xi_tolerance:
            return "exponential"
        return "heavy" if self.xi > 0 else "bounded"

    @property
    def upper_endpoint(self) -> float:
        """Largest attainable loss: u - beta/xi for xi < 0, else +inf."""
        if self.tail_type == "bounded":
            return self.threshold - self.beta / self.xi
        return np.inf

    @property
    def exceedance_rate(self) -> float:
        return self.n_exceedances / self.n_observations

    @property
    def standard_errors(self) -> Optional[Dict[str, float]]:
        if self.xi_se is None or self.beta_se is None:
            return None
        return {"xi": self.xi_se, "beta": self.beta_se}

    def tail_probability(self, x):
        """
        POT estimate of P(L > x) = (N_u/N) * (1 + xi*(x-u)/beta)^(-1/xi), x >= u.

        Zero beyond the upper endpoint of a bounded tail.
        """
        x = np.asarray(x, dtype=np.float64)
        if np.any(x < self.threshold):
            raise DomainError(
                f"tail probability is only estimated at or above the "
                f"threshold u={self.threshold:.6g}")
        y = x - self.threshold
        if self.tail_type == "exponential":
            surv = np.exp(-y / self.beta)
        else:
            base = np.maximum(1.0 + self.xi * y / self.beta, 0.0)
            with np.errstate(divide="ignore"):
                surv = np.where(base > 0, base ** (-1.0 / self.xi), 0.0)
        out = self.exceedance_rate * surv
        return float(out) if out.ndim == 0 else out


class GPDTailEstimator:
    """
    Threshold selection plus GPD fit on the losses of a residual sample.

    Usage:
        >>> tail = GPDTailEstimator(threshold_quantile=0.90).fit(model.std_residuals)
        >>> tail.xi, tail.beta, tail.tail_type
    """

    def __init__(self, threshold_quantile: float = 0.90,
                 min_exceedances: int = 3,
                 low_sample_exceedances: int = 20,
                 xi_tolerance: float = XI_TOLERANCE,
                 max_iter: int = 5000,
                 max_time: Optional[float] = None,
                 xatol: float = 1e-8,
                 fatol: float = 1e-8,
                 strict: bool = True):
        _check_quantile(threshold_quantile)
        if min_exceedances < 1:
            raise ValueError("min_exceedances must be >= 1")
        self.threshold_quantile = threshold_quantile
        self.min_exceedances = min_exceedances
        self.low_sample_exceedances = low_sample_exceedances
        self.xi_tolerance = xi_tolerance
        self.max_iter = max_iter
        self.max_time = max_time
        self.xatol = xatol
        self.fatol = fatol
        self.strict = strict

    @classmethod
    def from_config(cls, config: TailConfig, strict: bool = True) -> "GPDTailEstimator":
        return cls(threshold_quantile=config.threshold_quantile,
                   min_exceedances=config.min_exceedances,
                   low_sample_exceedances=config.low_sample_exceedances,
                   xi_tolerance=config.xi_tolerance, max_iter=config.max_iter,
                   max_time=config.max_time, xatol=config.xatol,
                   fatol=config.fatol, strict=strict)

    @timeit
    def fit(self, residuals: ArrayLike,
            threshold_quantile: Optional[float] = None) -> TailModel:
        """
        Fit the tail of ``-residuals``.

        The residual order and index are ignored. Fewer than
        ``min_exceedances`` (default 3) exceedances are rejected rather than
        fitted with ``low_sample_warning``, since the two GPD parameters are
        not identified on one or two points. Between that and
        ``low_sample_exceedances`` the fit proceeds with the warning set.

        Parameters:
            residuals: Standardized residuals (or any i.i.d.-like sample)
            threshold_quantile: Overrides the estimator's quantile level

        Raises:
            ThresholdError: no exceedances, or fewer than ``min_exceedances``
            ConvergenceError: search stopped before convergence (strict)
        """
        q = self.threshold_quantile if threshold_quantile is None else threshold_quantile
        _check_quantile(q)

        losses = -as_return_series(residuals, name="residuals", min_length=2,
                                   check_index=False).to_numpy()
        u = float(np.quantile(losses, q, method="linear"))
        exceedances = np.sort(losses[losses > u] - u)
        n_u, n = len(exceedances), len(losses)

        if n_u == 0:
            raise ThresholdError(
                f"no losses exceed the threshold u={u:.6g} "
                f"(quantile {q} of {n} losses)")
        if n_u < self.min_exceedances:
            raise ThresholdError(
                f"only {n_u} losses exceed u={u:.6g} (quantile {q}); "
                f"at least {self.min_exceedances} are needed to fit the GPD")

        notes = []
        low_sample = n_u < self.low_sample_exceedances
        if low_sample:
            notes.append(f"only {n_u} exceedances (< {self.low_sample_exceedances}); "
                         f"GPD estimates are unreliable")
            logger.warning("Low exceedance count: N_u=%d at quantile %.3f", n_u, q)

        fit = fit_gpd(exceedances, xi_tolerance=self.xi_tolerance,
                      max_iter=self.max_iter, max_time=self.max_time,
                      xatol=self.xatol, fatol=self.fatol)

        if fit.log_likelihood <= -PENALTY:
            raise ConvergenceError(
                "GPD search found no parameters inside the likelihood domain",
                best_params={"xi": fit.xi, "beta": fit.beta},
                n_iterations=fit.n_iterations)
        if not fit.converged:
            notes.append(f"optimizer did not converge: {fit.message}")
        if fit.xi_se is None:
            notes.append("Hessian not invertible: standard errors undefined")
            logger.warning("GPD standard errors undefined (xi=%.4f, beta=%.4f)",
                           fit.xi, fit.beta)

        tail = TailModel(
            threshold=u, xi=fit.xi, beta=fit.beta, n_exceedances=n_u,
            n_observations=n, threshold_quantile=q, xi_se=fit.xi_se,
            beta_se=fit.beta_se, log_likelihood=fit.log_likelihood,
            n_iterations=fit.n_iterations, converged=fit.converged,
            low_sample_warning=low_sample, xi_tolerance=self.xi_tolerance,
            warnings=tuple(notes))

        if not fit.converged:
            msg = (f"GPD fit did not converge after {fit.n_iterations} "
                   f"iterations: {fit.message}")
            if self.strict:
                raise ConvergenceError(msg, best_params={"xi": fit.xi, "beta": fit.beta},
                                       n_iterations=fit.n_iterations, model=tail)
            logger.warning(msg)

        logger.info("GPD fitted: u=%.4f N_u=%d/%d xi=%.4f beta=%.4f (%s tail)",
                    u, n_u, n, fit.xi, fit.beta, tail.tail_type)
        return tail


def _check_quantile(q: float) -> None:
    if not 0.0 < q < 1.0:
        raise ValueError(f"threshold_quantile must lie in (0, 1), got {q}")
