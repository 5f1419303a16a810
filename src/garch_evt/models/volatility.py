"""
GARCH(p, q) Volatility Filter
==============================

Captures volatility clustering via:
    r_t       = mu + epsilon_t,   epsilon_t = sigma_t * z_t,   z_t ~ N(0, 1)
    sigma_t^2 = omega + sum_i alpha_i * epsilon_{t-i}^2 + sum_j beta_j * sigma_{t-j}^2

with sigma_1^2 (and any pre-sample lag) set to the sample variance of the
returns. Parameters maximise the Gaussian conditional log-likelihood

    LL = sum_t [ -0.5*ln(2*pi) - 0.5*ln(sigma_t^2) - 0.5*epsilon_t^2/sigma_t^2 ]

subject to omega > 0, alpha_i >= 0, beta_j >= 0, sum(alpha) + sum(beta) < 1.
The constraints are enforced by reparameterisation rather than by bounds:

    omega = exp(a),   rho = logistic(b),   (alpha, beta) = rho * softmax(0, c_1, ...)

so any real vector maps to a covariance-stationary model. The search runs
on returns divided by their sample standard deviation s (mu and omega are
mapped back as mu*s and omega*s^2) for numerical conditioning.

The standardized residuals z_t = (r_t - mu) / sigma_t are the input of the
tail estimator.

Author: Jose Orlando Bobadilla Fuentes | CQF
"""

import logging
from dataclasses import dataclass
from typing import Dict, Optional, Tuple

import numpy as np
import pandas as pd
from scipy.special import expit, logit, softmax

from garch_evt.config import VolatilityConfig
from garch_evt.exceptions import ConvergenceError, DataError, NumericalError
from garch_evt.optimize import (PENALTY, covariance_from_hessian,
                                minimize_within_budget, numerical_hessian)
from garch_evt.returns import ArrayLike, as_return_series
from garch_evt.utils import timeit

logger = logging.getLogger(__name__)

LOG_2PI = np.log(2.0 * np.pi)

# Starting point: persistence 0.95 split as alpha 0.05 / beta 0.90
_START_PERSISTENCE = 0.95
_START_ALPHA = 0.05


@dataclass(frozen=True, eq=False)
class VolatilityModel:
    """
    Fitted GARCH(p, q) filter.

    Attributes:
        mu: Constant mean of returns
        omega: Variance intercept (> 0)
        alpha: ARCH coefficients alpha_1..alpha_p (>= 0)
        beta: GARCH coefficients beta_1..beta_q (>= 0)
        conditional_volatility: sigma_t, one per input observation
        std_residuals: z_t = (r_t - mu) / sigma_t
        returns: The return series the model was fitted to
        log_likelihood: Gaussian log-likelihood at the optimum
        n_iterations: Optimizer iterations used
        converged: False for a best-effort model from a stopped search
        std_errors: Standard errors keyed like ``params`` (None if undefined)
        warnings: Diagnostics attached instead of raised
    """
    mu: float
    omega: float
    alpha: Tuple[float, ...]
    beta: Tuple[float, ...]
    conditional_volatility: pd.Series
    std_residuals: pd.Series
    returns: pd.Series
    log_likelihood: float
    n_iterations: int
    converged: bool = True
    std_errors: Optional[Dict[str, float]] = None
    warnings: Tuple[str, ...] = ()

    @property
    def order(self) -> Tuple[int, int]:
        return len(self.alpha), len(self.beta)

    @property
    def persistence(self) -> float:
        return float(sum(self.alpha) + sum(self.beta))

    @property
    def unconditional_variance(self) -> float:
        """Long-run variance omega / (1 - persistence)."""
        return self.omega / (1.0 - self.persistence)

    @property
    def params(self) -> Dict[str, float]:
        """Parameters in the arch library's naming."""
        out = {"mu": self.mu, "omega": self.omega}
        out.update({f"alpha[{i + 1}]": a for i, a in enumerate(self.alpha)})
        out.update({f"beta[{j + 1}]": b for j, b in enumerate(self.beta)})
        return out

    @property
    def n_observations(self) -> int:
        return len(self.returns)

    @property
    def n_params(self) -> int:
        return 2 + len(self.alpha) + len(self.beta)

    @property
    def aic(self) -> float:
        return 2 * self.n_params - 2 * self.log_likelihood

    @property
    def bic(self) -> float:
        return self.n_params * np.log(self.n_observations) - 2 * self.log_likelihood

    @property
    def latest_volatility(self) -> float:
        """sigma_T, the last in-sample conditional volatility."""
        return float(self.conditional_volatility.iloc[-1])

    def forecast_volatility(self, horizon: int = 1) -> np.ndarray:
        """
        Forecast sigma_{T+1}, ..., sigma_{T+horizon}.

        Uses E[epsilon_{T+k}^2] = sigma_{T+k}^2 for k >= 1, so the path
        mean-reverts towards the unconditional variance.
        """
        if horizon < 1:
            raise ValueError("horizon must be >= 1")
        eps2 = list(((self.returns - self.mu) ** 2).to_numpy())
        sig2 = list((self.conditional_volatility ** 2).to_numpy())
        path = []
        for _ in range(horizon):
            s = self.omega
            for i, a in enumerate(self.alpha):
                s += a * eps2[-1 - i]
            for j, b in enumerate(self.beta):
                s += b * sig2[-1 - j]
            sig2.append(s)
            eps2.append(s)
            path.append(s)
        return np.sqrt(np.array(path))


def garch_variance(eps: np.ndarray, omega: float, alpha, beta,
                   init_var: float) -> np.ndarray:
    """
    Run the GARCH(p, q) variance recursion over demeaned returns ``eps``.

    sigma2[0] = init_var; lags reaching before the sample use init_var for
    both the squared shock and the variance.
    """
    e2 = (np.asarray(eps, dtype=np.float64) ** 2).tolist()
    n = len(e2)
    sigma2 = [init_var] * n
    alpha = [float(a) for a in alpha]
    beta = [float(b) for b in beta]
    for t in range(1, n):
        s = omega
        for i, a in enumerate(alpha):
            k = t - 1 - i
            s += a * (e2[k] if k >= 0 else init_var)
        for j, b in enumerate(beta):
            k = t - 1 - j
            s += b * (sigma2[k] if k >= 0 else init_var)
        sigma2[t] = s
    return np.array(sigma2)


def _gaussian_neg_log_lik(eps: np.ndarray, sigma2: np.ndarray) -> float:
    return 0.5 * float(np.sum(LOG_2PI + np.log(sigma2) + eps ** 2 / sigma2))


class GARCHFilter:
    """
    Maximum-likelihood GARCH(p, q) filter with a Gaussian likelihood.

    Usage:
        >>> model = GARCHFilter(order=(1, 1)).fit(returns_series)
        >>> model.persistence, model.std_residuals.head()
    """

    def __init__(self, order: Tuple[int, int] = (1, 1),
                 min_observations: int = 250,
                 max_iter: int = 5000,
                 max_time: Optional[float] = None,
                 xatol: float = 1e-6,
                 fatol: float = 1e-8,
                 strict: bool = True):
        """
        Parameters:
            order: (p, q) = (ARCH lags, GARCH lags)
            min_observations: Fewer returns than this is a DataError
            max_iter: Optimizer iteration budget
            max_time: Optimizer wall-clock budget in seconds (None = unbounded)
            xatol, fatol: Nelder-Mead tolerances (transformed coordinates)
            strict: Raise ConvergenceError on non-convergence; otherwise
                return the best-effort model flagged ``converged=False``
        """
        p, q = order
        if p < 1 or q < 1:
            raise ValueError(f"GARCH order must be at least (1, 1), got {order}")
        self.p, self.q = int(p), int(q)
        self.min_observations = min_observations
        self.max_iter = max_iter
        self.max_time = max_time
        self.xatol = xatol
        self.fatol = fatol
        self.strict = strict

    @classmethod
    def from_config(cls, config: VolatilityConfig, strict: bool = True) -> "GARCHFilter":
        return cls(order=config.order, min_observations=config.min_observations,
                   max_iter=config.max_iter, max_time=config.max_time,
                   xatol=config.xatol, fatol=config.fatol, strict=strict)

    # ------------------------------------------------------------------
    # Parameter transforms
    # ------------------------------------------------------------------
    def _unpack(self, theta: np.ndarray):
        mu = theta[0]
        omega = np.exp(theta[1])
        rho = expit(theta[2])
        weights = softmax(np.concatenate(([0.0], theta[3:])))
        return mu, omega, rho * weights[:self.p], rho * weights[self.p:]

    def _start(self, x: np.ndarray) -> np.ndarray:
        var = np.var(x, ddof=1)
        shares = np.concatenate((np.full(self.p, _START_ALPHA / self.p),
                                 np.full(self.q, (_START_PERSISTENCE - _START_ALPHA) / self.q)))
        logits = np.log(shares) - np.log(shares[0])
        return np.concatenate((
            [np.mean(x), np.log(var * (1.0 - _START_PERSISTENCE)),
             logit(_START_PERSISTENCE)],
            logits[1:]))

    # ------------------------------------------------------------------
    # Estimation
    # ------------------------------------------------------------------
    @timeit
    def fit(self, returns: ArrayLike) -> VolatilityModel:
        """
        Fit the filter to a return series.

        Raises:
            DataError: fewer than ``min_observations`` returns, invalid
                values, or a constant series
            ConvergenceError: budget exhausted before convergence (strict)
            NumericalError: non-positive or non-finite fitted variance
        """
        r = as_return_series(returns, min_length=self.min_observations)
        scale = float(np.std(r.to_numpy(), ddof=1))
        if np.ptp(r.to_numpy()) == 0 or not scale > 0:
            raise DataError("returns have zero variance; GARCH is not identified")

        x = r.to_numpy() / scale
        init_var = float(np.var(x, ddof=1))

        def neg_log_lik(theta):
            mu, omega, alpha, beta = self._unpack(theta)
            eps = x - mu
            with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
                sigma2 = garch_variance(eps, omega, alpha, beta, init_var)
                if not np.all(np.isfinite(sigma2)) or np.any(sigma2 <= 0):
                    return PENALTY
                return _gaussian_neg_log_lik(eps, sigma2)

        outcome = minimize_within_budget(
            neg_log_lik, self._start(x), max_iter=self.max_iter,
            max_time=self.max_time, xatol=self.xatol, fatol=self.fatol)

        mu_s, omega_s, alpha, beta = self._unpack(outcome.x)
        mu, omega = float(mu_s * scale), float(omega_s * scale ** 2)
        alpha = tuple(float(a) for a in alpha)
        beta = tuple(float(b) for b in beta)
        params = {"mu": mu, "omega": omega,
                  **{f"alpha[{i + 1}]": a for i, a in enumerate(alpha)},
                  **{f"beta[{j + 1}]": b for j, b in enumerate(beta)}}

        if outcome.fun >= PENALTY:
            raise ConvergenceError(
                f"GARCH{self.order_label} search found no admissible parameters",
                best_params=params, n_iterations=outcome.n_iterations)

        eps = r.to_numpy() - mu
        sigma2 = garch_variance(eps, omega, alpha, beta,
                                float(np.var(r.to_numpy(), ddof=1)))
        if not np.all(np.isfinite(sigma2)) or np.any(sigma2 <= 0):
            bad = int(np.sum(~(np.isfinite(sigma2) & (sigma2 > 0))))
            raise NumericalError(
                f"fitted conditional variance is non-positive or non-finite "
                f"at {bad} time points")

        sigma = np.sqrt(sigma2)
        log_lik = -_gaussian_neg_log_lik(eps, sigma2)

        notes = []
        converged = outcome.converged
        if not converged:
            notes.append(f"optimizer did not converge: {outcome.message}")
        if sum(alpha) + sum(beta) >= 1.0:
            converged = False
            notes.append("alpha + beta >= 1: stationarity lost to rounding")

        std_errors = self._standard_errors(x, init_var, mu_s, omega_s,
                                           alpha, beta, scale)
        if std_errors is None:
            notes.append("Hessian not invertible: standard errors undefined")

        model = VolatilityModel(
            mu=mu, omega=omega, alpha=alpha, beta=beta,
            conditional_volatility=pd.Series(sigma, index=r.index, name="sigma"),
            std_residuals=pd.Series(eps / sigma, index=r.index, name="std_residuals"),
            returns=r, log_likelihood=log_lik,
            n_iterations=outcome.n_iterations, converged=converged,
            std_errors=std_errors, warnings=tuple(notes))

        if not converged:
            msg = (f"GARCH{self.order_label} fit did not converge after "
                   f"{outcome.n_iterations} iterations: {'; '.join(notes)}")
            if self.strict:
                raise ConvergenceError(msg, best_params=params,
                                       n_iterations=outcome.n_iterations,
                                       model=model)
            logger.warning(msg)

        logger.info(
            "GARCH%s fitted on %d obs: mu=%.6g omega=%.6g alpha=%s beta=%s "
            "persistence=%.4f LL=%.2f (%d iterations)",
            self.order_label, len(r), mu, omega,
            np.round(alpha, 4).tolist(), np.round(beta, 4).tolist(),
            model.persistence, log_lik, outcome.n_iterations)
        if converged and std_errors is None:
            logger.warning("GARCH%s: standard errors undefined", self.order_label)
        return model

    @property
    def order_label(self) -> str:
        return f"({self.p},{self.q})"

    def _standard_errors(self, x, init_var, mu_s, omega_s, alpha, beta,
                         scale) -> Optional[Dict[str, float]]:
        """Inverse observed information in natural (scaled) parameters."""
        p = self.p

        def nll_natural(params):
            mu, omega = params[0], params[1]
            a, b = params[2:2 + p], params[2 + p:]
            if omega <= 0 or np.any(a < 0) or np.any(b < 0):
                return np.inf
            eps = x - mu
            with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
                sigma2 = garch_variance(eps, omega, a, b, init_var)
                if not np.all(np.isfinite(sigma2)) or np.any(sigma2 <= 0):
                    return np.inf
                return _gaussian_neg_log_lik(eps, sigma2)

        point = np.concatenate(([mu_s, omega_s], alpha, beta))
        cov = covariance_from_hessian(numerical_hessian(nll_natural, point))
        if cov is None:
            return None
        se = np.sqrt(np.diag(cov))
        out = {"mu": float(se[0] * scale), "omega": float(se[1] * scale ** 2)}
        out.update({f"alpha[{i + 1}]": float(se[2 + i]) for i in range(p)})
        out.update({f"beta[{j + 1}]": float(se[2 + p + j]) for j in range(self.q)})
        return out
