"""
Budgeted Maximum Likelihood Search
==================================

Shared numerical machinery for the volatility and tail fits:

    1. Nelder-Mead minimisation of a negative log-likelihood under an
       iteration budget and an optional wall-clock budget
    2. Best-point tracking, so a stopped search still reports where it got to
    3. Central-difference Hessian and covariance from observed information

The wall-clock budget is cooperative: it is checked before every objective
evaluation and, once exceeded, the search stops and returns the best point
seen, tagged as non-converged.

Author: Jose Orlando Bobadilla Fuentes | CQF
"""

import time
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np
from scipy.optimize import minimize

# Returned by objectives for parameters outside the likelihood's domain
PENALTY = 1e10


class _BudgetExhausted(Exception):
    pass


@dataclass
class OptimizationOutcome:
    """Result of a budgeted search, in the optimizer's own coordinates."""
    x: np.ndarray
    fun: float
    n_iterations: int
    n_evaluations: int
    converged: bool
    message: str


def minimize_within_budget(objective: Callable[[np.ndarray], float],
                           x0: np.ndarray,
                           max_iter: int = 5000,
                           max_time: Optional[float] = None,
                           xatol: float = 1e-8,
                           fatol: float = 1e-8) -> OptimizationOutcome:
    """
    Minimise ``objective`` with Nelder-Mead inside an iteration/time budget.

    The search is deterministic given ``x0`` and the tolerances, so repeated
    fits on identical input return identical parameters.

    Parameters:
        objective: Function of the unconstrained parameter vector
        x0: Starting point
        max_iter: Nelder-Mead iteration budget
        max_time: Wall-clock budget in seconds (None = unbounded)
        xatol, fatol: Absolute tolerances on parameters and objective
    """
    x0 = np.asarray(x0, dtype=np.float64)
    deadline = None if max_time is None else time.perf_counter() + max_time
    best = {"x": x0.copy(), "fun": np.inf, "nfev": 0}

    def tracked(x):
        if deadline is not None and time.perf_counter() > deadline:
            raise _BudgetExhausted()
        best["nfev"] += 1
        value = float(objective(x))
        if not np.isfinite(value):
            value = PENALTY
        if value < best["fun"]:
            best["x"] = np.array(x, dtype=np.float64)
            best["fun"] = value
        return value

    try:
        res = minimize(tracked, x0, method="Nelder-Mead",
                       options={"maxiter": max_iter, "xatol": xatol,
                                "fatol": fatol})
    except _BudgetExhausted:
        return OptimizationOutcome(
            x=best["x"], fun=best["fun"], n_iterations=best["nfev"],
            n_evaluations=best["nfev"], converged=False,
            message=f"time budget of {max_time:.3f}s exhausted")

    # res.x is the best simplex vertex; prefer it unless a better point was
    # evaluated on the way
    x, fun = np.asarray(res.x, dtype=np.float64), float(res.fun)
    if best["fun"] < fun:
        x, fun = best["x"], best["fun"]

    converged = bool(res.success) and fun < PENALTY
    message = str(res.message)
    if fun >= PENALTY:
        message = "no parameter vector inside the likelihood domain was found"
    return OptimizationOutcome(x=x, fun=fun, n_iterations=int(res.nit),
                               n_evaluations=best["nfev"],
                               converged=converged, message=message)


def numerical_hessian(func: Callable[[np.ndarray], float], x: np.ndarray,
                      rel_step: float = 1e-4,
                      min_scale: float = 1e-2) -> np.ndarray:
    """
    Central-difference Hessian of ``func`` at ``x``.

    Step for coordinate i: h_i = rel_step * max(|x_i|, min_scale).
        H_ii = [f(x+h_i) - 2f(x) + f(x-h_i)] / h_i^2
        H_ij = [f(++) - f(+-) - f(-+) + f(--)] / (4 h_i h_j)
    """
    x = np.asarray(x, dtype=np.float64)
    k = len(x)
    h = rel_step * np.maximum(np.abs(x), min_scale)
    f0 = func(x)
    hess = np.zeros((k, k))

    for i in range(k):
        ei = np.zeros(k)
        ei[i] = h[i]
        hess[i, i] = (func(x + ei) - 2.0 * f0 + func(x - ei)) / h[i] ** 2
        for j in range(i + 1, k):
            ej = np.zeros(k)
            ej[j] = h[j]
            hess[i, j] = (func(x + ei + ej) - func(x + ei - ej)
                          - func(x - ei + ej) + func(x - ei - ej)) / (4.0 * h[i] * h[j])
            hess[j, i] = hess[i, j]
    return hess


def covariance_from_hessian(hessian: np.ndarray) -> Optional[np.ndarray]:
    """
    Invert the observed information (Hessian of the negative log-likelihood).

    Returns None when the matrix is non-finite, singular, or yields
    non-positive variances, i.e. when standard errors are undefined.
    """
    if not np.all(np.isfinite(hessian)):
        return None
    try:
        cov = np.linalg.inv(hessian)
    except np.linalg.LinAlgError:
        return None
    if not np.all(np.isfinite(cov)) or np.any(np.diag(cov) <= 0):
        return None
    return cov
