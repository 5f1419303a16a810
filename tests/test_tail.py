"""
Unit Tests -- Peaks-Over-Threshold GPD Tail Estimator
=====================================================
Tests the GPD likelihood, MLE consistency on simulated exceedances,
threshold selection, low-sample and threshold failures, and the
tail-shape interpretation.

Author: Jose Orlando Bobadilla Fuentes, CQF
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import numpy as np
import pandas as pd
import pytest

from garch_evt.exceptions import ConvergenceError, DomainError, ThresholdError
from garch_evt.models.tail import (GPDTailEstimator, TailModel, fit_gpd,
                                   gpd_log_likelihood)
from garch_evt.optimize import covariance_from_hessian
from garch_evt.simulation import simulate_gpd_sample


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture(scope="module")
def heavy_residuals():
    """Unit-variance Student-t(4) residuals: xi = 1/4 in the loss tail."""
    rng = np.random.default_rng(3)
    return pd.Series(rng.standard_t(4, size=5000) / np.sqrt(2.0))


@pytest.fixture(scope="module")
def heavy_tail(heavy_residuals):
    return GPDTailEstimator(threshold_quantile=0.90).fit(heavy_residuals)


@pytest.fixture
def bounded_tail():
    return TailModel(threshold=1.0, xi=-0.2, beta=0.5, n_exceedances=100,
                     n_observations=1000, threshold_quantile=0.90)


# ---------------------------------------------------------------------------
# Likelihood
# ---------------------------------------------------------------------------
class TestGPDLikelihood:
    """GPD log-likelihood in both regimes."""

    def test_exponential_limit(self):
        y = np.array([0.1, 0.5, 1.2, 2.0])
        ll_exp = gpd_log_likelihood(y, 0.0, 0.7)
        np.testing.assert_allclose(ll_exp, -4 * np.log(0.7) - y.sum() / 0.7)

    def test_general_formula_near_zero(self):
        """General formula at xi = 1e-7 agrees with the exponential limit."""
        y = np.array([0.1, 0.5, 1.2, 2.0])
        ll_general = gpd_log_likelihood(y, 1e-7, 0.7, xi_tolerance=0.0)
        np.testing.assert_allclose(ll_general, gpd_log_likelihood(y, 0.0, 0.7), rtol=1e-6)

    def test_matches_scipy(self):
        from scipy.stats import genpareto
        y = np.array([0.1, 0.5, 1.2, 2.0])
        expected = genpareto.logpdf(y, c=0.3, scale=0.7).sum()
        np.testing.assert_allclose(gpd_log_likelihood(y, 0.3, 0.7), expected)

    def test_outside_domain(self):
        """1 + xi*y/beta <= 0 or beta <= 0 has zero likelihood."""
        y = np.array([0.5, 3.0])
        assert gpd_log_likelihood(y, -0.5, 1.0) == -np.inf
        assert gpd_log_likelihood(y, 0.2, 0.0) == -np.inf


# ---------------------------------------------------------------------------
# MLE
# ---------------------------------------------------------------------------
class TestGPDFit:
    """Maximum-likelihood GPD fit."""

    def test_consistency_large_sample(self):
        """Fitted (xi, beta) within 5% of the truth for a large sample."""
        y = simulate_gpd_sample(100_000, xi=0.3, beta=0.5, seed=1)
        fit = fit_gpd(y)
        assert fit.converged
        assert abs(fit.xi - 0.3) / 0.3 < 0.05
        assert abs(fit.beta - 0.5) / 0.5 < 0.05

    def test_standard_errors_large_sample(self):
        """Asymptotic se(xi) = (1 + xi) / sqrt(n)."""
        y = simulate_gpd_sample(100_000, xi=0.3, beta=0.5, seed=1)
        fit = fit_gpd(y)
        np.testing.assert_allclose(fit.xi_se, 1.3 / np.sqrt(100_000), rtol=0.2)
        assert fit.beta_se > 0

    def test_consistency_moderate_sample(self):
        y = simulate_gpd_sample(5000, xi=0.3, beta=0.5, seed=2)
        fit = fit_gpd(y)
        assert abs(fit.xi - 0.3) < 0.1
        assert abs(fit.beta - 0.5) / 0.5 < 0.1

    def test_exponential_sample(self):
        y = simulate_gpd_sample(20_000, xi=0.0, beta=1.0, seed=5)
        fit = fit_gpd(y)
        assert abs(fit.xi) < 0.05
        np.testing.assert_allclose(fit.beta, 1.0, rtol=0.05)

    def test_bounded_sample(self):
        y = simulate_gpd_sample(20_000, xi=-0.3, beta=1.0, seed=6)
        fit = fit_gpd(y)
        assert fit.xi < -0.2
        assert fit.xi > -1.0

    def test_deterministic(self):
        y = simulate_gpd_sample(2000, xi=0.2, beta=0.6, seed=7)
        assert fit_gpd(y) == fit_gpd(y)


# ---------------------------------------------------------------------------
# Threshold selection and TailModel
# ---------------------------------------------------------------------------
class TestTailEstimator:
    """Peaks-over-threshold on standardized residuals."""

    def test_threshold_is_linear_quantile(self, heavy_tail, heavy_residuals):
        losses = -heavy_residuals.to_numpy()
        expected_u = np.quantile(losses, 0.90, method="linear")
        assert heavy_tail.threshold == expected_u
        assert heavy_tail.n_exceedances == int(np.sum(losses > expected_u))
        assert heavy_tail.n_observations == 5000

    def test_heavy_tail_detected(self, heavy_tail):
        assert heavy_tail.xi > 0
        assert heavy_tail.tail_type == "heavy"
        assert heavy_tail.upper_endpoint == np.inf
        assert not heavy_tail.low_sample_warning

    def test_standard_errors(self, heavy_tail):
        se = heavy_tail.standard_errors
        assert se is not None
        assert 0 < se["xi"] < 0.2 and se["beta"] > 0

    def test_deterministic_refit(self, heavy_residuals, heavy_tail):
        again = GPDTailEstimator(threshold_quantile=0.90).fit(heavy_residuals)
        assert again == heavy_tail

    def test_order_and_index_ignored(self, heavy_residuals, heavy_tail):
        """Losses are a sample, not a time series: sorting or relabelling changes nothing."""
        estimator = GPDTailEstimator(threshold_quantile=0.90)
        assert estimator.fit(heavy_residuals.sort_values()) == heavy_tail
        assert estimator.fit(heavy_residuals.sample(frac=1.0, random_state=0)) == heavy_tail
        labelled = heavy_residuals.set_axis([f"obs{i}" for i in range(5000)][::-1])
        assert estimator.fit(labelled) == heavy_tail

    def test_quantile_override(self, heavy_residuals):
        tail = GPDTailEstimator().fit(heavy_residuals, threshold_quantile=0.95)
        assert tail.threshold_quantile == 0.95
        assert tail.n_exceedances == 250

    def test_zero_exceedances(self):
        """Tied top losses at the quantile leave nothing strictly above u."""
        rng = np.random.default_rng(0)
        residuals = np.concatenate((rng.normal(size=98), [-5.0, -5.0]))
        with pytest.raises(ThresholdError, match="no losses exceed"):
            GPDTailEstimator(threshold_quantile=0.995).fit(residuals)

    def test_too_few_exceedances(self):
        residuals = np.random.default_rng(1).normal(size=100)
        with pytest.raises(ThresholdError, match="at least 3"):
            GPDTailEstimator(threshold_quantile=0.98).fit(residuals)

    def test_low_sample_warning(self):
        residuals = np.random.default_rng(2).standard_t(5, size=150)
        tail = GPDTailEstimator(threshold_quantile=0.90, strict=False).fit(residuals)
        assert tail.n_exceedances < 20
        assert tail.low_sample_warning
        assert any("exceedances" in w for w in tail.warnings)

    def test_invalid_quantile(self, heavy_residuals):
        with pytest.raises(ValueError):
            GPDTailEstimator(threshold_quantile=1.0)
        with pytest.raises(ValueError):
            GPDTailEstimator().fit(heavy_residuals, threshold_quantile=0.0)


class TestTailErrors:
    """Convergence handling and undefined standard errors."""

    def test_iteration_budget_strict(self, heavy_residuals):
        """Exhausted budget raises, carrying the best point as a diagnostic."""
        with pytest.raises(ConvergenceError) as exc_info:
            GPDTailEstimator(max_iter=2).fit(heavy_residuals)
        err = exc_info.value
        assert set(err.best_params) == {"xi", "beta"}
        assert err.model is not None and not err.model.converged
        assert err.model.n_exceedances == 500
        assert str(err).startswith("ConvergenceError")

    def test_iteration_budget_lenient(self, heavy_residuals):
        tail = GPDTailEstimator(max_iter=2, strict=False).fit(heavy_residuals)
        assert not tail.converged
        assert any("did not converge" in w for w in tail.warnings)
        assert tail.beta > 0

    def test_time_budget(self, heavy_residuals):
        with pytest.raises(ConvergenceError):
            GPDTailEstimator(max_time=0.0).fit(heavy_residuals)

    def test_singular_hessian_has_no_inverse(self):
        assert covariance_from_hessian(np.array([[1.0, 1.0], [1.0, 1.0]])) is None
        assert covariance_from_hessian(np.array([[np.nan, 0.0], [0.0, 1.0]])) is None
        assert covariance_from_hessian(np.array([[-1.0, 0.0], [0.0, 1.0]])) is None

    def test_undefined_standard_errors(self, heavy_residuals, monkeypatch):
        """A non-invertible information matrix leaves the fit usable without SEs."""
        monkeypatch.setattr("garch_evt.models.tail.covariance_from_hessian",
                            lambda hessian: None)
        tail = GPDTailEstimator().fit(heavy_residuals)
        assert tail.converged
        assert tail.xi_se is None and tail.beta_se is None
        assert tail.standard_errors is None
        assert any("standard errors undefined" in w for w in tail.warnings)


class TestTailModel:
    """Interpretation of the fitted shape."""

    def test_bounded_endpoint(self, bounded_tail):
        assert bounded_tail.tail_type == "bounded"
        np.testing.assert_allclose(bounded_tail.upper_endpoint, 1.0 + 0.5 / 0.2)

    def test_exponential_type(self):
        tail = TailModel(threshold=1.0, xi=5e-7, beta=0.5, n_exceedances=100,
                         n_observations=1000, threshold_quantile=0.90)
        assert tail.tail_type == "exponential"

    def test_tail_probability_at_threshold(self, bounded_tail):
        np.testing.assert_allclose(bounded_tail.tail_probability(1.0), 0.1)

    def test_tail_probability_decreasing(self, heavy_tail):
        x = heavy_tail.threshold + np.array([0.0, 0.5, 1.0, 3.0])
        probs = heavy_tail.tail_probability(x)
        assert np.all(np.diff(probs) < 0)

    def test_tail_probability_beyond_endpoint(self, bounded_tail):
        assert bounded_tail.tail_probability(bounded_tail.upper_endpoint + 1.0) == 0.0

    def test_tail_probability_below_threshold(self, bounded_tail):
        with pytest.raises(DomainError):
            bounded_tail.tail_probability(0.5)


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
