"""
Unit Tests -- VaR Breach Backtesting
====================================
Tests breach flags, alignment checks, Kupiec POF statistics and the
traffic light classification.

Author: Jose Orlando Bobadilla Fuentes, CQF
"""

import sys
import os
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

import numpy as np
import pandas as pd
import pytest

from garch_evt.exceptions import DataError
from garch_evt.models.backtester import (BacktestEvaluator, BreachRecord,
                                         kupiec_test, traffic_light)
from garch_evt.models.risk_metrics import RiskMetricCalculator
from garch_evt.models.tail import TailModel


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------
@pytest.fixture
def dates():
    return pd.bdate_range("2024-01-01", periods=4)


@pytest.fixture
def evaluator():
    return BacktestEvaluator()


@pytest.fixture
def normal_series(dates):
    """Normal 99% VaR series with sigma = 0.02 on every date (VaR = 0.046527)."""
    tail = TailModel(threshold=1.0, xi=0.25, beta=0.5, n_exceedances=100,
                     n_observations=1000, threshold_quantile=0.90)
    sigma = pd.Series(0.02, index=dates)
    return RiskMetricCalculator(tail, confidence=0.99).normal(sigma)


# ---------------------------------------------------------------------------
# Breach flags
# ---------------------------------------------------------------------------
class TestBreaches:
    """Per-date breach detection."""

    def test_breach_literal(self, evaluator, dates):
        """Return -0.05 against VaR 0.046526 is a breach."""
        returns = pd.Series([-0.05, 0.01, -0.03, 0.002], index=dates)
        var = pd.Series(0.046526, index=dates)
        result = evaluator.evaluate(returns, var, confidence=0.99)
        assert result.breaches.tolist() == [True, False, False, False]
        assert result.summary.n_breaches == 1
        assert result.summary.breach_dates == (dates[0],)

    def test_risk_estimate_series_input(self, evaluator, normal_series, dates):
        returns = pd.Series([-0.05, -0.046, 0.0, -0.07], index=dates)
        result = evaluator.evaluate(returns, normal_series)
        assert result.breaches.tolist() == [True, False, False, True]
        assert result.summary.confidence == 0.99
        assert result.summary.model == "Normal"
        np.testing.assert_allclose(result.summary.expected_rate, 0.01)

    def test_loss_equal_to_var_is_not_breach(self, evaluator, dates):
        returns = pd.Series([-0.04, 0.0, 0.0, 0.0], index=dates)
        var = pd.Series(0.04, index=dates)
        assert not evaluator.evaluate(returns, var, confidence=0.99).breaches.iloc[0]

    def test_summary_counts(self, evaluator, dates):
        returns = pd.Series([-0.05, -0.06, 0.01, 0.02], index=dates)
        var = pd.Series(0.03, index=dates)
        summary = evaluator.evaluate(returns, var, confidence=0.95).summary
        assert summary.n_observations == 4
        assert summary.n_breaches == 2
        assert summary.breach_rate == 0.5
        assert summary.traffic_light == "RED"

    def test_records_and_frame(self, evaluator, normal_series, dates):
        returns = pd.Series([-0.05, 0.01, 0.0, 0.02], index=dates)
        result = evaluator.evaluate(returns, normal_series)
        records = result.records
        assert len(records) == 4
        assert records[0] == BreachRecord(timestamp=dates[0], realized_return=-0.05,
                                          var=pytest.approx(0.046527, abs=1e-6),
                                          breach=True)
        frame = result.to_frame()
        assert list(frame.columns) == ["return", "var", "breach"]
        assert frame.index.equals(dates)


# ---------------------------------------------------------------------------
# Alignment
# ---------------------------------------------------------------------------
class TestAlignment:
    """Misaligned inputs are rejected, never partially compared."""

    def test_shifted_index(self, evaluator, dates):
        returns = pd.Series([0.0] * 4, index=dates)
        var = pd.Series(0.02, index=dates + pd.offsets.BDay(1))
        with pytest.raises(DataError, match="not time-aligned"):
            evaluator.evaluate(returns, var, confidence=0.99)

    def test_different_length(self, evaluator, dates):
        returns = pd.Series([0.0] * 4, index=dates)
        var = pd.Series(0.02, index=dates[:3])
        with pytest.raises(DataError):
            evaluator.evaluate(returns, var, confidence=0.99)

    def test_empty(self, evaluator):
        empty = pd.Series([], dtype=float)
        with pytest.raises(DataError):
            evaluator.evaluate(empty, empty, confidence=0.99)

    def test_non_positive_var(self, evaluator, dates):
        """A negative or zero VaR would flag every positive return as a breach."""
        returns = pd.Series([0.001, 0.002, 0.003, 0.004], index=dates)
        with pytest.raises(DataError, match="positive loss magnitudes"):
            evaluator.evaluate(returns, pd.Series(-0.01, index=dates), confidence=0.99)
        with pytest.raises(DataError, match="1 values"):
            evaluator.evaluate(returns, pd.Series([0.02, 0.0, 0.02, 0.02], index=dates),
                               confidence=0.99)

    def test_nan_var(self, evaluator, dates):
        returns = pd.Series([0.0] * 4, index=dates)
        var = pd.Series([0.02, np.nan, 0.02, 0.02], index=dates)
        with pytest.raises(DataError, match="NaN"):
            evaluator.evaluate(returns, var, confidence=0.99)

    def test_confidence_required_for_plain_series(self, evaluator, dates):
        returns = pd.Series([0.0] * 4, index=dates)
        with pytest.raises(ValueError):
            evaluator.evaluate(returns, pd.Series(0.02, index=dates))

    def test_unsupported_var_type(self, evaluator, dates):
        with pytest.raises(DataError):
            evaluator.evaluate(pd.Series([0.0] * 4, index=dates), [0.02] * 4,
                               confidence=0.99)


# ---------------------------------------------------------------------------
# Coverage statistics
# ---------------------------------------------------------------------------
class TestCoverageStatistics:
    """Kupiec POF test and traffic light."""

    def test_kupiec_at_nominal_rate(self):
        lr, pvalue = kupiec_test(10, 1000, 0.01)
        np.testing.assert_allclose(lr, 0.0, atol=1e-8)
        np.testing.assert_allclose(pvalue, 1.0, atol=1e-6)

    def test_kupiec_rejects_excess_breaches(self):
        lr, pvalue = kupiec_test(30, 1000, 0.01)
        assert lr > 3.84
        assert pvalue < 0.05

    def test_kupiec_zero_breaches(self):
        lr, pvalue = kupiec_test(0, 250, 0.01)
        np.testing.assert_allclose(lr, -2 * 250 * np.log(0.99))
        assert 0 <= pvalue <= 1

    def test_kupiec_all_breaches(self):
        lr, pvalue = kupiec_test(5, 5, 0.05)
        np.testing.assert_allclose(lr, -2 * 5 * np.log(0.05))
        assert pvalue < 0.01

    def test_traffic_light(self):
        assert traffic_light(0.012, 0.01) == "GREEN"
        assert traffic_light(0.025, 0.01) == "YELLOW"
        assert traffic_light(0.04, 0.01) == "RED"

    def test_traffic_light_boundaries(self):
        """Zone edges sit at 1.5x and 3x the nominal rate, inclusive."""
        assert traffic_light(0.075, 0.05) == "GREEN"
        assert traffic_light(0.15, 0.05) == "YELLOW"
        assert traffic_light(0.1501, 0.05) == "RED"

    def test_breach_rate_on_simulated_normal(self, evaluator):
        """Correct Normal VaR breaches close to the nominal rate."""
        rng = np.random.default_rng(42)
        returns = pd.Series(rng.normal(0.0, 0.01, size=5000))
        var = pd.Series(0.01 * 2.326348, index=returns.index)
        summary = evaluator.evaluate(returns, var, confidence=0.99).summary
        assert 0.005 <= summary.breach_rate <= 0.015
        assert 0.0 <= summary.kupiec_pvalue <= 1.0


if __name__ == "__main__":
    pytest.main([__file__, "-v", "--tb=short"])
