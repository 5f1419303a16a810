"""
Core estimation models: volatility filter, tail estimator, risk metrics
and breach backtesting.
"""

from garch_evt.models.volatility import GARCHFilter, VolatilityModel
from garch_evt.models.tail import GPDTailEstimator, TailModel, fit_gpd
from garch_evt.models.risk_metrics import (RiskEstimate, RiskEstimateSeries,
                                           RiskMetricCalculator)
from garch_evt.models.backtester import (BacktestEvaluator, BacktestResult,
                                         BacktestSummary, BreachRecord)
