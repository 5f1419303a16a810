"""
GARCH-EVT Conditional Risk Engine
=================================

Two-step conditional VaR/ES estimation (McNeil & Frey, 2000): a GARCH
filter removes volatility clustering, a Generalised Pareto tail is fitted
to the standardized losses, and the two are recombined into time-varying
risk metrics that are then backtested against realized returns.

Modules:
    models.volatility   - GARCH(p,q) maximum-likelihood filter
    models.tail         - Peaks-over-threshold GPD estimator
    models.risk_metrics - EVT and Normal VaR/ES scaled by volatility
    models.backtester   - Breach counting, Kupiec test, traffic light
    diagnostics         - Jarque-Bera, Ljung-Box, mean excess, QQ data
    pipeline            - Stage entry points, full run and batch runs

Author: Jose Orlando Bobadilla Fuentes, CQF
"""

from garch_evt.exceptions import (ConvergenceError, DataError, DomainError,
                                  NumericalError, RiskEngineError, ThresholdError)
from garch_evt.models import (BacktestEvaluator, GARCHFilter, GPDTailEstimator,
                              RiskMetricCalculator)
from garch_evt.pipeline import (backtest, estimate_risk, fit_tail,
                                fit_volatility, run_batch, run_risk_engine)

__version__ = "1.0.0"
__author__ = "Jose Orlando Bobadilla Fuentes"
