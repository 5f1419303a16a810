"""
config.py
---------
Centralised configuration for the GARCH-EVT risk engine.
Scalar model settings (order, threshold quantile, confidence level,
optimizer budgets) are read from environment variables with sensible
defaults, so batch jobs and interactive callers share one source of truth.
"""

import os
from dataclasses import dataclass, field
from typing import Optional, Tuple


def _env_float(name: str, default: Optional[float]) -> Optional[float]:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return float(raw)


def _check_unit_interval(name: str, value: float) -> None:
    if not 0.0 < value < 1.0:
        raise ValueError(f"{name} must lie in (0, 1), got {value}")


@dataclass
class VolatilityConfig:
    """GARCH(p, q) filter settings."""
    order: Tuple[int, int]   = (1, 1)       # (p ARCH lags, q GARCH lags)
    min_observations: int    = int(os.getenv("GARCH_MIN_OBS", "250"))
    max_iter: int            = int(os.getenv("GARCH_MAX_ITER", "5000"))
    max_time: Optional[float] = _env_float("GARCH_MAX_SECONDS", None)
    xatol: float             = 1e-6
    fatol: float             = 1e-8

    def __post_init__(self):
        p, q = self.order
        if p < 1 or q < 1:
            raise ValueError(f"GARCH order must be at least (1, 1), got {self.order}")
        if self.min_observations < 2:
            raise ValueError("min_observations must be >= 2")


@dataclass
class TailConfig:
    """Peaks-over-threshold / GPD settings."""
    threshold_quantile: float     = float(os.getenv("EVT_THRESHOLD_Q", "0.90"))
    min_exceedances: int          = 3       # below this the two GPD params are not identified
    low_sample_exceedances: int   = 20      # warn (but fit) below this
    xi_tolerance: float           = 1e-6    # |xi| below this -> exponential limit
    max_iter: int                 = int(os.getenv("GPD_MAX_ITER", "5000"))
    max_time: Optional[float]     = _env_float("GPD_MAX_SECONDS", None)
    xatol: float                  = 1e-8
    fatol: float                  = 1e-8

    def __post_init__(self):
        _check_unit_interval("threshold_quantile", self.threshold_quantile)
        if self.min_exceedances < 1:
            raise ValueError("min_exceedances must be >= 1")


@dataclass
class RiskConfig:
    """Risk metric settings."""
    confidence: float = float(os.getenv("VAR_CONFIDENCE", "0.99"))

    def __post_init__(self):
        _check_unit_interval("confidence", self.confidence)


@dataclass
class EngineConfig:
    """Master configuration aggregating all sub-configs."""
    volatility: VolatilityConfig = field(default_factory=VolatilityConfig)
    tail:       TailConfig       = field(default_factory=TailConfig)
    risk:       RiskConfig       = field(default_factory=RiskConfig)

    # Raise ConvergenceError (True) or return the flagged best-effort model
    strict:     bool          = os.getenv("STRICT_CONVERGENCE", "true").lower() == "true"

    log_level:  str           = os.getenv("LOG_LEVEL", "INFO")
    log_dir:    Optional[str] = os.getenv("LOG_DIR") or None


# Default instance used when callers do not pass their own
CONFIG = EngineConfig()
