"""
Error taxonomy for the GARCH-EVT risk engine.

Every failure raised by the core belongs to one of five kinds:

    DataError        insufficient, misaligned or malformed input series
    ConvergenceError optimizer did not reach a stable optimum within budget
    ThresholdError   threshold leaves zero or pathologically few exceedances
    DomainError      a formula's mathematical preconditions are violated
    NumericalError   overflow, NaN, or non-positive variance/scale

Each kind also derives from the matching builtin so callers that only catch
``ValueError`` / ``RuntimeError`` / ``ArithmeticError`` keep working.

Author: Jose Orlando Bobadilla Fuentes | CQF
"""

from typing import Any, Dict, Optional


class RiskEngineError(Exception):
    """Base class of all errors raised by the engine."""

    kind = "RiskEngineError"

    def __str__(self) -> str:
        return f"{self.kind}: {super().__str__()}"


class DataError(RiskEngineError, ValueError):
    kind = "DataError"


class ThresholdError(RiskEngineError, ValueError):
    kind = "ThresholdError"


class DomainError(RiskEngineError, ValueError):
    kind = "DomainError"


class NumericalError(RiskEngineError, ArithmeticError):
    kind = "NumericalError"


class ConvergenceError(RiskEngineError, RuntimeError):
    """
    Optimizer stopped before meeting its tolerance.

    The best point found is kept for diagnostics only; it must not be used
    downstream as if it were a fitted model.

    Attributes:
        best_params: Parameters at the best objective value seen
        n_iterations: Iterations (or evaluations) spent before stopping
        model: Best-effort model object tagged ``converged=False``
    """

    kind = "ConvergenceError"

    def __init__(self, message: str,
                 best_params: Optional[Dict[str, float]] = None,
                 n_iterations: int = 0,
                 model: Optional[Any] = None):
        super().__init__(message)
        self.best_params = best_params or {}
        self.n_iterations = n_iterations
        self.model = model
