"""
GARCH-EVT Risk Engine - Command Line
=====================================
Fits GARCH(p,q) + GPD on a return series and prints the conditional
VaR/ES report with Normal vs. EVT backtests.

Usage:
    garch-evt                                    # synthetic Student-t GARCH demo
    garch-evt --csv returns.csv --column SPY --date-column date
    garch-evt --confidence 0.995 --threshold 0.95
    garch-evt --output-dir outputs               # also write backtest CSV
"""

import argparse
import os
import sys
from dataclasses import replace
from typing import List, Optional

import pandas as pd

from garch_evt.config import CONFIG, EngineConfig
from garch_evt.exceptions import DataError, RiskEngineError
from garch_evt.pipeline import RiskReport, run_risk_engine
from garch_evt.simulation import simulate_garch_returns
from garch_evt.utils import format_pct, get_logger


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------
def _args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    p = argparse.ArgumentParser(prog="garch-evt",
                                description="GARCH-EVT conditional VaR/ES risk engine")
    src = p.add_argument_group("input")
    src.add_argument("--csv",          default=None, help="CSV file of log-returns")
    src.add_argument("--column",       default=None, help="Return column (default: only numeric column)")
    src.add_argument("--date-column",  default=None, help="Timestamp column used as index")
    src.add_argument("--demo",         action="store_true",
                     help="Synthetic GARCH returns with Student-t shocks (default without --csv)")
    src.add_argument("--n-obs",        type=int, default=2500)
    src.add_argument("--seed",         type=int, default=42)

    mdl = p.add_argument_group("model")
    mdl.add_argument("--confidence",   type=float, default=CONFIG.risk.confidence)
    mdl.add_argument("--threshold",    type=float, default=CONFIG.tail.threshold_quantile,
                     help="Threshold quantile of standardized losses")
    mdl.add_argument("--p",            type=int, default=CONFIG.volatility.order[0])
    mdl.add_argument("--q",            type=int, default=CONFIG.volatility.order[1])
    mdl.add_argument("--max-iter",     type=int, default=CONFIG.volatility.max_iter)

    p.add_argument("--log-level",      default=CONFIG.log_level,
                   choices=["DEBUG", "INFO", "WARNING", "ERROR"])
    p.add_argument("--output-dir",     default=None)
    return p.parse_args(argv)


def _banner(msg: str) -> None:
    print(f"\n{'='*65}\n  {msg}\n{'='*65}")


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------
def load_returns_csv(path: str, column: Optional[str] = None,
                     date_column: Optional[str] = None) -> pd.Series:
    """Read one return column from a CSV, optionally indexed by a date column."""
    if not os.path.exists(path):
        raise DataError(f"CSV file not found: {path}")
    df = pd.read_csv(path)
    if date_column is not None:
        if date_column not in df.columns:
            raise DataError(f"date column '{date_column}' not in {list(df.columns)}")
        df = df.set_index(pd.to_datetime(df.pop(date_column)))
    if column is None:
        numeric = df.select_dtypes("number").columns
        if len(numeric) != 1:
            raise DataError(
                f"cannot pick a return column from {list(df.columns)}; use --column")
        column = numeric[0]
    if column not in df.columns:
        raise DataError(f"column '{column}' not in {list(df.columns)}")
    return df[column].rename(str(column))


def build_config(args: argparse.Namespace) -> EngineConfig:
    return replace(
        CONFIG,
        volatility=replace(CONFIG.volatility, order=(args.p, args.q),
                           max_iter=args.max_iter),
        tail=replace(CONFIG.tail, threshold_quantile=args.threshold),
        risk=replace(CONFIG.risk, confidence=args.confidence),
        log_level=args.log_level)


# ---------------------------------------------------------------------------
# Report
# ---------------------------------------------------------------------------
def print_report(report: RiskReport) -> None:
    vol, tail = report.volatility, report.tail
    stats = report.diagnostics["returns"]

    _banner(f"GARCH-EVT RISK REPORT: {report.name}")
    print(f"\n  Observations:    {stats['n']}")
    print(f"  Mean return:     {format_pct(stats['mean'])}")
    print(f"  Std dev:         {format_pct(stats['std'])}")
    print(f"  Skewness:        {stats['skewness']:.4f}")
    print(f"  Excess kurtosis: {stats['excess_kurtosis']:.4f}")
    jb = report.diagnostics["jarque_bera"]
    print(f"  Jarque-Bera:     {jb.statistic:.2f} (p={jb.pvalue:.4f})")

    _banner(f"1. GARCH{vol.order} VOLATILITY FILTER")
    se = vol.std_errors or {}
    for k, v in vol.params.items():
        err = f"  (se {se[k]:.3g})" if k in se else ""
        print(f"    {k:12s}: {v:.6g}{err}")
    print(f"    {'persistence':12s}: {vol.persistence:.4f}")
    print(f"    {'log-lik':12s}: {vol.log_likelihood:.2f}   AIC={vol.aic:.2f}  BIC={vol.bic:.2f}")
    lb = report.diagnostics["ljung_box_squared"]
    print(f"    {lb.name}: {lb.statistic:.2f} (p={lb.pvalue:.4f})")

    _banner("2. GPD TAIL OF STANDARDIZED LOSSES")
    print(f"    threshold u : {tail.threshold:.4f}  (q={tail.threshold_quantile})")
    print(f"    N_u / N     : {tail.n_exceedances} / {tail.n_observations}")
    xi_se = f" (se {tail.xi_se:.3g})" if tail.xi_se is not None else ""
    beta_se = f" (se {tail.beta_se:.3g})" if tail.beta_se is not None else ""
    print(f"    xi          : {tail.xi:.4f}{xi_se}  [{tail.tail_type} tail]")
    print(f"    beta        : {tail.beta:.4f}{beta_se}")

    _banner(f"3. 1-DAY RISK AT {report.confidence:.2%} (sigma_T={format_pct(vol.latest_volatility)})")
    es_evt = report.evt_forecast.es
    print(f"    VaR Normal  : {format_pct(report.normal_forecast.var)}")
    print(f"    VaR EVT     : {format_pct(report.evt_forecast.var)}")
    print(f"    ES  EVT     : {format_pct(es_evt) if es_evt is not None else 'undefined (xi >= 1)'}")
    print(f"    Normal underestimation: {report.underestimation_pct:.2f}%")

    _banner("4. BACKTEST")
    for bt in (report.evt_backtest.summary, report.normal_backtest.summary):
        print(f"\n  {bt.model}")
        print(f"    Breaches:       {bt.n_breaches} / {bt.n_observations}")
        print(f"    Breach rate:    {bt.breach_rate:.2%}  (expected {bt.expected_rate:.2%})")
        print(f"    Kupiec LR:      {bt.kupiec_statistic:.4f}  p={bt.kupiec_pvalue:.4f}"
              f"  reject={bt.kupiec_reject}")
        print(f"    Traffic light:  {bt.traffic_light}")

    if report.warnings:
        _banner("WARNINGS")
        for w in report.warnings:
            print(f"    - {w}")


# ---------------------------------------------------------------------------
# Entry point
# ---------------------------------------------------------------------------
def main(argv: Optional[List[str]] = None) -> int:
    args = _args(argv)
    try:
        config = build_config(args)
    except ValueError as exc:
        print(f"invalid configuration: {exc}", file=sys.stderr)
        return 2

    logger = get_logger("garch_evt", log_dir=config.log_dir, level=config.log_level)

    try:
        if args.csv and not args.demo:
            returns = load_returns_csv(args.csv, args.column, args.date_column)
            name = os.path.basename(args.csv)
        else:
            returns = simulate_garch_returns(n=args.n_obs, dist="t", nu=5.0, seed=args.seed)
            name = f"demo GARCH-t (seed={args.seed})"
        report = run_risk_engine(returns, config=config, name=name)
    except RiskEngineError as exc:
        logger.error("%s", exc)
        print(str(exc), file=sys.stderr)
        return 2

    print_report(report)

    if args.output_dir:
        os.makedirs(args.output_dir, exist_ok=True)
        path = os.path.join(args.output_dir, "backtest.csv")
        report.backtest_frame().to_csv(path)
        print(f"\n  Backtest written to {path}")

    _banner("ANALYSIS COMPLETE")
    return 0


if __name__ == "__main__":
    sys.exit(main())
