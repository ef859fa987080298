#!/usr/bin/env python3
"""
Backtest-Learn Loop - Self-improving ML through backtesting.

The model learns from its own mistakes by:
1. Extracting ALL trades (including low-score losers)
2. Predicting outcomes for each trade
3. Comparing predictions to actual outcomes
4. Re-training with emphasis on prediction errors
5. Repeating until accuracy plateaus

Usage:
  python run_learn_loop.py                           # Defaults (+ SMC_* env / .env)
  python run_learn_loop.py --workers 16
  python run_learn_loop.py --iterations 20 --workers 8
  python run_learn_loop.py --min-score 20 --emphasis 5
  python run_learn_loop.py --config loop_config.json --seed 42
"""

import argparse
import sys

from smclearn.config import LoopConfig
from smclearn.data.local import LocalCSVSource
from smclearn.errors import CorpusTooSmall
from smclearn.ml.learn_loop import BacktestLearnLoop
from smclearn.utils.logger import setup_logger
from smclearn.utils.output_manager import OutputManager


def _split_list(value: str):
    return [v.strip() for v in value.split(",") if v.strip()]


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Backtest-Learn Loop - self-improving win-rate model"
    )
    parser.add_argument("--config", help="JSON loop config (defaults + SMC_* env vars if omitted)")
    parser.add_argument("--workers", type=int, help="Parallel extraction workers (default: CPU cores - 2)")
    parser.add_argument("--iterations", type=int, help="Max learn iterations (default: 10)")
    parser.add_argument("--min-score", type=float, help="Minimum confluence score (default: 25, LOW to capture losers)")
    parser.add_argument("--emphasis", type=int, help="Error emphasis multiplier (default: 3)")
    parser.add_argument("--data-path", help="Historical data directory (default: Historical_Data_Lite)")
    parser.add_argument("--symbols", type=_split_list, help="Comma-separated symbols")
    parser.add_argument("--timeframes", type=_split_list, help="Comma-separated timeframes, e.g. 1d,1h,5m")
    parser.add_argument("--output-dir", help="Directory for loop history and corpus CSV")
    parser.add_argument("--seed", type=int, help="Shuffle seed for reproducible runs")
    parser.add_argument("--log-file", help="Also log to this rotating file")
    return parser


def apply_args(config: LoopConfig, args: argparse.Namespace) -> LoopConfig:
    overrides = {
        "workers": args.workers,
        "max_iterations": args.iterations,
        "min_score": args.min_score,
        "error_emphasis_multiplier": args.emphasis,
        "data_path": args.data_path,
        "symbols": args.symbols,
        "timeframes": args.timeframes,
        "output_dir": args.output_dir,
        "seed": args.seed,
    }
    for attr, value in overrides.items():
        if value is not None:
            setattr(config, attr, value)
    return config


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    log = setup_logger("smclearn", log_file=args.log_file)

    config = LoopConfig.load(args.config) if args.config else LoopConfig.from_env()
    config = apply_args(config, args)

    loop = BacktestLearnLoop(LocalCSVSource(config.data_path), config)
    try:
        result = loop.run()
    except CorpusTooSmall as e:
        log.error(str(e))
        return 1

    output = OutputManager(config.output_dir)
    output.save_results(result, config)
    output.archive_current_run()

    log.info("Learning loop complete. The model has learned from its backtesting mistakes.")
    return 0


if __name__ == "__main__":
    sys.exit(main())
