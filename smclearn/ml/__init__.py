"""
ML module - Histogram win-rate model and the backtest-learn loop.
"""

from smclearn.ml.model import (
    FEATURE_SCHEMA,
    FeatureSpec,
    HistogramModel,
    Prediction,
)
from smclearn.ml.extraction import (
    JobResult,
    ExtractionSummary,
    extract_trades_for_candles,
    extract_trades_for_symbol,
    run_extraction_jobs,
)
from smclearn.ml.learn_loop import (
    BacktestLearnLoop,
    IterationRecord,
    LoopResult,
    evaluate_model,
)

__all__ = [
    "FEATURE_SCHEMA",
    "FeatureSpec",
    "HistogramModel",
    "Prediction",
    "JobResult",
    "ExtractionSummary",
    "extract_trades_for_candles",
    "extract_trades_for_symbol",
    "run_extraction_jobs",
    "BacktestLearnLoop",
    "IterationRecord",
    "LoopResult",
    "evaluate_model",
]
