"""
Backtest-Learn Loop.

Self-improving training loop:
1. Extract all trades (including low-score ones) from historical data
2. Shuffle and split the training pool, train, evaluate on both splits
3. Stop when test accuracy stops improving
4. Otherwise append the misclassified test trades to the pool again,
   (error_emphasis_multiplier - 1) extra times, and repeat

The model learns from its own backtesting mistakes.
"""

import time
from dataclasses import dataclass, field, asdict
from functools import partial
from typing import List, Optional, Sequence, Tuple, Dict, Any

import numpy as np

from smclearn.config import LoopConfig
from smclearn.data.local import CandleSource
from smclearn.errors import CorpusTooSmall
from smclearn.ml.extraction import (
    ExtractionSummary,
    extract_trades_for_symbol,
    load_recorded_trades,
    run_extraction_jobs,
)
from smclearn.ml.model import HistogramModel
from smclearn.strategy.features import FeatureRecord
from smclearn.utils.logger import get_logger

log = get_logger(__name__)

HIGH_CONFLUENCE = 0.6


@dataclass
class IterationRecord:
    iteration: int
    training_size: int
    train_accuracy: float
    test_accuracy: float
    misclassified: int
    improvement: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LoopResult:
    iterations: List[IterationRecord]
    model: HistogramModel
    corpus: List[FeatureRecord]
    extraction: Optional[ExtractionSummary] = None
    final_pool_size: int = 0
    converged: bool = False
    duration_seconds: float = 0.0

    @property
    def start_accuracy(self) -> float:
        return self.iterations[0].test_accuracy if self.iterations else 0.0

    @property
    def final_accuracy(self) -> float:
        return self.iterations[-1].test_accuracy if self.iterations else 0.0

    def history(self) -> List[Dict[str, Any]]:
        return [it.to_dict() for it in self.iterations]


def evaluate_model(
    model: HistogramModel,
    records: Sequence[FeatureRecord],
    threshold: float = 0.5,
) -> Tuple[float, List[FeatureRecord]]:
    """
    Accuracy of predicted win (probability >= threshold) against outcome.

    Returns:
        (accuracy, misclassified records). An empty set scores 0.0.
    """
    if not records:
        return 0.0, []

    correct = 0
    errors: List[FeatureRecord] = []
    for record in records:
        prediction = model.predict(record)
        if (prediction.win_probability >= threshold) == record.is_win:
            correct += 1
        else:
            errors.append(record)

    return correct / len(records), errors


def corpus_distribution(corpus: Sequence[FeatureRecord]) -> Dict[str, int]:
    winners = sum(1 for r in corpus if r.is_win)
    high = sum(1 for r in corpus if r.confluence_score > HIGH_CONFLUENCE)
    return {
        "total": len(corpus),
        "winners": winners,
        "losers": len(corpus) - winners,
        "high_score": high,
        "low_score": len(corpus) - high,
    }


class BacktestLearnLoop:
    """
    Orchestrates corpus extraction and the iterative train/evaluate cycle.

    Usage:
        loop = BacktestLearnLoop(LocalCSVSource("Historical_Data_Lite"), LoopConfig())
        result = loop.run()
    """

    def __init__(
        self,
        source: Optional[CandleSource] = None,
        config: Optional[LoopConfig] = None,
        model: Optional[HistogramModel] = None,
    ):
        self.source = source
        self.config = config if config is not None else LoopConfig()
        self.model = model if model is not None else HistogramModel()

    def _log_config(self) -> None:
        c = self.config
        log.info("=" * 70)
        log.info("BACKTEST-LEARN LOOP")
        log.info("=" * 70)
        log.info(f"  Symbols: {len(c.symbols)}")
        log.info(f"  Timeframes: {', '.join(c.timeframes)}")
        log.info(f"  Min Score: {c.min_score}")
        log.info(f"  Max Iterations: {c.max_iterations}")
        log.info(f"  Error Emphasis: {c.error_emphasis_multiplier}x")

    # ------------------------------------------------------------------
    # Phase 1
    # ------------------------------------------------------------------

    def extract_corpus(self) -> Tuple[List[FeatureRecord], ExtractionSummary]:
        """Extract labeled trades for every configured symbol/timeframe."""
        if self.source is None:
            raise ValueError("A candle source is required to extract a corpus")

        jobs = [(symbol, timeframe)
                for timeframe in self.config.timeframes
                for symbol in self.config.symbols]

        # Picklable for the worker processes
        worker = partial(extract_trades_for_symbol, self.source, config=self.config)
        results, summary = run_extraction_jobs(jobs, worker, self.config.workers)

        corpus: List[FeatureRecord] = []
        for result in results:
            if result.success:
                corpus.extend(result.records)

        if self.config.recorded_trades_dir:
            corpus.extend(load_recorded_trades(self.config.recorded_trades_dir))

        if summary.failed:
            log.warning(
                f"{summary.failed}/{summary.total} extraction jobs failed "
                f"({summary.failure_ratio:.0%})"
            )
        return corpus, summary

    # ------------------------------------------------------------------
    # Phase 2
    # ------------------------------------------------------------------

    def iterate(self, corpus: Sequence[FeatureRecord]) -> LoopResult:
        """
        Run the train/evaluate/emphasise cycle on an in-memory corpus.

        Raises:
            CorpusTooSmall: corpus smaller than config.min_corpus_size
        """
        c = self.config
        if len(corpus) < c.min_corpus_size:
            raise CorpusTooSmall(len(corpus), c.min_corpus_size)

        dist = corpus_distribution(corpus)
        total = dist["total"]
        log.info("Trade distribution:")
        log.info(f"  Total: {total}")
        log.info(f"  Winners: {dist['winners']} ({dist['winners'] / total * 100:.1f}%)")
        log.info(f"  Losers: {dist['losers']} ({dist['losers'] / total * 100:.1f}%)")
        log.info(f"  High Score (>{HIGH_CONFLUENCE:.0%}): {dist['high_score']}")
        log.info(f"  Low Score (<={HIGH_CONFLUENCE:.0%}): {dist['low_score']}")

        rng = np.random.default_rng(c.seed)
        pool: List[FeatureRecord] = list(corpus)
        iterations: List[IterationRecord] = []
        last_accuracy = 0.0
        converged = False

        for i in range(1, c.max_iterations + 1):
            log.info(f"--- Iteration {i}/{c.max_iterations} ---")

            order = rng.permutation(len(pool))
            shuffled = [pool[j] for j in order]
            split = int(len(shuffled) * c.train_test_split)
            train_set = shuffled[:split]
            test_set = shuffled[split:]

            log.info(f"  Training on {len(train_set)} trades, testing on {len(test_set)}")
            self.model.train(train_set)

            test_accuracy, errors = evaluate_model(self.model, test_set, c.prediction_threshold)
            train_accuracy, _ = evaluate_model(self.model, train_set, c.prediction_threshold)
            improvement = test_accuracy - last_accuracy

            log.info(f"  Train Accuracy: {train_accuracy * 100:.1f}%")
            log.info(f"  Test Accuracy: {test_accuracy * 100:.1f}%")
            log.info(f"  Prediction Errors: {len(errors)}")
            log.info(f"  Improvement: {improvement * 100:+.2f}%")

            iterations.append(IterationRecord(
                iteration=i,
                training_size=len(pool),
                train_accuracy=train_accuracy,
                test_accuracy=test_accuracy,
                misclassified=len(errors),
                improvement=improvement,
            ))

            if i > 1 and improvement < c.min_accuracy_improvement:
                log.info(
                    f"Converged: improvement {improvement * 100:.2f}% < "
                    f"threshold {c.min_accuracy_improvement * 100:.2f}%"
                )
                converged = True
                break

            if i < c.max_iterations:
                for _ in range(c.error_emphasis_multiplier - 1):
                    pool.extend(errors)
                log.info(
                    f"  Added {len(errors)} error cases with {c.error_emphasis_multiplier}x "
                    f"emphasis, training set now {len(pool)} trades"
                )

            last_accuracy = test_accuracy

        return LoopResult(
            iterations=iterations,
            model=self.model,
            corpus=list(corpus),
            final_pool_size=len(pool),
            converged=converged,
        )

    def run(self) -> LoopResult:
        """
        Extract the corpus and run the learning cycle.

        Raises:
            CorpusTooSmall: extraction produced fewer than min_corpus_size trades
        """
        start = time.time()
        self._log_config()

        corpus, summary = self.extract_corpus()
        result = self.iterate(corpus)
        result.extraction = summary
        result.duration_seconds = time.time() - start

        log.info("=" * 70)
        log.info("LEARNING LOOP COMPLETE")
        log.info("=" * 70)
        log.info(f"  Total trades processed: {len(result.corpus)}")
        log.info(f"  Iterations completed: {len(result.iterations)}")
        log.info(f"  Starting accuracy: {result.start_accuracy * 100:.1f}%")
        log.info(f"  Final accuracy: {result.final_accuracy * 100:.1f}%")
        log.info(
            f"  Total improvement: "
            f"{(result.final_accuracy - result.start_accuracy) * 100:+.1f}%"
        )
        log.info(f"  Duration: {result.duration_seconds:.1f}s")

        return result
