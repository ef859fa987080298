"""
Corpus extraction: candles -> labeled FeatureRecords.

For every evaluation index of a candle sequence the setup is analysed,
scored, filtered, featurised and simulated. Symbol/timeframe jobs are
independent, CPU-bound and run in bounded batches on a process pool; a
failing job is logged and counted, never fatal to its batch.
"""

import json
from concurrent.futures import ProcessPoolExecutor, as_completed
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple, Union

from smclearn.config import LoopConfig
from smclearn.data.candle import Candle
from smclearn.data.local import CandleSource
from smclearn.errors import SMCLearnError, InsufficientData
from smclearn.strategy.features import (
    FeatureRecord,
    TradeOutcome,
    add_outcome,
    extract_features,
)
from smclearn.strategy.indicators import analyze
from smclearn.strategy.scoring import score_confluence, NEUTRAL
from smclearn.strategy.simulator import simulate_trade
from smclearn.utils.logger import get_logger

log = get_logger(__name__)

Job = Tuple[str, str]

OUTCOME_FIELDS = ("outcome", "pnl", "pnl_percent", "exit_reason", "holding_periods")


@dataclass
class JobResult:
    job: Job
    success: bool
    records: List[FeatureRecord] = field(default_factory=list)
    error: Optional[str] = None


@dataclass
class ExtractionSummary:
    total: int = 0
    succeeded: int = 0
    failed: int = 0
    records: int = 0

    @property
    def failure_ratio(self) -> float:
        return self.failed / self.total if self.total else 0.0

    def to_dict(self):
        return {
            "total": self.total,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "records": self.records,
            "failure_ratio": self.failure_ratio,
        }


def extract_trades_for_candles(
    candles: Sequence[Candle],
    config: Optional[LoopConfig] = None,
    symbol: str = "",
    timeframe: str = "",
) -> List[FeatureRecord]:
    """
    Walk a candle sequence and return one labeled record per accepted setup.

    Indices from config.warmup up to len - config.forward_buffer are
    evaluated. Analysis is recomputed from scratch on candles[:i + 1] at
    every index. Setups below min_score or with a neutral bias are skipped.
    """
    if config is None:
        config = LoopConfig()

    records: List[FeatureRecord] = []
    end = len(candles) - config.forward_buffer

    for i in range(config.warmup, end):
        current = candles[i]
        analysis = analyze(candles[:i + 1])
        scoring = score_confluence(analysis, current.close, config.weights)

        if scoring.score < config.min_score:
            continue
        direction = scoring.direction
        if scoring.bias == NEUTRAL or direction is None:
            continue

        features = extract_features(
            candles, i, analysis, scoring.score, direction, config.features
        )
        if symbol or timeframe:
            features = replace(features, symbol=symbol, timeframe=timeframe)

        outcome = simulate_trade(candles, i, current.close, direction, analysis.atr)
        records.append(add_outcome(features, outcome))

    return records


def extract_trades_for_symbol(
    source: CandleSource,
    symbol: str,
    timeframe: str,
    config: Optional[LoopConfig] = None,
) -> List[FeatureRecord]:
    """
    Load one symbol/timeframe and extract its labeled trades.

    Raises:
        DataUnavailable: from the candle source
        InsufficientData: fewer than config.min_candles candles
    """
    if config is None:
        config = LoopConfig()

    candles = source.load(symbol, timeframe)
    if len(candles) < config.min_candles:
        raise InsufficientData(symbol, timeframe, len(candles), config.min_candles)

    return extract_trades_for_candles(candles, config, symbol, timeframe)


def run_extraction_jobs(
    jobs: Sequence[Job],
    worker: Callable[[str, str], List[FeatureRecord]],
    workers: int = 1,
) -> Tuple[List[JobResult], ExtractionSummary]:
    """
    Run extraction jobs in batches of `workers`.

    Each batch completes before the next one starts. SMCLearnError failures
    (missing or short data) are logged as warnings; any other exception is
    logged with its traceback. Both only mark the job as failed.

    Jobs run in worker processes: `worker` must be picklable (a module-level
    function or a functools.partial of one) and so must its results.

    Returns:
        (results in job order, summary)
    """
    workers = max(1, workers)
    total = len(jobs)
    summary = ExtractionSummary(total=total)
    results: List[JobResult] = []
    completed = 0

    log.info(f"Extracting {total} jobs with {workers} parallel workers")

    with ProcessPoolExecutor(max_workers=workers) as executor:
        for start in range(0, total, workers):
            batch = list(jobs[start:start + workers])
            futures = {executor.submit(worker, job[0], job[1]): (pos, tuple(job))
                       for pos, job in enumerate(batch)}

            batch_results = {}
            for future in as_completed(futures):
                pos, job = futures[future]
                completed += 1
                try:
                    records = future.result()
                    result = JobResult(job=job, success=True, records=list(records))
                    status = f"{len(records)} trades"
                except SMCLearnError as e:
                    result = JobResult(job=job, success=False, error=str(e))
                    status = "FAILED"
                    log.warning(f"{job[0]}/{job[1]}: {e}")
                except Exception as e:
                    result = JobResult(job=job, success=False, error=f"{type(e).__name__}: {e}")
                    status = "FAILED"
                    log.exception(f"{job[0]}/{job[1]}: unexpected extraction error")

                batch_results[pos] = result
                progress = int(completed / total * 100)
                log.info(f"[{progress}%] {job[0]}/{job[1]}: {status}")

            results.extend(batch_results[pos] for pos in range(len(batch)))

    for result in results:
        if result.success:
            summary.succeeded += 1
            summary.records += len(result.records)
        else:
            summary.failed += 1

    log.info(
        f"Extraction complete: {summary.succeeded}/{summary.total} successful, "
        f"{summary.records} trades extracted"
    )
    return results, summary


def load_recorded_trades(trades_dir: Union[str, Path]) -> List[FeatureRecord]:
    """
    Load closed live trades that carry a feature snapshot.

    Each *.json file holds a list of trade dicts with "status", "features",
    "pnl" and optionally "pnl_percent", "exit_reason", "holding_periods".
    Unreadable files, files that don't hold a list, and trades with
    incomplete snapshots or non-numeric outcome fields are skipped with a
    warning.
    """
    trades_dir = Path(trades_dir)
    records: List[FeatureRecord] = []
    if not trades_dir.exists():
        return records

    for path in sorted(trades_dir.glob("*.json")):
        try:
            with open(path, "r") as f:
                trades = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            log.warning(f"Skipping recorded trades file {path.name}: {e}")
            continue

        if not isinstance(trades, list):
            log.warning(f"Skipping recorded trades file {path.name}: expected a list of trades")
            continue

        for trade in trades:
            if not isinstance(trade, dict):
                log.warning(f"Skipping recorded trade in {path.name}: not an object")
                continue
            features = trade.get("features")
            if trade.get("status") != "CLOSED" or not features:
                continue

            try:
                context = {k: v for k, v in features.items() if k not in OUTCOME_FIELDS}
                record = FeatureRecord.from_dict(context)
                pnl = float(trade.get("pnl", 0.0))
                outcome = TradeOutcome(
                    outcome="WIN" if pnl > 0 else "LOSS",
                    pnl=pnl,
                    pnl_percent=float(trade.get("pnl_percent", 0.0)),
                    exit_reason=trade.get("exit_reason", "unknown"),
                    holding_periods=int(trade.get("holding_periods", 0)),
                )
            except (AttributeError, TypeError, ValueError) as e:
                log.warning(f"Skipping recorded trade in {path.name}: {e}")
                continue

            records.append(add_outcome(record, outcome))

    log.info(f"Loaded {len(records)} recorded live trades from {trades_dir}")
    return records
