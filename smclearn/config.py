"""
Configuration for the SMC learn loop.

Every tunable lives in one of three dataclasses that are passed explicitly
to the scorer, the feature extractor and the loop:

- ScoringWeights: the seven confluence weight slots
- FeatureConfig:  lookback window and thresholds for feature extraction
- LoopConfig:     corpus extraction and learning loop parameters

Usage:
    from smclearn.config import LoopConfig, load_feature_config

    config = LoopConfig.from_env()
    config.max_iterations = 20
    features = load_feature_config("config/features.json")
"""

from __future__ import annotations

import json
import os
from dataclasses import dataclass, field, asdict, fields
from pathlib import Path
from typing import Dict, Any, List, Optional, Union

from dotenv import load_dotenv

from smclearn.utils.logger import get_logger

log = get_logger(__name__)

DEFAULT_SYMBOLS = [
    "BTCUSDT", "ETHUSDT", "BNBUSDT", "ADAUSDT", "SOLUSDT",
    "XRPUSDT", "DOGEUSDT", "DOTUSDT", "AVAXUSDT", "LINKUSDT",
]
DEFAULT_TIMEFRAMES = ["1d", "1h", "5m"]


def _default_workers() -> int:
    # Leave 2 cores free
    return max(1, (os.cpu_count() or 1) - 2)


def _known_keys(cls) -> set:
    return {f.name for f in fields(cls)}


@dataclass
class ScoringWeights:
    """
    Point weights for each confluence factor.

    rsi_penalty is applied as-is, so a positive value rewards overbought /
    oversold readings and a negative value penalises them.
    """
    trend_structure: float = 40.0
    order_blocks: float = 30.0
    fvgs: float = 20.0
    ema_alignment: float = 15.0
    liquidity: float = 10.0
    mtf_bonus: float = 35.0
    rsi_penalty: float = 15.0

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "ScoringWeights":
        return cls(**{k: float(v) for k, v in d.items() if k in _known_keys(cls)})


@dataclass
class FeatureConfig:
    """
    Feature extraction thresholds.

    Percent values are whole percentages (5 means 5%). The *_max values cap
    feature ranges so the histogram model gets bounded inputs.
    """
    lookback: int = 200

    ob_near_percent: float = 5.0
    ob_distance_max: float = 1.0
    ob_age_max: int = 100

    fvg_near_percent: float = 2.0
    fvg_distance_max: float = 1.0
    fvg_size_max: float = 0.5

    rsi_overbought: float = 70.0
    rsi_oversold: float = 30.0

    # +/- percent price change treated as "neutral" for multi-horizon trend
    mtf_trend_threshold: float = 0.5
    mtf_periods: List[int] = field(default_factory=lambda: [20, 50, 100])
    mtf_min_candles: int = 50

    range_window: int = 50
    volume_window: int = 20
    volume_spike_ratio: float = 2.0

    trend_sma_period: int = 20
    trend_slope_points: int = 5

    # "ms" for millisecond epochs, "s" for second epochs
    timestamp_unit: str = "ms"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "FeatureConfig":
        return cls(**{k: v for k, v in d.items() if k in _known_keys(cls)})


def load_feature_config(path: Optional[Union[str, Path]] = None) -> FeatureConfig:
    """
    Load feature thresholds from a JSON file.

    Accepts either a flat mapping of FeatureConfig fields or the nested
    layout {"feature_extraction": {"lookback_periods": {"default": N},
    "thresholds": {...}}}. A missing or unreadable file falls back to the
    defaults with a warning.
    """
    if path is None:
        return FeatureConfig()

    path = Path(path)
    if not path.exists():
        log.warning(f"Feature config not found: {path}, using defaults")
        return FeatureConfig()

    try:
        with open(path, "r") as f:
            data = json.load(f)
    except (OSError, json.JSONDecodeError) as e:
        log.warning(f"Could not load feature config {path} ({e}), using defaults")
        return FeatureConfig()

    if not isinstance(data, dict):
        log.warning(f"Feature config {path} is not a JSON object, using defaults")
        return FeatureConfig()

    extraction = data.get("feature_extraction")
    if isinstance(extraction, dict):
        flat: Dict[str, Any] = dict(extraction.get("thresholds", {}))
        lookback = extraction.get("lookback_periods", {}).get("default")
        if lookback is not None:
            flat["lookback"] = lookback
        data = flat

    return FeatureConfig.from_dict(data)


@dataclass
class LoopConfig:
    """
    Backtest-learn loop configuration.

    Attributes:
        symbols / timeframes: job grid for corpus extraction
        min_score: minimum confluence score for a candidate trade (kept LOW
            so the corpus contains losers as well as winners)
        max_iterations: upper bound on learn iterations
        min_accuracy_improvement: convergence threshold on test accuracy
        train_test_split: fraction of the pool used for training
        error_emphasis_multiplier: misclassified test records are appended
            (multiplier - 1) extra times to the next training pool
        workers: parallel extraction jobs per batch
        min_corpus_size: abort below this many labeled records
        min_candles: per-job minimum candle count
        warmup: first evaluated index in each candle sequence
        forward_buffer: candles left unevaluated at the end of a sequence
        prediction_threshold: win probability at which a win is predicted
        seed: shuffle seed (None for non-deterministic shuffles)
    """
    symbols: List[str] = field(default_factory=lambda: list(DEFAULT_SYMBOLS))
    timeframes: List[str] = field(default_factory=lambda: list(DEFAULT_TIMEFRAMES))

    min_score: float = 25.0

    max_iterations: int = 10
    min_accuracy_improvement: float = 0.005
    train_test_split: float = 0.7
    error_emphasis_multiplier: int = 3

    workers: int = field(default_factory=_default_workers)

    min_corpus_size: int = 200
    min_candles: int = 300
    warmup: int = 200
    forward_buffer: int = 50

    prediction_threshold: float = 0.5
    seed: Optional[int] = None

    data_path: str = "Historical_Data_Lite"
    output_dir: str = "data/learning-loop"
    # Closed live trades with feature snapshots, merged into the corpus
    recorded_trades_dir: Optional[str] = None

    weights: ScoringWeights = field(default_factory=ScoringWeights)
    features: FeatureConfig = field(default_factory=FeatureConfig)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "LoopConfig":
        """Create config from dictionary, ignoring unknown keys."""
        filtered = {k: v for k, v in d.items() if k in _known_keys(cls)}
        if isinstance(filtered.get("weights"), dict):
            filtered["weights"] = ScoringWeights.from_dict(filtered["weights"])
        if isinstance(filtered.get("features"), dict):
            filtered["features"] = FeatureConfig.from_dict(filtered["features"])
        return cls(**filtered)

    def save(self, path: Union[str, Path]) -> None:
        """Save config to JSON file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            json.dump(self.to_dict(), f, indent=2)
        log.info(f"Loop config saved to: {path}")

    @classmethod
    def load(cls, path: Union[str, Path]) -> "LoopConfig":
        """Load config from JSON file, falling back to defaults if missing."""
        path = Path(path)
        if not path.exists():
            log.warning(f"Config file not found: {path}, using default configuration")
            return cls()

        with open(path, "r") as f:
            data = json.load(f)
        return cls.from_dict(data)

    @classmethod
    def from_env(cls, env_file: Optional[Union[str, Path]] = None) -> "LoopConfig":
        """
        Build a config from SMC_* environment variables.

        A .env file (default: ./.env) is loaded first when present.
        Unset variables keep their defaults.
        """
        env_path = Path(env_file) if env_file else Path.cwd() / ".env"
        if env_path.exists():
            load_dotenv(env_path, override=True)
            log.info(f"Loaded environment from {env_path}")

        config = cls()

        symbols = os.getenv("SMC_SYMBOLS")
        if symbols:
            config.symbols = [s.strip() for s in symbols.split(",") if s.strip()]
        timeframes = os.getenv("SMC_TIMEFRAMES")
        if timeframes:
            config.timeframes = [t.strip() for t in timeframes.split(",") if t.strip()]

        int_vars = {
            "SMC_WORKERS": "workers",
            "SMC_MAX_ITERATIONS": "max_iterations",
            "SMC_ERROR_EMPHASIS": "error_emphasis_multiplier",
            "SMC_MIN_CORPUS_SIZE": "min_corpus_size",
            "SMC_SEED": "seed",
        }
        for var, attr in int_vars.items():
            value = os.getenv(var)
            if value:
                setattr(config, attr, int(value))

        float_vars = {
            "SMC_MIN_SCORE": "min_score",
            "SMC_MIN_IMPROVEMENT": "min_accuracy_improvement",
            "SMC_TRAIN_TEST_SPLIT": "train_test_split",
        }
        for var, attr in float_vars.items():
            value = os.getenv(var)
            if value:
                setattr(config, attr, float(value))

        config.data_path = os.getenv("SMC_DATA_PATH", config.data_path)
        config.output_dir = os.getenv("SMC_OUTPUT_DIR", config.output_dir)
        config.recorded_trades_dir = os.getenv("SMC_RECORDED_TRADES_DIR") or None

        features_file = os.getenv("SMC_FEATURES_CONFIG")
        if features_file:
            config.features = load_feature_config(features_file)

        return config
