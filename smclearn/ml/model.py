"""
Histogram-voting win probability model.

Each modeled feature is discretised into bins (equal-width for numeric
features, one bin per observed value for categorical ones). A bin stores
its sample count and win rate; a feature's importance is the spread of win
rates across its well-populated bins. Prediction is an importance- and
sample-weighted average of the win rates of the query's bins.

The set of modeled features is closed: FEATURE_SCHEMA lists every feature
together with how to read it from a FeatureRecord.
"""

from __future__ import annotations

from dataclasses import dataclass, field, asdict
from operator import attrgetter
from typing import Any, Callable, Dict, List, Optional, Sequence

import numpy as np

from smclearn.errors import NotTrained
from smclearn.strategy.features import FeatureRecord
from smclearn.utils.logger import get_logger

log = get_logger(__name__)

NUMERIC = "numeric"
CATEGORICAL = "categorical"


@dataclass(frozen=True)
class FeatureSpec:
    name: str
    kind: str
    accessor: Callable[[FeatureRecord], Any]


def _spec(name: str, kind: str) -> FeatureSpec:
    return FeatureSpec(name=name, kind=kind, accessor=attrgetter(name))


NUMERIC_FEATURES = [
    "trend_strength",
    "ob_distance",
    "ob_size",
    "ob_age",
    "fvg_nearest_distance",
    "fvg_size",
    "fvg_count",
    "volatility",
    "rsi_value",
    "atr_value",
    "price_position",
    "distance_to_high",
    "distance_to_low",
    "volume_ratio",
    "confluence_score",
    "potential_rr",
]

CATEGORICAL_FEATURES = [
    "trend_direction",
    "trend_bos_aligned",
    "ob_near",
    "ob_type",
    "fvg_near",
    "fvg_type",
    "ema_aligned",
    "ema_trend",
    "rsi_state",
    "liquidity_near",
    "mtf_aligned",
    "direction",
    "volume_spike",
    "session",
    "days_since_loss",
    "streak_type",
]

FEATURE_SCHEMA: List[FeatureSpec] = (
    [_spec(name, NUMERIC) for name in NUMERIC_FEATURES]
    + [_spec(name, CATEGORICAL) for name in CATEGORICAL_FEATURES]
)


# ============================================================================
# MODEL STATE
# ============================================================================

@dataclass
class Bin:
    """
    One bin of a feature.

    Numeric bins cover [lower, upper); the last bin of a feature also
    includes upper. Categorical bins match `value` by equality.
    """
    lower: float = 0.0
    upper: float = 0.0
    count: int = 0
    wins: int = 0
    win_rate: float = 0.0
    value: Any = None
    closed: bool = False

    def contains(self, x: float) -> bool:
        if self.closed:
            return self.lower <= x <= self.upper
        return self.lower <= x < self.upper

    def matches(self, x: Any) -> bool:
        return self.count > 0 and self.value == x


@dataclass
class ModelFeature:
    name: str
    kind: str
    bins: List[Bin] = field(default_factory=list)
    importance: float = 0.0

    def find_bin(self, value: Any) -> Optional[Bin]:
        """First bin containing (numeric) or matching (categorical) value."""
        if self.kind == NUMERIC:
            if value is None:
                return None
            for b in self.bins:
                if b.contains(float(value)):
                    return b
            return None

        for b in self.bins:
            if b.matches(value):
                return b
        return None


@dataclass
class FeatureScore:
    feature: str
    score: float
    win_rate: float
    sample_weight: float
    importance: float


@dataclass
class Prediction:
    win_probability: float
    confidence: float
    key_features: List[str] = field(default_factory=list)
    reason: str = ""

    def predicted_win(self, threshold: float = 0.5) -> bool:
        return self.win_probability >= threshold


# ============================================================================
# BINNING
# ============================================================================

def numeric_bins(values: np.ndarray, wins: np.ndarray, num_bins: int) -> List[Bin]:
    """
    Equal-width bins over [min, max] of values.

    Assignment uses the same half-open rule as Bin.contains(), with the
    maximum going to the last bin.
    """
    lo = float(values.min())
    hi = float(values.max())
    edges = np.linspace(lo, hi, num_bins + 1)

    idx = np.searchsorted(edges, values, side="right") - 1
    idx = np.clip(idx, 0, num_bins - 1)

    counts = np.bincount(idx, minlength=num_bins)
    win_counts = np.bincount(idx, weights=wins.astype(float), minlength=num_bins)

    bins = []
    for i in range(num_bins):
        count = int(counts[i])
        won = int(round(win_counts[i]))
        bins.append(Bin(
            lower=float(edges[i]),
            upper=float(edges[i + 1]),
            count=count,
            wins=won,
            win_rate=won / count if count > 0 else 0.0,
            closed=(i == num_bins - 1),
        ))
    return bins


def categorical_bins(values: Sequence[Any], wins: Sequence[bool]) -> List[Bin]:
    """One bin per distinct value, in first-seen order."""
    counts: Dict[Any, List[int]] = {}
    for value, won in zip(values, wins):
        tally = counts.setdefault(value, [0, 0])
        tally[0] += 1
        if won:
            tally[1] += 1

    return [
        Bin(count=count, wins=won, win_rate=won / count, value=value)
        for value, (count, won) in counts.items()
    ]


def feature_importance(
    bins: Sequence[Bin],
    min_sample_size: int = 30,
    multiplier: float = 10.0,
) -> float:
    """
    Population variance of win rate across bins with enough samples,
    scaled and clamped to 1. Fewer than two qualifying bins gives 0.
    """
    rates = [b.win_rate for b in bins if b.count >= min_sample_size]
    if len(rates) < 2:
        return 0.0
    variance = float(np.var(rates))
    return min(variance * multiplier, 1.0)


# ============================================================================
# MODEL
# ============================================================================

class HistogramModel:
    """
    Explainable histogram-voting estimator of trade win probability.

    train() replaces the whole state; predict() fails with NotTrained until
    train() has run.
    """

    def __init__(
        self,
        num_bins: int = 10,
        min_sample_size: int = 30,
        top_features: int = 10,
        key_features: int = 5,
        importance_multiplier: float = 10.0,
        confidence_norm: float = 1000.0,
        schema: Optional[List[FeatureSpec]] = None,
    ):
        self.num_bins = num_bins
        self.min_sample_size = min_sample_size
        self.top_features = top_features
        self.key_features = key_features
        self.importance_multiplier = importance_multiplier
        self.confidence_norm = confidence_norm
        self.schema = schema if schema is not None else FEATURE_SCHEMA

        self.features: Dict[str, ModelFeature] = {}
        self.trained = False
        self.training_size = 0

    # ------------------------------------------------------------------
    # Training
    # ------------------------------------------------------------------

    def train(self, records: Sequence[FeatureRecord]) -> None:
        """
        Fit bins and importances on labeled records.

        Raises:
            ValueError: if records is empty or contains unlabeled records
        """
        if not records:
            raise ValueError("Cannot train on an empty corpus")
        if any(not r.is_labeled for r in records):
            raise ValueError("Training records must carry an outcome")

        log.info(f"Training histogram model on {len(records)} trades...")

        wins = np.array([r.is_win for r in records], dtype=bool)
        features: Dict[str, ModelFeature] = {}

        for spec in self.schema:
            raw = [spec.accessor(r) for r in records]
            if spec.kind == NUMERIC:
                values = np.array(raw, dtype=float)
                bins = numeric_bins(values, wins, self.num_bins)
            else:
                bins = categorical_bins(raw, wins)

            features[spec.name] = ModelFeature(
                name=spec.name,
                kind=spec.kind,
                bins=bins,
                importance=feature_importance(
                    bins, self.min_sample_size, self.importance_multiplier
                ),
            )

        self.features = features
        self.training_size = len(records)
        self.trained = True

        for line in self.insights():
            log.info(line)

    # ------------------------------------------------------------------
    # Prediction
    # ------------------------------------------------------------------

    def score_features(self, record: FeatureRecord) -> List[FeatureScore]:
        """Per-feature scores for a record, highest first (stable on ties)."""
        if not self.trained:
            raise NotTrained()

        scores = []
        for spec in self.schema:
            feature = self.features.get(spec.name)
            if feature is None:
                continue

            matched = feature.find_bin(spec.accessor(record))
            if matched is not None:
                win_rate, count = matched.win_rate, matched.count
            else:
                win_rate, count = 0.5, 0

            sample_weight = min(count / self.min_sample_size, 1.0)
            scores.append(FeatureScore(
                feature=spec.name,
                score=win_rate * feature.importance * sample_weight,
                win_rate=win_rate,
                sample_weight=sample_weight,
                importance=feature.importance,
            ))

        scores.sort(key=lambda s: s.score, reverse=True)
        return scores

    def predict(self, record: FeatureRecord) -> Prediction:
        """
        Predict the win probability of a setup.

        confidence is sum(min(importance * sample_weight, 100)) / confidence_norm
        over the top features, which with the defaults tops out at 0.01.

        Raises:
            NotTrained: if train() has not been called
        """
        top = self.score_features(record)[:self.top_features]

        total_weight = sum(s.score for s in top)
        if total_weight > 0:
            win_probability = sum(s.score * s.win_rate for s in top) / total_weight
        else:
            win_probability = 0.5

        # Each term is at most 1 (importance and sample weight are both <= 1),
        # so with 10 top features confidence never exceeds 0.01
        effective_samples = sum(min(s.importance * s.sample_weight, 100.0) for s in top)
        confidence = min(effective_samples / self.confidence_norm, 1.0)

        key = top[:self.key_features]
        return Prediction(
            win_probability=win_probability,
            confidence=confidence,
            key_features=[s.feature for s in key],
            reason=", ".join(f"{s.feature} {s.win_rate * 100:.0f}% win rate" for s in key),
        )

    # ------------------------------------------------------------------
    # Insights
    # ------------------------------------------------------------------

    def _qualifying_bins(self, feature: ModelFeature) -> List[Bin]:
        bins = [b for b in feature.bins if b.count >= self.min_sample_size]
        return sorted(bins, key=lambda b: b.win_rate, reverse=True)

    def insights(self, limit: int = 10, setups: int = 5) -> List[str]:
        """Human-readable summary of importances and best-performing bins."""
        if not self.trained:
            return []

        lines = ["Feature importance:"]
        ranked = sorted(self.features.values(), key=lambda f: f.importance, reverse=True)
        for feature in ranked[:limit]:
            best = self._qualifying_bins(feature)
            if not best:
                continue
            lines.append(f"  {feature.name:<25} {feature.importance * 100:.0f}% importance")
            lines.append(
                f"    Best range: {format_bin_range(feature.name, best[0])} = "
                f"{best[0].win_rate * 100:.0f}% win rate ({best[0].count} trades)"
            )

        characteristics = []
        for feature in self.features.values():
            for b in self._qualifying_bins(feature)[:2]:
                if b.win_rate > 0.55:
                    characteristics.append(
                        f"  {feature.name} {format_bin_range(feature.name, b)} = "
                        f"{b.win_rate * 100:.0f}% win rate"
                    )

        lines.append("High-probability setup characteristics:")
        lines.extend(characteristics[:setups])
        return lines

    def get_stats(self) -> Dict[str, Any]:
        return {
            "trained": self.trained,
            "num_features": len(self.features),
            "min_sample_size": self.min_sample_size,
            "training_size": self.training_size,
        }

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def to_dict(self) -> Dict[str, Any]:
        return {
            "num_bins": self.num_bins,
            "min_sample_size": self.min_sample_size,
            "top_features": self.top_features,
            "key_features": self.key_features,
            "importance_multiplier": self.importance_multiplier,
            "confidence_norm": self.confidence_norm,
            "trained": self.trained,
            "training_size": self.training_size,
            "features": {name: asdict(f) for name, f in self.features.items()},
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "HistogramModel":
        model = cls(
            num_bins=d.get("num_bins", 10),
            min_sample_size=d.get("min_sample_size", 30),
            top_features=d.get("top_features", 10),
            key_features=d.get("key_features", 5),
            importance_multiplier=d.get("importance_multiplier", 10.0),
            confidence_norm=d.get("confidence_norm", 1000.0),
        )
        known = {spec.name for spec in model.schema}
        for name, feature in d.get("features", {}).items():
            if name not in known:
                log.warning(f"Ignoring unknown model feature: {name}")
                continue
            model.features[name] = ModelFeature(
                name=feature["name"],
                kind=feature["kind"],
                bins=[Bin(**b) for b in feature["bins"]],
                importance=feature["importance"],
            )
        model.trained = bool(d.get("trained", False)) and bool(model.features)
        model.training_size = d.get("training_size", 0)
        return model


def format_bin_range(feature_name: str, b: Bin) -> str:
    """Render a bin's lower bound in the feature's natural unit."""
    if b.value is not None:
        return f"= {b.value}"

    val = b.lower
    if feature_name == "trend_strength":
        return f"{val * 100:.1f}%"
    if feature_name in ("ob_distance", "fvg_nearest_distance", "ob_size", "fvg_size", "volatility"):
        return f"{val * 100:.2f}%"
    if feature_name == "ob_age":
        return f"{int(val)} candles"
    if feature_name == "rsi_value":
        return f"{val:.0f}"
    if feature_name == "atr_value":
        return f"${val:.2f}"
    return f"{val:.3f}"
