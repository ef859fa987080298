"""
Trade Feature Extractor.

Turns a scored setup at one candle into a flat FeatureRecord describing the
market context at that instant. Records are unlabeled when extracted;
add_outcome() returns a labeled copy once the trade has been simulated.

All thresholds come from FeatureConfig, passed in by the caller.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict, replace
from datetime import datetime, timezone
from typing import List, Optional, Sequence, Dict, Any

from smclearn.config import FeatureConfig
from smclearn.data.candle import Candle
from smclearn.strategy.indicators import Analysis, sma


LONG = "long"
SHORT = "short"

# Placeholder when no matching order block / gap exists; clamped downstream
NO_DISTANCE = 999.0


@dataclass(frozen=True)
class TradeOutcome:
    """Result of a simulated trade."""
    outcome: str  # "WIN" or "LOSS"
    pnl: float
    pnl_percent: float
    exit_reason: str  # "SL", "TP" or "TIME"
    holding_periods: int
    exit_price: Optional[float] = None


@dataclass(frozen=True)
class FeatureRecord:
    """Market context of one candidate trade, plus its outcome once labeled."""
    # Entry
    entry_price: float
    entry_time: int
    direction: str

    # Trend
    trend_direction: str
    trend_strength: float
    trend_bos_aligned: bool

    # Order blocks
    ob_near: bool
    ob_distance: float
    ob_type: str
    ob_size: float
    ob_age: int

    # Fair value gaps
    fvg_near: bool
    fvg_count: int
    fvg_nearest_distance: float
    fvg_size: float
    fvg_type: str

    # EMA / RSI
    ema_aligned: bool
    ema_trend: str
    rsi_value: float
    rsi_state: str

    # Liquidity
    liquidity_near: bool
    liquidity_count: int

    mtf_aligned: bool

    # Market state
    volatility: float
    atr_value: float
    price_position: float
    distance_to_high: float
    distance_to_low: float
    volume_spike: bool
    volume_ratio: float

    # Confluence
    confluence_score: float
    confluence_count: int
    signal_score: float

    session: str

    # Psychological placeholders (need a trade journal)
    days_since_loss: int = 0
    streak_type: str = "none"
    potential_rr: float = 2.0

    symbol: str = ""
    timeframe: str = ""

    # Outcome, set once by add_outcome()
    outcome: Optional[str] = None
    pnl: Optional[float] = None
    pnl_percent: Optional[float] = None
    exit_reason: Optional[str] = None
    holding_periods: Optional[int] = None

    @property
    def is_labeled(self) -> bool:
        return self.outcome is not None

    @property
    def is_win(self) -> bool:
        return self.outcome == "WIN"

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "FeatureRecord":
        known = {f for f in cls.__dataclass_fields__}
        return cls(**{k: v for k, v in d.items() if k in known})


def add_outcome(record: FeatureRecord, outcome: TradeOutcome) -> FeatureRecord:
    """
    Return a labeled copy of an unlabeled record.

    Raises:
        ValueError: if the record already carries an outcome
    """
    if record.is_labeled:
        raise ValueError("Feature record already has an outcome")

    return replace(
        record,
        outcome=outcome.outcome,
        pnl=outcome.pnl,
        pnl_percent=outcome.pnl_percent,
        exit_reason=outcome.exit_reason,
        holding_periods=outcome.holding_periods,
    )


# ============================================================================
# HELPERS
# ============================================================================

def calculate_trend_strength(
    candles: Sequence[Candle],
    period: int = 20,
    slope_points: int = 5,
) -> float:
    """
    Slope of the trailing SMA over its last `slope_points` values,
    normalised by the last close and clamped to [0, 1].
    """
    if len(candles) < period:
        return 0.0

    closes = [c.close for c in candles]
    averages = sma(closes, period)
    if len(averages) < slope_points:
        return 0.0

    slope = (averages[-1] - averages[-slope_points]) / slope_points
    normalized = abs(slope / closes[-1]) * 100
    return min(max(normalized, 0.0), 1.0)


def trend_for_period(
    candles: Sequence[Candle],
    period: int,
    threshold_percent: float = 0.5,
) -> str:
    """Percent change over the last `period` closes with a neutral deadband."""
    if len(candles) < period:
        return "neutral"

    first = candles[-period].close
    last = candles[-1].close
    change = (last - first) / first * 100

    if change > threshold_percent:
        return "up"
    if change < -threshold_percent:
        return "down"
    return "neutral"


def check_mtf_alignment(
    candles: Sequence[Candle],
    direction: str,
    config: Optional[FeatureConfig] = None,
) -> bool:
    """
    Whether at least 2 of 3 trend horizons agree with the trade direction.

    "neutral" counts as compatible with either direction. Returns True when
    the window is shorter than mtf_min_candles.
    """
    if config is None:
        config = FeatureConfig()

    if len(candles) < config.mtf_min_candles:
        return True

    wanted = "up" if direction == LONG else "down"
    aligned = 0
    for period in config.mtf_periods:
        trend = trend_for_period(candles, period, config.mtf_trend_threshold)
        if trend == wanted or trend == "neutral":
            aligned += 1

    return aligned >= 2


def session_for_timestamp(timestamp: int, unit: str = "ms") -> str:
    """UTC-hour trading session bucket."""
    seconds = timestamp / 1000 if unit == "ms" else float(timestamp)
    hour = datetime.fromtimestamp(seconds, tz=timezone.utc).hour

    if 0 <= hour < 6:
        return "asian"
    if 6 <= hour < 8:
        return "london"
    if 8 <= hour < 12:
        return "overlap"
    if 12 <= hour < 20:
        return "newyork"
    return "off-hours"


# ============================================================================
# EXTRACTION
# ============================================================================

def extract_features(
    candles: Sequence[Candle],
    index: int,
    analysis: Analysis,
    score: float,
    direction: str,
    config: Optional[FeatureConfig] = None,
) -> FeatureRecord:
    """
    Extract the feature record for a trade entered at candles[index].

    Args:
        candles: Full candle sequence (oldest -> newest)
        index: Entry candle index
        analysis: Indicator snapshot as of the entry candle
        score: Confluence score of the setup
        direction: "long" or "short"
        config: Feature thresholds (defaults if None)

    Returns:
        Unlabeled FeatureRecord
    """
    if config is None:
        config = FeatureConfig()
    if direction not in (LONG, SHORT):
        raise ValueError(f"direction must be 'long' or 'short', got {direction!r}")

    current = candles[index]
    price = current.close
    history = candles[max(0, index - config.lookback):index + 1]
    is_long = direction == LONG

    # Trend
    trend_direction = analysis.trend or "neutral"
    trend_strength = calculate_trend_strength(
        history, config.trend_sma_period, config.trend_slope_points
    )
    trend_bos_aligned = analysis.bos == analysis.trend

    # Order blocks
    near_factor = config.ob_near_percent / 100
    relevant_obs = [
        ob for ob in analysis.order_blocks
        if ob.body_low * (1 - near_factor) <= price <= ob.body_high * (1 + near_factor)
    ]
    matching_obs = [ob for ob in relevant_obs if ob.type == ("bull" if is_long else "bear")]

    ob_near = bool(matching_obs)
    ob_distance = NO_DISTANCE
    ob_size = 0.0
    ob_age = 0
    ob_type = "none"

    if matching_obs:
        def ob_reference(ob):
            return ob.body_low if is_long else ob.body_high

        # min() keeps the first block on ties
        nearest = min(matching_obs, key=lambda ob: abs(price - ob_reference(ob)))
        ob_distance = abs(price - ob_reference(nearest)) / price
        ob_size = abs(nearest.close - nearest.open) / nearest.open
        ob_age = index - nearest.index
        ob_type = nearest.type

    # Fair value gaps
    fvg_factor = config.fvg_near_percent / 100
    relevant_fvgs = [
        gap for gap in analysis.fvgs
        if gap.from_price * (1 - fvg_factor) <= price <= gap.to_price * (1 + fvg_factor)
    ]
    matching_fvgs = [gap for gap in relevant_fvgs if gap.type == ("bull" if is_long else "bear")]

    fvg_near = bool(relevant_fvgs)
    fvg_count = len(relevant_fvgs)
    fvg_nearest_distance = NO_DISTANCE
    fvg_size = 0.0
    fvg_type = "mixed"

    if matching_fvgs:
        # First matching gap in detection order, not the closest one
        gap = matching_fvgs[0]
        fvg_nearest_distance = abs(price - gap.from_price) / price
        fvg_size = (gap.to_price - gap.from_price) / gap.from_price
        fvg_type = gap.type

    # EMA
    ema50, ema200 = analysis.ema50, analysis.ema200
    if ema50 is not None and ema200 is not None:
        ema_trend = "up" if ema50 > ema200 else "down"
        ema_aligned = (is_long and ema50 > ema200) or (not is_long and ema50 < ema200)
    else:
        ema_trend = "neutral"
        ema_aligned = False

    # RSI
    rsi_value = analysis.rsi if analysis.rsi is not None else 50.0
    if rsi_value > config.rsi_overbought:
        rsi_state = "overbought"
    elif rsi_value < config.rsi_oversold:
        rsi_state = "oversold"
    else:
        rsi_state = "neutral"

    # Liquidity
    liquidity_count = analysis.liquidity.count
    liquidity_near = liquidity_count > 0

    mtf_aligned = check_mtf_alignment(history, direction, config)

    # Volatility
    atr_value = analysis.atr if analysis.atr is not None else current.high - current.low
    volatility = atr_value / price

    # Position in recent range
    recent = history[-config.range_window:]
    recent_high = max(c.high for c in recent)
    recent_low = min(c.low for c in recent)
    price_range = recent_high - recent_low
    if price_range > 0:
        price_position = (price - recent_low) / price_range
        distance_to_high = (recent_high - price) / price
        distance_to_low = (price - recent_low) / price
    else:
        price_position = 0.5
        distance_to_high = 0.0
        distance_to_low = 0.0

    # Volume
    recent_volumes = [c.volume for c in history[-config.volume_window:]]
    avg_volume = sum(recent_volumes) / len(recent_volumes)
    volume_ratio = current.volume / avg_volume if avg_volume > 0 else 1.0
    volume_spike = volume_ratio >= config.volume_spike_ratio

    # Confluence
    factors: List[bool] = [
        ob_near,
        fvg_near,
        ema_aligned,
        liquidity_near,
        mtf_aligned,
        trend_bos_aligned,
    ]
    confluence_count = sum(1 for f in factors if f)
    confluence_score = min(confluence_count / len(factors), 1.0)

    return FeatureRecord(
        entry_price=price,
        entry_time=current.timestamp,
        direction=direction,
        trend_direction=trend_direction,
        trend_strength=trend_strength,
        trend_bos_aligned=trend_bos_aligned,
        ob_near=ob_near,
        ob_distance=min(ob_distance, config.ob_distance_max),
        ob_type=ob_type,
        ob_size=ob_size,
        ob_age=min(ob_age, config.ob_age_max),
        fvg_near=fvg_near,
        fvg_count=fvg_count,
        fvg_nearest_distance=min(fvg_nearest_distance, config.fvg_distance_max),
        fvg_size=min(fvg_size, config.fvg_size_max),
        fvg_type=fvg_type,
        ema_aligned=ema_aligned,
        ema_trend=ema_trend,
        rsi_value=rsi_value,
        rsi_state=rsi_state,
        liquidity_near=liquidity_near,
        liquidity_count=liquidity_count,
        mtf_aligned=mtf_aligned,
        volatility=volatility,
        atr_value=atr_value,
        price_position=price_position,
        distance_to_high=distance_to_high,
        distance_to_low=distance_to_low,
        volume_spike=volume_spike,
        volume_ratio=volume_ratio,
        confluence_score=confluence_score,
        confluence_count=confluence_count,
        signal_score=score,
        session=session_for_timestamp(current.timestamp, config.timestamp_unit),
    )
