"""Shared candle and record builders."""

from datetime import datetime, timezone
from typing import List

import pytest

from smclearn.data.candle import Candle
from smclearn.strategy.features import FeatureRecord, TradeOutcome, add_outcome


HOUR_MS = 3600 * 1000
START_MS = int(datetime(2024, 1, 1, tzinfo=timezone.utc).timestamp() * 1000)


def make_candle(i: int, open_: float, high: float, low: float, close: float,
                volume: float = 1000.0) -> Candle:
    return Candle(
        timestamp=START_MS + i * HOUR_MS,
        open=open_,
        high=high,
        low=low,
        close=close,
        volume=volume,
    )


def trend_candles(n: int, start: float = 100.0, step: float = 1.0,
                  volume: float = 1000.0) -> List[Candle]:
    """Closes moving by a constant `step` per bar, small wicks, constant volume."""
    candles = []
    for i in range(n):
        close = start + i * step
        open_ = close - step / 2
        high = max(open_, close) + 0.25
        low = min(open_, close) - 0.25
        candles.append(make_candle(i, open_, high, low, close, volume))
    return candles


def flat_candles(n: int, price: float = 100.0, volume: float = 1000.0) -> List[Candle]:
    return [make_candle(i, price, price, price, price, volume) for i in range(n)]


RECORD_DEFAULTS = dict(
    entry_price=100.0,
    entry_time=START_MS,
    direction="long",
    trend_direction="neutral",
    trend_strength=0.0,
    trend_bos_aligned=False,
    ob_near=False,
    ob_distance=1.0,
    ob_type="none",
    ob_size=0.0,
    ob_age=0,
    fvg_near=False,
    fvg_count=0,
    fvg_nearest_distance=1.0,
    fvg_size=0.0,
    fvg_type="mixed",
    ema_aligned=False,
    ema_trend="neutral",
    rsi_value=50.0,
    rsi_state="neutral",
    liquidity_near=False,
    liquidity_count=0,
    mtf_aligned=False,
    volatility=0.01,
    atr_value=1.0,
    price_position=0.5,
    distance_to_high=0.0,
    distance_to_low=0.0,
    volume_spike=False,
    volume_ratio=1.0,
    confluence_score=0.0,
    confluence_count=0,
    signal_score=50.0,
    session="asian",
)


def make_record(win=None, **overrides) -> FeatureRecord:
    """FeatureRecord with neutral defaults; labeled when `win` is given."""
    fields = dict(RECORD_DEFAULTS)
    fields.update(overrides)
    record = FeatureRecord(**fields)
    if win is None:
        return record

    pnl = 10.0 if win else -20.0
    return add_outcome(record, TradeOutcome(
        outcome="WIN" if win else "LOSS",
        pnl=pnl,
        pnl_percent=pnl / 10,
        exit_reason="TP" if win else "SL",
        holding_periods=3,
    ))


@pytest.fixture
def uptrend_260():
    return trend_candles(260)
