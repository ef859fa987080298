# indicators.py
"""
Smart-money indicators computed from a candle sequence:
- SMA / EMA
- RSI
- ATR
- VWAP
- Trend and break of structure
- Order blocks, fair value gaps, liquidity swing points

analyze() bundles all of them into one Analysis snapshot "as of" the last
candle of the sequence. Short sequences degrade to None fields, never raise.
"""

from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from smclearn.data.candle import Candle


TREND_FAST = 50
TREND_SLOW = 200
RSI_PERIOD = 14
ATR_PERIOD = 14
OB_LOOKBACK = 10
OB_BODY_MULTIPLIER = 1.5
SWING_PERIOD = 5


# ============================================================================
# DATA TYPES
# ============================================================================

@dataclass(frozen=True)
class OrderBlock:
    """Origin candle of an outsized move, confirmed by two follow-through candles."""
    index: int
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    type: str  # "bull" or "bear"
    strength: float

    @property
    def body_high(self) -> float:
        return max(self.open, self.close)

    @property
    def body_low(self) -> float:
        return min(self.open, self.close)


@dataclass(frozen=True)
class FairValueGap:
    """Price band skipped between the wicks of candles index-1 and index+1."""
    index: int
    from_price: float
    to_price: float
    type: str  # "bull" or "bear"
    size: float


@dataclass(frozen=True)
class LiquidityLevel:
    price: float
    touches: int
    last_touch: int


@dataclass(frozen=True)
class LiquidityZones:
    highs: List[LiquidityLevel] = field(default_factory=list)
    lows: List[LiquidityLevel] = field(default_factory=list)

    @property
    def count(self) -> int:
        return len(self.highs) + len(self.lows)

    def __bool__(self) -> bool:
        return self.count > 0


@dataclass(frozen=True)
class Analysis:
    trend: Optional[str]
    bos: Optional[str]
    ema50: Optional[float]
    ema200: Optional[float]
    rsi: Optional[float]
    atr: Optional[float]
    vwap: Optional[float]
    order_blocks: List[OrderBlock] = field(default_factory=list)
    fvgs: List[FairValueGap] = field(default_factory=list)
    liquidity: LiquidityZones = field(default_factory=LiquidityZones)


# ============================================================================
# MOVING AVERAGES / OSCILLATORS
# ============================================================================

def sma(values: Sequence[float], period: int) -> List[float]:
    """
    Rolling simple moving average.
    values: oldest -> newest

    Returns one value per full window (len(values) - period + 1 entries),
    or an empty list if there are fewer than `period` values.
    """
    if period <= 0 or len(values) < period:
        return []

    result = []
    window_sum = sum(values[:period])
    result.append(window_sum / period)
    for i in range(period, len(values)):
        window_sum += values[i] - values[i - period]
        result.append(window_sum / period)
    return result


def ema(values: Sequence[float], period: int) -> Optional[float]:
    """
    Return the latest EMA value for the given period.
    values: oldest -> newest
    """
    if period <= 0 or len(values) < period:
        return None

    k = 2 / (period + 1)
    ema_val = sum(values[:period]) / period  # simple MA start
    for price in values[period:]:
        ema_val = (price - ema_val) * k + ema_val
    return ema_val


def rsi(values: Sequence[float], period: int = RSI_PERIOD) -> Optional[float]:
    """
    RSI over the last `period` close-to-close changes, simple averages.
    values: oldest -> newest

    A window without losses reports 100.0 exactly.
    """
    if len(values) <= period:
        return None

    window = values[-(period + 1):]
    gains = 0.0
    losses = 0.0
    for i in range(1, len(window)):
        diff = window[i] - window[i - 1]
        if diff >= 0:
            gains += diff
        else:
            losses -= diff

    avg_gain = gains / period
    avg_loss = losses / period

    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    return 100 - (100 / (1 + rs))


def true_range(candle: Candle, prev_close: Optional[float]) -> float:
    if prev_close is None:
        return candle.high - candle.low
    return max(
        candle.high - candle.low,
        abs(candle.high - prev_close),
        abs(candle.low - prev_close),
    )


def atr(candles: Sequence[Candle], period: int = ATR_PERIOD) -> Optional[float]:
    """
    Mean true range over the trailing `period` candles.

    The first candle of the sequence has no previous close and uses its
    high-low range.
    """
    if period <= 0 or len(candles) < period:
        return None

    start = len(candles) - period
    total = 0.0
    for i in range(start, len(candles)):
        prev_close = candles[i - 1].close if i > 0 else None
        total += true_range(candles[i], prev_close)
    return total / period


def vwap(candles: Sequence[Candle]) -> Optional[float]:
    """
    Cumulative VWAP from the first candle of the supplied sequence.
    Returns None when no volume traded.
    """
    cum_pv = 0.0
    cum_vol = 0.0
    for c in candles:
        typical = (c.high + c.low + c.close) / 3
        cum_pv += typical * c.volume
        cum_vol += c.volume

    if cum_vol == 0:
        return None
    return cum_pv / cum_vol


# ============================================================================
# STRUCTURE
# ============================================================================

def get_trend(candles: Sequence[Candle]) -> Optional[str]:
    """SMA50 vs SMA200 on closes. None below 200 candles or when equal."""
    if len(candles) < TREND_SLOW:
        return None

    closes = [c.close for c in candles]
    fast = sum(closes[-TREND_FAST:]) / TREND_FAST
    slow = sum(closes[-TREND_SLOW:]) / TREND_SLOW

    if fast > slow:
        return "up"
    if fast < slow:
        return "down"
    return None


def get_bos(candles: Sequence[Candle]) -> Optional[str]:
    """
    Break of structure from the one-bar change of SMA50.

    Needs a previous SMA50 value, so exactly 50 candles also yields None.
    """
    if len(candles) <= TREND_FAST:
        return None

    closes = [c.close for c in candles]
    last = sum(closes[-TREND_FAST:]) / TREND_FAST
    prev = sum(closes[-TREND_FAST - 1:-1]) / TREND_FAST

    if last > prev:
        return "up"
    if last < prev:
        return "down"
    return None


def detect_order_blocks(
    candles: Sequence[Candle],
    lookback: int = OB_LOOKBACK,
    body_multiplier: float = OB_BODY_MULTIPLIER,
) -> List[OrderBlock]:
    """
    Find order blocks.

    A bull block is a bearish candle whose body exceeds body_multiplier x
    the average body of the previous `lookback` candles, followed by two
    bullish candles. Bear blocks mirror this. The last two candles can't be
    confirmed and are never blocks.
    """
    blocks: List[OrderBlock] = []

    for i in range(lookback, len(candles) - 2):
        candle = candles[i]
        nxt = candles[i + 1]
        nxt2 = candles[i + 2]

        avg_body = sum(c.body for c in candles[i - lookback:i]) / lookback
        if avg_body <= 0:
            continue

        body = candle.body
        if body <= avg_body * body_multiplier:
            continue

        if candle.is_bearish and nxt.is_bullish and nxt2.is_bullish:
            block_type = "bull"
        elif candle.is_bullish and nxt.is_bearish and nxt2.is_bearish:
            block_type = "bear"
        else:
            continue

        blocks.append(OrderBlock(
            index=i,
            timestamp=candle.timestamp,
            open=candle.open,
            high=candle.high,
            low=candle.low,
            close=candle.close,
            type=block_type,
            strength=body / avg_body,
        ))

    return blocks


def detect_fvgs(candles: Sequence[Candle]) -> List[FairValueGap]:
    """
    Find fair value gaps on every consecutive triple.

    Bull gap: first.high < third.low, band [first.high, third.low].
    Bear gap: first.low > third.high, band [third.high, first.low].
    Gaps are reported as found, never merged or invalidated.
    """
    gaps: List[FairValueGap] = []

    for i in range(1, len(candles) - 1):
        prev = candles[i - 1]
        nxt = candles[i + 1]

        if prev.high < nxt.low:
            gaps.append(FairValueGap(
                index=i,
                from_price=prev.high,
                to_price=nxt.low,
                type="bull",
                size=nxt.low - prev.high,
            ))

        if prev.low > nxt.high:
            gaps.append(FairValueGap(
                index=i,
                from_price=nxt.high,
                to_price=prev.low,
                type="bear",
                size=prev.low - nxt.high,
            ))

    return gaps


def detect_liquidity(
    candles: Sequence[Candle],
    swing_period: int = SWING_PERIOD,
) -> LiquidityZones:
    """
    Swing highs/lows over a symmetric window of swing_period candles per side.
    Ties qualify.
    """
    highs: List[LiquidityLevel] = []
    lows: List[LiquidityLevel] = []

    for i in range(swing_period, len(candles) - swing_period):
        window = candles[i - swing_period:i + swing_period + 1]
        candle = candles[i]

        if all(c.high <= candle.high for c in window):
            highs.append(LiquidityLevel(price=candle.high, touches=0, last_touch=i))

        if all(c.low >= candle.low for c in window):
            lows.append(LiquidityLevel(price=candle.low, touches=0, last_touch=i))

    return LiquidityZones(highs=highs, lows=lows)


def analyze(candles: Sequence[Candle]) -> Analysis:
    """Compute the full Analysis snapshot as of the last candle."""
    closes = [c.close for c in candles]

    return Analysis(
        trend=get_trend(candles),
        bos=get_bos(candles),
        ema50=ema(closes, 50),
        ema200=ema(closes, 200),
        rsi=rsi(closes, RSI_PERIOD),
        atr=atr(candles, ATR_PERIOD),
        vwap=vwap(candles),
        order_blocks=detect_order_blocks(candles),
        fvgs=detect_fvgs(candles),
        liquidity=detect_liquidity(candles),
    )
