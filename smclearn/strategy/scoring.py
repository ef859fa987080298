"""
Confluence scoring for smart-money setups.

score_confluence() turns an Analysis into a directional bias plus a point
score built from seven weighted factors. calculate_mtf_bonus() scores the
agreement of daily / hourly / 5-minute trends and is kept separate: the
scorer itself always adds the full mtf_bonus weight.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from smclearn.config import ScoringWeights
from smclearn.strategy.indicators import Analysis


BULLISH = "bullish"
BEARISH = "bearish"
NEUTRAL = "neutral"

OB_BAND = 0.05
OB_NEAR = 0.05
FVG_BAND = 0.02
FVG_NEAR = 0.03
EMA_DIVERGENCE_PENALTY = -5.0
RSI_NEUTRAL_BONUS = 5.0


@dataclass
class ConfluenceScore:
    """Result of scoring one Analysis."""
    score: float
    bias: str
    breakdown: Dict[str, float] = field(default_factory=dict)
    confluence: List[str] = field(default_factory=list)

    @property
    def direction(self) -> Optional[str]:
        """Trade direction implied by the bias, None when neutral."""
        if self.bias == BULLISH:
            return "long"
        if self.bias == BEARISH:
            return "short"
        return None


@dataclass
class MTFBonus:
    bonus: float
    factors: List[str] = field(default_factory=list)


def resolve_bias(trend: Optional[str], bos: Optional[str]) -> str:
    """
    Directional bias from trend and break of structure.

    Agreement wins; otherwise any "up" signal is bullish before any "down"
    signal is bearish.
    """
    if trend == "up" and bos == "up":
        return BULLISH
    if trend == "down" and bos == "down":
        return BEARISH
    if trend == "up" or bos == "up":
        return BULLISH
    if trend == "down" or bos == "down":
        return BEARISH
    return NEUTRAL


def _score_trend_structure(analysis: Analysis, weight: float, confluence: List[str]) -> float:
    trend, bos = analysis.trend, analysis.bos
    if trend is not None and bos is not None and trend == bos:
        confluence.append(f"Strong {trend} trend (SMA + BOS {bos})")
        return weight
    if trend is not None:
        confluence.append(f"Trend {trend}")
        return weight * 0.5
    if bos is not None:
        confluence.append(f"BOS {bos}")
        return weight * 0.3
    return 0.0


def _score_order_blocks(
    analysis: Analysis,
    price: float,
    bias: str,
    weight: float,
    confluence: List[str],
) -> float:
    relevant = [
        ob for ob in analysis.order_blocks
        if ob.body_low * (1 - OB_BAND) <= price <= ob.body_high * (1 + OB_BAND)
    ]
    if not relevant:
        return 0.0

    bull = [ob for ob in relevant if ob.type == "bull"]
    bear = [ob for ob in relevant if ob.type == "bear"]

    if bias == BULLISH and bull:
        near = any(abs(price - ob.body_low) / price < OB_NEAR for ob in bull)
        confluence.append(f"Bull OB nearby ({len(bull)})" if near else f"Bull OB ({len(bull)})")
        return weight if near else weight * 0.6

    if bias == BEARISH and bear:
        near = any(abs(price - ob.body_high) / price < OB_NEAR for ob in bear)
        confluence.append(f"Bear OB nearby ({len(bear)})" if near else f"Bear OB ({len(bear)})")
        return weight if near else weight * 0.6

    confluence.append(f"Mixed OBs ({len(bull)}B {len(bear)}S)")
    return weight * 0.3


def _score_fvgs(
    analysis: Analysis,
    price: float,
    bias: str,
    weight: float,
    confluence: List[str],
) -> float:
    relevant = [
        gap for gap in analysis.fvgs
        if gap.from_price * (1 - FVG_BAND) <= price <= gap.to_price * (1 + FVG_BAND)
    ]
    if not relevant:
        return 0.0

    bull = [gap for gap in relevant if gap.type == "bull"]
    bear = [gap for gap in relevant if gap.type == "bear"]

    if bias == BULLISH and bull:
        near = any(abs(price - gap.from_price) / price < FVG_NEAR for gap in bull)
        confluence.append(f"Bull FVG nearby ({len(bull)})" if near else f"Bull FVG ({len(bull)})")
        return weight if near else weight * 0.5

    if bias == BEARISH and bear:
        near = any(abs(price - gap.to_price) / price < FVG_NEAR for gap in bear)
        confluence.append(f"Bear FVG nearby ({len(bear)})" if near else f"Bear FVG ({len(bear)})")
        return weight if near else weight * 0.5

    # Non-matching gaps still score full weight, unlike order blocks
    confluence.append(f"{len(relevant)} FVG(s)")
    return weight


def _score_ema(analysis: Analysis, bias: str, weight: float, confluence: List[str]) -> float:
    if analysis.ema50 is None or analysis.ema200 is None:
        return 0.0

    ema_trend = BULLISH if analysis.ema50 > analysis.ema200 else BEARISH
    if bias == ema_trend:
        confluence.append(f"EMA aligned {ema_trend}")
        return weight

    confluence.append(f"EMA divergent ({ema_trend})")
    return EMA_DIVERGENCE_PENALTY


def _score_rsi(analysis: Analysis, bias: str, weight: float, confluence: List[str]) -> float:
    value = analysis.rsi
    if value is None:
        return 0.0

    if value > 70:
        confluence.append(f"RSI overbought ({value:.1f})")
        return weight
    if value < 30:
        if bias == BULLISH:
            confluence.append(f"RSI oversold bounce setup ({value:.1f})")
            return weight * 0.5
        confluence.append(f"RSI oversold ({value:.1f})")
        return weight
    if 40 <= value <= 60:
        confluence.append(f"RSI neutral ({value:.1f})")
        return RSI_NEUTRAL_BONUS
    return 0.0


def score_confluence(
    analysis: Analysis,
    current_price: float,
    weights: Optional[ScoringWeights] = None,
) -> ConfluenceScore:
    """
    Score a setup from its Analysis.

    Args:
        analysis: Indicator snapshot as of the current candle
        current_price: Price the setup would be entered at
        weights: Factor weights (defaults if None)

    Returns:
        ConfluenceScore with the floored total, per-factor breakdown,
        human-readable confluence notes and the resolved bias
    """
    if weights is None:
        weights = ScoringWeights()

    bias = resolve_bias(analysis.trend, analysis.bos)
    confluence: List[str] = []
    breakdown: Dict[str, float] = {}

    breakdown["trend_structure"] = _score_trend_structure(
        analysis, weights.trend_structure, confluence
    )
    breakdown["order_blocks"] = _score_order_blocks(
        analysis, current_price, bias, weights.order_blocks, confluence
    )
    breakdown["fvgs"] = _score_fvgs(
        analysis, current_price, bias, weights.fvgs, confluence
    )
    breakdown["ema_alignment"] = _score_ema(analysis, bias, weights.ema_alignment, confluence)

    liquidity = analysis.liquidity
    if liquidity.count > 0:
        breakdown["liquidity"] = weights.liquidity
        confluence.append(f"Liquidity zones: {len(liquidity.highs)}H {len(liquidity.lows)}L")
    else:
        breakdown["liquidity"] = 0.0

    breakdown["mtf_bonus"] = weights.mtf_bonus
    breakdown["rsi_penalty"] = _score_rsi(analysis, bias, weights.rsi_penalty, confluence)

    total = sum(breakdown.values())
    return ConfluenceScore(
        score=max(0.0, total),
        bias=bias,
        breakdown=breakdown,
        confluence=confluence,
    )


def calculate_mtf_bonus(
    daily: Analysis,
    hourly: Optional[Analysis] = None,
    five_minute: Optional[Analysis] = None,
) -> MTFBonus:
    """
    Bonus for higher/lower timeframe trend agreement.

    +20 when daily and hourly trends agree, -10 when both are known and
    disagree, a further +15 when all three agree. Floored at -15.
    """
    bonus = 0.0
    factors: List[str] = []

    daily_trend = daily.trend
    hourly_trend = hourly.trend if hourly is not None else None
    fast_trend = five_minute.trend if five_minute is not None else None

    if daily_trend is not None and hourly_trend is not None:
        if daily_trend == hourly_trend:
            bonus += 20
            factors.append(f"HTF+LTF aligned ({daily_trend})")
        else:
            bonus -= 10
            factors.append(f"HTF/LTF divergent ({daily_trend}/{hourly_trend})")

        if fast_trend is not None and daily_trend == hourly_trend == fast_trend:
            bonus += 15
            factors.append(f"Triple TF alignment ({daily_trend})")

    return MTFBonus(bonus=max(-15.0, bonus), factors=factors)
