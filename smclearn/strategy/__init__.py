"""
Strategy module - From candles to labeled trade setups.

Contains:
- Indicator engine (trend, BOS, order blocks, FVGs, liquidity)
- Confluence scorer
- Feature extractor
- Trade outcome simulator
"""

from smclearn.strategy.indicators import (
    Analysis,
    OrderBlock,
    FairValueGap,
    LiquidityLevel,
    LiquidityZones,
    analyze,
)
from smclearn.strategy.scoring import (
    ConfluenceScore,
    MTFBonus,
    score_confluence,
    resolve_bias,
    calculate_mtf_bonus,
)
from smclearn.strategy.features import (
    FeatureRecord,
    TradeOutcome,
    extract_features,
    add_outcome,
)
from smclearn.strategy.simulator import simulate_trade

__all__ = [
    "Analysis",
    "OrderBlock",
    "FairValueGap",
    "LiquidityLevel",
    "LiquidityZones",
    "analyze",
    "ConfluenceScore",
    "MTFBonus",
    "score_confluence",
    "resolve_bias",
    "calculate_mtf_bonus",
    "FeatureRecord",
    "TradeOutcome",
    "extract_features",
    "add_outcome",
    "simulate_trade",
]
