"""
Data module - Candle type and candle sources for the learn loop.

Includes:
- Candle dataclass
- Local CSV source for historical data directories
- In-memory source
"""

from smclearn.data.candle import Candle
from smclearn.data.local import (
    CandleSource,
    InMemorySource,
    LocalCSVSource,
    candles_from_frame,
)

__all__ = [
    "Candle",
    "CandleSource",
    "InMemorySource",
    "LocalCSVSource",
    "candles_from_frame",
]
