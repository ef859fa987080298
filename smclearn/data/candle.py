"""
Candle type shared by every stage of the pipeline.
"""

from dataclasses import dataclass
from typing import Dict, Any


@dataclass(frozen=True)
class Candle:
    """
    One OHLCV bar.

    timestamp is an integer epoch (milliseconds unless the feature config
    says otherwise). Sequences are expected in chronological order; the
    detectors work on index positions, not on timestamps.
    """
    timestamp: int
    open: float
    high: float
    low: float
    close: float
    volume: float = 0.0

    @property
    def body(self) -> float:
        return abs(self.close - self.open)

    @property
    def body_high(self) -> float:
        return max(self.open, self.close)

    @property
    def body_low(self) -> float:
        return min(self.open, self.close)

    @property
    def is_bullish(self) -> bool:
        return self.close > self.open

    @property
    def is_bearish(self) -> bool:
        return self.close < self.open

    def is_valid(self) -> bool:
        """OHLC strictly positive and volume non-negative."""
        return (
            self.open > 0
            and self.high > 0
            and self.low > 0
            and self.close > 0
            and self.volume >= 0
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "open": self.open,
            "high": self.high,
            "low": self.low,
            "close": self.close,
            "volume": self.volume,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Candle":
        return cls(
            timestamp=int(d["timestamp"]),
            open=float(d["open"]),
            high=float(d["high"]),
            low=float(d["low"]),
            close=float(d["close"]),
            volume=float(d.get("volume", 0.0)),
        )
