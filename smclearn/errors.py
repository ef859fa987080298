"""
Exception types raised by the SMC learn loop.

DataUnavailable and InsufficientData are per-job failures: extraction
catches them, logs them and moves on. NotTrained and CorpusTooSmall are
fatal to the caller.

Extraction jobs run in worker processes, so every error rebuilds from its
constructor arguments when unpickled.
"""

from typing import Optional


class SMCLearnError(Exception):
    """Base class for all smclearn errors."""


class DataUnavailable(SMCLearnError):
    """The candle source has no data for a symbol/timeframe."""

    def __init__(self, symbol: str, timeframe: str, detail: Optional[str] = None):
        self.symbol = symbol
        self.timeframe = timeframe
        self.detail = detail
        message = f"No candle data for {symbol} {timeframe}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)

    def __reduce__(self):
        return (self.__class__, (self.symbol, self.timeframe, self.detail))


class InsufficientData(SMCLearnError):
    """Fewer candles than required for a usable corpus contribution."""

    def __init__(self, symbol: str, timeframe: str, count: int, minimum: int):
        self.symbol = symbol
        self.timeframe = timeframe
        self.count = count
        self.minimum = minimum
        super().__init__(
            f"Insufficient data for {symbol} {timeframe}: {count} candles < {minimum} required"
        )

    def __reduce__(self):
        return (self.__class__, (self.symbol, self.timeframe, self.count, self.minimum))


class NotTrained(SMCLearnError):
    """Prediction requested before the model was trained."""

    def __init__(self):
        super().__init__("Model not trained. Call train() first.")

    def __reduce__(self):
        return (self.__class__, ())


class CorpusTooSmall(SMCLearnError):
    """The labeled corpus is too small to run the learning loop."""

    def __init__(self, count: int, minimum: int):
        self.count = count
        self.minimum = minimum
        super().__init__(f"Not enough trades ({count}). Need {minimum}+.")

    def __reduce__(self):
        return (self.__class__, (self.count, self.minimum))
