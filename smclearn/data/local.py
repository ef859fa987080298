"""
Candle sources for the learn loop.

The loop only needs something with a load(symbol, timeframe) method that
returns an ordered list of Candle objects. Two implementations ship here:

- LocalCSVSource: reads timestamp,open,high,low,close,volume CSV files from
  a historical data directory, probing the usual file layouts
- InMemorySource: dict-backed, used by tests and by callers that already
  hold candles in memory
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple, Iterable, Protocol

import pandas as pd

from smclearn.data.candle import Candle
from smclearn.errors import DataUnavailable
from smclearn.utils.logger import get_logger

log = get_logger(__name__)

CSV_COLUMNS = ["timestamp", "open", "high", "low", "close", "volume"]


class CandleSource(Protocol):
    def load(self, symbol: str, timeframe: str) -> List[Candle]:
        ...


def candles_from_frame(df: pd.DataFrame) -> List[Candle]:
    """
    Convert an OHLCV DataFrame into a list of candles.

    Column names are matched case-insensitively. Rows with missing values or
    non-positive prices are dropped. The result is sorted by timestamp.
    """
    if df is None or df.empty:
        return []

    frame = df.rename(columns={c: str(c).strip().lower() for c in df.columns})
    if "volume" not in frame.columns:
        frame["volume"] = 0.0

    missing = [c for c in CSV_COLUMNS if c not in frame.columns]
    if missing:
        raise ValueError(f"Candle frame missing columns: {missing}")

    frame = frame[CSV_COLUMNS].apply(pd.to_numeric, errors="coerce").dropna()
    valid = (
        (frame["open"] > 0)
        & (frame["high"] > 0)
        & (frame["low"] > 0)
        & (frame["close"] > 0)
        & (frame["volume"] >= 0)
    )
    dropped = len(frame) - int(valid.sum())
    if dropped:
        log.debug(f"Dropped {dropped} invalid candle rows")

    frame = frame[valid].sort_values("timestamp")

    return [
        Candle(
            timestamp=int(row.timestamp),
            open=float(row.open),
            high=float(row.high),
            low=float(row.low),
            close=float(row.close),
            volume=float(row.volume),
        )
        for row in frame.itertuples(index=False)
    ]


class LocalCSVSource:
    """
    Load candles from CSV files under a historical data directory.

    Candidate layouts, tried in order:
        {data_path}/Binance_{SYMBOL}_{tf}.csv
        {data_path}/{SYMBOL}_{tf}.csv
        {data_path}/{tf}/{SYMBOL}_{tf}.csv
        {data_path}/{SYMBOL}/{tf}/{SYMBOL}_{tf}.csv
        {data_path}/{SYMBOL}/{tf}/Binance_{SYMBOL}_{tf}.csv
        {data_path}/filtered/{SYMBOL}/{tf}/{SYMBOL}_{tf}.csv
        {data_path}/filtered/{SYMBOL}/{tf}/Binance_{SYMBOL}_{tf}.csv
    """

    def __init__(self, data_path: str = "Historical_Data_Lite"):
        self.data_path = Path(data_path)

    def candidate_paths(self, symbol: str, timeframe: str) -> List[Path]:
        base = self.data_path
        name = f"{symbol}_{timeframe}.csv"
        binance_name = f"Binance_{symbol}_{timeframe}.csv"
        return [
            base / binance_name,
            base / name,
            base / timeframe / name,
            base / symbol / timeframe / name,
            base / symbol / timeframe / binance_name,
            base / "filtered" / symbol / timeframe / name,
            base / "filtered" / symbol / timeframe / binance_name,
        ]

    def find_file(self, symbol: str, timeframe: str) -> Optional[Path]:
        for path in self.candidate_paths(symbol, timeframe):
            if path.exists():
                return path
        return None

    def load(self, symbol: str, timeframe: str) -> List[Candle]:
        """
        Load the candle sequence for one symbol/timeframe.

        Raises:
            DataUnavailable: no file matched, the file could not be parsed,
                or it held no valid rows
        """
        path = self.find_file(symbol, timeframe)
        if path is None:
            raise DataUnavailable(symbol, timeframe, f"no CSV file under {self.data_path}")

        try:
            df = pd.read_csv(path)
            candles = candles_from_frame(df)
        except (OSError, ValueError, pd.errors.ParserError) as e:
            raise DataUnavailable(symbol, timeframe, f"could not read {path}: {e}") from e

        if not candles:
            raise DataUnavailable(symbol, timeframe, f"{path} holds no valid candles")

        log.info(f"Loaded {len(candles)} candles for {symbol} {timeframe} from {path.name}")
        return candles

    def load_multi(
        self,
        symbols: Iterable[str],
        timeframe: str,
    ) -> Dict[str, List[Candle]]:
        """Load several symbols, skipping those without data."""
        results: Dict[str, List[Candle]] = {}
        for symbol in symbols:
            try:
                results[symbol] = self.load(symbol, timeframe)
            except DataUnavailable as e:
                log.warning(f"Skipping {symbol}: {e}")
        return results

    def available_data(self) -> Dict[str, List[str]]:
        """List symbols and timeframes found in flat {SYMBOL}_{tf}.csv files."""
        available: Dict[str, List[str]] = {}
        if not self.data_path.exists():
            return available

        for csv_file in sorted(self.data_path.rglob("*.csv")):
            parts = csv_file.stem.split("_")
            if parts and parts[0] == "Binance":
                parts = parts[1:]
            if len(parts) < 2:
                continue
            symbol, timeframe = parts[0], parts[1]
            timeframes = available.setdefault(symbol, [])
            if timeframe not in timeframes:
                timeframes.append(timeframe)

        return available


class InMemorySource:
    """Candle source backed by a {(symbol, timeframe): candles} mapping."""

    def __init__(self, data: Optional[Dict[Tuple[str, str], List[Candle]]] = None):
        self._data: Dict[Tuple[str, str], List[Candle]] = dict(data or {})

    def add(self, symbol: str, timeframe: str, candles: List[Candle]) -> None:
        self._data[(symbol, timeframe)] = list(candles)

    def load(self, symbol: str, timeframe: str) -> List[Candle]:
        candles = self._data.get((symbol, timeframe))
        if not candles:
            raise DataUnavailable(symbol, timeframe)
        return list(candles)
