"""
Trade outcome simulation for backtest labeling.

A trade is entered at the close of candles[entry_index] with a stop at
2 x ATR and a target at 3R, then walked forward candle by candle.
"""

from typing import Optional, Sequence

from smclearn.data.candle import Candle
from smclearn.strategy.features import TradeOutcome, LONG, SHORT


STOP_ATR_MULTIPLE = 2.0
REWARD_MULTIPLE = 3.0
MAX_HOLDING_CANDLES = 100
NOTIONAL = 1000.0


def simulate_trade(
    candles: Sequence[Candle],
    entry_index: int,
    entry_price: float,
    direction: str,
    atr: Optional[float],
    stop_atr_multiple: float = STOP_ATR_MULTIPLE,
    reward_multiple: float = REWARD_MULTIPLE,
    max_holding: int = MAX_HOLDING_CANDLES,
    notional: float = NOTIONAL,
) -> TradeOutcome:
    """
    Simulate a single trade against stop-loss and take-profit.

    The stop is checked before the target on each candle, so a candle that
    touches both exits at the stop. If neither level is hit within
    max_holding candles the trade exits at the last scanned close.

    Args:
        candles: Full candle sequence
        entry_index: Index of the entry candle
        entry_price: Fill price
        direction: "long" or "short"
        atr: ATR at entry (entry candle high-low range if None)

    Returns:
        TradeOutcome; WIN iff pnl is strictly positive
    """
    if direction not in (LONG, SHORT):
        raise ValueError(f"direction must be 'long' or 'short', got {direction!r}")

    is_long = direction == LONG
    entry_candle = candles[entry_index]
    if atr is None:
        atr = entry_candle.high - entry_candle.low

    stop_distance = atr * stop_atr_multiple
    stop_loss = entry_price - stop_distance if is_long else entry_price + stop_distance
    risk = abs(entry_price - stop_loss)
    take_profit = entry_price + risk * reward_multiple if is_long else entry_price - risk * reward_multiple

    exit_price = entry_price
    exit_reason = "TIME"
    holding = 0

    end = min(entry_index + 1 + max_holding, len(candles))
    for i in range(entry_index + 1, end):
        candle = candles[i]
        holding = i - entry_index

        if is_long:
            if candle.low <= stop_loss:
                exit_price, exit_reason = stop_loss, "SL"
                break
            if candle.high >= take_profit:
                exit_price, exit_reason = take_profit, "TP"
                break
        else:
            if candle.high >= stop_loss:
                exit_price, exit_reason = stop_loss, "SL"
                break
            if candle.low <= take_profit:
                exit_price, exit_reason = take_profit, "TP"
                break

        exit_price = candle.close

    price_diff = exit_price - entry_price if is_long else entry_price - exit_price
    pnl = notional * (price_diff / entry_price)

    return TradeOutcome(
        outcome="WIN" if pnl > 0 else "LOSS",
        pnl=pnl,
        pnl_percent=price_diff / entry_price * 100,
        exit_reason=exit_reason,
        holding_periods=holding,
        exit_price=exit_price,
    )
