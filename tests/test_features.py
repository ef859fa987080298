import pytest

from smclearn.config import FeatureConfig
from smclearn.strategy.features import (
    FeatureRecord,
    TradeOutcome,
    add_outcome,
    calculate_trend_strength,
    check_mtf_alignment,
    extract_features,
    session_for_timestamp,
)
from smclearn.strategy.indicators import Analysis, OrderBlock, analyze
from tests.conftest import HOUR_MS, START_MS, flat_candles, make_record, trend_candles


def bare_analysis(**kw):
    fields = dict(trend=None, bos=None, ema50=None, ema200=None, rsi=None, atr=None, vwap=None)
    fields.update(kw)
    return Analysis(**fields)


class TestExtractFeatures:
    def test_uptrend_long_record(self, uptrend_260):
        index = len(uptrend_260) - 1
        analysis = analyze(uptrend_260)
        record = extract_features(uptrend_260, index, analysis, 80.0, "long")

        assert record.direction == "long"
        assert record.entry_price == uptrend_260[index].close
        assert record.entry_time == uptrend_260[index].timestamp
        assert record.trend_direction == "up"
        assert record.trend_bos_aligned is True
        assert record.rsi_value == 100.0
        assert record.rsi_state == "overbought"
        assert record.ema_trend == "up"
        assert record.ema_aligned is True
        assert record.mtf_aligned is True
        assert record.volume_spike is False
        assert record.volume_ratio == pytest.approx(1.0)
        assert 0.0 <= record.price_position <= 1.0
        assert record.signal_score == 80.0
        assert record.session == "newyork"
        assert not record.is_labeled

    def test_short_against_uptrend(self, uptrend_260):
        record = extract_features(uptrend_260, 259, analyze(uptrend_260), 40.0, "short")
        assert record.ema_aligned is False
        assert record.mtf_aligned is False

    def test_no_patterns_defaults(self):
        candles = flat_candles(60, volume=0.0)
        record = extract_features(candles, 59, analyze(candles), 30.0, "long")

        assert record.ob_near is False
        assert record.ob_type == "none"
        assert record.ob_distance == 1.0
        assert record.ob_age == 0
        assert record.fvg_type == "mixed"
        assert record.fvg_nearest_distance == 1.0
        assert record.fvg_size == 0.0
        assert record.price_position == 0.5
        assert record.distance_to_high == 0.0
        assert record.volume_ratio == 1.0
        # both trend and BOS unknown
        assert record.trend_bos_aligned is True
        assert record.trend_direction == "neutral"
        assert record.ema_trend == "neutral"

    def test_missing_rsi_defaults_to_neutral(self):
        candles = flat_candles(10)
        record = extract_features(candles, 9, bare_analysis(), 30.0, "short")
        assert record.rsi_value == 50.0
        assert record.rsi_state == "neutral"
        # no ATR falls back to the entry candle range
        assert record.atr_value == 0.0
        assert record.volatility == 0.0

    def test_nearest_order_block_selected(self):
        candles = flat_candles(20)
        far = OrderBlock(index=5, timestamp=0, open=98, high=98.5, low=95.5, close=96,
                         type="bull", strength=2.0)
        near = OrderBlock(index=8, timestamp=0, open=99.5, high=100, low=98.5, close=99,
                          type="bull", strength=2.0)
        analysis = bare_analysis(order_blocks=[far, near])

        record = extract_features(candles, 19, analysis, 50.0, "long")
        assert record.ob_near is True
        assert record.ob_type == "bull"
        assert record.ob_age == 11
        assert record.ob_distance == pytest.approx(0.01)
        assert record.ob_size == pytest.approx(0.5 / 99.5)

    def test_wrong_side_blocks_not_near(self):
        candles = flat_candles(20)
        block = OrderBlock(index=8, timestamp=0, open=99.5, high=100, low=98.5, close=99,
                           type="bull", strength=2.0)
        record = extract_features(candles, 19, bare_analysis(order_blocks=[block]), 50.0, "short")
        assert record.ob_near is False
        assert record.ob_distance == 1.0

    def test_window_limited_by_lookback(self):
        candles = trend_candles(300)
        config = FeatureConfig(lookback=10, range_window=50)
        record = extract_features(candles, 299, bare_analysis(), 50.0, "long", config)
        # window is candles 289..299: low 388.25, high 399.25, close 399
        assert record.price_position == pytest.approx(10.75 / 11)

    def test_bad_direction(self):
        candles = flat_candles(5)
        with pytest.raises(ValueError):
            extract_features(candles, 4, bare_analysis(), 10.0, "sideways")


class TestOutcome:
    def test_add_outcome_once(self):
        record = make_record()
        outcome = TradeOutcome(outcome="WIN", pnl=30.0, pnl_percent=3.0,
                               exit_reason="TP", holding_periods=4)
        labeled = add_outcome(record, outcome)

        assert labeled.is_labeled and labeled.is_win
        assert labeled.pnl == 30.0
        assert labeled.holding_periods == 4
        assert not record.is_labeled

        with pytest.raises(ValueError):
            add_outcome(labeled, outcome)

    def test_dict_roundtrip_ignores_unknown_keys(self):
        record = make_record(win=False, symbol="BTCUSDT", timeframe="1h")
        data = record.to_dict()
        data["unexpected"] = 1
        assert FeatureRecord.from_dict(data) == record


class TestHelpers:
    def test_mtf_short_window_is_aligned(self):
        candles = trend_candles(49, start=300, step=-1)
        assert check_mtf_alignment(candles, "long") is True

    def test_mtf_down_series(self):
        candles = trend_candles(120, start=300, step=-1)
        assert check_mtf_alignment(candles, "long") is False
        assert check_mtf_alignment(candles, "short") is True

    def test_mtf_neutral_counts(self):
        assert check_mtf_alignment(flat_candles(120), "long") is True
        assert check_mtf_alignment(flat_candles(120), "short") is True

    @pytest.mark.parametrize("hour,session", [
        (0, "asian"),
        (5, "asian"),
        (6, "london"),
        (8, "overlap"),
        (12, "newyork"),
        (19, "newyork"),
        (20, "off-hours"),
        (23, "off-hours"),
    ])
    def test_sessions(self, hour, session):
        assert session_for_timestamp(START_MS + hour * HOUR_MS) == session

    def test_session_second_timestamps(self):
        assert session_for_timestamp(START_MS // 1000 + 7 * 3600, unit="s") == "london"

    def test_trend_strength(self):
        assert calculate_trend_strength(trend_candles(19)) == 0.0
        assert calculate_trend_strength(flat_candles(40)) == 0.0
        strength = calculate_trend_strength(trend_candles(60))
        assert 0.0 < strength <= 1.0
