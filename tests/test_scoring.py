import pytest

from smclearn.config import ScoringWeights
from smclearn.strategy.indicators import (
    Analysis,
    FairValueGap,
    LiquidityLevel,
    LiquidityZones,
    OrderBlock,
)
from smclearn.strategy.scoring import (
    BEARISH,
    BULLISH,
    NEUTRAL,
    calculate_mtf_bonus,
    resolve_bias,
    score_confluence,
)


def make_analysis(**kw):
    fields = dict(trend=None, bos=None, ema50=None, ema200=None, rsi=None, atr=None, vwap=None)
    fields.update(kw)
    return Analysis(**fields)


def bull_ob(low, high, index=0):
    # bearish origin candle: open at the top of the body
    return OrderBlock(index=index, timestamp=0, open=high, high=high + 1, low=low - 1,
                      close=low, type="bull", strength=2.0)


def bear_ob(low, high, index=0):
    return OrderBlock(index=index, timestamp=0, open=low, high=high + 1, low=low - 1,
                      close=high, type="bear", strength=2.0)


class TestBias:
    @pytest.mark.parametrize("trend,bos,expected", [
        ("up", "up", BULLISH),
        ("down", "down", BEARISH),
        ("up", "down", BULLISH),
        ("down", "up", BULLISH),
        (None, "down", BEARISH),
        ("down", None, BEARISH),
        (None, None, NEUTRAL),
    ])
    def test_resolution_order(self, trend, bos, expected):
        assert resolve_bias(trend, bos) == expected


class TestScore:
    def test_trend_and_bos_agree(self):
        result = score_confluence(make_analysis(trend="up", bos="up"), 100.0)
        assert result.bias == BULLISH
        assert result.breakdown["trend_structure"] == 40
        # trend structure + mtf bonus
        assert result.score == pytest.approx(75)
        assert result.direction == "long"

    def test_trend_only_and_bos_only(self):
        assert score_confluence(make_analysis(trend="down"), 100.0).breakdown["trend_structure"] == 20
        assert score_confluence(make_analysis(bos="up"), 100.0).breakdown["trend_structure"] == pytest.approx(12)

    def test_mtf_bonus_always_added(self):
        result = score_confluence(make_analysis(), 100.0)
        assert result.bias == NEUTRAL
        assert result.direction is None
        assert result.breakdown["mtf_bonus"] == 35
        assert result.score == 35

    def test_ema_alignment_and_divergence(self):
        aligned = score_confluence(make_analysis(trend="up", bos="up", ema50=110, ema200=100), 100.0)
        assert aligned.breakdown["ema_alignment"] == 15

        divergent = score_confluence(make_analysis(trend="up", bos="up", ema50=90, ema200=100), 100.0)
        assert divergent.breakdown["ema_alignment"] == -5

        neutral = score_confluence(make_analysis(ema50=110, ema200=100), 100.0)
        assert neutral.breakdown["ema_alignment"] == -5

    def test_rsi_adjustments(self):
        def rsi_part(value, trend=None):
            a = make_analysis(rsi=value, trend=trend, bos=trend)
            return score_confluence(a, 100.0).breakdown["rsi_penalty"]

        assert rsi_part(75) == 15
        assert rsi_part(25, trend="up") == pytest.approx(7.5)
        assert rsi_part(25, trend="down") == 15
        assert rsi_part(50) == 5
        assert rsi_part(65) == 0
        assert rsi_part(None) == 0

    def test_negative_rsi_weight_applied_as_is(self):
        weights = ScoringWeights(rsi_penalty=-15)
        result = score_confluence(make_analysis(rsi=80), 100.0, weights)
        assert result.breakdown["rsi_penalty"] == -15

    def test_score_floored_at_zero(self):
        weights = ScoringWeights(trend_structure=0, order_blocks=0, fvgs=0, ema_alignment=0,
                                 liquidity=0, mtf_bonus=0, rsi_penalty=0)
        result = score_confluence(make_analysis(ema50=90, ema200=100), 100.0, weights)
        assert result.breakdown["ema_alignment"] == -5
        assert result.score == 0

    def test_liquidity(self):
        zones = LiquidityZones(highs=[LiquidityLevel(price=110, touches=0, last_touch=3)])
        result = score_confluence(make_analysis(liquidity=zones), 100.0)
        assert result.breakdown["liquidity"] == 10


class TestOrderBlockFactor:
    def test_near_matching_block_full_weight(self):
        a = make_analysis(trend="up", bos="up", order_blocks=[bull_ob(100, 101)])
        assert score_confluence(a, 102.0).breakdown["order_blocks"] == 30

    def test_far_matching_block_partial_weight(self):
        # body low 90 is 9% away but price is within 5% above the body high
        a = make_analysis(trend="up", bos="up", order_blocks=[bull_ob(90, 97)])
        assert score_confluence(a, 101.0).breakdown["order_blocks"] == pytest.approx(18)

    def test_mixed_blocks(self):
        a = make_analysis(trend="up", bos="up", order_blocks=[bear_ob(100, 101)])
        assert score_confluence(a, 100.5).breakdown["order_blocks"] == pytest.approx(9)

    def test_distant_blocks_ignored(self):
        a = make_analysis(trend="up", bos="up", order_blocks=[bull_ob(50, 55)])
        assert score_confluence(a, 100.0).breakdown["order_blocks"] == 0


class TestFVGFactor:
    def gap(self, kind, lo, hi):
        return FairValueGap(index=1, from_price=lo, to_price=hi, type=kind, size=hi - lo)

    def test_near_matching_gap(self):
        a = make_analysis(trend="up", bos="up", fvgs=[self.gap("bull", 99, 101)])
        assert score_confluence(a, 100.0).breakdown["fvgs"] == 20

    def test_far_matching_gap_half_weight(self):
        a = make_analysis(trend="down", bos="down", fvgs=[self.gap("bear", 90, 110)])
        assert score_confluence(a, 95.0).breakdown["fvgs"] == pytest.approx(10)

    def test_non_matching_gap_scores_full_weight(self):
        a = make_analysis(trend="up", bos="up", fvgs=[self.gap("bear", 99, 101)])
        assert score_confluence(a, 100.0).breakdown["fvgs"] == 20


class TestMTFBonus:
    def test_triple_alignment(self):
        up = make_analysis(trend="up")
        bonus = calculate_mtf_bonus(up, up, up)
        assert bonus.bonus == 35
        assert len(bonus.factors) == 2

    def test_divergent(self):
        assert calculate_mtf_bonus(make_analysis(trend="up"), make_analysis(trend="down")).bonus == -10

    def test_missing_hourly(self):
        assert calculate_mtf_bonus(make_analysis(trend="up"), None, make_analysis(trend="up")).bonus == 0

    def test_htf_ltf_only(self):
        up = make_analysis(trend="up")
        assert calculate_mtf_bonus(up, up, make_analysis(trend="down")).bonus == 20
