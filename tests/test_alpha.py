import pytest

from quant_desk.alpha import AlphaFactorEngine, AlphaFactors, HedgeFundStrategy, INITIAL_VALUE_SCORES
from quant_desk.config import SignalConfig


def test_momentum_neutral_on_short_history():
    assert AlphaFactorEngine(seed=1).momentum([100, 101, 102]) == 50.0


def test_momentum_scaled_rate_of_change():
    prices = [100.0] * 13 + [110.0]
    assert AlphaFactorEngine(seed=1).momentum(prices) == pytest.approx(75.0)


def test_momentum_clamped():
    engine = AlphaFactorEngine(seed=1)
    assert engine.momentum([100.0] * 13 + [200.0]) == 100.0
    assert engine.momentum([100.0] * 13 + [10.0]) == 0.0


def test_mean_reversion_overbought_on_rally():
    assert AlphaFactorEngine(seed=1).mean_reversion(list(range(100, 130))) == 100.0


def test_composite_uses_strategy_weights():
    engine = AlphaFactorEngine(seed=3)
    prev = AlphaFactors(value=60.0)
    history = [100.0] * 13 + [110.0]

    factors = engine.update_factors(prev, history, HedgeFundStrategy.ALPHA_MOMENTUM)
    expected = factors.value * 0.3 + factors.momentum * 0.5 + factors.mean_reversion * 0.2
    assert factors.composite_alpha_score == pytest.approx(expected)

    factors = engine.update_factors(prev, history, HedgeFundStrategy.MEAN_REVERSION)
    expected = factors.value * 0.3 + factors.momentum * 0.2 + factors.mean_reversion * 0.5
    assert factors.composite_alpha_score == pytest.approx(expected)


def test_value_drift_is_seeded_and_clamped():
    history = list(range(100, 130))
    a = AlphaFactorEngine(seed=5).update_factors(AlphaFactors(value=99.9), history)
    b = AlphaFactorEngine(seed=5).update_factors(AlphaFactors(value=99.9), history)
    assert a == b
    assert 0.0 <= a.value <= 100.0


def test_update_all_skips_missing_history():
    engine = AlphaFactorEngine(seed=2)
    factors = engine.initial_factors(['005930', 'NVDA'])
    assert factors['NVDA'].value == INITIAL_VALUE_SCORES['NVDA']

    updated = engine.update_all(factors, {'005930': list(range(100, 130))}, HedgeFundStrategy.ALPHA_MOMENTUM)
    assert updated['NVDA'] is factors['NVDA']
    assert updated['005930'] != factors['005930']


def test_weights_out_of_range_rejected():
    config = SignalConfig(default_weights={'value': 1.5, 'momentum': 0.0, 'mean_reversion': 0.0})
    with pytest.raises(ValueError):
        AlphaFactorEngine(config)


def test_strategy_parse():
    assert HedgeFundStrategy.parse("Mean Reversion") == HedgeFundStrategy.MEAN_REVERSION
    assert HedgeFundStrategy.parse("pairs_trading") == HedgeFundStrategy.PAIRS_TRADING
    assert HedgeFundStrategy.parse("YOLO") is None
    assert HedgeFundStrategy.parse(None) is None
