import numpy as np
import pytest

from quant_desk.data import PriceSeries
from quant_desk.features import FeatureEngine, MLFeatures, TechnicalIndicators, StatisticalFeatures


def test_sma_full_window_is_mean():
    assert TechnicalIndicators.sma([1, 2, 3, 4], 4) == 2.5


def test_sma_reads_only_window():
    assert TechnicalIndicators.sma([1000, 1, 2, 3], 3) == 2.0


def test_sma_short_series():
    assert TechnicalIndicators.sma([1, 2], 3) is None
    assert TechnicalIndicators.sma([], 1) is None


def test_sma_accepts_price_series():
    series = PriceSeries.from_prices('005930', [10, 20, 30])
    assert TechnicalIndicators.sma(series, 2) == 25.0


def test_rsi_without_losses():
    prices = list(range(100, 120))
    assert TechnicalIndicators.rsi_score(prices) == 100.0
    assert TechnicalIndicators.mean_reversion_score(prices) == 100.0


def test_rsi_short_series():
    assert TechnicalIndicators.rsi_score([1, 2, 3]) is None
    assert TechnicalIndicators.mean_reversion_score([1, 2, 3]) is None


def test_rsi_balanced_moves():
    prices = [100, 101] * 10
    rsi = TechnicalIndicators.rsi_score(prices)
    assert 40 < rsi < 60
    assert TechnicalIndicators.mean_reversion_score(prices) == pytest.approx(100 - rsi)


def test_feature_rsi_edges():
    assert TechnicalIndicators.feature_rsi(list(range(14))) == 50.0
    assert TechnicalIndicators.feature_rsi(list(range(20))) == 100.0
    assert TechnicalIndicators.feature_rsi(list(range(20, 0, -1))) == 0.0


def test_rate_of_change():
    prices = [100.0] * 13 + [110.0]
    assert TechnicalIndicators.rate_of_change(prices, 14) == pytest.approx(10.0)
    assert TechnicalIndicators.rate_of_change(prices[:5], 14) is None


def test_population_stddev():
    assert StatisticalFeatures.stddev([2, 4, 4, 4, 5, 5, 7, 9]) == pytest.approx(2.0)
    assert StatisticalFeatures.stddev([]) == 0.0


def test_sample_stddev():
    assert StatisticalFeatures.sample_stddev([1, 2, 3, 4]) == pytest.approx(np.std([1, 2, 3, 4], ddof=1))
    assert StatisticalFeatures.sample_stddev([5]) == 0.0


def test_zscore():
    assert StatisticalFeatures.zscore([1, 1, 1, 1, 5], 5) == pytest.approx(2.0)


def test_zscore_degenerate():
    assert StatisticalFeatures.zscore([3, 3, 3], 3) is None
    assert StatisticalFeatures.zscore([1, 2], 3) is None


def test_ml_features_need_21_points():
    engine = FeatureEngine()
    assert engine.extract_ml_features(list(range(100, 120))) == MLFeatures()


def test_ml_features_rising_series():
    prices = np.arange(100.0, 125.0)
    features = FeatureEngine().extract_ml_features(prices)

    assert features.price_change_5 == pytest.approx((124 - 119) / 119 * 100)
    assert features.price_change_20 == pytest.approx((124 - 104) / 104 * 100)
    assert features.volatility_10 == pytest.approx(np.std(prices[-10:], ddof=1) / 124 * 100)
    assert features.rsi_14 == 100.0
