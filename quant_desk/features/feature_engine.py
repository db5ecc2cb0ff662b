"""
Feature Engineering Module
==========================
Statistics utilities shared by the alpha, regime and signal layers, and
feature extraction for the ML-driven strategy.

All helpers take a PriceSeries or any sequence of prices (oldest first)
and never average over a window shorter than requested.
"""

import numpy as np
from dataclasses import dataclass, asdict
from typing import Optional, Sequence, Union
import logging

from ..data.data_manager import PriceSeries

logger = logging.getLogger(__name__)

PriceInput = Union[PriceSeries, Sequence[float], np.ndarray]


def as_prices(series: PriceInput) -> np.ndarray:
    """Coerce a PriceSeries or sequence into a float array."""
    if isinstance(series, PriceSeries):
        return series.prices()
    return np.asarray(series, dtype=float)


class TechnicalIndicators:
    """Technical analysis indicators."""

    @staticmethod
    def sma(series: PriceInput, period: int) -> Optional[float]:
        """Simple Moving Average of the last `period` points, None if too short."""
        prices = as_prices(series)
        if period <= 0 or len(prices) < period:
            return None
        return float(prices[-period:].sum() / period)

    @staticmethod
    def _gain_loss(prices: np.ndarray, period: int):
        changes = np.diff(prices)[-period:]
        gains = changes[changes > 0].sum()
        losses = -changes[changes < 0].sum()
        return float(gains), float(losses)

    @staticmethod
    def rsi_score(series: PriceInput, period: int = 14) -> Optional[float]:
        """
        Relative Strength Index over the trailing `period` changes.

        Gains and losses are averaged over `period`. Returns 100 when there
        are no losses and None when the series is shorter than `period`.
        """
        prices = as_prices(series)
        if len(prices) < period:
            return None

        gains, losses = TechnicalIndicators._gain_loss(prices, period)
        avg_gain = gains / period
        avg_loss = losses / period
        if avg_loss == 0:
            return 100.0

        rs = avg_gain / avg_loss
        return 100 - (100 / (1 + rs))

    @staticmethod
    def mean_reversion_score(series: PriceInput, period: int = 14) -> Optional[float]:
        """
        Inverted RSI (100 - RSI) used as the mean-reversion factor.

        A series without losses scores 100 (the max score); None when the
        series is shorter than `period`.
        """
        prices = as_prices(series)
        if len(prices) < period:
            return None

        gains, losses = TechnicalIndicators._gain_loss(prices, period)
        if losses == 0:
            return 100.0
        return 100 - TechnicalIndicators.rsi_score(prices, period)

    @staticmethod
    def feature_rsi(series: PriceInput, period: int = 14) -> float:
        """RSI for ML features: 50 if too short, 100 without losses, 0 without gains."""
        prices = as_prices(series)
        if len(prices) < period + 1:
            return 50.0

        gains, losses = TechnicalIndicators._gain_loss(prices, period)
        if losses == 0:
            return 100.0
        if gains == 0:
            return 0.0

        rs = (gains / period) / (losses / period)
        return 100 - (100 / (1 + rs))

    @staticmethod
    def rate_of_change(series: PriceInput, period: int = 14) -> Optional[float]:
        """Percent change from the point `period - 1` steps back to the latest."""
        prices = as_prices(series)
        if len(prices) < period:
            return None
        past = prices[-period]
        if past == 0:
            return None
        return float((prices[-1] - past) / past * 100)


class StatisticalFeatures:
    """Statistical helpers."""

    @staticmethod
    def stddev(values: PriceInput) -> float:
        """Population standard deviation (divide by N). Empty input gives 0."""
        values = as_prices(values)
        if len(values) == 0:
            return 0.0
        return float(np.std(values))

    @staticmethod
    def sample_stddev(values: PriceInput) -> float:
        """Sample standard deviation (divide by N-1). Fewer than two values gives 0."""
        values = as_prices(values)
        if len(values) < 2:
            return 0.0
        return float(np.std(values, ddof=1))

    @staticmethod
    def returns(values: PriceInput) -> np.ndarray:
        """Simple returns between consecutive points."""
        values = as_prices(values)
        if len(values) < 2:
            return np.array([], dtype=float)
        return np.diff(values) / values[:-1]

    @staticmethod
    def zscore(series: PriceInput, window: int) -> Optional[float]:
        """
        Z-score of the latest value against the trailing `window` values.

        None when the series is shorter than the window or the window has
        zero dispersion.
        """
        values = as_prices(series)
        if window <= 0 or len(values) < window:
            return None
        recent = values[-window:]
        std = StatisticalFeatures.stddev(recent)
        if std == 0:
            return None
        return float((values[-1] - recent.mean()) / std)


@dataclass
class MLFeatures:
    """Short-horizon features fed to the ML strategy."""
    price_change_5: float = 0.0
    price_change_20: float = 0.0
    volatility_10: float = 0.0
    rsi_14: float = 50.0

    def to_dict(self) -> dict:
        return asdict(self)


class FeatureEngine:
    """
    Feature extraction for the ML-driven strategy.

    Requires 21 points; shorter histories produce the neutral feature
    vector (0, 0, 0, 50).
    """

    MIN_POINTS = 21

    def __init__(self, config=None):
        from ..config import SignalConfig
        self.config = config or SignalConfig()

    def extract_ml_features(self, series: PriceInput) -> MLFeatures:
        prices = as_prices(series)
        if len(prices) < self.MIN_POINTS:
            return MLFeatures()

        latest = prices[-1]
        price_5 = prices[-6]
        price_20 = prices[-21]
        volatility = StatisticalFeatures.sample_stddev(prices[-10:])

        return MLFeatures(
            price_change_5=float((latest - price_5) / price_5 * 100),
            price_change_20=float((latest - price_20) / price_20 * 100),
            volatility_10=float(volatility / latest * 100),
            rsi_14=TechnicalIndicators.feature_rsi(prices, self.config.alpha_period)
        )
