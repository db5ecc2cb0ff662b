"""
Market Regime Detector
======================
Classifies the whole market from an index-aligned average price series.

Series are averaged by index position, not joined on timestamps. The
classification is stateless and recomputed every cycle, so consecutive
cycles may flip between regimes.
"""

import numpy as np
from typing import Dict, Tuple
from enum import Enum
import logging

from ..features.feature_engine import TechnicalIndicators, StatisticalFeatures, PriceInput, as_prices

logger = logging.getLogger(__name__)


class MarketRegime(Enum):
    """Market regimes."""
    TRENDING = "Trending Market"
    RANGING = "Ranging Market"
    NEUTRAL = "Neutral Market"
    LOW_VOLATILITY = "Low Volatility"


def average_by_index(histories: Dict[str, PriceInput]) -> np.ndarray:
    """
    Average price at each index of the first series across every series
    that has an entry at that index.
    """
    arrays = [as_prices(h) for h in histories.values()]
    if not arrays:
        return np.array([], dtype=float)

    length = len(arrays[0])
    averaged = []
    for i in range(length):
        points = [a[i] for a in arrays if len(a) > i]
        averaged.append(sum(points) / len(points))
    return np.array(averaged, dtype=float)


class MarketRegimeDetector:
    """
    Regime detection from trend strength and return volatility.

    Decision order (first match wins):
        trend_strength > 0.015  -> TRENDING
        volatility > 0.8        -> RANGING
        volatility < 0.3        -> LOW_VOLATILITY
        otherwise               -> NEUTRAL
    """

    def __init__(self, config=None):
        from ..config import SignalConfig
        self.config = config or SignalConfig()

    def detect_regime(self, histories: Dict[str, PriceInput]) -> Tuple[MarketRegime, Dict]:
        """Detect current market regime; returns (regime, details)."""
        first = next(iter(histories.values()), None)
        if first is None or len(as_prices(first)) < self.config.regime_window:
            return MarketRegime.NEUTRAL, {'volatility': 0.0, 'trend_strength': 0.0, 'points': 0}

        avg_series = average_by_index(histories)
        returns = StatisticalFeatures.returns(avg_series)
        volatility = StatisticalFeatures.stddev(returns[-self.config.regime_window:]) * 100

        short_ma = TechnicalIndicators.sma(avg_series, self.config.regime_short_ma)
        long_ma = TechnicalIndicators.sma(avg_series, self.config.regime_long_ma)
        trend_strength = 0.0
        if short_ma is not None and long_ma is not None and long_ma > 0:
            trend_strength = abs(short_ma - long_ma) / long_ma

        regime = self.classify(trend_strength, volatility)
        details = {
            'volatility': volatility,
            'trend_strength': trend_strength,
            'short_ma': short_ma,
            'long_ma': long_ma,
            'points': len(avg_series)
        }
        logger.debug(f"Regime {regime.value}: trend={trend_strength:.4f} vol={volatility:.4f}")
        return regime, details

    def classify(self, trend_strength: float, volatility: float) -> MarketRegime:
        if trend_strength > self.config.trend_strength_threshold:
            return MarketRegime.TRENDING
        if volatility > self.config.high_volatility_threshold:
            return MarketRegime.RANGING
        if volatility < self.config.low_volatility_threshold:
            return MarketRegime.LOW_VOLATILITY
        return MarketRegime.NEUTRAL
