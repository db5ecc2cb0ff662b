"""
Technical Signals
=================
Moving-average crossover detection and short/long SMA trend classification.
"""

from dataclasses import dataclass
from typing import Optional
from enum import Enum
import logging

from ..features.feature_engine import TechnicalIndicators, PriceInput, as_prices
from ..portfolio.ledger import TradeAction

logger = logging.getLogger(__name__)


class Trend(Enum):
    """Short-term trend."""
    UPTREND = "UPTREND"
    DOWNTREND = "DOWNTREND"
    NEUTRAL = "NEUTRAL"


@dataclass(frozen=True)
class CrossSignal:
    """Golden / dead cross event."""
    action: TradeAction
    short_ma: float
    long_ma: float
    reason: str


class MovingAverageCrossSignalGenerator:
    """
    Golden cross / dead cross detector.

    Fires only on the bar where the short SMA crosses the long SMA, so a
    consumer polling every cycle sees one signal per crossing.
    """

    def __init__(self, short_period: int = 5, long_period: int = 20):
        if short_period >= long_period:
            raise ValueError("short_period must be smaller than long_period")
        self.short_period = short_period
        self.long_period = long_period

    @classmethod
    def from_config(cls, config=None) -> 'MovingAverageCrossSignalGenerator':
        from ..config import SignalConfig
        config = config or SignalConfig()
        return cls(config.short_ma_period, config.long_ma_period)

    def generate_signal(self, history: PriceInput) -> Optional[CrossSignal]:
        prices = as_prices(history)
        if len(prices) < self.long_period + 1:
            return None

        previous = prices[:-1]
        curr_short = TechnicalIndicators.sma(prices, self.short_period)
        curr_long = TechnicalIndicators.sma(prices, self.long_period)
        prev_short = TechnicalIndicators.sma(previous, self.short_period)
        prev_long = TechnicalIndicators.sma(previous, self.long_period)

        if prev_short <= prev_long and curr_short > curr_long:
            return CrossSignal(
                action=TradeAction.BUY,
                short_ma=curr_short,
                long_ma=curr_long,
                reason=f"Golden Cross ({self.short_period}MA > {self.long_period}MA)"
            )
        if prev_short >= prev_long and curr_short < curr_long:
            return CrossSignal(
                action=TradeAction.SELL,
                short_ma=curr_short,
                long_ma=curr_long,
                reason=f"Dead Cross ({self.short_period}MA < {self.long_period}MA)"
            )
        return None


class TrendClassifier:
    """UPTREND / DOWNTREND / NEUTRAL from SMA(5) against SMA(20) with a 0.1% deadband."""

    def __init__(self, short_period: int = 5, long_period: int = 20, deadband: float = 0.001):
        self.short_period = short_period
        self.long_period = long_period
        self.deadband = deadband

    @classmethod
    def from_config(cls, config=None) -> 'TrendClassifier':
        from ..config import SignalConfig
        config = config or SignalConfig()
        return cls(config.short_ma_period, config.long_ma_period, config.trend_deadband)

    def classify(self, history: PriceInput) -> Trend:
        prices = as_prices(history)
        if len(prices) < self.long_period:
            return Trend.NEUTRAL

        short_ma = TechnicalIndicators.sma(prices, self.short_period)
        long_ma = TechnicalIndicators.sma(prices, self.long_period)

        if short_ma > long_ma * (1 + self.deadband):
            return Trend.UPTREND
        if short_ma < long_ma * (1 - self.deadband):
            return Trend.DOWNTREND
        return Trend.NEUTRAL
