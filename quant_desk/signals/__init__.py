"""
Signals Module
==============
"""
from .regime_detector import MarketRegime, MarketRegimeDetector, average_by_index
from .pairs_trading import PairsSignal, PairsTradingSignalGenerator, ratio_series
from .technical_signals import (
    Trend,
    CrossSignal,
    MovingAverageCrossSignalGenerator,
    TrendClassifier
)

__all__ = [
    'MarketRegime',
    'MarketRegimeDetector',
    'average_by_index',
    'PairsSignal',
    'PairsTradingSignalGenerator',
    'ratio_series',
    'Trend',
    'CrossSignal',
    'MovingAverageCrossSignalGenerator',
    'TrendClassifier'
]
