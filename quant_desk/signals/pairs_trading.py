"""
Pairs Trading Signal Generator
==============================
Statistical arbitrage on the price ratio of two memory-sector stocks.

Unlike the regime detector, the two series are joined on matching
timestamps before the ratio is formed.
"""

import numpy as np
from dataclasses import dataclass
from typing import List, Optional
import logging

from ..data.data_manager import PriceSeries
from ..features.feature_engine import StatisticalFeatures
from ..portfolio.ledger import TradeAction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PairsSignal:
    """Enter / exit signal for the configured pair."""
    action: TradeAction
    long_symbol: str
    short_symbol: str
    z_score: float
    reason: str


def ratio_series(first: PriceSeries, second: PriceSeries) -> List[float]:
    """first/second at every timestamp present in both series (second price non-zero)."""
    second_by_time = {}
    for point in second:
        second_by_time[point.time] = point.price

    ratios = []
    for point in first:
        other = second_by_time.get(point.time)
        if other is not None and other != 0:
            ratios.append(point.price / other)
    return ratios


class PairsTradingSignalGenerator:
    """
    Z-score signal on the ratio `first / second`.

        z >  2.0  -> ENTER: short first, long second
        z < -2.0  -> ENTER: long first, short second
        |z| < 0.5 -> EXIT
        otherwise -> no signal

    The 30-point window and the 2.0 / 0.5 thresholds are fixed constants.
    """

    WINDOW = 30
    ENTRY_Z = 2.0
    EXIT_Z = 0.5

    def __init__(self, first_symbol: str = "MU", second_symbol: str = "000660"):
        self.first_symbol = first_symbol
        self.second_symbol = second_symbol

    @classmethod
    def from_config(cls, config=None) -> 'PairsTradingSignalGenerator':
        from ..config import SignalConfig
        config = config or SignalConfig()
        return cls(config.pair_first, config.pair_second)

    def z_score(self, first: PriceSeries, second: PriceSeries) -> Optional[float]:
        if len(first) < self.WINDOW or len(second) < self.WINDOW:
            return None

        ratios = ratio_series(first, second)
        if len(ratios) < self.WINDOW:
            return None

        recent = np.array(ratios[-self.WINDOW:], dtype=float)
        std = StatisticalFeatures.stddev(recent)
        if std == 0:
            return None
        return float((recent[-1] - recent.mean()) / std)

    def generate_signal(self, first: PriceSeries, second: PriceSeries) -> Optional[PairsSignal]:
        z = self.z_score(first, second)
        if z is None:
            return None

        if z > self.ENTRY_Z:
            return PairsSignal(
                action=TradeAction.ENTER_PAIR_TRADE,
                long_symbol=self.second_symbol,
                short_symbol=self.first_symbol,
                z_score=z,
                reason=f"Spread high (Z={z:.2f}): short {self.first_symbol}, long {self.second_symbol}"
            )
        if z < -self.ENTRY_Z:
            return PairsSignal(
                action=TradeAction.ENTER_PAIR_TRADE,
                long_symbol=self.first_symbol,
                short_symbol=self.second_symbol,
                z_score=z,
                reason=f"Spread low (Z={z:.2f}): long {self.first_symbol}, short {self.second_symbol}"
            )
        if abs(z) < self.EXIT_Z:
            return PairsSignal(
                action=TradeAction.EXIT_PAIR_TRADE,
                long_symbol=self.first_symbol,
                short_symbol=self.second_symbol,
                z_score=z,
                reason=f"Spread reverted (Z={z:.2f}): close pair positions"
            )
        return None
