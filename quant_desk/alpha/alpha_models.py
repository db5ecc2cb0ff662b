"""
Alpha Models Module
==================
Per-instrument value / momentum / mean-reversion factors and the
strategy-weighted composite alpha score.

Factor scores live on [0, 100]. The composite is a weighted sum whose
weights are designed to sum to 1.
"""

import numpy as np
from dataclasses import dataclass, asdict
from typing import Dict, Optional
from enum import Enum
import logging

from ..features.feature_engine import TechnicalIndicators, PriceInput

logger = logging.getLogger(__name__)


class HedgeFundStrategy(Enum):
    """Desk-level strategies the strategy oracle can pick from."""
    ALPHA_MOMENTUM = "Alpha Momentum"
    PAIRS_TRADING = "Pairs Trading (Stat Arb)"
    MEAN_REVERSION = "Mean Reversion"
    RISK_OFF = "Risk Off (Hold)"
    DEEP_HEDGING = "Deep Hedging (ML)"
    MA_CROSS = "Simple MA Cross"

    @classmethod
    def parse(cls, value) -> Optional['HedgeFundStrategy']:
        """Match by value or member name, None if unknown."""
        if isinstance(value, cls):
            return value
        if not isinstance(value, str):
            return None
        text = value.strip()
        for strategy in cls:
            if text == strategy.value or text.upper() == strategy.name:
                return strategy
        return None


@dataclass(frozen=True)
class AlphaFactors:
    """Factor scores for one instrument."""
    value: float
    momentum: float = 50.0
    mean_reversion: float = 50.0
    composite_alpha_score: float = 0.0

    def to_dict(self) -> dict:
        return asdict(self)


INITIAL_VALUE_SCORES = {
    '005930': 75.0,
    '000660': 70.0,
    'NVDA': 90.0,
    'TSM': 85.0,
    'MU': 65.0,
}

NEUTRAL_SCORE = 50.0


def clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


class AlphaFactorEngine:
    """
    Alpha factor engine.

    Each update recomputes momentum and mean reversion from the latest
    history, drifts the slow value factor by a zero-mean Gaussian step and
    recombines the three with strategy-dependent weights. Only
    MEAN_REVERSION changes the weights.
    """

    def __init__(self, config=None, rng: np.random.Generator = None, seed: Optional[int] = None):
        from ..config import SignalConfig
        self.config = config or SignalConfig()
        self.rng = rng or np.random.default_rng(seed)

        for weights in (self.config.default_weights, self.config.mean_reversion_weights):
            if any(w < 0 or w > 1 for w in weights.values()):
                raise ValueError(f"Factor weights must lie in [0, 1]: {weights}")
            if abs(sum(weights.values()) - 1.0) > 1e-9:
                logger.warning(f"Factor weights do not sum to 1: {weights}")

    def initial_factors(self, symbols) -> Dict[str, AlphaFactors]:
        return {s: AlphaFactors(value=INITIAL_VALUE_SCORES.get(s, NEUTRAL_SCORE)) for s in symbols}

    def weights_for(self, strategy: HedgeFundStrategy) -> Dict[str, float]:
        if strategy == HedgeFundStrategy.MEAN_REVERSION:
            return self.config.mean_reversion_weights
        return self.config.default_weights

    def momentum(self, history: PriceInput) -> float:
        """50 + ROC * 2.5 clamped to [0, 100]; neutral without enough history."""
        roc = TechnicalIndicators.rate_of_change(history, self.config.alpha_period)
        if roc is None:
            return NEUTRAL_SCORE
        return clamp(NEUTRAL_SCORE + roc * self.config.momentum_scale)

    def mean_reversion(self, history: PriceInput) -> float:
        """100 - RSI (high = overbought); neutral without enough history."""
        score = TechnicalIndicators.mean_reversion_score(history, self.config.alpha_period)
        if score is None:
            return NEUTRAL_SCORE
        return clamp(score)

    def update_factors(self, prev: AlphaFactors, history: PriceInput,
                       strategy: HedgeFundStrategy = HedgeFundStrategy.ALPHA_MOMENTUM) -> AlphaFactors:
        """Return new factors; the caller stores them."""
        value = clamp(prev.value + self.rng.standard_normal() * self.config.value_drift_sigma)
        momentum = self.momentum(history)
        mean_reversion = self.mean_reversion(history)

        weights = self.weights_for(strategy)
        composite = (
            value * weights['value'] +
            momentum * weights['momentum'] +
            mean_reversion * weights['mean_reversion']
        )

        return AlphaFactors(
            value=value,
            momentum=momentum,
            mean_reversion=mean_reversion,
            composite_alpha_score=composite
        )

    def update_all(self, factors: Dict[str, AlphaFactors], histories: Dict[str, PriceInput],
                   strategy: HedgeFundStrategy) -> Dict[str, AlphaFactors]:
        updated = dict(factors)
        for symbol, prev in factors.items():
            history = histories.get(symbol)
            if history is None:
                continue
            updated[symbol] = self.update_factors(prev, history, strategy)
        return updated
