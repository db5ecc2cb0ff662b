"""
Alpha Models Module
==================
"""
from .alpha_models import (
    AlphaFactorEngine,
    AlphaFactors,
    HedgeFundStrategy,
    INITIAL_VALUE_SCORES
)

__all__ = [
    'AlphaFactorEngine',
    'AlphaFactors',
    'HedgeFundStrategy',
    'INITIAL_VALUE_SCORES'
]
