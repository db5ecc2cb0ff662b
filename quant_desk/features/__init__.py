"""
Feature Engineering Module
==========================
"""
from .feature_engine import (
    FeatureEngine,
    MLFeatures,
    TechnicalIndicators,
    StatisticalFeatures,
    as_prices
)

__all__ = [
    'FeatureEngine',
    'MLFeatures',
    'TechnicalIndicators',
    'StatisticalFeatures',
    'as_prices'
]
