"""
Data Module
===========
"""
from .data_manager import (
    Currency,
    Instrument,
    INSTRUMENTS,
    get_instrument,
    krw_first,
    PricePoint,
    PriceSeries,
    MarketData,
    MarketSnapshot,
    DataSource,
    YFinanceSource,
    MockDataSource,
    DataManager
)
from .reference_data import (
    FundamentalData,
    FundamentalsFeed,
    ExchangeRateFeed,
    market_status,
    is_market_open
)

__all__ = [
    'Currency',
    'Instrument',
    'INSTRUMENTS',
    'get_instrument',
    'krw_first',
    'PricePoint',
    'PriceSeries',
    'MarketData',
    'MarketSnapshot',
    'DataSource',
    'YFinanceSource',
    'MockDataSource',
    'DataManager',
    'FundamentalData',
    'FundamentalsFeed',
    'ExchangeRateFeed',
    'market_status',
    'is_market_open'
]
