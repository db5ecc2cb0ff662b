import os
import sys

import pytest

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from quant_desk.config import SystemConfig, ExecutionConfig, DataConfig
from quant_desk.data import PriceSeries
from quant_desk.portfolio import PortfolioLedger


@pytest.fixture
def config():
    return SystemConfig()


@pytest.fixture
def instant_execution():
    """Execution config with a zero-latency venue that never rejects."""
    return ExecutionConfig(venue_min_latency_ms=0, venue_max_latency_ms=0,
                           venue_rejection_probability=0.0)


@pytest.fixture
def ledger():
    return PortfolioLedger(initial_cash=1000000)


@pytest.fixture
def rich_ledger():
    return PortfolioLedger(initial_cash=10000000)


@pytest.fixture
def small_data_config():
    return DataConfig(primary_source="mock", history_points=60, mock_seed=11)


@pytest.fixture
def make_series():
    def _make(symbol, prices, **kwargs):
        return PriceSeries.from_prices(symbol, prices, **kwargs)
    return _make
