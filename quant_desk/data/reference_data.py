"""
Reference Data
==============
Slow-moving fundamentals, the USD/KRW exchange rate and exchange hours.
"""

import numpy as np
from dataclasses import dataclass, replace
from datetime import datetime, time, timezone
from typing import Dict, Optional
from zoneinfo import ZoneInfo
import logging
import threading

from .data_manager import Currency, get_instrument

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FundamentalData:
    """Per-instrument fundamentals."""
    pe_ratio: float
    eps_growth: float
    debt_to_equity: float

    def to_dict(self) -> dict:
        return {
            'pe_ratio': round(self.pe_ratio, 2),
            'eps_growth': round(self.eps_growth, 2),
            'debt_to_equity': round(self.debt_to_equity, 3)
        }


INITIAL_FUNDAMENTALS: Dict[str, FundamentalData] = {
    '005930': FundamentalData(18.5, 8.2, 0.4),
    '000660': FundamentalData(25.0, 15.5, 0.6),
    'NVDA': FundamentalData(75.0, 30.0, 0.3),
    'TSM': FundamentalData(30.0, 22.0, 0.2),
    'MU': FundamentalData(40.0, 18.0, 0.5),
}


class FundamentalsFeed:
    """
    Simulated fundamentals with a small Gaussian drift per update.

    Floors keep the ratios plausible: P/E >= 5, EPS growth >= -10,
    debt/equity >= 0.1.
    """

    PE_SIGMA = 0.1
    EPS_SIGMA = 0.05
    DE_SIGMA = 0.001

    def __init__(self, symbols=None, seed: Optional[int] = None):
        symbols = symbols or list(INITIAL_FUNDAMENTALS.keys())
        self.rng = np.random.default_rng(seed)
        self._data = {s: INITIAL_FUNDAMENTALS[s] for s in symbols if s in INITIAL_FUNDAMENTALS}

    def update(self) -> Dict[str, FundamentalData]:
        for symbol, data in self._data.items():
            self._data[symbol] = replace(
                data,
                pe_ratio=max(5.0, data.pe_ratio + self.rng.standard_normal() * self.PE_SIGMA),
                eps_growth=max(-10.0, data.eps_growth + self.rng.standard_normal() * self.EPS_SIGMA),
                debt_to_equity=max(0.1, data.debt_to_equity + self.rng.standard_normal() * self.DE_SIGMA)
            )
        return dict(self._data)

    def get(self, symbol: str) -> Optional[FundamentalData]:
        return self._data.get(symbol)

    def all(self) -> Dict[str, FundamentalData]:
        return dict(self._data)


class ExchangeRateFeed:
    """USD/KRW rate doing a bounded random walk, rounded to 2 decimals."""

    def __init__(self, initial_rate: float = 1380.0, max_step: float = 2.5, seed: Optional[int] = None):
        self.rate = initial_rate
        self.max_step = max_step
        self.rng = np.random.default_rng(seed)
        self._lock = threading.Lock()

    def update(self) -> float:
        with self._lock:
            step = (self.rng.random() - 0.5) * 2 * self.max_step
            self.rate = round(self.rate + step, 2)
            return self.rate

    def get_rate(self) -> float:
        with self._lock:
            return self.rate


# Exchange sessions: (timezone, open, close)
MARKET_SESSIONS = {
    'KOREA': (ZoneInfo('Asia/Seoul'), time(9, 0), time(15, 30)),
    'USA': (ZoneInfo('America/New_York'), time(9, 30), time(16, 0)),
}


def market_for(symbol: str) -> str:
    """Exchange a symbol trades on."""
    return 'KOREA' if get_instrument(symbol).currency == Currency.KRW else 'USA'


def market_status(now: datetime = None) -> Dict[str, str]:
    """OPEN/CLOSED per market. Naive datetimes are treated as UTC."""
    now = now or datetime.now(timezone.utc)
    if now.tzinfo is None:
        now = now.replace(tzinfo=timezone.utc)

    status = {}
    for market, (tz, open_time, close_time) in MARKET_SESSIONS.items():
        local = now.astimezone(tz)
        is_open = local.weekday() < 5 and open_time <= local.time() < close_time
        status[market] = 'OPEN' if is_open else 'CLOSED'
    return status


def is_market_open(symbol: str, now: datetime = None) -> bool:
    return market_status(now)[market_for(symbol)] == 'OPEN'
