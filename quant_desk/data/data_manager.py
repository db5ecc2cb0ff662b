"""
Data Manager Module
===================
Instrument reference data, bounded price series and market data feeds.

Ticks are produced by a DataSource and appended by the DataManager; the
decision loop only ever reads an immutable MarketSnapshot.
"""

import pandas as pd
import numpy as np
from abc import ABC, abstractmethod
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Dict, List, Optional, Iterable
from enum import Enum
import logging
import threading

logger = logging.getLogger(__name__)


class Currency(Enum):
    """Settlement currencies."""
    KRW = "KRW"
    USD = "USD"


@dataclass(frozen=True)
class Instrument:
    """Immutable instrument reference data."""
    symbol: str
    name: str
    korean_name: str
    currency: Currency
    yahoo_ticker: str


INSTRUMENTS: Dict[str, Instrument] = {
    '005930': Instrument('005930', 'Samsung Electronics', '삼성전자', Currency.KRW, '005930.KS'),
    '000660': Instrument('000660', 'SK Hynix', 'SK하이닉스', Currency.KRW, '000660.KS'),
    'NVDA': Instrument('NVDA', 'NVIDIA Corp', '엔비디아', Currency.USD, 'NVDA'),
    'TSM': Instrument('TSM', 'TSMC', 'TSMC', Currency.USD, 'TSM'),
    'MU': Instrument('MU', 'Micron Technology', '마이크론', Currency.USD, 'MU'),
}


def utcnow() -> datetime:
    """Naive UTC timestamp used for every price point."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def get_instrument(symbol: str) -> Instrument:
    """Look up an instrument by symbol."""
    try:
        return INSTRUMENTS[symbol]
    except KeyError:
        raise ValueError(f"Unknown instrument: {symbol}")


def krw_first(symbols: Iterable[str]) -> List[str]:
    """Order symbols with KRW-settled instruments before foreign ones (stable)."""
    return sorted(symbols, key=lambda s: 0 if get_instrument(s).currency == Currency.KRW else 1)


@dataclass(frozen=True)
class PricePoint:
    """Single point of a price series."""
    time: datetime
    price: float


class PriceSeries:
    """
    Append-only, bounded price history for one instrument.

    Oldest points are evicted once capacity is reached. Time is
    non-decreasing within a series.
    """

    def __init__(self, symbol: str, capacity: int = 500, points: Iterable[PricePoint] = ()):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.symbol = symbol
        self.capacity = capacity
        self._points = deque(maxlen=capacity)
        for point in points:
            self.append(point)

    def append(self, point: PricePoint):
        if self._points and point.time < self._points[-1].time:
            raise ValueError(
                f"{self.symbol}: point at {point.time} is older than last point {self._points[-1].time}"
            )
        self._points.append(point)

    def add(self, time: datetime, price: float):
        self.append(PricePoint(time, float(price)))

    def __len__(self) -> int:
        return len(self._points)

    def __iter__(self):
        return iter(self._points)

    def __getitem__(self, index):
        return self._points[index]

    @property
    def last_price(self) -> Optional[float]:
        return self._points[-1].price if self._points else None

    def prices(self) -> np.ndarray:
        """Prices as a float array, oldest first."""
        return np.array([p.price for p in self._points], dtype=float)

    def times(self) -> List[datetime]:
        return [p.time for p in self._points]

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame({'price': self.prices()}, index=pd.DatetimeIndex(self.times(), name='time'))

    def copy(self) -> 'PriceSeries':
        return PriceSeries(self.symbol, self.capacity, list(self._points))

    @classmethod
    def from_prices(cls, symbol: str, prices: Iterable[float], start: datetime = None,
                    step: timedelta = timedelta(minutes=1), capacity: int = 500) -> 'PriceSeries':
        """Build a series on a regular time grid."""
        start = start or datetime(2024, 1, 2, 9, 0)
        series = cls(symbol, capacity)
        for i, price in enumerate(prices):
            series.add(start + i * step, price)
        return series


@dataclass
class MarketData:
    """Real-time tick."""
    symbol: str
    timestamp: datetime
    price: float


@dataclass(frozen=True)
class MarketSnapshot:
    """Consistent view of the market taken at the start of a decision cycle."""
    timestamp: datetime
    prices: Dict[str, float]
    histories: Dict[str, PriceSeries] = field(default_factory=dict)

    def history(self, symbol: str) -> PriceSeries:
        return self.histories.get(symbol) or PriceSeries(symbol)


class DataSource(ABC):
    """Abstract base class for market data sources."""

    @abstractmethod
    def fetch_history(self, symbol: str, points: int, end: datetime = None) -> pd.DataFrame:
        """Fetch recent price history as a DataFrame with a 'price' column indexed by time."""
        pass

    @abstractmethod
    def fetch_realtime(self, symbol: str, timestamp: datetime = None) -> MarketData:
        """Fetch the latest quote."""
        pass


class YFinanceSource(DataSource):
    """Yahoo Finance data source."""

    def __init__(self, interval: str = "5m", period: str = "5d"):
        self.interval = interval
        self.period = period
        try:
            import yfinance as yf
            self.yf = yf
        except ImportError:
            logger.warning("yfinance not installed. Install with: pip install yfinance")
            self.yf = None

    @property
    def available(self) -> bool:
        return self.yf is not None

    def fetch_history(self, symbol: str, points: int, end: datetime = None) -> pd.DataFrame:
        """Fetch intraday history, falling back to daily bars."""
        if self.yf is None:
            raise ImportError("yfinance not installed")

        ticker = self.yf.Ticker(get_instrument(symbol).yahoo_ticker)
        df = ticker.history(period=self.period, interval=self.interval)
        if df.empty:
            logger.warning(f"No {self.interval} data for {symbol}, falling back to daily bars")
            df = ticker.history(period="2y", interval="1d")
        if df.empty:
            raise ValueError(f"No price history for {symbol}")

        df = df.rename(columns={'Close': 'price'})
        df = df[['price']].dropna().tail(points)
        df.index = pd.DatetimeIndex(df.index)
        if df.index.tz is not None:
            df.index = df.index.tz_convert(None)
        df.index.name = 'time'
        return df

    def fetch_realtime(self, symbol: str, timestamp: datetime = None) -> MarketData:
        """Fetch real-time quote."""
        if self.yf is None:
            raise ImportError("yfinance not installed")

        ticker = self.yf.Ticker(get_instrument(symbol).yahoo_ticker)
        price = ticker.fast_info['last_price']
        return MarketData(symbol=symbol, timestamp=timestamp or utcnow(), price=float(price))


class MockDataSource(DataSource):
    """
    Seeded synthetic feed with a market regime state machine.

    A shared regime (calm, trending up, trending down, volatile) drives
    drift and volatility for every instrument, giving trend and volatility
    clustering across the universe.
    """

    REGIMES = {
        'calm': (0.0, 0.0008),
        'trend_up': (0.0006, 0.0012),
        'trend_down': (-0.0006, 0.0012),
        'volatile': (0.0, 0.004),
    }

    HISTORY_BASE_PRICES = {'005930': 70000, '000660': 100000, 'NVDA': 25, 'TSM': 90, 'MU': 60}
    LIVE_BASE_PRICES = {'005930': 81500, '000660': 228000, 'NVDA': 125, 'TSM': 172, 'MU': 141}

    def __init__(self, seed: Optional[int] = None, switch_probability: float = 0.02,
                 step: timedelta = timedelta(minutes=1)):
        self.rng = np.random.default_rng(seed)
        self.switch_probability = switch_probability
        self.step = step
        self.regime = 'calm'
        self.current_prices: Dict[str, float] = {}

    def _advance_regime(self):
        if self.rng.random() < self.switch_probability:
            choices = [r for r in self.REGIMES if r != self.regime]
            self.regime = choices[int(self.rng.integers(len(choices)))]
            logger.debug(f"Mock feed regime -> {self.regime}")

    def _next_price(self, symbol: str, price: float) -> float:
        drift, vol = self.REGIMES[self.regime]
        price = price * (1 + drift + vol * self.rng.standard_normal())
        if get_instrument(symbol).currency == Currency.KRW:
            return float(max(round(price), 1))
        return float(max(round(price, 2), 0.01))

    def fetch_history(self, symbol: str, points: int, end: datetime = None) -> pd.DataFrame:
        """Generate a synthetic price path ending at `end`."""
        end = end or utcnow().replace(second=0, microsecond=0)
        price = float(self.HISTORY_BASE_PRICES.get(symbol, 100))
        times = [end - (points - 1 - i) * self.step for i in range(points)]

        prices = []
        for _ in range(points):
            self._advance_regime()
            price = self._next_price(symbol, price)
            prices.append(price)

        self.current_prices[symbol] = prices[-1] if prices else price
        return pd.DataFrame({'price': prices}, index=pd.DatetimeIndex(times, name='time'))

    def fetch_realtime(self, symbol: str, timestamp: datetime = None) -> MarketData:
        """Generate the next tick."""
        price = self.current_prices.get(symbol, float(self.LIVE_BASE_PRICES.get(symbol, 100)))
        self._advance_regime()
        price = self._next_price(symbol, price)
        self.current_prices[symbol] = price
        return MarketData(symbol=symbol, timestamp=timestamp or utcnow(), price=price)


class DataManager:
    """
    Main data manager coordinating market data.

    Responsibilities:
    - Seed history from the primary source with mock fallback
    - Ingest ticks into bounded price series
    - Hand out consistent snapshots to the decision loop
    """

    def __init__(self, config=None, source: DataSource = None):
        from ..config import DataConfig
        self.config = config or DataConfig()

        for symbol in self.config.symbols:
            get_instrument(symbol)

        if source is not None:
            self.primary_source = source
        elif self.config.primary_source == "yfinance":
            self.primary_source = YFinanceSource(self.config.yfinance_interval, self.config.yfinance_period)
        else:
            self.primary_source = MockDataSource(
                seed=self.config.mock_seed,
                switch_probability=self.config.regime_switch_probability
            )

        self.backup_source = MockDataSource(seed=self.config.mock_seed)

        self._lock = threading.Lock()
        self.histories: Dict[str, PriceSeries] = {
            symbol: PriceSeries(symbol, self.config.history_capacity) for symbol in self.config.symbols
        }
        self.last_prices: Dict[str, float] = {}
        self.tick_count = 0

    def initialize(self):
        """Seed price history for every tracked symbol."""
        logger.info("Initializing DataManager...")
        end = utcnow().replace(second=0, microsecond=0)

        for symbol in self.config.symbols:
            try:
                df = self.primary_source.fetch_history(symbol, self.config.history_points, end=end)
                logger.info(f"Fetched {len(df)} points for {symbol} from primary source")
            except Exception as e:
                logger.warning(f"Primary source failed for {symbol}: {e}")
                df = self.backup_source.fetch_history(symbol, self.config.history_points, end=end)
                logger.info(f"Fetched {len(df)} points for {symbol} from backup source")
            self.load_history(symbol, df)

        logger.info(f"DataManager initialized with {len(self.histories)} symbols")

    def load_history(self, symbol: str, df: pd.DataFrame):
        """Replace the series for a symbol from a DataFrame with a 'price' column."""
        series = PriceSeries(symbol, self.config.history_capacity)
        for time, price in df['price'].sort_index().items():
            series.add(pd.Timestamp(time).to_pydatetime(), price)

        with self._lock:
            self.histories[symbol] = series
            if series.last_price is not None:
                self.last_prices[symbol] = series.last_price

    def ingest_tick(self, tick: MarketData):
        """Append a tick. Out-of-order ticks are dropped."""
        with self._lock:
            series = self.histories.get(tick.symbol)
            if series is None:
                logger.debug(f"Ignoring tick for untracked symbol {tick.symbol}")
                return
            try:
                series.add(tick.timestamp, tick.price)
            except ValueError as e:
                logger.warning(f"Dropped tick: {e}")
                return
            self.last_prices[tick.symbol] = tick.price
            self.tick_count += 1

    def poll(self, timestamp: datetime = None):
        """Pull one tick per symbol from the primary source, stamped with a shared time."""
        timestamp = timestamp or utcnow()
        for symbol in self.config.symbols:
            try:
                tick = self.primary_source.fetch_realtime(symbol, timestamp)
            except Exception as e:
                logger.warning(f"Realtime fetch failed for {symbol}: {e}")
                continue
            self.ingest_tick(tick)

    def snapshot(self) -> MarketSnapshot:
        """Copy prices and histories under the lock."""
        with self._lock:
            return MarketSnapshot(
                timestamp=utcnow(),
                prices=dict(self.last_prices),
                histories={s: h.copy() for s, h in self.histories.items()}
            )

    def get_history(self, symbol: str) -> PriceSeries:
        with self._lock:
            return self.histories[symbol].copy()

    def get_latest_prices(self) -> Dict[str, float]:
        with self._lock:
            return dict(self.last_prices)

    def get_universe(self) -> List[str]:
        """Get list of all tracked symbols."""
        return list(self.config.symbols)
