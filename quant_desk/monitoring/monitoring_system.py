"""
Monitoring Module
=================
Activity log ring, engine state and portfolio performance tracking.

The activity log is the desk's audit trail. It is bounded and not
authoritative: the Portfolio is the only source of truth.
"""

import pandas as pd
import numpy as np
from collections import deque
from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from enum import Enum
import itertools
import logging
import threading

logger = logging.getLogger(__name__)


class EngineState(Enum):
    """Engine operation states."""
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ActivityLogEntry:
    """Immutable audit record for one trade attempt or cash transfer."""
    id: str
    timestamp: datetime
    action: str
    symbol: str
    shares: int
    price: float
    reason: str
    confidence: Optional[float] = None
    success: bool = True
    error: Optional[str] = None

    def to_dict(self) -> dict:
        data = asdict(self)
        data['timestamp'] = self.timestamp.isoformat()
        return data


class ActivityLog:
    """Bounded ring of the most recent activity entries (newest last)."""

    def __init__(self, capacity: int = 200):
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self._entries = deque(maxlen=capacity)
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def record(self, action: str, symbol: str, shares: int, price: float, reason: str,
               confidence: Optional[float] = None, success: bool = True,
               error: Optional[str] = None) -> ActivityLogEntry:
        with self._lock:
            entry = ActivityLogEntry(
                id=f"ACT{next(self._counter):06d}",
                timestamp=datetime.now(),
                action=action,
                symbol=symbol,
                shares=shares,
                price=price,
                reason=reason,
                confidence=confidence,
                success=success,
                error=error
            )
            self._entries.append(entry)

        if success:
            logger.info(f"[{action}] {symbol} {shares} @ {price:,.2f}: {reason}")
        else:
            logger.warning(f"[{action} FAILED:{error}] {symbol} {shares} @ {price:,.2f}: {reason}")
        return entry

    def recent(self, n: int = None) -> List[ActivityLogEntry]:
        with self._lock:
            entries = list(self._entries)
        return entries if n is None else entries[-n:]

    def __len__(self) -> int:
        return len(self._entries)

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame([e.to_dict() for e in self.recent()])


@dataclass
class PerformanceMetrics:
    """Portfolio performance summary."""
    total_return: float = 0.0
    total_return_pct: float = 0.0
    current_drawdown: float = 0.0
    max_drawdown: float = 0.0
    volatility_realized: float = 0.0
    total_trades: int = 0
    failed_trades: int = 0
    cycles: int = 0


class PerformanceTracker:
    """Tracks portfolio value per cycle and trade counts."""

    def __init__(self, initial_value: float = 1000000):
        self.initial_value = initial_value
        self.equity_curve: List[Tuple[pd.Timestamp, float]] = []
        self.peak_value = initial_value
        self.total_trades = 0
        self.failed_trades = 0

    def update_value(self, value: float, timestamp: pd.Timestamp = None):
        self.equity_curve.append((timestamp or pd.Timestamp.now(), value))
        if value > self.peak_value:
            self.peak_value = value

    def record_trade(self, success: bool):
        if success:
            self.total_trades += 1
        else:
            self.failed_trades += 1

    def get_metrics(self) -> PerformanceMetrics:
        metrics = PerformanceMetrics(
            total_trades=self.total_trades,
            failed_trades=self.failed_trades,
            cycles=len(self.equity_curve)
        )
        if not self.equity_curve:
            return metrics

        current = self.equity_curve[-1][1]
        metrics.total_return = current - self.initial_value
        metrics.total_return_pct = metrics.total_return / self.initial_value if self.initial_value else 0.0
        metrics.current_drawdown = (current - self.peak_value) / self.peak_value if self.peak_value > 0 else 0.0
        metrics.max_drawdown = self._calculate_max_drawdown()

        values = np.array([v for _, v in self.equity_curve], dtype=float)
        if len(values) > 2:
            returns = np.diff(values) / values[:-1]
            metrics.volatility_realized = float(np.std(returns, ddof=1))
        return metrics

    def _calculate_max_drawdown(self) -> float:
        """Calculate maximum historical drawdown (<= 0)."""
        if len(self.equity_curve) < 2:
            return 0.0

        peak = self.initial_value
        max_dd = 0.0
        for _, value in self.equity_curve:
            if value > peak:
                peak = value
            dd = (value - peak) / peak if peak > 0 else 0.0
            max_dd = min(max_dd, dd)
        return max_dd

    def get_equity_series(self) -> pd.Series:
        if not self.equity_curve:
            return pd.Series(dtype=float)
        return pd.Series([v for _, v in self.equity_curve], index=[t for t, _ in self.equity_curve])


class MonitoringSystem:
    """
    Coordinates the activity log, performance tracking and engine state.
    """

    def __init__(self, config=None, initial_value: float = 1000000):
        from ..config import MonitoringConfig
        self.config = config or MonitoringConfig()

        self.activity_log = ActivityLog(self.config.activity_log_capacity)
        self.performance = PerformanceTracker(initial_value)
        self.state = EngineState.STOPPED
        self.error_count = 0
        self.last_update: Optional[datetime] = None

    def set_state(self, state: EngineState):
        if state != self.state:
            logger.info(f"Engine state: {self.state.value} -> {state.value}")
            self.state = state

    def update(self, portfolio_value: float):
        self.performance.update_value(portfolio_value)
        self.last_update = datetime.now()

    def record_error(self, error: Exception):
        self.error_count += 1
        logger.error(f"Engine error #{self.error_count}: {error}")

    def get_performance_metrics(self) -> PerformanceMetrics:
        return self.performance.get_metrics()

    def get_status(self) -> Dict:
        metrics = self.performance.get_metrics()
        return {
            'state': self.state.value,
            'error_count': self.error_count,
            'last_update': self.last_update,
            'total_return_pct': metrics.total_return_pct,
            'max_drawdown': metrics.max_drawdown,
            'total_trades': metrics.total_trades,
            'failed_trades': metrics.failed_trades,
            'activity_entries': len(self.activity_log)
        }

    def generate_report(self) -> str:
        """Generate a text performance report."""
        metrics = self.performance.get_metrics()

        return f"""
╔══════════════════════════════════════════════════════════════╗
║                    QUANT DESK SESSION REPORT                 ║
╠══════════════════════════════════════════════════════════════╣
║ Status: {self.state.value.upper():53s}║
║ Time: {pd.Timestamp.now().strftime('%Y-%m-%d %H:%M:%S'):55s}║
╠══════════════════════════════════════════════════════════════╣
║ Total Return:       {metrics.total_return:>18,.0f} KRW ({metrics.total_return_pct:>7.2%})    ║
║ Current Drawdown:   {metrics.current_drawdown:>22.2%}                   ║
║ Max Drawdown:       {metrics.max_drawdown:>22.2%}                   ║
║ Cycles:             {metrics.cycles:>22d}                   ║
║ Trades Filled:      {metrics.total_trades:>22d}                   ║
║ Trades Rejected:    {metrics.failed_trades:>22d}                   ║
║ Engine Errors:      {self.error_count:>22d}                   ║
╚══════════════════════════════════════════════════════════════╝
"""
