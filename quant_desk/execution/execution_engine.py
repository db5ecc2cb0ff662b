"""
Execution Module
================
Execution venue contract, the simulated venue and the engine that routes
ledger-priced orders through a venue before committing them.

Two independent costs apply to every trade:
- deterministic slippage, priced by the ledger before the order is sent
- stochastic venue-side rejection
"""

import asyncio
import numpy as np
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional, Tuple
from enum import Enum
import logging
import uuid

from ..portfolio.ledger import (
    PortfolioLedger, Decision, TradeAction, TradeResult, ErrorCode, PositionType, fx_factor
)
from ..portfolio.bank import CashSweeper

logger = logging.getLogger(__name__)


class FillStatus(Enum):
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"


@dataclass
class Order:
    """Order sent to a venue; price already includes slippage."""
    symbol: str
    action: TradeAction
    shares: int
    price: float
    order_id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=datetime.now)


@dataclass
class Fill:
    """Venue response."""
    order_id: str
    status: FillStatus
    filled_price: float
    shares: int
    reason: Optional[str] = None
    latency_ms: float = 0.0

    @property
    def ok(self) -> bool:
        return self.status == FillStatus.SUCCESS


class ExecutionVenue(ABC):
    """Abstract base class for execution venues."""

    @abstractmethod
    async def connect(self) -> bool:
        """Establish connection to the venue."""
        pass

    @abstractmethod
    async def disconnect(self):
        pass

    @abstractmethod
    async def submit_order(self, order: Order) -> Fill:
        """Submit an order and wait for the fill or rejection."""
        pass


class SimulatedVenue(ExecutionVenue):
    """
    Simulated broker for paper trading and testing.

    Adds a random latency and rejects a small share of orders.
    """

    def __init__(self, min_latency_ms: float = 5.0, max_latency_ms: float = 50.0,
                 rejection_probability: float = 0.02, seed: Optional[int] = None):
        self.min_latency_ms = min_latency_ms
        self.max_latency_ms = max_latency_ms
        self.rejection_probability = rejection_probability
        self.rng = np.random.default_rng(seed)
        self.connected = False
        self.fills: List[Fill] = []

    @classmethod
    def from_config(cls, config=None) -> 'SimulatedVenue':
        from ..config import ExecutionConfig
        config = config or ExecutionConfig()
        return cls(config.venue_min_latency_ms, config.venue_max_latency_ms,
                   config.venue_rejection_probability, config.venue_seed)

    async def connect(self) -> bool:
        self.connected = True
        logger.info("SimulatedVenue connected")
        return True

    async def disconnect(self):
        self.connected = False
        logger.info("SimulatedVenue disconnected")

    async def submit_order(self, order: Order) -> Fill:
        latency = float(self.rng.uniform(self.min_latency_ms, self.max_latency_ms))
        rejected = self.rng.random() < self.rejection_probability
        await asyncio.sleep(latency / 1000)

        if not self.connected:
            fill = Fill(order.order_id, FillStatus.FAILED, 0.0, 0, "Venue not connected", latency)
        elif order.shares <= 0 or order.price <= 0:
            fill = Fill(order.order_id, FillStatus.FAILED, 0.0, 0, "Invalid order", latency)
        elif rejected:
            fill = Fill(order.order_id, FillStatus.FAILED, 0.0, 0, "Rejected by venue", latency)
        else:
            fill = Fill(order.order_id, FillStatus.SUCCESS, order.price, order.shares, None, latency)

        self.fills.append(fill)
        logger.debug(f"Venue {fill.status.value}: {order.action.value} {order.symbol} "
                     f"{order.shares} @ {order.price:.2f} ({latency:.1f}ms)")
        return fill


class ExecutionEngine:
    """
    Routes decisions through the venue and commits them to the ledger.

    Flow per decision:
    1. Top up cash from the bank if a purchase would fall short; a withdrawal
       for an order that never commits goes back to the bank
    2. Dry-run the ledger operation; infeasible trades fail without an order
    3. Send each leg to the venue; any rejection fails the whole operation
    4. Commit to the ledger, unless the caller aborted while waiting
    5. Sweep excess cash to the bank after a directional fill
    """

    def __init__(self, ledger: PortfolioLedger, venue: ExecutionVenue = None,
                 sweeper: CashSweeper = None, config=None):
        from ..config import ExecutionConfig
        self.config = config or ExecutionConfig()
        self.ledger = ledger
        self.venue = venue or SimulatedVenue.from_config(self.config)
        self.sweeper = sweeper
        self.aggressive = False

    async def initialize(self) -> bool:
        success = await self.venue.connect()
        if success:
            logger.info("ExecutionEngine initialized")
        else:
            logger.warning("ExecutionEngine started without a venue connection")
        return success

    async def shutdown(self):
        await self.venue.disconnect()
        logger.info("ExecutionEngine shutdown")

    def _cost(self, action: TradeAction, symbol: str, shares: int, price: float,
              exchange_rate: float) -> float:
        exec_price = self.ledger.slippage.execution_price(action, price, shares)
        return shares * exec_price * fx_factor(symbol, exchange_rate)

    def _ensure_cash(self, required: float) -> float:
        """Top up cash from the bank; returns the amount withdrawn."""
        if self.sweeper is None or required <= self.ledger.cash:
            return 0.0
        result = self.sweeper.cover_shortfall(required)
        if result is None or not result.success:
            return 0.0
        return result.transaction.amount

    def _return_cash(self, withdrawn: float):
        if withdrawn > 0:
            self.sweeper.return_withdrawal(withdrawn)

    async def _send_legs(self, legs: List[Tuple[str, TradeAction, int, float]]) -> Optional[Fill]:
        """Submit legs in order; return the first rejection, or None if all filled."""
        for symbol, action, shares, price in legs:
            exec_price = self.ledger.slippage.execution_price(action, price, shares)
            fill = await self.venue.submit_order(Order(symbol, action, shares, exec_price))
            if not fill.ok:
                return fill
        return None

    async def execute_decision(self, decision: Decision, symbol: str, price: float,
                               exchange_rate: float = 1.0,
                               should_abort: Callable[[], bool] = None) -> Optional[TradeResult]:
        """Execute a directional decision. Returns None if aborted before commit."""
        if decision.action == TradeAction.HOLD:
            return self.ledger.execute(decision, symbol, price, exchange_rate)

        withdrawn = 0.0
        if decision.action in (TradeAction.BUY, TradeAction.COVER) and decision.shares > 0:
            withdrawn = self._ensure_cash(
                self._cost(decision.action, symbol, decision.shares, price, exchange_rate))

        preview = self.ledger.execute(decision, symbol, price, exchange_rate, dry_run=True)
        if not preview.success:
            self._return_cash(withdrawn)
            return self.ledger.execute(decision, symbol, price, exchange_rate)

        rejection = await self._send_legs([(symbol, decision.action, decision.shares, price)])
        if should_abort is not None and should_abort():
            logger.info(f"Discarding {decision.action.value} {symbol}: engine stopping")
            self._return_cash(withdrawn)
            return None
        if rejection is not None:
            self._return_cash(withdrawn)
            return self.ledger.record_failure(
                decision.action, symbol, decision.shares, price, ErrorCode.VENUE_REJECTED,
                f"{decision.reason} [{rejection.reason}]", decision.confidence)

        result = self.ledger.execute(decision, symbol, price, exchange_rate)
        if result.success and self.sweeper is not None:
            self.sweeper.sweep_excess(self.aggressive)
        return result

    async def enter_pair(self, long_symbol: str, short_symbol: str, prices: Dict[str, float],
                         exchange_rate: float = 1.0, reason: str = "",
                         should_abort: Callable[[], bool] = None) -> Optional[TradeResult]:
        long_price = prices[long_symbol]
        short_price = prices[short_symbol]
        long_shares, short_shares = self.ledger.pair_shares(
            long_price, short_price, exchange_rate, long_symbol, short_symbol)

        withdrawn = 0.0
        if long_shares > 0:
            withdrawn = self._ensure_cash(
                self._cost(TradeAction.BUY, long_symbol, long_shares, long_price, exchange_rate))

        args = (long_symbol, short_symbol, long_price, short_price, exchange_rate, long_shares, short_shares, reason)
        preview = self.ledger.enter_pair_trade(*args, dry_run=True)
        if not preview.success:
            self._return_cash(withdrawn)
            return self.ledger.enter_pair_trade(*args)

        rejection = await self._send_legs([
            (long_symbol, TradeAction.BUY, long_shares, long_price),
            (short_symbol, TradeAction.SHORT, short_shares, short_price),
        ])
        if should_abort is not None and should_abort():
            logger.info(f"Discarding pair entry {long_symbol}/{short_symbol}: engine stopping")
            self._return_cash(withdrawn)
            return None
        if rejection is not None:
            self._return_cash(withdrawn)
            return self.ledger.record_failure(
                TradeAction.ENTER_PAIR_TRADE, long_symbol, long_shares, long_price,
                ErrorCode.VENUE_REJECTED, f"{reason} [{rejection.reason}]".strip())

        return self.ledger.enter_pair_trade(*args)

    async def exit_pair(self, pair_id: str, prices: Dict[str, float], exchange_rate: float = 1.0,
                        reason: str = "", should_abort: Callable[[], bool] = None) -> Optional[TradeResult]:
        pair = next((p for p in self.ledger.open_pairs() if p.pair_id == pair_id), None)
        if pair is None:
            return self.ledger.exit_pair_trade(pair_id, 0.0, 0.0, exchange_rate, reason)

        long_price = prices[pair.long_symbol]
        short_price = prices[pair.short_symbol]
        args = (pair_id, long_price, short_price, exchange_rate, reason)

        # The long leg is sold first, so the cover only needs what its proceeds leave short.
        cover_cost = self._cost(TradeAction.COVER, pair.short_symbol, pair.short_shares,
                                short_price, exchange_rate)
        proceeds = self._cost(TradeAction.SELL, pair.long_symbol, pair.shares, long_price, exchange_rate)
        withdrawn = self._ensure_cash(cover_cost - proceeds)

        preview = self.ledger.exit_pair_trade(*args, dry_run=True)
        if not preview.success:
            self._return_cash(withdrawn)
            return self.ledger.exit_pair_trade(*args)

        rejection = await self._send_legs([
            (pair.long_symbol, TradeAction.SELL, pair.shares, long_price),
            (pair.short_symbol, TradeAction.COVER, pair.short_shares, short_price),
        ])
        if should_abort is not None and should_abort():
            logger.info(f"Discarding pair exit {pair_id}: engine stopping")
            self._return_cash(withdrawn)
            return None
        if rejection is not None:
            self._return_cash(withdrawn)
            return self.ledger.record_failure(
                TradeAction.EXIT_PAIR_TRADE, pair.long_symbol, pair.shares, long_price,
                ErrorCode.VENUE_REJECTED, f"{reason} [{rejection.reason}]".strip())

        return self.ledger.exit_pair_trade(*args)

    async def risk_off(self, prices: Dict[str, float], exchange_rate: float = 1.0,
                       should_abort: Callable[[], bool] = None) -> List[TradeResult]:
        """Liquidate directional holdings, then exit every pair, via the venue."""
        results = []
        for symbol, holding in list(self.ledger.snapshot().holdings.items()):
            if holding.is_pair_leg:
                continue
            price = prices.get(symbol)
            if price is None:
                logger.warning(f"Risk off: no price for {symbol}, skipping")
                continue
            action = TradeAction.SELL if holding.position_type == PositionType.LONG else TradeAction.COVER
            decision = Decision(action, holding.shares, "Risk off: liquidate", 1.0)
            result = await self.execute_decision(decision, symbol, price, exchange_rate, should_abort)
            if result is not None:
                results.append(result)

        for pair in self.ledger.open_pairs():
            if pair.long_symbol not in prices or pair.short_symbol not in prices:
                logger.warning(f"Risk off: missing price for pair {pair.pair_id}, skipping")
                continue
            result = await self.exit_pair(pair.pair_id, prices, exchange_rate,
                                          "Risk off: exit pair", should_abort)
            if result is not None:
                results.append(result)
        return results
