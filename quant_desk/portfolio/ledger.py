"""
Portfolio Ledger & Trade Executor
=================================
The desk's only mutable shared state and the operations that change it.

Per instrument the ledger moves FLAT <-> LONG <-> FLAT or
FLAT <-> SHORT <-> FLAT; the two directions never coexist. Pair-trade legs
are owned by their PairTrade record and only open and close together.

Every operation:
- prices the fill with the deterministic slippage model first
- converts USD notionals to KRW cash with the supplied exchange rate
- either commits completely or leaves the Portfolio untouched
- appends exactly one activity entry (success or failure)
- never raises for a business failure; the ErrorCode is returned instead
"""

import copy
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from enum import Enum
import logging
import math
import threading

from ..data.data_manager import Currency, get_instrument
from ..monitoring.monitoring_system import ActivityLog, ActivityLogEntry

logger = logging.getLogger(__name__)


class TradeAction(Enum):
    """Trade decisions."""
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"
    SHORT = "SHORT"
    COVER = "COVER"
    ENTER_PAIR_TRADE = "ENTER_PAIR_TRADE"
    EXIT_PAIR_TRADE = "EXIT_PAIR_TRADE"


class PositionType(Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class ErrorCode(Enum):
    """Recoverable failure taxonomy."""
    INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
    INSUFFICIENT_POSITION = "INSUFFICIENT_POSITION"
    POSITION_CONFLICT = "POSITION_CONFLICT"
    NO_POSITION = "NO_POSITION"
    ORACLE_ERROR = "ORACLE_ERROR"
    VENUE_REJECTED = "VENUE_REJECTED"
    INVALID_ORDER = "INVALID_ORDER"


@dataclass
class Holding:
    """Open position. A holding with zero shares never exists."""
    shares: int
    avg_price: float  # native currency, slippage included
    position_type: PositionType
    pair_id: Optional[str] = None

    @property
    def is_pair_leg(self) -> bool:
        return self.pair_id is not None

    def to_dict(self) -> dict:
        return {
            'shares': self.shares,
            'avg_price': self.avg_price,
            'position_type': self.position_type.value,
            'pair_id': self.pair_id
        }


@dataclass
class PairTrade:
    """Market-neutral pair owning one LONG and one SHORT holding."""
    pair_id: str
    long_symbol: str
    short_symbol: str
    shares: int
    entry_price_long: float
    entry_price_short: float
    entry_spread: float
    entry_time: datetime
    short_shares: Optional[int] = None

    def __post_init__(self):
        if self.short_shares is None:
            self.short_shares = self.shares

    def to_dict(self) -> dict:
        return {
            'pair_id': self.pair_id,
            'long_symbol': self.long_symbol,
            'short_symbol': self.short_symbol,
            'shares': self.shares,
            'short_shares': self.short_shares,
            'entry_price_long': self.entry_price_long,
            'entry_price_short': self.entry_price_short,
            'entry_spread': self.entry_spread,
            'entry_time': self.entry_time.isoformat()
        }


@dataclass
class Portfolio:
    """Cash in KRW, holdings by symbol, open pair trades by id."""
    cash: float
    holdings: Dict[str, Holding] = field(default_factory=dict)
    pair_trades: Dict[str, PairTrade] = field(default_factory=dict)

    def copy(self) -> 'Portfolio':
        return copy.deepcopy(self)

    def check_invariants(self) -> List[str]:
        """Return invariant violations (empty when consistent)."""
        problems = []
        for symbol, holding in self.holdings.items():
            if holding.shares <= 0:
                problems.append(f"{symbol}: non-positive shares {holding.shares}")
            if holding.pair_id is not None and holding.pair_id not in self.pair_trades:
                problems.append(f"{symbol}: references missing pair {holding.pair_id}")
        for pair_id, pair in self.pair_trades.items():
            long_leg = self.holdings.get(pair.long_symbol)
            short_leg = self.holdings.get(pair.short_symbol)
            if long_leg is None or long_leg.position_type != PositionType.LONG or long_leg.pair_id != pair_id:
                problems.append(f"{pair_id}: long leg {pair.long_symbol} missing")
            if short_leg is None or short_leg.position_type != PositionType.SHORT or short_leg.pair_id != pair_id:
                problems.append(f"{pair_id}: short leg {pair.short_symbol} missing")
        return problems

    def to_dict(self) -> dict:
        return {
            'cash': self.cash,
            'holdings': {s: h.to_dict() for s, h in self.holdings.items()},
            'pair_trades': {p: t.to_dict() for p, t in self.pair_trades.items()}
        }


@dataclass(frozen=True)
class Decision:
    """Ephemeral trade signal, consumed once by the executor."""
    action: TradeAction
    shares: int = 0
    reason: str = ""
    confidence: float = 0.0
    error: Optional[ErrorCode] = None

    @classmethod
    def hold(cls, reason: str, error: Optional[ErrorCode] = None) -> 'Decision':
        return cls(TradeAction.HOLD, 0, reason, 0.0, error)


@dataclass
class TradeResult:
    """Outcome of one ledger operation."""
    success: bool
    action: TradeAction
    symbol: str
    shares: int
    price: float
    message: str
    error: Optional[ErrorCode] = None
    entry: Optional[ActivityLogEntry] = None


class SlippageModel:
    """
    Deterministic, size-scaled slippage:
        slippage = price * min(cap, shares / 1000 * slope)

    BUY / COVER pay price + slippage; SELL / SHORT receive price - slippage.
    """

    PAYING = (TradeAction.BUY, TradeAction.COVER)

    def __init__(self, cap: float = 0.005, slope: float = 0.001):
        self.cap = cap
        self.slope = slope

    def slippage(self, price: float, shares: int) -> float:
        return price * min(self.cap, (shares / 1000) * self.slope)

    def execution_price(self, action: TradeAction, price: float, shares: int) -> float:
        slip = self.slippage(price, shares)
        if action in self.PAYING:
            return price + slip
        return price - slip


def fx_factor(symbol: str, exchange_rate: float) -> float:
    """Multiplier converting the instrument's currency into KRW."""
    return exchange_rate if get_instrument(symbol).currency == Currency.USD else 1.0


def portfolio_value(portfolio: Portfolio, prices: Dict[str, float], exchange_rate: float) -> float:
    """Cash plus longs minus shorts, in KRW. Unpriced holdings use their avg price."""
    total = portfolio.cash
    for symbol, holding in portfolio.holdings.items():
        price = prices.get(symbol, holding.avg_price)
        value = holding.shares * price * fx_factor(symbol, exchange_rate)
        total += value if holding.position_type == PositionType.LONG else -value
    return total


class _Rejected(Exception):
    """Internal signal carrying an ErrorCode out of an _apply step."""

    def __init__(self, error: ErrorCode, message: str):
        super().__init__(message)
        self.error = error
        self.message = message


class PortfolioLedger:
    """
    Trade executor over a single Portfolio.

    Operations are serialised by a lock; each is applied to a scratch copy
    and swapped in only when every step succeeded.
    """

    def __init__(self, initial_cash: float = 1000000, config=None,
                 activity_log: ActivityLog = None, portfolio: Portfolio = None):
        from ..config import ExecutionConfig
        self.config = config or ExecutionConfig()
        self.slippage = SlippageModel(self.config.slippage_cap, self.config.slippage_slope)
        self.activity_log = activity_log or ActivityLog()
        self.portfolio = portfolio or Portfolio(cash=float(initial_cash))
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    def snapshot(self) -> Portfolio:
        with self._lock:
            return self.portfolio.copy()

    @property
    def cash(self) -> float:
        return self.portfolio.cash

    def holding(self, symbol: str) -> Optional[Holding]:
        return self.portfolio.holdings.get(symbol)

    def value(self, prices: Dict[str, float], exchange_rate: float) -> float:
        with self._lock:
            return portfolio_value(self.portfolio, prices, exchange_rate)

    # ------------------------------------------------------------------
    # Apply steps (mutate the given portfolio or raise _Rejected)
    # ------------------------------------------------------------------

    @staticmethod
    def _validate(symbol: str, shares: int, price: float):
        try:
            get_instrument(symbol)
        except ValueError as e:
            raise _Rejected(ErrorCode.INVALID_ORDER, str(e))
        if shares <= 0:
            raise _Rejected(ErrorCode.INVALID_ORDER, f"Invalid share count {shares}")
        if not price or price <= 0 or math.isnan(price):
            raise _Rejected(ErrorCode.INVALID_ORDER, f"Invalid price {price}")

    def _apply_buy(self, pf: Portfolio, symbol: str, shares: int, price: float,
                   exchange_rate: float, pair_id: str = None) -> float:
        self._validate(symbol, shares, price)
        exec_price = self.slippage.execution_price(TradeAction.BUY, price, shares)
        cost = shares * exec_price * fx_factor(symbol, exchange_rate)

        existing = pf.holdings.get(symbol)
        if existing is not None:
            if existing.position_type == PositionType.SHORT:
                raise _Rejected(ErrorCode.POSITION_CONFLICT, f"{symbol} is held short")
            if existing.is_pair_leg or pair_id is not None:
                raise _Rejected(ErrorCode.POSITION_CONFLICT,
                                f"{symbol} already held ({existing.pair_id or 'directional'})")
        if pf.cash < cost:
            raise _Rejected(ErrorCode.INSUFFICIENT_FUNDS,
                            f"Insufficient cash: {pf.cash:,.0f} < {cost:,.0f}")

        if existing is not None:
            new_shares = existing.shares + shares
            existing.avg_price = (existing.shares * existing.avg_price + shares * exec_price) / new_shares
            existing.shares = new_shares
        else:
            pf.holdings[symbol] = Holding(shares, exec_price, PositionType.LONG, pair_id)
        pf.cash -= cost
        return exec_price

    def _apply_sell(self, pf: Portfolio, symbol: str, shares: int, price: float,
                    exchange_rate: float, closing_pair: bool = False) -> float:
        self._validate(symbol, shares, price)
        existing = pf.holdings.get(symbol)
        if existing is None or existing.position_type != PositionType.LONG or existing.shares < shares:
            held = 0 if existing is None or existing.position_type != PositionType.LONG else existing.shares
            raise _Rejected(ErrorCode.INSUFFICIENT_POSITION,
                            f"Insufficient long position in {symbol}: {held} < {shares}")
        if existing.is_pair_leg and not closing_pair:
            raise _Rejected(ErrorCode.POSITION_CONFLICT,
                            f"{symbol} is a leg of pair {existing.pair_id}")

        exec_price = self.slippage.execution_price(TradeAction.SELL, price, shares)
        pf.cash += shares * exec_price * fx_factor(symbol, exchange_rate)
        existing.shares -= shares
        if existing.shares == 0:
            del pf.holdings[symbol]
        return exec_price

    def _apply_short(self, pf: Portfolio, symbol: str, shares: int, price: float,
                     exchange_rate: float, pair_id: str = None) -> float:
        self._validate(symbol, shares, price)
        if symbol in pf.holdings:
            raise _Rejected(ErrorCode.POSITION_CONFLICT, f"Position already held in {symbol}")

        exec_price = self.slippage.execution_price(TradeAction.SHORT, price, shares)
        pf.holdings[symbol] = Holding(shares, exec_price, PositionType.SHORT, pair_id)
        pf.cash += shares * exec_price * fx_factor(symbol, exchange_rate)
        return exec_price

    def _apply_cover(self, pf: Portfolio, symbol: str, shares: int, price: float,
                     exchange_rate: float, closing_pair: bool = False) -> float:
        self._validate(symbol, shares, price)
        existing = pf.holdings.get(symbol)
        if existing is None or existing.position_type != PositionType.SHORT or existing.shares < shares:
            held = 0 if existing is None or existing.position_type != PositionType.SHORT else existing.shares
            raise _Rejected(ErrorCode.NO_POSITION,
                            f"No short position to cover in {symbol}: {held} < {shares}")
        if existing.is_pair_leg and not closing_pair:
            raise _Rejected(ErrorCode.POSITION_CONFLICT,
                            f"{symbol} is a leg of pair {existing.pair_id}")

        exec_price = self.slippage.execution_price(TradeAction.COVER, price, shares)
        cost = shares * exec_price * fx_factor(symbol, exchange_rate)
        if pf.cash < cost:
            raise _Rejected(ErrorCode.INSUFFICIENT_FUNDS,
                            f"Insufficient cash to cover: {pf.cash:,.0f} < {cost:,.0f}")

        pf.cash -= cost
        existing.shares -= shares
        if existing.shares == 0:
            del pf.holdings[symbol]
        return exec_price

    # ------------------------------------------------------------------
    # Transaction wrapper
    # ------------------------------------------------------------------

    def _transact(self, action: TradeAction, symbol: str, shares: int, price: float,
                  reason: str, confidence: Optional[float], apply_fn, dry_run: bool = False) -> TradeResult:
        with self._lock:
            work = self.portfolio.copy()
            try:
                exec_price = apply_fn(work)
            except _Rejected as rejected:
                result = TradeResult(False, action, symbol, shares, price, rejected.message, rejected.error)
            else:
                if not dry_run:
                    self.portfolio = work
                result = TradeResult(True, action, symbol, shares, exec_price, reason)

        if dry_run:
            return result

        if result.success:
            result.entry = self.activity_log.record(
                action.value, symbol, shares, result.price, reason, confidence)
        else:
            result.entry = self.activity_log.record(
                action.value, symbol, shares, price, f"{reason} [{result.message}]".strip(),
                confidence, success=False, error=result.error.value)
        return result

    def record_failure(self, action: TradeAction, symbol: str, shares: int, price: float,
                       error: ErrorCode, message: str, confidence: Optional[float] = None) -> TradeResult:
        """Log a trade that failed outside the ledger (e.g. venue rejection)."""
        entry = self.activity_log.record(action.value, symbol, shares, price, message,
                                         confidence, success=False, error=error.value)
        return TradeResult(False, action, symbol, shares, price, message, error, entry)

    def record_hold(self, symbol: str, price: float, reason: str,
                    confidence: Optional[float] = None) -> ActivityLogEntry:
        return self.activity_log.record(TradeAction.HOLD.value, symbol, 0, price, reason, confidence)

    # ------------------------------------------------------------------
    # Directional trades
    # ------------------------------------------------------------------

    def buy(self, symbol: str, shares: int, price: float, exchange_rate: float = 1.0,
            reason: str = "", confidence: float = None, dry_run: bool = False) -> TradeResult:
        return self._transact(TradeAction.BUY, symbol, shares, price, reason, confidence,
                              lambda pf: self._apply_buy(pf, symbol, shares, price, exchange_rate), dry_run)

    def sell(self, symbol: str, shares: int, price: float, exchange_rate: float = 1.0,
             reason: str = "", confidence: float = None, dry_run: bool = False) -> TradeResult:
        return self._transact(TradeAction.SELL, symbol, shares, price, reason, confidence,
                              lambda pf: self._apply_sell(pf, symbol, shares, price, exchange_rate), dry_run)

    def short(self, symbol: str, shares: int, price: float, exchange_rate: float = 1.0,
              reason: str = "", confidence: float = None, dry_run: bool = False) -> TradeResult:
        return self._transact(TradeAction.SHORT, symbol, shares, price, reason, confidence,
                              lambda pf: self._apply_short(pf, symbol, shares, price, exchange_rate), dry_run)

    def cover(self, symbol: str, shares: int, price: float, exchange_rate: float = 1.0,
              reason: str = "", confidence: float = None, dry_run: bool = False) -> TradeResult:
        return self._transact(TradeAction.COVER, symbol, shares, price, reason, confidence,
                              lambda pf: self._apply_cover(pf, symbol, shares, price, exchange_rate), dry_run)

    DIRECTIONAL = {
        TradeAction.BUY: 'buy',
        TradeAction.SELL: 'sell',
        TradeAction.SHORT: 'short',
        TradeAction.COVER: 'cover',
    }

    def execute(self, decision: Decision, symbol: str, price: float, exchange_rate: float = 1.0,
                dry_run: bool = False) -> TradeResult:
        """Apply a directional decision. HOLD only records the reason."""
        if decision.action == TradeAction.HOLD:
            entry = None if dry_run else self.record_hold(symbol, price, decision.reason, decision.confidence)
            return TradeResult(True, TradeAction.HOLD, symbol, 0, price, decision.reason, decision.error, entry)

        method = self.DIRECTIONAL.get(decision.action)
        if method is None:
            message = f"{decision.action.value} is not a directional action"
            if dry_run:
                return TradeResult(False, decision.action, symbol, decision.shares, price,
                                   message, ErrorCode.INVALID_ORDER)
            return self.record_failure(decision.action, symbol, decision.shares, price,
                                       ErrorCode.INVALID_ORDER, message, decision.confidence)

        return getattr(self, method)(symbol, decision.shares, price, exchange_rate,
                                     decision.reason, decision.confidence, dry_run)

    def liquidate(self, symbol: str, price: float, exchange_rate: float = 1.0,
                  reason: str = "Risk off: liquidate") -> Optional[TradeResult]:
        """
        Close a directional holding in full. Returns None when there is
        nothing to close or the holding is a pair leg.
        """
        holding = self.holding(symbol)
        if holding is None:
            return None
        if holding.is_pair_leg:
            logger.debug(f"Skipping liquidation of {symbol}: leg of {holding.pair_id}")
            return None

        if holding.position_type == PositionType.LONG:
            return self.sell(symbol, holding.shares, price, exchange_rate, reason)
        return self.cover(symbol, holding.shares, price, exchange_rate, reason)

    # ------------------------------------------------------------------
    # Pair trades
    # ------------------------------------------------------------------

    @staticmethod
    def pair_id_for(long_symbol: str, short_symbol: str) -> str:
        return f"{short_symbol}-{long_symbol}"

    def pair_shares(self, long_price: float, short_price: float, exchange_rate: float,
                    long_symbol: str, short_symbol: str) -> Tuple[int, int]:
        """Leg sizes from the configured policy (fixed shares or fixed KRW notional)."""
        if self.config.pair_sizing == "fixed_notional":
            notional = self.config.pair_notional_krw
            long_krw = long_price * fx_factor(long_symbol, exchange_rate)
            short_krw = short_price * fx_factor(short_symbol, exchange_rate)
            long_shares = int(notional // long_krw) if long_krw > 0 else 0
            short_shares = int(notional // short_krw) if short_krw > 0 else 0
            return long_shares, short_shares
        return self.config.pair_shares, self.config.pair_shares

    def enter_pair_trade(self, long_symbol: str, short_symbol: str, long_price: float,
                         short_price: float, exchange_rate: float = 1.0, long_shares: int = None,
                         short_shares: int = None, reason: str = "", confidence: float = None,
                         dry_run: bool = False) -> TradeResult:
        """BUY the long leg and SHORT the short leg, both or neither."""
        if long_shares is None or short_shares is None:
            sized_long, sized_short = self.pair_shares(long_price, short_price, exchange_rate,
                                                       long_symbol, short_symbol)
            long_shares = sized_long if long_shares is None else long_shares
            short_shares = sized_short if short_shares is None else short_shares

        pair_id = self.pair_id_for(long_symbol, short_symbol)

        def apply(pf: Portfolio) -> float:
            if long_symbol == short_symbol:
                raise _Rejected(ErrorCode.INVALID_ORDER, "Pair legs must differ")
            if pair_id in pf.pair_trades:
                raise _Rejected(ErrorCode.POSITION_CONFLICT, f"Pair {pair_id} already open")
            long_exec = self._apply_buy(pf, long_symbol, long_shares, long_price, exchange_rate, pair_id)
            short_exec = self._apply_short(pf, short_symbol, short_shares, short_price, exchange_rate, pair_id)
            pf.pair_trades[pair_id] = PairTrade(
                pair_id=pair_id,
                long_symbol=long_symbol,
                short_symbol=short_symbol,
                shares=long_shares,
                short_shares=short_shares,
                entry_price_long=long_exec,
                entry_price_short=short_exec,
                entry_spread=short_price / long_price,
                entry_time=datetime.now()
            )
            return long_exec

        reason = reason or f"Enter pair {pair_id}: long {long_symbol}, short {short_symbol}"
        return self._transact(TradeAction.ENTER_PAIR_TRADE, long_symbol, long_shares, long_price,
                              reason, confidence, apply, dry_run)

    def exit_pair_trade(self, pair_id: str, long_price: float, short_price: float,
                        exchange_rate: float = 1.0, reason: str = "", confidence: float = None,
                        dry_run: bool = False) -> TradeResult:
        """SELL the long leg and COVER the short leg in full, then drop the pair."""
        pair = self.portfolio.pair_trades.get(pair_id)
        symbol = pair.long_symbol if pair else pair_id
        shares = pair.shares if pair else 0

        def apply(pf: Portfolio) -> float:
            record = pf.pair_trades.get(pair_id)
            if record is None:
                raise _Rejected(ErrorCode.NO_POSITION, f"No open pair {pair_id}")
            long_exec = self._apply_sell(pf, record.long_symbol, record.shares, long_price,
                                         exchange_rate, closing_pair=True)
            self._apply_cover(pf, record.short_symbol, record.short_shares, short_price,
                              exchange_rate, closing_pair=True)
            del pf.pair_trades[pair_id]
            return long_exec

        reason = reason or f"Exit pair {pair_id}"
        return self._transact(TradeAction.EXIT_PAIR_TRADE, symbol, shares, long_price,
                              reason, confidence, apply, dry_run)

    def open_pairs(self) -> List[PairTrade]:
        with self._lock:
            return [copy.copy(p) for p in self.portfolio.pair_trades.values()]

    def risk_off(self, prices: Dict[str, float], exchange_rate: float = 1.0) -> List[TradeResult]:
        """Liquidate every directional holding, then exit every pair."""
        results = []
        for symbol in list(self.portfolio.holdings.keys()):
            price = prices.get(symbol)
            if price is None:
                logger.warning(f"Risk off: no price for {symbol}, skipping")
                continue
            result = self.liquidate(symbol, price, exchange_rate)
            if result is not None:
                results.append(result)

        for pair in self.open_pairs():
            long_price = prices.get(pair.long_symbol)
            short_price = prices.get(pair.short_symbol)
            if long_price is None or short_price is None:
                logger.warning(f"Risk off: missing price for pair {pair.pair_id}, skipping")
                continue
            results.append(self.exit_pair_trade(pair.pair_id, long_price, short_price,
                                                exchange_rate, "Risk off: exit pair"))
        return results

    # ------------------------------------------------------------------
    # Cash transfers
    # ------------------------------------------------------------------

    def adjust_cash(self, amount: float, label: str, reason: str = "") -> ActivityLogEntry:
        """Move cash in (+) or out (-) of the portfolio for bank transfers."""
        with self._lock:
            self.portfolio.cash += amount
        return self.activity_log.record(label, "CASH", 0, abs(amount), reason or label)
