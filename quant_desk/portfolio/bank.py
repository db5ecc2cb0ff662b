"""
Virtual Bank
============
Overflow account for surplus desk cash and the sweep rules that use it.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional
import itertools
import math
import logging
import threading

from .ledger import PortfolioLedger

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BankTransaction:
    id: str
    type: str  # DEPOSIT / WITHDRAW
    amount: float
    timestamp: datetime


@dataclass(frozen=True)
class BankResult:
    success: bool
    new_balance: float
    transaction: Optional[BankTransaction] = None
    message: Optional[str] = None


class VirtualBank:
    """In-memory bank account."""

    def __init__(self, initial_balance: float = 0.0):
        self.balance = float(initial_balance)
        self.transactions: List[BankTransaction] = []
        self._counter = itertools.count(1)
        self._lock = threading.Lock()

    def _record(self, kind: str, amount: float) -> BankTransaction:
        txn = BankTransaction(f"TXN{next(self._counter):05d}", kind, amount, datetime.now())
        self.transactions.append(txn)
        return txn

    def deposit(self, amount: float) -> BankResult:
        with self._lock:
            if amount <= 0:
                return BankResult(False, self.balance, message="Deposit amount must be positive")
            self.balance += amount
            txn = self._record("DEPOSIT", amount)
            return BankResult(True, self.balance, txn)

    def withdraw(self, amount: float) -> BankResult:
        with self._lock:
            if amount <= 0:
                return BankResult(False, self.balance, message="Withdrawal amount must be positive")
            if amount > self.balance:
                return BankResult(False, self.balance,
                                  message=f"Insufficient bank balance: {self.balance:,.0f} < {amount:,.0f}")
            self.balance -= amount
            txn = self._record("WITHDRAW", amount)
            return BankResult(True, self.balance, txn)


class CashSweeper:
    """
    Moves cash between the ledger and the bank.

    - Auto-deposit: cash above the threshold is swept down to the baseline.
    - Auto-withdraw: a shortfall before a purchase is topped up from the bank.
    - A withdrawal whose trade is rejected or discarded goes back to the bank.
    """

    def __init__(self, ledger: PortfolioLedger, bank: VirtualBank, config=None):
        from ..config import BankConfig
        self.config = config or BankConfig()
        self.ledger = ledger
        self.bank = bank

    def limits(self, aggressive: bool = False):
        if aggressive:
            return self.config.cash_threshold_aggressive, self.config.cash_baseline_aggressive
        return self.config.cash_threshold, self.config.cash_baseline

    def sweep_excess(self, aggressive: bool = False) -> Optional[BankResult]:
        """Deposit cash above the threshold, leaving the baseline."""
        if not self.config.auto_deposit:
            return None
        threshold, baseline = self.limits(aggressive)
        cash = self.ledger.cash
        if cash <= threshold:
            return None

        excess = cash - baseline
        result = self.bank.deposit(excess)
        if result.success:
            self.ledger.adjust_cash(-excess, "DEPOSIT", f"Auto-deposit of excess cash above {threshold:,.0f}")
        else:
            logger.warning(f"Auto-deposit failed: {result.message}")
        return result

    def cover_shortfall(self, required: float) -> Optional[BankResult]:
        """Withdraw enough to make `required` KRW available, rounded up to whole won."""
        if not self.config.auto_withdraw:
            return None
        shortfall = math.ceil(required - self.ledger.cash)
        if shortfall <= 0:
            return None

        result = self.bank.withdraw(shortfall)
        if result.success:
            self.ledger.adjust_cash(shortfall, "WITHDRAW", "Auto-withdraw to cover trade")
        else:
            logger.info(f"Auto-withdraw skipped: {result.message}")
        return result

    def return_withdrawal(self, amount: float) -> Optional[BankResult]:
        """Put back cash withdrawn for a trade that never filled."""
        if amount <= 0:
            return None
        result = self.bank.deposit(amount)
        if result.success:
            self.ledger.adjust_cash(-amount, "DEPOSIT", "Return unused withdrawal")
        else:
            logger.warning(f"Returning withdrawal failed: {result.message}")
        return result
