import pytest

from quant_desk.config import BankConfig
from quant_desk.portfolio import PortfolioLedger, VirtualBank, CashSweeper


def test_deposit_and_withdraw():
    bank = VirtualBank(1000)

    result = bank.deposit(500)
    assert result.success
    assert result.new_balance == 1500
    assert result.transaction.id == "TXN00001"
    assert result.transaction.type == "DEPOSIT"

    result = bank.withdraw(200)
    assert result.success
    assert bank.balance == 1300
    assert result.transaction.id == "TXN00002"


def test_invalid_transfers_fail_without_change():
    bank = VirtualBank(1000)
    assert not bank.deposit(0).success
    assert not bank.withdraw(-5).success
    overdraw = bank.withdraw(5000)
    assert not overdraw.success
    assert overdraw.new_balance == 1000
    assert bank.transactions == []


def test_sweep_deposits_down_to_baseline():
    ledger = PortfolioLedger(initial_cash=12000000)
    bank = VirtualBank()
    sweeper = CashSweeper(ledger, bank)

    result = sweeper.sweep_excess()

    assert result.success
    assert bank.balance == pytest.approx(7000000)
    assert ledger.cash == pytest.approx(5000000)
    assert ledger.activity_log.recent(1)[0].symbol == "CASH"


def test_no_sweep_below_threshold():
    ledger = PortfolioLedger(initial_cash=12000000)
    sweeper = CashSweeper(ledger, VirtualBank())
    assert sweeper.sweep_excess(aggressive=True) is None
    assert ledger.cash == 12000000


def test_aggressive_sweep_limits():
    ledger = PortfolioLedger(initial_cash=16000000)
    bank = VirtualBank()
    CashSweeper(ledger, bank).sweep_excess(aggressive=True)
    assert ledger.cash == pytest.approx(7500000)
    assert bank.balance == pytest.approx(8500000)


def test_sweep_disabled():
    ledger = PortfolioLedger(initial_cash=12000000)
    sweeper = CashSweeper(ledger, VirtualBank(), BankConfig(auto_deposit=False))
    assert sweeper.sweep_excess() is None


def test_cover_shortfall_withdraws_difference():
    ledger = PortfolioLedger(initial_cash=100000)
    bank = VirtualBank(1000000)
    sweeper = CashSweeper(ledger, bank)

    result = sweeper.cover_shortfall(250000)

    assert result.success
    assert ledger.cash == pytest.approx(250000)
    assert bank.balance == pytest.approx(850000)


def test_cover_shortfall_nothing_needed():
    ledger = PortfolioLedger(initial_cash=100000)
    assert CashSweeper(ledger, VirtualBank(1000)).cover_shortfall(50000) is None


def test_cover_shortfall_bank_too_small():
    ledger = PortfolioLedger(initial_cash=100000)
    bank = VirtualBank(1000)

    result = CashSweeper(ledger, bank).cover_shortfall(250000)

    assert not result.success
    assert ledger.cash == 100000
    assert bank.balance == 1000
