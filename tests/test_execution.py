import asyncio

import pytest

from quant_desk.execution import ExecutionEngine, SimulatedVenue, Order, FillStatus
from quant_desk.portfolio import (
    PortfolioLedger, VirtualBank, CashSweeper, Decision, TradeAction, ErrorCode
)

FX = 1380.0


def run(coro):
    return asyncio.run(coro)


def make_engine(ledger, rejection=0.0, sweeper=None):
    venue = SimulatedVenue(0, 0, rejection, seed=7)
    engine = ExecutionEngine(ledger, venue, sweeper)
    run(engine.initialize())
    return engine


# --- Simulated venue ----------------------------------------------------------

def test_venue_fills_when_connected():
    venue = SimulatedVenue(0, 0, 0.0, seed=1)
    run(venue.connect())
    fill = run(venue.submit_order(Order('005930', TradeAction.BUY, 10, 81500.0)))
    assert fill.ok
    assert fill.filled_price == 81500.0
    assert fill.shares == 10


def test_venue_rejects_when_disconnected():
    venue = SimulatedVenue(0, 0, 0.0, seed=1)
    fill = run(venue.submit_order(Order('005930', TradeAction.BUY, 10, 81500.0)))
    assert fill.status == FillStatus.FAILED
    assert fill.reason == "Venue not connected"


def test_venue_rejection_probability():
    venue = SimulatedVenue(0, 0, 1.0, seed=1)
    run(venue.connect())
    fill = run(venue.submit_order(Order('005930', TradeAction.BUY, 10, 81500.0)))
    assert fill.reason == "Rejected by venue"


def test_venue_invalid_order():
    venue = SimulatedVenue(0, 0, 0.0, seed=1)
    run(venue.connect())
    assert run(venue.submit_order(Order('005930', TradeAction.BUY, 0, 81500.0))).reason == "Invalid order"


# --- Execution engine ----------------------------------------------------------

def test_fill_commits_to_ledger(ledger):
    engine = make_engine(ledger)
    result = run(engine.execute_decision(Decision(TradeAction.BUY, 10, "breakout", 0.7), '005930', 10000))
    assert result.success
    assert ledger.holding('005930').shares == 10
    assert len(ledger.activity_log) == 1


def test_venue_rejection_leaves_portfolio_unchanged(ledger):
    engine = make_engine(ledger, rejection=1.0)
    before = ledger.snapshot().to_dict()

    result = run(engine.execute_decision(Decision(TradeAction.BUY, 10, "breakout"), '005930', 10000))

    assert not result.success
    assert result.error == ErrorCode.VENUE_REJECTED
    assert ledger.snapshot().to_dict() == before
    assert len(ledger.activity_log) == 1


def test_infeasible_trade_never_reaches_venue(ledger):
    engine = make_engine(ledger)
    result = run(engine.execute_decision(Decision(TradeAction.SELL, 10), '005930', 10000))
    assert result.error == ErrorCode.INSUFFICIENT_POSITION
    assert engine.venue.fills == []
    assert len(ledger.activity_log) == 1


def test_abort_discards_result(ledger):
    engine = make_engine(ledger)
    result = run(engine.execute_decision(Decision(TradeAction.BUY, 10), '005930', 10000,
                                         should_abort=lambda: True))
    assert result is None
    assert ledger.snapshot().holdings == {}
    assert len(ledger.activity_log) == 0


def test_hold_is_recorded(ledger):
    engine = make_engine(ledger)
    result = run(engine.execute_decision(Decision.hold("flat"), '005930', 10000))
    assert result.success
    assert engine.venue.fills == []
    assert ledger.activity_log.recent(1)[0].action == 'HOLD'


def test_shortfall_withdrawn_from_bank():
    ledger = PortfolioLedger(initial_cash=100000)
    bank = VirtualBank(1000000)
    engine = make_engine(ledger, sweeper=CashSweeper(ledger, bank))

    result = run(engine.execute_decision(Decision(TradeAction.BUY, 10), '005930', 20000))

    assert result.success
    assert ledger.cash == pytest.approx(0.0, abs=1e-6)
    assert bank.balance == pytest.approx(1000000 - (10 * 20000 * 1.00001 - 100000))


def test_rejected_order_returns_withdrawal():
    ledger = PortfolioLedger(initial_cash=100000)
    bank = VirtualBank(1000000)
    engine = make_engine(ledger, rejection=1.0, sweeper=CashSweeper(ledger, bank))

    result = run(engine.execute_decision(Decision(TradeAction.BUY, 10), '005930', 20000))

    assert result.error == ErrorCode.VENUE_REJECTED
    assert ledger.cash == pytest.approx(100000)
    assert bank.balance == pytest.approx(1000000)
    assert [t.type for t in bank.transactions] == ["WITHDRAW", "DEPOSIT"]


def test_aborted_order_returns_withdrawal():
    ledger = PortfolioLedger(initial_cash=100000)
    bank = VirtualBank(1000000)
    engine = make_engine(ledger, sweeper=CashSweeper(ledger, bank))

    result = run(engine.execute_decision(Decision(TradeAction.BUY, 10), '005930', 20000,
                                         should_abort=lambda: True))

    assert result is None
    assert ledger.snapshot().holdings == {}
    assert ledger.cash == pytest.approx(100000)
    assert bank.balance == pytest.approx(1000000)
    assert [e.action for e in ledger.activity_log.recent()] == ["WITHDRAW", "DEPOSIT"]


def test_pair_exit_withdraws_for_cover_leg(rich_ledger):
    bank = VirtualBank(50000000)
    engine = make_engine(rich_ledger, sweeper=CashSweeper(rich_ledger, bank))
    rich_ledger.enter_pair_trade('000660', 'MU', 100000.0, 141.0, FX)
    rich_ledger.adjust_cash(1000 - rich_ledger.cash, "DEPOSIT", "park cash")

    pair_id = rich_ledger.pair_id_for('000660', 'MU')
    result = run(engine.exit_pair(pair_id, {'000660': 100000.0, 'MU': 400.0}, FX))

    assert result.success
    assert rich_ledger.open_pairs() == []
    assert rich_ledger.cash >= 0
    assert bank.balance < 50000000
    assert bank.transactions[0].type == "WITHDRAW"


def test_rejected_pair_exit_returns_withdrawal(rich_ledger):
    bank = VirtualBank(50000000)
    engine = make_engine(rich_ledger, rejection=1.0, sweeper=CashSweeper(rich_ledger, bank))
    rich_ledger.enter_pair_trade('000660', 'MU', 100000.0, 141.0, FX)
    rich_ledger.adjust_cash(1000 - rich_ledger.cash, "DEPOSIT", "park cash")

    pair_id = rich_ledger.pair_id_for('000660', 'MU')
    result = run(engine.exit_pair(pair_id, {'000660': 100000.0, 'MU': 400.0}, FX))

    assert result.error == ErrorCode.VENUE_REJECTED
    assert len(rich_ledger.open_pairs()) == 1
    assert rich_ledger.cash == pytest.approx(1000)
    assert bank.balance == pytest.approx(50000000)


def test_excess_swept_after_fill():
    ledger = PortfolioLedger(initial_cash=12000000)
    bank = VirtualBank()
    engine = make_engine(ledger, sweeper=CashSweeper(ledger, bank))

    run(engine.execute_decision(Decision(TradeAction.BUY, 10), '005930', 10000))

    assert ledger.cash == pytest.approx(5000000)
    assert bank.balance > 6800000


def test_pair_round_trip_through_venue(rich_ledger):
    engine = make_engine(rich_ledger)
    prices = {'000660': 228000.0, 'MU': 141.0}

    entry = run(engine.enter_pair('000660', 'MU', prices, FX))
    assert entry.success
    assert len(engine.venue.fills) == 2

    pair_id = rich_ledger.pair_id_for('000660', 'MU')
    exit_ = run(engine.exit_pair(pair_id, prices, FX))
    assert exit_.success
    assert rich_ledger.open_pairs() == []


def test_pair_rejection_commits_nothing(rich_ledger):
    engine = make_engine(rich_ledger, rejection=1.0)
    result = run(engine.enter_pair('000660', 'MU', {'000660': 228000.0, 'MU': 141.0}, FX))
    assert result.error == ErrorCode.VENUE_REJECTED
    assert rich_ledger.snapshot().holdings == {}
    assert len(rich_ledger.activity_log) == 1


def test_default_pair_size_needs_bank_on_starting_cash():
    prices = {'000660': 228000.0, 'MU': 141.0}

    ledger = PortfolioLedger(initial_cash=1000000)
    result = run(make_engine(ledger, sweeper=CashSweeper(ledger, VirtualBank())).enter_pair(
        '000660', 'MU', prices, FX))
    assert result.error == ErrorCode.INSUFFICIENT_FUNDS

    ledger = PortfolioLedger(initial_cash=1000000)
    bank = VirtualBank(5000000)
    result = run(make_engine(ledger, sweeper=CashSweeper(ledger, bank)).enter_pair(
        '000660', 'MU', prices, FX))
    assert result.success
    assert ledger.holding('000660').shares == 10
    assert bank.balance < 5000000


def test_exit_missing_pair(rich_ledger):
    engine = make_engine(rich_ledger)
    assert run(engine.exit_pair('MU-000660', {}, FX)).error == ErrorCode.NO_POSITION


def test_engine_risk_off(rich_ledger):
    engine = make_engine(rich_ledger)
    rich_ledger.buy('005930', 10, 81500)
    rich_ledger.short('TSM', 10, 172.0, FX)
    rich_ledger.enter_pair_trade('000660', 'MU', 228000.0, 141.0, FX)
    prices = {'005930': 81500, 'TSM': 172.0, '000660': 228000.0, 'MU': 141.0}

    results = run(engine.risk_off(prices, FX))

    assert [r.action for r in results] == [TradeAction.SELL, TradeAction.COVER, TradeAction.EXIT_PAIR_TRADE]
    assert rich_ledger.snapshot().holdings == {}
