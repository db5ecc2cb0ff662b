import asyncio

import pytest

from quant_desk import TradingEngine, SystemConfig, main
from quant_desk.alpha import HedgeFundStrategy
from quant_desk.config import DataConfig
from quant_desk.data import PriceSeries
from quant_desk.execution import SimulatedVenue
from quant_desk.features import MLFeatures
from quant_desk.oracle import StrategyOracle, AnalystOracle, StrategyDecision
from quant_desk.portfolio import Decision, TradeAction


class FixedStrategyOracle(StrategyOracle):
    def __init__(self, strategy, on_call=None):
        super().__init__()
        self.strategy = strategy
        self.on_call = on_call
        self.calls = 0

    async def _select(self, request):
        self.calls += 1
        if self.on_call:
            self.on_call()
        return StrategyDecision(self.strategy, "fixed")


class RaisingStrategyOracle(StrategyOracle):
    async def _select(self, request):
        raise RuntimeError("unreachable")

    async def select_strategy(self, request):
        raise RuntimeError("oracle wiring broken")


class RecordingAnalystOracle(AnalystOracle):
    def __init__(self, decision=None, on_call=None):
        super().__init__()
        self.decision = decision or Decision.hold("watching")
        self.on_call = on_call
        self.symbols = []

    async def _analyze(self, request):
        self.symbols.append(request.symbol)
        if self.on_call:
            self.on_call()
        return self.decision

    async def _infer(self, request):
        return await self._analyze(request)


class FeatureRecordingAnalystOracle(RecordingAnalystOracle):
    def __init__(self, decision=None):
        super().__init__(decision)
        self.feature_requests = []

    async def _infer(self, request):
        self.feature_requests.append(request)
        return self.decision


def make_engine(strategy_oracle, analyst_oracle=None, symbols=None):
    data = DataConfig(history_points=60, mock_seed=11)
    if symbols:
        data.symbols = symbols
    config = SystemConfig(data=data, loop_interval_seconds=0)
    config.data.tick_interval_seconds = 0.01
    return TradingEngine(
        config,
        strategy_oracle=strategy_oracle,
        analyst_oracle=analyst_oracle or RecordingAnalystOracle(),
        venue=SimulatedVenue(0, 0, 0.0, seed=3),
    )


def run(coro):
    return asyncio.run(coro)


def test_risk_off_cycle_with_flat_book_trades_nothing():
    engine = make_engine(FixedStrategyOracle(HedgeFundStrategy.RISK_OFF))
    run(engine.initialize())

    results = run(engine.run_cycle())

    assert results == []
    assert engine.cycle == 1
    assert engine.active_strategy == HedgeFundStrategy.RISK_OFF
    assert engine.analyst_oracle.symbols == []


def test_instruments_processed_krw_first():
    analyst = RecordingAnalystOracle()
    engine = make_engine(FixedStrategyOracle(HedgeFundStrategy.ALPHA_MOMENTUM), analyst,
                         symbols=['NVDA', '005930', 'MU', '000660', 'TSM'])
    run(engine.initialize())

    results = run(engine.run_cycle())

    assert analyst.symbols == ['005930', '000660', 'NVDA', 'MU', 'TSM']
    assert all(r.action == TradeAction.HOLD for r in results)
    assert len(engine.ledger.activity_log) == 5


def test_stop_during_strategy_call_discards_cycle():
    analyst = RecordingAnalystOracle()
    engine = make_engine(FixedStrategyOracle(HedgeFundStrategy.ALPHA_MOMENTUM), analyst)
    engine.strategy_oracle.on_call = engine.stop
    run(engine.initialize())

    assert run(engine.run_cycle()) is None
    assert analyst.symbols == []
    assert len(engine.ledger.activity_log) == 0


def test_stop_during_analyst_call_discards_trade():
    engine = make_engine(FixedStrategyOracle(HedgeFundStrategy.ALPHA_MOMENTUM))
    engine.analyst_oracle = RecordingAnalystOracle(Decision(TradeAction.SELL, 10, "exit"), on_call=engine.stop)
    run(engine.initialize())

    run(engine.run_cycle())

    assert engine.analyst_oracle.symbols == ['005930']
    assert len(engine.ledger.activity_log) == 0
    assert engine.ledger.snapshot().holdings == {}


def test_stopped_engine_skips_cycle():
    engine = make_engine(FixedStrategyOracle(HedgeFundStrategy.ALPHA_MOMENTUM))
    run(engine.initialize())
    engine.stop()
    assert run(engine.run_cycle()) is None
    assert engine.cycle == 0


def test_run_counts_cycle_errors_and_continues():
    engine = make_engine(RaisingStrategyOracle())

    run(engine.run(max_cycles=2))

    assert engine.cycle == 2
    assert engine.monitoring.error_count == 2
    assert engine.stopping


def test_run_stops_after_max_cycles():
    engine = make_engine(FixedStrategyOracle(HedgeFundStrategy.RISK_OFF))
    run(engine.run(max_cycles=3))
    assert engine.cycle == 3
    assert engine.strategy_oracle.calls == 3


def test_ma_cross_sizes_from_config():
    engine = make_engine(FixedStrategyOracle(HedgeFundStrategy.MA_CROSS))
    engine.active_strategy = HedgeFundStrategy.MA_CROSS
    history = [120.0 - i for i in range(21)] + [100.0 + 5 * j for j in range(1, 16)]

    decisions = []
    for end in range(21, len(history) + 1):
        decision = run(engine._decide('005930', history[:end], None, None))
        if decision is not None:
            decisions.append(decision)

    assert len(decisions) == 1
    assert decisions[0].action == TradeAction.BUY
    assert decisions[0].shares == 20
    assert decisions[0].confidence == pytest.approx(0.9)


def _set_pair_histories(engine, mu_prices):
    """Replace MU and 000660 history; 000660 stays flat so the ratio tracks MU."""
    manager = engine.data_manager
    manager.histories['MU'] = PriceSeries.from_prices('MU', mu_prices)
    manager.histories['000660'] = PriceSeries.from_prices('000660', [10000.0] * len(mu_prices))
    manager.last_prices['MU'] = float(mu_prices[-1])
    manager.last_prices['000660'] = 10000.0


QUIET_MU = [100.0, 102.0] * 29


def test_pairs_cycle_enters_on_wide_spread():
    analyst = RecordingAnalystOracle()
    engine = make_engine(FixedStrategyOracle(HedgeFundStrategy.PAIRS_TRADING), analyst,
                         symbols=['MU', '000660'])
    run(engine.initialize())
    _set_pair_histories(engine, QUIET_MU + [100.0, 130.0])

    results = run(engine.run_cycle())

    assert [r.action for r in results] == [TradeAction.ENTER_PAIR_TRADE]
    assert results[0].success
    pairs = engine.ledger.open_pairs()
    assert len(pairs) == 1
    assert (pairs[0].long_symbol, pairs[0].short_symbol) == ('000660', 'MU')
    assert analyst.symbols == []


def test_pairs_cycle_ignores_entry_while_pair_open():
    engine = make_engine(FixedStrategyOracle(HedgeFundStrategy.PAIRS_TRADING), symbols=['MU', '000660'])
    run(engine.initialize())
    _set_pair_histories(engine, QUIET_MU + [100.0, 130.0])
    run(engine.run_cycle())
    entries = len(engine.ledger.activity_log)

    assert run(engine.run_cycle()) == []
    assert len(engine.ledger.open_pairs()) == 1
    assert len(engine.ledger.activity_log) == entries


def test_pairs_cycle_exits_on_reversion():
    engine = make_engine(FixedStrategyOracle(HedgeFundStrategy.PAIRS_TRADING), symbols=['MU', '000660'])
    run(engine.initialize())
    _set_pair_histories(engine, QUIET_MU + [100.0, 130.0])
    run(engine.run_cycle())

    _set_pair_histories(engine, QUIET_MU + [100.0, 101.0])
    results = run(engine.run_cycle())

    assert [r.action for r in results] == [TradeAction.EXIT_PAIR_TRADE]
    assert results[0].success
    assert engine.ledger.open_pairs() == []
    assert engine.ledger.snapshot().holdings == {}


def test_deep_hedging_cycle_routes_features_to_analyst():
    analyst = FeatureRecordingAnalystOracle(Decision.hold("model flat"))
    engine = make_engine(FixedStrategyOracle(HedgeFundStrategy.DEEP_HEDGING), analyst,
                         symbols=['NVDA', '005930', 'MU'])
    run(engine.initialize())

    results = run(engine.run_cycle())

    assert [r.symbol for r in analyst.feature_requests] == ['005930', 'NVDA', 'MU']
    assert all(isinstance(r.features, MLFeatures) for r in analyst.feature_requests)
    assert analyst.symbols == []
    assert [r.action for r in results] == [TradeAction.HOLD] * 3


def test_get_status_keys():
    engine = make_engine(FixedStrategyOracle(HedgeFundStrategy.RISK_OFF))
    run(engine.initialize())
    status = engine.get_status()
    for key in ('mode', 'cycle', 'regime', 'strategy', 'cash', 'bank_balance',
                'holdings', 'pairs', 'portfolio_value', 'market_status'):
        assert key in status
    assert status['cash'] == engine.config.initial_cash


def test_backtest_summary():
    engine = make_engine(FixedStrategyOracle(HedgeFundStrategy.ALPHA_MOMENTUM))
    results = engine.run_backtest(5)

    assert results['cycles'] == 5
    assert results['errors'] == 0
    assert results['initial_cash'] == engine.config.initial_cash
    assert engine.data_manager.tick_count == 5 * len(engine.config.data.symbols)


def test_main_backtest(capsys):
    main(['--mode', 'backtest', '--cycles', '3', '--log-level', 'WARNING'])
    out = capsys.readouterr().out
    assert "BACKTEST RESULTS" in out
    assert "cycles: 3" in out
