"""
Trading Engine Orchestrator
===========================
Composition root and decision loop:
    MARKET SNAPSHOT → REGIME → STRATEGY ORACLE → ALPHA FACTORS
        → SIGNALS / ANALYST ORACLE → EXECUTION VENUE → LEDGER → MONITORING

One cycle reads a single market snapshot, asks the strategy oracle for the
desk strategy, and applies at most one round of trades per instrument,
KRW instruments first. Tick ingestion runs as a separate task and never
waits on the decision loop.
"""

import asyncio
from datetime import timedelta
from typing import Dict, List, Optional
import logging
import threading
import time as time_module

from .config import SystemConfig, TradingMode
from .data import (
    DataManager, MarketSnapshot, FundamentalsFeed, ExchangeRateFeed,
    krw_first, is_market_open, market_status
)
from .features import FeatureEngine
from .alpha import AlphaFactorEngine, HedgeFundStrategy
from .signals import (
    MarketRegime, MarketRegimeDetector, PairsTradingSignalGenerator,
    MovingAverageCrossSignalGenerator, TrendClassifier
)
from .portfolio import PortfolioLedger, Decision, TradeAction, TradeResult, VirtualBank, CashSweeper
from .execution import ExecutionEngine, ExecutionVenue
from .oracle import (
    StrategyOracle, AnalystOracle, StrategyRequest, AnalystRequest, FeatureRequest, build_oracles
)
from .monitoring import MonitoringSystem, EngineState

logger = logging.getLogger(__name__)


class TradingEngine:
    """
    Main trading engine.

    Owns every stateful component (data feed, reference feeds, ledger,
    bank, venue, oracles) and wires them together; nothing is global.
    """

    def __init__(self, config: SystemConfig = None, data_manager: DataManager = None,
                 strategy_oracle: StrategyOracle = None, analyst_oracle: AnalystOracle = None,
                 venue: ExecutionVenue = None, bank: VirtualBank = None):
        self.config = config or SystemConfig()
        symbols = self.config.data.symbols
        seed = self.config.data.mock_seed

        self.monitoring = MonitoringSystem(self.config.monitoring, self.config.initial_cash)

        self.data_manager = data_manager or DataManager(self.config.data)
        self.fundamentals = FundamentalsFeed(symbols, seed=seed)
        self.fx_feed = ExchangeRateFeed(seed=seed)

        self.regime_detector = MarketRegimeDetector(self.config.signals)
        self.alpha_engine = AlphaFactorEngine(self.config.signals, seed=seed)
        self.feature_engine = FeatureEngine(self.config.signals)
        self.pairs_generator = PairsTradingSignalGenerator.from_config(self.config.signals)
        self.ma_cross = MovingAverageCrossSignalGenerator.from_config(self.config.signals)
        self.trend_classifier = TrendClassifier.from_config(self.config.signals)

        self.ledger = PortfolioLedger(self.config.initial_cash, self.config.execution,
                                      self.monitoring.activity_log)
        self.bank = bank or VirtualBank(self.config.bank.initial_balance)
        self.sweeper = CashSweeper(self.ledger, self.bank, self.config.bank)
        self.execution = ExecutionEngine(self.ledger, venue, self.sweeper, self.config.execution)
        self.execution.aggressive = self.config.aggressive_mode

        if strategy_oracle is None or analyst_oracle is None:
            default_strategy, default_analyst = build_oracles(self.config.oracle, self.config.execution)
            strategy_oracle = strategy_oracle or default_strategy
            analyst_oracle = analyst_oracle or default_analyst
        self.strategy_oracle = strategy_oracle
        self.analyst_oracle = analyst_oracle

        # Decision state
        self.factors = self.alpha_engine.initial_factors(symbols)
        self.regime = MarketRegime.NEUTRAL
        self.regime_details: Dict = {}
        self.active_strategy = HedgeFundStrategy.RISK_OFF
        self.strategy_reason = ""
        self.exchange_rate = self.fx_feed.get_rate()
        self.last_prices: Dict[str, float] = {}

        self.cycle = 0
        self.initialized = False
        self._stop_event = threading.Event()

        logger.info(f"TradingEngine created in {self.config.mode.value} mode "
                    f"(aggressive={self.config.aggressive_mode}, low_latency={self.config.low_latency_mode})")

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(self):
        """Seed history and connect the venue."""
        if self.initialized:
            return
        logger.info("Initializing trading engine...")
        self.data_manager.initialize()
        await self.execution.initialize()
        self.last_prices = self.data_manager.get_latest_prices()
        self.initialized = True
        logger.info("Trading engine initialized successfully")

    async def shutdown(self):
        logger.info("Shutting down trading engine...")
        await self.execution.shutdown()
        self.monitoring.set_state(EngineState.STOPPED)
        logger.info(self.monitoring.generate_report())
        logger.info("Trading engine shutdown complete")

    def stop(self):
        """Request a stop; results still in flight for the current cycle are discarded."""
        if not self._stop_event.is_set():
            logger.info("Stop requested")
        self._stop_event.set()
        if self.monitoring.state == EngineState.RUNNING:
            self.monitoring.set_state(EngineState.STOPPING)

    @property
    def stopping(self) -> bool:
        return self._stop_event.is_set()

    async def _sleep(self, seconds: float):
        """Sleep, waking early when a stop is requested."""
        deadline = time_module.monotonic() + seconds
        while not self.stopping:
            remaining = deadline - time_module.monotonic()
            if remaining <= 0:
                return
            await asyncio.sleep(min(0.2, remaining))

    async def _feed_loop(self):
        """Tick producer; runs independently of the decision loop."""
        while not self.stopping:
            try:
                await asyncio.to_thread(self.data_manager.poll)
            except Exception as e:
                logger.warning(f"Tick ingestion failed: {e}")
            await self._sleep(self.config.data.tick_interval_seconds)

    async def run(self, max_cycles: Optional[int] = None):
        """
        Main trading loop.

        Runs `run_cycle` every `loop_interval_seconds` until `stop()` or
        `max_cycles` is reached. Errors are counted and the loop goes on.
        """
        await self.initialize()
        self._stop_event.clear()
        self.monitoring.set_state(EngineState.RUNNING)
        feed = asyncio.create_task(self._feed_loop())

        logger.info("Starting main trading loop...")
        try:
            while not self.stopping:
                try:
                    await self.run_cycle()
                except Exception as e:
                    self.monitoring.record_error(e)

                if max_cycles is not None and self.cycle >= max_cycles:
                    break
                await self._sleep(self.config.loop_interval_seconds)
        finally:
            self._stop_event.set()
            await feed
            await self.shutdown()

    # ------------------------------------------------------------------
    # Decision cycle
    # ------------------------------------------------------------------

    async def run_cycle(self) -> Optional[List[TradeResult]]:
        """
        Run one decision iteration against a single market snapshot.

        Returns the trade results, or None when the cycle was skipped or
        discarded because a stop was requested.
        """
        if self.stopping:
            return None

        self.cycle += 1
        logger.debug(f"=== Cycle {self.cycle} ===")

        snapshot = self.data_manager.snapshot()
        self.last_prices = snapshot.prices
        fundamentals = self.fundamentals.update()
        fx = self.fx_feed.update()
        self.exchange_rate = fx

        self.regime, self.regime_details = self.regime_detector.detect_regime(snapshot.histories)
        portfolio_value = self.ledger.value(snapshot.prices, fx)

        decision = await self.strategy_oracle.select_strategy(StrategyRequest(
            regime=self.regime,
            portfolio_value=portfolio_value,
            aggressive_mode=self.config.aggressive_mode,
            low_latency_mode=self.config.low_latency_mode
        ))
        if self.stopping:
            logger.info("Discarding strategy decision: engine stopping")
            return None

        if decision.strategy != self.active_strategy:
            logger.info(f"Strategy: {self.active_strategy.value} -> {decision.strategy.value} ({decision.reason})")
        self.active_strategy = decision.strategy
        self.strategy_reason = decision.reason

        self.factors = self.alpha_engine.update_all(self.factors, snapshot.histories, self.active_strategy)

        if self.active_strategy == HedgeFundStrategy.PAIRS_TRADING:
            results = await self._run_pairs(snapshot, fx)
        elif self.active_strategy == HedgeFundStrategy.RISK_OFF:
            results = await self.execution.risk_off(snapshot.prices, fx, lambda: self.stopping)
        else:
            results = await self._run_instruments(snapshot, fundamentals, fx)

        for result in results:
            if result.action != TradeAction.HOLD:
                self.monitoring.performance.record_trade(result.success)
        self.monitoring.update(self.ledger.value(snapshot.prices, fx))
        return results

    async def _run_pairs(self, snapshot: MarketSnapshot, fx: float) -> List[TradeResult]:
        first = self.pairs_generator.first_symbol
        second = self.pairs_generator.second_symbol

        if self.config.respect_market_hours and not is_market_open(first):
            logger.debug("Pairs: market closed")
            return []

        signal = self.pairs_generator.generate_signal(snapshot.history(first), snapshot.history(second))
        if signal is None:
            logger.debug("Pairs: monitoring spread, no signal")
            return []

        legs = {first, second}
        open_pairs = [p for p in self.ledger.open_pairs() if {p.long_symbol, p.short_symbol} == legs]
        results = []

        if signal.action == TradeAction.ENTER_PAIR_TRADE:
            if open_pairs:
                logger.debug(f"Pairs: {open_pairs[0].pair_id} already open, ignoring entry signal")
                return []
            result = await self.execution.enter_pair(signal.long_symbol, signal.short_symbol,
                                                     snapshot.prices, fx, signal.reason,
                                                     lambda: self.stopping)
            if result is not None:
                results.append(result)
        elif signal.action == TradeAction.EXIT_PAIR_TRADE:
            for pair in open_pairs:
                result = await self.execution.exit_pair(pair.pair_id, snapshot.prices, fx,
                                                        signal.reason, lambda: self.stopping)
                if result is not None:
                    results.append(result)
        return results

    async def _run_instruments(self, snapshot: MarketSnapshot, fundamentals: Dict,
                               fx: float) -> List[TradeResult]:
        results = []
        min_points = self.trend_classifier.long_period

        for symbol in krw_first(self.data_manager.get_universe()):
            if self.stopping:
                break
            if self.config.respect_market_hours and not is_market_open(symbol):
                continue

            history = snapshot.history(symbol)
            price = snapshot.prices.get(symbol)
            if price is None or len(history) < min_points:
                continue

            trend = self.trend_classifier.classify(history)
            decision = await self._decide(symbol, history, trend, fundamentals.get(symbol))
            if decision is None:
                continue
            if self.stopping:
                logger.info(f"Discarding decision for {symbol}: engine stopping")
                break

            result = await self.execution.execute_decision(decision, symbol, price, fx,
                                                           lambda: self.stopping)
            if result is not None:
                results.append(result)
        return results

    async def _decide(self, symbol: str, history, trend, fundamentals) -> Optional[Decision]:
        aggressive = self.config.aggressive_mode
        low_latency = self.config.low_latency_mode
        strategy = self.active_strategy

        if strategy == HedgeFundStrategy.MA_CROSS:
            signal = self.ma_cross.generate_signal(history)
            if signal is None:
                return None
            execution = self.config.execution
            shares = execution.ma_cross_shares_aggressive if aggressive else execution.ma_cross_shares_normal
            return Decision(signal.action, shares, signal.reason, execution.ma_cross_confidence)

        if strategy == HedgeFundStrategy.DEEP_HEDGING:
            features = self.feature_engine.extract_ml_features(history)
            return await self.analyst_oracle.infer_from_features(
                FeatureRequest(symbol, features, trend, aggressive, low_latency))

        return await self.analyst_oracle.analyze(AnalystRequest(
            symbol=symbol,
            strategy=strategy,
            factors=self.factors[symbol],
            trend=trend,
            fundamentals=fundamentals,
            aggressive_mode=aggressive,
            low_latency_mode=low_latency
        ))

    # ------------------------------------------------------------------
    # Status & backtest
    # ------------------------------------------------------------------

    def get_status(self) -> Dict:
        """Get comprehensive engine status."""
        portfolio = self.ledger.snapshot()
        monitoring_status = self.monitoring.get_status()

        return {
            'mode': self.config.mode.value,
            'cycle': self.cycle,
            'regime': self.regime.value,
            'strategy': self.active_strategy.value,
            'strategy_reason': self.strategy_reason,
            'exchange_rate': self.exchange_rate,
            'cash': portfolio.cash,
            'bank_balance': self.bank.balance,
            'holdings': {s: h.to_dict() for s, h in portfolio.holdings.items()},
            'pairs': list(portfolio.pair_trades.keys()),
            'portfolio_value': self.ledger.value(self.last_prices, self.exchange_rate),
            'market_status': market_status(),
            **monitoring_status
        }

    async def backtest(self, steps: int) -> Dict:
        """Drive the feed with a simulated one-minute clock for `steps` cycles."""
        await self.initialize()
        self.monitoring.set_state(EngineState.RUNNING)
        clock = self.data_manager.snapshot().timestamp.replace(second=0, microsecond=0)

        logger.info(f"Running backtest for {steps} cycles")
        for _ in range(steps):
            if self.stopping:
                break
            clock += timedelta(minutes=1)
            self.data_manager.poll(clock)
            try:
                await self.run_cycle()
            except Exception as e:
                self.monitoring.record_error(e)

        await self.shutdown()
        metrics = self.monitoring.get_performance_metrics()
        final_value = self.ledger.value(self.data_manager.get_latest_prices(), self.exchange_rate)

        return {
            'cycles': self.cycle,
            'initial_cash': self.config.initial_cash,
            'final_cash': self.ledger.cash,
            'bank_balance': self.bank.balance,
            'final_value': final_value,
            'total_return_pct': metrics.total_return_pct,
            'max_drawdown': metrics.max_drawdown,
            'total_trades': metrics.total_trades,
            'failed_trades': metrics.failed_trades,
            'open_pairs': len(self.ledger.open_pairs()),
            'errors': self.monitoring.error_count
        }

    def run_backtest(self, steps: int = 100) -> Dict:
        return asyncio.run(self.backtest(steps))


def main(argv=None):
    """Main entry point for the trading engine."""
    import argparse

    parser = argparse.ArgumentParser(description='Semiconductor Quant Desk')
    parser.add_argument('--mode', choices=['paper', 'backtest'], default=None, help='Trading mode')
    parser.add_argument('--cash', type=float, default=None, help='Initial cash (KRW)')
    parser.add_argument('--bank', type=float, default=None,
                        help='Initial bank balance (KRW), drawn on when a trade falls short of cash')
    parser.add_argument('--cycles', type=int, default=None,
                        help='Number of cycles (backtest default 100, paper runs until interrupted)')
    parser.add_argument('--aggressive', action='store_true', help='Aggressive mode')
    parser.add_argument('--low-latency', action='store_true', help='Low-latency mode')
    parser.add_argument('--oracle', choices=['rule', 'openai'], default=None, help='Oracle provider')
    parser.add_argument('--config', type=str, help='Path to config file')
    parser.add_argument('--log-level', type=str, default=None, help='Logging level')

    args = parser.parse_args(argv)

    # Create configuration
    config = SystemConfig.load(args.config) if args.config else SystemConfig()
    if args.mode:
        config.mode = TradingMode(args.mode)
    if args.cash is not None:
        config.initial_cash = args.cash
    if args.bank is not None:
        config.bank.initial_balance = args.bank
    if args.aggressive:
        config.aggressive_mode = True
    if args.low_latency:
        config.low_latency_mode = True
    if args.oracle:
        config.oracle.provider = args.oracle

    # Configure logging
    logging.basicConfig(
        level=getattr(logging, (args.log_level or config.monitoring.log_level).upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    engine = TradingEngine(config)

    if config.mode == TradingMode.BACKTEST:
        results = engine.run_backtest(args.cycles or 100)

        print("\n" + "="*50)
        print("BACKTEST RESULTS")
        print("="*50)
        for key, value in results.items():
            if isinstance(value, float):
                print(f"{key}: {value:,.4f}")
            else:
                print(f"{key}: {value}")
    else:
        try:
            asyncio.run(engine.run(max_cycles=args.cycles))
        except KeyboardInterrupt:
            print("\nShutting down...")


if __name__ == "__main__":
    main()
