"""
Semiconductor Quant Desk
========================

An autonomous paper-trading desk for a small semiconductor universe
(Samsung, SK Hynix, NVIDIA, TSMC, Micron), trading KRW and USD listings
from one KRW cash account.

PIPELINE:
    ┌─────────────────┐
    │ MARKET SNAPSHOT │  ← price series per instrument, FX, fundamentals
    └────┬────────────┘
         ↓
    ┌──────────────┐
    │ REGIME       │  ← trending / ranging / neutral / low volatility
    └────┬─────────┘
         ↓
    ┌─────────────────┐
    │ STRATEGY ORACLE │  ← desk strategy (rule-based or LLM)
    └────┬────────────┘
         ↓
    ┌──────────────┐
    │ SIGNALS      │  ← alpha factors, pairs z-score, MA cross, analyst oracle
    └────┬─────────┘
         ↓
    ┌──────────────┐
    │ EXECUTION    │  ← slippage, simulated venue, bank sweep
    └────┬─────────┘
         ↓
    ┌──────────────┐
    │ LEDGER       │  ← cash, holdings, pair trades, activity log
    └──────────────┘

USAGE:
    # Paper trading
    python -m quant_desk.orchestrator --mode paper --cash 1000000

    # Backtesting on the mock feed
    python -m quant_desk.orchestrator --mode backtest --cycles 200

    # Programmatic usage
    import asyncio
    from quant_desk import TradingEngine, SystemConfig

    config = SystemConfig()
    config.aggressive_mode = True

    engine = TradingEngine(config)
    asyncio.run(engine.run(max_cycles=10))

MODULES:
    - data: instruments, price series, market data sources, reference feeds
    - features: statistics utilities and ML features
    - alpha: alpha factor engine and strategy enum
    - signals: regime detector, pairs trading, MA cross, trend classifier
    - portfolio: ledger, trade executor, virtual bank
    - execution: execution venue and venue-aware execution
    - oracle: strategy and analyst oracles
    - monitoring: activity log, performance tracking
"""

from .config import SystemConfig, TradingMode, DEFAULT_CONFIG
from .orchestrator import TradingEngine, main
from .data import DataManager, PriceSeries, MarketSnapshot, INSTRUMENTS
from .features import FeatureEngine, TechnicalIndicators, StatisticalFeatures
from .alpha import AlphaFactorEngine, AlphaFactors, HedgeFundStrategy
from .signals import (
    MarketRegime,
    MarketRegimeDetector,
    PairsTradingSignalGenerator,
    MovingAverageCrossSignalGenerator,
    TrendClassifier,
    Trend
)
from .portfolio import PortfolioLedger, Portfolio, Decision, TradeAction, ErrorCode, VirtualBank
from .execution import ExecutionEngine, SimulatedVenue
from .oracle import RuleBasedStrategyOracle, RuleBasedAnalystOracle
from .monitoring import MonitoringSystem, ActivityLog

__version__ = "1.0.0"
__all__ = [
    # Main
    'TradingEngine',
    'SystemConfig',
    'TradingMode',
    'DEFAULT_CONFIG',
    'main',

    # Data
    'DataManager',
    'PriceSeries',
    'MarketSnapshot',
    'INSTRUMENTS',

    # Features
    'FeatureEngine',
    'TechnicalIndicators',
    'StatisticalFeatures',

    # Alpha
    'AlphaFactorEngine',
    'AlphaFactors',
    'HedgeFundStrategy',

    # Signals
    'MarketRegime',
    'MarketRegimeDetector',
    'PairsTradingSignalGenerator',
    'MovingAverageCrossSignalGenerator',
    'TrendClassifier',
    'Trend',

    # Portfolio
    'PortfolioLedger',
    'Portfolio',
    'Decision',
    'TradeAction',
    'ErrorCode',
    'VirtualBank',

    # Execution
    'ExecutionEngine',
    'SimulatedVenue',

    # Oracles
    'RuleBasedStrategyOracle',
    'RuleBasedAnalystOracle',

    # Monitoring
    'MonitoringSystem',
    'ActivityLog'
]
