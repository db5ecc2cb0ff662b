"""
Example: Running the Quant Desk
===============================

This example demonstrates how to use the desk for paper trading,
backtesting and driving individual components directly.
"""

import asyncio
import logging
from quant_desk import (
    TradingEngine,
    SystemConfig,
    TradingMode,
    PortfolioLedger,
    PriceSeries,
    PairsTradingSignalGenerator,
    TrendClassifier
)

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)


def example_paper_trading():
    """
    Example: Paper Trading Mode

    Runs the engine on the mock feed with the simulated venue.
    """
    print("\n" + "="*60)
    print("PAPER TRADING EXAMPLE")
    print("="*60 + "\n")

    config = SystemConfig()
    config.mode = TradingMode.PAPER
    config.initial_cash = 50000000
    config.loop_interval_seconds = 1.0
    config.aggressive_mode = True

    engine = TradingEngine(config)

    print("Running 5 cycles...")
    asyncio.run(engine.run(max_cycles=5))

    status = engine.get_status()
    print(f"  Regime:   {status['regime']}")
    print(f"  Strategy: {status['strategy']}")
    print(f"  Cash:     ₩{status['cash']:,.0f}")
    print(f"  Bank:     ₩{status['bank_balance']:,.0f}")
    print(f"  Value:    ₩{status['portfolio_value']:,.0f}")
    print(f"  Holdings: {status['holdings']}")

    print("\nRecent activity:")
    for entry in engine.monitoring.activity_log.recent(10):
        flag = "" if entry.success else f" [FAILED: {entry.error}]"
        print(f"  {entry.id} {entry.action:<16} {entry.symbol:<7} {entry.shares:>4} {entry.reason}{flag}")


def example_backtest():
    """
    Example: Backtesting Mode

    Drives the mock feed with a simulated clock.
    """
    print("\n" + "="*60)
    print("BACKTEST EXAMPLE")
    print("="*60 + "\n")

    config = SystemConfig()
    config.mode = TradingMode.BACKTEST
    config.initial_cash = 50000000

    engine = TradingEngine(config)
    results = engine.run_backtest(50)

    for key, value in results.items():
        if isinstance(value, float):
            print(f"  {key}: {value:,.4f}")
        else:
            print(f"  {key}: {value}")


def example_components():
    """
    Example: Using individual components

    Trend classification, a pairs signal and ledger operations.
    """
    print("\n" + "="*60)
    print("COMPONENT EXAMPLE")
    print("="*60 + "\n")

    rising = PriceSeries.from_prices("000660", [100000 + 500 * i for i in range(30)])
    print(f"Trend of a rising series: {TrendClassifier().classify(rising).value}")

    micron = PriceSeries.from_prices("MU", [140.0 + (i % 2) for i in range(29)] + [150.0])
    hynix = PriceSeries.from_prices("000660", [228000.0] * 30)
    signal = PairsTradingSignalGenerator().generate_signal(micron, hynix)
    if signal:
        print(f"Pairs signal: {signal.reason}")

    ledger = PortfolioLedger(initial_cash=1000000)
    result = ledger.buy("005930", 10, 81500)
    print(f"BUY 10 Samsung: success={result.success}, exec price={result.price:,.2f}, cash={ledger.cash:,.0f}")
    result = ledger.buy("005930", 100, 81500)
    print(f"BUY 100 Samsung: success={result.success}, error={result.error.value}")


if __name__ == "__main__":
    print("""
╔══════════════════════════════════════════════════════════════╗
║              SEMICONDUCTOR QUANT DESK - EXAMPLES             ║
╠══════════════════════════════════════════════════════════════╣
║  1. Paper Trading                                            ║
║  2. Backtest                                                 ║
║  3. Components                                               ║
╚══════════════════════════════════════════════════════════════╝
    """)

    example_components()
    example_backtest()
    example_paper_trading()
