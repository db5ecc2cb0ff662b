"""
Configuration Management
========================
Central configuration for the trading desk.
"""

from dataclasses import dataclass, field, asdict
from typing import List, Dict
from enum import Enum
import json
import os


class TradingMode(Enum):
    """Desk operation modes."""
    BACKTEST = "backtest"
    PAPER = "paper"


@dataclass
class DataConfig:
    """Market data configuration."""
    # Data sources
    primary_source: str = "mock"  # yfinance, mock

    # Instruments to track (symbols from the instrument universe)
    symbols: List[str] = field(default_factory=lambda: ["005930", "000660", "NVDA", "TSM", "MU"])

    # History
    history_capacity: int = 500
    history_points: int = 400
    yfinance_interval: str = "5m"
    yfinance_period: str = "5d"

    # Mock feed
    mock_seed: int = 42
    regime_switch_probability: float = 0.02
    tick_interval_seconds: float = 1.0


@dataclass
class SignalConfig:
    """Alpha factor, regime and signal generator parameters."""
    # Alpha factors
    alpha_period: int = 14
    momentum_scale: float = 2.5
    value_drift_sigma: float = 0.5
    default_weights: Dict[str, float] = field(default_factory=lambda: {
        "value": 0.3,
        "momentum": 0.5,
        "mean_reversion": 0.2
    })
    mean_reversion_weights: Dict[str, float] = field(default_factory=lambda: {
        "value": 0.3,
        "momentum": 0.2,
        "mean_reversion": 0.5
    })

    # Market regime
    regime_window: int = 20
    regime_short_ma: int = 5
    regime_long_ma: int = 20
    trend_strength_threshold: float = 0.015
    high_volatility_threshold: float = 0.8
    low_volatility_threshold: float = 0.3

    # Pairs trading
    pair_first: str = "MU"
    pair_second: str = "000660"

    # Moving averages / trend
    short_ma_period: int = 5
    long_ma_period: int = 20
    trend_deadband: float = 0.001


@dataclass
class ExecutionConfig:
    """Ledger and venue configuration."""
    # Slippage: price * min(cap, shares / 1000 * slope)
    slippage_cap: float = 0.005
    slippage_slope: float = 0.001

    # Simulated venue
    venue_min_latency_ms: float = 5.0
    venue_max_latency_ms: float = 50.0
    venue_rejection_probability: float = 0.02
    venue_seed: int = 7

    # Pair sizing: 'fixed_shares' or 'fixed_notional'.
    # The long leg is bought before the short leg's proceeds arrive, so with the
    # default 1,000,000 KRW initial cash a long 000660 leg (~228,000 KRW/share)
    # only fills when bank.initial_balance or initial_cash covers it.
    pair_sizing: str = "fixed_shares"
    pair_shares: int = 10
    pair_notional_krw: float = 2000000

    # Analyst share caps
    max_shares_normal: int = 100
    max_shares_aggressive: int = 200

    # MA cross sizing
    ma_cross_shares_normal: int = 20
    ma_cross_shares_aggressive: int = 50
    ma_cross_confidence: float = 0.9


@dataclass
class BankConfig:
    """Virtual bank and cash sweep configuration."""
    initial_balance: float = 0.0
    auto_deposit: bool = True
    auto_withdraw: bool = True
    cash_threshold: float = 10000000
    cash_baseline: float = 5000000
    cash_threshold_aggressive: float = 15000000
    cash_baseline_aggressive: float = 7500000


@dataclass
class OracleConfig:
    """Strategy / analyst oracle configuration."""
    provider: str = "rule"  # rule, openai
    model: str = "gpt-4o-mini"
    api_key_env: str = "OPENAI_API_KEY"
    strategy_temperature: float = 0.5
    analyst_temperature: float = 0.7
    timeout_seconds: float = 20.0
    max_tokens: int = 300
    low_latency_max_tokens: int = 120


@dataclass
class MonitoringConfig:
    """Activity log and logging configuration."""
    activity_log_capacity: int = 200
    log_level: str = "INFO"


@dataclass
class SystemConfig:
    """Master system configuration."""
    # Operating mode
    mode: TradingMode = TradingMode.PAPER

    # Capital (KRW)
    initial_cash: float = 1000000

    # Desk flags
    aggressive_mode: bool = False
    low_latency_mode: bool = False
    respect_market_hours: bool = False
    loop_interval_seconds: float = 5.0

    # Component configs
    data: DataConfig = field(default_factory=DataConfig)
    signals: SignalConfig = field(default_factory=SignalConfig)
    execution: ExecutionConfig = field(default_factory=ExecutionConfig)
    bank: BankConfig = field(default_factory=BankConfig)
    oracle: OracleConfig = field(default_factory=OracleConfig)
    monitoring: MonitoringConfig = field(default_factory=MonitoringConfig)

    def save(self, filepath: str):
        """Save configuration to JSON file."""
        directory = os.path.dirname(filepath)
        if directory:
            os.makedirs(directory, exist_ok=True)
        with open(filepath, 'w') as f:
            json.dump(self._to_dict(), f, indent=2)

    @classmethod
    def load(cls, filepath: str) -> 'SystemConfig':
        """Load configuration from JSON file."""
        with open(filepath, 'r') as f:
            data = json.load(f)
        return cls._from_dict(data)

    def _to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            'mode': self.mode.value,
            'initial_cash': self.initial_cash,
            'aggressive_mode': self.aggressive_mode,
            'low_latency_mode': self.low_latency_mode,
            'respect_market_hours': self.respect_market_hours,
            'loop_interval_seconds': self.loop_interval_seconds,
            'data': asdict(self.data),
            'signals': asdict(self.signals),
            'execution': asdict(self.execution),
            'bank': asdict(self.bank),
            'oracle': asdict(self.oracle),
            'monitoring': asdict(self.monitoring),
        }

    @classmethod
    def _from_dict(cls, data: dict) -> 'SystemConfig':
        """Create from dictionary. Unknown keys are ignored."""
        config = cls()
        config.mode = TradingMode(data.get('mode', 'paper'))
        config.initial_cash = data.get('initial_cash', config.initial_cash)
        config.aggressive_mode = data.get('aggressive_mode', False)
        config.low_latency_mode = data.get('low_latency_mode', False)
        config.respect_market_hours = data.get('respect_market_hours', False)
        config.loop_interval_seconds = data.get('loop_interval_seconds', config.loop_interval_seconds)

        sections = {
            'data': DataConfig,
            'signals': SignalConfig,
            'execution': ExecutionConfig,
            'bank': BankConfig,
            'oracle': OracleConfig,
            'monitoring': MonitoringConfig,
        }
        for name, section_cls in sections.items():
            values = data.get(name, {})
            known = section_cls.__dataclass_fields__.keys()
            setattr(config, name, section_cls(**{k: v for k, v in values.items() if k in known}))

        return config


# Default configuration instance
DEFAULT_CONFIG = SystemConfig()
