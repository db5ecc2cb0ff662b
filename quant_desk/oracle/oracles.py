"""
Oracle Contracts
================
Strategy (desk-level) and Analyst (per-instrument) oracles.

Every oracle response passes through the parse/validate functions below
before it reaches the executor:
- an unknown strategy or a failed call becomes RISK_OFF
- a malformed analyst response or a failed call becomes HOLD with confidence 0
- BUY survives only in an UPTREND and SHORT only in a DOWNTREND
- share counts are rounded down to lots of 10 and capped per mode
"""

import asyncio
import json
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, Optional, Union
import logging

from ..alpha.alpha_models import AlphaFactors, HedgeFundStrategy
from ..data.reference_data import FundamentalData
from ..features.feature_engine import MLFeatures
from ..portfolio.ledger import Decision, ErrorCode, TradeAction
from ..signals.regime_detector import MarketRegime
from ..signals.technical_signals import Trend

logger = logging.getLogger(__name__)

STRATEGY_FALLBACK_REASON = "AI CIO error, defaulting to safety."
ANALYST_FALLBACK_REASON = "Analyst AI error."
TREND_VIOLATION_PREFIX = "Signal ignored (Trend violation): "
LOT_SIZE = 10

ANALYST_ACTIONS = (
    TradeAction.BUY, TradeAction.SELL, TradeAction.HOLD, TradeAction.SHORT, TradeAction.COVER
)


@dataclass
class StrategyRequest:
    regime: MarketRegime
    portfolio_value: float
    aggressive_mode: bool = False
    low_latency_mode: bool = False


@dataclass
class StrategyDecision:
    strategy: HedgeFundStrategy
    reason: str
    error: Optional[ErrorCode] = None


@dataclass
class AnalystRequest:
    symbol: str
    strategy: HedgeFundStrategy
    factors: AlphaFactors
    trend: Trend
    fundamentals: Optional[FundamentalData] = None
    aggressive_mode: bool = False
    low_latency_mode: bool = False


@dataclass
class FeatureRequest:
    """Input for the ML-driven (Deep Hedging) path."""
    symbol: str
    features: MLFeatures
    trend: Trend
    aggressive_mode: bool = False
    low_latency_mode: bool = False


Payload = Union[str, bytes, Dict[str, Any]]


def _load(payload: Payload) -> Dict[str, Any]:
    if isinstance(payload, (str, bytes)):
        payload = json.loads(payload)
    if not isinstance(payload, dict):
        raise ValueError(f"Expected a JSON object, got {type(payload).__name__}")
    return payload


def safe_strategy(reason: str = STRATEGY_FALLBACK_REASON) -> StrategyDecision:
    return StrategyDecision(HedgeFundStrategy.RISK_OFF, reason, ErrorCode.ORACLE_ERROR)


def safe_hold(reason: str = ANALYST_FALLBACK_REASON) -> Decision:
    return Decision.hold(reason, ErrorCode.ORACLE_ERROR)


def parse_strategy_response(payload: Payload) -> StrategyDecision:
    """Validate a `{strategy, reason}` response; anything unusable becomes RISK_OFF."""
    try:
        data = _load(payload)
    except ValueError as e:
        logger.warning(f"Malformed strategy response: {e}")
        return safe_strategy()

    strategy = HedgeFundStrategy.parse(data.get('strategy'))
    if strategy is None:
        logger.warning(f"Unknown strategy in oracle response: {data.get('strategy')!r}")
        return safe_strategy()
    return StrategyDecision(strategy, str(data.get('reason', '')))


def max_shares_for(aggressive: bool, config=None) -> int:
    from ..config import ExecutionConfig
    config = config or ExecutionConfig()
    return config.max_shares_aggressive if aggressive else config.max_shares_normal


def validate_analyst_decision(decision: Decision, trend: Trend, max_shares: int) -> Decision:
    """
    Enforce the trend gate, lot rounding and the share cap.

    Non-numeric or non-finite shares/confidence become a safe HOLD, and a
    trade that rounds down to zero lots becomes a plain HOLD.
    """
    if not isinstance(decision, Decision) or decision.action not in ANALYST_ACTIONS:
        action = getattr(decision, 'action', None)
        return safe_hold(f"Unsupported analyst action {getattr(action, 'value', action)}")

    action = decision.action
    reason = decision.reason
    try:
        shares = float(decision.shares)
        confidence = float(decision.confidence)
    except (TypeError, ValueError) as e:
        logger.warning(f"Non-numeric analyst decision: {e}")
        return safe_hold()
    if not (math.isfinite(shares) and math.isfinite(confidence)):
        logger.warning(f"Non-finite analyst decision: shares={shares}, confidence={confidence}")
        return safe_hold()

    if (action == TradeAction.BUY and trend != Trend.UPTREND) or \
            (action == TradeAction.SHORT and trend != Trend.DOWNTREND):
        action = TradeAction.HOLD
        reason = f"{TREND_VIOLATION_PREFIX}{reason}"

    lots = 0
    if action != TradeAction.HOLD:
        lots = (max(0, int(shares)) // LOT_SIZE) * LOT_SIZE
        lots = min(lots, max_shares)
        if lots <= 0:
            action = TradeAction.HOLD
            reason = f"Order size below one lot ({decision.shares}): {reason}"

    confidence = min(1.0, max(0.0, confidence))
    return Decision(action, lots, reason, confidence, decision.error)


def parse_analyst_response(payload: Payload, trend: Trend, max_shares: int) -> Decision:
    """Validate a `{decision, sharesToTrade, reason, confidence}` response."""
    try:
        data = _load(payload)
        action = TradeAction(str(data['decision']).strip().upper())
        shares = float(data.get('sharesToTrade', 0) or 0)
        confidence = float(data.get('confidence', 0) or 0)
        if not (math.isfinite(shares) and math.isfinite(confidence)):
            raise ValueError("Non-finite number in analyst response")
    except (ValueError, KeyError, TypeError, OverflowError) as e:
        logger.warning(f"Malformed analyst response: {e}")
        return safe_hold()

    decision = Decision(action, int(shares), str(data.get('reason', '')), confidence)
    return validate_analyst_decision(decision, trend, max_shares)


class StrategyOracle(ABC):
    """
    Desk-level strategy selection.

    Subclasses implement `_select`; `select_strategy` adds the timeout and
    the RISK_OFF fallback.
    """

    def __init__(self, timeout_seconds: float = 20.0):
        self.timeout_seconds = timeout_seconds

    @abstractmethod
    async def _select(self, request: StrategyRequest) -> StrategyDecision:
        pass

    async def select_strategy(self, request: StrategyRequest) -> StrategyDecision:
        try:
            decision = await asyncio.wait_for(self._select(request), self.timeout_seconds)
        except Exception as e:
            logger.warning(f"Strategy oracle failed, falling back to RISK_OFF: {e!r}")
            return safe_strategy()
        if not isinstance(decision, StrategyDecision) or \
                not isinstance(decision.strategy, HedgeFundStrategy):
            logger.warning(f"Unusable strategy oracle result {decision!r}, falling back to RISK_OFF")
            return safe_strategy()
        return decision


class AnalystOracle(ABC):
    """
    Per-instrument trade recommendations.

    Both entry points validate the raw decision against the trend and the
    share cap, and turn any failure into HOLD with confidence 0.
    """

    def __init__(self, config=None, timeout_seconds: float = 20.0):
        from ..config import ExecutionConfig
        self.config = config or ExecutionConfig()
        self.timeout_seconds = timeout_seconds

    @abstractmethod
    async def _analyze(self, request: AnalystRequest) -> Decision:
        pass

    @abstractmethod
    async def _infer(self, request: FeatureRequest) -> Decision:
        pass

    async def _guarded(self, call, symbol: str, trend: Trend, aggressive: bool) -> Decision:
        try:
            decision = await asyncio.wait_for(call, self.timeout_seconds)
        except Exception as e:
            logger.warning(f"Analyst oracle failed for {symbol}, holding: {e!r}")
            return safe_hold()
        if not isinstance(decision, Decision):
            logger.warning(f"Unusable analyst result for {symbol} {decision!r}, holding")
            return safe_hold()
        return validate_analyst_decision(decision, trend, max_shares_for(aggressive, self.config))

    async def analyze(self, request: AnalystRequest) -> Decision:
        return await self._guarded(self._analyze(request), request.symbol,
                                   request.trend, request.aggressive_mode)

    async def infer_from_features(self, request: FeatureRequest) -> Decision:
        return await self._guarded(self._infer(request), request.symbol,
                                   request.trend, request.aggressive_mode)


class RuleBasedStrategyOracle(StrategyOracle):
    """Deterministic regime -> strategy map."""

    async def _select(self, request: StrategyRequest) -> StrategyDecision:
        regime = request.regime
        if regime == MarketRegime.TRENDING:
            if request.low_latency_mode:
                return StrategyDecision(HedgeFundStrategy.MA_CROSS,
                                        "Trending market, low latency: simple MA cross")
            return StrategyDecision(HedgeFundStrategy.ALPHA_MOMENTUM,
                                    "Trending market: ride momentum")
        if regime == MarketRegime.RANGING:
            if request.aggressive_mode:
                return StrategyDecision(HedgeFundStrategy.DEEP_HEDGING,
                                        "Volatile ranging market: ML-driven hedging")
            return StrategyDecision(HedgeFundStrategy.PAIRS_TRADING,
                                    "Ranging market: market-neutral stat arb")
        if regime == MarketRegime.LOW_VOLATILITY:
            return StrategyDecision(HedgeFundStrategy.MEAN_REVERSION,
                                    "Quiet market: fade extremes")
        return StrategyDecision(HedgeFundStrategy.RISK_OFF, "No clear regime: stay in cash")


class RuleBasedAnalystOracle(AnalystOracle):
    """
    Factor thresholds standing in for an LLM analyst.

    Trade size is half the mode cap; confidence scales with how far the
    deciding score sits past its threshold.
    """

    MOMENTUM_BUY = 60.0
    MOMENTUM_SHORT = 40.0
    OVERSOLD = 30.0
    OVERBOUGHT = 70.0

    def _size(self, aggressive: bool) -> int:
        return max_shares_for(aggressive, self.config) // 2

    async def _analyze(self, request: AnalystRequest) -> Decision:
        f = request.factors
        shares = self._size(request.aggressive_mode)

        if request.strategy == HedgeFundStrategy.ALPHA_MOMENTUM:
            score = f.composite_alpha_score
            if score >= self.MOMENTUM_BUY and request.trend == Trend.UPTREND:
                return Decision(TradeAction.BUY, shares,
                                f"Composite alpha {score:.1f} in uptrend", min(1.0, score / 100))
            if score <= self.MOMENTUM_SHORT and request.trend == Trend.DOWNTREND:
                return Decision(TradeAction.SHORT, shares,
                                f"Composite alpha {score:.1f} in downtrend", min(1.0, (100 - score) / 100))
            return Decision.hold(f"Composite alpha {score:.1f}, trend {request.trend.value}")

        if request.strategy == HedgeFundStrategy.MEAN_REVERSION:
            score = f.mean_reversion
            if score < self.OVERSOLD:
                return Decision(TradeAction.BUY, shares, f"Oversold (mean reversion {score:.1f})",
                                (self.OVERSOLD - score) / self.OVERSOLD)
            if score > self.OVERBOUGHT:
                return Decision(TradeAction.SHORT, shares, f"Overbought (mean reversion {score:.1f})",
                                (score - self.OVERBOUGHT) / (100 - self.OVERBOUGHT))
            return Decision.hold(f"Mean reversion {score:.1f} within band")

        return Decision.hold(f"No analyst rule for {request.strategy.value}")

    async def _infer(self, request: FeatureRequest) -> Decision:
        x = request.features
        shares = self._size(request.aggressive_mode)

        if x.price_change_5 > 1.0 and x.rsi_14 > 70:
            return Decision(TradeAction.SELL, shares,
                            f"Sharp rise ({x.price_change_5:.2f}%) with RSI {x.rsi_14:.0f}", 0.7)
        if x.price_change_5 > 0.5 and x.price_change_20 > 1.0:
            return Decision(TradeAction.BUY, shares,
                            f"Sustained rise ({x.price_change_20:.2f}% over 20)", 0.6)
        if x.volatility_10 < 0.1:
            return Decision.hold(f"Volatility {x.volatility_10:.3f}% too low")
        return Decision.hold("No clear pattern in features")
