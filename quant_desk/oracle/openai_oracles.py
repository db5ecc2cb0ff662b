"""
OpenAI Oracles
==============
LLM-backed strategy and analyst oracles using JSON-mode chat completions.

The `openai` package is optional. Without it, or without an API key, the
oracles report `available == False` and the engine keeps the rule-based
ones.
"""

import json
import os
import logging

from ..alpha.alpha_models import HedgeFundStrategy
from ..portfolio.ledger import Decision
from .oracles import (
    StrategyOracle, AnalystOracle, StrategyRequest, StrategyDecision,
    AnalystRequest, FeatureRequest, parse_strategy_response, parse_analyst_response,
    max_shares_for
)

logger = logging.getLogger(__name__)


CIO_SYSTEM_PROMPT = (
    "You are the Chief Investment Officer of a semiconductor-focused hedge fund. "
    "You set one desk-wide strategy from the market regime. Reply with a JSON object "
    '{"strategy": <one of the listed strategy names>, "reason": <one sentence>}.'
)

ANALYST_SYSTEM_PROMPT = (
    "You are a quantitative analyst. Within the strategy set by your CIO, produce one trade "
    "signal for a single stock. Reply with a JSON object "
    '{"decision": "BUY"|"SELL"|"HOLD"|"SHORT"|"COVER", "sharesToTrade": <int>, '
    '"reason": <one sentence>, "confidence": <0.0-1.0>}.'
)


def strategy_prompt(request: StrategyRequest) -> str:
    lines = [
        "Available strategies:",
        f"- {HedgeFundStrategy.ALPHA_MOMENTUM.name}: trending markets; buy strong stocks, short weak ones by alpha score.",
        f"- {HedgeFundStrategy.MA_CROSS.name}: trending markets when latency matters; golden/dead cross only.",
        f"- {HedgeFundStrategy.PAIRS_TRADING.name}: ranging markets; market-neutral statistical arbitrage.",
        f"- {HedgeFundStrategy.MEAN_REVERSION.name}: ranging or quiet markets; buy oversold, short overbought.",
        f"- {HedgeFundStrategy.DEEP_HEDGING.name}: volatile ranging markets; model-driven signals from price features.",
        f"- {HedgeFundStrategy.RISK_OFF.name}: uncertain conditions; liquidate and hold cash.",
        "",
        f"Market regime: {request.regime.value}",
        f"Total portfolio value: KRW {request.portfolio_value:,.0f}",
    ]
    if request.aggressive_mode:
        lines.append("Aggressive mode is ON: momentum or ML strategies are acceptable at higher risk.")
    if request.low_latency_mode:
        lines.append("Low-latency mode is ON: prefer the simple MA cross.")
    lines.append("Which single strategy should the desk deploy?")
    return "\n".join(lines)


def analyst_prompt(request: AnalystRequest, max_shares: int) -> str:
    f = request.factors
    lines = [
        f"Active strategy: {request.strategy.name}",
        "Rules:",
        "- ALPHA_MOMENTUM: high composite score with UPTREND = BUY; low score with DOWNTREND = SHORT.",
        "- MEAN_REVERSION: mean-reversion score above 70 is overbought (SELL/SHORT); below 30 is oversold (BUY).",
        "- BUY only in a confirmed UPTREND; SHORT only in a confirmed DOWNTREND.",
        f"- sharesToTrade is a multiple of 10, at most {max_shares}; 0 for HOLD.",
        "",
        f"Stock: {request.symbol}",
        f"Trend: {request.trend.value}",
        f"Composite alpha: {f.composite_alpha_score:.1f} / 100",
        f"Value {f.value:.1f}, Momentum {f.momentum:.1f}, Mean reversion {f.mean_reversion:.1f}",
    ]
    if request.fundamentals is not None:
        fd = request.fundamentals
        lines.append(f"P/E {fd.pe_ratio:.1f}, EPS growth {fd.eps_growth:.1f}%, D/E {fd.debt_to_equity:.2f}")
    return "\n".join(lines)


def feature_prompt(request: FeatureRequest, max_shares: int) -> str:
    x = request.features
    return "\n".join([
        "Act as a short-horizon price model for one stock.",
        "- A high positive 5-period change with RSI above 70 suggests a pullback: SELL.",
        "- A strong, sustained rise over 5 and 20 periods suggests continuation: BUY.",
        "- Very low volatility means no edge: HOLD.",
        f"- sharesToTrade is a multiple of 10, at most {max_shares}; 0 for HOLD.",
        "",
        f"Stock: {request.symbol} (trend {request.trend.value})",
        f"Change 5: {x.price_change_5:.3f}%  Change 20: {x.price_change_20:.3f}%",
        f"Volatility 10: {x.volatility_10:.3f}%  RSI 14: {x.rsi_14:.1f}",
    ])


class _OpenAIClientMixin:
    """Lazy `openai.AsyncOpenAI` construction shared by both oracles."""

    def _connect(self, config) -> bool:
        self.model = os.getenv("OPENAI_MODEL", config.model)
        self.client = None
        api_key = os.getenv(config.api_key_env)
        if not api_key:
            logger.warning(f"{config.api_key_env} not set; {type(self).__name__} unavailable")
            return False
        try:
            import openai
        except ImportError:
            logger.warning("openai not installed. Run: pip install openai")
            return False
        self.client = openai.AsyncOpenAI(api_key=api_key, timeout=config.timeout_seconds)
        logger.info(f"{type(self).__name__} using model {self.model}")
        return True

    async def _complete(self, system: str, prompt: str, temperature: float, max_tokens: int) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "system", "content": system}, {"role": "user", "content": prompt}],
            temperature=temperature,
            max_tokens=max_tokens,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""


class OpenAIStrategyOracle(_OpenAIClientMixin, StrategyOracle):

    def __init__(self, config=None):
        from ..config import OracleConfig
        self.oracle_config = config or OracleConfig()
        super().__init__(self.oracle_config.timeout_seconds)
        self.available = self._connect(self.oracle_config)

    async def _select(self, request: StrategyRequest) -> StrategyDecision:
        max_tokens = (self.oracle_config.low_latency_max_tokens if request.low_latency_mode
                      else self.oracle_config.max_tokens)
        text = await self._complete(CIO_SYSTEM_PROMPT, strategy_prompt(request),
                                    self.oracle_config.strategy_temperature, max_tokens)
        decision = parse_strategy_response(text)
        logger.debug(f"CIO raw response: {text}")
        return decision


class OpenAIAnalystOracle(_OpenAIClientMixin, AnalystOracle):

    def __init__(self, config=None, execution_config=None):
        from ..config import OracleConfig
        self.oracle_config = config or OracleConfig()
        super().__init__(execution_config, self.oracle_config.timeout_seconds)
        self.available = self._connect(self.oracle_config)

    def _max_tokens(self, low_latency: bool) -> int:
        if low_latency:
            return self.oracle_config.low_latency_max_tokens
        return self.oracle_config.max_tokens

    async def _analyze(self, request: AnalystRequest) -> Decision:
        max_shares = max_shares_for(request.aggressive_mode, self.config)
        text = await self._complete(ANALYST_SYSTEM_PROMPT, analyst_prompt(request, max_shares),
                                    self.oracle_config.analyst_temperature,
                                    self._max_tokens(request.low_latency_mode))
        return parse_analyst_response(text, request.trend, max_shares)

    async def _infer(self, request: FeatureRequest) -> Decision:
        max_shares = max_shares_for(request.aggressive_mode, self.config)
        text = await self._complete(ANALYST_SYSTEM_PROMPT, feature_prompt(request, max_shares),
                                    self.oracle_config.analyst_temperature,
                                    self._max_tokens(request.low_latency_mode))
        return parse_analyst_response(text, request.trend, max_shares)


def build_oracles(oracle_config=None, execution_config=None):
    """Return (strategy_oracle, analyst_oracle) for the configured provider."""
    from ..config import OracleConfig
    from .oracles import RuleBasedStrategyOracle, RuleBasedAnalystOracle
    oracle_config = oracle_config or OracleConfig()

    if oracle_config.provider == "openai":
        strategy = OpenAIStrategyOracle(oracle_config)
        analyst = OpenAIAnalystOracle(oracle_config, execution_config)
        if strategy.available and analyst.available:
            return strategy, analyst
        logger.warning("OpenAI oracles unavailable, using rule-based oracles")
    elif oracle_config.provider != "rule":
        logger.warning(f"Unknown oracle provider {oracle_config.provider!r}, using rule-based oracles")

    return (RuleBasedStrategyOracle(oracle_config.timeout_seconds),
            RuleBasedAnalystOracle(execution_config, oracle_config.timeout_seconds))
