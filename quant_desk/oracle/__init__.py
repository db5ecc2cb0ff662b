"""
Oracle Module
=============
"""
from .oracles import (
    StrategyRequest,
    StrategyDecision,
    AnalystRequest,
    FeatureRequest,
    StrategyOracle,
    AnalystOracle,
    RuleBasedStrategyOracle,
    RuleBasedAnalystOracle,
    parse_strategy_response,
    parse_analyst_response,
    validate_analyst_decision,
    max_shares_for,
    safe_strategy,
    safe_hold,
    STRATEGY_FALLBACK_REASON,
    ANALYST_FALLBACK_REASON,
    TREND_VIOLATION_PREFIX
)
from .openai_oracles import OpenAIStrategyOracle, OpenAIAnalystOracle, build_oracles

__all__ = [
    'StrategyRequest',
    'StrategyDecision',
    'AnalystRequest',
    'FeatureRequest',
    'StrategyOracle',
    'AnalystOracle',
    'RuleBasedStrategyOracle',
    'RuleBasedAnalystOracle',
    'parse_strategy_response',
    'parse_analyst_response',
    'validate_analyst_decision',
    'max_shares_for',
    'safe_strategy',
    'safe_hold',
    'STRATEGY_FALLBACK_REASON',
    'ANALYST_FALLBACK_REASON',
    'TREND_VIOLATION_PREFIX',
    'OpenAIStrategyOracle',
    'OpenAIAnalystOracle',
    'build_oracles'
]
