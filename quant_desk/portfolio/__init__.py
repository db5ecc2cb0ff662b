"""
Portfolio Module
================
"""
from .ledger import (
    TradeAction,
    PositionType,
    ErrorCode,
    Holding,
    PairTrade,
    Portfolio,
    Decision,
    TradeResult,
    SlippageModel,
    PortfolioLedger,
    fx_factor,
    portfolio_value
)
from .bank import VirtualBank, BankResult, BankTransaction, CashSweeper

__all__ = [
    'TradeAction',
    'PositionType',
    'ErrorCode',
    'Holding',
    'PairTrade',
    'Portfolio',
    'Decision',
    'TradeResult',
    'SlippageModel',
    'PortfolioLedger',
    'fx_factor',
    'portfolio_value',
    'VirtualBank',
    'BankResult',
    'BankTransaction',
    'CashSweeper'
]
