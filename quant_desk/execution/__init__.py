"""
Execution Module
================
"""
from .execution_engine import (
    ExecutionEngine,
    ExecutionVenue,
    SimulatedVenue,
    Order,
    Fill,
    FillStatus
)

__all__ = [
    'ExecutionEngine',
    'ExecutionVenue',
    'SimulatedVenue',
    'Order',
    'Fill',
    'FillStatus'
]
