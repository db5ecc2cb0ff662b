"""
Monitoring Module
=================
"""
from .monitoring_system import (
    MonitoringSystem,
    ActivityLog,
    ActivityLogEntry,
    PerformanceTracker,
    PerformanceMetrics,
    EngineState
)

__all__ = [
    'MonitoringSystem',
    'ActivityLog',
    'ActivityLogEntry',
    'PerformanceTracker',
    'PerformanceMetrics',
    'EngineState'
]
