import pytest

from quant_desk.monitoring import ActivityLog, MonitoringSystem, PerformanceTracker, EngineState


def test_activity_log_ids_and_capacity():
    log = ActivityLog(capacity=3)
    for i in range(5):
        log.record("BUY", "005930", 10, 81500.0 + i, "test")

    entries = log.recent()
    assert len(log) == 3
    assert [e.id for e in entries] == ["ACT000003", "ACT000004", "ACT000005"]
    assert log.recent(1)[0].price == 81504.0


def test_activity_log_failure_entry():
    entry = ActivityLog().record("SELL", "MU", 10, 141.0, "exit", success=False, error="NO_POSITION")
    assert entry.to_dict()['error'] == "NO_POSITION"
    assert not entry.success


def test_activity_log_rejects_zero_capacity():
    with pytest.raises(ValueError):
        ActivityLog(capacity=0)


def test_drawdown_from_peak():
    tracker = PerformanceTracker(1000)
    for value in (1100, 990, 1050):
        tracker.update_value(value)

    metrics = tracker.get_metrics()
    assert metrics.max_drawdown == pytest.approx(-0.1)
    assert metrics.total_return == pytest.approx(50)
    assert metrics.cycles == 3


def test_trade_counters():
    tracker = PerformanceTracker()
    tracker.record_trade(True)
    tracker.record_trade(False)
    tracker.record_trade(True)
    metrics = tracker.get_metrics()
    assert metrics.total_trades == 2
    assert metrics.failed_trades == 1


def test_monitoring_status_and_report():
    monitoring = MonitoringSystem(initial_value=1000000)
    monitoring.set_state(EngineState.RUNNING)
    monitoring.update(1010000)
    monitoring.record_error(RuntimeError("boom"))

    status = monitoring.get_status()
    assert status['state'] == "running"
    assert status['error_count'] == 1
    assert status['total_return_pct'] == pytest.approx(0.01)
    assert "QUANT DESK SESSION REPORT" in monitoring.generate_report()
