"""Monitor state machine tests."""
from datetime import datetime
from types import SimpleNamespace

from cronsentry.services.checker import ProbeResult
from cronsentry.services.monitor_state import apply_probe_result, compute_rollups

T = datetime(2026, 1, 1, 12, 0, 0)

SUCCESS = ProbeResult(status="success", response_time_ms=120, status_code=200)
FAILURE = ProbeResult(status="failure", response_time_ms=80, status_code=503, error="Unexpected status code 503")


def make_monitor(**overrides):
    fields = dict(
        status="pending",
        consecutive_failures=0,
        alert_after_failures=3,
        last_checked_at=None,
        last_response_time_ms=None,
        last_status_code=None,
        last_error=None,
    )
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestHysteresis:
    def test_three_failures_then_recovery(self):
        monitor = make_monitor(alert_after_failures=3)
        statuses, alerts = [], []
        for _ in range(3):
            transition = apply_probe_result(monitor, FAILURE, T)
            statuses.append(transition.new)
            alerts.append(transition.alert_kind)

        assert statuses == ["degraded", "degraded", "down"]
        assert alerts == [None, None, "monitor.down"]
        assert monitor.consecutive_failures == 3

        transition = apply_probe_result(monitor, SUCCESS, T)
        assert transition.new == "up"
        assert transition.alert_kind == "monitor.up"
        assert monitor.consecutive_failures == 0

    def test_down_is_sticky_and_counter_keeps_growing(self):
        monitor = make_monitor(alert_after_failures=2)
        sequence = [apply_probe_result(monitor, FAILURE, T) for _ in range(3)]
        assert [t.new for t in sequence] == ["degraded", "down", "down"]
        assert [t.alert_kind for t in sequence] == [None, "monitor.down", None]
        assert monitor.consecutive_failures == 3

    def test_down_stays_down_even_below_threshold(self):
        monitor = make_monitor(status="down", consecutive_failures=0, alert_after_failures=5)
        transition = apply_probe_result(monitor, FAILURE, T)
        assert transition.new == "down"
        assert transition.alert_kind is None

    def test_threshold_of_one_goes_straight_down(self):
        monitor = make_monitor(alert_after_failures=1)
        assert apply_probe_result(monitor, FAILURE, T).new == "down"

    def test_degraded_alert_is_opt_in(self):
        assert apply_probe_result(make_monitor(), FAILURE, T).alert_kind is None
        assert apply_probe_result(make_monitor(), FAILURE, T, alert_on_degraded=True).alert_kind == "monitor.degraded"

    def test_first_success_from_pending_is_silent(self):
        transition = apply_probe_result(make_monitor(), SUCCESS, T)
        assert transition.new == "up"
        assert transition.changed
        assert transition.alert_kind is None

    def test_degraded_recovery_alerts(self):
        monitor = make_monitor(status="degraded", consecutive_failures=1)
        assert apply_probe_result(monitor, SUCCESS, T).alert_kind == "monitor.up"

    def test_last_probe_fields_are_always_recorded(self):
        monitor = make_monitor()
        apply_probe_result(monitor, FAILURE, T)
        assert monitor.last_checked_at == T
        assert monitor.last_status_code == 503
        assert monitor.last_response_time_ms == 80
        assert monitor.last_error == FAILURE.error


class TestRollups:
    def test_empty_window_is_null(self):
        assert compute_rollups([]) == (None, None)

    def test_uptime_and_latency(self):
        samples = [("success", 100), ("success", 200), ("failure", None), ("success", 300)]
        uptime, avg = compute_rollups(samples)
        assert uptime == 75.0
        assert avg == 200.0
