"""Tests for source health tracking."""

from __future__ import annotations

from grid_monitor.resilience.health_check import HealthChecker


class TestHealthChecker:
    def test_initial_state_healthy(self) -> None:
        checker = HealthChecker()
        checker.register("grid_state")
        assert checker.is_healthy("grid_state") is True
        assert checker.all_healthy() is True

    def test_single_failure_stays_healthy(self) -> None:
        checker = HealthChecker(max_consecutive_failures=3)
        checker.register("outage")
        checker.record_failure("outage", "timeout")
        assert checker.is_healthy("outage") is True

    def test_consecutive_failures_mark_unhealthy(self) -> None:
        checker = HealthChecker(max_consecutive_failures=3)
        checker.register("outage")
        for _ in range(3):
            checker.record_failure("outage", "timeout")
        assert checker.is_healthy("outage") is False
        assert "outage" in checker.get_unhealthy()
        assert checker.all_healthy() is False

    def test_success_resets_consecutive(self) -> None:
        checker = HealthChecker(max_consecutive_failures=3)
        checker.register("outage")
        checker.record_failure("outage", "error1")
        checker.record_failure("outage", "error2")
        checker.record_success("outage")
        checker.record_failure("outage", "error3")
        # Only 1 consecutive failure after success
        assert checker.is_healthy("outage") is True
        assert checker.get_health("outage").total_failures == 3

    def test_recovery_after_unhealthy(self) -> None:
        checker = HealthChecker(max_consecutive_failures=1)
        checker.record_failure("grid_state", "down")
        assert checker.is_healthy("grid_state") is False
        checker.record_success("grid_state")
        assert checker.is_healthy("grid_state") is True

    def test_unknown_source_assumed_healthy(self) -> None:
        checker = HealthChecker()
        assert checker.is_healthy("nonexistent") is True

    def test_capture_exception_records_type_and_message(self) -> None:
        checker = HealthChecker()
        checker.capture_exception("history", OSError("disk full"))
        health = checker.get_health("history")
        assert health is not None
        assert health.consecutive_failures == 1
        assert health.last_error == "OSError: disk full"

    def test_to_dict(self) -> None:
        checker = HealthChecker()
        checker.register("grid_state")
        checker.record_failure("grid_state", "API error")
        assert checker.get_all_health()["grid_state"].to_dict() == {
            "healthy": True,
            "consecutive_failures": 1,
            "total_failures": 1,
            "last_error": "API error",
        }
