"""
Unit tests for app/services/health_monitor.py.
"""

import asyncio

import pytest

from app.core.errors import NotFoundError
from app.services.health_monitor import HealthStatus, ProviderHealthMonitor


def _monitor(**kwargs) -> ProviderHealthMonitor:
    defaults = dict(
        history_size=5,
        success_window=5,
        degraded_success_rate=0.8,
        offline_failures=3,
        slow_latency_ms=1000,
    )
    defaults.update(kwargs)
    return ProviderHealthMonitor(["fal", "leonardo"], **defaults)


# ---------------------------------------------------------------------------
# Status transitions
# ---------------------------------------------------------------------------


def test_new_provider_starts_online():
    assert _monitor().get_status("fal") == HealthStatus.ONLINE


def test_three_consecutive_failures_go_offline():
    m = _monitor()
    m.record_outcome("fal", False, 100, "boom")
    m.record_outcome("fal", False, 100, "boom")
    assert m.get_status("fal") != HealthStatus.OFFLINE
    m.record_outcome("fal", False, 100, "boom")
    assert m.get_status("fal") == HealthStatus.OFFLINE


def test_success_after_offline_recovers_to_online_once_window_clears():
    m = _monitor(success_window=2)
    for _ in range(3):
        m.record_outcome("fal", False, 100, "down")
    m.record_outcome("fal", True, 100)
    # Window [fail, ok] is still below the success threshold
    assert m.get_status("fal") == HealthStatus.DEGRADED
    m.record_outcome("fal", True, 100)
    assert m.get_status("fal") == HealthStatus.ONLINE


def test_offline_provider_unavailable_until_retry_cooldown_passes():
    m = _monitor(offline_retry_sec=60)
    for _ in range(3):
        m.record_outcome("fal", False, 100, "down")
    assert m.is_available("fal") is False
    assert m.is_available("leonardo") is True

    m._metrics["fal"].last_check -= 61
    assert m.is_available("fal") is True


def test_failed_trial_restarts_retry_cooldown():
    m = _monitor(offline_retry_sec=60)
    for _ in range(3):
        m.record_outcome("fal", False, 100, "down")
    m._metrics["fal"].last_check -= 61

    m.record_outcome("fal", False, 100, "still down")

    assert m.get_status("fal") == HealthStatus.OFFLINE
    assert m.is_available("fal") is False


def test_intermittent_failures_degrade():
    m = _monitor()
    m.record_outcome("fal", True, 100)
    m.record_outcome("fal", False, 100, "flaky")
    m.record_outcome("fal", True, 100)
    m.record_outcome("fal", False, 100, "flaky")
    assert m.get_status("fal") == HealthStatus.DEGRADED


def test_slow_responses_degrade():
    m = _monitor(slow_latency_ms=1000)
    m.record_outcome("leonardo", True, 5000)
    assert m.get_status("leonardo") == HealthStatus.DEGRADED


def test_history_is_bounded():
    m = _monitor(history_size=5)
    for i in range(12):
        m.record_outcome("fal", True, float(i))
    history = m.get_history("fal")
    assert len(history) == 5
    assert history[0]["latency_ms"] == 7.0
    assert m.get_metrics("fal")["total_checks"] == 12


def test_unknown_provider_raises_not_found():
    m = _monitor()
    with pytest.raises(NotFoundError):
        m.get_status("midjourney")
    with pytest.raises(NotFoundError):
        m.record_outcome("midjourney", True, 1)


# ---------------------------------------------------------------------------
# Aggregates
# ---------------------------------------------------------------------------


def test_system_health_all_online_is_healthy():
    m = _monitor()
    m.record_outcome("fal", True, 100)
    health = m.get_system_health()
    assert health["status"] == "healthy"
    assert health["recommendations"] == []


def test_system_health_degraded_when_worst_is_degraded():
    m = _monitor()
    m.record_outcome("leonardo", True, 5000)
    health = m.get_system_health()
    assert health["status"] == "degraded"
    assert any("slowly" in r for r in health["recommendations"])


def test_system_health_unhealthy_when_any_offline():
    m = _monitor()
    for _ in range(3):
        m.record_outcome("fal", False, 50, "down")
    health = m.get_system_health()
    assert health["status"] == "unhealthy"
    assert any("fal" in r and "offline" in r for r in health["recommendations"])


def test_reset_metrics_single_provider():
    m = _monitor()
    for _ in range(3):
        m.record_outcome("fal", False, 50, "down")
    m.record_outcome("leonardo", True, 50)
    m.reset_metrics("fal")
    assert m.get_status("fal") == HealthStatus.ONLINE
    assert m.get_metrics("fal")["total_checks"] == 0
    assert m.get_metrics("leonardo")["total_checks"] == 1


def test_health_summary_counts():
    m = _monitor()
    m.record_outcome("fal", True, 100)
    m.record_outcome("leonardo", False, 300, "err")
    summary = m.get_health_summary()
    assert summary["total_checks"] == 2
    assert summary["total_errors"] == 1
    assert summary["average_response_time_ms"] == 200.0
    assert summary["monitoring"] is False


def test_average_latency_ignores_failures():
    m = _monitor()
    m.record_outcome("fal", True, 100)
    m.record_outcome("fal", False, 9000, "timeout")
    m.record_outcome("fal", True, 300)
    assert m.average_latency("fal") == 200
    assert m.average_latency("leonardo") is None


# ---------------------------------------------------------------------------
# Active probes
# ---------------------------------------------------------------------------


async def test_force_check_records_probe_outcomes():
    async def ok():
        return None

    async def broken():
        raise RuntimeError("401 unauthorized")

    m = ProviderHealthMonitor(["fal", "leonardo"], probes={"fal": ok, "leonardo": broken})
    results = await m.force_check()

    assert set(results) == {"fal", "leonardo"}
    assert results["fal"]["total_checks"] == 1
    assert results["leonardo"]["total_errors"] == 1
    assert "401" in m.get_metrics("leonardo")["last_error"]


async def test_force_check_unknown_provider():
    m = _monitor()
    with pytest.raises(NotFoundError):
        await m.force_check("nope")


async def test_start_and_stop_monitoring():
    calls = []

    async def probe():
        calls.append(1)

    m = ProviderHealthMonitor(["fal"], probes={"fal": probe})
    assert m.start_monitoring(interval=0.01) is True
    assert m.start_monitoring(interval=0.01) is False
    await asyncio.sleep(0.05)
    assert await m.stop_monitoring() is True
    assert m.is_monitoring is False
    assert len(calls) >= 1
