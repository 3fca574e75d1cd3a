"""
Per-provider health tracking for the image generation providers.

Every router attempt and every active probe is fed into `record_outcome`,
which keeps a bounded rolling history per provider and recomputes its status:

    online   : recent calls succeed at normal latency
    degraded : intermittent failures or slow responses
    offline  : several consecutive failures

One monitor instance is built during the FastAPI lifespan and shared by the
router and the /api/ai/provider-health routes. Nothing is persisted; a restart
starts every provider from a clean `online` slate.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Deque, Dict, Iterable, List, Optional

from app.config import settings
from app.core.errors import NotFoundError

logger = logging.getLogger(__name__)


class HealthStatus(str, Enum):
    ONLINE = "online"
    DEGRADED = "degraded"
    OFFLINE = "offline"


@dataclass
class CheckRecord:
    timestamp: float
    success: bool
    latency_ms: float
    error: Optional[str] = None

    def to_dict(self) -> dict:
        return {
            "timestamp": self.timestamp,
            "success": self.success,
            "latency_ms": round(self.latency_ms, 2),
            "error": self.error,
        }


@dataclass
class ProviderMetrics:
    provider: str
    history: Deque[CheckRecord]
    status: HealthStatus = HealthStatus.ONLINE
    total_checks: int = 0
    total_errors: int = 0
    consecutive_failures: int = 0
    last_check: Optional[float] = None
    last_error: Optional[str] = None
    status_since: float = field(default_factory=time.time)


class ProviderHealthMonitor:
    def __init__(
        self,
        providers: Iterable[str],
        probes: Optional[Dict[str, Callable[[], Awaitable[None]]]] = None,
        history_size: Optional[int] = None,
        success_window: Optional[int] = None,
        degraded_success_rate: Optional[float] = None,
        offline_failures: Optional[int] = None,
        slow_latency_ms: Optional[float] = None,
        offline_retry_sec: Optional[float] = None,
    ):
        self.history_size = history_size or settings.health_history_size
        self.success_window = success_window or settings.health_success_window
        self.degraded_success_rate = (
            degraded_success_rate if degraded_success_rate is not None
            else settings.health_degraded_success_rate
        )
        self.offline_failures = offline_failures or settings.health_offline_failures
        self.slow_latency_ms = slow_latency_ms or settings.health_slow_latency_ms
        self.offline_retry_sec = (
            offline_retry_sec if offline_retry_sec is not None
            else settings.health_offline_retry_sec
        )

        self.probes = probes or {}
        self.started_at = time.time()
        self._metrics: Dict[str, ProviderMetrics] = {}
        for name in providers:
            self._metrics[name] = self._fresh(name)

        self._monitor_task: Optional[asyncio.Task] = None
        self.monitor_interval: Optional[float] = None

    def _fresh(self, name: str) -> ProviderMetrics:
        return ProviderMetrics(provider=name, history=deque(maxlen=self.history_size))

    def _get(self, provider: str) -> ProviderMetrics:
        m = self._metrics.get(provider)
        if m is None:
            raise NotFoundError(f"Unknown provider: {provider}")
        return m

    @property
    def providers(self) -> List[str]:
        return list(self._metrics)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------

    def record_outcome(
        self,
        provider: str,
        success: bool,
        latency_ms: float,
        error: Optional[str] = None,
    ) -> HealthStatus:
        m = self._get(provider)
        now = time.time()

        m.history.append(CheckRecord(now, success, latency_ms, error))
        m.total_checks += 1
        m.last_check = now
        if success:
            m.consecutive_failures = 0
        else:
            m.total_errors += 1
            m.consecutive_failures += 1
            m.last_error = error

        new_status = self._compute_status(m)
        if new_status != m.status:
            log = logger.warning if new_status != HealthStatus.ONLINE else logger.info
            log(f"[HEALTH] {provider}: {m.status.value} -> {new_status.value}"
                f" (consecutive_failures={m.consecutive_failures}, last_error={m.last_error})")
            m.status = new_status
            m.status_since = now
        return m.status

    def _compute_status(self, m: ProviderMetrics) -> HealthStatus:
        if m.consecutive_failures >= self.offline_failures:
            return HealthStatus.OFFLINE

        window = list(m.history)[-self.success_window:]
        successes = [r for r in window if r.success]
        if window and len(successes) / len(window) < self.degraded_success_rate:
            return HealthStatus.DEGRADED

        if successes:
            avg = sum(r.latency_ms for r in successes) / len(successes)
            if avg > self.slow_latency_ms:
                return HealthStatus.DEGRADED

        return HealthStatus.ONLINE

    # ------------------------------------------------------------------
    # Read accessors
    # ------------------------------------------------------------------

    def get_status(self, provider: str) -> HealthStatus:
        return self._get(provider).status

    def is_available(self, provider: str) -> bool:
        """
        Whether the router may send traffic to the provider. An offline provider
        becomes available again for a single trial once `offline_retry_sec` has
        passed since its last recorded outcome; a failed trial restarts the wait.
        """
        m = self._get(provider)
        if m.status != HealthStatus.OFFLINE:
            return True
        last = m.last_check or m.status_since
        return time.time() - last >= self.offline_retry_sec

    def get_history(self, provider: str) -> List[dict]:
        return [r.to_dict() for r in self._get(provider).history]

    def average_latency(self, provider: str) -> Optional[float]:
        """Mean latency of recent successful calls, or None when there are none."""
        m = self._get(provider)
        window = [r for r in list(m.history)[-self.success_window:] if r.success]
        if not window:
            return None
        return sum(r.latency_ms for r in window) / len(window)

    def get_metrics(self, provider: str) -> dict:
        m = self._get(provider)
        window = list(m.history)[-self.success_window:]
        success_rate = (
            sum(1 for r in window if r.success) / len(window) if window else 1.0
        )
        avg = self.average_latency(provider)
        return {
            "provider": provider,
            "status": m.status.value,
            "status_since": m.status_since,
            "total_checks": m.total_checks,
            "total_errors": m.total_errors,
            "consecutive_failures": m.consecutive_failures,
            "success_rate": round(success_rate, 3),
            "average_latency_ms": round(avg, 2) if avg is not None else None,
            "last_check": m.last_check,
            "last_error": m.last_error,
        }

    def get_all_metrics(self) -> Dict[str, dict]:
        return {name: self.get_metrics(name) for name in self._metrics}

    def get_system_health(self) -> dict:
        statuses = [m.status for m in self._metrics.values()]
        if any(s == HealthStatus.OFFLINE for s in statuses):
            overall = "unhealthy"
        elif any(s == HealthStatus.DEGRADED for s in statuses):
            overall = "degraded"
        else:
            overall = "healthy"

        recommendations = []
        for name, m in self._metrics.items():
            if m.status == HealthStatus.OFFLINE:
                recommendations.append(
                    f"Provider {name} is offline; consider disabling it or switching the primary provider."
                )
            elif m.status == HealthStatus.DEGRADED:
                avg = self.average_latency(name)
                if avg is not None and avg > self.slow_latency_ms:
                    recommendations.append(
                        f"Provider {name} is responding slowly (avg {avg:.0f} ms)."
                    )
                else:
                    recommendations.append(
                        f"Provider {name} has intermittent failures; monitor closely."
                    )

        return {
            "status": overall,
            "providers": self.get_all_metrics(),
            "recommendations": recommendations,
            "timestamp": time.time(),
        }

    def get_health_summary(self) -> dict:
        total_checks = sum(m.total_checks for m in self._metrics.values())
        total_errors = sum(m.total_errors for m in self._metrics.values())
        latencies = [r.latency_ms for m in self._metrics.values() for r in m.history]
        return {
            "total_checks": total_checks,
            "total_errors": total_errors,
            "average_response_time_ms": (
                round(sum(latencies) / len(latencies), 2) if latencies else 0.0
            ),
            "uptime_sec": round(time.time() - self.started_at, 1),
            "monitoring": self.is_monitoring,
            "providers": {name: m.status.value for name, m in self._metrics.items()},
        }

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------

    def reset_metrics(self, provider: Optional[str] = None) -> None:
        names = [provider] if provider else list(self._metrics)
        for name in names:
            self._get(name)
            self._metrics[name] = self._fresh(name)
        logger.info(f"[HEALTH] Metrics reset for: {', '.join(names)}")

    async def _probe_one(self, provider: str) -> dict:
        probe = self.probes.get(provider)
        start = time.perf_counter()
        try:
            if probe is None:
                raise RuntimeError("no probe registered")
            await asyncio.wait_for(probe(), timeout=settings.http_timeout_sec)
        except asyncio.TimeoutError:
            latency = (time.perf_counter() - start) * 1000
            self.record_outcome(provider, False, latency, "probe timed out")
        except Exception as e:
            latency = (time.perf_counter() - start) * 1000
            self.record_outcome(provider, False, latency, str(e))
        else:
            latency = (time.perf_counter() - start) * 1000
            self.record_outcome(provider, True, latency)
        return self.get_metrics(provider)

    async def force_check(self, provider: Optional[str] = None) -> Dict[str, dict]:
        """Probe one provider (or all of them concurrently) right now."""
        if provider:
            self._get(provider)
            names = [provider]
        else:
            names = list(self._metrics)

        results = await asyncio.gather(*(self._probe_one(n) for n in names))
        return dict(zip(names, results))

    # ------------------------------------------------------------------
    # Background monitoring
    # ------------------------------------------------------------------

    @property
    def is_monitoring(self) -> bool:
        return self._monitor_task is not None and not self._monitor_task.done()

    async def _monitor_loop(self, interval: float) -> None:
        while True:
            try:
                await self.force_check()
            except Exception as e:
                logger.error(f"[HEALTH] Periodic check failed: {e}")
            await asyncio.sleep(interval)

    def start_monitoring(self, interval: Optional[float] = None) -> bool:
        """Start the periodic probe task. Returns False when it is already running."""
        if self.is_monitoring:
            return False
        self.monitor_interval = interval or settings.health_check_interval_sec
        self._monitor_task = asyncio.create_task(self._monitor_loop(self.monitor_interval))
        logger.info(f"[HEALTH] Monitoring started (every {self.monitor_interval}s)")
        return True

    async def stop_monitoring(self) -> bool:
        if not self.is_monitoring:
            self._monitor_task = None
            return False
        self._monitor_task.cancel()
        try:
            await self._monitor_task
        except asyncio.CancelledError:
            pass
        self._monitor_task = None
        logger.info("[HEALTH] Monitoring stopped")
        return True
