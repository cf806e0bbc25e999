"""
Performance monitoring and statistics for Polymarket client.

Tracks REST request metrics and streaming session counters.
"""

import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Dict, Optional


@dataclass(frozen=True)
class RequestMetrics:
    """Metrics for a single request."""
    endpoint: str
    method: str
    status_code: int
    duration_ms: float
    timestamp: float

    @property
    def succeeded(self) -> bool:
        return 200 <= self.status_code < 400


@dataclass
class Statistics:
    """REST request statistics."""
    total_requests: int = 0
    successful_requests: int = 0
    failed_requests: int = 0
    total_duration_ms: float = 0.0
    min_duration_ms: float = float("inf")
    max_duration_ms: float = 0.0

    @property
    def avg_duration_ms(self) -> float:
        if not self.total_requests:
            return 0.0
        return self.total_duration_ms / self.total_requests

    def update(self, metrics: RequestMetrics) -> None:
        self.total_requests += 1
        self.total_duration_ms += metrics.duration_ms
        self.min_duration_ms = min(self.min_duration_ms, metrics.duration_ms)
        self.max_duration_ms = max(self.max_duration_ms, metrics.duration_ms)

        if metrics.succeeded:
            self.successful_requests += 1
        else:
            self.failed_requests += 1


@dataclass
class StreamStatistics:
    """Counters of one streaming session, across reconnections."""
    frames_received: int = 0
    frames_dropped: int = 0
    events_published: int = 0
    messages_sent: int = 0
    reconnects: int = 0
    last_frame_at: Optional[float] = None

    def record_frame(self) -> None:
        self.frames_received += 1
        self.last_frame_at = time.time()


class PerformanceMonitor:
    """Monitors REST request performance."""

    def __init__(self, max_history: int = 1000):
        self._statistics = Statistics()
        self._request_history: deque = deque(maxlen=max_history)
        self._endpoint_stats: Dict[str, deque] = defaultdict(lambda: deque(maxlen=max_history))

    def record_request(
        self,
        endpoint: str,
        method: str,
        status_code: int,
        duration_ms: float,
    ) -> None:
        """Record metrics for a completed request."""
        metrics = RequestMetrics(
            endpoint=endpoint,
            method=method,
            status_code=status_code,
            duration_ms=duration_ms,
            timestamp=time.time(),
        )
        self._statistics.update(metrics)
        self._request_history.append(metrics)
        self._endpoint_stats[f"{method} {endpoint}"].append(metrics)

    @property
    def statistics(self) -> Statistics:
        return self._statistics

    def get_endpoint_stats(self, endpoint: str, method: str) -> Dict[str, float]:
        """Get statistics for a specific endpoint."""
        requests = self._endpoint_stats.get(f"{method} {endpoint}")

        if not requests:
            return {
                "count": 0,
                "avg_duration_ms": 0.0,
                "min_duration_ms": 0.0,
                "max_duration_ms": 0.0,
                "success_rate": 0.0,
            }

        durations = [r.duration_ms for r in requests]
        successful = sum(1 for r in requests if r.succeeded)

        return {
            "count": len(requests),
            "avg_duration_ms": sum(durations) / len(durations),
            "min_duration_ms": min(durations),
            "max_duration_ms": max(durations),
            "success_rate": successful / len(requests),
        }

    def get_error_rate(self, window_seconds: float = 60.0) -> float:
        """Share of failed requests within the recent time window."""
        cutoff_time = time.time() - window_seconds
        recent = [r for r in self._request_history if r.timestamp >= cutoff_time]

        if not recent:
            return 0.0

        return sum(1 for r in recent if not r.succeeded) / len(recent)
