"""
In-process booking metrics for the /metrics endpoint.
"""
import time
from collections import defaultdict, deque
from contextlib import contextmanager
from typing import Any, Dict

import structlog

from slotbook.core.config import settings

logger = structlog.get_logger(__name__)

class BookingMetrics:
    """Count booking outcomes and reserve latency."""

    def __init__(self, max_samples: int = 1000, slow_threshold: float = 1.0):
        self.max_samples = max_samples
        self.slow_threshold = slow_threshold
        self.reserve_times = deque(maxlen=max_samples)
        self.outcomes = defaultdict(int)
        self.reserve_attempts = 0
        self.retries = 0
        self.availability_queries = 0

    def track_outcome(self, reason: str):
        self.outcomes[reason] += 1

    def track_retry(self):
        self.retries += 1

    def track_availability_query(self):
        self.availability_queries += 1

    @contextmanager
    def time_reserve(self, provider_id: str):
        """Time one reserve transaction."""
        self.reserve_attempts += 1
        start = time.perf_counter()
        try:
            yield
        finally:
            duration = time.perf_counter() - start
            self.reserve_times.append(duration)
            if duration > self.slow_threshold:
                logger.warning(
                    "slow_reserve",
                    provider_id=provider_id,
                    duration=round(duration, 3),
                    threshold=self.slow_threshold
                )

    def get_metrics(self) -> Dict[str, Any]:
        recent = list(self.reserve_times)[-100:]
        avg = sum(recent) / len(recent) if recent else 0
        total_books = sum(self.outcomes.values())
        return {
            "bookings": total_books,
            "outcomes": dict(self.outcomes),
            "reserve_attempts": self.reserve_attempts,
            "retries": self.retries,
            "availability_queries": self.availability_queries,
            "avg_reserve_time": round(avg, 4),
            "max_reserve_time": round(max(recent), 4) if recent else 0,
        }

    def reset_metrics(self):
        """Reset all metrics (useful for testing)."""
        self.reserve_times.clear()
        self.outcomes.clear()
        self.reserve_attempts = 0
        self.retries = 0
        self.availability_queries = 0

# Global metrics collector
booking_metrics = BookingMetrics(max_samples=settings.METRICS_RETENTION_SAMPLES)
