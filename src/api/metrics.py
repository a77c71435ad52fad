"""Metrics service for tracking pipeline performance.

Singleton service to track recommendation runs, model calls and latency.
"""

import threading
from typing import Dict

# Outcomes a recommendation run can end in
PIPELINE_OUTCOMES = ("cache_hit", "model", "fallback", "empty", "error")


class MetricsService:
    """Singleton service for tracking pipeline metrics.

    Thread-safe counters and latency tracking for recommendation runs.
    """

    _instance = None
    _lock = threading.Lock()

    def __new__(cls):
        """Create singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = super(MetricsService, cls).__new__(cls)
                    cls._instance._initialized = False
        return cls._instance

    def __init__(self):
        """Initialize metrics counters."""
        if self._initialized:
            return

        self._lock = threading.Lock()
        self._reset_counters()
        self._initialized = True

    def _reset_counters(self) -> None:
        self._outcomes = {outcome: 0 for outcome in PIPELINE_OUTCOMES}
        self._model_calls = 0
        self._model_failures = 0
        self._cache_errors = 0
        self._run_count = 0
        self._total_latency_ms = 0.0
        self._min_latency_ms = float('inf')
        self._max_latency_ms = 0.0

    def record_pipeline(self, outcome: str, latency_ms: float) -> None:
        """Record a finished recommendation run.

        Args:
            outcome: One of PIPELINE_OUTCOMES
            latency_ms: Wall-clock duration of the run in milliseconds
        """
        with self._lock:
            self._outcomes[outcome] = self._outcomes.get(outcome, 0) + 1
            self._run_count += 1
            self._total_latency_ms += latency_ms

            if latency_ms < self._min_latency_ms:
                self._min_latency_ms = latency_ms

            if latency_ms > self._max_latency_ms:
                self._max_latency_ms = latency_ms

    def record_model_call(self, success: bool) -> None:
        """Record one call to the generative ranking service."""
        with self._lock:
            self._model_calls += 1
            if not success:
                self._model_failures += 1

    def record_cache_error(self) -> None:
        with self._lock:
            self._cache_errors += 1

    def get_metrics(self) -> Dict:
        """Get current metrics.

        Returns:
            Dictionary with metrics including:
            - pipeline_runs: Total number of recommendation runs
            - outcomes: Run count per outcome
            - model_calls / model_failures: Generative service usage
            - cache_errors: Cache reads or writes that degraded
            - average_latency_ms, min_latency_ms, max_latency_ms
        """
        with self._lock:
            avg_latency = (
                self._total_latency_ms / self._run_count
                if self._run_count > 0
                else 0.0
            )

            return {
                "pipeline_runs": self._run_count,
                "outcomes": dict(self._outcomes),
                "model_calls": self._model_calls,
                "model_failures": self._model_failures,
                "cache_errors": self._cache_errors,
                "average_latency_ms": round(avg_latency, 2),
                "min_latency_ms": round(self._min_latency_ms, 2) if self._min_latency_ms != float('inf') else 0.0,
                "max_latency_ms": round(self._max_latency_ms, 2),
            }

    def reset(self) -> None:
        """Reset all metrics (useful for testing)."""
        with self._lock:
            self._reset_counters()


# Global singleton instance
metrics_service = MetricsService()
