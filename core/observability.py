"""Observability Module - Logging, Tracing, and Metrics

This module provides:
1. Structured logging with context
2. Per-stage tracing of a conversational turn
3. Turn-level metrics (crises, invalid transitions, model failures)
"""
import logging
from collections import deque
from typing import Deque, Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime

# Configure structured logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s | %(name)s | %(levelname)s | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)

logger = logging.getLogger("sentient_guide")

# Latency samples kept per stage for the rolling averages
LATENCY_WINDOW = 500


@dataclass
class StageTrace:
    """Represents a single traced stage of a turn."""
    stage_name: str
    start_time: datetime = field(default_factory=datetime.now)
    end_time: Optional[datetime] = None
    duration_ms: Optional[float] = None
    input_summary: str = ""
    success: bool = True
    error: Optional[str] = None

    def complete(self, success: bool = True, error: str = None):
        """Mark trace as complete."""
        self.end_time = datetime.now()
        self.duration_ms = (self.end_time - self.start_time).total_seconds() * 1000
        self.success = success
        self.error = error


@dataclass
class TurnMetrics:
    """Aggregated metrics for the conversation core."""
    total_turns: int = 0
    crisis_turns: int = 0
    invalid_transitions: int = 0
    model_failures: int = 0
    stage_failures: int = 0
    stage_latencies: Dict[str, Deque[float]] = field(default_factory=dict)

    def record_stage(self, trace: StageTrace):
        """Record a stage trace into metrics."""
        if not trace.success:
            self.stage_failures += 1
        if trace.duration_ms is not None:
            self.stage_latencies.setdefault(
                trace.stage_name, deque(maxlen=LATENCY_WINDOW)
            ).append(trace.duration_ms)

    def record_turn(self, crisis: bool = False):
        self.total_turns += 1
        if crisis:
            self.crisis_turns += 1

    def record_invalid_transition(self):
        self.invalid_transitions += 1

    def record_model_failure(self):
        self.model_failures += 1

    def reset(self):
        self.total_turns = 0
        self.crisis_turns = 0
        self.invalid_transitions = 0
        self.model_failures = 0
        self.stage_failures = 0
        self.stage_latencies = {}

    def summary(self) -> Dict[str, Any]:
        """Return metrics summary."""
        stage_avg = {}
        for stage, latencies in self.stage_latencies.items():
            if latencies:
                stage_avg[stage] = sum(latencies) / len(latencies)

        return {
            "total_turns": self.total_turns,
            "crisis_turns": self.crisis_turns,
            "invalid_transitions": self.invalid_transitions,
            "model_failures": self.model_failures,
            "stage_failures": self.stage_failures,
            "stage_avg_latency_ms": stage_avg,
        }


# Global metrics instance
metrics = TurnMetrics()


class Tracer:
    """Context manager for tracing one stage of a turn."""

    def __init__(self, stage_name: str, input_data: Any = None):
        self.trace = StageTrace(stage_name=stage_name)
        if input_data:
            self.trace.input_summary = str(input_data)[:200]

    def __enter__(self):
        logger.debug(f"▶ {self.trace.stage_name} started")
        return self.trace

    def __exit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            self.trace.complete(success=False, error=str(exc_val))
            logger.error(f"✖ {self.trace.stage_name} failed: {exc_val}")
        else:
            self.trace.complete(success=True)
            logger.debug(f"✔ {self.trace.stage_name} completed in {self.trace.duration_ms:.0f}ms")

        metrics.record_stage(self.trace)
        return False  # Don't suppress exceptions


def get_metrics_summary() -> Dict[str, Any]:
    """Get current metrics summary for dashboard/API."""
    return metrics.summary()
