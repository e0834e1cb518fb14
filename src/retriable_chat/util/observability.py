"""Structured event logging and in-process metrics for chat calls."""

from __future__ import annotations

import json
import time
from contextlib import contextmanager
from dataclasses import asdict, dataclass, field
from typing import Any, Iterator

from retriable_chat.util.logging import get_logger, normalize_level


@dataclass(frozen=True)
class LogEvent:
    """Structured log event payload.

    Attributes:
        event_type: Machine-readable event name, e.g. ``chat.completed``.
        timestamp: Unix timestamp in seconds.
        payload: Structured data associated with the event.
        context: Shared context fields attached by the logger.
    """

    event_type: str
    timestamp: float
    payload: dict[str, Any]
    context: dict[str, Any] = field(default_factory=dict)


class EventLogger:
    """Logger that emits one JSON document per event."""

    def __init__(self, logger_name: str, context: dict[str, Any] | None = None) -> None:
        """Initialize the event logger.

        Args:
            logger_name: Logger name used for output.
            context: Optional shared context to attach to every event.
        """

        self._logger = get_logger(logger_name)
        self._context = dict(context or {})

    def log(
        self,
        event_type: str,
        payload: dict[str, Any],
        *,
        level: str = "INFO",
    ) -> None:
        """Emit a structured log event.

        Args:
            event_type: Machine-readable event name.
            payload: Structured event data.
            level: Logging level name (default: INFO).
        """

        event = LogEvent(
            event_type=event_type,
            timestamp=time.time(),
            payload=payload,
            context=dict(self._context),
        )
        self._logger.log(normalize_level(level), json.dumps(asdict(event), sort_keys=True))


@dataclass
class MetricsCollector:
    """Counters, durations and token totals for chat requests."""

    counters: dict[str, int] = field(default_factory=dict)
    durations: dict[str, list[float]] = field(default_factory=dict)
    tokens: dict[str, int] = field(
        default_factory=lambda: {"prompt": 0, "completion": 0, "total": 0}
    )

    def increment(self, name: str, value: int = 1) -> None:
        """Bump a named counter.

        Args:
            name: Counter name, e.g. ``chat.retries``.
            value: Amount to add.
        """

        self.counters[name] = self.counters.get(name, 0) + value

    def record_duration(self, name: str, duration_s: float) -> None:
        """Append one timing sample to a named metric.

        Args:
            name: Duration metric name.
            duration_s: Elapsed wall time in seconds.
        """

        self.durations.setdefault(name, []).append(duration_s)

    def record_tokens(
        self,
        *,
        prompt_tokens: int = 0,
        completion_tokens: int = 0,
        total_tokens: int = 0,
    ) -> None:
        """Add reported token usage to the running totals.

        Args:
            prompt_tokens: Tokens consumed by the prompt.
            completion_tokens: Tokens generated in the reply.
            total_tokens: Sum reported by the service.
        """

        self.tokens["prompt"] += prompt_tokens
        self.tokens["completion"] += completion_tokens
        self.tokens["total"] += total_tokens

    def snapshot(self) -> dict[str, Any]:
        """Return a copy of the collected metrics with duration summaries."""

        duration_summary: dict[str, dict[str, float]] = {}
        for name, values in self.durations.items():
            total = sum(values)
            count = len(values)
            duration_summary[name] = {
                "count": float(count),
                "total_s": total,
                "avg_s": total / count if count else 0.0,
            }
        return {
            "counters": dict(self.counters),
            "durations": duration_summary,
            "tokens": dict(self.tokens),
        }


@dataclass(frozen=True)
class ObservabilityManager:
    """Container for structured logging and metrics collection."""

    events: EventLogger
    metrics: MetricsCollector

    def log_event(self, event_type: str, payload: dict[str, Any], *, level: str = "INFO") -> None:
        """Log an event with the configured event logger."""

        self.events.log(event_type, payload, level=level)

    @contextmanager
    def track_duration(self, metric_name: str) -> Iterator[None]:
        """Track duration of a code block as a metric."""

        start = time.perf_counter()
        try:
            yield
        finally:
            self.metrics.record_duration(metric_name, time.perf_counter() - start)


def create_observability_manager() -> ObservabilityManager:
    """Create an observability manager writing to ``retriable_chat.events``."""

    return ObservabilityManager(
        events=EventLogger("retriable_chat.events"),
        metrics=MetricsCollector(),
    )
