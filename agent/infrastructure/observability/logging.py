import structlog
import logging
import sys
from typing import Dict, Any, List, Optional, Tuple
import os

# Third-party loggers that are chatty at INFO
NOISY_LOGGERS = ("httpx", "httpcore", "anthropic")


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "workflow-agent"
) -> None:
    """Route structlog through stdlib logging with a JSON or console renderer"""

    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    renderer = (
        structlog.processors.JSONRenderer()
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(
        service=service_name,
        environment=os.getenv("ENVIRONMENT", "development")
    )


class AgentLogger:
    """Structured events emitted while a workflow step runs"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_tool_execution(
        self,
        tool_name: str,
        step_id: str,
        input_data: Dict[str, Any],
        duration_ms: Optional[float] = None,
        success: bool = True,
        error: Optional[str] = None
    ):
        # Parameter values may hold whole files, only their names are logged
        log = self.logger.info if success else self.logger.warning
        log(
            "tool_execution",
            tool_name=tool_name,
            step_id=step_id,
            param_names=sorted(input_data),
            duration_ms=round(duration_ms, 1) if duration_ms is not None else None,
            success=success,
            error=error
        )

    def log_phase_transition(self, step_id: str, from_phase: str, to_phase: str, reason: Optional[str] = None):
        self.logger.debug(
            "phase_transition",
            step_id=step_id,
            transition=f"{from_phase}->{to_phase}",
            reason=reason
        )

    def log_context_update(
        self,
        step_id: str,
        context_type: str,
        action: str,
        details: Optional[Dict[str, Any]] = None
    ):
        """Record a change made to a step's stored history"""

        self.logger.info(
            "context_update",
            step_id=step_id,
            context_type=context_type,
            action=action,
            **(details or {})
        )


agent_logger = AgentLogger("workflow")


class MetricsCollector:
    """In-process latency and counter aggregates, keyed by name and tags"""

    def __init__(self):
        # name and tags -> [count, total_ms, max_ms]
        self.latencies: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], List[float]] = {}
        self.counters: Dict[Tuple[str, Tuple[Tuple[str, str], ...]], int] = {}

    @staticmethod
    def _key(name: str, tags: Optional[Dict[str, str]]) -> Tuple[str, Tuple[Tuple[str, str], ...]]:
        return name, tuple(sorted((tags or {}).items()))

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        aggregate = self.latencies.setdefault(self._key(operation, tags), [0, 0.0, 0.0])
        aggregate[0] += 1
        aggregate[1] += duration_ms
        aggregate[2] = max(aggregate[2], duration_ms)
        agent_logger.logger.debug("latency", operation=operation, duration_ms=round(duration_ms, 1), **(tags or {}))

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        key = self._key(name, tags)
        self.counters[key] = self.counters.get(key, 0) + value

    def get_metrics_summary(self) -> Dict[str, Any]:
        """Aggregates per metric name, tags folded together"""

        summary: Dict[str, Any] = {}
        for (name, _), (count, total_ms, max_ms) in self.latencies.items():
            entry = summary.setdefault(f"latency.{name}", {"count": 0, "total_ms": 0.0, "max_ms": 0.0})
            entry["count"] += count
            entry["total_ms"] += total_ms
            entry["max_ms"] = max(entry["max_ms"], max_ms)

        for entry in summary.values():
            entry["avg_ms"] = round(entry["total_ms"] / entry["count"], 1) if entry["count"] else 0.0

        for (name, _), value in self.counters.items():
            summary[name] = summary.get(name, 0) + value

        return summary


metrics = MetricsCollector()
