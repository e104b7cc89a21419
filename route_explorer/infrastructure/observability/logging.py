import structlog
import logging
import sys
from collections import Counter
from dataclasses import dataclass
from typing import Dict, Any, Optional
from datetime import datetime

RUN_CONTEXT_KEYS = ("run_id", "agent_name")


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    service_name: str = "route-explorer-agent",
    environment: str = "development",
    version: str = "unknown"
) -> None:
    """Route structlog through stdlib logging with JSON (default) or console output"""

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper(), logging.INFO)
    )

    renderer = (
        structlog.processors.JSONRenderer(default=str)
        if log_format == "json"
        else structlog.dev.ConsoleRenderer()
    )

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.filter_by_level,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.TimeStamper(fmt="iso"),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            structlog.processors.UnicodeDecoder(),
            add_run_context,
            renderer,
        ],
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.contextvars.bind_contextvars(service=service_name, environment=environment, version=version)


def add_run_context(logger: logging.Logger, method_name: str, event_dict: Dict[str, Any]) -> Dict[str, Any]:
    """Stamp entries with the active run, if any"""

    event_dict.setdefault("timestamp", datetime.utcnow().isoformat())

    bound = structlog.contextvars.get_contextvars()
    for key in RUN_CONTEXT_KEYS:
        if key in bound:
            event_dict.setdefault(key, bound[key])

    return event_dict


class RunLogger:
    """Structured events for the reasoning loop"""

    def __init__(self, name: str):
        self.logger = structlog.get_logger(name)

    def log_run_event(self, event_type: str, agent_name: str, **fields):
        self.logger.info("run_event", event_type=event_type, agent_name=agent_name, **fields)

    def log_tool_call(
        self,
        tool_name: str,
        source: str,
        arguments: Dict[str, Any],
        output: str,
        duration_ms: float,
        success: bool,
        error: Optional[str] = None
    ):
        """One tool invocation; output is truncated to a preview"""

        log = self.logger.info if success else self.logger.warning
        log(
            "tool_call",
            tool_name=tool_name,
            source=source,
            arguments=arguments,
            output_preview=output[:200],
            duration_ms=round(duration_ms, 2),
            success=success,
            error=error
        )

    def log_transition(self, from_node: str, to_node: str, iteration: int):
        self.logger.debug("graph_transition", from_node=from_node, to_node=to_node, iteration=iteration)


run_logger = RunLogger("route_explorer.run")


@dataclass
class LatencyStats:
    count: int = 0
    total: float = 0.0
    min: Optional[float] = None
    max: float = 0.0

    def observe(self, duration_ms: float):
        self.count += 1
        self.total += duration_ms
        self.min = duration_ms if self.min is None else min(self.min, duration_ms)
        self.max = max(self.max, duration_ms)

    def summary(self) -> Dict[str, float]:
        return {
            "count": self.count,
            "avg": self.total / self.count if self.count else 0,
            "min": self.min or 0,
            "max": self.max,
        }


class MetricsCollector:
    """In-process latency and counter metrics, mirrored to debug log events"""

    def __init__(self):
        self.latencies: Dict[str, LatencyStats] = {}
        self.counters: Counter = Counter()

    def record_latency(self, operation: str, duration_ms: float, tags: Optional[Dict[str, str]] = None):
        self.latencies.setdefault(operation, LatencyStats()).observe(duration_ms)
        run_logger.logger.debug("metric", kind="latency", operation=operation, duration_ms=duration_ms, **(tags or {}))

    def increment_counter(self, name: str, value: int = 1, tags: Optional[Dict[str, str]] = None):
        self.counters[name] += value
        for tag, tag_value in (tags or {}).items():
            self.counters[f"{name}.{tag}.{tag_value}"] += value
        run_logger.logger.debug("metric", kind="counter", name=name, value=value, **(tags or {}))

    def get_metrics_summary(self) -> Dict[str, Any]:
        summary: Dict[str, Any] = {f"latency.{op}": stats.summary() for op, stats in self.latencies.items()}
        summary.update(self.counters)
        return summary


metrics = MetricsCollector()
