"""Per-tool call metrics.

``session_tool`` records every call here (duration, and whether it ended
in an error response). The MCP server logs the summary on shutdown, which
is usually enough to spot a game that keeps timing out.

Usage:
    from godot_session.lib.metrics import collector
    collector.record("send_command", 12.5, is_error=False)
    collector.log_summary()
"""

import logging
import time
from collections import defaultdict
from typing import Any

from pydantic import BaseModel, PrivateAttr

logger = logging.getLogger(__name__)


class ToolMetrics(BaseModel):
    """Counters and timings for one tool."""

    call_count: int = 0
    error_count: int = 0
    total_duration_ms: float = 0.0
    max_duration_ms: float = 0.0

    @property
    def avg_duration_ms(self) -> float:
        return self.total_duration_ms / self.call_count if self.call_count else 0.0

    def record_call(self, duration_ms: float, is_error: bool = False) -> None:
        self.call_count += 1
        self.total_duration_ms += duration_ms
        self.max_duration_ms = max(self.max_duration_ms, duration_ms)
        if is_error:
            self.error_count += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "call_count": self.call_count,
            "error_count": self.error_count,
            "avg_duration_ms": round(self.avg_duration_ms, 2),
            "max_duration_ms": round(self.max_duration_ms, 2),
        }


class MetricsCollector(BaseModel):
    """Collects ``ToolMetrics`` keyed by tool name."""

    _metrics: dict[str, ToolMetrics] = PrivateAttr(
        default_factory=lambda: defaultdict(ToolMetrics)
    )
    _started: float = PrivateAttr(default_factory=time.time)

    def record(self, tool_name: str, duration_ms: float, is_error: bool = False) -> None:
        self._metrics[tool_name].record_call(duration_ms, is_error)

    def get(self, tool_name: str) -> ToolMetrics | None:
        return self._metrics.get(tool_name)

    def get_summary(self) -> dict[str, Any]:
        total_calls = sum(m.call_count for m in self._metrics.values())
        total_errors = sum(m.error_count for m in self._metrics.values())
        return {
            "uptime_seconds": round(time.time() - self._started, 2),
            "total_tool_calls": total_calls,
            "total_errors": total_errors,
            "by_tool": {name: m.to_dict() for name, m in self._metrics.items()},
        }

    def log_summary(self, level: int = logging.INFO) -> None:
        summary = self.get_summary()
        logger.log(
            level,
            "Tool metrics: %d calls, %d errors, %.1fs uptime",
            summary["total_tool_calls"],
            summary["total_errors"],
            summary["uptime_seconds"],
        )
        for name, metrics in summary["by_tool"].items():
            logger.log(level, "  %s: %s", name, metrics)

    def reset(self) -> None:
        self._metrics.clear()
        self._started = time.time()


# Global collector shared by every tool
collector = MetricsCollector()
