from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict


@dataclass(slots=True)
class RuntimeMetrics:
    turns_total: int = 0
    turns_failed_total: int = 0
    turns_degraded_total: int = 0
    model_calls_total: int = 0
    tool_timeouts_total: int = 0
    tool_calls_total: Dict[str, int] = field(default_factory=dict)
    repairs_total: Dict[str, int] = field(default_factory=dict)

    def increment_tool_call(self, tool_name: str) -> None:
        self.tool_calls_total[tool_name] = self.tool_calls_total.get(tool_name, 0) + 1

    def increment_repair(self, tier: int) -> None:
        key = f"tier{tier}"
        self.repairs_total[key] = self.repairs_total.get(key, 0) + 1

    def snapshot(self) -> dict:
        return {
            "turns_total": self.turns_total,
            "turns_failed_total": self.turns_failed_total,
            "turns_degraded_total": self.turns_degraded_total,
            "model_calls_total": self.model_calls_total,
            "tool_timeouts_total": self.tool_timeouts_total,
            "tool_calls_total": dict(self.tool_calls_total),
            "repairs_total": dict(self.repairs_total),
        }


_runtime_metrics = RuntimeMetrics()


def get_runtime_metrics() -> RuntimeMetrics:
    return _runtime_metrics
