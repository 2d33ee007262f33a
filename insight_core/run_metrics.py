"""
Instrumentation counters and timing utilities for a verification run.

Provides a lightweight RunMetrics bag that tracks:
- checks evaluated (including re-checks after repair)
- repair calls and repair failures
- LLM calls made by repair helpers
- stage timings
"""

from __future__ import annotations
import time
import logging
from contextlib import contextmanager
from typing import Dict, Any

log = logging.getLogger("insight.metrics")


class RunMetrics:
    """Mutable counter bag passed through a single verification run."""

    def __init__(self):
        self.check_evaluations: int = 0
        self.repair_calls: int = 0
        self.repair_failures: int = 0
        self.llm_calls: int = 0
        self.stage_timings: Dict[str, float] = {}
        self._stage_stack: Dict[str, float] = {}
        self._start = time.perf_counter()

    def start_stage(self, name: str) -> None:
        self._stage_stack[name] = time.perf_counter()

    def end_stage(self, name: str) -> None:
        t0 = self._stage_stack.pop(name, None)
        if t0 is not None:
            self.stage_timings[name] = (time.perf_counter() - t0) * 1000

    @contextmanager
    def stage(self, name: str):
        self.start_stage(name)
        try:
            yield
        finally:
            self.end_stage(name)

    def inc_checks(self, n: int = 1) -> None:
        self.check_evaluations += n

    def inc_repair(self) -> None:
        self.repair_calls += 1

    def inc_repair_failure(self) -> None:
        self.repair_failures += 1

    def inc_llm(self, n: int = 1) -> None:
        self.llm_calls += n

    def total_elapsed_ms(self) -> float:
        return (time.perf_counter() - self._start) * 1000

    def to_dict(self) -> Dict[str, Any]:
        return {
            "check_evaluations": self.check_evaluations,
            "repair_calls": self.repair_calls,
            "repair_failures": self.repair_failures,
            "llm_calls": self.llm_calls,
            "stage_timings_ms": self.stage_timings,
            "total_elapsed_ms": self.total_elapsed_ms(),
        }

    def log_summary(self) -> None:
        d = self.to_dict()
        log.info(
            "run_metrics checks=%d repairs=%d repair_failures=%d llm=%d total_ms=%.0f stages=%s",
            d["check_evaluations"], d["repair_calls"], d["repair_failures"], d["llm_calls"],
            d["total_elapsed_ms"],
            {k: f"{v:.0f}ms" for k, v in d["stage_timings_ms"].items()},
        )
