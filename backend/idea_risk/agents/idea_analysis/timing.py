"""
Timing Utilities for Latency Instrumentation

Logs how long each stage of an analysis run takes.  Output goes to
stdout in the same ``[TIMING]`` format the rest of the service prints.
"""

import time
from contextlib import asynccontextmanager
from typing import Optional


def log_timing(stage: str, action: str, duration_ms: Optional[float] = None):
    """Log a timing event in standard format."""
    if duration_ms is not None:
        print(f"[TIMING] {stage}: {action} duration={duration_ms:.0f}ms")
    else:
        print(f"[TIMING] {stage}: {action}")


class StepTimer:
    """
    Times the stages of one analysis run.

    Usage:
        timer = StepTimer("analysis:1234")
        async with timer.step("discovery"):
            await discover()
        timer.summary()
    """

    def __init__(self, run_name: str):
        self.run_name = run_name
        self.steps: dict[str, float] = {}
        self.start_time = time.perf_counter()

    @asynccontextmanager
    async def step(self, step_name: str):
        """Time a single async stage."""
        start = time.perf_counter()
        try:
            yield
        finally:
            duration_ms = (time.perf_counter() - start) * 1000
            self.steps[step_name] = duration_ms
            log_timing(self.run_name, step_name, duration_ms)

    def summary(self) -> float:
        """Log the total run time and return it in milliseconds."""
        total_ms = (time.perf_counter() - self.start_time) * 1000
        log_timing(self.run_name, "TOTAL", total_ms)
        return total_ms
