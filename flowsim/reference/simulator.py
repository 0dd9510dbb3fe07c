"""Time-stepping engine that walks the schedule without solving any flow."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Optional

from ..parameters import ParameterGroup
from ..report import SECONDS_PER_DAY, SimulatorReport, SimulatorTimer
from ..state import ReservoirState

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LinearSolverSettings:
    """Linear solver controls read from the run configuration."""

    reduction: float = 1.0e-2
    max_iterations: int = 150
    verbosity: int = 0

    @classmethod
    def from_params(cls, params: ParameterGroup) -> "LinearSolverSettings":
        return cls(
            reduction=params.get_default("linear_solver_reduction", cls.reduction),
            max_iterations=params.get_default("linear_solver_maxiter", cls.max_iterations),
            verbosity=params.get_default("linear_solver_verbosity", cls.verbosity),
        )


class NoFlowSimulator:
    """Advance the report-step timer, writing the unchanged state as scheduled."""

    def __init__(
        self,
        output_writer: Any,
        *,
        restart_write_interval: int = 1,
        linear_solver: Optional[LinearSolverSettings] = None,
    ) -> None:
        if restart_write_interval < 1:
            raise ValueError("restart_write_interval must be >= 1")
        self.output_writer = output_writer
        self.restart_write_interval = int(restart_write_interval)
        self.linear_solver = linear_solver or LinearSolverSettings()

    def run(self, timer: SimulatorTimer, state: ReservoirState) -> SimulatorReport:
        report = SimulatorReport()
        start = time.perf_counter()
        while not timer.done():
            days = timer.current_step_length / SECONDS_PER_DAY
            logger.info(
                "Report step %d/%d: advancing %.3f days", timer.current_step + 1, timer.num_steps, days
            )
            timer.advance()
            if timer.current_step % self.restart_write_interval == 0 or timer.done():
                t0 = time.perf_counter()
                self.output_writer.write_timestep(timer, state)
                report.output_write_time += time.perf_counter() - t0
        report.total_time = time.perf_counter() - start
        report.solver_time = report.total_time - report.output_write_time
        return report


__all__ = ["LinearSolverSettings", "NoFlowSimulator"]
