"""Report-step timer and run report exchanged with the time-stepping engine."""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, fields
from typing import List, Sequence, TextIO

SECONDS_PER_DAY = 86400.0


@dataclass
class SimulatorTimer:
    """Walks the report steps of the schedule.

    Attributes
    ----------
    step_lengths : list of float
        Length of every report step [s].
    current_step : int
        Index of the next report step to simulate.
    """

    step_lengths: List[float] = field(default_factory=list)
    current_step: int = 0
    start_time: float = 0.0

    @classmethod
    def from_time_map(cls, time_map: Sequence[float], restart_step: int = 0) -> "SimulatorTimer":
        lengths = [float(dt) for dt in time_map]
        if any(dt <= 0.0 for dt in lengths):
            raise ValueError("report step lengths must be positive")
        if not 0 <= restart_step <= len(lengths):
            raise ValueError(f"restart step {restart_step} outside schedule of {len(lengths)} steps")
        return cls(step_lengths=lengths, current_step=int(restart_step))

    @property
    def num_steps(self) -> int:
        return len(self.step_lengths)

    @property
    def current_step_length(self) -> float:
        return self.step_lengths[self.current_step]

    @property
    def simulation_time_elapsed(self) -> float:
        return self.start_time + sum(self.step_lengths[: self.current_step])

    def done(self) -> bool:
        return self.current_step >= self.num_steps

    def advance(self) -> None:
        if self.done():
            raise IndexError("timer already at the end of the schedule")
        self.current_step += 1


@dataclass
class SimulatorReport:
    """Timings [s] and iteration counts accumulated over a run."""

    pressure_time: float = 0.0
    transport_time: float = 0.0
    total_time: float = 0.0
    solver_time: float = 0.0
    assemble_time: float = 0.0
    linear_solve_time: float = 0.0
    update_time: float = 0.0
    output_write_time: float = 0.0
    total_well_iterations: int = 0
    total_linearizations: int = 0
    total_newton_iterations: int = 0
    total_linear_iterations: int = 0
    converged: bool = True

    def __iadd__(self, other: "SimulatorReport") -> "SimulatorReport":
        for item in fields(self):
            if item.name == "converged":
                continue
            setattr(self, item.name, getattr(self, item.name) + getattr(other, item.name))
        self.converged = self.converged and other.converged
        return self

    def to_dict(self) -> dict:
        return asdict(self)

    def report_param(self, stream: TextIO) -> None:
        """Write the report as ``key=value`` lines (``walltime.txt`` layout)."""

        for key, value in self.to_dict().items():
            if isinstance(value, bool):
                value = "true" if value else "false"
            stream.write(f"{key}={value}\n")

    def report_fully_implicit(self) -> str:
        lines = [
            f"Total time (seconds):         {self.total_time:.3f}",
            f"Solver time (seconds):        {self.solver_time:.3f}",
            f" Assembly time (seconds):     {self.assemble_time:.3f}",
            f" Linear solve time (seconds): {self.linear_solve_time:.3f}",
            f" Update time (seconds):       {self.update_time:.3f}",
            f" Output write time (seconds): {self.output_write_time:.3f}",
            f"Overall Well Iterations:      {self.total_well_iterations}",
            f"Overall Linearizations:       {self.total_linearizations}",
            f"Overall Newton Iterations:    {self.total_newton_iterations}",
            f"Overall Linear Iterations:    {self.total_linear_iterations}",
        ]
        return "\n".join(lines) + "\n"


__all__ = ["SECONDS_PER_DAY", "SimulatorReport", "SimulatorTimer"]
