"""Parquet snapshots of the static properties and the report-step states."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Mapping

import numpy as np

from ..io.writer import state_frame, static_frame, write_parquet
from ..report import SimulatorTimer
from ..state import PhaseUsage, ReservoirState

logger = logging.getLogger(__name__)


def init_file(output_dir: Path, base_name: str) -> Path:
    return Path(output_dir) / f"{base_name}.INIT.parquet"


def restart_file(output_dir: Path, base_name: str, step: int) -> Path:
    return Path(output_dir) / f"{base_name}.X{step:04d}.parquet"


def write_init_file(
    output_dir: Path,
    base_name: str,
    depths: np.ndarray,
    properties: Mapping[str, np.ndarray],
    metadata: Mapping[str, Any],
) -> Path:
    path = init_file(output_dir, base_name)
    write_parquet(static_frame(depths, properties), path, extra_metadata=metadata)
    logger.debug("Wrote initial properties to %s", path)
    return path


class ParquetOutputWriter:
    """Write one restart snapshot per scheduled report step."""

    def __init__(
        self,
        output_dir: Path,
        base_name: str,
        phase_usage: PhaseUsage,
        *,
        enabled: bool = True,
    ) -> None:
        self.output_dir = Path(output_dir)
        self.base_name = base_name
        self.phase_usage = phase_usage
        self.enabled = enabled
        self.written: list = []

    def write_timestep(self, timer: SimulatorTimer, state: ReservoirState) -> None:
        if not self.enabled:
            return
        path = restart_file(self.output_dir, self.base_name, timer.current_step)
        write_parquet(
            state_frame(state, self.phase_usage),
            path,
            extra_metadata={
                "report_step": timer.current_step,
                "time_s": timer.simulation_time_elapsed,
            },
        )
        self.written.append(path)
        logger.debug("Wrote restart snapshot %s", path)


__all__ = ["ParquetOutputWriter", "init_file", "restart_file", "write_init_file"]
