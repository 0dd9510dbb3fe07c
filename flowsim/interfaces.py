"""Interfaces of the collaborators the driver consumes.

The driver never looks inside the deck parser, the grid, the property models
or the time-stepping engine.  It talks to them through the protocols below; a
concrete set is provided by :mod:`flowsim.reference` and tests use small
fakes.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence, runtime_checkable

import numpy as np
import pandas as pd

from .logsetup import MessageType
from .parameters import ParameterGroup
from .report import SimulatorReport, SimulatorTimer
from .schema import MessageLimits
from .state import PhaseUsage, ReservoirState
from .topology import ProcessTopology


@dataclass(frozen=True)
class SourceLocation:
    filename: str
    lineno: int


@dataclass(frozen=True)
class ParseMessage:
    """Diagnostic emitted while reading the deck."""

    mtype: MessageType
    text: str
    location: Optional[SourceLocation] = None


@runtime_checkable
class Deck(Protocol):
    def has_keyword(self, name: str) -> bool: ...

    def get(self, name: str, default: Any = None) -> Any: ...


@runtime_checkable
class SimulationCase(Protocol):
    """Parsed case: deck plus the derived run settings."""

    deck: Deck
    message_limits: MessageLimits
    time_map: Sequence[float]
    restart_step: int

    @property
    def init_only(self) -> bool: ...

    def override_nosim(self, nosim: bool) -> None: ...

    def override_restart_write_interval(self, interval: int) -> None: ...

    def set_output_dir(self, path: Path) -> None: ...

    def messages(self) -> Iterable[ParseMessage]: ...


class Grid(Protocol):
    num_cells: int
    num_faces: int

    @property
    def cell_depths(self) -> np.ndarray: ...


class PropertyModel(Protocol):
    """Saturation-function and PVT evaluation used during initialisation."""

    phase_usage: PhaseUsage

    @property
    def num_phases(self) -> int: ...

    def phase_densities(self) -> np.ndarray: ...

    def inverse_fvf(self, pressure: np.ndarray, cells: np.ndarray) -> np.ndarray: ...

    def cap_press(self, saturation: np.ndarray, cells: np.ndarray) -> np.ndarray: ...

    def sat_from_cap_press(self, phase: str, pc: np.ndarray, cells: np.ndarray) -> np.ndarray: ...

    def saturation_tables(self) -> Mapping[str, pd.DataFrame]: ...


class SimulatorProperties(Protocol):
    def set_swatinit_scaling(self, saturation: np.ndarray, pc: np.ndarray) -> None: ...


class GridAndProps(Protocol):
    grid: Grid
    phase_usage: PhaseUsage
    init_props: PropertyModel
    fluid_props: SimulatorProperties
    gravity: float

    def static_properties(self) -> Mapping[str, np.ndarray]: ...


class OutputWriter(Protocol):
    def write_timestep(self, timer: SimulatorTimer, state: ReservoirState) -> None: ...


class Simulator(Protocol):
    def run(self, timer: SimulatorTimer, state: ReservoirState) -> SimulatorReport: ...


class SimulationFramework(Protocol):
    """Factory for every external collaborator of a run."""

    def load_case(self, deck_filename: Path, params: ParameterGroup) -> SimulationCase: ...

    def build_grid_and_props(
        self,
        case: SimulationCase,
        params: ParameterGroup,
        *,
        gravity: float,
        use_local_perm: bool,
    ) -> GridAndProps: ...

    def write_initial(self, case: SimulationCase, grid_props: GridAndProps, output_dir: Path) -> None: ...

    def create_output_writer(
        self,
        case: SimulationCase,
        grid_props: GridAndProps,
        params: ParameterGroup,
        output_dir: Path,
        enabled: bool,
    ) -> OutputWriter: ...

    def create_linear_solver(self, grid_props: GridAndProps, params: ParameterGroup) -> Any: ...

    def create_simulator(
        self,
        case: SimulationCase,
        grid_props: GridAndProps,
        linear_solver: Any,
        output_writer: OutputWriter,
        params: ParameterGroup,
        topology: ProcessTopology,
    ) -> Simulator: ...


__all__ = [
    "Deck",
    "Grid",
    "GridAndProps",
    "OutputWriter",
    "ParseMessage",
    "PropertyModel",
    "SimulationCase",
    "SimulationFramework",
    "Simulator",
    "SimulatorProperties",
    "SourceLocation",
]
