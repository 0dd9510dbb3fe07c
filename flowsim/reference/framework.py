"""Stand-in collaborators wiring the reference deck, grid, props and engine."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterator, List, Mapping

import numpy as np

from ..errors import InvalidDeckStateError
from ..interfaces import ParseMessage
from ..parameters import ParameterGroup
from ..report import SECONDS_PER_DAY
from ..schema import MessageLimits
from ..state import PhaseUsage
from ..topology import ProcessTopology
from .deck import KeywordDeck, load_deck
from .grid import CartesianGrid
from .output import ParquetOutputWriter, write_init_file
from .props import ScaledProperties, TableProperties
from .simulator import LinearSolverSettings, NoFlowSimulator

logger = logging.getLogger(__name__)


class ReferenceCase:
    """Parsed reference deck plus the run settings derived from it."""

    def __init__(self, deck_filename: Path, deck: KeywordDeck, messages: List[ParseMessage]) -> None:
        self.deck_filename = Path(deck_filename)
        self.deck = deck
        self._messages = list(messages)
        self.message_limits: MessageLimits = deck.keywords.MESSAGES or MessageLimits()
        self.time_map: List[float] = [float(dt) * SECONDS_PER_DAY for dt in deck.keywords.TSTEP]
        self.restart_step = 0
        self.restart_write_interval = deck.keywords.RPTRST
        self.output_dir = Path(".")
        self._nosim = deck.has_keyword("NOSIM")

    @property
    def base_name(self) -> str:
        return self.deck_filename.stem

    @property
    def init_only(self) -> bool:
        return self._nosim

    def override_nosim(self, nosim: bool) -> None:
        self._nosim = bool(nosim)

    def override_restart_write_interval(self, interval: int) -> None:
        if int(interval) < 1:
            raise ValueError("restart write interval must be >= 1")
        self.restart_write_interval = int(interval)

    def set_output_dir(self, path: Path) -> None:
        self.output_dir = Path(path)

    def messages(self) -> Iterator[ParseMessage]:
        return iter(self._messages)


@dataclass
class ReferenceGridAndProps:
    grid: CartesianGrid
    phase_usage: PhaseUsage
    init_props: TableProperties
    fluid_props: ScaledProperties
    gravity: float
    use_local_perm: bool
    poro: np.ndarray
    permx: np.ndarray

    def static_properties(self) -> Mapping[str, np.ndarray]:
        return {
            "PORO": self.poro,
            "PERMX": self.permx,
            "PORE_VOLUME": self.poro * self.grid.cell_volume,
        }


def _cell_values(value: Any, num_cells: int, keyword: str) -> np.ndarray:
    arr = np.asarray(value, dtype=float)
    if arr.ndim == 0:
        return np.full(num_cells, float(arr))
    if arr.size != num_cells:
        raise InvalidDeckStateError(f"Keyword {keyword} holds {arr.size} values, expected {num_cells}")
    return arr.ravel().copy()


class ReferenceFramework:
    """Factory for the reference collaborators."""

    def load_case(self, deck_filename: Path, params: ParameterGroup) -> ReferenceCase:
        deck, messages = load_deck(Path(deck_filename))
        return ReferenceCase(deck_filename, deck, messages)

    def build_grid_and_props(
        self,
        case: ReferenceCase,
        params: ParameterGroup,
        *,
        gravity: float,
        use_local_perm: bool,
    ) -> ReferenceGridAndProps:
        keywords = case.deck.keywords
        grid = CartesianGrid.from_keywords(keywords)
        pu = case.deck.phase_usage
        props = TableProperties.from_keywords(keywords, pu)
        logger.debug(
            "Built %dx%dx%d grid with %d cells, phases %s",
            grid.nx, grid.ny, grid.nz, grid.num_cells, ",".join(pu.active),
        )
        return ReferenceGridAndProps(
            grid=grid,
            phase_usage=pu,
            init_props=props,
            fluid_props=ScaledProperties(props),
            gravity=float(gravity),
            use_local_perm=bool(use_local_perm),
            poro=_cell_values(keywords.PORO, grid.num_cells, "PORO"),
            permx=_cell_values(keywords.PERMX, grid.num_cells, "PERMX"),
        )

    def write_initial(self, case: ReferenceCase, grid_props: ReferenceGridAndProps, output_dir: Path) -> None:
        write_init_file(
            output_dir,
            case.base_name,
            grid_props.grid.cell_depths,
            grid_props.static_properties(),
            {"gravity": grid_props.gravity, "use_local_perm": grid_props.use_local_perm},
        )

    def create_output_writer(
        self,
        case: ReferenceCase,
        grid_props: ReferenceGridAndProps,
        params: ParameterGroup,
        output_dir: Path,
        enabled: bool,
    ) -> ParquetOutputWriter:
        return ParquetOutputWriter(output_dir, case.base_name, grid_props.phase_usage, enabled=enabled)

    def create_linear_solver(self, grid_props: ReferenceGridAndProps, params: ParameterGroup) -> LinearSolverSettings:
        return LinearSolverSettings.from_params(params)

    def create_simulator(
        self,
        case: ReferenceCase,
        grid_props: ReferenceGridAndProps,
        linear_solver: LinearSolverSettings,
        output_writer: ParquetOutputWriter,
        params: ParameterGroup,
        topology: ProcessTopology,
    ) -> NoFlowSimulator:
        return NoFlowSimulator(
            output_writer,
            restart_write_interval=case.restart_write_interval,
            linear_solver=linear_solver,
        )


__all__ = ["ReferenceCase", "ReferenceFramework", "ReferenceGridAndProps"]
