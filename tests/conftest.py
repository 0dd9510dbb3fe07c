from __future__ import annotations

import logging
import sys
from pathlib import Path
from types import SimpleNamespace
from typing import Any, Dict, List, Optional

import numpy as np
import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from flowsim.parameters import ParameterGroup  # noqa: E402
from flowsim.report import SimulatorReport  # noqa: E402
from flowsim.schema import MessageLimits  # noqa: E402
from flowsim.state import GAS, OIL, WATER, PhaseUsage  # noqa: E402


@pytest.fixture(autouse=True)
def _restore_package_logger():
    """Leave the ``flowsim`` logger as each test found it."""

    pkg = logging.getLogger("flowsim")
    handlers = list(pkg.handlers)
    level, propagate = pkg.level, pkg.propagate
    yield
    for handler in list(pkg.handlers):
        if handler not in handlers:
            pkg.removeHandler(handler)
            handler.close()
    pkg.setLevel(level)
    pkg.propagate = propagate


class FakeDeck:
    def __init__(self, **keywords: Any) -> None:
        self.keywords = keywords

    def has_keyword(self, name: str) -> bool:
        value = self.keywords.get(name)
        return value is not None and value is not False

    def get(self, name: str, default: Any = None) -> Any:
        return self.keywords[name] if self.has_keyword(name) else default


class FakeGrid:
    def __init__(self, depths, num_faces: int = 0) -> None:
        self.cell_depths = np.asarray(depths, dtype=float)
        self.num_cells = self.cell_depths.size
        self.num_faces = num_faces


class FakeProps:
    """Step capillary curves: water below the contact, gas above it."""

    def __init__(self, pu: PhaseUsage, densities: Optional[Dict[str, float]] = None,
                 b: Optional[Dict[str, float]] = None, tables: Optional[Dict[str, Any]] = None) -> None:
        self.phase_usage = pu
        self.densities = densities or {WATER: 1000.0, OIL: 800.0, GAS: 100.0}
        self.b = b or {WATER: 1.0, OIL: 1.0, GAS: 1.0}
        self.tables = tables or {}

    @property
    def num_phases(self) -> int:
        return self.phase_usage.num_phases

    def phase_densities(self):
        return np.array([self.densities[p] for p in self.phase_usage.active])

    def inverse_fvf(self, pressure, cells):
        return np.tile([self.b[p] for p in self.phase_usage.active], (len(cells), 1))

    def cap_press(self, saturation, cells):
        pu = self.phase_usage
        pc = np.zeros_like(saturation)
        if pu.used(WATER):
            pc[:, pu.pos(WATER)] = 2.0e5 * (1.0 - saturation[:, pu.pos(WATER)])
        if pu.used(GAS):
            pc[:, pu.pos(GAS)] = 1.0e5 * saturation[:, pu.pos(GAS)]
        return pc

    def sat_from_cap_press(self, phase, pc, cells):
        pc = np.asarray(pc, dtype=float)
        if phase == WATER:
            return np.where(pc < 0.0, 1.0, 0.2)
        return np.where(pc > 0.0, 0.7, 0.0)

    def saturation_tables(self):
        return self.tables


class FakeFluidProps:
    def __init__(self) -> None:
        self.calls: List[tuple] = []

    def set_swatinit_scaling(self, saturation, pc) -> None:
        self.calls.append((np.array(saturation), np.array(pc)))


class FakeGridAndProps:
    def __init__(self, depths, pu: PhaseUsage, *, gravity: float = 0.0, props: Any = None,
                 num_faces: int = 0) -> None:
        self.grid = FakeGrid(depths, num_faces)
        self.phase_usage = pu
        self.init_props = props if props is not None else FakeProps(pu)
        self.fluid_props = FakeFluidProps()
        self.gravity = gravity

    def static_properties(self):
        return {"PORO": np.full(self.grid.num_cells, 0.2)}


class FakeCase:
    def __init__(self, deck: FakeDeck, *, time_map=(86400.0, 86400.0), messages=()) -> None:
        self.deck = deck
        self.message_limits = MessageLimits()
        self.time_map = list(time_map)
        self.restart_step = 0
        self._messages = list(messages)
        self._nosim = deck.has_keyword("NOSIM")
        self.restart_write_interval = 1
        self.output_dir = None

    @property
    def init_only(self) -> bool:
        return self._nosim

    def override_nosim(self, nosim: bool) -> None:
        self._nosim = bool(nosim)

    def override_restart_write_interval(self, interval: int) -> None:
        self.restart_write_interval = int(interval)

    def set_output_dir(self, path) -> None:
        self.output_dir = path

    def messages(self):
        return iter(self._messages)


class FakeSimulator:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.error = error
        self.calls = 0

    def run(self, timer, state) -> SimulatorReport:
        self.calls += 1
        if self.error is not None:
            raise self.error
        while not timer.done():
            timer.advance()
        return SimulatorReport(total_time=1.5, solver_time=1.0, total_newton_iterations=3)


class FakeFramework:
    """Records the stage calls made by the driver."""

    def __init__(self, deck: Optional[FakeDeck] = None, *, depths=(1000.0, 1010.0),
                 pu: Optional[PhaseUsage] = None, simulator: Optional[FakeSimulator] = None,
                 messages=()) -> None:
        self.deck = deck if deck is not None else FakeDeck(PRESSURE=[200.0, 200.0], SWAT=0.25)
        self.depths = depths
        self.pu = pu or PhaseUsage(water=True, oil=True, gas=False)
        self.simulator = simulator or FakeSimulator()
        self.messages = messages
        self.calls: List[str] = []
        self.gravity: Optional[float] = None
        self.use_local_perm: Optional[bool] = None
        self.case: Optional[FakeCase] = None

    def load_case(self, deck_filename, params):
        self.calls.append("load_case")
        self.case = FakeCase(self.deck, messages=self.messages)
        return self.case

    def build_grid_and_props(self, case, params, *, gravity, use_local_perm):
        self.calls.append("build_grid_and_props")
        self.gravity = gravity
        self.use_local_perm = use_local_perm
        return FakeGridAndProps(self.depths, self.pu, gravity=gravity)

    def write_initial(self, case, grid_props, output_dir):
        self.calls.append("write_initial")

    def create_output_writer(self, case, grid_props, params, output_dir, enabled):
        self.calls.append("create_output_writer")
        return SimpleNamespace(enabled=enabled)

    def create_linear_solver(self, grid_props, params):
        self.calls.append("create_linear_solver")
        return object()

    def create_simulator(self, case, grid_props, linear_solver, output_writer, params, topology):
        self.calls.append("create_simulator")
        return self.simulator


@pytest.fixture
def fakes() -> SimpleNamespace:
    return SimpleNamespace(
        Deck=FakeDeck,
        Grid=FakeGrid,
        Props=FakeProps,
        GridAndProps=FakeGridAndProps,
        Case=FakeCase,
        Simulator=FakeSimulator,
        Framework=FakeFramework,
    )


@pytest.fixture
def params_factory():
    def _make(**values: Any) -> ParameterGroup:
        return ParameterGroup(values)

    return _make


@pytest.fixture
def deck_file(tmp_path: Path) -> Path:
    path = tmp_path / "CASE1.DATA"
    path.write_text("OIL: true\nWATER: true\n", encoding="utf-8")
    return path
