"""Initial reservoir state.

Exactly one of three strategies produces the starting state:

``EXPLICIT_SATURATION``
    ``init_saturation`` is configured; uniform water saturation and a
    hydrostatic pressure column from ``ref_pressure``.
``EQUILIBRATION``
    The deck carries ``EQUIL``; phase pressures follow hydrostatic gradients
    from the datum and the fluid contacts, saturations come from inverting the
    capillary-pressure curves.
``DECK_RESTART``
    Anything else; arrays are read from the deck (``PRESSURE``, ``SWAT``,
    ``SGAS``, ``RS``, ``RV``).

Every strategy is followed by the same post-processing: optional SWATINIT
capillary rescaling of the simulator property model and classification of
the per-cell hydrocarbon state.  Depths are positive downward [m], deck
pressures are in bar and state pressures in Pa.
"""
from __future__ import annotations

import enum
import logging
from typing import Any, Optional, Tuple

import numpy as np

from . import constants
from .errors import InvalidDeckStateError
from .parameters import ParameterGroup
from .schema import EquilRecord
from .state import GAS, OIL, WATER, HydroCarbonState, PhaseUsage, ReservoirState

logger = logging.getLogger(__name__)

_SQRT_EPS = float(np.sqrt(np.finfo(float).eps))


class InitStrategy(enum.Enum):
    EXPLICIT_SATURATION = "explicit_saturation"
    EQUILIBRATION = "equilibration"
    DECK_RESTART = "deck_restart"


def select_strategy(params: ParameterGroup, deck: Any) -> InitStrategy:
    """Pick the initialisation strategy; the first matching rule wins."""

    if params.has("init_saturation"):
        return InitStrategy.EXPLICIT_SATURATION
    if deck.has_keyword("EQUIL"):
        return InitStrategy.EQUILIBRATION
    return InitStrategy.DECK_RESTART


# ===========================================================================
# Helpers
# ===========================================================================


def _cell_array(value: Any, num_cells: int, keyword: str) -> np.ndarray:
    """Broadcast a scalar or per-cell deck value to ``num_cells`` floats."""

    arr = np.asarray(value, dtype=float)
    if arr.ndim == 0:
        return np.full(num_cells, float(arr))
    arr = arr.ravel()
    if arr.size != num_cells:
        raise InvalidDeckStateError(
            f"Keyword {keyword} holds {arr.size} values, expected {num_cells}"
        )
    return arr.copy()


def _reference_phase(pu: PhaseUsage) -> str:
    """Phase whose density drives single-column hydrostatics."""

    for phase in (OIL, GAS, WATER):
        if pu.used(phase):
            return phase
    raise InvalidDeckStateError("No active phases")


def _remainder_phase(pu: PhaseUsage) -> str:
    """Phase that receives the pore volume left by the other phases."""

    return OIL if pu.used(OIL) else pu.active[-1]


def _check_phase_count(grid_props: Any) -> PhaseUsage:
    pu = grid_props.phase_usage
    props = grid_props.init_props
    if pu.num_phases != props.num_phases:
        raise InvalidDeckStateError(
            f"Phase usage of the grid ({pu.num_phases} phases) does not match "
            f"the property model ({props.num_phases} phases)"
        )
    return pu


def _hydrostatic(
    p_ref: float,
    z_ref: float,
    depths: np.ndarray,
    density: float,
    gravity: float,
) -> np.ndarray:
    return p_ref + density * gravity * (np.asarray(depths, dtype=float) - z_ref)


def compute_surface_volumes(
    props: Any,
    state: ReservoirState,
    cells: np.ndarray,
    *,
    rs: Optional[np.ndarray] = None,
    rv: Optional[np.ndarray] = None,
) -> np.ndarray:
    """Surface volumes ``A · s`` with ``A`` the inverse formation volume factors.

    Dissolved gas adds ``rs * b_o * s_o`` to the gas column and vaporised oil
    adds ``rv * b_g * s_g`` to the oil column.
    """

    pu = props.phase_usage
    b = np.asarray(props.inverse_fvf(state.pressure, cells), dtype=float)
    surface = b * state.saturation
    if pu.used(OIL) and pu.used(GAS):
        io, ig = pu.pos(OIL), pu.pos(GAS)
        free_gas = surface[:, ig].copy()
        free_oil = surface[:, io].copy()
        if rs is not None:
            surface[:, ig] = free_gas + np.nan_to_num(rs) * free_oil
        if rv is not None:
            surface[:, io] = free_oil + np.nan_to_num(rv) * free_gas
    state.surface_volume = surface
    return surface


def compute_gas_oil_ratio(state: ReservoirState, pu: PhaseUsage) -> np.ndarray:
    """``gas_oil_ratio = surface gas / surface oil`` where both are active."""

    if not (pu.used(OIL) and pu.used(GAS)):
        return state.gas_oil_ratio
    oil = state.surface_volume[:, pu.pos(OIL)]
    gas = state.surface_volume[:, pu.pos(GAS)]
    ratio = np.full(state.num_cells, np.nan)
    np.divide(gas, oil, out=ratio, where=oil > 0.0)
    state.gas_oil_ratio = ratio
    return ratio


# ===========================================================================
# Strategies
# ===========================================================================


def init_state_basic(grid_props: Any, params: ParameterGroup) -> ReservoirState:
    """Uniform water saturation with a hydrostatic pressure column."""

    pu = _check_phase_count(grid_props)
    grid = grid_props.grid
    props = grid_props.init_props
    n = grid.num_cells
    depths = np.asarray(grid.cell_depths, dtype=float)
    state = ReservoirState(n, grid.num_faces, pu.num_phases)

    sw = float(params.get_default("init_saturation", 0.0))
    if not 0.0 <= sw <= 1.0:
        raise InvalidDeckStateError(f"init_saturation must lie in [0, 1], got {sw}")
    if pu.num_phases > 1:
        state.saturation[:, 0] = sw
        state.saturation[:, 1] = 1.0 - sw
        if params.has("water_oil_contact"):
            woc = float(params.get("water_oil_contact"))
            below = depths > woc
            state.saturation[below, :] = 0.0
            state.saturation[below, 0] = 1.0

    p_ref = float(params.get_default("ref_pressure", constants.DEFAULT_REF_PRESSURE_BAR)) * constants.BARSA
    z_top = float(depths.min()) if n else 0.0
    gravity = float(grid_props.gravity)
    if gravity != 0.0:
        rho = float(props.phase_densities()[pu.pos(_reference_phase(pu))])
        state.pressure = _hydrostatic(p_ref, z_top, depths, rho, gravity)
    else:
        state.pressure = np.full(n, p_ref)

    cells = np.arange(n)
    compute_surface_volumes(props, state, cells)
    compute_gas_oil_ratio(state, pu)
    return state


def _region_ids(deck: Any, num_cells: int) -> np.ndarray:
    raw = deck.get("EQLNUM", 1)
    regions = np.asarray(raw, dtype=int)
    if regions.ndim == 0:
        return np.full(num_cells, int(regions))
    regions = regions.ravel()
    if regions.size != num_cells:
        raise InvalidDeckStateError(f"Keyword EQLNUM holds {regions.size} values, expected {num_cells}")
    return regions


def _equil_records(deck: Any) -> list:
    rows = deck.get("EQUIL") or []
    records = []
    for idx, row in enumerate(rows, start=1):
        try:
            records.append(EquilRecord.from_row(row))
        except ValueError as exc:
            raise InvalidDeckStateError(f"EQUIL record {idx} is invalid: {exc}") from exc
    return records


def _phase_pressures(
    record: EquilRecord,
    depths: np.ndarray,
    densities: dict,
    gravity: float,
    pu: PhaseUsage,
) -> dict:
    """Hydrostatic pressure of every active phase for one region [Pa]."""

    p_datum = record.datum_pressure * constants.BARSA
    z_datum = record.datum_depth
    woc, goc = record.woc_depth, record.goc_depth
    pcow_woc = record.pcow_woc * constants.BARSA
    pcgo_goc = record.pcgo_goc * constants.BARSA

    def column(phase: str, p_ref: float, z_ref: float) -> Any:
        rho = densities[phase]
        return lambda z: p_ref + rho * gravity * (np.asarray(z, dtype=float) - z_ref)

    if pu.num_phases == 1:
        only = pu.active[0]
        return {only: column(only, p_datum, z_datum)(depths)}
    if not pu.used(OIL):
        raise InvalidDeckStateError("Equilibration needs an active oil phase")

    if pu.used(WATER) and z_datum > woc:
        water = column(WATER, p_datum, z_datum)
        oil = column(OIL, float(water(woc)) + pcow_woc, woc)
    elif pu.used(GAS) and z_datum < goc:
        gas = column(GAS, p_datum, z_datum)
        oil = column(OIL, float(gas(goc)) - pcgo_goc, goc)
    else:
        oil = column(OIL, p_datum, z_datum)

    out = {OIL: oil(depths)}
    if pu.used(WATER):
        out[WATER] = column(WATER, float(oil(woc)) - pcow_woc, woc)(depths)
    if pu.used(GAS):
        out[GAS] = column(GAS, float(oil(goc)) + pcgo_goc, goc)(depths)
    return out


def init_state_equil(grid_props: Any, deck: Any) -> ReservoirState:
    """Capillary-gravity equilibrium per EQLNUM region."""

    pu = _check_phase_count(grid_props)
    grid = grid_props.grid
    props = grid_props.init_props
    n = grid.num_cells
    depths = np.asarray(grid.cell_depths, dtype=float)
    state = ReservoirState(n, grid.num_faces, pu.num_phases)

    records = _equil_records(deck)
    regions = _region_ids(deck, n)
    rho = np.asarray(props.phase_densities(), dtype=float)
    densities = {phase: float(rho[pu.pos(phase)]) for phase in pu.active}
    gravity = float(grid_props.gravity)

    for region in np.unique(regions):
        if not 1 <= region <= len(records):
            raise InvalidDeckStateError(f"No EQUIL record for equilibration region {region}")
        cells = np.flatnonzero(regions == region)
        record = records[region - 1]
        pressures = _phase_pressures(record, depths[cells], densities, gravity, pu)
        logger.debug(
            "Equilibrating region %d (%d cells) from datum %.2f m", region, cells.size, record.datum_depth
        )
        if pu.num_phases == 1:
            state.pressure[cells] = pressures[pu.active[0]]
            continue

        sat = np.zeros((cells.size, pu.num_phases))
        sw = np.zeros(cells.size)
        sg = np.zeros(cells.size)
        if pu.used(WATER):
            pcow = pressures[OIL] - pressures[WATER]
            sw = np.clip(np.asarray(props.sat_from_cap_press(WATER, pcow, cells), dtype=float), 0.0, 1.0)
            sat[:, pu.pos(WATER)] = sw
        if pu.used(GAS):
            pcgo = pressures[GAS] - pressures[OIL]
            sg = np.asarray(props.sat_from_cap_press(GAS, pcgo, cells), dtype=float)
            sg = np.clip(sg, 0.0, 1.0 - sw)
            sat[:, pu.pos(GAS)] = sg
        sat[:, pu.pos(OIL)] = np.clip(1.0 - sw - sg, 0.0, 1.0)
        state.saturation[cells] = sat
        state.pressure[cells] = pressures[OIL]

    all_cells = np.arange(n)
    rs = np.zeros(n) if deck.has_keyword("DISGAS") else None
    rv = np.zeros(n) if deck.has_keyword("VAPOIL") else None
    compute_surface_volumes(props, state, all_cells, rs=rs, rv=rv)
    compute_gas_oil_ratio(state, pu)
    return state


def complete_pressure(
    pressure: np.ndarray,
    depths: np.ndarray,
    density: float,
    gravity: float,
) -> np.ndarray:
    """Fill NaN pressures hydrostatically from the nearest specified cell in depth."""

    pressure = np.asarray(pressure, dtype=float).copy()
    missing = np.isnan(pressure)
    if not missing.any():
        return pressure
    known = np.flatnonzero(~missing)
    if known.size == 0:
        raise InvalidDeckStateError("Keyword PRESSURE does not define any cell")
    for cell in np.flatnonzero(missing):
        ref = known[np.argmin(np.abs(depths[known] - depths[cell]))]
        pressure[cell] = pressure[ref] + density * gravity * (depths[cell] - depths[ref])
    return pressure


def init_state_from_deck(grid_props: Any, deck: Any) -> ReservoirState:
    """Read the initial arrays from the deck."""

    pu = _check_phase_count(grid_props)
    grid = grid_props.grid
    props = grid_props.init_props
    n = grid.num_cells
    depths = np.asarray(grid.cell_depths, dtype=float)
    state = ReservoirState(n, grid.num_faces, pu.num_phases)

    if not deck.has_keyword("PRESSURE"):
        raise InvalidDeckStateError(
            "Deck has neither EQUIL nor PRESSURE; cannot initialise the reservoir state"
        )
    pressure = _cell_array(deck.get("PRESSURE"), n, "PRESSURE") * constants.BARSA
    rho = float(props.phase_densities()[pu.pos(_reference_phase(pu))])
    state.pressure = complete_pressure(pressure, depths, rho, float(grid_props.gravity))

    if pu.num_phases > 1:
        remainder = _remainder_phase(pu)
        keywords = {WATER: "SWAT", GAS: "SGAS", OIL: "SOIL"}
        taken = np.zeros(n)
        for phase in pu.active:
            if phase == remainder:
                continue
            keyword = keywords[phase]
            if not deck.has_keyword(keyword):
                raise InvalidDeckStateError(f"Keyword {keyword} is required to initialise the {phase} phase")
            values = _cell_array(deck.get(keyword), n, keyword)
            state.saturation[:, pu.pos(phase)] = values
            taken += values
        if np.any(taken > 1.0 + _SQRT_EPS) or np.any(taken < 0.0):
            raise InvalidDeckStateError("Initial saturations must lie in [0, 1] and sum to at most 1")
        state.saturation[:, pu.pos(remainder)] = np.clip(1.0 - taken, 0.0, 1.0)

    rs = rv = None
    if pu.used(OIL) and pu.used(GAS):
        if deck.has_keyword("DISGAS"):
            if not deck.has_keyword("RS"):
                raise InvalidDeckStateError("Keyword RS is required when dissolved gas is enabled")
            rs = _cell_array(deck.get("RS"), n, "RS")
        if deck.has_keyword("VAPOIL"):
            if not deck.has_keyword("RV"):
                raise InvalidDeckStateError("Keyword RV is required when vaporised oil is enabled")
            rv = _cell_array(deck.get("RV"), n, "RV")

    compute_surface_volumes(props, state, np.arange(n), rs=rs, rv=rv)
    if rs is not None:
        state.gas_oil_ratio = rs
    else:
        compute_gas_oil_ratio(state, pu)
    if rv is not None:
        state.oil_gas_ratio = rv
    return state


# ===========================================================================
# Post-processing
# ===========================================================================


def apply_swatinit_scaling(grid_props: Any, state: ReservoirState) -> np.ndarray:
    """Hand the capillary pressure at the initial saturation to the simulator props."""

    cells = np.arange(state.num_cells)
    pc = np.asarray(grid_props.init_props.cap_press(state.saturation, cells), dtype=float)
    grid_props.fluid_props.set_swatinit_scaling(state.saturation, pc)
    return pc


def init_hydrocarbon_state(
    state: ReservoirState,
    pu: PhaseUsage,
    *,
    has_disgas: bool,
    has_vapoil: bool,
) -> np.ndarray:
    """Classify each cell as gas-only, oil-only or gas-and-oil."""

    hcs = state.hydrocarbon_state
    if not pu.used(GAS):
        hcs[:] = HydroCarbonState.OIL_ONLY
        return hcs
    if not pu.used(OIL):
        hcs[:] = HydroCarbonState.GAS_ONLY
        return hcs

    hcs[:] = HydroCarbonState.GAS_AND_OIL
    sat = state.saturation
    if pu.used(WATER):
        water_filled = sat[:, pu.pos(WATER)] > 1.0 - _SQRT_EPS
    else:
        water_filled = np.zeros(state.num_cells, dtype=bool)
    if has_disgas:
        hcs[~water_filled & (sat[:, pu.pos(GAS)] == 0.0)] = HydroCarbonState.OIL_ONLY
    if has_vapoil:
        hcs[~water_filled & (sat[:, pu.pos(OIL)] == 0.0)] = HydroCarbonState.GAS_ONLY
    return hcs


def setup_state(
    params: ParameterGroup,
    deck: Any,
    grid_props: Any,
) -> Tuple[ReservoirState, InitStrategy]:
    """Select a strategy, build the state and run the common post-processing."""

    strategy = select_strategy(params, deck)
    logger.debug("Initialising reservoir state: %s", strategy.value)
    if strategy is InitStrategy.EXPLICIT_SATURATION:
        state = init_state_basic(grid_props, params)
    elif strategy is InitStrategy.EQUILIBRATION:
        state = init_state_equil(grid_props, deck)
    else:
        state = init_state_from_deck(grid_props, deck)

    if deck.has_keyword("SWATINIT"):
        logger.debug("Applying SWATINIT capillary pressure scaling")
        apply_swatinit_scaling(grid_props, state)

    init_hydrocarbon_state(
        state,
        grid_props.phase_usage,
        has_disgas=bool(deck.has_keyword("DISGAS")),
        has_vapoil=bool(deck.has_keyword("VAPOIL")),
    )
    return state, strategy


__all__ = [
    "InitStrategy",
    "apply_swatinit_scaling",
    "complete_pressure",
    "compute_gas_oil_ratio",
    "compute_surface_volumes",
    "init_hydrocarbon_state",
    "init_state_basic",
    "init_state_equil",
    "init_state_from_deck",
    "select_strategy",
    "setup_state",
]
