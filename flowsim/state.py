"""Reservoir state containers and phase bookkeeping."""
from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, Sequence, Tuple

import numpy as np

WATER = "water"
OIL = "oil"
GAS = "gas"
CANONICAL_PHASES: Tuple[str, ...] = (WATER, OIL, GAS)


class HydroCarbonState(enum.IntEnum):
    """Per-cell hydrocarbon classification used by the black-oil primary variables."""

    GAS_ONLY = 0
    GAS_AND_OIL = 1
    OIL_ONLY = 2


@dataclass(frozen=True)
class PhaseUsage:
    """Active phases and their column positions in per-phase arrays."""

    water: bool = True
    oil: bool = True
    gas: bool = False

    @classmethod
    def from_phases(cls, phases: Sequence[str]) -> "PhaseUsage":
        names = {str(p).lower() for p in phases}
        unknown = names - set(CANONICAL_PHASES)
        if unknown:
            raise ValueError(f"Unknown phase name(s): {sorted(unknown)}")
        return cls(water=WATER in names, oil=OIL in names, gas=GAS in names)

    @property
    def active(self) -> Tuple[str, ...]:
        flags = {WATER: self.water, OIL: self.oil, GAS: self.gas}
        return tuple(name for name in CANONICAL_PHASES if flags[name])

    @property
    def num_phases(self) -> int:
        return len(self.active)

    @property
    def positions(self) -> Dict[str, int]:
        return {name: idx for idx, name in enumerate(self.active)}

    def used(self, phase: str) -> bool:
        return phase in self.positions

    def pos(self, phase: str) -> int:
        try:
            return self.positions[phase]
        except KeyError:
            raise KeyError(f"phase {phase!r} is not active") from None


@dataclass
class ReservoirState:
    """Per-cell and per-face arrays describing the reservoir at one instant.

    Attributes
    ----------
    saturation : ndarray, shape (num_cells, num_phases)
        Phase saturations in :class:`PhaseUsage` column order.
    pressure : ndarray, shape (num_cells,)
        Cell pressure [Pa] (oil pressure when oil is active).
    surface_volume : ndarray, shape (num_cells, num_phases)
        Phase volumes at surface conditions per unit pore volume.
    gas_oil_ratio : ndarray, shape (num_cells,)
        Dissolved gas-oil ratio; NaN where undefined.
    oil_gas_ratio : ndarray, shape (num_cells,)
        Vaporised oil-gas ratio; NaN where undefined.
    hydrocarbon_state : ndarray of int8, shape (num_cells,)
        :class:`HydroCarbonState` value per cell.
    """

    num_cells: int
    num_faces: int
    num_phases: int
    saturation: np.ndarray = field(init=False)
    pressure: np.ndarray = field(init=False)
    surface_volume: np.ndarray = field(init=False)
    gas_oil_ratio: np.ndarray = field(init=False)
    oil_gas_ratio: np.ndarray = field(init=False)
    hydrocarbon_state: np.ndarray = field(init=False)
    face_pressure: np.ndarray = field(init=False)
    face_flux: np.ndarray = field(init=False)

    def __post_init__(self) -> None:
        if self.num_cells < 0 or self.num_faces < 0:
            raise ValueError("cell and face counts must be non-negative")
        if not 1 <= self.num_phases <= 3:
            raise ValueError(f"num_phases must be 1..3, got {self.num_phases}")
        n, nf, np_ = self.num_cells, self.num_faces, self.num_phases
        self.saturation = np.zeros((n, np_), dtype=float)
        self.saturation[:, 0] = 1.0
        self.pressure = np.zeros(n, dtype=float)
        self.surface_volume = np.zeros((n, np_), dtype=float)
        self.gas_oil_ratio = np.full(n, np.nan, dtype=float)
        self.oil_gas_ratio = np.full(n, np.nan, dtype=float)
        self.hydrocarbon_state = np.full(n, HydroCarbonState.GAS_AND_OIL, dtype=np.int8)
        self.face_pressure = np.zeros(nf, dtype=float)
        self.face_flux = np.zeros(nf, dtype=float)

    def copy(self) -> "ReservoirState":
        clone = ReservoirState(self.num_cells, self.num_faces, self.num_phases)
        for name in (
            "saturation",
            "pressure",
            "surface_volume",
            "gas_oil_ratio",
            "oil_gas_ratio",
            "hydrocarbon_state",
            "face_pressure",
            "face_flux",
        ):
            setattr(clone, name, getattr(self, name).copy())
        return clone


__all__ = [
    "CANONICAL_PHASES",
    "GAS",
    "HydroCarbonState",
    "OIL",
    "PhaseUsage",
    "ReservoirState",
    "WATER",
]
