"""Table-based saturation functions and constant PVT.

Saturation tables hold capillary pressure in bar; every value returned by
this module is in Pa.  Formation volume factors are constant.
"""
from __future__ import annotations

from typing import Dict, List, Mapping, Optional

import numpy as np
import pandas as pd

from .. import constants
from ..schema import DeckKeywords
from ..state import GAS, WATER, PhaseUsage

SWOF_COLUMNS = ["SW", "KRW", "KROW", "PCOW"]
SGOF_COLUMNS = ["SG", "KRG", "KROG", "PCOG"]

_FLAT_SWOF = [[0.0, 0.0, 1.0, 0.0], [1.0, 1.0, 0.0, 0.0]]
_FLAT_SGOF = [[0.0, 0.0, 1.0, 0.0], [1.0, 1.0, 0.0, 0.0]]


def _table(rows: Optional[List[List[float]]], columns: List[str]) -> Optional[pd.DataFrame]:
    if not rows:
        return None
    return pd.DataFrame(np.asarray(rows, dtype=float), columns=columns)


class TableProperties:
    """Saturation-function and PVT evaluation used to initialise the state."""

    def __init__(
        self,
        phase_usage: PhaseUsage,
        densities: Mapping[str, float],
        fvf: Mapping[str, float],
        swof: Optional[pd.DataFrame] = None,
        sgof: Optional[pd.DataFrame] = None,
    ) -> None:
        self.phase_usage = phase_usage
        self.densities = {phase: float(densities[phase]) for phase in phase_usage.active}
        self.fvf = {phase: float(fvf.get(phase, 1.0)) for phase in phase_usage.active}
        self.swof = swof
        self.sgof = sgof
        self._water = swof if swof is not None else pd.DataFrame(_FLAT_SWOF, columns=SWOF_COLUMNS)
        self._gas = sgof if sgof is not None else pd.DataFrame(_FLAT_SGOF, columns=SGOF_COLUMNS)

    @classmethod
    def from_keywords(cls, keywords: DeckKeywords, phase_usage: PhaseUsage) -> "TableProperties":
        return cls(
            phase_usage,
            keywords.DENSITY,
            keywords.FVF,
            swof=_table(keywords.SWOF, SWOF_COLUMNS),
            sgof=_table(keywords.SGOF, SGOF_COLUMNS),
        )

    @property
    def num_phases(self) -> int:
        return self.phase_usage.num_phases

    def phase_densities(self) -> np.ndarray:
        return np.array([self.densities[phase] for phase in self.phase_usage.active])

    def inverse_fvf(self, pressure: np.ndarray, cells: np.ndarray) -> np.ndarray:
        b = np.array([1.0 / self.fvf[phase] for phase in self.phase_usage.active])
        return np.tile(b, (len(cells), 1))

    def cap_press(self, saturation: np.ndarray, cells: np.ndarray) -> np.ndarray:
        """Capillary pressure per phase column: ``Pcow`` for water, ``Pcgo`` for gas."""

        pu = self.phase_usage
        saturation = np.asarray(saturation, dtype=float)
        pc = np.zeros_like(saturation)
        if pu.used(WATER) and pu.num_phases > 1:
            tab = self._water
            pc[:, pu.pos(WATER)] = np.interp(
                saturation[:, pu.pos(WATER)], tab["SW"], tab["PCOW"]
            ) * constants.BARSA
        if pu.used(GAS) and pu.num_phases > 1:
            tab = self._gas
            pc[:, pu.pos(GAS)] = np.interp(
                saturation[:, pu.pos(GAS)], tab["SG"], tab["PCOG"]
            ) * constants.BARSA
        return pc

    def sat_from_cap_press(self, phase: str, pc: np.ndarray, cells: np.ndarray) -> np.ndarray:
        """Invert the capillary-pressure curve of ``phase``.

        Values outside the tabulated range map to the table end points, so a
        flat curve produces a sharp contact.
        """

        pc_bar = np.asarray(pc, dtype=float) / constants.BARSA
        if phase == WATER:
            tab = self._water
            # Pcow decreases with Sw; reverse to get an increasing abscissa.
            return np.interp(pc_bar, tab["PCOW"].to_numpy()[::-1], tab["SW"].to_numpy()[::-1])
        if phase == GAS:
            tab = self._gas
            return np.interp(pc_bar, tab["PCOG"].to_numpy(), tab["SG"].to_numpy())
        raise ValueError(f"No capillary pressure curve for phase {phase!r}")

    def saturation_tables(self) -> Dict[str, pd.DataFrame]:
        tables = {}
        if self.swof is not None:
            tables["SWOF"] = self.swof
        if self.sgof is not None:
            tables["SGOF"] = self.sgof
        return tables


class ScaledProperties:
    """Simulator-side property model; keeps the SWATINIT capillary scaling."""

    def __init__(self, base: TableProperties) -> None:
        self.base = base
        self.swatinit_saturation: Optional[np.ndarray] = None
        self.swatinit_pc: Optional[np.ndarray] = None

    def set_swatinit_scaling(self, saturation: np.ndarray, pc: np.ndarray) -> None:
        self.swatinit_saturation = np.array(saturation, dtype=float, copy=True)
        self.swatinit_pc = np.array(pc, dtype=float, copy=True)

    @property
    def has_swatinit_scaling(self) -> bool:
        return self.swatinit_pc is not None


__all__ = ["SGOF_COLUMNS", "SWOF_COLUMNS", "ScaledProperties", "TableProperties"]
