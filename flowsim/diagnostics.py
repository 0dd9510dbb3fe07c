"""Sanity checks of the saturation-function tables.

The checks run once on the output rank after the grid and property models
are built.  Every finding is logged with its severity; nothing here stops
the run.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, List, Mapping, Optional

import numpy as np
import pandas as pd

from .logsetup import MessageType
from .state import PhaseUsage
from .topology import ProcessTopology

logger = logging.getLogger(__name__)

HEADER = "\n===============Saturation Functions Diagnostics===============\n"


@dataclass(frozen=True)
class Finding:
    severity: MessageType
    table: str
    message: str


class RelpermDiagnostics:
    """Inspect SWOF/SGOF tables for the active phase set.

    Columns are read by position: saturation, relative permeability of the
    displacing phase, relative permeability of oil, capillary pressure.
    """

    def __init__(self) -> None:
        self.findings: List[Finding] = []

    def _add(self, severity: MessageType, table: str, message: str) -> None:
        self.findings.append(Finding(severity, table, message))

    def diagnosis(self, phase_usage: PhaseUsage, tables: Mapping[str, pd.DataFrame]) -> pd.DataFrame:
        self.findings = []
        required = self._phase_check(phase_usage)
        for name in required:
            frame = tables.get(name)
            if frame is None or len(frame) == 0:
                self._add(MessageType.ERROR, name, f"{name} table is required for this phase set but missing")
                continue
            self._table_check(name, frame)
        if "SWOF" in required and "SGOF" in required:
            swof, sgof = tables.get("SWOF"), tables.get("SGOF")
            if swof is not None and sgof is not None and len(swof) and len(sgof):
                self._mobile_oil_check(swof, sgof)
        return self.to_frame()

    def _phase_check(self, pu: PhaseUsage) -> List[str]:
        if pu.water and pu.oil and pu.gas:
            self._add(MessageType.NOTE, "", "System:  Black-oil system.")
            return ["SWOF", "SGOF"]
        if pu.water and pu.oil:
            self._add(MessageType.NOTE, "", "System:  Oil-water system.")
            return ["SWOF"]
        if pu.oil and pu.gas:
            self._add(MessageType.NOTE, "", "System:  Oil-gas system.")
            return ["SGOF"]
        if pu.water and pu.gas:
            self._add(MessageType.WARNING, "", "System:  Water-gas system is not covered by these checks.")
            return []
        self._add(MessageType.NOTE, "", "System:  Single-phase system.")
        return []

    def _table_check(self, name: str, frame: pd.DataFrame) -> None:
        if frame.shape[1] < 4:
            self._add(MessageType.ERROR, name, f"{name} needs 4 columns, found {frame.shape[1]}")
            return
        values = frame.iloc[:, :4].to_numpy(dtype=float)
        sat, kr, kro, pc = values.T
        displacing = "krw" if name == "SWOF" else "krg"
        sat_name = "Sw" if name == "SWOF" else "Sg"

        if np.any(sat < 0.0) or np.any(sat > 1.0):
            self._add(MessageType.ERROR, name, f"In {name} table, saturation should be in range [0,1].")
        if np.any(np.diff(sat) <= 0.0):
            self._add(MessageType.ERROR, name, f"In {name} table, saturation should be strictly increasing.")
        for label, column in ((displacing, kr), ("kro", kro)):
            if np.any(column < 0.0) or np.any(column > 1.0):
                self._add(MessageType.ERROR, name, f"In {name} table, {label} should be in range [0,1].")
        if np.any(np.diff(kr) < 0.0):
            self._add(MessageType.ERROR, name, f"In {name} table, {displacing} should be non-decreasing.")
        if np.any(np.diff(kro) > 0.0):
            self._add(MessageType.ERROR, name, f"In {name} table, kro should be non-increasing.")
        if kr[0] != 0.0:
            self._add(MessageType.ERROR, name, f"In {name} table, {displacing} should be zero at the first {sat_name}.")
        if kro[-1] != 0.0:
            self._add(MessageType.ERROR, name, f"In {name} table, kro should be zero at the last {sat_name}.")
        steps = np.diff(pc)
        if name == "SWOF" and np.any(steps > 0.0):
            self._add(MessageType.WARNING, name, "In SWOF table, pcow should be non-increasing in Sw.")
        if name == "SGOF" and np.any(steps < 0.0):
            self._add(MessageType.WARNING, name, "In SGOF table, pcgo should be non-decreasing in Sg.")

    def _mobile_oil_check(self, swof: pd.DataFrame, sgof: pd.DataFrame) -> None:
        swco = float(swof.iloc[0, 0])
        sg = sgof.iloc[:, 0].to_numpy(dtype=float)
        krg = sgof.iloc[:, 1].to_numpy(dtype=float)
        immobile = sg[krg <= 0.0]
        sgcr = float(immobile.max()) if immobile.size else float(sg[0])
        if swco + sgcr >= 1.0:
            self._add(
                MessageType.ERROR,
                "SWOF/SGOF",
                f"Connate water ({swco:g}) plus critical gas ({sgcr:g}) leave no mobile oil.",
            )

    def to_frame(self) -> pd.DataFrame:
        return pd.DataFrame(
            [(f.severity.label, f.table, f.message) for f in self.findings],
            columns=["severity", "table", "message"],
        )

    def report(self) -> None:
        logger.log(MessageType.NOTE, HEADER)
        for finding in self.findings:
            logger.log(finding.severity, finding.message)


def run_diagnostics(topology: ProcessTopology, grid_props: Any) -> Optional[pd.DataFrame]:
    """Run the table checks on the output rank; failures are logged, not raised."""

    if not topology.is_output_rank:
        return None
    checker = RelpermDiagnostics()
    try:
        frame = checker.diagnosis(grid_props.phase_usage, grid_props.init_props.saturation_tables())
        checker.report()
    except Exception as exc:
        logger.warning("Saturation function diagnostics could not be completed: %s", exc)
        return None
    errors = int((frame["severity"] == MessageType.ERROR.label).sum())
    if errors:
        logger.debug("Saturation function diagnostics found %d error(s)", errors)
    return frame


__all__ = ["Finding", "HEADER", "RelpermDiagnostics", "run_diagnostics"]
