"""Output helper utilities.

The routines in this module provide thin wrappers around :mod:`pandas`
functionality to serialise reservoir states.  Parquet is used for the static
and restart snapshots; unit and definition metadata are stored in the schema
so downstream readers need no side files.  All functions ensure that
destination directories are created when necessary.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Mapping, Optional

import numpy as np
import pandas as pd
import pyarrow as pa
import pyarrow.parquet as pq

from ..state import HydroCarbonState, PhaseUsage, ReservoirState

UNITS = {
    "cell": "count",
    "depth": "m",
    "pressure": "Pa",
    "poro": "dimensionless",
    "permx": "mD",
    "pore_volume": "m^3",
    "rs": "sm^3/sm^3",
    "rv": "sm^3/sm^3",
    "hydrocarbon_state": "category",
}

DEFINITIONS = {
    "cell": "Zero-based active cell index.",
    "depth": "Cell centre depth, positive downward [m].",
    "pressure": "Cell pressure (oil pressure when oil is active) [Pa].",
    "poro": "Porosity (dimensionless).",
    "permx": "Permeability in the x direction [mD].",
    "pore_volume": "Pore volume of the cell [m^3].",
    "rs": "Dissolved gas-oil ratio; NaN where undefined.",
    "rv": "Vaporised oil-gas ratio; NaN where undefined.",
    "hydrocarbon_state": "Per-cell hydrocarbon state (GAS_ONLY, GAS_AND_OIL, OIL_ONLY).",
}


def _ensure_parent(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def write_parquet(
    df: pd.DataFrame,
    path: Path,
    *,
    compression: str = "snappy",
    extra_metadata: Optional[Mapping[str, object]] = None,
) -> None:
    """Write a DataFrame to a Parquet file using ``pyarrow``.

    Parameters
    ----------
    df:
        Table to serialise.
    path:
        Destination file path.
    extra_metadata:
        Additional JSON-serialisable entries stored in the schema metadata.
    """
    _ensure_parent(path)
    units = {name: unit for name, unit in UNITS.items() if name in df.columns}
    for phase in ("water", "oil", "gas"):
        if f"s{phase}" in df.columns:
            units[f"s{phase}"] = "dimensionless"
    definitions = {name: text for name, text in DEFINITIONS.items() if name in df.columns}
    table = pa.Table.from_pandas(df, preserve_index=False)
    metadata = dict(table.schema.metadata or {})
    metadata.update(
        {
            b"units": json.dumps(units, sort_keys=True).encode("utf-8"),
            b"definitions": json.dumps(definitions, sort_keys=True).encode("utf-8"),
        }
    )
    for key, value in (extra_metadata or {}).items():
        metadata[str(key).encode("utf-8")] = json.dumps(value, sort_keys=True).encode("utf-8")
    table = table.replace_schema_metadata(metadata)
    compression_arg = None if compression == "none" else compression
    pq.write_table(table, path, compression=compression_arg)


def read_metadata(path: Path) -> dict:
    """Return the decoded JSON schema metadata of a file written by :func:`write_parquet`."""

    schema = pq.read_schema(path)
    out = {}
    for key, value in (schema.metadata or {}).items():
        name = key.decode("utf-8")
        if name == "pandas":
            continue
        out[name] = json.loads(value.decode("utf-8"))
    return out


def static_frame(depths: np.ndarray, properties: Mapping[str, np.ndarray]) -> pd.DataFrame:
    """Tabulate static per-cell properties for the initial output file."""

    depths = np.asarray(depths, dtype=float)
    data = {"cell": np.arange(depths.size), "depth": depths}
    for name, values in properties.items():
        data[name.lower()] = np.broadcast_to(np.asarray(values, dtype=float), depths.shape).copy()
    return pd.DataFrame(data)


def state_frame(state: ReservoirState, phase_usage: PhaseUsage) -> pd.DataFrame:
    """Tabulate a reservoir state, one row per cell."""

    data = {"cell": np.arange(state.num_cells), "pressure": state.pressure}
    for phase, pos in phase_usage.positions.items():
        data[f"s{phase}"] = state.saturation[:, pos]
    data["rs"] = state.gas_oil_ratio
    data["rv"] = state.oil_gas_ratio
    data["hydrocarbon_state"] = pd.Categorical(
        [HydroCarbonState(int(v)).name for v in state.hydrocarbon_state],
        categories=[member.name for member in HydroCarbonState],
    )
    return pd.DataFrame(data)


__all__ = ["read_metadata", "state_frame", "static_frame", "write_parquet"]
