"""Configuration schema for the simulation driver.

This module defines Pydantic models for the typed views of the run
configuration: the recognised command-line options, the message print-limit
policy, equilibration records, and the keyword layout of the YAML reference
deck read by :mod:`flowsim.reference`.  Validation errors are converted to
the package exceptions by the callers.
"""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from . import constants

Scalar = Union[float, int]
CellValues = Union[float, List[float]]


class RunParameters(BaseModel):
    """Typed view of the options recognised by the driver."""

    model_config = ConfigDict(extra="ignore")

    deck_filename: Path = Field(..., description="Resolved input case path")
    output: bool = Field(True, description="Enable any file output")
    output_dir: Path = Field(Path("."), description="Directory receiving every output file")
    output_ecl: bool = Field(True, description="Write the initial-output files")
    output_interval: Optional[int] = Field(
        None, ge=1, description="Override of the restart-write cadence [report steps]"
    )
    nosim: Optional[bool] = Field(None, description="Force initialization-only mode")
    gravity: Optional[float] = Field(None, ge=0.0, description="Gravity magnitude [m s^-2]")
    use_local_perm: bool = Field(True, description="Use local instead of global permeability basis")
    init_saturation: Optional[float] = Field(
        None, ge=0.0, le=1.0, description="Uniform initial water saturation"
    )
    ref_pressure: float = Field(
        constants.DEFAULT_REF_PRESSURE_BAR, gt=0.0, description="Reference pressure [bar]"
    )
    water_oil_contact: Optional[float] = Field(None, description="Contact depth for the basic initializer [m]")
    framework: str = Field(constants.DEFAULT_FRAMEWORK, description="Collaborator entry point 'module:attr'")

    @field_validator("framework")
    @classmethod
    def _check_entrypoint(cls, value: str) -> str:
        module, sep, attr = str(value).partition(":")
        if not sep or not module or not attr:
            raise ValueError(f"framework must look like 'module:attribute', got {value!r}")
        return value


class MessageLimits(BaseModel):
    """Per-severity print limits (MESSAGES keyword semantics)."""

    message_print_limit: int = Field(1_000_000, ge=0, description="Info messages")
    comment_print_limit: int = Field(1_000_000, ge=0, description="Notes")
    warning_print_limit: int = Field(10_000, ge=0)
    problem_print_limit: int = Field(100, ge=0)
    error_print_limit: int = Field(100, ge=0)
    bug_print_limit: int = Field(100, ge=0)

    @model_validator(mode="before")
    def _accept_short_names(cls, data: Any) -> Any:
        """Allow ``warning: 10`` next to ``warning_print_limit: 10``."""

        if not isinstance(data, dict):
            return data
        aliases = {
            "message": "message_print_limit",
            "info": "message_print_limit",
            "comment": "comment_print_limit",
            "note": "comment_print_limit",
            "warning": "warning_print_limit",
            "problem": "problem_print_limit",
            "error": "error_print_limit",
            "bug": "bug_print_limit",
        }
        out: Dict[str, Any] = {}
        for key, value in data.items():
            out[aliases.get(str(key).lower(), key)] = value
        return out


class EquilRecord(BaseModel):
    """One EQUIL row: datum and fluid contacts for a region.

    Depths are in metres (positive downward), pressures in bar.
    """

    datum_depth: float
    datum_pressure: float = Field(..., gt=0.0)
    woc_depth: float
    pcow_woc: float = 0.0
    goc_depth: float
    pcgo_goc: float = 0.0

    @classmethod
    def from_row(cls, row: Sequence[Scalar]) -> "EquilRecord":
        values = list(row)
        if len(values) < 3:
            raise ValueError(f"EQUIL record needs at least 3 items, got {len(values)}")
        names = ("datum_depth", "datum_pressure", "woc_depth", "pcow_woc", "goc_depth", "pcgo_goc")
        payload: Dict[str, Any] = dict(zip(names, values))
        payload.setdefault("pcow_woc", 0.0)
        payload.setdefault("goc_depth", payload["datum_depth"])
        payload.setdefault("pcgo_goc", 0.0)
        return cls(**payload)


class DeckKeywords(BaseModel):
    """Keyword layout of the YAML reference deck.

    Only presence and shape are validated here; the deck keeps the raw
    mapping so that ``has_keyword`` reflects what the file actually holds.
    """

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    TITLE: Optional[str] = None
    OIL: bool = False
    WATER: bool = False
    GAS: bool = False
    DISGAS: bool = False
    VAPOIL: bool = False
    NOGRAV: bool = False
    NOSIM: bool = False
    DIMENS: Tuple[int, int, int] = (1, 1, 1)
    DX: float = Field(1.0, gt=0.0)
    DY: float = Field(1.0, gt=0.0)
    DZ: float = Field(1.0, gt=0.0)
    TOPS: float = 0.0
    PORO: CellValues = 0.2
    PERMX: CellValues = 100.0
    DENSITY: Dict[str, float] = Field(
        default_factory=lambda: {"water": 1000.0, "oil": 800.0, "gas": 100.0}
    )
    FVF: Dict[str, float] = Field(default_factory=lambda: {"water": 1.0, "oil": 1.0, "gas": 1.0})
    SWOF: Optional[List[List[float]]] = None
    SGOF: Optional[List[List[float]]] = None
    EQLNUM: Optional[Union[int, List[int]]] = None
    EQUIL: Optional[List[List[float]]] = None
    SWATINIT: Optional[CellValues] = None
    PRESSURE: Optional[CellValues] = None
    SWAT: Optional[CellValues] = None
    SGAS: Optional[CellValues] = None
    RS: Optional[CellValues] = None
    RV: Optional[CellValues] = None
    MESSAGES: Optional[MessageLimits] = None
    TSTEP: List[float] = Field(default_factory=list)
    RPTRST: int = Field(1, ge=1)

    @field_validator("DIMENS")
    @classmethod
    def _positive_dims(cls, value: Tuple[int, int, int]) -> Tuple[int, int, int]:
        if any(int(n) <= 0 for n in value):
            raise ValueError(f"DIMENS entries must be positive, got {value}")
        return value

    @field_validator("SWOF", "SGOF")
    @classmethod
    def _four_columns(cls, rows: Optional[List[List[float]]]) -> Optional[List[List[float]]]:
        if rows is None:
            return rows
        for row in rows:
            if len(row) != 4:
                raise ValueError("saturation table rows need exactly 4 columns")
        return rows

    @field_validator("TSTEP")
    @classmethod
    def _positive_steps(cls, steps: List[float]) -> List[float]:
        if any(step <= 0.0 for step in steps):
            raise ValueError("TSTEP entries must be positive")
        return steps


__all__ = [
    "RunParameters",
    "MessageLimits",
    "EquilRecord",
    "DeckKeywords",
]
