"""Uniform Cartesian grid."""
from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from ..schema import DeckKeywords


@dataclass(frozen=True)
class CartesianGrid:
    """``nx × ny × nz`` block grid with natural (i fastest) cell ordering."""

    nx: int
    ny: int
    nz: int
    dx: float = 1.0
    dy: float = 1.0
    dz: float = 1.0
    tops: float = 0.0

    @classmethod
    def from_keywords(cls, keywords: DeckKeywords) -> "CartesianGrid":
        nx, ny, nz = (int(n) for n in keywords.DIMENS)
        return cls(nx, ny, nz, keywords.DX, keywords.DY, keywords.DZ, keywords.TOPS)

    @property
    def num_cells(self) -> int:
        return self.nx * self.ny * self.nz

    @property
    def num_faces(self) -> int:
        """Number of interior faces."""

        nx, ny, nz = self.nx, self.ny, self.nz
        return (nx - 1) * ny * nz + nx * (ny - 1) * nz + nx * ny * (nz - 1)

    @property
    def cell_depths(self) -> np.ndarray:
        layer = np.arange(self.num_cells) // (self.nx * self.ny)
        return self.tops + (layer + 0.5) * self.dz

    @property
    def cell_volume(self) -> float:
        return self.dx * self.dy * self.dz


__all__ = ["CartesianGrid"]
