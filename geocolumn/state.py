"""
Immutable records exchanged between columns, the grid and observers.

Columns mutate their own arrays in place; anything that crosses a column
boundary is copied into one of these records first so the lateral flux phase
can never write back into a column.
"""

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class BoundaryRecord:
    """A sharp density jump between two adjacent layers."""
    depth_index: int  # first layer below the jump
    density_gradient: float  # ρ[below] − ρ[above], kg/m³
    boundary_type: str
    location: Optional[Tuple[int, int]] = None  # (x, y) once tagged by the grid


@dataclass(frozen=True)
class ColumnSnapshot:
    """Per-layer profiles of one column, frozen after the per-column phase."""
    depths: np.ndarray
    pressures: np.ndarray
    temperatures: np.ndarray
    materials: np.ndarray
    densities: np.ndarray

    @classmethod
    def capture(cls, depths, pressures, temperatures, materials, densities) -> "ColumnSnapshot":
        arrays = []
        for values in (depths, pressures, temperatures, materials, densities):
            copy = np.array(values, copy=True)
            copy.setflags(write=False)
            arrays.append(copy)
        return cls(*arrays)

    @property
    def n_layers(self) -> int:
        return len(self.depths)
