"""
Lateral Darcy mass flux between neighbouring columns.

Interface fluxes live on faces, like the face-centred flux arrays of a
finite-volume scheme: ``east[y, x]`` is the flux from cell (x, y) to its east
neighbour and ``north[y, x]`` the flux to its north neighbour. The per-cell
vector field is derived from the faces as inflow minus outflow, so every
interface enters the field once with each sign and the field sums to zero
over the grid.
"""

from typing import Tuple

import numpy as np

from . import constants
from .materials import MaterialDatabase
from .state import ColumnSnapshot


def darcy_velocity(pressure_difference, spacing: float, permeability: float, viscosity):
    """v = (k/μ)·ΔP/Δx, positive in the direction of falling pressure."""
    return (permeability / viscosity) * (pressure_difference / spacing)


def interface_flux(
    source: ColumnSnapshot,
    target: ColumnSnapshot,
    depth_index: int,
    material_db: MaterialDatabase,
    spacing: float = constants.COLUMN_SPACING,
    permeability: float = constants.PERMEABILITY,
) -> float:
    """
    Mass flux across the interface between two columns at one depth.

    Viscosity and density are taken from the source column only, so
    ``interface_flux(a, b)`` and ``-interface_flux(b, a)`` agree only when the
    two columns share material and temperature at that depth.

    Returns:
        Mass flux in kg/(m²·s); positive means mass moves from source to target
    """
    if not 0 <= depth_index < min(source.n_layers, target.n_layers):
        raise IndexError(f"depth index {depth_index} out of range")
    dp = source.pressures[depth_index] - target.pressures[depth_index]
    mu = material_db.effective_viscosity(source.materials[depth_index],
                                         source.temperatures[depth_index])
    velocity = darcy_velocity(dp, spacing, permeability, float(mu))
    return float(velocity * source.densities[depth_index])


class FluxField:
    """Per-cell two-component mass flux accumulator for a width × height grid."""

    def __init__(self, width: int, height: int):
        self.width = width
        self.height = height
        self.east = np.zeros((height, width), dtype=np.float64)
        self.north = np.zeros((height, width), dtype=np.float64)
        # Flat array indexed by y*width + x; column 0 = east/west, 1 = north/south
        self.vectors = np.zeros((width * height, 2), dtype=np.float64)

    def reset(self) -> None:
        self.east.fill(0.0)
        self.north.fill(0.0)
        self.vectors.fill(0.0)

    def set_faces(self, east: np.ndarray, north: np.ndarray) -> None:
        """Replace all interface fluxes and rebuild the cell field."""
        self.east[:] = east
        self.north[:] = north
        self.accumulate()

    def accumulate(self) -> None:
        """
        Rebuild cell vectors from the face fluxes.

        For every interface f between ``here`` and its neighbour:
        flux[here] -= f and flux[neighbour] += f.
        """
        fx = np.roll(self.east, 1, axis=1) - self.east
        fy = np.roll(self.north, 1, axis=0) - self.north
        self.vectors[:, 0] = fx.ravel()
        self.vectors[:, 1] = fy.ravel()

    def index(self, x: int, y: int) -> int:
        return y * self.width + x

    def vector(self, x: int, y: int) -> Tuple[float, float]:
        fx, fy = self.vectors[self.index(x, y)]
        return float(fx), float(fy)

    def as_grid(self) -> np.ndarray:
        """Cell vectors reshaped to (height, width, 2)."""
        return self.vectors.reshape(self.height, self.width, 2)

    def net(self) -> Tuple[float, float]:
        """Grid-wide sum of each component (zero up to rounding)."""
        return float(np.sum(self.vectors[:, 0])), float(np.sum(self.vectors[:, 1]))

    def total_magnitude(self) -> float:
        """Sum of |f| over all interfaces."""
        return float(np.sum(np.abs(self.east)) + np.sum(np.abs(self.north)))
