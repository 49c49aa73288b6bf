"""Plain-data configuration for columns."""

from dataclasses import dataclass

from . import constants
from .materials import MaterialType


@dataclass
class ColumnConfig:
    """Construction parameters shared by every column of a grid."""
    total_depth: float = constants.TOTAL_DEPTH  # m
    layer_thickness: float = constants.LAYER_THICKNESS  # m
    surface_temperature: float = constants.SURFACE_TEMPERATURE  # °C
    basal_heat_flux: float = constants.BASAL_HEAT_FLUX  # W/m²
    moho_depth: float = constants.MOHO_DEPTH  # m
    crust_material: MaterialType = MaterialType.GRANITE
    enable_advection: bool = True
    solver_method: str = "explicit"  # "explicit" or "implicit"
    max_flux_fraction: float = constants.MAX_FLUX_FRACTION
    max_replenish_fraction: float = constants.MAX_REPLENISH_FRACTION

    @property
    def n_layers(self) -> int:
        return int(round(self.total_depth / self.layer_thickness)) + 1

    def validate(self) -> None:
        if self.layer_thickness <= 0 or self.total_depth <= 0:
            raise ValueError("total_depth and layer_thickness must be positive")
        if self.n_layers < 3:
            raise ValueError("a column needs at least 3 layers")
        if self.solver_method not in ("explicit", "implicit"):
            raise ValueError(f"Unknown solver method: {self.solver_method}")
        if not 0.0 < self.max_flux_fraction <= 1.0:
            raise ValueError("max_flux_fraction must lie in (0, 1]")
        if not 0.0 <= self.max_replenish_fraction <= 1.0:
            raise ValueError("max_replenish_fraction must lie in [0, 1]")
