"""
Material properties for the layered column model.

Three rock types make up every column: granitic and basaltic crust over a
peridotite mantle. Properties are kept per material and exposed both as
dataclass records and as numpy lookup arrays indexed by material id, so the
column solver can gather a whole property profile with one fancy-index.
"""

import numpy as np
from enum import IntEnum
from dataclasses import dataclass, fields, replace
from typing import Dict, Optional

from .constants import VISCOSITY_TEMPERATURE_SCALE


class MaterialType(IntEnum):
    """Material ids stored in ``Column.material_id``."""
    GRANITE = 0
    BASALT = 1
    PERIDOTITE = 2


# Mantle is an alias used throughout the column code
MANTLE = MaterialType.PERIDOTITE

# Category used when a table entry does not name one
DEFAULT_CATEGORIES = {
    MaterialType.GRANITE: "crust",
    MaterialType.BASALT: "crust",
    MaterialType.PERIDOTITE: "mantle",
}

# Lower bound on effective viscosity; exp(-T/1000) underflows for extreme T
MIN_VISCOSITY = np.finfo(np.float64).tiny


@dataclass(frozen=True)
class MaterialProperties:
    """Physical properties of a material type."""
    thermal_conductivity: float  # W/(m·K)
    density: float  # kg/m³ at reference temperature
    specific_heat: float  # J/(kg·K)
    heat_generation: float  # W/m³ (radiogenic)
    thermal_expansion: float  # 1/K
    viscosity: float  # Pa·s at 0 °C
    category: Optional[str] = None  # "crust" or "mantle"; None takes the type default

    def validate(self, name: str) -> None:
        """Reject entries that would divide by zero in the solvers."""
        for attr in ("thermal_conductivity", "density", "specific_heat", "viscosity"):
            value = getattr(self, attr)
            if not np.isfinite(value) or value <= 0:
                raise ValueError(f"{name}: {attr} must be positive, got {value}")
        if self.heat_generation < 0:
            raise ValueError(f"{name}: heat_generation must be non-negative")
        if self.thermal_expansion < 0:
            raise ValueError(f"{name}: thermal_expansion must be non-negative")


class MaterialDatabase:
    """Database of material properties for the column model."""

    def __init__(self, overrides: Optional[Dict[MaterialType, MaterialProperties]] = None):
        """
        Build the material table.

        Args:
            overrides: Optional replacement properties keyed by material type.
                Plain dicts of property values are accepted as well.
        """
        self.properties = self._init_properties()
        for material, props in (overrides or {}).items():
            material = MaterialType(material)
            if isinstance(props, dict):
                props = MaterialProperties(**props)
            if props.category is None:
                props = replace(props, category=DEFAULT_CATEGORIES[material])
            self.properties[material] = props

        for material, props in self.properties.items():
            props.validate(material.name.lower())

        self._material_list = list(MaterialType)
        self._arrays = {
            f.name: np.array([getattr(self.properties[m], f.name) for m in self._material_list],
                             dtype=np.float64)
            for f in fields(MaterialProperties) if f.name != "category"
        }

    def _init_properties(self) -> Dict[MaterialType, MaterialProperties]:
        """Default continental lithosphere values."""
        props = {}

        # GRANITE - felsic upper crust, strongly radiogenic
        props[MaterialType.GRANITE] = MaterialProperties(
            thermal_conductivity=3.0,
            density=2700.0,
            specific_heat=1000.0,
            heat_generation=3.0e-6,
            thermal_expansion=3.0e-5,
            viscosity=1e23,
            category="crust",
        )

        # BASALT - mafic crust
        props[MaterialType.BASALT] = MaterialProperties(
            thermal_conductivity=2.5,
            density=2950.0,
            specific_heat=1000.0,
            heat_generation=0.5e-6,
            thermal_expansion=2.5e-5,
            viscosity=1e22,
            category="crust",
        )

        # PERIDOTITE - upper mantle
        props[MaterialType.PERIDOTITE] = MaterialProperties(
            thermal_conductivity=4.0,
            density=3300.0,
            specific_heat=1200.0,
            heat_generation=0.02e-6,
            thermal_expansion=3.5e-5,
            viscosity=1e21,
            category="mantle",
        )

        return props

    def get_properties(self, material: MaterialType) -> MaterialProperties:
        """Get properties for a material type."""
        return self.properties[material]

    def get_properties_by_index(self, index: int) -> MaterialProperties:
        """Get properties by material index."""
        return self.properties[self._material_list[index]]

    def property_array(self, name: str) -> np.ndarray:
        """Lookup array for one property, indexed by material id."""
        return self._arrays[name]

    def lookup(self, name: str, material_ids: np.ndarray) -> np.ndarray:
        """Gather a property profile for an array of material ids."""
        return self._arrays[name][material_ids]

    def is_valid_id(self, material_ids) -> bool:
        ids = np.asarray(material_ids)
        return bool(np.all((ids >= 0) & (ids < len(self._material_list))))

    def effective_viscosity(self, material_ids, temperature) -> np.ndarray:
        """
        Temperature-weakened viscosity.

        μ = μ₀ · exp(−T / 1000), with T in °C, floored at the smallest
        positive float so callers can always divide by it.
        """
        mu0 = self._arrays["viscosity"][material_ids]
        mu = mu0 * np.exp(-np.asarray(temperature, dtype=np.float64) / VISCOSITY_TEMPERATURE_SCALE)
        return np.maximum(mu, MIN_VISCOSITY)

    def boundary_type(self, upper: int, lower: int) -> str:
        """Classify the material transition across a density jump."""
        upper_props = self.get_properties_by_index(upper)
        lower_props = self.get_properties_by_index(lower)
        if upper_props.category != lower_props.category:
            return f"{upper_props.category}-{lower_props.category}"
        if upper != lower:
            return f"{MaterialType(upper).name.lower()}-{MaterialType(lower).name.lower()}"
        return "thermal"
