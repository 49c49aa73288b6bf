"""
Layered Column Simulation System

Vertical heat transport, thermal buoyancy and advection in a grid of
geological columns, coupled laterally by pressure-driven Darcy flow.
"""

from .materials import MaterialType, MaterialProperties, MaterialDatabase
from .config import ColumnConfig
from .state import BoundaryRecord, ColumnSnapshot
from .column import Column
from .flux import FluxField, interface_flux
from .grid import Grid
from .events import EventDispatcher, SignificantMaterialFluxDetected, SteepDensityGradientDetected

__version__ = "1.0.0"

__all__ = [
    'MaterialType',
    'MaterialProperties',
    'MaterialDatabase',
    'ColumnConfig',
    'BoundaryRecord',
    'ColumnSnapshot',
    'Column',
    'FluxField',
    'interface_flux',
    'Grid',
    'EventDispatcher',
    'SteepDensityGradientDetected',
    'SignificantMaterialFluxDetected',
]
