"""
Scenario definitions for the column grid.

Each scenario is a function that configures the initial state of an already
constructed grid. Every grid starts as identical granite-over-peridotite
columns on their steady-state geotherm, which by itself produces no lateral
flow; scenarios break that symmetry.
"""

from typing import Callable, Dict, List

import numpy as np

from .column import Column
from .materials import MANTLE, MaterialType
from .grid import Grid


def setup_uniform(grid: Grid):
    """Leave every column on the unperturbed steady-state geotherm."""


def setup_mantle_plume(grid: Grid):
    """Hot mantle anomaly under the centre column."""
    col = grid.column(grid.width // 2, grid.height // 2)
    mantle = np.flatnonzero(col.material_id == MANTLE)
    # All-crust columns get the anomaly below the surface layer instead
    start = int(mantle[0]) if mantle.size and mantle[0] > 0 else 1
    col.perturb_temperature(start, col.n_layers - 1, 300.0)


def setup_basalt_province(grid: Grid):
    """Western half underlain by basaltic rather than granitic crust."""
    config = grid.column_config
    for y in range(grid.height):
        for x in range(grid.width // 2):
            template = grid.column(x, y)
            layout = np.where(template.material_id == MANTLE, MANTLE, MaterialType.BASALT)
            grid.set_column(x, y, Column(config, grid.material_db, material_layout=layout))


def setup_thermal_gradient(grid: Grid):
    """Temperatures ramp from cold in the west to warm in the east."""
    for y in range(grid.height):
        for x in range(grid.width):
            col = grid.column(x, y)
            delta = 200.0 * x / max(grid.width - 1, 1)
            col.perturb_temperature(1, col.n_layers - 1, delta)


SCENARIOS: Dict[str, Callable[[Grid], None]] = {
    'uniform': setup_uniform,
    'plume': setup_mantle_plume,
    'basalt': setup_basalt_province,
    'gradient': setup_thermal_gradient,
}


def get_scenario_names() -> List[str]:
    return list(SCENARIOS)


def setup_scenario(name: str, grid: Grid):
    """Apply a named scenario to ``grid``."""
    if name not in SCENARIOS:
        raise ValueError(f"Unknown scenario: {name}. Available: {', '.join(SCENARIOS)}")
    SCENARIOS[name](grid)
    grid.logger.debug("Scenario '%s' applied to %dx%d grid", name, grid.width, grid.height)
