"""
Grid of columns coupled by lateral Darcy flow.

Each call to ``update_thermal_system`` is one discrete step, split into phases
that must run in order:

1. Per-column phase: temperatures (when a dt is given), densities, buoyancy
   and velocities. Columns share no state here.
2. Barrier: every column is frozen into a ``ColumnSnapshot``.
3. Density-boundary rescan, every ``boundary_scan_interval`` steps.
4. Lateral flux at the column-bottom depth for every interface, then a
   localised refresh at each active boundary depth.
5. Event delivery to listeners.
"""

import dataclasses
import logging
from typing import Any, Dict, List, Optional, Set, Tuple, Union

import numpy as np

from . import constants
from .column import Column
from .config import ColumnConfig
from .events import (
    EventDispatcher,
    GridEvent,
    Listener,
    SignificantMaterialFluxDetected,
    SteepDensityGradientDetected,
)
from .flux import FluxField, darcy_velocity, interface_flux
from .materials import MaterialDatabase
from .state import BoundaryRecord, ColumnSnapshot

BOUNDARY_MODES = ("periodic", "fixed")


class Grid:
    """A width × height array of columns with periodic or fixed edges."""

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    def __init__(
        self,
        width: int,
        height: int,
        *,
        column_config: Optional[ColumnConfig] = None,
        material_db: Optional[MaterialDatabase] = None,
        boundary: str = "periodic",
        column_spacing: float = constants.COLUMN_SPACING,
        permeability: float = constants.PERMEABILITY,
        boundary_scan_interval: int = constants.BOUNDARY_SCAN_INTERVAL,
        density_gradient_threshold: float = constants.DENSITY_GRADIENT_THRESHOLD,
        significant_flux_threshold: float = constants.SIGNIFICANT_FLUX_THRESHOLD,
        log_level: Union[str, int] = "INFO",
    ) -> None:
        if width < 1 or height < 1:
            raise ValueError("grid dimensions must be positive")
        if boundary not in BOUNDARY_MODES:
            raise ValueError(f"Unknown boundary mode: {boundary}")
        if column_spacing <= 0 or permeability < 0:
            raise ValueError("column_spacing must be positive and permeability non-negative")
        if boundary_scan_interval < 1:
            raise ValueError("boundary_scan_interval must be at least 1")

        self.width = width
        self.height = height
        self.boundary = boundary
        self.column_spacing = float(column_spacing)
        self.permeability = float(permeability)
        self.boundary_scan_interval = boundary_scan_interval
        self.density_gradient_threshold = float(density_gradient_threshold)
        self.significant_flux_threshold = float(significant_flux_threshold)

        # ---------- logger -------------------------------------------------
        self.logger = logging.getLogger(f"geocolumn.Grid_{id(self)}")
        if isinstance(log_level, int):
            self.logger.setLevel(log_level)
        else:
            self.logger.setLevel(getattr(logging, str(log_level).upper(), logging.INFO))
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(logging.Formatter("%(message)s"))
            self.logger.addHandler(handler)

        self.column_config = column_config if column_config is not None else ColumnConfig()
        self.material_db = material_db if material_db is not None else MaterialDatabase()

        # Flat, grid-owned column storage: index = y*width + x
        self.columns: List[Column] = [
            Column(self.column_config, self.material_db) for _ in range(width * height)
        ]
        self.n_layers = self.columns[0].n_layers

        self.flux = FluxField(width, height)
        self.active_boundaries: List[BoundaryRecord] = []
        self.snapshots: List[ColumnSnapshot] = []
        self.events = EventDispatcher(self.logger)

        self.step_count = 0
        self._scan_counter = 0

    # ------------------------------------------------------------------
    # Column access
    # ------------------------------------------------------------------
    def _check_location(self, x: int, y: int) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(f"grid location ({x}, {y}) outside {self.width}x{self.height}")

    def column(self, x: int, y: int) -> Column:
        self._check_location(x, y)
        return self.columns[y * self.width + x]

    def set_column(self, x: int, y: int, column: Column) -> None:
        """Replace the column at (x, y); layer geometry must match."""
        self._check_location(x, y)
        if column.n_layers != self.n_layers or column.layer_thickness != self.column_config.layer_thickness:
            raise ValueError("replacement column must share the grid's layer geometry")
        self.columns[y * self.width + x] = column

    def add_listener(self, listener: Listener) -> None:
        self.events.add_listener(listener)

    def remove_listener(self, listener: Listener) -> None:
        self.events.remove_listener(listener)

    # ------------------------------------------------------------------
    # Stepping
    # ------------------------------------------------------------------
    def update_thermal_system(self, dt: Optional[float] = None) -> List[GridEvent]:
        """
        Advance lateral coupling by one step.

        Args:
            dt: When given, every column first advances its temperatures by
                ``dt`` seconds. When omitted, columns are assumed to have been
                stepped by the caller and only their densities, buoyancy and
                velocities are refreshed.

        Returns:
            Events detected during this step, in detection order
        """
        # Per-column phase
        for col in self.columns:
            if dt is not None:
                col.update_temperatures(dt)
            else:
                col.update_densities()
                col.calculate_buoyancy_forces()
                col.calculate_velocities()

        # Barrier: lateral phase only ever sees frozen columns
        self.snapshots = [col.snapshot() for col in self.columns]

        events: List[GridEvent] = []
        self._scan_counter += 1
        if self._scan_counter % self.boundary_scan_interval == 0:
            events.extend(self.scan_density_boundaries())

        events.extend(self.compute_flux_field())

        self.step_count += 1
        self.events.dispatch(events)
        return events

    def scan_density_boundaries(self) -> List[SteepDensityGradientDetected]:
        """Rebuild the active-boundary list from every column."""
        boundaries: List[BoundaryRecord] = []
        events = []
        for index, col in enumerate(self.columns):
            x, y = index % self.width, index // self.width
            for record in col.find_steep_density_gradients(self.density_gradient_threshold):
                record = dataclasses.replace(record, location=(x, y))
                boundaries.append(record)
                events.append(SteepDensityGradientDetected(
                    location=(x, y),
                    depth_km=float(col.depth[record.depth_index]) / 1000.0,
                    gradient_magnitude=abs(record.density_gradient),
                    boundary_type=record.boundary_type,
                ))
        self.active_boundaries = boundaries
        self.logger.debug("Boundary rescan at step %d: %d active boundaries",
                          self.step_count, len(boundaries))
        return events

    # ------------------------------------------------------------------
    # Lateral flux
    # ------------------------------------------------------------------
    def interface_flux(self, a, b, depth_index: int) -> float:
        """Darcy mass flux from ``a`` to ``b`` (columns or snapshots) at one depth."""
        if isinstance(a, Column):
            a = a.snapshot()
        if isinstance(b, Column):
            b = b.snapshot()
        return interface_flux(a, b, depth_index, self.material_db,
                              spacing=self.column_spacing, permeability=self.permeability)

    def _field_at_depth(self, name: str, depth_index: int) -> np.ndarray:
        values = [getattr(snap, name)[depth_index] for snap in self.snapshots]
        return np.asarray(values).reshape(self.height, self.width)

    def compute_face_fluxes(self, depth_index: int) -> Tuple[np.ndarray, np.ndarray]:
        """East and north interface fluxes for every cell at one depth."""
        pressure = self._field_at_depth("pressures", depth_index)
        temperature = self._field_at_depth("temperatures", depth_index)
        materials = self._field_at_depth("materials", depth_index).astype(np.int64)
        density = self._field_at_depth("densities", depth_index)
        mu = self.material_db.effective_viscosity(materials, temperature)

        east = darcy_velocity(pressure - np.roll(pressure, -1, axis=1),
                              self.column_spacing, self.permeability, mu) * density
        north = darcy_velocity(pressure - np.roll(pressure, -1, axis=0),
                               self.column_spacing, self.permeability, mu) * density

        if self.boundary == "fixed":
            east[:, -1] = 0.0
            north[-1, :] = 0.0
        return east, north

    def compute_flux_field(self) -> List[SignificantMaterialFluxDetected]:
        """Full bottom-depth pass followed by refreshes at active boundaries."""
        if not self.snapshots:
            self.snapshots = [col.snapshot() for col in self.columns]

        bottom = self.n_layers - 1
        east, north = self.compute_face_fluxes(bottom)
        self.flux.set_faces(east, north)
        # Each (face, depth) is reported at most once per step
        reported: Set[Tuple[str, int, int, int]] = set()
        events = self._significant_face_events(bottom, reported)

        for record in self.active_boundaries:
            events.extend(self.refresh_boundary_flux(record, reported))
        if self.active_boundaries:
            self.flux.accumulate()
        return events

    def _neighbours(self, x: int, y: int):
        """Faces touching (x, y) as (face array, face (x, y), source, target)."""
        w, h = self.width, self.height
        periodic = self.boundary == "periodic"
        faces = []
        if periodic or x + 1 < w:
            faces.append(("east", (x, y), (x, y), ((x + 1) % w, y)))
        if periodic or x - 1 >= 0:
            west = ((x - 1) % w, y)
            faces.append(("east", west, west, (x, y)))
        if periodic or y + 1 < h:
            faces.append(("north", (x, y), (x, y), (x, (y + 1) % h)))
        if periodic or y - 1 >= 0:
            south = (x, (y - 1) % h)
            faces.append(("north", south, south, (x, y)))
        return faces

    def refresh_boundary_flux(
        self,
        record: BoundaryRecord,
        reported: Optional[Set[Tuple[str, int, int, int]]] = None,
    ) -> List[SignificantMaterialFluxDetected]:
        """
        Recompute the four interfaces around a boundary cell at its depth.

        Only the face arrays are written; the caller rebuilds the cell field
        once all boundaries have been refreshed. Faces already in ``reported``
        are rewritten but not reported again; newly reported faces are added.
        """
        if reported is None:
            reported = set()
        x, y = record.location
        self._check_location(x, y)
        depth = record.depth_index
        events = []
        for axis, (fx, fy), src, dst in self._neighbours(x, y):
            f = interface_flux(self.snapshots[src[1] * self.width + src[0]],
                               self.snapshots[dst[1] * self.width + dst[0]],
                               depth, self.material_db,
                               spacing=self.column_spacing, permeability=self.permeability)
            getattr(self.flux, axis)[fy, fx] = f
            key = (axis, fx, fy, depth)
            if abs(f) > self.significant_flux_threshold and key not in reported:
                reported.add(key)
                events.append(self._flux_event(src, dst, f, depth))
        return events

    def _flux_event(self, src, dst, f: float, depth_index: int) -> SignificantMaterialFluxDetected:
        if f < 0:
            src, dst = dst, src
        depth_km = float(self.snapshots[0].depths[depth_index]) / 1000.0
        return SignificantMaterialFluxDetected(source=src, target=dst,
                                               depth_km=depth_km, flux_rate=abs(f))

    def _significant_face_events(
        self, depth_index: int, reported: Set[Tuple[str, int, int, int]]
    ) -> List[SignificantMaterialFluxDetected]:
        events = []
        w, h = self.width, self.height
        for y, x in np.argwhere(np.abs(self.flux.east) > self.significant_flux_threshold):
            reported.add(("east", int(x), int(y), depth_index))
            events.append(self._flux_event((int(x), int(y)), ((int(x) + 1) % w, int(y)),
                                           float(self.flux.east[y, x]), depth_index))
        for y, x in np.argwhere(np.abs(self.flux.north) > self.significant_flux_threshold):
            reported.add(("north", int(x), int(y), depth_index))
            events.append(self._flux_event((int(x), int(y)), (int(x), (int(y) + 1) % h),
                                           float(self.flux.north[y, x]), depth_index))
        return events

    # ------------------------------------------------------------------
    # Diagnostics
    # ------------------------------------------------------------------
    def get_info(self) -> Dict[str, Any]:
        """Grid diagnostics for display."""
        surface_flux = [col.surface_heat_flux() for col in self.columns]
        net_x, net_y = self.flux.net()
        return {
            'step_count': self.step_count,
            'time': self.columns[0].time,
            'active_boundaries': len(self.active_boundaries),
            'net_flux_x': net_x,
            'net_flux_y': net_y,
            'total_flux_magnitude': self.flux.total_magnitude(),
            'mean_surface_heat_flux': float(np.mean(surface_flux)),
            'max_temperature': max(float(np.max(col.temperature)) for col in self.columns),
            'mean_bottom_temperature': float(np.mean([col.temperature[-1] for col in self.columns])),
        }
