"""
Single geological column: 1-D heat transport, thermal buoyancy and advection.

A column is a vertical stack of equally thick layers (index 0 at the surface,
last index at the bottom). Each call to ``update_temperatures`` performs one
time step:

1. Heat diffusion + radiogenic heating (explicit forward Euler by default,
   backward Euler via ``scipy.linalg.solve_banded`` when requested)
2. Boundary conditions: fixed surface temperature, fixed basal heat flux
3. Density from thermal expansion, hydrostatic reference density
4. Buoyancy force and Stokes-style vertical velocity
5. Upward material advection with bottom replenishment (optional)

The explicit scheme is only stable for diffusion numbers κ·dt/dz² ≤ 0.5.
Choosing dt is the caller's job; ``max_stable_timestep`` reports the limit.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

import numpy as np
from scipy.linalg import solve_banded

from . import constants
from .config import ColumnConfig
from .materials import MANTLE, MaterialDatabase, MaterialType
from .state import BoundaryRecord, ColumnSnapshot

logger = logging.getLogger(__name__)


class Column:
    """One vertical stack of depth layers with independent thermal state."""

    # ------------------------------------------------------------------
    # Construction
    # ------------------------------------------------------------------
    def __init__(
        self,
        config: Optional[ColumnConfig] = None,
        material_db: Optional[MaterialDatabase] = None,
        *,
        depth_profile: Optional[Sequence[float]] = None,
        material_layout: Optional[Sequence[int]] = None,
    ):
        """
        Create and seed a column.

        Args:
            config: Geometry, boundary conditions and advection limits
            material_db: Material table (defaults to the standard lithosphere)
            depth_profile: Optional layer depths in metres, uniform spacing from 0
            material_layout: Optional material id per layer; defaults to crust
                above ``config.moho_depth`` and mantle below
        """
        self.config = config if config is not None else ColumnConfig()
        self.config.validate()
        self.material_db = material_db if material_db is not None else MaterialDatabase()

        self.layer_thickness = float(self.config.layer_thickness)
        self.n_layers = self.config.n_layers
        self.surface_temperature = float(self.config.surface_temperature)
        self.basal_heat_flux = float(self.config.basal_heat_flux)
        self.enable_advection = self.config.enable_advection
        self.solver_method = self.config.solver_method
        self.max_flux_fraction = float(self.config.max_flux_fraction)
        self.max_replenish_fraction = float(self.config.max_replenish_fraction)

        self.time = 0.0
        self.step_count = 0
        self.reference_mantle_temperature = 0.0
        # Last advection diagnostics
        self.flux_fraction = np.zeros(self.n_layers, dtype=np.float64)
        self.total_upward_flux = 0.0

        self.initialize(depth_profile, material_layout)

    def initialize(self, depth_profile=None, material_layout=None) -> None:
        """Allocate per-layer arrays, assign materials and seed the geotherm."""
        n = self.n_layers
        dz = self.layer_thickness

        if depth_profile is None:
            depth = np.arange(n, dtype=np.float64) * dz
        else:
            depth = np.asarray(depth_profile, dtype=np.float64)
            if depth.shape != (n,):
                raise ValueError(f"depth_profile must have {n} entries, got {depth.shape}")
            if depth[0] != 0.0 or not np.allclose(np.diff(depth), dz):
                raise ValueError("depth_profile must start at 0 with uniform layer spacing")
        depth = depth.copy()
        depth.setflags(write=False)
        self.depth = depth

        if material_layout is None:
            crust = MaterialType(self.config.crust_material)
            self.material_id = np.where(depth < self.config.moho_depth, crust, MANTLE).astype(np.int64)
        else:
            layout = np.asarray(material_layout, dtype=np.int64)
            if layout.shape != (n,):
                raise ValueError(f"material_layout must have {n} entries, got {layout.shape}")
            if not self.material_db.is_valid_id(layout):
                raise ValueError("material_layout contains unknown material ids")
            self.material_id = layout.copy()

        self.temperature = np.zeros(n, dtype=np.float64)
        self.actual_density = np.zeros(n, dtype=np.float64)
        self.reference_density = np.zeros(n, dtype=np.float64)
        self.buoyancy_force = np.zeros(n, dtype=np.float64)
        self.vertical_velocity = np.zeros(n, dtype=np.float64)

        self.calculate_steady_state_geotherm()
        self._update_derived_fields()

    def calculate_steady_state_geotherm(self) -> None:
        """
        Seed the conductive steady-state geotherm.

        Pass 1 accumulates heat flux from the bottom up, adding the radiogenic
        production of each layer below. Pass 2 integrates Fourier's law from
        the fixed surface temperature downwards. The resulting bottom
        temperature becomes the reference mantle temperature used when the
        bottom layer is replenished.
        """
        n = self.n_layers
        dz = self.layer_thickness
        heat_gen = self.material_db.lookup("heat_generation", self.material_id)
        conductivity = self.material_db.lookup("thermal_conductivity", self.material_id)

        flux = np.zeros(n, dtype=np.float64)
        flux[-1] = self.basal_heat_flux
        for i in range(n - 2, -1, -1):
            flux[i] = flux[i + 1] + heat_gen[i + 1] * dz

        self.temperature[0] = self.surface_temperature
        for i in range(1, n):
            self.temperature[i] = self.temperature[i - 1] + flux[i] * dz / conductivity[i]

        self.reference_mantle_temperature = float(self.temperature[-1])

    # ------------------------------------------------------------------
    # Time stepping
    # ------------------------------------------------------------------
    def update_temperatures(self, dt: float) -> None:
        """
        Advance the column by ``dt`` seconds.

        Args:
            dt: Time step in seconds; must be finite and non-negative
        """
        if not np.isfinite(dt) or dt < 0:
            raise ValueError(f"dt must be finite and non-negative, got {dt}")

        if self.solver_method == "explicit":
            self._step_explicit(dt)
        else:
            self._step_implicit(dt)
        self._apply_boundary_conditions()

        self._update_derived_fields()

        if self.enable_advection and dt > 0:
            self.advect_material(dt)

        self.time += dt
        self.step_count += 1

    def _thermal_coefficients(self):
        """Diffusivity κ = k/(ρ₀c) and heating rate A/(ρ₀c) per layer."""
        mat = self.material_id
        rho_c = (self.material_db.lookup("density", mat)
                 * self.material_db.lookup("specific_heat", mat))
        kappa = self.material_db.lookup("thermal_conductivity", mat) / rho_c
        heating = self.material_db.lookup("heat_generation", mat) / rho_c
        return kappa, heating

    def _step_explicit(self, dt: float) -> None:
        """Forward Euler update of the interior layers."""
        T = self.temperature
        dz2 = self.layer_thickness ** 2
        kappa, heating = self._thermal_coefficients()

        laplacian = (T[:-2] - 2.0 * T[1:-1] + T[2:]) / dz2
        T[1:-1] = T[1:-1] + dt * (kappa[1:-1] * laplacian + heating[1:-1])

    def _step_implicit(self, dt: float) -> None:
        """Backward Euler update solved as one tridiagonal system."""
        n = self.n_layers
        dz = self.layer_thickness
        kappa, heating = self._thermal_coefficients()
        r = kappa * dt / dz ** 2

        a = np.zeros(n)  # lower diagonal (coefficient of T[i-1])
        b = np.ones(n)   # main diagonal
        c = np.zeros(n)  # upper diagonal (coefficient of T[i+1])
        d = np.zeros(n)

        # Surface: T[0] = T_s
        d[0] = self.surface_temperature

        a[1:-1] = -r[1:-1]
        b[1:-1] = 1.0 + 2.0 * r[1:-1]
        c[1:-1] = -r[1:-1]
        d[1:-1] = self.temperature[1:-1] + dt * heating[1:-1]

        # Bottom: T[n-1] - T[n-2] = q·dz/k
        a[-1] = -1.0
        d[-1] = self._basal_increment()

        ab = np.zeros((3, n))
        ab[0, 1:] = c[:-1]
        ab[1, :] = b
        ab[2, :-1] = a[1:]
        self.temperature[:] = solve_banded((1, 1), ab, d)

    def _basal_increment(self) -> float:
        k_bottom = self.material_db.get_properties_by_index(self.material_id[-1]).thermal_conductivity
        return self.basal_heat_flux * self.layer_thickness / k_bottom

    def _apply_boundary_conditions(self) -> None:
        """Fixed surface temperature and fixed basal heat flux."""
        self.temperature[0] = self.surface_temperature
        self.temperature[-1] = self.temperature[-2] + self._basal_increment()

    def max_stable_timestep(self) -> float:
        """Largest dt with diffusion number ≤ 0.5 for the explicit scheme."""
        kappa, _ = self._thermal_coefficients()
        return constants.MAX_DIFFUSION_NUMBER * self.layer_thickness ** 2 / float(np.max(kappa))

    # ------------------------------------------------------------------
    # Density, buoyancy and velocity
    # ------------------------------------------------------------------
    def _update_derived_fields(self) -> None:
        self.update_densities()
        self.calculate_buoyancy_forces()
        self.calculate_velocities()

    def update_densities(self) -> None:
        """
        Thermal-expansion density and hydrostatic reference density.

        ρ = ρ₀ (1 − α (T − T_ref))
        ρ_ref = ρ₀ (1 + β ρ₀ g z)
        """
        rho0 = self.material_db.lookup("density", self.material_id)
        alpha = self.material_db.lookup("thermal_expansion", self.material_id)
        self.actual_density[:] = rho0 * (1.0 - alpha * (self.temperature - constants.REFERENCE_TEMPERATURE))
        self.reference_density[:] = rho0 * (
            1.0 + constants.COMPRESSIBILITY * rho0 * constants.GRAVITY * self.depth
        )

    def calculate_buoyancy_forces(self) -> None:
        """Buoyancy per unit volume, positive upwards (N/m³)."""
        self.buoyancy_force[:] = (self.reference_density - self.actual_density) * constants.GRAVITY

    def calculate_velocities(self) -> None:
        """Stokes approximation v = F / μ_eff, positive upwards (m/s)."""
        mu = self.material_db.effective_viscosity(self.material_id, self.temperature)
        self.vertical_velocity[:] = self.buoyancy_force / mu

    # ------------------------------------------------------------------
    # Material advection
    # ------------------------------------------------------------------
    def compute_flux_fractions(self, dt: float) -> np.ndarray:
        """
        Fraction of each layer carried upward during ``dt``.

        Clamped to [0, max_flux_fraction]; NaN velocities count as no motion
        and infinite ones as the cap.
        """
        cap = self.max_flux_fraction
        raw = np.maximum(self.vertical_velocity, 0.0) * dt / self.layer_thickness
        raw = np.nan_to_num(raw, nan=0.0, posinf=cap, neginf=0.0)
        return np.clip(raw, 0.0, cap)

    def advect_material(self, dt: float) -> None:
        """
        Move material upward between layers, then replenish the bottom.

        Transfers are applied from the top down: layer ``i`` hands
        ``flux_fraction[i]`` of its heat to layer ``i-1``. A destination that
        receives more than half a layer also takes on the source material.
        """
        fractions = self.compute_flux_fractions(dt)
        if np.any(fractions >= self.max_flux_fraction):
            logger.debug("Advection flux fraction clamped to %.3f in %d layers",
                         self.max_flux_fraction, int(np.sum(fractions >= self.max_flux_fraction)))

        T = self.temperature
        mat = self.material_id
        for i in range(1, self.n_layers):
            f = fractions[i]
            if f <= 0.0:
                continue
            T[i - 1] += f * (T[i] - T[i - 1])
            if f > constants.MATERIAL_OVERWRITE_FRACTION:
                mat[i - 1] = mat[i]

        self.flux_fraction = fractions
        self.total_upward_flux = float(np.sum(fractions[1:]))

        # Fresh mantle enters from below
        mix = min(max(self.total_upward_flux, 0.0), self.max_replenish_fraction)
        mat[-1] = MANTLE
        T[-1] = (1.0 - mix) * T[-1] + mix * self.reference_mantle_temperature

        self._apply_boundary_conditions()
        self._update_derived_fields()

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_pressure_profile(self) -> np.ndarray:
        """Hydrostatic pressure at every layer (Pa), zero at the surface."""
        pressure = np.zeros(self.n_layers, dtype=np.float64)
        pressure[1:] = np.cumsum(self.actual_density[:-1] * constants.GRAVITY * self.layer_thickness)
        return pressure

    def find_steep_density_gradients(self, threshold: float) -> List[BoundaryRecord]:
        """Layer pairs whose density differs by more than ``threshold`` kg/m³."""
        jumps = np.diff(self.actual_density)
        records = []
        for i in np.flatnonzero(np.abs(jumps) > threshold):
            records.append(BoundaryRecord(
                depth_index=int(i + 1),
                density_gradient=float(jumps[i]),
                boundary_type=self.material_db.boundary_type(int(self.material_id[i]),
                                                             int(self.material_id[i + 1])),
            ))
        return records

    def surface_heat_flux(self) -> float:
        """Conductive heat flux out of the surface (W/m²)."""
        k0 = self.material_db.get_properties_by_index(self.material_id[0]).thermal_conductivity
        return k0 * (self.temperature[1] - self.temperature[0]) / self.layer_thickness

    def check_depth_index(self, depth_index: int) -> int:
        if not 0 <= depth_index < self.n_layers:
            raise IndexError(f"depth index {depth_index} out of range [0, {self.n_layers})")
        return int(depth_index)

    def perturb_temperature(self, start: int, stop: int, delta: float) -> None:
        """Add ``delta`` °C to layers ``start:stop`` and restore consistency."""
        self.check_depth_index(start)
        if not start < stop <= self.n_layers:
            raise IndexError(f"invalid layer range {start}:{stop}")
        self.temperature[start:stop] += delta
        self._apply_boundary_conditions()
        self._update_derived_fields()

    def snapshot(self) -> ColumnSnapshot:
        """Frozen copy of the profiles needed for lateral coupling."""
        return ColumnSnapshot.capture(
            depths=self.depth,
            pressures=self.get_pressure_profile(),
            temperatures=self.temperature,
            materials=self.material_id,
            densities=self.actual_density,
        )

    def get_info(self) -> Dict[str, Any]:
        """Column diagnostics for display."""
        return {
            'time': self.time,
            'step_count': self.step_count,
            'surface_temperature': float(self.temperature[0]),
            'bottom_temperature': float(self.temperature[-1]),
            'surface_heat_flux': self.surface_heat_flux(),
            'max_vertical_velocity': float(np.max(self.vertical_velocity)),
            'total_upward_flux': self.total_upward_flux,
        }
