"""Unit tests for the column geotherm, heat equation and density laws"""

import numpy as np
import pytest

from geocolumn import constants
from geocolumn.column import Column
from geocolumn.config import ColumnConfig
from geocolumn.materials import MANTLE, MaterialType


def _bottom_condition(col):
    k = col.material_db.get_properties_by_index(col.material_id[-1]).thermal_conductivity
    return col.temperature[-2] + col.basal_heat_flux * col.layer_thickness / k


def test_column_geometry(standard_column):
    """0-100 km in 1 km layers gives 101 layers with fixed depths"""
    col = standard_column
    assert col.n_layers == 101
    assert col.depth[0] == 0.0
    assert col.depth[-1] == 100e3
    with pytest.raises(ValueError):
        col.depth[3] = 1.0


def test_default_material_layout(standard_column):
    """Granite above 40 km, peridotite from 40 km down"""
    col = standard_column
    assert np.all(col.material_id[:40] == MaterialType.GRANITE)
    assert np.all(col.material_id[40:] == MANTLE)


def test_steady_state_geotherm_scenario(standard_column):
    """Temperature increases monotonically with depth through crust and mantle"""
    T = standard_column.temperature

    assert T[0] == 15.0
    assert T[0] < T[40] < T[100]
    assert T[100] > T[40]
    assert np.all(np.diff(T) > 0)
    assert standard_column.reference_mantle_temperature == T[-1]


def test_geotherm_surface_heat_flux(standard_column):
    """Surface flux = basal flux + radiogenic production of layers 2..100"""
    expected = 0.030 + 38 * 3.0e-6 * 1e3 + 61 * 0.02e-6 * 1e3
    assert standard_column.surface_heat_flux() == pytest.approx(expected, rel=1e-9)


def test_steady_state_is_fixed_point(uniform_column):
    """Repeated explicit steps leave the two-pass geotherm unchanged"""
    col = uniform_column
    initial = col.temperature.copy()
    dt = col.max_stable_timestep()

    for _ in range(50):
        col.update_temperatures(dt)

    drift = np.max(np.abs(col.temperature - initial))
    assert drift < 1e-6, f"Steady-state drift {drift:.3e} °C"


def test_implicit_steady_state_is_fixed_point(material_db):
    """Backward Euler keeps the geotherm even far beyond the explicit limit"""
    config = ColumnConfig(enable_advection=False, solver_method="implicit")
    col = Column(config, material_db, material_layout=np.full(config.n_layers, MANTLE))
    initial = col.temperature.copy()
    dt = 10.0 * col.max_stable_timestep()

    for _ in range(20):
        col.update_temperatures(dt)

    assert np.max(np.abs(col.temperature - initial)) < 1e-6


def test_boundary_conditions_hold_every_step(standard_column):
    """Surface clamp and basal flux condition are exact after every call"""
    col = standard_column
    dt = 0.9 * col.max_stable_timestep()
    col.perturb_temperature(10, 60, 150.0)

    for _ in range(25):
        col.update_temperatures(dt)
        assert col.temperature[0] == col.surface_temperature
        assert col.temperature[-1] == _bottom_condition(col)


def test_implicit_boundary_conditions(material_db):
    col = Column(ColumnConfig(solver_method="implicit"), material_db)
    col.perturb_temperature(5, 30, -100.0)
    for _ in range(5):
        col.update_temperatures(5.0 * col.max_stable_timestep())
        assert col.temperature[0] == col.surface_temperature
        assert col.temperature[-1] == _bottom_condition(col)
        assert np.all(np.isfinite(col.temperature))


def test_diffusion_relaxes_perturbation(material_db):
    """A hot anomaly spreads out and its peak decays"""
    col = Column(ColumnConfig(enable_advection=False), material_db)
    baseline = col.temperature.copy()
    col.perturb_temperature(50, 51, 500.0)
    dt = 0.4 * col.max_stable_timestep()

    col.update_temperatures(dt)

    excess = col.temperature - baseline
    assert excess[50] < 500.0
    assert excess[49] > 0.0 and excess[51] > 0.0


def test_max_stable_timestep(standard_column):
    """Diffusion number at the returned dt is exactly 0.5 for the most diffusive layer"""
    dt = standard_column.max_stable_timestep()
    kappa_granite = 3.0 / (2700.0 * 1000.0)
    assert dt == pytest.approx(0.5 * 1e6 / kappa_granite)


@pytest.mark.parametrize("dt", [-1.0, float("nan"), float("inf")])
def test_invalid_timestep_rejected(standard_column, dt):
    with pytest.raises(ValueError):
        standard_column.update_temperatures(dt)


def test_time_bookkeeping(standard_column):
    standard_column.update_temperatures(1e9)
    standard_column.update_temperatures(2e9)
    assert standard_column.time == pytest.approx(3e9)
    assert standard_column.step_count == 2


@pytest.mark.parametrize("material", list(MaterialType))
def test_density_decreases_with_temperature(material_db, material):
    """Thermal expansion: hotter layers are strictly lighter"""
    config = ColumnConfig(enable_advection=False)
    col = Column(config, material_db, material_layout=np.full(config.n_layers, material))
    before = col.actual_density.copy()

    col.temperature[:] += 100.0
    col.update_densities()

    assert np.all(col.actual_density < before)


def test_density_laws(standard_column):
    col = standard_column
    rho0 = col.material_db.lookup("density", col.material_id)
    alpha = col.material_db.lookup("thermal_expansion", col.material_id)

    np.testing.assert_allclose(col.actual_density, rho0 * (1.0 - alpha * col.temperature))
    expected_ref = rho0 * (1.0 + constants.COMPRESSIBILITY * rho0 * constants.GRAVITY * col.depth)
    np.testing.assert_allclose(col.reference_density, expected_ref)
    # Linear in depth within one material
    steps = np.diff(col.reference_density[40:])
    np.testing.assert_allclose(steps, steps[0])


def test_buoyancy_and_velocity(standard_column):
    col = standard_column
    np.testing.assert_allclose(col.buoyancy_force,
                               (col.reference_density - col.actual_density) * constants.GRAVITY)

    mu0 = col.material_db.lookup("viscosity", col.material_id)
    expected_v = col.buoyancy_force / (mu0 * np.exp(-col.temperature / 1000.0))
    np.testing.assert_allclose(col.vertical_velocity, expected_v)


def test_pressure_profile(standard_column):
    """Hydrostatic integral of the layer above"""
    col = standard_column
    P = col.get_pressure_profile()

    assert P.shape == (101,)
    assert P[0] == 0.0
    assert np.all(np.diff(P) > 0)
    np.testing.assert_allclose(np.diff(P), col.actual_density[:-1] * constants.GRAVITY * 1e3)
    # Roughly 3 GPa at 100 km
    assert 2.5e9 < P[-1] < 3.5e9


def test_custom_depth_profile_and_layout(material_db):
    config = ColumnConfig(total_depth=10e3, layer_thickness=1e3)
    layout = [MaterialType.BASALT] * 5 + [MANTLE] * 6
    col = Column(config, material_db, depth_profile=np.arange(11) * 1e3, material_layout=layout)
    assert list(col.material_id) == layout


@pytest.mark.parametrize("kwargs", [
    dict(depth_profile=np.arange(10) * 1e3),
    dict(depth_profile=np.arange(11) * 2e3),
    dict(material_layout=[0] * 10),
    dict(material_layout=[0] * 10 + [7]),
])
def test_invalid_initialisation_rejected(material_db, kwargs):
    config = ColumnConfig(total_depth=10e3, layer_thickness=1e3)
    with pytest.raises(ValueError):
        Column(config, material_db, **kwargs)


def test_invalid_config_rejected(material_db):
    with pytest.raises(ValueError, match="solver"):
        Column(ColumnConfig(solver_method="crank-nicolson"), material_db)
    with pytest.raises(ValueError):
        Column(ColumnConfig(max_flux_fraction=0.0), material_db)
    with pytest.raises(ValueError):
        Column(ColumnConfig(total_depth=1e3, layer_thickness=1e3), material_db)


def test_perturb_temperature_range_checked(standard_column):
    with pytest.raises(IndexError):
        standard_column.perturb_temperature(-1, 5, 10.0)
    with pytest.raises(IndexError):
        standard_column.perturb_temperature(5, 200, 10.0)


def test_snapshot_is_frozen_copy(standard_column):
    snap = standard_column.snapshot()
    np.testing.assert_array_equal(snap.pressures, standard_column.get_pressure_profile())
    np.testing.assert_array_equal(snap.temperatures, standard_column.temperature)
    with pytest.raises(ValueError):
        snap.temperatures[0] = 0.0

    standard_column.perturb_temperature(10, 20, 50.0)
    assert snap.temperatures[15] != standard_column.temperature[15]


def test_get_info(standard_column):
    info = standard_column.get_info()
    assert info['surface_temperature'] == 15.0
    assert info['bottom_temperature'] == standard_column.temperature[-1]
    assert info['step_count'] == 0
