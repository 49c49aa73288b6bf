"""Unit tests for event records and listener delivery"""

import logging

import numpy as np
import pytest

from geocolumn.column import Column
from geocolumn.config import ColumnConfig
from geocolumn.events import (
    EventDispatcher,
    SignificantMaterialFluxDetected,
    SteepDensityGradientDetected,
)
from geocolumn.grid import Grid
from geocolumn.materials import MANTLE, MaterialType
from geocolumn.scenarios import setup_scenario


def _event():
    return SteepDensityGradientDetected(location=(0, 0), depth_km=40.0,
                                        gradient_magnitude=500.0, boundary_type="crust-mantle")


def test_dispatch_reaches_every_listener():
    dispatcher = EventDispatcher()
    first, second = [], []
    dispatcher.add_listener(first.append)
    dispatcher.add_listener(second.append)
    dispatcher.add_listener(first.append)  # duplicate registration ignored

    dispatcher.dispatch([_event(), _event()])

    assert len(first) == 2
    assert len(second) == 2


def test_remove_listener():
    dispatcher = EventDispatcher()
    received = []
    dispatcher.add_listener(received.append)
    dispatcher.remove_listener(received.append)
    dispatcher.dispatch([_event()])
    assert received == []
    assert dispatcher.listeners == []


def test_failing_listener_does_not_stop_delivery(caplog):
    dispatcher = EventDispatcher()
    received = []

    def broken(event):
        raise RuntimeError("observer crashed")

    dispatcher.add_listener(broken)
    dispatcher.add_listener(received.append)

    with caplog.at_level(logging.ERROR):
        dispatcher.dispatch([_event()])

    assert len(received) == 1
    assert any("failed" in record.getMessage() for record in caplog.records)


def test_events_are_immutable():
    event = SignificantMaterialFluxDetected(source=(0, 0), target=(1, 0), depth_km=20.0, flux_rate=1.0)
    with pytest.raises(AttributeError):
        event.flux_rate = 2.0


def test_grid_delivers_returned_events(small_column_config):
    grid = Grid(4, 3, column_config=small_column_config, boundary_scan_interval=1,
                significant_flux_threshold=0.0, log_level="WARNING")
    setup_scenario("gradient", grid)
    received = []
    grid.add_listener(received.append)

    events = grid.update_thermal_system()

    assert received == events
    gradients = [e for e in events if isinstance(e, SteepDensityGradientDetected)]
    assert len(gradients) == 12
    assert all(e.depth_km == 8.0 and e.boundary_type == "crust-mantle" for e in gradients)
    assert all(e.gradient_magnitude > 100.0 for e in gradients)


def test_flux_event_points_downstream(small_column_config):
    grid = Grid(4, 3, column_config=small_column_config,
                significant_flux_threshold=0.0, log_level="WARNING")
    setup_scenario("gradient", grid)

    events = grid.update_thermal_system()

    flux_events = [e for e in events if isinstance(e, SignificantMaterialFluxDetected)]
    # Only east-west faces carry flow; every row has four of them
    assert len(flux_events) == 12
    assert all(e.flux_rate > 0.0 and e.depth_km == 20.0 for e in flux_events)

    pair = [e for e in flux_events if {e.source, e.target} == {(0, 0), (1, 0)}]
    assert len(pair) == 1
    assert pair[0].source == (0, 0)

    wrap = [e for e in flux_events if {e.source, e.target} == {(3, 0), (0, 0)}]
    assert wrap[0].source == (0, 0)


def test_flux_threshold_suppresses_events(small_column_config):
    grid = Grid(4, 3, column_config=small_column_config,
                significant_flux_threshold=1.0, log_level="WARNING")
    setup_scenario("gradient", grid)
    assert grid.update_thermal_system() == []


def test_grid_logger_level_and_rescan_message(small_column_config, caplog):
    grid = Grid(2, 2, column_config=small_column_config, boundary_scan_interval=1,
                log_level="DEBUG")
    assert grid.logger.level == logging.DEBUG

    with caplog.at_level(logging.DEBUG, logger=grid.logger.name):
        grid.update_thermal_system()

    assert any("Boundary rescan" in record.getMessage() for record in caplog.records)


def test_shared_face_reported_once_per_step():
    """Adjacent boundary cells at the same depth refresh their shared face twice"""
    config = ColumnConfig(total_depth=20e3, layer_thickness=1e3, moho_depth=0.0)
    grid = Grid(3, 3, column_config=config, boundary_scan_interval=1,
                significant_flux_threshold=0.0, log_level="WARNING")
    layout = np.full(config.n_layers, MANTLE)
    layout[:8] = MaterialType.GRANITE
    for x in (0, 1):
        grid.set_column(x, 1, Column(config, grid.material_db, material_layout=layout))
    grid.column(1, 1).perturb_temperature(1, config.n_layers - 1, 100.0)

    events = grid.update_thermal_system()

    assert sorted(r.location for r in grid.active_boundaries) == [(0, 1), (1, 1)]
    at_boundary = [e for e in events
                   if isinstance(e, SignificantMaterialFluxDetected) and e.depth_km == 8.0]
    shared = [e for e in at_boundary if {e.source, e.target} == {(0, 1), (1, 1)}]
    assert len(shared) == 1
    # four faces around each cell, one of them shared
    assert len(at_boundary) == 7
    assert len({(frozenset((e.source, e.target)), e.depth_km) for e in at_boundary}) == 7
