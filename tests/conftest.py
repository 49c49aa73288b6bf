"""Pytest configuration and shared fixtures for column and grid tests."""

import numpy as np
import pytest

from geocolumn.column import Column
from geocolumn.config import ColumnConfig
from geocolumn.grid import Grid
from geocolumn.materials import MaterialDatabase, MaterialType


@pytest.fixture
def material_db():
    return MaterialDatabase()


@pytest.fixture
def standard_column(material_db):
    """101 layers, granite above 40 km over peridotite, 15 °C surface, 30 mW/m² basal flux."""
    return Column(ColumnConfig(), material_db)


@pytest.fixture(params=[MaterialType.GRANITE, MaterialType.PERIDOTITE])
def uniform_column(request, material_db):
    """Single-material column without advection."""
    config = ColumnConfig(enable_advection=False)
    layout = np.full(config.n_layers, request.param, dtype=np.int64)
    return Column(config, material_db, material_layout=layout)


@pytest.fixture
def small_column_config():
    """20 km deep column with 1 km layers, used to keep grid tests fast."""
    return ColumnConfig(total_depth=20e3, layer_thickness=1e3, moho_depth=8e3)


@pytest.fixture
def small_grid(small_column_config):
    return Grid(4, 3, column_config=small_column_config, log_level="WARNING")
