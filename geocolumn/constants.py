"""Physical constants and model defaults (SI units, temperatures in °C)."""

GRAVITY = 9.81  # m/s²

# Column geometry
TOTAL_DEPTH = 100e3  # m
LAYER_THICKNESS = 1e3  # m
MOHO_DEPTH = 40e3  # m, crust above / mantle below

# Thermal boundary conditions
SURFACE_TEMPERATURE = 15.0  # °C
BASAL_HEAT_FLUX = 0.030  # W/m²

# Density laws
REFERENCE_TEMPERATURE = 0.0  # °C, T_ref of the thermal expansion law
COMPRESSIBILITY = 1e-11  # 1/Pa, hydrostatic correction of the reference density

# Effective viscosity μ = μ₀·exp(−T/scale)
VISCOSITY_TEMPERATURE_SCALE = 1000.0  # °C

# Advection limiters
MAX_FLUX_FRACTION = 0.1
MATERIAL_OVERWRITE_FRACTION = 0.5
MAX_REPLENISH_FRACTION = 0.3

# Explicit diffusion stability limit
MAX_DIFFUSION_NUMBER = 0.5

# Lateral coupling
PERMEABILITY = 1e-15  # m²
COLUMN_SPACING = 100e3  # m
BOUNDARY_SCAN_INTERVAL = 10  # steps
DENSITY_GRADIENT_THRESHOLD = 100.0  # kg/m³ between adjacent layers
SIGNIFICANT_FLUX_THRESHOLD = 1e-30  # kg/(m²·s)
