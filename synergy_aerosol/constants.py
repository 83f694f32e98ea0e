"""
Physical constants, sensor parameters and retrieval defaults.

This module contains constants used throughout the Synergy aerosol
retrieval, including:

- Sentinel values written for "no result" conditions
- MERIS and AATSR channel wavelengths
- Band-averaged gas absorption slopes used to correct the land LUTs
- Sun glint and whitecap parameters
- Default tolerances and weights for the land and ocean solvers

References
----------
.. [1] North, P.R.J., et al. (1999). Retrieval of land surface bidirectional
       reflectance and aerosol opacity from ATSR-2 multiangle imagery.
       IEEE Trans. Geosci. Remote Sens., 37:526-537.
.. [2] Koepke, P. (1984). Effective reflectance of oceanic whitecaps.
       Applied Optics, 23:1816-1824.
"""

import numpy as np
from typing import Dict, Tuple

# =============================================================================
# Sentinels
# =============================================================================

#: Returned by LUT queries and inverse lookups outside the table domain
LUT_OUT_OF_DOMAIN: float = -1000.0

#: No-data value for AOT, AOT error, Angstrom and Angstrom error outputs
NO_DATA: float = -1.0

#: No-data value for windspeed and glint outputs
GLINT_NO_DATA: float = -1.0

# =============================================================================
# Physical Constants
# =============================================================================

#: Standard sea level atmospheric pressure [hPa]
STANDARD_PRESSURE: float = 1013.25

#: Reference wavelength of the retrieved AOT [nm]
REFERENCE_WAVELENGTH: float = 550.0

#: Angstrom exponent assumed by the diffuse fraction estimate
DIFFUSE_FRACTION_ANGSTROM: float = -1.25

#: Share of Rayleigh extinction counted as diffuse irradiance
DIFFUSE_FRACTION_RAYLEIGH: float = 0.5

#: Share of aerosol extinction counted as diffuse irradiance
DIFFUSE_FRACTION_AEROSOL: float = 0.75

#: Effective share of the 550 nm AOT entering the diffuse fraction path
DIFFUSE_FRACTION_AOT_SCALE: float = 0.55

#: Constant water vapour column assumed by the land LUT correction [g/cm^2]
WATER_VAPOUR_COLUMN: float = 2.0

# =============================================================================
# Sensor Band Definitions
# =============================================================================

#: AATSR channel centre wavelengths used over land [nm]
AATSR_WAVELENGTHS: Tuple[float, ...] = (550.0, 665.0, 865.0, 1610.0)

#: MERIS channel centre wavelengths used over land [nm]
MERIS_WAVELENGTHS: Tuple[float, ...] = (
    412.0, 442.0, 490.0, 510.0, 560.0, 620.0, 665.0,
    681.0, 708.0, 753.0, 778.0, 865.0, 885.0,
)

#: Wavelengths used to pick the NDVI red and NIR bands [nm]
NDVI_RED_WAVELENGTH: float = 680.0
NDVI_NIR_WAVELENGTH: float = 880.0

#: Ozone absorption slopes per channel, per 1000 DU and unit air mass
O3_CORRECTION_SLOPES: Dict[str, Tuple[float, ...]] = {
    "aatsr": (-0.183498, -0.109118, 0.0, 0.0),
    "meris": (
        0.0, -0.00494535, -0.0378441, -0.0774214, -0.199693, -0.211885,
        -0.0986805, -0.0675948, -0.0383019, -0.0177211, 0.0, 0.0, 0.0,
    ),
}

#: Water vapour absorption slopes per channel, per g/cm^2
WV_CORRECTION_SLOPES: Dict[str, Tuple[float, ...]] = {
    "aatsr": (0.0, -0.00493235, -0.000441272, -0.000941457),
    "meris": (
        0.0, 0.0, 0.0, 0.0, 0.0, 0.0, -0.000416283, -0.000326704,
        -0.0110851, 0.0, -0.000993413, -0.000441272, -0.00286989,
    ),
}

#: Mean solar flux of MERIS bands 13 and 14 [mW m^-2 nm^-1]
MERIS_SOLAR_FLUX: Dict[int, float] = {13: 902.0, 14: 870.0}

# =============================================================================
# Land Retrieval (AARDVARC)
# =============================================================================

#: Axis order of the land LUTs
LAND_LUT_AXES: Tuple[str, ...] = (
    "pressure", "view_zenith", "relative_azimuth", "solar_zenith", "aot", "albedo",
)

#: Aerosol models tried over land by default
LAND_AEROSOL_MODELS: Tuple[int, ...] = (8, 20, 28)

#: Range of valid land aerosol model identifiers
LAND_MODEL_ID_RANGE: Tuple[int, int] = (1, 40)

#: Spectral-branch channel weights (MERIS), normalised before use
SPECTRAL_WEIGHTS: Tuple[float, ...] = (
    1.0, 1.0, 1.0, 1.0, 0.2, 1.0, 1.0, 1.0, 0.05, 0.05, 0.05, 0.05, 0.05,
)

#: Angular-branch channel weights (AATSR), normalised before use
ANGULAR_WEIGHTS: Tuple[float, ...] = (1.5, 1.0, 0.5, 1.55)

#: Fraction of diffuse light scattered by the surface (angular model)
ANGULAR_GAMMA: float = 0.35

#: Starting point of the angular descent (4 channel scales, 2 view scales)
ANGULAR_START: Tuple[float, ...] = (0.1, 0.1, 0.1, 0.1, 0.5, 0.3)

#: Admissible range of the angular view scale factors
VIEW_SCALE_BOUNDS: Tuple[float, float] = (0.2, 1.5)

#: Weight of quadratic soft penalties
PENALTY_WEIGHT: float = 1000.0

#: Surface reflectance below which the atmosphere is overcorrected
OVERCORRECTION_LIMIT: float = 5.0e-6

#: Offset added to the overcorrection penalty
OVERCORRECTION_OFFSET: float = 1.0e-8

#: Powell fractional tolerances of the spectral and angular branches
SPECTRAL_FTOL: float = 5.0e-3
ANGULAR_FTOL: float = 5.0e-4

#: Iteration cap of the inner Powell descents
POWELL_MAX_ITER: int = 200

#: AOT search interval and Brent tolerance
AOT_BOUNDS: Tuple[float, float] = (0.0, 2.0)
BRENT_XTOL: float = 5.0e-4
BRENT_MAX_ITER: int = 100

#: Lowest AOT passed to the land error model
AOT_FLOOR: float = 1.0e-3

#: Default blend between angular and spectral error
DEFAULT_ANGULAR_WEIGHT: float = 0.5

#: Quality thresholds of a land retrieval
AOT_FAILED_BELOW: float = 1.0e-3
AOT_LOW_BELOW: float = 1.0e-5
ERROR_RATIO_LIMIT: float = 5.0
ERROR_RATIO_MIN_AOT: float = 0.1

#: Curvature substituted when the error parabola opens downwards
FALLBACK_CURVATURE: float = 1.0e-4

# =============================================================================
# Sun Glint and Whitecaps
# =============================================================================

#: Refractive index and foam reflectance at 3.7 um (windspeed table)
REFRACTIVE_INDEX_37: float = 1.37
RHO_FOAM_37: float = 0.01

#: Refractive index and foam reflectance at 0.88 um (MERIS glint)
REFRACTIVE_INDEX_088: float = 1.33
RHO_FOAM_088: float = 0.2

#: Cox-Munk slope variance, sigma^2 = a + b * U
SLOPE_VARIANCE_OFFSET: float = 0.003
SLOPE_VARIANCE_SLOPE: float = 0.00512

#: Koepke whitecap coverage, W = a * U^b
KOEPKE_COEFFICIENT: float = 2.95e-6
KOEPKE_EXPONENT: float = 3.25

#: Windspeed table used by the glint inversion [m/s]
WINDSPEED_TABLE_SIZE: int = 151
WINDSPEED_TABLE_RANGE: Tuple[float, float] = (1.0, 14.0)

#: Thermal extrapolation of the 11/12 um brightness temperatures to 3.7 um
BT37_EXTRAPOLATION: Tuple[float, float, float] = (4.91348, 0.978489, 1.37919)

#: 3.7 um transmission from the MERIS 14/15 ratio and its 1-sigma offsets
TRANSMISSION_37_COEFFICIENTS: Tuple[float, float] = (0.0655246, 0.654369)
TRANSMISSION_37_ERRORS: Tuple[float, float] = (
    float(np.sqrt(0.00103253)), float(np.sqrt(0.00186558)),
)

#: Radiance offset standing for the 3.7 um brightness temperature uncertainty
BT37_RADIANCE_UNCERTAINTY: float = 0.25

#: Lowest usable 3.7 um brightness temperature [K]
MIN_USEFUL_BT37: float = 270.0

# =============================================================================
# Ocean Retrieval
# =============================================================================

#: Axis order of the ocean LUTs
OCEAN_LUT_AXES: Tuple[str, ...] = (
    "relative_azimuth", "view_zenith", "solar_zenith", "windspeed", "aot", "pressure",
)

#: Ocean channels: (name, LUT wavelength, weight, refractive index, foam reflectance)
OCEAN_CHANNELS: Tuple[Tuple[str, float, float, float, float], ...] = (
    ("meris_865", 865.0, 1.0, 1.3295, 0.2),
    ("meris_885", 885.0, 1.0, 1.329, 0.2),
    ("aatsr_nadir_1600", 1610.0, 3.0, 1.31, 0.1),
    ("aatsr_nadir_870", 885.0, 1.0, 1.3295, 0.2),
    ("aatsr_fward_1600", 1610.0, 3.0, 1.31, 0.1),
    ("aatsr_fward_870", 885.0, 3.0, 1.3295, 0.2),
)

#: Ocean channels used in the cost function by default
OCEAN_USED_CHANNELS: Tuple[str, ...] = ("meris_865", "aatsr_nadir_870", "aatsr_fward_870")

#: Glint channels written out by default
GLINT_EMITTED_CHANNELS: Tuple[str, ...] = ("meris_865", "aatsr_nadir_870")

#: Size of the refined AOT and Angstrom grids
OCEAN_N_TAU: int = 201
OCEAN_N_ANGSTROM: int = 91

#: Bracketing models closer than this share all weight on the lower one
ANGSTROM_PAIR_MIN_DISTANCE: float = 0.01


def get_channel_wavelengths(sensor: str) -> Tuple[float, ...]:
    """
    Get the land channel wavelengths of a sensor.

    Parameters
    ----------
    sensor : str
        Sensor key, 'meris' or 'aatsr' (case insensitive).

    Returns
    -------
    tuple of float
        Channel centre wavelengths in nm.

    Raises
    ------
    ValueError
        If sensor is not recognized.
    """
    sensor_key = sensor.lower()
    if sensor_key == "meris":
        return MERIS_WAVELENGTHS
    elif sensor_key == "aatsr":
        return AATSR_WAVELENGTHS
    else:
        raise ValueError(f"Unknown sensor: {sensor}. Supported: meris, aatsr")


def get_ocean_channel(name: str) -> Tuple[str, float, float, float, float]:
    """
    Look up an ocean channel definition by name.

    Raises
    ------
    ValueError
        If the channel is not defined.
    """
    for channel in OCEAN_CHANNELS:
        if channel[0] == name:
            return channel
    known = ", ".join(c[0] for c in OCEAN_CHANNELS)
    raise ValueError(f"Unknown ocean channel: {name}. Supported: {known}")
