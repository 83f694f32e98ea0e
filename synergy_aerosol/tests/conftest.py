"""
Pytest configuration and shared fixtures for synergy_aerosol tests.
"""

import numpy as np
import pytest

from synergy_aerosol.constants import (
    AATSR_WAVELENGTHS,
    LAND_LUT_AXES,
    MERIS_WAVELENGTHS,
    OCEAN_CHANNELS,
    OCEAN_LUT_AXES,
)
from synergy_aerosol.datamodel import Geometry, ViewGeometry
from synergy_aerosol.lut import AerosolModelLUT, LookupTable
from synergy_aerosol.surface import SurfaceSpectrum

# Node sets of the synthetic land LUTs
LAND_PRESSURE = [500.0, 1100.0]
LAND_VIEW_ZENITH = [0.0, 60.0]
LAND_RELATIVE_AZIMUTH = [0.0, 180.0]
LAND_SOLAR_ZENITH = [0.0, 70.0]
LAND_AOT = np.linspace(0.0, 2.0, 9)
LAND_ALBEDO = np.linspace(0.0, 1.0, 11)

# Node sets of the synthetic ocean LUTs
OCEAN_AZIMUTH = [0.0, 180.0]
OCEAN_VIEW_ZENITH = [0.0, 60.0]
OCEAN_SOLAR_ZENITH = [0.0, 70.0]
OCEAN_WINDSPEED = [0.0, 20.0]
OCEAN_AOT = np.linspace(0.0, 1.0, 6)
OCEAN_PRESSURE = [900.0, 1100.0]


def land_table(wavelength, path=0.0, attenuation=0.5):
    """
    6-D land table ``path(wvl) * aot + albedo * (1 - attenuation * aot)``,
    constant over the geometry axes.
    """
    aot = LAND_AOT[:, np.newaxis]
    albedo = LAND_ALBEDO[np.newaxis, :]
    plane = path * aot + albedo * (1.0 - attenuation * aot)
    values = np.broadcast_to(plane, (2, 2, 2, 2) + plane.shape)
    return LookupTable(
        [LAND_PRESSURE, LAND_VIEW_ZENITH, LAND_RELATIVE_AZIMUTH, LAND_SOLAR_ZENITH,
         LAND_AOT, LAND_ALBEDO],
        values,
        log_axes=[0],
        axis_names=LAND_LUT_AXES,
        wavelength=wavelength,
    )


def make_land_model(model_id, path=None, attenuation=0.5):
    """
    Land aerosol model with a path term per wavelength.

    `path` maps a wavelength in nm to the path reflectance per unit AOT;
    no path term by default.
    """
    if path is None:
        def path(wvl):
            return 0.0
    return AerosolModelLUT(
        model_id=model_id,
        tables={
            "meris": [land_table(w, path(w), attenuation) for w in MERIS_WAVELENGTHS],
            "aatsr": [land_table(w, path(w), attenuation) for w in AATSR_WAVELENGTHS],
        },
    )


def ocean_value(wavelength, angstrom, aot):
    """Normalized radiance of the synthetic ocean tables."""
    return 0.01 + 0.05 * aot * (wavelength / 550.0) ** (-angstrom)


def make_ocean_model(model_id, angstrom, pressure=None):
    """Ocean aerosol model, linear in AOT and constant over the other axes."""
    if pressure is None:
        pressure = OCEAN_PRESSURE
    tables = []
    for wavelength in sorted(set(c[1] for c in OCEAN_CHANNELS)):
        line = ocean_value(wavelength, angstrom, OCEAN_AOT)
        values = np.broadcast_to(line[:, np.newaxis], (2, 2, 2, 2, OCEAN_AOT.size, 2))
        tables.append(LookupTable(
            [OCEAN_AZIMUTH, OCEAN_VIEW_ZENITH, OCEAN_SOLAR_ZENITH, OCEAN_WINDSPEED,
             OCEAN_AOT, pressure],
            values,
            axis_names=OCEAN_LUT_AXES,
            wavelength=wavelength,
        ))
    return AerosolModelLUT(model_id=model_id, tables={"ocean": tables}, angstrom=angstrom)


@pytest.fixture
def meris_wavelengths():
    """MERIS land channel wavelengths."""
    return np.array(MERIS_WAVELENGTHS)


@pytest.fixture
def surface_spectrum():
    """Vegetation and bare soil reference spectra at the MERIS wavelengths."""
    wvl = np.array(MERIS_WAVELENGTHS)
    vegetation = np.where(wvl < 550, 0.04, np.where(wvl < 700, 0.03, 0.45))
    vegetation = np.where((wvl >= 550) & (wvl < 600), 0.08, vegetation)
    soil = 0.1 + 0.2 * (wvl - wvl[0]) / (wvl[-1] - wvl[0])
    return SurfaceSpectrum(soil=soil, vegetation=vegetation)


@pytest.fixture
def typical_geometry():
    """Mid-latitude daytime geometry of the three views."""
    return Geometry(
        meris=ViewGeometry(solar_zenith=35.0, solar_azimuth=140.0,
                           view_zenith=20.0, view_azimuth=100.0),
        aatsr_nadir=ViewGeometry(solar_zenith=35.0, solar_azimuth=140.0,
                                 view_zenith=10.0, view_azimuth=95.0),
        aatsr_fward=ViewGeometry(solar_zenith=35.0, solar_azimuth=140.0,
                                 view_zenith=55.0, view_azimuth=10.0),
        pressure=1013.25,
        ozone=0.0,
        zonal_wind=7.0,
        meridional_wind=0.0,
    )


@pytest.fixture
def land_model():
    """Land model with a blue-heavy path term."""
    return make_land_model(8, path=lambda wvl: 0.08 * (wvl / 550.0) ** -2, attenuation=0.25)


@pytest.fixture
def ocean_models():
    """Three ocean models spanning Angstrom 0 to 2."""
    return [make_ocean_model(k + 1, angstrom) for k, angstrom in enumerate((0.0, 1.0, 2.0))]


# Tolerance values for numerical comparisons
REFLECTANCE_RTOL = 0.01  # 1% relative tolerance for reflectances
AOT_ATOL = 0.05          # absolute tolerance for retrieved AOT


@pytest.fixture
def land_model_factory():
    """Builder of synthetic land aerosol models, see `make_land_model`."""
    return make_land_model


@pytest.fixture
def ocean_model_factory():
    """Builder of synthetic ocean aerosol models, see `make_ocean_model`."""
    return make_ocean_model


@pytest.fixture
def ocean_table_value():
    """Sample function of the synthetic ocean tables, see `ocean_value`."""
    return ocean_value
