"""
synergy_aerosol: Aerosol Retrieval from MERIS/AATSR Synergy Data
================================================================

A Python implementation of the aerosol optical thickness (AOT) retrieval of
the ENVISAT MERIS/AATSR Synergy processor.

Over land the AARDVARC algorithm fits a spectral soil/vegetation model and
a dual-view angular model to LUT-inverted surface reflectance and searches
the AOT minimizing the combined residual. Over ocean the AOT and Angstrom
coefficient are found by a grid search over aerosol model LUTs, with the
sun glint estimated from a windspeed retrieved in the AATSR 3.7 um channel.

Main Classes
------------
RetrievalSession
    Owns LUTs, spectra and settings and runs the per-pixel retrievals.
LookupTable
    Multilinear N-dimensional lookup table.

Modules
-------
lut
    Lookup tables and aerosol model table sets.
optimize
    Powell and Brent minimizers.
atmosphere
    Rayleigh and aerosol optical depth, diffuse fraction, gas corrections.
surface
    Spectral and angular surface reflectance models.
land
    AARDVARC land AOT retrieval.
whitecaps
    Koepke whitecap coverage.
glint
    Sun glint reflectance and the 3.7 um solar signal.
windspeed
    Windspeed and glint retrieval.
ocean
    Ocean AOT and Angstrom retrieval.

Example
-------
>>> from synergy_aerosol.glint import glint_reflectance
>>> rho = glint_reflectance(20.0, 30.0, 10.0, 1.33, 7.0, 0.2)
>>> print(f"Glint reflectance near the specular direction: {rho:.4f}")
Glint reflectance near the specular direction: 0.0391
"""

__version__ = "0.1.0"

from synergy_aerosol.constants import GLINT_NO_DATA, LUT_OUT_OF_DOMAIN, NO_DATA
from synergy_aerosol.datamodel import (
    Geometry,
    ObservationVector,
    RetrievalResult,
    RetrievalState,
    ViewGeometry,
)
from synergy_aerosol.lut import AerosolModelLUT, LookupTable
from synergy_aerosol.retrieval import RetrievalSession

__all__ = [
    "RetrievalSession",
    "LookupTable",
    "AerosolModelLUT",
    "Geometry",
    "ViewGeometry",
    "ObservationVector",
    "RetrievalResult",
    "RetrievalState",
    "LUT_OUT_OF_DOMAIN",
    "NO_DATA",
    "GLINT_NO_DATA",
    "__version__",
]
