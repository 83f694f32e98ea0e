"""
Closed-form atmosphere terms used by the land retrieval.

This module implements the small analytic pieces the land solver needs in
addition to the LUTs, including:

- Rayleigh and aerosol optical depth along the solar path
- Fraction of diffuse irradiance at the surface
- Geometric air mass factor
- Band-averaged ozone and water vapour corrections of LUT reflectances

References
----------
.. [1] Hansen, J.E. and Travis, L.D. (1974). Light scattering in planetary
       atmospheres. Space Science Reviews, 16:527-610.
.. [2] North, P.R.J. (2002). Estimation of aerosol opacity and land surface
       bidirectional reflectance from ATSR-2 dual-angle imagery: Operational
       method and validation. J. Geophys. Res., 107, doi:10.1029/2000JD000207.
"""

import numpy as np
from typing import Union

from synergy_aerosol.constants import (
    DIFFUSE_FRACTION_AEROSOL,
    DIFFUSE_FRACTION_ANGSTROM,
    DIFFUSE_FRACTION_AOT_SCALE,
    DIFFUSE_FRACTION_RAYLEIGH,
    REFERENCE_WAVELENGTH,
    STANDARD_PRESSURE,
    WATER_VAPOUR_COLUMN,
)


def _to_micrometers(wavelength: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
    """Convert wavelengths given in nm (values above 100) to um."""
    wavelength = np.asarray(wavelength, dtype=np.float64)
    return np.where(wavelength > 100.0, wavelength / 1000.0, wavelength)


def rayleigh_optical_thickness(
    wavelength: Union[float, np.ndarray],
    pressure: float = STANDARD_PRESSURE,
) -> Union[float, np.ndarray]:
    """
    Calculate Rayleigh optical thickness at given wavelength(s).

    Parameters
    ----------
    wavelength : float or array_like
        Wavelength in nm or um (values above 100 are taken as nm).
    pressure : float, optional
        Surface pressure in hPa (default: 1013.25 hPa).

    Returns
    -------
    float or ndarray
        Vertical Rayleigh optical thickness (dimensionless).

    Notes
    -----
    Uses the Hansen and Travis (1974) fit, scaled with pressure:

    .. math::

        \\tau_R = \\frac{P}{P_0} \\, 0.008569 \\lambda^{-4}
                  (1 + 0.0113 \\lambda^{-2} + 0.00013 \\lambda^{-4})

    with :math:`\\lambda` in micrometers.

    Examples
    --------
    >>> tau = rayleigh_optical_thickness(550.0)
    >>> print(f"{tau:.4f}")
    0.0973
    """
    lam = _to_micrometers(wavelength)
    tau_r0 = 0.008569 * lam**(-4) * (1.0 + 0.0113 * lam**(-2) + 0.00013 * lam**(-4))
    return (pressure / STANDARD_PRESSURE) * tau_r0


def aerosol_optical_thickness(
    wavelength: Union[float, np.ndarray],
    aot550: float,
    angstrom: float = DIFFUSE_FRACTION_ANGSTROM,
) -> Union[float, np.ndarray]:
    """
    Scale AOT at 550 nm to another wavelength with a power law.

    Parameters
    ----------
    wavelength : float or array_like
        Wavelength in nm or um.
    aot550 : float
        Aerosol optical thickness at 550 nm.
    angstrom : float, optional
        Exponent of the power law (default -1.25).

    Returns
    -------
    float or ndarray
        Aerosol optical thickness at `wavelength`.
    """
    lam = _to_micrometers(wavelength)
    lam0 = REFERENCE_WAVELENGTH / 1000.0
    return aot550 * (lam / lam0) ** angstrom


def diffuse_fraction(
    wavelength: Union[float, np.ndarray],
    aot: float,
    solar_zenith: float,
    pressure: float = STANDARD_PRESSURE,
) -> Union[float, np.ndarray]:
    """
    Estimate the fraction of diffuse irradiance reaching the surface.

    Parameters
    ----------
    wavelength : float or array_like
        Wavelength in nm or um (values above 100 are taken as nm).
    aot : float
        Aerosol optical thickness at 550 nm. Negative values give 0.
    solar_zenith : float
        Solar zenith angle in degrees.
    pressure : float, optional
        Surface pressure in hPa.

    Returns
    -------
    float or ndarray
        Diffuse fraction D in [0, 1).

    Notes
    -----
    Along the slant path :math:`m = 1/\\cos\\theta_s`,

    .. math::

        D = \\frac{0.5 (1 - e^{-\\tau_R m}) + 0.75 (1 - e^{-\\tau_a m})}
                  {e^{-(\\tau_R + \\tau_a) m} + 0.5 (1 - e^{-\\tau_R m})
                   + 0.75 (1 - e^{-\\tau_a m})}

    where the aerosol depth is 0.55 times the power-law (exponent -1.25)
    scaling of the 550 nm AOT.
    """
    mu_s = np.cos(np.deg2rad(solar_zenith))
    tau_rayleigh = rayleigh_optical_thickness(wavelength, pressure) / mu_s
    tau_aerosol = (
        DIFFUSE_FRACTION_AOT_SCALE * aerosol_optical_thickness(wavelength, max(aot, 0.0)) / mu_s
    )

    direct = np.exp(-(tau_rayleigh + tau_aerosol))
    diffuse = (
        DIFFUSE_FRACTION_RAYLEIGH * (1.0 - np.exp(-tau_rayleigh))
        + DIFFUSE_FRACTION_AEROSOL * (1.0 - np.exp(-tau_aerosol))
    )
    frac = diffuse / (direct + diffuse)
    if aot < 0:
        frac = np.zeros_like(frac)

    return float(frac) if np.ndim(frac) == 0 else frac


def geometric_air_mass_factor(
    solar_zenith: Union[float, np.ndarray],
    view_zenith: Union[float, np.ndarray],
) -> Union[float, np.ndarray]:
    """
    Mean of the solar and view path secants.

    Parameters
    ----------
    solar_zenith : float or array_like
        Solar zenith angle in degrees.
    view_zenith : float or array_like
        Viewing zenith angle in degrees.

    Returns
    -------
    float or ndarray
        :math:`(1/\\cos\\theta_s + 1/\\cos\\theta_v) / 2`.
    """
    return 0.5 * (
        1.0 / np.cos(np.deg2rad(solar_zenith)) + 1.0 / np.cos(np.deg2rad(view_zenith))
    )


def ozone_correction(ozone: float, slope: float, air_mass: float) -> float:
    """
    Multiplicative ozone correction of a LUT reflectance.

    Parameters
    ----------
    ozone : float
        Ozone column in Dobson units.
    slope : float
        Band absorption slope per 1000 DU and unit air mass (negative).
    air_mass : float
        Geometric air mass factor.
    """
    return float(np.exp(ozone / 1000.0 * slope * air_mass))


def water_vapour_correction(slope: float, column: float = WATER_VAPOUR_COLUMN) -> float:
    """Multiplicative water vapour correction of a LUT reflectance."""
    return float(np.exp(column * slope))
