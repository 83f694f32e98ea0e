"""
Sun glint reflectance and the 3.7 um solar signal.

This module implements the sun glint physics of the Synergy ocean branch,
including:

- Analytic glint BRDF of a wind-roughened surface (Cox-Munk slopes, Fresnel)
- Glint reflectance with whitecap contribution
- Glint recalled from Gaussian-shape parameter LUTs
- Extraction of the solar part of the AATSR 3.7 um channel

All angles are in degrees. The glint functions take the azimuth difference
in the convention where 0 deg points into the specular direction; callers
holding a view-minus-sun difference folded into [0, 180] pass
``180 - difference``.

References
----------
.. [1] Cox, C. and Munk, W. (1954). Measurement of the roughness of the sea
       surface from photographs of the sun's glitter. J. Opt. Soc. Amer.,
       44:838-850.
.. [2] Wang, M. and Bailey, S.W. (2001). Correction of sun glint contamination
       of the SeaWiFS ocean and atmosphere products. Applied Optics,
       40:4790-4798.
"""

import numpy as np
from typing import Optional, Sequence, Tuple, Union

from synergy_aerosol.constants import (
    BT37_EXTRAPOLATION,
    BT37_RADIANCE_UNCERTAINTY,
    GLINT_NO_DATA,
    LUT_OUT_OF_DOMAIN,
    MIN_USEFUL_BT37,
    SLOPE_VARIANCE_OFFSET,
    SLOPE_VARIANCE_SLOPE,
    TRANSMISSION_37_COEFFICIENTS,
    TRANSMISSION_37_ERRORS,
)
from synergy_aerosol.lut import LookupTable
from synergy_aerosol.whitecaps import foam_blend

#: Gauss-parameter tables used for the recall, in parameter order
GAUSS_PARAMETER_INDICES: Tuple[int, ...] = (0, 1, 2, 4)

# Reflection half-angles below this are treated as normal incidence [rad]
_NORMAL_INCIDENCE = 1.0e-6


def slope_variance(wind_speed: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
    """
    Mean square surface slope of the isotropic Cox-Munk distribution.

    .. math::

        \\sigma^2 = 0.003 + 0.00512 \\, U

    Negative wind speeds are treated as calm, so the variance never drops
    below 0.003.
    """
    wind_speed = np.clip(np.asarray(wind_speed, dtype=np.float64), 0.0, None)
    return SLOPE_VARIANCE_OFFSET + SLOPE_VARIANCE_SLOPE * wind_speed


def fresnel_reflectance(
    incidence: Union[float, np.ndarray],
    refractive_index: float,
) -> Union[float, np.ndarray]:
    """
    Fresnel reflectance of unpolarized light at an air-water interface.

    Parameters
    ----------
    incidence : float or array_like
        Angle of incidence in radians.
    refractive_index : float
        Real refractive index of water.

    Returns
    -------
    float or ndarray
        Mean of the s- and p-polarized reflectances. At normal incidence
        :math:`((n - 1)/(n + 1))^2`.
    """
    incidence = np.asarray(incidence, dtype=np.float64)
    transmission = np.arcsin(np.sin(incidence) / refractive_index)
    with np.errstate(divide="ignore", invalid="ignore"):
        rs = (np.sin(incidence - transmission) / np.sin(incidence + transmission)) ** 2
        rp = (np.tan(incidence - transmission) / np.tan(incidence + transmission)) ** 2
    rho = 0.5 * (rs + rp)
    normal = ((refractive_index - 1.0) / (refractive_index + 1.0)) ** 2
    rho = np.where(incidence < _NORMAL_INCIDENCE, normal, rho)
    return float(rho) if rho.ndim == 0 else rho


def glint_reflection(
    solar_zenith: Union[float, np.ndarray],
    view_zenith: Union[float, np.ndarray],
    azimuth_difference: Union[float, np.ndarray],
    refractive_index: float,
    wind_speed: Union[float, np.ndarray],
) -> Union[float, np.ndarray]:
    """
    Analytic glint BRDF of a wind-roughened water surface.

    Parameters
    ----------
    solar_zenith : float or array_like
        Solar zenith angle in degrees.
    view_zenith : float or array_like
        Viewing zenith angle in degrees.
    azimuth_difference : float or array_like
        Azimuth difference in degrees, 0 in the specular direction.
    refractive_index : float
        Real refractive index of water.
    wind_speed : float or array_like
        Wind speed in m/s.

    Returns
    -------
    float or ndarray
        Glint reflectance; 0 for geometries with the sun or sensor at or
        below the horizon.

    Notes
    -----
    With the reflection angle :math:`\\omega` from
    :math:`\\cos 2\\omega = \\cos\\theta_v \\cos\\theta_s +
    \\sin\\theta_v \\sin\\theta_s \\cos(180 - \\Delta\\phi)` and the facet
    tilt :math:`\\beta` from
    :math:`\\cos\\beta = (\\cos\\theta_v + \\cos\\theta_s)/(2\\cos\\omega)`:

    .. math::

        \\rho_g = \\frac{\\pi \\rho_F(\\omega) P(\\beta)}
                        {4 \\cos\\theta_v \\cos\\theta_s \\cos^4\\beta},
        \\quad
        P = \\frac{\\exp(-\\arctan^2(\\beta)/\\sigma^2)}{\\pi \\sigma^2}

    Examples
    --------
    >>> rho = glint_reflection(20.0, 30.0, 10.0, 1.33, 7.0)
    >>> print(f"{rho:.4f}")
    0.1307
    """
    theta_s = np.deg2rad(np.asarray(solar_zenith, dtype=np.float64))
    theta_v = np.deg2rad(np.asarray(view_zenith, dtype=np.float64))
    phi = np.deg2rad(180.0 - np.asarray(azimuth_difference, dtype=np.float64))

    cos_s = np.cos(theta_s)
    cos_v = np.cos(theta_v)
    cos_2refl = np.clip(cos_v * cos_s + np.sin(theta_v) * np.sin(theta_s) * np.cos(phi), -1.0, 1.0)
    refl = np.arccos(cos_2refl) / 2.0
    cos_refl = np.cos(refl)

    with np.errstate(divide="ignore", invalid="ignore"):
        cos_norm = np.clip((cos_v + cos_s) / (2.0 * cos_refl), -1.0, 1.0)
        rho = fresnel_reflectance(refl, refractive_index)

        sigma_sq = slope_variance(wind_speed)
        tilt = np.arctan(np.arccos(cos_norm))
        prob = np.exp(-tilt * tilt / sigma_sq) / (np.pi * sigma_sq)

        brdf = np.pi * rho * prob / (4.0 * cos_v * cos_s * cos_norm ** 4)

    valid = (cos_s > 0) & (cos_v > 0) & (cos_refl > 0) & (cos_norm > 0) & np.isfinite(brdf)
    brdf = np.where(valid, brdf, 0.0)

    return float(brdf) if brdf.ndim == 0 else brdf


def glint_reflectance(
    solar_zenith: Union[float, np.ndarray],
    view_zenith: Union[float, np.ndarray],
    azimuth_difference: Union[float, np.ndarray],
    refractive_index: float,
    wind_speed: Union[float, np.ndarray],
    foam_reflectance: float,
) -> Union[float, np.ndarray]:
    """
    Normalized glint reflectance including whitecaps.

    Parameters
    ----------
    solar_zenith, view_zenith, azimuth_difference : float or array_like
        Geometry in degrees (see `glint_reflection`).
    refractive_index : float
        Real refractive index of water.
    wind_speed : float or array_like
        Wind speed in m/s.
    foam_reflectance : float
        Whitecap reflectance of the channel.

    Returns
    -------
    float or ndarray
        :math:`[(1 - W) \\rho_g + W \\rho_{foam}] \\cos\\theta_s / \\pi`.

    Examples
    --------
    >>> rho = glint_reflectance(20.0, 30.0, 170.0, 1.33, 7.0, 0.2)
    >>> print(f"{rho:.6f}")
    0.001017
    """
    rho_glint = glint_reflection(
        solar_zenith, view_zenith, azimuth_difference, refractive_index, wind_speed
    )
    rho_surface = foam_blend(rho_glint, wind_speed, foam_reflectance)
    return rho_surface * np.cos(np.deg2rad(solar_zenith)) / np.pi


# =============================================================================
# Gauss-parameter LUT glint
# =============================================================================


def gauss_parameters(
    tables: Sequence[LookupTable],
    solar_zenith: float,
    refractive_index: float,
    wind_speed: float,
) -> Optional[np.ndarray]:
    """
    Look up the four Gaussian-shape glint parameters.

    Parameters
    ----------
    tables : sequence of LookupTable
        Gauss-parameter tables on (-cos(solar zenith), refractive index,
        wind speed); the tables at `GAUSS_PARAMETER_INDICES` are used.
    solar_zenith : float
        Solar zenith angle in degrees.
    refractive_index : float
        Real refractive index of water.
    wind_speed : float
        Wind speed in m/s.

    Returns
    -------
    ndarray or None
        Parameters ``(amplitude, sigma_x, sigma_y, y_offset)``, or None if
        the query leaves any table.
    """
    if len(tables) <= max(GAUSS_PARAMETER_INDICES):
        raise ValueError(
            f"Need {max(GAUSS_PARAMETER_INDICES) + 1} Gauss-parameter tables, got {len(tables)}"
        )
    point = (-np.cos(np.deg2rad(solar_zenith)), refractive_index, wind_speed)
    pars = np.array([tables[k](point) for k in GAUSS_PARAMETER_INDICES])
    if np.any(pars == LUT_OUT_OF_DOMAIN):
        return None
    return pars


def glint_from_gauss_parameters(
    view_zenith: float,
    azimuth_difference: float,
    pars: Sequence[float],
    log_amplitude: bool = True,
) -> float:
    """
    Recall glint from a 2-D Gaussian in the view direction plane.

    Parameters
    ----------
    view_zenith : float
        Viewing zenith angle in degrees.
    azimuth_difference : float
        Azimuth difference in degrees.
    pars : sequence of float
        ``(amplitude, sigma_x, sigma_y, y_offset)``.
    log_amplitude : bool, optional
        If True (default), the amplitude parameter is the natural log of the
        peak value.

    Returns
    -------
    float
        Glint reflectance, or ``GLINT_NO_DATA`` if a width parameter is 0.

    Notes
    -----
    With :math:`x = \\sin\\theta_v \\sin\\Delta\\phi` and
    :math:`y = \\sin\\theta_v \\cos\\Delta\\phi`:

    .. math::

        \\rho = A \\exp\\left(-\\frac{1}{2}\\left[\\frac{x^2}{p_1^2}
                + \\frac{(y - p_3)^2}{p_2^2}\\right]\\right)
    """
    amplitude, sigma_x, sigma_y, y_offset = pars
    if sigma_x == 0 or sigma_y == 0:
        return GLINT_NO_DATA

    radial = np.cos(np.deg2rad(90.0 - view_zenith))
    x = radial * np.sin(np.deg2rad(azimuth_difference))
    y = radial * np.cos(np.deg2rad(azimuth_difference))
    u = x * x / (sigma_x * sigma_x) + (y - y_offset) ** 2 / (sigma_y * sigma_y)

    peak = np.exp(amplitude) if log_amplitude else amplitude
    return float(peak * np.exp(-u / 2.0))


def glint_from_lut(
    tables: Sequence[LookupTable],
    solar_zenith: float,
    view_zenith: float,
    azimuth_difference: float,
    refractive_index: float,
    wind_speed: float,
) -> float:
    """Glint from the Gauss-parameter LUTs, ``GLINT_NO_DATA`` outside the tables."""
    pars = gauss_parameters(tables, solar_zenith, refractive_index, wind_speed)
    if pars is None:
        return GLINT_NO_DATA
    return glint_from_gauss_parameters(view_zenith, azimuth_difference, pars)


# =============================================================================
# Solar part of the 3.7 um channel
# =============================================================================


def extrapolate_bt37(bt11: float, bt12: float) -> float:
    """
    Thermal part of the 3.7 um brightness temperature.

    .. math::

        T_{3.7} = 4.91348 + 0.978489 \\, T_{11} + 1.37919 (T_{11} - T_{12})
    """
    a, b, c = BT37_EXTRAPOLATION
    return a + b * bt11 + c * (bt11 - bt12)


def brightness_temperature_to_radiance(
    brightness_temperature: Union[float, np.ndarray],
    temperatures: Sequence[float],
    radiances: Sequence[float],
) -> Union[float, np.ndarray]:
    """
    Convert 3.7 um brightness temperature to radiance with a lookup table.

    Parameters
    ----------
    brightness_temperature : float or array_like
        Brightness temperature in K.
    temperatures : sequence of float
        Increasing table temperatures.
    radiances : sequence of float
        Table radiances.

    Returns
    -------
    float or ndarray
        Linearly interpolated radiance, 0 outside the table.
    """
    rad = np.interp(
        brightness_temperature,
        np.asarray(temperatures, dtype=np.float64),
        np.asarray(radiances, dtype=np.float64),
        left=0.0,
        right=0.0,
    )
    return float(rad) if np.ndim(rad) == 0 else rad


def transmission_37(meris14: float, meris15: float) -> Tuple[float, float]:
    """
    3.7 um atmospheric transmission from the MERIS 14/15 band ratio.

    Parameters
    ----------
    meris14 : float
        MERIS band 14 (885 nm) value.
    meris15 : float
        MERIS band 15 (900 nm, water vapour absorption) value.

    Returns
    -------
    tuple of float
        ``(transmission, transmission_at_1_sigma)``. Both are 0 when either
        band is 0 or the ratio shows no absorption.

    Notes
    -----
    .. math::

        T = \\exp(-(c_0 - c_1 \\ln(L_{15}/L_{14})))

    Examples
    --------
    >>> t, t_err = transmission_37(0.1, 0.05)
    >>> print(f"{t:.4f} {t_err:.4f}")
    0.5951 0.5592
    """
    if meris14 == 0.0 or meris15 == 0.0 or not meris15 < meris14:
        return 0.0, 0.0

    c0, c1 = TRANSMISSION_37_COEFFICIENTS
    e0, e1 = TRANSMISSION_37_ERRORS
    log_ratio = np.log(meris15 / meris14)
    transmission = np.exp(-(c0 - c1 * log_ratio))
    transmission_err = np.exp(-((c0 + e0) - (c1 + e1) * log_ratio))
    return float(transmission), float(transmission_err)


def solar_part_37(
    radiance37: float,
    thermal_radiance37: float,
    transmission: Tuple[float, float],
) -> Tuple[float, float]:
    """
    Solar part of the 3.7 um radiance and its uncertainty.

    Parameters
    ----------
    radiance37 : float
        Measured normalized 3.7 um radiance.
    thermal_radiance37 : float
        Normalized radiance of the extrapolated thermal part.
    transmission : tuple of float
        ``(transmission, transmission_at_1_sigma)`` from `transmission_37`.

    Returns
    -------
    tuple of float
        ``(solar_part, error)`` in 1/sr. ``(GLINT_NO_DATA, GLINT_NO_DATA)``
        when the transmission is unknown (0).
    """
    t0, t1 = transmission
    if t0 <= 0 or t1 <= 0:
        return GLINT_NO_DATA, GLINT_NO_DATA

    solar = radiance37 - thermal_radiance37
    norm = solar / t0
    temperature_err = (solar + BT37_RADIANCE_UNCERTAINTY) / t0
    transmission_err = norm - solar / t1
    return float(norm), float(np.sqrt(temperature_err ** 2 + transmission_err ** 2))


def to_aatsr_reflectance_units(solar_part: float, sun_elevation: float) -> float:
    """Convert a normalized radiance to AATSR reflectance units (percent)."""
    return solar_part * np.pi * 100.0 / np.cos(np.deg2rad(90.0 - sun_elevation))


def solar_irradiance_37(
    day_of_year: int,
    response_wavelengths: Sequence[float],
    response: Sequence[float],
    solar_wavelengths: Sequence[float],
    solar_irradiance: Sequence[float],
) -> float:
    """
    Band-averaged solar irradiance of the AATSR 3.7 um channel.

    Parameters
    ----------
    day_of_year : int
        Day of year (1-366).
    response_wavelengths : sequence of float
        Wavelengths of the spectral response function in um.
    response : sequence of float
        Spectral response function.
    solar_wavelengths : sequence of float
        Wavelengths of the extraterrestrial solar spectrum in nm.
    solar_irradiance : sequence of float
        Extraterrestrial solar spectrum.

    Returns
    -------
    float
        Response-weighted irradiance corrected for the Earth-Sun distance.
    """
    wvl = np.asarray(response_wavelengths, dtype=np.float64)
    resp = np.asarray(response, dtype=np.float64)
    solar = np.interp(wvl * 1000.0, solar_wavelengths, solar_irradiance)

    band = np.trapezoid(resp * solar, wvl) / np.trapezoid(resp, wvl)
    distance = 1.0 - 0.01673 * np.cos(np.deg2rad(0.9856 * (day_of_year - 2.0)))
    return float(band * 10.0 / distance ** 2)


def remove_azimuth_ambiguity(view_azimuth: float, sun_azimuth: float) -> float:
    """
    View minus sun azimuth folded into [0, 180] degrees.

    Negative azimuths are first mapped into [0, 360).

    Examples
    --------
    >>> remove_azimuth_ambiguity(-30.0, 100.0)
    130.0
    """
    if view_azimuth < 0.0:
        view_azimuth += 360.0
    if sun_azimuth < 0.0:
        sun_azimuth += 360.0

    diff = abs(view_azimuth - sun_azimuth) % 360.0
    if diff > 180.0:
        diff = 360.0 - diff
    return float(diff)


def is_useful_glint_pixel(
    land: bool,
    cloudy: bool,
    sunglint: bool,
    view_elevation: float,
    bt37: float,
    check_cloud: bool = False,
) -> bool:
    """
    Test whether a pixel qualifies for the 3.7 um glint retrieval.

    Parameters
    ----------
    land : bool
        AATSR nadir land flag.
    cloudy : bool
        AATSR nadir cloud flag.
    sunglint : bool
        AATSR nadir sun glint flag.
    view_elevation : float
        AATSR nadir view elevation in degrees.
    bt37 : float
        3.7 um brightness temperature in K.
    check_cloud : bool, optional
        If True, cloudy pixels are rejected unless they carry the sun glint
        flag (default False).

    Returns
    -------
    bool
        True for sea pixels seen above the horizon with BT(3.7) > 270 K.
    """
    if check_cloud and cloudy and not sunglint:
        return False
    return (not land) and view_elevation > 0.0 and bt37 > MIN_USEFUL_BT37
