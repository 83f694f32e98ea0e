"""
Whitecap coverage and foam reflectance blending.

This module implements the foam term of the sea surface reflectance used by
the glint model, including:

- Fractional whitecap coverage as a function of wind speed (Koepke)
- Blending of specular glint and foam reflectance

References
----------
.. [1] Koepke, P. (1984). Effective reflectance of oceanic whitecaps.
       Applied Optics, 23:1816-1824.
.. [2] Gordon, H.R. and Wang, M. (1994). Influence of oceanic whitecaps on
       atmospheric correction of ocean-color sensors. Applied Optics,
       33:7754-7763.
"""

import numpy as np
from typing import Union

from synergy_aerosol.constants import KOEPKE_COEFFICIENT, KOEPKE_EXPONENT


def whitecap_fraction(wind_speed: Union[float, np.ndarray]) -> Union[float, np.ndarray]:
    """
    Calculate fractional whitecap coverage.

    Parameters
    ----------
    wind_speed : float or array_like
        Wind speed at 10m in m/s. Negative values are treated as calm.

    Returns
    -------
    float or ndarray
        Fractional whitecap coverage (0 to 1).

    Notes
    -----
    .. math::

        W = 2.95 \\times 10^{-6} \\, U^{3.25}

    Examples
    --------
    >>> frac = whitecap_fraction(7.0)
    >>> print(f"Whitecap fraction at 7 m/s: {frac:.5f}")
    Whitecap fraction at 7 m/s: 0.00165
    """
    wind_speed = np.clip(np.asarray(wind_speed, dtype=np.float64), 0.0, None)
    frac = np.minimum(KOEPKE_COEFFICIENT * wind_speed ** KOEPKE_EXPONENT, 1.0)

    return float(frac) if frac.ndim == 0 else frac


def foam_blend(
    glint_reflectance: Union[float, np.ndarray],
    wind_speed: Union[float, np.ndarray],
    foam_reflectance: float,
) -> Union[float, np.ndarray]:
    """
    Blend specular reflectance with foam reflectance.

    Parameters
    ----------
    glint_reflectance : float or array_like
        Specular (Fresnel) surface reflectance.
    wind_speed : float or array_like
        Wind speed in m/s.
    foam_reflectance : float
        Reflectance of whitecaps in the channel.

    Returns
    -------
    float or ndarray
        :math:`(1 - W) \\rho_g + W \\rho_{foam}`.
    """
    frac = whitecap_fraction(wind_speed)
    return (1.0 - frac) * glint_reflectance + frac * foam_reflectance
