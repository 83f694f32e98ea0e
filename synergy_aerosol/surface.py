"""
Land surface reflectance models.

This module implements the two surface models the AARDVARC land solver fits
to LUT-inverted surface reflectance, including:

- Spectral model: linear mixture of reference soil and vegetation spectra
- Angular model: direct and diffuse components of dual-view reflectance
- NDVI and the NDVI-dependent blend between both models

References
----------
.. [1] North, P.R.J., et al. (1999). Retrieval of land surface bidirectional
       reflectance and aerosol opacity from ATSR-2 multiangle imagery.
       IEEE Trans. Geosci. Remote Sens., 37:526-537.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np

from synergy_aerosol.constants import (
    ANGULAR_GAMMA,
    MERIS_WAVELENGTHS,
    NDVI_NIR_WAVELENGTH,
    NDVI_RED_WAVELENGTH,
)


@dataclass(frozen=True)
class SurfaceSpectrum:
    """
    Reference soil and vegetation spectra at the land sensor wavelengths.

    Attributes
    ----------
    soil : ndarray
        Bare soil reflectance per channel.
    vegetation : ndarray
        Green vegetation reflectance per channel.
    wavelengths : ndarray
        Channel wavelengths in nm (default: MERIS land channels).
    """

    soil: np.ndarray
    vegetation: np.ndarray
    wavelengths: Optional[np.ndarray] = None

    def __post_init__(self):
        soil = np.array(self.soil, dtype=np.float64)
        veg = np.array(self.vegetation, dtype=np.float64)
        wvl = np.array(
            MERIS_WAVELENGTHS if self.wavelengths is None else self.wavelengths,
            dtype=np.float64,
        )
        if soil.shape != veg.shape or soil.ndim != 1:
            raise ValueError("Soil and vegetation spectra must be 1-D and of equal length")
        if wvl.shape != soil.shape:
            raise ValueError(
                f"{soil.size} spectrum samples but {wvl.size} wavelengths"
            )
        for arr in (soil, veg, wvl):
            arr.setflags(write=False)
        object.__setattr__(self, "soil", soil)
        object.__setattr__(self, "vegetation", veg)
        object.__setattr__(self, "wavelengths", wvl)

    def __len__(self) -> int:
        return self.soil.size


def normalized_weights(weights: Sequence[float]) -> np.ndarray:
    """Scale weights to sum to one."""
    weights = np.asarray(weights, dtype=np.float64)
    total = weights.sum()
    if total <= 0:
        raise ValueError("Weights must have a positive sum")
    return weights / total


def spectral_model(params: Sequence[float], spectrum: SurfaceSpectrum) -> np.ndarray:
    """
    Surface reflectance of a soil/vegetation mixture.

    Parameters
    ----------
    params : sequence of float
        Mixture coefficients ``(p0, p1)`` of vegetation and soil.
    spectrum : SurfaceSpectrum
        Reference spectra.

    Returns
    -------
    ndarray
        :math:`p_0 \\rho_{veg} + p_1 \\rho_{soil}` per channel.
    """
    return params[0] * spectrum.vegetation + params[1] * spectrum.soil


def angular_model(
    channel_scales: Sequence[float],
    view_scales: Sequence[float],
    diffuse_frac: np.ndarray,
    gamma: float = ANGULAR_GAMMA,
) -> np.ndarray:
    """
    Dual-view surface reflectance from the direct/diffuse angular model.

    Parameters
    ----------
    channel_scales : sequence of float
        Spectral scale :math:`w_\\lambda` per channel.
    view_scales : sequence of float
        Angular scale :math:`v_k` per view.
    diffuse_frac : ndarray
        Diffuse irradiance fraction D, shape (n_views, n_channels).
    gamma : float, optional
        Fraction of diffuse light scattered by the canopy (default 0.35).

    Returns
    -------
    ndarray
        Modelled reflectance, shape (n_views, n_channels).

    Notes
    -----
    With :math:`g = (1 - \\gamma) w`,

    .. math::

        \\rho_{k\\lambda} = (1 - D) v_k w_\\lambda
            + \\frac{[D + g (1 - D)] \\gamma w_\\lambda}{1 - g}
    """
    w = np.asarray(channel_scales, dtype=np.float64)[np.newaxis, :]
    v = np.asarray(view_scales, dtype=np.float64)[:, np.newaxis]
    d = np.asarray(diffuse_frac, dtype=np.float64)

    direct = (1.0 - d) * v * w
    g = (1.0 - gamma) * w
    with np.errstate(divide="ignore", invalid="ignore"):
        diffuse = (d + g * (1.0 - d)) * gamma * w / (1.0 - g)
    return direct + diffuse


def ndvi(
    reflectance: Sequence[float],
    wavelengths: Sequence[float] = MERIS_WAVELENGTHS,
) -> float:
    """
    Normalised difference vegetation index.

    The red and near-infrared bands are the channels nearest to 680 nm
    and 880 nm.

    Returns
    -------
    float
        NDVI, or 0 when both bands are zero.
    """
    wavelengths = np.asarray(wavelengths, dtype=np.float64)
    reflectance = np.asarray(reflectance, dtype=np.float64)
    red = reflectance[np.argmin(np.abs(wavelengths - NDVI_RED_WAVELENGTH))]
    nir = reflectance[np.argmin(np.abs(wavelengths - NDVI_NIR_WAVELENGTH))]
    if nir + red == 0:
        return 0.0
    return float((nir - red) / (nir + red))


def angular_weight(
    ndvi_value: Union[float, np.ndarray],
    use_meris: bool = True,
    use_aatsr: bool = True,
) -> Union[float, np.ndarray]:
    """
    Weight of the angular error in the combined land error.

    Parameters
    ----------
    ndvi_value : float or array_like
        Pixel NDVI.
    use_meris, use_aatsr : bool
        Sensors taking part in the retrieval.

    Returns
    -------
    float or ndarray
        1 for AATSR only, 0 for MERIS only. With both sensors: 1 for bare
        or invalid NDVI (< 0.1 or > 1), 0.5 for dense vegetation (> 0.7),
        linear in between.
    """
    if use_aatsr and not use_meris:
        return 1.0
    if use_meris and not use_aatsr:
        return 0.0

    lower, upper = 0.1, 0.7
    x = np.asarray(ndvi_value, dtype=np.float64)
    slope = (0.5 - 1.0) / (upper - lower)
    weight = np.where(
        (x < lower) | (x > 1.0),
        1.0,
        np.where(x > upper, 0.5, 1.0 + slope * (x - lower)),
    )
    return float(weight) if weight.ndim == 0 else weight
