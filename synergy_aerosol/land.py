"""
AOT retrieval over land (AARDVARC).

For a candidate AOT the measured TOA reflectances are converted to surface
reflectance through the land LUTs. Two surface models are fitted to the
result: a soil/vegetation mixture over the MERIS spectrum and a
direct/diffuse angular model over the two AATSR views. The AOT minimizing
the weighted sum of both fit residuals is found with Brent's method; the
inner fits use Powell's method.

The search is run for every configured aerosol model and the model with
the smallest residual is reported.

References
----------
.. [1] North, P.R.J. (2002). Estimation of aerosol opacity and land surface
       bidirectional reflectance from ATSR-2 dual-angle imagery: Operational
       method and validation. J. Geophys. Res., 107,
       doi:10.1029/2000JD000207.
.. [2] Grey, W.M.F., North, P.R.J., Los, S.O. and Mitchell, R.M. (2006).
       Aerosol optical depth and land surface reflectance from multiangle
       AATSR measurements. IEEE Trans. Geosci. Remote Sens., 44:2184-2197.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence, Tuple

import numpy as np

from synergy_aerosol.atmosphere import (
    diffuse_fraction,
    geometric_air_mass_factor,
    ozone_correction,
    water_vapour_correction,
)
from synergy_aerosol.constants import (
    ANGULAR_FTOL,
    ANGULAR_GAMMA,
    ANGULAR_START,
    ANGULAR_WEIGHTS,
    AOT_BOUNDS,
    AOT_FAILED_BELOW,
    AOT_FLOOR,
    AOT_LOW_BELOW,
    BRENT_MAX_ITER,
    BRENT_XTOL,
    DEFAULT_ANGULAR_WEIGHT,
    ERROR_RATIO_LIMIT,
    ERROR_RATIO_MIN_AOT,
    FALLBACK_CURVATURE,
    LAND_AEROSOL_MODELS,
    LAND_MODEL_ID_RANGE,
    LUT_OUT_OF_DOMAIN,
    O3_CORRECTION_SLOPES,
    OVERCORRECTION_LIMIT,
    OVERCORRECTION_OFFSET,
    PENALTY_WEIGHT,
    POWELL_MAX_ITER,
    SPECTRAL_FTOL,
    SPECTRAL_WEIGHTS,
    VIEW_SCALE_BOUNDS,
    WV_CORRECTION_SLOPES,
    get_channel_wavelengths,
)
from synergy_aerosol.datamodel import (
    Geometry,
    ObservationVector,
    RetrievalFlags,
    RetrievalResult,
    RetrievalState,
    ViewGeometry,
)
from synergy_aerosol.lut import AerosolModelLUT, LookupTable
from synergy_aerosol.optimize import brent, powell
from synergy_aerosol.surface import (
    SurfaceSpectrum,
    angular_model,
    angular_weight,
    ndvi,
    normalized_weights,
    spectral_model,
)

logger = logging.getLogger(__name__)

#: Objective value substituted when a surface model evaluates to inf or NaN
NON_FINITE_COST: float = 1.0e10

# Axis positions of AOT and albedo in the land LUTs
_AOT_AXIS = 4
_ALBEDO_AXIS = 5


@dataclass
class LandRetrievalConfig:
    """
    Settings of the land retrieval.

    Attributes
    ----------
    aot_bounds : tuple of float
        AOT search interval of the outer Brent search.
    brent_xtol : float
        Absolute AOT tolerance of the outer search.
    brent_maxiter : int
        Iteration cap of the outer search.
    spectral_ftol, angular_ftol : float
        Fractional tolerances of the inner Powell fits.
    powell_maxiter : int
        Iteration cap of the inner fits.
    spectral_weights : sequence of float
        MERIS channel weights of the spectral fit.
    angular_weights : sequence of float
        AATSR channel weights of the angular fit.
    angular_start : sequence of float
        Starting channel and view scales of the angular fit.
    view_scale_bounds : tuple of float
        View scales outside this range are penalized.
    gamma : float
        Diffuse scattering fraction of the angular model.
    angular_weight : float
        Weight of the angular residual when both sensors are used.
    adaptive_angular_weight : bool
        Derive the angular weight from the pixel NDVI instead.
    use_meris, use_aatsr : bool
        Sensors taking part in the retrieval.
    aot_floor : float
        Smallest AOT handed to the surface inversion.
    overcorrection_limit : float
        Surface reflectance below which the fit is skipped and penalized.
    penalty_weight : float
        Weight of all quadratic penalties.
    aerosol_models : sequence of int
        Aerosol models tried for every pixel.
    """

    aot_bounds: Tuple[float, float] = AOT_BOUNDS
    brent_xtol: float = BRENT_XTOL
    brent_maxiter: int = BRENT_MAX_ITER
    spectral_ftol: float = SPECTRAL_FTOL
    angular_ftol: float = ANGULAR_FTOL
    powell_maxiter: int = POWELL_MAX_ITER
    spectral_weights: Sequence[float] = SPECTRAL_WEIGHTS
    angular_weights: Sequence[float] = ANGULAR_WEIGHTS
    angular_start: Sequence[float] = ANGULAR_START
    view_scale_bounds: Tuple[float, float] = VIEW_SCALE_BOUNDS
    gamma: float = ANGULAR_GAMMA
    angular_weight: float = DEFAULT_ANGULAR_WEIGHT
    adaptive_angular_weight: bool = False
    use_meris: bool = True
    use_aatsr: bool = True
    aot_floor: float = AOT_FLOOR
    overcorrection_limit: float = OVERCORRECTION_LIMIT
    penalty_weight: float = PENALTY_WEIGHT
    aerosol_models: Sequence[int] = LAND_AEROSOL_MODELS

    def __post_init__(self):
        lower, upper = self.aot_bounds
        if not 0 <= lower < upper:
            raise ValueError(f"Invalid AOT search interval {self.aot_bounds}")
        if not (self.use_meris or self.use_aatsr):
            raise ValueError("At least one of MERIS and AATSR must be used")
        if not 0.0 <= self.angular_weight <= 1.0:
            raise ValueError(f"Angular weight must be in [0, 1], got {self.angular_weight}")
        low_view, high_view = self.view_scale_bounds
        if not low_view < high_view:
            raise ValueError(f"Invalid view scale bounds {self.view_scale_bounds}")
        if len(self.angular_start) != len(self.angular_weights) + 2:
            raise ValueError(
                "angular_start needs one scale per AATSR channel plus two view scales"
            )
        self.spectral_weights = tuple(normalized_weights(self.spectral_weights))
        self.angular_weights = tuple(normalized_weights(self.angular_weights))

        if len(self.aerosol_models) == 0:
            raise ValueError("No aerosol models configured")
        first, last = LAND_MODEL_ID_RANGE
        for model_id in self.aerosol_models:
            if not first <= model_id <= last:
                raise ValueError(
                    f"Invalid aerosol model {model_id}, valid ids are {first} to {last}"
                )

    def blend_weight(self, ndvi_value: float) -> float:
        """Weight of the angular residual for a pixel."""
        if self.use_aatsr and not self.use_meris:
            return 1.0
        if self.use_meris and not self.use_aatsr:
            return 0.0
        if self.adaptive_angular_weight:
            return float(angular_weight(ndvi_value))
        return self.angular_weight


# =============================================================================
# LUT subsections and inverse lookup
# =============================================================================


@dataclass(frozen=True)
class ReflectanceSubsection:
    """
    TOA reflectance of one view on the (albedo, AOT) nodes of the land LUT.

    Attributes
    ----------
    reflectance : ndarray
        Shape (n_channels, n_albedo, n_aot).
    albedo : ndarray
        Albedo nodes.
    aot : ndarray
        AOT nodes.
    wavelengths : tuple of float
        Channel wavelengths in nm.
    solar_zenith : float
        Solar zenith angle of the view in degrees.
    """

    reflectance: np.ndarray
    albedo: np.ndarray
    aot: np.ndarray
    wavelengths: Tuple[float, ...]
    solar_zenith: float

    def __len__(self) -> int:
        return self.reflectance.shape[0]

    def invert(self, aot: float, toa: Sequence[float]) -> np.ndarray:
        """Surface reflectance per channel; ``LUT_OUT_OF_DOMAIN`` where undefined."""
        return np.array([
            invert_surface_reflectance(self.reflectance[c], self.albedo, self.aot, aot, toa[c])
            for c in range(len(self))
        ])


def reflectance_subsection(
    tables: Sequence[LookupTable],
    view: ViewGeometry,
    pressure: float,
    ozone: float,
    sensor: str,
) -> Optional[ReflectanceSubsection]:
    """
    Slice the land LUTs of one view at the pixel geometry.

    Parameters
    ----------
    tables : sequence of LookupTable
        One 6-D table per channel on (pressure, view zenith, relative
        azimuth, solar zenith, AOT, albedo).
    view : ViewGeometry
        Geometry of the view.
    pressure : float
        Surface pressure in hPa.
    ozone : float
        Ozone column in DU.
    sensor : str
        'meris' or 'aatsr', selects the gas correction slopes.

    Returns
    -------
    ReflectanceSubsection or None
        None if the geometry or pressure lies outside the tables.

    Raises
    ------
    ValueError
        If the number of tables does not match the sensor, or the tables
        disagree on the AOT and albedo nodes.

    Notes
    -----
    LUT values are converted to reflectance by :math:`\\pi/\\cos\\theta_s`
    and multiplied by the ozone and water vapour corrections of the channel.
    """
    sensor = sensor.lower()
    wavelengths = get_channel_wavelengths(sensor)
    if len(tables) != len(wavelengths):
        raise ValueError(
            f"{sensor} needs {len(wavelengths)} channel tables, got {len(tables)}"
        )

    first = tables[0]
    aot_nodes = first.axes[_AOT_AXIS]
    albedo = first.axes[_ALBEDO_AXIS]
    for table in tables[1:]:
        if not (np.array_equal(table.axes[_AOT_AXIS], aot_nodes)
                and np.array_equal(table.axes[_ALBEDO_AXIS], albedo)):
            raise ValueError("Channel tables disagree on the AOT or albedo nodes")

    alb_grid, aot_grid = np.meshgrid(albedo, aot_nodes, indexing="ij")
    n_points = alb_grid.size
    points = np.column_stack([
        np.full(n_points, pressure),
        np.full(n_points, view.view_zenith),
        np.full(n_points, view.relative_azimuth),
        np.full(n_points, view.solar_zenith),
        aot_grid.ravel(),
        alb_grid.ravel(),
    ])

    air_mass = geometric_air_mass_factor(view.solar_zenith, view.view_zenith)
    to_reflectance = np.pi / np.cos(np.deg2rad(view.solar_zenith))
    o3_slopes = O3_CORRECTION_SLOPES[sensor]
    wv_slopes = WV_CORRECTION_SLOPES[sensor]

    reflectance = np.empty((len(tables), albedo.size, aot_nodes.size))
    for c, table in enumerate(tables):
        values = table.interpolate_many(points)
        if np.any(values == LUT_OUT_OF_DOMAIN):
            logger.debug("Pixel geometry outside %s table %d", sensor, c)
            return None
        correction = ozone_correction(ozone, o3_slopes[c], air_mass) * water_vapour_correction(wv_slopes[c])
        reflectance[c] = values.reshape(albedo.size, aot_nodes.size) * to_reflectance * correction

    reflectance.setflags(write=False)
    return ReflectanceSubsection(
        reflectance=reflectance,
        albedo=albedo,
        aot=aot_nodes,
        wavelengths=tuple(wavelengths),
        solar_zenith=view.solar_zenith,
    )


def invert_surface_reflectance(
    curves: np.ndarray,
    albedo: np.ndarray,
    aot_nodes: np.ndarray,
    aot: float,
    toa: float,
) -> float:
    """
    Invert a TOA reflectance to surface albedo at a given AOT.

    Parameters
    ----------
    curves : ndarray
        TOA reflectance on the (albedo, AOT) nodes, increasing in albedo.
    albedo : ndarray
        Albedo nodes.
    aot_nodes : ndarray
        AOT nodes.
    aot : float
        Candidate AOT.
    toa : float
        Measured TOA reflectance.

    Returns
    -------
    float
        Surface albedo, or ``LUT_OUT_OF_DOMAIN`` if `aot` lies outside the
        AOT nodes or `toa` outside the reflectance range at `aot`.

    Examples
    --------
    >>> curves = np.array([[0.0, 0.0], [0.5, 0.25]])
    >>> invert_surface_reflectance(curves, np.array([0.0, 1.0]), np.array([0.0, 1.0]), 0.0, 0.25)
    0.5
    """
    if not (np.isfinite(aot) and np.isfinite(toa)):
        return LUT_OUT_OF_DOMAIN
    if aot < aot_nodes[0] or aot > aot_nodes[-1]:
        return LUT_OUT_OF_DOMAIN

    i = int(np.clip(np.searchsorted(aot_nodes, aot, side="left") - 1, 0, aot_nodes.size - 2))
    frac = (aot - aot_nodes[i]) / (aot_nodes[i + 1] - aot_nodes[i])
    toa_at_aot = curves[:, i] + (curves[:, i + 1] - curves[:, i]) * frac

    if toa < toa_at_aot[0] or toa > toa_at_aot[-1]:
        return LUT_OUT_OF_DOMAIN

    j = int(np.clip(np.searchsorted(toa_at_aot, toa, side="left") - 1, 0, albedo.size - 2))
    step = toa_at_aot[j + 1] - toa_at_aot[j]
    if step == 0:
        return float(albedo[j])
    return float(albedo[j] + (albedo[j + 1] - albedo[j]) / step * (toa - toa_at_aot[j]))


# =============================================================================
# Surface model fits
# =============================================================================


def overcorrection_penalty(
    surface: np.ndarray,
    limit: float = OVERCORRECTION_LIMIT,
    weight: float = PENALTY_WEIGHT,
) -> float:
    """
    Penalty for surface reflectances of an overcorrected atmosphere.

    Returns 0 when all reflectances reach `limit`, otherwise
    :math:`\\sum w (s - limit)^2 + 10^{-8}` over the offending values.
    """
    low = surface[surface < limit]
    if low.size == 0:
        return 0.0
    return float(np.sum(weight * (low - limit) ** 2) + OVERCORRECTION_OFFSET)


def spectral_error(
    surface: np.ndarray,
    spectrum: SurfaceSpectrum,
    ndvi_value: float,
    config: LandRetrievalConfig,
) -> Tuple[float, np.ndarray]:
    """
    Fit the soil/vegetation mixture to MERIS surface reflectance.

    Returns
    -------
    tuple
        ``(residual, params)``. When the surface is overcorrected the fit is
        skipped and the residual is the overcorrection penalty.
    """
    start = np.array([ndvi_value, 1.0 - ndvi_value])
    penalty = overcorrection_penalty(surface, config.overcorrection_limit, config.penalty_weight)
    if penalty > 0:
        return penalty, start

    weights = np.asarray(config.spectral_weights)
    if weights.size != surface.size or len(spectrum) != surface.size:
        raise ValueError(
            f"{surface.size} MERIS channels, {weights.size} weights, {len(spectrum)} spectrum samples"
        )

    def objective(p: np.ndarray) -> float:
        resid = surface - spectral_model(p, spectrum)
        err = np.sum(weights * resid * resid)
        negative = p[p < 0]
        return float(err + config.penalty_weight * np.sum(negative * negative))

    res = powell(objective, start, config.spectral_ftol, config.powell_maxiter)
    return res.fun, res.x


def angular_error(
    surface: np.ndarray,
    diffuse: np.ndarray,
    config: LandRetrievalConfig,
) -> Tuple[float, np.ndarray]:
    """
    Fit the angular model to dual-view AATSR surface reflectance.

    Parameters
    ----------
    surface : ndarray
        Surface reflectance, shape (2, n_channels) for (nadir, forward).
    diffuse : ndarray
        Diffuse fraction per view and channel, same shape.
    config : LandRetrievalConfig
        Weights, start point and penalties.

    Returns
    -------
    tuple
        ``(residual, params)`` with one scale per channel followed by the
        two view scales.
    """
    start = np.asarray(config.angular_start, dtype=np.float64)
    penalty = overcorrection_penalty(surface, config.overcorrection_limit, config.penalty_weight)
    if penalty > 0:
        return penalty, start

    weights = np.asarray(config.angular_weights)[np.newaxis, :]
    n_channels = weights.shape[1]
    if surface.shape[1] != n_channels:
        raise ValueError(f"{surface.shape[1]} AATSR channels but {n_channels} weights")
    lower, upper = config.view_scale_bounds

    def objective(p: np.ndarray) -> float:
        model = angular_model(p[:n_channels], p[n_channels:], diffuse, config.gamma)
        resid = surface - model
        err = np.sum(weights * resid * resid)
        if not np.isfinite(err):
            return NON_FINITE_COST
        views = p[n_channels:]
        below = lower - views[views < lower]
        above = views[views > upper] - upper
        return float(err + config.penalty_weight * (np.sum(below * below) + np.sum(above * above)))

    res = powell(objective, start, config.angular_ftol, config.powell_maxiter)
    return res.fun, res.x


# =============================================================================
# AOT search
# =============================================================================


@dataclass(frozen=True)
class LandPixel:
    """
    Inputs of the AOT search for one pixel and aerosol model.

    Attributes
    ----------
    meris : ReflectanceSubsection, optional
        MERIS LUT subsection; None when MERIS is not used.
    aatsr : tuple of ReflectanceSubsection, optional
        AATSR (nadir, forward) LUT subsections; None when AATSR is not used.
    toa_meris : ndarray, optional
        MERIS TOA reflectance.
    toa_aatsr : ndarray, optional
        AATSR TOA reflectance, shape (2, n_channels).
    ndvi : float
        Pixel NDVI.
    pressure : float
        Surface pressure in hPa.
    """

    meris: Optional[ReflectanceSubsection]
    aatsr: Optional[Tuple[ReflectanceSubsection, ReflectanceSubsection]]
    toa_meris: Optional[np.ndarray]
    toa_aatsr: Optional[np.ndarray]
    ndvi: float
    pressure: float


@dataclass
class LandFit:
    """Surface model fits at one AOT."""

    error: float
    angular_error: float = 0.0
    spectral_error: float = 0.0
    surface_meris: Optional[np.ndarray] = None
    surface_aatsr: Optional[np.ndarray] = None
    spectral_params: Optional[np.ndarray] = None
    angular_params: Optional[np.ndarray] = None


def evaluate_land_fit(
    pixel: LandPixel,
    spectrum: SurfaceSpectrum,
    config: LandRetrievalConfig,
    weight: float,
    aot: float,
) -> LandFit:
    """
    Combined surface model residual at one AOT.

    The AOT is floored at ``config.aot_floor``. A branch with zero weight is
    not evaluated.
    """
    tau = max(aot, config.aot_floor)
    fit = LandFit(error=0.0)

    if weight > 0 and pixel.aatsr is not None:
        nadir, fward = pixel.aatsr
        surface = np.vstack([
            nadir.invert(tau, pixel.toa_aatsr[0]),
            fward.invert(tau, pixel.toa_aatsr[1]),
        ])
        diffuse = np.vstack([
            diffuse_fraction(np.asarray(sub.wavelengths), tau, sub.solar_zenith, pixel.pressure)
            for sub in (nadir, fward)
        ])
        fit.angular_error, fit.angular_params = angular_error(surface, diffuse, config)
        fit.surface_aatsr = surface

    if weight < 1 and pixel.meris is not None:
        surface = pixel.meris.invert(tau, pixel.toa_meris)
        fit.spectral_error, fit.spectral_params = spectral_error(surface, spectrum, pixel.ndvi, config)
        fit.surface_meris = surface

    fit.error = weight * fit.angular_error + (1.0 - weight) * fit.spectral_error
    return fit


def land_error_function(
    pixel: LandPixel,
    spectrum: SurfaceSpectrum,
    config: LandRetrievalConfig,
    weight: float,
) -> Callable[[float], float]:
    """Objective of the AOT search: ``f(aot) -> combined residual``."""

    def error(aot: float) -> float:
        return evaluate_land_fit(pixel, spectrum, config, weight, aot).error

    return error


def retrieval_error(
    error: Callable[[float], float],
    aot: float,
    error_at_aot: float,
) -> Tuple[float, bool]:
    """
    AOT uncertainty from the curvature of the residual.

    A parabola :math:`E = a \\tau^2 + b \\tau + c` is fitted through the
    residual at 0.8, 1.0 and 0.6 times the optimum. The uncertainty is
    :math:`\\sqrt{2 E / (0.8 a)}`.

    Returns
    -------
    tuple
        ``(aot_error, negative_curvature)``. For a parabola that does not
        open upwards, or cannot be fitted, ``a`` is replaced by 1e-4 and the
        flag is set.
    """
    x = np.array([0.8 * aot, aot, 0.6 * aot])
    y = np.array([error(x[0]), error_at_aot, error(x[2])])
    design = np.column_stack([x * x, x, np.ones(3)])
    try:
        curvature = np.linalg.solve(design, y)[0]
    except np.linalg.LinAlgError:
        curvature = np.nan

    if not curvature > 0:
        return float(np.sqrt(error_at_aot / 0.8 * 2.0 / FALLBACK_CURVATURE)), True
    return float(np.sqrt(error_at_aot / 0.8 * 2.0 / curvature)), False


@dataclass
class AardvarcResult:
    """
    Outcome of the AOT search for one aerosol model.

    Attributes
    ----------
    aot : float
        AOT at the residual minimum.
    aot_error : float
        Uncertainty of `aot`.
    error_metric : float
        Residual at `aot`.
    negative_curvature : bool
        The residual parabola did not open upwards.
    converged : bool
        The Brent search met its tolerance.
    weight : float
        Angular weight used.
    fit : LandFit
        Surface model fits at `aot`.
    """

    aot: float
    aot_error: float
    error_metric: float
    negative_curvature: bool
    converged: bool
    weight: float
    fit: LandFit


def aardvarc(
    pixel: LandPixel,
    spectrum: SurfaceSpectrum,
    config: LandRetrievalConfig,
) -> AardvarcResult:
    """
    Find the AOT minimizing the combined surface model residual.

    Parameters
    ----------
    pixel : LandPixel
        LUT subsections and TOA reflectances.
    spectrum : SurfaceSpectrum
        Soil and vegetation reference spectra.
    config : LandRetrievalConfig
        Retrieval settings.

    Returns
    -------
    AardvarcResult
        Best AOT with uncertainty and surface fits.
    """
    weight = config.blend_weight(pixel.ndvi)
    if pixel.aatsr is None:
        weight = 0.0
    elif pixel.meris is None:
        weight = 1.0

    error = land_error_function(pixel, spectrum, config, weight)
    res = brent(error, config.aot_bounds, config.brent_xtol, config.brent_maxiter)
    aot = float(res.x)
    aot_error, negative = retrieval_error(error, aot, res.fun)

    return AardvarcResult(
        aot=aot,
        aot_error=aot_error,
        error_metric=res.fun,
        negative_curvature=negative,
        converged=res.converged,
        weight=weight,
        fit=evaluate_land_fit(pixel, spectrum, config, weight, aot),
    )


def land_quality(aot: float, aot_error: float, negative_curvature: bool) -> Tuple[bool, RetrievalFlags]:
    """
    Quality test of a land retrieval.

    Returns
    -------
    tuple
        ``(failed, flags)``. The retrieval fails on negative curvature, AOT
        below 1e-3, or an error above five times an AOT larger than 0.1.
    """
    error_high = aot > ERROR_RATIO_MIN_AOT and aot_error / aot > ERROR_RATIO_LIMIT
    flags = RetrievalFlags(
        negative_curvature=negative_curvature,
        aot_low=aot < AOT_LOW_BELOW,
        error_high=error_high,
    )
    failed = negative_curvature or aot < AOT_FAILED_BELOW or error_high
    return failed, flags


def build_land_pixel(
    model: AerosolModelLUT,
    geometry: Geometry,
    observation: ObservationVector,
    config: LandRetrievalConfig,
    ndvi_value: float,
) -> Optional[LandPixel]:
    """
    Slice the LUTs of one aerosol model at the pixel geometry.

    Returns None when a used view lies outside the LUTs or no sensor has
    observations.
    """
    meris = None
    if config.use_meris and observation.meris is not None:
        meris = reflectance_subsection(
            model.sensor_tables("meris"), geometry.meris, geometry.pressure, geometry.ozone, "meris"
        )
        if meris is None:
            return None

    aatsr = None
    toa_aatsr = observation.aatsr
    if config.use_aatsr and toa_aatsr is not None:
        tables = model.sensor_tables("aatsr")
        nadir = reflectance_subsection(
            tables, geometry.aatsr_nadir, geometry.pressure, geometry.ozone, "aatsr"
        )
        fward = reflectance_subsection(
            tables, geometry.aatsr_fward, geometry.pressure, geometry.ozone, "aatsr"
        )
        if nadir is None or fward is None:
            return None
        aatsr = (nadir, fward)

    if meris is None and aatsr is None:
        return None

    return LandPixel(
        meris=meris,
        aatsr=aatsr,
        toa_meris=observation.meris if meris is not None else None,
        toa_aatsr=toa_aatsr if aatsr is not None else None,
        ndvi=ndvi_value,
        pressure=geometry.pressure,
    )


def retrieve_land_aot(
    geometry: Geometry,
    observation: ObservationVector,
    spectrum: SurfaceSpectrum,
    models: Iterable[AerosolModelLUT],
    config: Optional[LandRetrievalConfig] = None,
) -> RetrievalResult:
    """
    Retrieve AOT over land, selecting the best-fitting aerosol model.

    Parameters
    ----------
    geometry : Geometry
        Pixel geometry, pressure and ozone.
    observation : ObservationVector
        MERIS and/or AATSR TOA reflectances.
    spectrum : SurfaceSpectrum
        Soil and vegetation reference spectra at the MERIS wavelengths.
    models : iterable of AerosolModelLUT
        Land LUTs of the aerosol models to try.
    config : LandRetrievalConfig, optional
        Retrieval settings.

    Returns
    -------
    RetrievalResult
        Result of the model with the smallest residual; out-of-domain when
        no model could be evaluated.
    """
    if config is None:
        config = LandRetrievalConfig()

    ndvi_value = 0.0
    if observation.meris is not None:
        ndvi_value = ndvi(observation.meris, spectrum.wavelengths)

    best: Optional[AardvarcResult] = None
    best_model = None
    for model in models:
        pixel = build_land_pixel(model, geometry, observation, config, ndvi_value)
        if pixel is None:
            logger.debug("Aerosol model %d: pixel outside the land LUTs", model.model_id)
            continue
        found = aardvarc(pixel, spectrum, config)
        logger.debug(
            "Aerosol model %d: aot=%.4f error=%.3g", model.model_id, found.aot, found.error_metric
        )
        if best is None or found.error_metric < best.error_metric:
            best, best_model = found, model.model_id

    if best is None:
        return RetrievalResult.out_of_domain()

    failed, flags = land_quality(best.aot, best.aot_error, best.negative_curvature)
    if failed:
        state = RetrievalState.FAILED
    elif not best.converged:
        state = RetrievalState.NOT_CONVERGED
    else:
        state = RetrievalState.VALID

    surface = {}
    if best.fit.surface_meris is not None:
        surface["meris"] = best.fit.surface_meris
    if best.fit.surface_aatsr is not None:
        surface["aatsr_nadir"] = best.fit.surface_aatsr[0]
        surface["aatsr_fward"] = best.fit.surface_aatsr[1]

    return RetrievalResult(
        aot=best.aot,
        aot_error=best.aot_error,
        error_metric=best.error_metric,
        model_id=best_model,
        state=state,
        flags=flags,
        surface_reflectance=surface or None,
    )
