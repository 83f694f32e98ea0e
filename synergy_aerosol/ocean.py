"""
AOT and Angstrom retrieval over ocean.

The ocean retrieval is an exhaustive search on a fine (AOT, Angstrom) grid:

1. For every aerosol model and channel the ocean LUT is evaluated at the
   pixel geometry and windspeed across its native AOT nodes, the channel's
   sun glint is added and the curve is refined with a natural cubic spline.
2. Models are paired along a regular Angstrom grid and their predictions
   interpolated linearly between the two bracketing models.
3. The weighted squared mismatch to the observations is summed over the
   used channels and minimized by brute force.
4. AOT and Angstrom uncertainties follow from the residual and the local
   slope of the predictions at the optimum.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Mapping, Optional, Sequence, Tuple

import numpy as np
import scipy.interpolate

from synergy_aerosol.constants import (
    ANGSTROM_PAIR_MIN_DISTANCE,
    GLINT_NO_DATA,
    LUT_OUT_OF_DOMAIN,
    MERIS_SOLAR_FLUX,
    OCEAN_N_ANGSTROM,
    OCEAN_N_TAU,
    OCEAN_USED_CHANNELS,
    get_ocean_channel,
)
from synergy_aerosol.datamodel import (
    Geometry,
    ObservationVector,
    RetrievalFlags,
    RetrievalResult,
    RetrievalState,
)
from synergy_aerosol.lut import AerosolModelLUT, LookupTable
from synergy_aerosol.windspeed import channel_glint

logger = logging.getLogger(__name__)

# Axis position of AOT in the ocean LUTs
_AOT_AXIS = 4

#: MERIS bands observed by the MERIS ocean channels
MERIS_OCEAN_BANDS: Dict[str, int] = {"meris_865": 13, "meris_885": 14}


@dataclass
class OceanRetrievalConfig:
    """
    Settings of the ocean retrieval.

    Attributes
    ----------
    channels : sequence of str
        Ocean channels entering the cost function.
    n_tau : int
        Size of the refined AOT grid.
    n_angstrom : int
        Size of the Angstrom grid.
    pair_min_distance : float
        Bracketing models with closer Angstrom coefficients put all weight on
        the lower one.
    reject_boundary : bool
        Reject optima on the edge of the grid.
    add_glint : bool
        Add the analytic sun glint to the LUT predictions.
    negative_pressure_axis : bool
        The LUT pressure axis holds negated pressures.
    """

    channels: Sequence[str] = OCEAN_USED_CHANNELS
    n_tau: int = OCEAN_N_TAU
    n_angstrom: int = OCEAN_N_ANGSTROM
    pair_min_distance: float = ANGSTROM_PAIR_MIN_DISTANCE
    reject_boundary: bool = True
    add_glint: bool = True
    negative_pressure_axis: bool = False

    def __post_init__(self):
        if len(self.channels) == 0:
            raise ValueError("No ocean channels configured")
        for name in self.channels:
            get_ocean_channel(name)
        self.channels = tuple(self.channels)
        if self.n_tau < 3 or self.n_angstrom < 3:
            raise ValueError("AOT and Angstrom grids need at least 3 points")

    @property
    def weights(self) -> np.ndarray:
        """Cost weight per configured channel."""
        return np.array([get_ocean_channel(name)[2] for name in self.channels])


def refine_tau_axis(
    tau_nodes: Sequence[float],
    values: np.ndarray,
    n_tau: int = OCEAN_N_TAU,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Resample curves over AOT onto a fine regular grid.

    Parameters
    ----------
    tau_nodes : sequence of float
        Native AOT nodes of the LUT.
    values : array_like
        Curves over AOT, AOT on the last axis.
    n_tau : int, optional
        Number of points of the fine grid (default 201).

    Returns
    -------
    tuple of ndarray
        ``(tau, refined)``: the fine grid spanning the native nodes and the
        natural cubic spline of `values` on it.
    """
    tau_nodes = np.asarray(tau_nodes, dtype=np.float64)
    spline = scipy.interpolate.CubicSpline(tau_nodes, values, axis=-1, bc_type="natural")
    tau = np.linspace(tau_nodes[0], tau_nodes[-1], n_tau)
    return tau, spline(tau)


def angstrom_pairs(
    model_angstroms: Sequence[float],
    n_angstrom: int = OCEAN_N_ANGSTROM,
    min_distance: float = ANGSTROM_PAIR_MIN_DISTANCE,
) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
    """
    Pair aerosol models along a regular Angstrom grid.

    Parameters
    ----------
    model_angstroms : sequence of float
        Angstrom coefficient of every model.
    n_angstrom : int, optional
        Number of grid points between the smallest and largest coefficient.
    min_distance : float, optional
        Models closer than this are not interpolated.

    Returns
    -------
    grid : ndarray
        Angstrom grid, shape (n_angstrom,).
    indices : ndarray
        Lower and higher bracketing model per grid point, shape
        (n_angstrom, 2).
    weights : ndarray
        Interpolation weights of both models, shape (n_angstrom, 2).

    Examples
    --------
    >>> grid, idx, w = angstrom_pairs([0.0, 1.0], n_angstrom=5)
    >>> w[1]
    array([0.75, 0.25])
    """
    ang = np.asarray(model_angstroms, dtype=np.float64)
    grid = np.linspace(ang.min(), ang.max(), n_angstrom)
    indices = np.zeros((n_angstrom, 2), dtype=int)
    weights = np.zeros((n_angstrom, 2))

    for k, value in enumerate(grid):
        below = np.flatnonzero(ang <= value)
        above = np.flatnonzero(ang >= value)
        lower = below[np.argmax(ang[below])]
        higher = above[np.argmin(ang[above])]
        indices[k] = lower, higher

        distance = ang[lower] - ang[higher]
        if abs(distance) > min_distance:
            weights[k] = (
                1.0 - (ang[lower] - value) / distance,
                1.0 - (value - ang[higher]) / distance,
            )
        else:
            weights[k] = 1.0, 0.0

    return grid, indices, weights


def model_predictions(
    models: Sequence[AerosolModelLUT],
    geometry: Geometry,
    windspeed: float,
    config: OceanRetrievalConfig,
    gauss_tables: Optional[Sequence[LookupTable]] = None,
) -> Optional[Tuple[np.ndarray, np.ndarray, np.ndarray]]:
    """
    Predicted channel values of every model on the refined AOT grid.

    The glint comes from the Gauss-parameter LUTs when `gauss_tables` is
    given, otherwise from the analytic model.

    Returns
    -------
    tuple or None
        ``(tau, predictions, glint)`` with predictions of shape
        (n_models, n_channels, n_tau) and the glint added per channel; None
        if the geometry leaves a LUT.

    Raises
    ------
    ValueError
        If the tables disagree on their AOT nodes.
    """
    pressure = -geometry.pressure if config.negative_pressure_axis else geometry.pressure
    glint = np.zeros(len(config.channels))
    if config.add_glint:
        glint = np.array([
            channel_glint(geometry, name, windspeed, gauss_tables) for name in config.channels
        ])

    tau_nodes = None
    coarse = []
    for model in models:
        curves = []
        for name in config.channels:
            _, wavelength, _, _, _ = get_ocean_channel(name)
            table = model.table_for_wavelength("ocean", wavelength)
            nodes = table.axes[_AOT_AXIS]
            if tau_nodes is None:
                tau_nodes = nodes
            elif not np.array_equal(nodes, tau_nodes):
                raise ValueError("Ocean tables disagree on the AOT nodes")

            view = geometry.channel_view(name)
            points = np.column_stack([
                np.full(nodes.size, 180.0 - view.azimuth_difference),
                np.full(nodes.size, view.view_zenith),
                np.full(nodes.size, view.solar_zenith),
                np.full(nodes.size, windspeed),
                nodes,
                np.full(nodes.size, pressure),
            ])
            values = table.interpolate_many(points)
            if np.any(values == LUT_OUT_OF_DOMAIN):
                logger.debug("Model %d channel %s: geometry outside LUT", model.model_id, name)
                return None
            curves.append(values)
        coarse.append(curves)

    coarse = np.asarray(coarse)
    tau, fine = refine_tau_axis(tau_nodes, coarse, config.n_tau)
    return tau, fine + glint[np.newaxis, :, np.newaxis], glint


def interpolate_angstrom(
    predictions: np.ndarray,
    indices: np.ndarray,
    weights: np.ndarray,
) -> np.ndarray:
    """
    Blend model predictions along the Angstrom grid.

    Parameters
    ----------
    predictions : ndarray
        Shape (n_models, n_channels, n_tau).
    indices, weights : ndarray
        Model pairs and weights from `angstrom_pairs`.

    Returns
    -------
    ndarray
        Shape (n_channels, n_tau, n_angstrom).
    """
    lower = predictions[indices[:, 0]] * weights[:, 0, np.newaxis, np.newaxis]
    higher = predictions[indices[:, 1]] * weights[:, 1, np.newaxis, np.newaxis]
    return np.transpose(lower + higher, (1, 2, 0))


def cost_grid(
    predicted: np.ndarray,
    observed: Sequence[float],
    weights: Sequence[float],
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Weighted residuals and total cost on the (AOT, Angstrom) grid.

    Returns
    -------
    tuple of ndarray
        Per-channel residuals :math:`c_i = (R_i - O_i) w_i` of shape
        (n_channels, n_tau, n_angstrom) and the cost :math:`\\sum_i c_i^2`.
    """
    observed = np.asarray(observed, dtype=np.float64)[:, np.newaxis, np.newaxis]
    weights = np.asarray(weights, dtype=np.float64)[:, np.newaxis, np.newaxis]
    residuals = (predicted - observed) * weights
    return residuals, np.sum(residuals * residuals, axis=0)


def grid_argmin(cost: np.ndarray) -> Optional[Tuple[int, int]]:
    """
    Position of the first smallest cost in row-major order.

    NaN cells are never selected; None if no cell has a finite cost.
    """
    cost = np.where(np.isnan(cost), np.inf, cost)
    flat = int(np.argmin(cost))
    if not np.isfinite(cost.flat[flat]):
        return None
    i, j = np.unravel_index(flat, cost.shape)
    return int(i), int(j)


def _centred_slope(values: np.ndarray, axis_values: np.ndarray, index: int) -> np.ndarray:
    """Centred difference along the first axis of `values`, one-sided at the edges."""
    low = max(0, index - 1)
    high = min(axis_values.size - 1, index + 1)
    step = axis_values[high] - axis_values[low]
    if step == 0:
        return np.zeros(values.shape[1:])
    return (values[high] - values[low]) / step


def propagate_errors(
    predicted: np.ndarray,
    residuals: np.ndarray,
    tau: np.ndarray,
    angstrom: np.ndarray,
    weights: Sequence[float],
    best: Tuple[int, int],
) -> Tuple[float, float]:
    """
    AOT and Angstrom uncertainty at the grid optimum.

    Parameters
    ----------
    predicted : ndarray
        Predictions, shape (n_channels, n_tau, n_angstrom).
    residuals : ndarray
        Weighted residuals, same shape.
    tau, angstrom : ndarray
        Grid axes.
    weights : sequence of float
        Channel weights.
    best : tuple of int
        Optimum indices ``(i_tau, i_angstrom)``.

    Returns
    -------
    tuple of float
        ``(aot_error, angstrom_error)``.

    Notes
    -----
    .. math::

        \\sigma_\\tau = \\left[ \\sum_i \\left(\\frac{w_i}{c_i}\\right)^2
                        \\left(\\frac{\\partial R_i}{\\partial \\tau}\\right)^2
                        \\right]^{-1/2}

    with centred differences along each grid axis. Channels with zero
    residual are left out; a vanishing sum gives an uncertainty of 0.
    """
    i, j = best
    weights = np.asarray(weights, dtype=np.float64)
    d_tau = np.abs(_centred_slope(np.moveaxis(predicted[:, :, j], 1, 0), tau, i))
    d_ang = np.abs(_centred_slope(np.moveaxis(predicted[:, i, :], 1, 0), angstrom, j))

    c = residuals[:, i, j]
    used = c != 0
    scale = (weights[used] / c[used]) ** 2
    sum_tau = np.sum(scale * d_tau[used] ** 2)
    sum_ang = np.sum(scale * d_ang[used] ** 2)

    tau_err = 1.0 / np.sqrt(sum_tau) if sum_tau > 0 else 0.0
    ang_err = 1.0 / np.sqrt(sum_ang) if sum_ang > 0 else 0.0
    return float(tau_err), float(ang_err)


def normalize_meris_radiance(radiance: float, band: int) -> float:
    """MERIS radiance divided by the mean solar flux of the band (13 or 14)."""
    try:
        return radiance / MERIS_SOLAR_FLUX[band]
    except KeyError:
        raise ValueError(f"No solar flux for MERIS band {band}") from None


def normalize_aatsr_reflectance(
    reflectance: float,
    sun_elevation: float,
    percent: bool = False,
) -> float:
    """
    AATSR reflectance converted to the normalized radiance of the LUTs.

    Divides by :math:`\\pi \\cos(90 - \\epsilon_s)`, and by 100 for
    reflectances given in percent.
    """
    scale = np.pi * np.cos(np.deg2rad(90.0 - sun_elevation))
    if percent:
        scale *= 100.0
    return float(reflectance / scale)


def normalize_ocean_observation(
    geometry: Geometry,
    meris_radiance: Mapping[str, float],
    aatsr_reflectance: Mapping[str, float],
    percent: bool = False,
) -> Dict[str, float]:
    """
    Normalize raw ocean channel measurements.

    Parameters
    ----------
    geometry : Geometry
        Pixel geometry (AATSR sun elevations).
    meris_radiance : mapping
        MERIS radiance by ocean channel name ('meris_865', 'meris_885').
    aatsr_reflectance : mapping
        AATSR reflectance by ocean channel name.
    percent : bool, optional
        AATSR reflectances are given in percent.

    Returns
    -------
    dict
        Normalized value per channel name, ready for ``ObservationVector.ocean``.
    """
    values = {}
    for name, radiance in meris_radiance.items():
        if name not in MERIS_OCEAN_BANDS:
            raise ValueError(f"Not a MERIS ocean channel: {name}")
        values[name] = normalize_meris_radiance(radiance, MERIS_OCEAN_BANDS[name])
    for name, reflectance in aatsr_reflectance.items():
        get_ocean_channel(name)
        view = geometry.channel_view(name)
        values[name] = normalize_aatsr_reflectance(reflectance, view.solar_elevation, percent)
    return values


def retrieve_ocean_aot(
    geometry: Geometry,
    observation: ObservationVector,
    models: Sequence[AerosolModelLUT],
    windspeed: float,
    config: Optional[OceanRetrievalConfig] = None,
    gauss_tables: Optional[Sequence[LookupTable]] = None,
) -> RetrievalResult:
    """
    Retrieve AOT and Angstrom coefficient over ocean.

    Parameters
    ----------
    geometry : Geometry
        Pixel geometry and pressure.
    observation : ObservationVector
        Normalized ocean channel values in ``observation.ocean``.
    models : sequence of AerosolModelLUT
        Ocean LUTs of all aerosol models, each with an Angstrom coefficient.
    windspeed : float
        Windspeed from the glint retrieval; ``GLINT_NO_DATA`` gives no
        result.
    config : OceanRetrievalConfig, optional
        Retrieval settings.
    gauss_tables : sequence of LookupTable, optional
        Gauss-parameter glint LUTs; analytic glint is used without them.

    Returns
    -------
    RetrievalResult
        AOT, Angstrom and their uncertainties.
    """
    if config is None:
        config = OceanRetrievalConfig()
    if len(models) == 0:
        raise ValueError("No ocean aerosol models")
    if any(m.angstrom is None for m in models):
        raise ValueError("Every ocean aerosol model needs an Angstrom coefficient")

    if windspeed == GLINT_NO_DATA or windspeed < 0:
        return RetrievalResult.out_of_domain()
    if observation.ocean is None or any(name not in observation.ocean for name in config.channels):
        logger.debug("Missing ocean channel observations")
        return RetrievalResult.out_of_domain()

    found = model_predictions(models, geometry, windspeed, config, gauss_tables)
    if found is None:
        return RetrievalResult.out_of_domain()
    tau, predictions, glint = found

    angstrom, indices, pair_weights = angstrom_pairs(
        [m.angstrom for m in models], config.n_angstrom, config.pair_min_distance
    )
    predicted = interpolate_angstrom(predictions, indices, pair_weights)
    observed = [observation.ocean[name] for name in config.channels]
    residuals, cost = cost_grid(predicted, observed, config.weights)

    best = grid_argmin(cost)
    if best is None:
        return RetrievalResult.out_of_domain()
    i, j = best

    tau_edge = i == 0 or i == tau.size - 1
    # a single Angstrom coefficient makes every column identical
    ang_edge = (j == 0 or j == angstrom.size - 1) and angstrom[0] != angstrom[-1]
    on_boundary = tau_edge or ang_edge
    glint_debug = dict(zip(config.channels, glint.tolist()))
    if on_boundary and config.reject_boundary:
        logger.debug("Ocean optimum on grid boundary at tau=%g ang=%g", tau[i], angstrom[j])
        result = RetrievalResult.out_of_domain()
        result.flags.on_grid_boundary = True
        result.glint = glint_debug
        result.windspeed = windspeed
        return result

    tau_err, ang_err = propagate_errors(predicted, residuals, tau, angstrom, config.weights, best)
    return RetrievalResult(
        aot=float(tau[i]),
        aot_error=tau_err,
        error_metric=float(cost[i, j]),
        angstrom=float(angstrom[j]),
        angstrom_error=ang_err,
        state=RetrievalState.VALID,
        flags=RetrievalFlags(on_grid_boundary=on_boundary),
        glint=glint_debug,
        windspeed=windspeed,
    )
