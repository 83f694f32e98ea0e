"""
Windspeed inversion of the 3.7 um sun glint.

The solar part of the AATSR 3.7 um signal is matched against a table of
analytic glint values over a range of windspeeds. A glint curve that peaks
inside the table admits two windspeeds; the ancillary wind vector decides
between them. The retrieved windspeed then drives the per-channel glint
used by the ocean retrieval.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

from synergy_aerosol.constants import (
    GLINT_EMITTED_CHANNELS,
    GLINT_NO_DATA,
    REFRACTIVE_INDEX_088,
    REFRACTIVE_INDEX_37,
    RHO_FOAM_088,
    RHO_FOAM_37,
    WINDSPEED_TABLE_RANGE,
    WINDSPEED_TABLE_SIZE,
    get_ocean_channel,
)
from synergy_aerosol.datamodel import Geometry
from synergy_aerosol.glint import (
    brightness_temperature_to_radiance,
    extrapolate_bt37,
    glint_from_lut,
    glint_reflectance,
    is_useful_glint_pixel,
    solar_part_37,
    transmission_37,
)
from synergy_aerosol.lut import LookupTable

logger = logging.getLogger(__name__)


@dataclass
class GlintRetrievalConfig:
    """
    Settings of the glint retrieval.

    Attributes
    ----------
    refractive_index_37, foam_37 : float
        Water refractive index and foam reflectance of the windspeed table.
    refractive_index_088, foam_088 : float
        Water refractive index and foam reflectance of the predicted MERIS
        glint.
    table_size : int
        Number of windspeeds in the table.
    windspeed_range : tuple of float
        First and last windspeed of the table [m/s].
    adaptive_tolerance : bool
        If True, a table match is accepted within the largest step of the
        table; otherwise within the uncertainty of the 3.7 um solar part.
    emit_second_candidate : bool
        If True, the windspeed rejected by the ambiguity test is reported.
    glint_channels : sequence of str
        Ocean channels for which glint is reported.
    check_cloud : bool
        Reject cloudy pixels that carry no sun glint flag.
    """

    refractive_index_37: float = REFRACTIVE_INDEX_37
    foam_37: float = RHO_FOAM_37
    refractive_index_088: float = REFRACTIVE_INDEX_088
    foam_088: float = RHO_FOAM_088
    table_size: int = WINDSPEED_TABLE_SIZE
    windspeed_range: Tuple[float, float] = WINDSPEED_TABLE_RANGE
    adaptive_tolerance: bool = True
    emit_second_candidate: bool = False
    glint_channels: Sequence[str] = GLINT_EMITTED_CHANNELS
    check_cloud: bool = False

    def __post_init__(self):
        if self.table_size < 3:
            raise ValueError("Windspeed table needs at least 3 entries")
        low, high = self.windspeed_range
        if not 0 <= low < high:
            raise ValueError(f"Invalid windspeed range {self.windspeed_range}")
        for name in self.glint_channels:
            get_ocean_channel(name)
        self.glint_channels = tuple(self.glint_channels)


@dataclass(frozen=True)
class WindspeedCandidate:
    """
    A windspeed consistent with the measured 3.7 um glint.

    Attributes
    ----------
    windspeed : float
        Windspeed in m/s.
    glint : float
        Normalized MERIS glint predicted for this windspeed.
    """

    windspeed: float
    glint: float


@dataclass
class GlintResult:
    """
    Result of the glint retrieval of one pixel.

    Attributes
    ----------
    windspeed : float
        Selected windspeed, ``GLINT_NO_DATA`` if none was found.
    meris_glint : float
        Predicted normalized MERIS glint at `windspeed`.
    second_windspeed : float
        Rejected windspeed of an ambiguous match (only when enabled).
    solar_part : float
        Solar part of the normalized 3.7 um radiance.
    solar_part_error : float
        Uncertainty of `solar_part`.
    channel_glint : dict
        Glint per reported ocean channel.
    n_candidates : int
        Number of windspeeds matching the measurement (0, 1 or 2).
    """

    windspeed: float = GLINT_NO_DATA
    meris_glint: float = GLINT_NO_DATA
    second_windspeed: float = GLINT_NO_DATA
    solar_part: float = GLINT_NO_DATA
    solar_part_error: float = GLINT_NO_DATA
    channel_glint: Dict[str, float] = field(default_factory=dict)
    n_candidates: int = 0

    @property
    def found(self) -> bool:
        return self.windspeed != GLINT_NO_DATA


def windspeed_table(
    solar_zenith: float,
    view_zenith: float,
    azimuth_difference: float,
    refractive_index: float = REFRACTIVE_INDEX_37,
    foam_reflectance: float = RHO_FOAM_37,
    size: int = WINDSPEED_TABLE_SIZE,
    windspeed_range: Tuple[float, float] = WINDSPEED_TABLE_RANGE,
) -> Tuple[np.ndarray, np.ndarray]:
    """
    Tabulate normalized glint over windspeed at a fixed geometry.

    Parameters
    ----------
    solar_zenith, view_zenith : float
        Angles in degrees.
    azimuth_difference : float
        Azimuth difference in degrees, 0 in the specular direction.
    refractive_index : float, optional
        Water refractive index (default 1.37, 3.7 um).
    foam_reflectance : float, optional
        Whitecap reflectance (default 0.01).
    size : int, optional
        Number of windspeeds (default 151).
    windspeed_range : tuple of float, optional
        First and last windspeed (default 1 to 14 m/s).

    Returns
    -------
    tuple of ndarray
        ``(windspeeds, glint)``.
    """
    windspeeds = np.linspace(windspeed_range[0], windspeed_range[1], size)
    glint = glint_reflectance(
        solar_zenith, view_zenith, azimuth_difference,
        refractive_index, windspeeds, foam_reflectance,
    )
    return windspeeds, np.asarray(glint)


def max_adjacent_difference(values: Sequence[float]) -> float:
    """Largest absolute step between neighbouring table entries."""
    values = np.asarray(values, dtype=np.float64)
    if values.size < 2:
        return 0.0
    return float(np.max(np.abs(np.diff(values))))


def solve_windspeed_table(
    windspeeds: Sequence[float],
    glint: Sequence[float],
    observed: float,
    tolerance: Optional[float] = None,
) -> Tuple[Optional[float], Optional[float]]:
    """
    Find the windspeeds whose tabulated glint matches an observation.

    Parameters
    ----------
    windspeeds : sequence of float
        Table windspeeds.
    glint : sequence of float
        Tabulated glint per windspeed.
    observed : float
        Measured glint.
    tolerance : float, optional
        Largest accepted mismatch. Defaults to the largest step of the
        table.

    Returns
    -------
    tuple
        One windspeed per branch of the table, None where no entry lies
        within `tolerance`. A table with an interior maximum is split into
        the branches before and from the maximum; a monotone table has a
        single branch and the second element is always None.
    """
    windspeeds = np.asarray(windspeeds, dtype=np.float64)
    glint = np.asarray(glint, dtype=np.float64)
    if tolerance is None:
        tolerance = max_adjacent_difference(glint)

    imax = int(np.argmax(glint))
    if 0 < imax < glint.size - 1:
        branches = [(0, imax), (imax, glint.size)]
    else:
        branches = [(0, glint.size)]

    found: List[Optional[float]] = []
    for start, stop in branches:
        diffs = np.abs(glint[start:stop] - observed)
        best = int(np.argmin(diffs))
        if diffs[best] <= tolerance:
            found.append(float(windspeeds[start + best]))
        else:
            logger.debug(
                "No windspeed in [%g, %g] within %g of %g",
                windspeeds[start], windspeeds[stop - 1], tolerance, observed,
            )
            found.append(None)

    if len(found) == 1:
        found.append(None)
    return found[0], found[1]


def resolve_ambiguity(
    candidates: Sequence[Optional[WindspeedCandidate]],
    zonal_wind: float,
    meridional_wind: float,
) -> Optional[WindspeedCandidate]:
    """
    Pick the candidate nearest to the ancillary windspeed.

    The second candidate wins when it is strictly nearer, or when the first
    is missing.

    Returns
    -------
    WindspeedCandidate or None
        None if there is no candidate.
    """
    first = candidates[0] if len(candidates) > 0 else None
    second = candidates[1] if len(candidates) > 1 else None
    if first is None or second is None:
        return second if first is None else first

    reference = np.hypot(zonal_wind, meridional_wind)
    if abs(first.windspeed - reference) > abs(second.windspeed - reference):
        return second
    return first


def channel_glint(
    geometry: Geometry,
    channel: str,
    windspeed: float,
    gauss_tables: Optional[Sequence[LookupTable]] = None,
) -> float:
    """
    Glint of one ocean channel at a known windspeed.

    Uses the Gauss-parameter LUTs when given, otherwise the analytic model
    with the channel's refractive index and foam reflectance.
    """
    _, _, _, refractive_index, foam = get_ocean_channel(channel)
    view = geometry.channel_view(channel)
    azimuth = 180.0 - view.azimuth_difference
    if gauss_tables is not None:
        return glint_from_lut(
            gauss_tables, view.solar_zenith, view.view_zenith, azimuth,
            refractive_index, windspeed,
        )
    return float(glint_reflectance(
        view.solar_zenith, view.view_zenith, azimuth, refractive_index, windspeed, foam
    ))


def retrieve_glint(
    geometry: Geometry,
    bt37: float,
    bt11: float,
    bt12: float,
    meris14: float,
    meris15: float,
    bt_table: Tuple[Sequence[float], Sequence[float]],
    solar_irradiance37: float,
    gauss_tables: Optional[Sequence[LookupTable]] = None,
    config: Optional[GlintRetrievalConfig] = None,
    land: bool = False,
    cloudy: bool = False,
    sunglint: bool = False,
) -> GlintResult:
    """
    Retrieve windspeed and glint of a sea pixel from the 3.7 um channel.

    Parameters
    ----------
    geometry : Geometry
        Pixel geometry with ancillary wind.
    bt37, bt11, bt12 : float
        AATSR nadir brightness temperatures [K].
    meris14, meris15 : float
        MERIS band 14 and 15 values for the 3.7 um transmission.
    bt_table : tuple of sequence
        ``(temperatures, radiances)`` conversion table of the 3.7 um channel.
    solar_irradiance37 : float
        Band solar irradiance normalizing the 3.7 um radiances.
    gauss_tables : sequence of LookupTable, optional
        Gauss-parameter LUTs; analytic glint is used without them.
    config : GlintRetrievalConfig, optional
        Retrieval settings.
    land, cloudy, sunglint : bool, optional
        AATSR nadir classification flags.

    Returns
    -------
    GlintResult
        Windspeed and glint; fields hold ``GLINT_NO_DATA`` where nothing
        could be retrieved.
    """
    if config is None:
        config = GlintRetrievalConfig()
    result = GlintResult()

    nadir = geometry.aatsr_nadir
    if not is_useful_glint_pixel(
        land, cloudy, sunglint, nadir.view_elevation, bt37, check_cloud=config.check_cloud
    ):
        return result

    temperatures, radiances = bt_table
    thermal_bt37 = extrapolate_bt37(bt11, bt12)
    radiance37 = brightness_temperature_to_radiance(bt37, temperatures, radiances) / solar_irradiance37
    thermal37 = brightness_temperature_to_radiance(thermal_bt37, temperatures, radiances) / solar_irradiance37

    solar, solar_err = solar_part_37(radiance37, thermal37, transmission_37(meris14, meris15))
    if solar == GLINT_NO_DATA:
        logger.debug("No 3.7 um transmission, skipping glint retrieval")
        return result
    result.solar_part = solar
    result.solar_part_error = solar_err

    meris = geometry.meris
    windspeeds, table = windspeed_table(
        meris.solar_zenith,
        meris.view_zenith,
        180.0 - nadir.azimuth_difference,
        config.refractive_index_37,
        config.foam_37,
        config.table_size,
        config.windspeed_range,
    )
    tolerance = None if config.adaptive_tolerance else solar_err
    matches = solve_windspeed_table(windspeeds, table, solar, tolerance)

    candidates = [
        None if ws is None else WindspeedCandidate(
            windspeed=ws,
            glint=float(glint_reflectance(
                meris.solar_zenith, meris.view_zenith, 180.0 - meris.azimuth_difference,
                config.refractive_index_088, ws, config.foam_088,
            )),
        )
        for ws in matches
    ]
    result.n_candidates = sum(c is not None for c in candidates)

    chosen = resolve_ambiguity(candidates, geometry.zonal_wind, geometry.meridional_wind)
    if chosen is None:
        return result

    result.windspeed = chosen.windspeed
    result.meris_glint = chosen.glint
    if config.emit_second_candidate and result.n_candidates == 2:
        other = candidates[1] if chosen is candidates[0] else candidates[0]
        result.second_windspeed = other.windspeed

    for name in config.glint_channels:
        result.channel_glint[name] = channel_glint(geometry, name, chosen.windspeed, gauss_tables)

    return result
