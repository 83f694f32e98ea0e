"""
Per-pixel records exchanged with the retrieval solvers.

Geometry and observations are produced once per pixel by the caller and are
only read by the solvers; results carry numeric sentinels for every "no
result" condition so they can be written straight into no-data raster
cells.
"""

import enum
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional

import numpy as np

from synergy_aerosol.constants import GLINT_NO_DATA, NO_DATA, STANDARD_PRESSURE
from synergy_aerosol.glint import remove_azimuth_ambiguity


@dataclass(frozen=True)
class ViewGeometry:
    """
    Solar and viewing geometry of one sensor view.

    All angles are in degrees.

    Attributes
    ----------
    solar_zenith : float
        Solar zenith angle.
    solar_azimuth : float
        Solar azimuth angle.
    view_zenith : float
        Sensor viewing zenith angle.
    view_azimuth : float
        Sensor viewing azimuth angle.
    """

    solar_zenith: float
    solar_azimuth: float
    view_zenith: float
    view_azimuth: float

    @classmethod
    def from_elevations(
        cls,
        solar_elevation: float,
        solar_azimuth: float,
        view_elevation: float,
        view_azimuth: float,
    ) -> "ViewGeometry":
        """Build from elevation angles, as delivered for AATSR."""
        return cls(
            solar_zenith=90.0 - solar_elevation,
            solar_azimuth=solar_azimuth,
            view_zenith=90.0 - view_elevation,
            view_azimuth=view_azimuth,
        )

    @property
    def solar_elevation(self) -> float:
        return 90.0 - self.solar_zenith

    @property
    def view_elevation(self) -> float:
        return 90.0 - self.view_zenith

    @property
    def relative_azimuth(self) -> float:
        """
        Relative azimuth in the land LUT convention.

        0 deg is the backscattering direction: with
        :math:`r = |\\phi_s - \\phi_v|`, the angle is :math:`r - 180` for
        r > 180 and :math:`180 - r` otherwise.
        """
        r = abs(self.solar_azimuth - self.view_azimuth)
        return 180.0 - (360.0 - r) if r > 180.0 else 180.0 - r

    @property
    def azimuth_difference(self) -> float:
        """View minus sun azimuth folded into [0, 180] (glint convention)."""
        return remove_azimuth_ambiguity(self.view_azimuth, self.solar_azimuth)

    @property
    def air_mass_factor(self) -> float:
        """Mean of solar and view secants."""
        return 0.5 * (
            1.0 / np.cos(np.deg2rad(self.solar_zenith))
            + 1.0 / np.cos(np.deg2rad(self.view_zenith))
        )


@dataclass(frozen=True)
class Geometry:
    """
    Geometry and ancillary state of a Synergy pixel.

    Attributes
    ----------
    meris : ViewGeometry
        MERIS view.
    aatsr_nadir : ViewGeometry
        AATSR nadir view.
    aatsr_fward : ViewGeometry
        AATSR forward view.
    pressure : float
        Surface pressure [hPa]. Default is 1013.25.
    ozone : float
        Ozone column [DU]. Default is 300.
    zonal_wind : float
        Ancillary zonal wind component [m/s].
    meridional_wind : float
        Ancillary meridional wind component [m/s].
    """

    meris: ViewGeometry
    aatsr_nadir: ViewGeometry
    aatsr_fward: ViewGeometry
    pressure: float = STANDARD_PRESSURE
    ozone: float = 300.0
    zonal_wind: float = 0.0
    meridional_wind: float = 0.0

    @property
    def ancillary_windspeed(self) -> float:
        """Windspeed of the ancillary wind vector."""
        return float(np.hypot(self.zonal_wind, self.meridional_wind))

    def view(self, name: str) -> ViewGeometry:
        """View by name: 'meris', 'aatsr_nadir' or 'aatsr_fward'."""
        if name not in ("meris", "aatsr_nadir", "aatsr_fward"):
            raise ValueError(f"Unknown view: {name}")
        return getattr(self, name)

    def channel_view(self, channel: str) -> ViewGeometry:
        """View observing an ocean channel, e.g. 'aatsr_fward_870'."""
        for name in ("meris", "aatsr_nadir", "aatsr_fward"):
            if channel.startswith(name):
                return getattr(self, name)
        raise ValueError(f"No view for channel: {channel}")


@dataclass(frozen=True)
class ObservationVector:
    """
    Measured TOA values of one pixel.

    Attributes
    ----------
    meris : ndarray, optional
        MERIS TOA reflectance per land channel.
    aatsr_nadir : ndarray, optional
        AATSR nadir TOA reflectance per land channel.
    aatsr_fward : ndarray, optional
        AATSR forward TOA reflectance per land channel.
    ocean : dict, optional
        Normalised ocean channel values keyed by channel name
        (see ``constants.OCEAN_CHANNELS``).
    """

    meris: Optional[np.ndarray] = None
    aatsr_nadir: Optional[np.ndarray] = None
    aatsr_fward: Optional[np.ndarray] = None
    ocean: Optional[Mapping[str, float]] = None

    def __post_init__(self):
        for name in ("meris", "aatsr_nadir", "aatsr_fward"):
            value = getattr(self, name)
            if value is not None:
                arr = np.array(value, dtype=np.float64)
                arr.setflags(write=False)
                object.__setattr__(self, name, arr)
        if self.ocean is not None:
            object.__setattr__(self, "ocean", {k: float(v) for k, v in self.ocean.items()})

    @property
    def aatsr(self) -> Optional[np.ndarray]:
        """AATSR reflectances stacked as (nadir, forward)."""
        if self.aatsr_nadir is None or self.aatsr_fward is None:
            return None
        return np.vstack([self.aatsr_nadir, self.aatsr_fward])


class RetrievalState(enum.Enum):
    """Outcome of a single-pixel retrieval."""

    #: Estimate passed all checks
    VALID = "valid"
    #: LUT query or inverse lookup left the table, or the optimum hit the grid edge
    OUT_OF_DOMAIN = "out_of_domain"
    #: Iteration cap reached, best-so-far estimate reported
    NOT_CONVERGED = "not_converged"
    #: Estimate produced but rejected by the quality checks
    FAILED = "failed"


@dataclass
class RetrievalFlags:
    """
    Quality flags of a retrieval.

    Attributes
    ----------
    negative_curvature : bool
        The error parabola around the land optimum opens downwards.
    aot_low : bool
        Retrieved AOT is practically zero.
    error_high : bool
        Retrieval error exceeds five times the AOT.
    on_grid_boundary : bool
        Ocean optimum on the edge of the AOT/Angstrom grid.
    """

    negative_curvature: bool = False
    aot_low: bool = False
    error_high: bool = False
    on_grid_boundary: bool = False


@dataclass
class RetrievalResult:
    """
    Result of a single-pixel retrieval.

    Fields are consistent with each other only when ``state`` is
    ``RetrievalState.VALID``; no-result fields hold the sentinels of
    ``constants``.

    Attributes
    ----------
    aot : float
        AOT at 550 nm.
    aot_error : float
        Uncertainty of `aot`.
    error_metric : float
        Residual of the best fit.
    angstrom : float
        Angstrom exponent (ocean only).
    angstrom_error : float
        Uncertainty of `angstrom` (ocean only).
    model_id : int, optional
        Aerosol model of the selected fit (land only).
    state : RetrievalState
        Outcome of the retrieval.
    flags : RetrievalFlags
        Quality flags.
    surface_reflectance : dict, optional
        Inverted surface reflectance at the optimum per view (debug).
    glint : dict, optional
        Glint reflectance per ocean channel (debug).
    windspeed : float
        Windspeed used for the glint correction (debug).
    """

    aot: float = NO_DATA
    aot_error: float = NO_DATA
    error_metric: float = NO_DATA
    angstrom: float = NO_DATA
    angstrom_error: float = NO_DATA
    model_id: Optional[int] = None
    state: RetrievalState = RetrievalState.OUT_OF_DOMAIN
    flags: RetrievalFlags = field(default_factory=RetrievalFlags)
    surface_reflectance: Optional[Dict[str, np.ndarray]] = None
    glint: Optional[Dict[str, float]] = None
    windspeed: float = GLINT_NO_DATA

    @property
    def valid(self) -> bool:
        return self.state is RetrievalState.VALID

    @classmethod
    def out_of_domain(cls) -> "RetrievalResult":
        """Result carrying sentinels only."""
        return cls(state=RetrievalState.OUT_OF_DOMAIN)
