"""
Radiative-transfer lookup tables.

This module implements the lookup tables (LUTs) the retrieval solvers query
in their inner loops, including:

- Multilinear interpolation over up to six strictly increasing axes
- Axes stored and queried in log space (surface pressure)
- Out-of-domain sentinel for queries outside the table, never extrapolation
- Aerosol-model tagged table sets for the land and ocean retrievals

Tables are immutable once built: the sample array is copied and marked
read-only, so a single instance can be shared by any number of threads.

References
----------
.. [1] Press, W.H., et al. (2007). Numerical Recipes, 3rd ed., Section 3.6:
       Interpolation on a grid in multidimensions.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Mapping, Optional, Sequence, Tuple, Union

import numpy as np
import scipy.interpolate
import xarray as xr

from synergy_aerosol.constants import LUT_OUT_OF_DOMAIN

logger = logging.getLogger(__name__)

#: Largest number of axes a LookupTable may have
MAX_LUT_DIMENSIONS: int = 6


class LookupTable:
    """
    N-dimensional lookup table with multilinear interpolation.

    Parameters
    ----------
    axes : sequence of array_like
        Node coordinates of each axis, strictly increasing, at least two
        nodes per axis.
    values : array_like
        Samples with shape ``tuple(len(a) for a in axes)``.
    log_axes : sequence of int, optional
        Indices of axes that are interpolated in log space. Their nodes
        and query coordinates must be positive.
    axis_names : sequence of str, optional
        Names of the axes, used for diagnostics and the xarray bridge.
    name : str, optional
        Name of the table.
    wavelength : float, optional
        Channel wavelength in nm the table was computed for.

    Raises
    ------
    ValueError
        If the axes are not strictly increasing, a log axis has
        non-positive nodes, there are more than six axes, or the shape of
        `values` does not match the axes.

    Notes
    -----
    For a query point inside the table, the value is the weighted sum of
    the :math:`2^n` corners of the bracketing cell,

    .. math::

        f(x) = \\sum_{c \\in \\{0,1\\}^n} f_c \\prod_{k=1}^{n}
               \\left[ c_k t_k + (1 - c_k)(1 - t_k) \\right]

    where :math:`t_k` is the normalised position of :math:`x_k` inside its
    bracketing interval. Any coordinate outside its axis yields
    ``LUT_OUT_OF_DOMAIN``.

    Examples
    --------
    >>> table = LookupTable([[0.0, 1.0], [0.0, 2.0]], [[0.0, 2.0], [1.0, 3.0]])
    >>> table((0.5, 1.0))
    1.5
    >>> table((2.0, 1.0))
    -1000.0
    """

    def __init__(
        self,
        axes: Sequence[Sequence[float]],
        values: np.ndarray,
        log_axes: Sequence[int] = (),
        axis_names: Optional[Sequence[str]] = None,
        name: Optional[str] = None,
        wavelength: Optional[float] = None,
    ):
        if len(axes) == 0 or len(axes) > MAX_LUT_DIMENSIONS:
            raise ValueError(
                f"LookupTable supports 1 to {MAX_LUT_DIMENSIONS} axes, got {len(axes)}"
            )

        raw_axes = []
        for k, axis in enumerate(axes):
            nodes = np.array(axis, dtype=np.float64)
            if nodes.ndim != 1 or nodes.size < 2:
                raise ValueError(f"Axis {k} needs at least two nodes")
            if not np.all(np.isfinite(nodes)):
                raise ValueError(f"Axis {k} contains non-finite nodes")
            if not np.all(np.diff(nodes) > 0):
                raise ValueError(f"Axis {k} is not strictly increasing")
            raw_axes.append(nodes)

        log_axes = tuple(sorted(set(int(k) for k in log_axes)))
        for k in log_axes:
            if k < 0 or k >= len(raw_axes):
                raise ValueError(f"Log axis index {k} out of range")
            if raw_axes[k][0] <= 0:
                raise ValueError(f"Log axis {k} has non-positive nodes")

        values = np.array(values, dtype=np.float64)
        shape = tuple(a.size for a in raw_axes)
        if values.shape != shape:
            raise ValueError(
                f"Values shape {values.shape} does not match axes shape {shape}"
            )

        if axis_names is None:
            axis_names = tuple(f"dim_{k}" for k in range(len(raw_axes)))
        elif len(axis_names) != len(raw_axes):
            raise ValueError("axis_names must name every axis")

        for nodes in raw_axes:
            nodes.setflags(write=False)
        values.setflags(write=False)

        self._raw_axes = tuple(raw_axes)
        self._log_axes = log_axes
        self._values = values
        self._axis_names = tuple(axis_names)
        self.name = name
        self.wavelength = wavelength

        grid = tuple(
            np.log(nodes) if k in log_axes else nodes
            for k, nodes in enumerate(raw_axes)
        )
        self._interpolator = scipy.interpolate.RegularGridInterpolator(
            grid, values, method="linear", bounds_error=False, fill_value=LUT_OUT_OF_DOMAIN
        )

    @property
    def ndim(self) -> int:
        """Number of axes."""
        return len(self._raw_axes)

    @property
    def shape(self) -> Tuple[int, ...]:
        """Number of nodes per axis."""
        return self._values.shape

    @property
    def axes(self) -> Tuple[np.ndarray, ...]:
        """Axis nodes in their natural (not log-transformed) units."""
        return self._raw_axes

    @property
    def axis_names(self) -> Tuple[str, ...]:
        return self._axis_names

    @property
    def log_axes(self) -> Tuple[int, ...]:
        return self._log_axes

    @property
    def values(self) -> np.ndarray:
        """Read-only view of the samples."""
        return self._values

    def axis(self, name: str) -> np.ndarray:
        """Nodes of the axis called `name`."""
        try:
            return self._raw_axes[self._axis_names.index(name)]
        except ValueError:
            raise ValueError(f"Table {self.name!r} has no axis {name!r}") from None

    def contains(self, point: Sequence[float]) -> bool:
        """True if every coordinate of `point` lies inside its axis."""
        for k, x in enumerate(point):
            nodes = self._raw_axes[k]
            if not np.isfinite(x) or x < nodes[0] or x > nodes[-1]:
                return False
        return True

    def interpolate(self, point: Sequence[float]) -> float:
        """
        Interpolate the table at one point.

        Parameters
        ----------
        point : sequence of float
            One coordinate per axis, in natural units (log axes are
            transformed here).

        Returns
        -------
        float
            Interpolated value, or ``LUT_OUT_OF_DOMAIN`` when the point lies
            outside the table.

        Raises
        ------
        ValueError
            If the number of coordinates does not match the number of axes.
        """
        if len(point) != self.ndim:
            raise ValueError(
                f"Query has {len(point)} coordinates, table has {self.ndim} axes"
            )
        if not self.contains(point):
            return LUT_OUT_OF_DOMAIN

        query = np.array(point, dtype=np.float64)
        for k in self._log_axes:
            query[k] = np.log(query[k])

        return float(self._interpolator(query[np.newaxis, :])[0])

    __call__ = interpolate

    def interpolate_many(self, points: np.ndarray) -> np.ndarray:
        """
        Interpolate the table at several points.

        Parameters
        ----------
        points : array_like
            Query points, shape (n_points, ndim).

        Returns
        -------
        ndarray
            One value per point; ``LUT_OUT_OF_DOMAIN`` for points outside
            the table.
        """
        query = np.array(points, dtype=np.float64, ndmin=2)
        if query.shape[1] != self.ndim:
            raise ValueError(
                f"Query has {query.shape[1]} coordinates, table has {self.ndim} axes"
            )

        inside = np.all(np.isfinite(query), axis=1)
        for k, nodes in enumerate(self._raw_axes):
            inside &= (query[:, k] >= nodes[0]) & (query[:, k] <= nodes[-1])

        result = np.full(query.shape[0], LUT_OUT_OF_DOMAIN)
        if np.any(inside):
            valid = query[inside]
            for k in self._log_axes:
                valid[:, k] = np.log(valid[:, k])
            result[inside] = self._interpolator(valid)
        return result

    @classmethod
    def from_dataarray(
        cls,
        data: xr.DataArray,
        log_dims: Sequence[str] = (),
        wavelength: Optional[float] = None,
    ) -> "LookupTable":
        """
        Build a table from an ``xarray.DataArray`` with one coordinate per dimension.

        Parameters
        ----------
        data : xarray.DataArray
            Samples; every dimension must carry a 1-D coordinate.
        log_dims : sequence of str, optional
            Dimensions interpolated in log space.
        wavelength : float, optional
            Channel wavelength in nm. Taken from ``data.attrs["wavelength"]``
            when not given.
        """
        for dim in log_dims:
            if dim not in data.dims:
                raise ValueError(f"Unknown log dimension {dim!r}")
        axes = [np.asarray(data[dim].values) for dim in data.dims]
        log_axes = [data.dims.index(dim) for dim in log_dims]
        if wavelength is None and "wavelength" in data.attrs:
            wavelength = float(data.attrs["wavelength"])
        return cls(
            axes,
            np.asarray(data.values),
            log_axes=log_axes,
            axis_names=[str(d) for d in data.dims],
            name=None if data.name is None else str(data.name),
            wavelength=wavelength,
        )

    def to_dataarray(self) -> xr.DataArray:
        """Export the table as an ``xarray.DataArray``."""
        attrs = {"log_dims": [self._axis_names[k] for k in self._log_axes]}
        if self.wavelength is not None:
            attrs["wavelength"] = self.wavelength
        return xr.DataArray(
            np.array(self._values),
            coords={n: np.array(a) for n, a in zip(self._axis_names, self._raw_axes)},
            dims=self._axis_names,
            name=self.name,
            attrs=attrs,
        )

    def __repr__(self) -> str:
        dims = ", ".join(f"{n}={s}" for n, s in zip(self._axis_names, self.shape))
        return f"LookupTable(name={self.name!r}, {dims})"


@dataclass(frozen=True)
class AerosolModelLUT:
    """
    Lookup tables of one aerosol model.

    Attributes
    ----------
    model_id : int
        Discrete aerosol model identifier.
    tables : dict
        Per-sensor tuples of LookupTable, one per channel, keyed by sensor
        ('meris', 'aatsr' over land; 'ocean' for the ocean LUTs).
    angstrom : float, optional
        Angstrom coefficient of the model (ocean retrieval).
    """

    model_id: int
    tables: Mapping[str, Tuple[LookupTable, ...]] = field(default_factory=dict)
    angstrom: Optional[float] = None

    def __post_init__(self):
        frozen: Dict[str, Tuple[LookupTable, ...]] = {
            key.lower(): tuple(tabs) for key, tabs in self.tables.items()
        }
        object.__setattr__(self, "tables", frozen)

    def sensor_tables(self, sensor: str) -> Tuple[LookupTable, ...]:
        """All channel tables of a sensor."""
        try:
            return self.tables[sensor.lower()]
        except KeyError:
            raise ValueError(
                f"Aerosol model {self.model_id} has no tables for sensor {sensor!r}"
            ) from None

    def channel_table(self, sensor: str, index: int) -> LookupTable:
        """Table of channel `index` of a sensor."""
        return self.sensor_tables(sensor)[index]

    def table_for_wavelength(self, sensor: str, wavelength: float) -> LookupTable:
        """
        Table of a sensor whose wavelength is nearest to `wavelength`.

        Raises
        ------
        ValueError
            If none of the sensor's tables carries a wavelength.
        """
        candidates = [t for t in self.sensor_tables(sensor) if t.wavelength is not None]
        if not candidates:
            raise ValueError(
                f"Aerosol model {self.model_id}: {sensor} tables carry no wavelengths"
            )
        return min(candidates, key=lambda t: abs(t.wavelength - wavelength))


def as_table(
    table: Union[LookupTable, xr.DataArray],
    log_dims: Sequence[str] = (),
) -> LookupTable:
    """Accept either a LookupTable or a DataArray and return a LookupTable."""
    if isinstance(table, LookupTable):
        return table
    logger.debug("Converting DataArray %r to LookupTable", table.name)
    return LookupTable.from_dataarray(table, log_dims=log_dims)
