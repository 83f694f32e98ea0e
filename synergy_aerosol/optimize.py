"""
Derivative-free optimizers shared by the retrieval solvers.

Objectives are plain callables returning a float; the land solver builds
them as closures over per-pixel data and hands them to the two routines
below:

- Powell's method for the inner multivariate surface-model fits
- Brent's method for the outer bounded search over AOT

Both routines enforce an iteration cap and return the best point found so
far; non-convergence is reported through ``converged`` and never raised.

References
----------
.. [1] Powell, M.J.D. (1964). An efficient method for finding the minimum of
       a function of several variables without calculating derivatives.
       Computer Journal, 7:155-162.
.. [2] Brent, R.P. (1973). Algorithms for Minimization without Derivatives.
       Prentice-Hall, Chapter 5.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional, Sequence, Tuple

import numpy as np
import scipy.optimize

from synergy_aerosol.constants import BRENT_MAX_ITER, BRENT_XTOL, POWELL_MAX_ITER

logger = logging.getLogger(__name__)


@dataclass
class OptimizationResult:
    """
    Outcome of a minimization.

    Attributes
    ----------
    x : ndarray or float
        Best parameters found.
    fun : float
        Objective value at `x`.
    nit : int
        Number of iterations performed.
    nfev : int
        Number of objective evaluations.
    converged : bool
        False when the iteration cap stopped the search.
    """

    x: np.ndarray
    fun: float
    nit: int
    nfev: int
    converged: bool


def powell(
    func: Callable[[np.ndarray], float],
    x0: Sequence[float],
    ftol: float,
    maxiter: int = POWELL_MAX_ITER,
    direc: Optional[np.ndarray] = None,
) -> OptimizationResult:
    """
    Minimize a function of several variables with Powell's method.

    Parameters
    ----------
    func : callable
        Objective ``f(p) -> float``.
    x0 : sequence of float
        Starting point.
    ftol : float
        Fractional decrease of the objective below which the search stops.
    maxiter : int, optional
        Maximum number of direction-set iterations.
    direc : ndarray, optional
        Initial search directions (rows). Defaults to the unit basis.

    Returns
    -------
    OptimizationResult
        Best point and objective value.

    Notes
    -----
    Each iteration performs one line minimization along every direction of
    the current set and replaces the direction of largest decrease by the
    overall displacement. The search terminates when

    .. math::

        2 |f_{k} - f_{k+1}| \\le f_{tol} (|f_k| + |f_{k+1}|)
    """
    x0 = np.asarray(x0, dtype=np.float64)
    if direc is None:
        direc = np.eye(x0.size)

    res = scipy.optimize.minimize(
        func,
        x0,
        method="Powell",
        options={"ftol": ftol, "maxiter": maxiter, "direc": direc},
    )
    converged = bool(res.success)
    if not converged:
        logger.debug("Powell stopped after %d iterations: %s", res.nit, res.message)

    return OptimizationResult(
        x=np.atleast_1d(res.x),
        fun=float(res.fun),
        nit=int(res.nit),
        nfev=int(res.nfev),
        converged=converged,
    )


def brent(
    func: Callable[[float], float],
    bounds: Tuple[float, float],
    xatol: float = BRENT_XTOL,
    maxiter: int = BRENT_MAX_ITER,
) -> OptimizationResult:
    """
    Minimize a scalar function on a closed interval with Brent's method.

    Parameters
    ----------
    func : callable
        Objective ``f(x) -> float``.
    bounds : tuple of float
        Search interval ``(lower, upper)``.
    xatol : float, optional
        Absolute tolerance on the location of the minimum.
    maxiter : int, optional
        Maximum number of function evaluations.

    Returns
    -------
    OptimizationResult
        ``x`` holds the scalar minimizer.

    Notes
    -----
    Golden-section steps are combined with parabolic interpolation through
    the three best points; the bracketing interval never leaves `bounds`.
    """
    lower, upper = bounds
    if not lower < upper:
        raise ValueError(f"Invalid search interval {bounds}")

    res = scipy.optimize.minimize_scalar(
        func,
        bounds=(lower, upper),
        method="bounded",
        options={"xatol": xatol, "maxiter": maxiter},
    )
    converged = bool(res.success)
    if not converged:
        logger.debug("Brent stopped after %d evaluations: %s", res.nfev, res.message)

    return OptimizationResult(
        x=float(res.x),
        fun=float(res.fun),
        nit=int(getattr(res, "nit", res.nfev)),
        nfev=int(res.nfev),
        converged=converged,
    )
