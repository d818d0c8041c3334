#   Copyright (C) IMDEA Networks Institute 2022
#   This program is free software: you can redistribute it and/or modify
#
#   it under the terms of the GNU General Public License as published by
#   the Free Software Foundation, either version 3 of the License, or
#   (at your option) any later version.
#
#   This program is distributed in the hope that it will be useful,
#   but WITHOUT ANY WARRANTY; without even the implied warranty of
#   MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
#   GNU General Public License for more details.
#
#   You should have received a copy of the GNU General Public License
#   along with this program.  If not, see http://www.gnu.org/licenses/.
#

import logging
from dataclasses import dataclass

import numpy as np

from pygeoalt.geodesy.geodesy import geoC
from pygeoalt.linalg.linalg3 import SingularMatrixError, ndarray_f64, solve3x3

logger = logging.getLogger("MLAT")

# Default solver settings
MAXITER = 1000
TOLERANCE = 1e-6
DAMPING = 1e-3

# Floor for the modeled range
MIN_RANGE = 1e-12


@dataclass
class SolveResult:
    position: ndarray_f64
    iters: int
    converged: bool
    jtj: ndarray_f64
    jrows: ndarray_f64
    gmodel: ndarray_f64


def initial_guess(satellites):
    """
    Starting point for the iterations: centroid of the satellites pulled
    down to 100 m below the equatorial radius

    Parameters:
    satellites: np.array of shape (N,3) with ECEF positions

    Returns:
    np.array(3,) with the ECEF starting point
    """

    c = np.mean(satellites, axis=0)

    r = np.linalg.norm(c)
    if r < 1:
        r = geoC.WGS84_A

    return c * (geoC.WGS84_A - 100.0) / r


def linearize(X, satellites, ranges):
    """
    Modeled ranges, residuals and unit vector rows at X
    ---
    """

    diff = X - satellites
    g = np.maximum(np.sqrt(np.sum(diff**2, axis=1)), MIN_RANGE)

    v = ranges - g
    J = diff / g.reshape(-1, 1)

    return (g, v, J)


def gauss_newton(satellites, ranges, maxiter=MAXITER, tol=TOLERANCE, damping=DAMPING):
    """
    Estimate the receiver position from ranges to known satellites using
    a damped Gauss-Newton method

    Parameters:
    satellites: np.array of shape (N,3) with ECEF positions
    ranges: np.array of shape (N,) with the measured ranges
    maxiter: maximum number of iterations
    tol: convergence threshold on the update norm (meters)
    damping: value added to the normal matrix diagonal every iteration

    Returns:
    SolveResult with the last estimate, the final normal matrix and the
    final linearization rows
    """

    satellites = np.asarray(satellites, dtype=np.float64).reshape(-1, 3)
    ranges = np.asarray(ranges, dtype=np.float64).reshape(-1)

    if satellites.shape[0] != ranges.shape[0]:
        raise ValueError(
            f"Got {satellites.shape[0]} satellites and {ranges.shape[0]} ranges"
        )
    if satellites.shape[0] < 4:
        raise ValueError("At least 4 observations are needed")

    X = initial_guess(satellites)
    JTJ = np.zeros((3, 3))
    J = np.zeros((0, 3))
    g = np.zeros(0)

    for k in range(maxiter):
        (g, v, J) = linearize(X, satellites, ranges)

        JTJ = J.T @ J + damping * np.eye(3)
        JTv = J.T @ v

        try:
            delta = solve3x3(JTJ, JTv)
        except SingularMatrixError:
            logger.warning(f"Ill-conditioned normal matrix at iteration {k}, stopping")
            return SolveResult(X, k, False, JTJ, J, g)

        X = X + delta

        norm = np.linalg.norm(delta)
        logger.debug(f"iter={k + 1}; |dr|={norm:.6f} m")

        if norm <= tol:
            return SolveResult(X, k + 1, True, JTJ, J, g)

    logger.warning(f"Reached maximum number of iterations ({maxiter})")
    return SolveResult(X, maxiter, False, JTJ, J, g)
