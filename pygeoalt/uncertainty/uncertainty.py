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
from typing import Optional

import numpy as np

from pygeoalt.geodesy import geodesy
from pygeoalt.linalg.linalg3 import (
    SingularMatrixError,
    determinant3x3,
    invert3x3,
    multiply3x3,
    ndarray_f64,
    transpose3x3,
)
from pygeoalt.mlat.gn import SolveResult

logger = logging.getLogger("UNCERTAINTY")

# Finite difference steps. Changing them changes the results slightly
ANGLE_STEP_RAD = 1e-6
HEIGHT_STEP_M = 1e-3
ECEF_STEP_M = 1e-3

# Floors and regularizers
MIN_VARIANCE = 1e-18
MIN_DETERMINANT = 1e-24
REGULARIZER = 1e-9
MIN_DENOMINATOR = 1e-9

# Conditioning heuristic above which the geometry is flagged
POOR_GEOMETRY_THRESHOLD = 1e12


@dataclass
class UncertaintyResult:
    sigma: ndarray_f64
    cond: float
    covariance_ok: bool
    cov_ecef: Optional[ndarray_f64]
    cov_llh: Optional[ndarray_f64]
    eps: ndarray_f64

    @property
    def poor_geometry(self) -> bool:
        return bool(self.cond >= POOR_GEOMETRY_THRESHOLD)


def effective_sigma(
    sat_llh: ndarray_f64,
    sat_sigma: ndarray_f64,
    dr: ndarray_f64,
    receiver: ndarray_f64,
) -> ndarray_f64:
    """
    Range sigma per observation, including the effect of the satellite
    position uncertainty

    Each satellite coordinate is perturbed symmetrically, the derivative of
    the range with respect to it is scaled by the coordinate sigma and
    added in quadrature to the range sigma.

    Parameters:
    sat_llh: np.array of shape (N,3) with satellite latitude, longitude, height
    sat_sigma: np.array of shape (N,3) with their sigmas (degrees, degrees, meters)
    dr: np.array of shape (N,) with the range sigmas
    receiver: np.array of shape (3,) with the receiver ECEF position

    Returns:
    np.array(N,) with the effective sigmas in meters
    """

    sat_llh = np.asarray(sat_llh, dtype=np.float64).reshape(-1, 3)
    sat_sigma = np.abs(np.asarray(sat_sigma, dtype=np.float64).reshape(-1, 3))
    dr = np.asarray(dr, dtype=np.float64).reshape(-1)

    var = dr**2

    # Steps in the units llh2ecef expects, and the matching derivative units
    steps = np.array(
        [geodesy.rad2deg(ANGLE_STEP_RAD), geodesy.rad2deg(ANGLE_STEP_RAD), HEIGHT_STEP_M]
    )
    denominators = np.array([ANGLE_STEP_RAD, ANGLE_STEP_RAD, HEIGHT_STEP_M])
    sigmas = np.hstack(
        (geodesy.deg2rad(sat_sigma[:, 0:2]), sat_sigma[:, 2].reshape(-1, 1))
    )

    for i in range(3):
        offset = np.zeros(3)
        offset[i] = steps[i]

        g_plus = geodesy.ecef_distance(receiver, geodesy.llh2ecef(sat_llh + offset))
        g_minus = geodesy.ecef_distance(receiver, geodesy.llh2ecef(sat_llh - offset))
        dg = (g_plus - g_minus) / (2 * denominators[i])

        var = var + (dg * sigmas[:, i]) ** 2

    return np.sqrt(np.maximum(var, MIN_VARIANCE))


def weighted_normal(jrows: ndarray_f64, sigma: ndarray_f64) -> ndarray_f64:
    """
    Weighted normal matrix sum(j_i j_i^T / sigma_i^2)

    Parameters:
    jrows: np.array of shape (N,3) with the final linearization rows
    sigma: np.array of shape (N,) with the effective sigmas

    Returns:
    np.array(3,3)
    """

    jrows = np.asarray(jrows, dtype=np.float64).reshape(-1, 3)
    w = 1.0 / (np.asarray(sigma, dtype=np.float64) ** 2 + MIN_VARIANCE)

    return (jrows * w.reshape(-1, 1)).T @ jrows


def conditioning(W: ndarray_f64) -> float:
    """
    trace^3/det of the weighted normal matrix, large values mean poor
    satellite geometry
    """

    tr = np.trace(W)
    det = max(determinant3x3(W), MIN_DETERMINANT)

    return float(tr**3 / det)


def covariance_ecef(W: ndarray_f64) -> ndarray_f64:
    """
    Receiver covariance in ECEF, the inverse of the regularized weighted
    normal matrix

    Raises SingularMatrixError when the matrix cannot be inverted
    """

    return invert3x3(W + REGULARIZER * np.eye(3))


def geodetic_jacobian(receiver: ndarray_f64, step: float = ECEF_STEP_M) -> ndarray_f64:
    """
    Numerical jacobian of (lat, lon, h) with respect to (X, Y, Z)

    Rows are latitude, longitude (degrees per meter) and height, columns
    are the ECEF axes.
    """

    receiver = np.asarray(receiver, dtype=np.float64).reshape(3)

    # Rows 0..2 are +step along each axis, rows 3..5 are -step
    offsets = np.vstack((np.eye(3), -np.eye(3))) * step
    llh = geodesy.ecef2llh(receiver + offsets)

    d = llh[0:3, :] - llh[3:6, :]
    # Longitude jumps by 360 degrees across the antimeridian
    d[:, 1] = (d[:, 1] + 180.0) % 360.0 - 180.0

    return d.T / (2 * step)


def covariance_llh(cov: ndarray_f64, jac: ndarray_f64) -> ndarray_f64:
    return multiply3x3(multiply3x3(jac, cov), transpose3x3(jac))


def round_half_away(x, decimals=2):
    scale = 10.0**decimals
    return np.sign(x) * np.floor(np.abs(x) * scale + 0.5) / scale


def relative_errors(llh: ndarray_f64, cov: ndarray_f64) -> ndarray_f64:
    """
    Relative errors in percent for latitude, longitude and height

    Parameters:
    llh: np.array of shape (3,) with the solved position
    cov: np.array of shape (3,3) with its covariance

    Returns:
    np.array(3,) rounded to 2 decimals
    """

    llh = np.asarray(llh, dtype=np.float64).reshape(3)

    sigma = np.sqrt(np.maximum(np.diag(cov), 0.0))
    eps = 100.0 * sigma / np.maximum(np.abs(llh), MIN_DENOMINATOR)

    return round_half_away(eps, 2)


def propagate(sat_llh, sat_sigma, dr, solution: SolveResult) -> UncertaintyResult:
    """
    Turn the observation sigmas and the solver linearization into relative
    errors of the solved latitude, longitude and height
    """

    sigma = effective_sigma(sat_llh, sat_sigma, dr, solution.position)
    logger.debug(f"Effective sigmas: {np.array2string(sigma, precision=3)}")

    W = weighted_normal(solution.jrows, sigma)
    cond = conditioning(W)
    if cond >= POOR_GEOMETRY_THRESHOLD:
        logger.warning(f"Poor geometry: conditioning heuristic {cond:.3E}")

    try:
        cov = covariance_ecef(W)
    except SingularMatrixError as e:
        logger.error(f"Receiver covariance unavailable: {e}")
        return UncertaintyResult(sigma, cond, False, None, None, np.full(3, np.nan))

    llh = geodesy.ecef2llh(solution.position).squeeze()
    jac = geodetic_jacobian(solution.position)
    cov_llh = covariance_llh(cov, jac)

    return UncertaintyResult(sigma, cond, True, cov, cov_llh, relative_errors(llh, cov_llh))
