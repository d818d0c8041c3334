#!/usr/bin/env python3

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


################################################################################
# Imports
import logging
import time
from dataclasses import dataclass, field
from datetime import datetime
from typing import List

from pygeoalt.export import export
from pygeoalt.geodesy import geodesy
from pygeoalt.ingest.csv_load import Rejection, csv_load
from pygeoalt.linalg.linalg3 import ndarray_f64
from pygeoalt.mlat import gn
from pygeoalt.uncertainty import uncertainty

logger = logging.getLogger("PYGEOALT")

# Minimum number of accepted observations
MIN_OBSERVATIONS = 4


class NotEnoughDataError(RuntimeError):
    pass


@dataclass
class GeoAltResult:
    llh: ndarray_f64
    eps: ndarray_f64
    iters: int
    converged: bool
    cond: float
    poor_geometry: bool
    covariance_ok: bool
    used: int
    discarded: int = 0
    rejections: List[Rejection] = field(default_factory=list)
    calc_time_ms: int = 0
    timestamp: str = ""
    note: str = ""


def build_note(converged, poor_geometry, covariance_ok=True):
    notes = []
    if not converged:
        notes.append("ITERATION_LIMIT")
    if poor_geometry:
        notes.append("POOR_GEOMETRY")
    if not covariance_ok:
        notes.append("COVARIANCE_UNAVAILABLE")

    return "|".join(notes)


################################################################################
# PYGEOALT functions
def solve(observations, maxiter=gn.MAXITER, tol=gn.TOLERANCE, damping=gn.DAMPING):
    """
    Obtain the receiver position and its relative errors

    Parameters:
    observations: DataFrame with 'r', 'dr', 'latitude', 'dlatitude',
    'longitude', 'dlongitude', 'height', 'dheight' columns
    maxiter, tol, damping: solver settings

    Returns:
    GeoAltResult with latitude, longitude, height and relative errors
    """

    if len(observations) < MIN_OBSERVATIONS:
        raise NotEnoughDataError(
            f"Not enough data to determine latitude, longitude and height (N={len(observations)}<{MIN_OBSERVATIONS})"
        )

    t0 = time.perf_counter()

    sat_llh = observations[["latitude", "longitude", "height"]].to_numpy()
    sat_sigma = observations[["dlatitude", "dlongitude", "dheight"]].to_numpy()
    ranges = observations["r"].to_numpy()
    dr = observations["dr"].to_numpy()

    satellites = geodesy.llh2ecef(sat_llh)

    solution = gn.gauss_newton(
        satellites, ranges, maxiter=maxiter, tol=tol, damping=damping
    )
    llh = geodesy.ecef2llh(solution.position).squeeze()

    logger.info(
        f"Solver: iters={solution.iters}; converged={solution.converged}; "
        f"result={llh[0]:.8f},{llh[1]:.8f},{llh[2]:.3f}"
    )

    unc = uncertainty.propagate(sat_llh, sat_sigma, dr, solution)

    calc_time_ms = int(round((time.perf_counter() - t0) * 1000))

    return GeoAltResult(
        llh=llh,
        eps=unc.eps,
        iters=solution.iters,
        converged=solution.converged,
        cond=unc.cond,
        poor_geometry=unc.poor_geometry,
        covariance_ok=unc.covariance_ok,
        used=len(observations),
        calc_time_ms=calc_time_ms,
        timestamp=datetime.now().astimezone().isoformat(),
        note=build_note(solution.converged, unc.poor_geometry, unc.covariance_ok),
    )


def pygeoalt(config):
    """
    Load the observations, obtain the position and export the results

    Parameters:
    config: dictionary with the configuration

    Returns:
    GeoAltResult
    """

    ###########################################################################
    # Load configuration
    filename = config["input"]
    verbose = config.get("verbose", False)
    do_export = config.get("export", True)

    solver = config.get("solver", {})
    maxiter = solver.get("maxiter", gn.MAXITER)
    tol = solver.get("tol", gn.TOLERANCE)
    damping = solver.get("damping", gn.DAMPING)

    base = export.output_base(filename)
    logger.info(f"Start run: {filename}")

    ###########################################################################
    # Observations
    (observations, rejections) = csv_load(filename)
    used = len(observations)
    discarded = len({r.line for r in rejections})

    if used < MIN_OBSERVATIONS:
        logger.error(f"Not enough valid observations ({used}<{MIN_OBSERVATIONS})")
        if do_export:
            protocol = export.build_protocol(
                used,
                discarded,
                rejections,
                0,
                False,
                "NOT_ENOUGH_DATA",
                0.0,
                False,
                tol=tol,
                maxiter=maxiter,
                verbose=verbose,
            )
            export.export_protocol(protocol, base)

        raise NotEnoughDataError(
            f"Not enough data to determine latitude, longitude and height (N={used}<{MIN_OBSERVATIONS})"
        )

    ###########################################################################
    # Position and uncertainty
    result = solve(observations, maxiter=maxiter, tol=tol, damping=damping)
    result.discarded = discarded
    result.rejections = rejections

    ###########################################################################
    # Exports
    if do_export:
        export.export_results(result, base)

        protocol = export.build_protocol(
            result.used,
            result.discarded,
            result.rejections,
            result.iters,
            result.converged,
            result.note,
            result.cond,
            result.poor_geometry,
            covariance_ok=result.covariance_ok,
            tol=tol,
            maxiter=maxiter,
            verbose=verbose,
        )
        export.export_protocol(protocol, base)

    logger.info(
        f"Finish: used={result.used}; discarded={result.discarded}; "
        f"iters={result.iters}; conv={result.converged}; ms={result.calc_time_ms}"
    )

    return result
