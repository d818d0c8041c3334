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

from dataclasses import dataclass

import numpy as np

# Fixed point iteration for ecef2llh
LAT_MAXITER = 20
LAT_TOLERANCE = 1e-12

# Geodetic class
@dataclass
class geoC:
    # WGS-84 ellipsoid
    WGS84_A: float = 6378137.0
    WGS84_F: float = 1.0 / 298.257223563
    WGS84_ECC_SQ: float = 2 * WGS84_F - WGS84_F * WGS84_F


def ecef_distance(p0, p1):
    """
    Distance from ECEF/Euclidean (XYZ) coordinates

    Parameters:
    p0: numpy array of shape(N,3) or (3,)
    p1: numpy array of shape(N,3) or (3,)

    Returns:
    np.array(N,): 3D distance
    """

    return np.sqrt(np.sum((np.asarray(p0) - np.asarray(p1)) ** 2, axis=-1))


def prime_vertical_radius(lat):
    """
    Radius of curvature in the prime vertical N(lat), lat in radians
    """

    slat = np.sin(lat)
    return geoC.WGS84_A / np.sqrt(1 - geoC.WGS84_ECC_SQ * slat * slat)


def llh2ecef(llh):
    """
    Compute ECEF coordinates from latitude, longitude and altitude

    Parameters:
    llh: numpy array of shape(N,3) in degrees, degrees and meters

    Returns:
    np.array(N,3): ECEF coordinates in meters
    """

    llh = np.asarray(llh, dtype=np.float64).reshape(-1, 3)

    lat = deg2rad(llh[:, 0])
    lon = deg2rad(llh[:, 1])
    alt = llh[:, 2]

    slat = np.sin(lat)
    slon = np.sin(lon)
    clat = np.cos(lat)
    clon = np.cos(lon)

    rn = prime_vertical_radius(lat)

    x = (rn + alt) * clat * clon
    y = (rn + alt) * clat * slon
    z = (rn * (1 - geoC.WGS84_ECC_SQ) + alt) * slat

    return np.vstack((x, y, z)).T


def ecef2llh(ecef):
    """
    Compute latitude, longitude and altitude from ECEF coordinates

    Latitude is refined by fixed point iteration, each point stops on its
    own once the update falls below LAT_TOLERANCE radians. Altitude is
    recomputed from the final latitude.

    Parameters:
    ecef: numpy array of shape(N,3)

    Returns:
    np.array(N,3): latitude, longitude, altitude
    """

    ecef = np.asarray(ecef, dtype=np.float64).reshape(-1, 3)

    x = ecef[:, 0]
    y = ecef[:, 1]
    z = ecef[:, 2]

    lon = np.arctan2(y, x)

    p = np.sqrt(x**2 + y**2)
    lat = np.arctan2(z, p * (1 - geoC.WGS84_ECC_SQ))

    active = np.ones(lat.shape, dtype=bool)
    with np.errstate(divide="ignore", invalid="ignore"):
        for _ in range(LAT_MAXITER):
            N = prime_vertical_radius(lat)
            alt = p / np.cos(lat) - N
            lat_new = np.arctan2(
                z, p * (1 - geoC.WGS84_ECC_SQ * N / (N + alt))
            )

            done = np.abs(lat_new - lat) < LAT_TOLERANCE
            lat = np.where(active, lat_new, lat)
            active &= ~done
            if not active.any():
                break

        N = prime_vertical_radius(lat)
        alt = p / np.cos(lat) - N

    return np.vstack((rad2deg(lat), rad2deg(lon), alt)).T


def rad2deg(radian):
    return radian * 180.0 / np.pi


def deg2rad(angle):
    return angle * np.pi / 180.0
