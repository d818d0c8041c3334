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

import numpy as np
import pandas as pd
import pytest

from pygeoalt.geodesy import geodesy
from pygeoalt.ingest.csv_load import COLUMNS, HEADER

# Receiver used to synthesize the ranges
RX_TRUE = np.array([50.0, 30.0, 250.0])

# Satellite height (m)
SAT_HEIGHT = 20200000.0

# Observation sigmas: dr, dlat, dlon, dh
SIGMAS = (5.0, 0.001, 0.001, 5.0)


def wrap_longitude(lon):
    return (lon + 180.0) % 360.0 - 180.0


def satellites_llh():
    offsets = [
        (20.0, 0.0),
        (-15.0, 40.0),
        (5.0, -60.0),
        (-25.0, -20.0),
        (10.0, 100.0),
        (-35.0, -120.0),
        (30.0, 160.0),
    ]
    return np.array(
        [[RX_TRUE[0] + dp, wrap_longitude(RX_TRUE[1] + dl), SAT_HEIGHT] for (dp, dl) in offsets]
    )


def poor_satellites_llh():
    offsets = [(0.05, 0.0), (0.05, 0.05), (0.10, 0.05), (0.10, 0.0)]
    return np.array(
        [[RX_TRUE[0] + dp, RX_TRUE[1] + dl, SAT_HEIGHT] for (dp, dl) in offsets]
    )


def true_ranges(sat_llh, rx_llh=RX_TRUE):
    rx = geodesy.llh2ecef(rx_llh)
    return geodesy.ecef_distance(geodesy.llh2ecef(sat_llh), rx)


def observation_rows(sat_llh, sigmas=SIGMAS):
    (dr, dlat, dlon, dh) = sigmas
    ranges = true_ranges(sat_llh)
    return [
        [r, dr, s[0], dlat, s[1], dlon, s[2], dh] for (r, s) in zip(ranges, sat_llh)
    ]


def write_csv(path, rows, header=True):
    lines = []
    if header:
        lines.append(",".join(HEADER))
    for row in rows:
        lines.append(",".join(v if isinstance(v, str) else repr(float(v)) for v in row))

    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


@pytest.fixture
def sat_llh():
    return satellites_llh()


@pytest.fixture
def satellites(sat_llh):
    return geodesy.llh2ecef(sat_llh)


@pytest.fixture
def ranges(sat_llh):
    return true_ranges(sat_llh)


@pytest.fixture
def observations(sat_llh):
    return pd.DataFrame(observation_rows(sat_llh), columns=COLUMNS)


@pytest.fixture
def csv_n7(tmp_path, sat_llh):
    return write_csv(tmp_path / "valid_7rows.csv", observation_rows(sat_llh))


@pytest.fixture
def csv_n4(tmp_path, sat_llh):
    return write_csv(tmp_path / "valid_4rows.csv", observation_rows(sat_llh[:4]))
