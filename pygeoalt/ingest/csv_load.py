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
import math
import re
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import List, Tuple

import pandas as pd

logger = logging.getLogger("INGEST")

# Input header, in column order
HEADER = ["ri", "Δri", "φi", "Δφi", "λi", "Δλi", "hi", "Δhi"]

# Names of the accepted observation columns, same order as HEADER
COLUMNS = [
    "r",
    "dr",
    "latitude",
    "dlatitude",
    "longitude",
    "dlongitude",
    "height",
    "dheight",
]

# Plain decimal number, optional exponent
NUMBER = re.compile(r"[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")


class InputFileError(RuntimeError):
    pass


class RejectionCode(Enum):
    OUT_OF_RANGE_LAT = "OUT_OF_RANGE_LAT"
    OUT_OF_RANGE_LON = "OUT_OF_RANGE_LON"
    NEGATIVE_DISTANCE = "NEGATIVE_DISTANCE"
    NEGATIVE_SIGMA = "NEGATIVE_SIGMA"
    BAD_NUMBER_FORMAT = "BAD_NUMBER_FORMAT"
    MISSING_COLUMN = "MISSING_COLUMN"


@dataclass(frozen=True)
class Rejection:
    line: int
    code: RejectionCode
    field: str
    message: str

    def __str__(self):
        return f"line={self.line}; code={self.code.value}; field={self.field}; msg={self.message}"


def parse_float(s):
    """
    Parse a number written with a dot as decimal separator. Returns None
    when the text is not a finite number
    """

    s = s.strip()
    if NUMBER.fullmatch(s) is None:
        return None

    value = float(s)
    if not math.isfinite(value):
        return None

    return value


def is_header(cells):
    return len(cells) == len(HEADER) and all(
        c.strip() == h for (c, h) in zip(cells, HEADER)
    )


def validate(lineno, values):
    """
    Semantic checks of an already parsed row

    Returns:
    list of Rejection, empty when the row is valid
    """

    (r, dr, lat, dlat, lon, dlon, _, dh) = values
    rejections = []

    if r <= 0:
        rejections.append(
            Rejection(lineno, RejectionCode.NEGATIVE_DISTANCE, "ri", "Expected a positive value for ri (>0)")
        )
    if dr < 0:
        rejections.append(
            Rejection(lineno, RejectionCode.NEGATIVE_SIGMA, "Δri", "Expected a non-negative value for Δri (>=0)")
        )
    if lat < -90 or lat > 90:
        rejections.append(
            Rejection(lineno, RejectionCode.OUT_OF_RANGE_LAT, "φi", "Value out of range: φi [-90..90]")
        )
    if lon < -180 or lon > 180:
        rejections.append(
            Rejection(lineno, RejectionCode.OUT_OF_RANGE_LON, "λi", "Value out of range: λi [-180..180]")
        )

    for (name, sigma) in (("Δφi", dlat), ("Δλi", dlon), ("Δhi", dh)):
        if sigma < 0:
            rejections.append(
                Rejection(lineno, RejectionCode.NEGATIVE_SIGMA, name, f"Expected a non-negative value for {name} (>=0)")
            )

    return rejections


def log_rejection(rejection):
    if rejection.code in (RejectionCode.BAD_NUMBER_FORMAT, RejectionCode.MISSING_COLUMN):
        logger.error(f"{rejection.code.value} at line {rejection.line}, field {rejection.field}")
    else:
        logger.warning(f"{rejection.code.value} at line {rejection.line}, field {rejection.field}")


def csv_load(filename) -> Tuple[pd.DataFrame, List[Rejection]]:
    """
    Load and validate satellite observations from a CSV file

    Parameters:
    filename: Name of the file to process. One observation per line with
    the columns ri,Δri,φi,Δφi,λi,Δλi,hi,Δhi. An optional header line with
    exactly those names is skipped

    Returns:
    Tuple with a DataFrame of accepted observations (COLUMNS) and the list
    of rejected lines
    """

    path = Path(filename)
    if not path.is_file():
        raise InputFileError(f"Input file not found: {filename}")

    rows = []
    rejections = []
    header_checked = False

    with open(path, "r", encoding="utf-8-sig") as f:
        for (lineno, line) in enumerate(f, start=1):
            line = line.rstrip("\r\n")
            if line.strip() == "":
                continue

            cells = line.split(",")

            if not header_checked:
                header_checked = True
                if is_header(cells):
                    logger.debug("Header detected")
                    continue

            if len(cells) != len(HEADER):
                rejection = Rejection(
                    lineno,
                    RejectionCode.MISSING_COLUMN,
                    "schema",
                    f"Expected {len(HEADER)} columns: {','.join(HEADER)}",
                )
                rejections.append(rejection)
                log_rejection(rejection)
                continue

            values = []
            for (name, cell) in zip(HEADER, cells):
                value = parse_float(cell)
                if value is None:
                    break
                values.append(value)

            if len(values) != len(HEADER):
                rejection = Rejection(
                    lineno,
                    RejectionCode.BAD_NUMBER_FORMAT,
                    name,
                    f"Invalid number format in field {name}",
                )
                rejections.append(rejection)
                log_rejection(rejection)
                continue

            row_rejections = validate(lineno, values)
            for rejection in row_rejections:
                log_rejection(rejection)
            rejections.extend(row_rejections)

            if not row_rejections:
                rows.append(values)

    observations = pd.DataFrame(rows, columns=COLUMNS, dtype="float64")
    logger.info(f"Loaded {len(observations)} observations, {len(rejections)} rejections")

    return (observations, rejections)
