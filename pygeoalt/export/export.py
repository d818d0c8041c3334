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

import json
import logging
from pathlib import Path

import pandas as pd

logger = logging.getLogger("EXPORT")

# Exported fields, in order
RESULT_FIELDS = [
    "phi_deg",
    "lambda_deg",
    "h_m",
    "eps_phi_pct",
    "eps_lambda_pct",
    "eps_h_pct",
    "used",
    "discarded",
    "calc_time_ms",
    "timestamp",
]


def output_base(input_path):
    """
    Exports go next to the input file: <dir>/<stem>
    """

    path = Path(input_path).resolve()
    return path.parent / path.stem


def result_record(result):
    """
    Flat dictionary with the exported fields of a GeoAltResult
    """

    return {
        "phi_deg": float(result.llh[0]),
        "lambda_deg": float(result.llh[1]),
        "h_m": float(result.llh[2]),
        "eps_phi_pct": float(result.eps[0]),
        "eps_lambda_pct": float(result.eps[1]),
        "eps_h_pct": float(result.eps[2]),
        "used": int(result.used),
        "discarded": int(result.discarded),
        "calc_time_ms": int(result.calc_time_ms),
        "timestamp": result.timestamp,
    }


def export_results(result, base):
    """
    Write <base>_result.csv and <base>_result.json

    Returns:
    Tuple with both paths
    """

    record = result_record(result)
    csv_path = Path(f"{base}_result.csv")
    json_path = Path(f"{base}_result.json")

    pd.DataFrame([record], columns=RESULT_FIELDS).to_csv(
        csv_path, index=False, float_format="%.17g"
    )

    # Unavailable errors are written as null
    record = {k: (None if pd.isna(v) else v) for (k, v) in record.items()}
    with open(json_path, "w", encoding="utf-8") as f:
        json.dump(record, f, indent=2, ensure_ascii=False)
        f.write("\n")

    logger.info(f"Exported {csv_path}")
    logger.info(f"Exported {json_path}")

    return (csv_path, json_path)


def build_protocol(
    used,
    discarded,
    rejections,
    iters,
    converged,
    note,
    cond,
    poor_geometry,
    covariance_ok=True,
    tol=1e-6,
    maxiter=1000,
    verbose=False,
):
    """
    Text protocol of a run

    Parameters:
    used, discarded: accepted and rejected line counts
    rejections: list of Rejection
    iters, converged: solver status
    note: '|' separated notes, may be empty
    cond: conditioning heuristic
    poor_geometry: flag for the conditioning heuristic
    verbose: add one line per rejection

    Returns:
    str with the protocol
    """

    lines = [
        "MODEL=WGS84; A=6378137; F=1/298.257223563;",
        f"CONV_CRITERION={tol:g}; MAX_ITERS={maxiter};",
        f"USED={used}; DISCARDED={discarded};",
        f"REASONS=[{';'.join(r.code.value for r in rejections)}];",
        f"SOLVER: iters={iters}; converged={'true' if converged else 'false'};",
    ]

    if note:
        lines.append(f"note={note};")

    lines.append(f"JTJ_COND_HEURISTIC={cond:.3E};")

    if poor_geometry:
        lines.append("WARNING=POOR_GEOMETRY;")
    if not covariance_ok:
        lines.append("WARNING=COVARIANCE_UNAVAILABLE;")

    if verbose:
        for r in rejections:
            lines.append(f"REJECTED: {r};")

    return "\n".join(lines) + "\n"


def export_protocol(protocol, base):
    protocol_path = Path(f"{base}_protocol.txt")

    with open(protocol_path, "w", encoding="utf-8") as f:
        f.write(protocol)

    logger.info(f"Exported {protocol_path}")
    return protocol_path
