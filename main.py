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

import argparse
import json
import logging
import logging.config
import logging.handlers
import sys

import yaml

from pygeoalt.ingest.csv_load import InputFileError
from pygeoalt.pygeoalt import NotEnoughDataError, pygeoalt

################################################################################
# Logging library configuration
logger = logging.getLogger("MAIN")

# Log rotation
LOGFILE = "geoalt.log"
LOGFILE_MAX_BYTES = 1_000_000
LOGFILE_BACKUPS = 3

# Exit codes
EXIT_OK = 0
EXIT_NOT_ENOUGH_DATA = 2
EXIT_INPUT_ERROR = 3
EXIT_UNEXPECTED = 4


# Load user defined configuration
def configure_logger(filename=None, level="INFO", logfile=LOGFILE):

    if filename == None:
        handlers = [logging.StreamHandler()]
        if logfile:
            handlers.append(
                logging.handlers.RotatingFileHandler(
                    logfile,
                    maxBytes=LOGFILE_MAX_BYTES,
                    backupCount=LOGFILE_BACKUPS,
                    encoding="utf-8",
                )
            )

        logging.basicConfig(
            level=level,
            format="%(name)s \t- %(levelname)s \t- %(message)s",
            handlers=handlers,
            force=True,
        )

        logger.warning("No logging configuration provided. Using default")

    else:
        with open(filename, "r") as f:
            config = yaml.safe_load(f.read())
            logging.config.dictConfig(config)


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        description="Receiver latitude, longitude and height from satellite ranges"
    )

    parser.add_argument(
        "input",
        type=str,
        help="CSV file with the columns ri,Δri,φi,Δφi,λi,Δλi,hi,Δhi",
    )

    # Solver configuration
    parser.add_argument(
        "-c",
        "--config",
        type=str,
        required=False,
        default=None,
        help="Configuration file for the solver in JSON format",
    )

    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Add rejection details to the protocol",
    )

    parser.add_argument(
        "--no-export",
        action="store_true",
        help="Do not write result and protocol files",
    )

    # Logging
    parser.add_argument(
        "--logging-config",
        type=str,
        required=False,
        help="Logging configuration file",
        default=None,
    )

    parser.add_argument(
        "--logging-level",
        type=str,
        choices=["DEBUG", "INFO", "WARN", "ERROR", "CRITICAL"],
        default="INFO",
        required=False,
        help="Debug level [Default: INFO]",
    )

    parser.add_argument(
        "--logfile",
        type=str,
        default=LOGFILE,
        help=f"Rotating log file used without --logging-config [Default: {LOGFILE}]",
    )

    return parser.parse_args(argv)


def load_config(args):
    config = {}
    if args.config is not None:
        with open(args.config) as f:
            config = json.load(f)

    config["input"] = args.input
    config["verbose"] = args.verbose or config.get("verbose", False)
    if args.no_export:
        config["export"] = False

    return config


def print_result(result):
    print("=== Result ===")
    print(f"phi_deg={result.llh[0]:.8f}")
    print(f"lambda_deg={result.llh[1]:.8f}")
    print(f"h_m={result.llh[2]:.3f}")
    print(f"eps_phi_pct={result.eps[0]:.2f}")
    print(f"eps_lambda_pct={result.eps[1]:.2f}")
    print(f"eps_h_pct={result.eps[2]:.2f}")
    print(f"used={result.used}; discarded={result.discarded}; calc_time_ms={result.calc_time_ms}")
    print(f"iters={result.iters}; converged={'true' if result.converged else 'false'}")

    if not result.converged:
        print("WARNING: Iteration limit reached without convergence (preliminary result)")
    if result.poor_geometry:
        print("WARNING: POOR_GEOMETRY (uncertainty may be large)")
    if not result.covariance_ok:
        print("WARNING: Receiver covariance unavailable")


def main(argv=None):
    args = parse_args(argv)

    # Parse logger configuration
    configure_logger(
        filename=args.logging_config, level=args.logging_level, logfile=args.logfile
    )

    try:
        config = load_config(args)

        # Position estimation
        result = pygeoalt(config)

    except NotEnoughDataError as e:
        print(f"ERR_NOT_ENOUGH_DATA: {e}")
        return EXIT_NOT_ENOUGH_DATA

    except (InputFileError, OSError, json.JSONDecodeError) as e:
        print(f"ERR_INPUT: {e}")
        logger.error(str(e))
        return EXIT_INPUT_ERROR

    except Exception:
        print(f"Unexpected error. See {args.logfile}")
        logger.exception("Unexpected error")
        return EXIT_UNEXPECTED

    print_result(result)

    return EXIT_OK


################################################################################
# MAIN definition
if __name__ == "__main__":
    sys.exit(main())
