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

import pytest

import main
from conftest import observation_rows, write_csv


@pytest.fixture
def logfile(tmp_path):
    return str(tmp_path / "geoalt.log")


def test_valid_n4_exit_code(csv_n4, logfile, capsys):
    assert main.main([str(csv_n4), "--logfile", logfile]) == main.EXIT_OK

    out = capsys.readouterr().out
    assert "phi_deg=" in out
    assert "converged=true" in out
    assert (csv_n4.parent / f"{csv_n4.stem}_result.json").is_file()


def test_config_file(tmp_path, csv_n7, logfile, capsys):
    config = tmp_path / "config.json"
    config.write_text(json.dumps({"solver": {"maxiter": 1}}), encoding="utf-8")

    code = main.main([str(csv_n7), "-c", str(config), "--no-export", "--logfile", logfile])

    # Non-convergence is reported, not treated as a failure
    assert code == main.EXIT_OK
    out = capsys.readouterr().out
    assert "converged=false" in out
    assert "Iteration limit reached" in out
    assert not (csv_n7.parent / f"{csv_n7.stem}_result.csv").exists()


def test_not_enough_data(tmp_path, sat_llh, logfile, capsys):
    path = write_csv(tmp_path / "three.csv", observation_rows(sat_llh[:3]))

    assert main.main([str(path), "--logfile", logfile]) == main.EXIT_NOT_ENOUGH_DATA
    assert "ERR_NOT_ENOUGH_DATA" in capsys.readouterr().out
    assert (tmp_path / "three_protocol.txt").is_file()


def test_missing_input(tmp_path, logfile):
    assert main.main([str(tmp_path / "nope.csv"), "--logfile", logfile]) == main.EXIT_INPUT_ERROR


def test_unexpected_error(monkeypatch, csv_n4, logfile):
    def broken(config):
        raise KeyError("boom")

    monkeypatch.setattr(main, "pygeoalt", broken)

    assert main.main([str(csv_n4), "--logfile", logfile]) == main.EXIT_UNEXPECTED


def test_logging_config_file(tmp_path, csv_n4):
    config = tmp_path / "logging.yaml"
    config.write_text(
        "\n".join(
            [
                "version: 1",
                "disable_existing_loggers: false",
                "handlers:",
                "  logfile:",
                "    class: logging.handlers.RotatingFileHandler",
                f"    filename: {tmp_path / 'custom.log'}",
                "    maxBytes: 1000000",
                "    backupCount: 3",
                "root:",
                "  level: INFO",
                "  handlers: [logfile]",
            ]
        ),
        encoding="utf-8",
    )

    assert main.main([str(csv_n4), "--logging-config", str(config)]) == main.EXIT_OK
    assert "Start run" in (tmp_path / "custom.log").read_text(encoding="utf-8")


def test_default_logging_warns(csv_n4, logfile):
    assert main.main([str(csv_n4), "--logging-level", "WARN", "--logfile", logfile]) == main.EXIT_OK

    text = open(logfile, encoding="utf-8").read()
    assert "No logging configuration provided. Using default" in text
