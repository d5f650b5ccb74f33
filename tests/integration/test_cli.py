"""Tests for the command line interface."""

import os

import pytest
from click.testing import CliRunner

from lemraster.console import cli
from lemraster.inout import read_configfile


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def paramfile(tmp_path):
    filename = tmp_path / "small.param"
    filename.write_text(
        "Run name: small\n"
        "NRows: 10\n"
        "NCols: 8\n"
        "Seed: 5\n"
        "Time step: 100\n"
        "End time: 500\n"
        "Print interval: 0\n"
        "Print elevation: off\n"
    )
    return str(filename)


class TestCLI:

    @pytest.mark.integration
    def test_help(self, runner):
        result = runner.invoke(cli, ["--help"])
        assert result.exit_code == 0
        assert "run" in result.output
        assert "template" in result.output

    @pytest.mark.integration
    def test_run_requires_paramfile(self, runner):
        result = runner.invoke(cli, ["run"])
        assert result.exit_code != 0

    @pytest.mark.integration
    def test_template(self, runner, tmp_path):
        path = str(tmp_path / "template.param")
        result = runner.invoke(cli, ["template", path])
        assert result.exit_code == 0
        assert read_configfile(path)["run_name"] == "template"

    @pytest.mark.integration
    def test_run(self, runner, paramfile, tmp_path):
        log_file = str(tmp_path / "run.log")
        result = runner.invoke(cli, ["run", paramfile, "--log-file", log_file])
        assert result.exit_code == 0, result.output
        assert "Nonconverged" in result.output
        assert os.path.exists(os.path.join(str(tmp_path), "small_final"))
        assert os.path.exists(os.path.join(str(tmp_path), "small_report"))
        with open(log_file) as fp:
            assert "Run finished" in fp.read()

    @pytest.mark.integration
    def test_run_invalid_scheme(self, runner, paramfile):
        with open(paramfile, "a") as fp:
            fp.write("Non-linear: on\nNonlinear scheme: explicit\n")
        result = runner.invoke(cli, ["run", paramfile])
        assert result.exit_code == 1
        assert "Unknown nonlinear scheme" in result.output
