"""Unit tests for report and raster output."""

import os

import numpy as np
import pytest

from lemraster.clock import SimulationClock
from lemraster.constants import FINAL_REPORT_COLUMNS, REPORT_COLUMNS
from lemraster.grid import GridField
from lemraster.report import ReportWriter, erosion_rate


@pytest.fixture
def writer(config):
    grid = GridField.zeros(config["nrows"], config["ncols"], config["resolution"])
    with ReportWriter(config, grid) as w:
        yield w


class TestErosionRate:

    @pytest.mark.unit
    def test_rate(self):
        z_old = np.ones((3, 3))
        z = np.full((3, 3), 0.5)
        e = erosion_rate(z, z_old, 1e-3, 100.0)
        np.testing.assert_allclose(e, 0.006)

    @pytest.mark.unit
    def test_nodata(self):
        z = np.zeros((2, 2))
        valid = np.array([[True, False], [True, True]])
        e = erosion_rate(z, z, 0.0, 1.0, valid=valid, nodata=-99.0)
        assert e[0, 1] == -99.0
        assert e[0, 0] == 0.0


class TestReportWriter:

    @pytest.mark.unit
    def test_timestep_report(self, writer, config, ridge, bpbp):
        clock = SimulationClock(time_step=100.0)
        clock.current_time = 100.0
        z_old = ridge + 0.1
        area = np.full(ridge.shape, 100.0)
        base_level = bpbp.base_level_mask(ridge.shape)

        erosion = writer.write_report(clock, ridge, z_old, np.zeros(ridge.shape),
                                      2e-4, 0.02, area, base_level)
        writer.close()

        assert erosion == pytest.approx(1e-3)
        with open(os.path.join(config["output_dir"], "test_report")) as fp:
            lines = fp.read().splitlines()
        assert lines[0] == "test"
        assert lines[1].split("\t") == list(REPORT_COLUMNS)
        assert len(lines[2].split("\t")) == len(REPORT_COLUMNS)

    @pytest.mark.unit
    def test_report_without_fluvial(self, writer, config, ridge, bpbp):
        config["fluvial"] = False
        clock = SimulationClock()
        clock.current_time = 100.0
        writer.write_report(clock, ridge, ridge, np.zeros(ridge.shape), 2e-4, 0.02,
                            np.ones(ridge.shape), bpbp.base_level_mask(ridge.shape))
        writer.close()

        with open(os.path.join(config["output_dir"], "test_report")) as fp:
            header = fp.read().splitlines()[1].split("\t")
        assert "K" not in header
        assert "D" in header

    @pytest.mark.unit
    def test_report_delay(self, writer, config, ridge, bpbp):
        config["report_delay"] = 500.0
        clock = SimulationClock()
        clock.current_time = 100.0
        writer.write_report(clock, ridge, ridge, np.zeros(ridge.shape), 2e-4, 0.02,
                            np.ones(ridge.shape), bpbp.base_level_mask(ridge.shape))
        assert not os.path.exists(os.path.join(config["output_dir"], "test_report"))

    @pytest.mark.unit
    def test_final_report(self, writer, config):
        clock = SimulationClock(end_time=1000.0)
        clock.current_time = 1000.0
        writer.total_erosion = 0.5
        result = writer.final_report(clock, 1, 0.0, 0.0, nonconverged=3)

        assert list(result) == list(FINAL_REPORT_COLUMNS)
        assert result["Averaged"] == pytest.approx(0.5 / 1000.0)
        assert result["Response"] == -99.0
        assert result["Nonconverged"] == 3
        assert os.path.exists(os.path.join(config["output_dir"], "test_final"))

    @pytest.mark.unit
    def test_print_rasters(self, writer, config, ridge):
        config.update(print_elevation=True, print_hillshade=True,
                      print_erosion=True, print_slope_area=True)
        clock = SimulationClock()
        area = np.full(ridge.shape, 100.0)
        writer.print_rasters(3, clock, ridge, 2e-4, 0.02,
                             erosion=np.zeros(ridge.shape), area=area)
        writer.close()

        out = config["output_dir"]
        for name in ("test3.asc", "test3_hillshade.asc", "test3_hillshade.png",
                     "test3_erosion.asc", "test_sa", ".test_frame_metadata"):
            assert os.path.exists(os.path.join(out, name)), name

        z = GridField.read(os.path.join(out, "test3.asc"))
        np.testing.assert_allclose(z.data, ridge)
        assert z.dx == config["resolution"]

        hs = GridField.read(os.path.join(out, "test3_hillshade.asc")).data
        assert hs.max() <= 255.0

    @pytest.mark.unit
    def test_cycle_report(self, writer, config):
        clock = SimulationClock(time_step=100.0, periodicity=1000.0, K_mode=1)
        clock.initial_steady_state = True
        clock.cycle_steady_check = True
        for step in range(25):
            clock.current_time = step * 100.0
            writer.erosion = 1e-3
            writer.cycle_report(clock, 10.0, 1.0, 2.0)
        writer.close()

        assert clock.cycle_number == 3
        assert clock.erosion_cycle_record[-2:] == [pytest.approx(1e-3)] * 2
        with open(os.path.join(config["output_dir"], "test_cycle_report")) as fp:
            lines = fp.read().splitlines()
        assert len(lines) == 4
