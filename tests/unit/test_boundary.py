"""Unit tests for boundary conditions and grid fields."""

import numpy as np
import pytest

from lemraster.boundary import BoundaryModel
from lemraster.grid import GridField


class TestBoundaryModel:
    """Test boundary code interpretation."""

    @pytest.mark.unit
    def test_classify_by_name_and_index(self):
        boundary = BoundaryModel("bpnp")
        assert boundary.classify("north") == "b"
        assert boundary.classify(1) == "p"
        assert boundary.classify("South") == "n"
        assert boundary.classify(3) == "p"

    @pytest.mark.unit
    def test_invalid_codes(self):
        with pytest.raises(ValueError):
            BoundaryModel("bpx")
        with pytest.raises(ValueError):
            BoundaryModel("bpbq")

    @pytest.mark.unit
    def test_periodicity(self):
        boundary = BoundaryModel("bpbp")
        assert boundary.ew_periodic
        assert not boundary.ns_periodic
        assert boundary.is_periodic("west")

    @pytest.mark.unit
    def test_base_level_mask(self):
        mask = BoundaryModel("bpbp").base_level_mask((4, 3))
        assert mask[0].all() and mask[-1].all()
        assert not mask[1:-1].any()

        mask = BoundaryModel("nbnb").base_level_mask((4, 3))
        assert mask[:, 0].all() and mask[:, -1].all()
        assert not mask[:, 1].any()

    @pytest.mark.unit
    def test_is_base_level(self):
        boundary = BoundaryModel("bpbp")
        assert boundary.is_base_level(0, 1, 4, 3)
        assert boundary.is_base_level(3, 2, 4, 3)
        assert not boundary.is_base_level(1, 0, 4, 3)

    @pytest.mark.unit
    def test_interpret(self):
        dimension, periodic, size = BoundaryModel("bpbp").interpret(5, 4)
        assert dimension == 0
        assert periodic
        assert size == 3 * 4

        dimension, periodic, size = BoundaryModel("nbnb").interpret(5, 4)
        assert dimension == 1
        assert not periodic
        assert size == 5 * 2

    @pytest.mark.unit
    def test_require(self):
        boundary = BoundaryModel("bpbp")
        boundary.require(north="b", south="b")
        with pytest.raises(ValueError):
            boundary.require(east="b")

    @pytest.mark.unit
    def test_buffer_shape_and_wrap(self):
        z = np.arange(12, dtype=float).reshape((3, 4))
        zb = BoundaryModel("bpbp").buffer(z)

        assert zb.shape == (5, 6)
        np.testing.assert_array_equal(zb[1:-1, 1:-1], z)
        np.testing.assert_array_equal(zb[1:-1, 0], z[:, -1])
        np.testing.assert_array_equal(zb[1:-1, -1], z[:, 0])
        np.testing.assert_array_equal(zb[0, 1:-1], z[0])
        assert zb[0, 0] == z[0, 0]
        assert zb[-1, -1] == z[-1, -1]

    @pytest.mark.unit
    def test_buffer_fixed_rows(self):
        z = np.ones((3, 4))
        zb = BoundaryModel("bnbn").buffer(z, north=5.0, south=-1.0)

        assert np.all(zb[0] == 5.0)
        assert np.all(zb[-1] == -1.0)
        # no wrap without periodic edges
        np.testing.assert_array_equal(zb[1:-1, 0], z[:, 0])

    @pytest.mark.unit
    def test_buffer_grid_origin(self):
        grid = GridField.zeros(3, 4, dx=2.0, xmin=10.0, ymin=20.0)
        buffered = BoundaryModel("bpbp").buffer_grid(grid)
        assert buffered.shape == (5, 6)
        assert buffered.xmin == 8.0
        assert buffered.ymin == 18.0


class TestGridField:
    """Test grid geometry and ASCII input/output."""

    @pytest.mark.unit
    def test_zeros(self):
        grid = GridField.zeros(10, 20, dx=5.0)
        assert grid.shape == (10, 20)
        assert grid.nrows == 10
        assert grid.ncols == 20
        assert np.all(grid.valid)

    @pytest.mark.unit
    def test_rejects_non_2d(self):
        with pytest.raises(ValueError):
            GridField(np.zeros(5), dx=1.0)

    @pytest.mark.unit
    def test_valid_mask(self):
        data = np.ones((3, 3))
        data[1, 1] = -99.0
        grid = GridField(data, dx=1.0, nodata=-99.0)
        assert not grid.valid[1, 1]
        assert grid.valid.sum() == 8

    @pytest.mark.unit
    def test_check_shape(self):
        grid = GridField.zeros(3, 4, dx=1.0)
        with pytest.raises(ValueError):
            grid.copy(np.zeros((4, 3)))

    @pytest.mark.unit
    def test_write_read(self, tmp_path):
        data = np.arange(12, dtype=float).reshape((3, 4))
        grid = GridField(data, dx=2.5, xmin=100.0, ymin=200.0, nodata=-9999.0)
        filename = str(tmp_path / "grid.asc")
        grid.write(filename)

        other = GridField.read(filename)
        assert other.shape == (3, 4)
        assert other.dx == 2.5
        assert other.xmin == 100.0
        assert other.ymin == 200.0
        assert other.nodata == -9999.0
        np.testing.assert_allclose(other.data, data)
