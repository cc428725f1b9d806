"""Unit tests for target grids and region reduction."""

import numpy as np
import pytest
from shapely.geometry import box

from veg_monitor.sentinel2.grid import GridSpec, grid_for_geometry, utm_epsg_for
from veg_monitor.sentinel2.reduction import (
    ReductionError,
    RegionStats,
    analysis_grid,
    reduce_region,
)


class TestGridSpec:
    """Tests for GridSpec properties."""

    @pytest.fixture
    def grid(self) -> GridSpec:
        return GridSpec(epsg=32618, bounds=(500000.0, 1190000.0, 500300.0, 1190210.0), resolution=30.0)

    def test_shape(self, grid):
        assert grid.width == 10
        assert grid.height == 7
        assert grid.shape == (7, 10)
        assert grid.pixel_count == 70

    def test_pixel_area(self, grid):
        assert grid.pixel_area == 900.0

    def test_transform_origin_is_top_left(self, grid):
        assert grid.transform.c == 500000.0
        assert grid.transform.f == 1190210.0
        assert grid.transform.e == -30.0

    def test_coords_are_pixel_centres(self, grid):
        y, x = grid.coords()
        assert x[0] == pytest.approx(500015.0)
        assert y[0] == pytest.approx(1190195.0)
        assert len(x) == 10
        assert len(y) == 7
        assert np.all(np.diff(y) < 0)


class TestGridForGeometry:
    """Tests for grid_for_geometry()."""

    def test_picks_utm_zone_18n_for_pajarales(self, aoi_geometry):
        assert utm_epsg_for(aoi_geometry) == 32618

    def test_bounds_snap_to_resolution(self, aoi_geometry):
        grid = grid_for_geometry(aoi_geometry, 30.0)

        for value in grid.bounds:
            assert value / 30.0 == pytest.approx(round(value / 30.0))

    def test_region_mask_covers_most_of_grid(self, aoi_geometry):
        grid = grid_for_geometry(aoi_geometry, 30.0)
        region = grid.region_mask(aoi_geometry)

        assert region.shape == grid.shape
        assert region.dtype == bool
        covered_m2 = region.sum() * grid.pixel_area
        # ~550 m x 550 m square
        assert covered_m2 == pytest.approx(550 * 546, rel=0.15)

    def test_rejects_non_positive_resolution(self, aoi_geometry):
        with pytest.raises(ValueError, match="must be positive"):
            grid_for_geometry(aoi_geometry, 0)


class TestAnalysisGrid:
    """Tests for analysis_grid() pixel ceiling handling."""

    def test_within_ceiling_keeps_scale(self, aoi_geometry):
        grid = analysis_grid(aoi_geometry, 30.0, max_pixels=int(1e13))
        assert grid.resolution == 30.0

    def test_best_effort_coarsens(self, aoi_geometry):
        fine = grid_for_geometry(aoi_geometry, 30.0)
        grid = analysis_grid(aoi_geometry, 30.0, max_pixels=fine.pixel_count // 4)

        assert grid.resolution > 30.0
        assert grid.pixel_count <= fine.pixel_count // 4

    def test_without_best_effort_raises(self, aoi_geometry):
        with pytest.raises(ReductionError, match="above the ceiling"):
            analysis_grid(aoi_geometry, 30.0, max_pixels=10, best_effort=False)


class TestReduceRegion:
    """Tests for reduce_region()."""

    @pytest.fixture
    def region(self):
        region = np.zeros((4, 4), dtype=bool)
        region[:2, :] = True
        return region

    def test_area_and_valid_mean(self, region):
        veg = np.zeros((4, 4), dtype=bool)
        veg[0, :3] = True
        veg[3, :] = True  # outside region, ignored
        valid = np.zeros((4, 4), dtype=bool)
        valid[0, :] = True
        valid[1, :2] = True

        stats = reduce_region(veg, valid, region, pixel_area=100.0)

        assert stats.area_sum_m2 == 300.0
        assert stats.valid_mean == pytest.approx(6 / 8)

    def test_no_selected_pixels_is_missing_area(self, region):
        empty = np.zeros((4, 4), dtype=bool)
        stats = reduce_region(empty, empty, region, pixel_area=100.0)

        assert stats == RegionStats(area_sum_m2=None, valid_mean=0.0)

    def test_empty_region_yields_no_values(self):
        nothing = np.zeros((3, 3), dtype=bool)
        everything = np.ones((3, 3), dtype=bool)

        stats = reduce_region(everything, everything, nothing, pixel_area=100.0)

        assert stats == RegionStats(area_sum_m2=None, valid_mean=None)

    def test_valid_optional(self, region):
        stats = reduce_region(region, None, region, pixel_area=1.0)
        assert stats.area_sum_m2 == 8.0
        assert stats.valid_mean is None

    def test_shape_mismatch_raises(self, region):
        with pytest.raises(ValueError, match="does not match"):
            reduce_region(np.zeros((2, 2), dtype=bool), None, region, pixel_area=1.0)
