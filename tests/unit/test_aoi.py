"""Unit tests for AOI parsing and geometry helpers."""

import json

import geopandas as gpd
import pytest
from shapely.geometry import Point, Polygon, box

from veg_monitor.config import DEFAULT_AOI_WKT
from veg_monitor.sentinel2.aoi import (
    area_hectares,
    buffer_in_meters,
    export_region,
    parse_aoi,
)


class TestParseAoi:
    """Tests for parse_aoi() function."""

    def test_parse_default_polygon(self):
        """The built-in Complejo Pajarales polygon should parse to ~1200 ha."""
        geom = parse_aoi(DEFAULT_AOI_WKT)

        assert isinstance(geom, Polygon)
        assert geom.is_valid
        assert area_hectares(geom) == pytest.approx(1204, rel=0.05)

    def test_parse_bbox_string(self):
        geom = parse_aoi("-74.59,10.82,-74.54,10.84")

        assert geom.bounds == pytest.approx((-74.59, 10.82, -74.54, 10.84))

    def test_parse_json_array_bbox(self):
        geom = parse_aoi("[-74.59, 10.82, -74.54, 10.84]")

        assert geom.bounds[0] == pytest.approx(-74.59)
        assert geom.bounds[3] == pytest.approx(10.84)

    def test_parse_geojson_feature_collection(self):
        payload = {
            "type": "FeatureCollection",
            "features": [
                {"type": "Feature", "properties": {}, "geometry": box(0, 0, 1, 1).__geo_interface__},
                {"type": "Feature", "properties": {}, "geometry": box(1, 0, 2, 1).__geo_interface__},
            ],
        }
        geom = parse_aoi(json.dumps(payload))

        assert geom.area == pytest.approx(2.0)

    def test_parse_empty_feature_collection_raises(self):
        with pytest.raises(ValueError, match="no features"):
            parse_aoi(json.dumps({"type": "FeatureCollection", "features": []}))

    def test_parse_geojson_file(self, tmp_path):
        path = tmp_path / "aoi.geojson"
        path.write_text(json.dumps(box(-74.59, 10.82, -74.58, 10.83).__geo_interface__))

        geom = parse_aoi(str(path))

        assert geom.bounds == pytest.approx((-74.59, 10.82, -74.58, 10.83))

    def test_parse_gpkg_reprojects_to_wgs84(self, tmp_path):
        path = tmp_path / "aoi.gpkg"
        wgs84 = gpd.GeoDataFrame(geometry=[box(-74.59, 10.82, -74.58, 10.83)], crs="EPSG:4326")
        wgs84.to_crs(32618).to_file(path, driver="GPKG")

        geom = parse_aoi(str(path))

        assert geom.bounds[0] == pytest.approx(-74.59, abs=1e-6)
        assert geom.bounds[3] == pytest.approx(10.83, abs=1e-6)

    def test_parse_long_inline_wkt(self):
        """Inline WKT longer than a file name limit is parsed, not stat'ed."""
        polygon = Point(-74.57, 10.83).buffer(0.01, 4)
        text = polygon.wkt
        assert len(text) > 300

        geom = parse_aoi(text)

        assert geom.equals_exact(polygon, 1e-9)

    def test_parse_long_inline_geojson(self):
        polygon = Point(-74.57, 10.83).buffer(0.01, 8)
        text = json.dumps({"type": "Feature", "properties": {}, "geometry": polygon.__geo_interface__})
        assert len(text) > 300

        geom = parse_aoi(text)

        assert geom.area == pytest.approx(polygon.area)

    def test_parse_empty_wkt_raises(self):
        with pytest.raises(ValueError, match="empty"):
            parse_aoi("POLYGON EMPTY")


class TestBufferAndRegion:
    """Tests for buffer_in_meters() and export_region()."""

    def test_zero_buffer_returns_input(self):
        geom = box(-74.59, 10.82, -74.58, 10.83)
        assert buffer_in_meters(geom, 0) is geom

    def test_buffer_grows_bounds_by_distance(self):
        geom = box(-74.59, 10.82, -74.58, 10.83)
        buffered = buffer_in_meters(geom, 1000)

        # ~0.009 degrees of latitude per kilometre
        assert buffered.bounds[1] == pytest.approx(10.82 - 0.00904, abs=5e-4)
        assert buffered.bounds[3] == pytest.approx(10.83 + 0.00904, abs=5e-4)

    def test_export_region_is_rectangle_containing_buffer(self):
        geom = parse_aoi(DEFAULT_AOI_WKT)
        region = export_region(geom, 2500)

        assert region.contains(geom)
        assert region.area == pytest.approx(box(*region.bounds).area)
        assert region.contains(buffer_in_meters(geom, 2500).buffer(-1e-9))
