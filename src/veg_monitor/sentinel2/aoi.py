"""AOI (Area of Interest) parsing and geometry utilities.

The AOI is a single fixed geometry for the whole run. It filters the
catalog search, defines the reduction region for the statistics, and is
stamped as an outline on every exported frame.

Supported AOI Formats
---------------------
1. **WKT**: ``"POLYGON ((-74.59 10.84, ...))"``
2. **GeoJSON**: geometry, Feature, or FeatureCollection (string or file)
3. **Bounding box**: ``"minx,miny,maxx,maxy"`` or ``"[minx, miny, maxx, maxy]"``
4. **Vector file**: GeoPackage (.gpkg) or Shapefile (.shp), unioned and
   reprojected to EPSG:4326
"""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Optional

import geopandas as gpd
from shapely import wkt
from shapely.geometry import box, shape
from shapely.geometry.base import BaseGeometry
from shapely.ops import unary_union

LOGGER = logging.getLogger(__name__)

M2_PER_HECTARE = 10_000.0


def _geometry_from_geojson(payload: dict) -> BaseGeometry:
    if payload.get("type") == "FeatureCollection":
        features = payload.get("features") or []
        if not features:
            raise ValueError("AOI FeatureCollection contains no features.")
        return unary_union([shape(feature["geometry"]) for feature in features])
    return shape(payload.get("geometry", payload))


def _existing_path(candidate: str) -> Optional[Path]:
    """Return ``candidate`` as a Path when it names an existing file.

    Inline GeoJSON, JSON bbox arrays, and WKT are never treated as paths.
    """
    if not candidate or candidate[0] in "{[" or "(" in candidate:
        return None
    path = Path(candidate)
    try:
        return path if path.is_file() else None
    except OSError:
        return None


def parse_aoi(aoi: str) -> BaseGeometry:
    """Parse AOI from various input formats.

    Args:
        aoi: AOI specification as string (file path, GeoJSON, WKT, or bbox).

    Returns:
        Parsed geometry in EPSG:4326 coordinates.

    Raises:
        ValueError: If AOI file is empty or geometry is empty.
    """
    candidate = aoi.strip()
    path = _existing_path(candidate)
    geom: Optional[BaseGeometry] = None

    if path is not None:
        suffix = path.suffix.lower()
        if suffix in {".gpkg", ".shp"}:
            gdf = gpd.read_file(path)
            if gdf.empty:
                raise ValueError(f"AOI file '{path}' contains no features.")
            if gdf.crs is not None:
                gdf = gdf.to_crs(4326)
            else:
                LOGGER.warning("AOI file %s has no CRS; assuming EPSG:4326 coordinates.", path)
            geom_series = gdf.geometry.dropna()
            if geom_series.empty:
                raise ValueError(f"AOI file '{path}' contains no valid geometries.")
            geom = geom_series.union_all()
        else:
            candidate = path.read_text(encoding="utf-8").strip()

    if geom is None:
        try:
            payload = json.loads(candidate)
        except json.JSONDecodeError:
            payload = None

        if isinstance(payload, dict):
            geom = _geometry_from_geojson(payload)
        elif isinstance(payload, list) and len(payload) == 4:
            geom = box(*payload)
        elif candidate.count(",") == 3 and "(" not in candidate:
            geom = box(*[float(x) for x in candidate.split(",")])
        else:
            geom = wkt.loads(candidate)

    if geom.is_empty:
        raise ValueError("AOI geometry is empty.")
    if not geom.is_valid:
        geom = geom.buffer(0)
    return geom


def buffer_in_meters(geom: BaseGeometry, buffer_meters: float) -> BaseGeometry:
    """Buffer a geometry by a distance in meters.

    The geometry is temporarily projected to its UTM zone for accurate
    distance-based buffering, then reprojected back to WGS84.

    Args:
        geom: Input geometry in EPSG:4326.
        buffer_meters: Buffer distance in meters. If <= 0, returns input unchanged.

    Returns:
        Buffered geometry in EPSG:4326.
    """
    if buffer_meters <= 0:
        return geom
    series = gpd.GeoSeries([geom], crs="EPSG:4326")
    projected = series.to_crs(series.estimate_utm_crs())
    buffered = projected.buffer(buffer_meters)
    return buffered.to_crs(4326).iloc[0]


def export_region(geom: BaseGeometry, buffer_meters: float) -> BaseGeometry:
    """Bounding box of the AOI padded by ``buffer_meters``; frames are rendered over it."""
    return box(*buffer_in_meters(geom, buffer_meters).bounds)


def area_hectares(geom: BaseGeometry) -> float:
    """Planar area of a WGS84 geometry in hectares, measured in its UTM zone."""
    series = gpd.GeoSeries([geom], crs="EPSG:4326")
    projected = series.to_crs(series.estimate_utm_crs())
    return float(projected.area.iloc[0]) / M2_PER_HECTARE


__all__ = [
    "M2_PER_HECTARE",
    "parse_aoi",
    "buffer_in_meters",
    "export_region",
    "area_hectares",
]
