"""Target pixel grids for loading, reducing, and rendering imagery.

All rasters for one request share a ``GridSpec``: a UTM projection chosen
from the geometry's location and bounds snapped outward to whole pixels.
Because the grid is fixed before any scene is read, empty months can be
represented on exactly the same pixels as populated ones.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import geopandas as gpd
import numpy as np
from affine import Affine
from rasterio.features import geometry_mask
from rasterio.warp import transform_geom
from shapely.geometry import mapping
from shapely.geometry.base import BaseGeometry

LOGGER = logging.getLogger(__name__)


@dataclass(frozen=True)
class GridSpec:
    """Pixel grid in a projected CRS.

    Attributes:
        epsg: EPSG code of the projected CRS.
        bounds: (minx, miny, maxx, maxy) in CRS units, multiples of resolution.
        resolution: Pixel size in meters.
    """
    epsg: int
    bounds: Tuple[float, float, float, float]
    resolution: float

    @property
    def crs(self) -> str:
        return f"EPSG:{self.epsg}"

    @property
    def width(self) -> int:
        return int(round((self.bounds[2] - self.bounds[0]) / self.resolution))

    @property
    def height(self) -> int:
        return int(round((self.bounds[3] - self.bounds[1]) / self.resolution))

    @property
    def shape(self) -> Tuple[int, int]:
        return self.height, self.width

    @property
    def pixel_count(self) -> int:
        return self.width * self.height

    @property
    def pixel_area(self) -> float:
        """Area of one pixel in square meters."""
        return self.resolution * self.resolution

    @property
    def transform(self) -> Affine:
        return Affine(self.resolution, 0.0, self.bounds[0], 0.0, -self.resolution, self.bounds[3])

    def coords(self) -> Tuple[np.ndarray, np.ndarray]:
        """Pixel-centre coordinates ``(y, x)``, y descending."""
        half = self.resolution / 2
        x = self.bounds[0] + half + np.arange(self.width) * self.resolution
        y = self.bounds[3] - half - np.arange(self.height) * self.resolution
        return y, x

    def project(self, geometry: BaseGeometry) -> dict:
        """Transform a WGS84 geometry into this grid's CRS as GeoJSON."""
        return transform_geom("EPSG:4326", self.crs, mapping(geometry))

    def region_mask(self, geometry: BaseGeometry) -> np.ndarray:
        """Boolean array, True for pixels whose centre falls inside ``geometry``."""
        return geometry_mask(
            [self.project(geometry)],
            out_shape=self.shape,
            transform=self.transform,
            invert=True,
        )


def utm_epsg_for(geometry: BaseGeometry) -> int:
    """EPSG code of the UTM zone containing the geometry's centroid."""
    series = gpd.GeoSeries([geometry], crs="EPSG:4326")
    return int(series.estimate_utm_crs().to_epsg())


def grid_for_geometry(
    geometry: BaseGeometry,
    resolution: float,
    epsg: Optional[int] = None,
) -> GridSpec:
    """Build a grid covering ``geometry`` at ``resolution`` meters.

    Args:
        geometry: Geometry in EPSG:4326.
        resolution: Pixel size in meters.
        epsg: Projected CRS; defaults to the geometry's UTM zone.

    Returns:
        GridSpec whose bounds are the projected bounds snapped outward to
        multiples of the resolution.

    Raises:
        ValueError: If resolution is not positive.
    """
    if resolution <= 0:
        raise ValueError(f"Grid resolution must be positive, got {resolution}")
    target_epsg = epsg if epsg is not None else utm_epsg_for(geometry)
    projected = gpd.GeoSeries([geometry], crs="EPSG:4326").to_crs(target_epsg)
    minx, miny, maxx, maxy = (float(value) for value in projected.total_bounds)
    snapped = (
        math.floor(minx / resolution) * resolution,
        math.floor(miny / resolution) * resolution,
        math.ceil(maxx / resolution) * resolution,
        math.ceil(maxy / resolution) * resolution,
    )
    return GridSpec(epsg=target_epsg, bounds=snapped, resolution=float(resolution))


__all__ = [
    "GridSpec",
    "utm_epsg_for",
    "grid_for_geometry",
]
