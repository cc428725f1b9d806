"""Region reduction of per-pixel masks to scalar statistics.

Reductions run on a ``GridSpec`` sized for the region. When the grid at
the requested scale would exceed the pixel ceiling, the scale is either
coarsened (best effort) or the reduction is refused.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np
from shapely.geometry.base import BaseGeometry

from .grid import GridSpec, grid_for_geometry

LOGGER = logging.getLogger(__name__)


class ReductionError(Exception):
    """Raised when a reduction exceeds the pixel ceiling without best effort."""
    pass


@dataclass(frozen=True)
class RegionStats:
    """Raw reduction output; ``None`` means the reduction produced no value.

    Attributes:
        area_sum_m2: Summed pixel area (m²) of pixels selected inside the region.
        valid_mean: Mean of the validity mask over the region (0-1).
    """
    area_sum_m2: Optional[float]
    valid_mean: Optional[float]


def analysis_grid(
    geometry: BaseGeometry,
    scale: float,
    max_pixels: int,
    best_effort: bool = True,
) -> GridSpec:
    """Build the reduction grid for ``geometry`` at ``scale`` meters.

    Args:
        geometry: Region in EPSG:4326.
        scale: Requested resolution in meters.
        max_pixels: Maximum number of pixels one reduction may touch.
        best_effort: Coarsen the scale instead of failing when over the ceiling.

    Returns:
        GridSpec with at most ``max_pixels`` pixels.

    Raises:
        ReductionError: If the grid exceeds ``max_pixels`` and best_effort is off.
    """
    grid = grid_for_geometry(geometry, scale)
    while grid.pixel_count > max_pixels:
        if not best_effort:
            raise ReductionError(
                f"Region needs {grid.pixel_count} pixels at {grid.resolution} m, "
                f"above the ceiling of {max_pixels}"
            )
        factor = max(2, math.ceil(math.sqrt(grid.pixel_count / max_pixels)))
        coarser = grid.resolution * factor
        LOGGER.warning(
            "Region needs %d pixels at %.1f m (ceiling %d); coarsening to %.1f m",
            grid.pixel_count,
            grid.resolution,
            max_pixels,
            coarser,
        )
        grid = grid_for_geometry(geometry, coarser, epsg=grid.epsg)
    return grid


def reduce_region(
    veg: np.ndarray,
    valid: Optional[np.ndarray],
    region: np.ndarray,
    pixel_area: float,
) -> RegionStats:
    """Sum the area of ``veg`` pixels and average ``valid`` over ``region``.

    Args:
        veg: Boolean (y, x) selection whose pixel areas are summed.
        valid: Boolean (y, x) validity mask, or None to skip the mean.
        region: Boolean (y, x) mask of pixels inside the region.
        pixel_area: Area of one pixel in m².

    Returns:
        RegionStats. ``area_sum_m2`` is None when no pixel was selected and
        ``valid_mean`` is None when the region covers no pixel.
    """
    veg = np.asarray(veg, dtype=bool)
    region = np.asarray(region, dtype=bool)
    if veg.shape != region.shape:
        raise ValueError(f"Mask shape {veg.shape} does not match region shape {region.shape}")

    region_pixels = int(region.sum())
    selected = int(np.count_nonzero(veg & region))
    area_sum = selected * pixel_area if selected else None

    valid_mean: Optional[float] = None
    if valid is not None and region_pixels:
        valid = np.asarray(valid, dtype=bool)
        if valid.shape != region.shape:
            raise ValueError(
                f"Mask shape {valid.shape} does not match region shape {region.shape}"
            )
        valid_mean = float(np.count_nonzero(valid & region)) / region_pixels

    return RegionStats(area_sum_m2=area_sum, valid_mean=valid_mean)


__all__ = [
    "ReductionError",
    "RegionStats",
    "analysis_grid",
    "reduce_region",
]
