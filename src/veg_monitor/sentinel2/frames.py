"""Monthly overlay frames: true colour, vegetation overlay, and AOI outline.

Each frame is rendered over the AOI's buffered bounding box:

1. Median true-colour composite (B04/B03/B02), linearly stretched
2. AOI pixels with median NDVI >= threshold painted with a translucent colour
3. The AOI boundary stamped on top in a solid colour

The vegetation area in the frame name is recomputed on the analysis grid
over the AOI itself, independently of the statistics table.

Frames are independent of one another. They are built on a thread pool
and a failing month is logged and reported without stopping the others.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence, Tuple

import numpy as np
from rasterio.features import rasterize
from scipy import ndimage
from shapely.geometry import mapping, shape
from shapely.geometry.base import BaseGeometry

from ..config import MonitorConfig, VisualizationConfig
from .aoi import export_region
from .grid import GridSpec
from .monthly import (
    masked_reflectance,
    median_composite,
    normalized_difference,
    vegetation_area,
    vegetation_masks,
)
from .reduction import analysis_grid
from .stac_client import FRAME_BANDS, TRUE_COLOR_BANDS, distinct_products
from .windows import DateLike, month_label, month_window, parse_month_label

if TYPE_CHECKING:
    from ..services.export import FolderExportSink
    from ..services.imagery import StacImageryService

LOGGER = logging.getLogger(__name__)


# =============================================================================
# Data Classes
# =============================================================================

@dataclass(frozen=True)
class ExportFrame:
    """A rendered frame ready for export.

    Attributes:
        month: ``YYYY-MM`` label.
        identifier: Export name, ``<prefix>_<month>_<rounded area>ha``.
        area_ha: Vegetation area over the AOI in hectares.
        n_scenes: Products that went into the composite.
        image: (3, height, width) uint8 RGB raster.
        grid: Grid the raster is aligned to.
    """
    month: str
    identifier: str
    area_ha: float
    n_scenes: int
    image: np.ndarray
    grid: GridSpec


@dataclass
class FrameOutcome:
    """Result of building and exporting one frame."""

    month: str
    success: bool
    identifier: Optional[str] = None
    path: Optional[Path] = None
    area_ha: Optional[float] = None
    error: Optional[str] = None


# =============================================================================
# Naming and month selection
# =============================================================================

def round_half_up(value: float) -> int:
    return int(Decimal(repr(float(value))).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def frame_identifier(prefix: str, month: str, area_ha: float) -> str:
    """Export name for a frame.

    Example:
        >>> frame_identifier("Pajarales", "2025-06", 153.4)
        'Pajarales_2025-06_153ha'
    """
    return f"{prefix}_{month}_{round_half_up(area_ha)}ha"


def frame_months(config: MonitorConfig, now: DateLike) -> List[date]:
    """Months to render: the explicit labels if given, else the last full months."""
    if config.frame_month_labels:
        return [parse_month_label(label) for label in config.frame_month_labels]
    return month_window(now, config.frame_months)


# =============================================================================
# Rendering
# =============================================================================

def hex_to_rgb(color: str) -> Tuple[float, float, float]:
    """Convert ``#rrggbb`` to an RGB triple in [0, 1]."""
    value = color.lstrip("#")
    if len(value) != 6:
        raise ValueError(f"Expected a #rrggbb colour, got {color!r}")
    return tuple(int(value[i:i + 2], 16) / 255.0 for i in (0, 2, 4))  # type: ignore[return-value]


def stretch_rgb(rgb: np.ndarray, vmin: float, vmax: float) -> np.ndarray:
    """Stretch (3, h, w) reflectance to an (h, w, 4) RGBA layer.

    Values are clipped to ``[vmin, vmax]`` and scaled to [0, 1]. Pixels
    with any missing band are fully transparent.
    """
    rgb = np.asarray(rgb, dtype="float32")
    present = np.all(np.isfinite(rgb), axis=0)
    scaled = np.clip((np.nan_to_num(rgb) - vmin) / (vmax - vmin), 0.0, 1.0)
    layer = np.zeros(rgb.shape[1:] + (4,), dtype="float32")
    layer[..., :3] = np.moveaxis(scaled, 0, -1)
    layer[..., 3] = present.astype("float32")
    return layer


def solid_layer(mask: np.ndarray, color: str, opacity: float = 1.0) -> np.ndarray:
    """(h, w, 4) layer of a single colour where ``mask`` is True."""
    mask = np.asarray(mask, dtype=bool)
    layer = np.zeros(mask.shape + (4,), dtype="float32")
    layer[mask, :3] = hex_to_rgb(color)
    layer[mask, 3] = opacity
    return layer


def blend(base: np.ndarray, top: np.ndarray) -> np.ndarray:
    """Alpha-composite ``top`` over ``base`` (both straight-alpha RGBA)."""
    top_alpha = top[..., 3:4]
    base_alpha = base[..., 3:4] * (1.0 - top_alpha)
    alpha = top_alpha + base_alpha
    color = top[..., :3] * top_alpha + base[..., :3] * base_alpha
    safe = np.where(alpha > 0, alpha, 1.0)
    out = np.empty_like(base)
    out[..., :3] = np.where(alpha > 0, color / safe, 0.0)
    out[..., 3:4] = alpha
    return out


def to_uint8(layer: np.ndarray) -> np.ndarray:
    """Flatten an RGBA layer onto black as a (3, h, w) uint8 raster."""
    rgb = layer[..., :3] * layer[..., 3:4]
    return np.moveaxis(np.round(rgb * 255.0), -1, 0).astype("uint8")


def outline_mask(geometry: BaseGeometry, grid: GridSpec, width: int = 2) -> np.ndarray:
    """Boolean (h, w) mask of the geometry's boundary, ``width`` pixels wide."""
    boundary = shape(grid.project(geometry)).boundary
    if boundary.is_empty:
        return np.zeros(grid.shape, dtype=bool)
    burned = rasterize(
        [(mapping(boundary), 1)],
        out_shape=grid.shape,
        transform=grid.transform,
        fill=0,
        all_touched=True,
        dtype="uint8",
    ).astype(bool)
    if width > 1:
        burned = ndimage.binary_dilation(burned, iterations=width - 1)
    return burned


def render_frame(
    rgb: np.ndarray,
    veg: np.ndarray,
    outline: np.ndarray,
    vis: VisualizationConfig,
) -> np.ndarray:
    """Blend the true-colour base, vegetation overlay, and AOI outline.

    Args:
        rgb: (3, h, w) reflectance in display order, NaN where masked.
        veg: Boolean (h, w) vegetation mask.
        outline: Boolean (h, w) AOI outline mask.
        vis: Colours, opacity, and stretch.

    Returns:
        (3, h, w) uint8 raster.
    """
    layer = stretch_rgb(rgb, vis.rgb_min, vis.rgb_max)
    layer = blend(layer, solid_layer(veg, vis.overlay_color, vis.overlay_opacity))
    layer = blend(layer, solid_layer(outline, vis.outline_color))
    return to_uint8(layer)


# =============================================================================
# Frame construction
# =============================================================================

def build_frame(
    service: "StacImageryService",
    month_start: date,
    geometry: BaseGeometry,
    config: MonitorConfig,
    stats_grid: GridSpec,
    region: np.ndarray,
    frame_grid: GridSpec,
    outline: np.ndarray,
) -> ExportFrame:
    """Search, composite, measure, and render one month's frame.

    The true-colour background covers the whole frame grid; the vegetation
    overlay is limited to the AOI. A month without scenes renders as the
    outline alone with area 0.
    """
    label = month_label(month_start)
    items = distinct_products(service.search_month(geometry, month_start))
    area_ha = vegetation_area(service, items, stats_grid, region, config.ndvi_threshold)

    if items:
        scenes = masked_reflectance(service, items, frame_grid, FRAME_BANDS)
        true_color = median_composite(scenes, frame_grid).sel(band=list(TRUE_COLOR_BANDS))
        ndvi = median_composite(normalized_difference(scenes), frame_grid)
        veg, _ = vegetation_masks(ndvi, config.ndvi_threshold)
        rgb_values, veg_values = service.compute(true_color, veg)
        # overlay only inside the AOI, matching the area in the name
        veg_values = np.asarray(veg_values, dtype=bool) & frame_grid.region_mask(geometry)
    else:
        LOGGER.warning("%s -- no scenes; frame carries the AOI outline only", label)
        rgb_values = np.full((3,) + frame_grid.shape, np.nan, dtype="float32")
        veg_values = np.zeros(frame_grid.shape, dtype=bool)

    image = render_frame(rgb_values, veg_values, outline, config.visualization)
    return ExportFrame(
        month=label,
        identifier=frame_identifier(config.export_prefix, label, area_ha),
        area_ha=area_ha,
        n_scenes=len(items),
        image=image,
        grid=frame_grid,
    )


def _export_one(
    service: "StacImageryService",
    sink: "FolderExportSink",
    month_start: date,
    geometry: BaseGeometry,
    config: MonitorConfig,
    stats_grid: GridSpec,
    region: np.ndarray,
    frame_grid: GridSpec,
    outline: np.ndarray,
) -> FrameOutcome:
    label = month_label(month_start)
    try:
        frame = build_frame(
            service, month_start, geometry, config, stats_grid, region, frame_grid, outline
        )
        path = sink.export_image(frame, frame.identifier)
    except Exception as exc:
        LOGGER.error("%s -- frame export failed: %s", label, exc, exc_info=True)
        return FrameOutcome(month=label, success=False, error=str(exc))

    LOGGER.info("%s -- exported %s (%.1f ha)", label, path, frame.area_ha)
    return FrameOutcome(
        month=label,
        success=True,
        identifier=frame.identifier,
        path=path,
        area_ha=frame.area_ha,
    )


def export_frames(
    service: "StacImageryService",
    sink: "FolderExportSink",
    months: Sequence[date],
    geometry: BaseGeometry,
    config: MonitorConfig,
) -> List[FrameOutcome]:
    """Build and export one frame per month on a thread pool.

    Args:
        service: Imagery service.
        sink: Destination for the rendered frames.
        months: Month starts to render, any order and spacing.
        geometry: AOI in EPSG:4326.
        config: Run configuration.

    Returns:
        One FrameOutcome per month, in the order of ``months``.
    """
    if not months:
        return []

    stats_grid = analysis_grid(
        geometry, config.analysis_scale, config.max_pixels, best_effort=config.best_effort
    )
    region = stats_grid.region_mask(geometry)
    frame_grid = analysis_grid(
        export_region(geometry, config.buffer_meters),
        config.export_scale,
        config.max_pixels,
        best_effort=config.best_effort,
    )
    outline = outline_mask(geometry, frame_grid, config.visualization.outline_width)
    LOGGER.info(
        "Rendering %d frame(s) on %s: %d x %d px at %.1f m",
        len(months),
        frame_grid.crs,
        frame_grid.width,
        frame_grid.height,
        frame_grid.resolution,
    )

    outcomes = {}
    with ThreadPoolExecutor(max_workers=config.frame_workers) as executor:
        futures = {
            executor.submit(
                _export_one,
                service,
                sink,
                month_start,
                geometry,
                config,
                stats_grid,
                region,
                frame_grid,
                outline,
            ): month_start
            for month_start in months
        }
        for future in as_completed(futures):
            outcomes[futures[future]] = future.result()

    results = [outcomes[month_start] for month_start in months]
    failed = sum(1 for outcome in results if not outcome.success)
    if failed:
        LOGGER.warning("%d of %d frame(s) failed", failed, len(results))
    return results


__all__ = [
    "ExportFrame",
    "FrameOutcome",
    "round_half_up",
    "frame_identifier",
    "frame_months",
    "hex_to_rgb",
    "stretch_rgb",
    "solid_layer",
    "blend",
    "to_uint8",
    "outline_mask",
    "render_frame",
    "build_frame",
    "export_frames",
]
