"""Monthly NDVI vegetation statistics.

For each full calendar month this module gathers the distinct Sentinel-2
scenes over the AOI, builds a quality-masked median NDVI composite, and
reduces it to one ``MonthlyRecord``:

- ``area_ha``: area (hectares) of composite pixels with NDVI >= threshold
- ``n_scenes``: distinct acquisitions (satellite passes) that contributed
- ``valid_frac``: fraction of the AOI with any usable observation

Months are processed one after another. The imagery service limits how
many reductions may be in flight, so the table is never built with a
parallel map.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import date
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Optional, Sequence, Tuple

import numpy as np
import xarray as xr
from pystac import Item
from shapely.geometry.base import BaseGeometry

from .aoi import M2_PER_HECTARE
from .cloud_masking import quality_mask
from .grid import GridSpec
from .reduction import analysis_grid, reduce_region
from .stac_client import INDEX_BANDS, NIR_BAND, RED_BAND, count_acquisitions, distinct_products
from .windows import month_label

if TYPE_CHECKING:
    from ..config import MonitorConfig
    from ..services.imagery import StacImageryService

LOGGER = logging.getLogger(__name__)

TABLE_COLUMNS: Tuple[str, ...] = ("month", "area_ha", "n_scenes", "valid_frac")


# =============================================================================
# Records
# =============================================================================

@dataclass(frozen=True)
class MonthlyRecord:
    """Vegetation statistics for one full month.

    Attributes:
        month: ``YYYY-MM`` label.
        area_ha: Vegetation area at or above the NDVI threshold, in hectares.
        n_scenes: Distinct acquisitions contributing to the composite.
        valid_frac: Fraction of the AOI with usable data (0-1).
        time_start: First day of the month; records sort on it.
    """
    month: str
    area_ha: float
    n_scenes: int
    valid_frac: float
    time_start: date

    def as_row(self) -> Dict[str, Any]:
        return {
            "month": self.month,
            "area_ha": self.area_ha,
            "n_scenes": self.n_scenes,
            "valid_frac": self.valid_frac,
        }


@dataclass(frozen=True)
class TrendSummary:
    """Overview of a monthly table, logged once the table is complete."""
    months: int
    first_month: Optional[str]
    last_month: Optional[str]
    mean_area_ha: float
    min_area_ha: float
    max_area_ha: float
    change_ha: float
    mean_valid_frac: float


def coerce_number(value: Optional[float]) -> float:
    """Map a missing reduction value (None, NaN, or falsy) to 0.0."""
    if not value:
        return 0.0
    value = float(value)
    if math.isnan(value):
        return 0.0
    return value


def empty_record(month_start: date) -> MonthlyRecord:
    return MonthlyRecord(
        month=month_label(month_start),
        area_ha=0.0,
        n_scenes=0,
        valid_frac=0.0,
        time_start=month_start,
    )


def sort_records(records: Iterable[MonthlyRecord]) -> List[MonthlyRecord]:
    """Order records by ``time_start`` ascending."""
    return sorted(records, key=lambda record: record.time_start)


# =============================================================================
# Compositing
# =============================================================================

def empty_composite(grid: GridSpec) -> xr.DataArray:
    """Fully masked (all-NaN) single-band composite on ``grid``."""
    y, x = grid.coords()
    return xr.DataArray(
        np.full(grid.shape, np.nan, dtype="float32"),
        dims=("y", "x"),
        coords={"y": y, "x": x},
    )


def masked_reflectance(
    service: "StacImageryService",
    items: Sequence[Item],
    grid: GridSpec,
    bands: Sequence[str] = INDEX_BANDS,
) -> Optional[xr.DataArray]:
    """Load ``items`` on ``grid`` with quality-masked pixels set to NaN.

    Returns None when there are no items. ``bands`` must include B04 and B08.
    """
    if not items:
        return None
    stack = service.load_scenes(items, grid, bands)
    mask = quality_mask(stack.scl, stack.reflectance, dilation=service.scl_dilation)
    return stack.reflectance.where(mask)


def normalized_difference(reflectance: xr.DataArray) -> xr.DataArray:
    """NDVI ``(nir - red) / (nir + red)`` per scene, dropping the band axis."""
    nir = reflectance.sel(band=NIR_BAND, drop=True)
    red = reflectance.sel(band=RED_BAND, drop=True)
    return (nir - red) / (nir + red)


def median_composite(data: Optional[xr.DataArray], grid: GridSpec) -> xr.DataArray:
    """Per-pixel median over ``time``, ignoring masked observations.

    An absent or zero-length stack yields a fully masked composite.
    """
    if data is None or data.sizes.get("time", 0) == 0:
        return empty_composite(grid)
    if data.chunks is not None:
        data = data.chunk({"time": -1})
    return data.median(dim="time", skipna=True)


def composite_index(
    service: "StacImageryService",
    items: Sequence[Item],
    grid: GridSpec,
) -> xr.DataArray:
    """Median NDVI composite of the quality-masked scenes."""
    scenes = masked_reflectance(service, items, grid, INDEX_BANDS)
    index = normalized_difference(scenes) if scenes is not None else None
    return median_composite(index, grid)


def vegetation_masks(ndvi: xr.DataArray, threshold: float) -> Tuple[xr.DataArray, xr.DataArray]:
    """Return ``(veg, valid)`` masks for a composite.

    ``valid`` is True wherever the composite holds a value; ``veg`` adds
    ``ndvi >= threshold``.
    """
    valid = ndvi.notnull()
    veg = valid & (ndvi >= threshold)
    return veg, valid


# =============================================================================
# Aggregation
# =============================================================================

def compute_monthly_record(
    service: "StacImageryService",
    month_start: date,
    geometry: BaseGeometry,
    grid: GridSpec,
    threshold: float,
    region: Optional[np.ndarray] = None,
) -> MonthlyRecord:
    """Build the statistics record for one month.

    Args:
        service: Imagery service used for search, load, and compute.
        month_start: First day of the month.
        geometry: AOI in EPSG:4326.
        grid: Analysis grid covering the AOI.
        threshold: NDVI value at or above which a pixel is vegetation.
        region: Precomputed AOI mask on ``grid``.

    Returns:
        MonthlyRecord with missing values coerced to 0.
    """
    label = month_label(month_start)
    items = distinct_products(service.search_month(geometry, month_start))
    n_scenes = count_acquisitions(items)
    LOGGER.info("%s -- %d product(s), %d acquisition(s)", label, len(items), n_scenes)
    if not items:
        return empty_record(month_start)

    if region is None:
        region = grid.region_mask(geometry)

    ndvi = composite_index(service, items, grid)
    veg, valid = vegetation_masks(ndvi, threshold)
    veg_values, valid_values = service.compute(veg, valid)
    stats = reduce_region(veg_values, valid_values, region, grid.pixel_area)

    record = MonthlyRecord(
        month=label,
        area_ha=coerce_number(stats.area_sum_m2) / M2_PER_HECTARE,
        n_scenes=n_scenes,
        valid_frac=min(1.0, max(0.0, coerce_number(stats.valid_mean))),
        time_start=month_start,
    )
    LOGGER.info(
        "%s -- area=%.2f ha valid_frac=%.3f",
        label,
        record.area_ha,
        record.valid_frac,
    )
    return record


def vegetation_area(
    service: "StacImageryService",
    items: Sequence[Item],
    grid: GridSpec,
    region: np.ndarray,
    threshold: float,
) -> float:
    """Vegetation area in hectares for already-selected ``items``.

    Same composite and threshold as ``compute_monthly_record`` without the
    valid-fraction accumulation.
    """
    if not items:
        return 0.0
    ndvi = composite_index(service, items, grid)
    veg, _ = vegetation_masks(ndvi, threshold)
    (veg_values,) = service.compute(veg)
    stats = reduce_region(veg_values, None, region, grid.pixel_area)
    return coerce_number(stats.area_sum_m2) / M2_PER_HECTARE


def build_monthly_table(
    service: "StacImageryService",
    months: Sequence[date],
    geometry: BaseGeometry,
    config: "MonitorConfig",
) -> List[MonthlyRecord]:
    """Compute one record per month, sequentially, sorted by month.

    Args:
        service: Imagery service.
        months: Month starts to process.
        geometry: AOI in EPSG:4326.
        config: Run configuration (threshold, scale, pixel ceiling).

    Returns:
        Records sorted by ``time_start``, exactly one per month.
    """
    if not months:
        return []
    grid = analysis_grid(
        geometry,
        config.analysis_scale,
        config.max_pixels,
        best_effort=config.best_effort,
    )
    region = grid.region_mask(geometry)
    LOGGER.info(
        "Analysis grid %s: %d x %d px at %.1f m, %d px in AOI",
        grid.crs,
        grid.width,
        grid.height,
        grid.resolution,
        int(region.sum()),
    )

    records: List[MonthlyRecord] = []
    for month_start in months:
        records.append(
            compute_monthly_record(
                service,
                month_start,
                geometry,
                grid,
                config.ndvi_threshold,
                region=region,
            )
        )
    return sort_records(records)


# =============================================================================
# Table summary and naming
# =============================================================================

def summarize_trend(records: Sequence[MonthlyRecord]) -> TrendSummary:
    """Summarise the area trend of a table (zeros for an empty table)."""
    ordered = sort_records(records)
    if not ordered:
        return TrendSummary(
            months=0,
            first_month=None,
            last_month=None,
            mean_area_ha=0.0,
            min_area_ha=0.0,
            max_area_ha=0.0,
            change_ha=0.0,
            mean_valid_frac=0.0,
        )
    areas = np.array([record.area_ha for record in ordered], dtype=float)
    valid = np.array([record.valid_frac for record in ordered], dtype=float)
    return TrendSummary(
        months=len(ordered),
        first_month=ordered[0].month,
        last_month=ordered[-1].month,
        mean_area_ha=float(areas.mean()),
        min_area_ha=float(areas.min()),
        max_area_ha=float(areas.max()),
        change_ha=float(areas[-1] - areas[0]),
        mean_valid_frac=float(valid.mean()),
    )


def table_description(prefix: str, threshold: float, months: int) -> str:
    """Export name for the statistics table.

    Example:
        >>> table_description("Pajarales", 0.40, 18)
        'Pajarales_NDVI040_monthly_median_18m'
    """
    return f"{prefix}_NDVI{int(round(threshold * 100)):03d}_monthly_median_{months}m"


def chart_title(threshold: float, months: int) -> str:
    return f"Monthly Median Area with NDVI >= {threshold:.2f} (last {months} full months)"


__all__ = [
    "TABLE_COLUMNS",
    "MonthlyRecord",
    "TrendSummary",
    "coerce_number",
    "empty_record",
    "sort_records",
    "empty_composite",
    "masked_reflectance",
    "normalized_difference",
    "median_composite",
    "composite_index",
    "vegetation_masks",
    "compute_monthly_record",
    "vegetation_area",
    "build_monthly_table",
    "summarize_trend",
    "table_description",
    "chart_title",
]
