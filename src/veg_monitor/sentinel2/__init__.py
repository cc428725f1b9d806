"""Sentinel-2 processing subpackage."""

from .aoi import area_hectares, buffer_in_meters, export_region, parse_aoi
from .cloud_masking import SCL_ASSET_ID, SCL_MASK_VALUES, build_mask, quality_mask, stack_scl
from .frames import ExportFrame, FrameOutcome, export_frames, frame_identifier, frame_months
from .grid import GridSpec, grid_for_geometry
from .monthly import (
    MonthlyRecord,
    TrendSummary,
    build_monthly_table,
    compute_monthly_record,
    summarize_trend,
    table_description,
)
from .reduction import ReductionError, RegionStats, analysis_grid, reduce_region
from .stac_client import (
    SENTINEL_COLLECTION,
    SENTINEL_SCALE_FACTOR,
    SceneStack,
    count_acquisitions,
    distinct_products,
    fetch_month_items,
    stack_bands,
)
from .windows import last_full_month, month_label, month_window, parse_month_label

__all__ = [
    # AOI
    "parse_aoi",
    "buffer_in_meters",
    "export_region",
    "area_hectares",
    # Windows
    "month_window",
    "last_full_month",
    "month_label",
    "parse_month_label",
    # Grid and reduction
    "GridSpec",
    "grid_for_geometry",
    "ReductionError",
    "RegionStats",
    "analysis_grid",
    "reduce_region",
    # Cloud masking
    "SCL_ASSET_ID",
    "SCL_MASK_VALUES",
    "stack_scl",
    "build_mask",
    "quality_mask",
    # STAC client
    "SENTINEL_COLLECTION",
    "SENTINEL_SCALE_FACTOR",
    "SceneStack",
    "fetch_month_items",
    "distinct_products",
    "count_acquisitions",
    "stack_bands",
    # Monthly statistics
    "MonthlyRecord",
    "TrendSummary",
    "compute_monthly_record",
    "build_monthly_table",
    "summarize_trend",
    "table_description",
    # Frames
    "ExportFrame",
    "FrameOutcome",
    "frame_identifier",
    "frame_months",
    "export_frames",
]
