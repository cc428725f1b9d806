"""Configuration dataclasses for veg_monitor workflows.

These dataclasses provide validated, immutable configuration for the
monthly statistics and visual export pipelines. They can be instantiated
from CLI arguments, environment variables, or YAML files.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Tuple


# =============================================================================
# Default Values (matching CLI defaults)
# =============================================================================

# Complejo Pajarales sector, Cienaga Grande de Santa Marta (Colombia), ~1204 ha
DEFAULT_AOI_WKT = (
    "POLYGON ((-74.5921864 10.8397632, -74.5924010 10.8192778, "
    "-74.5436919 10.8197415, -74.5434774 10.8399739, -74.5921864 10.8397632))"
)

DEFAULT_NDVI_THRESHOLD = 0.40
DEFAULT_MAX_CLOUD_COVER = 80.0
DEFAULT_SCL_DILATION = 0
DEFAULT_ANALYSIS_SCALE = 30.0
DEFAULT_EXPORT_SCALE = 10.0
DEFAULT_TILE_SCALE = 4
DEFAULT_BUFFER_METERS = 2500.0
DEFAULT_EXPORT_FOLDER = "CGSM_ComplejoPajarales"
DEFAULT_EXPORT_PREFIX = "Pajarales"
DEFAULT_STATS_MONTHS = 18
DEFAULT_FRAME_MONTHS = 12
DEFAULT_MAX_PIXELS = int(1e13)
DEFAULT_FRAME_WORKERS = 4
DEFAULT_STAC_URL = "https://earth-search.aws.element84.com/v1"

# Upstream ceiling on in-flight region reductions. Statistics months are
# reduced one after another; exceeding the ceiling fails the whole batch.
MAX_CONCURRENT_AGGREGATIONS = 1

DEFAULT_RETRIES = 3
DEFAULT_BACKOFF_SECONDS = 2.0

DEFAULT_RGB_MIN = 0.0
DEFAULT_RGB_MAX = 0.3
DEFAULT_OVERLAY_COLOR = "#ff0000"
DEFAULT_OVERLAY_OPACITY = 0.6
DEFAULT_OUTLINE_COLOR = "#ffff00"
DEFAULT_OUTLINE_WIDTH = 2

_MONTH_LABEL = re.compile(r"^\d{4}-(0[1-9]|1[0-2])$")
_HEX_COLOR = re.compile(r"^#[0-9a-fA-F]{6}$")


# =============================================================================
# Component Configurations
# =============================================================================

@dataclass(frozen=True)
class VisualizationConfig:
    """Rendering parameters for the exported overlay frames.

    Attributes:
        rgb_min: Reflectance mapped to 0 in the true-colour stretch.
        rgb_max: Reflectance mapped to 255 in the true-colour stretch.
        overlay_color: Hex colour of the vegetation overlay.
        overlay_opacity: Opacity of the vegetation overlay (0-1).
        outline_color: Hex colour of the AOI outline.
        outline_width: AOI outline width in pixels.
    """
    rgb_min: float = DEFAULT_RGB_MIN
    rgb_max: float = DEFAULT_RGB_MAX
    overlay_color: str = DEFAULT_OVERLAY_COLOR
    overlay_opacity: float = DEFAULT_OVERLAY_OPACITY
    outline_color: str = DEFAULT_OUTLINE_COLOR
    outline_width: int = DEFAULT_OUTLINE_WIDTH

    def validate(self) -> None:
        """Validate visualization configuration.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.rgb_max <= self.rgb_min:
            raise ValueError(
                f"rgb_max ({self.rgb_max}) must be greater than rgb_min ({self.rgb_min})"
            )
        if not 0 <= self.overlay_opacity <= 1:
            raise ValueError(f"overlay_opacity must be in [0, 1], got {self.overlay_opacity}")
        for name in ("overlay_color", "outline_color"):
            value = getattr(self, name)
            if not _HEX_COLOR.match(value):
                raise ValueError(f"{name} must be a #rrggbb colour, got {value!r}")
        if self.outline_width < 1:
            raise ValueError(f"outline_width must be at least 1, got {self.outline_width}")


@dataclass(frozen=True)
class RetryConfig:
    """Retry policy for transient imagery service errors.

    Attributes:
        retries: Number of retries after the first attempt.
        backoff_seconds: Base wait; attempt ``n`` waits ``n * backoff_seconds``.
    """
    retries: int = DEFAULT_RETRIES
    backoff_seconds: float = DEFAULT_BACKOFF_SECONDS

    def validate(self) -> None:
        """Validate retry configuration.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.retries < 0:
            raise ValueError(f"retries must be non-negative, got {self.retries}")
        if self.backoff_seconds < 0:
            raise ValueError(f"backoff_seconds must be non-negative, got {self.backoff_seconds}")


# =============================================================================
# Workflow Configuration
# =============================================================================

@dataclass(frozen=True)
class MonitorConfig:
    """Complete configuration for a monitoring run.

    Attributes:
        aoi: AOI specification (WKT, GeoJSON, bbox string, or vector file path).
        ndvi_threshold: NDVI value at or above which a pixel counts as vegetation.
        max_cloud_cover: Scene-level ``eo:cloud_cover`` ceiling (percent).
        scl_dilation: Pixels to grow cloud and cirrus masks by before compositing.
        analysis_scale: Resolution in meters for area statistics.
        export_scale: Resolution in meters for exported frames.
        tile_scale: Chunking hint; larger values split reductions into smaller chunks.
        buffer_meters: Padding around the AOI for the export frame.
        export_folder: Destination folder for all exports.
        export_prefix: Name prefix for exported tables and frames.
        stats_months: Number of full months in the statistics window.
        frame_months: Number of full months exported as frames.
        frame_month_labels: Explicit YYYY-MM frame months (overrides frame_months).
        max_pixels: Ceiling on pixels processed by a single reduction.
        best_effort: Coarsen the analysis scale instead of failing above max_pixels.
        max_concurrent_aggregations: Reductions allowed in flight at once.
        frame_workers: Threads used to build and export frames.
        stac_url: STAC API endpoint for Sentinel-2 L2A.
        export_stats: Build and export the monthly statistics table.
        export_frames: Build and export the monthly overlay frames.
        export_chart: Render the area trend chart next to the table.
        visualization: Frame rendering parameters.
        retry: Retry policy for the imagery service.
    """
    aoi: str = DEFAULT_AOI_WKT
    ndvi_threshold: float = DEFAULT_NDVI_THRESHOLD
    max_cloud_cover: float = DEFAULT_MAX_CLOUD_COVER
    scl_dilation: int = DEFAULT_SCL_DILATION
    analysis_scale: float = DEFAULT_ANALYSIS_SCALE
    export_scale: float = DEFAULT_EXPORT_SCALE
    tile_scale: int = DEFAULT_TILE_SCALE
    buffer_meters: float = DEFAULT_BUFFER_METERS
    export_folder: Path = Path(DEFAULT_EXPORT_FOLDER)
    export_prefix: str = DEFAULT_EXPORT_PREFIX
    stats_months: int = DEFAULT_STATS_MONTHS
    frame_months: int = DEFAULT_FRAME_MONTHS
    frame_month_labels: Optional[Tuple[str, ...]] = None
    max_pixels: int = DEFAULT_MAX_PIXELS
    best_effort: bool = True
    max_concurrent_aggregations: int = MAX_CONCURRENT_AGGREGATIONS
    frame_workers: int = DEFAULT_FRAME_WORKERS
    stac_url: str = DEFAULT_STAC_URL
    export_stats: bool = True
    export_frames: bool = True
    export_chart: bool = True
    visualization: VisualizationConfig = field(default_factory=VisualizationConfig)
    retry: RetryConfig = field(default_factory=RetryConfig)

    def validate(self) -> None:
        """Validate monitoring configuration.

        Raises:
            ValueError: If configuration is invalid.
        """
        if not self.aoi or not str(self.aoi).strip():
            raise ValueError("aoi must be specified")
        if not -1 <= self.ndvi_threshold <= 1:
            raise ValueError(f"ndvi_threshold must be in [-1, 1], got {self.ndvi_threshold}")
        if not 0 < self.max_cloud_cover <= 100:
            raise ValueError(f"max_cloud_cover must be in (0, 100], got {self.max_cloud_cover}")
        if self.scl_dilation < 0:
            raise ValueError(f"scl_dilation must be non-negative, got {self.scl_dilation}")
        if self.analysis_scale <= 0:
            raise ValueError(f"analysis_scale must be positive, got {self.analysis_scale}")
        if self.export_scale <= 0:
            raise ValueError(f"export_scale must be positive, got {self.export_scale}")
        if self.tile_scale < 1:
            raise ValueError(f"tile_scale must be at least 1, got {self.tile_scale}")
        if self.buffer_meters < 0:
            raise ValueError(f"buffer_meters must be non-negative, got {self.buffer_meters}")
        if not self.export_prefix:
            raise ValueError("export_prefix must be specified")
        if self.stats_months < 0:
            raise ValueError(f"stats_months must be non-negative, got {self.stats_months}")
        if self.frame_months < 0:
            raise ValueError(f"frame_months must be non-negative, got {self.frame_months}")
        if self.frame_month_labels is not None:
            for label in self.frame_month_labels:
                if not _MONTH_LABEL.match(label):
                    raise ValueError(f"frame month labels must be YYYY-MM, got {label!r}")
        if self.max_pixels <= 0:
            raise ValueError(f"max_pixels must be positive, got {self.max_pixels}")
        if self.max_concurrent_aggregations < 1:
            raise ValueError(
                "max_concurrent_aggregations must be at least 1, "
                f"got {self.max_concurrent_aggregations}"
            )
        if self.frame_workers < 1:
            raise ValueError(f"frame_workers must be at least 1, got {self.frame_workers}")
        self.visualization.validate()
        self.retry.validate()
