"""YAML configuration file loading for veg_monitor.

This module provides a function to load a MonitorConfig from a YAML file,
with validation and sensible error messages.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import yaml

from .models import MonitorConfig, RetryConfig, VisualizationConfig


class ConfigurationError(Exception):
    """Raised when configuration loading or validation fails."""
    pass


def _resolve_path(base_dir: Path, path_str: Optional[str]) -> Optional[Path]:
    """Resolve a path string relative to the config file's directory.

    If the path is absolute, it's returned as-is.
    If the path is relative, it's resolved relative to base_dir.
    """
    if path_str is None:
        return None
    path = Path(path_str)
    if path.is_absolute():
        return path
    return base_dir / path


def _resolve_aoi(base_dir: Path, aoi: Optional[str]) -> Optional[str]:
    """Resolve an AOI value that points to a file next to the config."""
    if aoi is None:
        return None
    candidate = _resolve_path(base_dir, str(aoi).strip())
    if candidate is not None and candidate.exists():
        return str(candidate)
    return str(aoi)


def _parse_visualization(data: Dict[str, Any]) -> VisualizationConfig:
    """Parse visualization configuration from a dict."""
    vis_data = data.get("visualization", {}) or {}
    return VisualizationConfig(
        rgb_min=float(vis_data.get("rgb_min", VisualizationConfig.rgb_min)),
        rgb_max=float(vis_data.get("rgb_max", VisualizationConfig.rgb_max)),
        overlay_color=vis_data.get("overlay_color", VisualizationConfig.overlay_color),
        overlay_opacity=float(vis_data.get("overlay_opacity", VisualizationConfig.overlay_opacity)),
        outline_color=vis_data.get("outline_color", VisualizationConfig.outline_color),
        outline_width=int(vis_data.get("outline_width", VisualizationConfig.outline_width)),
    )


def _parse_retry(data: Dict[str, Any]) -> RetryConfig:
    """Parse retry configuration from a dict."""
    retry_data = data.get("retry", {}) or {}
    return RetryConfig(
        retries=int(retry_data.get("retries", RetryConfig.retries)),
        backoff_seconds=float(retry_data.get("backoff_seconds", RetryConfig.backoff_seconds)),
    )


def _parse_month_labels(value: Any) -> Optional[Tuple[str, ...]]:
    if value is None:
        return None
    if not isinstance(value, (list, tuple)):
        raise ConfigurationError(f"frame_month_labels must be a list of YYYY-MM strings, got {value}")
    return tuple(str(label) for label in value)


def load_monitor_config(
    config_path: Union[str, Path],
    validate: bool = True,
) -> MonitorConfig:
    """Load a MonitorConfig from a YAML file.

    Args:
        config_path: Path to the YAML configuration file.
        validate: Whether to validate the configuration (default: True).

    Returns:
        A MonitorConfig instance. Keys absent from the file keep their defaults.

    Raises:
        ConfigurationError: If the file cannot be parsed or has the wrong shape.
        FileNotFoundError: If config_path doesn't exist.
        ValueError: If validate=True and the configuration is invalid.

    Example YAML structure:
        ```yaml
        aoi: ./pajarales.geojson
        ndvi_threshold: 0.40
        max_cloud_cover: 80
        analysis_scale: 30
        export_scale: 10
        export_folder: ./exports
        stats_months: 18
        frame_month_labels: ["2024-10", "2024-12", "2025-02"]

        visualization:
          overlay_color: "#ff0000"
          overlay_opacity: 0.6

        retry:
          retries: 3
          backoff_seconds: 2
        ```
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    base_dir = config_path.parent

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Failed to parse YAML: {e}")

    if data is None:
        raise ConfigurationError("Configuration file is empty")

    if not isinstance(data, dict):
        raise ConfigurationError("Configuration must be a YAML mapping (dict)")

    defaults = MonitorConfig()
    export_folder = _resolve_path(base_dir, data.get("export_folder"))

    try:
        config = MonitorConfig(
            aoi=_resolve_aoi(base_dir, data.get("aoi")) or defaults.aoi,
            ndvi_threshold=float(data.get("ndvi_threshold", defaults.ndvi_threshold)),
            max_cloud_cover=float(data.get("max_cloud_cover", defaults.max_cloud_cover)),
            scl_dilation=int(data.get("scl_dilation", defaults.scl_dilation)),
            analysis_scale=float(data.get("analysis_scale", defaults.analysis_scale)),
            export_scale=float(data.get("export_scale", defaults.export_scale)),
            tile_scale=int(data.get("tile_scale", defaults.tile_scale)),
            buffer_meters=float(data.get("buffer_meters", defaults.buffer_meters)),
            export_folder=export_folder or defaults.export_folder,
            export_prefix=str(data.get("export_prefix", defaults.export_prefix)),
            stats_months=int(data.get("stats_months", defaults.stats_months)),
            frame_months=int(data.get("frame_months", defaults.frame_months)),
            frame_month_labels=_parse_month_labels(data.get("frame_month_labels")),
            max_pixels=int(float(data.get("max_pixels", defaults.max_pixels))),
            best_effort=bool(data.get("best_effort", defaults.best_effort)),
            max_concurrent_aggregations=int(
                data.get("max_concurrent_aggregations", defaults.max_concurrent_aggregations)
            ),
            frame_workers=int(data.get("frame_workers", defaults.frame_workers)),
            stac_url=str(data.get("stac_url", defaults.stac_url)),
            export_stats=bool(data.get("export_stats", defaults.export_stats)),
            export_frames=bool(data.get("export_frames", defaults.export_frames)),
            export_chart=bool(data.get("export_chart", defaults.export_chart)),
            visualization=_parse_visualization(data),
            retry=_parse_retry(data),
        )
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid configuration value: {e}")

    if validate:
        config.validate()

    return config
