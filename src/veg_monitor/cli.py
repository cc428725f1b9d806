"""Command-line entry point for monthly vegetation monitoring."""

from __future__ import annotations

import argparse
import logging
import os
from dataclasses import replace
from datetime import date
from pathlib import Path
from typing import List, Optional, Sequence

from .config import ConfigurationError, MonitorConfig, RetryConfig, load_monitor_config
from .config.models import (
    DEFAULT_ANALYSIS_SCALE,
    DEFAULT_BACKOFF_SECONDS,
    DEFAULT_BUFFER_METERS,
    DEFAULT_EXPORT_FOLDER,
    DEFAULT_EXPORT_PREFIX,
    DEFAULT_EXPORT_SCALE,
    DEFAULT_FRAME_MONTHS,
    DEFAULT_FRAME_WORKERS,
    DEFAULT_MAX_CLOUD_COVER,
    DEFAULT_NDVI_THRESHOLD,
    DEFAULT_RETRIES,
    DEFAULT_SCL_DILATION,
    DEFAULT_STAC_URL,
    DEFAULT_STATS_MONTHS,
    DEFAULT_TILE_SCALE,
)
from .sentinel2.monitoring import run_pipeline

LOGGER = logging.getLogger(__name__)

ENV_PREFIX = "VEG_MONITOR_"

# Options that also exist in MonitorConfig, keyed by argparse dest
_OVERRIDABLE = (
    "aoi",
    "ndvi_threshold",
    "max_cloud_cover",
    "scl_dilation",
    "analysis_scale",
    "export_scale",
    "tile_scale",
    "buffer_meters",
    "export_folder",
    "export_prefix",
    "stats_months",
    "frame_months",
    "frame_workers",
    "stac_url",
)


def _env(name: str) -> Optional[str]:
    return os.getenv(f"{ENV_PREFIX}{name}")


def strtobool(value: str) -> bool:
    return str(value).strip().lower() in {"1", "true", "yes", "y"}


def parse_month_list(value: Optional[str]) -> Optional[List[str]]:
    """Split ``"2024-10,2024-12"`` into labels; None or blank gives None."""
    if value is None:
        return None
    labels = [part.strip() for part in str(value).split(",") if part.strip()]
    return labels or None


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description=(
            "Compute monthly NDVI vegetation area over an AOI from Sentinel-2 L2A "
            "and export the statistics table, trend chart, and overlay frames."
        )
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=_env("CONFIG"),
        help="Path to a YAML configuration file. CLI arguments override YAML values.",
    )
    parser.add_argument(
        "--aoi",
        default=_env("AOI"),
        help="AOI as WKT, GeoJSON, bbox 'minx,miny,maxx,maxy', or a vector/GeoJSON file. "
        "Defaults to the Complejo Pajarales polygon.",
    )
    parser.add_argument(
        "--ndvi-threshold",
        type=float,
        default=_env("NDVI_THRESHOLD"),
        help=f"NDVI at or above which a pixel counts as vegetation (default {DEFAULT_NDVI_THRESHOLD}).",
    )
    parser.add_argument(
        "--max-cloud-cover",
        type=float,
        default=_env("MAX_CLOUD_COVER"),
        help=f"Maximum scene cloud cover percentage (default {DEFAULT_MAX_CLOUD_COVER}).",
    )
    parser.add_argument(
        "--scl-dilation",
        type=int,
        default=_env("SCL_DILATION"),
        help=f"Pixels to grow cloud and cirrus masks by (default {DEFAULT_SCL_DILATION}).",
    )
    parser.add_argument(
        "--analysis-scale",
        type=float,
        default=_env("ANALYSIS_SCALE"),
        help=f"Resolution in meters for area statistics (default {DEFAULT_ANALYSIS_SCALE}).",
    )
    parser.add_argument(
        "--export-scale",
        type=float,
        default=_env("EXPORT_SCALE"),
        help=f"Resolution in meters for exported frames (default {DEFAULT_EXPORT_SCALE}).",
    )
    parser.add_argument(
        "--tile-scale",
        type=int,
        default=_env("TILE_SCALE"),
        help=f"Split reductions into smaller chunks by this factor (default {DEFAULT_TILE_SCALE}).",
    )
    parser.add_argument(
        "--buffer-meters",
        type=float,
        default=_env("BUFFER_METERS"),
        help=f"Padding around the AOI for frames (default {DEFAULT_BUFFER_METERS}).",
    )
    parser.add_argument(
        "--export-folder",
        type=Path,
        default=_env("EXPORT_FOLDER"),
        help=f"Destination folder for exports (default {DEFAULT_EXPORT_FOLDER}).",
    )
    parser.add_argument(
        "--export-prefix",
        default=_env("EXPORT_PREFIX"),
        help=f"Name prefix for exported files (default {DEFAULT_EXPORT_PREFIX}).",
    )
    parser.add_argument(
        "--stats-months",
        type=int,
        default=_env("STATS_MONTHS"),
        help=f"Full months in the statistics window (default {DEFAULT_STATS_MONTHS}).",
    )
    parser.add_argument(
        "--frame-months",
        type=int,
        default=_env("FRAME_MONTHS"),
        help=f"Number of most recent full months exported as frames (default {DEFAULT_FRAME_MONTHS}).",
    )
    parser.add_argument(
        "--frame-month-list",
        default=_env("FRAME_MONTH_LIST"),
        help="Comma-separated YYYY-MM months to export as frames; overrides --frame-months.",
    )
    parser.add_argument(
        "--frame-workers",
        type=int,
        default=_env("FRAME_WORKERS"),
        help=f"Threads used to build frames (default {DEFAULT_FRAME_WORKERS}).",
    )
    parser.add_argument(
        "--stac-url",
        default=_env("STAC_URL"),
        help=f"STAC API endpoint (default {DEFAULT_STAC_URL}).",
    )
    parser.add_argument(
        "--retries",
        type=int,
        default=_env("RETRIES"),
        help=f"Retries on transient service errors (default {DEFAULT_RETRIES}).",
    )
    parser.add_argument(
        "--backoff-seconds",
        type=float,
        default=_env("BACKOFF_SECONDS"),
        help=f"Base retry wait; attempt n waits n times this (default {DEFAULT_BACKOFF_SECONDS}).",
    )
    parser.add_argument(
        "--skip-stats",
        action="store_true",
        default=strtobool(_env("SKIP_STATS") or "false"),
        help="Do not build the monthly statistics table.",
    )
    parser.add_argument(
        "--skip-frames",
        action="store_true",
        default=strtobool(_env("SKIP_FRAMES") or "false"),
        help="Do not export overlay frames.",
    )
    parser.add_argument(
        "--no-chart",
        action="store_true",
        default=strtobool(_env("NO_CHART") or "false"),
        help="Do not render the area trend chart.",
    )
    parser.add_argument(
        "--now",
        type=date.fromisoformat,
        default=_env("NOW"),
        help="Reference date (YYYY-MM-DD); only months before its month are processed.",
    )
    parser.add_argument(
        "--log-level",
        default=_env("LOG_LEVEL") or "INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging verbosity level.",
    )
    return parser


def build_config(args: argparse.Namespace) -> MonitorConfig:
    """Build a MonitorConfig from parsed CLI arguments and optional YAML config.

    Values given on the command line (or through ``VEG_MONITOR_*``
    variables) replace the YAML or default values.

    Raises:
        ValueError: If the YAML file cannot be loaded or the result is invalid.
    """
    if args.config is not None:
        try:
            config = load_monitor_config(args.config, validate=False)
        except (ConfigurationError, FileNotFoundError) as e:
            raise ValueError(f"Failed to load config from {args.config}: {e}")
    else:
        config = MonitorConfig()

    overrides = {}
    for name in _OVERRIDABLE:
        value = getattr(args, name)
        if value is not None:
            overrides[name] = value
    if "export_folder" in overrides:
        overrides["export_folder"] = Path(overrides["export_folder"]).expanduser().resolve()

    labels = parse_month_list(args.frame_month_list)
    if labels is not None:
        overrides["frame_month_labels"] = tuple(labels)

    if args.retries is not None or args.backoff_seconds is not None:
        overrides["retry"] = RetryConfig(
            retries=args.retries if args.retries is not None else config.retry.retries,
            backoff_seconds=(
                args.backoff_seconds
                if args.backoff_seconds is not None
                else config.retry.backoff_seconds
            ),
        )
    if args.skip_stats:
        overrides["export_stats"] = False
    if args.skip_frames:
        overrides["export_frames"] = False
    if args.no_chart:
        overrides["export_chart"] = False

    config = replace(config, **overrides)
    config.validate()
    return config


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    logging.basicConfig(
        level=getattr(logging, args.log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        config = build_config(args)
    except (ConfigurationError, FileNotFoundError, ValueError) as e:
        logging.error("Configuration error: %s", e)
        return 1

    try:
        result = run_pipeline(config, now=args.now)
    except Exception as e:
        logging.exception("Unexpected error during monitoring run: %s", e)
        return 1

    if result.table_path is not None:
        LOGGER.info("Statistics table: %s", result.table_path)
    failed = result.failed_frames
    for outcome in failed:
        LOGGER.error("Frame %s failed: %s", outcome.month, outcome.error)
    return 1 if failed else 0


if __name__ == "__main__":
    raise SystemExit(main())
